"""Repository classes for DynamoDB data access."""

from triddle.repositories.base import BaseRepository
from triddle.repositories.form import FormRepository
from triddle.repositories.response import ResponseRepository
from triddle.repositories.visit import VisitRepository

__all__ = [
    "BaseRepository",
    "FormRepository",
    "ResponseRepository",
    "VisitRepository",
]
