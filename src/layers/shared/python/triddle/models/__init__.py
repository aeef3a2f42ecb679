"""Pydantic models for Triddle entities."""

from triddle.models.base import BaseModel, CamelModel, TimestampMixin
from triddle.models.form import (
    CreateFormRequest,
    FieldOption,
    FieldType,
    Form,
    FormField,
    FormSettings,
    FormStatus,
    LogicJump,
    UpdateFormRequest,
)
from triddle.models.response import Answer, Response, ResponseMetadata, SubmitResponseRequest
from triddle.models.visit import DeviceType, Visit, VisitMetadata

__all__ = [
    "BaseModel",
    "CamelModel",
    "TimestampMixin",
    "CreateFormRequest",
    "FieldOption",
    "FieldType",
    "Form",
    "FormField",
    "FormSettings",
    "FormStatus",
    "LogicJump",
    "UpdateFormRequest",
    "Answer",
    "Response",
    "ResponseMetadata",
    "SubmitResponseRequest",
    "DeviceType",
    "Visit",
    "VisitMetadata",
]
