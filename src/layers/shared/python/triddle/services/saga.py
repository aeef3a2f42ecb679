"""Compensating actions for multi-step writes.

A ``Saga`` collects undo steps while work proceeds. If the block raises,
the steps run newest first and the original exception propagates. Undo
failures are logged and never replace the original error.
"""

from collections.abc import Callable
from typing import Any

import structlog

logger = structlog.get_logger()


class Saga:
    """Context manager running registered compensations on failure."""

    def __init__(self, name: str, **log_context: Any) -> None:
        self.name = name
        self.log_context = log_context
        self._compensations: list[tuple[str, Callable[[], Any]]] = []
        self.compensated = False

    def on_failure(self, description: str, action: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        """Register an undo step."""
        self._compensations.append((description, lambda: action(*args, **kwargs)))

    def compensate(self) -> list[str]:
        """Run undo steps in reverse registration order.

        Returns:
            Descriptions of the steps that failed.
        """
        failed = []
        for description, action in reversed(self._compensations):
            try:
                action()
            except Exception as e:
                failed.append(description)
                logger.warning(
                    "Compensation step failed",
                    saga=self.name,
                    step=description,
                    error=str(e),
                    **self.log_context,
                )
        self._compensations.clear()
        self.compensated = True
        return failed

    def __enter__(self) -> "Saga":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc is not None and self._compensations:
            logger.warning(
                "Saga failed, compensating",
                saga=self.name,
                steps=len(self._compensations),
                error=str(exc),
                **self.log_context,
            )
            self.compensate()
        return False
