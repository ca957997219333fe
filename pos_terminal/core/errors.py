"""
Error taxonomy for order composition and pricing.
Validation errors are resolved locally; server rejections always lead to a resync.
"""
from __future__ import annotations

from typing import Optional


class OrderEngineError(Exception):
    """Base class for all engine errors surfaced to the presentation layer."""

    status_code = 400

    def __init__(self, message: str, backend_status: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.backend_status = backend_status
        if backend_status == 404:
            self.status_code = 404


class CatalogUnavailable(OrderEngineError):
    """Menu item, deal or variant data could not be read from the backend."""

    status_code = 503


class ValidationFailed(OrderEngineError):
    """A selection cannot be committed; `missing` names the unresolved variants."""

    status_code = 422

    def __init__(self, message: str, missing: Optional[list[str]] = None) -> None:
        super().__init__(message)
        self.missing = list(missing or [])

    @classmethod
    def for_missing(cls, missing: list[str]) -> "ValidationFailed":
        return cls(f"Please select: {', '.join(missing)}", missing)


class MutationRejected(OrderEngineError):
    """The backend refused (or never confirmed) an order mutation."""

    status_code = 409


class OrderClosed(MutationRejected):
    """Line mutation attempted on a completed or cancelled order."""


class InconsistentNumericInput(OrderEngineError):
    """A quantity or price produced a non-finite amount."""

    status_code = 409


class OrderUnavailable(OrderEngineError):
    """The canonical order could not be read back from the backend."""

    status_code = 503
