from pos_terminal.core.errors import (
    CatalogUnavailable,
    InconsistentNumericInput,
    MutationRejected,
    OrderClosed,
    OrderEngineError,
    OrderUnavailable,
    ValidationFailed,
)
from pos_terminal.core.logging import get_logger, request_id_ctx

__all__ = [
    "CatalogUnavailable",
    "InconsistentNumericInput",
    "MutationRejected",
    "OrderClosed",
    "OrderEngineError",
    "OrderUnavailable",
    "ValidationFailed",
    "get_logger",
    "request_id_ctx",
]
