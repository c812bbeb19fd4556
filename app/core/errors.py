"""Error taxonomy shared by the progress engine and the HTTP layer.

Each error carries a machine-readable code, a human message and the HTTP
status it maps to.  The API layer renders them as
``{"code": ..., "message": ..., "details": ...}``.
"""

from __future__ import annotations

from typing import Any

from app.core.config import SETTINGS

# module_id columns are int4
MIN_MODULE_ID = 1
MAX_MODULE_ID = 2**31 - 1


class ProgressError(Exception):
    """Base progress error."""

    status_code = 500

    def __init__(
        self,
        code: str,
        message: str,
        *,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details
        super().__init__(message)


class ProgressValidationError(ProgressError):
    """Request rejected before touching the store."""

    status_code = 400


class NotFoundError(ProgressError):
    status_code = 404


class ForbiddenError(ProgressError):
    status_code = 403


class PersistenceError(ProgressError):
    """The primary read or write of an operation failed."""

    status_code = 500


class InternalError(ProgressError):
    def __init__(self, details: dict[str, Any] | None = None) -> None:
        super().__init__("INTERNAL_ERROR", "Internal server error", details=details)


def parse_module_id(raw: object) -> int:
    """Validate the ``module_id`` a client sends with a completion.

    Accepts ints and integer strings (clients send either).  Booleans and
    anything fractional are rejected, as is anything outside the range of
    the ``module_id`` columns (positive int4).
    """
    if raw is None or raw == "":
        raise ProgressValidationError(
            "MISSING_MODULE_ID", "module_id is required in request body"
        )
    value: int | None = None
    if isinstance(raw, int) and not isinstance(raw, bool):
        value = raw
    elif isinstance(raw, str):
        try:
            value = int(raw.strip())
        except ValueError:
            value = None
    if value is None:
        raise ProgressValidationError(
            "INVALID_MODULE_ID", "module_id must be an integer"
        )
    if not MIN_MODULE_ID <= value <= MAX_MODULE_ID:
        raise ProgressValidationError(
            "INVALID_MODULE_ID",
            f"module_id must be between {MIN_MODULE_ID} and {MAX_MODULE_ID}",
        )
    return value


def debug_details(error: Exception) -> dict[str, Any] | None:
    """Raw store error text for the ``details`` field, dev environment only."""
    if SETTINGS.is_dev:
        return {"details": str(error)}
    return None
