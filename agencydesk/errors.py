from __future__ import annotations

from typing import Any


FOREIGN_KEY_VIOLATION = "23503"
UNIQUE_VIOLATION = "23505"
NOT_NULL_VIOLATION = "23502"
INTERNAL_ERROR = "XX000"
NETWORK_ERROR = "network_error"


class DataError(Exception):
    """A failed store or function call, carrying the store's error code."""

    def __init__(self, code: str, message: str, details: Any = None) -> None:
        self.code = code
        self.message = message
        self.details = details
        super().__init__(f"{code}: {message}")


class NotFound(DataError):
    def __init__(self, entity: str, entity_id: Any) -> None:
        super().__init__("not_found", f"{entity} not found", {"id": str(entity_id)})
        self.entity = entity


class DependentRecordsError(DataError):
    """Raised when a delete is rejected because other rows still reference the target."""

    def __init__(self, entity: str, message: str | None = None, dependencies: dict[str, int] | None = None) -> None:
        super().__init__(
            FOREIGN_KEY_VIOLATION,
            message or f"This {entity} has related records and cannot be deleted",
            {"dependencies": dependencies or {}},
        )
        self.entity = entity
        self.dependencies = dependencies or {}


class ValidationFailed(Exception):
    def __init__(self, field_errors: dict[str, str]) -> None:
        self.field_errors = field_errors
        super().__init__("; ".join(f"{field}: {message}" for field, message in sorted(field_errors.items())))


class PermissionDenied(Exception):
    pass
