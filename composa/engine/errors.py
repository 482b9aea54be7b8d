"""Error taxonomy shared by every engine component.

Each error carries an :class:`ErrorKind`.  Services raise these and never
HTTP exceptions; ``app.py`` owns the kind -> status translation.

- ``UNAUTHORIZED``: no authenticated principal.
- ``FORBIDDEN``: principal lacks the action or module grant.
- ``NOT_FOUND``: referenced module / object type / object / view is missing.
- ``VALIDATION``: malformed input or a rejected schema change.
- ``DB_ERROR``: storage failure, opaque and not retried here.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    VALIDATION = "VALIDATION"
    DB_ERROR = "DB_ERROR"


HTTP_STATUS: dict[ErrorKind, int] = {
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.VALIDATION: 400,
    ErrorKind.DB_ERROR: 500,
}


class EngineError(Exception):
    """Base class for all typed engine failures."""

    kind: ErrorKind = ErrorKind.DB_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def status_code(self) -> int:
        return HTTP_STATUS[self.kind]


class UnauthorizedError(EngineError):
    kind = ErrorKind.UNAUTHORIZED

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class ForbiddenError(EngineError):
    kind = ErrorKind.FORBIDDEN


class NotFoundError(EngineError, LookupError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} '{entity_id}' not found")
        self.entity = entity
        self.entity_id = entity_id


class EngineValidationError(EngineError, ValueError):
    kind = ErrorKind.VALIDATION


class KanbanUnavailableError(EngineValidationError):
    """The object type has no select field to group a board by."""

    def __init__(self, object_type_id: str) -> None:
        super().__init__(f"Object type '{object_type_id}' has no select field usable as a kanban grouping field")
        self.object_type_id = object_type_id


class StoreError(EngineError):
    """Wraps a failure raised by a storage backend."""

    kind = ErrorKind.DB_ERROR
