"""Error taxonomy for outing operations.

Services raise these; ``tribu.main`` maps each code to an HTTP status and a
JSON body so that business-rule outcomes reach the client as typed results.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Stable, client-facing error codes."""

    VALIDATION_ERROR = "ValidationError"
    NOT_FOUND = "NotFound"
    EVENT_FULL = "EventFull"
    ALREADY_SUBSCRIBED = "AlreadySubscribed"
    EVENT_PAST = "EventPast"
    FORBIDDEN = "Forbidden"
    STORE_UNAVAILABLE = "StoreUnavailable"


class DomainError(Exception):
    """Base error with a code and a user-safe message."""

    code: ErrorCode

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    def to_dict(self) -> dict:
        return {"error": self.code.value, "message": self.message}


class ValidationError(DomainError):
    """Malformed or out-of-range input. Names the offending field."""

    code = ErrorCode.VALIDATION_ERROR

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        return {**super().to_dict(), "field": self.field}


class NotFound(DomainError):
    """The referenced event, group or comment does not exist."""

    code = ErrorCode.NOT_FOUND

    def __init__(self, kind: str, identifier: object) -> None:
        super().__init__(f"{kind} not found")
        self.kind = kind
        self.identifier = identifier


class EventFull(DomainError):
    """The event already has ``max_participants`` attendees."""

    code = ErrorCode.EVENT_FULL

    def __init__(self) -> None:
        super().__init__("This outing is full.")


class AlreadySubscribed(DomainError):
    """The name is already on the attendee list."""

    code = ErrorCode.ALREADY_SUBSCRIBED

    def __init__(self, name: str) -> None:
        super().__init__(f"{name} is already going.")
        self.name = name


class EventPast(DomainError):
    """The event has started; it no longer accepts attendees."""

    code = ErrorCode.EVENT_PAST

    def __init__(self) -> None:
        super().__init__("This outing has already started.")


class Forbidden(DomainError):
    """The requesting name is not the organizer or creator."""

    code = ErrorCode.FORBIDDEN

    def __init__(self) -> None:
        super().__init__("Only the organizer can do this.")


class StoreUnavailable(DomainError):
    """The database could not be reached. Callers should retry."""

    code = ErrorCode.STORE_UNAVAILABLE

    def __init__(self) -> None:
        super().__init__("Service temporarily unavailable, please retry.")
