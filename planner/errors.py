"""Exceptions raised at the planner's external boundaries."""

from typing import Optional


class PlannerError(Exception):
    pass


class StoreError(PlannerError):
    """A document store operation failed."""


class PermissionDenied(StoreError):
    pass


class NetworkError(StoreError):
    pass


class NotFound(StoreError):
    pass


class DecodeError(PlannerError, ValueError):
    """A stored document does not have the shape its entity kind requires."""

    def __init__(self, kind: str, doc_id: Optional[str], reason: str):
        self.kind = kind
        self.doc_id = doc_id
        self.reason = reason
        super().__init__(f"malformed {kind} document {doc_id!r}: {reason}")


class AuthError(PlannerError):

    def __init__(self, code: str, message: str = ""):
        self.code = code
        super().__init__(message or code)


class GeolocationError(PlannerError):
    pass


class WeatherError(PlannerError):
    pass
