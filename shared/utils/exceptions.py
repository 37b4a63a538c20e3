"""
shared/utils/exceptions.py
Application error taxonomy. Every expected failure is one of these;
main.py renders them as {"success": false, "message": ...}.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional


class AppError(Exception):
    """Base class for errors that map to a well-formed client response."""

    status_code: int = 500
    default_message: str = "An internal server error occurred"

    def __init__(self, message: Optional[str] = None, *, headers: Optional[Dict[str, str]] = None):
        self.message = message or self.default_message
        self.headers = headers
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "message": self.message}


_LOCATION_PREFIXES = ("body", "query", "path", "header", "cookie")
_VALUE_ERROR_PREFIX = "Value error, "


def _field_error(error: Mapping[str, Any]) -> Dict[str, str]:
    parts = [str(p) for p in error.get("loc", ())]
    if parts and parts[0] in _LOCATION_PREFIXES:
        parts = parts[1:]
    field = ".".join(parts) or "body"

    if error.get("type") == "missing":
        return {"field": field, "message": f"{field} is required"}
    # ValueError raised inside a validator arrives as "Value error, <msg>"
    message = str(error.get("msg", "Invalid value"))
    if message.startswith(_VALUE_ERROR_PREFIX):
        message = message[len(_VALUE_ERROR_PREFIX):]
    return {"field": field, "message": message}


class ValidationError(AppError):
    """Malformed or missing input. `errors` lists every offending field."""

    status_code = 400
    default_message = "Validation failed"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Dict[str, str]]] = None):
        self.errors = errors or []
        if message is None and self.errors:
            message = "; ".join(f"{e['field']}: {e['message']}" for e in self.errors)
        super().__init__(message)

    @classmethod
    def from_pydantic(cls, errors: Iterable[Mapping[str, Any]]) -> "ValidationError":
        """Build from Pydantic error dicts, one {field, message} per failure."""
        return cls(errors=[_field_error(e) for e in errors])

    @property
    def fields(self) -> List[str]:
        return [e["field"] for e in self.errors]

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["errors"] = self.errors
        return body


class InvalidCredentialsError(AppError):
    status_code = 401
    default_message = "Invalid credentials"


class InvalidTokenError(AppError):
    """Expired, malformed and forged tokens all look the same to the caller."""

    status_code = 401
    default_message = "Invalid or expired token"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class ForbiddenError(AppError):
    status_code = 403
    default_message = "Admin access required"


class NotFoundError(AppError):
    status_code = 404
    default_message = "Resource not found"


class ConflictError(AppError):
    status_code = 409
    default_message = "Resource already exists"


class PaymentVerificationError(AppError):
    status_code = 400
    default_message = "Invalid payment signature"


class InvalidStatusError(AppError):
    status_code = 400
    default_message = "Valid status is required"


class UpstreamError(AppError):
    """Payment gateway or storage failed or timed out. Never retried here."""

    status_code = 502
    default_message = "Upstream service unavailable. Please try again later."


class InternalError(AppError):
    status_code = 500
