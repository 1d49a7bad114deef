"""
Domain exceptions raised by the service layer.

Each carries the HTTP status and machine code the exception handlers in
main.py put on the wire.
"""

from typing import Any, Optional


class FridgeAppError(Exception):
    """Base class for all expected application failures."""

    status_code: int = 400
    code: str = "error"

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message, **self.extra}


class ValidationError(FridgeAppError):
    status_code = 400
    code = "validation_error"


class NotFound(FridgeAppError):
    status_code = 404
    code = "not_found"


class Expired(FridgeAppError):
    status_code = 410
    code = "expired"


class Conflict(FridgeAppError):
    status_code = 400
    code = "conflict"


class Forbidden(FridgeAppError):
    status_code = 403
    code = "forbidden"


class InvalidCredentials(FridgeAppError):
    status_code = 401
    code = "invalid_credentials"

    def __init__(self, message: str = "Invalid email or password", **extra: Any):
        super().__init__(message, **extra)


class InvalidGoogleToken(FridgeAppError):
    status_code = 401
    code = "invalid_google_token"

    def __init__(self, message: str = "Invalid Google token", **extra: Any):
        super().__init__(message, **extra)


class ServiceUnavailable(FridgeAppError):
    status_code = 503
    code = "service_unavailable"


class EmailNotVerified(FridgeAppError):
    status_code = 403
    code = "email_not_verified"

    def __init__(
        self,
        message: str = "Please verify your email before signing in",
        **extra: Any,
    ):
        super().__init__(message, **extra)


class IntegrityViolation(FridgeAppError):
    """Persistent state broke an invariant. Never auto-healed; surfaced opaquely."""

    status_code = 500
    code = "integrity_error"


class FridgeNotFound(IntegrityViolation):
    def __init__(self, fridge_id: Optional[str], user_id: Optional[str] = None):
        super().__init__(f"Fridge {fridge_id} referenced by profile {user_id} does not exist")
        self.fridge_id = fridge_id
        self.user_id = user_id


class InviterProfileMissing(IntegrityViolation):
    def __init__(self, inviter_id: str):
        super().__init__(f"Inviter {inviter_id} has no profile")
        self.inviter_id = inviter_id
