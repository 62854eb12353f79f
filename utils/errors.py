"""Error taxonomy shared by the intake, lifecycle and OTP components."""


class CivicError(Exception):
    """Base class for errors reported to API callers."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class ValidationError(CivicError):
    status_code = 400
    default_message = "Invalid request"


class InvalidStatusError(ValidationError):
    default_message = "Invalid complaint status"


class UnsupportedMediaError(CivicError):
    status_code = 400
    default_message = "Only image files are allowed"


class NotFoundError(CivicError):
    status_code = 404
    default_message = "Not found"


class InternalError(CivicError):
    status_code = 500


class ExternalServiceUnavailable(CivicError):
    """Raised inside adapters for soft dependencies; callers degrade instead of failing."""

    status_code = 503
    default_message = "External service unavailable"


class OtpError(CivicError):
    status_code = 400


class NoPendingChallenge(OtpError):
    default_message = "No OTP requested for this number"


class InvalidCode(OtpError):
    default_message = "Invalid OTP"


class ExpiredChallenge(OtpError):
    default_message = "OTP expired, please request a new one"


class DuplicateKeyError(Exception):
    """Raised by repositories when a unique key is already taken."""
