"""Custom exceptions for ride management."""


class RideServiceError(Exception):
    """Base class for ride lifecycle errors surfaced to the caller."""
    code = "ride_error"
    status_code = 400

    def __init__(self, message: str = "", **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def as_dict(self) -> dict:
        return {"error": self.message, "code": self.code, **self.extra}


class ValidationError(RideServiceError):
    """Raised when caller-supplied data fails basic shape checks."""
    code = "validation_error"
    status_code = 400


class RideNotFoundError(RideServiceError):
    """Raised when a ride cannot be found."""
    code = "ride_not_found"
    status_code = 404


class ForbiddenError(RideServiceError):
    """Raised when the caller is not the assigned actor for the transition."""
    code = "forbidden"
    status_code = 403


class ConflictError(RideServiceError):
    """Raised when a state-machine guard fails, including a lost accept race."""
    code = "conflict"
    status_code = 409

    def __init__(self, message: str = "", current_status: str = None, **extra):
        if current_status is not None:
            extra["current_status"] = current_status
        super().__init__(message, **extra)
        self.current_status = current_status


class InvalidOTPError(RideServiceError):
    """Raised when the submitted passcode does not match."""
    code = "invalid_otp"
    status_code = 400
