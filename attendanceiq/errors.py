class DomainError(Exception):
    """Base exception for attendance rule violations."""


class DuplicateCheckInError(DomainError):
    """Raised when a record already exists for the user on that date."""


class NotCheckedInError(DomainError):
    """Raised when checking out without a prior check-in."""


class AlreadyCheckedOutError(DomainError):
    """Raised when the day's record already has a check-out."""


class RecordNotFoundError(DomainError):
    """Raised when a record does not exist or is not visible to the caller."""


class AuthorizationError(DomainError):
    """Raised when the caller lacks the role required for an action."""


class GatewayError(Exception):
    """
    Failure of the AI assistant exchange.

    `status_code` is the HTTP status reported to the caller and `message`
    the text placed in the `{"error": ...}` body.
    """

    status_code = 500
    default_message = "AI gateway error"

    def __init__(self, message: str | None = None, *, status_code: int | None = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class Unauthorized(GatewayError):
    status_code = 401
    default_message = "Unauthorized"


class InvalidToken(GatewayError):
    status_code = 401
    default_message = "Invalid token"


class RateLimitExceeded(GatewayError):
    status_code = 429
    default_message = "Rate limit exceeded"


class PaymentRequired(GatewayError):
    status_code = 402
    default_message = "Payment required"


class ServiceNotConfigured(GatewayError):
    status_code = 500
    default_message = "AI service not configured"
