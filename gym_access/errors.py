"""
Error taxonomy shared by the login flow and the workspace procedures.

Every error carries a human-readable message and the HTTP status the RPC
layer answers with. The Telegram login endpoint flattens everything except
ConfigurationError to 400.
"""


class AppError(Exception):
    """Base class for expected, user-facing failures."""

    status_code: int = 400
    default_message: str = "Request failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ConfigurationError(AppError):
    status_code = 500
    default_message = "Service is not configured"


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid request"


class MissingFieldError(ValidationError):
    default_message = "Required field is missing"


class MalformedFieldError(ValidationError):
    default_message = "Field is malformed"


class AuthenticationError(AppError):
    status_code = 401
    default_message = "Not authenticated"


class BadSignatureError(AuthenticationError):
    default_message = "Invalid initData signature."


class ExpiredCredentialError(AuthenticationError):
    default_message = "initData is outdated. Close and reopen the Mini App in Telegram."


class FutureTimestampError(AuthenticationError):
    default_message = "auth_date is in the future. Check the device clock."


class AuthorizationError(AppError):
    status_code = 403
    default_message = "Not authorized"


class NotFoundError(AppError):
    status_code = 404
    default_message = "Not found"


class StateError(AppError):
    status_code = 409
    default_message = "Invalid state"


class InviteExpiredError(StateError):
    default_message = "Invite expired"


class InviteAlreadyAcceptedError(StateError):
    default_message = "Invite already accepted"


class DownstreamError(AppError):
    """An auth provider or store call failed; wraps the underlying message."""

    status_code = 502
    default_message = "Upstream service failed"
