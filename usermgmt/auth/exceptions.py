"""
Account Error Taxonomy

Every fallible account operation raises a subclass of AccountError carrying a
single human-readable message. The HTTP layer maps ``status_code`` onto the
response; authentication mismatches share one status so they cannot be told
apart by a client.
"""


class AccountError(Exception):
    """Base exception for account and session operations."""

    default_message = "request failed"
    status_code = 400

    def __init__(self, message: str = None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class InvalidInput(AccountError):
    default_message = "username and password required"


class InvalidCredentials(AccountError):
    default_message = "invalid credentials"


class InvalidPassword(AccountError):
    default_message = "invalid password"


class InvalidCode(AccountError):
    default_message = "invalid code"


class InvalidRecoveryKey(AccountError):
    default_message = "invalid recovery key"


class NotFound(AccountError):
    default_message = "not found"
    status_code = 404


class AlreadyExists(AccountError):
    default_message = "user already exists"
    status_code = 409


class InvalidToken(AccountError):
    default_message = "invalid token"


class TokenExpired(AccountError):
    default_message = "token expired"


class NoSuchPhone(AccountError):
    default_message = "no user with that phone"


class CodeUsed(AccountError):
    default_message = "code already used"


class CodeExpired(AccountError):
    default_message = "code expired"


class Unauthorized(AccountError):
    default_message = "unauthorized"
    status_code = 401


class SMSNotConfigured(AccountError):
    default_message = "SMS not configured"
    status_code = 503


class SMSSendFailed(AccountError):
    default_message = "failed to send SMS"
    status_code = 502


class MetadataStoreError(Exception):
    """Error reading or writing the durable user metadata file."""


class UserFileError(Exception):
    """Error reading or writing the credentials users file."""
