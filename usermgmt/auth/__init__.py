"""
tinyauth User Management - Authentication Module

Sessions, password resets, signups, SMS codes and TOTP enrollment for users
of the tinyauth proxy. Ephemeral state lives in memory; per-user metadata
is persisted to a TOML file; credentials live in the tinyauth users file.
"""

from .database import (
    MetadataStore,
    UserMeta,
    generate_session_token,
    generate_id,
)

from .models import (
    LockedTable,
    StateStore,
    Session,
    ResetToken,
    PendingSignup,
    SMSResetCode,
    now_seconds,
)

from .users import (
    UserFile,
    UserRecord,
    valid_username,
)

from .passwords import (
    hash_password,
    verify_password,
    password_too_long,
    BCRYPT_ROUNDS,
    MAX_PASSWORD_BYTES,
)

from .totp import (
    generate_secret as generate_totp_secret,
    get_provisioning_uri,
    verify_code as verify_totp_code,
    setup_totp,
    TOTPSetup,
)

from .sessions import AuthService

from .accounts import (
    AccountService,
    Profile,
    SignupResult,
    generate_numeric_code,
    recovery_key_for,
    SIGNUP_APPROVED,
    SIGNUP_PENDING,
)

from .exceptions import (
    AccountError,
    InvalidInput,
    InvalidCredentials,
    InvalidPassword,
    InvalidCode,
    InvalidRecoveryKey,
    NotFound,
    AlreadyExists,
    InvalidToken,
    TokenExpired,
    NoSuchPhone,
    CodeUsed,
    CodeExpired,
    Unauthorized,
    SMSNotConfigured,
    SMSSendFailed,
    MetadataStoreError,
    UserFileError,
)

__all__ = [
    # Durable metadata
    "MetadataStore",
    "UserMeta",
    "generate_session_token",
    "generate_id",
    # Ephemeral state
    "LockedTable",
    "StateStore",
    "Session",
    "ResetToken",
    "PendingSignup",
    "SMSResetCode",
    "now_seconds",
    # Credentials
    "UserFile",
    "UserRecord",
    "valid_username",
    "hash_password",
    "verify_password",
    "password_too_long",
    "BCRYPT_ROUNDS",
    "MAX_PASSWORD_BYTES",
    # TOTP
    "generate_totp_secret",
    "get_provisioning_uri",
    "verify_totp_code",
    "setup_totp",
    "TOTPSetup",
    # Services
    "AuthService",
    "AccountService",
    "Profile",
    "SignupResult",
    "generate_numeric_code",
    "recovery_key_for",
    "SIGNUP_APPROVED",
    "SIGNUP_PENDING",
    # Errors
    "AccountError",
    "InvalidInput",
    "InvalidCredentials",
    "InvalidPassword",
    "InvalidCode",
    "InvalidRecoveryKey",
    "NotFound",
    "AlreadyExists",
    "InvalidToken",
    "TokenExpired",
    "NoSuchPhone",
    "CodeUsed",
    "CodeExpired",
    "Unauthorized",
    "SMSNotConfigured",
    "SMSSendFailed",
    "MetadataStoreError",
    "UserFileError",
]
