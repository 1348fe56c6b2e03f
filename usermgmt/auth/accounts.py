"""
Account Service

Password reset (email and SMS), signup and approval, password change, phone
update and TOTP enrollment. Drives the ephemeral state store, the durable
metadata store and the users file, then tells the outside world: the auth
proxy gets a restart notification and password targets get a background
sync.

Password-sync failures never reach the caller; they are logged by the
dispatcher. Unknown usernames and phones in the reset-request paths return
exactly like known ones.
"""

import hmac
import logging
import secrets
from dataclasses import dataclass
from typing import Callable, NamedTuple, Optional, Protocol

from ..providers.password_targets import PasswordChanged
from . import totp
from .database import MetadataStore, generate_id
from .exceptions import (
    AlreadyExists,
    InvalidCode,
    InvalidCredentials,
    InvalidInput,
    InvalidPassword,
    InvalidRecoveryKey,
    MetadataStoreError,
    NotFound,
    SMSNotConfigured,
    SMSSendFailed,
)
from .models import StateStore, now_seconds
from .passwords import hash_password, password_too_long, verify_password
from .users import UserFile, UserRecord, valid_username

logger = logging.getLogger(__name__)

DEFAULT_RESET_TOKEN_TTL_SECONDS = 3600

SMS_CODE_LENGTH = 6
SMS_CODE_TTL_SECONDS = 10 * 60

SIGNUP_PENDING = "pending"
SIGNUP_APPROVED = "approved"


class ResetMailer(Protocol):
    def send_reset_email(self, username: str, token: str) -> None:
        ...


class RestartNotifier(Protocol):
    def restart_auth_proxy(self) -> object:
        ...


class PasswordSync(Protocol):
    def notify_async(self, event) -> object:
        ...


class SMSSender(Protocol):
    def send_sms(self, to: str, message: str) -> None:
        ...


class SignupResult(NamedTuple):
    status: str
    signup_id: Optional[str] = None


@dataclass
class Profile:
    username: str
    totp_enabled: bool
    phone: str

    def to_dict(self) -> dict:
        return {
            "username": self.username,
            "totpEnabled": self.totp_enabled,
            "phone": self.phone,
        }


def generate_numeric_code(length: int = SMS_CODE_LENGTH) -> str:
    """Random decimal code, one unbiased CSPRNG draw per digit."""
    return "".join(str(secrets.randbelow(10)) for _ in range(length))


def recovery_key_for(username: str) -> str:
    """
    The TOTP recovery key for ``username``.

    This is a fixed derivation from a public identifier, kept for
    compatibility with existing users. Anyone who knows a username can
    compute it.
    """
    return f"RECOVERY-{username}"


def check_new_password(password: str) -> None:
    """Raise InvalidInput unless ``password`` is non-empty and fits bcrypt."""
    if not password:
        raise InvalidInput("new password required")
    if password_too_long(password):
        raise InvalidInput("password too long")


class AccountService:
    """Account lifecycle operations on top of the stores and providers."""

    def __init__(
        self,
        state: StateStore,
        metadata: MetadataStore,
        users: UserFile,
        mailer: ResetMailer,
        restarter: RestartNotifier,
        password_sync: PasswordSync,
        sms: Optional[SMSSender] = None,
        totp_issuer: str = totp.DEFAULT_ISSUER,
        reset_token_ttl_seconds: int = DEFAULT_RESET_TOKEN_TTL_SECONDS,
        signup_require_approval: bool = False,
        clock: Callable[[], int] = now_seconds,
    ):
        self.state = state
        self.metadata = metadata
        self.users = users
        self.mailer = mailer
        self.restarter = restarter
        self.password_sync = password_sync
        self.sms = sms
        self.totp_issuer = totp_issuer
        self.reset_token_ttl_seconds = reset_token_ttl_seconds
        self.signup_require_approval = signup_require_approval
        self.clock = clock

    # =========================================================================
    # Helpers
    # =========================================================================

    def _require_user(self, username: str) -> UserRecord:
        record = self.users.find(username)
        if record is None:
            raise NotFound()
        return record

    def _stash_phone(self, username: str, phone: str) -> None:
        if not phone:
            return
        try:
            self.metadata.set_phone(username, phone)
        except MetadataStoreError as e:
            logger.warning("Could not store phone for %s: %s", username, e)

    def _password_changed(self, username: str, plain_password: str, hashed_password: str) -> None:
        self.restarter.restart_auth_proxy()
        self.password_sync.notify_async(PasswordChanged(username, plain_password, hashed_password))

    def _set_password(self, record: UserRecord, new_password: str) -> None:
        check_new_password(new_password)
        hashed = hash_password(new_password)
        record.password = hashed
        self.users.upsert(record)
        self._password_changed(record.username, new_password, hashed)

    # =========================================================================
    # Password reset by email
    # =========================================================================

    def request_password_reset(self, username: str) -> None:
        """
        Mail a reset link if ``username`` exists; otherwise do nothing.

        The caller sees the same outcome either way.
        """
        record = self.users.find(username)
        if record is None:
            return

        token = generate_id()
        expires_at = self.clock() + self.reset_token_ttl_seconds
        self.state.create_reset_token(token, record.username, expires_at)
        self.mailer.send_reset_email(record.username, token)

    def reset_password(self, token: str, new_password: str) -> None:
        """
        Confirm a reset token and set the new password.

        Raises:
            InvalidToken: unknown token
            TokenExpired: token used or expired
            NotFound: the token's user has since disappeared
        """
        check_new_password(new_password)
        username = self.state.claim_reset_token(token, self.clock())
        try:
            record = self._require_user(username)
            self._set_password(record, new_password)
        except Exception:
            self.state.release_reset_token(token)
            raise

    # =========================================================================
    # Signup
    # =========================================================================

    def signup(self, username: str, email: str, password: str, phone: str = "") -> SignupResult:
        """
        Create an account, or queue it for approval.

        Returns:
            SignupResult("approved", None) or SignupResult("pending", signup_id)
        """
        if not username or not password:
            raise InvalidInput()
        if not valid_username(username):
            raise InvalidInput("invalid username")
        check_new_password(password)
        if self.users.exists(username):
            raise AlreadyExists()

        hashed = hash_password(password)

        if self.signup_require_approval:
            signup_id = generate_id()
            self.state.create_pending_signup(signup_id, username, email, hashed, self.clock())
            self._stash_phone(username, phone)
            logger.info("Signup for %s queued for approval", username)
            return SignupResult(SIGNUP_PENDING, signup_id)

        self.users.upsert(UserRecord(username=username, password=hashed))
        self._stash_phone(username, phone)
        self._password_changed(username, password, hashed)
        logger.info("Signup for %s approved", username)
        return SignupResult(SIGNUP_APPROVED)

    def approve_signup(self, signup_id: str) -> None:
        """
        Turn a pending signup into a user.

        Approved records stay in the store, so approving twice re-creates
        the same user and notifies the proxy again.
        """
        pending = self.state.get_pending_signup(signup_id)
        self.users.upsert(UserRecord(username=pending.username, password=pending.password_hash))
        self.state.approve_pending_signup(signup_id)
        self.metadata.set_approved(pending.username, True)
        self.restarter.restart_auth_proxy()
        logger.info("Pending signup %s approved for %s", signup_id, pending.username)

    # =========================================================================
    # Profile, password, phone
    # =========================================================================

    def profile(self, username: str) -> Profile:
        record = self._require_user(username)
        return Profile(
            username=record.username,
            totp_enabled=record.totp_enabled,
            phone=self.metadata.get_phone(username),
        )

    def change_password(self, username: str, old_password: str, new_password: str) -> None:
        record = self._require_user(username)
        if not verify_password(old_password, record.password):
            raise InvalidCredentials("old password invalid")
        self._set_password(record, new_password)

    def set_phone(self, username: str, phone: str) -> None:
        self.metadata.set_phone(username, phone)

    # =========================================================================
    # TOTP
    # =========================================================================

    def totp_setup(self, username: str) -> totp.TOTPSetup:
        """Fresh secret, otpauth URL and QR code. Nothing is stored."""
        return totp.setup_totp(username, issuer=self.totp_issuer)

    def totp_enable(self, username: str, secret: str, code: str) -> None:
        if not totp.verify_code(secret, code, for_time=self.clock()):
            raise InvalidCode()
        record = self._require_user(username)
        record.totp_secret = totp.normalize_secret(secret)
        self.users.upsert(record)
        self.restarter.restart_auth_proxy()

    def totp_disable(self, username: str, password: str) -> None:
        record = self._require_user(username)
        if not verify_password(password, record.password):
            raise InvalidPassword()
        record.totp_secret = ""
        self.users.upsert(record)
        self.restarter.restart_auth_proxy()

    def totp_recover(self, username: str, recovery_key: str, new_secret: str, code: str) -> None:
        expected = recovery_key_for(username)
        if not hmac.compare_digest(recovery_key.encode("utf-8"), expected.encode("utf-8")):
            raise InvalidRecoveryKey()
        self.totp_enable(username, new_secret, code)

    # =========================================================================
    # Password reset by SMS
    # =========================================================================

    def sms_enabled(self) -> bool:
        return self.sms is not None

    def request_sms_reset(self, phone: str) -> None:
        """
        Text a reset code to ``phone`` if it belongs to a user.

        Raises:
            SMSNotConfigured: no SMS provider wired in
            SMSSendFailed: the provider failed (cause is logged only)
        """
        if self.sms is None:
            raise SMSNotConfigured()
        username = self.metadata.find_user_by_phone(phone)
        if not username:
            return

        code = generate_numeric_code()
        expires_at = self.clock() + SMS_CODE_TTL_SECONDS
        self.state.store_sms_reset_code(generate_id(), username, code, expires_at)

        message = f"Your password reset code is: {code} (valid for 10 minutes)"
        try:
            self.sms.send_sms(phone, message)
        except Exception as e:
            logger.error("Failed to send SMS to %s: %s", phone, e)
            raise SMSSendFailed() from e

    def reset_password_sms(self, phone: str, code: str, new_password: str) -> None:
        check_new_password(new_password)
        username = self.state.verify_and_consume_sms_reset_code(phone, code, now=self.clock())
        record = self._require_user(username)
        self._set_password(record, new_password)
