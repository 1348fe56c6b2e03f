"""
Ephemeral State Store for Sessions, Reset Tokens, Signups and SMS Codes

Four independent in-memory tables, each guarded by its own lock so that
session traffic never waits on reset-token traffic. Locks are held only for
the duration of one table read or write; nothing here does network or file
I/O while locked.

Expiry is lazy: records carry ``expires_at`` (epoch seconds) and callers
compare it against the current time on every read. ``purge_expired`` is a
housekeeping sweep only.
"""

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Callable, Dict, Generator, Generic, List, Optional, Tuple, TypeVar

from .exceptions import (
    CodeExpired,
    CodeUsed,
    InvalidCode,
    InvalidToken,
    NoSuchPhone,
    NotFound,
    TokenExpired,
)


def now_seconds() -> int:
    """Current time as integer epoch seconds."""
    return int(time.time())


@dataclass
class Session:
    """An issued login session. Keyed by its opaque token."""
    username: str = ""
    created_at: int = 0
    expires_at: int = 0

    def is_expired(self, now: int) -> bool:
        return now > self.expires_at


@dataclass
class ResetToken:
    """Single-use password reset token."""
    username: str = ""
    expires_at: int = 0
    used: bool = False

    def is_expired(self, now: int) -> bool:
        return now > self.expires_at


@dataclass
class PendingSignup:
    """
    Signup awaiting admin approval.

    Approved records are kept with ``approved=True`` as an audit trace.
    """
    username: str = ""
    email: str = ""
    password_hash: str = ""
    created_at: int = 0
    approved: bool = False


@dataclass
class SMSResetCode:
    """Six-digit code texted to a user's phone for password reset."""
    username: str = ""
    code: str = ""
    expires_at: int = 0
    used: bool = False

    def is_expired(self, now: int) -> bool:
        return now > self.expires_at


R = TypeVar("R")


class LockedTable(Generic[R]):
    """
    A dict of dataclass records behind one mutex.

    Reads hand back copies so callers can never mutate a stored record
    without going through the table.
    """

    def __init__(self, name: str):
        self.name = name
        self._rows: Dict[str, R] = {}
        self._lock = threading.Lock()

    def put(self, key: str, record: R) -> None:
        """Insert or overwrite (last write wins)."""
        with self._lock:
            self._rows[key] = record

    def get(self, key: str) -> Optional[R]:
        with self._lock:
            record = self._rows.get(key)
            return replace(record) if record is not None else None

    def delete(self, key: str) -> None:
        """Remove ``key``; absent keys are ignored."""
        with self._lock:
            self._rows.pop(key, None)

    def update(self, key: str, **changes) -> bool:
        """Apply field changes to an existing record. Returns False if absent."""
        with self._lock:
            record = self._rows.get(key)
            if record is None:
                return False
            self._rows[key] = replace(record, **changes)
            return True

    def select(self, predicate: Callable[[R], bool]) -> List[Tuple[str, R]]:
        with self._lock:
            return [(k, replace(r)) for k, r in self._rows.items() if predicate(r)]

    def purge(self, predicate: Callable[[R], bool]) -> int:
        with self._lock:
            doomed = [k for k, r in self._rows.items() if predicate(r)]
            for key in doomed:
                del self._rows[key]
            return len(doomed)

    @contextmanager
    def locked(self) -> Generator[Dict[str, R], None, None]:
        """Hold the table lock and expose the raw rows for a read-modify-write."""
        with self._lock:
            yield self._rows

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)


class StateStore:
    """
    Sessions, reset tokens, pending signups and SMS reset codes.

    Constructed once at startup and handed to the services. Phone lookups for
    SMS verification go through ``phone_lookup`` (normally
    ``MetadataStore.find_user_by_phone``).

    Usage:
        state = StateStore(phone_lookup=metadata.find_user_by_phone)
        state.create_session(token, "alice", now, now + 86400)
        state.get_session(token)
    """

    def __init__(self, phone_lookup: Optional[Callable[[str], str]] = None):
        self.sessions: LockedTable[Session] = LockedTable("sessions")
        self.reset_tokens: LockedTable[ResetToken] = LockedTable("reset_tokens")
        self.signups: LockedTable[PendingSignup] = LockedTable("pending_signups")
        self.sms_codes: LockedTable[SMSResetCode] = LockedTable("sms_reset_codes")
        self._phone_lookup = phone_lookup

    # ---------- sessions ----------

    def create_session(self, token: str, username: str, created_at: int, expires_at: int) -> None:
        self.sessions.put(token, Session(username, created_at, expires_at))

    def get_session(self, token: str) -> Optional[Session]:
        """Plain lookup. Expiry is enforced by the caller."""
        return self.sessions.get(token)

    def delete_session(self, token: str) -> None:
        self.sessions.delete(token)

    # ---------- reset tokens ----------

    def create_reset_token(self, token: str, username: str, expires_at: int) -> None:
        self.reset_tokens.put(token, ResetToken(username, expires_at, used=False))

    def get_reset_token(self, token: str) -> Optional[ResetToken]:
        return self.reset_tokens.get(token)

    def mark_reset_token_used(self, token: str) -> None:
        self.reset_tokens.update(token, used=True)

    def claim_reset_token(self, token: str, now: Optional[int] = None) -> str:
        """
        Check and mark a reset token used in one step.

        Two concurrent confirms with the same token cannot both get past
        this call.

        Raises:
            InvalidToken: unknown token
            TokenExpired: already used or past expiry
        """
        if now is None:
            now = now_seconds()
        with self.reset_tokens.locked() as rows:
            rt = rows.get(token)
            if rt is None:
                raise InvalidToken()
            if rt.used or rt.is_expired(now):
                raise TokenExpired()
            rows[token] = replace(rt, used=True)
            return rt.username

    def release_reset_token(self, token: str) -> None:
        """Undo a claim whose password update failed."""
        self.reset_tokens.update(token, used=False)

    # ---------- pending signups ----------

    def create_pending_signup(
        self,
        signup_id: str,
        username: str,
        email: str,
        password_hash: str,
        created_at: int,
    ) -> None:
        self.signups.put(
            signup_id,
            PendingSignup(username, email, password_hash, created_at, approved=False),
        )

    def get_pending_signup(self, signup_id: str) -> PendingSignup:
        signup = self.signups.get(signup_id)
        if signup is None:
            raise NotFound("signup not found")
        return signup

    def approve_pending_signup(self, signup_id: str) -> None:
        self.signups.update(signup_id, approved=True)

    # ---------- SMS reset codes ----------

    def store_sms_reset_code(self, code_id: str, username: str, code: str, expires_at: int) -> None:
        self.sms_codes.put(code_id, SMSResetCode(username, code, expires_at, used=False))

    def verify_and_consume_sms_reset_code(
        self,
        phone: str,
        code: str,
        now: Optional[int] = None,
    ) -> str:
        """
        Consume the newest unused code matching ``code`` for the phone's user.

        Among unused matches the latest ``expires_at`` wins; equal expiries
        fall back to the smallest id. Exactly the chosen code is marked used.

        Returns:
            The username the code was issued to

        Raises:
            NoSuchPhone, InvalidCode, CodeUsed, CodeExpired
        """
        username = self._phone_lookup(phone) if self._phone_lookup else ""
        if not username:
            raise NoSuchPhone()
        if now is None:
            now = now_seconds()

        with self.sms_codes.locked() as rows:
            matches = [
                (code_id, sc) for code_id, sc in rows.items()
                if sc.username == username and sc.code == code
            ]
            if not matches:
                raise InvalidCode()

            unused = [(code_id, sc) for code_id, sc in matches if not sc.used]
            if not unused:
                raise CodeUsed()

            best_id, best = min(unused, key=lambda item: (-item[1].expires_at, item[0]))
            if best.is_expired(now):
                raise CodeExpired()

            rows[best_id] = replace(best, used=True)
            return username

    # ---------- housekeeping ----------

    def purge_expired(self, now: Optional[int] = None) -> int:
        """Drop expired sessions and expired or used tokens and codes."""
        if now is None:
            now = now_seconds()
        removed = self.sessions.purge(lambda s: s.is_expired(now))
        removed += self.reset_tokens.purge(lambda t: t.used or t.is_expired(now))
        removed += self.sms_codes.purge(lambda c: c.used or c.is_expired(now))
        return removed
