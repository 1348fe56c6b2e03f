"""
Durable User Metadata Store

Per-user non-secret attributes (phone, role, approval flag) persisted to a
TOML file. The whole collection is loaded once at startup and rewritten on
every mutation: serialized to a temp file, fsynced, then renamed over the
canonical path, so the file on disk is always a complete old or new state.
"""

import logging
import os
import secrets
import threading
import tomllib
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, asdict, replace
from pathlib import Path
from typing import Dict, Generator, Optional

import tomli_w

from .exceptions import MetadataStoreError

logger = logging.getLogger(__name__)

DEFAULT_USERS_TOML = "/users/users.toml"

# 32 bytes = 256 bits of entropy
SESSION_TOKEN_BYTES = 32


@dataclass
class UserMeta:
    """Persistent metadata for one user. Empty fields are omitted on disk."""
    name: str = ""
    role: str = ""
    phone: str = ""
    approved: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "UserMeta":
        return cls(
            name=str(data.get("name", "")),
            role=str(data.get("role", "")),
            phone=str(data.get("phone", "")),
            approved=bool(data.get("approved", False)),
        )

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v}


class ReadWriteLock:
    """
    Many concurrent readers or one exclusive writer.

    Writers are preferred once waiting so a steady stream of readers cannot
    starve a metadata update.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read_locked(self) -> Generator[None, None, None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write_locked(self) -> Generator[None, None, None]:
        with self._cond:
            self._writers_waiting += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class MetadataStore:
    """
    TOML-backed user metadata.

    Usage:
        store = MetadataStore("/users/users.toml")
        store.set_phone("alice@example.com", "+15550100")
        store.find_user_by_phone("+15550100")   # -> "alice@example.com"
    """

    def __init__(self, toml_path: Optional[str] = None):
        if not toml_path:
            toml_path = os.environ.get("USERS_TOML") or DEFAULT_USERS_TOML
        self.toml_path = Path(toml_path)
        self._lock = ReadWriteLock()

        try:
            self.toml_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise MetadataStoreError(f"mkdir toml dir: {e}") from e

        self._users: Dict[str, UserMeta] = self._load()

    def _load(self) -> Dict[str, UserMeta]:
        if not self.toml_path.exists():
            return {}
        try:
            with open(self.toml_path, "rb") as f:
                raw = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise MetadataStoreError(f"decode {self.toml_path.name}: {e}") from e

        users = {}
        for username, data in raw.items():
            if isinstance(data, dict):
                users[username] = UserMeta.from_dict(data)
        logger.info("Loaded metadata for %d user(s) from %s", len(users), self.toml_path)
        return users

    def _save(self, users: Dict[str, UserMeta]) -> None:
        """Write ``users`` to disk. The rename is the only commit point."""
        try:
            payload = tomli_w.dumps({name: meta.to_dict() for name, meta in users.items()})
        except (TypeError, ValueError) as e:
            raise MetadataStoreError(f"encode {self.toml_path.name}: {e}") from e

        tmp_path = self.toml_path.with_name(self.toml_path.name + ".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            raise MetadataStoreError(f"write temp toml: {e}") from e
        try:
            os.replace(tmp_path, self.toml_path)
        except OSError as e:
            raise MetadataStoreError(f"rename toml: {e}") from e

    def _commit(self, username: str, meta: UserMeta) -> None:
        # Caller holds the write lock. Memory only changes after the file does.
        updated = dict(self._users)
        updated[username] = meta
        self._save(updated)
        self._users = updated

    # ---------- phone ----------

    def get_phone(self, username: str) -> str:
        """Phone number for ``username``, empty if unknown."""
        with self._lock.read_locked():
            meta = self._users.get(username)
            return meta.phone if meta else ""

    def set_phone(self, username: str, phone: str) -> None:
        with self._lock.write_locked():
            meta = self._users.get(username) or UserMeta()
            self._commit(username, replace(meta, phone=phone))

    def find_user_by_phone(self, phone: str) -> str:
        """
        Username owning ``phone``, empty if none.

        Linear scan over all users; fine at the scale of a tinyauth users file.
        """
        if not phone:
            return ""
        with self._lock.read_locked():
            for username, meta in self._users.items():
                if meta.phone == phone:
                    return username
        return ""

    # ---------- whole record ----------

    def get_user_meta(self, username: str) -> Optional[UserMeta]:
        """Copy of the metadata record, or None."""
        with self._lock.read_locked():
            meta = self._users.get(username)
            return replace(meta) if meta else None

    def set_user_meta(self, username: str, meta: UserMeta) -> None:
        with self._lock.write_locked():
            self._commit(username, replace(meta))

    def set_approved(self, username: str, approved: bool = True) -> None:
        with self._lock.write_locked():
            meta = self._users.get(username) or UserMeta()
            self._commit(username, replace(meta, approved=approved))

    def count(self) -> int:
        with self._lock.read_locked():
            return len(self._users)


def generate_session_token() -> str:
    """
    Generate a new session token.

    Returns:
        64 hex characters (256 bits from the OS CSPRNG)
    """
    return secrets.token_hex(SESSION_TOKEN_BYTES)


def generate_id() -> str:
    """Random unique identifier for reset tokens, signups and SMS codes."""
    return str(uuid.uuid4())
