"""
Credentials Users File

The tinyauth users file holds one user per line:

    username:bcrypt_hash[:totp_secret]

tinyauth reads this file itself and may be edited by hand, so every lookup
re-reads it. Writes are serialized in-process and committed by atomic
rename.
"""

import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from .exceptions import UserFileError

logger = logging.getLogger(__name__)

# field separator and line breaks would corrupt the file
FORBIDDEN_USERNAME_CHARS = (":", "\n", "\r")


def valid_username(username: str) -> bool:
    return bool(username) and not any(c in username for c in FORBIDDEN_USERNAME_CHARS)


@dataclass
class UserRecord:
    """A credentials line. An empty ``totp_secret`` means 2FA is off."""
    username: str = ""
    password: str = ""
    totp_secret: str = ""

    @classmethod
    def from_line(cls, line: str) -> Optional["UserRecord"]:
        parts = line.strip().split(":")
        if len(parts) < 2 or not parts[0] or not parts[1]:
            return None
        return cls(
            username=parts[0],
            password=parts[1],
            totp_secret=parts[2] if len(parts) > 2 else "",
        )

    def to_line(self) -> str:
        if self.totp_secret.strip():
            return f"{self.username}:{self.password}:{self.totp_secret}"
        return f"{self.username}:{self.password}"

    @property
    def totp_enabled(self) -> bool:
        return bool(self.totp_secret.strip())


class UserFile:
    """Read and upsert users in the tinyauth users file."""

    def __init__(self, path: str):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> List[UserRecord]:
        if not self.path.exists():
            return []
        try:
            lines = self.path.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            raise UserFileError(f"read users file: {e}") from e

        records = []
        for line in lines:
            if not line.strip() or line.lstrip().startswith("#"):
                continue
            record = UserRecord.from_line(line)
            if record is None:
                logger.warning("Skipping malformed line in %s", self.path)
                continue
            records.append(record)
        return records

    def _write(self, records: List[UserRecord]) -> None:
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        content = "".join(r.to_line() + "\n" for r in records)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise UserFileError(f"write users file: {e}") from e

    def find(self, username: str) -> Optional[UserRecord]:
        for record in self._read():
            if record.username == username:
                return record
        return None

    def exists(self, username: str) -> bool:
        return self.find(username) is not None

    def list_all(self) -> List[UserRecord]:
        return self._read()

    def upsert(self, record: UserRecord) -> None:
        """Replace the line for ``record.username`` or append a new one."""
        if not valid_username(record.username):
            raise UserFileError(f"invalid username: {record.username!r}")
        with self._lock:
            records = self._read()
            for i, existing in enumerate(records):
                if existing.username == record.username:
                    records[i] = record
                    break
            else:
                records.append(record)
            self._write(records)
