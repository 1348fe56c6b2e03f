"""
Unit tests for the credentials users file and password hashing.
"""

import pytest

from usermgmt.auth import (
    BCRYPT_ROUNDS,
    MAX_PASSWORD_BYTES,
    UserFile,
    UserFileError,
    UserRecord,
    hash_password,
    password_too_long,
    valid_username,
    verify_password,
)


class TestUserRecord:
    """Tests for line parsing and formatting."""

    def test_parse_without_totp(self):
        record = UserRecord.from_line("alice@example.com:$2b$10$abc")
        assert record.username == "alice@example.com"
        assert record.password == "$2b$10$abc"
        assert record.totp_secret == ""
        assert not record.totp_enabled

    def test_parse_with_totp(self):
        record = UserRecord.from_line("bob:$2b$10$abc:JBSWY3DPEHPK3PXP\n")
        assert record.totp_secret == "JBSWY3DPEHPK3PXP"
        assert record.totp_enabled

    @pytest.mark.parametrize("line", ["", "justaname", ":hash", "name:"])
    def test_parse_malformed(self, line):
        assert UserRecord.from_line(line) is None

    def test_format_omits_empty_totp(self):
        assert UserRecord("a", "h", "").to_line() == "a:h"
        assert UserRecord("a", "h", "  ").to_line() == "a:h"
        assert UserRecord("a", "h", "S").to_line() == "a:h:S"

    def test_whitespace_secret_is_not_enabled(self):
        assert not UserRecord("a", "h", "   ").totp_enabled


class TestUserFile:
    """Tests for UserFile reads and upserts."""

    def test_missing_file_is_empty(self, users):
        assert users.list_all() == []
        assert users.find("alice") is None
        assert not users.exists("alice")

    def test_upsert_creates_file(self, users):
        users.upsert(UserRecord("alice", "$2b$10$hash"))
        assert users.path.read_text() == "alice:$2b$10$hash\n"

    def test_upsert_replaces_in_place(self, users):
        users.upsert(UserRecord("alice", "h1"))
        users.upsert(UserRecord("bob", "h2"))
        users.upsert(UserRecord("alice", "h3", "SECRET"))

        assert users.path.read_text().splitlines() == ["alice:h3:SECRET", "bob:h2"]

    def test_reads_external_edits(self, users):
        users.upsert(UserRecord("alice", "h1"))
        with open(users.path, "a") as f:
            f.write("carol:h9\n")
        assert users.exists("carol")

    def test_skips_comments_and_malformed_lines(self, users):
        users.path.parent.mkdir(parents=True, exist_ok=True)
        users.path.write_text("# admins\n\nalice:h1\ngarbage\nbob:h2:S\n")

        names = [r.username for r in users.list_all()]
        assert names == ["alice", "bob"]

    @pytest.mark.parametrize("username", ["", "bad:name", "bad\nname"])
    def test_rejects_invalid_username(self, users, username):
        with pytest.raises(UserFileError):
            users.upsert(UserRecord(username, "h"))

    def test_no_temp_file_left_behind(self, users):
        users.upsert(UserRecord("alice", "h1"))
        assert [p.name for p in users.path.parent.iterdir()] == ["users.txt"]


class TestPasswords:
    """Tests for bcrypt hashing."""

    def test_hash_and_verify(self):
        hashed = hash_password("s3cret")
        assert hashed.startswith("$2")
        assert verify_password("s3cret", hashed)
        assert not verify_password("wrong", hashed)

    def test_cost_factor(self):
        hashed = hash_password("pw")
        assert hashed.split("$")[2] == f"{BCRYPT_ROUNDS:02d}"

    def test_salted(self):
        assert hash_password("pw") != hash_password("pw")

    def test_empty_or_malformed_hash(self):
        assert not verify_password("pw", "")
        assert not verify_password("pw", "not-a-bcrypt-hash")

    def test_length_limit_in_bytes(self):
        assert not password_too_long("p" * MAX_PASSWORD_BYTES)
        assert password_too_long("p" * (MAX_PASSWORD_BYTES + 1))
        assert password_too_long("\u00e9" * 37)

    def test_valid_username(self):
        assert valid_username("alice@example.com")
        assert not valid_username("")
        assert not valid_username("a:b")
        assert not valid_username("a\rb")
