"""
Unit tests for the TOML-backed user metadata store.
"""

import threading
import tomllib

import pytest

from usermgmt.auth import MetadataStore, MetadataStoreError, UserMeta
from usermgmt.auth import database


class TestMetadataStore:
    """Tests for MetadataStore persistence."""

    def test_creates_parent_directory(self, temp_dir):
        path = temp_dir / "nested" / "dir" / "users.toml"
        MetadataStore(str(path))
        assert path.parent.is_dir()
        # Nothing is written until the first mutation
        assert not path.exists()

    def test_mkdir_failure(self, temp_dir):
        blocker = temp_dir / "not-a-dir"
        blocker.write_text("x")
        with pytest.raises(MetadataStoreError):
            MetadataStore(str(blocker / "users.toml"))

    def test_env_default_path(self, temp_dir, monkeypatch):
        path = temp_dir / "from-env.toml"
        monkeypatch.setenv("USERS_TOML", str(path))
        store = MetadataStore()
        assert store.toml_path == path

    def test_get_phone_unknown(self, metadata):
        assert metadata.get_phone("alice") == ""

    def test_set_and_get_phone(self, metadata):
        metadata.set_phone("alice", "+15550100")
        assert metadata.get_phone("alice") == "+15550100"

    def test_phone_persists_across_reload(self, metadata):
        metadata.set_phone("alice", "+15550100")
        reopened = MetadataStore(str(metadata.toml_path))
        assert reopened.get_phone("alice") == "+15550100"

    def test_file_is_valid_toml(self, metadata):
        metadata.set_phone("alice@example.com", "+15550100")
        metadata.set_approved("bob", True)

        with open(metadata.toml_path, "rb") as f:
            raw = tomllib.load(f)

        assert raw["alice@example.com"] == {"phone": "+15550100"}
        assert raw["bob"] == {"approved": True}

    def test_set_phone_keeps_other_fields(self, metadata):
        metadata.set_user_meta("alice", UserMeta(name="Alice", role="admin", phone="+1"))
        metadata.set_phone("alice", "+2")
        meta = metadata.get_user_meta("alice")
        assert meta.name == "Alice"
        assert meta.role == "admin"
        assert meta.phone == "+2"

    def test_get_user_meta_returns_copy(self, metadata):
        metadata.set_phone("alice", "+1")
        meta = metadata.get_user_meta("alice")
        meta.phone = "+9"
        assert metadata.get_phone("alice") == "+1"

    def test_get_user_meta_unknown(self, metadata):
        assert metadata.get_user_meta("nobody") is None

    def test_find_user_by_phone(self, metadata):
        metadata.set_phone("alice", "+15550100")
        metadata.set_phone("bob", "+15550200")
        assert metadata.find_user_by_phone("+15550200") == "bob"
        assert metadata.find_user_by_phone("+19999999") == ""

    def test_find_user_by_empty_phone(self, metadata):
        metadata.set_user_meta("nophone", UserMeta(name="No Phone"))
        assert metadata.find_user_by_phone("") == ""

    def test_count(self, metadata):
        assert metadata.count() == 0
        metadata.set_phone("alice", "+1")
        metadata.set_phone("bob", "+2")
        metadata.set_phone("alice", "+3")
        assert metadata.count() == 2

    def test_corrupt_file_rejected(self, temp_dir):
        path = temp_dir / "users.toml"
        path.write_text("this is = = not toml [")
        with pytest.raises(MetadataStoreError):
            MetadataStore(str(path))


class TestAtomicWrites:
    """Tests for the temp-file-and-rename commit."""

    def test_no_temp_file_left_behind(self, metadata):
        metadata.set_phone("alice", "+1")
        leftovers = [p.name for p in metadata.toml_path.parent.iterdir()]
        assert leftovers == ["users.toml"]

    def test_failed_rename_keeps_old_state(self, metadata, monkeypatch):
        """A crash between temp write and rename leaves the prior file intact."""
        metadata.set_phone("alice", "+15550100")
        before = metadata.toml_path.read_bytes()

        def failing_replace(src, dst):
            raise OSError("simulated crash")

        monkeypatch.setattr(database.os, "replace", failing_replace)

        with pytest.raises(MetadataStoreError):
            metadata.set_phone("alice", "+15559999")

        # Disk still has the old complete state
        assert metadata.toml_path.read_bytes() == before
        # Memory did not move ahead of disk
        assert metadata.get_phone("alice") == "+15550100"

        monkeypatch.undo()
        reopened = MetadataStore(str(metadata.toml_path))
        assert reopened.get_phone("alice") == "+15550100"

    def test_failed_first_write_leaves_no_file(self, metadata, monkeypatch):
        def failing_replace(src, dst):
            raise OSError("boom")

        monkeypatch.setattr(database.os, "replace", failing_replace)
        with pytest.raises(MetadataStoreError):
            metadata.set_phone("alice", "+1")
        assert not metadata.toml_path.exists()
        assert metadata.get_phone("alice") == ""

    def test_concurrent_writes_all_persisted(self, metadata):
        def write(i):
            metadata.set_phone(f"user{i}", f"+1555{i:04d}")

        threads = [threading.Thread(target=write, args=(i,)) for i in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        reopened = MetadataStore(str(metadata.toml_path))
        assert reopened.count() == 20
        assert reopened.find_user_by_phone("+15550013") == "user13"


class TestTokens:
    """Tests for token and id generation."""

    def test_session_token_format(self):
        token = database.generate_session_token()
        assert len(token) == 64
        int(token, 16)

    def test_session_tokens_unique(self):
        tokens = {database.generate_session_token() for _ in range(100)}
        assert len(tokens) == 100

    def test_generate_id_unique(self):
        assert database.generate_id() != database.generate_id()

