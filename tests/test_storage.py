"""Tests for atomic file writes and the session file lock."""

import json
import os
import stat
import sys

import pytest

from credvault import storage
from credvault.errors import CorruptVault, StorageIOFailure, VaultInUse
from credvault.storage import FileLock, load_json, save_json_atomic


class TestJsonFiles:
    """Test cases for JSON load/save."""

    def test_missing_file(self, tmp_path):
        assert load_json(str(tmp_path / "nope.json")) is None

    def test_round_trip(self, tmp_path):
        path = str(tmp_path / "data.json")
        save_json_atomic(path, {"a": 1})
        assert load_json(path) == {"a": 1}

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "data.json"
        path.write_text("{oops", encoding="utf-8")
        with pytest.raises(CorruptVault):
            load_json(str(path))

    def test_non_object_json(self, tmp_path):
        path = tmp_path / "data.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(CorruptVault):
            load_json(str(path))

    @pytest.mark.skipif(sys.platform == "win32", reason="Unix permissions")
    def test_secure_permissions(self, tmp_path):
        path = str(tmp_path / "data.json")
        save_json_atomic(path, {"a": 1})
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600

    def test_failed_replace_keeps_original(self, tmp_path, monkeypatch):
        """A crash-equivalent failure leaves the old file and no temp file."""
        path = str(tmp_path / "data.json")
        save_json_atomic(path, {"version": "old"})

        def broken_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(storage.os, "replace", broken_replace)
        with pytest.raises(StorageIOFailure):
            save_json_atomic(path, {"version": "new"})
        monkeypatch.undo()

        with open(path, encoding="utf-8") as f:
            assert json.load(f) == {"version": "old"}
        assert os.listdir(tmp_path) == ["data.json"]

    def test_delete_file(self, tmp_path):
        path = tmp_path / "data.json"
        path.write_text("{}", encoding="utf-8")
        assert storage.delete_file(str(path)) is True
        assert storage.delete_file(str(path)) is False


class TestFileLock:
    """Test cases for the exclusive session lock."""

    def test_exclusive(self, tmp_path):
        target = str(tmp_path / "vault.json")
        with FileLock(target) as held:
            assert held.is_held
            with pytest.raises(VaultInUse):
                FileLock(target).acquire()

    def test_released_after_context(self, tmp_path):
        target = str(tmp_path / "vault.json")
        with FileLock(target):
            pass
        with FileLock(target) as again:
            assert again.is_held

    def test_released_on_error(self, tmp_path):
        target = str(tmp_path / "vault.json")
        with pytest.raises(RuntimeError):
            with FileLock(target):
                raise RuntimeError("boom")
        lock = FileLock(target)
        lock.acquire()
        lock.release()
        lock.release()
        assert not lock.is_held
