"""
File lock and JSON transport tests.
"""

import json
import time

import pytest

from agent_teams.coordination import FileLock, FileTransport, file_lock
from agent_teams.errors import LockTimeoutError


class TestFileLock:

    def test_acquire_and_release(self, tmp_path):
        lock = FileLock(str(tmp_path), "tasks", timeout=1.0)
        assert lock.acquire() is True
        assert lock.locked
        lock.release()
        assert not lock.locked
        # lock file is kept
        assert (tmp_path / "tasks.lock").exists()

    def test_second_holder_times_out(self, tmp_path):
        with FileLock(str(tmp_path), "tasks", timeout=1.0):
            other = FileLock(str(tmp_path), "tasks", timeout=0.1, poll_interval=0.01)
            started = time.monotonic()
            with pytest.raises(LockTimeoutError) as exc_info:
                with other:
                    pass
            assert time.monotonic() - started >= 0.1
            assert exc_info.value.name == "tasks"
            assert isinstance(exc_info.value, TimeoutError)

    def test_non_blocking_acquire_fails_fast(self, tmp_path):
        with FileLock(str(tmp_path), "config"):
            other = FileLock(str(tmp_path), "config", timeout=5.0)
            assert other.acquire(blocking=False) is False
            assert not other.locked

    def test_released_lock_can_be_reacquired(self, tmp_path):
        with file_lock(str(tmp_path), "plan-1", timeout=1.0):
            pass
        with file_lock(str(tmp_path), "plan-1", timeout=0.1) as lock:
            assert lock.locked

    def test_different_names_do_not_contend(self, tmp_path):
        with FileLock(str(tmp_path), "tasks"):
            other = FileLock(str(tmp_path), "mailbox-lead", timeout=0.1)
            assert other.acquire() is True
            other.release()


class TestFileTransport:

    def test_read_missing_returns_none(self, tmp_path):
        transport = FileTransport(tmp_path / "locks")
        assert transport.read_json(tmp_path / "nope.json") is None

    def test_write_then_read(self, tmp_path):
        transport = FileTransport(tmp_path / "locks")
        target = tmp_path / "nested" / "doc.json"
        transport.write_json(target, {"tasks": [1, 2, 3], "name": "ünïcode"})
        assert transport.read_json(target) == {"tasks": [1, 2, 3], "name": "ünïcode"}

    def test_write_replaces_and_leaves_no_temp_files(self, tmp_path):
        transport = FileTransport(tmp_path / "locks")
        target = tmp_path / "doc.json"
        transport.write_json(target, {"v": 1})
        transport.write_json(target, {"v": 2})

        assert transport.read_json(target) == {"v": 2}
        assert [p.name for p in tmp_path.iterdir() if p.is_file()] == ["doc.json"]

    def test_failed_write_keeps_previous_document(self, tmp_path):
        transport = FileTransport(tmp_path / "locks")
        target = tmp_path / "doc.json"
        transport.write_json(target, {"v": 1})

        with pytest.raises(TypeError):
            transport.write_json(target, {"v": object()})

        assert transport.read_json(target) == {"v": 1}
        assert [p.name for p in tmp_path.iterdir() if p.is_file()] == ["doc.json"]

    def test_corrupt_document_raises(self, tmp_path):
        transport = FileTransport(tmp_path / "locks")
        target = tmp_path / "doc.json"
        target.write_text("{not json")
        with pytest.raises(json.JSONDecodeError):
            transport.read_json(target)

    def test_ensure_dir_is_idempotent(self, tmp_path):
        transport = FileTransport(tmp_path / "locks")
        transport.ensure_dir(tmp_path / "a" / "b")
        transport.ensure_dir(tmp_path / "a" / "b")
        assert (tmp_path / "a" / "b").is_dir()

    def test_lock_uses_lock_dir(self, tmp_path):
        transport = FileTransport(tmp_path / "locks", lock_timeout=0.1)
        with transport.lock("tasks"):
            assert (tmp_path / "locks" / "tasks.lock").exists()
            with pytest.raises(LockTimeoutError):
                with transport.lock("tasks"):
                    pass
