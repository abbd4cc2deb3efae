"""Tests for the apply lock."""
import os

import pytest

from poolsmith.core.lock import LockError, PoolsmithLock, apply_lock, check_lock_status, read_lock_info


class TestPoolsmithLock:
    """File-based locking."""

    def test_acquire_and_release(self, tmp_path):
        lock_file = tmp_path / "apply.lock"
        lock = PoolsmithLock(lock_file=lock_file)

        assert lock.acquire() is True
        assert lock.held
        assert lock_file.exists()

        lock.release()
        assert not lock.held
        assert not lock_file.exists()

    def test_concurrent_lock_fails(self, tmp_path):
        lock_file = tmp_path / "apply.lock"
        first = PoolsmithLock(lock_file=lock_file)
        first.acquire()

        second = PoolsmithLock(lock_file=lock_file, timeout=0)
        with pytest.raises(LockError) as exc_info:
            second.acquire()

        assert "Another poolsmith run is in progress" in str(exc_info.value)
        assert f"PID {os.getpid()}" in str(exc_info.value)

        first.release()

    def test_context_manager(self, tmp_path):
        lock_file = tmp_path / "apply.lock"

        with PoolsmithLock(lock_file=lock_file):
            assert lock_file.exists()

        assert not lock_file.exists()

    def test_release_twice(self, tmp_path):
        lock = PoolsmithLock(lock_file=tmp_path / "apply.lock")
        lock.acquire()

        lock.release()
        lock.release()


def test_apply_lock_releases_on_error(tmp_path):
    lock_file = tmp_path / "apply.lock"

    with pytest.raises(RuntimeError):
        with apply_lock(lock_file=lock_file):
            raise RuntimeError("boom")

    assert not lock_file.exists()


def test_check_lock_status(tmp_path):
    lock_file = tmp_path / "apply.lock"
    assert check_lock_status(lock_file) is None

    with apply_lock(lock_file=lock_file):
        info = check_lock_status(lock_file)
        assert info['pid'] == str(os.getpid())
        assert info['lock_file'] == str(lock_file)

    assert check_lock_status(lock_file) is None


def test_holder_command_is_recorded(tmp_path):
    lock_file = tmp_path / "apply.lock"

    with apply_lock(lock_file=lock_file, command="destroy"):
        with pytest.raises(LockError, match=r"\(destroy\)"):
            PoolsmithLock(lock_file=lock_file).acquire()


def test_unreadable_lock_info(tmp_path):
    lock_file = tmp_path / "apply.lock"
    lock_file.write_text("12345\n2024-01-01 00:00:00\n")

    assert read_lock_info(lock_file) == {'pid': 'unknown', 'command': 'unknown', 'time': 'unknown'}
