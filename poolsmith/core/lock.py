"""Run lock for commands that change pools.

The controller does not guard against two runs touching the same pool, so
`apply` and `destroy` take an exclusive flock on a shared lock file first.
The holder writes its PID, command and start time into the file.
"""
import fcntl
import json
import os
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Optional

from poolsmith.core.logger import get_logger

logger = get_logger(__name__)

DEFAULT_LOCK_FILE = Path("/var/run/poolsmith/apply.lock")
RETRY_INTERVAL = 0.5


class LockError(Exception):
    """Raised when another poolsmith run holds the lock."""
    pass


class PoolsmithLock:
    """Exclusive, non-blocking flock with an optional wait."""

    def __init__(self, lock_file: Optional[Path] = None, timeout: int = 0, command: str = "apply"):
        """
        Args:
            lock_file: Lock path (default: /var/run/poolsmith/apply.lock)
            timeout: Seconds to keep retrying (0 = fail at once)
            command: Recorded as the holder's command
        """
        self.lock_file = Path(lock_file) if lock_file else DEFAULT_LOCK_FILE
        self.timeout = timeout
        self.command = command
        self._handle = None

    @property
    def held(self) -> bool:
        return self._handle is not None

    def acquire(self) -> bool:
        """Take the lock.

        Raises:
            LockError: If another run still holds it when the timeout expires
        """
        self.lock_file.parent.mkdir(parents=True, exist_ok=True)
        handle = open(self.lock_file, 'a+')

        waited = 0.0
        while not _try_flock(handle):
            if waited >= self.timeout:
                handle.close()
                holder = read_lock_info(self.lock_file)
                raise LockError(
                    f"Another poolsmith run is in progress.\n"
                    f"Lock held by PID {holder['pid']} ({holder['command']}) since {holder['time']}\n"
                    f"Remove {self.lock_file} if that process is gone."
                )
            time.sleep(RETRY_INTERVAL)
            waited += RETRY_INTERVAL

        handle.seek(0)
        handle.truncate()
        json.dump({
            'pid': os.getpid(),
            'command': self.command,
            'time': time.strftime('%Y-%m-%d %H:%M:%S'),
        }, handle)
        handle.flush()
        self._handle = handle
        logger.debug(f"{self.command}: holding {self.lock_file}")
        return True

    def release(self):
        if self._handle is None:
            return
        handle, self._handle = self._handle, None

        # Unlink before dropping the flock
        try:
            self.lock_file.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove {self.lock_file}: {e}")

        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        finally:
            handle.close()
        logger.debug(f"{self.command}: released {self.lock_file}")

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False


def _try_flock(handle) -> bool:
    try:
        fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
    except BlockingIOError:
        return False
    return True


def read_lock_info(lock_file: Path) -> Dict[str, str]:
    """Holder details written by acquire(); 'unknown' fields if unreadable."""
    info = {'pid': 'unknown', 'command': 'unknown', 'time': 'unknown'}
    try:
        data = json.loads(Path(lock_file).read_text() or '{}')
    except (OSError, ValueError):
        return info
    if isinstance(data, dict):
        info.update({key: str(data[key]) for key in info if key in data})
    return info


@contextmanager
def apply_lock(timeout: int = 0, lock_file: Optional[Path] = None, command: str = "apply"):
    """Hold the run lock for the duration of a block.

    Raises:
        LockError: If another run holds the lock
    """
    lock = PoolsmithLock(lock_file=lock_file, timeout=timeout, command=command)
    lock.acquire()
    try:
        yield lock
    finally:
        lock.release()


def check_lock_status(lock_file: Optional[Path] = None) -> Optional[Dict[str, str]]:
    """Return holder details if a run holds the lock, None if it is free."""
    lock_path = Path(lock_file) if lock_file else DEFAULT_LOCK_FILE
    try:
        handle = open(lock_path)
    except FileNotFoundError:
        return None

    with handle:
        if _try_flock(handle):
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
            return None
    info = read_lock_info(lock_path)
    info['lock_file'] = str(lock_path)
    return info
