"""Logging for poolsmith: rich console output plus an optional log file.

All module loggers are children of the `poolsmith` logger, which owns the
handlers. Console output stays at INFO; the log file gets DEBUG records
when running verbose.
"""
import logging
import os
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "poolsmith"

console = Console(stderr=True)

LOG_FILE = Path("/var/log/poolsmith/poolsmith.log")
FALLBACK_LOG_FILE = Path("/tmp/poolsmith.log")

_file_handler: Optional[logging.FileHandler] = None


def _package_logger() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER)
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        handler = RichHandler(console=console, show_path=False, show_time=False)
        handler.setLevel(logging.INFO)
        handler.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(handler)
        root.setLevel(logging.INFO)
    return root


def _writable_log_file(requested: Optional[str]) -> Path:
    """Pick the log file, falling back to /tmp when its directory can't be made."""
    candidate = Path(requested or os.environ.get("POOLSMITH_LOG_FILE") or LOG_FILE)
    try:
        candidate.parent.mkdir(parents=True, exist_ok=True)
        return candidate
    except OSError:
        return FALLBACK_LOG_FILE


def setup_file_logging(log_file: Optional[str] = None, verbose: bool = False) -> Path:
    """Also write poolsmith logs to a file. Only the first call has an effect.

    Args:
        log_file: Log path (default: $POOLSMITH_LOG_FILE or /var/log/poolsmith/poolsmith.log)
        verbose: Record DEBUG messages (zpool/zfs command lines) in the file

    Returns:
        The file being written
    """
    global _file_handler

    root = _package_logger()
    if _file_handler is not None:
        return Path(_file_handler.baseFilename)

    target = _writable_log_file(log_file)
    _file_handler = logging.FileHandler(target)
    _file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    _file_handler.setFormatter(logging.Formatter(
        "%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    root.addHandler(_file_handler)
    if verbose:
        root.setLevel(logging.DEBUG)

    root.info(f"Logging to {target}")
    return target


def get_logger(name: str) -> logging.Logger:
    """Return a module logger under the `poolsmith` hierarchy."""
    _package_logger()
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)
