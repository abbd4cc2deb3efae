"""poolsmith - declarative ZFS pool lifecycle management."""

__version__ = "0.1.0"
