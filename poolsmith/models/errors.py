"""Errors raised while reconciling pools."""
from dataclasses import dataclass
from typing import List, Optional


class PoolError(Exception):
    """Base class for all pool errors."""
    pass


class ConfigValidationError(PoolError):
    """Raised when the declarative configuration is invalid."""
    pass


class TopologyError(PoolError):
    """Raised for a malformed or empty pool layout."""
    pass


class PropertyConflictError(PoolError):
    """Raised when a property name is declared more than once."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Property '{name}' is declared more than once")


class CommandError(PoolError):
    """A zpool/zfs command failed.

    Carries the operation, the pool name or identifier it targeted, and the
    subsystem's message.
    """

    def __init__(self, operation: str, target: str, message: str):
        self.operation = operation
        self.target = target
        self.message = (message or "").strip()
        super().__init__(f"{operation} {target}: {self.message}")


class PoolNotFoundError(CommandError):
    """No pool carries the requested name or identifier."""

    def __init__(self, operation: str, target: str, message: Optional[str] = None):
        super().__init__(operation, target, message or f"no such pool '{target}'")


class PoolCreationError(PoolError):
    """Raised when a pool cannot be created."""
    pass


class PoolDestructionError(PoolError):
    """Raised when a pool cannot be destroyed."""
    pass


@dataclass
class MutationFailure:
    """One failed rename or property operation."""
    operation: str   # "rename", "set" or "reset"
    target: str      # New name or property name
    message: str

    def __str__(self) -> str:
        return f"{self.operation} {self.target}: {self.message}"


class PoolMutationError(PoolError):
    """Raised when one or more update operations failed.

    Every attempted operation is reported, not just the first failure.
    """

    def __init__(self, pool: str, failures: List[MutationFailure]):
        self.pool = pool
        self.failures = list(failures)
        lines = "\n  ".join(str(f) for f in self.failures)
        super().__init__(
            f"Failed to update pool '{pool}' ({len(self.failures)} operation(s) failed):\n  {lines}"
        )
