"""Abstract interface to the storage subsystem."""
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Tuple

from poolsmith.core.config import PoolsmithConfig
from poolsmith.models.pool import CreationSpec, Pool


class CommandLayer(ABC):
    """Operations the pool controller needs from the storage subsystem.

    Every method takes the runtime config as its context. Failures raise
    CommandError; a pool that does not exist raises PoolNotFoundError.
    """

    def __init__(self, mock: bool = False):
        self.mock = mock

    @abstractmethod
    def describe(
        self,
        ctx: PoolsmithConfig,
        name: str,
        property_names: Optional[Iterable[str]] = None,
    ) -> Pool:
        """Observe a pool's identity, layout and properties.

        Args:
            ctx: Runtime config
            name: Pool name
            property_names: Properties to fetch; None fetches all pool properties
        """
        pass

    @abstractmethod
    def create(self, ctx: PoolsmithConfig, spec: CreationSpec) -> Pool:
        """Create a pool and return its observed state."""
        pass

    @abstractmethod
    def destroy(self, ctx: PoolsmithConfig, name: str) -> None:
        pass

    @abstractmethod
    def rename(self, ctx: PoolsmithConfig, old_name: str, new_name: str) -> None:
        pass

    @abstractmethod
    def resolve_name(self, ctx: PoolsmithConfig, guid: str) -> str:
        """Return the current name of the pool carrying `guid`."""
        pass

    @abstractmethod
    def set_property(self, ctx: PoolsmithConfig, name: str, prop: str, value: str) -> None:
        pass

    @abstractmethod
    def reset_property(self, ctx: PoolsmithConfig, name: str, prop: str) -> None:
        """Put a property back to its default value."""
        pass

    @abstractmethod
    def list_pools(self, ctx: PoolsmithConfig) -> List[Tuple[str, str]]:
        """Return (name, guid) for every imported pool."""
        pass
