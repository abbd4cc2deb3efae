"""poolsmith runtime configuration and settings."""
import os
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class PoolsmithConfig:
    """Runtime configuration handed to every zpool/zfs operation.

    Attributes:
        zpool_bin: zpool executable (default: zpool)
        zfs_bin: zfs executable (default: zfs)
        use_sudo: Prefix commands with sudo (default: False)
        state_file: Where resource state is persisted
        lock_file: Lock held while applying
    """

    zpool_bin: str = "zpool"
    zfs_bin: str = "zfs"
    use_sudo: bool = False
    state_file: str = ".poolsmith/state.json"
    lock_file: str = "/var/run/poolsmith/apply.lock"

    def zpool(self, *args: str) -> List[str]:
        """Build a zpool command line."""
        return self._prefix() + [self.zpool_bin, *args]

    def zfs(self, *args: str) -> List[str]:
        """Build a zfs command line."""
        return self._prefix() + [self.zfs_bin, *args]

    def _prefix(self) -> List[str]:
        return ["sudo", "-n"] if self.use_sudo else []

    @classmethod
    def from_env(cls) -> "PoolsmithConfig":
        """Create config from environment variables.

        Environment variables:
            POOLSMITH_ZPOOL_BIN: zpool executable
            POOLSMITH_ZFS_BIN: zfs executable
            POOLSMITH_SUDO: Run commands through sudo (1/true)
            POOLSMITH_STATE_FILE: State file path
            POOLSMITH_LOCK_FILE: Apply lock path
        """
        return cls(
            zpool_bin=os.getenv("POOLSMITH_ZPOOL_BIN", cls.zpool_bin),
            zfs_bin=os.getenv("POOLSMITH_ZFS_BIN", cls.zfs_bin),
            use_sudo=os.getenv("POOLSMITH_SUDO", "").lower() in ("1", "true"),
            state_file=os.getenv("POOLSMITH_STATE_FILE", cls.state_file),
            lock_file=os.getenv("POOLSMITH_LOCK_FILE", cls.lock_file),
        )


# Global config instance (can be overridden)
_config: Optional[PoolsmithConfig] = None


def get_config() -> PoolsmithConfig:
    """Get the global configuration (created from environment if not set)."""
    global _config
    if _config is None:
        _config = PoolsmithConfig.from_env()
    return _config


def set_config(config: Optional[PoolsmithConfig]):
    """Set the global configuration; None resets to environment defaults."""
    global _config
    _config = config
