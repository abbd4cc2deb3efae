"""Recorded state of managed pools, keyed by configuration address."""
import json
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from poolsmith.core.logger import get_logger
from poolsmith.models.resource import PoolResource

logger = get_logger(__name__)

STATE_VERSION = 1


class StateStore:
    """JSON file mapping each address in poolsmith.yml to its pool.

    An entry holds the pool guid, its name, the declared properties and mode
    of the last successful run and the observed layout/properties. The guid
    is what finds a pool again after a rename.

    Set POOLSMITH_STATELESS to keep state in memory only.
    """

    def __init__(self, state_file: Optional[Path] = None):
        self.state_file = Path(state_file) if state_file else Path.cwd() / ".poolsmith" / "state.json"
        self.enabled = not os.environ.get('POOLSMITH_STATELESS')
        self.pools: Dict[str, dict] = self._read()

    def _read(self) -> Dict[str, dict]:
        try:
            with open(self.state_file) as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable state file {self.state_file}: {e}")
            return {}

        if not isinstance(data, dict) or not isinstance(data.get('pools'), dict):
            logger.warning(f"Ignoring malformed state file {self.state_file}")
            return {}
        if data.get('version', STATE_VERSION) != STATE_VERSION:
            logger.warning(f"State file version {data.get('version')} != {STATE_VERSION}, reading anyway")
        return data['pools']

    def save(self) -> bool:
        """Write the state file atomically. Returns False if nothing was written."""
        if not self.enabled:
            return False

        payload = {
            'version': STATE_VERSION,
            'updated_at': datetime.now().isoformat(timespec='seconds'),
            'pools': self.pools,
        }
        try:
            self.state_file.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.state_file.parent, prefix='.state-', suffix='.json')
            with os.fdopen(fd, 'w') as f:
                json.dump(payload, f, indent=2, sort_keys=True)
            os.replace(tmp_name, self.state_file)
        except OSError as e:
            logger.error(f"Could not write state file {self.state_file}: {e}")
            return False
        return True

    def get_pool(self, address: str) -> Optional[PoolResource]:
        entry = self.pools.get(address)
        return PoolResource.from_dict(entry) if entry is not None else None

    def set_pool(self, address: str, resource: PoolResource) -> None:
        """Record a resource. An absent resource (no guid) is forgotten instead."""
        if not resource.exists:
            self.remove_pool(address)
            return
        self.pools[address] = resource.to_dict()
        self.save()

    def remove_pool(self, address: str) -> None:
        if self.pools.pop(address, None) is not None:
            logger.info(f"Forgot {address}")
            self.save()

    def get_addresses(self) -> List[str]:
        return sorted(self.pools)

    def find_by_guid(self, guid: str) -> Optional[str]:
        """Address already tracking the pool with this guid."""
        return next((address for address, entry in self.pools.items() if entry.get('id') == guid), None)

    def get_all(self) -> Dict[str, PoolResource]:
        return {address: self.get_pool(address) for address in self.get_addresses()}
