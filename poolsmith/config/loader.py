"""YAML configuration loader for declared pools."""
from pathlib import Path
from typing import Dict, Optional

import yaml
from pydantic import ValidationError

from poolsmith.config.schema import PoolConfig, PoolsmithFile
from poolsmith.core.properties import parse_property_blocks
from poolsmith.core.topology import layout_from_blocks
from poolsmith.models.errors import ConfigValidationError, PropertyConflictError, TopologyError
from poolsmith.models.resource import PoolResource


class ConfigLoader:
    """Loads and validates poolsmith.yml."""

    def __init__(self, config_path: str = "poolsmith.yml"):
        self.config_path = Path(config_path)
        self.raw_config = None
        self.pools: Optional[Dict[str, PoolConfig]] = None

    def load(self) -> Dict[str, PoolConfig]:
        """Load and validate the configuration file.

        Raises:
            FileNotFoundError: If the file does not exist
            ConfigValidationError: If the file is empty or invalid
        """
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        with open(self.config_path) as f:
            try:
                self.raw_config = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigValidationError(f"Invalid YAML in {self.config_path}: {e}")

        if not self.raw_config:
            raise ConfigValidationError("Config file is empty. Declare at least one pool under 'pools:'.")

        self.pools = self.parse(self.raw_config)
        return self.pools

    @staticmethod
    def parse(raw: dict) -> Dict[str, PoolConfig]:
        """Validate a parsed configuration mapping."""
        try:
            parsed = PoolsmithFile.model_validate(raw)
        except ValidationError as e:
            raise ConfigValidationError(f"Configuration validation failed:\n{e}")

        errors = []
        names: Dict[str, str] = {}
        devices: Dict[str, str] = {}

        for address, pool in parsed.pools.items():
            resource = pool.to_resource()

            if pool.name in names:
                errors.append(
                    f"Pool '{address}': name '{pool.name}' already used by '{names[pool.name]}'"
                )
            names[pool.name] = address

            try:
                layout = layout_from_blocks(resource.device, resource.mirror, require_devices=True)
            except TopologyError as e:
                errors.append(f"Pool '{address}': {e}")
                layout = None

            try:
                parse_property_blocks(resource.property)
            except PropertyConflictError as e:
                errors.append(f"Pool '{address}': {e}")

            for device in layout.all_devices() if layout else []:
                if device.path in devices:
                    errors.append(
                        f"Pool '{address}': device {device.path} already used by '{devices[device.path]}'"
                    )
                devices[device.path] = address

        if errors:
            raise ConfigValidationError("Configuration validation failed:\n  " + "\n  ".join(errors))

        return parsed.pools

    def get_pools(self) -> Dict[str, PoolConfig]:
        if self.pools is None:
            self.load()
        return self.pools

    def get_resources(self) -> Dict[str, PoolResource]:
        """Declared pools as resources, keyed by address."""
        return {address: pool.to_resource() for address, pool in self.get_pools().items()}
