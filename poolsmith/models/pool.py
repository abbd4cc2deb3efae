"""ZFS pool models."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List

from poolsmith.models.errors import ConfigValidationError


class PropertySource(Enum):
    """Where an observed property value comes from."""
    LOCAL = "local"          # Explicitly set on this pool
    DEFAULT = "default"      # Subsystem default, never set
    INHERITED = "inherited"  # Derived from a parent setting
    TEMPORARY = "temporary"  # Session-scoped, not persisted

    @classmethod
    def from_zfs(cls, source: str) -> "PropertySource":
        """Map the SOURCE column of `zpool get`/`zfs get` to a provenance tag.

        `-` (read-only/computed) and `default` both mean the value was never
        set. `received` values are stored on the dataset itself and count as
        local.
        """
        source = (source or "").strip().lower()
        if source in ("local", "received"):
            return cls.LOCAL
        if source.startswith("inherited"):
            return cls.INHERITED
        if source == "temporary":
            return cls.TEMPORARY
        return cls.DEFAULT

    @property
    def is_explicit(self) -> bool:
        """True if someone set this value on the pool."""
        return self in (PropertySource.LOCAL, PropertySource.TEMPORARY)


class PropertyMode(Enum):
    """Which properties are owned and convergence-checked."""
    DEFINED = "defined"  # Only declared properties
    ALL = "all"          # Every discovered property is drift-checked

    @classmethod
    def parse(cls, value) -> "PropertyMode":
        """Parse a property_mode setting, rejecting unknown modes."""
        if isinstance(value, cls):
            return value
        if value is None or value == "":
            return cls.DEFINED
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ", ".join(m.value for m in cls)
            raise ConfigValidationError(f"Invalid property_mode '{value}' (expected one of: {valid})")


@dataclass(frozen=True)
class Device:
    """A single leaf device, identified by its path."""
    path: str


@dataclass(frozen=True)
class Mirror:
    """A mirrored top-level vdev of two or more devices."""
    devices: tuple = ()

    def __post_init__(self):
        # Accept any iterable of devices but store a tuple
        object.__setattr__(self, "devices", tuple(self.devices))


@dataclass(frozen=True)
class PoolLayout:
    """Pool topology: striped devices plus mirrored groups."""
    striped: tuple = ()
    mirrors: tuple = ()

    def __post_init__(self):
        object.__setattr__(self, "striped", tuple(self.striped))
        object.__setattr__(self, "mirrors", tuple(self.mirrors))

    @property
    def is_empty(self) -> bool:
        return not self.striped and not self.mirrors

    def all_devices(self) -> List[Device]:
        """Every leaf device in layout order."""
        devices = list(self.striped)
        for mirror in self.mirrors:
            devices.extend(mirror.devices)
        return devices


@dataclass(frozen=True)
class Property:
    """An observed property value with its provenance."""
    value: str       # Display value, e.g. "1T"
    raw_value: str   # Canonical value, e.g. "1099511627776"
    source: PropertySource = PropertySource.DEFAULT

    def matches(self, declared: str) -> bool:
        """True if a declared value equals either spelling of this value."""
        return str(declared) in (self.value, self.raw_value)


@dataclass
class Pool:
    """An observed ZFS pool."""
    guid: str = ""
    name: str = ""
    layout: PoolLayout = field(default_factory=PoolLayout)
    properties: Dict[str, Property] = field(default_factory=dict)


@dataclass
class CreationSpec:
    """Everything the subsystem needs to create a pool."""
    name: str
    topology: str
    properties: Dict[str, str] = field(default_factory=dict)
