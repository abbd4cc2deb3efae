"""Host-facing pool resource shape."""
import builtins
from dataclasses import dataclass, field
from typing import Any, Dict, List

from poolsmith.models.pool import PropertyMode


@dataclass
class PoolResource:
    """The declarative surface of one managed pool.

    Mirrors the configuration file: `device`, `mirror` and `property` hold
    plain dict blocks, `properties`/`raw_properties` are computed from the
    last observation. An empty `id` means the pool is absent.
    """
    name: str
    id: str = ""
    device: List[Dict[str, str]] = field(default_factory=list)
    mirror: List[Dict[str, Any]] = field(default_factory=list)
    property: List[Dict[str, str]] = field(default_factory=list)
    property_mode: str = PropertyMode.DEFINED.value

    # Computed
    properties: Dict[str, str] = field(default_factory=dict)
    raw_properties: Dict[str, str] = field(default_factory=dict)

    # `property` is shadowed by the field of the same name
    @builtins.property
    def exists(self) -> bool:
        return bool(self.id)

    @builtins.property
    def mode(self) -> PropertyMode:
        return PropertyMode.parse(self.property_mode)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'device': [dict(d) for d in self.device],
            'mirror': [{'device': [dict(d) for d in m.get('device', [])]} for m in self.mirror],
            'property': [dict(p) for p in self.property],
            'property_mode': self.property_mode,
            'properties': dict(self.properties),
            'raw_properties': dict(self.raw_properties),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PoolResource":
        return cls(
            name=data.get('name', ''),
            id=data.get('id', '') or '',
            device=[dict(d) for d in data.get('device') or []],
            mirror=[
                {'device': [dict(d) for d in m.get('device') or []]}
                for m in data.get('mirror') or []
            ],
            property=[dict(p) for p in data.get('property') or []],
            property_mode=data.get('property_mode') or PropertyMode.DEFINED.value,
            properties=dict(data.get('properties') or {}),
            raw_properties=dict(data.get('raw_properties') or {}),
        )
