"""Configuration models for declared pools."""
from typing import Any, Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from poolsmith.models.pool import PropertyMode
from poolsmith.models.resource import PoolResource


class DeviceBlock(BaseModel):
    """A single device, by path."""

    model_config = ConfigDict(extra='forbid')

    path: str

    @field_validator('path')
    @classmethod
    def validate_path(cls, v):
        v = v.strip()
        if not v.startswith('/'):
            raise ValueError(f"Device path must be absolute, got '{v}'")
        return v


class MirrorBlock(BaseModel):
    """A mirrored vdev. Membership is fixed once the pool exists."""

    model_config = ConfigDict(extra='forbid')

    device: List[DeviceBlock] = Field(..., min_length=2)


class PropertyBlock(BaseModel):
    """A declared pool or root-dataset property."""

    model_config = ConfigDict(extra='forbid')

    name: str = Field(..., min_length=1)
    value: str

    @field_validator('value', mode='before')
    @classmethod
    def coerce_value(cls, v: Any) -> str:
        """YAML reads bare on/off as booleans; ZFS wants the words back."""
        if isinstance(v, bool):
            return 'on' if v else 'off'
        if isinstance(v, (int, float)):
            return str(v)
        return v


class PoolConfig(BaseModel):
    """One entry under `pools:` in poolsmith.yml."""

    model_config = ConfigDict(extra='forbid')

    name: str = Field(..., min_length=1)
    device: List[DeviceBlock] = Field(default_factory=list)
    mirror: List[MirrorBlock] = Field(default_factory=list)
    property: List[PropertyBlock] = Field(default_factory=list)
    property_mode: Literal["defined", "all"] = PropertyMode.DEFINED.value

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if not v[0].isalpha():
            raise ValueError(f"Pool name must start with a letter, got '{v}'")
        return v

    def to_resource(self) -> PoolResource:
        dumped: Dict[str, Any] = self.model_dump()
        return PoolResource(
            name=self.name,
            device=dumped['device'],
            mirror=dumped['mirror'],
            property=dumped['property'],
            property_mode=self.property_mode,
        )


class PoolsmithFile(BaseModel):
    """Top level of poolsmith.yml."""

    model_config = ConfigDict(extra='forbid')

    pools: Dict[str, PoolConfig] = Field(default_factory=dict)
