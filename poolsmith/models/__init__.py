"""Data models for poolsmith."""
from poolsmith.models.errors import (
    CommandError,
    ConfigValidationError,
    MutationFailure,
    PoolCreationError,
    PoolDestructionError,
    PoolError,
    PoolMutationError,
    PoolNotFoundError,
    PropertyConflictError,
    TopologyError,
)
from poolsmith.models.pool import (
    CreationSpec,
    Device,
    Mirror,
    Pool,
    PoolLayout,
    Property,
    PropertyMode,
    PropertySource,
)
from poolsmith.models.resource import PoolResource

__all__ = [
    'CommandError',
    'ConfigValidationError',
    'CreationSpec',
    'Device',
    'Mirror',
    'MutationFailure',
    'Pool',
    'PoolCreationError',
    'PoolDestructionError',
    'PoolError',
    'PoolLayout',
    'PoolMutationError',
    'PoolNotFoundError',
    'PoolResource',
    'Property',
    'PropertyConflictError',
    'PropertyMode',
    'PropertySource',
    'TopologyError',
]
