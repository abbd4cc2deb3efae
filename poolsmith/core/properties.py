"""Property reconciliation: declared vs. observed pool properties."""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from poolsmith.core.logger import get_logger
from poolsmith.core.topology import flatten_layout
from poolsmith.models.errors import PropertyConflictError
from poolsmith.models.pool import Pool, Property
from poolsmith.models.resource import PoolResource

logger = get_logger(__name__)

# Computed by the subsystem, never settable
READONLY_PROPERTIES = frozenset({
    'allocated', 'bcloneratio', 'bclonesaved', 'bcloneused', 'capacity',
    'checkpoint', 'dedup_table_size', 'dedupcached', 'dedupratio',
    'expandsize', 'fragmentation', 'free', 'freeing', 'guid', 'health',
    'last_scrubbed_txg', 'leaked', 'load_guid', 'name', 'size',
})

# Settable pool-level properties and the value that restores the default
POOL_PROPERTY_DEFAULTS = {
    'autoexpand': 'off',
    'autoreplace': 'off',
    'autotrim': 'off',
    'bootfs': '',
    'cachefile': '',
    'comment': '',
    'compatibility': 'off',
    'delegation': 'on',
    'failmode': 'wait',
    'listsnapshots': 'off',
    'multihost': 'off',
}

# Pool-level properties that can only be given at create/import time
CREATE_ONLY_PROPERTIES = frozenset({'altroot', 'ashift', 'readonly', 'version'})

POOL_PROPERTIES = (
    READONLY_PROPERTIES | CREATE_ONLY_PROPERTIES | frozenset(POOL_PROPERTY_DEFAULTS)
)


def is_pool_property(name: str) -> bool:
    """True if `name` lives on the pool rather than its root dataset.

    User properties (`module:name`) and `feature@` flags are pool properties.
    """
    return name in POOL_PROPERTIES or name.startswith('feature@') or ':' in name


def is_resettable(name: str) -> bool:
    """True if a property can be put back to its default."""
    return name not in READONLY_PROPERTIES and name not in CREATE_ONLY_PROPERTIES


def property_names(blocks: Iterable[Mapping[str, Any]]) -> Set[str]:
    """Names declared in a set of `{name, value}` property blocks."""
    return {str(block['name']) for block in blocks or () if block.get('name')}


def parse_property_blocks(blocks: Iterable[Mapping[str, Any]]) -> Dict[str, str]:
    """Turn `{name, value}` blocks into a name -> value mapping.

    Raises:
        PropertyConflictError: If a name is declared twice
    """
    result: Dict[str, str] = {}
    for block in blocks or ():
        name = str(block.get('name', ''))
        if name in result:
            raise PropertyConflictError(name)
        value = block.get('value', '')
        result[name] = '' if value is None else str(value)
    return result


def property_blocks(mapping: Mapping[str, str]) -> List[Dict[str, str]]:
    """Inverse of parse_property_blocks, sorted by name."""
    return [{'name': name, 'value': mapping[name]} for name in sorted(mapping)]


@dataclass
class PropertyDiff:
    """Operations needed to move from one declared property set to another."""

    to_set: Dict[str, str] = field(default_factory=dict)
    to_reset: List[str] = field(default_factory=list)
    unchanged: Dict[str, str] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.to_set and not self.to_reset


def diff_properties(
    old: Mapping[str, str],
    new: Mapping[str, str],
    observed: Optional[Mapping[str, Property]] = None,
) -> PropertyDiff:
    """Compare the previously and newly declared properties.

    Properties in `new` that are missing from `old` or changed are set.
    Properties dropped from the declaration are reset, unless they are
    read-only/create-only, or `observed` shows they are no longer explicitly
    set. Names outside both mappings are never touched.
    """
    diff = PropertyDiff()

    for name, value in new.items():
        if name in old and old[name] == value:
            diff.unchanged[name] = value
        else:
            diff.to_set[name] = value

    for name in old:
        if name in new:
            continue
        if not is_resettable(name):
            logger.debug(f"Not resetting read-only property {name}")
            continue
        if observed is not None:
            current = observed.get(name)
            if current is not None and not current.source.is_explicit:
                logger.debug(f"Property {name} already at {current.source.value} value")
                continue
        diff.to_reset.append(name)

    diff.to_reset.sort()
    return diff


def refresh_declared(blocks: Iterable[Mapping[str, Any]], pool: Pool) -> List[Dict[str, str]]:
    """Re-express declared property blocks in terms of what was observed.

    A declared value that matches the observed display or raw value keeps its
    declared spelling; a mismatch takes the observed display value; a
    declared property that was not observed is dropped. The next update then
    converges whatever drifted.
    """
    refreshed: Dict[str, str] = {}
    for name, value in parse_property_blocks(blocks).items():
        observed = pool.properties.get(name)
        if observed is None:
            logger.debug(f"Declared property {name} not reported for {pool.name}")
            continue
        refreshed[name] = value if observed.matches(value) else observed.value
    return property_blocks(refreshed)


def populate_resource(resource: PoolResource, pool: Pool) -> PoolResource:
    """Copy an observed pool into the resource's outward-facing fields.

    `properties` and `raw_properties` cover every observed property, not only
    declared ones. Works on empty pools.
    """
    resource.id = pool.guid
    if pool.name:
        resource.name = pool.name
    resource.properties = {name: prop.value for name, prop in pool.properties.items()}
    resource.raw_properties = {name: prop.raw_value for name, prop in pool.properties.items()}
    resource.device, resource.mirror = flatten_layout(pool.layout)
    return resource
