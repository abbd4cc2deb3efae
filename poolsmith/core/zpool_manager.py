"""ZFS pool management through the zpool and zfs commands."""
import os
import re
import secrets
import subprocess
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Tuple

from poolsmith.core.command_layer import CommandLayer
from poolsmith.core.config import PoolsmithConfig
from poolsmith.core.logger import get_logger
from poolsmith.core.properties import POOL_PROPERTY_DEFAULTS, is_pool_property
from poolsmith.core.status_parser import parse_layout
from poolsmith.core.topology import parse_topology
from poolsmith.models.errors import CommandError, PoolNotFoundError, TopologyError
from poolsmith.models.pool import CreationSpec, Pool, Property, PropertySource

logger = get_logger(__name__)

NOT_FOUND_RE = re.compile(r"no such pool|pool .* does not exist", re.IGNORECASE)


class ZpoolCommandLayer(CommandLayer):
    """Runs zpool/zfs commands, or simulates them in mock mode."""

    def __init__(self, mock: bool = False):
        super().__init__(mock=mock or os.environ.get('POOLSMITH_MOCK', '').lower() in ('1', 'true'))
        self._mock_pools: Dict[str, Pool] = {}  # Pools "created" in mock mode

    # ----------------------------
    # Queries
    # ----------------------------

    def describe(
        self,
        ctx: PoolsmithConfig,
        name: str,
        property_names: Optional[Iterable[str]] = None,
    ) -> Pool:
        """Observe pool guid, layout and properties.

        Pool-level properties come from `zpool get`, anything else is read
        from the pool's root dataset with `zfs get`. Each is queried twice,
        once for display values and once with -p for raw values. With no
        names, both `zpool get all` and `zfs get all` are read; a name the
        two share (e.g. guid) keeps its pool value.
        """
        wanted = None if property_names is None else sorted(set(property_names))
        if self.mock:
            return self._mock_describe(name, wanted)

        if wanted is None:
            pool_props, dataset_props = ['all'], ['all']
        else:
            pool_props = [p for p in wanted if is_pool_property(p) and p != 'guid'] + ['guid']
            dataset_props = [p for p in wanted if not is_pool_property(p)]

        properties = self._get_properties(
            ctx, 'describe', name, lambda *flags: ctx.zpool('get', *flags), pool_props
        )
        if dataset_props:
            dataset = self._get_properties(
                ctx, 'describe', name, lambda *flags: ctx.zfs('get', *flags), dataset_props
            )
            for prop, value in dataset.items():
                properties.setdefault(prop, value)

        guid = properties['guid'].raw_value if 'guid' in properties else ''
        if wanted is not None and 'guid' not in wanted:
            properties.pop('guid', None)

        status = self._run('describe', name, ctx.zpool('status', '-P', name))
        layout = parse_layout(status, name)

        return Pool(guid=guid, name=name, layout=layout, properties=properties)

    def _get_properties(self, ctx, operation, name, build, props) -> Dict[str, Property]:
        if not props:
            return {}
        prop_list = ','.join(props)
        fields = ['-H', '-o', 'property,value,source']
        display = self._run(operation, name, build(*fields, prop_list, name))
        raw = self._run(operation, name, build(*fields, '-p', prop_list, name))

        raw_values = {prop: value for prop, value, _ in _parse_get_output(raw)}
        properties: Dict[str, Property] = {}
        for prop, value, source in _parse_get_output(display):
            properties[prop] = Property(
                value=value,
                raw_value=raw_values.get(prop, value),
                source=PropertySource.from_zfs(source),
            )
        return properties

    def list_pools(self, ctx: PoolsmithConfig) -> List[Tuple[str, str]]:
        if self.mock:
            return [(name, pool.guid) for name, pool in sorted(self._mock_pools.items())]

        output = self._run('list', '-', ctx.zpool('list', '-H', '-o', 'name,guid'))
        pools = []
        for line in output.strip().split('\n'):
            parts = line.split('\t')
            if len(parts) >= 2:
                pools.append((parts[0], parts[1]))
        return pools

    def resolve_name(self, ctx: PoolsmithConfig, guid: str) -> str:
        for name, pool_guid in self.list_pools(ctx):
            if pool_guid == guid:
                return name
        raise PoolNotFoundError('resolve', guid, f"no pool with guid {guid}")

    # ----------------------------
    # Mutations
    # ----------------------------

    def create(self, ctx: PoolsmithConfig, spec: CreationSpec) -> Pool:
        tokens = spec.topology.split()
        if not tokens:
            raise TopologyError(f"Cannot create pool {spec.name} without devices")

        if self.mock:
            return self._mock_create(spec)

        cmd = ctx.zpool('create')
        for key in sorted(spec.properties):
            flag = '-o' if is_pool_property(key) else '-O'
            cmd.extend([flag, f"{key}={spec.properties[key]}"])
        cmd.append(spec.name)
        cmd.extend(tokens)

        logger.info(f"Creating pool {spec.name}: {' '.join(cmd)}")
        self._run('create', spec.name, cmd)
        try:
            return self.describe(ctx, spec.name, spec.properties.keys())
        except CommandError as e:
            logger.warning(f"Created pool {spec.name} but could not describe it: {e.message}")
        return self._created_pool(ctx, spec)

    def _created_pool(self, ctx: PoolsmithConfig, spec: CreationSpec) -> Pool:
        """Identify a just-created pool from `zpool list` and its creation spec."""
        guid = next((g for n, g in self.list_pools(ctx) if n == spec.name), None)
        if guid is None:
            raise CommandError('create', spec.name, "pool was created but is not listed")
        properties = {
            prop: Property(value, value, PropertySource.LOCAL)
            for prop, value in spec.properties.items()
        }
        return Pool(guid=guid, name=spec.name, layout=parse_topology(spec.topology), properties=properties)

    def destroy(self, ctx: PoolsmithConfig, name: str) -> None:
        if self.mock:
            if name not in self._mock_pools:
                raise PoolNotFoundError('destroy', name)
            logger.info(f"MOCK: Would destroy pool {name}")
            del self._mock_pools[name]
            return

        logger.info(f"Destroying pool {name}")
        self._run('destroy', name, ctx.zpool('destroy', name))

    def rename(self, ctx: PoolsmithConfig, old_name: str, new_name: str) -> None:
        """Rename a pool by exporting it and importing it under the new name."""
        if self.mock:
            self._mock_rename(old_name, new_name)
            return

        logger.info(f"Renaming pool {old_name} -> {new_name}")
        self._run('rename', old_name, ctx.zpool('export', old_name))
        try:
            self._run('rename', old_name, ctx.zpool('import', old_name, new_name))
        except CommandError as e:
            logger.error(f"Import as {new_name} failed, re-importing {old_name}")
            try:
                self._run('rename', old_name, ctx.zpool('import', old_name))
            except CommandError as reimport:
                raise CommandError(
                    'rename', old_name,
                    f"{e.message}; re-import as {old_name} also failed: {reimport.message}",
                ) from e
            raise

    def set_property(self, ctx: PoolsmithConfig, name: str, prop: str, value: str) -> None:
        if self.mock:
            self._mock_set(name, prop, Property(value, value, PropertySource.LOCAL))
            return

        build = ctx.zpool if is_pool_property(prop) else ctx.zfs
        logger.info(f"Set {name} property {prop}={value}")
        self._run('set', name, build('set', f"{prop}={value}", name))

    def reset_property(self, ctx: PoolsmithConfig, name: str, prop: str) -> None:
        """Put a property back to its default.

        Dataset properties are inherited; pool properties are set to their
        documented default; user properties are cleared.
        """
        if is_pool_property(prop):
            if ':' in prop:
                default = ''
            elif prop in POOL_PROPERTY_DEFAULTS:
                default = POOL_PROPERTY_DEFAULTS[prop]
            else:
                raise CommandError('reset', name, f"no known default for pool property '{prop}'")

            if self.mock:
                self._mock_set(name, prop, Property(default, default, PropertySource.DEFAULT))
                return
            logger.info(f"Reset {name} property {prop} to '{default}'")
            self._run('reset', name, ctx.zpool('set', f"{prop}={default}", name))
            return

        if self.mock:
            self._mock_set(name, prop, None)
            return
        logger.info(f"Reset {name} property {prop} (inherit)")
        self._run('reset', name, ctx.zfs('inherit', prop, name))

    # ----------------------------
    # Helpers
    # ----------------------------

    @staticmethod
    def _run(operation: str, target: str, cmd: List[str]) -> str:
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=True)
        except FileNotFoundError as e:
            raise CommandError(operation, target, f"command not found: {e}")
        except subprocess.CalledProcessError as e:
            message = (e.stderr or e.stdout or str(e)).strip()
            if NOT_FOUND_RE.search(message):
                raise PoolNotFoundError(operation, target, message)
            logger.error(f"{operation} {target} failed: {message}")
            raise CommandError(operation, target, message)
        return result.stdout

    def seed_mock_pool(self, pool: Pool) -> None:
        """Make a pool known to mock mode (e.g. one recorded by an earlier run)."""
        if not self.mock:
            raise RuntimeError("seed_mock_pool is only available in mock mode")
        properties = dict(pool.properties)
        properties.setdefault('guid', Property(pool.guid, pool.guid, PropertySource.DEFAULT))
        self._mock_pools[pool.name] = replace(pool, properties=properties)

    def _mock_describe(self, name: str, wanted: Optional[List[str]]) -> Pool:
        pool = self._mock_pools.get(name)
        if pool is None:
            raise PoolNotFoundError('describe', name)
        if wanted is None:
            properties = dict(pool.properties)
        else:
            properties = {p: pool.properties[p] for p in wanted if p in pool.properties}
        return replace(pool, properties=properties)

    def _mock_create(self, spec: CreationSpec) -> Pool:
        if spec.name in self._mock_pools:
            raise CommandError('create', spec.name, f"pool '{spec.name}' already exists")

        guid = str(secrets.randbits(64))
        properties = {
            prop: Property(default, default, PropertySource.DEFAULT)
            for prop, default in POOL_PROPERTY_DEFAULTS.items()
        }
        properties['guid'] = Property(guid, guid, PropertySource.DEFAULT)
        properties['health'] = Property('ONLINE', 'ONLINE', PropertySource.DEFAULT)
        for prop, value in spec.properties.items():
            properties[prop] = Property(value, value, PropertySource.LOCAL)

        logger.info(f"MOCK: Would create pool {spec.name}: {spec.topology}")
        self._mock_pools[spec.name] = Pool(
            guid=guid,
            name=spec.name,
            layout=parse_topology(spec.topology),
            properties=properties,
        )
        return self._mock_describe(spec.name, list(spec.properties))

    def _mock_rename(self, old_name: str, new_name: str) -> None:
        if old_name not in self._mock_pools:
            raise PoolNotFoundError('rename', old_name)
        if new_name in self._mock_pools:
            raise CommandError('rename', old_name, f"pool '{new_name}' already exists")
        logger.info(f"MOCK: Would rename pool {old_name} -> {new_name}")
        pool = self._mock_pools.pop(old_name)
        self._mock_pools[new_name] = replace(pool, name=new_name)

    def _mock_set(self, name: str, prop: str, value: Optional[Property]) -> None:
        pool = self._mock_pools.get(name)
        if pool is None:
            raise PoolNotFoundError('set', name)
        if value is None:
            logger.info(f"MOCK: Would reset {name} property {prop}")
            pool.properties.pop(prop, None)
        else:
            logger.info(f"MOCK: Would set {name} property {prop}={value.value}")
            pool.properties[prop] = value


def _parse_get_output(output: str) -> List[Tuple[str, str, str]]:
    """Parse `-H -o property,value,source` rows."""
    rows = []
    for line in (output or '').strip().split('\n'):
        if not line:
            continue
        parts = line.split('\t')
        if len(parts) < 3:
            continue
        rows.append((parts[0], parts[1], parts[2]))
    return rows
