"""Shared test fixtures for poolsmith tests."""
from dataclasses import replace

import pytest

from poolsmith.core.command_layer import CommandLayer
from poolsmith.core.config import PoolsmithConfig, set_config
from poolsmith.core.controller import PoolController
from poolsmith.core.topology import parse_topology
from poolsmith.models.errors import CommandError, PoolNotFoundError
from poolsmith.models.pool import Device, Mirror, Pool, PoolLayout, Property, PropertySource
from poolsmith.models.resource import PoolResource


class FakeCommandLayer(CommandLayer):
    """In-memory command layer that records every call.

    `failures` maps (operation, target) to an error message; a matching call
    raises CommandError instead of doing anything.
    """

    def __init__(self):
        super().__init__(mock=True)
        self.pools = {}
        self.calls = []
        self.failures = {}
        self._next_guid = 1000

    def add_pool(self, name, layout=None, properties=None, guid=None):
        guid = guid or str(self._next_guid)
        self._next_guid += 1
        props = {'guid': Property(guid, guid, PropertySource.DEFAULT)}
        props.update(properties or {})
        self.pools[name] = Pool(guid=guid, name=name, layout=layout or PoolLayout(), properties=props)
        return self.pools[name]

    def _check(self, operation, target):
        if (operation, target) in self.failures:
            raise CommandError(operation, target, self.failures[(operation, target)])

    def _pool(self, operation, name):
        if name not in self.pools:
            raise PoolNotFoundError(operation, name)
        return self.pools[name]

    def describe(self, ctx, name, property_names=None):
        self.calls.append(('describe', name, None if property_names is None else sorted(property_names)))
        pool = self._pool('describe', name)
        if property_names is None:
            return replace(pool, properties=dict(pool.properties))
        return replace(pool, properties={
            p: pool.properties[p] for p in property_names if p in pool.properties
        })

    def create(self, ctx, spec):
        self.calls.append(('create', spec.name, spec.topology, dict(spec.properties)))
        self._check('create', spec.name)
        if spec.name in self.pools:
            raise CommandError('create', spec.name, f"pool '{spec.name}' already exists")
        props = {k: Property(v, v, PropertySource.LOCAL) for k, v in spec.properties.items()}
        self.add_pool(spec.name, layout=parse_topology(spec.topology), properties=props)
        return self.describe(ctx, spec.name, list(spec.properties))

    def destroy(self, ctx, name):
        self.calls.append(('destroy', name))
        self._check('destroy', name)
        self._pool('destroy', name)
        del self.pools[name]

    def rename(self, ctx, old_name, new_name):
        self.calls.append(('rename', old_name, new_name))
        self._check('rename', new_name)
        pool = self.pools.pop(self._pool('rename', old_name).name)
        self.pools[new_name] = replace(pool, name=new_name)

    def resolve_name(self, ctx, guid):
        self.calls.append(('resolve', guid))
        self._check('resolve', guid)
        for name, pool in self.pools.items():
            if pool.guid == guid:
                return name
        raise PoolNotFoundError('resolve', guid)

    def set_property(self, ctx, name, prop, value):
        self.calls.append(('set', name, prop, value))
        self._check('set', prop)
        self._pool('set', name).properties[prop] = Property(value, value, PropertySource.LOCAL)

    def reset_property(self, ctx, name, prop):
        self.calls.append(('reset', name, prop))
        self._check('reset', prop)
        self._pool('reset', name).properties.pop(prop, None)

    def list_pools(self, ctx):
        return [(name, pool.guid) for name, pool in sorted(self.pools.items())]

    def mutations(self):
        """Calls that change the pool, in order."""
        return [c for c in self.calls if c[0] in ('create', 'destroy', 'rename', 'set', 'reset')]


@pytest.fixture
def ctx(tmp_path):
    """Runtime config pointing state and lock files into tmp_path."""
    config = PoolsmithConfig(
        state_file=str(tmp_path / "state.json"),
        lock_file=str(tmp_path / "apply.lock"),
    )
    set_config(config)
    yield config
    set_config(None)


@pytest.fixture
def fake_commands():
    return FakeCommandLayer()


@pytest.fixture
def controller(fake_commands, ctx):
    return PoolController(fake_commands, ctx)


@pytest.fixture
def mirrored_layout():
    return PoolLayout(
        striped=[],
        mirrors=[Mirror([Device("/dev/sdb"), Device("/dev/sdc")])],
    )


@pytest.fixture
def tank_resource():
    """A declared pool with one striped device, one mirror and two properties."""
    return PoolResource(
        name="tank",
        device=[{"path": "/dev/sda"}],
        mirror=[{"device": [{"path": "/dev/sdb"}, {"path": "/dev/sdc"}]}],
        property=[
            {"name": "autotrim", "value": "on"},
            {"name": "comment", "value": "media"},
        ],
    )
