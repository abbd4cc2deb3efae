"""Tests for the zpool/zfs command layer."""
import subprocess
from unittest.mock import Mock, patch

import pytest

from poolsmith.core.config import PoolsmithConfig
from poolsmith.core.controller import PoolController
from poolsmith.core.zpool_manager import ZpoolCommandLayer
from poolsmith.models.errors import CommandError, PoolNotFoundError, TopologyError
from poolsmith.models.pool import CreationSpec, Pool, PropertySource
from poolsmith.models.resource import PoolResource

STATUS = """  pool: tank
 state: ONLINE
config:

\tNAME          STATE     READ WRITE CKSUM
\ttank          ONLINE       0     0     0
\t  /dev/sda1   ONLINE       0     0     0
\t  mirror-0    ONLINE       0     0     0
\t    /dev/sdb1 ONLINE       0     0     0
\t    /dev/sdc1 ONLINE       0     0     0

errors: No known data errors
"""


def ok(stdout=""):
    return Mock(returncode=0, stdout=stdout, stderr="")


def fail(cmd, stderr):
    return subprocess.CalledProcessError(1, cmd, output="", stderr=stderr)


@pytest.fixture
def layer(monkeypatch):
    monkeypatch.delenv('POOLSMITH_MOCK', raising=False)
    return ZpoolCommandLayer()


@pytest.fixture
def config():
    return PoolsmithConfig()


def fake_zfs(cmd, **kwargs):
    """Answer get/status/list like a host with one pool named tank."""
    raw = '-p' in cmd
    if cmd[:2] == ['zpool', 'get']:
        return ok(
            f"size\t{'1099511627776' if raw else '1T'}\t-\n"
            "autotrim\ton\tlocal\n"
            "guid\t1234567890\t-\n"
        )
    if cmd[:2] == ['zfs', 'get']:
        return ok("compression\tlz4\tlocal\natime\ton\tdefault\n")
    if cmd[:2] == ['zpool', 'status']:
        return ok(STATUS)
    if cmd[:2] == ['zpool', 'list']:
        return ok("tank\t1234567890\nbackup\t42\n")
    return ok()


class TestDescribe:
    """Observing a pool."""

    @patch('subprocess.run')
    def test_describe_splits_pool_and_dataset_properties(self, mock_run, layer, config):
        mock_run.side_effect = fake_zfs

        pool = layer.describe(config, 'tank', ['autotrim', 'compression'])

        commands = [c[0][0] for c in mock_run.call_args_list]
        assert commands[0] == ['zpool', 'get', '-H', '-o', 'property,value,source', 'autotrim,guid', 'tank']
        assert commands[1] == ['zpool', 'get', '-H', '-o', 'property,value,source', '-p', 'autotrim,guid', 'tank']
        assert commands[2][:2] == ['zfs', 'get']
        assert 'compression' in commands[2]
        assert commands[-1] == ['zpool', 'status', '-P', 'tank']

        assert pool.guid == '1234567890'
        assert pool.name == 'tank'
        assert 'guid' not in pool.properties
        assert pool.properties['autotrim'].source == PropertySource.LOCAL
        assert pool.properties['compression'].value == 'lz4'

    @patch('subprocess.run')
    def test_describe_display_and_raw_values(self, mock_run, layer, config):
        mock_run.side_effect = fake_zfs

        pool = layer.describe(config, 'tank', ['size'])

        assert pool.properties['size'].value == '1T'
        assert pool.properties['size'].raw_value == '1099511627776'
        assert pool.properties['size'].source == PropertySource.DEFAULT

    @patch('subprocess.run')
    def test_describe_all(self, mock_run, layer, config):
        mock_run.side_effect = fake_zfs

        pool = layer.describe(config, 'tank')

        assert mock_run.call_args_list[0][0][0][-2:] == ['all', 'tank']
        assert pool.properties['guid'].value == '1234567890'

    @patch('subprocess.run')
    def test_describe_all_includes_root_dataset(self, mock_run, layer, config):
        def run(cmd, **kwargs):
            if cmd[:2] == ['zfs', 'get']:
                return ok("compression\tlz4\tlocal\nguid\t987654321\t-\n")
            return fake_zfs(cmd, **kwargs)

        mock_run.side_effect = run

        pool = layer.describe(config, 'tank')

        commands = [c[0][0] for c in mock_run.call_args_list]
        assert ['zfs', 'get', '-H', '-o', 'property,value,source', 'all', 'tank'] in commands
        assert pool.properties['compression'].value == 'lz4'
        assert pool.properties['compression'].source == PropertySource.LOCAL
        assert pool.properties['guid'].value == '1234567890'
        assert pool.guid == '1234567890'

    @patch('subprocess.run')
    def test_all_mode_read_keeps_declared_dataset_property(self, mock_run, layer, config):
        mock_run.side_effect = fake_zfs
        resource = PoolResource(
            name='tank',
            id='1234567890',
            property=[{'name': 'compression', 'value': 'lz4'}],
            property_mode='all',
        )

        PoolController(layer, config).read(resource)

        assert resource.property == [{'name': 'compression', 'value': 'lz4'}]
        assert resource.properties['compression'] == 'lz4'
        assert resource.properties['autotrim'] == 'on'

    @patch('subprocess.run')
    def test_describe_parses_layout(self, mock_run, layer, config):
        mock_run.side_effect = fake_zfs

        pool = layer.describe(config, 'tank', [])

        assert [d.path for d in pool.layout.striped] == ['/dev/sda1']
        assert [d.path for d in pool.layout.mirrors[0].devices] == ['/dev/sdb1', '/dev/sdc1']

    @patch('subprocess.run')
    def test_describe_missing_pool(self, mock_run, layer, config):
        mock_run.side_effect = fail(['zpool', 'get'], "cannot open 'tank': no such pool")

        with pytest.raises(PoolNotFoundError):
            layer.describe(config, 'tank', [])


class TestQueries:
    """Listing pools and resolving guids."""

    @patch('subprocess.run')
    def test_list_pools(self, mock_run, layer, config):
        mock_run.side_effect = fake_zfs

        assert layer.list_pools(config) == [('tank', '1234567890'), ('backup', '42')]

    @patch('subprocess.run')
    def test_resolve_name(self, mock_run, layer, config):
        mock_run.side_effect = fake_zfs

        assert layer.resolve_name(config, '42') == 'backup'

    @patch('subprocess.run')
    def test_resolve_unknown_guid(self, mock_run, layer, config):
        mock_run.side_effect = fake_zfs

        with pytest.raises(PoolNotFoundError):
            layer.resolve_name(config, '999')

    @patch('subprocess.run')
    def test_missing_binary(self, mock_run, layer, config):
        mock_run.side_effect = FileNotFoundError("zpool")

        with pytest.raises(CommandError, match="command not found"):
            layer.list_pools(config)


class TestMutations:
    """Create, destroy, rename and property changes."""

    @patch('subprocess.run')
    def test_create_command(self, mock_run, layer, config):
        mock_run.side_effect = fake_zfs
        spec = CreationSpec(
            name='tank',
            topology='/dev/sda mirror /dev/sdb /dev/sdc',
            properties={'ashift': '12', 'compression': 'lz4'},
        )

        pool = layer.create(config, spec)

        assert mock_run.call_args_list[0][0][0] == [
            'zpool', 'create', '-o', 'ashift=12', '-O', 'compression=lz4',
            'tank', '/dev/sda', 'mirror', '/dev/sdb', '/dev/sdc',
        ]
        assert pool.guid == '1234567890'

    @patch('subprocess.run')
    def test_create_failure(self, mock_run, layer, config):
        mock_run.side_effect = fail(['zpool', 'create'], "cannot open '/dev/sdz': no such device")

        with pytest.raises(CommandError, match="no such device"):
            layer.create(config, CreationSpec(name='tank', topology='/dev/sdz'))

    @patch('subprocess.run')
    def test_create_survives_failed_describe(self, mock_run, layer, config):
        def run(cmd, **kwargs):
            if cmd[:2] == ['zpool', 'get']:
                raise fail(cmd, "permission denied")
            return fake_zfs(cmd, **kwargs)

        mock_run.side_effect = run
        spec = CreationSpec(name='tank', topology='/dev/sda', properties={'autotrim': 'on'})

        pool = layer.create(config, spec)

        assert pool.guid == '1234567890'
        assert pool.properties['autotrim'].value == 'on'
        assert [d.path for d in pool.layout.striped] == ['/dev/sda']

    def test_create_without_devices(self, layer, config):
        with pytest.raises(TopologyError):
            layer.create(config, CreationSpec(name='tank', topology=''))

    @patch('subprocess.run')
    def test_destroy(self, mock_run, layer, config):
        mock_run.return_value = ok()

        layer.destroy(config, 'tank')

        mock_run.assert_called_once()
        assert mock_run.call_args[0][0] == ['zpool', 'destroy', 'tank']

    @patch('subprocess.run')
    def test_rename_exports_then_imports(self, mock_run, layer, config):
        mock_run.return_value = ok()

        layer.rename(config, 'tank', 'vault')

        commands = [c[0][0] for c in mock_run.call_args_list]
        assert commands == [['zpool', 'export', 'tank'], ['zpool', 'import', 'tank', 'vault']]

    @patch('subprocess.run')
    def test_rename_reimports_on_failure(self, mock_run, layer, config):
        def run(cmd, **kwargs):
            if cmd == ['zpool', 'import', 'tank', 'vault']:
                raise fail(cmd, "cannot import 'tank' as 'vault': a pool with that name already exists")
            return ok()

        mock_run.side_effect = run

        with pytest.raises(CommandError, match="already exists"):
            layer.rename(config, 'tank', 'vault')

        assert mock_run.call_args_list[-1][0][0] == ['zpool', 'import', 'tank']

    @patch('subprocess.run')
    def test_rename_reports_failed_reimport(self, mock_run, layer, config):
        def run(cmd, **kwargs):
            if cmd == ['zpool', 'import', 'tank', 'vault']:
                raise fail(cmd, "a pool with that name already exists")
            if cmd == ['zpool', 'import', 'tank']:
                raise fail(cmd, "one or more devices is currently unavailable")
            return ok()

        mock_run.side_effect = run

        with pytest.raises(CommandError) as excinfo:
            layer.rename(config, 'tank', 'vault')

        assert "already exists" in excinfo.value.message
        assert "currently unavailable" in excinfo.value.message

    @patch('subprocess.run')
    def test_set_property_scope(self, mock_run, layer, config):
        mock_run.return_value = ok()

        layer.set_property(config, 'tank', 'autotrim', 'on')
        layer.set_property(config, 'tank', 'compression', 'zstd')

        commands = [c[0][0] for c in mock_run.call_args_list]
        assert commands == [
            ['zpool', 'set', 'autotrim=on', 'tank'],
            ['zfs', 'set', 'compression=zstd', 'tank'],
        ]

    @patch('subprocess.run')
    def test_reset_property(self, mock_run, layer, config):
        mock_run.return_value = ok()

        layer.reset_property(config, 'tank', 'compression')
        layer.reset_property(config, 'tank', 'autotrim')
        layer.reset_property(config, 'tank', 'org.example:owner')

        commands = [c[0][0] for c in mock_run.call_args_list]
        assert commands == [
            ['zfs', 'inherit', 'compression', 'tank'],
            ['zpool', 'set', 'autotrim=off', 'tank'],
            ['zpool', 'set', 'org.example:owner=', 'tank'],
        ]

    @patch('subprocess.run')
    def test_reset_pool_property_without_default(self, mock_run, layer, config):
        with pytest.raises(CommandError, match="no known default"):
            layer.reset_property(config, 'tank', 'ashift')

        mock_run.assert_not_called()

    @patch('subprocess.run')
    def test_sudo_prefix(self, mock_run, layer):
        mock_run.return_value = ok()

        layer.destroy(PoolsmithConfig(use_sudo=True), 'tank')

        assert mock_run.call_args[0][0] == ['sudo', '-n', 'zpool', 'destroy', 'tank']


class TestMockMode:
    """In-memory pools when POOLSMITH_MOCK is set."""

    def test_env_enables_mock(self, monkeypatch):
        monkeypatch.setenv('POOLSMITH_MOCK', '1')

        assert ZpoolCommandLayer().mock is True

    @patch('subprocess.run')
    def test_lifecycle_without_commands(self, mock_run, config):
        layer = ZpoolCommandLayer(mock=True)

        pool = layer.create(config, CreationSpec(
            name='tank', topology='mirror /dev/sdb /dev/sdc', properties={'compression': 'lz4'},
        ))
        assert pool.properties['compression'].source == PropertySource.LOCAL
        assert layer.resolve_name(config, pool.guid) == 'tank'

        layer.rename(config, 'tank', 'vault')
        layer.set_property(config, 'vault', 'autotrim', 'on')
        layer.reset_property(config, 'vault', 'compression')

        described = layer.describe(config, 'vault')
        assert described.guid == pool.guid
        assert described.properties['autotrim'].value == 'on'
        assert 'compression' not in described.properties
        assert described.properties['health'].value == 'ONLINE'

        layer.reset_property(config, 'vault', 'autotrim')
        assert layer.describe(config, 'vault', ['autotrim']).properties['autotrim'].source == PropertySource.DEFAULT

        layer.destroy(config, 'vault')
        assert layer.list_pools(config) == []
        mock_run.assert_not_called()

    def test_mock_missing_pool(self, config):
        layer = ZpoolCommandLayer(mock=True)

        with pytest.raises(PoolNotFoundError):
            layer.destroy(config, 'tank')
        with pytest.raises(PoolNotFoundError):
            layer.describe(config, 'tank')

    def test_mock_duplicate_create(self, config):
        layer = ZpoolCommandLayer(mock=True)
        spec = CreationSpec(name='tank', topology='/dev/sda')
        layer.create(config, spec)

        with pytest.raises(CommandError, match="already exists"):
            layer.create(config, spec)

    def test_seed_mock_pool(self, config):
        layer = ZpoolCommandLayer(mock=True)

        layer.seed_mock_pool(Pool(guid='77', name='tank'))

        assert layer.resolve_name(config, '77') == 'tank'
        assert layer.describe(config, 'tank', []).guid == '77'

    def test_seed_outside_mock_mode(self, layer):
        with pytest.raises(RuntimeError):
            layer.seed_mock_pool(Pool(guid='77', name='tank'))
