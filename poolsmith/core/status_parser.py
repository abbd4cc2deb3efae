"""Parse the vdev layout out of `zpool status -P` output."""
import re
from typing import List, Optional

from poolsmith.core.logger import get_logger
from poolsmith.models.errors import TopologyError
from poolsmith.models.pool import Device, Mirror, PoolLayout

logger = get_logger(__name__)

# Sections after the data vdevs; the layout model only covers data vdevs
AUX_SECTIONS = frozenset({'logs', 'cache', 'spares', 'special', 'dedup'})

ROW_RE = re.compile(r'^(?P<indent>\s*)(?P<name>\S+)')


def _indent(line: str) -> int:
    # zpool prints a leading tab, then two spaces per nesting level
    return len(line.expandtabs(8)) - len(line.expandtabs(8).lstrip())


def parse_layout(status_text: str, pool_name: Optional[str] = None) -> PoolLayout:
    """Extract striped devices and mirrors from `zpool status` text.

    Example input (config section):

        NAME          STATE     READ WRITE CKSUM
        tank          ONLINE       0     0     0
          /dev/sda    ONLINE       0     0     0
          mirror-0    ONLINE       0     0     0
            /dev/sdb  ONLINE       0     0     0
            /dev/sdc  ONLINE       0     0     0

    Raises:
        TopologyError: For raidz/draid or other vdev kinds the layout model
            cannot express
    """
    striped: List[Device] = []
    mirrors: List[Mirror] = []

    in_config = False
    pool_indent: Optional[int] = None
    vdev_indent: Optional[int] = None
    current_mirror: Optional[List[Device]] = None

    def close_mirror():
        nonlocal current_mirror
        if current_mirror is not None:
            mirrors.append(Mirror(current_mirror))
            current_mirror = None

    for line in (status_text or '').splitlines():
        stripped = line.strip()
        if not in_config:
            if stripped.startswith('config:'):
                in_config = True
            continue

        if not stripped:
            if pool_indent is not None:
                break
            continue
        if stripped.startswith('errors:'):
            break
        if stripped.startswith('NAME') and 'STATE' in stripped:
            continue

        match = ROW_RE.match(line)
        if not match:
            continue
        name = match.group('name')
        indent = _indent(line)

        if pool_indent is None:
            if pool_name and name != pool_name:
                logger.debug(f"Skipping config row {name} before pool {pool_name}")
                continue
            pool_indent = indent
            continue

        if indent <= pool_indent:
            if name in AUX_SECTIONS:
                logger.debug(f"Ignoring {name} section in layout")
            break

        if vdev_indent is None:
            vdev_indent = indent

        if indent == vdev_indent:
            close_mirror()
            kind = name.split('-', 1)[0]
            if kind == 'mirror':
                current_mirror = []
            elif kind.startswith(('raidz', 'draid')) or kind in ('replacing', 'spare'):
                raise TopologyError(f"Unsupported vdev type '{name}' in pool layout")
            else:
                striped.append(Device(name))
        elif current_mirror is not None:
            if indent > vdev_indent + 2:
                # Children of replacing/spare members
                continue
            if name.startswith(('replacing-', 'spare-')):
                logger.warning(f"Mirror member {name} is being replaced; layout may be incomplete")
                continue
            current_mirror.append(Device(name))

    close_mirror()
    return PoolLayout(striped=striped, mirrors=mirrors)
