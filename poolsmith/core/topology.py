"""Conversion between pool layouts and zpool vdev specifications."""
import re
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from poolsmith.models.errors import TopologyError
from poolsmith.models.pool import Device, Mirror, PoolLayout

MIRROR_TOKEN = "mirror"


def encode_topology(devices: Sequence[Device], mirrors: Sequence[Mirror]) -> str:
    """Build the vdev specification passed to `zpool create`.

    Striped devices come first in input order, then one `mirror <paths...>`
    group per mirror. The same layout always encodes to the same string.

    Example:
        >>> encode_topology([Device("/dev/sda")], [Mirror([Device("/dev/sdb"), Device("/dev/sdc")])])
        '/dev/sda mirror /dev/sdb /dev/sdc'
    """
    tokens: List[str] = [device.path for device in devices or ()]
    for mirror in mirrors or ():
        tokens.append(MIRROR_TOKEN)
        tokens.extend(device.path for device in mirror.devices)
    return " ".join(tokens)


def encode_layout(layout: PoolLayout) -> str:
    return encode_topology(layout.striped, layout.mirrors)


def parse_topology(spec: str) -> PoolLayout:
    """Read a vdev specification produced by encode_topology back into a layout.

    Raises:
        TopologyError: If a mirror group has fewer than two devices
    """
    striped: List[Device] = []
    groups: List[List[Device]] = []
    for token in (spec or "").split():
        if token == MIRROR_TOKEN:
            groups.append([])
        elif groups:
            groups[-1].append(Device(token))
        else:
            striped.append(Device(token))

    for index, group in enumerate(groups):
        if len(group) < 2:
            raise TopologyError(f"Mirror #{index} needs at least two devices, got {len(group)}")
    return PoolLayout(striped=striped, mirrors=[Mirror(group) for group in groups])


def flatten_device(device: Device) -> Dict[str, str]:
    return {"path": device.path}


def flatten_mirror(mirror: Mirror) -> Dict[str, List[Dict[str, str]]]:
    return {"device": [flatten_device(device) for device in mirror.devices]}


def flatten_layout(layout: PoolLayout) -> Tuple[List[Dict[str, str]], List[Dict[str, Any]]]:
    """Project a layout into (device blocks, mirror blocks)."""
    return (
        [flatten_device(device) for device in layout.striped],
        [flatten_mirror(mirror) for mirror in layout.mirrors],
    )


_PARTITION_SUFFIX = re.compile(r'^(-part|p)?\d+$')


def same_device(declared: str, observed: str) -> bool:
    """True if an observed vdev path refers to a declared device.

    `zpool status -P` reports whole-disk vdevs by their first partition
    (`/dev/sdb` -> `/dev/sdb1`, `/dev/nvme0n1` -> `/dev/nvme0n1p1`,
    `/dev/disk/by-id/x` -> `/dev/disk/by-id/x-part1`).
    """
    if declared == observed:
        return True
    if not observed.startswith(declared):
        return False
    return bool(_PARTITION_SUFFIX.match(observed[len(declared):]))


def layouts_match(declared: PoolLayout, observed: PoolLayout) -> bool:
    """Compare two layouts device by device, in order."""
    if len(declared.striped) != len(observed.striped):
        return False
    if len(declared.mirrors) != len(observed.mirrors):
        return False
    for want, have in zip(declared.striped, observed.striped):
        if not same_device(want.path, have.path):
            return False
    for want, have in zip(declared.mirrors, observed.mirrors):
        if len(want.devices) != len(have.devices):
            return False
        for want_dev, have_dev in zip(want.devices, have.devices):
            if not same_device(want_dev.path, have_dev.path):
                return False
    return True


def layout_from_blocks(
    device_blocks: Iterable[Dict[str, Any]],
    mirror_blocks: Iterable[Dict[str, Any]],
    require_devices: bool = False,
) -> PoolLayout:
    """Build a validated layout from configuration blocks.

    Raises:
        TopologyError: On a bad path, a device used twice, a mirror with
            fewer than two devices, or an empty layout when require_devices
            is set.
    """
    seen = set()

    def to_device(block: Dict[str, Any]) -> Device:
        path = str((block or {}).get("path") or "").strip()
        if not path:
            raise TopologyError("Device path must not be empty")
        if any(ch.isspace() for ch in path):
            raise TopologyError(f"Device path '{path}' must not contain whitespace")
        if path in seen:
            raise TopologyError(f"Device '{path}' is used more than once in the layout")
        seen.add(path)
        return Device(path)

    striped = [to_device(block) for block in device_blocks or ()]

    mirrors = []
    for index, block in enumerate(mirror_blocks or ()):
        members = [to_device(d) for d in (block or {}).get("device") or ()]
        if len(members) < 2:
            raise TopologyError(
                f"Mirror #{index} needs at least two devices, got {len(members)}"
            )
        mirrors.append(Mirror(members))

    layout = PoolLayout(striped=striped, mirrors=mirrors)
    if require_devices and layout.is_empty:
        raise TopologyError("Pool layout needs at least one device or mirror")
    return layout
