"""Plan the operations that bring recorded pools to their declared state."""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from poolsmith.core.properties import diff_properties, parse_property_blocks
from poolsmith.core.topology import encode_layout, layout_from_blocks, layouts_match
from poolsmith.models.resource import PoolResource


class ChangeType(Enum):
    CREATE = "create"
    REPLACE = "replace"   # Layout changed: destroy and create
    RENAME = "rename"
    SET = "set"
    RESET = "reset"
    MODE = "mode"


@dataclass
class PlannedChange:
    """A single planned operation on one pool."""
    address: str
    change_type: ChangeType
    target: str = ""
    old: Optional[str] = None
    new: Optional[str] = None


class PoolPlanner:
    """Compare declared pools with their refreshed recorded state.

    Recorded resources should come from PoolController.read so that
    renames and property drift made outside poolsmith are visible.
    """

    def __init__(self, desired: Dict[str, PoolResource], recorded: Dict[str, Optional[PoolResource]]):
        self.desired = desired
        self.recorded = recorded
        self.changes: List[PlannedChange] = []

    def calculate(self) -> List[PlannedChange]:
        self.changes = []
        for address, want in self.desired.items():
            self.changes.extend(self.plan_pool(address, want, self.recorded.get(address)))
        return self.changes

    @staticmethod
    def plan_pool(address: str, want: PoolResource, have: Optional[PoolResource]) -> List[PlannedChange]:
        if have is None or not have.id:
            return [PlannedChange(address, ChangeType.CREATE, want.name, None, encode_layout(
                layout_from_blocks(want.device, want.mirror)))]

        declared_layout = layout_from_blocks(want.device, want.mirror)
        recorded_layout = layout_from_blocks(have.device, have.mirror)
        if not layouts_match(declared_layout, recorded_layout):
            return [PlannedChange(
                address, ChangeType.REPLACE, want.name,
                encode_layout(recorded_layout), encode_layout(declared_layout),
            )]

        changes: List[PlannedChange] = []
        if have.name != want.name:
            changes.append(PlannedChange(address, ChangeType.RENAME, want.name, have.name, want.name))

        old = parse_property_blocks(have.property)
        new = parse_property_blocks(want.property)
        diff = diff_properties(old, new)
        for prop, value in diff.to_set.items():
            changes.append(PlannedChange(address, ChangeType.SET, prop, old.get(prop), value))
        for prop in diff.to_reset:
            changes.append(PlannedChange(address, ChangeType.RESET, prop, old.get(prop), None))

        if have.property_mode != want.property_mode:
            changes.append(PlannedChange(
                address, ChangeType.MODE, 'property_mode', have.property_mode, want.property_mode
            ))
        return changes

    def orphans(self) -> List[str]:
        """Recorded pools no longer declared. They are never destroyed implicitly."""
        return sorted(
            address for address, have in self.recorded.items()
            if address not in self.desired and have is not None and have.id
        )

    def format_plan(self) -> str:
        """Format changes as a human-readable plan."""
        orphans = self.orphans()
        if not self.changes and not orphans:
            return "No changes required. Pools are up to date."

        lines = ["poolsmith will perform the following actions:\n"]
        current = None
        for change in self.changes:
            if change.address != current:
                current = change.address
                lines.append(f"  {current}:")

            if change.change_type == ChangeType.CREATE:
                lines.append(f"    + create {change.target}: {change.new}")
            elif change.change_type == ChangeType.REPLACE:
                lines.append(f"    -/+ replace {change.target} (layout change destroys all data)")
                lines.append(f"        {change.old} -> {change.new}")
            elif change.change_type == ChangeType.RENAME:
                lines.append(f"    ~ rename {change.old} -> {change.new}")
            elif change.change_type == ChangeType.SET:
                lines.append(f"    ~ set {change.target}: {change.old} -> {change.new}")
            elif change.change_type == ChangeType.RESET:
                lines.append(f"    - reset {change.target} (was {change.old})")
            elif change.change_type == ChangeType.MODE:
                lines.append(f"    ~ property_mode: {change.old} -> {change.new}")

        if orphans:
            lines.append("")
            lines.append("Recorded but no longer declared (left untouched):")
            for address in orphans:
                lines.append(f"  ? {address}")

        lines.append("")
        lines.append(f"Plan: {len(self.changes)} change(s) to apply")
        return "\n".join(lines)
