"""Declared vs. observed pool drift detection."""
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from poolsmith.core.properties import is_resettable, parse_property_blocks
from poolsmith.core.topology import encode_layout, layout_from_blocks, layouts_match
from poolsmith.models.pool import Pool, PropertyMode
from poolsmith.models.resource import PoolResource


class DriftSeverity:
    """How a difference is handled by the next apply."""

    INFO = "info"
    AUTO_MERGE = "auto-merge"
    DANGEROUS = "dangerous"


@dataclass
class DriftItem:
    pool: str
    field: str          # "exists", "name", "layout" or "property.<name>"
    desired: Any
    reality: Any
    severity: str
    message: str


@dataclass
class DriftReport:
    """Every difference found for one pool."""

    items: List[DriftItem] = field(default_factory=list)

    def is_clean(self) -> bool:
        return not self.items

    def summary(self) -> Dict[str, int]:
        """Number of items per severity."""
        return dict(Counter(item.severity for item in self.items))

    def needs_recreate(self) -> bool:
        return any(item.severity == DriftSeverity.DANGEROUS and item.field == "layout"
                   for item in self.items)


class DriftEngine:
    """Compares a configured pool resource with the observed pool.

    Declared properties that differ are auto-merge drift (the next apply
    converges them). In "all" mode, undeclared properties that were set
    explicitly are reported as informational drift; they are never reset.
    """

    def __init__(self, desired: PoolResource, observed: Optional[Pool]):
        self.desired = desired
        self.observed = observed
        self.report = DriftReport()

    def run(self) -> DriftReport:
        self.report = DriftReport()
        if self.observed is None:
            self._add("exists", True, False, DriftSeverity.DANGEROUS,
                      f"Pool {self.desired.name} does not exist")
            return self.report

        self._compare_name()
        self._compare_layout()
        self._compare_properties()
        return self.report

    def _add(self, field_name: str, desired: Any, reality: Any, severity: str, message: str) -> None:
        self.report.items.append(DriftItem(
            pool=self.desired.name,
            field=field_name,
            desired=desired,
            reality=reality,
            severity=severity,
            message=message,
        ))

    def _compare_name(self) -> None:
        if self.observed.name and self.observed.name != self.desired.name:
            self._add("name", self.desired.name, self.observed.name, DriftSeverity.AUTO_MERGE,
                      f"Pool is named {self.observed.name}, want {self.desired.name}")

    def _compare_layout(self) -> None:
        declared = layout_from_blocks(self.desired.device, self.desired.mirror)
        if not layouts_match(declared, self.observed.layout):
            self._add("layout", encode_layout(declared), encode_layout(self.observed.layout),
                      DriftSeverity.DANGEROUS,
                      f"Layout of {self.desired.name} differs from configuration (needs recreation)")

    def _compare_properties(self) -> None:
        declared = parse_property_blocks(self.desired.property)
        observed = self.observed.properties

        for name, value in sorted(declared.items()):
            current = observed.get(name)
            if current is None:
                self._add(f"property.{name}", value, None, DriftSeverity.AUTO_MERGE,
                          f"Property '{name}' not reported on {self.desired.name}")
            elif not current.matches(value):
                self._add(f"property.{name}", value, current.value, DriftSeverity.AUTO_MERGE,
                          f"Property '{name}' is {current.value}, want {value}")

        if self.desired.mode != PropertyMode.ALL:
            return

        for name, current in sorted(observed.items()):
            if name in declared or not current.source.is_explicit or not _can_drift(name):
                continue
            self._add(f"property.{name}", None, current.value, DriftSeverity.INFO,
                      f"Undeclared property '{name}' set to {current.value} ({current.source.value})")



def _can_drift(name: str) -> bool:
    """False for feature flags and create-time properties, which are fixed once the pool exists."""
    return not name.startswith('feature@') and is_resettable(name)
