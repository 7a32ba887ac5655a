"""
Wizard steps and values derived from an inspection record.

Everything here is recomputed from the record on each call and never stored.
"""

from dataclasses import dataclass, field
from enum import IntEnum
import math
from typing import Dict, List, Optional

from wetcheck.schemas.models import InspectionRecord, Zone


class WizardStep(IntEnum):
    CLIENT = 0
    SYSTEM = 1
    ZONES = 2
    REVIEW = 3
    SUMMARY = 4


STEP_LABELS = ("Client", "System", "Zones", "Review", "Summary")

FIRST_STEP = WizardStep.CLIENT
LAST_STEP = WizardStep.SUMMARY

GROUP_MODES = ("none", "area", "controller")

UNASSIGNED_AREA = "Unassigned"


@dataclass
class ZoneGroup:
    """Active zones sharing a group key, in zone order. ``indices`` point into record.zones."""
    label: Optional[str]
    zones: List[Zone] = field(default_factory=list)
    indices: List[int] = field(default_factory=list)


@dataclass(frozen=True)
class ZoneStats:
    ok_count: int
    issue_count: int
    pending_count: int
    progress_percent: int


def progress_percent(checked: int, total: int) -> int:
    """Percentage rounded half up; 0 when there is nothing to check."""
    if total <= 0:
        return 0
    return math.floor(100 * checked / total + 0.5)


def zone_stats(record: InspectionRecord) -> ZoneStats:
    active = record.active_zones
    ok_count = sum(1 for z in active if z.ok_flag)
    issue_count = sum(1 for z in active if z.has_issue)
    return ZoneStats(
        ok_count=ok_count,
        issue_count=issue_count,
        pending_count=record.active_zone_count - ok_count - issue_count,
        progress_percent=progress_percent(ok_count + issue_count, record.active_zone_count),
    )


def group_zones(record: InspectionRecord, mode: str = "none") -> List[ZoneGroup]:
    """
    Partition the active zones.

    Args:
        record: Inspection record
        mode: "none" (one unlabeled group), "area" or "controller"

    Returns:
        Groups in order of first appearance
    """
    if mode not in GROUP_MODES:
        raise ValueError(f"Invalid group mode: {mode}. Must be one of: {list(GROUP_MODES)}")

    active = record.active_zones
    if mode == "none":
        return [ZoneGroup(label=None, zones=list(active), indices=list(range(len(active))))]

    groups: Dict[str, ZoneGroup] = {}
    for index, zone in enumerate(active):
        if mode == "area":
            key = zone.area or UNASSIGNED_AREA
        else:
            key = f"Controller {record.resolve_controller_id(zone)}"

        group = groups.setdefault(key, ZoneGroup(label=key))
        group.zones.append(zone)
        group.indices.append(index)

    return list(groups.values())
