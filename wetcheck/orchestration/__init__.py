"""
Inspection wizard orchestration.
"""

from wetcheck.orchestration.state import (
    WizardStep,
    STEP_LABELS,
    GROUP_MODES,
    ZoneGroup,
    ZoneStats,
    progress_percent,
    zone_stats,
    group_zones,
)
from wetcheck.orchestration.machine import InspectionStateMachine, resolve_field

__all__ = [
    "WizardStep",
    "STEP_LABELS",
    "GROUP_MODES",
    "ZoneGroup",
    "ZoneStats",
    "progress_percent",
    "zone_stats",
    "group_zones",
    "InspectionStateMachine",
    "resolve_field",
]
