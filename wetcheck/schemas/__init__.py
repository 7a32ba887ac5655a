"""
Pydantic schemas for Wet Check inspections.
"""

from wetcheck.schemas.models import (
    MAX_ZONES,
    MAX_CONTROLLERS,
    MAX_BACKFLOW_DEVICES,
    Geolocation,
    ClientInfo,
    SystemInfo,
    Controller,
    BackflowDevice,
    MaterialItem,
    Zone,
    Observations,
    CompanyBranding,
    InspectionRecord,
    SavedInspectionSummary,
    new_zone,
    new_controller,
    new_backflow_device,
    new_inspection_record,
)

__all__ = [
    "MAX_ZONES",
    "MAX_CONTROLLERS",
    "MAX_BACKFLOW_DEVICES",
    "Geolocation",
    "ClientInfo",
    "SystemInfo",
    "Controller",
    "BackflowDevice",
    "MaterialItem",
    "Zone",
    "Observations",
    "CompanyBranding",
    "InspectionRecord",
    "SavedInspectionSummary",
    "new_zone",
    "new_controller",
    "new_backflow_device",
    "new_inspection_record",
]
