"""
Pydantic schemas for the inspection record.

The record is plain data: factories build fully-defaulted entities and model
equality is used for comparisons. Field aliases are camelCase and define the
stored document shape.
"""

from datetime import datetime
from typing import Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


MAX_ZONES = 120
MAX_CONTROLLERS = 10
MAX_BACKFLOW_DEVICES = 6
DEFAULT_ZONE_COUNT = 6

PropertyType = Literal["residential", "commercial"]
Priority = Literal["immediate", "high", "routine", "upgrade"]

PRIORITY_LABELS: Dict[str, str] = {
    "immediate": "Immediate / Safety",
    "high": "High Priority",
    "routine": "Routine",
    "upgrade": "Upgrade",
}

# Issue flags in report order
ZONE_ISSUE_FLAGS: Tuple[str, ...] = ("leak", "broken", "clogged", "misaligned")

# (field, text report label, document label)
BASE_OBSERVATIONS: List[Tuple[str, str, str]] = [
    ("main_line_leak", "Main Line Leak", "Main Line Leak"),
    ("lateral_leak", "Lateral Leak", "Lateral Line Leak"),
    ("valve_box_flooded", "Valve Box Flooded", "Valve Box Flooded"),
    ("overspray", "Overspray", "Overspray"),
    ("dry_spots", "Dry Spots", "Dry Spots"),
    ("coverage_issues", "Coverage Issues", "Coverage Issues"),
]
COMMERCIAL_OBSERVATIONS: List[Tuple[str, str, str]] = [
    ("erosion", "Erosion", "Erosion"),
    ("drainage_issues", "Drainage Issues", "Drainage Issues"),
    ("code_violations", "Code Violations", "Code Violations"),
    ("timer_issues", "Timer Programming", "Timer Programming Issues"),
    ("water_waste", "Water Waste", "Water Waste"),
    ("root_damage", "Root Damage", "Tree Root Damage"),
]


class RecordModel(BaseModel):
    """Base for all record entities: camelCase aliases, validated assignment.

    Numeric input for text fields (head counts, pressures, zone ranges) is
    stored as text.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )


class Geolocation(RecordModel):
    """Latitude/longitude pair."""
    lat: float
    lng: float

    @field_validator("lat")
    @classmethod
    def validate_lat(cls, v: float) -> float:
        if not -90 <= v <= 90:
            raise ValueError(f"Latitude must be between -90 and 90, got {v}")
        return v

    @field_validator("lng")
    @classmethod
    def validate_lng(cls, v: float) -> float:
        if not -180 <= v <= 180:
            raise ValueError(f"Longitude must be between -180 and 180, got {v}")
        return v

    @property
    def map_url(self) -> str:
        return f"https://maps.google.com/?q={self.lat},{self.lng}"

    def display(self) -> str:
        return f"{self.lat:.6f}, {self.lng:.6f}"


class ClientInfo(RecordModel):
    """Client and property details. The last group is commercial-only."""
    name: str = ""
    address: str = ""
    city: str = ""
    phone: str = ""
    email: str = ""
    manager: str = ""
    date: str = Field(default_factory=lambda: datetime.now().strftime("%Y-%m-%d"))
    work_order: str = ""
    property_sub_type: str = ""
    building_name: str = ""
    num_buildings: str = ""
    irrigated_acreage: str = ""
    geolocation: Optional[Geolocation] = None
    location_image: Optional[str] = None


class SystemInfo(RecordModel):
    """Irrigation system overview. Mainline/valve/sensor/POC are commercial-only."""
    total_zones: str = ""
    active_zones: str = ""
    water_source: str = ""
    meter_size: str = ""
    static_psi: str = Field(default="", alias="staticPSI")
    working_psi: str = Field(default="", alias="workingPSI")
    flow_rate: str = ""
    rain_sensor: str = ""
    pump_station: str = ""
    mainline_size: str = ""
    mainline_material: str = ""
    master_valve: str = ""
    flow_sensor: str = ""
    poc: str = ""
    pump_geolocation: Optional[Geolocation] = None
    pump_location_image: Optional[str] = None


class Controller(RecordModel):
    id: int
    make: str = ""
    type: str = ""
    location: str = ""
    zone_range_from: str = ""
    zone_range_to: str = ""
    geolocation: Optional[Geolocation] = None
    location_image: Optional[str] = None


class BackflowDevice(RecordModel):
    id: int
    type: str = ""
    condition: str = ""


class MaterialItem(RecordModel):
    """A part needed for a zone repair."""
    part_name: str = ""
    quantity: int = Field(default=1, ge=0)


class Zone(RecordModel):
    """One irrigation zone and its check results."""
    id: int
    type: str = ""
    head_type: str = ""
    head_count: str = ""
    psi: str = ""
    ok_flag: bool = False
    leak: bool = False
    broken: bool = False
    clogged: bool = False
    misaligned: bool = False
    notes: str = ""
    area: str = ""
    controller_id: int = 1
    before_images: List[str] = Field(default_factory=list)
    after_images: List[str] = Field(default_factory=list)
    geolocation: Optional[Geolocation] = None
    location_image: Optional[str] = None
    materials: List[MaterialItem] = Field(default_factory=list)

    @property
    def issue_flags(self) -> List[str]:
        """Names of the issue flags that are set, in report order."""
        return [flag for flag in ZONE_ISSUE_FLAGS if getattr(self, flag)]

    @property
    def has_issue(self) -> bool:
        return bool(self.issue_flags)

    @property
    def label(self) -> str:
        """'Zone 3' or 'Zone 3 [Front Lawn]'."""
        return f"Zone {self.id} [{self.area}]" if self.area else f"Zone {self.id}"


class Observations(RecordModel):
    """Closed set of site-wide observation flags."""
    main_line_leak: bool = False
    lateral_leak: bool = False
    valve_box_flooded: bool = False
    overspray: bool = False
    dry_spots: bool = False
    coverage_issues: bool = False
    # Commercial only
    erosion: bool = False
    drainage_issues: bool = False
    code_violations: bool = False
    timer_issues: bool = False
    water_waste: bool = False
    root_damage: bool = False


class CompanyBranding(RecordModel):
    """Company details printed on reports."""
    name: str = ""
    phone: str = ""
    website: str = ""
    logo: Optional[str] = None


class InspectionRecord(RecordModel):
    """Root aggregate for one wet check inspection."""
    property_type: Optional[PropertyType] = None
    client: ClientInfo = Field(default_factory=ClientInfo)
    system: SystemInfo = Field(default_factory=SystemInfo)
    controllers: List[Controller] = Field(default_factory=lambda: [new_controller(1)])
    backflow_devices: List[BackflowDevice] = Field(
        default_factory=lambda: [new_backflow_device(1)]
    )
    zones: List[Zone] = Field(
        default_factory=lambda: [new_zone(i + 1) for i in range(DEFAULT_ZONE_COUNT)]
    )
    active_zone_count: int = DEFAULT_ZONE_COUNT
    observations: Observations = Field(default_factory=Observations)
    recommendations: str = ""
    priority: Optional[Priority] = None
    estimated_cost: str = ""
    estimated_time: str = ""
    technician_name: str = ""

    @property
    def is_commercial(self) -> bool:
        return self.property_type == "commercial"

    @property
    def active_zones(self) -> List[Zone]:
        return self.zones[:self.active_zone_count]

    @property
    def priority_label(self) -> str:
        return PRIORITY_LABELS.get(self.priority or "", "")

    def controller_ids(self) -> List[int]:
        return [c.id for c in self.controllers]

    def resolve_controller_id(self, zone: Zone) -> int:
        """Controller id of a zone, falling back to 1 for dangling references."""
        if zone.controller_id in self.controller_ids():
            return zone.controller_id
        return 1


class SavedInspectionSummary(BaseModel):
    """List-item view of a stored inspection."""
    id: str
    owner_id: str
    customer_display_name: str
    address_display_string: str
    property_type: str
    saved_at: str = ""
    last_completed_step: int = 0


# ============================================================================
# FACTORIES
# ============================================================================

def new_zone(zone_id: int) -> Zone:
    return Zone(id=zone_id)


def new_controller(controller_id: int) -> Controller:
    return Controller(id=controller_id)


def new_backflow_device(device_id: int) -> BackflowDevice:
    return BackflowDevice(id=device_id)


def new_inspection_record(property_type: Optional[str] = None) -> InspectionRecord:
    """Empty record for a new inspection of the given property type."""
    return InspectionRecord(property_type=property_type)


__all__ = [
    "MAX_ZONES",
    "MAX_CONTROLLERS",
    "MAX_BACKFLOW_DEVICES",
    "DEFAULT_ZONE_COUNT",
    "PRIORITY_LABELS",
    "ZONE_ISSUE_FLAGS",
    "BASE_OBSERVATIONS",
    "COMMERCIAL_OBSERVATIONS",
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
