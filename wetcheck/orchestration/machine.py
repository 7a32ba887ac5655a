"""
Inspection wizard state machine.

Owns the in-memory InspectionRecord while it is being edited. Field edits
are synchronous. Persistence, device location, reverse geocoding and photo
normalisation run off the event loop; each is tagged with the record
generation at launch and its result is dropped if the record has since been
replaced.
"""

import asyncio
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Set, Tuple, Type

from pydantic import BaseModel

from wetcheck.auth.session import UserSession
from wetcheck.database.repository import InspectionRepository, strip_binary_content
from wetcheck.exceptions import (
    AlreadyInProgress,
    GeolocationError,
    ImageEncodingFailure,
    PersistenceError,
    UnknownFieldError,
)
from wetcheck.orchestration.state import (
    FIRST_STEP,
    GROUP_MODES,
    LAST_STEP,
    WizardStep,
    ZoneGroup,
    ZoneStats,
    group_zones,
    zone_stats,
)
from wetcheck.reporting.pdf import RenderedDocument, render_document, write_reports
from wetcheck.reporting.text_report import render_text, share_link
from wetcheck.schemas.models import (
    MAX_BACKFLOW_DEVICES,
    MAX_CONTROLLERS,
    MAX_ZONES,
    PRIORITY_LABELS,
    BackflowDevice,
    ClientInfo,
    CompanyBranding,
    Controller,
    Geolocation,
    InspectionRecord,
    MaterialItem,
    Observations,
    SavedInspectionSummary,
    SystemInfo,
    Zone,
    new_backflow_device,
    new_controller,
    new_inspection_record,
    new_zone,
)
from wetcheck.services.geolocation import (
    NominatimReverseGeocoder,
    PositionSource,
    ReverseGeocoder,
    UnsupportedPositionSource,
    parse_target_key,
)
from wetcheck.services.notifications import NotificationCenter, Notifier
from utils.image_utils import normalize_image
from utils.logger import setup_logger
from utils.config import config
from utils.tasks import spawn

logger = setup_logger(__name__, level=config.log_level, log_file=config.get_log_file(), component="WIZARD")

PROPERTY_TYPES = ("residential", "commercial")
PHOTO_KINDS = ("before", "after")
REVIEW_FIELDS = ("recommendations", "priority", "estimated_cost", "estimated_time", "technician_name")
ZONE_INCREMENT = 4

_PRIORITY_BY_LABEL = {label: key for key, label in PRIORITY_LABELS.items()}


def resolve_field(model: Type[BaseModel], section: str, key: str, read_only: Tuple[str, ...] = ("id",)) -> str:
    """
    Attribute name for ``key`` given as a field name or its camelCase alias.

    Raises:
        UnknownFieldError: If the key is not a writable field of ``model``
    """
    name = None
    if key in model.model_fields:
        name = key
    else:
        for field_name, info in model.model_fields.items():
            if info.alias == key:
                name = field_name
                break

    if name is None or name in read_only:
        raise UnknownFieldError(section, key)
    return name


class InspectionStateMachine:
    """
    Wizard controller for one editing session.

    Phases: property selection, then the five steps Client, System, Zones,
    Review and Summary. Reaching Summary autosaves once per visit.
    """

    def __init__(
        self,
        session: Optional[UserSession],
        repository: InspectionRepository,
        position_source: Optional[PositionSource] = None,
        geocoder: Optional[ReverseGeocoder] = None,
        notifier: Optional[Notifier] = None
    ):
        self.session = session
        self.repository = repository
        self.position_source = position_source or UnsupportedPositionSource()
        self.geocoder = geocoder or NominatimReverseGeocoder()
        self.notifier = notifier or NotificationCenter()
        self.logger = logger

        self.record: InspectionRecord = new_inspection_record()
        self.in_property_selection = True
        self.step = FIRST_STEP
        self.inspection_id: Optional[str] = None
        self.group_mode = "none"
        self.generation = 0

        self.saving = False
        self.autosave_task: Optional[asyncio.Task] = None
        self._autosave_latch = False
        self._locating: Set[str] = set()

    # ------------------------------------------------------------------
    # Phase and record lifecycle
    # ------------------------------------------------------------------

    @property
    def locating(self) -> FrozenSet[str]:
        """Target keys with a location request in flight."""
        return frozenset(self._locating)

    @property
    def branding(self) -> Optional[CompanyBranding]:
        return self.session.branding if self.session else None

    def _replace_record(self, record: InspectionRecord):
        self.record = record
        self.generation += 1

    def start_new_inspection(self):
        """Discard the current record and return to property selection."""
        self._replace_record(new_inspection_record())
        self.inspection_id = None
        self.group_mode = "none"
        self.in_property_selection = True
        self._set_step(FIRST_STEP)
        self.logger.info("Started new inspection")

    def reset(self):
        """Return to property selection keeping the entered data."""
        self.in_property_selection = True
        self._set_step(FIRST_STEP)

    def set_property_type(self, property_type: str) -> bool:
        """
        Select the property type and enter the first step.

        A different type resets the record to defaults for that type. The
        same type leaves the record untouched.

        Returns:
            True if the record was reset
        """
        if property_type not in PROPERTY_TYPES:
            raise ValueError(f"Invalid property type: {property_type}. Must be one of: {list(PROPERTY_TYPES)}")

        changed = self.record.property_type != property_type
        if changed:
            self._replace_record(new_inspection_record(property_type))
            self.inspection_id = None
            self.logger.info(f"New {property_type} inspection")

        self.in_property_selection = False
        self._set_step(FIRST_STEP)
        return changed

    def switch_property_type(self, property_type: str):
        """Change only the type. Commercial-only fields are kept."""
        if property_type not in PROPERTY_TYPES:
            raise ValueError(f"Invalid property type: {property_type}. Must be one of: {list(PROPERTY_TYPES)}")
        self.record.property_type = property_type

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def _set_step(self, step: int):
        self.step = WizardStep(step)

        if self.step != LAST_STEP or self.in_property_selection:
            self._autosave_latch = False
            return

        if not self._autosave_latch and self.session is not None and self.record.property_type:
            self._autosave_latch = True
            self.autosave_task = spawn(self.save_inspection(silent=True), name="autosave")

    def go_to(self, step: int) -> bool:
        """Jump to a step. Out-of-range steps are ignored."""
        if self.in_property_selection or not FIRST_STEP <= step <= LAST_STEP:
            return False
        self._set_step(step)
        return True

    def advance(self, direction: int) -> bool:
        """Move one step forward (+1) or back (-1) if that stays in range."""
        return self.go_to(self.step + direction)

    # ------------------------------------------------------------------
    # Field updaters
    # ------------------------------------------------------------------

    def update_client(self, key: str, value: Any):
        setattr(self.record.client, resolve_field(ClientInfo, "client", key, ()), value)

    def update_system(self, key: str, value: Any):
        setattr(self.record.system, resolve_field(SystemInfo, "system", key, ()), value)

    def update_zone(self, index: int, key: str, value: Any):
        zone = self.record.zones[index]
        setattr(zone, resolve_field(Zone, "zone", key), value)

    def update_controller(self, index: int, key: str, value: Any):
        controller = self.record.controllers[index]
        setattr(controller, resolve_field(Controller, "controller", key), value)

    def update_backflow_device(self, index: int, key: str, value: Any):
        device = self.record.backflow_devices[index]
        setattr(device, resolve_field(BackflowDevice, "backflow device", key), value)

    def toggle_observation(self, key: str) -> bool:
        """Flip one observation flag; returns the new value."""
        name = resolve_field(Observations, "observation", key, ())
        value = not getattr(self.record.observations, name)
        setattr(self.record.observations, name, value)
        return value

    def update_review(self, key: str, value: Any):
        """Recommendations, priority, estimated cost/time and technician name."""
        name = resolve_field(InspectionRecord, "review", key, ())
        if name not in REVIEW_FIELDS:
            raise UnknownFieldError("review", key)
        if name == "priority":
            value = _PRIORITY_BY_LABEL.get(value, value) or None
        setattr(self.record, name, value)

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    def set_active_zone_count(self, count: int) -> int:
        """
        Clamp to [1, MAX_ZONES] and allocate zones up to the count.

        Zones are never removed, so shrinking then growing keeps their data.
        """
        count = max(1, min(int(count), MAX_ZONES))
        zones = self.record.zones
        while len(zones) < count:
            zones.append(new_zone(len(zones) + 1))
        self.record.active_zone_count = count
        return count

    def add_more_zones(self) -> int:
        return self.set_active_zone_count(self.record.active_zone_count + ZONE_INCREMENT)

    def add_controller(self) -> bool:
        controllers = self.record.controllers
        if len(controllers) >= MAX_CONTROLLERS:
            return False
        controllers.append(new_controller(len(controllers) + 1))
        return True

    def remove_controller(self, index: int) -> bool:
        controllers = self.record.controllers
        if len(controllers) <= 1 or not 0 <= index < len(controllers):
            return False
        del controllers[index]
        for position, controller in enumerate(controllers):
            controller.id = position + 1
        return True

    def add_backflow_device(self) -> bool:
        devices = self.record.backflow_devices
        if len(devices) >= MAX_BACKFLOW_DEVICES:
            return False
        devices.append(new_backflow_device(len(devices) + 1))
        return True

    def remove_backflow_device(self, index: int) -> bool:
        devices = self.record.backflow_devices
        if len(devices) <= 1 or not 0 <= index < len(devices):
            return False
        del devices[index]
        for position, device in enumerate(devices):
            device.id = position + 1
        return True

    def add_zone_material(self, zone_index: int, part_name: str = "", quantity: int = 1):
        self.record.zones[zone_index].materials.append(
            MaterialItem(part_name=part_name, quantity=quantity)
        )

    def update_zone_material(self, zone_index: int, material_index: int, key: str, value: Any):
        item = self.record.zones[zone_index].materials[material_index]
        setattr(item, resolve_field(MaterialItem, "material", key, ()), value)

    def remove_zone_material(self, zone_index: int, material_index: int) -> bool:
        materials = self.record.zones[zone_index].materials
        if not 0 <= material_index < len(materials):
            return False
        del materials[material_index]
        return True

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def stats(self) -> ZoneStats:
        return zone_stats(self.record)

    @property
    def ok_count(self) -> int:
        return self.stats.ok_count

    @property
    def issue_count(self) -> int:
        return self.stats.issue_count

    @property
    def pending_count(self) -> int:
        return self.stats.pending_count

    @property
    def progress_percent(self) -> int:
        return self.stats.progress_percent

    def set_group_mode(self, mode: str):
        if mode not in GROUP_MODES:
            raise ValueError(f"Invalid group mode: {mode}. Must be one of: {list(GROUP_MODES)}")
        self.group_mode = mode

    def grouped_zones(self) -> List[ZoneGroup]:
        return group_zones(self.record, self.group_mode)

    # ------------------------------------------------------------------
    # Location targets
    # ------------------------------------------------------------------

    def _location_slot(self, target_key: str) -> Optional[Tuple[BaseModel, str, str]]:
        """(entity, geolocation attribute, image attribute) for a target key, if it still exists."""
        kind, target_id = parse_target_key(target_key)
        if kind == "client":
            return self.record.client, "geolocation", "location_image"
        if kind == "pump":
            return self.record.system, "pump_geolocation", "pump_location_image"

        entities = self.record.zones if kind == "zone" else self.record.controllers
        if target_id > len(entities):
            return None
        return entities[target_id - 1], "geolocation", "location_image"

    async def acquire_device_location(self, target_key: str) -> Optional[Geolocation]:
        """
        Read the device position into the target's geolocation field.

        Returns:
            The stored location, or None if it failed or was discarded

        Raises:
            AlreadyInProgress: If a request for the same key is pending
            ValueError: If the target key is malformed
        """
        parse_target_key(target_key)
        if target_key in self._locating:
            raise AlreadyInProgress(target_key)

        self._locating.add(target_key)
        generation = self.generation

        try:
            lat, lng = await asyncio.to_thread(
                self.position_source.current_position,
                config.geolocation_timeout,
                config.geolocation_high_accuracy
            )
            location = Geolocation(lat=lat, lng=lng)

        except GeolocationError as e:
            self.logger.warning(f"Location for {target_key} failed ({e.reason}): {e.message}")
            self.notifier.alert(f"Location error: {e.message}")
            return None

        except Exception as e:
            error = GeolocationError("unavailable", f"Position unavailable: {e}")
            self.logger.warning(f"Location for {target_key} failed: {error.message}")
            self.notifier.alert(f"Location error: {error.message}")
            return None

        finally:
            self._locating.discard(target_key)

        if generation != self.generation:
            self.logger.info(f"Discarding location for {target_key}: record was replaced")
            return None

        slot = self._location_slot(target_key)
        if slot is None:
            self.logger.info(f"Discarding location for {target_key}: target no longer exists")
            return None

        entity, geo_attr, _ = slot
        setattr(entity, geo_attr, location)

        if target_key == "client":
            await self.reverse_geocode_client_address(lat, lng, generation)

        return location

    async def reverse_geocode_client_address(self, lat: float, lng: float, generation: Optional[int] = None) -> bool:
        """
        Fill client address and city from coordinates when possible.

        Failures are logged and otherwise ignored; coordinates are never
        touched here.
        """
        generation = self.generation if generation is None else generation

        try:
            result = await asyncio.to_thread(self.geocoder.reverse, lat, lng)
        except Exception as e:
            self.logger.warning(f"Reverse geocoding failed: {e}")
            return False

        if generation != self.generation:
            return False

        if result.street:
            self.record.client.address = result.street
        if result.city:
            self.record.client.city = result.city
        return True

    # ------------------------------------------------------------------
    # Photos
    # ------------------------------------------------------------------

    async def _normalize(self, raw: Any, label: str) -> Optional[str]:
        try:
            return await asyncio.to_thread(normalize_image, raw)
        except ImageEncodingFailure as e:
            self.logger.warning(f"Could not process {label}: {e}")
            self.notifier.notify(f"Photo error: {e}", "error", config.error_message_seconds)
            return None

    async def capture_zone_photo(self, zone_index: int, kind: str, raw: Any) -> bool:
        """Normalise a before/after photo and append it to the zone."""
        if kind not in PHOTO_KINDS:
            raise ValueError(f"Invalid photo kind: {kind}. Must be one of: {list(PHOTO_KINDS)}")

        zone = self.record.zones[zone_index]
        generation = self.generation
        encoded = await self._normalize(raw, f"zone {zone.id} {kind} photo")
        if encoded is None or generation != self.generation:
            return False

        getattr(self.record.zones[zone_index], f"{kind}_images").append(encoded)
        return True

    def remove_zone_photo(self, zone_index: int, kind: str, photo_index: int) -> bool:
        if kind not in PHOTO_KINDS:
            raise ValueError(f"Invalid photo kind: {kind}. Must be one of: {list(PHOTO_KINDS)}")
        photos = getattr(self.record.zones[zone_index], f"{kind}_images")
        if not 0 <= photo_index < len(photos):
            return False
        del photos[photo_index]
        return True

    async def capture_location_photo(self, target_key: str, raw: Any) -> bool:
        """Normalise a photo of a located target (client, pump, zone or controller)."""
        if self._location_slot(target_key) is None:
            return False

        generation = self.generation
        encoded = await self._normalize(raw, f"{target_key} location photo")
        if encoded is None or generation != self.generation:
            return False

        slot = self._location_slot(target_key)
        if slot is None:
            return False
        entity, _, image_attr = slot
        setattr(entity, image_attr, encoded)
        return True

    def clear_location_photo(self, target_key: str) -> bool:
        slot = self._location_slot(target_key)
        if slot is None:
            return False
        entity, _, image_attr = slot
        setattr(entity, image_attr, None)
        return True

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def save_inspection(self, silent: bool = False) -> Optional[str]:
        """
        Save the current record.

        Only one save runs at a time; a call made while another is pending
        returns None without writing. Silent saves (the autosave) only log
        failures.

        Returns:
            The inspection id, or None if nothing was saved
        """
        if self.session is None:
            self.logger.warning("Save skipped: no signed-in user")
            return None

        if not self.record.property_type:
            self.logger.warning("Save skipped: no property type selected")
            return None

        if self.saving:
            self.logger.debug("Save already in progress; request coalesced")
            return None

        self.saving = True
        generation = self.generation
        snapshot = strip_binary_content(self.record)

        try:
            inspection_id = await asyncio.to_thread(
                self.repository.save,
                self.session.subject_id,
                snapshot,
                self.inspection_id,
                int(self.step)
            )

        except PersistenceError as e:
            detail = e.cause if e.cause is not None else e.message
            if silent:
                self.logger.warning(f"Autosave failed: {detail}")
            else:
                self.notifier.notify(f"Error saving: {detail}", "error", config.error_message_seconds)
            return None

        finally:
            self.saving = False

        if generation != self.generation:
            self.logger.info(f"Saved {inspection_id} after the record was replaced; id not kept")
            return inspection_id

        self.inspection_id = inspection_id
        if not silent:
            self.notifier.notify("Inspection saved successfully", "success", config.save_message_seconds)
        return inspection_id

    async def list_saved_inspections(self) -> List[SavedInspectionSummary]:
        if self.session is None:
            return []
        try:
            return await asyncio.to_thread(self.repository.list, self.session.subject_id)
        except PersistenceError as e:
            self.notifier.notify(f"Error loading inspections: {e.cause or e.message}", "error", config.error_message_seconds)
            return []

    async def resume_inspection(self, inspection_id: str) -> bool:
        """Load a saved inspection and continue at the step it was saved at."""
        try:
            record, summary = await asyncio.to_thread(self.repository.resume, inspection_id)
        except PersistenceError as e:
            self.notifier.notify(f"Error loading inspection: {e.cause or e.message}", "error", config.error_message_seconds)
            return False

        self._replace_record(record)
        self.inspection_id = inspection_id
        self.in_property_selection = False
        self._autosave_latch = False
        self._set_step(max(FIRST_STEP, min(summary.last_completed_step, LAST_STEP)))
        return True

    async def delete_saved_inspection(self, inspection_id: str) -> bool:
        try:
            await asyncio.to_thread(self.repository.delete, inspection_id)
        except PersistenceError as e:
            self.notifier.alert(f"Error deleting: {e.cause or e.message}")
            return False

        if self.inspection_id == inspection_id:
            self.inspection_id = None
        return True

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def render_text(self) -> str:
        return render_text(self.record, self.branding)

    def render_document(self) -> RenderedDocument:
        return render_document(self.record, self.branding)

    def share_link(self, file_name: Optional[str] = None) -> str:
        return share_link(self.record, file_name or self.render_document().file_name)

    async def export_reports(self, output_dir: Optional[Path] = None) -> Optional[Tuple[Path, Path]]:
        """Write text and PDF reports; failures are shown to the user."""
        try:
            return await asyncio.to_thread(write_reports, self.record, self.branding, output_dir)
        except Exception as e:
            self.logger.error(f"Report export failed: {e}")
            self.notifier.alert(f"PDF error: {e}")
            return None

    def snapshot(self) -> Dict[str, Any]:
        """Current record in its stored (camelCase) shape, images included."""
        return self.record.model_dump(by_alias=True, mode="json")
