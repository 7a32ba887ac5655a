"""
Persistence adapter for inspections.

Writes a storage projection of an InspectionRecord (every image field
stripped) to the ``inspections`` collection and reads it back. The record
shape inside ``data`` is the camelCase alias form of the schema models.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from wetcheck.database.store import DocumentStore, Ordering, QueryFilter, StoredDocument
from wetcheck.exceptions import (
    InspectionNotFoundError,
    OrderingUnavailableError,
    PersistenceError,
)
from wetcheck.schemas.models import (
    DEFAULT_ZONE_COUNT,
    MAX_BACKFLOW_DEVICES,
    MAX_CONTROLLERS,
    MAX_ZONES,
    PRIORITY_LABELS,
    InspectionRecord,
    SavedInspectionSummary,
)
from utils.logger import setup_logger, set_trace_id, clear_trace_id
from utils.config import config

logger = setup_logger(__name__, level=config.log_level, log_file=config.get_log_file(), component="REPOSITORY")

COLLECTION = "inspections"

# Field renames between documents written by earlier app versions and the
# current schema, per entity.
_LEGACY_KEYS: Dict[str, Dict[str, str]] = {
    "root": {
        "backflows": "backflowDevices",
        "estCost": "estimatedCost",
        "estTime": "estimatedTime",
        "techName": "technicianName",
    },
    "client": {"locationImg": "locationImage"},
    "system": {"pumpLocationImg": "pumpLocationImage"},
    "controller": {
        "zoneFrom": "zoneRangeFrom",
        "zoneTo": "zoneRangeTo",
        "locationImg": "locationImage",
    },
    "zone": {
        "heads": "headCount",
        "ok": "okFlag",
        "beforeImgs": "beforeImages",
        "afterImgs": "afterImages",
        "locationImg": "locationImage",
    },
    "material": {"part": "partName", "qty": "quantity"},
}

_PRIORITY_BY_LABEL = {label: key for key, label in PRIORITY_LABELS.items()}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso_timestamp(moment: datetime) -> str:
    """ISO-8601 with millisecond precision and a Z suffix."""
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _new_document_id() -> str:
    return uuid.uuid4().hex


# ============================================================================
# STORAGE PROJECTION
# ============================================================================

def strip_binary_content(record: InspectionRecord) -> InspectionRecord:
    """
    Copy the record with every image-bearing field emptied.

    Location images become None and photo sequences become empty. The input
    is never modified.
    """
    return record.model_copy(update={
        "client": record.client.model_copy(update={"location_image": None}, deep=True),
        "system": record.system.model_copy(update={"pump_location_image": None}, deep=True),
        "controllers": [
            c.model_copy(update={"location_image": None}, deep=True)
            for c in record.controllers
        ],
        "backflow_devices": [b.model_copy(deep=True) for b in record.backflow_devices],
        "zones": [
            z.model_copy(
                update={"before_images": [], "after_images": [], "location_image": None},
                deep=True
            )
            for z in record.zones
        ],
        "observations": record.observations.model_copy(),
    })


def customer_display_name(record: InspectionRecord) -> str:
    return record.client.name or "Unnamed"


def address_display_string(record: InspectionRecord) -> str:
    parts = [record.client.address, record.client.city]
    return ", ".join(p for p in parts if p) or "No address"


# ============================================================================
# PAYLOAD UPGRADE / DEFENSIVE REBUILD
# ============================================================================

def _rename(entry: Any, renames: Dict[str, str]) -> Dict[str, Any]:
    if not isinstance(entry, dict):
        return {}
    result = dict(entry)
    for old, new in renames.items():
        if old in result:
            value = result.pop(old)
            result.setdefault(new, value)
    return result


def _fold_coordinates(entry: Dict[str, Any], lat_key: str, lng_key: str, target: str):
    """Replace a loose lat/lng pair with a nested geolocation object."""
    lat = entry.pop(lat_key, None)
    lng = entry.pop(lng_key, None)
    if entry.get(target) is None and lat is not None and lng is not None:
        entry[target] = {"lat": lat, "lng": lng}


def _quantity(value: Any) -> int:
    """Older documents store quantities as entered text; blank or unreadable values count as one."""
    if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
        return value
    try:
        quantity = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 1
    return quantity if quantity > 0 else 1


def _upgrade_material(entry: Any) -> Dict[str, Any]:
    material = _rename(entry, _LEGACY_KEYS["material"])
    if "quantity" in material:
        material["quantity"] = _quantity(material["quantity"])
    return material


def upgrade_legacy_payload(data: Dict[str, Any]) -> Dict[str, Any]:
    """Translate older field names and shapes to the current schema."""
    payload = _rename(data, _LEGACY_KEYS["root"])

    client = _rename(payload.get("client"), _LEGACY_KEYS["client"])
    _fold_coordinates(client, "lat", "lng", "geolocation")
    payload["client"] = client

    system = _rename(payload.get("system"), _LEGACY_KEYS["system"])
    _fold_coordinates(system, "pumpLat", "pumpLng", "pumpGeolocation")
    payload["system"] = system

    controllers = []
    for entry in payload.get("controllers") or []:
        controller = _rename(entry, _LEGACY_KEYS["controller"])
        _fold_coordinates(controller, "lat", "lng", "geolocation")
        controllers.append(controller)
    payload["controllers"] = controllers

    zones = []
    for entry in payload.get("zones") or []:
        zone = _rename(entry, _LEGACY_KEYS["zone"])
        _fold_coordinates(zone, "lat", "lng", "geolocation")
        zone["materials"] = [
            _upgrade_material(m) for m in zone.get("materials") or []
        ]
        zones.append(zone)
    payload["zones"] = zones

    priority = payload.get("priority")
    if priority in _PRIORITY_BY_LABEL:
        payload["priority"] = _PRIORITY_BY_LABEL[priority]
    elif priority not in PRIORITY_LABELS:
        payload["priority"] = None

    return payload


def _renumbered(entries: List[Dict[str, Any]], limit: int) -> List[Dict[str, Any]]:
    """Dense 1-based ids from position, at most ``limit`` entries."""
    return [{**entry, "id": i + 1} for i, entry in enumerate(entries[:limit])]


def rebuild_record(data: Dict[str, Any], fallback_property_type: Optional[str] = None) -> InspectionRecord:
    """
    Reconstruct a full record from a stored projection.

    Sequences are rebuilt defensively: ids are re-derived from position,
    controllers and backflow devices never drop below one entry, and zones
    are padded with defaults up to the stored active count.

    Raises:
        ValidationError: If the payload cannot be coerced into the schema
    """
    payload = upgrade_legacy_payload(data)

    payload["propertyType"] = (
        payload.get("propertyType") or fallback_property_type or "residential"
    )

    controllers = _renumbered(payload["controllers"], MAX_CONTROLLERS)
    payload["controllers"] = controllers or [{"id": 1}]

    devices = [d for d in payload.get("backflowDevices") or [] if isinstance(d, dict)]
    payload["backflowDevices"] = _renumbered(devices, MAX_BACKFLOW_DEVICES) or [{"id": 1}]

    zones = payload["zones"]
    stored_count = payload.get("activeZoneCount") or len(zones) or DEFAULT_ZONE_COUNT
    active_count = max(1, min(int(stored_count), MAX_ZONES))
    while len(zones) < active_count:
        zones.append({})
    payload["zones"] = _renumbered(zones, MAX_ZONES)
    payload["activeZoneCount"] = active_count

    return InspectionRecord.model_validate(payload)


def summary_from_document(document: StoredDocument) -> SavedInspectionSummary:
    data = document.data
    return SavedInspectionSummary(
        id=document.id,
        owner_id=data.get("userId") or "",
        customer_display_name=data.get("customerName") or "Unnamed",
        address_display_string=data.get("address") or "No address",
        property_type=data.get("propertyType") or "residential",
        saved_at=data.get("savedAt") or "",
        last_completed_step=int(data.get("step") or 0),
    )


# ============================================================================
# REPOSITORY
# ============================================================================

class InspectionRepository:
    """Save, load, list and delete inspections in a document store."""

    def __init__(
        self,
        store: DocumentStore,
        clock: Callable[[], datetime] = _utc_now,
        id_factory: Callable[[], str] = _new_document_id
    ):
        self.store = store
        self.clock = clock
        self.id_factory = id_factory
        self.logger = logger

    def build_document(self, owner_id: str, record: InspectionRecord, step: int = 0) -> Dict[str, Any]:
        """Stored document for a record: summary fields plus the stripped projection."""
        projection = strip_binary_content(record)
        return {
            "userId": owner_id,
            "customerName": customer_display_name(record),
            "address": address_display_string(record),
            "propertyType": record.property_type or "residential",
            "savedAt": _iso_timestamp(self.clock()),
            "step": step,
            "data": projection.model_dump(by_alias=True, mode="json"),
        }

    def save(
        self,
        owner_id: str,
        record: InspectionRecord,
        existing_id: Optional[str] = None,
        step: int = 0
    ) -> str:
        """
        Write the storage projection of a record.

        Args:
            owner_id: Subject id of the signed-in user
            record: Full in-memory record (images are stripped here)
            existing_id: Id of a previous save of the same record
            step: Wizard step the record was saved at

        Returns:
            The inspection id

        Raises:
            PersistenceError: If the store write fails
        """
        inspection_id = existing_id or self.id_factory()
        set_trace_id(inspection_id)

        try:
            document = self.build_document(owner_id, record, step)
            self.store.put(COLLECTION, inspection_id, document)
            self.logger.info(f"Saved inspection {inspection_id} ({document['customerName']})")
            return inspection_id

        except Exception as e:
            self.logger.error(f"Failed to save inspection {inspection_id}: {e}")
            raise PersistenceError("save", e, inspection_id) from e

        finally:
            clear_trace_id()

    def _get_document(self, inspection_id: str) -> Dict[str, Any]:
        try:
            document = self.store.get(COLLECTION, inspection_id)
        except Exception as e:
            self.logger.error(f"Failed to read inspection {inspection_id}: {e}")
            raise PersistenceError("load", e, inspection_id) from e

        if document is None:
            raise InspectionNotFoundError(inspection_id)
        return document

    def resume(self, inspection_id: str) -> Tuple[InspectionRecord, SavedInspectionSummary]:
        """
        Load a record together with its list summary (which carries the step).

        Raises:
            InspectionNotFoundError: If no inspection is stored under the id
            PersistenceError: If the read fails or the payload is unusable
        """
        set_trace_id(inspection_id)

        try:
            document = self._get_document(inspection_id)
            data = document.get("data")
            if not isinstance(data, dict):
                raise PersistenceError(
                    "load", ValueError("stored inspection has no data"), inspection_id
                )

            try:
                record = rebuild_record(data, document.get("propertyType"))
            except (ValidationError, TypeError, ValueError) as e:
                self.logger.error(f"Stored inspection {inspection_id} is unreadable: {e}")
                raise PersistenceError("load", e, inspection_id) from e

            summary = summary_from_document(StoredDocument(id=inspection_id, data=document))
            self.logger.info(f"Loaded inspection {inspection_id}")
            return record, summary

        finally:
            clear_trace_id()

    def load(self, inspection_id: str) -> InspectionRecord:
        """Reconstruct the record stored under ``inspection_id``."""
        record, _ = self.resume(inspection_id)
        return record

    def list(self, owner_id: str) -> List[SavedInspectionSummary]:
        """
        Summaries of every inspection owned by ``owner_id``, newest first.

        Falls back to an unordered query sorted in memory when the store
        cannot order by ``savedAt``.
        """
        filters = [QueryFilter("userId", owner_id)]

        try:
            try:
                documents = self.store.query(
                    COLLECTION, filters, Ordering("savedAt", descending=True)
                )
            except OrderingUnavailableError as e:
                self.logger.warning(f"Ordered inspection query unavailable, sorting locally: {e}")
                documents = self.store.query(COLLECTION, filters)
                documents.sort(key=lambda d: d.data.get("savedAt") or "", reverse=True)

        except Exception as e:
            self.logger.error(f"Failed to list inspections for {owner_id}: {e}")
            raise PersistenceError("list", e) from e

        return [summary_from_document(d) for d in documents]

    def delete(self, inspection_id: str) -> None:
        """Remove a stored inspection. Unknown ids are ignored."""
        try:
            self.store.delete(COLLECTION, inspection_id)
            self.logger.info(f"Deleted inspection {inspection_id}")

        except Exception as e:
            self.logger.error(f"Failed to delete inspection {inspection_id}: {e}")
            raise PersistenceError("delete", e, inspection_id) from e
