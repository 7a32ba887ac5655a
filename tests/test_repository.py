"""
Tests for the inspection repository and document stores.
"""

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.pool import StaticPool

from wetcheck.database import (
    COLLECTION,
    InMemoryDocumentStore,
    InspectionRepository,
    Ordering,
    QueryFilter,
    SqlDocumentStore,
    health_check_database,
    init_database,
    rebuild_record,
    strip_binary_content,
)
from wetcheck.database.repository import upgrade_legacy_payload
from wetcheck.exceptions import (
    DocumentStoreError,
    InspectionNotFoundError,
    OrderingUnavailableError,
    PersistenceError,
)
from wetcheck.schemas.models import Geolocation, MaterialItem, new_inspection_record

from tests.conftest import FailingStore, make_clock, make_id_factory

IMAGE = "data:image/jpeg;base64,/9j/4AAQSkZJRg=="


@pytest.fixture
def photographed_record():
    """Commercial record with every image-bearing field filled."""
    record = new_inspection_record("commercial")
    record.client.name = "Acme Corp"
    record.client.address = "1 Main St"
    record.client.city = "Austin"
    record.client.geolocation = Geolocation(lat=30.1, lng=-97.2)
    record.client.location_image = IMAGE
    record.system.pump_location_image = IMAGE
    record.controllers[0].location_image = IMAGE
    record.zones[0].before_images = [IMAGE, IMAGE]
    record.zones[0].after_images = [IMAGE]
    record.zones[0].location_image = IMAGE
    record.zones[0].geolocation = Geolocation(lat=30.2, lng=-97.3)
    record.zones[1].materials = [MaterialItem(part_name="Valve", quantity=2)]
    record.priority = "high"
    return record


@pytest.fixture
def sql_store():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    assert init_database(engine) is True
    return SqlDocumentStore(bind=engine, orderable_fields=["savedAt"]), engine


class TestStripBinaryContent:
    """Tests for the storage projection."""

    def test_every_image_is_removed(self, photographed_record):
        stripped = strip_binary_content(photographed_record)

        assert stripped.client.location_image is None
        assert stripped.system.pump_location_image is None
        assert stripped.controllers[0].location_image is None
        assert stripped.zones[0].before_images == []
        assert stripped.zones[0].after_images == []
        assert stripped.zones[0].location_image is None

    def test_non_image_fields_are_kept(self, photographed_record):
        stripped = strip_binary_content(photographed_record)

        assert stripped.client.geolocation == photographed_record.client.geolocation
        assert stripped.zones[0].geolocation == photographed_record.zones[0].geolocation
        assert stripped.zones[1].materials == photographed_record.zones[1].materials
        assert stripped.priority == "high"

    def test_input_is_not_modified(self, photographed_record):
        strip_binary_content(photographed_record)
        assert len(photographed_record.zones[0].before_images) == 2
        assert photographed_record.client.location_image == IMAGE

    def test_idempotent(self, photographed_record):
        once = strip_binary_content(photographed_record)
        assert strip_binary_content(once) == once


class TestInspectionRepository:
    """Tests for save, load, list and delete."""

    def test_save_writes_summary_fields(self, repository, store, photographed_record):
        inspection_id = repository.save("user-1", photographed_record, step=3)

        document = store.get(COLLECTION, inspection_id)
        assert inspection_id == "insp-1"
        assert document["userId"] == "user-1"
        assert document["customerName"] == "Acme Corp"
        assert document["address"] == "1 Main St, Austin"
        assert document["propertyType"] == "commercial"
        assert document["savedAt"] == "2024-05-01T12:00:00.000Z"
        assert document["step"] == 3
        assert document["data"]["client"]["locationImage"] is None

    def test_summary_placeholders(self, repository, store):
        inspection_id = repository.save("user-1", new_inspection_record("residential"))

        document = store.get(COLLECTION, inspection_id)
        assert document["customerName"] == "Unnamed"
        assert document["address"] == "No address"

    def test_existing_id_is_reused(self, repository, store, photographed_record):
        first = repository.save("user-1", photographed_record)
        second = repository.save("user-1", photographed_record, existing_id=first)

        assert first == second
        assert len(store.query(COLLECTION)) == 1

    def test_round_trip_returns_stripped_record(self, repository, photographed_record):
        inspection_id = repository.save("user-1", photographed_record)

        loaded = repository.load(inspection_id)

        assert loaded == strip_binary_content(photographed_record)

    def test_resume_returns_step(self, repository, photographed_record):
        inspection_id = repository.save("user-1", photographed_record, step=2)

        _, summary = repository.resume(inspection_id)

        assert summary.last_completed_step == 2
        assert summary.customer_display_name == "Acme Corp"
        assert summary.owner_id == "user-1"

    def test_load_missing(self, repository):
        with pytest.raises(InspectionNotFoundError):
            repository.load("nope")

    def test_load_without_data(self, repository, store):
        store.put(COLLECTION, "broken", {"userId": "user-1"})
        with pytest.raises(PersistenceError):
            repository.load("broken")

    def test_list_newest_first_for_owner(self, repository, photographed_record):
        first = repository.save("user-1", photographed_record)
        second = repository.save("user-1", photographed_record)
        repository.save("user-2", photographed_record)

        summaries = repository.list("user-1")

        assert [s.id for s in summaries] == [second, first]

    def test_list_falls_back_when_ordering_unavailable(self):
        """Unordered query sorted locally; documents without savedAt go last."""
        store = InMemoryDocumentStore(orderable_fields=[])
        repository = InspectionRepository(store, clock=make_clock(), id_factory=make_id_factory())
        record = new_inspection_record("residential")
        store.put(COLLECTION, "legacy", {"userId": "user-1", "data": {}})
        older = repository.save("user-1", record)
        newer = repository.save("user-1", record)

        summaries = repository.list("user-1")

        assert [s.id for s in summaries] == [newer, older, "legacy"]

    def test_delete_is_idempotent(self, repository, photographed_record):
        inspection_id = repository.save("user-1", photographed_record)

        repository.delete(inspection_id)
        repository.delete(inspection_id)

        assert repository.list("user-1") == []

    def test_store_failures_become_persistence_errors(self, photographed_record):
        repository = InspectionRepository(FailingStore(DocumentStoreError("quota exceeded")))

        with pytest.raises(PersistenceError) as exc_info:
            repository.save("user-1", photographed_record, existing_id="insp-5")
        assert exc_info.value.operation == "save"
        assert exc_info.value.inspection_id == "insp-5"
        assert str(exc_info.value.cause) == "quota exceeded"

        with pytest.raises(PersistenceError):
            repository.list("user-1")
        with pytest.raises(PersistenceError):
            repository.delete("insp-5")


class TestRebuildRecord:
    """Tests for rebuilding records from stored payloads."""

    def test_zones_padded_to_active_count(self):
        record = rebuild_record({
            "propertyType": "residential",
            "activeZoneCount": 5,
            "zones": [{"id": 9, "type": "Spray"}],
        })

        assert [z.id for z in record.zones] == [1, 2, 3, 4, 5]
        assert record.zones[0].type == "Spray"
        assert record.active_zone_count == 5

    def test_empty_sequences_get_one_entry(self):
        record = rebuild_record({"controllers": [], "backflowDevices": []})

        assert [c.id for c in record.controllers] == [1]
        assert [b.id for b in record.backflow_devices] == [1]

    def test_property_type_fallback(self):
        assert rebuild_record({}).property_type == "residential"
        assert rebuild_record({}, "commercial").property_type == "commercial"

    def test_active_count_clamped(self):
        record = rebuild_record({"activeZoneCount": 999})
        assert record.active_zone_count == 120
        assert len(record.zones) == 120

    def test_legacy_payload_upgraded(self):
        """Older documents use short names and loose coordinates."""
        record = rebuild_record({
            "backflows": [{"type": "RP"}],
            "techName": "Bob",
            "estCost": "$200",
            "priority": "High Priority",
            "client": {"name": "Old Client", "lat": 30.5, "lng": -97.5},
            "system": {"pumpLat": 30.6, "pumpLng": -97.6},
            "controllers": [{"zoneFrom": "1", "zoneTo": "8"}],
            "zones": [{"heads": "12", "ok": True, "materials": [{"part": "Valve", "qty": 2}]}],
            "activeZoneCount": 1,
        })

        assert record.backflow_devices[0].type == "RP"
        assert record.technician_name == "Bob"
        assert record.estimated_cost == "$200"
        assert record.priority == "high"
        assert record.client.geolocation == Geolocation(lat=30.5, lng=-97.5)
        assert record.system.pump_geolocation == Geolocation(lat=30.6, lng=-97.6)
        assert record.controllers[0].zone_range_to == "8"
        assert record.zones[0].head_count == "12"
        assert record.zones[0].ok_flag is True
        assert record.zones[0].materials == [MaterialItem(part_name="Valve", quantity=2)]

    def test_unknown_priority_dropped(self):
        assert upgrade_legacy_payload({"priority": "someday"})["priority"] is None

    def test_text_quantities_upgraded(self):
        """Cleared or typed-in quantities were stored as text."""
        record = rebuild_record({
            "activeZoneCount": 1,
            "zones": [{"materials": [
                {"part": "Valve", "qty": ""},
                {"part": "Pipe", "qty": "10"},
                {"part": "Nozzle", "qty": "abc"},
                {"part": "Head", "qty": -3},
                {"partName": "Wire", "quantity": 0},
            ]}],
        })

        assert [(m.part_name, m.quantity) for m in record.zones[0].materials] == [
            ("Valve", 1),
            ("Pipe", 10),
            ("Nozzle", 1),
            ("Head", 1),
            ("Wire", 0),
        ]

    def test_legacy_document_with_blank_quantity_loads(self, repository, store):
        store.put(COLLECTION, "old", {
            "userId": "user-1",
            "propertyType": "residential",
            "data": {"zones": [{"materials": [{"part": "Valve", "qty": ""}]}], "activeZoneCount": 1},
        })

        record = repository.load("old")

        assert record.zones[0].materials == [MaterialItem(part_name="Valve", quantity=1)]


class TestSqlDocumentStore:
    """Tests for the SQLAlchemy-backed store."""

    def test_put_get_replace(self, sql_store):
        store, _ = sql_store

        store.put("inspections", "a", {"userId": "u1", "n": 1})
        store.put("inspections", "a", {"userId": "u1", "n": 2})

        assert store.get("inspections", "a") == {"userId": "u1", "n": 2}
        assert store.get("inspections", "missing") is None
        assert store.get("users", "a") is None

    def test_query_filters_and_orders(self, sql_store):
        store, _ = sql_store
        store.put("inspections", "a", {"userId": "u1", "savedAt": "2024-05-01T10:00:00.000Z"})
        store.put("inspections", "b", {"userId": "u1", "savedAt": "2024-05-02T10:00:00.000Z"})
        store.put("inspections", "c", {"userId": "u2", "savedAt": "2024-05-03T10:00:00.000Z"})

        documents = store.query("inspections", [QueryFilter("userId", "u1")], Ordering("savedAt"))

        assert [d.id for d in documents] == ["b", "a"]

    def test_text_filters_run_in_sql(self, sql_store):
        store, engine = sql_store
        store.put("inspections", "a", {"userId": "u1", "step": 4})
        store.put("inspections", "b", {"userId": "u2", "step": 4})
        store.put("inspections", "c", {"userId": "u1", "step": 2})
        statements = []

        def capture(conn, cursor, statement, parameters, context, executemany):
            statements.append((statement, parameters))

        event.listen(engine, "before_cursor_execute", capture)
        try:
            documents = store.query("inspections", [QueryFilter("userId", "u1"), QueryFilter("step", 4)])
        finally:
            event.remove(engine, "before_cursor_execute", capture)

        assert [d.id for d in documents] == ["a"]
        assert any("u1" in tuple(parameters) for _, parameters in statements)

    def test_unorderable_field(self, sql_store):
        store, _ = sql_store
        with pytest.raises(OrderingUnavailableError):
            store.query("inspections", [], Ordering("customerName"))

    def test_delete(self, sql_store):
        store, _ = sql_store
        store.put("inspections", "a", {"userId": "u1"})

        store.delete("inspections", "a")
        store.delete("inspections", "a")

        assert store.get("inspections", "a") is None

    def test_health_check(self, sql_store):
        _, engine = sql_store
        assert health_check_database(engine) is True

    def test_repository_round_trip(self, sql_store, photographed_record):
        store, _ = sql_store
        repository = InspectionRepository(store, clock=make_clock(), id_factory=make_id_factory())

        inspection_id = repository.save("user-1", photographed_record)

        assert repository.load(inspection_id) == strip_binary_content(photographed_record)
        assert [s.id for s in repository.list("user-1")] == [inspection_id]

    def test_filter_operator_restricted(self):
        with pytest.raises(ValueError):
            QueryFilter("userId", "u1", op=">")
