"""
Shared fixtures for the Wet Check test suite.
"""

import io
import itertools
import threading
from datetime import datetime, timedelta, timezone

import pytest
from PIL import Image

from wetcheck.auth.profiles import UserProfile
from wetcheck.auth.session import Identity, UserSession
from wetcheck.database.repository import InspectionRepository
from wetcheck.database.store import InMemoryDocumentStore
from wetcheck.exceptions import GeocodingError
from wetcheck.orchestration.machine import InspectionStateMachine
from wetcheck.schemas.models import CompanyBranding
from wetcheck.services.geolocation import FixedPositionSource, ReverseGeocodeResult
from wetcheck.services.notifications import NotificationCenter


class CountingStore(InMemoryDocumentStore):
    """In-memory store that records every write."""

    def __init__(self, orderable_fields=None):
        super().__init__(orderable_fields)
        self.puts = []

    def put(self, collection, document_id, document):
        self.puts.append((collection, document_id))
        super().put(collection, document_id, document)


class BlockingStore(CountingStore):
    """Store whose writes wait until ``release`` is set."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def put(self, collection, document_id, document):
        self.entered.set()
        self.release.wait(5)
        super().put(collection, document_id, document)


class FailingStore(InMemoryDocumentStore):
    """Store whose every operation raises."""

    def __init__(self, error: Exception):
        super().__init__()
        self.error = error

    def get(self, collection, document_id):
        raise self.error

    def put(self, collection, document_id, document):
        raise self.error

    def delete(self, collection, document_id):
        raise self.error

    def query(self, collection, filters=(), order_by=None):
        raise self.error


class BlockingPositionSource:
    """Position source that waits for ``release`` before answering."""

    def __init__(self, lat=30.2672, lng=-97.7431):
        self.lat = lat
        self.lng = lng
        self.entered = threading.Event()
        self.release = threading.Event()

    def current_position(self, timeout, high_accuracy):
        self.entered.set()
        self.release.wait(5)
        return self.lat, self.lng


class FakeGeocoder:
    """Reverse geocoder returning a canned result or raising."""

    def __init__(self, result=None, error=None):
        self.result = result or ReverseGeocodeResult(street="100 Congress Ave", city="Austin, Texas, 78701")
        self.error = error
        self.calls = []

    def reverse(self, lat, lng):
        self.calls.append((lat, lng))
        if self.error is not None:
            raise self.error
        return self.result


def make_clock(start=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)):
    """Clock returning a later instant on every call."""
    ticks = itertools.count()
    return lambda: start + timedelta(minutes=next(ticks))


def make_id_factory(prefix="insp"):
    counter = itertools.count(1)
    return lambda: f"{prefix}-{next(counter)}"


@pytest.fixture
def store():
    return CountingStore()


@pytest.fixture
def repository(store):
    return InspectionRepository(store, clock=make_clock(), id_factory=make_id_factory())


@pytest.fixture
def session():
    """Signed-in company user with branding."""
    profile = UserProfile(
        email="tech@example.com",
        role="company",
        company=CompanyBranding(name="Green Valley Irrigation", phone="555-0100", website="greenvalley.example"),
    )
    return UserSession(identity=Identity("user-1", "tech@example.com"), profile=profile)


@pytest.fixture
def notifier():
    return NotificationCenter()


@pytest.fixture
def geocoder():
    return FakeGeocoder()


@pytest.fixture
def machine(session, repository, notifier, geocoder):
    return InspectionStateMachine(
        session,
        repository,
        position_source=FixedPositionSource(30.2672, -97.7431),
        geocoder=geocoder,
        notifier=notifier,
    )


@pytest.fixture
def jpeg_bytes():
    """A 1600x1200 JPEG photo."""
    buffer = io.BytesIO()
    Image.new("RGB", (1600, 1200), color=(40, 120, 60)).save(buffer, format="JPEG")
    return buffer.getvalue()


@pytest.fixture
def png_bytes():
    """A small transparent PNG."""
    buffer = io.BytesIO()
    Image.new("RGBA", (64, 32), color=(0, 0, 255, 128)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def geocoding_failure():
    return FakeGeocoder(error=GeocodingError("Reverse geocoding failed: 503"))
