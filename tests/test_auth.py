"""
Tests for role profiles and the session lifecycle.
"""

import threading

import pytest

from wetcheck.auth import (
    USERS_COLLECTION,
    Identity,
    ProfileService,
    SessionManager,
    UserProfile,
)
from wetcheck.auth.session import RESET_SENT_MESSAGE
from wetcheck.database.store import InMemoryDocumentStore
from wetcheck.exceptions import AuthenticationFailure, DocumentStoreError
from wetcheck.schemas.models import CompanyBranding

from tests.conftest import FailingStore


class SlowStore(InMemoryDocumentStore):
    """Store whose reads never finish within a short timeout."""

    def __init__(self):
        super().__init__()
        self.release = threading.Event()

    def get(self, collection, document_id):
        self.release.wait(2)
        return super().get(collection, document_id)


class FakeIdentityProvider:
    """In-memory identity provider keyed by email."""

    def __init__(self):
        self.accounts = {}
        self.resets = []
        self.signed_out = False
        self.callbacks = []

    def current_session(self):
        return None

    def observe_session_changes(self, callback):
        self.callbacks.append(callback)
        return lambda: self.callbacks.remove(callback)

    def sign_in(self, email, password):
        if email not in self.accounts:
            raise AuthenticationFailure("auth/user-not-found")
        if self.accounts[email] != password:
            raise AuthenticationFailure("auth/wrong-password")
        return Identity(f"uid-{email}", email)

    def sign_up(self, email, password):
        if email in self.accounts:
            raise AuthenticationFailure("auth/email-already-in-use")
        self.accounts[email] = password
        return Identity(f"uid-{email}", email)

    def send_password_reset(self, email):
        self.resets.append(email)

    def sign_out(self):
        self.signed_out = True


class BrokenProvider(FakeIdentityProvider):
    def sign_in(self, email, password):
        raise ConnectionError("network down")


@pytest.fixture
def profile_store():
    return InMemoryDocumentStore()


@pytest.fixture
def profiles(profile_store):
    return ProfileService(profile_store, timeout=1.0)


@pytest.fixture
def provider():
    return FakeIdentityProvider()


@pytest.fixture
def manager(provider, profiles):
    return SessionManager(provider, profiles)


class TestProfileService:
    """Tests for profile bootstrap and updates."""

    @pytest.mark.asyncio
    async def test_first_user_becomes_admin(self, profiles, profile_store):
        first = await profiles.bootstrap("uid-1", "owner@example.com")
        second = await profiles.bootstrap("uid-2", "tech@example.com")

        assert first.is_admin is True
        assert second.role == "company"
        assert profile_store.get(USERS_COLLECTION, "uid-1")["role"] == "admin"

    @pytest.mark.asyncio
    async def test_existing_profile_is_read(self, profiles, profile_store):
        stored = UserProfile(email="tech@example.com", role="company", company=CompanyBranding(name="Acme"))
        profile_store.put(USERS_COLLECTION, "uid-9", stored.model_dump(by_alias=True, mode="json"))

        profile = await profiles.bootstrap("uid-9", "tech@example.com")

        assert profile.company.name == "Acme"
        assert profile.role == "company"

    @pytest.mark.asyncio
    async def test_store_failure_falls_back_to_company(self):
        profiles = ProfileService(FailingStore(DocumentStoreError("permission denied")))

        profile = await profiles.bootstrap("uid-1", "owner@example.com")

        assert profile.role == "company"
        assert profile.company is None
        assert profile.email == "owner@example.com"

    @pytest.mark.asyncio
    async def test_timeout_falls_back_to_company(self):
        store = SlowStore()
        profiles = ProfileService(store, timeout=0.05)

        profile = await profiles.bootstrap("uid-1", "owner@example.com")
        store.release.set()

        assert profile.role == "company"

    @pytest.mark.asyncio
    async def test_save_company(self, profiles, profile_store):
        profile = await profiles.bootstrap("uid-1", "owner@example.com")

        updated = await profiles.save_company("uid-1", profile, CompanyBranding(name="Acme", phone="555-0101"))

        assert updated.company.name == "Acme"
        assert updated.role == "admin"
        assert profile_store.get(USERS_COLLECTION, "uid-1")["company"]["phone"] == "555-0101"

    @pytest.mark.asyncio
    async def test_failed_update_keeps_profile(self):
        profiles = ProfileService(FailingStore(DocumentStoreError("offline")))
        profile = UserProfile(email="a@example.com")

        updated = await profiles.save_company("uid-1", profile, CompanyBranding(name="Acme"))

        assert updated is profile


class TestSessionManager:
    """Tests for credential submission and session changes."""

    @pytest.mark.asyncio
    async def test_signup_establishes_session(self, manager):
        result = await manager.submit_credentials("signup", " owner@example.com ", "secret1", "secret1")

        assert result is None
        assert manager.session.subject_id == "uid-owner@example.com"
        assert manager.session.email == "owner@example.com"
        assert manager.session.is_admin is True

    @pytest.mark.asyncio
    async def test_login_with_wrong_password(self, manager, provider):
        provider.accounts["tech@example.com"] = "secret1"

        with pytest.raises(AuthenticationFailure) as exc_info:
            await manager.submit_credentials("login", "tech@example.com", "nope")

        assert exc_info.value.user_message == "Incorrect password."
        assert manager.session is None

    @pytest.mark.parametrize("mode,email,password,confirm,message", [
        ("login", "", "secret1", None, "Please fill in all fields."),
        ("login", "tech@example.com", "", None, "Please fill in all fields."),
        ("signup", "tech@example.com", "secret1", "secret2", "Passwords do not match."),
        ("reset", "", None, None, "Please enter your email."),
        ("login", "not-an-email", "secret1", None, "Invalid email address."),
    ])
    @pytest.mark.asyncio
    async def test_form_validation(self, manager, mode, email, password, confirm, message):
        with pytest.raises(AuthenticationFailure) as exc_info:
            await manager.submit_credentials(mode, email, password, confirm)

        assert exc_info.value.user_message == message

    @pytest.mark.asyncio
    async def test_password_reset(self, manager, provider):
        result = await manager.submit_credentials("reset", "tech@example.com")

        assert result == RESET_SENT_MESSAGE
        assert provider.resets == ["tech@example.com"]
        assert manager.session is None

    @pytest.mark.asyncio
    async def test_provider_errors_get_generic_message(self, profiles):
        manager = SessionManager(BrokenProvider(), profiles)

        with pytest.raises(AuthenticationFailure) as exc_info:
            await manager.submit_credentials("login", "tech@example.com", "secret1")

        assert exc_info.value.user_message == "Something went wrong. Please try again."

    @pytest.mark.asyncio
    async def test_sign_out(self, manager, provider):
        seen = []
        manager.add_listener(seen.append)
        await manager.submit_credentials("signup", "owner@example.com", "secret1", "secret1")

        await manager.sign_out()

        assert provider.signed_out is True
        assert manager.session is None
        assert seen[-1] is None
        assert seen[0].email == "owner@example.com"

    @pytest.mark.asyncio
    async def test_provider_change_events(self, manager, provider):
        manager.start()
        assert len(provider.callbacks) == 1

        await manager.establish(Identity("uid-1", "owner@example.com"))
        provider.callbacks[0](None)
        assert manager.session is None

        manager.stop()
        assert provider.callbacks == []

    @pytest.mark.asyncio
    async def test_update_company(self, manager):
        await manager.submit_credentials("signup", "owner@example.com", "secret1", "secret1")

        profile = await manager.update_company(CompanyBranding(name="Acme"))

        assert profile.company.name == "Acme"
        assert manager.session.branding.name == "Acme"

    def test_error_codes_map_to_messages(self):
        assert AuthenticationFailure.from_code("auth/weak-password").user_message == (
            "Password must be at least 6 characters."
        )
        assert AuthenticationFailure.from_code("auth/unknown").user_message == (
            "Something went wrong. Please try again."
        )
