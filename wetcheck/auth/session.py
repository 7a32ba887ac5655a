"""
Signed-in session context and its lifecycle.

A UserSession is created when the identity provider reports a signed-in
user and dropped at sign-out. It is passed explicitly to whatever needs the
current user (the inspection state machine in particular).
"""

import asyncio
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol

from wetcheck.auth.profiles import ProfileService, UserProfile
from wetcheck.exceptions import AuthenticationFailure
from wetcheck.schemas.models import CompanyBranding
from utils.logger import setup_logger
from utils.config import config
from utils.tasks import spawn
from utils.validators import validate_credentials_form, validate_email

logger = setup_logger(__name__, level=config.log_level, log_file=config.get_log_file(), component="SESSION")

RESET_SENT_MESSAGE = "Password reset email sent! Check your inbox."


@dataclass(frozen=True)
class Identity:
    subject_id: str
    email: str = ""


SessionCallback = Callable[[Optional[Identity]], None]


class IdentityProvider(Protocol):
    """Authentication backend. Failures raise AuthenticationFailure with the provider code."""

    def current_session(self) -> Optional[Identity]:
        ...

    def observe_session_changes(self, callback: SessionCallback) -> Callable[[], None]:
        """Register ``callback``; returns a function that unregisters it."""
        ...

    def sign_in(self, email: str, password: str) -> Identity:
        ...

    def sign_up(self, email: str, password: str) -> Identity:
        ...

    def send_password_reset(self, email: str) -> None:
        ...

    def sign_out(self) -> None:
        ...


@dataclass
class UserSession:
    identity: Identity
    profile: UserProfile

    @property
    def subject_id(self) -> str:
        return self.identity.subject_id

    @property
    def email(self) -> str:
        return self.identity.email

    @property
    def is_admin(self) -> bool:
        return self.profile.is_admin

    @property
    def branding(self) -> Optional[CompanyBranding]:
        return self.profile.company


class SessionManager:
    """Owns the current UserSession and keeps it in sync with the provider."""

    def __init__(self, provider: IdentityProvider, profiles: ProfileService):
        self.provider = provider
        self.profiles = profiles
        self.session: Optional[UserSession] = None
        self._listeners: List[Callable[[Optional[UserSession]], None]] = []
        self._unsubscribe: Optional[Callable[[], None]] = None

    def start(self):
        """Begin following provider session changes."""
        if self._unsubscribe is None:
            self._unsubscribe = self.provider.observe_session_changes(self._on_provider_change)

    def stop(self):
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def add_listener(self, listener: Callable[[Optional[UserSession]], None]):
        self._listeners.append(listener)

    def _notify(self):
        for listener in self._listeners:
            listener(self.session)

    def _on_provider_change(self, identity: Optional[Identity]):
        if identity is None:
            self.end()
        elif self.session is None or self.session.subject_id != identity.subject_id:
            spawn(self.establish(identity), name=f"session-{identity.subject_id}")

    async def establish(self, identity: Identity) -> UserSession:
        """Bootstrap the profile and make ``identity`` the current session."""
        if self.session is not None and self.session.subject_id == identity.subject_id:
            return self.session

        profile = await self.profiles.bootstrap(identity.subject_id, identity.email)
        self.session = UserSession(identity=identity, profile=profile)
        logger.info(f"Session started for {identity.subject_id} ({profile.role})")
        self._notify()
        return self.session

    def end(self):
        if self.session is not None:
            logger.info(f"Session ended for {self.session.subject_id}")
        self.session = None
        self._notify()

    async def submit_credentials(
        self,
        mode: str,
        email: Optional[str],
        password: Optional[str] = None,
        confirm: Optional[str] = None
    ) -> Optional[str]:
        """
        Handle the sign-in / sign-up / password-reset form.

        Returns:
            A confirmation message for "reset", otherwise None (the session
            is established)

        Raises:
            AuthenticationFailure: With a message suitable for the user
        """
        ok, error = validate_credentials_form(mode, email, password, confirm)
        if not ok:
            raise AuthenticationFailure(None, error)

        valid, _, normalized = validate_email(email)
        if not valid:
            raise AuthenticationFailure.from_code("auth/invalid-email")

        try:
            if mode == "reset":
                await asyncio.to_thread(self.provider.send_password_reset, normalized)
                return RESET_SENT_MESSAGE

            if mode == "login":
                identity = await asyncio.to_thread(self.provider.sign_in, normalized, password)
            else:
                identity = await asyncio.to_thread(self.provider.sign_up, normalized, password)

        except AuthenticationFailure as e:
            logger.warning(f"Authentication failed ({mode}): {e.code}")
            raise
        except Exception as e:
            logger.error(f"Identity provider error ({mode}): {e}")
            raise AuthenticationFailure.from_code(getattr(e, "code", None)) from e

        await self.establish(identity)
        return None

    async def sign_out(self):
        await asyncio.to_thread(self.provider.sign_out)
        self.end()

    async def update_company(self, branding: CompanyBranding) -> Optional[UserProfile]:
        """Save company branding on the current profile."""
        if self.session is None:
            return None
        self.session.profile = await self.profiles.save_company(
            self.session.subject_id, self.session.profile, branding
        )
        return self.session.profile
