"""
Role profiles stored in the ``users`` collection.

A profile is read (or created) right after sign-in. The first account ever
created becomes the admin; later accounts are company users. If the store
cannot be reached in time the user still gets in with a company profile.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

from pydantic import Field

from wetcheck.database.store import DocumentStore, QueryFilter
from wetcheck.exceptions import ProfileBootstrapFailure
from wetcheck.schemas.models import CompanyBranding, RecordModel
from utils.logger import setup_logger
from utils.config import config

logger = setup_logger(__name__, level=config.log_level, log_file=config.get_log_file(), component="PROFILES")

USERS_COLLECTION = "users"

Role = Literal["admin", "company"]


class UserProfile(RecordModel):
    email: str = ""
    role: Role = "company"
    company: Optional[CompanyBranding] = None
    created_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class ProfileService:
    """Reads, creates and updates user profiles."""

    def __init__(self, store: DocumentStore, timeout: Optional[float] = None):
        self.store = store
        self.timeout = timeout or config.profile_timeout
        self.logger = logger

    def _read_or_create(self, subject_id: str, email: str) -> UserProfile:
        existing = self.store.get(USERS_COLLECTION, subject_id)
        if existing is not None:
            return UserProfile.model_validate(existing)

        admins = self.store.query(USERS_COLLECTION, [QueryFilter("role", "admin")])
        role = "company" if admins else "admin"

        profile = UserProfile(email=email, role=role)
        self.store.put(USERS_COLLECTION, subject_id, profile.model_dump(by_alias=True, mode="json"))
        self.logger.info(f"Created {role} profile for {subject_id}")
        return profile

    async def bootstrap(self, subject_id: str, email: str) -> UserProfile:
        """
        Profile for a freshly signed-in user.

        Never raises: any failure is logged and a company profile without
        branding is returned instead.
        """
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._read_or_create, subject_id, email),
                timeout=self.timeout
            )

        except Exception as e:
            failure = ProfileBootstrapFailure(subject_id, e)
            self.logger.warning(f"{failure.message}; continuing with company profile")
            return UserProfile(email=email, role="company", company=None)

    def _merge(self, subject_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        current = self.store.get(USERS_COLLECTION, subject_id) or {}
        merged = {**current, **changes}
        self.store.put(USERS_COLLECTION, subject_id, merged)
        return merged

    async def update_profile(
        self,
        subject_id: str,
        profile: UserProfile,
        changes: Dict[str, Any]
    ) -> UserProfile:
        """
        Merge ``changes`` (camelCase document keys) into the stored profile.

        Returns the updated profile, or ``profile`` unchanged if the write
        failed (the failure is logged).
        """
        try:
            await asyncio.wait_for(
                asyncio.to_thread(self._merge, subject_id, changes),
                timeout=self.timeout
            )
        except Exception as e:
            self.logger.error(f"Profile update failed for {subject_id}: {e}")
            return profile

        updated = {**profile.model_dump(by_alias=True, mode="json"), **changes}
        return UserProfile.model_validate(updated)

    async def save_company(
        self,
        subject_id: str,
        profile: UserProfile,
        branding: CompanyBranding
    ) -> UserProfile:
        """Store company branding shown on reports."""
        return await self.update_profile(
            subject_id,
            profile,
            {"company": branding.model_dump(by_alias=True, mode="json")}
        )
