"""
Sign-in sessions and role profiles.
"""

from wetcheck.auth.profiles import USERS_COLLECTION, UserProfile, ProfileService
from wetcheck.auth.session import (
    Identity,
    IdentityProvider,
    UserSession,
    SessionManager,
)

__all__ = [
    "USERS_COLLECTION",
    "UserProfile",
    "ProfileService",
    "Identity",
    "IdentityProvider",
    "UserSession",
    "SessionManager",
]
