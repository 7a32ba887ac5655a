"""
Error taxonomy for the Wet Check inspection tool.

Failures at I/O boundaries (document store, identity provider, device
location, geocoding, image encoding) are converted to these types where they
are caught, so no raw platform exception reaches the inspection state machine.
"""

from typing import Any, Dict, Optional


class WetCheckError(Exception):
    """Base exception for all Wet Check errors."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


# ============================================================================
# IDENTITY
# ============================================================================

AUTH_ERROR_MESSAGES = {
    "auth/invalid-email": "Invalid email address.",
    "auth/user-not-found": "No account found with this email.",
    "auth/wrong-password": "Incorrect password.",
    "auth/invalid-credential": "Incorrect email or password.",
    "auth/email-already-in-use": "An account with this email already exists.",
    "auth/weak-password": "Password must be at least 6 characters.",
    "auth/too-many-requests": "Too many attempts. Please try again later.",
}

DEFAULT_AUTH_MESSAGE = "Something went wrong. Please try again."


def friendly_auth_error(code: Optional[str]) -> str:
    """Map an identity-provider error code to a message for the user."""
    return AUTH_ERROR_MESSAGES.get(code or "", DEFAULT_AUTH_MESSAGE)


class AuthenticationFailure(WetCheckError):
    """Sign-in, sign-up or password reset was rejected."""

    def __init__(self, code: Optional[str], user_message: Optional[str] = None):
        self.code = code
        self.user_message = user_message or friendly_auth_error(code)
        super().__init__(self.user_message, {"code": code})

    @classmethod
    def from_code(cls, code: Optional[str]) -> "AuthenticationFailure":
        return cls(code)


class ProfileBootstrapFailure(WetCheckError):
    """The role profile could not be read or created after sign-in."""

    def __init__(self, subject_id: str, cause: Optional[BaseException] = None):
        super().__init__(
            f"Could not bootstrap profile for {subject_id}: {cause}",
            {"subject_id": subject_id}
        )
        self.subject_id = subject_id
        self.cause = cause


# ============================================================================
# PERSISTENCE
# ============================================================================

class DocumentStoreError(WetCheckError):
    """Raised by document store implementations."""


class OrderingUnavailableError(DocumentStoreError):
    """The store cannot order a query by the requested field."""

    def __init__(self, field: str):
        super().__init__(f"Ordering by '{field}' is not available", {"field": field})
        self.field = field


class PersistenceError(WetCheckError):
    """A save, load, delete or list operation failed."""

    def __init__(
        self,
        operation: str,
        cause: Optional[BaseException] = None,
        inspection_id: Optional[str] = None
    ):
        detail = str(cause) if cause is not None else "unknown error"
        super().__init__(
            f"{operation} failed: {detail}",
            {"operation": operation, "inspection_id": inspection_id}
        )
        self.operation = operation
        self.cause = cause
        self.inspection_id = inspection_id


class InspectionNotFoundError(PersistenceError):
    """No stored inspection exists under the requested id."""

    def __init__(self, inspection_id: str):
        super().__init__(
            "load",
            LookupError(f"inspection {inspection_id} not found"),
            inspection_id=inspection_id
        )


# ============================================================================
# DEVICE / EXTERNAL SERVICES
# ============================================================================

class GeolocationError(WetCheckError):
    """Device location could not be acquired."""

    REASONS = ("denied", "timeout", "unsupported", "unavailable")

    def __init__(self, reason: str, message: Optional[str] = None):
        if reason not in self.REASONS:
            reason = "unavailable"
        super().__init__(message or f"Location {reason}", {"reason": reason})
        self.reason = reason


class GeocodingError(WetCheckError):
    """Reverse geocoding failed."""


class AlreadyInProgress(WetCheckError):
    """A request for the same target key is still outstanding."""

    def __init__(self, key: str):
        super().__init__(f"Request already in progress for '{key}'", {"key": key})
        self.key = key


class ImageEncodingFailure(WetCheckError):
    """An image could not be decoded, resized or encoded."""


# ============================================================================
# STATE MACHINE
# ============================================================================

class UnknownFieldError(WetCheckError, ValueError):
    """A field updater was called with a name outside the record schema."""

    def __init__(self, section: str, key: str):
        super().__init__(f"Unknown {section} field: '{key}'", {"section": section, "key": key})
        self.section = section
        self.key = key
