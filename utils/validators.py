"""
Input validators for the Wet Check app.
Provides validation functions for user inputs before they reach external services.
"""

import re
from typing import Optional, Tuple

AUTH_MODES = ("login", "signup", "reset")

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def validate_email(value: Optional[str]) -> Tuple[bool, Optional[str], str]:
    """
    Validate an email address.

    Args:
        value: Email string

    Returns:
        Tuple of (is_valid, error_message, normalized_value)
    """
    normalized = (value or "").strip()

    if not normalized:
        return False, "Please enter your email.", normalized

    if not _EMAIL_PATTERN.match(normalized):
        return False, "Invalid email address.", normalized

    return True, None, normalized


def validate_credentials_form(
    mode: str,
    email: Optional[str],
    password: Optional[str] = None,
    confirm: Optional[str] = None
) -> Tuple[bool, Optional[str]]:
    """
    Validate the sign-in / sign-up / password-reset form.

    Args:
        mode: "login", "signup" or "reset"
        email: Email address
        password: Password (login and signup)
        confirm: Password confirmation (signup only)

    Returns:
        Tuple of (is_valid, error_message)
    """
    if mode not in AUTH_MODES:
        return False, f"Invalid mode. Must be one of: {list(AUTH_MODES)}"

    if mode == "reset":
        if not email:
            return False, "Please enter your email."
        return True, None

    if not email or not password:
        return False, "Please fill in all fields."

    if mode == "signup" and password != confirm:
        return False, "Passwords do not match."

    return True, None
