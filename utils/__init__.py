"""
Utility modules for the Wet Check app.
"""

from utils.config import config
from utils.logger import setup_logger
from utils.image_utils import (
    load_image,
    resize_image,
    normalize_image,
    normalize_logo,
    decode_image_data_url,
)
from utils.validators import (
    validate_email,
    validate_credentials_form,
)

__all__ = [
    "config",
    "setup_logger",
    "load_image",
    "resize_image",
    "normalize_image",
    "normalize_logo",
    "decode_image_data_url",
    "validate_email",
    "validate_credentials_form",
]
