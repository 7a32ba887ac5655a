"""
Unified configuration management with Pydantic validation.
Loads and validates all environment variables.
"""

from pathlib import Path
from typing import List, Optional
from dotenv import load_dotenv
from pydantic import Field, field_validator, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables
load_dotenv()


class Config(BaseSettings):
    """Application configuration with validation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # ========================
    # Database Configuration
    # ========================
    database_path: str = Field(default="wetcheck.db", alias="DATABASE_PATH")
    database_echo: bool = Field(default=False, alias="DATABASE_ECHO")
    orderable_fields: str = Field(default="savedAt", alias="DOCUMENT_STORE_ORDERABLE_FIELDS")

    # ========================
    # File Storage Configuration
    # ========================
    report_dir: str = Field(default="reports", alias="REPORT_DIR")
    log_dir: str = Field(default="logs", alias="LOG_DIR")

    # ========================
    # Logging Configuration
    # ========================
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_to_file: bool = Field(default=False, alias="LOG_TO_FILE")

    # ========================
    # Image Configuration
    # ========================
    max_image_dimension: int = Field(default=800, alias="MAX_IMAGE_DIMENSION")
    image_jpeg_quality: int = Field(default=70, alias="IMAGE_JPEG_QUALITY")
    logo_max_dimension: int = Field(default=400, alias="LOGO_MAX_DIMENSION")

    # ========================
    # Location Configuration
    # ========================
    geolocation_timeout: float = Field(default=10.0, alias="GEOLOCATION_TIMEOUT")
    geolocation_high_accuracy: bool = Field(default=True, alias="GEOLOCATION_HIGH_ACCURACY")
    geocoder_endpoint: str = Field(
        default="https://nominatim.openstreetmap.org/reverse",
        alias="GEOCODER_ENDPOINT"
    )
    geocoder_user_agent: str = Field(default="wetcheck/1.0", alias="GEOCODER_USER_AGENT")
    geocoder_language: str = Field(default="en", alias="GEOCODER_LANGUAGE")
    geocoder_timeout: float = Field(default=10.0, alias="GEOCODER_TIMEOUT")

    # ========================
    # Session Configuration
    # ========================
    profile_timeout: float = Field(default=8.0, alias="PROFILE_TIMEOUT")

    # ========================
    # UI Configuration
    # ========================
    save_message_seconds: float = Field(default=2.5, alias="SAVE_MESSAGE_SECONDS")
    error_message_seconds: float = Field(default=4.0, alias="ERROR_MESSAGE_SECONDS")

    # ========================
    # Report Branding
    # ========================
    default_company_name: str = Field(default="Wet Check App", alias="DEFAULT_COMPANY_NAME")
    default_pdf_company_name: str = Field(
        default="IRRIGATION SOLUTION GROUP",
        alias="DEFAULT_PDF_COMPANY_NAME"
    )
    default_company_website: str = Field(
        default="www.irrigationssolutions.com",
        alias="DEFAULT_COMPANY_WEBSITE"
    )
    footer_tagline: str = Field(default="Hablamos Español", alias="FOOTER_TAGLINE")

    # ========================
    # Validators
    # ========================

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @field_validator(
        "max_image_dimension", "logo_max_dimension",
        "geolocation_timeout", "geocoder_timeout", "profile_timeout"
    )
    @classmethod
    def validate_positive(cls, v, info):
        """Dimensions and timeouts must be positive."""
        if v <= 0:
            raise ValueError(f"{info.field_name} must be positive")
        return v

    @field_validator("image_jpeg_quality")
    @classmethod
    def validate_quality(cls, v: int) -> int:
        if not 1 <= v <= 95:
            raise ValueError("IMAGE_JPEG_QUALITY must be between 1 and 95")
        return v

    # ========================
    # Helper Properties
    # ========================

    @property
    def orderable_fields_list(self) -> List[str]:
        """Get orderable document fields as list."""
        return [f.strip() for f in self.orderable_fields.split(",") if f.strip()]

    def get_report_dir(self) -> Path:
        """Get report directory as Path object."""
        path = Path(self.report_dir)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def get_log_dir(self) -> Path:
        """Get log directory as Path object."""
        path = Path(self.log_dir)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def get_log_file(self) -> Optional[Path]:
        """Log file path when file logging is enabled."""
        if not self.log_to_file:
            return None
        return self.get_log_dir() / "wetcheck.log"


def get_config() -> Config:
    """
    Load and validate configuration.
    Exits if configuration is invalid.
    """
    try:
        return Config()

    except ValidationError as e:
        print("\n❌ Configuration Error:")
        print("=" * 60)
        for error in e.errors():
            field = " -> ".join(str(loc) for loc in error["loc"])
            print(f"\n Field: {field}")
            print(f"  Error: {error['msg']}")
            if "input" in error:
                print(f"  Value: {error['input']}")
        print("\n" + "=" * 60)
        print("\nPlease check your .env file and fix the errors above.")
        print("See .env.example for reference.\n")
        raise SystemExit(1)


# Global configuration instance
config = get_config()

