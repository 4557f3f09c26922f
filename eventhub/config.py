# eventhub/config.py
import os
import logging
import sys # For sys.exit() on critical errors
from pathlib import Path
from typing import Optional, Literal, List

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Conditional loading of .env for local development ONLY ---
# In production the environment variables are set by the hosting platform.
if os.getenv("ENVIRONMENT") not in ("PROD", "STAGE"):
    load_dotenv()
    print("DEVELOPMENT: .env file loaded for local environment.")
else:
    print(f"{os.getenv('ENVIRONMENT', 'UNKNOWN')}: .env file skipped. Relying on system environment variables.")


# --- Configure basic logging early to capture configuration errors ---
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

class Settings(BaseSettings):
    """
    EventHub API configuration using pydantic-settings.
    Automatically loads from environment variables (and .env in non-PROD/STAGE).
    All non-Optional fields without a default *must* be present as environment variables.
    """

    # ========================
    # APP CORE CONFIGURATION
    # ========================
    APP_NAME: str = "EventHub API"
    VERSION: str = "1.0.0"
    ENVIRONMENT: Literal["DEV", "STAGE", "PROD"] = "DEV"
    # Base URL used when building links sent by email (password reset).
    CLIENT_URL: str
    DEBUG: bool = True
    PORT: int = 8000

    # ========================
    # SECURITY CONFIGURATION
    # ========================
    # One secret per signing context. Access, refresh and password-reset tokens
    # are never interchangeable, even if their payloads look alike.
    ACCESS_TOKEN_SECRET: str
    REFRESH_TOKEN_SECRET: str
    PASSWORD_RESET_SECRET: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    PASSWORD_RESET_TOKEN_EXPIRE_MINUTES: int = 15
    BCRYPT_ROUNDS: int = 12

    # Security Policy Settings
    MIN_PASSWORD_LENGTH: int = 8
    # Self-service signup may pick any known role when True.
    # Set to False to force PARTICIPANT and use the admin role endpoint instead.
    ALLOW_SIGNUP_ROLE_SELECTION: bool = True

    # OTP settings
    OTP_LENGTH: int = 6
    OTP_EXPIRATION_MINUTES: int = 5

    # ========================
    # DATABASE CONFIGURATION
    # ========================
    # Must use an async driver, e.g. postgresql+asyncpg:// or sqlite+aiosqlite://
    DATABASE_URL: str
    DB_POOL_SIZE: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 3600 # Seconds
    DB_SSL_MODE: str = "require" # Appended to postgresql+asyncpg URLs lacking sslmode

    # ========================
    # EMAIL SERVICE CONFIG
    # ========================
    MAIL_SERVER: str
    MAIL_PORT: int = 587
    MAIL_USERNAME: str
    MAIL_PASSWORD: str
    MAIL_FROM: str
    MAIL_TLS: bool = True
    EMAIL_TEMPLATE_DIR: Path = Path(__file__).parent / "templates" / "emails"

    # ========================
    # LOGGING CONFIGURATION
    # ========================
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    LOG_FILE_PATH: Optional[Path] = None # Keep None in PROD, logs go to stdout

    # ========================
    # CORS ORIGINS
    # Set as a JSON array string: CORS_ORIGINS='["https://eventhub.app"]'
    # ========================
    CORS_ORIGINS: List[str]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
    )

    def __init__(self, **values):
        super().__init__(**values)
        if "postgresql+asyncpg" in self.DATABASE_URL and "sslmode=" not in self.DATABASE_URL:
            separator = "&" if "?" in self.DATABASE_URL else "?"
            self.DATABASE_URL = f"{self.DATABASE_URL}{separator}sslmode={self.DB_SSL_MODE}"
            logger.info(f"Appended sslmode={self.DB_SSL_MODE} to DATABASE_URL.")

        self._validate_runtime_settings()

    def _validate_runtime_settings(self):
        """
        Custom validation and critical checks enforced based on the `ENVIRONMENT` setting.
        """
        if self.ENVIRONMENT == "PROD":
            logger.info("Running in PRODUCTION environment. Applying production specific validations.")

            if self.DEBUG:
                logger.critical("PRODUCTION ERROR: DEBUG is True in PROD environment. This is a severe security risk!")
                raise ValueError("DEBUG must be False in production.")

            for name in ("ACCESS_TOKEN_SECRET", "REFRESH_TOKEN_SECRET", "PASSWORD_RESET_SECRET"):
                if len(getattr(self, name)) < 32:
                    logger.critical(f"PRODUCTION ERROR: {name} is too short. Must be a strong, unique value (min 32 chars) in production.")
                    raise ValueError(f"{name} must be a strong, unique value in production.")

            if len({self.ACCESS_TOKEN_SECRET, self.REFRESH_TOKEN_SECRET, self.PASSWORD_RESET_SECRET}) < 3:
                logger.critical("PRODUCTION ERROR: Token secrets must differ between access, refresh and password reset contexts.")
                raise ValueError("Token secrets must be distinct in production.")

            if not self.MAIL_SERVER or not self.MAIL_USERNAME or not self.MAIL_PASSWORD or not self.MAIL_FROM:
                logger.critical("PRODUCTION ERROR: Essential SMTP credentials are not fully set. OTP and reset emails will fail.")
                raise ValueError("All essential MAIL_* settings must be configured in production.")

            if not self.CORS_ORIGINS:
                logger.critical("PRODUCTION ERROR: CORS_ORIGINS is empty. No frontend will be able to connect.")
                raise ValueError("CORS_ORIGINS must be configured with allowed origins in production.")
            if "*" in self.CORS_ORIGINS:
                logger.critical("PRODUCTION ERROR: CORS_ORIGINS cannot contain '*' in production. Please specify explicit origins.")
                raise ValueError("CORS_ORIGINS cannot be '*' in production.")

            if not self.CLIENT_URL.startswith("https://"):
                logger.critical(f"PRODUCTION ERROR: CLIENT_URL '{self.CLIENT_URL}' must use HTTPS in production.")
                raise ValueError("CLIENT_URL must use HTTPS in production.")

            if self.ALLOW_SIGNUP_ROLE_SELECTION:
                logger.warning("PRODUCTION WARNING: ALLOW_SIGNUP_ROLE_SELECTION is True. Anyone signing up can request ORGANIZER or SUPER_ADMIN.")

        if self.MIN_PASSWORD_LENGTH < 8:
            logger.critical("CRITICAL ERROR: MIN_PASSWORD_LENGTH cannot be lower than 8.")
            raise ValueError("MIN_PASSWORD_LENGTH must be at least 8.")

        if not self.DATABASE_URL:
            logger.critical("CRITICAL ERROR: DATABASE_URL is not set. Database connection will fail.")
            raise ValueError("DATABASE_URL must be set in environment variables.")

# --- Initialize settings with validation ---
try:
    settings = Settings()
    logger.info(f"✅ Configuration loaded successfully for {settings.ENVIRONMENT} environment.")

except Exception as e:
    logger.critical(f"❌ Critical Configuration Error: {e}")
    sys.exit(1) # Exit immediately on critical configuration error
