# config.py
"""
Configuration module for the application.
Handles environment-specific settings using Pydantic v2 and pydantic-settings.
"""
import json
from pathlib import Path
from typing import Optional, List
from enum import Enum
from pydantic import Field, field_validator, BaseModel, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"

class LoggingSettings(BaseModel):
    level: str = "INFO"
    format: str = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}"
    file_enabled: bool = False
    file_path: str = "logs/formplay.log"

class APISettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8000
    prefix: str = "/api"
    version: str = "1.0.0"
    title: str = "FormPlay API"
    description: str = "Two-party review and approval workflow for PDF-backed TPS reports"

class DatabaseSettings(BaseModel):
    url: str
    pool_size: int = 5
    max_overflow: int = 10
    pool_recycle: int = 3600

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

class SecuritySettings(BaseModel):
    secret_key: SecretStr
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24
    @property
    def secret_key_str(self) -> str:
        """Return the secret key as a string for JWT operations."""
        return self.secret_key.get_secret_value()

class EmailSettings(BaseModel):
    enabled: bool = True
    smtp_host: str = "localhost"
    smtp_port: int = 587
    use_tls: bool = True
    username: Optional[str] = None
    password: Optional[SecretStr] = None
    from_email: str = "noreply@formplay.local"
    timeout: float = 10.0
    @property
    def password_str(self) -> Optional[str]:
        """Return the password as a string for SMTP connection."""
        return self.password.get_secret_value() if self.password else None

class StorageSettings(BaseModel):
    root: Path
    default_template_key: str = "tps-vanilla"
    render_scale: float = 1.5

    @property
    def templates_dir(self) -> Path:
        return self.root / "templates"

    @property
    def pdf_dir(self) -> Path:
        return self.root / "pdfs"

    @property
    def calendar_dir(self) -> Path:
        return self.root / "calendars"

class CalendarSettings(BaseModel):
    enabled: bool = True
    followup_days: int = 1
    followup_hour: int = 21
    duration_minutes: int = 30

class SeedUser(BaseModel):
    username: str
    password: str
    name: str
    email: str

class Settings(BaseSettings):
    """Main settings class with environment-specific configurations."""
    # Environment
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False

    # API
    api_title: str = "FormPlay API"
    api_description: str = "Two-party review and approval workflow for PDF-backed TPS reports"
    api_version: str = "1.0.0"
    host: str = "0.0.0.0"
    port: int = 8000

    # Database
    database_url: str
    pool_size: int = 5
    max_overflow: int = 10
    pool_recycle: int = 3600

    # Security
    secret_key: SecretStr
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24

    # Logging
    log_level: str = "INFO"
    log_format: str = Field(default="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}")
    log_file_enabled: bool = False
    log_file_path: str = "logs/formplay.log"

    # Email
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_use_tls: bool = True
    smtp_username: Optional[str] = None
    smtp_password: Optional[SecretStr] = None
    smtp_from_email: str = "noreply@formplay.local"
    smtp_timeout: float = 10.0

    # Storage
    storage_dir: Path = Path("storage")
    default_template_key: str = "tps-vanilla"
    render_scale: float = 1.5

    # Calendar
    calendar_followup_days: int = 1
    calendar_followup_hour: int = 21
    calendar_duration_minutes: int = 30

    # Frontend
    frontend_urls_raw: str = Field(
        default="http://localhost:5173",
        alias="FRONTEND_URLS",
        exclude=True,
    )

    # Seed data: the closed pair of users
    seed_users_raw: str = Field(default="", alias="SEED_USERS", exclude=True)

    # Feature flags
    enable_email_notifications: bool = True
    enable_calendar_events: bool = True
    validate_form_fields: bool = True

    # Validators
    @field_validator("debug")
    @classmethod
    def debug_not_in_production(cls, v, info):
        env = info.data.get("environment")
        if v and env == Environment.PRODUCTION:
            raise ValueError("Debug mode should not be enabled in production")
        return v

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        if not v.startswith(("postgresql+asyncpg://", "sqlite+aiosqlite://")):
            raise ValueError("Invalid database URL format")
        return v

    @field_validator("render_scale")
    @classmethod
    def validate_render_scale(cls, v):
        if v <= 0:
            raise ValueError("render_scale must be positive")
        return v

    @property
    def frontend_urls(self) -> List[str]:
        """Comma-separated frontend URLs from .env, parsed into a list."""
        urls = [url.strip() for url in self.frontend_urls_raw.split(",") if url.strip()]
        from urllib.parse import urlparse
        for url in urls:
            parsed = urlparse(url)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                raise ValueError(f"Invalid URL in frontend_urls: {url}")
        return urls

    @property
    def seed_users(self) -> List[SeedUser]:
        """The two users of the closed universe, parsed from SEED_USERS."""
        if not self.seed_users_raw.strip():
            return []
        users = [SeedUser(**item) for item in json.loads(self.seed_users_raw)]
        if len(users) != 2:
            raise ValueError("SEED_USERS must describe exactly two users")
        return users

    # Sub-settings via properties
    @property
    def api(self) -> APISettings:
        return APISettings(
            host=self.host,
            port=self.port,
            title=self.api_title,
            description=self.api_description,
            version=self.api_version,
        )

    @property
    def logging(self) -> LoggingSettings:
        return LoggingSettings(
            level=self.log_level,
            format=self.log_format,
            file_enabled=self.log_file_enabled,
            file_path=self.log_file_path,
        )

    @property
    def database(self) -> DatabaseSettings:
        return DatabaseSettings(
            url=self.database_url,
            pool_size=self.pool_size,
            max_overflow=self.max_overflow,
            pool_recycle=self.pool_recycle,
        )

    @property
    def security(self) -> SecuritySettings:
        return SecuritySettings(
            secret_key=self.secret_key,
            algorithm=self.algorithm,
            access_token_expire_minutes=self.access_token_expire_minutes,
        )

    @property
    def email(self) -> EmailSettings:
        return EmailSettings(
            enabled=self.enable_email_notifications,
            smtp_host=self.smtp_host,
            smtp_port=self.smtp_port,
            use_tls=self.smtp_use_tls,
            username=self.smtp_username,
            password=self.smtp_password,
            from_email=self.smtp_from_email,
            timeout=self.smtp_timeout,
        )

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings(
            root=self.storage_dir,
            default_template_key=self.default_template_key,
            render_scale=self.render_scale,
        )

    @property
    def calendar(self) -> CalendarSettings:
        return CalendarSettings(
            enabled=self.enable_calendar_events,
            followup_days=self.calendar_followup_days,
            followup_hour=self.calendar_followup_hour,
            duration_minutes=self.calendar_duration_minutes,
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow",
        populate_by_name=True,
    )

class DevelopmentSettings(Settings):
    debug: bool = True
    log_level: str = "DEBUG"

class ProductionSettings(Settings):
    debug: bool = False
    log_level: str = "INFO"

    @field_validator("smtp_password")
    @classmethod
    def validate_smtp_password(cls, v):
        if not v:
            raise ValueError("SMTP password is required in production")
        return v

class TestingSettings(Settings):
    database_url: str = "sqlite+aiosqlite:///:memory:"
    debug: bool = False
    log_level: str = "DEBUG"
    enable_email_notifications: bool = False
    enable_calendar_events: bool = False

def get_settings() -> Settings:
    """Factory to return environment-specific settings."""
    env = Settings().environment
    if env == Environment.PRODUCTION:
        return ProductionSettings()
    elif env == Environment.TESTING:
        return TestingSettings()
    return DevelopmentSettings()

# Global settings instance
settings = get_settings()
