"""Application settings with Pydantic Settings validation.

Secrets (bot token, webhook secret, passwords, API keys) are loaded from the
environment or a .env file. Non-sensitive configuration is loaded from
config/main.yaml and config/*.yaml, merged and validated against JSON schemas.
"""

import json
from pathlib import Path
from typing import Any, Final, Literal, cast

import yaml
from jsonschema import ValidationError as JSONSchemaValidationError
from jsonschema import validate
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.config.logging_config import get_logger

POSTGRES_MIN_CONNECTIONS_DEFAULT: Final[int] = 1
POSTGRES_MAX_CONNECTIONS_DEFAULT: Final[int] = 10
POSTGRES_STATEMENT_TIMEOUT_MS_DEFAULT: Final[int] = 10_000
POSTGRES_CONNECT_TIMEOUT_SECONDS_DEFAULT: Final[int] = 10
POSTGRES_APPLICATION_NAME_DEFAULT: Final[str] = "dealshub"

AMAZON_PARTNER_TAG_DEFAULT: Final[str] = "salesaholics99-20"
TELEGRAM_REQUEST_TIMEOUT_SECONDS_DEFAULT: Final[float] = 10.0
MESSAGE_CACHE_TTL_SECONDS_DEFAULT: Final[int] = 60
HEALTH_ALERT_THRESHOLD_DEFAULT: Final[int] = 50

CONFIG_DIR: Final[Path] = Path("config")

logger = cast(Any, get_logger(__name__))


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Dictionary to merge into base (takes precedence)

    Returns:
        Merged dictionary
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_schema(schema_name: str) -> dict[str, Any]:
    """Load JSON Schema from config/schemas/.

    Args:
        schema_name: Schema name without extension (e.g., "main")

    Returns:
        JSON Schema dictionary or empty dict if not found
    """
    schema_path = CONFIG_DIR / "schemas" / f"{schema_name}.schema.json"
    if not schema_path.exists():
        return {}

    try:
        with open(schema_path, encoding="utf-8") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(
            "config_schema_load_failed",
            schema=schema_name,
            error=str(e),
        )
        return {}


def validate_config_section(
    config: dict[str, Any], schema_name: str, file_path: str = ""
) -> None:
    """Validate config section against JSON Schema.

    Args:
        config: Configuration dictionary to validate
        schema_name: Name of schema to validate against
        file_path: Optional file path for error messages

    Raises:
        ValueError: If validation fails
    """
    schema = load_schema(schema_name)
    if not schema:
        return

    try:
        validate(instance=config, schema=schema)
        logger.debug("config_validation_succeeded", schema=schema_name)
    except JSONSchemaValidationError as e:
        error_msg = f"Config validation failed for {schema_name}"
        if file_path:
            error_msg += f" (file: {file_path})"
        error_msg += f": {e.message}"
        raise ValueError(error_msg) from e


def load_all_configs() -> dict[str, Any]:
    """Load and merge all YAML configs from config/ directory.

    Loading order (later overrides earlier):
    1. config/main.yaml
    2. All other config/*.yaml files (sorted alphabetically)

    Each file is validated against config/schemas/<stem>.schema.json when present.

    Returns:
        Merged configuration dictionary
    """
    merged_config: dict[str, Any] = {}
    if not CONFIG_DIR.is_dir():
        return merged_config

    main_path = CONFIG_DIR / "main.yaml"
    yaml_files = [main_path] if main_path.exists() else []
    yaml_files += sorted(f for f in CONFIG_DIR.glob("*.yaml") if f.name != "main.yaml")

    for yaml_file in yaml_files:
        schema_name = yaml_file.stem
        try:
            with open(yaml_file, encoding="utf-8") as f:
                file_config = yaml.safe_load(f) or {}
        except (yaml.YAMLError, OSError) as e:
            logger.warning(
                "config_file_load_failed",
                path=str(yaml_file),
                error=str(e),
            )
            continue

        try:
            validate_config_section(file_config, schema_name, str(yaml_file))
        except ValueError as e:
            logger.error(
                "config_validation_failed",
                path=str(yaml_file),
                schema=schema_name,
                error=str(e),
            )
            raise

        merged_config = deep_merge(merged_config, file_config)
        logger.debug("config_file_loaded", path=str(yaml_file), schema=schema_name)

    logger.debug("config_load_complete", file_count=len(yaml_files))
    return merged_config


class Settings(BaseSettings):
    """Application settings.

    Secrets are loaded from the environment or .env file.
    Non-sensitive config is loaded from config/*.yaml with fallback to defaults.
    """

    model_config = SettingsConfigDict(
        env_file=".env" if Path(".env").exists() else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === SECRETS (from .env) ===

    telegram_bot_token: SecretStr | None = Field(
        default=None, description="Telegram Bot API token (from .env)"
    )
    telegram_webhook_secret: SecretStr | None = Field(
        default=None,
        description="Shared secret expected in X-Telegram-Bot-Api-Secret-Token",
    )
    postgres_password: SecretStr | None = Field(
        default=None, description="PostgreSQL password (from .env, optional)"
    )
    admin_api_token: SecretStr | None = Field(
        default=None, description="Bearer token for admin status detail"
    )
    email_password: SecretStr | None = Field(
        default=None, description="SMTP password for alert emails"
    )
    amazon_access_key: SecretStr | None = Field(
        default=None, description="Product Advertising API access key"
    )
    amazon_secret_key: SecretStr | None = Field(
        default=None, description="Product Advertising API secret key"
    )

    @field_validator(
        "telegram_bot_token",
        "telegram_webhook_secret",
        "postgres_password",
        "admin_api_token",
        "email_password",
        "amazon_access_key",
        "amazon_secret_key",
        mode="before",
    )
    @classmethod
    def _blank_secret_is_unset(cls, value: SecretStr | str | None) -> Any:
        if value is None:
            return None
        secret_value = (
            value.get_secret_value() if isinstance(value, SecretStr) else str(value)
        )
        if not secret_value.strip():
            return None
        return value

    def __init__(self, **data: Any):
        """Initialize settings with auto-loaded configs from all YAML files."""
        config = load_all_configs()

        super().__init__(**data)
        self._apply_yaml_defaults(config)

    def _apply_yaml_defaults(self, config: dict[str, Any]) -> None:
        """Apply YAML-sourced defaults without overriding env-provided values."""

        fields_from_env = set(self.model_fields_set)

        def _assign(field_name: str, value: Any) -> None:
            if value is None:
                return
            if field_name in fields_from_env:
                return

            object.__setattr__(self, field_name, value)
            self.model_fields_set.add(field_name)

        database_config = config.get("database") or {}
        _assign("database_type", database_config.get("type"))
        _assign("db_path", database_config.get("path"))

        postgres_config = database_config.get("postgres") or {}
        _assign("postgres_host", postgres_config.get("host"))
        _assign("postgres_port", postgres_config.get("port"))
        _assign("postgres_database", postgres_config.get("database"))
        _assign("postgres_user", postgres_config.get("user"))
        _assign("postgres_ssl_mode", postgres_config.get("ssl_mode"))

        telegram_config = config.get("telegram") or {}
        _assign("telegram_channel_id", telegram_config.get("channel_id"))
        _assign("telegram_api_base_url", telegram_config.get("api_base_url"))
        _assign(
            "telegram_request_timeout_seconds",
            telegram_config.get("request_timeout_seconds"),
        )
        _assign("telegram_poll_limit", telegram_config.get("poll_limit"))

        amazon_config = config.get("amazon") or {}
        _assign("amazon_partner_tag", amazon_config.get("partner_tag"))
        _assign("amazon_region", amazon_config.get("region"))
        _assign("amazon_host", amazon_config.get("host"))

        messages_config = config.get("messages") or {}
        _assign("message_cache_ttl_seconds", messages_config.get("cache_ttl_seconds"))

        monitoring_config = config.get("monitoring") or {}
        _assign(
            "health_alert_threshold", monitoring_config.get("alert_threshold")
        )
        _assign("recovery_trigger_url", monitoring_config.get("recovery_trigger_url"))

        email_config = config.get("email") or {}
        _assign("notification_email", email_config.get("notification_email"))
        _assign("email_from", email_config.get("from"))
        _assign("smtp_host", email_config.get("smtp_host"))
        _assign("smtp_port", email_config.get("smtp_port"))

        api_config = config.get("api") or {}
        _assign("cors_allow_origins", api_config.get("cors_allow_origins"))

        logging_config = config.get("logging") or {}
        _assign("log_level", logging_config.get("level"))
        _assign("json_logs", logging_config.get("json"))

    # Database configuration
    database_type: Literal["sqlite", "postgres", "none"] = Field(
        default="sqlite",
        description="Storage backend: sqlite, postgres, or none (mock mode)",
    )
    db_path: str = Field(default="data/dealshub.db", description="SQLite database path")
    postgres_host: str = Field(default="localhost", description="PostgreSQL host")
    postgres_port: int = Field(default=5432, description="PostgreSQL port")
    postgres_database: str = Field(
        default="dealshub", description="PostgreSQL database name"
    )
    postgres_user: str = Field(default="postgres", description="PostgreSQL user")
    postgres_min_connections: int = Field(
        default=POSTGRES_MIN_CONNECTIONS_DEFAULT,
        description="Minimum number of connections in PostgreSQL pool",
    )
    postgres_max_connections: int = Field(
        default=POSTGRES_MAX_CONNECTIONS_DEFAULT,
        description="Maximum number of connections in PostgreSQL pool",
    )
    postgres_statement_timeout_ms: int = Field(
        default=POSTGRES_STATEMENT_TIMEOUT_MS_DEFAULT,
        description="PostgreSQL statement timeout in milliseconds",
    )
    postgres_connect_timeout_seconds: int = Field(
        default=POSTGRES_CONNECT_TIMEOUT_SECONDS_DEFAULT,
        description="PostgreSQL connection timeout in seconds",
    )
    postgres_application_name: str = Field(
        default=POSTGRES_APPLICATION_NAME_DEFAULT,
        description="Application name for PostgreSQL connections",
    )
    postgres_ssl_mode: str | None = Field(
        default=None,
        description="Optional SSL mode for PostgreSQL connections (e.g., require)",
    )

    # Telegram configuration
    telegram_channel_id: str | None = Field(
        default=None,
        description="Channel whose posts are ingested by the polling run",
    )
    telegram_api_base_url: str = Field(
        default="https://api.telegram.org", description="Telegram Bot API base URL"
    )
    telegram_request_timeout_seconds: float = Field(
        default=TELEGRAM_REQUEST_TIMEOUT_SECONDS_DEFAULT,
        gt=0,
        description="Timeout for Telegram Bot API calls",
    )
    telegram_poll_limit: int = Field(
        default=100, ge=1, le=100, description="getUpdates batch size"
    )

    # Amazon affiliate configuration
    amazon_partner_tag: str = Field(
        default=AMAZON_PARTNER_TAG_DEFAULT, description="Amazon Associates tag"
    )
    amazon_region: str = Field(default="us-east-1", description="PA-API region")
    amazon_host: str = Field(
        default="webservices.amazon.com", description="PA-API host"
    )

    # Message listing
    message_cache_ttl_seconds: int = Field(
        default=MESSAGE_CACHE_TTL_SECONDS_DEFAULT,
        ge=0,
        description="TTL for the cached first page of messages (0 disables)",
    )

    # Monitoring
    health_alert_threshold: int = Field(
        default=HEALTH_ALERT_THRESHOLD_DEFAULT,
        ge=0,
        le=100,
        description="Health score below which an alert email is sent",
    )
    recovery_trigger_url: str | None = Field(
        default=None,
        description="URL POSTed to force a polling run during recovery",
    )

    # Alert email
    notification_email: str | None = Field(
        default=None, description="Recipient of health alerts"
    )
    email_from: str | None = Field(default=None, description="Sender address")
    smtp_host: str = Field(default="smtp.gmail.com", description="SMTP host")
    smtp_port: int = Field(default=465, description="SMTP SSL port")

    # HTTP API
    cors_allow_origins: list[str] = Field(
        default_factory=lambda: ["*"], description="Allowed CORS origins"
    )

    # Observability
    log_level: str = Field(default="INFO", description="Logging level")
    json_logs: bool = Field(default=False, description="Render logs as JSON")

    @property
    def email_configured(self) -> bool:
        """True when every setting required to send alert mail is present."""
        return bool(self.notification_email and self.email_from and self.email_password)


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create global settings instance.

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
