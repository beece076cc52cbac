"""
Configuration management for the exam portal auth service.
"""

import os
import logging
from functools import lru_cache
from typing import Optional, Dict, Any, List
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment and config files."""

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 1

    # development or production
    environment: str = "development"

    # JWT settings
    jwt_access_secret: Optional[str] = None
    jwt_refresh_secret: Optional[str] = None
    jwt_access_expires_in: str = "15m"
    jwt_refresh_expires_in: str = "7d"
    jwt_issuer: str = "addis-admin"
    jwt_audience: str = "addis-admin-users"
    jwt_algorithm: str = "HS256"

    # Password hashing
    password_hash_rounds: int = 12

    # Cookies
    cookie_domain: Optional[str] = None
    cookie_secure: bool = False
    access_cookie_path: str = "/"
    refresh_cookie_path: str = "/api/v1/auth/refresh"

    # Storage
    store_backend: str = "memory"  # memory, sqlite
    store_path: str = "./portal.db"

    # Session cleanup
    session_cleanup_interval_seconds: int = 24 * 60 * 60

    # CORS
    cors_origins: str = "http://localhost:3000"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # Observability
    enable_metrics: bool = True
    enable_tracing: bool = False
    tracing_console: bool = True

    # Config file path
    config_file: Optional[str] = None

    class Config:
        env_prefix = "PORTAL_"
        env_file = ".env"
        case_sensitive = False

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins string into list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return load_merged_config()


def load_config_from_file(config_path: str) -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to config file

    Returns:
        Configuration dictionary
    """
    import yaml

    if not os.path.exists(config_path):
        return {}

    try:
        with open(config_path, 'r') as f:
            return yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Failed to load config file {config_path}: {e}")
        return {}


def get_config_file_paths() -> list[str]:
    """Get list of potential config file paths in order of preference."""
    return [
        os.environ.get("PORTAL_CONFIG_FILE", ""),
        "/etc/exam-portal/config.yaml",
        os.path.expanduser("~/.config/exam-portal/config.yaml"),
        "./config.yaml"
    ]


def flatten_config(config_data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Convert the nested YAML layout into flat settings keys.

    Sections ``server``, ``jwt``, ``cookies`` and ``store`` map onto the
    prefixed settings fields; top-level keys that match a field pass through.
    """
    flat_config: Dict[str, Any] = {}

    server_config = config_data.get("server", {}) or {}
    for key in ["host", "port", "workers"]:
        if key in server_config:
            flat_config[key] = server_config[key]

    jwt_config = config_data.get("jwt", {}) or {}
    for key in ["access_secret", "refresh_secret", "access_expires_in",
                "refresh_expires_in", "issuer", "audience", "algorithm"]:
        if key in jwt_config:
            flat_config[f"jwt_{key}"] = jwt_config[key]

    cookie_config = config_data.get("cookies", {}) or {}
    for key in ["domain", "secure"]:
        if key in cookie_config:
            flat_config[f"cookie_{key}"] = cookie_config[key]

    store_config = config_data.get("store", {}) or {}
    if "backend" in store_config:
        flat_config["store_backend"] = store_config["backend"]
    if "path" in store_config:
        flat_config["store_path"] = store_config["path"]

    for key in Settings.model_fields:
        if key in config_data:
            flat_config[key] = config_data[key]

    return flat_config


def load_merged_config() -> Settings:
    """
    Load configuration from multiple sources with precedence:
    1. CLI flags (handled by caller)
    2. Environment variables
    3. Configuration files
    4. Defaults
    """
    config_data: Dict[str, Any] = {}
    for config_path in get_config_file_paths():
        if config_path and os.path.exists(config_path):
            config_data = load_config_from_file(config_path)
            break

    if not config_data:
        return Settings()

    # Environment variables win over file values
    file_values = {
        key: value for key, value in flatten_config(config_data).items()
        if f"PORTAL_{key.upper()}" not in os.environ
    }
    return Settings(**file_values)
