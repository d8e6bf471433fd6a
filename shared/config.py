"""Shared configuration utilities."""

import os
from typing import Optional


def get_env(key: str, default: Optional[str] = None, required: bool = False) -> str:
    """Get environment variable with optional default and required validation."""
    value = os.getenv(key, default)
    if required and not value:
        raise ValueError(f"Required environment variable {key} is not set")
    return value


def get_database_url() -> str:
    """Get the local persistence database URL from environment."""
    return get_env(
        "DATABASE_URL",
        "sqlite:///./health_companion.db",
        required=False
    )


def get_document_store_config() -> dict:
    """Get remote document store configuration from environment."""
    return {
        "base_url": get_env("DOCUMENT_STORE_URL", "http://localhost:8080/v1"),
        "api_key": get_env("DOCUMENT_STORE_API_KEY"),
        "timeout": float(get_env("DOCUMENT_STORE_TIMEOUT", "30")),
    }


def get_connectivity_config() -> dict:
    """Get reachability probe configuration from environment."""
    return {
        "probe_url": get_env("CONNECTIVITY_PROBE_URL"),
        "timeout": float(get_env("CONNECTIVITY_PROBE_TIMEOUT", "3")),
    }


def get_notification_config() -> dict:
    """Get notification presentation configuration from environment."""
    return {
        "enabled": get_env("ENABLE_NOTIFICATIONS", "false").lower() == "true",
        "webhook_url": get_env("NOTIFICATION_WEBHOOK_URL"),
    }


def get_storage_encryption_key() -> Optional[str]:
    """Get the optional at-rest encryption key for persisted collections."""
    return get_env("STORAGE_ENCRYPTION_KEY")
