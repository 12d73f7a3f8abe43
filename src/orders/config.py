"""Runtime configuration for the Orders domain.

Values come from environment variables so the same code runs under test,
development, and production. Settings are read once and cached; tests call
``reset_settings()`` after changing the environment.

The environment name is taken from ``ENVIRONMENT``, falling back to
``PROTEAN_ENV``. It also selects the log format: JSON in production and
staging, console output elsewhere.
"""

import os
from dataclasses import dataclass

_TRUTHY = {"1", "true", "yes", "on"}

JSON_LOG_ENVIRONMENTS = ("production", "staging")


def _flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUTHY


def _environment() -> str:
    return (os.environ.get("ENVIRONMENT") or os.environ.get("PROTEAN_ENV") or "development").lower()


@dataclass(frozen=True)
class Settings:
    environment: str
    invoice_max_bytes: int
    render_timeout_seconds: float
    auto_invoice_on_capture: bool
    allow_cancel_after_shipment: bool
    max_payment_attempts: int
    blob_store: str
    blob_dir: str
    invoice_renderer: str
    notification_sender: str

    @property
    def json_logs(self) -> bool:
        return self.environment in JSON_LOG_ENVIRONMENTS


def load_settings() -> Settings:
    """Build settings from the current environment."""
    return Settings(
        environment=_environment(),
        invoice_max_bytes=int(os.environ.get("ORDERS_INVOICE_MAX_BYTES", 5 * 1024 * 1024)),
        render_timeout_seconds=float(os.environ.get("ORDERS_RENDER_TIMEOUT_SECONDS", 30)),
        auto_invoice_on_capture=_flag("ORDERS_AUTO_INVOICE_ON_CAPTURE", True),
        allow_cancel_after_shipment=_flag("ORDERS_ALLOW_CANCEL_AFTER_SHIPMENT", False),
        max_payment_attempts=int(os.environ.get("ORDERS_MAX_PAYMENT_ATTEMPTS", 5)),
        blob_store=os.environ.get("ORDERS_BLOB_STORE", "memory").lower(),
        blob_dir=os.environ.get("ORDERS_BLOB_DIR", os.path.join("uploads", "invoices")),
        invoice_renderer=os.environ.get("INVOICE_RENDERER", "fake").lower(),
        notification_sender=os.environ.get("NOTIFICATION_SENDER", "fake").lower(),
    )


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the cached settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Drop cached settings (useful for testing)."""
    global _settings
    _settings = None
