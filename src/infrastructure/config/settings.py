"""
Settings Module - Centralized Configuration Management
=======================================================

ARCHITECTURAL DECISION:
- All configuration is loaded from environment variables (no hardcoded secrets)
- Settings are immutable dataclasses
- Services receive the settings group they need from the composition root;
  only entry points call get_settings()

EXTENSIBILITY:
- To add another spreadsheet backend: add a value for SHEETS_BACKEND
- To switch WhatsApp gateway: add provider-specific settings group
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from functools import lru_cache

from dotenv import load_dotenv

from ...domain.models import SheetLayout

# Load .env file if present (development convenience)
load_dotenv()


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name, "").strip()
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name, "").strip()
    return float(value) if value else default


@dataclass(frozen=True)
class SheetsSettings:
    """Spreadsheet source settings."""

    # "google" (Sheets API) or "workbook" (local .xlsx/.csv files)
    backend: str = field(default_factory=lambda: os.getenv("SHEETS_BACKEND", "google").lower())

    # Warehouse spreadsheet with one tab per shipment
    spreadsheet_id: str = field(default_factory=lambda: os.getenv("SPREADSHEET_ID", ""))

    # Client directory; falls back to the warehouse spreadsheet when unset
    clients_spreadsheet_id: str = field(default_factory=lambda: os.getenv("CLIENTS_SPREADSHEET_ID", ""))
    clients_sheet_name: str = field(default_factory=lambda: os.getenv("CLIENTS_SHEET_NAME", "Клиенты"))

    # Service account credentials (inline or key file)
    client_email: str = field(default_factory=lambda: os.getenv("GOOGLE_CLIENT_EMAIL", ""))
    private_key: str = field(default_factory=lambda: os.getenv("GOOGLE_PRIVATE_KEY", ""))
    credentials_file: str = field(default_factory=lambda: os.getenv("GOOGLE_CREDENTIALS_FILE", ""))

    api_url: str = "https://sheets.googleapis.com/v4/spreadsheets"
    timeout_seconds: int = 30

    @property
    def directory_spreadsheet_id(self) -> str:
        return self.clients_spreadsheet_id or self.spreadsheet_id

    @property
    def has_credentials(self) -> bool:
        return bool(self.credentials_file or (self.client_email and self.private_key))


@dataclass(frozen=True)
class WhatsAppSettings:
    """Green API gateway and dispatch settings."""

    api_url: str = field(default_factory=lambda: os.getenv("GREEN_API_URL", "").rstrip("/"))
    id_instance: str = field(default_factory=lambda: os.getenv("GREEN_API_ID_INSTANCE", ""))
    api_token: str = field(default_factory=lambda: os.getenv("GREEN_API_API_TOKEN_INSTANCE", ""))

    country_code: str = "996"
    local_number_length: int = 9
    local_mobile_prefixes: str = "567"

    # SAFETY: bounded fan-out and per-send delay to respect gateway rate limits
    batch_size: int = field(default_factory=lambda: _env_int("WHATSAPP_BATCH_SIZE", 10))
    send_delay_seconds: float = field(default_factory=lambda: _env_float("WHATSAPP_SEND_DELAY", 1.0))

    request_timeout_seconds: float = 30.0
    max_attempts: int = 3
    retry_delay_seconds: float = 1.0

    @property
    def is_configured(self) -> bool:
        return bool(self.api_url and self.id_instance and self.api_token)

    @property
    def send_deadline_seconds(self) -> float:
        """Upper bound for one send including every retry."""
        attempts = max(1, self.max_attempts)
        return self.request_timeout_seconds * attempts + self.retry_delay_seconds * (attempts - 1)


@dataclass(frozen=True)
class WebhookSettings:
    """Outbound webhook mirror of newly found orders."""

    url: str = field(default_factory=lambda: os.getenv("WEBHOOK_URL", "").strip())
    timeout_seconds: float = 30.0
    user_agent: str = "Topex-Logistics-Bot/1.0"


@dataclass(frozen=True)
class Settings:
    """
    Root settings container - Single source of truth for all configuration.

    Usage:
        from src.infrastructure.config import get_settings
        settings = get_settings()
        print(settings.sheets.spreadsheet_id)
    """

    # Sub-settings groups
    sheets: SheetsSettings = field(default_factory=SheetsSettings)
    extraction: SheetLayout = field(default_factory=SheetLayout)
    whatsapp: WhatsAppSettings = field(default_factory=WhatsAppSettings)
    webhook: WebhookSettings = field(default_factory=WebhookSettings)

    # Persistence
    database_file: Path = field(
        default_factory=lambda: Path(os.getenv("DATABASE_FILE", "order_notifier.db"))
    )
    retention_days: int = field(default_factory=lambda: _env_int("RETENTION_DAYS", 30))

    # Inbound webhook limit per caller, "<count>/<second|minute|hour>"
    webhook_rate_limit: str = field(
        default_factory=lambda: os.getenv("WEBHOOK_RATE_LIMIT", "10/minute").strip()
    )

    def validate(self) -> list[str]:
        """
        Validate settings and return list of warnings/errors.
        Returns empty list if all settings are valid.
        """
        issues = []

        if not self.sheets.spreadsheet_id:
            issues.append(
                "ERROR: SPREADSHEET_ID not set. Sheets cannot be processed."
            )

        if self.sheets.backend not in ("google", "workbook"):
            issues.append(
                f"ERROR: Unknown SHEETS_BACKEND '{self.sheets.backend}'. "
                "Use 'google' or 'workbook'."
            )
        elif self.sheets.backend == "google" and not self.sheets.has_credentials:
            issues.append(
                "ERROR: Google credentials missing. Set GOOGLE_CLIENT_EMAIL and "
                "GOOGLE_PRIVATE_KEY or GOOGLE_CREDENTIALS_FILE."
            )

        if not self.whatsapp.is_configured:
            issues.append(
                "WARNING: Green API credentials not configured. "
                "WhatsApp notifications will fail."
            )

        if self.whatsapp.batch_size < 1:
            issues.append("ERROR: WHATSAPP_BATCH_SIZE must be at least 1.")

        if not self.webhook.url:
            issues.append(
                "WARNING: WEBHOOK_URL not set. New orders will not be mirrored."
            )

        return issues


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get singleton Settings instance.
    Cached to ensure consistent settings throughout application lifecycle.
    """
    return Settings()
