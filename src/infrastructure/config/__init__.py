from .settings import (
    Settings,
    SheetsSettings,
    WebhookSettings,
    WhatsAppSettings,
    get_settings,
)

__all__ = [
    "Settings",
    "SheetsSettings",
    "WebhookSettings",
    "WhatsAppSettings",
    "get_settings",
]
