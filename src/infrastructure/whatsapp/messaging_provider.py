"""
Messaging Provider - Abstraction Layer for WhatsApp Messaging
==============================================================

Provides a unified interface for sending WhatsApp messages.
Currently supports the Green API HTTP gateway and a dry-run provider.

USAGE:
    provider = GreenAPIProvider(settings.whatsapp)
    await provider.send_message("996700100518@c.us", "Hello!")
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from ...domain.errors import DeliveryFailure
from ..config import WhatsAppSettings

logger = logging.getLogger(__name__)

# Statuses where the gateway refused the message before accepting it.
# 502/504 are not retried: the upstream may have delivered already.
RETRYABLE_STATUSES = {429, 503}


class MessagingProvider(ABC):
    """
    Abstract base class for WhatsApp messaging providers.
    Implement this interface to add new messaging backends.
    """

    @abstractmethod
    def is_configured(self) -> bool:
        """Check if provider has everything it needs to send."""
        ...

    @abstractmethod
    async def send_message(self, chat_id: str, text: str) -> bool:
        """Send a text message to a chat id. Returns True if accepted."""
        ...

    @abstractmethod
    async def test_connection(self) -> bool:
        """Verify credentials against the gateway."""
        ...

    async def close(self) -> None:
        """Clean up resources."""
        return None


class GreenAPIProvider(MessagingProvider):
    """
    WhatsApp gateway via Green API.

    Configuration needed:
        - GREEN_API_URL: API host, e.g. https://api.green-api.com
        - GREEN_API_ID_INSTANCE: instance id
        - GREEN_API_API_TOKEN_INSTANCE: instance token

    Connection errors and 429/503 gateway responses are retried up to
    max_attempts. Timeouts, 502 and 504 are not retried: the gateway may
    have accepted the message already.
    """

    def __init__(
        self,
        settings: WhatsAppSettings,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._settings = settings
        self._client = http_client or httpx.AsyncClient(timeout=settings.request_timeout_seconds)

        if not settings.is_configured:
            logger.warning("WhatsApp Green API credentials not configured")
        else:
            logger.info(f"WhatsApp Green API configured, instance {settings.id_instance}")

    def is_configured(self) -> bool:
        return self._settings.is_configured

    def _method_url(self, method: str) -> str:
        s = self._settings
        return f"{s.api_url}/waInstance{s.id_instance}/{method}/{s.api_token}"

    async def _post_message(self, chat_id: str, text: str) -> dict:
        """One gateway call. Raises DeliveryFailure on any non-success."""
        try:
            response = await self._client.post(
                self._method_url("sendMessage"),
                json={"chatId": chat_id, "message": text},
            )
        except httpx.TimeoutException as e:
            raise DeliveryFailure(f"Gateway timeout for {chat_id}") from e
        except httpx.RequestError as e:
            raise DeliveryFailure(f"Gateway unreachable: {e}", retryable=True) from e

        if response.status_code != 200:
            raise DeliveryFailure(
                f"Gateway returned {response.status_code}: {response.text[:200]}",
                retryable=response.status_code in RETRYABLE_STATUSES,
            )

        try:
            data = response.json()
        except ValueError:
            data = None
        if not data:
            raise DeliveryFailure("Gateway returned an empty response")
        return data

    async def send_message(self, chat_id: str, text: str) -> bool:
        """Send via Green API with bounded retries."""
        if not self.is_configured():
            logger.error("WhatsApp API not configured")
            return False

        logger.info(f"Sending WhatsApp message to: {chat_id}")
        logger.debug(f"Message preview: {text[:100]}...")

        attempts = max(1, self._settings.max_attempts)
        for attempt in range(1, attempts + 1):
            try:
                data = await self._post_message(chat_id, text)
                logger.info(f"WhatsApp message sent to {chat_id}: {data.get('idMessage', '')}")
                return True
            except DeliveryFailure as e:
                if e.retryable and attempt < attempts:
                    logger.warning(f"Attempt {attempt}/{attempts} for {chat_id} failed: {e}, retrying")
                    await asyncio.sleep(self._settings.retry_delay_seconds)
                    continue
                logger.error(f"Failed to send WhatsApp message to {chat_id}: {e}")
                return False

        return False

    async def test_connection(self) -> bool:
        if not self.is_configured():
            logger.error("WhatsApp API credentials not configured")
            return False

        try:
            response = await self._client.get(self._method_url("getSettings"), timeout=10)
        except httpx.RequestError as e:
            logger.error(f"WhatsApp API connection test error: {e}")
            return False

        if response.status_code == 200:
            logger.info("WhatsApp API connection test successful")
            return True

        logger.error(f"WhatsApp API connection test failed: {response.status_code}")
        return False

    async def close(self) -> None:
        await self._client.aclose()


class DryRunProvider(MessagingProvider):
    """
    Logs messages instead of sending them.
    Every send is reported as successful; `sent` keeps (chat_id, text) pairs.
    """

    def __init__(self):
        self.sent: list[tuple[str, str]] = []

    def is_configured(self) -> bool:
        return True

    async def send_message(self, chat_id: str, text: str) -> bool:
        logger.info(f"[dry-run] Would send to {chat_id}: {text[:80]}...")
        self.sent.append((chat_id, text))
        return True

    async def test_connection(self) -> bool:
        return True
