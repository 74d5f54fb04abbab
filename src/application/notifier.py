"""
Notification Batcher - Bulk WhatsApp Dispatch
==============================================

Groups new orders per phone number, renders one message per client and
sends them in fixed-size batches:

- batches run strictly one after another
- inside a batch every send runs concurrently; a failure never cancels
  its siblings (asyncio.gather with return_exceptions)
- each send is followed by a fixed delay to respect the gateway rate limit
- a send counts as failed on a False result, a timeout or any exception
- the per-send timeout covers the provider's own retries

Counts are per client, not per order.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from ..domain.messages import build_message, to_chat_id
from ..domain.models import (
    ClientNotification,
    ClientOrderSet,
    DeliveryOutcome,
    NotificationResult,
)
from ..infrastructure.config import WhatsAppSettings
from ..infrastructure.metrics import PipelineMetrics
from ..infrastructure.whatsapp import MessagingProvider

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


class NotificationBatcher:
    """
    Usage:
        batcher = NotificationBatcher(provider, settings.whatsapp)
        result = await batcher.send_all(new_sets)
        print(result.sent, result.failed)
    """

    def __init__(
        self,
        provider: MessagingProvider,
        settings: WhatsAppSettings,
        send_timeout: Optional[float] = None,
        sleep: SleepFunc = asyncio.sleep,
        metrics: Optional[PipelineMetrics] = None,
    ):
        self._provider = provider
        self._settings = settings
        self._batch_size = max(1, settings.batch_size)
        self._send_timeout = send_timeout or settings.send_deadline_seconds
        self._sleep = sleep
        self._metrics = metrics or PipelineMetrics()

    @property
    def send_timeout(self) -> float:
        return self._send_timeout

    def chat_id(self, phone: str) -> str:
        s = self._settings
        return to_chat_id(
            phone,
            s.country_code,
            local_length=s.local_number_length,
            local_prefixes=s.local_mobile_prefixes,
        )

    def group_by_phone(self, order_sets: dict[str, ClientOrderSet]) -> list[ClientNotification]:
        """
        One notification per phone number. Client codes sharing a phone are
        merged; the first client's name and pickup point are used.
        """
        grouped: dict[str, ClientNotification] = {}
        for code, order_set in order_sets.items():
            client = order_set.client
            key = self.chat_id(client.phone_number) if client.phone_number else f"code:{code}"
            if key not in grouped:
                grouped[key] = ClientNotification(
                    full_name=client.full_name,
                    phone_number=client.phone_number,
                    pickup_point=client.pickup_point,
                )
            grouped[key].orders.extend(order_set.orders.values())
        return list(grouped.values())

    async def send_all(self, order_sets: dict[str, ClientOrderSet]) -> NotificationResult:
        notifications = self.group_by_phone(order_sets)
        total_orders = sum(len(n.orders) for n in notifications)
        logger.info(
            f"Starting bulk WhatsApp notifications for {len(notifications)} clients "
            f"with {total_orders} total orders"
        )

        result = NotificationResult()
        size = self._batch_size
        batch_count = (len(notifications) + size - 1) // size

        with self._metrics.timer("whatsapp-bulk-send"):
            for start in range(0, len(notifications), size):
                batch = notifications[start:start + size]
                result.batches += 1
                logger.info(f"Processing batch {result.batches}/{batch_count} ({len(batch)} clients)")

                settled = await asyncio.gather(
                    *(self._notify(notification) for notification in batch),
                    return_exceptions=True,
                )

                for notification, outcome in zip(batch, settled):
                    if isinstance(outcome, BaseException):
                        outcome = self._failed(notification, f"Unexpected error: {outcome}")
                    result.outcomes.append(outcome)
                    if outcome.success:
                        result.sent += 1
                    else:
                        result.failed += 1

        self._metrics.record_notifications(result.sent, result.failed)

        logger.info(
            f"Bulk notification results: {result.sent} clients notified, {result.failed} failed"
        )
        return result

    async def _notify(self, notification: ClientNotification) -> DeliveryOutcome:
        if not notification.phone_number:
            logger.warning(f"No phone number provided for {notification.full_name}")
            return self._failed(notification, "Missing phone number")

        chat_id = self.chat_id(notification.phone_number)
        text = build_message(notification)
        tracking = ", ".join(o.tracking_number for o in notification.orders)
        logger.info(
            f"Notifying {notification.full_name} ({notification.phone_number} -> {chat_id}), "
            f"{len(notification.orders)} orders: {tracking}"
        )

        try:
            sent = await asyncio.wait_for(
                self._provider.send_message(chat_id, text),
                timeout=self._send_timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"WhatsApp send to {chat_id} timed out after {self._send_timeout}s")
            return self._failed(notification, "Timed out")
        except Exception as e:
            logger.exception(f"Error sending notification to {chat_id}: {e}")
            return self._failed(notification, str(e))
        finally:
            await self._sleep(self._settings.send_delay_seconds)

        if not sent:
            return self._failed(notification, "Gateway rejected the message")

        return DeliveryOutcome(
            phone_number=notification.phone_number,
            client_name=notification.full_name,
            order_count=len(notification.orders),
            success=True,
        )

    @staticmethod
    def _failed(notification: ClientNotification, error: str) -> DeliveryOutcome:
        return DeliveryOutcome(
            phone_number=notification.phone_number,
            client_name=notification.full_name,
            order_count=len(notification.orders),
            success=False,
            error=error,
        )
