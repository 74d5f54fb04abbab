"""
Webhook Forwarder - Best-Effort Mirror of New Orders
=====================================================

POSTs the new orders of a run to an external URL. Delivery is telemetry,
not a correctness gate: forward() never raises.

The payload keeps the legacy sheet-shaped JSON that downstream consumers
already parse:

    {
      "<client code>": {
        "Ф.И.О": "...", "Номер телефона": "...", "Пункт выдачи": "...",
        "Заказы": {"1": {"Статус": "...", "Вес заказа": 2.5,
                         "Цена заказа": null, "Номер отслеживания": "..."}}
      }
    }
"""

import logging
from typing import Any, Optional

import httpx

from ...domain.errors import SinkFailure
from ...domain.extractor import parse_number
from ...domain.models import ClientOrderSet, ClientRecord, ForwardResult, Order
from ..config import WebhookSettings

logger = logging.getLogger(__name__)

NAME_KEY = "Ф.И.О"
PHONE_KEY = "Номер телефона"
PICKUP_KEY = "Пункт выдачи"
ORDERS_KEY = "Заказы"
STATUS_KEY = "Статус"
WEIGHT_KEY = "Вес заказа"
PRICE_KEY = "Цена заказа"
TRACKING_KEY = "Номер отслеживания"


def order_to_payload(order: Order) -> dict:
    return {
        STATUS_KEY: order.status,
        WEIGHT_KEY: order.weight,
        PRICE_KEY: order.price,
        TRACKING_KEY: order.tracking_number,
    }


def build_payload(order_sets: dict[str, ClientOrderSet]) -> dict:
    payload = {}
    for code, order_set in order_sets.items():
        client = order_set.client
        payload[code] = {
            NAME_KEY: client.full_name,
            PHONE_KEY: client.phone_number,
            PICKUP_KEY: client.pickup_point,
            ORDERS_KEY: {
                str(order_id): order_to_payload(order)
                for order_id, order in order_set.orders.items()
            },
        }
    return payload


def parse_payload(data: Any) -> dict[str, ClientOrderSet]:
    """
    Read a payload in the same shape back into order sets. Entries that are
    not objects are ignored.
    """
    order_sets: dict[str, ClientOrderSet] = {}
    if not isinstance(data, dict):
        return order_sets

    for code, client_data in data.items():
        if not isinstance(client_data, dict):
            continue
        client = ClientRecord(
            code=str(code),
            full_name=str(client_data.get(NAME_KEY) or ""),
            phone_number=str(client_data.get(PHONE_KEY) or ""),
            pickup_point=str(client_data.get(PICKUP_KEY) or ""),
        )
        order_set = ClientOrderSet(client=client)
        orders = client_data.get(ORDERS_KEY) or {}
        if not isinstance(orders, dict):
            orders = {}
        for order in orders.values():
            if not isinstance(order, dict) or not order.get(TRACKING_KEY):
                continue
            order_set.add(Order(
                tracking_number=str(order[TRACKING_KEY]),
                status=str(order.get(STATUS_KEY) or ""),
                weight=parse_number(order.get(WEIGHT_KEY)),
                price=parse_number(order.get(PRICE_KEY)),
            ))
        order_sets[client.code] = order_set
    return order_sets


class WebhookForwarder:
    """
    Usage:
        forwarder = WebhookForwarder(settings.webhook)
        result = await forwarder.forward(new_sets)
    """

    def __init__(
        self,
        settings: WebhookSettings,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._settings = settings
        self._client = http_client or httpx.AsyncClient(timeout=settings.timeout_seconds)

    @property
    def url(self) -> str:
        return self._settings.url

    async def forward(self, order_sets: dict[str, ClientOrderSet]) -> ForwardResult:
        if not self.url:
            logger.info("No webhook URL configured, skipping webhook call")
            return ForwardResult(True, "Data processed successfully (no webhook configured)")

        logger.info(f"Sending data for {len(order_sets)} clients to webhook: {self.url}")
        try:
            await self._post(build_payload(order_sets))
        except SinkFailure as e:
            logger.error(f"Error sending data to webhook: {e}")
            return ForwardResult(False, str(e))
        except Exception as e:
            logger.exception(f"Unexpected webhook error: {e}")
            return ForwardResult(False, f"Request error: {e}")

        return ForwardResult(True, "Data sent successfully")

    async def _post(self, payload: dict) -> None:
        try:
            response = await self._client.post(
                self.url,
                json=payload,
                headers={"User-Agent": self._settings.user_agent},
            )
        except httpx.TimeoutException as e:
            raise SinkFailure("No response from webhook server. Check if server is running.") from e
        except httpx.RequestError as e:
            raise SinkFailure(f"Request error: {e}") from e

        logger.info(f"Webhook response status: {response.status_code}")
        logger.debug(f"Webhook response body: {response.text[:500]}")

        if not response.is_success:
            detail = response.text[:200]
            try:
                detail = response.json().get("message", detail)
            except (ValueError, AttributeError):
                pass
            raise SinkFailure(f"Webhook error ({response.status_code}): {detail}")

    async def close(self) -> None:
        await self._client.aclose()
