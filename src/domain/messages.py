"""
Message Builder - WhatsApp Texts and Phone Normalization
=========================================================

Renders the client-facing notification texts (Russian, as the warehouse
clients read them) and converts directory phone numbers into gateway chat ids.
Everything here is deterministic and free of I/O.
"""

import re
from typing import Iterable, Optional

from .models import ClientNotification, Order

# ── Message Templates ──────────────────────────────────────────
WEIGHT_UNKNOWN = "не указан"
PRICE_UNKNOWN = "не указана"

LIMITED_HOURS_POINTS = [
    "7 апреля 2а/1",
    "уметалиева, 127",
    "уметалиева 127",
]

LIMITED_HOURS = """⏰ Режим работы склада:
Пн-Сб: 10:00 - 19:00
Вс: выходной"""

REGULAR_HOURS = """⏰ Режим работы склада:
Ежедневно: 10:00 - 21:00"""

PAYMENT_NOTICE = (
    "⚠️ ВАЖНО: На пунктах выдачи оплата принимается только по QR-коду/банковскому переводу. "
    "Наличные деньги, к сожалению, не принимаются."
)

SUPPORT_PHONES = """📱 Для вопросов звоните:
+996 (500) 685 685
+996 (504) 685 685"""

SINGLE_ORDER_TEMPLATE = """Добрый день, {name}! Рады сообщить что ваш товар прибыл на наш склад.

📦 Tracking номер: {tracking}
⚖️ Вес: {weight}
💰 Стоимость: {price}
📍 Забрать можно по адресу: {pickup}

{payment}

{hours}

{support}

Спасибо за ваш заказ! 🙏"""

MULTI_ORDER_TEMPLATE = """Добрый день, {name}! Рады сообщить что ваши товары прибыли на наш склад.

У вас {count} {noun}:

{orders}

📊 ИТОГО:
⚖️ Общий вес: {weight}
💰 Общая стоимость: {price}

📍 Забрать можно по адресу: {pickup}

{payment}

{hours}

{support}

Спасибо за ваши заказы! 🙏"""

CHAT_ID_SUFFIX = "@c.us"

_PHONE_PUNCTUATION = re.compile(r"[\s\-()]")


def normalize_phone(
    phone: str,
    country_code: str = "996",
    local_length: int = 9,
    local_prefixes: str = "567",
) -> str:
    """
    Normalize a phone number to international digits without '+'.

    "+996 (700) 100-518" and "700100518" both become "996700100518".
    """
    cleaned = _PHONE_PUNCTUATION.sub("", phone or "")

    if cleaned.startswith("+" + country_code):
        return cleaned[1:]

    if cleaned.startswith(country_code):
        return cleaned

    if len(cleaned) == local_length and cleaned[:1] in local_prefixes:
        return country_code + cleaned

    # Best effort: assume the country prefix is missing
    return country_code + cleaned.lstrip("+")


def to_chat_id(phone: str, country_code: str = "996", **kwargs) -> str:
    """Gateway destination id for a phone number."""
    return normalize_phone(phone, country_code, **kwargs) + CHAT_ID_SUFFIX


def sum_known(values: Iterable[Optional[float]]) -> Optional[float]:
    """Sum the non-None values; None when nothing is known."""
    known = [v for v in values if v is not None]
    if not known:
        return None
    return sum(known)


def format_number(value: float) -> str:
    """2.0 -> '2', 3.5 -> '3.5', 0.1 + 0.2 -> '0.3'."""
    rounded = round(value, 2)
    if rounded == int(rounded):
        return str(int(rounded))
    return f"{rounded:.2f}".rstrip("0").rstrip(".")


def format_amount(value: Optional[float], unit: str, unknown: str) -> str:
    """Render an amount, or the placeholder when it is unknown or zero."""
    if not value:
        return unknown
    return f"{format_number(value)} {unit}"


def order_noun(count: int) -> str:
    if count == 1:
        return "заказ"
    if count < 5:
        return "заказа"
    return "заказов"


def working_hours(pickup_point: str) -> str:
    """Warehouse opening hours for a pickup point."""
    point = (pickup_point or "").lower().strip()
    if point:
        for limited in LIMITED_HOURS_POINTS:
            if limited in point or point in limited:
                return LIMITED_HOURS
    return REGULAR_HOURS


def render_single_order(name: str, pickup_point: str, order: Order) -> str:
    return SINGLE_ORDER_TEMPLATE.format(
        name=name,
        tracking=order.tracking_number,
        weight=format_amount(order.weight, "кг", WEIGHT_UNKNOWN),
        price=format_amount(order.price, "сом", PRICE_UNKNOWN),
        pickup=pickup_point,
        payment=PAYMENT_NOTICE,
        hours=working_hours(pickup_point),
        support=SUPPORT_PHONES,
    )


def render_multiple_orders(name: str, pickup_point: str, orders: list[Order]) -> str:
    lines = "\n".join(
        f"{index}. 📦 Tracking: {order.tracking_number}"
        for index, order in enumerate(orders, start=1)
    )
    return MULTI_ORDER_TEMPLATE.format(
        name=name,
        count=len(orders),
        noun=order_noun(len(orders)),
        orders=lines,
        weight=format_amount(sum_known(o.weight for o in orders), "кг", WEIGHT_UNKNOWN),
        price=format_amount(sum_known(o.price for o in orders), "сом", PRICE_UNKNOWN),
        pickup=pickup_point,
        payment=PAYMENT_NOTICE,
        hours=working_hours(pickup_point),
        support=SUPPORT_PHONES,
    )


def build_message(notification: ClientNotification) -> str:
    """Single-order text for one order, consolidated text otherwise."""
    if len(notification.orders) == 1:
        return render_single_order(
            notification.full_name, notification.pickup_point, notification.orders[0]
        )
    return render_multiple_orders(
        notification.full_name, notification.pickup_point, notification.orders
    )
