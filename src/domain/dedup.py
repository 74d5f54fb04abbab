"""
Deduplication Filter - split extracted orders into new and already sent.

Pure: the ledger snapshot comes in as a set and nothing is written here.
"""

import logging
from typing import AbstractSet

from .models import ClientOrderSet, DedupStats

logger = logging.getLogger(__name__)


def partition(
    order_sets: dict[str, ClientOrderSet],
    sent: AbstractSet[str],
) -> tuple[dict[str, ClientOrderSet], DedupStats]:
    """
    Drop orders whose tracking number is in `sent`.

    Clients left without orders are removed from the result. Order ids of
    kept orders are preserved. Repeated tracking numbers inside the same
    extraction are not collapsed.
    """
    stats = DedupStats()
    new_sets: dict[str, ClientOrderSet] = {}

    for client_code, order_set in order_sets.items():
        kept = {}
        for order_id, order in order_set.orders.items():
            if order.tracking_number in sent:
                stats.already_sent_count += 1
                logger.debug(f"Skipping already sent tracking number: {order.tracking_number}")
            else:
                kept[order_id] = order
                stats.new_count += 1

        if kept:
            new_sets[client_code] = ClientOrderSet(client=order_set.client, orders=kept)

    logger.info(
        f"Dedup: {stats.total} orders, {stats.new_count} new, "
        f"{stats.already_sent_count} already sent"
    )
    return new_sets, stats
