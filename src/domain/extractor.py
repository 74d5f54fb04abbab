"""
Order Extractor - Sheet Rows to Client Order Sets
==================================================

Turns the raw cell grid of a warehouse sheet into ClientOrderSets keyed by
client code, and the client directory sheet into ClientRecords.

Malformed rows never abort extraction: they are skipped, counted and logged.
"""

import logging
import math
from typing import Any, Optional, Sequence

from .errors import ValidationSkip
from .models import ClientOrderSet, ClientRecord, ExtractionStats, Order, SheetLayout

logger = logging.getLogger(__name__)


def _cell(row: Sequence[Any], index: int) -> str:
    """Return a trimmed cell value, or '' when the row is too short."""
    if index < 0 or index >= len(row) or row[index] is None:
        return ""
    return str(row[index]).strip()


def parse_number(value: Any) -> Optional[float]:
    """
    Parse a weight/price cell.

    Accepts a decimal comma or point. Absent or unparseable values become
    None, never zero.
    """
    if value is None:
        return None

    text = str(value).strip().replace("\u00a0", "").replace(" ", "")
    if not text:
        return None

    try:
        number = float(text.replace(",", "."))
    except ValueError:
        return None

    if math.isnan(number) or math.isinf(number):
        return None
    return number


def build_client_map(
    rows: Sequence[Sequence[Any]],
    columns: Optional[SheetLayout] = None,
) -> dict[str, ClientRecord]:
    """
    Build the client-code lookup from the client directory sheet.

    The first row holds headers; columns are found by header name. Rows
    without a code are ignored.
    """
    columns = columns or SheetLayout()
    if not rows:
        logger.warning("Client directory sheet is empty")
        return {}

    headers = [str(h).strip() for h in rows[0]]

    def index_of(header: str) -> int:
        try:
            return headers.index(header)
        except ValueError:
            logger.warning(f"Column '{header}' not found in client directory headers")
            return -1

    code_idx = index_of(columns.client_code_header)
    name_idx = index_of(columns.client_name_header)
    phone_idx = index_of(columns.client_phone_header)
    pickup_idx = index_of(columns.client_pickup_header)

    if code_idx < 0:
        return {}

    client_map: dict[str, ClientRecord] = {}
    for row in rows[1:]:
        code = _cell(row, code_idx)
        if not code:
            continue
        client_map[code] = ClientRecord(
            code=code,
            full_name=_cell(row, name_idx),
            phone_number=_cell(row, phone_idx),
            pickup_point=_cell(row, pickup_idx),
        )

    logger.info(f"Client directory: {len(client_map)} clients loaded")
    return client_map


class OrderExtractor:
    """
    Parses warehouse sheet rows into per-client order sets.

    Usage:
        extractor = OrderExtractor()
        order_sets, stats = extractor.extract(rows, client_map)
    """

    def __init__(self, columns: Optional[SheetLayout] = None):
        self._columns = columns or SheetLayout()

    @property
    def columns(self) -> SheetLayout:
        return self._columns

    def extract(
        self,
        rows: Sequence[Sequence[Any]],
        client_map: dict[str, ClientRecord],
    ) -> tuple[dict[str, ClientOrderSet], ExtractionStats]:
        """
        Extract orders from raw rows (header row included).

        Returns:
            Tuple of (client code -> ClientOrderSet, extraction stats)
        """
        stats = ExtractionStats()
        order_sets: dict[str, ClientOrderSet] = {}

        for index, row in enumerate(rows[1:], start=2):
            stats.total_rows += 1
            try:
                client, order = self._parse_row(index, row or [], client_map)
            except ValidationSkip as skip:
                logger.info(f"Skipping {skip}")
                stats.skipped += 1
                stats.skip_reasons.append(str(skip))
                continue

            if client.code not in order_sets:
                order_sets[client.code] = ClientOrderSet(client=client)
            order_sets[client.code].add(order)
            stats.extracted += 1

        logger.info(
            f"Extracted {stats.extracted} orders for {len(order_sets)} clients, "
            f"skipped {stats.skipped} rows"
        )
        return order_sets, stats

    def _parse_row(
        self,
        row_number: int,
        row: Sequence[Any],
        client_map: dict[str, ClientRecord],
    ) -> tuple[ClientRecord, Order]:
        cols = self._columns

        if len(row) < cols.min_columns:
            raise ValidationSkip(
                row_number,
                f"insufficient columns ({len(row)}/{cols.min_columns})",
            )

        tracking_number = _cell(row, cols.tracking_column)
        if not tracking_number:
            raise ValidationSkip(row_number, "missing tracking number")

        client_code = _cell(row, cols.client_code_column)
        if not client_code:
            raise ValidationSkip(row_number, "missing client code")

        client = client_map.get(client_code)
        if client is None:
            raise ValidationSkip(row_number, f"unknown client code '{client_code}'")

        order = Order(
            tracking_number=tracking_number,
            status=_cell(row, cols.status_column) or cols.default_status,
            weight=parse_number(_cell(row, cols.weight_column)),
            price=parse_number(_cell(row, cols.price_column)),
        )
        return client, order
