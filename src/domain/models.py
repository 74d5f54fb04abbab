"""
Domain Models - Orders, Clients and Run Results
================================================

Plain dataclasses with no I/O. Everything here lives for one pipeline run
except the result objects, which are handed back to the caller.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class SheetLayout:
    """
    Column layout of the order sheets and the client directory.

    Order rows are positional (0-based offsets); the client directory is
    looked up by header name.
    """

    status_column: int = 0
    tracking_column: int = 2
    client_code_column: int = 3
    weight_column: int = 4
    price_column: int = 7
    min_columns: int = 4

    client_code_header: str = "181"
    client_name_header: str = "Ф.И.О"
    client_phone_header: str = "Номер телефона"
    client_pickup_header: str = "Пункт выдачи"

    default_status: str = "Неизвестно"


@dataclass(frozen=True)
class ClientRecord:
    """Client directory entry, joined to order rows by code."""
    code: str
    full_name: str
    phone_number: str
    pickup_point: str


@dataclass(frozen=True)
class Order:
    """One parcel row from a warehouse sheet."""
    tracking_number: str
    status: str
    weight: Optional[float] = None
    price: Optional[float] = None


@dataclass
class ClientOrderSet:
    """All orders of one client within one run, keyed by run-local id."""
    client: ClientRecord
    orders: dict[int, Order] = field(default_factory=dict)

    def add(self, order: Order) -> int:
        """Append an order under the next sequential id (starting at 1)."""
        order_id = max(self.orders) + 1 if self.orders else 1
        self.orders[order_id] = order
        return order_id

    @property
    def tracking_numbers(self) -> list[str]:
        return [order.tracking_number for order in self.orders.values()]

    def __len__(self) -> int:
        return len(self.orders)


@dataclass
class ClientNotification:
    """One outgoing WhatsApp message: every new order for one phone number."""
    full_name: str
    phone_number: str
    pickup_point: str
    orders: list[Order] = field(default_factory=list)


@dataclass
class ExtractionStats:
    """Row accounting of one extraction pass."""
    total_rows: int = 0
    extracted: int = 0
    skipped: int = 0
    skip_reasons: list[str] = field(default_factory=list)


@dataclass
class DedupStats:
    new_count: int = 0
    already_sent_count: int = 0

    @property
    def total(self) -> int:
        return self.new_count + self.already_sent_count


@dataclass
class DeliveryOutcome:
    """Result of notifying one client."""
    phone_number: str
    client_name: str
    order_count: int
    success: bool
    error: str = ""


@dataclass
class NotificationResult:
    """Bulk notification tallies, counted in clients."""
    sent: int = 0
    failed: int = 0
    batches: int = 0
    outcomes: list[DeliveryOutcome] = field(default_factory=list)

    @property
    def failures(self) -> list[DeliveryOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.success]

    @property
    def total(self) -> int:
        return self.sent + self.failed


@dataclass
class ForwardResult:
    success: bool
    message: str


class PipelineState(Enum):
    """Orchestrator state machine."""
    IDLE = "idle"
    VALIDATING = "validating"
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    FILTERING = "filtering"
    NOTIFYING = "notifying"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class ProcessResult:
    """Outcome of process_sheet(); success and message are the public contract."""
    success: bool
    message: str
    state: PipelineState = PipelineState.DONE
    sheet_name: str = ""
    new_count: int = 0
    already_sent_count: int = 0
    skipped_rows: int = 0
    notification: Optional[NotificationResult] = None
    webhook: Optional[ForwardResult] = None

    def to_dict(self) -> dict:
        data = {
            "success": self.success,
            "message": self.message,
            "state": self.state.value,
            "sheetName": self.sheet_name,
            "newCount": self.new_count,
            "alreadySentCount": self.already_sent_count,
            "skippedRows": self.skipped_rows,
        }
        if self.notification is not None:
            data["whatsapp"] = {
                "sent": self.notification.sent,
                "failed": self.notification.failed,
            }
        if self.webhook is not None:
            data["webhook"] = {
                "success": self.webhook.success,
                "message": self.webhook.message,
            }
        return data
