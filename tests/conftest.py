# Shared pytest fixtures: fake sheet source, fake WhatsApp gateway, temp database
import asyncio
from pathlib import Path

import httpx
import pytest

from src.application import NotificationBatcher, SheetPipeline, create_container
from src.domain import SourceUnavailable
from src.infrastructure.config import Settings, SheetsSettings, WebhookSettings, WhatsAppSettings
from src.infrastructure.persistence import Database
from src.infrastructure.sheets import SheetInfo, SheetSource, SpreadsheetInfo
from src.infrastructure.webhook import WebhookForwarder
from src.infrastructure.whatsapp import MessagingProvider

SPREADSHEET_ID = "warehouse-sheet-id"
CLIENTS_SHEET = "Клиенты"

DIRECTORY = [
    ["181", "Ф.И.О", "Номер телефона", "Пункт выдачи"],
    ["C1", "Айбек Асанов", "700100518", "Бишкек, ул. Чуй 123"],
    ["C2", "Нурлан Осмонов", "+996 (555) 200-300", "7 апреля 2а/1"],
    ["C3", "Без Телефона", "", "Ош"],
]


def order_row(tracking, code, weight="", price="", status="Готов"):
    # status, -, tracking, code, weight, -, -, price
    return [status, "", tracking, code, weight, "", "", price]


@pytest.fixture
def anyio_backend():
    return "asyncio"


class FakeSheetSource(SheetSource):
    def __init__(self, sheets: dict):
        self.sheets = sheets
        self.fetches = []
        self.closed = False

    async def get_spreadsheet_info(self, spreadsheet_id):
        return SpreadsheetInfo(
            title="Warehouse",
            sheets=[SheetInfo(title=name, sheet_id=i) for i, name in enumerate(self.sheets)],
        )

    async def fetch_rows(self, spreadsheet_id, range_name):
        self.fetches.append((spreadsheet_id, range_name))
        if range_name not in self.sheets:
            raise SourceUnavailable(f"Unable to parse range: {range_name}")
        return [list(row) for row in self.sheets[range_name]]

    async def close(self):
        self.closed = True


class FakeProvider(MessagingProvider):
    """Records sends; can reject, raise or stall for chosen chat ids."""

    def __init__(self, reject=(), explode=(), stall=(), delay=0.0):
        self.sent = []
        self.reject = set(reject)
        self.explode = set(explode)
        self.stall = set(stall)
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0

    def is_configured(self):
        return True

    async def send_message(self, chat_id, text):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if chat_id in self.stall:
                await asyncio.sleep(10)
            if self.delay:
                await asyncio.sleep(self.delay)
            if chat_id in self.explode:
                raise RuntimeError("gateway exploded")
            self.sent.append((chat_id, text))
            return chat_id not in self.reject
        finally:
            self.in_flight -= 1

    async def test_connection(self):
        return True


async def no_sleep(seconds):
    return None


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        sheets=SheetsSettings(
            backend="google",
            spreadsheet_id=SPREADSHEET_ID,
            clients_spreadsheet_id="",
            clients_sheet_name=CLIENTS_SHEET,
            client_email="bot@example.iam.gserviceaccount.com",
            private_key="key",
            credentials_file="",
        ),
        whatsapp=WhatsAppSettings(
            api_url="https://api.green-api.test",
            id_instance="1101",
            api_token="token",
            batch_size=10,
            send_delay_seconds=0,
        ),
        webhook=WebhookSettings(url=""),
        database_file=tmp_path / "test.db",
        retention_days=30,
    )


@pytest.fixture
def database(settings) -> Database:
    db = Database(settings.database_file)
    db.init()
    return db


@pytest.fixture
def source() -> FakeSheetSource:
    return FakeSheetSource({
        CLIENTS_SHEET: DIRECTORY,
        "12.05": [
            ["Статус", "", "Трек", "Код", "Вес", "", "", "Цена"],
            order_row("T-NEW", "C1", "2,5", "1500"),
            order_row("T-OLD", "C2", "1"),
            ["Готов", ""],
        ],
    })


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def webhook_requests():
    return []


@pytest.fixture
def webhook_transport(webhook_requests):
    def handler(request: httpx.Request) -> httpx.Response:
        webhook_requests.append(request)
        return httpx.Response(200, json={"ok": True})
    return httpx.MockTransport(handler)


@pytest.fixture
def forwarder(settings, webhook_transport) -> WebhookForwarder:
    return WebhookForwarder(settings.webhook, http_client=httpx.AsyncClient(transport=webhook_transport))


@pytest.fixture
def pipeline(settings, database, source, provider, forwarder) -> SheetPipeline:
    batcher = NotificationBatcher(provider, settings.whatsapp, sleep=no_sleep)
    return SheetPipeline(source, database, batcher, forwarder, settings.sheets)


@pytest.fixture
def container(settings, source, provider, forwarder):
    return create_container(settings, source=source, provider=provider, forwarder=forwarder)
