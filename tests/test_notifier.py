import pytest

from conftest import FakeProvider, no_sleep
from src.application import NotificationBatcher
from src.domain import ClientOrderSet, ClientRecord, Order
from src.infrastructure.config import WhatsAppSettings
from src.infrastructure.metrics import PipelineMetrics

pytestmark = pytest.mark.anyio


def whatsapp_settings(**overrides):
    values = dict(
        api_url="https://api.green-api.test",
        id_instance="1101",
        api_token="token",
        batch_size=10,
        send_delay_seconds=0.5,
    )
    values.update(overrides)
    return WhatsAppSettings(**values)


def make_sets(count):
    sets = {}
    for i in range(count):
        code = f"C{i}"
        order_set = ClientOrderSet(
            client=ClientRecord(code, f"Client {i}", f"700{i:06d}", "Бишкек")
        )
        order_set.add(Order(f"T-{i}", "Готов", weight=1.0))
        sets[code] = order_set
    return sets


def chat(i):
    return f"996700{i:06d}@c.us"


async def test_25_clients_go_out_in_three_sequential_batches():
    provider = FakeProvider(delay=0.01)
    batcher = NotificationBatcher(provider, whatsapp_settings(), sleep=no_sleep)

    result = await batcher.send_all(make_sets(25))

    assert result.batches == 3
    assert result.sent == 25
    assert result.failed == 0
    assert provider.max_in_flight == 10
    assert {chat_id for chat_id, _ in provider.sent[:10]} == {chat(i) for i in range(10)}
    assert {chat_id for chat_id, _ in provider.sent[10:20]} == {chat(i) for i in range(10, 20)}
    assert {chat_id for chat_id, _ in provider.sent[20:]} == {chat(i) for i in range(20, 25)}


async def test_one_failure_does_not_stop_the_rest():
    provider = FakeProvider(reject={chat(3)}, explode={chat(17)})
    batcher = NotificationBatcher(provider, whatsapp_settings(), sleep=no_sleep)

    result = await batcher.send_all(make_sets(25))

    assert result.sent == 23
    assert result.failed == 2
    errors = {o.phone_number: o.error for o in result.failures}
    assert errors["700000003"] == "Gateway rejected the message"
    assert errors["700000017"] == "gateway exploded"


async def test_stalled_send_times_out():
    provider = FakeProvider(stall={chat(1)})
    batcher = NotificationBatcher(provider, whatsapp_settings(), send_timeout=0.05, sleep=no_sleep)

    result = await batcher.send_all(make_sets(3))

    assert result.sent == 2
    assert result.failed == 1
    assert result.failures[0].error == "Timed out"


def test_send_timeout_covers_every_retry():
    settings = whatsapp_settings(request_timeout_seconds=2, max_attempts=3, retry_delay_seconds=0.5)

    assert NotificationBatcher(FakeProvider(), settings).send_timeout == 7.0
    assert NotificationBatcher(FakeProvider(), settings, send_timeout=1).send_timeout == 1


async def test_send_slower_than_one_request_timeout_is_not_cut_off():
    # one gateway call may time out and be followed by retries
    provider = FakeProvider(delay=0.08)
    settings = whatsapp_settings(request_timeout_seconds=0.05, max_attempts=3, retry_delay_seconds=0.02)
    batcher = NotificationBatcher(provider, settings, sleep=no_sleep)

    result = await batcher.send_all(make_sets(2))

    assert result.sent == 2
    assert result.failed == 0


async def test_delay_follows_every_attempted_send():
    delays = []

    async def record_sleep(seconds):
        delays.append(seconds)

    sets = make_sets(2)
    sets["C9"] = ClientOrderSet(client=ClientRecord("C9", "No Phone", "", "Ош"))
    sets["C9"].add(Order("T-9", "Готов"))
    provider = FakeProvider(reject={chat(0)})
    batcher = NotificationBatcher(provider, whatsapp_settings(), sleep=record_sleep)

    result = await batcher.send_all(sets)

    assert delays == [0.5, 0.5]
    assert result.failed == 2
    assert "Missing phone number" in [o.error for o in result.failures]


async def test_orders_for_same_phone_are_merged_into_one_message():
    provider = FakeProvider()
    batcher = NotificationBatcher(provider, whatsapp_settings(), sleep=no_sleep)
    first = ClientOrderSet(client=ClientRecord("A1", "Айбек", "700100518", "Бишкек"))
    first.add(Order("T-1", "Готов", weight=2.5))
    second = ClientOrderSet(client=ClientRecord("A2", "Айбек (2)", "+996 (700) 100-518", "Ош"))
    second.add(Order("T-2", "Готов", weight=1.0))

    notifications = batcher.group_by_phone({"A1": first, "A2": second})
    result = await batcher.send_all({"A1": first, "A2": second})

    assert len(notifications) == 1
    assert notifications[0].full_name == "Айбек"
    assert [o.tracking_number for o in notifications[0].orders] == ["T-1", "T-2"]
    assert result.sent == 1
    assert provider.sent[0][0] == "996700100518@c.us"
    assert "Общий вес: 3.5 кг" in provider.sent[0][1]


async def test_batch_size_below_one_is_treated_as_one():
    provider = FakeProvider()
    batcher = NotificationBatcher(provider, whatsapp_settings(batch_size=0), sleep=no_sleep)

    result = await batcher.send_all(make_sets(3))

    assert result.batches == 3
    assert provider.max_in_flight == 1


async def test_nothing_to_send():
    batcher = NotificationBatcher(FakeProvider(), whatsapp_settings(), sleep=no_sleep)

    result = await batcher.send_all({})

    assert result.batches == 0
    assert result.total == 0


async def test_bulk_send_is_timed_and_counted():
    metrics = PipelineMetrics()
    provider = FakeProvider(reject={chat(1)})
    batcher = NotificationBatcher(provider, whatsapp_settings(), sleep=no_sleep, metrics=metrics)

    await batcher.send_all(make_sets(3))

    assert metrics.stats("whatsapp-bulk-send")["count"] == 1
    assert metrics.value("order_notifier_notifications_total", result="sent") == 2
    assert metrics.value("order_notifier_notifications_total", result="failed") == 1
