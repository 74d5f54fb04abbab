import json

import httpx
import pytest

from src.infrastructure.config import WhatsAppSettings
from src.infrastructure.whatsapp import DryRunProvider, GreenAPIProvider

pytestmark = pytest.mark.anyio

CHAT_ID = "996700100518@c.us"


def green_settings(**overrides):
    values = dict(
        api_url="https://api.green-api.test",
        id_instance="1101",
        api_token="secret",
        max_attempts=3,
        retry_delay_seconds=0,
    )
    values.update(overrides)
    return WhatsAppSettings(**values)


def provider_with(responses, settings=None):
    """Each call pops the next response; an exception class is raised instead."""
    calls = []

    def handler(request):
        calls.append(request)
        response = responses.pop(0)
        if isinstance(response, type) and issubclass(response, Exception):
            raise response("boom", request=request)
        return response

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GreenAPIProvider(settings or green_settings(), http_client=client), calls


async def test_send_message_posts_to_instance_endpoint():
    provider, calls = provider_with([httpx.Response(200, json={"idMessage": "BAE5"})])

    assert await provider.send_message(CHAT_ID, "Привет") is True

    request = calls[0]
    assert request.method == "POST"
    assert str(request.url) == "https://api.green-api.test/waInstance1101/sendMessage/secret"
    assert json.loads(request.content) == {"chatId": CHAT_ID, "message": "Привет"}


async def test_rate_limited_send_is_retried():
    provider, calls = provider_with([
        httpx.Response(429, text="Too Many Requests"),
        httpx.Response(503, text="Unavailable"),
        httpx.Response(200, json={"idMessage": "BAE5"}),
    ])

    assert await provider.send_message(CHAT_ID, "text") is True
    assert len(calls) == 3


async def test_client_error_is_not_retried():
    provider, calls = provider_with([httpx.Response(400, text="Bad chatId")])

    assert await provider.send_message(CHAT_ID, "text") is False
    assert len(calls) == 1


@pytest.mark.parametrize("status", [502, 504])
async def test_upstream_gateway_errors_are_not_retried(status):
    provider, calls = provider_with([httpx.Response(status, text="Gateway Timeout")])

    assert await provider.send_message(CHAT_ID, "text") is False
    assert len(calls) == 1


async def test_timeout_is_not_retried():
    provider, calls = provider_with([httpx.ReadTimeout])

    assert await provider.send_message(CHAT_ID, "text") is False
    assert len(calls) == 1


async def test_connection_errors_give_up_after_max_attempts():
    provider, calls = provider_with([httpx.ConnectError] * 3)

    assert await provider.send_message(CHAT_ID, "text") is False
    assert len(calls) == 3


async def test_empty_response_body_is_a_failure():
    provider, _ = provider_with([httpx.Response(200, json={})])

    assert await provider.send_message(CHAT_ID, "text") is False


async def test_unconfigured_provider_does_not_call_gateway():
    provider, calls = provider_with([], settings=green_settings(api_token=""))

    assert provider.is_configured() is False
    assert await provider.send_message(CHAT_ID, "text") is False
    assert await provider.test_connection() is False
    assert calls == []


async def test_connection_check_uses_get_settings():
    provider, calls = provider_with([httpx.Response(200, json={"wid": CHAT_ID})])

    assert await provider.test_connection() is True
    assert calls[0].method == "GET"
    assert calls[0].url.path == "/waInstance1101/getSettings/secret"


async def test_dry_run_records_messages():
    provider = DryRunProvider()

    assert await provider.send_message(CHAT_ID, "text") is True
    assert provider.sent == [(CHAT_ID, "text")]
