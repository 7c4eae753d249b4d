"""Resend transport and retry helper, exercised against httpx.MockTransport."""
import json

import httpx
import pytest

from phone_assets.services import email_transport, http_service
from phone_assets.services.email_transport import LoggingTransport, ResendTransport, html_to_text


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr(http_service, "_backoff", lambda *args: 0)


def _transport(handler) -> ResendTransport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ResendTransport(
        api_key="re_test", from_email="noreply@example.com", from_name="Desk", client=client
    )


async def test_send_success_posts_payload():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["Authorization"]
        seen["key"] = request.headers.get("Idempotency-Key")
        seen["body"] = request.read()
        return httpx.Response(200, json={"id": "msg_1"})

    result = await _transport(handler).send(
        "li@example.com", "Subject", "<p>Hello <b>Li</b></p>", idempotency_key="k-1"
    )

    assert result.ok and result.message_id == "msg_1"
    assert seen["auth"] == "Bearer re_test"
    assert seen["key"] == "k-1"
    assert json.loads(seen["body"])["from"] == "Desk <noreply@example.com>"


async def test_idempotency_conflict_counts_as_sent():
    result = await _transport(lambda request: httpx.Response(409, json={"id": "msg_1"})).send(
        "li@example.com", "s", "<p>x</p>", idempotency_key="k"
    )
    assert result.ok


async def test_client_error_is_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(422, json={"message": "Invalid `to` field"})

    result = await _transport(handler).send("bad", "s", "<p>x</p>")

    assert not result.ok
    assert result.error == "Resend API error: 422 (Invalid `to` field)"
    assert len(calls) == 1


async def test_server_errors_are_retried():
    responses = iter([httpx.Response(503), httpx.Response(502), httpx.Response(200, json={"id": "m"})])

    result = await _transport(lambda request: next(responses)).send("li@example.com", "s", "<p>x</p>")

    assert result.ok and result.message_id == "m"


async def test_connection_errors_become_failed_results():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    result = await _transport(handler).send("li@example.com", "s", "<p>x</p>")

    assert not result.ok
    assert result.error == "Connection error: ConnectError"


async def test_request_with_retries_gives_up_after_max_attempts():
    calls = 0

    async def request_fn():
        nonlocal calls
        calls += 1
        return httpx.Response(500)

    response = await http_service.request_with_retries(request_fn, max_attempts=3)

    assert response.status_code == 500
    assert calls == 3


async def test_logging_transport_reports_success():
    result = await LoggingTransport().send("li@example.com", "s", "<p>x</p>")
    assert result.ok


def test_dry_run_without_api_key(monkeypatch):
    monkeypatch.setattr(email_transport.settings, "RESEND_API_KEY", "")
    assert isinstance(email_transport.get_email_transport(), LoggingTransport)
    monkeypatch.setattr(email_transport.settings, "RESEND_API_KEY", "re_live")
    assert isinstance(email_transport.get_email_transport(), ResendTransport)


def test_html_to_text():
    assert html_to_text("<p>Hello</p>\n<p>Li &amp; Co</p><style>p{}</style>") == "Hello Li & Co"
