import asyncio

from aiohttp import web
from aiohttp import test_utils
from conftest import T0

from fallwatch.api import AsyncNotificationClient
from fallwatch.models import FallEvent, Severity


def make_event():
    return FallEvent(
        id=7,
        user_id="user-1",
        session_id="session-1",
        detected_at=T0,
        severity=Severity.HIGH,
        confidence_score=0.75,
        body_angle=0.0,
        fall_type="lateral",
    )


async def notify_with_server(status, **client_kwargs):
    received = []

    async def handler(request):
        received.append((request.headers.get("Authorization"), await request.json()))
        return web.json_response({"ok": status < 300}, status=status)

    app = web.Application()
    app.router.add_post("/alerts", handler)
    server = test_utils.TestServer(app)
    await server.start_server()

    client = AsyncNotificationClient(str(server.make_url("/alerts")), **client_kwargs)
    try:
        delivered = await client.notify_fall(make_event())
    finally:
        await client.close()
        await server.close()
    return delivered, received


def test_payload():
    client = AsyncNotificationClient("http://example.invalid/alerts")
    payload = client.build_payload(make_event())

    assert payload["event_type"] == "fall_detected"
    assert payload["id"] == 7
    assert payload["userId"] == "user-1"
    assert payload["severity"] == "HIGH"
    assert payload["severityLabel"] == "serious"
    assert payload["confidenceScore"] == 0.75


def test_headers():
    assert AsyncNotificationClient("http://x", api_key="secret")._get_headers() == {
        "Authorization": "Bearer secret"
    }
    assert AsyncNotificationClient("http://x")._get_headers() == {}


def test_retry_delays_repeat_last():
    client = AsyncNotificationClient("http://x", retry_delays=(1, 2))
    assert [client._delay_for(i) for i in range(4)] == [1, 2, 2, 2]


def test_no_endpoint_is_not_delivered():
    client = AsyncNotificationClient("")
    assert asyncio.run(client.notify_fall(make_event())) is False


def test_delivers_to_webhook():
    delivered, received = asyncio.run(notify_with_server(201, api_key="secret"))

    assert delivered
    assert len(received) == 1
    auth, body = received[0]
    assert auth == "Bearer secret"
    assert body["id"] == 7
    assert body["fallType"] == "lateral"


def test_retries_then_gives_up():
    delivered, received = asyncio.run(
        notify_with_server(503, retry_attempts=2, retry_delays=(0,))
    )

    assert not delivered
    assert len(received) == 2


def test_health_check():
    async def ok(request):
        return web.Response(text="ok")

    async def check():
        app = web.Application()
        app.router.add_get("/alerts", ok)
        server = test_utils.TestServer(app)
        await server.start_server()

        client = AsyncNotificationClient(str(server.make_url("/alerts")))
        try:
            return await client.health_check()
        finally:
            await client.close()
            await server.close()

    assert asyncio.run(check())
    assert asyncio.run(AsyncNotificationClient("").health_check()) is False
