"""
Testes para webstead/activitypub/delivery.py

Cobre:
- deliver(): POST com Content-Type de ActivityPub, Digest e Signature válidos
- deliver(): corpo enviado é o JSON compacto da atividade
- deliver(): não-2xx e erro de rede → DeliveryError
- deliver_with_retry(): sucesso na primeira tentativa → True, sem sleep
- deliver_with_retry(): 500 sempre → 3 tentativas, backoff crescente, False
- deliver_with_retry(): falha e depois sucesso → True
- deliver_with_retry(): mesmo corpo (e Digest) em todas as tentativas
- deliver_with_retry(): abandono gera log de erro
"""

import json
import logging
from unittest.mock import AsyncMock, patch

import httpx
import pytest
import respx

from webstead.activitypub import delivery
from webstead.activitypub.delivery import deliver, deliver_with_retry, serialize
from webstead.activitypub.signatures import (
    RequestView,
    digest,
    parse_signature_header,
    verify,
)
from webstead.errors import DeliveryError
from webstead.services.queue import DeliveryTask

INBOX = "https://remote.example/inbox"
KEY_ID = "https://alice.webstead.test/actor#main-key"

ACTIVITY = {
    "@context": "https://www.w3.org/ns/activitystreams",
    "id": "https://alice.webstead.test/activities/1",
    "type": "Accept",
    "actor": "https://alice.webstead.test/actor",
    "object": {"type": "Follow", "actor": "https://remote.example/users/bob"},
}


@pytest.fixture
def task(local_keys):
    return DeliveryTask(
        activity=ACTIVITY,
        inbox_url=INBOX,
        signing_key_pem=local_keys[0],
        signing_key_id=KEY_ID,
    )


# ---------------------------------------------------------------------------
# deliver
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_deliver_sends_signed_request(local_keys):
    with respx.mock:
        route = respx.post(INBOX).respond(202)
        await deliver(INBOX, ACTIVITY, local_keys[0], KEY_ID)

    request = route.calls.last.request
    assert request.headers["content-type"] == "application/activity+json"
    assert request.headers["user-agent"] == "webstead-test"
    assert request.headers["digest"] == digest(request.content)

    params = parse_signature_header(request.headers["signature"])
    assert params.key_id == KEY_ID
    assert params.headers == ("(request-target)", "host", "date", "digest")

    view = RequestView(method="POST", path="/inbox", headers=dict(request.headers))
    assert verify(params, local_keys[1], view) is True


@pytest.mark.asyncio
async def test_deliver_sends_compact_json(local_keys):
    with respx.mock:
        route = respx.post(INBOX).respond(200)
        await deliver(INBOX, ACTIVITY, local_keys[0], KEY_ID)

    body = route.calls.last.request.content
    assert body == serialize(ACTIVITY)
    assert json.loads(body) == ACTIVITY


@pytest.mark.asyncio
async def test_deliver_raises_on_non_2xx(local_keys):
    with respx.mock:
        respx.post(INBOX).respond(410, text="Gone")
        with pytest.raises(DeliveryError) as exc_info:
            await deliver(INBOX, ACTIVITY, local_keys[0], KEY_ID)

    assert exc_info.value.status_code == 410
    assert exc_info.value.inbox_url == INBOX


@pytest.mark.asyncio
async def test_deliver_raises_on_network_error(local_keys):
    with respx.mock:
        respx.post(INBOX).mock(side_effect=httpx.ConnectError("recusado"))
        with pytest.raises(DeliveryError) as exc_info:
            await deliver(INBOX, ACTIVITY, local_keys[0], KEY_ID)

    assert exc_info.value.status_code is None
    assert "recusado" in exc_info.value.reason


# ---------------------------------------------------------------------------
# deliver_with_retry
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_retry_success_on_first_attempt(task):
    mock_sleep = AsyncMock()

    with respx.mock, patch.object(delivery.asyncio, "sleep", mock_sleep):
        route = respx.post(INBOX).respond(202)
        assert await deliver_with_retry(task) is True

    assert route.call_count == 1
    mock_sleep.assert_not_called()


@pytest.mark.asyncio
async def test_retry_gives_up_after_max_attempts(task, caplog):
    mock_sleep = AsyncMock()

    with (
        respx.mock,
        patch.object(delivery.asyncio, "sleep", mock_sleep),
        caplog.at_level(logging.WARNING, logger="webstead.activitypub.delivery"),
    ):
        route = respx.post(INBOX).respond(500)
        assert await deliver_with_retry(task, backoff_seconds=2.0) is False

    assert route.call_count == 3
    assert [c.args[0] for c in mock_sleep.call_args_list] == [2.0, 4.0]
    assert "Entrega abandonada" in caplog.text
    assert any(r.levelno == logging.ERROR for r in caplog.records)


@pytest.mark.asyncio
async def test_retry_recovers_after_transient_failure(task):
    with respx.mock, patch.object(delivery.asyncio, "sleep", AsyncMock()):
        route = respx.post(INBOX).mock(
            side_effect=[httpx.Response(503), httpx.Response(202)]
        )
        assert await deliver_with_retry(task) is True

    assert route.call_count == 2


@pytest.mark.asyncio
async def test_retry_resends_identical_body(task):
    with respx.mock, patch.object(delivery.asyncio, "sleep", AsyncMock()):
        route = respx.post(INBOX).respond(500)
        await deliver_with_retry(task, max_attempts=2)

    first, second = (call.request for call in route.calls)
    assert first.content == second.content
    assert first.headers["digest"] == second.headers["digest"]


@pytest.mark.asyncio
async def test_retry_respects_max_attempts_from_settings(task, monkeypatch):
    from webstead import config

    monkeypatch.setattr(config.settings, "delivery_max_attempts", 5)

    with respx.mock, patch.object(delivery.asyncio, "sleep", AsyncMock()):
        route = respx.post(INBOX).mock(side_effect=httpx.ConnectError("fora do ar"))
        assert await deliver_with_retry(task) is False

    assert route.call_count == 5
