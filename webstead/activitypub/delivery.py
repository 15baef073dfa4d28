"""
webstead/activitypub/delivery.py

Entrega de atividades assinadas para inboxes remotos.

- `deliver()`            - uma tentativa: serializa, assina e faz o POST;
                           não-2xx ou erro de rede levanta DeliveryError
- `deliver_with_retry()` - até `delivery_max_attempts` tentativas com backoff
                           exponencial; esgotadas, a entrega é abandonada
                           com log de erro (nunca descartada em silêncio)

O corpo é serializado uma única vez por tarefa e reenviado idêntico em
cada tentativa, então o Digest também é o mesmo. Date e Signature são
refeitos por tentativa para não enviar data vencida.
"""

import asyncio
import json
import logging

import httpx

from webstead.activitypub.resolver import http_timeout
from webstead.activitypub.signatures import signed_headers
from webstead.config import settings
from webstead.errors import DeliveryError
from webstead.services.queue import DeliveryTask

log = logging.getLogger(__name__)

ACTIVITY_CONTENT_TYPE = "application/activity+json"


def serialize(activity: dict) -> bytes:
    return json.dumps(activity, separators=(",", ":"), ensure_ascii=False).encode()


async def deliver(
    target_inbox_url: str,
    activity: dict | bytes,
    signing_key_pem: str,
    signing_key_id: str,
    client: httpx.AsyncClient | None = None,
) -> httpx.Response:
    body = activity if isinstance(activity, bytes) else serialize(activity)
    headers = signed_headers("POST", target_inbox_url, body, signing_key_pem, signing_key_id)
    headers.update(
        {
            "Content-Type": ACTIVITY_CONTENT_TYPE,
            "Accept": ACTIVITY_CONTENT_TYPE,
            "User-Agent": settings.user_agent,
        }
    )

    try:
        if client is not None:
            response = await client.post(
                target_inbox_url, content=body, headers=headers, timeout=http_timeout()
            )
        else:
            async with httpx.AsyncClient(timeout=http_timeout()) as own_client:
                response = await own_client.post(target_inbox_url, content=body, headers=headers)
    except httpx.HTTPError as e:
        raise DeliveryError(target_inbox_url, str(e) or type(e).__name__) from e

    if not response.is_success:
        raise DeliveryError(
            target_inbox_url,
            f"HTTP {response.status_code}: {response.text[:200]}",
            status_code=response.status_code,
        )

    log.info(f"Atividade entregue em {target_inbox_url}: HTTP {response.status_code}")
    return response


async def deliver_with_retry(
    task: DeliveryTask,
    client: httpx.AsyncClient | None = None,
    max_attempts: int | None = None,
    backoff_seconds: float | None = None,
) -> bool:
    """Retorna True se entregue, False se abandonada após esgotar as tentativas."""
    max_attempts = max_attempts or int(settings.delivery_max_attempts)
    if backoff_seconds is None:
        backoff_seconds = float(settings.delivery_backoff_seconds)

    body = serialize(task.activity)
    for attempt in range(1, max_attempts + 1):
        try:
            await deliver(task.inbox_url, body, task.signing_key_pem, task.signing_key_id, client)
            return True
        except DeliveryError as e:
            if attempt >= max_attempts:
                log.error(
                    f"Entrega abandonada para {task.inbox_url} após {max_attempts} "
                    f"tentativas (atividade {task.activity.get('id')}): {e.reason}"
                )
                return False

            sleep_duration = backoff_seconds * (2 ** (attempt - 1))
            log.warning(
                f"Falha na entrega para {task.inbox_url}, tentativa {attempt}/{max_attempts}: "
                f"{e.reason}. Nova tentativa em {sleep_duration}s"
            )
            await asyncio.sleep(sleep_duration)
    return False
