"""
webstead/activitypub/resolver.py

Busca e cache de actors remotos.

Fluxo de `ActorResolver.resolve(actor_uri)`:
1. Procura o FederatedActor no cache (tabela federated_actors)
2. Se existe e foi buscado há menos de TTL (24h), devolve o cache
3. Senão faz GET no actor_uri com Accept de ActivityPub e timeout limitado
4. Faz upsert da linha (INSERT ... ON CONFLICT DO UPDATE) e devolve

Falhas de rede ou respostas não-2xx viram UpstreamUnavailable (503):
o servidor remoto tenta de novo mais tarde. Duas atualizações simultâneas
do mesmo actor são trabalho duplicado inofensivo, sem lock.

A troca de chave no servidor remoto só é percebida depois que o cache
expira; essa janela de até um TTL é aceita.
"""

import logging
from datetime import datetime, timedelta, timezone
from urllib.parse import urlparse

import httpx
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from webstead.config import settings
from webstead.database import upsert_statement
from webstead.errors import UpstreamUnavailable
from webstead.models.federated_actor import FederatedActor

log = logging.getLogger(__name__)

ACCEPT = "application/activity+json, application/ld+json"


def http_timeout() -> httpx.Timeout:
    return httpx.Timeout(
        float(settings.http_read_timeout),
        connect=float(settings.http_connect_timeout),
    )


def _avatar_url(document: dict) -> str | None:
    icon = document.get("icon")
    if isinstance(icon, list):
        icon = icon[0] if icon else None
    if isinstance(icon, dict):
        return icon.get("url")
    return None


def actor_fields(actor_uri: str, document: dict) -> dict:
    """
    Extrai do documento do actor as colunas do cache. O inbox é opcional
    aqui: para verificar uma assinatura basta a chave pública.
    """
    inbox = document.get("inbox")
    if not isinstance(inbox, str) or not inbox:
        inbox = None

    endpoints = document.get("endpoints") or {}
    public_key = document.get("publicKey") or {}
    if isinstance(public_key, list):
        public_key = public_key[0] if public_key else {}

    return {
        "actor_uri": actor_uri,
        "actor_type": document.get("type"),
        "inbox_url": inbox,
        "shared_inbox_url": endpoints.get("sharedInbox") if isinstance(endpoints, dict) else None,
        "username": document.get("preferredUsername"),
        "domain": urlparse(actor_uri).hostname,
        "display_name": document.get("name"),
        "avatar_url": _avatar_url(document),
        "public_key": public_key.get("publicKeyPem") if isinstance(public_key, dict) else None,
        "actor_data": document,
    }


class ActorResolver:
    def __init__(
        self,
        session: AsyncSession,
        client: httpx.AsyncClient | None = None,
        ttl: timedelta | None = None,
    ):
        self.session = session
        self.client = client
        self.ttl = ttl or timedelta(hours=float(settings.actor_cache_ttl_hours))

    async def cached(self, actor_uri: str) -> FederatedActor | None:
        return await self.session.scalar(
            select(FederatedActor).where(FederatedActor.actor_uri == actor_uri)
        )

    async def resolve(self, actor_uri: str, force: bool = False) -> FederatedActor:
        actor = await self.cached(actor_uri)
        if actor is not None and not force and not actor.is_stale(self.ttl):
            return actor

        document = await self.fetch_document(actor_uri)
        return await self.store(actor_uri, document)

    async def fetch_document(self, actor_uri: str) -> dict:
        try:
            if self.client is not None:
                response = await self._get(self.client, actor_uri)
            else:
                async with httpx.AsyncClient(
                    timeout=http_timeout(),
                    headers={"User-Agent": settings.user_agent},
                    follow_redirects=True,
                ) as client:
                    response = await self._get(client, actor_uri)
        except httpx.HTTPError as e:
            log.error(f"Falha ao buscar actor {actor_uri}: {e}")
            raise UpstreamUnavailable("Failed to fetch actor") from e

        if not response.is_success:
            log.error(f"Falha ao buscar actor {actor_uri}: HTTP {response.status_code}")
            raise UpstreamUnavailable("Failed to fetch actor")

        try:
            document = response.json()
        except ValueError as e:
            log.error(f"Documento do actor {actor_uri} não é JSON: {e}")
            raise UpstreamUnavailable("Failed to fetch actor") from e

        if not isinstance(document, dict):
            raise UpstreamUnavailable("Failed to fetch actor")
        return document

    @staticmethod
    async def _get(client: httpx.AsyncClient, actor_uri: str) -> httpx.Response:
        return await client.get(actor_uri, headers={"Accept": ACCEPT}, timeout=http_timeout())

    async def store(self, actor_uri: str, document: dict) -> FederatedActor:
        """
        Upsert do cache. Campos opcionais ausentes no documento novo não
        apagam o que já estava gravado.
        """
        values = actor_fields(actor_uri, document)
        values["last_fetched_at"] = datetime.now(timezone.utc)

        stmt = upsert_statement(self.session, FederatedActor).values(**values)
        keep_if_missing = (
            "actor_type",
            "inbox_url",
            "shared_inbox_url",
            "username",
            "display_name",
            "avatar_url",
            "public_key",
        )
        update = {
            column: func.coalesce(stmt.excluded[column], getattr(FederatedActor, column))
            for column in keep_if_missing
        }
        update.update(
            domain=stmt.excluded.domain,
            actor_data=stmt.excluded.actor_data,
            last_fetched_at=stmt.excluded.last_fetched_at,
        )
        await self.session.execute(
            stmt.on_conflict_do_update(index_elements=["actor_uri"], set_=update)
        )

        return await self.session.scalar(
            select(FederatedActor)
            .where(FederatedActor.actor_uri == actor_uri)
            .execution_options(populate_existing=True)
        )
