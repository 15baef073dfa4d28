"""
webstead/activitypub/inbox.py

Processamento de atividades recebidas no inbox de um webstead.

Cada request passa por portões em sequência; qualquer um pode rejeitar:

    Recebido → assinatura verificada → JSON validado → tipo despachado → processado

1. Assinatura: header Signature obrigatório e bem formado (400), actor do
   keyId resolvível (503), com chave pública (400), assinatura válida (401)
2. JSON: corpo válido com @context, type e actor (400)
3. Despacho pelo `type`: só Follow tem handler; o resto é 501
4. Follow: object tem que ser o actor do webstead (400), actor remoto
   resolvível (503) e com inbox para o Accept (400), upsert idempotente do
   follower, Accept enfileirado → 202

Erros inesperados no Follow viram 422 com rollback: nunca fica follower
gravado pela metade. A entrega do Accept é assíncrona (fila).
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Mapping

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from webstead import config
from webstead.activitypub.notes import AS_CONTEXT
from webstead.activitypub.resolver import ActorResolver
from webstead.activitypub.signatures import (
    RequestView,
    digest_matches,
    parse_signature_header,
    verify,
)
from webstead.database import upsert_statement
from webstead.errors import (
    AuthError,
    ClientError,
    FederationError,
    ProcessingError,
    UnsupportedError,
)
from webstead.models.federated_actor import FederatedActor
from webstead.models.follower import ACCEPTED, Follower
from webstead.models.webstead import Webstead
from webstead.services import queue as queue_module

log = logging.getLogger(__name__)

REQUIRED_FIELDS = ("@context", "type", "actor")


@dataclass(frozen=True)
class InboundRequest:
    method: str
    path: str
    headers: Mapping[str, str]
    body: bytes


@dataclass
class InboxResult:
    activity: dict
    status_code: int = 202
    follower: Follower | None = None
    created: bool = False
    signer: FederatedActor | None = field(default=None, repr=False)


def object_id(value) -> str | None:
    """`actor`/`object` podem vir como URI ou como objeto embutido com `id`."""
    if isinstance(value, str):
        return value
    if isinstance(value, dict) and isinstance(value.get("id"), str):
        return value["id"]
    return None


def build_accept_activity(webstead: Webstead, follow: dict) -> dict:
    return {
        "@context": AS_CONTEXT,
        "type": "Accept",
        "id": f"{webstead.url}/activities/{uuid.uuid4()}",
        "actor": webstead.actor_uri,
        "object": follow,
    }


Handler = Callable[[Webstead, dict, FederatedActor | None], Awaitable[InboxResult]]


class InboxProcessor:
    def __init__(self, session: AsyncSession, resolver: ActorResolver | None = None):
        self.session = session
        self.resolver = resolver or ActorResolver(session)
        # Despacho por `type`. Novos tipos (Undo, Create...) entram aqui.
        self.handlers: dict[str, Handler] = {
            "Follow": self.handle_follow,
        }

    async def process(self, webstead: Webstead, request: InboundRequest) -> InboxResult:
        signer = await self.verify_signature(request)
        activity = self.parse_activity(request.body)
        result = await self.dispatch(webstead, activity, signer)
        result.signer = signer
        return result

    # ------------------------------------------------------------------
    # Portão 1: assinatura
    # ------------------------------------------------------------------

    async def verify_signature(self, request: InboundRequest) -> FederatedActor | None:
        if config.settings.skip_signature_verification and not config.is_production():
            log.warning("Verificação de assinatura ignorada (modo de desenvolvimento)")
            return None

        headers = {k.lower(): v for k, v in request.headers.items()}
        params = parse_signature_header(headers.get("signature"))

        try:
            actor = await self.resolver.resolve(params.actor_uri)
            # O cache do actor vale mesmo que o request seja rejeitado adiante
            await self.session.commit()
        except FederationError:
            raise
        except Exception as e:
            log.error(f"Erro ao verificar assinatura de {params.key_id}: {e}", exc_info=True)
            raise AuthError("Signature verification error") from e

        if not actor.public_key:
            raise ClientError("No public key in actor document")

        if "digest" in params.headers and "digest" in headers:
            if not digest_matches(headers["digest"], request.body):
                log.warning(f"Digest não confere para request assinado por {params.key_id}")
                raise AuthError("Invalid signature")

        view = RequestView(method=request.method, path=request.path, headers=headers)
        if not verify(params, actor.public_key, view):
            log.warning(f"Assinatura inválida de {params.key_id}")
            raise AuthError("Invalid signature")

        return actor

    # ------------------------------------------------------------------
    # Portão 2: JSON
    # ------------------------------------------------------------------

    @staticmethod
    def parse_activity(body: bytes) -> dict:
        try:
            activity = json.loads(body)
        except ValueError as e:
            log.info(f"JSON inválido no inbox: {e}")
            raise ClientError("Invalid JSON") from e

        if not isinstance(activity, dict):
            raise ClientError("Invalid JSON")

        missing = [name for name in REQUIRED_FIELDS if name not in activity]
        if missing:
            raise ClientError(f"Missing required fields: {', '.join(missing)}")
        return activity

    # ------------------------------------------------------------------
    # Portão 3: despacho
    # ------------------------------------------------------------------

    async def dispatch(
        self,
        webstead: Webstead,
        activity: dict,
        signer: FederatedActor | None,
    ) -> InboxResult:
        activity_type = activity.get("type")
        handler = self.handlers.get(activity_type) if isinstance(activity_type, str) else None
        if handler is None:
            log.info(f"Atividade {activity_type!r} não suportada para {webstead.subdomain}")
            raise UnsupportedError("Activity type not supported")
        return await handler(webstead, activity, signer)

    # ------------------------------------------------------------------
    # Follow
    # ------------------------------------------------------------------

    def follow_policy(self, webstead: Webstead, actor: FederatedActor) -> str:
        """Status inicial de um novo follower. Hoje todo Follow é aceito."""
        return ACCEPTED

    async def handle_follow(
        self,
        webstead: Webstead,
        activity: dict,
        signer: FederatedActor | None = None,
    ) -> InboxResult:
        if object_id(activity.get("object")) != webstead.actor_uri:
            raise ClientError("Object URI does not match user")

        actor_uri = object_id(activity.get("actor"))
        if not actor_uri:
            raise ClientError("Invalid actor")

        try:
            federated_actor = await self.resolver.resolve(actor_uri)
            if not federated_actor.delivery_inbox:
                raise ClientError("Actor has no inbox")
            follower, created = await self.upsert_follower(webstead, federated_actor)
            await self.session.commit()
        except FederationError:
            await self.session.rollback()
            raise
        except Exception as e:
            await self.session.rollback()
            log.error(f"Falha ao processar Follow de {actor_uri}: {e}", exc_info=True)
            raise ProcessingError("Failed to process follow") from e

        if follower.status == ACCEPTED:
            queue_module.enqueue(
                queue_module.DeliveryTask(
                    activity=build_accept_activity(webstead, activity),
                    inbox_url=federated_actor.delivery_inbox,
                    signing_key_pem=webstead.private_key,
                    signing_key_id=webstead.key_id,
                )
            )
            log.info(f"Follow aceito de {actor_uri} para {webstead.subdomain}")
        else:
            log.info(f"Follow de {actor_uri} para {webstead.subdomain} com status {follower.status}")

        return InboxResult(activity=activity, follower=follower, created=created)

    async def upsert_follower(
        self,
        webstead: Webstead,
        federated_actor: FederatedActor,
    ) -> tuple[Follower, bool]:
        """
        INSERT ... ON CONFLICT DO NOTHING no par (webstead, actor).
        Se o follower já existe, nada muda; a perdedora de uma corrida
        também cai no no-op.
        """
        status = self.follow_policy(webstead, federated_actor)
        stmt = (
            upsert_statement(self.session, Follower)
            .values(
                webstead_id=webstead.id,
                federated_actor_id=federated_actor.id,
                status=status,
                accepted_at=datetime.now(timezone.utc) if status == ACCEPTED else None,
            )
            .on_conflict_do_nothing(index_elements=["webstead_id", "federated_actor_id"])
        )
        result = await self.session.execute(stmt)

        follower = await self.session.scalar(
            select(Follower)
            .where(
                Follower.webstead_id == webstead.id,
                Follower.federated_actor_id == federated_actor.id,
            )
            .execution_options(populate_existing=True)
        )
        return follower, result.rowcount == 1
