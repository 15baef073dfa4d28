"""
webstead/activitypub/fanout.py

Fan-out de um post publicado para os followers aceitos.

1. Post não publicado → nada a fazer
2. Carrega os followers aceitos com o FederatedActor em cache
3. Monta um único Create/Note
4. Calcula os inboxes de destino: shared inbox quando existir, sem repetição
   (vários followers no mesmo servidor recebem uma única entrega)
5. Uma DeliveryTask por destino; a falha de um destino não afeta os outros

`plan_fanout()` precisa da sessão; `dispatch()` não. O worker fecha a sessão
entre os dois, e no máximo `fanout_concurrency` entregas rodam ao mesmo tempo.
"""

import asyncio
import logging
from dataclasses import dataclass

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from webstead.activitypub.delivery import deliver_with_retry
from webstead.activitypub.notes import build_create_activity
from webstead.config import settings
from webstead.models.follower import Follower
from webstead.models.post import Post
from webstead.models.webstead import Webstead
from webstead.services.followers import accepted_followers
from webstead.services.queue import DeliveryTask

log = logging.getLogger(__name__)


@dataclass
class FanoutResult:
    success: int = 0
    failure: int = 0

    @property
    def total(self) -> int:
        return self.success + self.failure


def destination_inboxes(followers: list[Follower]) -> list[str]:
    """Inboxes distintos, na ordem dos followers, preferindo o shared inbox."""
    seen: dict[str, None] = {}
    for follower in followers:
        inbox = follower.federated_actor.delivery_inbox
        if inbox:
            seen.setdefault(inbox, None)
    return list(seen)


async def plan_fanout(session: AsyncSession, post: Post) -> list[DeliveryTask]:
    """Uma DeliveryTask por inbox de destino. Lista vazia quando não há o que entregar."""
    if not post.is_published():
        log.info(f"Post {post.id} não está publicado, fan-out ignorado")
        return []

    webstead = await session.get(Webstead, post.webstead_id)
    followers = await accepted_followers(session, webstead)
    if not followers:
        log.info(f"Nenhum follower para o post {post.id}")
        return []

    activity = build_create_activity(webstead, post)
    return [
        DeliveryTask(
            activity=activity,
            inbox_url=inbox_url,
            signing_key_pem=webstead.private_key,
            signing_key_id=webstead.key_id,
        )
        for inbox_url in destination_inboxes(followers)
    ]


async def dispatch(
    tasks: list[DeliveryTask],
    client: httpx.AsyncClient | None = None,
    concurrency: int | None = None,
) -> FanoutResult:
    result = FanoutResult()
    if not tasks:
        return result

    limit = asyncio.Semaphore(concurrency or int(settings.fanout_concurrency))

    async def bounded(task: DeliveryTask) -> bool:
        async with limit:
            return await deliver_with_retry(task, client=client)

    outcomes = await asyncio.gather(*(bounded(task) for task in tasks), return_exceptions=True)
    for task, outcome in zip(tasks, outcomes):
        if outcome is True:
            result.success += 1
            continue
        result.failure += 1
        if isinstance(outcome, BaseException):
            log.error(f"Erro inesperado na entrega para {task.inbox_url}: {outcome!r}")

    log.info(
        f"Atividade {tasks[0].activity.get('id')}: {result.success} entregas com sucesso, "
        f"{result.failure} falharam"
    )
    return result


async def fanout(
    session: AsyncSession,
    post: Post,
    client: httpx.AsyncClient | None = None,
) -> FanoutResult:
    tasks = await plan_fanout(session, post)
    return await dispatch(tasks, client=client)
