"""
workers/delivery_worker.py

Worker assíncrono que consome a fila de federação.

Fluxo:
1. Consome tarefas da fila (activity_queue)
2. DeliveryTask      → POST assinado com retry e backoff (deliver_with_retry)
3. FederatePostTask  → monta as entregas numa sessão própria, fecha a sessão e
                       entrega com no máximo settings.fanout_concurrency por vez
4. Erro numa tarefa é logado e o loop segue para a próxima

Vários workers podem rodar em paralelo (settings.delivery_workers).
"""

import asyncio
import logging

from webstead import database
from webstead.activitypub.delivery import deliver_with_retry
from webstead.activitypub.fanout import dispatch, plan_fanout
from webstead.models.post import Post
from webstead.services.queue import DeliveryTask, FederatePostTask, activity_queue

log = logging.getLogger(__name__)


async def handle_federate_post(task: FederatePostTask) -> None:
    async with database.async_session_factory() as session:
        post = await session.get(Post, task.post_id)
        if post is None:
            log.warning(f"Post {task.post_id} não encontrado, fan-out ignorado")
            return
        deliveries = await plan_fanout(session, post)
    # A sessão fica fechada durante as entregas e os backoffs
    await dispatch(deliveries)


async def handle_task(task) -> None:
    if isinstance(task, DeliveryTask):
        await deliver_with_retry(task)
    elif isinstance(task, FederatePostTask):
        await handle_federate_post(task)
    else:
        log.error(f"Tarefa desconhecida na fila: {task!r}")


async def run_worker() -> None:
    log.info("Worker de entrega iniciado")
    while True:
        try:
            task = await asyncio.wait_for(activity_queue.get(), timeout=5.0)
        except asyncio.TimeoutError:
            continue
        try:
            await handle_task(task)
        except Exception as e:
            log.error(f"Erro no worker: {e}", exc_info=True)
        finally:
            activity_queue.task_done()
