"""
webstead/services/queue.py

Fila assíncrona de tarefas de federação, consumida por workers/delivery_worker.py.

Tarefas:
- DeliveryTask      - um POST assinado de uma atividade para um inbox
- FederatePostTask  - fan-out de um post recém-publicado para os followers

O handler HTTP só enfileira; a entrega nunca bloqueia o request.
"""

import asyncio
from dataclasses import dataclass


@dataclass(frozen=True)
class DeliveryTask:
    activity: dict
    inbox_url: str
    signing_key_pem: str
    signing_key_id: str


@dataclass(frozen=True)
class FederatePostTask:
    post_id: int


activity_queue: asyncio.Queue = asyncio.Queue()


def enqueue(task: DeliveryTask | FederatePostTask) -> None:
    activity_queue.put_nowait(task)
