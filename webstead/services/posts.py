import logging
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from webstead.models.post import Post
from webstead.services import queue as queue_module

log = logging.getLogger(__name__)


async def publish_post(session: AsyncSession, post: Post, at: datetime | None = None) -> Post:
    """
    Marca o post como publicado em `at` (padrão: agora) e agenda o fan-out.
    Posts agendados para o futuro não são federados aqui.
    """
    post.published_at = at or datetime.now(timezone.utc)
    await session.commit()

    if post.is_published():
        queue_module.enqueue(queue_module.FederatePostTask(post_id=post.id))
        log.info(f"Post {post.id} publicado, fan-out agendado")
    return post
