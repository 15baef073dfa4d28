"""
webstead/activitypub/outbox.py

Outbox do webstead como OrderedCollection paginada.

- Sem ?page → resumo com totalItems, first e last
- Com ?page=N → OrderedCollectionPage com até 30 Create/Note,
  mais recentes primeiro; next/prev só quando existem

Páginas começam em 1. Página fora do intervalo devolve orderedItems vazio.
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from webstead.activitypub.notes import AS_CONTEXT, build_create_activity
from webstead.models.post import published_posts
from webstead.models.webstead import Webstead

PAGE_SIZE = 30
OUTBOX_CONTENT_TYPE = "application/activity+json"


def last_page_number(total_items: int) -> int:
    if total_items == 0:
        return 1
    return (total_items - 1) // PAGE_SIZE + 1


def page_url(webstead: Webstead, page: int) -> str:
    return f"{webstead.outbox_url}?page={page}"


def parse_page(raw: str | None) -> int:
    """Lixo vira 0, e tudo abaixo de 1 vira 1."""
    try:
        page = int(raw or 0)
    except ValueError:
        page = 0
    return max(page, 1)


async def count_published(session: AsyncSession, webstead: Webstead) -> int:
    subquery = published_posts(webstead.id).subquery()
    return await session.scalar(select(func.count()).select_from(subquery))


async def render_collection(session: AsyncSession, webstead: Webstead) -> dict:
    total_items = await count_published(session, webstead)
    return {
        "@context": AS_CONTEXT,
        "id": webstead.outbox_url,
        "type": "OrderedCollection",
        "totalItems": total_items,
        "first": page_url(webstead, 1),
        "last": page_url(webstead, last_page_number(total_items)),
    }


async def render_page(session: AsyncSession, webstead: Webstead, page_number: int) -> dict:
    page_number = max(page_number, 1)
    total_items = await count_published(session, webstead)
    last_page = last_page_number(total_items)

    # Página além da última não consulta o banco: o offset de um ?page
    # enorme não cabe num INTEGER do SQLite
    posts = []
    if page_number <= last_page:
        posts = await session.scalars(
            published_posts(webstead.id)
            .offset((page_number - 1) * PAGE_SIZE)
            .limit(PAGE_SIZE)
        )

    page = {
        "@context": AS_CONTEXT,
        "id": page_url(webstead, page_number),
        "type": "OrderedCollectionPage",
        "partOf": webstead.outbox_url,
        "totalItems": total_items,
        "orderedItems": [build_create_activity(webstead, post) for post in posts],
    }
    if page_number < last_page:
        page["next"] = page_url(webstead, page_number + 1)
    if page_number > 1:
        page["prev"] = page_url(webstead, page_number - 1)
    return page
