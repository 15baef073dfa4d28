"""
webstead/activitypub/notes.py

Monta a atividade Create/Note de um post publicado.
Usado pelo outbox (histórico paginado) e pelo fan-out (entrega aos followers).
"""

import markdown

from webstead.models.post import Post, as_utc
from webstead.models.webstead import Webstead

AS_CONTEXT = "https://www.w3.org/ns/activitystreams"
PUBLIC = "https://www.w3.org/ns/activitystreams#Public"


def render_html(body: str | None) -> str:
    return markdown.markdown(body or "")


def post_url(webstead: Webstead, post: Post) -> str:
    return f"{webstead.url}/posts/{post.id}"


def build_note(webstead: Webstead, post: Post) -> dict:
    url = post_url(webstead, post)
    published = as_utc(post.published_at).strftime("%Y-%m-%dT%H:%M:%SZ")
    return {
        "id": url,
        "type": "Note",
        "attributedTo": webstead.actor_uri,
        "content": render_html(post.body),
        "published": published,
        "url": url,
        "to": [PUBLIC],
        "cc": [f"{webstead.actor_uri}/followers"],
        "tag": [],
    }


def build_create_activity(webstead: Webstead, post: Post) -> dict:
    note = build_note(webstead, post)
    return {
        "@context": AS_CONTEXT,
        "id": f"{note['id']}/activity",
        "type": "Create",
        "actor": webstead.actor_uri,
        "published": note["published"],
        "to": note["to"],
        "cc": note["cc"],
        "object": note,
    }
