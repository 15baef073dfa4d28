"""
webstead/activitypub/webfinger.py

WebFinger (RFC 7033): `acct:usuario@dominio` → URI do actor.

Quando alguém procura @alice@alice.webstead.dev no Mastodon, o servidor
remoto consulta /.well-known/webfinger?resource=acct:alice@alice.webstead.dev
e segue o link rel=self até o documento do actor.
"""

import re

from sqlalchemy.ext.asyncio import AsyncSession

from webstead.errors import ClientError, NotFoundError
from webstead.services.websteads import find_by_handle

JRD_CONTENT_TYPE = "application/jrd+json"

_ACCT_RE = re.compile(r"^acct:([^@]+)@(.+)$")


def parse_acct(resource: str | None) -> tuple[str, str]:
    if not resource:
        raise ClientError("resource parameter is required")
    match = _ACCT_RE.match(resource)
    if not match:
        raise ClientError("Invalid resource format. Expected acct:username@domain")
    return match.group(1), match.group(2)


async def resolve_webfinger(
    session: AsyncSession,
    resource: str | None,
    request_host: str,
) -> dict:
    username, domain = parse_acct(resource)

    # Consultas sobre outros domínios não são nossas
    if domain.lower() != request_host.split(":", 1)[0].lower():
        raise NotFoundError("Domain mismatch")

    webstead = await find_by_handle(session, username)
    if webstead is None:
        raise NotFoundError("User not found")

    return {
        "subject": resource,
        "links": [
            {
                "rel": "self",
                "type": "application/activity+json",
                "href": webstead.actor_uri,
            }
        ],
    }
