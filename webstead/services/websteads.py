"""
webstead/services/websteads.py

Provisionamento e busca de websteads.

- `create_webstead()` - valida subdomínio/domínio, gera as chaves e grava
- `find_by_handle()`  - busca pelo handle (subdomínio)
- `find_by_host()`    - resolve o webstead a partir do Host do request

O webstead encontrado é passado explicitamente para os componentes de
federação; não existe "webstead atual" global.
"""

import logging
import re

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from webstead.activitypub.keys import ensure_keypair
from webstead.config import settings
from webstead.errors import InvalidHandleError
from webstead.models.webstead import Webstead

log = logging.getLogger(__name__)

RESERVED_SUBDOMAINS = frozenset(
    """
    www api admin app dashboard blog forum mail email
    ftp ssh git status help support docs wiki assets
    cdn static media images uploads files download
    staging dev test development production
    """.split()
)

SUBDOMAIN_RE = re.compile(r"^[a-z0-9][a-z0-9-]*[a-z0-9]$")
DOMAIN_RE = re.compile(r"^[a-z0-9][a-z0-9.-]*[a-z0-9]$")


def validate_subdomain(subdomain: str) -> str:
    subdomain = (subdomain or "").strip().lower()
    if not 3 <= len(subdomain) <= 63:
        raise InvalidHandleError("Subdomain must be between 3 and 63 characters")
    if not SUBDOMAIN_RE.match(subdomain):
        raise InvalidHandleError(
            "Subdomain must start and end with alphanumeric, "
            "contain only lowercase letters, numbers, and hyphens"
        )
    if subdomain in RESERVED_SUBDOMAINS:
        raise InvalidHandleError("Subdomain is reserved")
    return subdomain


def validate_custom_domain(domain: str | None) -> str | None:
    if not domain:
        return None
    domain = domain.strip().lower()
    if len(domain) > 253 or not DOMAIN_RE.match(domain):
        raise InvalidHandleError("Custom domain must be a valid domain name")
    return domain


async def create_webstead(
    session: AsyncSession,
    subdomain: str,
    custom_domain: str | None = None,
    settings_map: dict | None = None,
) -> Webstead:
    subdomain = validate_subdomain(subdomain)
    custom_domain = validate_custom_domain(custom_domain)

    if await find_by_handle(session, subdomain) is not None:
        raise InvalidHandleError("Subdomain is already taken")
    if custom_domain and await session.scalar(
        select(Webstead).where(Webstead.custom_domain == custom_domain)
    ):
        raise InvalidHandleError("Custom domain is already taken")

    webstead = Webstead(
        subdomain=subdomain,
        custom_domain=custom_domain,
        settings=dict(settings_map or {}),
    )
    # KeyGenerationError propaga: sem chaves não há webstead
    ensure_keypair(webstead)

    session.add(webstead)
    await session.commit()
    log.info(f"Webstead {subdomain} provisionado ({webstead.primary_domain})")
    return webstead


async def find_by_handle(session: AsyncSession, handle: str) -> Webstead | None:
    return await session.scalar(
        select(Webstead).where(Webstead.subdomain == handle.lower())
    )


async def find_by_host(session: AsyncSession, host: str) -> Webstead | None:
    host = host.split(":", 1)[0].lower()

    webstead = await session.scalar(select(Webstead).where(Webstead.custom_domain == host))
    if webstead is not None:
        return webstead

    suffix = f".{settings.base_domain}".lower()
    if host.endswith(suffix):
        return await find_by_handle(session, host[: -len(suffix)])
    return None
