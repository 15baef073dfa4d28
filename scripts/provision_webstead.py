"""
Cria um webstead com o seu par de chaves RSA.
Uso: uv run python scripts/provision_webstead.py alice --display-name "Alice"
"""

import argparse
import asyncio

from webstead.database import async_session_factory, init_db
from webstead.services.websteads import create_webstead


async def provision(subdomain: str, custom_domain: str | None, display_name: str | None) -> None:
    await init_db()
    settings_map = {"display_name": display_name} if display_name else {}
    async with async_session_factory() as session:
        webstead = await create_webstead(session, subdomain, custom_domain, settings_map)
    print(f"✓ webstead {webstead.subdomain} criado: {webstead.actor_uri}")


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("subdomain")
    parser.add_argument("--custom-domain")
    parser.add_argument("--display-name")
    args = parser.parse_args()
    asyncio.run(provision(args.subdomain, args.custom_domain, args.display_name))


if __name__ == "__main__":
    main()
