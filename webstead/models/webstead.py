"""
webstead/models/webstead.py

Identidade federada de um site (webstead).

Cada webstead tem exatamente um par de chaves RSA, gerado uma única vez
na criação (ver webstead/activitypub/keys.py) e nunca regenerado.
"""

from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from webstead import config
from webstead.database import Base


class Webstead(Base):
    __tablename__ = "websteads"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # Handle estável, vira o subdomínio em {subdomain}.{base_domain}
    subdomain: Mapped[str] = mapped_column(String(63), unique=True, index=True)
    custom_domain: Mapped[str | None] = mapped_column(String(253), unique=True)

    private_key: Mapped[str | None] = mapped_column(Text)
    public_key: Mapped[str | None] = mapped_column(Text)

    # display_name, bio, ...
    settings: Mapped[dict] = mapped_column(JSON, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        insert_default=lambda: datetime.now(timezone.utc),
    )

    # ------------------------------------------------------------------
    # URLs derivadas
    # ------------------------------------------------------------------

    @property
    def primary_domain(self) -> str:
        return self.custom_domain or f"{self.subdomain}.{config.settings.base_domain}"

    @property
    def url(self) -> str:
        return f"https://{self.primary_domain}"

    @property
    def actor_uri(self) -> str:
        return f"{self.url}/actor"

    @property
    def key_id(self) -> str:
        return f"{self.actor_uri}#main-key"

    @property
    def outbox_url(self) -> str:
        return f"{self.url}/@{self.subdomain}/outbox"

    @property
    def display_name(self) -> str:
        return (self.settings or {}).get("display_name") or self.subdomain

    @property
    def bio(self) -> str | None:
        return (self.settings or {}).get("bio")

    def __repr__(self) -> str:
        return f"<Webstead subdomain={self.subdomain!r}>"
