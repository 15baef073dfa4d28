"""
webstead/models/federated_actor.py

Cache de actors remotos (contas de outros servidores do Fediverso).

Uma linha por actor_uri. Criada ou atualizada sob demanda pelo
ActorResolver quando o cache está ausente ou mais velho que o TTL.
Nunca é apagada automaticamente.
"""

from datetime import datetime, timedelta, timezone

from sqlalchemy import JSON, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from webstead.database import Base
from webstead.models.post import as_utc


class FederatedActor(Base):
    __tablename__ = "federated_actors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # URL canônica do actor remoto
    # ex: "https://mastodon.social/users/fulano"
    actor_uri: Mapped[str] = mapped_column(String(2048), unique=True)

    actor_type: Mapped[str | None] = mapped_column(String(64))
    inbox_url: Mapped[str | None] = mapped_column(String(2048))
    shared_inbox_url: Mapped[str | None] = mapped_column(String(2048))
    username: Mapped[str | None] = mapped_column(String(255))
    domain: Mapped[str | None] = mapped_column(String(253), index=True)
    display_name: Mapped[str | None] = mapped_column(String(255))
    avatar_url: Mapped[str | None] = mapped_column(String(2048))
    public_key: Mapped[str | None] = mapped_column(Text)

    # Documento JSON completo, como recebido
    actor_data: Mapped[dict | None] = mapped_column(JSON)

    last_fetched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    @property
    def delivery_inbox(self) -> str | None:
        """Shared inbox quando existir, senão o inbox pessoal."""
        return self.shared_inbox_url or self.inbox_url

    def is_stale(self, ttl: timedelta, now: datetime | None = None) -> bool:
        if self.last_fetched_at is None:
            return True
        now = now or datetime.now(timezone.utc)
        return now - as_utc(self.last_fetched_at) >= ttl

    def __repr__(self) -> str:
        return f"<FederatedActor actor_uri={self.actor_uri!r}>"
