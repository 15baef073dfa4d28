"""
webstead/models/post.py

Post do webstead. O CRUD e a validação ficam fora do núcleo de federação;
aqui só interessa o estado de publicação e o corpo em markdown.

Estados:
- draft      - published_at vazio
- scheduled  - published_at no futuro
- published  - published_at <= agora
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, select
from sqlalchemy.orm import Mapped, mapped_column

from webstead.database import Base


def as_utc(value: datetime) -> datetime:
    # SQLite devolve datetime sem tzinfo; tudo é gravado em UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Post(Base):
    __tablename__ = "posts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    webstead_id: Mapped[int] = mapped_column(ForeignKey("websteads.id"), index=True)
    title: Mapped[str] = mapped_column(String(300))
    body: Mapped[str | None] = mapped_column(Text)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        insert_default=lambda: datetime.now(timezone.utc),
    )

    def is_published(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return self.published_at is not None and as_utc(self.published_at) <= now

    def is_draft(self) -> bool:
        return self.published_at is None

    def is_scheduled(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return self.published_at is not None and as_utc(self.published_at) > now

    def __repr__(self) -> str:
        return f"<Post id={self.id!r} webstead_id={self.webstead_id!r}>"


def published_posts(webstead_id: int, now: datetime | None = None):
    """SELECT dos posts publicados do webstead, mais recentes primeiro."""
    now = now or datetime.now(timezone.utc)
    return (
        select(Post)
        .where(
            Post.webstead_id == webstead_id,
            Post.published_at.is_not(None),
            Post.published_at <= now,
        )
        .order_by(Post.published_at.desc(), Post.id.desc())
    )
