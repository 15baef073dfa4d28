"""
webstead/models/follower.py

Relação "actor remoto segue webstead".

O par (webstead_id, federated_actor_id) é único no banco: reprocessar o
mesmo Follow nunca cria linha duplicada.

Transições de status:
- pending → accepted  (accept())
- pending → rejected  (reject())
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from webstead.database import Base
from webstead.models.federated_actor import FederatedActor

PENDING = "pending"
ACCEPTED = "accepted"
REJECTED = "rejected"

STATUSES = (PENDING, ACCEPTED, REJECTED)


class Follower(Base):
    __tablename__ = "followers"
    __table_args__ = (
        UniqueConstraint(
            "webstead_id",
            "federated_actor_id",
            name="uq_followers_webstead_actor",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    webstead_id: Mapped[int] = mapped_column(ForeignKey("websteads.id"), index=True)
    federated_actor_id: Mapped[int] = mapped_column(
        ForeignKey("federated_actors.id"), index=True
    )
    status: Mapped[str] = mapped_column(String(16), default=PENDING)
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # insert_default é avaliado pelo SQLAlchemy no momento do INSERT,
    # garantindo o timezone correto independente da configuração do sistema
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        insert_default=lambda: datetime.now(timezone.utc),
    )

    federated_actor: Mapped[FederatedActor] = relationship()

    def accept(self) -> None:
        if self.status != PENDING:
            raise ValueError(f"Cannot accept follower in status {self.status!r}")
        self.status = ACCEPTED
        self.accepted_at = datetime.now(timezone.utc)

    def reject(self) -> None:
        if self.status != PENDING:
            raise ValueError(f"Cannot reject follower in status {self.status!r}")
        self.status = REJECTED

    def __repr__(self) -> str:
        return (
            f"<Follower webstead_id={self.webstead_id!r} "
            f"federated_actor_id={self.federated_actor_id!r} status={self.status!r}>"
        )
