"""
webstead/services/followers.py

Consultas e ações de moderação sobre followers.

Hoje todo Follow é aceito automaticamente no inbox; accept/reject existem
para followers criados como `pending` por uma política de moderação.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from webstead.errors import ClientError
from webstead.models.follower import ACCEPTED, Follower
from webstead.models.webstead import Webstead


async def accepted_followers(session: AsyncSession, webstead: Webstead) -> list[Follower]:
    result = await session.scalars(
        select(Follower)
        .options(selectinload(Follower.federated_actor))
        .where(Follower.webstead_id == webstead.id, Follower.status == ACCEPTED)
        .order_by(Follower.id)
    )
    return list(result)


async def accept_follower(session: AsyncSession, follower: Follower) -> Follower:
    try:
        follower.accept()
    except ValueError as e:
        raise ClientError(str(e)) from e
    await session.commit()
    return follower


async def reject_follower(session: AsyncSession, follower: Follower) -> Follower:
    try:
        follower.reject()
    except ValueError as e:
        raise ClientError(str(e)) from e
    await session.commit()
    return follower
