"""
webstead/database.py

Configuração do banco de dados via SQLAlchemy assíncrono.

Exporta:
- `engine`                - engine assíncrona compartilhada
- `async_session_factory` - fábrica de sessões para rotas, worker e scripts
- `Base`                  - classe base para os modelos ORM
- `get_session()`         - dependência FastAPI que fornece sessão por request
- `upsert_statement()`    - INSERT com ON CONFLICT para o dialeto em uso
- `init_db()`             - cria as tabelas na inicialização da aplicação
"""

from typing import AsyncGenerator

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from webstead.config import settings

# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

_connect_args = (
    {"check_same_thread": False}
    if settings.database_url.startswith("sqlite")
    else {}
)

engine = create_async_engine(
    settings.database_url,
    echo=False,
    connect_args=_connect_args,
)

# ---------------------------------------------------------------------------
# Fábrica de sessões
# ---------------------------------------------------------------------------

# Nome distinto de AsyncSession (classe) para evitar colisão no mesmo módulo
async_session_factory = async_sessionmaker(
    bind=engine,
    expire_on_commit=False,  # evita lazy-load após commit em contexto assíncrono
    class_=AsyncSession,
)


# ---------------------------------------------------------------------------
# Base declarativa
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Dependência FastAPI
# ---------------------------------------------------------------------------

async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependência FastAPI que fornece uma sessão de banco por request.
    Faz commit automático em caso de sucesso e rollback em caso de exceção.

    Os serviços podem fazer commit/rollback explícito no meio do request
    (o inbox precisa disso para manter o Follow atômico).
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# ---------------------------------------------------------------------------
# Upsert por dialeto
# ---------------------------------------------------------------------------

def upsert_statement(session: AsyncSession, model):
    """
    Retorna um `insert()` do dialeto ativo, que expõe
    `on_conflict_do_nothing` / `on_conflict_do_update`.

    A unicidade fica garantida pelo banco: duas requisições simultâneas
    não conseguem inserir a mesma linha, a perdedora vira no-op.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"Upsert não suportado para o dialeto {dialect!r}")


# ---------------------------------------------------------------------------
# Inicialização
# ---------------------------------------------------------------------------

async def init_db() -> None:
    """
    Cria todas as tabelas definidas nos modelos ORM caso ainda não existam.
    Deve ser chamado uma única vez no startup da aplicação (lifespan do FastAPI).
    """
    # Importa os modelos para que o SQLAlchemy os registre no metadata da Base
    # antes de criar as tabelas. Sem este import, as tabelas não serão criadas.
    from webstead.models import federated_actor, follower, post, webstead  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
