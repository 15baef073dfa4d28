"""
Fixtures compartilhadas entre todos os testes.
"""

import asyncio
import json
import os
from unittest.mock import patch

os.environ.setdefault("ENV_FOR_DYNACONF", "testing")

import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


# ---------------------------------------------------------------------------
# Chaves RSA geradas em memória: uma para o webstead local, outra para o
# actor remoto que assina os requests de entrada
# ---------------------------------------------------------------------------


def _pem_pair(private_key) -> tuple[str, str]:
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()
    public_pem = (
        private_key.public_key()
        .public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        .decode()
    )
    return private_pem, public_pem


@pytest.fixture(scope="session")
def local_keys() -> tuple[str, str]:
    """(privada, pública) do webstead local, gerado uma vez por sessão."""
    return _pem_pair(rsa.generate_private_key(public_exponent=65537, key_size=2048))


@pytest.fixture(scope="session")
def remote_keys() -> tuple[str, str]:
    """(privada, pública) do actor remoto."""
    return _pem_pair(rsa.generate_private_key(public_exponent=65537, key_size=2048))


# ---------------------------------------------------------------------------
# Configuração Dynaconf isolada para testes
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def patch_settings(monkeypatch):
    """
    Sobrescreve as settings do Dynaconf com valores de teste.
    `autouse=True` garante que nenhum teste dependa da configuração real.
    """
    from webstead import config

    monkeypatch.setattr(config.settings, "base_domain", "webstead.test")
    monkeypatch.setattr(config.settings, "actor_cache_ttl_hours", 24)
    monkeypatch.setattr(config.settings, "http_connect_timeout", 1.0)
    monkeypatch.setattr(config.settings, "http_read_timeout", 2.0)
    monkeypatch.setattr(config.settings, "delivery_max_attempts", 3)
    monkeypatch.setattr(config.settings, "delivery_backoff_seconds", 0.0)
    monkeypatch.setattr(config.settings, "delivery_workers", 2)
    monkeypatch.setattr(config.settings, "fanout_concurrency", 4)
    monkeypatch.setattr(config.settings, "skip_signature_verification", False)
    monkeypatch.setattr(config.settings, "user_agent", "webstead-test")


# ---------------------------------------------------------------------------
# Banco SQLite isolado por teste
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine(tmp_path):
    from webstead.database import Base
    from webstead.models import federated_actor, follower, post, webstead  # noqa: F401

    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


# ---------------------------------------------------------------------------
# Fila de federação isolada
# ---------------------------------------------------------------------------


@pytest.fixture
def task_queue():
    """Substitui a fila global; o que o código enfileirar fica aqui."""
    from webstead.services import queue as queue_module

    test_queue: asyncio.Queue = asyncio.Queue()
    with patch.object(queue_module, "activity_queue", test_queue):
        yield test_queue


# ---------------------------------------------------------------------------
# Dados de domínio
# ---------------------------------------------------------------------------


REMOTE_ACTOR = "https://remote.example/users/bob"
REMOTE_KEY_ID = f"{REMOTE_ACTOR}#main-key"
REMOTE_SHARED_INBOX = "https://remote.example/inbox"


@pytest.fixture
def remote_actor_url() -> str:
    return REMOTE_ACTOR


@pytest_asyncio.fixture
async def webstead(session_factory, local_keys):
    from webstead.models.webstead import Webstead

    private_pem, public_pem = local_keys
    async with session_factory() as s:
        w = Webstead(
            subdomain="alice",
            settings={"display_name": "Alice", "bio": "Escrevendo na web aberta"},
            private_key=private_pem,
            public_key=public_pem,
        )
        s.add(w)
        await s.commit()
    return w


@pytest.fixture
def make_actor_document(remote_keys):
    """Factory de documentos de actor remoto (Person do Mastodon)."""

    def _make(
        actor_uri: str = REMOTE_ACTOR,
        shared_inbox: str | None = REMOTE_SHARED_INBOX,
        with_key: bool = True,
        **extra,
    ) -> dict:
        document = {
            "@context": ["https://www.w3.org/ns/activitystreams", "https://w3id.org/security/v1"],
            "id": actor_uri,
            "type": "Person",
            "preferredUsername": actor_uri.rstrip("/").split("/")[-1],
            "name": "Bob",
            "inbox": f"{actor_uri}/inbox",
            "icon": {"type": "Image", "url": "https://remote.example/avatar.png"},
        }
        if shared_inbox:
            document["endpoints"] = {"sharedInbox": shared_inbox}
        if with_key:
            document["publicKey"] = {
                "id": f"{actor_uri}#main-key",
                "owner": actor_uri,
                "publicKeyPem": remote_keys[1],
            }
        document.update(extra)
        return document

    return _make


@pytest.fixture
def make_follow(webstead):
    def _make(actor: str = REMOTE_ACTOR, target: str | None = None, **extra) -> dict:
        activity = {
            "@context": "https://www.w3.org/ns/activitystreams",
            "id": f"{actor}#follows/1",
            "type": "Follow",
            "actor": actor,
            "object": target or webstead.actor_uri,
        }
        activity.update(extra)
        return activity

    return _make


@pytest.fixture
def signed_post(remote_keys):
    """
    Monta (body, headers) de um POST assinado pelo actor remoto,
    exatamente como um servidor Mastodon enviaria.
    """
    from webstead.activitypub.signatures import signed_headers

    def _make(
        path: str,
        activity: dict | bytes,
        host: str = "alice.webstead.test",
        key_id: str = REMOTE_KEY_ID,
        private_key_pem: str | None = None,
    ) -> tuple[bytes, dict]:
        body = activity if isinstance(activity, bytes) else json.dumps(activity).encode()
        headers = signed_headers(
            "POST",
            f"https://{host}{path}",
            body,
            private_key_pem or remote_keys[0],
            key_id,
        )
        headers["Content-Type"] = "application/activity+json"
        return body, headers

    return _make


# ---------------------------------------------------------------------------
# Cliente HTTP da aplicação
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(session_factory):
    """
    httpx.AsyncClient + ASGITransport apontando para a app, com get_session
    trocado por sessões do banco de teste. O lifespan não roda aqui.
    """
    from httpx import ASGITransport, AsyncClient

    from webstead.database import get_session
    from webstead.main import api

    async def _test_session():
        async with session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    api.dependency_overrides[get_session] = _test_session
    async with AsyncClient(
        transport=ASGITransport(app=api),
        base_url="https://alice.webstead.test",
    ) as ac:
        yield ac
    api.dependency_overrides.clear()
