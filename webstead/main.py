import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from webstead import database
from webstead.activitypub.actor import ACTOR_CONTENT_TYPE, build_actor_document
from webstead.activitypub.inbox import InboundRequest, InboxProcessor
from webstead.activitypub.outbox import (
    OUTBOX_CONTENT_TYPE,
    parse_page,
    render_collection,
    render_page,
)
from webstead.activitypub.webfinger import JRD_CONTENT_TYPE, resolve_webfinger
from webstead.config import settings
from webstead.database import get_session
from webstead.errors import FederationError, NotFoundError
from webstead.models.webstead import Webstead
from webstead.services.websteads import find_by_handle, find_by_host

logging.basicConfig(level=logging.INFO)

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app):
    import workers.delivery_worker

    await database.init_db()
    worker_tasks = [
        asyncio.create_task(workers.delivery_worker.run_worker())
        for _ in range(int(settings.delivery_workers))
    ]
    yield
    for task in worker_tasks:
        task.cancel()


api = FastAPI(lifespan=lifespan)


@api.exception_handler(FederationError)
async def federation_error_handler(request: Request, exc: FederationError) -> JSONResponse:
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


# ---------------------------------------------------------------------------
# Resolução do webstead alvo
# ---------------------------------------------------------------------------


def request_host(request: Request) -> str:
    return request.headers.get("host", request.url.hostname or "").split(":", 1)[0]


async def webstead_for_host(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> Webstead:
    webstead = await find_by_host(session, request_host(request))
    if webstead is None:
        raise NotFoundError("Webstead not found")
    return webstead


async def webstead_for_handle(
    handle: str,
    session: AsyncSession = Depends(get_session),
) -> Webstead:
    webstead = await find_by_handle(session, handle)
    if webstead is None:
        raise NotFoundError("User not found")
    return webstead


# ---------------------------------------------------------------------------
# Actor e WebFinger
# ---------------------------------------------------------------------------


def actor_response(webstead: Webstead) -> JSONResponse:
    return JSONResponse(build_actor_document(webstead), media_type=ACTOR_CONTENT_TYPE)


@api.get("/actor")
async def get_actor(webstead: Webstead = Depends(webstead_for_host)):
    return actor_response(webstead)


@api.get("/u/{handle}")
async def get_actor_by_handle(webstead: Webstead = Depends(webstead_for_handle)):
    return actor_response(webstead)


@api.get("/.well-known/webfinger")
async def webfinger(
    request: Request,
    resource: str | None = None,
    session: AsyncSession = Depends(get_session),
):
    result = await resolve_webfinger(session, resource, request_host(request))
    return JSONResponse(result, media_type=JRD_CONTENT_TYPE)


# ---------------------------------------------------------------------------
# Inbox
# ---------------------------------------------------------------------------


async def receive(request: Request, webstead: Webstead, session: AsyncSession) -> Response:
    # o rollback do inbox expira o webstead
    subdomain = webstead.subdomain
    path = request.url.path
    if request.url.query:
        path = f"{path}?{request.url.query}"

    inbound = InboundRequest(
        method=request.method,
        path=path,
        headers=dict(request.headers),
        body=await request.body(),
    )
    try:
        await InboxProcessor(session).process(webstead, inbound)
    except FederationError as e:
        log.info(f"Inbox de {subdomain} rejeitou request: {e.status_code} {e.message}")
        raise
    return Response(status_code=202)


@api.post("/users/{handle}/inbox")
async def inbox(
    request: Request,
    webstead: Webstead = Depends(webstead_for_handle),
    session: AsyncSession = Depends(get_session),
):
    return await receive(request, webstead, session)


@api.post("/actor/inbox")
async def actor_inbox(
    request: Request,
    webstead: Webstead = Depends(webstead_for_host),
    session: AsyncSession = Depends(get_session),
):
    return await receive(request, webstead, session)


# ---------------------------------------------------------------------------
# Outbox
# ---------------------------------------------------------------------------


async def outbox_response(
    webstead: Webstead,
    page: str | None,
    session: AsyncSession,
) -> JSONResponse:
    if page:
        body = await render_page(session, webstead, parse_page(page))
    else:
        body = await render_collection(session, webstead)
    return JSONResponse(body, media_type=OUTBOX_CONTENT_TYPE)


@api.get("/@{handle}/outbox")
async def outbox(
    page: str | None = None,
    webstead: Webstead = Depends(webstead_for_handle),
    session: AsyncSession = Depends(get_session),
):
    return await outbox_response(webstead, page, session)


@api.get("/actor/outbox")
async def actor_outbox(
    page: str | None = None,
    webstead: Webstead = Depends(webstead_for_host),
    session: AsyncSession = Depends(get_session),
):
    return await outbox_response(webstead, page, session)


@api.get("/health")
async def health():
    return {"status": "ok"}
