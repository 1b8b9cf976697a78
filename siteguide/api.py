"""FastAPI application exposing the assistant, guide, crawl and health routes."""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Annotated

from fastapi import Body, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import config
from .errors import QueryValidationError, UpstreamUnavailableError
from .language import parse_lang
from .schemas import (
    AssistantRequest,
    AssistantResponse,
    GuideResponse,
    SessionHistoryResponse,
    TurnModel,
)
from .services import Services, build_services

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = config.get_logger(__name__)


def get_services(request: Request) -> Services:
    return request.app.state.services


def create_app(services: Services | None = None) -> FastAPI:
    """Create the HTTP application.

    Args:
        services: Pre-built components. If None, they are built from config
            when the application starts.

    Returns:
        Configured FastAPI application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        config.setup_logging()
        if getattr(app.state, "services", None) is None:
            try:
                app.state.services = build_services()
            except Exception:
                logger.exception("Fatal error during startup")
                raise
        app.state.services.scheduler.start()
        logger.info("SiteGuide ready on %s:%s", config.HOST, config.PORT)

        yield

        await app.state.services.scheduler.stop()
        logger.info("SiteGuide stopped")

    app = FastAPI(
        title="SiteGuide API",
        description="Retrieval-augmented assistant for a crawled website",
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_exception_handlers(app)
    _register_routes(app)
    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(QueryValidationError)
    async def query_validation_handler(
        request: Request, exc: QueryValidationError
    ) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.info("Rejected request to %s: %s", request.url.path, exc.errors())
        return JSONResponse(status_code=400, content={"error": "invalid request"})

    @app.exception_handler(UpstreamUnavailableError)
    async def upstream_handler(
        request: Request, exc: UpstreamUnavailableError
    ) -> JSONResponse:
        logger.error("%s unavailable on %s", exc.dependency, request.url.path)
        return JSONResponse(status_code=502, content={"error": exc.message})

    @app.exception_handler(Exception)
    async def unhandled_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s", request.url.path)
        return JSONResponse(status_code=500, content={"ok": False, "error": str(exc)})


def _register_routes(app: FastAPI) -> None:
    async def assistant(
        request: Request,
        body: Annotated[AssistantRequest | None, Body()] = None,
        x_session_id: Annotated[str | None, Header()] = None,
    ) -> AssistantResponse:
        body = body or AssistantRequest()
        session_id = x_session_id or body.session_id or str(uuid.uuid4())
        reply = await get_services(request).dispatcher.handle(
            body.query, lang=body.lang, top_k=body.top_k, session_id=session_id
        )
        return AssistantResponse(
            text=reply.text,
            sources=reply.sources,
            lang=reply.lang,
            session_id=reply.session_id,
        )

    for path in ("/assistant", "/ask"):
        app.add_api_route(
            path,
            assistant,
            methods=["POST"],
            response_model=AssistantResponse,
            response_model_by_alias=True,
        )

    @app.get("/guide", response_model=GuideResponse)
    async def guide(request: Request, lang: str = "hi") -> GuideResponse:
        guide_lang = parse_lang(lang) or "en"
        text = await get_services(request).guide.get_guide(guide_lang)
        return GuideResponse(text=text, lang=guide_lang)

    @app.get("/crawl")
    async def crawl(
        request: Request,
        url: str | None = None,
        depth: Annotated[int | None, Query(ge=1, le=10)] = None,
    ) -> dict:
        base_url = url or config.SITE_URL
        try:
            result = await get_services(request).pipeline.crawl_and_index(
                base_url, depth
            )
        except Exception as e:
            logger.exception("Ad hoc crawl of %s failed", base_url)
            return {"ok": False, "reason": str(e)}
        return result.to_dict()

    @app.get("/health")
    async def health() -> dict:
        return {"ok": True}

    @app.get(
        "/sessions/{session_id}",
        response_model=SessionHistoryResponse,
        response_model_by_alias=True,
    )
    async def session_history(
        request: Request, session_id: str
    ) -> SessionHistoryResponse:
        turns = get_services(request).sessions.history(session_id)
        return SessionHistoryResponse(
            session_id=session_id,
            turns=[TurnModel(role=turn.role, text=turn.text) for turn in turns],
        )


app = create_app()
