"""FastAPI backend StableLens: JSON-эндпоинты поверх StableLensService."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Literal

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import AnyHttpUrl, BaseModel, TypeAdapter, ValidationError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from config.settings import get_settings
from stablelens import __version__
from stablelens.repositories import list_recent_alerts
from stablelens.services.core.dashboard import NotFoundError, StableLensService
from stablelens.services.sources import SourceUnavailableError
from stablelens.utils.cache import CacheStoreError
from stablelens.utils.db import get_session_maker
from stablelens.web.webhooks import WebhookSubscription, register_webhook, unregister_webhook

settings = get_settings()

_callback_url = TypeAdapter(AnyHttpUrl)


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = __version__


class StatusResponse(BaseModel):
    health: str
    updated_at: dict[str, str | None]


class WebhookRequest(BaseModel):
    callback_url: AnyHttpUrl
    min_severity: Literal["info", "medium", "high"] = "medium"


def get_service() -> StableLensService:
    from stablelens.context import service

    return service


def get_history_sessions() -> async_sessionmaker[AsyncSession] | None:
    return get_session_maker()


@asynccontextmanager
async def lifespan(app: FastAPI):
    from stablelens.loader import on_shutdown, on_startup

    await on_startup()
    try:
        yield
    finally:
        await on_shutdown()


app = FastAPI(title="StableLens API", version=__version__, lifespan=lifespan)

if settings.web.cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.web.cors_origins,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": "not_found", "detail": str(exc)})


@app.exception_handler(SourceUnavailableError)
async def unavailable_handler(request: Request, exc: SourceUnavailableError) -> JSONResponse:
    logger.warning("{path}: источник {source} недоступен", path=request.url.path, source=exc.source)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"error": "unavailable", "source": exc.source},
    )


@app.exception_handler(CacheStoreError)
async def cache_error_handler(request: Request, exc: CacheStoreError) -> JSONResponse:
    logger.error("{path}: {error}", path=request.url.path, error=exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"error": "unavailable", "source": "cache"},
    )


@app.get("/api/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse()


@app.get("/api/status", response_model=StatusResponse)
async def api_status(svc: StableLensService = Depends(get_service)) -> StatusResponse:
    return StatusResponse(**svc.status())


@app.get("/api/stablecoins")
async def api_stablecoins(svc: StableLensService = Depends(get_service)) -> list[dict[str, Any]]:
    return await svc.get_stablecoins()


@app.get("/api/stablecoins/{symbol}")
async def api_stablecoin(symbol: str, svc: StableLensService = Depends(get_service)) -> dict[str, Any]:
    return await svc.get_stablecoin(symbol)


@app.get("/api/platforms")
async def api_platforms(
    type: Literal["cefi", "defi"] | None = None,
    region: str | None = None,
    min_score: float = Query(0.0, ge=0, le=10),
    svc: StableLensService = Depends(get_service),
) -> dict[str, list[dict[str, Any]]]:
    return await svc.get_platforms(type=type, region=region, min_score=min_score)


@app.get("/api/platforms/{name}")
async def api_platform(name: str, svc: StableLensService = Depends(get_service)) -> dict[str, Any]:
    return await svc.get_platform(name)


@app.get("/api/yields")
async def api_yields(
    symbol: str | None = None,
    chain: str | None = None,
    min_score: float = Query(0.0, ge=0, le=10),
    sort: str = "apy",
    order: str = "desc",
    svc: StableLensService = Depends(get_service),
) -> list[dict[str, Any]]:
    return await svc.get_yields(symbol=symbol, chain=chain, min_score=min_score, sort=sort, order=order)


@app.get("/api/best")
async def api_best(
    min_score: float = Query(0.0, ge=0, le=10),
    chain: str | None = None,
    top: int = Query(20, ge=1, le=200),
    svc: StableLensService = Depends(get_service),
) -> list[dict[str, Any]]:
    return await svc.get_best_yields(min_score=min_score, chain=chain, top=top)


@app.get("/api/news")
async def api_news(svc: StableLensService = Depends(get_service)) -> list[dict[str, Any]]:
    return await svc.get_news()


@app.get("/api/alerts")
async def api_alerts(svc: StableLensService = Depends(get_service)) -> list[dict[str, Any]]:
    return await svc.get_alerts()


@app.get("/api/alerts/history")
async def api_alert_history(
    limit: int = Query(50, ge=1, le=500),
    sessions: async_sessionmaker[AsyncSession] | None = Depends(get_history_sessions),
) -> list[dict[str, Any]]:
    """Отправленные алерты из БД, новые первыми (404, если DATABASE__DSN не задан)."""

    if sessions is None:
        raise NotFoundError("alert_history", "disabled")
    async with sessions() as session:
        records = await list_recent_alerts(session, limit=limit)
    return [record.model_dump(mode="json") for record in records]


@app.get("/api/metrics")
async def api_metrics(svc: StableLensService = Depends(get_service)) -> dict[str, Any]:
    return await svc.get_metrics()


@app.get("/api/macro")
async def api_macro(svc: StableLensService = Depends(get_service)) -> list[dict[str, Any]]:
    return await svc.get_macro()


@app.get("/api/chains/{chain}/supply")
async def api_chain_supply(chain: str, svc: StableLensService = Depends(get_service)) -> dict[str, Any]:
    return await svc.get_chain_supply(chain)


@app.post("/api/webhooks", status_code=201)
async def register_webhook_endpoint(req: WebhookRequest) -> dict:
    register_webhook(WebhookSubscription(callback_url=str(req.callback_url), min_severity=req.min_severity))
    logger.info("Зарегистрирован вебхук {url} (>= {level})", url=req.callback_url, level=req.min_severity)
    return {"status": "ok"}


@app.delete("/api/webhooks")
async def unregister_webhook_endpoint(callback_url: str) -> dict:
    try:
        url = str(_callback_url.validate_python(callback_url))
    except ValidationError:
        raise NotFoundError("webhook", callback_url) from None
    if not unregister_webhook(url):
        raise NotFoundError("webhook", url)
    logger.info("Вебхук {url} отписан", url=url)
    return {"status": "ok"}


__all__ = ["app", "get_history_sessions", "get_service"]
