from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator
from uuid import uuid4

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import Response
from structlog import contextvars as structlog_contextvars

from .config import settings
from .logging import configure_logging, logger
from .middleware import RequestIDMiddleware
from .providers import shutdown_providers
from .routers import assignments, health, quiz, review, schedule, streaks
from .routers import config as cfg


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Emit one structured log line per request with latency and status.

    `request_id` を ContextVar に束縛し、リクエスト中に出たアプリログにも
    同じ ID が載るようにする。
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:  # type: ignore[override]
        start = time.time()
        path = request.url.path
        method = request.method
        request_id = getattr(request.state, "request_id", None)
        if not request_id:
            request_id = uuid4().hex
            request.state.request_id = request_id
        structlog_contextvars.bind_contextvars(request_id=request_id)
        is_error = False
        status_code: int | None = None
        error_type: str | None = None
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        except Exception as exc:
            is_error = True
            status_code = 500
            error_type = exc.__class__.__name__
            raise
        finally:
            latency_ms = (time.time() - start) * 1000
            log_method = logger.error if is_error else logger.info
            log_method(
                "request_complete",
                path=path,
                method=method,
                latency_ms=latency_ms,
                is_error=is_error,
                status_code=status_code,
                error_type=error_type,
                client_ip=request.client.host if request.client else "unknown",
            )
            structlog_contextvars.unbind_contextvars("request_id")


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    # LLM クライアントとスレッドプールを解放する
    shutdown_providers()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance."""
    configure_logging()
    app = FastAPI(title="StudyHub API", version="0.1.0", lifespan=_lifespan)

    configured_origins = list(settings.allowed_cors_origins)
    allow_credentials = bool(configured_origins)
    if not configured_origins:
        configured_origins = ["*"]
    # ワイルドカード許可時は資格情報付きリクエストを許可しない
    app.add_middleware(
        CORSMiddleware,
        allow_origins=configured_origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # 後から追加したものが外側: RequestID → AccessLog → CORS の順に実行される
    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.include_router(health.router)
    app.include_router(cfg.router, prefix="/api")
    app.include_router(review.router, prefix="/api/review")
    app.include_router(quiz.router, prefix="/api/quiz")
    app.include_router(schedule.router, prefix="/api/schedule")
    app.include_router(assignments.router, prefix="/api/assignments")
    app.include_router(streaks.router, prefix="/api/streaks")
    logger.info("app_created", environment=settings.environment, strict_mode=settings.strict_mode)
    return app


app = create_app()
