from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bethub.book import InvalidBookLevel
from bethub.builder import BuilderConfig, BuilderSigner, BuilderSigningError
from bethub.exchange import ClobApiError
from bethub.logging_utils import EndpointFilter, configure_logging
from bethub.settings import Settings
from bethub.signing import InvalidSecretFormat

from .routes import router

logger = logging.getLogger("bethub.api")

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
}


def create_app(
    settings: Settings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    settings = settings if settings is not None else Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Suppress uvicorn access logs for polling endpoints
        logging.getLogger("uvicorn.access").addFilter(EndpointFilter("/api/health"))

        builder_config = BuilderConfig.from_settings(settings)
        app.state.builder = BuilderSigner(
            builder_config,
            timeout_seconds=settings.http_timeout_seconds,
            transport=transport,
        )
        app.state.http = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.http_timeout_seconds),
            transport=transport,
        )
        logger.info("api_started", extra={"mode": builder_config.mode})
        try:
            yield
        finally:
            await app.state.http.aclose()
            await app.state.builder.aclose()
            logger.info("api_stopped")

    app = FastAPI(title="bethub", lifespan=lifespan)
    app.state.settings = settings
    app.state.transport = transport

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers[name] = value
        return response

    @app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError):
        return JSONResponse(
            {"error": "Invalid request", "message": str(exc.errors())},
            status_code=400,
        )

    @app.exception_handler(InvalidSecretFormat)
    async def invalid_secret(request: Request, exc: InvalidSecretFormat):
        return JSONResponse({"error": "Invalid secret format", "message": str(exc)}, status_code=400)

    @app.exception_handler(InvalidBookLevel)
    async def invalid_book(request: Request, exc: InvalidBookLevel):
        return JSONResponse({"error": "Invalid order book", "message": str(exc)}, status_code=400)

    @app.exception_handler(ValueError)
    async def invalid_value(request: Request, exc: ValueError):
        return JSONResponse({"error": "Invalid request", "message": str(exc)}, status_code=400)

    @app.exception_handler(ClobApiError)
    async def clob_error(request: Request, exc: ClobApiError):
        return JSONResponse(
            {"error": "CLOB request failed", "details": exc.payload},
            status_code=exc.status_code,
        )

    @app.exception_handler(BuilderSigningError)
    async def builder_error(request: Request, exc: BuilderSigningError):
        logger.error("builder_signing_failed", extra={"path": request.url.path})
        return JSONResponse({"error": "Builder signing failed", "message": str(exc)}, status_code=502)

    @app.exception_handler(httpx.TransportError)
    async def upstream_unreachable(request: Request, exc: httpx.TransportError):
        logger.error("upstream_unreachable", extra={"path": request.url.path})
        return JSONResponse({"error": "Upstream unavailable", "message": str(exc)}, status_code=502)

    app.include_router(router)
    return app


def create_app_from_env() -> FastAPI:
    settings = Settings()
    configure_logging(settings.log_level, settings.log_format)
    return create_app(settings)
