"""FastAPI application factory."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from alembic.config import Config as AlembicConfig
from alembic.script import ScriptDirectory
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from paygate.config import Settings, get_settings
from paygate.database import close_engine, get_engine
from paygate.services.processor_client import ProcessorClient
from sqlalchemy import text

from api.dependencies import GatewayAuthError
from api.middleware.rate_limit import RateLimitMiddleware
from api.middleware.request_log import RequestLogMiddleware
from api.routers import health, payment
from api.services.background import BackgroundDispatcher
from api.services.crm_service import CrmService
from api.services.telemetry_service import TelemetryService

logger = logging.getLogger(__name__)

_REQUIRED_SETTINGS = (
    ("processor_api_key", "PROCESSOR_API_KEY"),
    ("processor_api_secret", "PROCESSOR_API_SECRET"),
    ("checkout_url", "CHECKOUT_URL"),
    ("order_details_url", "ORDER_DETAILS_URL"),
    ("payment_webhook_url", "PAYMENT_WEBHOOK_URL"),
    ("payment_redirect_success_url", "PAYMENT_REDIRECT_SUCCESS_URL"),
    ("payment_redirect_failure_url", "PAYMENT_REDIRECT_FAILURE_URL"),
)


async def _assert_database_revision_current(settings: Settings) -> None:
    if settings.skip_migration_check:
        return

    repo_root = Path(__file__).resolve().parents[3]
    alembic_ini = repo_root / "alembic.ini"
    if not alembic_ini.exists():
        logger.warning("alembic.ini not found; skipping migration revision check")
        return

    alembic_cfg = AlembicConfig(str(alembic_ini))
    alembic_cfg.set_main_option("script_location", str(repo_root / "alembic"))
    script = ScriptDirectory.from_config(alembic_cfg)
    expected_heads = set(script.get_heads())
    if not expected_heads:
        return

    engine = get_engine()
    try:
        async with engine.connect() as connection:
            result = await connection.execute(text("SELECT version_num FROM alembic_version"))
            current_revisions = {str(row[0]) for row in result.fetchall() if row and row[0]}
    except Exception as exc:
        raise RuntimeError(
            "Database migration revision check failed. "
            "Run `alembic upgrade head` before starting the API."
        ) from exc

    if current_revisions != expected_heads:
        raise RuntimeError(
            "Database schema revision mismatch: "
            f"db={sorted(current_revisions)} expected={sorted(expected_heads)}. "
            "Run `alembic upgrade head`."
        )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    try:
        await _assert_database_revision_current(app.state.settings)
        yield
    finally:
        await app.state.dispatcher.drain()
        await app.state.processor.close()
        await app.state.crm.close()
        await app.state.telemetry.close()
        redis_client = getattr(app.state, "_rate_limit_redis", None)
        if redis_client is not None:
            await redis_client.aclose()
        await close_engine()


def _warn_missing_configuration(settings: Settings) -> None:
    for attr, env_name in _REQUIRED_SETTINGS:
        if not str(getattr(settings, attr) or "").strip():
            logger.warning("%s is not set; payment calls will fail", env_name)
    if not settings.gateway_api_key_list:
        logger.warning("GATEWAY_API_KEY is empty; every gateway call will be rejected")


def _configure_logging(settings: Settings) -> None:
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(GatewayAuthError)
    async def _gateway_auth_error(request: Request, exc: GatewayAuthError):
        logger.info("Gateway call rejected %s %s: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content={"status": exc.status, "error": exc.message},
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        errors = [
            {
                "loc": [str(part) for part in error.get("loc", ())],
                "msg": error.get("msg", ""),
                "type": error.get("type", ""),
            }
            for error in exc.errors()
        ]
        return JSONResponse(status_code=400, content={"status": "fail", "errors": errors})

    @app.exception_handler(Exception)
    async def _unhandled_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"status": "error", "message": "Internal server error"},
        )


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    _configure_logging(settings)
    _warn_missing_configuration(settings)

    app = FastAPI(title="Paygate API", version="0.1.0", lifespan=lifespan)
    telemetry = TelemetryService.from_settings(settings)
    app.state.settings = settings
    app.state.dispatcher = BackgroundDispatcher()
    app.state.telemetry = telemetry
    app.state.processor = ProcessorClient.from_settings(settings)
    app.state.crm = CrmService.from_settings(settings, telemetry=telemetry)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials="*" not in settings.cors_origin_list,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(RequestLogMiddleware)
    _register_exception_handlers(app)

    app.include_router(health.router, tags=["health"])
    app.include_router(payment.router, prefix="/api/gateway/payment", tags=["payment"])
    return app


app = create_app()
