"""
contact_intake/main.py — FastAPI application entry point
Includes: lifespan management (logging, rate-limit sweeper), CORS,
security headers, pipeline error translation, health endpoint.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import APIRouter, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from contact_intake.clients.mail_client import SmtpMailer
from contact_intake.clients.submission_store import InMemorySubmissionRepository
from contact_intake.clients.twilio_client import TwilioWhatsAppMessenger
from contact_intake.config import Settings, get_settings
from contact_intake.core import logging as app_logging
from contact_intake.core.errors import (
    VALIDATION_FAILED,
    PipelineError,
    RateLimited,
)
from contact_intake.core.logging import setup_logging
from contact_intake.core.rate_limiter import (
    RATE_LIMITS,
    RateLimiter,
    WindowSweeper,
    endpoint_limiter,
)
from contact_intake.routers import formdata
from contact_intake.security.screener import SecurityScreener
from contact_intake.services.pipeline import SubmissionPipeline

VERSION = "1.0.0"


def build_pipeline(settings: Settings) -> SubmissionPipeline:
    """Wire the pipeline with the default collaborators."""
    return SubmissionPipeline(
        rate_limiter=RateLimiter(
            max_requests=settings.rate_limit_max_requests,
            window_seconds=settings.rate_limit_window_seconds,
        ),
        # Bounded in-memory store; swap for durable storage outside development
        repository=InMemorySubmissionRepository(),
        mailer=SmtpMailer(settings),
        messenger=TwilioWhatsAppMessenger(settings),
        recipients=settings.notification_recipients,
        screener=SecurityScreener(
            max_payload_chars=settings.max_payload_chars,
            max_field_chars=settings.max_field_chars,
            max_message_links=settings.max_message_links,
        ),
        trust_forwarded_headers=settings.trust_forwarded_headers,
    )


def _validate_env(settings: Settings) -> None:
    """
    Warn loudly about missing notification settings. The service still starts;
    unconfigured channels are skipped.
    """
    missing = []
    if not settings.notification_recipients:
        missing.append("NOTIFICATION_EMAIL")
    if not settings.smtp_configured:
        missing.append("SMTP_HOST/SMTP_USER/SMTP_PASS")
    if not settings.twilio_configured:
        missing.append("TWILIO_*")
    if missing:
        logger.warning(f"Missing notification settings: {', '.join(missing)}")
    if settings.debug and settings.is_production:
        logger.critical("DEBUG is enabled in production: internal errors will be exposed.")


# ──────────────────────────────────────────────────────────────────────────────
# Error translation
# ──────────────────────────────────────────────────────────────────────────────

def _register_exception_handlers(app: FastAPI, settings: Settings) -> None:

    @app.exception_handler(PipelineError)
    async def _pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
        headers = None
        if isinstance(exc, RateLimited):
            headers = {"Retry-After": str(exc.retry_after_seconds)}
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict(), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def _request_validation_handler(
        request: Request, exc: RequestValidationError,
    ) -> JSONResponse:
        # Body could not be parsed as JSON at all
        errors = [
            {"field": "__root__", "message": str(err.get("msg", "Invalid request body"))}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "message": "The submitted data is not valid.",
                "code": VALIDATION_FAILED,
                "errors": errors,
            },
        )

    @app.exception_handler(Exception)
    async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        app_logging.log_error("api", request.url.path, exc)
        body = {
            "success": False,
            "message": "Error processing the form. Please try again.",
        }
        if settings.debug:
            body["error"] = str(exc)
        return JSONResponse(status_code=500, content=body)


# ──────────────────────────────────────────────────────────────────────────────
# Health
# ──────────────────────────────────────────────────────────────────────────────

# Decorated once at import; slowapi keys route limits by function name.
health_router = APIRouter()


@health_router.get("/api/ping", tags=["health"])
@endpoint_limiter.limit(RATE_LIMITS["health"])
async def ping(request: Request):
    """Liveness check. Does not touch any collaborator."""
    return {
        "status": "ok",
        "version": VERSION,
        "active_rate_limit_windows": request.app.state.pipeline.rate_limiter.active_clients(),
    }


# ──────────────────────────────────────────────────────────────────────────────
# FastAPI App
# ──────────────────────────────────────────────────────────────────────────────

def create_app(
    settings: Optional[Settings] = None,
    pipeline: Optional[SubmissionPipeline] = None,
) -> FastAPI:
    settings = settings or get_settings()
    pipeline = pipeline or build_pipeline(settings)
    sweeper = WindowSweeper(
        pipeline.rate_limiter,
        interval_seconds=settings.rate_limit_cleanup_interval_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        setup_logging(settings.log_level)
        logger.info("Contact intake service starting up...")
        _validate_env(settings)
        sweeper.start()
        logger.info("Startup complete.")
        yield
        sweeper.stop()
        logger.info("Shutting down contact intake service.")

    app = FastAPI(
        title="Contact Form Intake",
        description=(
            "Contact form submissions guarded by per-client rate limiting, "
            "security screening, validation and advisory spam scoring."
        ),
        version=VERSION,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.pipeline = pipeline
    app.state.settings = settings

    # ── Endpoint rate limiting (slowapi) ────────────────────────────────────
    app.state.limiter = endpoint_limiter
    app.add_exception_handler(
        RateLimitExceeded,
        lambda req, exc: JSONResponse(
            status_code=429,
            content={"success": False, "message": "Rate limit exceeded. Slow down."},
        ),
    )
    app.add_middleware(SlowAPIMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_development else settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    _register_exception_handlers(app, settings)

    app.include_router(formdata.router, prefix="/formdata", tags=["formdata"])
    app.include_router(health_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)
