import logging

from fastapi import Depends, FastAPI
from sqlalchemy.orm import Session

from app.api.admin import router as admin_router
from app.api.webhooks import router as webhooks_router
from app.core.config import Settings, settings
from app.db.deps import get_db
from app.middleware.correlation_id import CorrelationIdMiddleware

logger = logging.getLogger(__name__)

app = FastAPI(title="BulkFlow Booking Bot")

app.add_middleware(CorrelationIdMiddleware)


def collect_startup_errors(config: Settings) -> list[str]:
    """Configuration problems that must stop the app from starting."""
    errors = []
    if not config.database_url:
        errors.append("DATABASE_URL is required.")

    if config.app_env == "production":
        if not config.admin_api_key:
            errors.append(
                "ADMIN_API_KEY is required in production. "
                "Set ADMIN_API_KEY environment variable with a strong random key."
            )
        if not config.telegram_webhook_secret:
            errors.append(
                "TELEGRAM_WEBHOOK_SECRET is required in production for webhook authentication. "
                "Pass the same value as secret_token to setWebhook."
            )
    return errors


@app.on_event("startup")
async def startup_event():
    """Run startup checks and validation."""
    errors = collect_startup_errors(settings)
    if errors:
        error_message = (
            "Environment validation failed:\n\n"
            + "\n".join(f"  - {error}" for error in errors)
            + "\n\nThe application cannot start with these missing or invalid settings."
        )
        logger.error(error_message)
        raise RuntimeError(error_message)

    # Log enabled integrations summary (no secrets)
    logger.info(
        "Startup: Configuration loaded - "
        f"Environment: {settings.app_env}, "
        f"Queue configured: {settings.queue_configured}, "
        f"Telegram dry-run: {settings.telegram_dry_run}"
    )
    if not settings.queue_configured:
        logger.warning("Queue not configured - reminders will not be scheduled")


@app.get("/health")
def health():
    """
    Health check endpoint with integration visibility.

    Returns 200 immediately - used for basic health checks.
    """
    return {
        "ok": True,
        "integrations": {
            "queue_configured": settings.queue_configured,
            "telegram_dry_run": settings.telegram_dry_run,
        },
    }


@app.get("/ready")
def ready(db: Session = Depends(get_db)):
    """
    Readiness check endpoint - verifies database connectivity.

    Returns 200 if database is accessible, 503 if not.
    """
    from sqlalchemy import text

    try:
        db.execute(text("SELECT 1"))
        return {"ok": True, "database": "connected"}
    except Exception as e:
        logger.error(f"Readiness check failed: {e}")
        from fastapi import status
        from fastapi.responses import JSONResponse

        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"ok": False, "database": "disconnected", "error": str(e)},
        )


app.include_router(webhooks_router, prefix="/webhooks", tags=["webhooks"])
app.include_router(admin_router, prefix="/admin", tags=["admin"])
