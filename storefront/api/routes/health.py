import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from storefront.api.deps import get_database, get_settings
from storefront.core.config import Settings
from storefront.db.session import Database
from storefront.schemas.auth import HealthOut

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthOut)
async def health(database: Database = Depends(get_database), settings: Settings = Depends(get_settings)):
    try:
        await database.ping()
    except Exception:
        # any failure still answers with the health body
        logger.warning("Health check failed", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"ok": False, "message": "Database connection failed."},
        )
    return HealthOut(
        ok=True,
        smtp_configured=settings.smtp_configured,
        email_verification_enabled=settings.EMAIL_VERIFICATION_ENABLED,
    )
