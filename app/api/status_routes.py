"""
Status API routes - Health check for the load balancer.

Public endpoint (no auth). Reports database connectivity and which
adapters are configured.
"""

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_payment_providers, get_sms_provider
from app.db.models import utc_now
from app.db.session import get_read_db
from app.models.api import HealthResponse
from app.observability.logging import get_logger
from app.services.purchase import PaymentProviders
from app.services.sms_provider import SmsProvider

logger = get_logger(__name__)
router = APIRouter(tags=["status"])


@router.get("/health", response_model=HealthResponse)
async def health_check(
    db: AsyncSession = Depends(get_read_db),
    sms_provider: SmsProvider = Depends(get_sms_provider),
    providers: PaymentProviders = Depends(get_payment_providers),
) -> JSONResponse:
    """
    Health check for load balancer.

    503 when the database can't be reached.
    """
    database_ok = True
    try:
        await db.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("postgresql_health_check_failed", error=str(exc))
        database_ok = False

    body = HealthResponse(
        status="healthy" if database_ok else "unhealthy",
        database="connected" if database_ok else "disconnected",
        sms_provider=sms_provider.name,
        payment_methods=providers.configured_methods,
        timestamp=utc_now(),
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK if database_ok else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=body.model_dump(mode="json", by_alias=True),
    )
