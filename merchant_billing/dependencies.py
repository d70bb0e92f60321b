"""
Common Dependencies
===================

Shared dependencies used across the application.
"""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from merchant_billing.db.session import get_db
from merchant_billing.services.merchant_repository import (
    MerchantRepository,
    SqlMerchantRepository,
)
from merchant_billing.services.polar import PolarWebhookService

# Database session dependency
DBSession = Annotated[AsyncSession, Depends(get_db)]


async def get_merchant_repository(db: DBSession) -> MerchantRepository:
    """Merchant storage bound to the request's database session."""
    return SqlMerchantRepository(db)


def get_polar_webhook_service() -> PolarWebhookService:
    """Polar signature verifier using the configured webhook secret."""
    return PolarWebhookService()


# Type aliases for injected collaborators
Merchants = Annotated[MerchantRepository, Depends(get_merchant_repository)]
PolarWebhooks = Annotated[PolarWebhookService, Depends(get_polar_webhook_service)]
