"""
Merchant Repository
===================

Storage access for merchant subscription state.

The reconciler only depends on the ``MerchantRepository`` protocol; the
SQLAlchemy implementation is built per request from the request's session
(see ``merchant_billing.dependencies.get_merchant_repository``), so tests can
swap in an in-memory double.
"""

import logging
from typing import Any, Optional, Protocol
import uuid

from sqlalchemy import select, update
from sqlalchemy.exc import MultipleResultsFound
from sqlalchemy.ext.asyncio import AsyncSession

from merchant_billing.models.merchant import Merchant, MerchantSubscriptionHistory

logger = logging.getLogger(__name__)


class MerchantRepository(Protocol):
    """Operations the reconciler needs from the storage backend."""

    async def find_id_by_customer_id(self, customer_id: str) -> Optional[str]:
        ...

    async def find_id_by_merchant_id(self, merchant_id: str) -> Optional[str]:
        ...

    async def update_subscription(
        self,
        merchant_id: str,
        values: dict[str, Any],
        *,
        event_type: str,
        event_data: Optional[dict[str, Any]] = None,
    ) -> None:
        ...

    async def commit(self) -> None:
        ...

    async def rollback(self) -> None:
        ...


class SqlMerchantRepository:
    """
    ``MerchantRepository`` backed by the Supabase Postgres database.

    Lookups take a row lock (``SELECT ... FOR UPDATE``) so that resolution
    and the following update commit as one unit within the request
    transaction.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _find_one(self, stmt) -> Optional[uuid.UUID]:
        """Return the single matching id; several matches count as no match."""
        result = await self.db.execute(stmt)
        try:
            return result.scalar_one_or_none()
        except MultipleResultsFound:
            logger.warning("Merchant lookup matched more than one row, ignoring")
            return None

    async def find_id_by_customer_id(self, customer_id: str) -> Optional[str]:
        """Find the merchant linked to a Polar customer."""
        stmt = (
            select(Merchant.id)
            .where(Merchant.polar_customer_id == customer_id)
            .with_for_update()
        )
        merchant_id = await self._find_one(stmt)
        return str(merchant_id) if merchant_id is not None else None

    async def find_id_by_merchant_id(self, merchant_id: str) -> Optional[str]:
        """Find a merchant by primary key (``metadata.merchantId``)."""
        try:
            key = uuid.UUID(str(merchant_id))
        except ValueError:
            logger.warning("Ignoring malformed merchant reference %r", merchant_id)
            return None

        stmt = select(Merchant.id).where(Merchant.id == key).with_for_update()
        found = await self._find_one(stmt)
        return str(found) if found is not None else None

    async def update_subscription(
        self,
        merchant_id: str,
        values: dict[str, Any],
        *,
        event_type: str,
        event_data: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Write the subscription fields in a single UPDATE and record history.

        Args:
            merchant_id: Resolved merchant primary key.
            values: Column -> value mapping built by the reconciler.
            event_type: Polar event name, stored on the history row.
            event_data: Raw Polar ``data`` object for the audit trail.
        """
        key = uuid.UUID(str(merchant_id))

        # Row is already locked by the resolving lookup.
        previous = await self.db.execute(
            select(Merchant.subscription_status, Merchant.subscription_plan)
            .where(Merchant.id == key)
        )
        prev_row = previous.one_or_none()

        result = await self.db.execute(
            update(Merchant)
            .where(Merchant.id == key)
            .values(**values)
            .returning(Merchant.subscription_status, Merchant.subscription_plan)
        )
        new_row = result.one_or_none()

        history = MerchantSubscriptionHistory(
            merchant_id=key,
            event_type=event_type,
            polar_subscription_id=values.get("polar_subscription_id"),
            previous_status=prev_row[0] if prev_row else None,
            new_status=new_row[0] if new_row else values.get("subscription_status"),
            previous_plan=prev_row[1] if prev_row else None,
            new_plan=new_row[1] if new_row else values.get("subscription_plan"),
            event_data=event_data,
        )
        self.db.add(history)
        await self.db.flush()

    async def commit(self) -> None:
        await self.db.commit()

    async def rollback(self) -> None:
        await self.db.rollback()
