"""
Merchant Models
===============

SQLAlchemy models for the merchant billing state kept in sync with Polar.

The ``merchants`` table itself is owned by the storefront admin app; only the
columns this service reads or writes are mapped here.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
import uuid

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from merchant_billing.db.base import Base


class SubscriptionStatus(str, Enum):
    """
    Subscription status values the reconciler forces.

    The column is free text: any other status Polar sends on
    ``subscription.updated`` is stored verbatim.
    """
    ACTIVE = "active"
    CANCELED = "canceled"
    REVOKED = "revoked"


UNKNOWN_PLAN = "unknown"
TRIAL_PLAN = "trial"


class Merchant(Base):
    """
    Merchant (store owner) record.

    Subscription columns reflect the last Polar event processed.
    """

    __tablename__ = "merchants"

    # Primary Key
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # Polar references
    polar_customer_id: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        index=True,
    )
    polar_subscription_id: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    # Subscription details
    subscription_plan: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    subscription_status: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    subscription_started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    subscription_expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<Merchant(id={self.id}, plan={self.subscription_plan}, "
            f"status={self.subscription_status})>"
        )

    @property
    def has_active_subscription(self) -> bool:
        """Paid plan that is currently active (trial plans do not count)."""
        return (
            self.subscription_status == SubscriptionStatus.ACTIVE.value
            and bool(self.subscription_plan)
            and self.subscription_plan != TRIAL_PLAN
        )


class MerchantSubscriptionHistory(Base):
    """
    Audit trail of subscription writes applied from Polar webhooks.

    Written in the same transaction as the merchant update.
    """

    __tablename__ = "merchant_subscription_history"

    # Primary Key
    history_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # Foreign Key
    merchant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("merchants.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Event details
    event_type: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )
    polar_subscription_id: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    previous_status: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    new_status: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    previous_plan: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    new_plan: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    # Raw Polar ``data`` object
    event_data: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=True,
    )

    # Timestamp
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    # Indexes
    __table_args__ = (
        Index("idx_merchant_sub_history_merchant", "merchant_id", "created_at"),
        Index("idx_merchant_sub_history_event", "event_type", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<MerchantSubscriptionHistory(merchant_id={self.merchant_id}, "
            f"event={self.event_type})>"
        )
