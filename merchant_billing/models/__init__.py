"""
Database Models
===============

SQLAlchemy ORM models for all database entities.

All models are imported here to ensure they are registered
with SQLAlchemy's metadata for migrations and relationships.
"""

from merchant_billing.models.merchant import (
    Merchant,
    MerchantSubscriptionHistory,
    SubscriptionStatus,
)

__all__ = [
    "Merchant",
    "MerchantSubscriptionHistory",
    "SubscriptionStatus",
]
