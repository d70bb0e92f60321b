"""
Database Module
===============

Provides database session management and base model.
"""

from merchant_billing.db.base import Base
from merchant_billing.db.session import get_db, init_db, close_db

__all__ = ["Base", "get_db", "init_db", "close_db"]
