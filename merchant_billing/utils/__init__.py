"""
Utilities Module
================

Helper functions and utility classes.
"""

from merchant_billing.utils.helpers import utc_now

__all__ = ["utc_now"]
