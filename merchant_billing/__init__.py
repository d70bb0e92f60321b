"""Merchant Billing Sync: Polar subscription webhooks for storefront merchants."""
