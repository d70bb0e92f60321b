"""Service layer: storage, reconciliation and Polar integration."""
