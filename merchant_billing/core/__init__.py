"""Core utilities: error handling."""
