"""Migration status API."""
