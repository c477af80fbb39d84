"""API handlers."""
