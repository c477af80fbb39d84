"""Route registration for the migration status API."""

from __future__ import annotations

from aiohttp import web

from .handlers.migration import MigrationHandlers
from ..services.migration_service import MigrationService

API_PREFIX = "/api/v1/migration"


def register_routes(app: web.Application, migration_service: MigrationService) -> MigrationHandlers:
    """Attach the migration endpoints to ``app`` and return the handlers."""
    handlers = MigrationHandlers(migration_service)
    app.router.add_get(f"{API_PREFIX}/info", handlers.get_migration_info)
    app.router.add_get(f"{API_PREFIX}/status", handlers.get_migration_status)
    app.router.add_get(f"{API_PREFIX}/logs", handlers.get_migration_logs)
    return handlers


def create_app(migration_service: MigrationService) -> web.Application:
    """Build a standalone application serving the migration endpoints."""
    app = web.Application()
    register_routes(app, migration_service)
    return app
