"""Migration status API handlers."""

from __future__ import annotations

from typing import TYPE_CHECKING

from aiohttp import web

from ...loggers import get_logger, get_recent_logs

if TYPE_CHECKING:
    from ...services.migration_service import MigrationService


class MigrationHandlers:
    """Handles the read-only migration endpoints."""

    def __init__(self, migration_service: MigrationService):
        """Initialize with the service owning the migration state.

        Args:
            migration_service: MigrationService used at startup
        """
        self.migration_service = migration_service
        self.logger = get_logger("storemigration.api.migration")

    async def get_migration_info(self, request: web.Request) -> web.Response:
        """Describe the source store, marker and last attempt.

        GET /api/v1/migration/info
        """
        try:
            info = self.migration_service.get_migration_info()
            return web.json_response({"success": True, "data": info})
        except Exception as exc:
            self.logger.error("Failed to fetch migration info: %s", exc)
            return web.json_response({"success": False, "error": str(exc)}, status=500)

    async def get_migration_status(self, request: web.Request) -> web.Response:
        """Expose only the migration status value.

        GET /api/v1/migration/status
        """
        try:
            status = self.migration_service.get_status()
            return web.json_response({"success": True, "data": status})
        except Exception as exc:
            self.logger.error("Failed to fetch migration status: %s", exc)
            return web.json_response({"success": False, "error": str(exc)}, status=500)

    async def get_migration_logs(self, request: web.Request) -> web.Response:
        """Return recent migration log records.

        GET /api/v1/migration/logs?limit=100&level=INFO
        """
        try:
            limit = int(request.query.get("limit", 100))
        except ValueError:
            return web.json_response({"success": False, "error": "limit must be an integer"}, status=400)

        level = request.query.get("level")
        try:
            records = [
                record for record in get_recent_logs(limit=limit, level=level)
                if record["logger"].startswith("storemigration")
            ]
            return web.json_response({"success": True, "data": records})
        except Exception as exc:
            self.logger.error("Failed to fetch migration logs: %s", exc)
            return web.json_response({"success": False, "error": str(exc)}, status=500)
