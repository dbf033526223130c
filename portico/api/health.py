"""
Health check API endpoint.

Reports FileSystemGate status.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Response


def create_router(FileSystemGate) -> APIRouter:
    router = APIRouter()

    @router.get("/health")
    async def api_health(response: Response) -> Dict[str, Any]:
        """
        Get gate health status.

        Returns 200 when healthy, 503 when unhealthy.
        """
        status = FileSystemGate.get_health_status()
        if not status.get("healthy", False):
            response.status_code = 503
        return status

    return router


__all__ = ["create_router"]
