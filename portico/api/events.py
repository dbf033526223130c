from __future__ import annotations

from fastapi import APIRouter, Query


def create_router(event_bus) -> APIRouter:
    router = APIRouter()

    @router.get("/events/recent")
    async def api_recent_events(count: int = Query(20, ge=1, le=500)):
        """Recent audit events, oldest first."""
        return {"events": event_bus.get_recent(count)}

    return router


__all__ = ["create_router"]
