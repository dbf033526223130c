"""HTTP routers, one create_router() factory per module."""
