"""API router registration helpers.

Routers are imported lazily inside `register_routes` so importing a single
API module (in tests, say) does not build the database engine or the hub.
"""

from fastapi import FastAPI


def register_routes(app: FastAPI) -> None:
    """Attach all API routers (lazy imports)."""
    from ambiente.api.live import router as live_router
    from ambiente.api.recommendations import router as recommendations_router
    from ambiente.api.system import router as system_router

    routers = [
        system_router,
        recommendations_router,
        live_router,
    ]
    for router in routers:
        app.include_router(router)
