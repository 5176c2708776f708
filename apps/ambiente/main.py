import logging

import uvicorn
from fastapi import FastAPI

# Environment is loaded by Pydantic Settings (see ambiente.core.settings).
from ambiente.api import register_routes
from ambiente.core.database import engine, init_db
from ambiente.core.dependencies import get_live_hub
from ambiente.core.exceptions import register_exception_handlers
from ambiente.core.logging import setup_logging
from ambiente.core.middleware import register_middleware
from ambiente.core.settings import settings

# Initialize logging early so all modules inherit the handlers/level
setup_logging()

app = FastAPI(title="Ambiente API")
register_exception_handlers(app)
register_middleware(app)

register_routes(app)

logger = logging.getLogger(__name__)
logger.info("Ambiente API initialized")


@app.on_event("startup")
def _create_tables_on_startup() -> None:
    """Create the recommendations table; a failure here aborts startup."""
    init_db()
    logger.info("Database ready (%s)", engine.url.render_as_string(hide_password=True))


@app.on_event("startup")
async def _start_live_hub() -> None:
    get_live_hub().start()


@app.on_event("shutdown")
async def _stop_live_hub() -> None:
    await get_live_hub().shutdown()
    engine.dispose()
    logger.info("Ambiente API stopped")


def run() -> None:
    uvicorn.run(
        "ambiente.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=(settings.resolved_log_level or "info").lower(),
    )


if __name__ == "__main__":
    run()
