import logging

from fastapi import FastAPI

from rulehub.api.hub import router as hub_router
from rulehub.data.settings import load_settings
from rulehub.domain.errors import IndexUpdateError, NilRemoteHubError
from rulehub.domain.hub import Hub

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


app = FastAPI(
    title="Rule hub",
    version="0.1.0",
    description="Catalog of hub items (parsers, scenarios, collections, ...) and their local state.",
)


def build_hub() -> Hub:
    """
    Load the settings and build the hub.

    When an index refresh is requested but no remote hub is configured, or
    the remote cannot be reached, the cached index is used instead.
    """
    settings = load_settings()
    try:
        hub = Hub(settings.local, settings.remote, update_index=settings.update_index_on_start)
    except NilRemoteHubError:
        logger.warning("no remote hub configured, using the cached index")
        hub = Hub(settings.local, None, update_index=False)
    except IndexUpdateError as e:
        logger.error(f"Failed to update hub index: {e}, using the cached index")
        hub = Hub(settings.local, settings.remote, update_index=False)

    for line in hub.item_stats():
        logger.info(line)
    for warning in hub.warnings:
        logger.warning(warning)
    return hub


@app.on_event("startup")
async def startup_event() -> None:
    """
    Build the hub once and keep it on the application state.
    """
    app.state.hub = build_hub()


@app.get("/health")
async def health() -> dict:
    """
    Lightweight health check endpoint.
    """
    return {"status": "ok"}


app.include_router(hub_router, prefix="/hub", tags=["hub"])


if __name__ == "__main__":
    """
    Allow running `python rulehub/main.py` to start the Uvicorn development server.
    """
    import uvicorn

    uvicorn.run(
        "rulehub.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
