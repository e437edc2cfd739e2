"""
FastAPI Application Factory.

The control API is optional and always bound to a running NarratorService;
the service's lifecycle (start/stop) stays with the caller.

Usage:
    service = NarratorService.from_config(config)
    await service.start()
    app = create_app(service)
    await uvicorn.Server(uvicorn.Config(app, host="127.0.0.1", port=8765)).serve()

``log-narrator watch --api`` does exactly this inside its event loop.
"""
from __future__ import annotations

from fastapi import FastAPI

from log_narrator import __version__
from log_narrator.api.routes import router
from log_narrator.core.logging import configure_logging
from log_narrator.services.narrator import NarratorService


def create_app(service: NarratorService) -> FastAPI:
    """
    Create the FastAPI application for ``service``.

    Args:
        service: Narrator the endpoints operate on.

    Returns:
        FastAPI: Application with the control routes registered.
    """
    configure_logging()

    app = FastAPI(title="log-narrator", version=__version__)
    app.state.narrator = service
    app.include_router(router)
    return app
