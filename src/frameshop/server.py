"""Entrypoint for the frame shop order service."""

from __future__ import annotations

import sys
from pathlib import Path

if __package__ in (None, ""):
    sys.path.insert(0, str(Path(__file__).resolve().parents[1]))  # pragma: no cover

from frameshop import __version__
from frameshop.config import load_settings
from frameshop.logging_utils import configure_logging, get_logger


def run_entrypoint() -> None:
    """Configure logging and serve the HTTP application with uvicorn."""
    settings = load_settings()
    configure_logging(settings)
    from frameshop.transport.http_server import create_http_app

    import uvicorn

    logger = get_logger(__name__)
    logger.info("Starting frame shop order service v%s", __version__)
    logger.info("Order database: %s", settings.storage.sqlite_path)
    app = create_http_app()
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        ws="none",
        log_config=None,
    )


if __name__ == "__main__":  # pragma: no cover
    run_entrypoint()
