"""Main application entry point."""

import logging
import os

import uvicorn

from condofin.api.app import app
from condofin.services.config import load_config
from condofin.services.logging import setup_server_logging

logger = logging.getLogger(__name__)


def main() -> None:
    """Configure logging and serve the API with uvicorn."""
    config = load_config()
    setup_server_logging(config.log_file)

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    logger.info("Starting condofin API on %s:%d", host, port)
    uvicorn.run(app, host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()
