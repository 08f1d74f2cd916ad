# start_server.py
# Development server entry point for the bookkeeping API

import logging

import uvicorn

from bookkeeper.config import get_settings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def main():
    settings = get_settings()
    logger.info("Starting %s %s on %s:%d (%s)",
                settings.app_name, settings.version, settings.host, settings.port, settings.environment)
    logger.info("API docs: http://localhost:%d/docs", settings.port)
    uvicorn.run(
        "bookkeeper.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level="info",
    )


if __name__ == "__main__":
    main()
