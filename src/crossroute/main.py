"""Main entry point - runs the API server."""

import logging

from dotenv import load_dotenv

load_dotenv()

import uvicorn

from crossroute.config import get_settings

logger = logging.getLogger(__name__)


def setup_logging(debug: bool = False) -> None:
    """Configure logging for the application."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # Reduce noise from libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def main():
    """Main entry point."""
    settings = get_settings()
    setup_logging(settings.debug)

    logger.info("Starting Crossroute...")
    logger.info(f"Environment: {settings.environment}")
    if not settings.has_jupiter:
        logger.warning("JUPITER_API_KEY not set - same-chain Solana swaps disabled")

    from crossroute.api.app import create_app

    try:
        uvicorn.run(
            create_app(settings),
            host=settings.api_host,
            port=settings.api_port,
            log_level="debug" if settings.debug else "info",
        )
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")


if __name__ == "__main__":
    main()
