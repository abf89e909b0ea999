"""Entry point for running the application with uvicorn.

Usage:
    python -m settlement_engine
    python -m settlement_engine --create-schema
"""

import argparse
import asyncio
import logging

import uvicorn

from settlement_engine.config import configure_logging, settings
from settlement_engine.database import create_schema, dispose_db

logger = logging.getLogger(__name__)


async def _create_schema() -> None:
    try:
        await create_schema()
    finally:
        await dispose_db()


def main() -> None:
    """Run the application."""
    parser = argparse.ArgumentParser(description="Settlement engine API server")
    parser.add_argument(
        "--create-schema",
        action="store_true",
        help="Create missing tables on DATABASE_URL and exit",
    )
    args = parser.parse_args()

    configure_logging()
    if args.create_schema:
        asyncio.run(_create_schema())
        logger.info("Schema created")
        return

    uvicorn.run(
        "settlement_engine.api.app:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
