"""Command-line entry point for serving the SiteGuide HTTP API."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import TYPE_CHECKING

import uvicorn

from siteguide.config import config

if TYPE_CHECKING:
    from collections.abc import Sequence
    from logging import Logger

APP_IMPORT_PATH = "siteguide.api:app"


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Build the CLI parser and read command-line arguments."""  # noqa: DOC201
    parser = argparse.ArgumentParser(
        description="Serve the SiteGuide assistant API.",
    )
    parser.add_argument(
        "--host",
        default=config.HOST,
        help=f"Bind address for the HTTP server (default: {config.HOST}).",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=config.PORT,
        help=f"Port for the HTTP server (default: {config.PORT}).",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Restart the server when source files change.",
    )
    parser.add_argument(
        "--crawl-only",
        metavar="URL",
        help="Crawl and index URL once, print the result and exit.",
    )
    parser.add_argument(
        "--depth",
        type=int,
        default=config.CRAWL_DEPTH,
        help=f"Crawl depth used with --crawl-only (default: {config.CRAWL_DEPTH}).",
    )
    return parser.parse_args(argv)


async def crawl_once(url: str, depth: int) -> dict:
    """Build the pipeline, run a single crawl and return its summary."""  # noqa: DOC201
    from siteguide.services import build_services  # noqa: PLC0415

    services = build_services()
    result = await services.pipeline.crawl_and_index(url, depth)
    return result.to_dict()


def run_server(args: argparse.Namespace, logger: Logger) -> int:
    """Run uvicorn until interrupted and return an exit code."""  # noqa: DOC201
    try:
        uvicorn.run(
            APP_IMPORT_PATH,
            host=args.host,
            port=args.port,
            reload=args.reload,
            log_level=config.LOG_LEVEL.lower(),
        )
    except KeyboardInterrupt:
        logger.info("SiteGuide stopped by user")
    except OSError:
        logger.exception("Unable to start the HTTP server")
        return 1
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Validate configuration, then crawl once or serve the API."""  # noqa: DOC201
    args = parse_args(argv)

    config.setup_logging()
    logger = config.get_logger(__name__)

    try:
        config.validate()
    except ValueError:
        logger.exception("Configuration invalid")
        return 1

    if args.crawl_only:
        summary = asyncio.run(crawl_once(args.crawl_only, args.depth))
        print(json.dumps(summary))  # noqa: T201
        return 0 if summary["ok"] else 1

    logger.info(
        "Starting SiteGuide API at http://%s:%s (reload=%s)",
        args.host,
        args.port,
        args.reload,
    )
    return run_server(args, logger)


if __name__ == "__main__":
    sys.exit(main())
