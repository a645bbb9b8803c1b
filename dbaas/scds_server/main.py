"""
SCDS Server - Main entry point.

Parses command-line flags, loads configuration, sets up logging and serves
the HTTP API with uvicorn.

Usage:
    scds-server --db ./data/scds.db --listen :9999
    python -m dbaas.scds_server.main

Flags override environment variables. See config.py for all settings.

Invariants:
    - The store is opened on startup and closed on shutdown by the app lifespan
    - Configuration errors exit with status 1 before anything is opened
"""

from __future__ import annotations

import argparse
import logging
import sys

import json_log_formatter
import uvicorn

from .api import create_app
from .config import ServerConfig

logger = logging.getLogger(__name__)


def setup_logging(config: ServerConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Server configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="SCDS document store server")
    parser.add_argument("--db", help="Database connection string (default: :memory:)")
    parser.add_argument("--listen", help="Web server host:port to listen on (default: :9999)")
    parser.add_argument("--log-level", help="Logging level (DEBUG, INFO, WARNING, ERROR)")
    return parser


def load_config(argv: list[str] | None = None) -> ServerConfig:
    """Load configuration from environment, then apply command-line flags.

    Raises:
        ValueError: If the resulting configuration is invalid
    """
    args = build_parser().parse_args(argv)
    return ServerConfig.from_env().with_overrides(
        db_url=args.db,
        listen=args.listen,
        log_level=args.log_level,
    )


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    try:
        config = load_config(argv)
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)
    config.log_config()

    app = create_app(config)
    logger.info(f"Starting SCDS server on {config.http.host}:{config.http.port}")
    uvicorn.run(app, host=config.http.host, port=config.http.port, log_config=None)


if __name__ == "__main__":
    main()
