"""
Entrypoint for the Mail Parse Service.
Runs the FastAPI application from core.app_state with uvicorn in a single
process; attachment metadata lives in memory and is not shared across workers.
"""

from __future__ import annotations

import argparse
import os

from core.app_state import app, config, logger  # noqa: F401


if __name__ == "__main__":
    import uvicorn

    parser = argparse.ArgumentParser(description="Mail Parse Service")
    parser.add_argument("--host", default=config.APP_HOST, help="Interface to bind")
    parser.add_argument("--port", type=int, default=config.APP_PORT, help="Port to listen on")
    parser.add_argument(
        "--reload",
        action="store_true",
        default=config.APP_RELOAD,
        help="Reload on source changes (development only)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log per-phase detail for every /parse request",
    )
    args = parser.parse_args()

    if args.verbose:
        os.environ["VERBOSE_LOGGING"] = "true"
        config.VERBOSE_LOGGING = True

    if os.environ.get("APP_WORKERS", "1") != "1":
        logger.warning("APP_WORKERS is ignored; the service runs a single process")

    logger.info("Starting with uvicorn on %s:%d", args.host, args.port)
    uvicorn.run(
        "main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=config.LOG_LEVEL.lower(),
    )
