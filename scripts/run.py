#!/usr/bin/env python3
"""Run the ContextLayer HTTP server with uvicorn.

Usage:
    python scripts/run.py              # Serve on settings.host:settings.port
    python scripts/run.py --port 8080  # Custom port
    python scripts/run.py --reload     # Auto-reload on code changes (dev)
"""

import argparse

import uvicorn

from contextlayer.config import settings


def main() -> None:
    parser = argparse.ArgumentParser(description="Run ContextLayer")
    parser.add_argument("--host", default=settings.host)
    parser.add_argument("--port", type=int, default=settings.port)
    parser.add_argument("--reload", action="store_true", help="Reload on code changes")
    args = parser.parse_args()

    uvicorn.run(
        "contextlayer.app:api",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
