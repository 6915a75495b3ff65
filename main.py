#!/usr/bin/env python3
"""
AI Platform -- multi-tenant AI provider management API and web UI.

Usage:
  python main.py
  python main.py --port 8080
  python main.py --host 0.0.0.0 --reload

Environment variables (see core/config.py for the full list):
  JWT_SECRET           Access token signing secret. Required outside development.
  JWT_REFRESH_SECRET   Refresh token signing secret. Required outside development.
  REDIS_URL            Revocation list cache. Optional: without it the server
                       runs with revocation disabled.
"""

import argparse

import uvicorn

from core.config import get_settings


def main() -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        description="Run the AI Platform server.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--host", default="127.0.0.1", help="Interface to bind (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=settings.port, help=f"Port to listen on (default: {settings.port})")
    parser.add_argument("--reload", action="store_true", help="Restart on code changes (development only)")
    args = parser.parse_args()

    if args.reload and not settings.is_development:
        parser.error("--reload is only allowed when ENVIRONMENT=development")

    print(f"  AI Platform v{settings.version} ({settings.environment}) on http://{args.host}:{args.port}")
    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload, log_config=None)


if __name__ == "__main__":
    main()
