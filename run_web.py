#!/usr/bin/env python3
"""
Entry point for running the debate tournament web server.

Usage:
    python run_web.py [--host HOST] [--port PORT] [--config FILE] [--reload]

Examples:
    python run_web.py                          # Run on localhost:8000
    python run_web.py --port 3000              # Run on localhost:3000
    python run_web.py --host 0.0.0.0           # Allow external connections
    python run_web.py --config torneo.json     # Use a tournament config file
    python run_web.py --reload                 # Auto-reload on code changes
"""
import argparse
import logging
import os

import uvicorn


def main():
    parser = argparse.ArgumentParser(description="Run the debate tournament web server")
    parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to (default: 8000)"
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Tournament config JSON (default: $TOURNEY_CONFIG or built-in format)"
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload on code changes"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    if args.config:
        os.environ["TOURNEY_CONFIG"] = args.config

    print(f"Starting debate tournament server at http://{args.host}:{args.port}")
    print(f"API documentation: http://{args.host}:{args.port}/docs")
    print()

    uvicorn.run(
        "tourney.web.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level.lower()
    )


if __name__ == "__main__":
    main()
