"""Entry point for launching the autopilot HTTP API."""

from __future__ import annotations

import argparse

import uvicorn

from ..config.settings import get_app_config
from ..monitoring import bootstrap_observability
from ..orchestrator import build_service
from .app import create_app


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the Solana autopilot HTTP API")
    parser.add_argument("--host", help="Override API host")
    parser.add_argument("--port", type=int, help="Override API port")
    args = parser.parse_args()

    config = get_app_config()
    bootstrap_observability(config=config)
    app = create_app(build_service(config), config)
    host = args.host or config.api.host
    port = args.port or config.api.port
    uvicorn.run(app, host=host, port=port, log_level=config.monitoring.log_level.lower())


if __name__ == "__main__":
    main()
