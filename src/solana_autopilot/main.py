"""Command line entrypoint for the Solana DeFi autopilot."""

from __future__ import annotations

import argparse
import json
import time
from typing import Optional

from .api.utils import to_serializable
from .config.settings import get_app_config
from .errors import UpstreamError
from .monitoring import bootstrap_observability
from .monitoring.logger import get_logger
from .monitoring.metrics import METRICS
from .orchestrator import AutopilotService, build_service
from .utils.wallet import normalize_wallet_address

logger = get_logger(__name__)


def run_once(service: AutopilotService, wallet_address: str, *, monitor_only: bool = False) -> dict:
    started = time.perf_counter()
    if monitor_only:
        result = service.monitor(wallet_address)
    else:
        result = service.run(wallet_address)
    METRICS.observe("autopilot.cycle.duration_seconds", time.perf_counter() - started)
    METRICS.increment("autopilot.cycles_total", 1.0)
    return to_serializable(result)


def run_loop(
    service: AutopilotService,
    wallet_address: str,
    interval_seconds: float,
    max_cycles: Optional[int] = None,
    *,
    monitor_only: bool = False,
) -> None:
    cycle = 0
    while True:
        cycle += 1
        try:
            payload = run_once(service, wallet_address, monitor_only=monitor_only)
            print(json.dumps(payload, indent=2))
        except UpstreamError as exc:
            logger.error("Cycle %d aborted: %s", cycle, exc, extra={"cycle": cycle, "source": exc.source})
        except Exception as exc:  # noqa: BLE001
            logger.exception("Loop iteration %d failed: %s", cycle, exc, extra={"cycle": cycle})
        if max_cycles is not None and cycle >= max_cycles:
            break
        time.sleep(max(interval_seconds, 0.0))


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Run the Solana DeFi autopilot for one wallet")
    parser.add_argument("wallet", help="Base58 wallet address to monitor")
    parser.add_argument(
        "--monitor-only",
        action="store_true",
        default=False,
        help="Only refresh the portfolio snapshot; never evaluate or execute orders.",
    )
    parser.add_argument(
        "--loop",
        action="store_true",
        help="Run the autopilot continuously with the supplied interval.",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=300.0,
        help="Seconds to wait between iterations when --loop is enabled (default: 300)",
    )
    parser.add_argument(
        "--max-cycles",
        type=int,
        default=None,
        help="Optional limit to the number of loop iterations to execute.",
    )
    args = parser.parse_args(argv)
    try:
        wallet_address = normalize_wallet_address(args.wallet)
    except ValueError as exc:
        parser.error(str(exc))

    config = get_app_config()
    bootstrap_observability(config=config)
    service = build_service(config)
    if args.loop:
        run_loop(service, wallet_address, args.interval, args.max_cycles, monitor_only=args.monitor_only)
        return 0
    try:
        payload = run_once(service, wallet_address, monitor_only=args.monitor_only)
    except UpstreamError as exc:
        logger.error("Autopilot run failed: %s", exc, extra={"source": exc.source})
        return 1
    print(json.dumps(payload, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
