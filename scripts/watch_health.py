"""Poll the tunnel's /health endpoint and log connection state changes.

Same behaviour as the desktop status bar: check immediately, then every few
seconds, and only report when the state flips.
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import List, Optional

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from tunnel.client import DEFAULT_SERVER_URL, TunnelClient  # noqa: E402

logger = logging.getLogger("watch_health")


def describe(status: dict) -> str:
    if status.get("success"):
        return "connected"
    return "disconnected"


def watch(client: TunnelClient, interval: float, max_checks: Optional[int] = None) -> str:
    """Poll until interrupted (or ``max_checks`` polls); return the last state."""

    state = "checking"
    checks = 0
    while max_checks is None or checks < max_checks:
        status = client.check_db_status()
        new_state = describe(status)
        if new_state != state:
            if new_state == "connected":
                logger.info("Database: Connected")
            else:
                logger.warning("Database: Disconnected (%s)", status.get("error") or "Connection failed")
            state = new_state
        checks += 1
        if max_checks is None or checks < max_checks:
            time.sleep(interval)
    return state


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Watch the SQL tunnel health endpoint")
    parser.add_argument("--url", default=DEFAULT_SERVER_URL, help="Tunnel base URL")
    parser.add_argument("--interval", type=float, default=5.0, help="Seconds between checks")
    parser.add_argument("--once", action="store_true", help="Check once and exit 0 (healthy) or 1")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    client = TunnelClient(args.url)

    if args.once:
        return 0 if watch(client, args.interval, max_checks=1) == "connected" else 1

    try:
        watch(client, args.interval)
    except KeyboardInterrupt:
        logger.info("Stopped watching %s", args.url)
    return 0


if __name__ == "__main__":
    sys.exit(main())
