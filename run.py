#!/usr/bin/env python3
"""
Bitvision - terminal dashboard for a BTC trading bot.

Usage:
    python run.py                      # Start the TUI dashboard
    python run.py --headless           # Scheduler only, logs to console
    python run.py --config PATH        # Use another config document
    python run.py --interval 2.5       # Seconds between refresh ticks
"""

import argparse
import asyncio
import signal
from pathlib import Path

from core.app_state import AppState
from core.config import load_settings
from core.logging_utils import get_logger

logger = get_logger(__name__)


async def run_headless(state: AppState) -> None:
    """Tick until SIGINT/SIGTERM, then stop the timer cleanly."""
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    logger.info("[HEADLESS] Config: %s | Cache: %s", state.settings.config_path, state.settings.cache_dir)
    await state.start()
    try:
        await stop.wait()
    finally:
        logger.info("[HEADLESS] Shutting down")
        await state.shutdown()


def main():
    parser = argparse.ArgumentParser(
        prog="bitvision",
        description="Bitvision - terminal dashboard for a BTC trading bot",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run.py                  Start the dashboard
  python run.py --headless       Run the scheduler without the TUI
""",
    )
    parser.add_argument("--headless", action="store_true",
                        help="Run the refresh scheduler without the TUI")
    parser.add_argument("--config", type=Path, default=None,
                        help="Config document path (default: .bitvision.json)")
    parser.add_argument("--cache-dir", type=Path, default=None,
                        help="Directory holding the data cache files")
    parser.add_argument("--interval", type=float, default=None,
                        help="Seconds between refresh ticks (default: 1.0)")

    args = parser.parse_args()

    overrides = {}
    if args.config is not None:
        overrides["config_path"] = args.config
    if args.cache_dir is not None:
        overrides["cache_dir"] = args.cache_dir
    if args.interval is not None:
        overrides["refresh_interval_seconds"] = args.interval

    settings = load_settings(**overrides)
    state = AppState.create(settings)

    if args.headless:
        asyncio.run(run_headless(state))
        return

    from apps.dashboard import run_dashboard
    run_dashboard(state)


if __name__ == "__main__":
    main()
