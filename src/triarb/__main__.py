"""
Entry point for the engine.

Usage:
    python -m triarb
    triarb  # if installed via pip
"""

import asyncio
import sys

import uvloop
from pydantic import ValidationError as SettingsError


def main() -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success).
    """
    from triarb import __version__
    from triarb.config.settings import get_settings
    from triarb.core.engine import TriArbEngine
    from triarb.core.errors import TriArbError
    from triarb.telemetry.logger import setup_logging

    print(
        f"""
╔═══════════════════════════════════════════════════════════════╗
║     TRIANGULAR ARBITRAGE ENGINE v{__version__:<23}      ║
║                                                               ║
║     Single-exchange cycle scanner with atomic execution       ║
╚═══════════════════════════════════════════════════════════════╝
    """
    )

    try:
        settings = get_settings()
    except SettingsError as e:
        print(f"Configuration error: {e}")
        print("\nLive trading needs a .env file with:")
        print("  BINANCE_API_KEY=your_api_key")
        print("  BINANCE_API_SECRET=your_api_secret")
        print("  DRY_RUN=false")
        return 1

    print("Configuration:")
    print(f"  Mode:           {'DRY RUN' if settings.dry_run else 'LIVE TRADING'}")
    print(f"  Exchange:       {settings.exchange}{' (testnet)' if settings.use_testnet else ''}")
    print(f"  Path set:       {settings.path_set or 'all'}")
    print(f"  Start amount:   {settings.start_amount}")
    print(f"  Fee rate:       {settings.fee_rate * 100:.3f}%")
    print(f"  Min profit:     {settings.min_profit_threshold * 100:.3f}%")
    print(f"  Auto-execute:   {'Enabled' if settings.auto_execute else 'Disabled'}")
    print(f"  uvloop:         {'Enabled' if settings.use_uvloop else 'Disabled'}")
    print()

    if not settings.dry_run:
        print("⚠️  WARNING: Live trading mode enabled!")
        print("    Real orders will be placed on the exchange.")
        print()

    async_logger = setup_logging(level=settings.log_level, log_file=settings.log_file)

    async def run_engine() -> int:
        try:
            engine = TriArbEngine(settings)
        except TriArbError as e:
            print(f"Startup error: {e}")
            return 1

        try:
            await engine.run()
            return 0
        finally:
            await engine.shutdown()

    try:
        if settings.use_uvloop:
            return uvloop.run(run_engine())
        return asyncio.run(run_engine())
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 0
    finally:
        async_logger.stop()


if __name__ == "__main__":
    sys.exit(main())
