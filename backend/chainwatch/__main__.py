"""CLI entry point for the on-chain monitor.

Usage:
    python -m chainwatch              # run until interrupted
    python -m chainwatch --once       # one generation, resolve pass and scan
    python -m chainwatch --accuracy   # print stored accuracy statistics
    python -m chainwatch --clear-history 5m
"""

import argparse
import asyncio
import logging
import signal
from dataclasses import dataclass

from chainwatch.clients import OnChainClient
from chainwatch.config import Settings, get_settings, parse_slots
from chainwatch.services import AlertEngine, AlertManager, PredictionManager, Scheduler
from chainwatch.storage import MemoryListStore, RedisListStore, cache
from core.alerts import default_rules
from core.models import Timeframe
from core.protocols import ListStore

logger = logging.getLogger(__name__)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Bitcoin on-chain forecasts and anomaly alerts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m chainwatch
  python -m chainwatch --once
  python -m chainwatch --accuracy
  python -m chainwatch --clear-history 1h
        """,
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run one generation, resolve pass and alert scan, then exit",
    )
    parser.add_argument(
        "--accuracy",
        action="store_true",
        help="Print accuracy statistics from stored predictions and exit",
    )
    parser.add_argument(
        "--clear-history",
        nargs="?",
        const="all",
        default=None,
        metavar="TIMEFRAME",
        help="Clear stored predictions (one timeframe or all) and exit",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose logging",
    )
    return parser.parse_args()


@dataclass
class Services:
    client: OnChainClient
    store: ListStore
    predictions: PredictionManager
    alerts: AlertManager
    engine: AlertEngine


async def build_services(settings: Settings) -> Services:
    """Wire storage, client and managers from settings and restore state."""
    slots = parse_slots(settings.prediction_slots)

    store: ListStore
    if settings.redis_url and await cache.init_cache(settings.redis_url):
        store = RedisListStore()
    else:
        logger.info("Using in-memory storage")
        store = MemoryListStore()

    client = OnChainClient(settings)
    predictions = PredictionManager(
        client,
        store,
        slots,
        cap=settings.prediction_cap,
        min_resolved_for_accuracy=settings.min_resolved_for_accuracy,
        large_tx_min_btc=settings.large_tx_min_btc,
        large_tx_block_depth=settings.large_tx_block_depth,
    )
    alerts = AlertManager(
        store,
        cap=settings.alert_cap,
        toast_limit=settings.toast_limit,
        toast_duration=settings.toast_duration,
    )
    engine = AlertEngine(
        client,
        alerts,
        rules=default_rules(dormant_check_limit=settings.dormant_check_limit),
        large_tx_min_btc=settings.large_tx_min_btc,
        large_tx_block_depth=settings.large_tx_block_depth,
    )

    await predictions.load()
    await alerts.load()
    return Services(client, store, predictions, alerts, engine)


def print_accuracy(predictions: PredictionManager) -> None:
    print(f"\n{'Target':<20} {'Total':>6} {'Correct':>8} {'Acc%':>7} {'AvgErr':>8} {'24h%':>7}")
    print("-" * 60)
    for stats in predictions.get_accuracy():
        print(
            f"{stats.target.value:<20} {stats.total_predictions:>6} "
            f"{stats.correct_predictions:>8} {stats.accuracy:>6.1f}% "
            f"{stats.avg_error:>7.2f}% {stats.last_24h_accuracy:>6.1f}%"
        )
    print()


async def cmd_once(services: Services) -> None:
    """One pass of every job, with a console summary."""
    created = []
    for tf in services.predictions.timeframes:
        created.extend(await services.predictions.generate_timeframe(tf))
    resolved = await services.predictions.resolve_expired()
    alerts = await services.engine.scan()

    print(f"\nPredictions generated: {len(created)}")
    for p in created:
        print(
            f"  {p.target.value:<20} {p.timeframe.value:<4} {p.direction.value:<8} "
            f"{p.predicted_change:+.2f}%  confidence {p.confidence}"
        )
    print(f"Predictions resolved: {len(resolved)}")
    print(f"Alerts raised: {len(alerts)}")
    for a in alerts:
        print(f"  [{a.severity.value}] {a.title}: {a.message}")
    print()


async def cmd_run(services: Services, settings: Settings) -> None:
    """Run the scheduler until SIGINT/SIGTERM."""
    scheduler = Scheduler()
    predictions = services.predictions

    for tf in predictions.timeframes:
        async def generate(tf: Timeframe = tf) -> None:
            await predictions.generate_timeframe(tf)

        scheduler.register(
            f"generate:{tf.value}",
            tf.seconds,
            generate,
            delay=predictions.initial_delay(tf),
        )
    scheduler.register("resolve", settings.resolve_interval, predictions.resolve_expired)
    scheduler.register("alerts", settings.alert_scan_interval, services.engine.scan)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            pass  # Windows: KeyboardInterrupt ends asyncio.run instead

    scheduler.start()
    try:
        await stop.wait()
    finally:
        await scheduler.stop()


async def main() -> None:
    args = parse_args()
    settings = get_settings()
    setup_logging("DEBUG" if args.verbose else settings.log_level)

    services = await build_services(settings)
    try:
        if args.accuracy:
            print_accuracy(services.predictions)
        elif args.clear_history:
            timeframe = None if args.clear_history == "all" else Timeframe(args.clear_history)
            await services.predictions.clear_history(timeframe)
            print(f"Cleared prediction history: {args.clear_history}")
        elif args.once:
            await cmd_once(services)
        else:
            await cmd_run(services, settings)
    finally:
        await services.client.close()
        await cache.close_cache()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
