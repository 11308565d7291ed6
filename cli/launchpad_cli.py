#!/usr/bin/env python3
"""
Launchpad Indexer - CLI Entry Point

Runs the blockchain event indexer, the background workers and the REST
API, and exposes the one-shot maintenance jobs:
- Metrics backfill (full or verification run)
- Token sync from the factory contract
- Holder rebuild from Transfer events
"""
import argparse
import json
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from common.config.settings import LaunchpadConfig, TIMEFRAME_CONFIGS, validate_config
from common.errors import LaunchpadError
from indexer.utils.structured_logging import get_logger


def parse_args(argv: Optional[List[str]] = None):
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(
        prog='launchpad',
        description='Launchpad blockchain indexer and workers',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Index new blocks and run the workers and API together
  %(prog)s serve

  # Verify metrics on 10 tokens before a full run
  %(prog)s backfill --verify

  # Backfill only tokens that never had metrics
  %(prog)s backfill --only-missing --concurrency 20

  # 15 minute candles for a token
  %(prog)s candles 0xabc... --timeframe 15m
        """
    )

    parser.add_argument(
        '--log-level',
        type=str,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default=None,
        help='Set logging level (default: $LOG_LEVEL or INFO)'
    )

    sub = parser.add_subparsers(dest='command', required=True)

    sub.add_parser('index', help='Run the block indexer in the foreground')
    sub.add_parser('workers', help='Run the scheduled background workers')

    serve = sub.add_parser('serve', help='Run the REST API with the indexer and workers')
    serve.add_argument('--host', type=str, default='0.0.0.0', help='Bind address (default: 0.0.0.0)')
    serve.add_argument('--port', type=int, default=None, help='Port (default: $PORT or 3001)')
    serve.add_argument('--no-indexer', action='store_true', help='Do not start the block indexer')
    serve.add_argument('--no-workers', action='store_true', help='Do not start the workers')

    backfill = sub.add_parser('backfill', help='Recompute stored token metrics')
    backfill.add_argument('--verify', '-v', action='store_true',
                          help='Process 10 tokens and log before/after values')
    backfill.add_argument('--only-missing', '-m', action='store_true',
                          help='Only tokens whose metrics were never stored')
    backfill.add_argument('--concurrency', type=int, default=None, help='Workers per batch')
    backfill.add_argument('--batch-size', type=int, default=None, help='Tokens per batch')

    sub.add_parser('sync', help='Create tokens missing from the database via contract reads')

    holders = sub.add_parser('sync-holders', help='Rebuild holder balances from Transfer events')
    holders.add_argument('address', type=str, help='Token address')

    sub.add_parser('status', help='Show indexer cursor and factory/database token counts')

    candles = sub.add_parser('candles', help='Print OHLCV candles for a token')
    candles.add_argument('address', type=str, help='Token address')
    candles.add_argument('--timeframe', type=str, default='1m', choices=list(TIMEFRAME_CONFIGS),
                         help='Candle timeframe (default: 1m)')

    return parser.parse_args(argv)


def setup_logging(config: LaunchpadConfig, level: Optional[str] = None) -> None:
    log_dir = Path(config.log.directory)
    log_dir.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, level or config.log.level, logging.INFO),
        format='%(asctime)s [%(threadName)-15s] %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_dir / 'launchpad.log'),
            logging.StreamHandler()
        ]
    )


def _wait_for_shutdown(slog) -> None:
    stop = threading.Event()

    def _handler(signum, frame):
        slog.info("shutdown_requested", signal=signum)
        stop.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)
    while not stop.is_set():
        stop.wait(1.0)


def run_command(args, config: LaunchpadConfig, slog) -> int:
    """Execute one subcommand against a freshly wired service."""
    from indexer.service.core import IndexerService

    service = IndexerService(config, show_progress=True)
    try:
        if args.command == 'index':
            slog.info("indexer_starting")
            try:
                service.indexer.run()
            except KeyboardInterrupt:
                service.stop_indexer()
            return 0

        if args.command == 'workers':
            if not service.start_workers():
                return 1
            slog.info("workers_started", jobs=len(service.scheduler.get_jobs()))
            _wait_for_shutdown(slog)
            return 0

        if args.command == 'serve':
            import uvicorn
            from api.rest import create_app

            if not args.no_indexer:
                service.start_indexer()
            if not args.no_workers:
                service.start_workers()
            app = create_app(service)
            uvicorn.run(app, host=args.host, port=args.port or config.app.port, log_config=None)
            return 0

        if args.command == 'backfill':
            from indexer.backfill import MetricsBackfill

            backfill = MetricsBackfill(service.metrics_service, service.store, show_progress=True)
            backfill.backfill(
                verify_mode=args.verify,
                batch_size=args.batch_size,
                concurrency=args.concurrency,
                only_missing_metrics=args.only_missing,
            )
            return 0

        if args.command == 'sync':
            result = service.sync_service.sync_all_tokens()
            slog.info("sync_completed", **result)
            return 0

        if args.command == 'sync-holders':
            count = service.sync_service.sync_token_holders(args.address)
            slog.info("holders_synced", token=args.address.lower(), holders=count)
            return 0

        if args.command == 'status':
            service.indexer.load_resume_point()
            status = {
                'indexer': service.indexer_status(),
                'sync': service.sync_service.get_status(),
            }
            print(json.dumps(status, indent=2, default=str))
            return 0

        if args.command == 'candles':
            data = service.candle_service.get_candles(args.address, args.timeframe)
            print(json.dumps(data, indent=2, default=str))
            return 0

        return 1
    finally:
        service.shutdown()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    load_dotenv()
    args = parse_args(argv)

    config = LaunchpadConfig.default()
    setup_logging(config, args.log_level)
    slog = get_logger('launchpad.cli')

    try:
        for warning in validate_config(config):
            slog.warn("config_warning", warning=warning)
    except LaunchpadError as e:
        slog.error("invalid_configuration", error=e.message)
        return 1

    slog.info("launchpad_command_starting", command=args.command)
    try:
        return run_command(args, config, slog)
    except LaunchpadError as e:
        slog.error("command_failed", command=args.command, error=e.message)
        return 1
    except Exception as e:
        slog.error("command_exception", command=args.command, error=str(e))
        return 1


if __name__ == '__main__':
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nShutdown requested by user")
        sys.exit(0)
