"""Poll the Telegram channel for new deal posts.

Alternative to the webhook for deployments without a public URL. Runs once
or on a fixed interval until SIGINT/SIGTERM.
"""

import argparse
import signal
import sys
import threading
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.adapters.amazon_product_client import create_product_client
from src.adapters.repository_factory import create_repository
from src.adapters.telegram_bot_client import TelegramBotClient
from src.config.logging_config import get_logger, setup_logging
from src.config.settings import get_settings
from src.observability.metrics import ensure_metrics_exporter
from src.observability.tracing import correlation_scope
from src.use_cases.poll_channel import poll_channel_use_case

logger = get_logger(__name__)

_stop_event = threading.Event()


def signal_handler(signum: int, frame: object) -> None:
    logger.info("poll_shutdown_requested", signal=signal.Signals(signum).name)
    _stop_event.set()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Poll the Telegram deals channel")
    parser.add_argument(
        "--interval-seconds",
        type=float,
        default=300.0,
        help="Seconds between polling runs",
    )
    parser.add_argument(
        "--run-once",
        action="store_true",
        help="Run a single polling batch and exit",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit logs in JSON format",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    settings = get_settings()
    setup_logging(settings.log_level, json_logs=args.json_logs or settings.json_logs)

    if settings.telegram_bot_token is None:
        logger.error("telegram_bot_token_missing")
        return 1

    bot_client = TelegramBotClient(
        settings.telegram_bot_token.get_secret_value(),
        base_url=settings.telegram_api_base_url,
        timeout_seconds=settings.telegram_request_timeout_seconds,
    )
    repository = create_repository(settings)
    product_client = create_product_client(settings)
    if not args.run_once:
        ensure_metrics_exporter()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    exit_code = 0
    try:
        while not _stop_event.is_set():
            with correlation_scope(job="channel_poll"):
                result = poll_channel_use_case(
                    bot_client, repository, settings, product_client=product_client
                )
            exit_code = 1 if result.error else 0
            if args.run_once:
                break
            _stop_event.wait(args.interval_seconds)
    finally:
        repository.close()

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
