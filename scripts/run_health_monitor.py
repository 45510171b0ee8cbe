"""Run the integration health monitor once (for cron or a scheduler)."""

import argparse
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.adapters.email_notifier import EmailNotifier
from src.adapters.repository_factory import create_optional_repository
from src.adapters.telegram_bot_client import TelegramBotClient
from src.config.logging_config import get_logger, setup_logging
from src.config.settings import get_settings
from src.domain.exceptions import RepositoryError
from src.observability.tracing import correlation_scope
from src.use_cases.monitor_health import monitor_health_use_case

logger = get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Check Telegram integration health")
    parser.add_argument(
        "--print-report",
        action="store_true",
        help="Print the health report as JSON",
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

    bot_client = (
        TelegramBotClient(
            settings.telegram_bot_token.get_secret_value(),
            base_url=settings.telegram_api_base_url,
            timeout_seconds=settings.telegram_request_timeout_seconds,
        )
        if settings.telegram_bot_token
        else None
    )
    notifier = EmailNotifier(
        recipient=settings.notification_email,
        sender=settings.email_from,
        password=(
            settings.email_password.get_secret_value()
            if settings.email_password
            else None
        ),
        smtp_host=settings.smtp_host,
        smtp_port=settings.smtp_port,
    )

    try:
        repository = create_optional_repository(settings)
    except RepositoryError as exc:
        # The monitor still reports (and alerts) when storage is down
        logger.error("monitor_repository_unavailable", error=str(exc))
        repository = None

    try:
        with correlation_scope(job="health_monitor"):
            report = monitor_health_use_case(
                repository,
                bot_client,
                settings,
                notifier=notifier,
                repository_factory=lambda: create_optional_repository(settings),
            )
    finally:
        if repository is not None:
            repository.close()

    if args.print_report:
        print(json.dumps(report, indent=2, default=str))
    return 0 if report["health_score"] >= settings.health_alert_threshold else 2


if __name__ == "__main__":
    sys.exit(main())
