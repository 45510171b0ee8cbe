"""Scheduled health check of the Telegram integration.

Runs three fail-soft checks (message flow, bot credentials, storage),
attempts one recovery step per failing area, stores the snapshot, and
emails an alert when the score drops below the configured threshold.
"""

import json
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

import requests

from src.adapters.query_builders import MessageQueryCriteria
from src.config.logging_config import get_logger
from src.config.settings import Settings
from src.domain.analytics_constants import (
    HEALTH_HISTORY_LIMIT,
    MESSAGE_FLOW_WINDOW_HOURS,
    RECOVERY_HEADER,
)
from src.domain.exceptions import DealsHubError, NotificationError
from src.domain.models import HealthCheckRecord, utc_now
from src.domain.protocols import (
    NotifierProtocol,
    RepositoryProtocol,
    TelegramBotClientProtocol,
)
from src.observability.metrics import HEALTH_ALERTS_TOTAL, HEALTH_SCORE
from src.services.health_scoring import score_checks

logger = get_logger(__name__)

STORAGE_UNCONFIGURED = "Storage is not configured"
BOT_UNCONFIGURED = "Telegram bot token is not configured"
ALERT_SUBJECT = "Critical Health Alert"


def check_message_flow(
    repository: RepositoryProtocol | None, now: datetime | None = None
) -> dict[str, Any]:
    """Healthy when at least one message arrived in the last 24 hours."""
    if repository is None:
        return {"healthy": False, "error": STORAGE_UNCONFIGURED}
    since = (now or utc_now()) - timedelta(hours=MESSAGE_FLOW_WINDOW_HOURS)
    try:
        count = repository.count_messages(MessageQueryCriteria(created_after=since))
    except DealsHubError as exc:
        logger.warning("health_message_flow_failed", error=str(exc))
        return {"healthy": False, "error": str(exc)}
    return {"healthy": count > 0, "recent_message_count": count}


def check_telegram_bot(bot_client: TelegramBotClientProtocol | None) -> dict[str, Any]:
    """Healthy when getMe succeeds with the configured token."""
    if bot_client is None:
        return {"healthy": False, "error": BOT_UNCONFIGURED}
    try:
        bot = bot_client.get_me()
    except DealsHubError as exc:
        logger.warning("health_telegram_bot_failed", error=str(exc))
        return {"healthy": False, "error": str(exc)}
    return {
        "healthy": True,
        "bot_username": bot.get("username"),
        "bot_id": bot.get("id"),
    }


def check_database(repository: RepositoryProtocol | None) -> dict[str, Any]:
    """Healthy when a count query succeeds."""
    if repository is None:
        return {"healthy": False, "error": STORAGE_UNCONFIGURED}
    try:
        repository.count_messages(MessageQueryCriteria())
    except DealsHubError as exc:
        logger.warning("health_database_failed", error=str(exc))
        return {"healthy": False, "error": str(exc)}
    return {"healthy": True}


def attempt_recovery(
    issues: dict[str, bool],
    repository_factory: Callable[[], RepositoryProtocol | None] | None,
    recovery_trigger_url: str | None,
    http_post: Callable[..., Any] = requests.post,
    auth_token: str | None = None,
) -> dict[str, bool]:
    """One recovery attempt per failing area; True means the attempt worked.

    database: build a fresh storage client and run a count query.
    message_flow: POST to the polling trigger URL (bearer auth when a token
    is given).
    """
    results: dict[str, bool] = {}

    if issues.get("database"):
        results["database"] = False
        if repository_factory is not None:
            try:
                fresh = repository_factory()
                if fresh is not None:
                    try:
                        fresh.count_messages(MessageQueryCriteria())
                    finally:
                        fresh.close()
                    results["database"] = True
            except DealsHubError as exc:
                logger.warning("recovery_database_failed", error=str(exc))

    if issues.get("message_flow"):
        results["message_flow"] = False
        if recovery_trigger_url:
            try:
                headers = {RECOVERY_HEADER: "true"}
                if auth_token:
                    headers["Authorization"] = f"Bearer {auth_token}"
                response = http_post(
                    recovery_trigger_url,
                    json={},
                    headers=headers,
                    timeout=30,
                )
                results["message_flow"] = response.status_code == 200
            except requests.RequestException as exc:
                logger.warning("recovery_trigger_failed", error=str(exc))
        else:
            logger.info("recovery_trigger_unconfigured")

    logger.info("recovery_attempted", issues=issues, results=results)
    return results


def find_last_successful_run(repository: RepositoryProtocol | None) -> str | None:
    """Timestamp of the newest healthy snapshot among the latest ten."""
    if repository is None:
        return None
    try:
        records = repository.get_recent_health_checks(HEALTH_HISTORY_LIMIT)
    except DealsHubError as exc:
        logger.warning("health_history_unavailable", error=str(exc))
        return None
    for record in records:
        if record.result.get("healthy"):
            return record.created_at.isoformat()
    return None


def _alert_body(report: dict[str, Any]) -> str:
    details = {
        "health_score": report["health_score"],
        "checks": report["checks"],
        "issues": report["issues"],
        "recovery": report["recovery"],
        "last_successful_run": report["last_successful_run"],
    }
    return (
        "Telegram Integration Alert\n\n"
        f"Time: {report['timestamp']}\n"
        f"Issue: {ALERT_SUBJECT}\n\n"
        "Details:\n"
        f"{json.dumps(details, indent=2, default=str)}\n\n"
        "This is an automated message from the integration monitor.\n"
    )


def monitor_health_use_case(
    repository: RepositoryProtocol | None,
    bot_client: TelegramBotClientProtocol | None,
    settings: Settings,
    notifier: NotifierProtocol | None = None,
    repository_factory: Callable[[], RepositoryProtocol | None] | None = None,
    http_post: Callable[..., Any] = requests.post,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Run all checks, recover, persist, and alert.

    Returns:
        The health report, including health_check_id when it was stored
        and notification_sent when an alert email went out
    """
    checks = {
        "message_flow": check_message_flow(repository, now),
        "telegram_bot": check_telegram_bot(bot_client),
        "database": check_database(repository),
    }
    issues = {name: not check["healthy"] for name, check in checks.items()}
    has_issues = any(issues.values())

    recovery = (
        attempt_recovery(
            issues,
            repository_factory,
            settings.recovery_trigger_url,
            http_post,
            (
                settings.admin_api_token.get_secret_value()
                if settings.admin_api_token
                else None
            ),
        )
        if has_issues
        else None
    )
    score = score_checks(checks.values())
    HEALTH_SCORE.set(score)

    report: dict[str, Any] = {
        "healthy": not has_issues,
        "checks": checks,
        "issues": issues,
        "recovery": recovery,
        "health_score": score,
        "last_successful_run": find_last_successful_run(repository),
        "timestamp": (now or utc_now()).isoformat(),
    }

    health_check_id: int | None = None
    if repository is not None and checks["database"]["healthy"]:
        try:
            health_check_id = repository.save_health_check(
                HealthCheckRecord(result=report)
            )
        except DealsHubError as exc:
            logger.error("health_check_save_failed", error=str(exc))

    notification_sent = False
    if score < settings.health_alert_threshold:
        logger.error("integration_unhealthy", health_score=score, issues=issues)
        if notifier is not None:
            try:
                notification_sent = notifier.send_alert(
                    ALERT_SUBJECT, _alert_body(report)
                )
            except NotificationError as exc:
                logger.error("health_alert_failed", error=str(exc))
        if notification_sent:
            HEALTH_ALERTS_TOTAL.inc()
            if health_check_id is not None and repository is not None:
                try:
                    repository.mark_health_check_notified(health_check_id, utc_now())
                except DealsHubError as exc:
                    logger.error("health_check_mark_failed", error=str(exc))

    logger.info(
        "health_check_completed",
        health_score=score,
        healthy=not has_issues,
        health_check_id=health_check_id,
        notification_sent=notification_sent,
    )
    return {
        **report,
        "health_check_id": health_check_id,
        "notification_sent": notification_sent,
    }
