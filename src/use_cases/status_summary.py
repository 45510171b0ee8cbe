"""Integration status summary for dashboards and public status badges."""

from datetime import datetime, timedelta
from typing import Any

from src.adapters.query_builders import MessageQueryCriteria
from src.config.logging_config import get_logger
from src.domain.analytics_constants import (
    MESSAGE_FLOW_WINDOW_HOURS,
    STATUS_BOT_RUN_LIMIT,
    STATUS_HEALTH_CHECK_LIMIT,
)
from src.domain.models import BotRunRecord, HealthCheckRecord, utc_now
from src.domain.protocols import RepositoryProtocol
from src.services.health_scoring import status_for_score

logger = get_logger(__name__)

UNCONFIGURED_STATUS = "unconfigured"
UNKNOWN_STATUS = "unknown"


def _record_dict(record: HealthCheckRecord | BotRunRecord) -> dict[str, Any]:
    return record.model_dump(mode="json")


def summarize_bot_runs(runs: list[BotRunRecord]) -> dict[str, Any]:
    """Totals over recent polling runs (newest first)."""
    if not runs:
        return {"count": 0}

    found = sum(run.messages_found for run in runs)
    processed = sum(run.messages_processed for run in runs)
    return {
        "count": len(runs),
        "total_messages_found": found,
        "total_messages_processed": processed,
        "success_rate": round(processed / found * 100, 2) if found else 100.0,
        "error_count": sum(1 for run in runs if run.error),
        "latest_run": _record_dict(runs[0]),
        "all": [_record_dict(run) for run in runs],
    }


def message_stats(
    repository: RepositoryProtocol, now: datetime | None = None
) -> dict[str, Any]:
    since = (now or utc_now()) - timedelta(hours=MESSAGE_FLOW_WINDOW_HOURS)
    latest = repository.query_messages(MessageQueryCriteria(limit=1))
    return {
        "last_24h": repository.count_messages(MessageQueryCriteria(created_after=since)),
        "total": repository.count_messages(MessageQueryCriteria()),
        "last_message_at": latest[0].created_at.isoformat() if latest else None,
    }


def notification_summary(checks: list[HealthCheckRecord]) -> dict[str, Any]:
    notified = [check for check in checks if check.notification_sent]
    return {
        "recent_alerts": [
            {
                "id": check.id,
                "time": (
                    check.notification_time.isoformat()
                    if check.notification_time
                    else None
                ),
                "score": check.result.get("health_score", 0),
                "issues": check.result.get("issues", {}),
            }
            for check in notified
        ],
        "last_notified": (
            notified[0].notification_time.isoformat()
            if notified and notified[0].notification_time
            else None
        ),
    }


def status_summary_use_case(
    repository: RepositoryProtocol | None,
    alert_threshold: int = 50,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Full status summary.

    The health score is the latest monitoring snapshot's score, so this and
    the monitor report the same number.

    Raises:
        RepositoryError: On storage errors
    """
    generated_at = utc_now().isoformat()
    if repository is None:
        return {
            "status": UNCONFIGURED_STATUS,
            "health_score": 0,
            "last_checked": None,
            "message_stats": {"last_24h": 0, "total": 0, "last_message_at": None},
            "last_updated": generated_at,
        }

    checks = repository.get_recent_health_checks(STATUS_HEALTH_CHECK_LIMIT)
    runs = repository.get_recent_bot_runs(STATUS_BOT_RUN_LIMIT)

    if checks:
        score = int(checks[0].result.get("health_score", 0))
        status = status_for_score(score, alert_threshold)
    else:
        score = 0
        status = UNKNOWN_STATUS

    summary = {
        "status": status,
        "health_score": score,
        "last_checked": checks[0].created_at.isoformat() if checks else None,
        "notifications": notification_summary(checks),
        "checks": {
            "count": len(checks),
            "latest": _record_dict(checks[0]) if checks else None,
            "all": [_record_dict(check) for check in checks],
        },
        "bot_runs": summarize_bot_runs(runs),
        "message_stats": message_stats(repository, now),
        "last_updated": generated_at,
    }
    logger.info("status_summary_built", status=status, health_score=score)
    return summary


def public_status(summary: dict[str, Any]) -> dict[str, Any]:
    """Reduced view for unauthenticated callers."""
    return {
        "status": summary["status"],
        "health_score": summary["health_score"],
        "message_count": (summary.get("message_stats") or {}).get("last_24h", 0),
        "last_updated": summary["last_updated"],
    }
