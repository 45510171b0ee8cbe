"""Tests for the integration health monitor."""

from datetime import UTC, datetime, timedelta
from unittest.mock import Mock

import pytest
import requests
from pydantic import SecretStr

from src.adapters.sqlite_repository import SQLiteRepository
from src.config.settings import Settings
from src.domain.exceptions import RepositoryError
from src.domain.protocols import RepositoryProtocol
from src.services.health_scoring import score_checks, status_for_score
from src.use_cases.monitor_health import (
    ALERT_SUBJECT,
    attempt_recovery,
    monitor_health_use_case,
)
from tests.conftest import StubBotClient, StubNotifier, make_deal

NOW = datetime(2025, 10, 10, 12, 0, tzinfo=UTC)


@pytest.fixture
def fresh_message(repo: RepositoryProtocol) -> None:
    repo.save_message(make_deal(1, created_at=NOW - timedelta(hours=1)))


class TestScoring:
    def test_share_of_passing_checks(self) -> None:
        checks = [{"healthy": True}, {"healthy": True}, {"healthy": False}]
        assert score_checks(checks) == 66
        assert score_checks([{"healthy": True}] * 3) == 100
        assert score_checks([{"healthy": False}] * 3) == 0
        assert score_checks([]) == 0

    def test_status_labels(self) -> None:
        assert status_for_score(100) == "healthy"
        assert status_for_score(66) == "degraded"
        assert status_for_score(33) == "unhealthy"


def test_healthy_run_is_stored_without_alert(
    repo: RepositoryProtocol,
    settings: Settings,
    notifier: StubNotifier,
    fresh_message: None,
) -> None:
    report = monitor_health_use_case(
        repo, StubBotClient(), settings, notifier=notifier, now=NOW
    )

    assert report["healthy"] is True
    assert report["health_score"] == 100
    assert report["recovery"] is None
    assert report["checks"]["telegram_bot"]["bot_username"] == "dealshub_bot"
    assert report["checks"]["message_flow"]["recent_message_count"] == 1
    assert report["notification_sent"] is False
    assert notifier.sent == []

    stored = repo.get_recent_health_checks(1)[0]
    assert stored.id == report["health_check_id"]
    assert stored.result["health_score"] == 100


def test_unhealthy_run_alerts_and_marks_snapshot(
    repo: RepositoryProtocol, settings: Settings, notifier: StubNotifier
) -> None:
    report = monitor_health_use_case(
        repo, StubBotClient(fail_me=True), settings, notifier=notifier, now=NOW
    )

    assert report["health_score"] == 33
    assert report["issues"] == {
        "message_flow": True,
        "telegram_bot": True,
        "database": False,
    }
    assert report["recovery"] == {"message_flow": False}
    assert report["notification_sent"] is True
    assert notifier.sent[0][0] == ALERT_SUBJECT
    assert '"health_score": 33' in notifier.sent[0][1]

    stored = repo.get_recent_health_checks(1)[0]
    assert stored.notification_sent is True
    assert stored.notification_time is not None


def test_unconfigured_mail_does_not_mark_snapshot(
    repo: RepositoryProtocol, settings: Settings
) -> None:
    report = monitor_health_use_case(
        repo, None, settings, notifier=StubNotifier(configured=False), now=NOW
    )

    assert report["health_score"] == 33
    assert report["checks"]["telegram_bot"]["error"]
    assert report["notification_sent"] is False
    assert repo.get_recent_health_checks(1)[0].notification_sent is False


def test_mail_failure_is_logged_not_raised(
    repo: RepositoryProtocol, settings: Settings
) -> None:
    report = monitor_health_use_case(
        repo, None, settings, notifier=StubNotifier(fail=True), now=NOW
    )
    assert report["notification_sent"] is False


def test_storage_down_skips_snapshot_and_rebuilds_client(
    settings: Settings, fresh_message: None
) -> None:
    failing = Mock()
    failing.count_messages.side_effect = RepositoryError("connection refused")
    failing.get_recent_health_checks.side_effect = RepositoryError("connection refused")

    report = monitor_health_use_case(
        failing,
        StubBotClient(),
        settings,
        repository_factory=lambda: SQLiteRepository(settings.db_path),
        now=NOW,
    )

    assert report["health_score"] == 33
    assert report["recovery"]["database"] is True
    assert report["health_check_id"] is None
    assert report["last_successful_run"] is None
    failing.save_health_check.assert_not_called()


def test_last_successful_run_from_history(
    repo: RepositoryProtocol, settings: Settings, fresh_message: None
) -> None:
    first = monitor_health_use_case(repo, StubBotClient(), settings, now=NOW)
    second = monitor_health_use_case(
        repo, StubBotClient(fail_me=True), settings, now=NOW
    )

    assert first["last_successful_run"] is None
    stored_first = repo.get_recent_health_checks(2)[1]
    assert second["last_successful_run"] == stored_first.created_at.isoformat()


def test_no_storage_configured(settings: Settings) -> None:
    report = monitor_health_use_case(None, StubBotClient(), settings, now=NOW)

    assert report["health_score"] == 33
    assert report["health_check_id"] is None


class TestAttemptRecovery:
    def test_trigger_called_with_recovery_headers(self) -> None:
        http_post = Mock(return_value=Mock(status_code=200))

        results = attempt_recovery(
            {"message_flow": True},
            None,
            "https://deals.example/api/telegram-bot",
            http_post,
            auth_token="admin-token",
        )

        assert results == {"message_flow": True}
        http_post.assert_called_once_with(
            "https://deals.example/api/telegram-bot",
            json={},
            headers={
                "x-recovery-attempt": "true",
                "Authorization": "Bearer admin-token",
            },
            timeout=30,
        )

    def test_trigger_failure(self) -> None:
        http_post = Mock(side_effect=requests.ConnectionError("refused"))
        results = attempt_recovery(
            {"message_flow": True}, None, "https://deals.example/trigger", http_post
        )
        assert results == {"message_flow": False}

    def test_trigger_non_200(self) -> None:
        http_post = Mock(return_value=Mock(status_code=500))
        results = attempt_recovery(
            {"message_flow": True}, None, "https://deals.example/trigger", http_post
        )
        assert results == {"message_flow": False}

    def test_database_rebuild_failure(self) -> None:
        def factory() -> RepositoryProtocol:
            raise RepositoryError("still down")

        assert attempt_recovery({"database": True}, factory, None) == {
            "database": False
        }

    def test_monitor_passes_admin_token(
        self, repo: RepositoryProtocol, settings: Settings
    ) -> None:
        configured = settings.model_copy(
            update={
                "recovery_trigger_url": "https://deals.example/api/telegram-bot",
                "admin_api_token": SecretStr("admin-token"),
            }
        )
        http_post = Mock(return_value=Mock(status_code=200))

        report = monitor_health_use_case(
            repo, StubBotClient(), configured, http_post=http_post, now=NOW
        )

        assert report["recovery"] == {"message_flow": True}
        headers = http_post.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer admin-token"
