"""Tests for engagement tracking."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from src.domain.exceptions import ValidationError
from src.domain.models import EngagementAction
from src.domain.protocols import RepositoryProtocol
from src.use_cases.track_engagement import (
    MESSAGE_NOT_FOUND_ERROR,
    MISSING_PARAMS_ERROR,
    parse_action,
    track_engagement_use_case,
)
from tests.conftest import make_deal


@pytest.fixture
def stored_deal(repo: RepositoryProtocol) -> int:
    """Internal ID of a stored deal with Telegram ID 501."""
    message_id = repo.save_message(make_deal(501))
    assert message_id is not None
    return message_id


class TestValidation:
    @pytest.mark.parametrize(
        ("message_id", "action"), [(None, "view"), ("", "view"), (501, None), (501, "")]
    )
    def test_missing_parameters(self, message_id: object, action: object) -> None:
        with pytest.raises(ValidationError, match=MISSING_PARAMS_ERROR):
            track_engagement_use_case(message_id, action, None)

    def test_unknown_action(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            parse_action("like")
        assert str(exc_info.value) == (
            "Invalid action: like. Must be one of: view, click, save, share"
        )

    def test_non_numeric_message_id(self) -> None:
        with pytest.raises(ValidationError, match="Invalid messageId"):
            track_engagement_use_case("abc", "view", None)


def test_mock_mode_without_storage() -> None:
    result = track_engagement_use_case("501", "click", None)

    assert result.success is True
    assert result.mock is True
    assert result.message_id == 501
    assert result.action is EngagementAction.CLICK


def test_unknown_message(repo: RepositoryProtocol) -> None:
    result = track_engagement_use_case(999, "view", repo)

    assert result.success is False
    assert result.error == MESSAGE_NOT_FOUND_ERROR


def test_first_event_creates_then_updates(
    repo: RepositoryProtocol, stored_deal: int
) -> None:
    created = track_engagement_use_case(501, "view", repo)
    updated = track_engagement_use_case(501, "click", repo)

    assert created.success is True
    assert created.created is True and created.updated is False
    assert updated.created is False and updated.updated is True
    assert updated.counters is not None
    assert updated.counters.message_id == stored_deal
    assert updated.counters.view_count == 1
    assert updated.counters.click_count == 1
    assert updated.counters.last_clicked is not None


def test_save_does_not_touch_view_timestamps(
    repo: RepositoryProtocol, stored_deal: int
) -> None:
    result = track_engagement_use_case(501, "save", repo)

    assert result.counters is not None
    assert result.counters.save_count == 1
    assert result.counters.last_viewed is None
    assert result.counters.last_clicked is None


def test_concurrent_views_all_counted(
    repo: RepositoryProtocol, stored_deal: int
) -> None:
    events = 30

    with ThreadPoolExecutor(max_workers=6) as pool:
        results = list(
            pool.map(
                lambda _: track_engagement_use_case(501, "view", repo), range(events)
            )
        )

    assert all(result.success for result in results)
    counters = repo.get_engagement(stored_deal)
    assert counters is not None
    assert counters.view_count == events
