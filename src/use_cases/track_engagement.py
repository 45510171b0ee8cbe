"""Record reader engagement (view, click, save, share) for a deal message."""

from typing import Any, Final

from src.config.logging_config import get_logger
from src.domain.exceptions import ValidationError
from src.domain.models import EngagementAction, EngagementResult, utc_now
from src.domain.protocols import RepositoryProtocol
from src.observability.metrics import ENGAGEMENT_EVENTS_TOTAL

logger = get_logger(__name__)

MISSING_PARAMS_ERROR: Final[str] = "Missing required parameters: messageId and action"
MESSAGE_NOT_FOUND_ERROR: Final[str] = "Message not found"


def parse_action(action: Any) -> EngagementAction:
    """Validate an action name.

    Raises:
        ValidationError: If the action is not one of view, click, save, share
    """
    try:
        return EngagementAction(action)
    except ValueError as exc:
        allowed = ", ".join(item.value for item in EngagementAction)
        raise ValidationError(
            f"Invalid action: {action}. Must be one of: {allowed}"
        ) from exc


def track_engagement_use_case(
    message_id: Any,
    action: Any,
    repository: RepositoryProtocol | None,
) -> EngagementResult:
    """Increment the counter for one engagement event.

    Args:
        message_id: Telegram message ID of the deal
        action: One of view, click, save, share
        repository: Message store, or None when storage is not configured

    Returns:
        EngagementResult; "Message not found" is a failure result, not an error

    Raises:
        ValidationError: For missing parameters or an unknown action
        RepositoryError: On storage errors
    """
    if message_id in (None, "") or not action:
        raise ValidationError(MISSING_PARAMS_ERROR)
    parsed_action = parse_action(action)

    try:
        telegram_message_id = int(message_id)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid messageId: {message_id}") from exc

    if repository is None:
        logger.info(
            "engagement_mock_recorded",
            telegram_message_id=telegram_message_id,
            action=parsed_action.value,
        )
        return EngagementResult(
            success=True,
            message_id=telegram_message_id,
            action=parsed_action,
            mock=True,
        )

    internal_id = repository.get_message_id(telegram_message_id)
    if internal_id is None:
        logger.info(
            "engagement_message_not_found",
            telegram_message_id=telegram_message_id,
            action=parsed_action.value,
        )
        return EngagementResult(
            success=False,
            message_id=telegram_message_id,
            action=parsed_action,
            error=MESSAGE_NOT_FOUND_ERROR,
        )

    update = repository.increment_engagement(internal_id, parsed_action, utc_now())
    ENGAGEMENT_EVENTS_TOTAL.labels(action=parsed_action.value).inc()
    logger.info(
        "engagement_recorded",
        telegram_message_id=telegram_message_id,
        action=parsed_action.value,
        created=update.created,
    )
    return EngagementResult(
        success=True,
        message_id=telegram_message_id,
        action=parsed_action,
        created=update.created,
        updated=not update.created,
        counters=update.counters,
    )
