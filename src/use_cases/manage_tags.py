"""Free-text tags on deal messages."""

from collections.abc import Iterable
from typing import Any

from src.config.logging_config import get_logger
from src.domain.exceptions import ValidationError
from src.domain.models import MessageTag
from src.domain.protocols import RepositoryProtocol

logger = get_logger(__name__)


def normalize_tag(name: str) -> str:
    """Lower-case and trim a tag name."""
    return name.strip().lower()


def normalize_tags(names: Iterable[Any]) -> list[str]:
    """Normalize tag names, dropping blanks and duplicates (order kept).

    Raises:
        ValidationError: If any entry is not a string
    """
    normalized: list[str] = []
    for name in names:
        if not isinstance(name, str):
            raise ValidationError(f"Tag names must be strings, got {name!r}")
        tag = normalize_tag(name)
        if tag and tag not in normalized:
            normalized.append(tag)
    return normalized


def get_message_tags(
    message_id: int, repository: RepositoryProtocol
) -> list[MessageTag] | None:
    """Tags for a message, or None when the message does not exist."""
    if repository.get_message(message_id) is None:
        return None
    return repository.get_tags(message_id)


def add_message_tags(
    message_id: int, tag_names: Iterable[Any], repository: RepositoryProtocol
) -> list[MessageTag] | None:
    """Attach tags to a message; existing tags are left as they are.

    Returns:
        The message's full tag set, or None when the message does not exist

    Raises:
        ValidationError: If no usable tag name was given
    """
    tags = normalize_tags(tag_names)
    if not tags:
        raise ValidationError("At least one non-empty tag is required")
    if repository.get_message(message_id) is None:
        return None

    result = repository.add_tags(message_id, tags)
    logger.info("message_tags_added", message_id=message_id, tags=tags)
    return result


def remove_message_tag(
    message_id: int, tag_name: str, repository: RepositoryProtocol
) -> bool:
    """Detach one tag (matched after normalization). True when a tag was removed."""
    removed = repository.remove_tag(message_id, normalize_tag(tag_name))
    logger.info(
        "message_tag_removed",
        message_id=message_id,
        tag=normalize_tag(tag_name),
        removed=removed,
    )
    return removed


def list_all_tags(repository: RepositoryProtocol) -> list[str]:
    return repository.list_tag_names()
