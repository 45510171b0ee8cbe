"""Helpers for correlation identifiers in logs."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any
from uuid import uuid4

from src.config.logging_config import bind_context, unbind_context

CORRELATION_ID_KEY = "correlation_id"
MAX_CORRELATION_ID_LENGTH = 128


@contextmanager
def correlation_scope(
    existing_id: str | None = None, **context: Any
) -> Iterator[str]:
    """Bind a correlation identifier (plus extra context) for the block.

    A caller-supplied identifier (e.g. an X-Request-ID header) is reused when
    it is non-blank and reasonably short; otherwise a UUID4 is generated.
    """

    candidate = (existing_id or "").strip()
    correlation_id = (
        candidate
        if candidate and len(candidate) <= MAX_CORRELATION_ID_LENGTH
        else str(uuid4())
    )
    bind_context(**{CORRELATION_ID_KEY: correlation_id}, **context)
    try:
        yield correlation_id
    finally:
        unbind_context(CORRELATION_ID_KEY, *context)


__all__ = ["CORRELATION_ID_KEY", "correlation_scope"]
