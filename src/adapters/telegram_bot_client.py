"""Telegram Bot API client adapter (HTTP, via requests)."""

from typing import Any, Final

import requests

from src.config.logging_config import get_logger
from src.domain.exceptions import TelegramAPIError

logger = get_logger(__name__)

TELEGRAM_API_BASE_URL: Final[str] = "https://api.telegram.org"
DEFAULT_TIMEOUT_SECONDS: Final[float] = 10.0


class TelegramBotClient:
    """Thin client for the Bot API methods used by ingestion and monitoring."""

    def __init__(
        self,
        bot_token: str,
        *,
        base_url: str = TELEGRAM_API_BASE_URL,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ) -> None:
        """Initialize client.

        Args:
            bot_token: Bot token issued by @BotFather
            base_url: Bot API base URL
            timeout_seconds: Per-request timeout
            session: Optional requests session (shared pool or test double)
        """
        if not bot_token:
            raise ValueError("bot_token must not be empty")
        self._bot_token = bot_token
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._session = session or requests.Session()

    def _method_url(self, method: str) -> str:
        return f"{self._base_url}/bot{self._bot_token}/{method}"

    def file_download_url(self, file_path: str) -> str:
        return f"{self._base_url}/file/bot{self._bot_token}/{file_path}"

    def _call(
        self,
        method: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> Any:
        """Call a Bot API method and return its result payload.

        Raises:
            TelegramAPIError: On transport errors, non-JSON replies, or ok=false
        """
        try:
            if json_body is not None:
                response = self._session.post(
                    self._method_url(method),
                    json=json_body,
                    timeout=self._timeout_seconds,
                )
            else:
                response = self._session.get(
                    self._method_url(method),
                    params=params,
                    timeout=self._timeout_seconds,
                )
            data = response.json()
        except requests.RequestException as exc:
            raise TelegramAPIError(f"Telegram {method} request failed: {exc}") from exc
        except ValueError as exc:
            raise TelegramAPIError(
                f"Telegram {method} returned non-JSON response"
            ) from exc

        if not isinstance(data, dict) or not data.get("ok"):
            description = data.get("description") if isinstance(data, dict) else None
            raise TelegramAPIError(
                f"Telegram {method} failed: {description or response.status_code}"
            )
        return data.get("result")

    def get_me(self) -> dict[str, Any]:
        """Return the bot's user object (id, username, ...)."""
        result = self._call("getMe")
        return result if isinstance(result, dict) else {}

    def get_file_url(self, file_id: str) -> str | None:
        """Resolve a file_id into a direct download URL.

        Returns None on any failure instead of raising.
        """
        if not file_id:
            return None
        try:
            result = self._call("getFile", params={"file_id": file_id})
        except TelegramAPIError as exc:
            logger.warning("telegram_get_file_failed", file_id=file_id, error=str(exc))
            return None

        file_path = result.get("file_path") if isinstance(result, dict) else None
        if not file_path:
            logger.warning("telegram_get_file_missing_path", file_id=file_id)
            return None
        return self.file_download_url(file_path)

    def get_updates(
        self,
        offset: int | None = None,
        limit: int = 100,
        allowed_updates: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch pending updates (short poll, no long-poll timeout)."""
        body: dict[str, Any] = {"limit": limit, "timeout": 0}
        if offset is not None:
            body["offset"] = offset
        if allowed_updates is not None:
            body["allowed_updates"] = allowed_updates
        result = self._call("getUpdates", json_body=body)
        return list(result or [])


def get_file_url(
    file_id: str,
    bot_token: str,
    *,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> str | None:
    """One-off getFile lookup; None on any failure."""
    if not bot_token:
        return None
    return TelegramBotClient(bot_token, timeout_seconds=timeout_seconds).get_file_url(
        file_id
    )
