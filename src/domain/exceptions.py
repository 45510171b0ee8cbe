"""Custom exception hierarchy for DealsHub.

Two families: upstream failures (Telegram, SMTP, storage) and bad input
(caller parameters, malformed Telegram payloads). Not-found conditions are
reported as typed results, not exceptions.
"""


class DealsHubError(Exception):
    """Base exception for all application errors."""

    pass


class UpstreamError(DealsHubError):
    """A dependency failed (network issues, storage outages, SMTP)."""

    pass


class InputError(DealsHubError):
    """The request or payload itself is unusable."""

    pass


class ValidationError(InputError):
    """Caller input validation errors.

    Carries every failed check so HTTP handlers can report them together.
    """

    def __init__(self, errors: list[str] | str) -> None:
        self.errors = [errors] if isinstance(errors, str) else list(errors)
        super().__init__("; ".join(self.errors))


class InvalidMessageError(ValidationError):
    """Telegram message payload lacks the fields required for ingestion."""

    def __init__(self, message: str = "Invalid message object") -> None:
        super().__init__(message)


class TelegramAPIError(UpstreamError):
    """Telegram Bot API communication errors."""

    pass


class NotificationError(UpstreamError):
    """Alert delivery (SMTP) errors."""

    pass


class RepositoryError(UpstreamError):
    """Database/storage errors."""

    pass
