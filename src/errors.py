"""Exception taxonomy for the webhook pipeline and its collaborators."""

from __future__ import annotations


class MessengerBotError(Exception):
    """Base class for all service errors."""


class ConfigurationError(MessengerBotError):
    """Raised at startup when required settings are missing or invalid."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Missing required env vars: {', '.join(missing)}")


class AuthenticationError(MessengerBotError):
    """Raised when the webhook signature is missing or does not match."""

    status_code = 401


class MalformedPayloadError(MessengerBotError):
    """Raised when the webhook body cannot be parsed or has the wrong shape."""

    def __init__(self, message: str, status_code: int = 400) -> None:
        self.status_code = status_code
        super().__init__(message)


class DuplicateEventError(MessengerBotError):
    """Raised when a message id was already seen in the current delivery."""

    def __init__(self, message_id: str) -> None:
        self.message_id = message_id
        super().__init__(f"Duplicate message id: {message_id}")


class ThrottledError(MessengerBotError):
    """Raised when a sender exceeded its event budget for the current window."""

    def __init__(self, sender_id: str) -> None:
        self.sender_id = sender_id
        super().__init__(f"Sender {sender_id} is rate limited")


class CollaboratorFailure(MessengerBotError):
    """Raised when a downstream provider call fails."""

    def __init__(self, collaborator: str, detail: str) -> None:
        self.collaborator = collaborator
        self.detail = detail
        super().__init__(f"{collaborator} failed: {detail}")
