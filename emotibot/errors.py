"""
Error types for the Emotibot service.

The pipeline decides what reaches the user based on these classes:
usage and upstream errors become the reply text, persistence errors become
a generic retry message, and transport contract errors never produce a reply.
"""


class EmotibotError(Exception):
    """Base class for all Emotibot errors."""


class UsageError(EmotibotError):
    """Malformed or missing user input. The message is shown to the user."""


class InvalidCommandError(UsageError):
    """The leading token of a command is not a valid `:emoji:` token."""


class TransportContractError(EmotibotError):
    """The transport delivered a command without a required field."""


class UnknownCommandError(EmotibotError):
    """A slash command this bot does not handle."""

    def __init__(self, command: str) -> None:
        super().__init__(f"unknown command: {command}")
        self.command = command


class PersistenceError(EmotibotError):
    """A store operation failed."""


class EmotionNotFoundError(PersistenceError):
    """No emotion record exists with the requested id."""

    def __init__(self, emotion_id: int) -> None:
        super().__init__(f"emotion {emotion_id} not found")
        self.emotion_id = emotion_id


class UpstreamServiceError(EmotibotError):
    """The sentiment service failed or returned unusable content."""


class MigrationError(EmotibotError):
    """A schema migration could not be applied or rolled back."""


class ConfigurationError(EmotibotError):
    """Invalid process configuration."""
