"""
Parsing of `/emoji` command text.
"""

import re
from typing import NamedTuple

from .errors import InvalidCommandError

_EMOJI_TOKEN = re.compile(r":[A-Za-z0-9_-]+:")

USAGE_HINT = (
    "Please start with an emoji in the form :name: "
    "(letters, digits, '-' or '_'), e.g. `/emoji :smile: had a great day`."
)


class ParsedCommand(NamedTuple):
    emoji: str
    description: str


def is_emoji_token(token: str) -> bool:
    """Check a token against the `:name:` grammar."""
    return _EMOJI_TOKEN.fullmatch(token) is not None


def parse_command(raw_input: str) -> ParsedCommand | None:
    """
    Split command text into an emoji token and a description.

    Args:
        raw_input: The text following the slash command

    Returns:
        The parsed command, or None when the input is blank

    Raises:
        InvalidCommandError: If the first token is not a valid emoji token
    """
    parts = raw_input.split(None, 1)
    if not parts:
        return None

    emoji = parts[0]
    if not is_emoji_token(emoji):
        raise InvalidCommandError(USAGE_HINT)

    description = parts[1] if len(parts) > 1 else ""
    return ParsedCommand(emoji=emoji, description=description)
