"""
Transport events delivered to the dispatcher.

Raw Socket Mode messages are decoded once, at the transport boundary, into
one of a closed set of event models discriminated by `type`.
"""

import logging
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)


class Connecting(BaseModel):
    type: Literal["connecting"] = "connecting"


class Connected(BaseModel):
    type: Literal["connected"] = "connected"


class ConnectionFailed(BaseModel):
    type: Literal["connection_error"] = "connection_error"
    error: str = ""


class Hello(BaseModel):
    type: Literal["hello"] = "hello"


class EventsApiEvent(BaseModel):
    type: Literal["events_api"] = "events_api"
    envelope_id: str
    payload: dict[str, Any] = {}


class SlashCommand(BaseModel):
    """A slash command invocation."""

    type: Literal["slash_commands"] = "slash_commands"
    envelope_id: str | None = Field(
        None, description="Socket Mode envelope to acknowledge, if any"
    )
    command: str
    text: str = ""
    user_id: str = ""
    channel_id: str = ""
    response_url: str | None = None


class OtherEvent(BaseModel):
    type: Literal["other"] = "other"
    raw_type: str | None = None
    envelope_id: str | None = None


Event = Annotated[
    Union[
        Connecting,
        Connected,
        ConnectionFailed,
        Hello,
        EventsApiEvent,
        SlashCommand,
        OtherEvent,
    ],
    Field(discriminator="type"),
]

_event_adapter: TypeAdapter[Event] = TypeAdapter(Event)


def decode_socket_message(message: dict[str, Any]) -> Event:
    """
    Decode a raw Socket Mode message.

    Slash command payloads are flattened into the event. Unknown message
    types and payloads that fail validation become OtherEvent.
    """
    raw_type = message.get("type")
    envelope_id = message.get("envelope_id")

    if raw_type == "slash_commands":
        data = {**message.get("payload", {}), "type": raw_type, "envelope_id": envelope_id}
    elif raw_type in ("hello", "events_api"):
        data = message
    else:
        return OtherEvent(raw_type=raw_type, envelope_id=envelope_id)

    try:
        return _event_adapter.validate_python(data)
    except ValidationError as e:
        logger.warning("Could not decode %s message: %s", raw_type, e)
        return OtherEvent(raw_type=raw_type, envelope_id=envelope_id)
