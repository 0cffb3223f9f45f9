"""Data shapes flowing through the relay.

:class:`InboundMessage` is the platform-neutral view of a received chat
message, built by the gateway adapter.  :class:`ForwardedRecord` is the
``place.stream.chat.message`` record written to the streamer's chat.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer

CHAT_MESSAGE_COLLECTION: str = "place.stream.chat.message"
"""Lexicon NSID of Streamplace chat messages."""


# ---------------------------------------------------------------------------
# Inbound
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Author:
    """Who wrote an inbound message.

    Attributes:
        id: Platform user id.
        display_name: Name shown in the attribution prefix.
        is_automated: ``True`` for bots and webhooks.
    """

    id: str
    display_name: str
    is_automated: bool = False


@dataclass(frozen=True, slots=True)
class UserMention:
    id: str
    display_name: str


@dataclass(frozen=True, slots=True)
class ChannelMention:
    id: str
    display_name: str


@dataclass(frozen=True, slots=True)
class InboundMessage:
    """A chat message as received from the inbound platform.

    Mention sequences keep the order in which the platform listed them.
    """

    channel_id: str
    author: Author
    raw_text: str
    message_id: str = ""
    user_mentions: tuple[UserMention, ...] = field(default_factory=tuple)
    role_mentions: tuple[str, ...] = field(default_factory=tuple)
    channel_mentions: tuple[ChannelMention, ...] = field(default_factory=tuple)
    guild_id: str | None = None
    attachment_count: int = 0


# ---------------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------------


def format_datetime(value: datetime) -> str:
    """Render *value* as an AT Protocol datetime (UTC, millisecond, ``Z``)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


class ForwardedRecord(BaseModel):
    """A relayed chat message, stamped at relay time.

    ``facets`` and ``reply`` are reserved by the lexicon; the relay never
    sets them, so they are left out of the serialised record while ``None``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    text: str = Field(..., min_length=1)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        alias="createdAt",
    )
    destination_identity: str = Field(..., min_length=1, alias="streamer")
    facets: list[dict[str, Any]] | None = None
    reply: dict[str, Any] | None = None

    @field_serializer("created_at")
    def _serialise_created_at(self, value: datetime) -> str:
        return format_datetime(value)

    def to_record(self) -> dict[str, Any]:
        """Return the record body for ``com.atproto.repo.createRecord``."""
        body = self.model_dump(by_alias=True, exclude_none=True)
        return {"$type": CHAT_MESSAGE_COLLECTION, **body}
