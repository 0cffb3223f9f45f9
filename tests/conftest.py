"""Shared fixtures for the relay test suite."""

from unittest.mock import AsyncMock

import pytest

from streamrelay.atproto.client import AtpSession, CreatedRecord
from streamrelay.channels.directory import ChannelDirectory
from streamrelay.records import Author, ChannelMention, InboundMessage, UserMention


def _make_message(
    raw_text="hello",
    *,
    channel_id="111",
    author="Ana",
    is_bot=False,
    user_mentions=(),
    role_mentions=(),
    channel_mentions=(),
    guild_id="999",
    attachment_count=0,
    message_id="42",
):
    """Build an InboundMessage with sensible defaults."""
    return InboundMessage(
        channel_id=channel_id,
        message_id=message_id,
        author=Author(id="1", display_name=author, is_automated=is_bot),
        raw_text=raw_text,
        user_mentions=tuple(UserMention(id=i, display_name=n) for i, n in user_mentions),
        role_mentions=tuple(role_mentions),
        channel_mentions=tuple(ChannelMention(id=i, display_name=n) for i, n in channel_mentions),
        guild_id=guild_id,
        attachment_count=attachment_count,
    )


@pytest.fixture
def session():
    return AtpSession(
        did="did:plc:bridge",
        handle="bridge.example.com",
        access_jwt="access",
        refresh_jwt="refresh",
    )


@pytest.fixture
def mock_repository(session):
    """Mock record repository with a logged-in session."""
    repo = AsyncMock()
    repo.get_session = AsyncMock(return_value=session)
    repo.create_record = AsyncMock(
        return_value=CreatedRecord(
            uri="at://did:plc:bridge/place.stream.chat.message/3kabc",
            cid="bafyreib2rxk3rh6kzwq",
        )
    )
    return repo


@pytest.fixture
def directory():
    return ChannelDirectory.from_mapping_string("111=did:plc:abc")


@pytest.fixture
def make_message():
    return _make_message
