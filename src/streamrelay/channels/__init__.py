"""Channel mapping and message text conversion.

Public API:
    :class:`ChannelDirectory` -- inbound channel id to streamer DID.
    :func:`transform_message` -- portable, attributed message text.
    :class:`EmptyContentError` -- message has no text to relay.
"""

from streamrelay.channels.directory import ChannelDirectory, parse_channel_mappings
from streamrelay.channels.formatter import (
    EmptyContentError,
    attribution_prefix,
    transform_message,
)

__all__ = [
    "ChannelDirectory",
    "EmptyContentError",
    "attribution_prefix",
    "parse_channel_mappings",
    "transform_message",
]
