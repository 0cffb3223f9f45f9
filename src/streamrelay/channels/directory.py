"""Channel directory: which Discord channels are relayed, and to whom.

The directory is parsed once from the ``CHANNEL_MAPPINGS`` setting at process
start and never changes afterwards.  Each entry maps a Discord channel id to
the DID of the Streamplace streamer whose chat receives the messages::

    CHANNEL_MAPPINGS=1234567890=did:plc:abc,2345678901=did:web:my.ball

``=`` separates the two fields because DIDs themselves contain colons.

Usage::

    directory = ChannelDirectory.from_mapping_string(settings.CHANNEL_MAPPINGS)
    if directory.should_forward(str(message.channel.id)):
        ...
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import TYPE_CHECKING, Final, Mapping

if TYPE_CHECKING:
    from streamrelay.config import RelaySettings

log: Final = logging.getLogger(__name__)

RECORD_DELIMITER: Final[str] = ","
FIELD_DELIMITER: Final[str] = "="


def parse_channel_mappings(raw: str) -> dict[str, str]:
    """Parse a ``id=dest,id=dest`` string into a dict.

    Entries that do not split into exactly two non-empty fields are dropped
    with a warning.  Empty segments (e.g. a trailing comma) are ignored.
    When the same channel id appears twice the last entry wins.
    """
    mappings: dict[str, str] = {}

    for pair in raw.split(RECORD_DELIMITER):
        if not pair.strip():
            continue

        parts = [part.strip() for part in pair.split(FIELD_DELIMITER)]
        if len(parts) != 2 or not all(parts):
            log.warning("Ignoring malformed channel mapping entry: %r", pair.strip())
            continue

        channel_id, destination = parts
        if channel_id in mappings and mappings[channel_id] != destination:
            log.warning(
                "Channel %s mapped more than once; using %s (was %s)",
                channel_id,
                destination,
                mappings[channel_id],
            )
        mappings[channel_id] = destination

    return mappings


class ChannelDirectory:
    """Immutable lookup table from inbound channel id to destination identity.

    Attributes:
        mappings: Read-only view of ``channel_id -> destination_identity``.
    """

    __slots__ = ("_mappings",)

    def __init__(self, mappings: Mapping[str, str] | None = None) -> None:
        self._mappings: Mapping[str, str] = MappingProxyType(dict(mappings or {}))

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_mapping_string(cls, raw: str | None) -> ChannelDirectory:
        """Build a directory from the raw ``CHANNEL_MAPPINGS`` value.

        ``None`` or a blank string yields an empty directory, which disables
        forwarding for every channel rather than failing startup.
        """
        if raw is None or not raw.strip():
            log.info("No CHANNEL_MAPPINGS configured; forwarding is disabled.")
            return cls()

        directory = cls(parse_channel_mappings(raw))
        log.info("Loaded %d channel mapping(s).", len(directory))
        return directory

    @classmethod
    def from_settings(cls, settings: RelaySettings) -> ChannelDirectory:
        """Build a directory from :class:`~streamrelay.config.RelaySettings`."""
        return cls.from_mapping_string(settings.CHANNEL_MAPPINGS)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    @property
    def mappings(self) -> Mapping[str, str]:
        return self._mappings

    @property
    def channel_ids(self) -> frozenset[str]:
        return frozenset(self._mappings)

    def resolve(self, channel_id: str) -> str | None:
        """Return the destination identity for *channel_id*, or ``None``."""
        return self._mappings.get(channel_id)

    def should_forward(self, channel_id: str) -> bool:
        """Return ``True`` if messages from *channel_id* are relayed."""
        return channel_id in self._mappings

    def __contains__(self, channel_id: object) -> bool:
        return channel_id in self._mappings

    def __len__(self) -> int:
        return len(self._mappings)

    def __repr__(self) -> str:
        return f"ChannelDirectory({dict(self._mappings)!r})"
