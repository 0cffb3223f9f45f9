"""Per-message forwarding errors.

None of these ever escape :meth:`ForwardingCoordinator.handle`; they are
carried on the returned :class:`~streamrelay.forwarding.coordinator.ForwardResult`
so callers can tell an unmapped channel from a real failure.
"""

from __future__ import annotations


class ForwardError(Exception):
    """Base class for reasons a message was not relayed."""


class ChannelNotMappedError(ForwardError):
    """The inbound channel has no destination.  Expected and frequent."""

    def __init__(self, channel_id: str) -> None:
        self.channel_id = channel_id
        super().__init__(f"No streamer mapping found for channel {channel_id}")


class NoActiveSessionError(ForwardError):
    """The AT Protocol client has no logged-in session."""

    def __init__(self) -> None:
        super().__init__("No active session")


class SubmissionFailedError(ForwardError):
    """``createRecord`` failed at the transport or XRPC level."""

    def __init__(self, cause: BaseException) -> None:
        self.cause = cause
        super().__init__(f"Record submission failed: {cause}")
