"""Per-message forwarding pipeline.

Public API:
    :class:`ForwardingCoordinator` -- runs the pipeline for one message.
    :class:`ForwardResult` / :class:`ForwardOutcome` -- what happened.
    :func:`forward_message` -- one-off convenience wrapper.
"""

from streamrelay.forwarding.coordinator import (
    ForwardingCoordinator,
    ForwardOutcome,
    ForwardResult,
    RecordRepository,
    forward_message,
)
from streamrelay.forwarding.errors import (
    ChannelNotMappedError,
    ForwardError,
    NoActiveSessionError,
    SubmissionFailedError,
)

__all__ = [
    "ChannelNotMappedError",
    "ForwardError",
    "ForwardOutcome",
    "ForwardResult",
    "ForwardingCoordinator",
    "NoActiveSessionError",
    "RecordRepository",
    "SubmissionFailedError",
    "forward_message",
]
