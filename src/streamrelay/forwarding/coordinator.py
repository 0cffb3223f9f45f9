"""Forward one inbound chat message to its Streamplace chat.

For every received message the coordinator runs a fixed sequence of guards
and actions, each of which may end processing early:

1. skip bot authors and command messages (``~help`` and the like);
2. convert the text to portable form, skipping messages with no text;
3. look up the streamer DID for the channel;
4. fetch the bridge's active AT Protocol session;
5. build a ``place.stream.chat.message`` record stamped with the relay time;
6. write it with ``createRecord`` (server-side validation off);
7. record the resulting ``uri``/``cid``.

Nothing is retried and nothing is raised: every outcome, including
failures, comes back as a :class:`ForwardResult` so one bad message never
disturbs the event dispatcher.

Usage::

    coordinator = ForwardingCoordinator(directory, atp_client)
    result = await coordinator.handle(message, role_lookup=roles.get)
    if result.outcome is ForwardOutcome.FORWARDED:
        print(result.uri)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Mapping, Protocol

from opentelemetry.trace import Span, Status, StatusCode

from streamrelay.atproto.client import AtpSession, CreatedRecord
from streamrelay.channels.directory import ChannelDirectory
from streamrelay.channels.formatter import (
    DEFAULT_PLATFORM_LABEL,
    EmptyContentError,
    RoleLookup,
    transform_message,
)
from streamrelay.forwarding.errors import (
    ChannelNotMappedError,
    ForwardError,
    NoActiveSessionError,
    SubmissionFailedError,
)
from streamrelay.records import CHAT_MESSAGE_COLLECTION, ForwardedRecord, InboundMessage
from streamrelay.telemetry import get_tracer

log = logging.getLogger(__name__)
tracer = get_tracer(__name__)

DEFAULT_COMMAND_PREFIX: str = "~"

Transformer = Callable[..., str]


class RecordRepository(Protocol):
    """The outbound capability the coordinator needs.

    :class:`~streamrelay.atproto.client.AtpClient` satisfies it.
    """

    async def get_session(self) -> AtpSession | None: ...

    async def create_record(
        self,
        repo: str,
        collection: str,
        record: ForwardedRecord | Mapping[str, Any],
        *,
        validate: bool = False,
    ) -> CreatedRecord: ...


class ForwardOutcome(str, Enum):
    """How processing of a single message ended."""

    FORWARDED = "forwarded"
    SKIPPED = "skipped"
    NOT_MAPPED = "not_mapped"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ForwardResult:
    """Result of :meth:`ForwardingCoordinator.handle`.

    Attributes:
        outcome: How processing ended.
        error: The reason for ``NOT_MAPPED`` and ``FAILED`` outcomes.
        uri: AT URI of the written record on success.
        cid: Content id of the written record on success.
        skip_reason: ``"bot_or_command"`` or ``"empty_content"`` for skips.
    """

    outcome: ForwardOutcome
    error: ForwardError | None = None
    uri: str | None = None
    cid: str | None = None
    skip_reason: str | None = None

    @property
    def ok(self) -> bool:
        """``True`` unless the message hit a real failure."""
        return self.outcome is not ForwardOutcome.FAILED

    @classmethod
    def skipped(cls, reason: str) -> ForwardResult:
        return cls(ForwardOutcome.SKIPPED, skip_reason=reason)


class ForwardingCoordinator:
    """Run the forwarding pipeline for each inbound message.

    The coordinator holds only read-only collaborators, so a single instance
    can serve any number of concurrent :meth:`handle` calls.

    Args:
        directory: Channel to streamer DID mapping.
        repository: Session provider and record writer.
        platform_label: Source platform named in the attribution prefix.
        command_prefix: Messages starting with this are never forwarded.
        transformer: Text conversion function; defaults to
            :func:`~streamrelay.channels.formatter.transform_message`.
    """

    def __init__(
        self,
        directory: ChannelDirectory,
        repository: RecordRepository,
        *,
        platform_label: str = DEFAULT_PLATFORM_LABEL,
        command_prefix: str = DEFAULT_COMMAND_PREFIX,
        transformer: Transformer = transform_message,
    ) -> None:
        self.directory = directory
        self.repository = repository
        self.platform_label = platform_label
        self.command_prefix = command_prefix
        self._transform = transformer

    def is_intentional_skip(self, message: InboundMessage) -> bool:
        """Bot authors and command messages are never relayed."""
        return message.author.is_automated or message.raw_text.startswith(self.command_prefix)

    async def handle(
        self,
        message: InboundMessage,
        role_lookup: RoleLookup | None = None,
    ) -> ForwardResult:
        """Forward *message* if its channel is mapped.

        Never raises for per-message problems; see :class:`ForwardResult`.
        """
        with tracer.start_as_current_span(
            "forward_message",
            attributes={
                "discord.channel_id": message.channel_id,
                "discord.message_id": message.message_id,
                "discord.author": message.author.display_name,
                "discord.guild_id": message.guild_id or "dm",
                "discord.attachment_count": message.attachment_count,
                "message.content_length": len(message.raw_text),
            },
        ) as span:
            result = await self._forward(message, role_lookup, span)
            span.set_attribute("forward.outcome", result.outcome.value)
            if result.skip_reason:
                span.set_attribute("skip.reason", result.skip_reason)
            if result.outcome is ForwardOutcome.FAILED and result.error is not None:
                span.record_exception(result.error)
                span.set_status(Status(StatusCode.ERROR, str(result.error)))
            return result

    async def _forward(
        self,
        message: InboundMessage,
        role_lookup: RoleLookup | None,
        span: Span,
    ) -> ForwardResult:
        if self.is_intentional_skip(message):
            log.debug(
                "Skipping bot message or command (channel=%s, author_is_bot=%s)",
                message.channel_id,
                message.author.is_automated,
            )
            return ForwardResult.skipped("bot_or_command")

        try:
            text = self._transform(message, role_lookup, platform_label=self.platform_label)
        except EmptyContentError:
            text = ""
        if not text.strip():
            log.debug("Skipping empty message (channel=%s)", message.channel_id)
            return ForwardResult.skipped("empty_content")
        span.set_attribute("message.formatted_length", len(text))

        streamer_did = self.directory.resolve(message.channel_id)
        if streamer_did is None:
            log.debug("No streamer mapping for channel %s", message.channel_id)
            return ForwardResult(
                ForwardOutcome.NOT_MAPPED,
                error=ChannelNotMappedError(message.channel_id),
            )
        span.set_attribute("sp.streamer_did", streamer_did)
        log.info("Found streamer mapping for channel %s: %s", message.channel_id, streamer_did)

        try:
            session = await self.repository.get_session()
        except Exception as exc:
            error = NoActiveSessionError()
            error.__cause__ = exc
            return self._failed(message, error)
        if session is None:
            return self._failed(message, NoActiveSessionError())
        span.set_attribute("atp.session_did", session.did)

        record = ForwardedRecord(
            text=text,
            created_at=datetime.now(timezone.utc),
            destination_identity=streamer_did,
        )
        log.debug("Created chat message record (%d chars)", len(text))

        try:
            created = await self.repository.create_record(
                repo=session.did,
                collection=CHAT_MESSAGE_COLLECTION,
                record=record,
                # PDSes can't resolve place.stream lexicons yet.
                validate=False,
            )
        except Exception as exc:
            error = SubmissionFailedError(exc)
            error.__cause__ = exc
            return self._failed(message, error)

        span.set_attribute("atp.record_uri", created.uri)
        span.set_attribute("atp.record_cid", created.cid)
        log.info("Successfully posted message to SP chat: uri=%s cid=%s", created.uri, created.cid)
        return ForwardResult(ForwardOutcome.FORWARDED, uri=created.uri, cid=created.cid)

    @staticmethod
    def _failed(message: InboundMessage, error: ForwardError) -> ForwardResult:
        log.error(
            "Failed to forward message to SP chat (channel=%s, author=%s, message=%s): %s",
            message.channel_id,
            message.author.display_name,
            message.message_id,
            error,
            exc_info=error.__cause__,
        )
        return ForwardResult(ForwardOutcome.FAILED, error=error)


async def forward_message(
    message: InboundMessage,
    directory: ChannelDirectory,
    repository: RecordRepository,
    role_lookup: RoleLookup | None = None,
    **options: Any,
) -> ForwardResult:
    """One-off :meth:`ForwardingCoordinator.handle` call."""
    coordinator = ForwardingCoordinator(directory, repository, **options)
    return await coordinator.handle(message, role_lookup)
