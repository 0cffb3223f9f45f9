"""RelayBot: the Discord client that feeds the forwarding pipeline."""

from __future__ import annotations

import logging

import discord

from streamrelay.atproto.client import AtpClient
from streamrelay.channels.directory import ChannelDirectory
from streamrelay.channels.formatter import RoleLookup
from streamrelay.config import RelaySettings
from streamrelay.forwarding.coordinator import ForwardingCoordinator, ForwardResult
from streamrelay.records import Author, ChannelMention, InboundMessage, UserMention

log = logging.getLogger(__name__)


def inbound_from_discord(message: discord.Message) -> InboundMessage:
    """Convert a :class:`discord.Message` into an :class:`InboundMessage`."""
    return InboundMessage(
        channel_id=str(message.channel.id),
        message_id=str(message.id),
        author=Author(
            id=str(message.author.id),
            display_name=message.author.display_name,
            is_automated=message.author.bot,
        ),
        raw_text=message.content,
        user_mentions=tuple(
            UserMention(id=str(user.id), display_name=user.display_name)
            for user in message.mentions
        ),
        role_mentions=tuple(str(role_id) for role_id in message.raw_role_mentions),
        channel_mentions=tuple(
            ChannelMention(id=str(channel.id), display_name=channel.name)
            for channel in message.channel_mentions
        ),
        guild_id=str(message.guild.id) if message.guild else None,
        attachment_count=len(message.attachments),
    )


def role_lookup_for(guild: discord.Guild | None) -> RoleLookup | None:
    """Build a role-name resolver backed by the guild cache (``None`` in DMs)."""
    if guild is None:
        return None

    def lookup(role_id: str) -> str | None:
        role = guild.get_role(int(role_id))
        return role.name if role is not None else None

    return lookup


class RelayBot(discord.Client):
    """Discord client that relays mapped channels to Streamplace chat.

    Each ``on_message`` event is dispatched by discord.py as its own task,
    so forwards for unrelated messages run independently.
    """

    def __init__(
        self,
        settings: RelaySettings,
        directory: ChannelDirectory,
        atp: AtpClient,
    ) -> None:
        intents = discord.Intents.default()
        intents.message_content = True
        intents.guilds = True

        super().__init__(intents=intents)

        self.settings = settings
        self.directory = directory
        self.atp = atp
        self.coordinator = ForwardingCoordinator(
            directory,
            atp,
            platform_label=settings.SOURCE_PLATFORM_LABEL,
            command_prefix=settings.COMMAND_PREFIX,
        )

    async def on_ready(self) -> None:
        """Called when the gateway connection is established."""
        log.info("Logged in as %s (ID: %s)", self.user, self.user.id if self.user else "?")
        log.info(
            "Relaying %d channel(s) across %d guild(s)",
            len(self.directory),
            len(self.guilds),
        )

    async def on_message(self, message: discord.Message) -> ForwardResult | None:
        """Forward messages posted in mapped channels."""
        if message.author == self.user:
            return None

        if not self.directory.should_forward(str(message.channel.id)):
            return None

        log.debug("Forwarding message %s from channel %s", message.id, message.channel.id)
        try:
            inbound = inbound_from_discord(message)
        except Exception as e:
            log.error("Could not read message %s: %s", message.id, e, exc_info=True)
            return None

        return await self.coordinator.handle(inbound, role_lookup_for(message.guild))

    async def close(self) -> None:
        """Clean shutdown."""
        log.info("Shutting down relay...")
        await self.atp.close()
        await super().close()
