"""Tests for the Discord gateway adapter."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from streamrelay.bot import RelayBot, inbound_from_discord, role_lookup_for
from streamrelay.channels.directory import ChannelDirectory


def _discord_message(content="hi <@10>", channel_id=111, guild=True, bot=False):
    message = MagicMock()
    message.id = 42
    message.content = content
    message.channel.id = channel_id
    message.author.id = 7
    message.author.display_name = "Ana"
    message.author.bot = bot

    bob = MagicMock()
    bob.id = 10
    bob.display_name = "Bob"
    message.mentions = [bob]

    general = MagicMock()
    general.id = 20
    general.name = "general"
    message.channel_mentions = [general]

    message.raw_role_mentions = [30]
    message.attachments = [object(), object()]
    if guild:
        message.guild.id = 999
    else:
        message.guild = None
    return message


@pytest.fixture
def settings(monkeypatch):
    monkeypatch.setenv("DISCORD_TOKEN", "t")
    monkeypatch.setenv("ATP_HANDLE", "bridge.example.com")
    monkeypatch.setenv("ATP_APP_PASSWORD", "p")
    monkeypatch.setenv("COMMAND_PREFIX", "!")
    monkeypatch.setenv("SOURCE_PLATFORM_LABEL", "Discord")
    from streamrelay.config import RelaySettings

    return RelaySettings()


def test_inbound_from_discord():
    inbound = inbound_from_discord(_discord_message())

    assert inbound.channel_id == "111"
    assert inbound.message_id == "42"
    assert inbound.author.display_name == "Ana"
    assert inbound.author.is_automated is False
    assert inbound.raw_text == "hi <@10>"
    assert [(m.id, m.display_name) for m in inbound.user_mentions] == [("10", "Bob")]
    assert [(m.id, m.display_name) for m in inbound.channel_mentions] == [("20", "general")]
    assert inbound.role_mentions == ("30",)
    assert inbound.guild_id == "999"
    assert inbound.attachment_count == 2


def test_inbound_from_dm_has_no_guild():
    assert inbound_from_discord(_discord_message(guild=False)).guild_id is None


def test_role_lookup_for_guild():
    guild = MagicMock()
    mods = MagicMock()
    mods.name = "Mods"
    guild.get_role = MagicMock(side_effect=lambda rid: mods if rid == 30 else None)

    lookup = role_lookup_for(guild)
    assert lookup("30") == "Mods"
    assert lookup("31") is None
    guild.get_role.assert_any_call(30)


def test_role_lookup_outside_guild():
    assert role_lookup_for(None) is None


def test_bot_wires_settings_into_coordinator(settings):
    bot = RelayBot(settings, ChannelDirectory(), MagicMock())
    assert bot.coordinator.command_prefix == "!"
    assert bot.coordinator.platform_label == "Discord"
    assert bot.intents.message_content is True


@pytest.mark.asyncio
async def test_on_message_ignores_unmapped_channels(settings):
    bot = RelayBot(settings, ChannelDirectory.from_mapping_string("111=did:plc:abc"), MagicMock())
    bot.coordinator.handle = AsyncMock()

    result = await bot.on_message(_discord_message(channel_id=555))

    assert result is None
    bot.coordinator.handle.assert_not_awaited()


@pytest.mark.asyncio
async def test_on_message_forwards_mapped_channel(settings):
    bot = RelayBot(settings, ChannelDirectory.from_mapping_string("111=did:plc:abc"), MagicMock())
    bot.coordinator.handle = AsyncMock(return_value="result")

    result = await bot.on_message(_discord_message(channel_id=111))

    assert result == "result"
    inbound, lookup = bot.coordinator.handle.await_args.args
    assert inbound.channel_id == "111"
    assert callable(lookup)


@pytest.mark.asyncio
async def test_close_closes_atp_client(settings, monkeypatch):
    import discord

    monkeypatch.setattr(discord.Client, "close", AsyncMock())
    atp = MagicMock()
    atp.close = AsyncMock()
    bot = RelayBot(settings, ChannelDirectory(), atp)

    await bot.close()

    atp.close.assert_awaited_once()
