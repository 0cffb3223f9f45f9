"""Entry point for `python -m streamrelay`."""

from __future__ import annotations

import asyncio
import logging
import sys

import aiohttp
import discord
from dotenv import load_dotenv

log = logging.getLogger("streamrelay")


async def _run() -> int:
    from streamrelay.atproto.client import AtpClient, AtpError
    from streamrelay.bot import RelayBot
    from streamrelay.channels.directory import ChannelDirectory
    from streamrelay.config import get_settings

    settings = get_settings()
    directory = ChannelDirectory.from_settings(settings)

    atp = AtpClient(settings.ATP_SERVICE_URL)
    log.info("Attempting ATP login as %s", settings.ATP_HANDLE)
    try:
        await atp.login(settings.ATP_HANDLE, settings.ATP_APP_PASSWORD)
    except (AtpError, aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
        log.error("Failed to set up ATP session: %s", e)
        await atp.close()
        return 1

    bot = RelayBot(settings, directory, atp)
    try:
        async with bot:
            await bot.start(settings.DISCORD_TOKEN)
    except discord.LoginFailure as e:
        log.error("Discord login failed: %s", e)
        return 1
    return 0


def main() -> None:
    # Load .env from canonical locations before anything else.
    load_dotenv("config/.env")  # Primary (Docker + local)
    load_dotenv()               # Fallback (CWD/.env)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    from streamrelay.config import REQUIRED_KEYS, has_config

    if not has_config():
        log.error("Missing configuration: %s must all be set.", ", ".join(REQUIRED_KEYS))
        log.error("Copy config/.env.example to config/.env and fill it in, then restart.")
        sys.exit(1)

    # Validate config early
    try:
        from streamrelay.config import get_settings

        settings = get_settings()
    except Exception as e:
        log.error("Configuration error: %s", e)
        log.error("")
        log.error("  How to fix:")
        log.error("  1. Edit config/.env (or set environment variables)")
        log.error("  2. CHANNEL_MAPPINGS is comma-separated channel_id=streamer_did pairs")
        log.error("     e.g. CHANNEL_MAPPINGS=1234567890=did:plc:abc,2345678901=did:web:my.ball")
        sys.exit(1)

    logging.getLogger().setLevel(settings.LOG_LEVEL)

    from streamrelay.telemetry import configure_tracing, shutdown_tracing

    provider = configure_tracing(settings.OTEL_SERVICE_NAME)

    log.info("Starting Discord to SP chat bridge...")
    try:
        code = asyncio.run(_run())
    except KeyboardInterrupt:
        code = 0
    finally:
        shutdown_tracing(provider)
    sys.exit(code)


if __name__ == "__main__":
    main()
