"""Central configuration for the Streamplace chat relay.

All settings are loaded from environment variables (with ``.env`` file support
via *python-dotenv*).  Validation and type coercion are handled by
``pydantic-settings``.

Usage::

    from streamrelay.config import get_settings

    settings = get_settings()
    print(settings.ATP_HANDLE)

The :func:`get_settings` helper creates the :class:`RelaySettings` singleton
lazily so that importing this module never triggers validation before the
caller has had a chance to load a ``.env`` file or populate the environment.
"""

from __future__ import annotations

import functools
import logging
import os
from typing import ClassVar

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

REQUIRED_KEYS: tuple[str, ...] = ("DISCORD_TOKEN", "ATP_HANDLE", "ATP_APP_PASSWORD")

# ---------------------------------------------------------------------------
# Settings model
# ---------------------------------------------------------------------------


class RelaySettings(BaseSettings):
    """Validated configuration for the relay process.

    Required fields (no defaults):
        ``DISCORD_TOKEN``, ``ATP_HANDLE``, ``ATP_APP_PASSWORD``

    ``CHANNEL_MAPPINGS`` may be left unset; the relay then starts with
    forwarding disabled for every channel.
    """

    model_config = SettingsConfigDict(
        # .env loading is handled by load_dotenv() in __main__.py.
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Required -- no defaults
    # ------------------------------------------------------------------
    DISCORD_TOKEN: str = Field(
        ...,
        description="Discord bot token from the Developer Portal.",
    )
    ATP_HANDLE: str = Field(
        ...,
        description="Handle of the AT Protocol account records are posted as.",
    )
    ATP_APP_PASSWORD: str = Field(
        ...,
        description="App password for ``ATP_HANDLE``.",
    )

    # ------------------------------------------------------------------
    # AT Protocol
    # ------------------------------------------------------------------
    ATP_SERVICE_URL: str = Field(
        default="https://bsky.social",
        description="Base URL of the PDS hosting the bridge account.",
    )

    # ------------------------------------------------------------------
    # Forwarding
    # ------------------------------------------------------------------
    CHANNEL_MAPPINGS: str = Field(
        default="",
        description=(
            "Comma-separated ``discord_channel_id=streamer_did`` pairs.  "
            "``=`` separates the fields because DIDs contain colons."
        ),
    )
    SOURCE_PLATFORM_LABEL: str = Field(
        default="Discord",
        description="Platform name shown in the attribution prefix.",
    )
    COMMAND_PREFIX: str = Field(
        default="~",
        min_length=1,
        description="Messages starting with this prefix are never forwarded.",
    )

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Root log level (DEBUG, INFO, WARNING, ERROR).",
    )
    OTEL_SERVICE_NAME: str = Field(
        default="discord-to-sp-bot",
        description="Service name reported on exported traces.",
    )

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("ATP_SERVICE_URL")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("LOG_LEVEL")
    @classmethod
    def _normalise_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown LOG_LEVEL {value!r}")
        return level

    # ------------------------------------------------------------------
    # Repr safety -- redact secrets in logs / debug output
    # ------------------------------------------------------------------

    _SENSITIVE_FIELDS: ClassVar[set[str]] = {"DISCORD_TOKEN", "ATP_APP_PASSWORD"}

    def __repr__(self) -> str:
        fields = []
        for name in type(self).model_fields:
            val = getattr(self, name)
            if name in self._SENSITIVE_FIELDS:
                val = "***" if val else None
            fields.append(f"{name}={val!r}")
        return f"RelaySettings({', '.join(fields)})"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def has_config() -> bool:
    """Return ``True`` if every required key is set in the environment."""
    return all(os.environ.get(key, "").strip() for key in REQUIRED_KEYS)


# ---------------------------------------------------------------------------
# Lazy singleton accessor
# ---------------------------------------------------------------------------


@functools.lru_cache(maxsize=1)
def get_settings() -> RelaySettings:
    """Return the global :class:`RelaySettings` singleton.

    Raises:
        pydantic.ValidationError: If required settings are missing or any
            value fails validation.
    """
    logger.debug("Initialising RelaySettings from environment.")
    return RelaySettings()  # type: ignore[call-arg]
