"""Convert inbound chat markup into portable, attributed text.

Discord encodes mentions as inline tokens (``<@123>``, ``<@!123>``,
``<@&456>``, ``<#789>``) that mean nothing outside Discord.  This module
replaces them with readable ``@name`` / ``#channel`` text and prefixes the
result with the author's name and source platform, e.g.::

    Ana (Discord): @Bob hi

Everything here is pure: no network access and no shared state.

Usage::

    from streamrelay.channels.formatter import transform_message

    text = transform_message(message, role_lookup=guild_roles.get)
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from streamrelay.records import InboundMessage

log = logging.getLogger(__name__)

DEFAULT_PLATFORM_LABEL: str = "Discord"

RoleLookup = Callable[[str], Optional[str]]
"""Resolve a role id to its display name, or ``None`` when unknown."""


class EmptyContentError(ValueError):
    """Raised when a message has no text to relay (e.g. attachments only)."""


def attribution_prefix(display_name: str, platform_label: str = DEFAULT_PLATFORM_LABEL) -> str:
    """Return the ``"<name> (<platform>):"`` prefix placed before each message."""
    return f"{display_name} ({platform_label}):"


def _user_tokens(user_id: str) -> tuple[str, ...]:
    # Plain and nickname forms.
    return (f"<@{user_id}>", f"<@!{user_id}>")


def _channel_token(channel_id: str) -> str:
    return f"<#{channel_id}>"


def _role_token(role_id: str) -> str:
    return f"<@&{role_id}>"


def _resolve_role(role_lookup: RoleLookup | None, role_id: str) -> str | None:
    if role_lookup is None:
        return None
    try:
        return role_lookup(role_id)
    except Exception:
        log.debug("Role lookup failed for %s", role_id, exc_info=True)
        return None


def replace_mentions(
    text: str,
    message: InboundMessage,
    role_lookup: RoleLookup | None = None,
) -> str:
    """Replace every user, channel and resolvable role token in *text*.

    Replacement is global: every occurrence of a mentioned user's token is
    rewritten, not just the first.  Role tokens whose name cannot be
    resolved are left untouched.
    """
    for user in message.user_mentions:
        for token in _user_tokens(user.id):
            text = text.replace(token, f"@{user.display_name}")

    for channel in message.channel_mentions:
        text = text.replace(_channel_token(channel.id), f"#{channel.display_name}")

    for role_id in message.role_mentions:
        name = _resolve_role(role_lookup, role_id)
        if name is None:
            continue
        text = text.replace(_role_token(role_id), f"@{name}")

    return text


def transform_message(
    message: InboundMessage,
    role_lookup: RoleLookup | None = None,
    *,
    platform_label: str = DEFAULT_PLATFORM_LABEL,
) -> str:
    """Render *message* as portable text with an attribution prefix.

    Args:
        message: The inbound message.
        role_lookup: Resolves role ids to names.  ``None`` outside a guild,
            in which case role tokens are kept verbatim.
        platform_label: Source platform named in the prefix.

    Returns:
        ``"<author> (<platform>): <body>"``, or just the prefix when the body
        is empty after substitution.

    Raises:
        EmptyContentError: If the raw text is empty or whitespace only.
    """
    if not message.raw_text.strip():
        raise EmptyContentError("no content found")

    body = replace_mentions(message.raw_text, message, role_lookup).strip()
    prefix = attribution_prefix(message.author.display_name, platform_label)

    if not body:
        return prefix
    return f"{prefix} {body}"
