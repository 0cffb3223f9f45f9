"""AT Protocol client used to write relayed records.

Public API:
    :class:`AtpClient` -- login, session refresh and ``createRecord``.
    :class:`AtpSession` -- the authenticated bridge identity.
    :class:`CreatedRecord` -- ``uri``/``cid`` of a written record.
    :class:`AtpError` -- XRPC error response.
"""

from streamrelay.atproto.client import (
    DEFAULT_SERVICE_URL,
    AtpClient,
    AtpError,
    AtpSession,
    CreatedRecord,
    NotLoggedInError,
)

__all__ = [
    "DEFAULT_SERVICE_URL",
    "AtpClient",
    "AtpError",
    "AtpSession",
    "CreatedRecord",
    "NotLoggedInError",
]
