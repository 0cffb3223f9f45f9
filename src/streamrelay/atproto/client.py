"""Async AT Protocol XRPC client for the relay.

The relay posts every forwarded message as a record in the bridge account's
own repository.  This module implements the three XRPC procedures that
requires: ``com.atproto.server.createSession`` (login),
``com.atproto.server.refreshSession`` and ``com.atproto.repo.createRecord``.

Usage::

    from streamrelay.atproto.client import AtpClient

    async with AtpClient("https://bsky.social") as client:
        session = await client.login("bridge.example.com", "app-password")
        created = await client.create_record(
            repo=session.did,
            collection="place.stream.chat.message",
            record=record,
            validate=False,
        )
        print(created.uri, created.cid)

The client implements :meth:`__aenter__` / :meth:`__aexit__` so it can be used
as an async context manager, which ensures the underlying ``aiohttp`` session
is properly closed on exit.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Mapping

import aiohttp

from streamrelay.records import ForwardedRecord

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_SERVICE_URL: str = "https://bsky.social"
"""Default PDS entryway."""

_REQUEST_TIMEOUT: float = 30.0
"""Total timeout in seconds for a single XRPC request."""

_EXPIRED_TOKEN_ERRORS: frozenset[str] = frozenset({"ExpiredToken"})
"""XRPC error names that mean the access token must be refreshed."""


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class AtpError(Exception):
    """Raised when an XRPC call returns an error response.

    Attributes:
        status_code: HTTP status code of the failed response.
        error: XRPC error name (e.g. ``"InvalidRequest"``), if reported.
        message: Human-readable error description.
        nsid: The procedure that failed.
    """

    def __init__(
        self,
        status_code: int,
        error: str | None,
        message: str,
        nsid: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.error = error
        self.message = message
        self.nsid = nsid
        super().__init__(
            f"XRPC error {status_code}"
            f"{f' {error}' if error else ''}"
            f"{f' ({nsid})' if nsid else ''}: {message}"
        )

    @property
    def is_expired_token(self) -> bool:
        return self.status_code in (400, 401) and self.error in _EXPIRED_TOKEN_ERRORS


class NotLoggedInError(AtpError):
    """Raised when an authenticated call is made without a session."""

    def __init__(self, nsid: str | None = None) -> None:
        super().__init__(401, "AuthenticationRequired", "No active session", nsid)


# ---------------------------------------------------------------------------
# Response dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AtpSession:
    """An authenticated AT Protocol session.

    Attributes:
        did: DID of the account; records are written to this repository.
        handle: Account handle.
        access_jwt: Short-lived bearer token for XRPC calls.
        refresh_jwt: Long-lived token used to obtain a new access token.
    """

    did: str
    handle: str
    access_jwt: str
    refresh_jwt: str

    @classmethod
    def from_response(cls, body: Mapping[str, Any]) -> AtpSession:
        return cls(
            did=body["did"],
            handle=body.get("handle", ""),
            access_jwt=body["accessJwt"],
            refresh_jwt=body["refreshJwt"],
        )

    def __repr__(self) -> str:
        return f"AtpSession(did={self.did!r}, handle={self.handle!r})"


@dataclass(frozen=True, slots=True)
class CreatedRecord:
    """Location and content hash of a record written by ``createRecord``."""

    uri: str
    cid: str


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class AtpClient:
    """Async client for a single AT Protocol account.

    The HTTP session is created lazily on first use and reused for the
    lifetime of the client.  Call :meth:`close` (or use the client as an
    async context manager) to release the underlying connection pool.

    Args:
        service_url: Base URL of the PDS (or entryway) hosting the account.
    """

    def __init__(self, service_url: str = DEFAULT_SERVICE_URL) -> None:
        self._service_url: str = service_url.rstrip("/")
        self._http: aiohttp.ClientSession | None = None
        self._session: AtpSession | None = None
        self._refresh_lock = asyncio.Lock()

    # -- Async context manager ----------------------------------------------

    async def __aenter__(self) -> AtpClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()

    # -- Internal helpers ---------------------------------------------------

    async def _ensure_http(self) -> aiohttp.ClientSession:
        """Return the shared HTTP session, creating it lazily if needed.

        The session is created outside ``__init__`` to avoid requiring an
        active event loop at construction time.
        """
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession(
                headers={"Content-Type": "application/json"},
                timeout=aiohttp.ClientTimeout(total=_REQUEST_TIMEOUT),
            )
        return self._http

    async def _procedure(
        self,
        nsid: str,
        payload: dict[str, Any] | None = None,
        *,
        token: str | None = None,
    ) -> dict[str, Any]:
        """POST an XRPC procedure and return the decoded JSON body.

        Raises:
            AtpError: When the server answers with a non-2xx status.
            aiohttp.ClientError: On transport failures.
        """
        http = await self._ensure_http()
        url = f"{self._service_url}/xrpc/{nsid}"
        headers = {"Authorization": f"Bearer {token}"} if token else None

        async with http.post(url, json=payload, headers=headers) as resp:
            body: Any = await resp.json(content_type=None)

            if resp.status >= 400:
                if isinstance(body, dict):
                    error = body.get("error")
                    message = body.get("message") or error or f"HTTP {resp.status}"
                else:
                    error = None
                    message = f"HTTP {resp.status}: {body}"
                raise AtpError(resp.status, error, message, nsid)

            return body if isinstance(body, dict) else {}

    async def _authed_procedure(
        self,
        nsid: str,
        payload: dict[str, Any],
    ) -> dict[str, Any]:
        """Call *nsid* with the access token, refreshing it once if expired."""
        session = self._session
        if session is None:
            raise NotLoggedInError(nsid)

        try:
            return await self._procedure(nsid, payload, token=session.access_jwt)
        except AtpError as exc:
            if not exc.is_expired_token:
                raise
            logger.info("Access token expired; refreshing session for %s", session.handle)

        session = await self.refresh_session(stale=session)
        return await self._procedure(nsid, payload, token=session.access_jwt)

    # -- Public API ---------------------------------------------------------

    async def login(self, identifier: str, password: str) -> AtpSession:
        """Create a session for *identifier* (handle or DID).

        Raises:
            AtpError: If the credentials are rejected.
        """
        body = await self._procedure(
            "com.atproto.server.createSession",
            {"identifier": identifier, "password": password},
        )
        self._session = AtpSession.from_response(body)
        logger.info("Logged in to %s as %s", self._service_url, self._session.handle)
        return self._session

    async def refresh_session(self, stale: AtpSession | None = None) -> AtpSession:
        """Exchange the refresh token for a new access token.

        Concurrent callers that all saw the same *stale* session share a
        single refresh.
        """
        async with self._refresh_lock:
            current = self._session
            if current is None:
                raise NotLoggedInError("com.atproto.server.refreshSession")
            if stale is not None and current is not stale:
                return current

            body = await self._procedure(
                "com.atproto.server.refreshSession",
                token=current.refresh_jwt,
            )
            self._session = AtpSession.from_response(body)
            logger.debug("Session refreshed for %s", self._session.handle)
            return self._session

    async def get_session(self) -> AtpSession | None:
        """Return the active session, or ``None`` before :meth:`login`."""
        return self._session

    async def create_record(
        self,
        repo: str,
        collection: str,
        record: ForwardedRecord | Mapping[str, Any],
        *,
        validate: bool = False,
        rkey: str | None = None,
    ) -> CreatedRecord:
        """Write *record* into *repo* under *collection*.

        Args:
            repo: DID of the repository (the logged-in account).
            collection: Lexicon NSID of the record type.
            record: The record body.
            validate: Ask the server to validate against the lexicon.  Kept
                ``False`` for ``place.stream`` records because PDSes cannot
                resolve those lexicons yet.
            rkey: Optional record key; the server generates a TID otherwise.

        Raises:
            AtpError: On XRPC errors.
            aiohttp.ClientError: On transport failures.
        """
        body = record.to_record() if isinstance(record, ForwardedRecord) else dict(record)
        payload: dict[str, Any] = {
            "repo": repo,
            "collection": collection,
            "record": body,
            "validate": validate,
        }
        if rkey is not None:
            payload["rkey"] = rkey

        logger.debug("createRecord: repo=%s collection=%s", repo, collection)
        result = await self._authed_procedure("com.atproto.repo.createRecord", payload)
        return CreatedRecord(uri=result["uri"], cid=result["cid"])

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        if self._http is not None and not self._http.closed:
            await self._http.close()
        self._http = None
