"""
GraphQL subscription client.

Speaks the graphql-transport-ws protocol over a WebSocket connection to the
Suwayomi server and yields library update payloads.
"""

import asyncio
import contextlib
import json
import logging
import uuid
from collections.abc import AsyncIterator, Callable
from typing import Any

import websockets
from websockets.asyncio.client import ClientConnection
from websockets.exceptions import (
    ConnectionClosed,
    InvalidHandshake,
    InvalidStatus,
    InvalidURI,
)
from websockets.typing import Subprotocol

from suwayomi_watcher.session import CredentialSession

logger = logging.getLogger(__name__)

GRAPHQL_TRANSPORT_WS = Subprotocol("graphql-transport-ws")

# Close codes graphql-transport-ws servers use for rejected credentials
UNAUTHORIZED_CLOSE_CODES = frozenset({4401, 4403})

UNAUTHORIZED_MARKER = "unauthorized"

LIBRARY_UPDATES_SUBSCRIPTION = """
subscription Updates {
  libraryUpdateStatusChanged(input: {}) {
    mangaUpdates {
      status
      manga {
        id
        title
        thumbnailUrl
        source {
          name
          lang
        }
        latestFetchedChapter {
          id
          chapterNumber
          name
          uploadDate
        }
      }
    }
  }
}
"""


class SubscriptionError(Exception):
    """
    Raised when the subscription fails to open or fails mid-stream.

    Attributes
    ----------
    unauthorized : bool
        True if the server rejected the bearer token.
    payload : Any
        Error payload sent by the server, if any.
    """

    def __init__(self, message: str, unauthorized: bool = False, payload: Any = None):
        super().__init__(message)
        self.unauthorized = unauthorized
        self.payload = payload


def contains_unauthorized(payload: Any) -> bool:
    """
    Look for the "Unauthorized" marker anywhere in an error payload.

    Handles strings, lists of GraphQL errors, and nested objects.
    """
    if isinstance(payload, str):
        return UNAUTHORIZED_MARKER in payload.lower()
    if isinstance(payload, dict):
        return any(contains_unauthorized(v) for v in payload.values())
    if isinstance(payload, (list, tuple)):
        return any(contains_unauthorized(v) for v in payload)
    return False


class GraphQLSubscriptionClient:
    """
    Single-subscription graphql-transport-ws client.

    Each call to :meth:`subscribe` opens a fresh connection carrying the
    session's current bearer token.
    """

    def __init__(
        self,
        url: str,
        session: CredentialSession,
        connect_timeout: int = 10,
    ):
        """
        Initialize the client.

        Parameters
        ----------
        url : str
            WebSocket URL of the GraphQL endpoint.
        session : CredentialSession
            Source of the Authorization header.
        connect_timeout : int
            Timeout in seconds for the handshake and connection_ack.
        """
        self.url = url
        self.session = session
        self.connect_timeout = connect_timeout

    async def subscribe(
        self,
        query: str = LIBRARY_UPDATES_SUBSCRIPTION,
        variables: dict[str, Any] | None = None,
        on_subscribed: Callable[[], None] | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """
        Open a subscription and yield each result's ``data`` payload.

        The iteration ends normally when the server completes the
        subscription or closes the connection cleanly.

        Parameters
        ----------
        query : str
            GraphQL subscription document.
        variables : dict | None
            Operation variables.
        on_subscribed : Callable[[], None] | None
            Called once the server has acknowledged the connection and the
            subscribe message has been sent.

        Yields
        ------
        dict
            The ``data`` member of every ``next`` message.

        Raises
        ------
        SubscriptionError
            On handshake failure, error messages, or abnormal close.
        """
        ws = await self._connect()
        subscription_id = str(uuid.uuid4())

        try:
            await self._initialize(ws)
            await ws.send(
                json.dumps(
                    {
                        "id": subscription_id,
                        "type": "subscribe",
                        "payload": {"query": query, "variables": variables or {}},
                    }
                )
            )
            logger.info("Subscribed to library updates")
            if on_subscribed is not None:
                on_subscribed()

            async for raw in ws:
                message = self._decode(raw)
                kind = message.get("type")

                if kind == "next":
                    payload = message.get("payload") or {}
                    data = payload.get("data")
                    errors = payload.get("errors")
                    if errors:
                        unauthorized = contains_unauthorized(errors)
                        if data is None or unauthorized:
                            raise SubscriptionError(
                                f"Subscription returned errors: {errors}",
                                unauthorized=unauthorized,
                                payload=errors,
                            )
                        logger.warning("Subscription result has partial errors: %s", errors)
                    yield data or {}
                elif kind == "error":
                    errors = message.get("payload")
                    raise SubscriptionError(
                        f"Subscription error: {errors}",
                        unauthorized=contains_unauthorized(errors),
                        payload=errors,
                    )
                elif kind == "complete":
                    logger.info("Subscription completed by server")
                    return
                elif kind == "ping":
                    await ws.send(json.dumps({"type": "pong"}))
                else:
                    logger.debug("Ignoring message of type %s", kind)

            logger.info("Subscription connection closed by server")
        except ConnectionClosed as e:
            raise self._closed_error(e) from e
        finally:
            with contextlib.suppress(Exception):
                await ws.close()

    async def _connect(self) -> ClientConnection:
        logger.info("Opening WebSocket to %s", self.url)
        try:
            return await asyncio.wait_for(
                websockets.connect(
                    self.url,
                    subprotocols=[GRAPHQL_TRANSPORT_WS],
                    additional_headers=self.session.auth_headers(),
                ),
                timeout=self.connect_timeout,
            )
        except InvalidStatus as e:
            status = e.response.status_code
            raise SubscriptionError(
                f"WebSocket handshake rejected: HTTP {status}",
                unauthorized=status in (401, 403),
            ) from e
        except TimeoutError as e:
            raise SubscriptionError(f"Timeout connecting to {self.url}") from e
        except (InvalidHandshake, InvalidURI, OSError) as e:
            raise SubscriptionError(f"WebSocket connection failed: {e}") from e

    async def _initialize(self, ws: ClientConnection) -> None:
        """Send connection_init and wait for connection_ack."""
        await ws.send(json.dumps({"type": "connection_init", "payload": {}}))

        try:
            async with asyncio.timeout(self.connect_timeout):
                while True:
                    message = self._decode(await ws.recv())
                    kind = message.get("type")
                    if kind == "connection_ack":
                        return
                    if kind == "ping":
                        await ws.send(json.dumps({"type": "pong"}))
                        continue
                    raise SubscriptionError(
                        f"Unexpected message before connection_ack: {kind}",
                        unauthorized=contains_unauthorized(message.get("payload")),
                        payload=message.get("payload"),
                    )
        except TimeoutError as e:
            raise SubscriptionError("Timeout waiting for connection_ack") from e

    def _decode(self, raw: str | bytes) -> dict[str, Any]:
        try:
            message = json.loads(raw)
        except json.JSONDecodeError as e:
            raise SubscriptionError(f"Invalid JSON from server: {str(raw)[:100]}") from e
        if not isinstance(message, dict):
            raise SubscriptionError("Protocol message is not an object")
        return message

    def _closed_error(self, exc: ConnectionClosed) -> SubscriptionError:
        close = exc.rcvd
        code = close.code if close else None
        reason = close.reason if close else ""
        unauthorized = code in UNAUTHORIZED_CLOSE_CODES or contains_unauthorized(reason)
        return SubscriptionError(
            f"WebSocket closed (code={code}, reason={reason!r})",
            unauthorized=unauthorized,
            payload=reason or None,
        )
