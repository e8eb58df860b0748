"""
Session-resilient subscription loop.

Keeps a library update subscription alive forever: connects with the
current token, hands every batch to the dispatcher, delivers the resulting
notifications in order, and reconnects after any failure or completion.
"""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Callable
from enum import Enum
from typing import Any, Protocol

from suwayomi_watcher.dispatcher import UpdateDispatcher
from suwayomi_watcher.formatter import NotificationFormatter
from suwayomi_watcher.models import MangaUpdate, Notification, parse_update_batch
from suwayomi_watcher.notifier import Notifier
from suwayomi_watcher.session import AuthError, CredentialSession
from suwayomi_watcher.subscription import SubscriptionError
from suwayomi_watcher.thumbnails import ThumbnailFetcher

logger = logging.getLogger(__name__)


class SubscriptionState(Enum):
    """States of the subscription loop."""

    IDLE = "idle"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    FAILED = "failed"
    CLOSED = "closed"
    BACKOFF = "backoff"
    STOPPED = "stopped"


class UpdateSource(Protocol):
    """Anything that can open a library update subscription."""

    def subscribe(
        self, on_subscribed: Callable[[], None] | None = None
    ) -> AsyncIterator[dict[str, Any]]:
        ...


class UpdateSubscriber:
    """
    Supervises the update subscription.

    The loop runs CONNECTING -> SUBSCRIBED -> FAILED | CLOSED -> BACKOFF and
    back to CONNECTING until :meth:`stop` is called. Notifications of a
    batch are delivered one at a time, in detection order.
    """

    def __init__(
        self,
        source: UpdateSource,
        session: CredentialSession,
        dispatcher: UpdateDispatcher,
        formatter: NotificationFormatter,
        notifier: Notifier,
        thumbnails: ThumbnailFetcher | None = None,
        reconnect_delay: float = 5.0,
        refresh_on_reconnect: bool = True,
    ):
        """
        Initialize the subscriber.

        Parameters
        ----------
        source : UpdateSource
            Subscription transport.
        session : CredentialSession
            Credential session refreshed on reconnect and on unauthorized errors.
        dispatcher : UpdateDispatcher
            Batch classifier.
        formatter : NotificationFormatter
            Caption renderer.
        notifier : Notifier
            Messaging sink.
        thumbnails : ThumbnailFetcher | None
            Image fetcher. None sends text-only messages.
        reconnect_delay : float
            Seconds to wait in BACKOFF.
        refresh_on_reconnect : bool
            Log in again at the end of every BACKOFF.
        """
        self.source = source
        self.session = session
        self.dispatcher = dispatcher
        self.formatter = formatter
        self.notifier = notifier
        self.thumbnails = thumbnails
        self.reconnect_delay = reconnect_delay
        self.refresh_on_reconnect = refresh_on_reconnect
        self.state = SubscriptionState.IDLE
        self._stop_event = asyncio.Event()
        self._active: asyncio.Task | None = None
        self._credentials_fresh = False

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        """Close the active subscription and prevent further reconnects."""
        self._stop_event.set()
        if self._active is not None and not self._active.done():
            self._active.cancel()

    async def run(self) -> None:
        """Run the subscription loop until stopped."""
        while not self.stopping:
            self.state = SubscriptionState.CONNECTING
            self._credentials_fresh = False
            self._active = asyncio.create_task(self._consume())
            try:
                await self._active
            except asyncio.CancelledError:
                self._active.cancel()
                if not self.stopping:
                    raise
                break
            except SubscriptionError as e:
                self.state = SubscriptionState.FAILED
                await self._handle_failure(e)
            except Exception as e:
                self.state = SubscriptionState.FAILED
                logger.exception("Unexpected subscription failure: %s", e)
            else:
                self.state = SubscriptionState.CLOSED
                logger.warning("Subscription closed, reconnecting")
            finally:
                self._active = None

            if self.stopping:
                break
            await self._backoff()

        self.state = SubscriptionState.STOPPED
        logger.info("Subscription loop stopped")

    async def _consume(self) -> None:
        """Consume one subscription until it completes or fails."""
        stream = self.source.subscribe(on_subscribed=self._mark_subscribed)
        async with contextlib.aclosing(stream):
            async for data in stream:
                updates = parse_update_batch(data)
                logger.debug("Received %d manga update(s)", len(updates))
                if not updates:
                    continue
                try:
                    await self.process_batch(updates)
                except Exception as e:
                    logger.error("Error while handling updates: %s", e)

    def _mark_subscribed(self) -> None:
        self.state = SubscriptionState.SUBSCRIBED

    async def process_batch(self, updates: list[MangaUpdate]) -> int:
        """
        Classify a batch and deliver its notifications in order.

        Returns
        -------
        int
            Number of notifications delivered successfully.
        """
        notifications = await self.dispatcher.handle_batch(updates)

        delivered = 0
        for notification in notifications:
            if await self._deliver(notification):
                delivered += 1
        return delivered

    async def _deliver(self, notification: Notification) -> bool:
        """Render and send a notification. Failures are logged, not retried."""
        try:
            rendered = self.formatter.render(notification)
            image = None
            if self.thumbnails is not None and rendered.image_ref:
                image = await self.thumbnails.fetch(rendered.image_ref)

            if await self.notifier.deliver(rendered.caption, image):
                logger.info(
                    "Sent notification for %s chapter %s",
                    notification.manga.title,
                    notification.chapter.version,
                )
                return True
        except Exception as e:
            logger.error("Failed to notify for '%s': %s", notification.manga.title, e)
            return False

        logger.error("Notification for '%s' was not delivered", notification.manga.title)
        return False

    async def _handle_failure(self, error: SubscriptionError) -> None:
        if not error.unauthorized:
            logger.error("Subscription error: %s", error)
            return

        logger.warning("Subscription unauthorized, logging in again: %s", error)
        self.session.invalidate()
        self._credentials_fresh = await self._refresh_credentials()

    async def _backoff(self) -> None:
        """Wait the reconnect delay, then refresh credentials unless just done."""
        self.state = SubscriptionState.BACKOFF
        logger.info("Reconnecting in %s seconds", self.reconnect_delay)

        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._stop_event.wait(), timeout=self.reconnect_delay)
        if self.stopping:
            return

        if self.refresh_on_reconnect and not self._credentials_fresh:
            await self._refresh_credentials()

    async def _refresh_credentials(self) -> bool:
        try:
            await self.session.refresh()
        except AuthError as e:
            logger.error("Login failed, continuing without a fresh token: %s", e)
            return False
        return True
