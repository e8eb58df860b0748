"""
Update dispatcher.

Turns a batch of library updates into the list of notifications to send.
"""

import logging

from suwayomi_watcher.ledger import Classification, Ledger
from suwayomi_watcher.models import MangaUpdate, Notification

logger = logging.getLogger(__name__)


class UpdateDispatcher:
    """
    Classifies update batches against the ledger.

    Owns the ledger: it is the only component that mutates it.
    """

    def __init__(self, ledger: Ledger, notify_new: bool = True):
        """
        Initialize the dispatcher.

        Parameters
        ----------
        ledger : Ledger
            The dedup ledger.
        notify_new : bool
            If False, new chapters are recorded but not returned.
        """
        self.ledger = ledger
        self.notify_new = notify_new

    async def handle_batch(self, updates: list[MangaUpdate]) -> list[Notification]:
        """
        Classify a batch and collect notifications for new chapters.

        The ledger is reloaded first and flushed once at the end, before the
        caller sends anything.

        Parameters
        ----------
        updates : list[MangaUpdate]
            Updates in server order.

        Returns
        -------
        list[Notification]
            Notifications for new chapters, in the same relative order.
        """
        await self.ledger.reload()

        notifications: list[Notification] = []
        for update in updates:
            manga = update.manga
            chapter = manga.latest_chapter
            if chapter is None:
                continue

            if self.ledger.classify(manga, chapter) is not Classification.NEW:
                continue

            logger.info(
                "New chapter for %s: #%s %s",
                manga.title,
                chapter.version,
                chapter.name or "",
            )
            if self.notify_new:
                notifications.append(Notification(manga=manga, chapter=chapter, status=update.status))

        await self.ledger.flush_if_dirty()
        return notifications
