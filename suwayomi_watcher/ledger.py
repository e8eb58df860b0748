"""
Dedup ledger for library updates.

Tracks the last seen chapter version of every manga and classifies each
incoming chapter as a first observation, a repeat, or new content.
"""

import logging
from enum import Enum

from suwayomi_watcher.models import Chapter, Manga
from suwayomi_watcher.storage import PersistenceError, StateStore

logger = logging.getLogger(__name__)


class Classification(Enum):
    """Outcome of comparing a chapter against the ledger."""

    BASELINE = "baseline"
    UNCHANGED = "unchanged"
    NEW = "new"


class Ledger:
    """
    Persisted mapping of manga id to last seen chapter version.

    The first observation of a manga only records its chapter (baseline), so
    a fresh install does not replay the whole library. Versions are compared
    as plain strings; any change, including a lower chapter number, is new.
    Entries are never removed.
    """

    def __init__(self, store: StateStore):
        """
        Initialize the ledger.

        Parameters
        ----------
        store : StateStore
            Backing store used for load and save.
        """
        self.store = store
        self._last_seen: dict[str, str] = {}
        self._dirty = False
        self._stale_on_disk = False

    @property
    def last_seen(self) -> dict[str, str]:
        """Copy of the current in-memory mapping."""
        return dict(self._last_seen)

    @property
    def dirty(self) -> bool:
        """Whether the mapping changed since the last reload or flush."""
        return self._dirty

    async def load(self) -> None:
        """
        Load the ledger from the store.

        A read failure is logged and leaves the ledger empty.
        """
        try:
            self._last_seen = await self.store.load()
        except PersistenceError as e:
            logger.error("Failed to read state, starting from an empty ledger: %s", e)
            self._last_seen = {}
        self._dirty = False
        logger.info("Ledger loaded with %d tracked manga", len(self._last_seen))

    async def reload(self) -> None:
        """
        Re-read the ledger from the store before handling a batch.

        Skipped while the file is known to be older than memory because an
        earlier write failed.
        """
        if self._stale_on_disk:
            logger.debug("State file is stale, keeping in-memory ledger")
            self._dirty = False
            return
        await self.load()

    def classify(self, manga: Manga, chapter: Chapter) -> Classification:
        """
        Compare a chapter against the ledger and record it.

        Parameters
        ----------
        manga : Manga
            The manga the chapter belongs to.
        chapter : Chapter
            Its latest chapter.

        Returns
        -------
        Classification
            BASELINE for an unknown manga, UNCHANGED if the stored version
            matches, NEW otherwise.
        """
        previous = self._last_seen.get(manga.id)

        if previous is None:
            self._last_seen[manga.id] = chapter.version
            self._dirty = True
            logger.debug("Baseline for '%s': chapter %s", manga.title, chapter.version)
            return Classification.BASELINE

        if previous == chapter.version:
            return Classification.UNCHANGED

        self._last_seen[manga.id] = chapter.version
        self._dirty = True
        return Classification.NEW

    async def flush_if_dirty(self) -> bool:
        """
        Persist the ledger if it changed since the last reload or flush.

        Returns
        -------
        bool
            True if the ledger was written successfully.
        """
        if not self._dirty:
            return False

        self._dirty = False
        try:
            await self.store.save(self._last_seen)
        except PersistenceError as e:
            logger.error("Failed to write state, keeping in-memory ledger: %s", e)
            self._stale_on_disk = True
            return False

        self._stale_on_disk = False
        return True
