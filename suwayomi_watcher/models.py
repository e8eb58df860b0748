"""
Data model for library update events and notifications.

Normalizes the GraphQL subscription payload into plain dataclasses so the
rest of the pipeline never touches raw dictionaries.
"""

import logging
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


def _version_string(chapter_number: Any) -> str:
    """
    Render a chapter number as the string stored in the ledger.

    Integral floats lose their trailing ``.0`` so that ``10.0`` and ``10``
    produce the same version.
    """
    if isinstance(chapter_number, float) and chapter_number.is_integer():
        return str(int(chapter_number))
    return str(chapter_number)


@dataclass
class Source:
    """
    Extension source a manga is read from.

    Attributes
    ----------
    name : str
        Display name of the source.
    lang : str
        Language code of the source.
    """

    name: str
    lang: str = ""

    @classmethod
    def from_payload(cls, payload: dict[str, Any] | None) -> "Source | None":
        if not payload:
            return None
        return cls(name=str(payload.get("name") or ""), lang=str(payload.get("lang") or ""))


@dataclass
class Chapter:
    """
    Latest known chapter of a manga.

    Attributes
    ----------
    id : str
        Server-side chapter identifier.
    version : str
        Chapter number rendered as a string. Compared as an opaque string.
    name : str | None
        Chapter title, if any.
    published_at : str | None
        Upload marker, usually epoch milliseconds as a string.
    """

    id: str
    version: str
    name: str | None = None
    published_at: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any] | None) -> "Chapter | None":
        """
        Build a chapter from a ``latestFetchedChapter`` object.

        Returns None when the payload is missing or carries no chapter number.
        """
        if not payload or payload.get("chapterNumber") is None:
            return None

        uploaded = payload.get("uploadDate")
        return cls(
            id=str(payload.get("id", "")),
            version=_version_string(payload["chapterNumber"]),
            name=payload.get("name") or None,
            published_at=str(uploaded) if uploaded not in (None, "") else None,
        )


@dataclass
class Manga:
    """
    A library entry tracked for new chapters.

    Attributes
    ----------
    id : str
        Stable manga identifier.
    title : str
        Manga title.
    thumbnail_url : str | None
        Thumbnail resource path (usually relative to the server URL).
    source : Source | None
        Source the manga comes from.
    latest_chapter : Chapter | None
        Newest fetched chapter, None if the server has none yet.
    """

    id: str
    title: str
    thumbnail_url: str | None = None
    source: Source | None = None
    latest_chapter: Chapter | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "Manga":
        if payload.get("id") is None:
            raise ValueError("manga payload has no id")
        return cls(
            id=str(payload["id"]),
            title=str(payload.get("title") or ""),
            thumbnail_url=payload.get("thumbnailUrl") or None,
            source=Source.from_payload(payload.get("source")),
            latest_chapter=Chapter.from_payload(payload.get("latestFetchedChapter")),
        )


@dataclass
class MangaUpdate:
    """
    One element of a library update batch.

    Attributes
    ----------
    status : str
        Update job status reported by the server (e.g. COMPLETE).
    manga : Manga
        The manga the update refers to.
    """

    status: str
    manga: Manga

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "MangaUpdate":
        manga = payload.get("manga")
        if not isinstance(manga, dict):
            raise ValueError("update payload has no manga object")
        return cls(status=str(payload.get("status") or ""), manga=Manga.from_payload(manga))


@dataclass
class Notification:
    """A newly detected chapter waiting to be rendered and delivered."""

    manga: Manga
    chapter: Chapter
    status: str


@dataclass
class RenderedNotification:
    """
    A notification ready for the messaging sink.

    Attributes
    ----------
    caption : str
        MarkdownV2 message text.
    image_ref : str | None
        Thumbnail resource to attach, None for a text-only message.
    """

    caption: str
    image_ref: str | None = None


def parse_update_batch(data: dict[str, Any] | None) -> list[MangaUpdate]:
    """
    Extract the manga updates from a subscription ``data`` payload.

    Malformed events are skipped with a warning so one bad element does not
    drop the rest of the batch.

    Parameters
    ----------
    data : dict | None
        The ``data`` member of a subscription message.

    Returns
    -------
    list[MangaUpdate]
        Updates in the order the server sent them.
    """
    if not data:
        return []

    payload = data.get("libraryUpdateStatusChanged") or {}
    raw_updates = payload.get("mangaUpdates") or []

    updates = []
    for raw in raw_updates:
        try:
            updates.append(MangaUpdate.from_payload(raw))
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning("Skipping malformed manga update: %s", e)
    return updates
