"""
Notification formatting for Telegram MarkdownV2.
"""

import re
from datetime import datetime, timezone

from suwayomi_watcher.config import DEFAULT_HEADER
from suwayomi_watcher.models import Notification, RenderedNotification

# Characters with a meaning in Telegram MarkdownV2, plus the escape itself
MARKDOWN_SPECIAL_CHARS = "\\_*[]()~`>#+-=|{}.!"

_ESCAPE_PATTERN = re.compile("([" + re.escape(MARKDOWN_SPECIAL_CHARS) + "])")


def escape_markdown(text: str) -> str:
    """
    Escape MarkdownV2 control characters.

    Parameters
    ----------
    text : str
        Free text (titles, names).

    Returns
    -------
    str
        Text safe to embed in a MarkdownV2 message.
    """
    return _ESCAPE_PATTERN.sub(r"\\\1", str(text))


def format_timestamp(value: str) -> str:
    """
    Render an epoch-milliseconds marker as ``YYYY-MM-DD HH:MM`` (UTC).

    Values that are not an integer are returned unchanged.
    """
    try:
        millis = int(value)
        moment = datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return value
    return moment.strftime("%Y-%m-%d %H:%M")


class NotificationFormatter:
    """Renders new-chapter notifications as MarkdownV2 captions."""

    def __init__(self, header: str = DEFAULT_HEADER):
        self.header = header

    def render(self, notification: Notification) -> RenderedNotification:
        """
        Build the caption and image reference for a notification.

        Parameters
        ----------
        notification : Notification
            The new chapter to announce.

        Returns
        -------
        RenderedNotification
            Caption text and the manga thumbnail reference, if any.
        """
        manga = notification.manga
        chapter = notification.chapter

        lines = [escape_markdown(self.header), ""]
        lines.append(f"*{escape_markdown(manga.title)}*")

        if chapter.name:
            lines.append(f"_{escape_markdown(chapter.name)}_")

        lines.append(f"Ch\\. {escape_markdown(chapter.version)}")

        if manga.source:
            lines.append(
                f"Source {escape_markdown(manga.source.name)} "
                f"\\({escape_markdown(manga.source.lang)}\\)"
            )

        if chapter.published_at:
            lines.append(f"Uploaded {escape_markdown(format_timestamp(chapter.published_at))}")

        return RenderedNotification(caption="\n".join(lines), image_ref=manga.thumbnail_url)
