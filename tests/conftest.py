"""
Shared fixtures for Suwayomi Watcher tests.

Provides common test fixtures for use across all test modules.
"""

from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from suwayomi_watcher.config import AppConfig, SuwayomiConfig, TelegramConfig
from suwayomi_watcher.ledger import Ledger
from suwayomi_watcher.models import Chapter, Manga, MangaUpdate, Source
from suwayomi_watcher.session import CredentialSession
from suwayomi_watcher.storage import StateStore


def make_update(
    manga_id: str,
    version: str | None,
    title: str | None = None,
    status: str = "COMPLETE",
) -> MangaUpdate:
    """Build a MangaUpdate with an optional latest chapter."""
    chapter = None
    if version is not None:
        chapter = Chapter(id=f"c{manga_id}-{version}", version=version, name=f"Chapter {version}")
    return MangaUpdate(
        status=status,
        manga=Manga(
            id=manga_id,
            title=title or f"Manga {manga_id}",
            thumbnail_url=f"/api/v1/manga/{manga_id}/thumbnail",
            latest_chapter=chapter,
        ),
    )


class MemoryStore:
    """In-memory stand-in for StateStore that records every write."""

    def __init__(self, initial: dict[str, str] | None = None):
        self.data: dict[str, str] = dict(initial or {})
        self.saves: list[dict[str, str]] = []
        self.load_error: Exception | None = None
        self.save_error: Exception | None = None

    async def load(self) -> dict[str, str]:
        if self.load_error is not None:
            raise self.load_error
        return dict(self.data)

    async def save(self, last_seen: dict[str, str]) -> None:
        if self.save_error is not None:
            raise self.save_error
        self.data = dict(last_seen)
        self.saves.append(dict(last_seen))


@pytest.fixture
def memory_store() -> MemoryStore:
    """Return an empty in-memory store."""
    return MemoryStore()


@pytest.fixture
def ledger(memory_store: MemoryStore) -> Ledger:
    """Return a ledger backed by the in-memory store."""
    return Ledger(memory_store)


@pytest.fixture
def state_store(tmp_path: Path) -> StateStore:
    """Return a JSON state store in a temporary directory."""
    return StateStore(tmp_path / "state" / "state.json")


@pytest.fixture
def sample_manga() -> Manga:
    """
    Create a fully populated manga for testing.

    Returns
    -------
    Manga
        A manga with source, thumbnail and latest chapter.
    """
    return Manga(
        id="42",
        title="One Piece",
        thumbnail_url="/api/v1/manga/42/thumbnail",
        source=Source(name="MangaDex", lang="en"),
        latest_chapter=Chapter(
            id="1001",
            version="1100",
            name="The Final Saga",
            published_at="1700000000000",
        ),
    )


@pytest.fixture
def suwayomi_config() -> SuwayomiConfig:
    """Create a Suwayomi config with credentials."""
    return SuwayomiConfig(
        http_url="http://suwayomi.test:4567",
        username="reader",
        password="secret",
    )


@pytest.fixture
def anonymous_config() -> SuwayomiConfig:
    """Create a Suwayomi config without credentials."""
    return SuwayomiConfig(http_url="http://suwayomi.test:4567")


@pytest.fixture
def minimal_telegram_config() -> TelegramConfig:
    """Create a minimal valid Telegram configuration."""
    return TelegramConfig(
        bot_token="1234567890:ABCdefGHIjklMNOpqrsTUVwxyz",
        chat_id="-1001234567890",
    )


@pytest.fixture
def minimal_config_dict() -> dict[str, Any]:
    """
    Create a minimal valid configuration dictionary.

    Returns
    -------
    dict
        Configuration dictionary that can be used to create AppConfig.
    """
    return {
        "telegram": {
            "bot_token": "1234567890:ABCdefGHIjklMNOpqrsTUVwxyz",
            "chat_id": "-1001234567890",
        },
    }


@pytest.fixture
def minimal_app_config(minimal_telegram_config: TelegramConfig, tmp_path: Path) -> AppConfig:
    """Create a minimal valid app configuration."""
    return AppConfig(
        telegram=minimal_telegram_config,
        storage={"state_file": str(tmp_path / "state.json")},
    )


@pytest.fixture
def credential_session(suwayomi_config: SuwayomiConfig) -> CredentialSession:
    """Return a credential session for the test server."""
    return CredentialSession(suwayomi_config, timeout=5)


@pytest.fixture
def mock_session() -> MagicMock:
    """
    Create a mock credential session.

    Returns
    -------
    MagicMock
        A CredentialSession stand-in with async refresh.
    """
    session = MagicMock()
    session.refresh = AsyncMock(return_value="token")
    session.invalidate = MagicMock()
    session.auth_headers = MagicMock(return_value={})
    return session


@pytest.fixture
def mock_notifier() -> MagicMock:
    """
    Create a mock notifier.

    Returns
    -------
    MagicMock
        A Notifier stand-in whose deliver succeeds.
    """
    notifier = MagicMock()
    notifier.deliver = AsyncMock(return_value=True)
    notifier.test_connection = AsyncMock(return_value=True)
    notifier.close = AsyncMock()
    return notifier


@pytest.fixture
def mock_telegram_bot() -> MagicMock:
    """
    Create a mock Telegram bot.

    Returns
    -------
    MagicMock
        A mock Bot instance with common methods mocked.
    """
    bot = MagicMock()
    bot.send_message = AsyncMock()
    bot.send_photo = AsyncMock()
    bot.get_me = AsyncMock(return_value=MagicMock(username="test_bot"))
    bot.shutdown = AsyncMock()
    return bot
