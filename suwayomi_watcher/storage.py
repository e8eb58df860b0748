"""
JSON file storage for the last-seen chapter ledger.

Persists the ledger between restarts so chapters that were already
notified are not announced again.
"""

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """Raised when the state file cannot be read or written."""

    pass


class StateDocument(BaseModel):
    """
    On-disk layout of the state file.

    Attributes
    ----------
    last_seen : dict[str, str]
        Manga id -> last seen chapter version. Serialized as ``lastSeen``.
    """

    model_config = ConfigDict(populate_by_name=True)

    last_seen: dict[str, str] = Field(default_factory=dict, alias="lastSeen")


class StateStore:
    """
    Async JSON storage for the ledger.

    File I/O runs in a worker thread so the event loop never blocks on disk.
    """

    def __init__(self, state_path: str | Path):
        """
        Initialize storage with the state file path.

        Parameters
        ----------
        state_path : str | Path
            Path to the JSON state file.
        """
        self.state_path = Path(state_path)

    async def load(self) -> dict[str, str]:
        """
        Read the ledger from disk.

        Returns
        -------
        dict[str, str]
            The stored mapping, empty if the file does not exist.

        Raises
        ------
        PersistenceError
            If the file exists but cannot be read or parsed.
        """
        return await asyncio.to_thread(self._read)

    async def save(self, last_seen: dict[str, str]) -> None:
        """
        Write the ledger to disk, replacing the previous file atomically.

        Parameters
        ----------
        last_seen : dict[str, str]
            Mapping to persist.

        Raises
        ------
        PersistenceError
            If the file cannot be written.
        """
        await asyncio.to_thread(self._write, dict(last_seen))

    def _read(self) -> dict[str, str]:
        if not self.state_path.exists():
            logger.debug("No state file at %s, starting empty", self.state_path)
            return {}

        try:
            raw = self.state_path.read_text(encoding="utf-8")
            document = StateDocument.model_validate(json.loads(raw))
        except (OSError, ValueError, ValidationError) as e:
            raise PersistenceError(f"Cannot read state file {self.state_path}: {e}") from e

        return document.last_seen

    def _write(self, last_seen: dict[str, str]) -> None:
        document = StateDocument(last_seen=last_seen)
        payload = json.dumps(document.model_dump(by_alias=True), indent=2)

        try:
            self.state_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.state_path.parent,
                prefix=f".{self.state_path.name}.",
                suffix=".tmp",
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                os.replace(tmp_name, self.state_path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise PersistenceError(f"Cannot write state file {self.state_path}: {e}") from e

        logger.debug("Saved %d ledger entries to %s", len(last_seen), self.state_path)
