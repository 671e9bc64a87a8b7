"""Atomic JSON snapshot persistence for the entity registry."""

import asyncio
import json
import os
import shutil
import time
from enum import Enum
from pathlib import Path

from pydantic import ValidationError

from dispatch.state.registry import DurableDocument, EntityRegistry
from dispatch.utils.logging import get_logger

logger = get_logger(__name__)


class LoadSource(str, Enum):
    """Where the in-memory state came from at startup."""

    EMPTY = "empty"
    PRIMARY = "primary"
    BACKUP = "backup"
    RESET = "reset"


class PersistenceStore:
    """Durable copy of the registry as one document.

    Writes are queued on a single-writer chain so they never interleave.
    Each write goes to ``<file>.tmp``, the previous good file is copied to
    ``<file>.bak`` and the temp file is renamed over the primary.
    """

    def __init__(self, registry: EntityRegistry, path: Path | str) -> None:
        self.registry = registry
        self.path = Path(path)
        self.tmp_path = self.path.with_name(self.path.name + ".tmp")
        self.backup_path = self.path.with_name(self.path.name + ".bak")
        self._tail: asyncio.Future | None = None
        # False while the primary on disk is known to be unreadable
        self._primary_good = True
        self.writes_completed = 0

    def save(self) -> asyncio.Future | None:
        """Snapshot the registry now and queue the write.

        Returns the queued write, or ``None`` when called outside an event
        loop, in which case the write happens immediately.
        """
        data = json.dumps(self.registry.to_document(), indent=2, ensure_ascii=False)

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            self._write(data)
            return None

        previous = self._tail
        self._tail = asyncio.ensure_future(self._write_after(previous, data))
        return self._tail

    async def flush(self) -> None:
        """Wait until every queued write has finished."""
        while self._tail is not None and not self._tail.done():
            await self._tail

    async def _write_after(self, previous: asyncio.Future | None, data: str) -> None:
        if previous is not None:
            try:
                await previous
            except Exception as e:
                logger.error("data_save_queue_failed", error=str(e))
        await asyncio.to_thread(self._write, data)

    def _write(self, data: str) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.tmp_path, "w", encoding="utf-8") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())

            if self._primary_good and self.path.exists():
                try:
                    shutil.copyfile(self.path, self.backup_path)
                except OSError as e:
                    logger.warning("data_backup_failed", path=str(self.backup_path), error=str(e))

            os.replace(self.tmp_path, self.path)
            self._primary_good = True
            self.writes_completed += 1
            logger.debug("data_saved", path=str(self.path), bytes=len(data))

        except OSError as e:
            logger.error("data_save_failed", path=str(self.path), error=str(e))
            try:
                self.tmp_path.unlink(missing_ok=True)
            except OSError:
                pass

    def _read_document(self, path: Path) -> DurableDocument:
        raw = path.read_text(encoding="utf-8")
        return DurableDocument.model_validate_json(raw)

    def load(self) -> LoadSource:
        """Rebuild the registry from disk. Never raises."""
        if not self.path.exists():
            if not self.backup_path.exists():
                logger.info("data_file_missing", path=str(self.path))
                return LoadSource.EMPTY
            self._primary_good = False
            return self._load_backup(error="primary missing")

        try:
            document = self._read_document(self.path)
        except (OSError, ValueError, ValidationError) as e:
            self._primary_good = False
            return self._load_backup(error=str(e))

        self.registry.replace_from(document)
        self._primary_good = True
        logger.info(
            "data_loaded",
            path=str(self.path),
            orders=len(self.registry.orders),
            sessions=len(self.registry.sessions),
        )
        return LoadSource.PRIMARY

    def _load_backup(self, error: str) -> LoadSource:
        try:
            document = self._read_document(self.backup_path)
        except (OSError, ValueError, ValidationError) as e:
            self._dump_corrupt()
            self.registry.clear()
            logger.error(
                "data_load_failed",
                path=str(self.path),
                error=error,
                backup_error=str(e),
            )
            return LoadSource.RESET

        self.registry.replace_from(document)
        logger.warning(
            "data_load_fallback_backup",
            path=str(self.path),
            backup=str(self.backup_path),
            error=error,
        )
        return LoadSource.BACKUP

    def _dump_corrupt(self) -> Path | None:
        """Keep a timestamped copy of the unreadable primary for diagnosis."""
        if not self.path.exists():
            return None
        corrupt_path = self.path.with_name(
            f"{self.path.name}.corrupt-{int(time.time() * 1000)}.json"
        )
        try:
            shutil.copyfile(self.path, corrupt_path)
        except OSError as e:
            logger.error("data_corrupt_dump_failed", error=str(e))
            return None
        logger.error("data_corrupt_dumped", path=str(corrupt_path))
        return corrupt_path
