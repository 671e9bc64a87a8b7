"""Cross-process assignment lock backed by atomic directory creation."""

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from dispatch.utils.logging import get_logger

logger = get_logger(__name__)


class AssignmentLock:
    """Mutual exclusion for the driver-assignment step of one order.

    ``os.mkdir`` either creates the directory or fails because it exists,
    atomically, so two processes on the same host cannot both hold the lock.
    Contention is an expected outcome and is reported as ``None``.
    """

    def __init__(self, lock_dir: Path | str) -> None:
        self.lock_dir = Path(lock_dir)

    def path_for(self, order_id: int) -> Path:
        return self.lock_dir / f"assign-{order_id}"

    def acquire(self, order_id: int) -> Path | None:
        """Take the lock for an order; ``None`` if another holder has it."""
        lock_path = self.path_for(order_id)
        try:
            self.lock_dir.mkdir(parents=True, exist_ok=True)
            os.mkdir(lock_path)
        except FileExistsError:
            logger.info("assign_lock_busy", order_id=order_id)
            return None
        except OSError as e:
            logger.warning("assign_lock_error", order_id=order_id, error=str(e))
            return None

        logger.debug("assign_lock_acquired", order_id=order_id)
        return lock_path

    def release(self, lock_path: Path | None) -> None:
        if lock_path is None:
            return
        try:
            os.rmdir(lock_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("assign_lock_release_failed", path=str(lock_path), error=str(e))

    def is_locked(self, order_id: int) -> bool:
        return self.path_for(order_id).is_dir()

    @contextmanager
    def hold(self, order_id: int) -> Generator[Path | None, None, None]:
        """Hold the lock for the duration of the block.

        Yields ``None`` without waiting when the lock is taken.
        """
        lock_path = self.acquire(order_id)
        try:
            yield lock_path
        finally:
            self.release(lock_path)
