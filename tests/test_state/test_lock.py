"""Tests for the cross-process assignment lock."""

from pathlib import Path

from dispatch.state.lock import AssignmentLock


def test_acquire_is_exclusive(tmp_path: Path) -> None:
    lock = AssignmentLock(tmp_path / "locks")

    held = lock.acquire(7)

    assert held == tmp_path / "locks" / "assign-7"
    assert lock.is_locked(7)
    assert lock.acquire(7) is None


def test_release_allows_reacquire(tmp_path: Path) -> None:
    lock = AssignmentLock(tmp_path / "locks")

    lock.release(lock.acquire(7))

    assert not lock.is_locked(7)
    assert lock.acquire(7) is not None


def test_release_tolerates_missing_lock(tmp_path: Path) -> None:
    lock = AssignmentLock(tmp_path / "locks")

    lock.release(tmp_path / "locks" / "assign-99")
    lock.release(None)


def test_locks_are_per_order(tmp_path: Path) -> None:
    lock = AssignmentLock(tmp_path / "locks")

    assert lock.acquire(1) is not None
    assert lock.acquire(2) is not None


def test_hold_releases_on_exit(tmp_path: Path) -> None:
    lock = AssignmentLock(tmp_path / "locks")

    with lock.hold(3) as held:
        assert held is not None
        with lock.hold(3) as contended:
            assert contended is None
        assert lock.is_locked(3)

    assert not lock.is_locked(3)


def test_two_instances_share_the_directory(tmp_path: Path) -> None:
    """Separate holders, as in separate processes, see each other's locks."""
    first = AssignmentLock(tmp_path / "locks")
    second = AssignmentLock(tmp_path / "locks")

    assert first.acquire(4) is not None
    assert second.acquire(4) is None
