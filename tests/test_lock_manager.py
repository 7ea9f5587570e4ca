"""
Tests for the lock manager: exclusive acquire, release, stale reclaim.
"""

import json
import os
import time
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from conftest import DEAD_PID
from variantctl.core.errors import ErrorKind, LockHeldError, StateDirError
from variantctl.core.models.install import LockRecord
from variantctl.core.reliability.lock_manager import (
    LOCK_FILE,
    MAX_ACQUIRE_ATTEMPTS,
    LockManager,
    pid_alive,
)

OTHER_PID = os.getpid() + 1


def _lock_path(tmp_path: Path) -> Path:
    return tmp_path / ".variantctl" / LOCK_FILE


def _write_record(path: Path, record: LockRecord) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(record.model_dump(mode="json")))


class TestAcquireRelease:
    def test_acquire_writes_record(self, tmp_path: Path):
        path = _lock_path(tmp_path)
        mgr = LockManager(path)
        record = mgr.acquire("install")

        assert path.is_file()
        data = json.loads(path.read_text())
        assert data["pid"] == os.getpid()
        assert data["operation"] == "install"
        assert data["started_at"] == record.started_at

    def test_no_temp_files_left(self, tmp_path: Path):
        path = _lock_path(tmp_path)
        LockManager(path).acquire("install")
        assert list(path.parent.glob(".lock_*.tmp")) == []

    def test_second_process_gets_lock_held(self, tmp_path: Path):
        path = _lock_path(tmp_path)
        first = LockManager(path)
        second = LockManager(path, pid=OTHER_PID)
        first.acquire("upgrade")

        with pytest.raises(LockHeldError) as exc_info:
            second.acquire("install")
        err = exc_info.value
        assert err.kind == ErrorKind.LOCK_HELD
        assert str(os.getpid()) in err.message
        assert "upgrade" in err.message
        assert err.remediation

    def test_acquire_after_release(self, tmp_path: Path):
        path = _lock_path(tmp_path)
        first = LockManager(path)
        second = LockManager(path, pid=OTHER_PID)
        first.acquire("install")
        first.release()

        record = second.acquire("install")
        assert record.pid == OTHER_PID
        assert second.is_own_lock()
        assert not first.is_own_lock()

    def test_release_when_absent_is_silent(self, tmp_path: Path):
        LockManager(_lock_path(tmp_path)).release()

    def test_held_releases_on_error(self, tmp_path: Path):
        path = _lock_path(tmp_path)
        mgr = LockManager(path)
        with pytest.raises(RuntimeError):
            with mgr.held("install"):
                assert path.is_file()
                raise RuntimeError("boom")
        assert not path.exists()

    def test_held_for(self, tmp_path: Path):
        mgr = LockManager(_lock_path(tmp_path))
        assert mgr.held_for() == 0.0
        with mgr.held("install"):
            assert mgr.held_for() >= 0.0
        assert mgr.held_for() == 0.0

    def test_state_dir_is_a_file(self, tmp_path: Path):
        path = _lock_path(tmp_path)
        path.parent.write_text("not a directory")

        with pytest.raises(StateDirError) as exc:
            LockManager(path).acquire("install")
        assert exc.value.kind == ErrorKind.STATE_DIR_UNAVAILABLE
        assert exc.value.remediation
        assert path.parent.is_file()


class TestStaleLocks:
    def test_pid_alive(self):
        assert pid_alive(os.getpid())
        assert not pid_alive(DEAD_PID)

    def test_dead_owner_reclaimed(self, tmp_path: Path):
        path = _lock_path(tmp_path)
        _write_record(path, LockRecord(pid=DEAD_PID, operation="install"))

        record = LockManager(path).acquire("upgrade")
        assert record.pid == os.getpid()
        assert json.loads(path.read_text())["operation"] == "upgrade"
        assert list(path.parent.glob("*.stale")) == []

    def test_old_lock_reclaimed(self, tmp_path: Path):
        path = _lock_path(tmp_path)
        started = datetime.now(UTC) - timedelta(minutes=11)
        _write_record(path, LockRecord(pid=os.getpid(), started_at=started.isoformat(), operation="install"))

        record = LockManager(path, pid=OTHER_PID).acquire("install")
        assert record.pid == OTHER_PID

    def test_recent_live_lock_not_reclaimed(self, tmp_path: Path):
        path = _lock_path(tmp_path)
        started = datetime.now(UTC) - timedelta(minutes=9)
        _write_record(path, LockRecord(pid=os.getpid(), started_at=started.isoformat(), operation="install"))

        with pytest.raises(LockHeldError):
            LockManager(path, pid=OTHER_PID).acquire("install")

    def test_corrupt_old_lock_reclaimed(self, tmp_path: Path):
        path = _lock_path(tmp_path)
        path.parent.mkdir(parents=True)
        path.write_text("garbage")
        old = time.time() - 60
        os.utime(path, (old, old))

        record = LockManager(path).acquire("install")
        assert record.pid == os.getpid()

    def test_corrupt_fresh_lock_treated_as_held(self, tmp_path: Path):
        path = _lock_path(tmp_path)
        path.parent.mkdir(parents=True)
        path.write_text("")

        with pytest.raises(LockHeldError, match="creating the lock"):
            LockManager(path).acquire("install")

    def test_reclaim_keeps_fresh_lock(self, tmp_path: Path):
        """A lock replaced between staleness check and reclaim survives."""
        path = _lock_path(tmp_path)
        stale = LockRecord(pid=DEAD_PID, operation="install")
        fresh = LockRecord(pid=os.getpid(), operation="upgrade")
        _write_record(path, fresh)

        LockManager(path, pid=OTHER_PID)._reclaim(stale)

        assert path.is_file()
        assert LockRecord.model_validate_json(path.read_text()) == fresh
        assert list(path.parent.glob("*.stale")) == []

    def test_gives_up_after_bounded_reclaims(self, tmp_path: Path, monkeypatch):
        path = _lock_path(tmp_path)
        _write_record(path, LockRecord(pid=DEAD_PID, operation="install"))
        reclaims = []

        def lose_race(self, stale):
            # Another process reclaims first and dies holding a new lock
            reclaims.append(stale)
            path.unlink()
            _write_record(path, LockRecord(pid=DEAD_PID, operation="upgrade"))

        monkeypatch.setattr(LockManager, "_reclaim", lose_race)

        with pytest.raises(LockHeldError, match=f"after {MAX_ACQUIRE_ATTEMPTS} attempts"):
            LockManager(path).acquire("install")
        assert len(reclaims) == MAX_ACQUIRE_ATTEMPTS
        assert json.loads(path.read_text())["pid"] == DEAD_PID


class TestInspect:
    def test_unlocked(self, tmp_path: Path):
        info = LockManager(_lock_path(tmp_path)).inspect()
        assert info.locked is False
        assert info.stale is False
        assert info.record is None

    def test_locked(self, tmp_path: Path):
        path = _lock_path(tmp_path)
        mgr = LockManager(path)
        mgr.acquire("install")
        info = LockManager(path, pid=OTHER_PID).inspect()
        assert info.locked is True
        assert info.record is not None
        assert info.record.pid == os.getpid()
        assert info.to_dict()["record"]["operation"] == "install"

    def test_stale(self, tmp_path: Path):
        path = _lock_path(tmp_path)
        _write_record(path, LockRecord(pid=DEAD_PID, operation="upgrade"))
        info = LockManager(path).inspect()
        assert info.locked is False
        assert info.stale is True
        assert str(DEAD_PID) in info.reason
        assert path.is_file()  # inspect never modifies

    def test_custom_stale_after(self, tmp_path: Path):
        path = _lock_path(tmp_path)
        started = datetime.now(UTC) - timedelta(seconds=30)
        _write_record(path, LockRecord(pid=os.getpid(), started_at=started.isoformat(), operation="install"))
        assert LockManager(path, stale_after=10).inspect().stale is True
        assert LockManager(path).is_locked() is True
