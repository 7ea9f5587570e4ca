"""
Tests for the rollback engine: tracked writes, removals, commit and
best-effort rollback.
"""

import os
from pathlib import Path

import pytest

from conftest import snapshot
from variantctl.core.reliability import rollback as rb
from variantctl.core.reliability.rollback import (
    begin_transaction,
    commit,
    rollback,
    track_removal,
    track_write,
)


@pytest.fixture
def state_dir(tmp_path: Path) -> Path:
    d = tmp_path / ".variantctl"
    d.mkdir()
    return d


class TestTrackWrite:
    def test_new_file_and_parents_removed(self, tmp_path: Path, state_dir: Path):
        tx = begin_transaction(state_dir)
        path = tmp_path / "a" / "b" / "file.txt"
        track_write(tx, path)
        path.parent.mkdir(parents=True)
        path.write_text("new")

        assert tx.created == [tmp_path / "a", tmp_path / "a" / "b", path]

        result = rollback(tx)
        assert result.succeeded
        assert not (tmp_path / "a").exists()
        assert str(path) in result.removed

    def test_existing_file_restored(self, tmp_path: Path, state_dir: Path):
        path = tmp_path / "config.yml"
        path.write_bytes(b"original: true\n")

        tx = begin_transaction(state_dir)
        track_write(tx, path)
        path.write_bytes(b"overwritten\n")

        result = rollback(tx)
        assert path.read_bytes() == b"original: true\n"
        assert result.restored == [str(path)]

    def test_tracking_twice_keeps_first_backup(self, tmp_path: Path, state_dir: Path):
        path = tmp_path / "data.txt"
        path.write_text("v1")
        tx = begin_transaction(state_dir)
        track_write(tx, path)
        path.write_text("v2")
        track_write(tx, path)
        path.write_text("v3")

        rollback(tx)
        assert path.read_text() == "v1"

    def test_commit_discards_backups(self, tmp_path: Path, state_dir: Path):
        path = tmp_path / "data.txt"
        path.write_text("v1")
        tx = begin_transaction(state_dir)
        track_write(tx, path)
        path.write_text("v2")
        assert tx.backup_dir.is_dir()

        commit(tx)
        assert path.read_text() == "v2"
        assert not (state_dir / rb.BACKUPS_DIR).exists()

    def test_many_files_share_created_parent(self, tmp_path: Path, state_dir: Path):
        tx = begin_transaction(state_dir)
        out = tmp_path / "dist"
        files = [out / f"chunk-{i:04d}.js" for i in range(2000)]
        for path in files:
            track_write(tx, path)
        for path in files:
            track_write(tx, path)

        assert tx.created == [out, *files]
        assert all(tx.is_tracked(p) for p in files)
        assert not tx.is_tracked(tmp_path / "other.js")

    def test_closed_transaction_rejected(self, state_dir: Path):
        tx = begin_transaction(state_dir)
        commit(tx)
        with pytest.raises(RuntimeError):
            commit(tx)
        with pytest.raises(RuntimeError):
            rollback(tx)


class TestTrackRemoval:
    def test_tree_moved_aside_and_restored(self, tmp_path: Path, state_dir: Path):
        vendor = tmp_path / "e2e" / "vendor"
        (vendor / "core" / "dist").mkdir(parents=True)
        (vendor / "core" / "dist" / "index.js").write_text("old")
        (vendor / "vendor.config.yml").write_text("user: config\n")
        before = snapshot(tmp_path / "e2e")

        tx = begin_transaction(state_dir)
        track_removal(tx, vendor)
        assert not vendor.exists()

        # Recreate with new content, tracked
        new_file = vendor / "core" / "dist" / "index.js"
        track_write(tx, new_file)
        new_file.parent.mkdir(parents=True)
        new_file.write_text("new")

        result = rollback(tx)
        assert result.succeeded
        assert snapshot(tmp_path / "e2e") == before
        assert not (state_dir / rb.BACKUPS_DIR).exists()

    def test_missing_path_ignored(self, tmp_path: Path, state_dir: Path):
        tx = begin_transaction(state_dir)
        track_removal(tx, tmp_path / "nothing-here")
        assert tx.backups == []


class TestRollbackFailures:
    def test_failed_restore_collected(self, tmp_path: Path, state_dir: Path, monkeypatch):
        a = tmp_path / "a.txt"
        b = tmp_path / "b.txt"
        a.write_text("a1")
        b.write_text("b1")

        tx = begin_transaction(state_dir)
        track_write(tx, a)
        track_write(tx, b)
        a.write_text("a2")
        b.write_text("b2")

        real_replace = os.replace

        def failing_replace(src, dst):
            if Path(dst) == a:
                raise OSError("device busy")
            return real_replace(src, dst)

        monkeypatch.setattr(rb.os, "replace", failing_replace)
        result = rollback(tx)

        assert not result.succeeded
        assert b.read_text() == "b1"  # later entries still restored
        assert result.restored == [str(b)]
        assert len(result.failed) == 1
        failure = result.failed[0]
        assert failure.action == "restore"
        assert "device busy" in failure.error

        steps = result.manual_steps()
        assert steps == [f"Move {failure.backup} back to {a}"]
        assert Path(failure.backup).is_file()  # kept for manual recovery
        assert result.to_dict()["manual_steps"] == steps

    def _created_tree(self, tmp_path: Path, state_dir: Path):
        nested = tmp_path / "newdir" / "x.txt"
        top = tmp_path / "top.txt"
        tx = begin_transaction(state_dir)
        track_write(tx, nested)
        track_write(tx, top)
        nested.parent.mkdir()
        nested.write_text("x")
        top.write_text("top")
        return tx, nested, top

    def test_failed_unlink_collected(self, tmp_path: Path, state_dir: Path, monkeypatch):
        tx, nested, top = self._created_tree(tmp_path, state_dir)
        real_unlink = Path.unlink

        def failing_unlink(self, missing_ok=False):
            if self == top:
                raise PermissionError(13, "Permission denied")
            return real_unlink(self, missing_ok=missing_ok)

        monkeypatch.setattr(Path, "unlink", failing_unlink)
        result = rollback(tx)

        assert not result.succeeded
        assert [(f.path, f.action) for f in result.failed] == [(str(top), "remove")]
        assert "Permission denied" in result.failed[0].error
        assert result.manual_steps() == [f"Delete {top}"]
        assert result.removed == [str(nested), str(nested.parent)]
        assert not nested.parent.exists()
        assert top.exists()

    def test_failed_rmtree_collected(self, tmp_path: Path, state_dir: Path, monkeypatch):
        tx, nested, top = self._created_tree(tmp_path, state_dir)

        def failing_rmtree(path, *args, **kwargs):
            raise OSError(16, "Device or resource busy")

        monkeypatch.setattr(rb.shutil, "rmtree", failing_rmtree)
        result = rollback(tx)

        assert result.removed == [str(top), str(nested)]
        assert [(f.path, f.action) for f in result.failed] == [(str(nested.parent), "remove")]
        assert result.manual_steps() == [f"Delete {nested.parent}"]
        assert nested.parent.is_dir()
