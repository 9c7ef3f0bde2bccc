"""
Unit tests for checkpoint creation.
"""

import pytest

from zen_checkpoints.checkpoint import (
    CheckpointCreator,
    CheckpointKind,
    ChangeStatus,
    TreeScanner,
)
from zen_checkpoints.utils.errors import StorageError


@pytest.fixture
def creator(project_dir, store, scanner, hasher):
    return CheckpointCreator(project_dir, store, scanner, hasher=hasher, max_concurrent_io=4)


class TestFullCheckpoint:

    @pytest.mark.asyncio
    async def test_bootstrap_stores_everything(self, creator, project_dir, storage_dir, make_files, hasher):
        make_files(project_dir, {"a.txt": "one\ntwo", "src/b.py": "print(1)\n"})

        checkpoint = await creator.create(CheckpointKind.FULL, message_id="msg-1")

        assert checkpoint.kind is CheckpointKind.FULL
        assert checkpoint.parent_id is None
        assert checkpoint.message_id == "msg-1"
        assert checkpoint.stats is None
        assert checkpoint.changes is None
        assert set(checkpoint.files) == {"a.txt", "src/b.py"}
        assert checkpoint.files["a.txt"].hash == hasher.hash(b"one\ntwo")
        assert checkpoint.files["a.txt"].size == 7
        assert checkpoint.total_size == 7 + 9
        assert checkpoint.storage_size == checkpoint.total_size

        directory = storage_dir / checkpoint.directory
        assert checkpoint.directory == f"{checkpoint.timestamp}_full_{checkpoint.id}"
        assert (directory / "manifest.json").is_file()
        assert (directory / "src" / "b.py").read_text() == "print(1)\n"

    @pytest.mark.asyncio
    async def test_full_with_parent_stores_unchanged_files_too(self, creator, project_dir, storage_dir, make_files):
        make_files(project_dir, {"a.txt": "a", "b.txt": "b"})
        first = await creator.create("full")

        make_files(project_dir, {"b.txt": "b2"})
        second = await creator.create("full", parent_id=first.id)

        assert second.parent_id == first.id
        assert second.stats.to_dict() == {"added": 0, "modified": 1, "deleted": 0}
        assert (storage_dir / second.directory / "a.txt").read_text() == "a"
        assert second.storage_size == 1 + 2

    @pytest.mark.asyncio
    async def test_empty_project(self, creator):
        checkpoint = await creator.create("full")

        assert checkpoint.files == {}
        assert checkpoint.total_size == 0
        assert checkpoint.storage_size == 0


class TestIncrementalCheckpoint:

    @pytest.mark.asyncio
    async def test_without_any_parent_is_promoted_to_full(self, creator, project_dir, make_files):
        make_files(project_dir, {"a.txt": "a"})

        checkpoint = await creator.create("incremental")

        assert checkpoint.kind is CheckpointKind.FULL
        assert checkpoint.parent_id is None
        assert checkpoint.stats is None
        # the directory name keeps the requested kind
        assert "_incremental_" in checkpoint.directory

    @pytest.mark.asyncio
    async def test_stores_only_changed_files(self, creator, project_dir, storage_dir, make_files):
        make_files(project_dir, {"same.txt": "same", "edit.txt": "v1", "gone.txt": "x\ny"})
        base = await creator.create("full")

        make_files(project_dir, {"edit.txt": "v2", "new.txt": "n1\nn2\nn3"})
        (project_dir / "gone.txt").unlink()
        checkpoint = await creator.create("incremental")

        assert checkpoint.kind is CheckpointKind.INCREMENTAL
        assert checkpoint.parent_id == base.id
        assert set(checkpoint.files) == {"same.txt", "edit.txt", "new.txt"}
        assert checkpoint.stats.to_dict() == {"added": 1, "modified": 1, "deleted": 1}

        stored = storage_dir / checkpoint.directory
        assert not (stored / "same.txt").exists()
        assert (stored / "edit.txt").read_text() == "v2"
        assert (stored / "new.txt").exists()
        assert checkpoint.storage_size == len("v2") + len("n1\nn2\nn3")

        changes = checkpoint.changes
        assert changes["new.txt"].status is ChangeStatus.ADDED
        assert (changes["new.txt"].additions, changes["new.txt"].deletions) == (3, 0)
        assert changes["edit.txt"].status is ChangeStatus.MODIFIED
        assert (changes["edit.txt"].additions, changes["edit.txt"].deletions) == (1, 1)
        assert changes["gone.txt"].status is ChangeStatus.DELETED
        assert (changes["gone.txt"].additions, changes["gone.txt"].deletions) == (0, 2)
        assert "same.txt" not in changes

    @pytest.mark.asyncio
    async def test_no_changes_returns_none_without_writing(self, creator, project_dir, store, make_files):
        make_files(project_dir, {"a.txt": "a"})
        await creator.create("full")

        assert await creator.create("incremental") is None
        assert len(await store.list_checkpoint_directories()) == 1

    @pytest.mark.asyncio
    async def test_parent_discovery_skips_unreadable_manifests(self, creator, project_dir, storage_dir, make_files):
        make_files(project_dir, {"a.txt": "a"})
        base = await creator.create("full")

        # newer directories from interrupted or damaged runs
        (storage_dir / f"{base.timestamp + 5}_incremental_orphan").mkdir()
        corrupt = storage_dir / f"{base.timestamp + 9}_incremental_corrupt"
        corrupt.mkdir()
        (corrupt / "manifest.json").write_text("{")

        make_files(project_dir, {"a.txt": "b"})
        checkpoint = await creator.create("incremental")

        assert checkpoint.parent_id == base.id
        assert checkpoint.timestamp > base.timestamp + 9

    @pytest.mark.asyncio
    async def test_discovery_picks_most_recent(self, creator, project_dir, make_files):
        make_files(project_dir, {"a.txt": "1"})
        first = await creator.create("full")
        make_files(project_dir, {"a.txt": "2"})
        second = await creator.create("incremental")
        make_files(project_dir, {"a.txt": "3"})
        third = await creator.create("incremental")

        assert second.parent_id == first.id
        assert third.parent_id == second.id
        assert first.timestamp < second.timestamp < third.timestamp

    @pytest.mark.asyncio
    async def test_unknown_parent_is_treated_as_missing(self, creator, project_dir, make_files):
        make_files(project_dir, {"a.txt": "a"})
        await creator.create("full")

        checkpoint = await creator.create("incremental", parent_id="does-not-exist")

        assert checkpoint.parent_id is None
        assert checkpoint.kind is CheckpointKind.FULL
        assert checkpoint.stats is None

    @pytest.mark.asyncio
    async def test_modified_diff_uses_direct_parent_blob_only(self, creator, project_dir, make_files):
        make_files(project_dir, {"a.txt": "l1\nl2", "b.txt": "b"})
        await creator.create("full")
        make_files(project_dir, {"b.txt": "b2"})
        await creator.create("incremental")

        # a.txt lives only in the full checkpoint, not in the direct parent
        make_files(project_dir, {"a.txt": "l1\nl2\nl3"})
        checkpoint = await creator.create("incremental")

        change = checkpoint.changes["a.txt"]
        assert change.status is ChangeStatus.MODIFIED
        assert (change.additions, change.deletions) == (0, 0)

    @pytest.mark.asyncio
    async def test_deleted_line_count_walks_the_chain(self, creator, project_dir, make_files):
        make_files(project_dir, {"a.txt": "1\n2\n3", "b.txt": "b"})
        await creator.create("full")
        make_files(project_dir, {"b.txt": "b2"})
        await creator.create("incremental")

        (project_dir / "a.txt").unlink()
        checkpoint = await creator.create("incremental")

        change = checkpoint.changes["a.txt"]
        assert change.status is ChangeStatus.DELETED
        assert (change.additions, change.deletions) == (0, 3)

    @pytest.mark.asyncio
    async def test_missing_parent_blob_gives_zero_diff(self, creator, project_dir, storage_dir, make_files):
        make_files(project_dir, {"a.txt": "old"})
        base = await creator.create("full")
        (storage_dir / base.directory / "a.txt").unlink()

        make_files(project_dir, {"a.txt": "new"})
        checkpoint = await creator.create("incremental")

        assert checkpoint.stats.modified == 1
        change = checkpoint.changes["a.txt"]
        assert (change.additions, change.deletions) == (0, 0)


class TestCreatorFailures:

    @pytest.mark.asyncio
    async def test_missing_project_root_is_fatal(self, tmp_path, store, scanner):
        creator = CheckpointCreator(tmp_path / "nope", store, scanner)

        with pytest.raises(StorageError):
            await creator.create("full")

    @pytest.mark.asyncio
    async def test_invalid_kind(self, creator):
        with pytest.raises(ValueError):
            await creator.create("partial")

    @pytest.mark.asyncio
    async def test_ignored_files_are_not_tracked(self, project_dir, store, make_files):
        from zen_checkpoints.checkpoint import IgnoreRules

        make_files(project_dir, {"keep.txt": "k", "build/out.js": "o", "x.log": "l"})
        creator = CheckpointCreator(project_dir, store, TreeScanner(IgnoreRules.from_text("*.log")))

        checkpoint = await creator.create("full")

        assert set(checkpoint.files) == {"keep.txt"}
