"""Tests for checkview.archive module."""

import io
import json
import tarfile
from pathlib import Path

import pytest

from checkview.archive import extract_checkpoint, get_archive_sizes, iter_checkpoint_tasks
from checkview.errors import ArchiveError


def add_file(tar: tarfile.TarFile, name: str, content: bytes) -> None:
    info = tarfile.TarInfo(name)
    info.size = len(content)
    tar.addfile(info, io.BytesIO(content))


@pytest.fixture
def checkpoint_archive(tmp_path: Path) -> Path:
    """A small gzip checkpoint archive."""
    path = tmp_path / "checkpoint.tar.gz"
    with tarfile.open(path, "w:gz") as tar:
        add_file(tar, "config.dump", json.dumps({"id": "abc123"}).encode())
        add_file(tar, "spec.dump", json.dumps({"mounts": []}).encode())
        add_file(tar, "checkpoint/pstree.img", b"x" * 1000)
        add_file(tar, "checkpoint/pages-1.img", b"y" * 2000)
        add_file(tar, "rootfs-diff.tar", b"z" * 512)
        add_file(tar, "bind.mounts", b"[]")
    return path


class TestGetArchiveSizes:
    """Tests for get_archive_sizes()."""

    def test_sums_images_and_rootfs_diff(self, checkpoint_archive: Path):
        """Only checkpoint/ files and rootfs-diff.tar are counted."""
        sizes = get_archive_sizes(checkpoint_archive)

        assert sizes.checkpoint_size == 3000
        assert sizes.root_fs_diff_tar_size == 512

    def test_no_rootfs_diff(self, tmp_path: Path):
        """An archive without rootfs-diff.tar reports zero for it."""
        path = tmp_path / "plain.tar"
        with tarfile.open(path, "w") as tar:
            add_file(tar, "./checkpoint/core-1.img", b"a" * 10)

        sizes = get_archive_sizes(path)

        assert sizes.checkpoint_size == 10
        assert sizes.root_fs_diff_tar_size == 0

    def test_unreadable_archive_raises(self, tmp_path: Path):
        """A non-tar file is an ArchiveError."""
        path = tmp_path / "broken.tar"
        path.write_bytes(b"definitely not a tar archive")

        with pytest.raises(ArchiveError):
            get_archive_sizes(path)


class TestExtractCheckpoint:
    """Tests for extract_checkpoint()."""

    def test_extracts_metadata_only(self, checkpoint_archive: Path, tmp_path: Path):
        """Without images only metadata files are extracted."""
        dest = tmp_path / "out"
        dest.mkdir()

        extract_checkpoint(checkpoint_archive, dest)

        assert (dest / "config.dump").exists()
        assert (dest / "spec.dump").exists()
        assert not (dest / "checkpoint").exists()
        assert not (dest / "rootfs-diff.tar").exists()

    def test_extracts_images_when_requested(self, checkpoint_archive: Path, tmp_path: Path):
        """CRIU images are extracted for crit."""
        dest = tmp_path / "out"
        dest.mkdir()

        extract_checkpoint(checkpoint_archive, dest, include_images=True)

        assert (dest / "checkpoint" / "pstree.img").exists()
        assert not (dest / "bind.mounts").exists()


class TestIterCheckpointTasks:
    """Tests for iter_checkpoint_tasks()."""

    def test_yields_task_per_archive(self, checkpoint_archive: Path):
        """Each task points at its archive and an extracted directory."""
        tasks = iter_checkpoint_tasks([checkpoint_archive])

        task = next(tasks)
        assert task.checkpoint_path == checkpoint_archive
        assert (task.output_dir / "config.dump").exists()

        output_dir = task.output_dir
        with pytest.raises(StopIteration):
            next(tasks)
        assert not output_dir.exists()

    def test_close_removes_directory(self, checkpoint_archive: Path):
        """Stopping early cleans up the current directory."""
        tasks = iter_checkpoint_tasks([checkpoint_archive, checkpoint_archive])
        task = next(tasks)

        tasks.close()

        assert not task.output_dir.exists()
