"""Checkpoint archive access.

A checkpoint archive is a tar file (optionally compressed) holding the
engine metadata files at its top level, the CRIU images under checkpoint/,
and an optional rootfs-diff.tar with the container's filesystem changes.
"""

from __future__ import annotations

import logging
import tarfile
import tempfile
from collections.abc import Iterable, Iterator
from pathlib import Path

from checkview.errors import ArchiveError
from checkview.metadata import (
    CONFIG_DUMP_FILE,
    NETWORK_STATUS_FILE,
    SPEC_DUMP_FILE,
    STATUS_FILE,
)
from checkview.models import ArchiveSizes, CheckpointTask

logger = logging.getLogger(__name__)

CHECKPOINT_DIRECTORY = "checkpoint"
ROOTFS_DIFF_TAR = "rootfs-diff.tar"

METADATA_FILES = (CONFIG_DUMP_FILE, SPEC_DUMP_FILE, NETWORK_STATUS_FILE, STATUS_FILE)


def _member_name(member: tarfile.TarInfo) -> str:
    """Archive member name without a leading './'."""
    name = member.name
    while name.startswith("./"):
        name = name[2:]
    return name


def _in_checkpoint_directory(name: str) -> bool:
    return name.startswith(f"{CHECKPOINT_DIRECTORY}/")


def _open(archive_path: Path) -> tarfile.TarFile:
    try:
        return tarfile.open(archive_path, "r:*")
    except (tarfile.TarError, OSError) as e:
        raise ArchiveError(f"failed to open checkpoint archive {archive_path}", archive_path) from e


def get_archive_sizes(archive_path: Path) -> ArchiveSizes:
    """Sum the sizes of the CRIU images and the rootfs diff in an archive.

    Raises:
        ArchiveError: The archive cannot be read.
    """
    checkpoint_size = 0
    root_fs_diff_tar_size = 0
    with _open(archive_path) as tar:
        try:
            for member in tar:
                if not member.isreg():
                    continue
                name = _member_name(member)
                if _in_checkpoint_directory(name):
                    checkpoint_size += member.size
                elif name == ROOTFS_DIFF_TAR:
                    root_fs_diff_tar_size += member.size
        except (tarfile.TarError, OSError) as e:
            raise ArchiveError(f"failed to read checkpoint archive {archive_path}", archive_path) from e

    return ArchiveSizes(
        checkpoint_size=checkpoint_size,
        root_fs_diff_tar_size=root_fs_diff_tar_size,
    )


def extract_checkpoint(archive_path: Path, dest: Path, include_images: bool = False) -> None:
    """Extract the metadata files (and optionally CRIU images) into dest.

    Args:
        archive_path: Checkpoint archive.
        dest: Target directory; must exist.
        include_images: Also extract checkpoint/ for crit.

    Raises:
        ArchiveError: The archive cannot be read or extracted.
    """
    with _open(archive_path) as tar:
        try:
            members = [
                m
                for m in tar.getmembers()
                if _member_name(m) in METADATA_FILES
                or (include_images and _in_checkpoint_directory(_member_name(m)))
            ]
            logger.debug(f"Extracting {len(members)} entries from {archive_path} to {dest}")
            tar.extractall(dest, members=members, filter="data")
        except (tarfile.TarError, OSError) as e:
            raise ArchiveError(f"failed to extract checkpoint archive {archive_path}", archive_path) from e


def iter_checkpoint_tasks(
    archive_paths: Iterable[Path],
    include_images: bool = False,
) -> Iterator[CheckpointTask]:
    """Extract each archive into a temporary directory and yield its task.

    Each directory is removed once the consumer moves on to the next task
    (or stops iterating).
    """
    for archive_path in archive_paths:
        archive_path = Path(archive_path)
        with tempfile.TemporaryDirectory(prefix="checkview-") as tmp:
            output_dir = Path(tmp)
            extract_checkpoint(archive_path, output_dir, include_images=include_images)
            yield CheckpointTask(output_dir=output_dir, checkpoint_path=archive_path)
