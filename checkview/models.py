"""Data records consumed by the tree renderer.

These are the already-extracted facts about one checkpoint. They are built
by the readers in checkview.metadata, checkview.archive and checkview.crit
and are never mutated afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class CheckpointTask:
    """One archive to render, and the directory it was extracted into."""

    output_dir: Path
    checkpoint_path: Path


@dataclass(frozen=True)
class ContainerFacts:
    """Display facts for one container."""

    name: str
    image: str
    id: str
    runtime: str
    created: str
    engine: str
    ip: str = ""
    mac: str = ""


@dataclass(frozen=True)
class ArchiveSizes:
    """Byte counts taken from the archive."""

    checkpoint_size: int
    root_fs_diff_tar_size: int = 0  # 0 means no rootfs diff in the archive


@dataclass(frozen=True)
class MountEntry:
    """A mount from the OCI runtime spec."""

    destination: str
    type: str
    source: str


@dataclass(frozen=True)
class DumpStats:
    """CRIU dump statistics (times in microseconds)."""

    freezing_time: int = 0
    frozen_time: int = 0
    memdump_time: int = 0
    memwrite_time: int = 0
    pages_scanned: int = 0
    pages_written: int = 0


@dataclass(frozen=True)
class ProcessNode:
    """A process in the checkpointed process hierarchy."""

    pid: int
    comm: str
    children: tuple[ProcessNode, ...] = field(default_factory=tuple)

    def walk(self):
        """Yield this node and its descendants depth-first."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))
