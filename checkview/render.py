"""Checkpoint tree composition.

Builds one DisplayTree per checkpoint from the facts gathered by the
metadata, archive and crit readers:

    <container name>
    ├── Image / ID / Runtime / Created / Engine
    ├── IP / MAC                      (when known)
    ├── Checkpoint Size
    ├── Root Fs Diff Size             (when the archive has a rootfs diff)
    ├── Overview of Mounts            (TreeOptions.mounts)
    ├── CRIU dump statistics          (TreeOptions.stats)
    └── Process tree                  (TreeOptions.ps_tree)

The builder and appenders are pure functions over their inputs; only
render_tree_view() talks to the collaborators and writes output.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from rich.console import Console

from checkview import archive, crit, metadata
from checkview.config import DEFAULT_MAX_DEPTH, TreeOptions
from checkview.errors import CheckviewError, ProcessTreeDepthError
from checkview.models import (
    ArchiveSizes,
    CheckpointTask,
    ContainerFacts,
    DumpStats,
    MountEntry,
    ProcessNode,
)
from checkview.tree import DisplayTree, new_tree

logger = logging.getLogger(__name__)

DEFAULT_ROOT_LABEL = "Container"
BYTE_UNITS = ("KiB", "MiB", "GiB", "TiB", "PiB", "EiB")


def format_bytes(size: int) -> str:
    """Format a byte count with binary units, e.g. 1048576 -> '1.00MiB'."""
    if size < 1024:
        return f"{size}B"
    value = size / 1024
    unit = 0
    # Unit is picked after rounding: 1048575 -> 1.00MiB
    while round(value, 2) >= 1024 and unit < len(BYTE_UNITS) - 1:
        value /= 1024
        unit += 1
    return f"{value:.2f}{BYTE_UNITS[unit]}"


# =============================================================================
# Tree Builder
# =============================================================================


def build_tree(facts: ContainerFacts, sizes: ArchiveSizes) -> DisplayTree:
    """Build the root tree with the container's informational branches."""
    tree = new_tree(facts.name or DEFAULT_ROOT_LABEL)

    tree.add_branch(f"Image: {facts.image}")
    tree.add_branch(f"ID: {facts.id}")
    tree.add_branch(f"Runtime: {facts.runtime}")
    tree.add_branch(f"Created: {facts.created}")
    tree.add_branch(f"Engine: {facts.engine}")

    if facts.ip:
        tree.add_branch(f"IP: {facts.ip}")
    if facts.mac:
        tree.add_branch(f"MAC: {facts.mac}")

    tree.add_branch(f"Checkpoint Size: {format_bytes(sizes.checkpoint_size)}")

    if sizes.root_fs_diff_tar_size != 0:
        tree.add_branch(f"Root Fs Diff Size: {format_bytes(sizes.root_fs_diff_tar_size)}")

    return tree


# =============================================================================
# Enrichment Appenders
# =============================================================================


def add_mounts_to_tree(tree: DisplayTree, mounts: Iterable[MountEntry]) -> DisplayTree:
    """Add an "Overview of Mounts" branch, kept even when there are no mounts."""
    mounts_tree = tree.add_branch("Overview of Mounts")
    for mount in mounts:
        mount_tree = mounts_tree.add_branch(f"Destination: {mount.destination}")
        mount_tree.add_branch(f"Type: {mount.type}")
        mount_tree.add_branch(f"Source: {mount.source}")
    return mounts_tree


def add_dump_stats_to_tree(tree: DisplayTree, stats: DumpStats) -> DisplayTree:
    """Add the six CRIU dump counters.

    Page counters keep the "us" suffix CRIU tooling has always printed.
    """
    stats_tree = tree.add_branch("CRIU dump statistics")
    stats_tree.add_branch(f"Freezing Time: {stats.freezing_time} us")
    stats_tree.add_branch(f"Frozen Time: {stats.frozen_time} us")
    stats_tree.add_branch(f"Memdump Time: {stats.memdump_time} us")
    stats_tree.add_branch(f"Memwrite Time: {stats.memwrite_time} us")
    stats_tree.add_branch(f"Pages Scanned: {stats.pages_scanned} us")
    stats_tree.add_branch(f"Pages Written: {stats.pages_written} us")
    return stats_tree


def _process_tree_depth(root: ProcessNode) -> int:
    """Depth of a process hierarchy (a lone root has depth 1)."""
    deepest = 0
    stack = [(root, 1)]
    while stack:
        node, depth = stack.pop()
        deepest = max(deepest, depth)
        stack.extend((child, depth + 1) for child in node.children)
    return deepest


def add_ps_tree_to_tree(
    tree: DisplayTree,
    ps_tree: ProcessNode,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> DisplayTree:
    """Add a "Process tree" branch mirroring the process hierarchy.

    Each process becomes a meta branch carrying its pid, with children in
    input order.

    Raises:
        ProcessTreeDepthError: The hierarchy is deeper than max_depth. The
            tree is left untouched.
    """
    if _process_tree_depth(ps_tree) > max_depth:
        raise ProcessTreeDepthError(max_depth)

    ps_tree_node = tree.add_branch("Process tree")
    # Depth-first; each node is appended to its parent when popped, so
    # siblings keep input order.
    stack: list[tuple[DisplayTree, ProcessNode]] = [(ps_tree_node, ps_tree)]
    while stack:
        parent, process = stack.pop()
        node = parent.add_meta_branch(process.pid, process.comm)
        stack.extend((node, child) for child in reversed(process.children))
    return ps_tree_node


# =============================================================================
# Orchestrator
# =============================================================================


@dataclass(frozen=True)
class Collaborators:
    """Readers the orchestrator pulls checkpoint facts from."""

    read_config_dump: Callable[[Path], dict[str, Any]] = metadata.read_config_dump
    read_spec_dump: Callable[[Path], dict[str, Any]] = metadata.read_spec_dump
    get_container_info: Callable[[Path, dict, dict], ContainerFacts] = metadata.get_container_info
    get_mounts: Callable[[dict], list[MountEntry]] = metadata.get_mounts
    get_archive_sizes: Callable[[Path], ArchiveSizes] = archive.get_archive_sizes
    get_dump_stats: Callable[[Path], DumpStats] = crit.get_dump_stats
    explore_ps: Callable[[Path], ProcessNode] = crit.explore_ps


def _step(task: CheckpointTask, description: str, func: Callable, *args: Any) -> Any:
    """Run a collaborator, wrapping failures with the checkpoint and step."""
    logger.debug(f"{task.checkpoint_path}: {description}")
    try:
        return func(*args)
    except CheckviewError as e:
        raise CheckviewError(
            f"{task.checkpoint_path}: failed to {description}", task.checkpoint_path
        ) from e


def compose_checkpoint_tree(
    task: CheckpointTask,
    options: TreeOptions,
    collaborators: Collaborators,
) -> DisplayTree:
    """Gather one checkpoint's facts and build its complete tree."""
    config = _step(task, "read container config", collaborators.read_config_dump, task.output_dir)
    spec = _step(task, "read container spec", collaborators.read_spec_dump, task.output_dir)
    facts = _step(
        task, "get container info", collaborators.get_container_info, task.output_dir, spec, config
    )
    sizes = _step(task, "get archive sizes", collaborators.get_archive_sizes, task.checkpoint_path)

    tree = build_tree(facts, sizes)

    if options.mounts:
        mounts = _step(task, "get mounts", collaborators.get_mounts, spec)
        add_mounts_to_tree(tree, mounts)

    if options.stats:
        dump_stats = _step(task, "get dump statistics", collaborators.get_dump_stats, task.output_dir)
        add_dump_stats_to_tree(tree, dump_stats)

    if options.ps_tree:
        ps_tree = _step(task, "get process tree", collaborators.explore_ps, task.output_dir)
        _step(task, "render process tree", add_ps_tree_to_tree, tree, ps_tree, options.max_depth)

    return tree


def render_tree_view(
    tasks: Iterable[CheckpointTask],
    options: TreeOptions,
    collaborators: Collaborators | None = None,
    out: Console | None = None,
) -> int:
    """Render a tree for each checkpoint, in order.

    A checkpoint's tree is fully built before anything is written for it,
    so a failure never leaves partial output. The first failure stops
    processing.

    Returns:
        Number of checkpoints rendered.

    Raises:
        CheckviewError: A collaborator failed; the message names the
            checkpoint and the step.
    """
    collaborators = collaborators or Collaborators()
    out = out or Console()

    rendered = 0
    for task in tasks:
        tree = compose_checkpoint_tree(task, options, collaborators)
        out.out(
            f"\nDisplaying container checkpoint tree view from {task.checkpoint_path}\n",
            highlight=False,
        )
        out.out(tree.serialize(), highlight=False)
        rendered += 1
    return rendered
