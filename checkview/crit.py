"""CRIU image access through the crit command-line tool.

crit ships with CRIU and decodes the binary images under checkpoint/ to
JSON. Used for:
- Dump statistics (stats-dump)
- The process hierarchy (pstree.img plus core-<pid>.img for command names)
"""

from __future__ import annotations

import json
import logging
import subprocess
from pathlib import Path
from typing import Any

from checkview.config import DEFAULT_CRIT_BINARY
from checkview.errors import CritError, DumpStatsError, ProcessTreeError
from checkview.models import DumpStats, ProcessNode

logger = logging.getLogger(__name__)

IMAGES_DIRECTORY = "checkpoint"
STATS_DUMP_FILE = "stats-dump"
PSTREE_FILE = "pstree.img"

CRIT_TIMEOUT = 30


# =============================================================================
# crit CLI Helpers
# =============================================================================


def decode_image(image_path: Path, crit_binary: str = DEFAULT_CRIT_BINARY) -> list[dict[str, Any]]:
    """Decode a CRIU image and return its entries.

    Raises:
        CritError: The image is missing, crit is unavailable, or the output
            is not valid JSON.
    """
    if not image_path.exists():
        raise CritError(f"{image_path.name} not found", image_path)

    logger.debug(f"Decoding {image_path} with {crit_binary}")
    try:
        # Security: shell=False (default), args are internal constants and paths
        result = subprocess.run(
            [crit_binary, "decode", "-i", str(image_path)],  # noqa: S603
            capture_output=True,
            text=True,
            timeout=CRIT_TIMEOUT,
        )
    except FileNotFoundError as e:
        raise CritError(f"{crit_binary} not found; is CRIU installed?", image_path) from e
    except (subprocess.TimeoutExpired, OSError) as e:
        raise CritError(f"failed to run {crit_binary}", image_path) from e

    if result.returncode != 0:
        detail = result.stderr.strip() or f"exit status {result.returncode}"
        raise CritError(f"failed to decode {image_path.name}: {detail}", image_path)

    try:
        decoded = json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise CritError(f"failed to parse decoded {image_path.name}", image_path) from e

    entries = decoded.get("entries") if isinstance(decoded, dict) else None
    if not isinstance(entries, list):
        raise CritError(f"decoded {image_path.name} has no entries", image_path)
    return entries


# =============================================================================
# Dump Statistics
# =============================================================================


def get_dump_stats(checkpoint_dir: Path, crit_binary: str = DEFAULT_CRIT_BINARY) -> DumpStats:
    """Read CRIU's dump statistics for a checkpoint.

    Raises:
        DumpStatsError: stats-dump is absent or unparsable.
    """
    image_path = Path(checkpoint_dir) / IMAGES_DIRECTORY / STATS_DUMP_FILE
    try:
        entries = decode_image(image_path, crit_binary)
    except CritError as e:
        raise DumpStatsError(e.message, e.path) from e

    dump = entries[0].get("dump") if entries else None
    if not isinstance(dump, dict):
        raise DumpStatsError(f"{STATS_DUMP_FILE} has no dump statistics", image_path)

    try:
        return DumpStats(
            freezing_time=int(dump.get("freezing_time", 0)),
            frozen_time=int(dump.get("frozen_time", 0)),
            memdump_time=int(dump.get("memdump_time", 0)),
            memwrite_time=int(dump.get("memwrite_time", 0)),
            pages_scanned=int(dump.get("pages_scanned", 0)),
            pages_written=int(dump.get("pages_written", 0)),
        )
    except (TypeError, ValueError) as e:
        raise DumpStatsError(f"invalid value in {STATS_DUMP_FILE}", image_path) from e


# =============================================================================
# Process Tree
# =============================================================================


def _read_comm(images_dir: Path, pid: int, crit_binary: str) -> str:
    """Command name of a process from its core image."""
    entries = decode_image(images_dir / f"core-{pid}.img", crit_binary)
    if not entries:
        return ""
    return (entries[0].get("tc") or {}).get("comm", "")


def _build_process_tree(entries: list[dict[str, Any]], comms: dict[int, str]) -> ProcessNode:
    """Assemble ProcessNodes from pstree entries.

    The first entry is the root; every other process is attached to its
    ppid in pstree order. Built bottom-up without recursion.
    """
    children_of: dict[int, list[int]] = {}
    for entry in entries[1:]:
        children_of.setdefault(entry["ppid"], []).append(entry["pid"])

    root_pid = entries[0]["pid"]
    built: dict[int, ProcessNode] = {}
    visited: set[int] = set()
    stack: list[tuple[int, bool]] = [(root_pid, False)]
    while stack:
        pid, expanded = stack.pop()
        if expanded:
            built[pid] = ProcessNode(
                pid=pid,
                comm=comms.get(pid, ""),
                children=tuple(built[c] for c in children_of.get(pid, [])),
            )
            continue
        if pid in visited:
            raise ProcessTreeError(f"process {pid} appears more than once in {PSTREE_FILE}")
        visited.add(pid)
        stack.append((pid, True))
        for child in reversed(children_of.get(pid, [])):
            stack.append((child, False))

    if len(visited) != len(entries):
        logger.debug(f"{len(entries) - len(visited)} processes not reachable from pid {root_pid}")
    return built[root_pid]


def explore_ps(checkpoint_dir: Path, crit_binary: str = DEFAULT_CRIT_BINARY) -> ProcessNode:
    """Read the checkpointed process hierarchy.

    Raises:
        ProcessTreeError: The images cannot be decoded or are inconsistent.
    """
    images_dir = Path(checkpoint_dir) / IMAGES_DIRECTORY
    try:
        entries = decode_image(images_dir / PSTREE_FILE, crit_binary)
        if not entries:
            raise ProcessTreeError(f"{PSTREE_FILE} is empty", images_dir / PSTREE_FILE)
        comms = {entry["pid"]: _read_comm(images_dir, entry["pid"], crit_binary) for entry in entries}
        return _build_process_tree(entries, comms)
    except ProcessTreeError:
        raise
    except CritError as e:
        raise ProcessTreeError(e.message, e.path) from e
    except (KeyError, TypeError) as e:
        raise ProcessTreeError(f"malformed {PSTREE_FILE} entry", images_dir / PSTREE_FILE) from e
