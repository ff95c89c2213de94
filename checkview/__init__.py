"""checkview: tree views of container checkpoint archives."""

__version__ = "1.0.0"

from checkview.models import (
    ArchiveSizes,
    CheckpointTask,
    ContainerFacts,
    DumpStats,
    MountEntry,
    ProcessNode,
)
from checkview.tree import DisplayTree, new_tree

__all__ = [
    "__version__",
    "ArchiveSizes",
    "CheckpointTask",
    "ContainerFacts",
    "DisplayTree",
    "DumpStats",
    "MountEntry",
    "ProcessNode",
    "new_tree",
]
