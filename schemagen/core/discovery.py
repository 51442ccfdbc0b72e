"""Candidate discovery: the listener fed by asset enumeration and the class filter."""

from __future__ import annotations

import threading
from collections.abc import Iterable, Sequence
from typing import Protocol

from ..logging_config import get_logger
from .types import NodeKind, TypeNode

logger = get_logger(__name__)

# Names the host gives to transient generated classes that never ship.
TRANSIENT_CLASS_PREFIXES = (
    "SKEL_",
    "REINST_",
    "TRASHCLASS_",
    "HOTRELOADED_",
    "PROTO_BP_",
    "PLACEHOLDER-CLASS_",
    "ORPHANED_DATA_ONLY_",
)


class TypeReflector(Protocol):
    """Source of the reflected type graph."""

    def classes(self) -> Iterable[TypeNode]:
        """Every top-level class known up front."""
        ...

    def resolve(self, path: str) -> TypeNode | None:
        """Type graph of a class reported through discovery, or None."""
        ...

    def level_paths(self) -> Iterable[str]:
        """Asset paths of every streaming level."""
        ...


class DiscoveryListener:
    """Collects class paths reported while the host enumerates assets.

    ``on_candidate_created`` may be called from any thread. It only records
    the path; all processing happens later when the pass drains the set.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending: set[str] = set()
        self._listening = True

    def on_candidate_created(self, raw_type_identity: str) -> None:
        """Record a candidate class path."""
        with self._lock:
            if self._listening:
                self._pending.add(raw_type_identity)

    def stop(self) -> None:
        """Ignore notifications from now on."""
        with self._lock:
            self._listening = False

    def drain(self) -> list[str]:
        """Return every recorded path, sorted, and clear the pending set."""
        with self._lock:
            pending = sorted(self._pending)
            self._pending.clear()
        logger.info("Discovered %d candidate classes", len(pending))
        return pending

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)


class ClassFilter:
    """Decides which reflected classes get schema."""

    def __init__(self, directories_to_never_cook: Sequence[str] = ()) -> None:
        self.directories_to_never_cook = tuple(directories_to_never_cook)

    def is_supported(self, node: TypeNode | None) -> bool:
        if node is None:
            logger.debug("Invalid class not supported for schema gen.")
            return False

        if node.kind not in (NodeKind.CLASS, NodeKind.SUBOBJECT):
            logger.debug("[%s] Not a class, not supported for schema gen.", node.path)
            return False

        if node.editor_only:
            logger.debug("[%s] Editor-only class not supported for schema gen.", node.path)
            return False

        if not node.spatial_type:
            logger.debug("[%s] Not flagged as a spatial type, skipped.", node.path)
            return False

        if node.name.startswith(TRANSIENT_CLASS_PREFIXES):
            logger.debug("[%s] Transient class not supported for schema gen.", node.path)
            return False

        if any(node.path.startswith(d) for d in self.directories_to_never_cook):
            logger.debug("[%s] Inside directory to never cook for schema gen.", node.path)
            return False

        logger.debug("[%s] Supported class", node.path)
        return True

    def filter(self, nodes: Iterable[TypeNode]) -> list[TypeNode]:
        """Supported nodes, deduplicated by path and sorted lexicographically by path."""
        unique: dict[str, TypeNode] = {}
        for node in nodes:
            if node.path not in unique and self.is_supported(node):
                unique[node.path] = node
        return [unique[path] for path in sorted(unique)]
