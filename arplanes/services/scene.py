"""Scene graph collaborator used to place aircraft in the host's AR view."""

from __future__ import annotations

from dataclasses import dataclass, field
import itertools
import logging
import threading
from typing import Optional, Protocol

logger = logging.getLogger("arplanes.scene")

Offset = tuple[float, float, float]


class SceneGraph(Protocol):
    """Operations the tracking core issues against the host scene graph."""

    def place(self, key: str, offset: Offset, rotation: float) -> str:
        """Add a node for ``key`` and return the host's handle for it."""

    def move(self, key: str, offset: Offset, duration: float) -> None:
        """Animate the node for ``key`` to ``offset`` over ``duration`` seconds."""

    def remove(self, key: str) -> None:
        """Remove the node for ``key``."""

    def identity_for_handle(self, handle: str) -> Optional[str]:
        """Map a handle reported by a user selection back to its key."""


@dataclass
class SceneNode:
    handle: str
    offset: Offset
    rotation: float


@dataclass
class SceneOperation:
    op: str
    key: str
    offset: Offset | None = None
    rotation: float | None = None
    duration: float | None = None


@dataclass
class InMemorySceneGraph:
    """Scene graph that keeps nodes in memory and records every operation."""

    nodes: dict[str, SceneNode] = field(default_factory=dict)
    operations: list[SceneOperation] = field(default_factory=list)
    keep_history: bool = True

    def __post_init__(self) -> None:
        self._handles: dict[str, str] = {}
        self._counter = itertools.count(1)
        self._lock = threading.RLock()

    def place(self, key: str, offset: Offset, rotation: float) -> str:
        with self._lock:
            existing = self.nodes.get(key)
            if existing is not None:
                logger.debug("Replacing existing node for %s", key)
                self._handles.pop(existing.handle, None)
            handle = f"node-{next(self._counter)}"
            self.nodes[key] = SceneNode(handle=handle, offset=offset, rotation=rotation)
            self._handles[handle] = key
            self._record(SceneOperation("place", key, offset=offset, rotation=rotation))
        return handle

    def move(self, key: str, offset: Offset, duration: float) -> None:
        with self._lock:
            node = self.nodes.get(key)
            if node is None:
                logger.warning("Move requested for unknown node %s", key)
                return
            node.offset = offset
            self._record(SceneOperation("move", key, offset=offset, duration=duration))

    def remove(self, key: str) -> None:
        with self._lock:
            node = self.nodes.pop(key, None)
            if node is None:
                return
            self._handles.pop(node.handle, None)
            self._record(SceneOperation("remove", key))

    def identity_for_handle(self, handle: str) -> Optional[str]:
        with self._lock:
            return self._handles.get(handle)

    def handle_for(self, key: str) -> Optional[str]:
        with self._lock:
            node = self.nodes.get(key)
            return node.handle if node else None

    def _record(self, operation: SceneOperation) -> None:
        if self.keep_history:
            self.operations.append(operation)


__all__ = ["InMemorySceneGraph", "SceneGraph", "SceneNode", "SceneOperation"]
