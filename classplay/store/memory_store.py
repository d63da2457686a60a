# classplay/store/memory_store.py
import copy
import logging
from typing import Any, Dict, List, Optional

from classplay.store.base import RealtimeStore, Write
from classplay.store.tree import get_in, resolve_value, set_in

logger = logging.getLogger("classplay.store.memory_store")


class InMemoryStore(RealtimeStore):
    """The whole tree in one process-local dict. Used by default and in tests."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None, **kwargs: Any):
        super().__init__(**kwargs)
        self._root: Optional[Dict[str, Any]] = resolve_value(copy.deepcopy(initial), self._clock()) if initial else None

    def _read_node(self, segments: List[str]) -> Any:
        return get_in(self._root, segments)

    def _write_nodes(self, writes: List[Write]) -> None:
        root = self._root
        for segments, value in writes:
            root = set_in(root, segments, value)
        self._root = root

    def snapshot(self) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(self._root)
