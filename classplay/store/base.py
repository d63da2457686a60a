# classplay/store/base.py
import asyncio
import copy
import inspect
import itertools
import logging
import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from classplay.core.errors import InvalidPathError, ValidationError
from classplay.store.keys import PushKeyGenerator
from classplay.store.tree import SERVER_TIMESTAMP, paths_overlap, resolve_value, split_path

logger = logging.getLogger("classplay.store.base")

Unsubscribe = Callable[[], None]
Write = Tuple[List[str], Any]


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class _Listener:
    id: int
    segments: List[str]
    callback: Callable[..., Any]
    children: bool = False
    primed: bool = False
    last_value: Any = None
    seen: Set[str] = field(default_factory=set)

    @property
    def path(self) -> str:
        return "/".join(self.segments)


class RealtimeStore(ABC):
    """
    A tree-structured key-value store with change subscriptions.

    Every operation is a coroutine and yields to the event loop at least once,
    the way a call to a hosted database would. Listeners are dispatched after
    each committed write, in registration order.
    """

    def __init__(
        self,
        clock: Optional[Callable[[], int]] = None,
        latency: float = 0.0,
        rng: Optional[random.Random] = None,
    ):
        self._clock = clock or _now_ms
        self._latency = latency
        self._keys = PushKeyGenerator(self._clock, rng)
        self._listeners: Dict[int, _Listener] = {}
        self._listener_ids = itertools.count(1)

    # --- Backend primitives ---

    @abstractmethod
    def _read_node(self, segments: List[str]) -> Any:
        """Returns the stored value at `segments`, or None. May return internal references."""

    @abstractmethod
    def _write_nodes(self, writes: List[Write]) -> None:
        """Applies already-resolved writes atomically (None deletes)."""

    # --- Public API ---

    @staticmethod
    def server_timestamp() -> Dict[str, str]:
        return dict(SERVER_TIMESTAMP)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def read(self, path: str) -> Any:
        segments = split_path(path)
        await self._hop()
        return copy.deepcopy(self._read_node(segments))

    async def write(self, path: str, value: Any) -> None:
        segments = split_path(path)
        await self._hop()
        await self._commit([(segments, value)])

    async def update(self, path: str, fields: Dict[str, Any]) -> None:
        if not isinstance(fields, dict):
            raise ValidationError("update() expects a mapping of relative paths to values", path=path)
        base = split_path(path)
        writes: List[Write] = []
        for key, value in fields.items():
            relative = split_path(key)
            if not relative:
                raise InvalidPathError("update() keys must not be empty", path=path)
            writes.append((base + relative, value))
        await self._hop()
        await self._commit(writes)

    async def push(self, path: str, value: Any = None) -> str:
        segments = split_path(path)
        key = self._keys.next_key()
        await self._hop()
        if value is not None:
            await self._commit([(segments + [key], value)])
        return key

    async def remove(self, path: str) -> None:
        await self.write(path, None)

    async def transaction(self, path: str, fn: Callable[[Any], Any]) -> Any:
        """
        Applies `fn(current) -> new` with no suspension point between the read
        and the write. Whatever `fn` raises aborts the transaction untouched.
        """
        segments = split_path(path)
        await self._hop()
        current = copy.deepcopy(self._read_node(segments))
        new_value = fn(current)
        await self._commit([(segments, new_value)])
        return copy.deepcopy(self._read_node(segments))

    async def subscribe(self, path: str, on_change: Callable[[Any], Any]) -> Unsubscribe:
        """Value listener: fires with the current value now, then on every change."""
        segments = split_path(path)
        await self._hop()
        listener = self._register(segments, on_change, children=False)
        await self._deliver(listener)
        return partial(self._unregister, listener.id)

    async def subscribe_children(
        self,
        path: str,
        on_child: Callable[[str, Any], Any],
        limit_to_last: Optional[int] = None,
    ) -> Unsubscribe:
        """Child-added listener: existing children first (optionally only the last N), then new ones."""
        segments = split_path(path)
        await self._hop()
        listener = self._register(segments, on_child, children=True)
        await self._deliver(listener, limit_to_last=limit_to_last)
        return partial(self._unregister, listener.id)

    # --- Internals ---

    async def _hop(self) -> None:
        await asyncio.sleep(self._latency)

    def _register(self, segments: List[str], callback: Callable[..., Any], children: bool) -> _Listener:
        listener = _Listener(id=next(self._listener_ids), segments=segments, callback=callback, children=children)
        self._listeners[listener.id] = listener
        logger.debug(f"Listener {listener.id} attached to '{listener.path}' (children={children})")
        return listener

    def _unregister(self, listener_id: int) -> None:
        if self._listeners.pop(listener_id, None) is not None:
            logger.debug(f"Listener {listener_id} detached")

    async def _commit(self, writes: List[Write]) -> None:
        now = self._clock()
        resolved = [(segments, resolve_value(value, now)) for segments, value in writes]
        self._write_nodes(resolved)
        await self._notify([segments for segments, _ in resolved])

    async def _notify(self, written: List[List[str]]) -> None:
        for listener in list(self._listeners.values()):
            if listener.id not in self._listeners:
                continue
            if any(paths_overlap(listener.segments, segments) for segments in written):
                await self._deliver(listener)

    async def _deliver(self, listener: _Listener, limit_to_last: Optional[int] = None) -> None:
        value = self._read_node(listener.segments)
        if not listener.children:
            if listener.primed and value == listener.last_value:
                return
            listener.primed = True
            listener.last_value = copy.deepcopy(value)
            await self._invoke(listener, copy.deepcopy(value))
            return

        children = value if isinstance(value, dict) else {}
        fresh = sorted(key for key in children if key not in listener.seen)
        if limit_to_last is not None:
            cut = max(len(fresh) - max(limit_to_last, 0), 0)
            listener.seen.update(fresh[:cut])
            fresh = fresh[cut:]
        for key in fresh:
            if listener.id not in self._listeners:
                return
            if key in listener.seen: # already delivered by a nested dispatch
                continue
            listener.seen.add(key)
            await self._invoke(listener, key, copy.deepcopy(children[key]))

    async def _invoke(self, listener: _Listener, *args: Any) -> None:
        # Listeners stand for other clients: one failing must not fail the writer.
        try:
            result = listener.callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception(f"Listener {listener.id} on '{listener.path}' raised while handling a change")
