# classplay/store/tree.py
"""
Helpers for the slash-separated tree the realtime store holds.

Values follow realtime-database rules: None and empty mappings are never
stored (writing them deletes the node, and emptied parents are pruned), and the
SERVER_TIMESTAMP placeholder is replaced by the write time wherever it appears.
"""
from typing import Any, List, Optional

from classplay.core.errors import InvalidPathError

SERVER_TIMESTAMP = {".sv": "timestamp"}

_FORBIDDEN_CHARS = set(".#$[]")


def split_path(path: str) -> List[str]:
    stripped = (path or "").strip("/")
    if not stripped:
        return []
    segments = stripped.split("/")
    for segment in segments:
        if not segment:
            raise InvalidPathError(f"Empty segment in path '{path}'", path=path)
        if _FORBIDDEN_CHARS.intersection(segment):
            raise InvalidPathError(f"Illegal character in path segment '{segment}'", path=path)
    return segments


def paths_overlap(a: List[str], b: List[str]) -> bool:
    """True when one path is an ancestor of (or equal to) the other."""
    shortest = min(len(a), len(b))
    return a[:shortest] == b[:shortest]


def resolve_value(value: Any, now_ms: int) -> Any:
    if isinstance(value, dict):
        if value == SERVER_TIMESTAMP:
            return now_ms
        resolved = {}
        for key, child in value.items():
            child = resolve_value(child, now_ms)
            if child is not None:
                resolved[str(key)] = child
        return resolved or None
    if isinstance(value, (list, tuple)):
        return [resolve_value(item, now_ms) for item in value]
    return value


def get_in(root: Any, segments: List[str]) -> Any:
    node = root
    for segment in segments:
        if not isinstance(node, dict) or segment not in node:
            return None
        node = node[segment]
    return node


def set_in(root: Any, segments: List[str], value: Any) -> Optional[Any]:
    """Returns a new root with `value` placed at `segments`; only the nodes on the path are copied."""
    if not segments:
        return value
    head, rest = segments[0], segments[1:]
    node = dict(root) if isinstance(root, dict) else {}
    child = set_in(node.get(head), rest, value)
    if child is None:
        node.pop(head, None)
    else:
        node[head] = child
    return node or None
