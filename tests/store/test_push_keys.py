# tests/store/test_push_keys.py
import random

from classplay.store.keys import PUSH_CHARS, PushKeyGenerator
from classplay.store.tree import paths_overlap, resolve_value, set_in, split_path


def test_keys_sort_by_time_then_sequence():
    now = [1000]
    generator = PushKeyGenerator(lambda: now[0], random.Random(3))

    same_ms = [generator.next_key() for _ in range(50)]
    now[0] = 1001
    later = generator.next_key()

    assert same_ms == sorted(same_ms)
    assert len(set(same_ms)) == 50
    assert later > same_ms[-1]


def test_clock_going_backwards_keeps_keys_increasing():
    readings = iter([5000, 4000, 3000])
    generator = PushKeyGenerator(lambda: next(readings), random.Random(0))
    keys = [generator.next_key() for _ in range(3)]
    assert keys == sorted(keys)


def test_push_chars_are_in_ascii_order():
    assert list(PUSH_CHARS) == sorted(PUSH_CHARS)
    assert len(PUSH_CHARS) == 64


def test_tree_helpers():
    assert split_path("/sessions/s1/") == ["sessions", "s1"]
    assert paths_overlap(["a"], ["a", "b"])
    assert not paths_overlap(["a", "c"], ["a", "b"])
    assert set_in({"a": {"b": 1}}, ["a", "b"], None) is None
    assert resolve_value({"t": {".sv": "timestamp"}, "l": [1, None]}, 99) == {"t": 99, "l": [1, None]}
