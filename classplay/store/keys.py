# classplay/store/keys.py
import random
from typing import Callable, List, Optional

# ASCII-ordered, so keys compare lexicographically in generation order.
PUSH_CHARS = "-0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz"

TIME_CHARS = 8
RANDOM_CHARS = 12


class PushKeyGenerator:
    """
    Generates 20-character, time-ordered keys: 8 characters of millisecond
    timestamp followed by 12 random characters. Keys produced in the same
    millisecond (or while the clock stands still) bump the random part, so
    every key is strictly greater than the previous one.
    """

    def __init__(self, clock: Callable[[], int], rng: Optional[random.Random] = None):
        self._clock = clock
        self._rng = rng or random.Random()
        self._last_time = -1
        self._last_random: List[int] = [0] * RANDOM_CHARS

    def _fresh_random(self) -> List[int]:
        return [self._rng.randrange(len(PUSH_CHARS)) for _ in range(RANDOM_CHARS)]

    def next_key(self) -> str:
        now = self._clock()
        if now <= self._last_time:
            now = self._last_time
            index = RANDOM_CHARS - 1
            while index >= 0 and self._last_random[index] == len(PUSH_CHARS) - 1:
                self._last_random[index] = 0
                index -= 1
            if index < 0:
                now += 1
                self._last_random = self._fresh_random()
            else:
                self._last_random[index] += 1
        else:
            self._last_random = self._fresh_random()
        self._last_time = now

        time_chars = []
        remaining = now
        for _ in range(TIME_CHARS):
            time_chars.append(PUSH_CHARS[remaining % len(PUSH_CHARS)])
            remaining //= len(PUSH_CHARS)
        return "".join(reversed(time_chars)) + "".join(PUSH_CHARS[i] for i in self._last_random)
