"""
Linear congruential PRNG used for every random draw in map generation.

state = (state * 1103515245 + 12345) & 0x7fffffff
next() = state / 0x7fffffff

Python integers are exact, so the sequence is a pure function of the seed on
every platform. Python's random and NumPy's random are never used inside the
generation pipeline.
"""

import math
from typing import List, Sequence, TypeVar

T = TypeVar("T")

MODULUS = 0x7FFFFFFF  # 2**31 - 1
MULTIPLIER = 1103515245
INCREMENT = 12345
MAX_SEED = MODULUS


def _int32(n: int) -> int:
    """Wrap to a signed 32-bit integer."""
    n &= 0xFFFFFFFF
    return n - 0x100000000 if n & 0x80000000 else n


def string_hash(text: str) -> int:
    """Classic multiply-shift rolling hash (h*31 + c) on signed 32-bit integers."""
    h = 0
    for char in text:
        h = _int32((h << 5) - h + ord(char))
    return h


def derive_seed(label: str, seed: int) -> int:
    """
    Derive an independent seed for a named context.

    The result depends only on (label, seed) and lies in [1, 2**31 - 1].
    """
    return abs(string_hash(f"{label}{seed}")) % MODULUS + 1


class LCGRandom:
    """
    Seeded linear congruential generator.

    All derived draws (ints, floats, choices, shuffles) consume next().
    """

    def __init__(self, seed: int):
        state = abs(math.floor(seed)) % MODULUS
        self.state = state or 1
        self.initial_seed = self.state
        self.call_count = 0

    def next(self) -> float:
        """Generate next random number in [0, 1]."""
        self.call_count += 1
        self.state = (self.state * MULTIPLIER + INCREMENT) & MODULUS
        return self.state / MODULUS

    # Alias matching the stdlib spelling
    random = next

    def next_int(self, min_value: int = 0, max_value: int = 100) -> int:
        """Integer in [min_value, max_value)."""
        if max_value <= min_value:
            raise ValueError(
                f"max_value ({max_value}) must be greater than min_value ({min_value})"
            )
        value = math.floor(min_value + self.next() * (max_value - min_value))
        # next() reaches exactly 1.0 when the state is 0x7fffffff
        return min(value, max_value - 1)

    def next_float(self, min_value: float = 0.0, max_value: float = 1.0) -> float:
        return min_value + self.next() * (max_value - min_value)

    def next_boolean(self, probability: float = 0.5) -> bool:
        return self.next() < probability

    def choice(self, seq: Sequence[T]) -> T:
        """Choose a random element from a non-empty sequence."""
        if not seq:
            raise IndexError("Cannot choose from an empty sequence")
        return seq[self.next_int(0, len(seq))]

    def shuffle(self, items: Sequence[T]) -> List[T]:
        """Return a Fisher-Yates shuffled copy of items."""
        shuffled = list(items)
        for i in range(len(shuffled) - 1, 0, -1):
            j = self.next_int(0, i + 1)
            shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
        return shuffled

    def weighted_choice(self, items: Sequence[T], weights: Sequence[float]) -> T:
        """Choose an item with probability proportional to its weight."""
        if not items:
            raise IndexError("Cannot choose from an empty sequence")
        if len(items) != len(weights):
            raise ValueError("items and weights must have the same length")
        total = float(sum(weights))
        if total <= 0:
            raise ValueError("weights must sum to a positive value")

        threshold = self.next() * total
        cumulative = 0.0
        for item, weight in zip(items, weights):
            cumulative += weight
            if threshold < cumulative:
                return item
        return items[-1]

    def sample(self, items: Sequence[T], k: int) -> List[T]:
        """k distinct elements, in draw order."""
        if k > len(items):
            raise ValueError("Sample larger than population")
        return self.shuffle(items)[:k]

    def derive_seed(self, label: str) -> int:
        """Seed for a named context, derived from the initial seed."""
        return derive_seed(label, self.initial_seed)

    def fork(self, label: str) -> "LCGRandom":
        """Independent generator for a named context."""
        return LCGRandom(self.derive_seed(label))

    def get_seed(self) -> int:
        return self.initial_seed
