"""
Random stream coordination and deterministic identifiers.

Each generation request builds its own CoordinatedRandomGenerator; there is
no process-wide generator. Python's random and NumPy's random should not be
used in generation code.
"""

from typing import Dict, Optional

from ..core.lcg_prng import LCGRandom, derive_seed, string_hash

# Standard sub-stream labels
TERRAIN = "terrain"
ELEVATION = "elevation"
FORESTS = "forests"
RIVERS = "rivers"
ROADS = "roads"
BUILDINGS = "buildings"
FEATURES = "features"
IDS = "ids"

STREAM_CONTEXTS = (TERRAIN, ELEVATION, FORESTS, RIVERS, ROADS, BUILDINGS, FEATURES, IDS)


class CoordinatedRandomGenerator:
    """
    One master LCG stream plus lazily created, independently seeded sub-streams.

    A sub-stream's seed is derived from (label, master seed) only, so drawing
    from one sub-stream never perturbs another.
    """

    def __init__(self, master_seed: int):
        self.master = LCGRandom(master_seed)
        self.master_seed = self.master.initial_seed
        self._streams: Dict[str, LCGRandom] = {}
        self._sub_seeds: Dict[str, int] = {}

    def sub_seed(self, label: str) -> int:
        """Seed of the named sub-stream."""
        if not label:
            raise ValueError("Sub-stream label must be a non-empty string")
        if label not in self._sub_seeds:
            self._sub_seeds[label] = derive_seed(label, self.master_seed)
        return self._sub_seeds[label]

    def stream(self, label: str) -> LCGRandom:
        """Named sub-stream, created on first use."""
        if label not in self._streams:
            self._streams[label] = LCGRandom(self.sub_seed(label))
        return self._streams[label]

    def next(self) -> float:
        return self.master.next()

    def reset(self) -> None:
        """Rewind the master stream and drop every sub-stream."""
        self.master = LCGRandom(self.master_seed)
        self._streams.clear()
        self._sub_seeds.clear()

    def get_state(self) -> dict:
        return {
            "master_seed": self.master_seed,
            "contexts": list(self._streams),
            "sub_seeds": dict(self._sub_seeds),
        }


class DeterministicIdGenerator:
    """Reproducible identifiers: per-type counter plus a seeded random suffix."""

    def __init__(self, seed: int):
        self.random = LCGRandom(seed)
        self.counters: Dict[str, int] = {}

    @classmethod
    def from_string(cls, text: str) -> "DeterministicIdGenerator":
        return cls(abs(string_hash(text)))

    def _next_counter(self, kind: str) -> int:
        current = self.counters.get(kind, 0)
        self.counters[kind] = current + 1
        return current

    def feature_id(self, kind: str = "feature") -> str:
        counter = self._next_counter(kind)
        return f"{kind}-{counter}-{self.random.next_int(1000, 9999)}"

    def map_id(self) -> str:
        counter = self._next_counter("map")
        return f"map-{counter}-{self.random.next_int(100000, 999999)}"

    def string_id(self, prefix: str = "entity") -> str:
        counter = self._next_counter(prefix)
        return f"{prefix}-{counter}-{self.random.next_int(10000, 99999)}"

    def create_sub_generator(self, label: str) -> "DeterministicIdGenerator":
        """Independent generator whose sequence depends only on (seed, label)."""
        return DeterministicIdGenerator(self.random.derive_seed(label))

    def get_state(self, label: Optional[str] = None) -> dict:
        state = {"seed": self.random.initial_seed, "counters": dict(self.counters)}
        if label is not None:
            state["label"] = label
        return state
