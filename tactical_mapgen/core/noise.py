"""
Seeded value noise.

Lattice values come from an integer hash computed with 32-bit wrap-around on
uint64 arrays, so results do not depend on floating point trigonometry.
"""

from typing import Union

import numpy as np

ArrayLike = Union[float, np.ndarray]

_MASK32 = np.uint64(0xFFFFFFFF)
_PX = np.uint64(374761393)
_PY = np.uint64(668265263)
_PS = np.uint64(1442695041)
_MIX = np.uint64(1274126177)
_SCALE = float(2 ** 32)


class NoiseField:
    """
    Smooth value noise in [0, 1] keyed by a seed.

    Args:
        seed: Any non-negative integer, usually a mixed layer seed
    """

    def __init__(self, seed: int):
        self.seed = int(seed) & 0xFFFFFFFF
        self._seed_term = (np.uint64(self.seed) * _PS) & _MASK32

    def _lattice(self, ix: np.ndarray, iy: np.ndarray) -> np.ndarray:
        # Negative coordinates wrap through int64 -> uint64 reinterpretation
        ux = ix.astype(np.int64).astype(np.uint64) & _MASK32
        uy = iy.astype(np.int64).astype(np.uint64) & _MASK32
        h = ((ux * _PX) & _MASK32) + ((uy * _PY) & _MASK32) + self._seed_term
        h &= _MASK32
        h = ((h ^ (h >> np.uint64(13))) * _MIX) & _MASK32
        h ^= h >> np.uint64(16)
        return h.astype(np.float64) / _SCALE

    def sample(self, x: ArrayLike, y: ArrayLike) -> ArrayLike:
        """Noise at continuous coordinates; accepts scalars or arrays."""
        xs = np.asarray(x, dtype=np.float64)
        ys = np.asarray(y, dtype=np.float64)
        xs, ys = np.broadcast_arrays(xs, ys)

        x0 = np.floor(xs)
        y0 = np.floor(ys)
        fx = xs - x0
        fy = ys - y0
        # smoothstep
        sx = fx * fx * (3.0 - 2.0 * fx)
        sy = fy * fy * (3.0 - 2.0 * fy)

        ix = x0.astype(np.int64)
        iy = y0.astype(np.int64)
        v00 = self._lattice(ix, iy)
        v10 = self._lattice(ix + 1, iy)
        v01 = self._lattice(ix, iy + 1)
        v11 = self._lattice(ix + 1, iy + 1)

        top = v00 + (v10 - v00) * sx
        bottom = v01 + (v11 - v01) * sx
        result = top + (bottom - top) * sy
        if result.ndim == 0:
            return float(result)
        return result

    def generate_at(self, x: float, y: float) -> float:
        return float(self.sample(x, y))

    def octaves(
        self,
        x: ArrayLike,
        y: ArrayLike,
        octaves: int = 4,
        persistence: float = 0.5,
    ) -> ArrayLike:
        """Fractal sum of octaves, normalised back to [0, 1]."""
        total = 0.0
        amplitude = 1.0
        frequency = 1.0
        max_value = 0.0
        xs = np.asarray(x, dtype=np.float64)
        ys = np.asarray(y, dtype=np.float64)
        for _ in range(octaves):
            total = total + self.sample(xs * frequency, ys * frequency) * amplitude
            max_value += amplitude
            amplitude *= persistence
            frequency *= 2.0
        return total / max_value

    def grid(
        self,
        width: int,
        height: int,
        scale: float = 1.0,
        octaves: int = 1,
        persistence: float = 0.5,
        offset: float = 0.0,
    ) -> np.ndarray:
        """(height, width) array of noise sampled at (x*scale, y*scale)."""
        ys, xs = np.mgrid[0:height, 0:width].astype(np.float64)
        xs = xs * scale + offset
        ys = ys * scale + offset
        if octaves <= 1:
            return np.asarray(self.sample(xs, ys))
        return np.asarray(self.octaves(xs, ys, octaves, persistence))
