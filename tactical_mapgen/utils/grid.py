"""Neighbourhood helpers shared by the layer generators."""

from typing import Iterator, Tuple

import numpy as np
from scipy import ndimage

# D8 order: N, NE, E, SE, S, SW, W, NW as (dx, dy)
D8_OFFSETS: Tuple[Tuple[int, int], ...] = (
    (0, -1),
    (1, -1),
    (1, 0),
    (1, 1),
    (0, 1),
    (-1, 1),
    (-1, 0),
    (-1, -1),
)
D8_DISTANCES = tuple(1.414 if dx and dy else 1.0 for dx, dy in D8_OFFSETS)

# 4-neighbourhood as (dx, dy)
D4_OFFSETS: Tuple[Tuple[int, int], ...] = ((0, -1), (1, 0), (0, 1), (-1, 0))

MOORE_KERNEL = np.array([[1, 1, 1], [1, 0, 1], [1, 1, 1]], dtype=np.int32)


def in_bounds(x: int, y: int, width: int, height: int) -> bool:
    return 0 <= x < width and 0 <= y < height


def neighbours8(x: int, y: int, width: int, height: int) -> Iterator[Tuple[int, int]]:
    for dx, dy in D8_OFFSETS:
        nx, ny = x + dx, y + dy
        if 0 <= nx < width and 0 <= ny < height:
            yield nx, ny


def neighbour_count(mask: np.ndarray) -> np.ndarray:
    """Number of True cells in each cell's 8-neighbourhood. Off-map counts as False."""
    return ndimage.convolve(
        mask.astype(np.int32), MOORE_KERNEL, mode="constant", cval=0
    )


def window_sum(values: np.ndarray, radius: int) -> np.ndarray:
    """Sum over the (2r+1) square window around each cell, clipped at the edges."""
    size = 2 * radius + 1
    kernel = np.ones((size, size), dtype=np.float64)
    return ndimage.convolve(values.astype(np.float64), kernel, mode="constant", cval=0.0)


def shifted(values: np.ndarray, dx: int, dy: int) -> np.ndarray:
    """values[y + dy, x + dx] with edge replication for out-of-range reads."""
    padded = np.pad(values, 1, mode="edge")
    h, w = values.shape
    return padded[1 + dy : 1 + dy + h, 1 + dx : 1 + dx + w]
