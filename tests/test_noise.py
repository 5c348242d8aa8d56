"""Tests for seeded value noise."""

import numpy as np

from tactical_mapgen.core.noise import NoiseField


class TestNoiseField:
    def test_deterministic(self):
        a = NoiseField(1234).grid(16, 12, scale=0.1)
        b = NoiseField(1234).grid(16, 12, scale=0.1)
        np.testing.assert_array_equal(a, b)

    def test_seed_changes_field(self):
        a = NoiseField(1).grid(16, 16, scale=0.1)
        b = NoiseField(2).grid(16, 16, scale=0.1)
        assert not np.array_equal(a, b)

    def test_range_and_shape(self):
        grid = NoiseField(77).grid(20, 10, scale=0.15, octaves=4)
        assert grid.shape == (10, 20)
        assert grid.min() >= 0.0
        assert grid.max() <= 1.0

    def test_scalar_and_array_sampling_agree(self):
        field = NoiseField(5)
        xs = np.array([0.5, 3.25, 7.75])
        ys = np.array([1.5, 2.0, 9.1])
        values = field.sample(xs, ys)
        for x, y, value in zip(xs, ys, values):
            assert np.isclose(field.generate_at(x, y), value)

    def test_lattice_points_hit_hash_values(self):
        field = NoiseField(9)
        # Between two lattice points the value is interpolated
        a = field.generate_at(2.0, 3.0)
        b = field.generate_at(3.0, 3.0)
        mid = field.generate_at(2.5, 3.0)
        assert min(a, b) <= mid <= max(a, b)

    def test_negative_coordinates(self):
        value = NoiseField(3).generate_at(-4.5, -2.25)
        assert 0.0 <= value <= 1.0
