"""Tests for the LCG random number generator."""

import pytest

from tactical_mapgen.core.lcg_prng import (
    INCREMENT,
    MODULUS,
    MULTIPLIER,
    LCGRandom,
    derive_seed,
    string_hash,
)


class TestLCGRandom:
    """Test the closed form and derived draws."""

    def test_first_output_for_seed_one(self):
        """state = (1 * 1103515245 + 12345) & 0x7fffffff."""
        rng = LCGRandom(1)
        assert rng.next() == 1103527590 / 2147483647
        assert rng.state == 1103527590

    def test_second_output_matches_formula(self):
        rng = LCGRandom(1)
        rng.next()
        expected_state = (1103527590 * MULTIPLIER + INCREMENT) & MODULUS
        assert rng.next() == expected_state / MODULUS

    def test_same_seed_same_sequence(self):
        a = LCGRandom(12345)
        b = LCGRandom(12345)
        assert [a.next() for _ in range(50)] == [b.next() for _ in range(50)]

    def test_different_seeds_differ(self):
        a = LCGRandom(1)
        b = LCGRandom(2)
        assert [a.next() for _ in range(5)] != [b.next() for _ in range(5)]

    def test_zero_seed_becomes_one(self):
        assert LCGRandom(0).initial_seed == 1
        assert LCGRandom(-7).initial_seed == 7

    def test_outputs_in_unit_interval(self):
        rng = LCGRandom(987654)
        for _ in range(1000):
            value = rng.next()
            assert 0.0 <= value <= 1.0

    def test_next_int_range(self):
        rng = LCGRandom(42)
        values = [rng.next_int(3, 7) for _ in range(500)]
        assert min(values) >= 3
        assert max(values) <= 6
        assert set(values) == {3, 4, 5, 6}

    def test_next_int_rejects_empty_range(self):
        with pytest.raises(ValueError):
            LCGRandom(1).next_int(5, 5)

    def test_next_int_clamped_at_upper_bound(self):
        rng = LCGRandom(1)
        # next() returns exactly 1.0 when the state reaches 0x7fffffff
        rng.next = lambda: 1.0
        assert rng.next_int(0, 10) == 9

    def test_choice_and_shuffle(self):
        rng = LCGRandom(7)
        items = list(range(10))
        shuffled = rng.shuffle(items)
        assert sorted(shuffled) == items
        assert items == list(range(10))
        assert rng.choice(items) in items

    def test_choice_empty_raises(self):
        with pytest.raises(IndexError):
            LCGRandom(1).choice([])

    def test_weighted_choice_respects_zero_weight(self):
        rng = LCGRandom(99)
        picks = {rng.weighted_choice(["a", "b", "c"], [1.0, 0.0, 1.0]) for _ in range(200)}
        assert "b" not in picks

    def test_weighted_choice_validation(self):
        rng = LCGRandom(1)
        with pytest.raises(ValueError):
            rng.weighted_choice(["a"], [1.0, 2.0])
        with pytest.raises(ValueError):
            rng.weighted_choice(["a", "b"], [0.0, 0.0])

    def test_sample_distinct(self):
        rng = LCGRandom(5)
        picked = rng.sample(list(range(20)), 5)
        assert len(set(picked)) == 5
        with pytest.raises(ValueError):
            rng.sample([1, 2], 3)


class TestSeedDerivation:
    def test_string_hash_known_values(self):
        assert string_hash("") == 0
        assert string_hash("a") == 97
        assert string_hash("ab") == 97 * 31 + 98

    def test_string_hash_wraps_to_int32(self):
        value = string_hash("a fairly long string that overflows thirty two bits")
        assert -(2**31) <= value < 2**31

    def test_derive_seed_in_range_and_stable(self):
        seed = derive_seed("forests", 12345)
        assert 1 <= seed <= MODULUS
        assert seed == derive_seed("forests", 12345)
        assert seed != derive_seed("rivers", 12345)

    def test_fork_uses_initial_seed(self):
        rng = LCGRandom(12345)
        before = rng.fork("mixing").next()
        for _ in range(10):
            rng.next()
        assert rng.fork("mixing").next() == before
