"""Tests for numbered random-number streams."""

import pytest

from simopt_engine.rng import RNStream, RNStreamProvider


class TestRNStream:
    """Tests for reproducibility, substreams and antithetic draws."""

    def test_same_seed_and_number_reproduce(self):
        """Verify two streams with the same key draw the same numbers."""
        a = RNStream(seed=7, stream_number=2)
        b = RNStream(seed=7, stream_number=2)
        assert [a.rand_u01() for _ in range(5)] == [b.rand_u01() for _ in range(5)]

    def test_stream_numbers_differ(self):
        """Verify different stream numbers give different numbers."""
        a = RNStream(seed=7, stream_number=1)
        b = RNStream(seed=7, stream_number=2)
        assert [a.rand_u01() for _ in range(5)] != [b.rand_u01() for _ in range(5)]

    def test_reset_start_stream(self):
        """Verify resetting replays the stream from the start."""
        s = RNStream(1, 1)
        first = [s.rand_u01() for _ in range(3)]
        s.advance_to_next_substream()
        s.rand_u01()
        s.reset_start_stream()
        assert [s.rand_u01() for _ in range(3)] == first
        assert s.substream_number == 0

    def test_substreams(self):
        """Verify substream advance changes the numbers and substream reset replays them."""
        s = RNStream(1, 1)
        first = [s.rand_u01() for _ in range(3)]
        s.advance_to_next_substream()
        second = [s.rand_u01() for _ in range(3)]
        assert second != first
        s.reset_start_substream()
        assert [s.rand_u01() for _ in range(3)] == second

    def test_antithetic(self):
        """Verify antithetic draws are 1 - u."""
        a = RNStream(5, 1)
        b = RNStream(5, 1)
        b.antithetic = True
        for _ in range(5):
            assert a.rand_u01() + b.rand_u01() == pytest.approx(1.0)

    def test_randint_is_inclusive(self):
        """Verify randint covers both end points and nothing else."""
        s = RNStream(2, 1)
        draws = {s.randint(2, 4) for _ in range(300)}
        assert draws == {2, 3, 4}

    def test_uniform_range(self):
        """Verify uniform draws stay in the interval."""
        s = RNStream(2, 1)
        assert all(-3.0 < s.uniform(-3.0, 5.0) < 5.0 for _ in range(100))

    def test_invalid_arguments(self):
        """Verify invalid stream numbers and ranges raise ValueError."""
        with pytest.raises(ValueError):
            RNStream(0, 0)
        with pytest.raises(ValueError):
            RNStream(0, 1).randint(3, 2)
        with pytest.raises(ValueError):
            RNStream(0, 1).normal(0.0, -1.0)


class TestRNStreamProvider:
    """Tests for the stream provider."""

    def test_same_number_same_stream(self):
        """Verify a numbered stream is created once."""
        p = RNStreamProvider(seed=3)
        assert p.stream(4) is p.stream(4)
        assert p.num_streams == 1

    def test_zero_gives_next_unused(self):
        """Verify 0 or None hands out a fresh stream."""
        p = RNStreamProvider(seed=3)
        a = p.stream(0)
        b = p.stream()
        assert a is not b
        assert a.stream_number != b.stream_number
        assert p.num_streams == 2

    def test_reset_all(self):
        """Verify reset_all rewinds every stream."""
        p = RNStreamProvider(seed=3)
        s = p.stream(1)
        first = s.rand_u01()
        s.rand_u01()
        p.reset_all()
        assert s.rand_u01() == first
