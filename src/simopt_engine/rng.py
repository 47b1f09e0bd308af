"""Numbered random-number streams with substream and antithetic control.

Each stream is a numpy ``Generator`` seeded from a ``SeedSequence`` whose
spawn key is ``(stream_number, substream_number)``, so resetting or
advancing a stream is just re-seeding from a different key.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

import numpy as np
from scipy.stats import norm

_LOGGER = logging.getLogger(__name__)


class RNStream:
    """A reproducible stream of U(0,1) numbers and the variates built on it."""

    def __init__(self, seed: int, stream_number: int):
        if stream_number < 1:
            raise ValueError("The stream number must be >= 1")
        self.seed = int(seed)
        self.stream_number = int(stream_number)
        self.substream_number = 0
        self.antithetic = False
        self._gen = self._make_generator()

    def _make_generator(self) -> np.random.Generator:
        ss = np.random.SeedSequence(self.seed, spawn_key=(self.stream_number, self.substream_number))
        return np.random.default_rng(ss)

    def reset_start_stream(self) -> None:
        self.substream_number = 0
        self._gen = self._make_generator()

    def reset_start_substream(self) -> None:
        self._gen = self._make_generator()

    def advance_to_next_substream(self) -> None:
        self.substream_number += 1
        self._gen = self._make_generator()

    def rand_u01(self) -> float:
        u = float(self._gen.random())
        # keep u strictly inside (0,1) so inverse transforms stay finite
        while u == 0.0:
            u = float(self._gen.random())
        return 1.0 - u if self.antithetic else u

    def uniform(self, low: float, high: float) -> float:
        if low > high:
            raise ValueError(f"uniform: low ({low}) must be <= high ({high})")
        return low + (high - low) * self.rand_u01()

    def uniforms(self, low: np.ndarray, high: np.ndarray) -> np.ndarray:
        low = np.asarray(low, dtype=np.float64)
        high = np.asarray(high, dtype=np.float64)
        u = np.array([self.rand_u01() for _ in range(low.size)], dtype=np.float64)
        return low + (high - low) * u

    def normal(self, mean: float = 0.0, sd: float = 1.0) -> float:
        if sd < 0.0:
            raise ValueError("The standard deviation must be >= 0")
        return float(mean + sd * norm.ppf(self.rand_u01()))

    def normals(self, means: np.ndarray, sds: np.ndarray) -> np.ndarray:
        means = np.asarray(means, dtype=np.float64)
        sds = np.asarray(sds, dtype=np.float64)
        u = np.array([self.rand_u01() for _ in range(means.size)], dtype=np.float64)
        return means + sds * norm.ppf(u)

    def randint(self, low: int, high: int) -> int:
        """Integer uniformly distributed on [low, high] (both inclusive)."""
        if low > high:
            raise ValueError(f"randint: low ({low}) must be <= high ({high})")
        k = int(np.floor(self.rand_u01() * (high - low + 1)))
        return int(low + min(k, high - low))

    def __repr__(self) -> str:
        return (
            f"RNStream(seed={self.seed}, stream={self.stream_number}, "
            f"substream={self.substream_number}, antithetic={self.antithetic})"
        )


class RNStreamProvider:
    """Hands out numbered streams; asking twice for a number returns the same stream."""

    def __init__(self, seed: int = 0):
        self.seed = int(seed)
        self._streams: Dict[int, RNStream] = {}
        self._last_number = 0

    def stream(self, stream_number: Optional[int] = None) -> RNStream:
        """The stream with the given number, or the next unused one when None or 0."""
        if not stream_number:
            return self.next_stream()
        if stream_number < 0:
            raise ValueError("The stream number must be >= 0")
        if stream_number not in self._streams:
            self._streams[stream_number] = RNStream(self.seed, stream_number)
            self._last_number = max(self._last_number, stream_number)
        return self._streams[stream_number]

    def next_stream(self) -> RNStream:
        number = self._last_number + 1
        while number in self._streams:
            number += 1
        _LOGGER.debug("RNStreamProvider: created stream %d", number)
        return self.stream(number)

    def stream_number(self, stream: RNStream) -> int:
        return stream.stream_number

    @property
    def num_streams(self) -> int:
        return len(self._streams)

    def reset_all(self) -> None:
        for s in self._streams.values():
            s.reset_start_stream()
