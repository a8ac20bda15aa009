"""Randomness boundary for demo and test data."""
from __future__ import annotations

from typing import List, Protocol, Sequence, TypeVar

import numpy as np

T = TypeVar("T")


class RandomSource(Protocol):
    """Everything the synthetic generator is allowed to draw."""

    def random(self) -> float:
        ...

    def uniform(self, low: float, high: float) -> float:
        ...

    def normal(self, mean: float = 0.0, std_dev: float = 1.0) -> float:
        ...

    def integers(self, low: int, high: int) -> int:
        """Inclusive of both ends."""

    def choice(self, options: Sequence[T], weights: Sequence[float] | None = None) -> T:
        ...

    def sample(self, options: Sequence[T], count: int) -> List[T]:
        ...


class SeededRandomSource:
    """:class:`RandomSource` backed by ``numpy.random.default_rng``."""

    def __init__(self, seed: int = 42) -> None:
        self.seed = seed
        self._rng = np.random.default_rng(seed)

    def random(self) -> float:
        return float(self._rng.random())

    def uniform(self, low: float, high: float) -> float:
        return float(self._rng.uniform(low, high))

    def normal(self, mean: float = 0.0, std_dev: float = 1.0) -> float:
        return float(self._rng.normal(mean, std_dev))

    def integers(self, low: int, high: int) -> int:
        return int(self._rng.integers(low, high, endpoint=True))

    def choice(self, options: Sequence[T], weights: Sequence[float] | None = None) -> T:
        probabilities = None
        if weights is not None:
            total = float(sum(weights))
            probabilities = [weight / total for weight in weights]
        index = int(self._rng.choice(len(options), p=probabilities))
        return options[index]

    def sample(self, options: Sequence[T], count: int) -> List[T]:
        indices = self._rng.choice(len(options), size=min(count, len(options)), replace=False)
        return [options[int(index)] for index in sorted(indices)]


__all__ = ["RandomSource", "SeededRandomSource"]
