"""Seedable random sequence generators for Monte Carlo pricing.

Draws are never taken from global RNG state. Each generator owns a
``numpy.random.SeedSequence``; the draws for block ``k`` come from the child
sequence with ``spawn_key=(stream, k)``, so any block can be regenerated on
its own, in any order, on any thread, and always yields the same numbers.
Different streams (e.g. the path normals and the bridge uniforms) built from
the same seed are statistically independent.
"""

from __future__ import annotations

import numpy as np

from .exceptions import ValidationError

__all__ = [
    "UniformSequenceGenerator",
    "GaussianSequenceGenerator",
]


class _SequenceGenerator:
    """Common plumbing: dimension, seed handling, sequential and block access."""

    def __init__(self, dimension: int, seed: int | None = None, stream: int = 0) -> None:
        if dimension < 1:
            raise ValidationError(f"dimension must be >= 1, got {dimension}")
        if stream < 0:
            raise ValidationError(f"stream must be >= 0, got {stream}")
        self.dimension = int(dimension)
        self.stream = int(stream)
        # Without a seed, fresh entropy is drawn once; blocks stay reproducible
        # for the lifetime of this generator.
        self._entropy = np.random.SeedSequence(seed).entropy
        self._rng = np.random.default_rng(self._seed_sequence(None))

    def _seed_sequence(self, block_index: int | None) -> np.random.SeedSequence:
        if block_index is None:
            return np.random.SeedSequence(self._entropy, spawn_key=(self.stream,))
        return np.random.SeedSequence(self._entropy, spawn_key=(self.stream, int(block_index)))

    def _draw(self, rng: np.random.Generator, shape: tuple[int, ...]) -> np.ndarray:
        raise NotImplementedError

    def next_sequence(self) -> np.ndarray:
        """Next draw vector of length ``dimension`` from the sequential stream."""
        return self._draw(self._rng, (self.dimension,))

    def block(self, index: int, size: int) -> np.ndarray:
        """Draws of block ``index`` with shape ``(size, dimension)``."""
        if index < 0:
            raise ValidationError(f"block index must be >= 0, got {index}")
        if size < 1:
            raise ValidationError(f"block size must be >= 1, got {size}")
        rng = np.random.default_rng(self._seed_sequence(index))
        return self._draw(rng, (int(size), self.dimension))


class UniformSequenceGenerator(_SequenceGenerator):
    """Uniform draws on the half-open interval (0, 1].

    Zero is excluded so that ``log(u)`` is always finite.
    """

    def _draw(self, rng: np.random.Generator, shape: tuple[int, ...]) -> np.ndarray:
        return 1.0 - rng.random(shape)


class GaussianSequenceGenerator(_SequenceGenerator):
    """Standard normal draws."""

    def _draw(self, rng: np.random.Generator, shape: tuple[int, ...]) -> np.ndarray:
        return rng.standard_normal(shape)
