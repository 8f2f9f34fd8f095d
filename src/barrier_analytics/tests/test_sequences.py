"""Tests for the seedable random sequence generators."""

import numpy as np
import pytest

from barrier_analytics.exceptions import ValidationError
from barrier_analytics.sequences import GaussianSequenceGenerator, UniformSequenceGenerator


class TestBlocks:
    def test_block_is_reproducible(self):
        gen = GaussianSequenceGenerator(8, seed=5)
        np.testing.assert_array_equal(gen.block(3, 100), gen.block(3, 100))

    def test_blocks_do_not_depend_on_generator_instance(self):
        a = GaussianSequenceGenerator(8, seed=5).block(2, 50)
        b = GaussianSequenceGenerator(8, seed=5).block(2, 50)
        np.testing.assert_array_equal(a, b)

    def test_blocks_differ(self):
        gen = GaussianSequenceGenerator(8, seed=5)
        assert not np.allclose(gen.block(0, 10), gen.block(1, 10))

    def test_streams_differ(self):
        a = GaussianSequenceGenerator(8, seed=5, stream=0).block(0, 10)
        b = GaussianSequenceGenerator(8, seed=5, stream=1).block(0, 10)
        assert not np.allclose(a, b)

    def test_block_prefix_is_stable(self):
        """A shorter block is the head of a longer one."""
        gen = UniformSequenceGenerator(4, seed=9)
        np.testing.assert_array_equal(gen.block(0, 10), gen.block(0, 20)[:10])

    def test_shape(self):
        assert GaussianSequenceGenerator(6, seed=1).block(0, 7).shape == (7, 6)


class TestDraws:
    def test_uniforms_exclude_zero(self):
        u = UniformSequenceGenerator(16, seed=2).block(0, 5000)
        assert np.all(u > 0.0)
        assert np.all(u <= 1.0)
        assert np.all(np.isfinite(np.log(u)))

    def test_gaussian_moments(self):
        z = GaussianSequenceGenerator(4, seed=3).block(0, 50000)
        assert np.abs(z.mean(axis=0)).max() < 0.02
        assert np.abs(z.std(axis=0) - 1.0).max() < 0.02

    def test_next_sequence_advances(self):
        gen = UniformSequenceGenerator(3, seed=4)
        first = gen.next_sequence()
        second = gen.next_sequence()
        assert first.shape == (3,)
        assert not np.allclose(first, second)

    def test_unseeded_generators_still_reproduce_their_blocks(self):
        gen = GaussianSequenceGenerator(2)
        np.testing.assert_array_equal(gen.block(0, 5), gen.block(0, 5))


class TestValidation:
    def test_dimension(self):
        with pytest.raises(ValidationError, match="dimension"):
            GaussianSequenceGenerator(0, seed=1)

    def test_stream(self):
        with pytest.raises(ValidationError, match="stream"):
            UniformSequenceGenerator(1, seed=1, stream=-1)

    def test_block_index(self):
        with pytest.raises(ValidationError, match="block index"):
            UniformSequenceGenerator(1, seed=1).block(-1, 5)

    def test_block_size(self):
        with pytest.raises(ValidationError, match="block size"):
            UniformSequenceGenerator(1, seed=1).block(0, 0)
