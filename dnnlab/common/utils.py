import numpy as np

from ..base import SCALAR
from ..exceptions import ValidationError


class RNG:
    """
    Random number generator shared by a network for parameter
    initialization and mini-batch shuffling.

    Wraps ``numpy.random.Generator`` so that one object can be reseeded
    and passed explicitly to every consumer.
    """

    def __init__(self, seed=1):
        self._generator = np.random.default_rng(seed)

    def seed(self, value):
        """Reset the generator state from ``value``."""
        self._generator = np.random.default_rng(value)

    def rand(self):
        """Draw one float uniformly from [0, 1)."""
        return float(self._generator.random())

    def normal(self, mu, sigma, size):
        return self._generator.normal(mu, sigma, size)

    def uniform(self, low, high, size):
        return self._generator.uniform(low, high, size)

    def permutation(self, n):
        # Generator.permutation is a Fisher-Yates shuffle of arange(n)
        return self._generator.permutation(n)


def as_matrix(data, name="data"):
    """Return ``data`` as a 2-D float array with one observation per column."""
    mat = np.asarray(data, dtype=SCALAR)
    if mat.ndim == 1:
        mat = mat.reshape(1, -1)
    if mat.ndim != 2:
        raise ValueError(f"{name} must be a 2D array, got {mat.ndim} dimensions")
    return mat


def num_observations(target):
    """Observations are columns of a target matrix or entries of a label vector."""
    return target.shape[-1]


def subset_observations(data, ids):
    if data.ndim == 1:
        return data[ids]
    return data[:, ids]


def create_shuffled_indices(nobs, batch_size, rng):
    """
    Shuffle the observation ids 0..nobs-1 and cut them into contiguous
    groups of ``batch_size``; the last group holds the remainder.
    """
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    if nobs <= 0:
        raise ValueError("Cannot create batches without observations")
    ids = rng.permutation(nobs)
    batch_size = min(nobs, batch_size)
    return [ids[start:start + batch_size] for start in range(0, nobs, batch_size)]


def create_shuffled_batches(x, y, batch_size, rng):
    """
    Split predictors ``x`` (d x n) and responses ``y`` (p x n, or a label
    vector of length n) into shuffled mini-batches.

    Returns:
        tuple: (x_batches, y_batches) lists of equal length
    """
    nobs = x.shape[1]
    if num_observations(y) != nobs:
        raise ValidationError(
            "Input X and Y have different number of observations "
            f"({nobs} != {num_observations(y)})")

    x_batches = []
    y_batches = []
    for ids in create_shuffled_indices(nobs, batch_size, rng):
        x_batches.append(x[:, ids])
        y_batches.append(subset_observations(y, ids))
    return x_batches, y_batches
