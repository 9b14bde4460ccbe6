"""
Parameter initializers.
"""
from ..base import BaseComponent


class Initializer(BaseComponent):
    """Base class for parameter initializers."""

    def initialize(self, buffer, rng):
        """
        Fill ``buffer`` in place with random values.

        Args:
            buffer (ndarray): Parameter array to overwrite
            rng (RNG): Random number generator
        """
        raise NotImplementedError


class Normal(Initializer):
    """
    Draw parameters from N(mu, sigma^2).
    """
    _hyper_params = ('mu', 'sigma')

    def __init__(self, mu=0.0, sigma=0.1):
        self.mu = mu
        self.sigma = sigma

    def initialize(self, buffer, rng):
        buffer[...] = rng.normal(self.mu, self.sigma, buffer.shape)


class Uniform(Initializer):
    """
    Draw parameters uniformly from [a, b).
    """
    _hyper_params = ('a', 'b')

    def __init__(self, a=0.0, b=1.0):
        self.a = min(a, b)
        self.b = max(a, b)

    def initialize(self, buffer, rng):
        buffer[...] = rng.uniform(self.a, self.b, buffer.shape)
