"""
Parameter-update rules for neural networks.

Layers call ``update(param_id, gradient, parameter)`` once per parameter
group. ``param_id`` is the identifier a layer issues for each of its
parameter arrays when it is constructed, so stateful optimizers keep their
per-group history under that id for the whole training run.
"""
import numpy as np

from ..base import BaseComponent


class Optimizer(BaseComponent):
    """Base class for optimizers."""

    def reset(self):
        """Forget all accumulated state. Called once at the start of ``fit``."""

    def update(self, param_id, gradient, parameter):
        """
        Update ``parameter`` in place.

        Args:
            param_id (str): Identifier of the parameter group
            gradient (ndarray): Gradient of the loss w.r.t. ``parameter``
            parameter (ndarray): Current parameter values, modified in place
        """
        raise NotImplementedError

    def optimizer_type(self):
        return type(self).__name__


class SGDOptimizer(Optimizer):
    """
    Stochastic Gradient Descent with L2 weight decay.
    """
    _hyper_params = ('lr', 'decay')

    def __init__(self, lr=0.001, decay=0.0):
        """
        Initialize SGD optimizer.

        Args:
            lr (float): Learning rate
            decay (float): Weight decay (L2 penalty) coefficient
        """
        self.lr = lr
        self.decay = decay

    def update(self, param_id, gradient, parameter):
        parameter -= self.lr * (gradient + self.decay * parameter)

    def optimizer_type(self):
        return "SGD"


class AdaGradOptimizer(Optimizer):
    """
    AdaGrad: scales each step by the running sum of squared gradients.
    """
    _hyper_params = ('lr', 'eps')

    def __init__(self, lr=0.001, eps=1e-6):
        """
        Initialize AdaGrad optimizer.

        Args:
            lr (float): Learning rate
            eps (float): Small constant for numerical stability
        """
        self.lr = lr
        self.eps = eps
        self.history = {}

    def reset(self):
        self.history.clear()

    def update(self, param_id, gradient, parameter):
        if param_id not in self.history:
            self.history[param_id] = np.zeros_like(gradient)
        grad_square = self.history[param_id]

        grad_square += gradient ** 2
        parameter -= self.lr * gradient / (np.sqrt(grad_square) + self.eps)

    def optimizer_type(self):
        return "AdaGrad"


class RMSPropOptimizer(Optimizer):
    """
    RMSProp: scales each step by an exponentially decayed average of
    squared gradients.
    """
    _hyper_params = ('lr', 'eps', 'gamma')

    def __init__(self, lr=0.001, eps=1e-6, gamma=0.9):
        """
        Initialize RMSProp optimizer.

        Args:
            lr (float): Learning rate
            eps (float): Small constant for numerical stability
            gamma (float): Decay factor of the running average
        """
        self.lr = lr
        self.eps = eps
        self.gamma = gamma
        self.history = {}

    def reset(self):
        self.history.clear()

    def update(self, param_id, gradient, parameter):
        if param_id not in self.history:
            self.history[param_id] = np.zeros_like(gradient)
        grad_square = self.history[param_id]

        grad_square *= self.gamma
        grad_square += (1 - self.gamma) * gradient ** 2
        parameter -= self.lr * gradient / np.sqrt(grad_square + self.eps)

    def optimizer_type(self):
        return "RMSProp"


class AdamOptimizer(Optimizer):
    """
    Adam optimizer implementation.

    First and second moment estimates are kept per parameter group. The
    bias-correction powers beta1^t and beta2^t are global: they advance on
    every call to ``update`` regardless of the group.
    """
    _hyper_params = ('lr', 'eps', 'beta1', 'beta2')

    def __init__(self, lr=0.001, eps=1e-6, beta1=0.9, beta2=0.999):
        """
        Initialize Adam optimizer.

        Args:
            lr (float): Learning rate
            eps (float): Small constant for numerical stability
            beta1 (float): Exponential decay rate for first moment
            beta2 (float): Exponential decay rate for second moment
        """
        self.lr = lr
        self.eps = eps
        self.beta1 = beta1
        self.beta2 = beta2
        self.moments = {}
        self.beta1_t = beta1
        self.beta2_t = beta2

    def reset(self):
        self.moments.clear()
        self.beta1_t = self.beta1
        self.beta2_t = self.beta2

    def update(self, param_id, gradient, parameter):
        if param_id not in self.moments:
            self.moments[param_id] = {
                'm': np.zeros_like(gradient),
                'v': np.zeros_like(gradient)
            }
        moments = self.moments[param_id]

        # Update biased first and second moment estimates
        moments['m'] = self.beta1 * moments['m'] + (1 - self.beta1) * gradient
        moments['v'] = self.beta2 * moments['v'] + \
            (1 - self.beta2) * (gradient ** 2)

        # Correction coefficients
        correct1 = 1.0 / (1.0 - self.beta1_t)
        correct2 = 1.0 / np.sqrt(1.0 - self.beta2_t)

        parameter -= (self.lr * correct1) * moments['m'] / \
            (correct2 * np.sqrt(moments['v']) + self.eps)

        self.beta1_t *= self.beta1
        self.beta2_t *= self.beta2

    def optimizer_type(self):
        return "Adam"


# Short aliases
SGD = SGDOptimizer
AdaGrad = AdaGradOptimizer
RMSProp = RMSPropOptimizer
Adam = AdamOptimizer


def get_optimizer(solver='adam', **kwargs):
    """
    Factory function to get optimizer instances.

    Args:
        solver (str): Optimizer type ('sgd', 'adagrad', 'rmsprop', 'adam')
        **kwargs: Optimizer-specific parameters

    Returns:
        Optimizer instance
    """
    if solver == 'sgd':
        return SGDOptimizer(**kwargs)
    elif solver == 'adagrad':
        return AdaGradOptimizer(**kwargs)
    elif solver == 'rmsprop':
        return RMSPropOptimizer(**kwargs)
    elif solver == 'adam':
        return AdamOptimizer(**kwargs)
    else:
        raise ValueError(f"Unknown solver: {solver}")
