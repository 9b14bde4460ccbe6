"""
Neural network layers implementation.

Every layer works on batches stored as 2-D arrays with one observation per
column. A layer is constructed with a fixed shape, ``init`` allocates (and
optionally randomizes) its parameters, and then it is driven through
repeated ``forward`` / ``backward`` / ``update`` cycles by a Network.

Buffers kept by a layer after each phase:

- ``forward``: ``output`` (out_size x nobs); layers with an embedded
  activation also keep the pre-activation ``z``.
- ``backward``: ``input_gradient`` (in_size x nobs), the parameter
  gradients (``<name>_grad``), and ``dlz`` = dL/dz for layers with an
  embedded activation.
"""
import itertools

import numpy as np

from ..base import SCALAR
from ..exceptions import ConfigurationError

_param_counter = itertools.count()


def new_param_id(kind):
    """Issue a process-wide unique identifier for one parameter group."""
    return f"{kind}_{next(_param_counter)}"


# Enumerations used when exporting the network structure
LAYER_IDS = {
    'FullyConnected': 0,
    'Convolutional': 1,
    'MaxPooling': 2,
    'Identity': 99,
    'ReLU': 100,
    'Sigmoid': 101,
    'Softmax': 102,
    'Tanh': 103,
    'Mish': 104,
}


def layer_id(layer_type):
    """Convert a layer type string to its integer id."""
    if layer_type not in LAYER_IDS:
        raise ValueError(f"Layer is not of a known type: {layer_type}")
    return LAYER_IDS[layer_type]


class Layer:
    """
    Base class for all neural network layers.

    Subclasses with trainable parameters list them in ``_param_names``,
    report their shapes through ``_param_shapes`` and keep the matching
    gradients in ``<name>_grad`` attributes.
    """
    _param_names = ()

    def __init__(self, in_size, out_size):
        """
        Args:
            in_size (int): Number of input units; must equal the number of
                output units of the previous layer. Zero for layers that are
                shape-transparent.
            out_size (int): Number of output units.
        """
        self._in_size = in_size
        self._out_size = out_size
        self._param_ids = {name: new_param_id(name) for name in self._param_names}
        self.output = None
        self.input_gradient = None

    @property
    def in_size(self):
        """Number of input units of this layer."""
        return self._in_size

    @property
    def out_size(self):
        """Number of output units of this layer."""
        return self._out_size

    def _param_shapes(self):
        return {}

    @property
    def initialized(self):
        return all(getattr(self, name, None) is not None for name in self._param_names)

    def init(self, initializer=None, rng=None):
        """
        Allocate parameter and gradient storage.

        Args:
            initializer (Initializer, optional): Fills each parameter
                array; parameters are zero when omitted
            rng (RNG, optional): Random number generator for the initializer
        """
        shapes = self._param_shapes()
        for name in self._param_names:
            param = np.zeros(shapes[name], dtype=SCALAR)
            if initializer is not None:
                initializer.initialize(param, rng)
            setattr(self, name, param)
            setattr(self, name + '_grad', np.zeros(shapes[name], dtype=SCALAR))

    def forward(self, prev_output):
        """
        Compute ``output`` from the previous layer's output.

        Args:
            prev_output (ndarray): in_size x nobs matrix, one observation per column
        """
        raise NotImplementedError

    def backward(self, prev_output, next_gradient):
        """
        Compute parameter gradients and ``input_gradient``.

        Args:
            prev_output (ndarray): The same input that was passed to ``forward``
            next_gradient (ndarray): dL/d(output), out_size x nobs
        """
        raise NotImplementedError

    def update(self, optimizer):
        """Hand every (gradient, parameter) pair to the optimizer."""
        for name in self._param_names:
            optimizer.update(self._param_ids[name],
                             getattr(self, name + '_grad'),
                             getattr(self, name))

    def get_parameters(self):
        """Serialized parameter values, in ``_param_names`` order."""
        if not self._param_names:
            return np.empty(0, dtype=SCALAR)
        self._check_initialized()
        return np.concatenate([getattr(self, name).ravel() for name in self._param_names])

    def set_parameters(self, param):
        """
        Overwrite the parameters from a flat vector, keeping the storage.
        """
        param = np.asarray(param, dtype=SCALAR).ravel()
        if not self.initialized:
            self.init()
        sizes = [getattr(self, name).size for name in self._param_names]
        if param.size != sum(sizes):
            raise ConfigurationError(
                f"[class {self.layer_type()}]: Parameter size does not match "
                f"({param.size} != {sum(sizes)})")
        start = 0
        for name, size in zip(self._param_names, sizes):
            target = getattr(self, name)
            target[...] = param[start:start + size].reshape(target.shape)
            start += size

    def get_derivatives(self):
        """Serialized parameter gradients, laid out like ``get_parameters``."""
        if not self._param_names:
            return np.empty(0, dtype=SCALAR)
        self._check_initialized()
        return np.concatenate([getattr(self, name + '_grad').ravel()
                               for name in self._param_names])

    def layer_type(self):
        return type(self).__name__

    def activation_type(self):
        return "Identity"

    def fill_meta_info(self, meta, index):
        """Record the layer type and geometry under keys suffixed with ``index``."""
        meta[f"Layer{index}"] = layer_id(self.layer_type())
        meta[f"Activation{index}"] = layer_id(self.activation_type())

    def _check_initialized(self):
        if not self.initialized:
            raise ConfigurationError(
                f"[class {self.layer_type()}]: Layer parameters are not initialized, call init() first")

    def _check_input(self, prev_output):
        if prev_output.ndim != 2 or prev_output.shape[0] != self._in_size:
            raise ConfigurationError(
                f"[class {self.layer_type()}]: Input data have incorrect dimension "
                f"{prev_output.shape}, expected ({self._in_size}, nobs)")

    def _check_gradient(self, next_gradient, nobs):
        if next_gradient.shape != (self._out_size, nobs):
            raise ConfigurationError(
                f"[class {self.layer_type()}]: Gradient data have incorrect dimension "
                f"{next_gradient.shape}, expected ({self._out_size}, {nobs})")

    def __repr__(self):
        return f"{self.layer_type()}(in_size={self._in_size}, out_size={self._out_size})"


class Activation(Layer):
    """
    Base class of elementwise (or column-wise) activations.

    Usable both as a standalone, shape-transparent layer (``in_size`` and
    ``out_size`` are zero) and as the activation embedded in another layer,
    which only calls ``activate`` and ``apply_jacobian``.
    """

    def __init__(self):
        super().__init__(0, 0)

    def activate(self, z):
        """Return a = f(z)."""
        raise NotImplementedError

    def apply_jacobian(self, z, a, f):
        """Return g = J f where J = da/dz, given z, a = f(z) and f = dL/da."""
        raise NotImplementedError

    def forward(self, prev_output):
        self.output = self.activate(prev_output)

    def backward(self, prev_output, next_gradient):
        self.input_gradient = self.apply_jacobian(prev_output, self.output, next_gradient)

    def activation_type(self):
        return self.layer_type()

    def __repr__(self):
        return f"{self.layer_type()}()"


class Identity(Activation):
    """Identity activation: f(z) = z"""

    def activate(self, z):
        return z.copy()

    def apply_jacobian(self, z, a, f):
        return f.copy()


class ReLU(Activation):
    """ReLU activation layer: f(z) = max(0, z)"""

    def activate(self, z):
        return np.maximum(z, 0)

    def apply_jacobian(self, z, a, f):
        # J = diag(a > 0)
        return np.where(a > 0, f, 0.0)


class Sigmoid(Activation):
    """Sigmoid activation layer: f(z) = 1 / (1 + exp(-z))"""

    def activate(self, z):
        # Clip input to prevent overflow
        return 1.0 / (1.0 + np.exp(-np.clip(z, -500, 500)))

    def apply_jacobian(self, z, a, f):
        return a * (1.0 - a) * f


class Tanh(Activation):
    """Tanh activation layer."""

    def activate(self, z):
        return np.tanh(z)

    def apply_jacobian(self, z, a, f):
        return (1.0 - a ** 2) * f


class Softmax(Activation):
    """
    Softmax over each column (observation).

    The Jacobian of one column is diag(a) - a a', so
    g = a * (f - a'f).
    """

    def activate(self, z):
        # Subtract max for numerical stability
        exp_z = np.exp(z - np.max(z, axis=0, keepdims=True))
        return exp_z / np.sum(exp_z, axis=0, keepdims=True)

    def apply_jacobian(self, z, a, f):
        a_dot_f = np.sum(a * f, axis=0, keepdims=True)
        return a * (f - a_dot_f)


class Mish(Activation):
    """
    Mish activation: f(z) = z * tanh(softplus(z)).
    """

    def activate(self, z):
        # h(z) = tanh(softplus(z)); with s = exp(-|z|), t = 1 + s
        # h = (t^2 - s^2) / (t^2 + s^2) for z >= 0, (t^2 - 1) / (t^2 + 1) otherwise
        s = np.exp(-np.abs(z))
        t2 = (1.0 + s) ** 2
        s2 = np.where(z >= 0, s ** 2, 1.0)
        return z * (t2 - s2) / (t2 + s2)

    def apply_jacobian(self, z, a, f):
        # Mish'(z) = h + (z - a * h) * sigmoid(z), h = a / z and h(0) = 0.6
        h = np.divide(a, z, out=np.full_like(a, 0.6), where=z != 0)
        sigmoid = 0.5 * (1.0 + np.tanh(0.5 * z))
        return (h + (z - a * h) * sigmoid) * f


ACTIVATIONS = {
    'identity': Identity,
    'relu': ReLU,
    'sigmoid': Sigmoid,
    'tanh': Tanh,
    'softmax': Softmax,
    'mish': Mish,
}


def get_activation(activation='identity'):
    """
    Resolve an activation name or instance.

    Args:
        activation (str or Activation): e.g. 'relu', 'sigmoid', or an instance

    Returns:
        Activation instance
    """
    if isinstance(activation, Activation):
        return activation
    if activation is None:
        return Identity()
    key = str(activation).lower()
    if key not in ACTIVATIONS:
        raise ValueError(f"Unsupported activation: {activation}. "
                         f"Choose from {list(ACTIVATIONS)}.")
    return ACTIVATIONS[key]()


class FullyConnected(Layer):
    """
    Fully connected layer: z = W' x + b, output = f(z).

    ``weight`` has shape (in_size, out_size) and ``bias`` shape (out_size,).
    """
    _param_names = ('weight', 'bias')

    def __init__(self, in_size, out_size, activation='identity'):
        """
        Args:
            in_size (int): Number of input units
            out_size (int): Number of output units
            activation (str or Activation): Activation applied to z
        """
        if in_size <= 0 or out_size <= 0:
            raise ConfigurationError(
                f"[class FullyConnected]: Sizes must be positive, got ({in_size}, {out_size})")
        super().__init__(in_size, out_size)
        self.activation = get_activation(activation)
        self.weight = None
        self.bias = None
        self.weight_grad = None
        self.bias_grad = None
        self.z = None
        self.dlz = None

    def _param_shapes(self):
        return {'weight': (self._in_size, self._out_size), 'bias': (self._out_size,)}

    def forward(self, prev_output):
        self._check_initialized()
        self._check_input(prev_output)
        self.z = self.weight.T @ prev_output + self.bias[:, np.newaxis]
        self.output = self.activation.activate(self.z)

    def backward(self, prev_output, next_gradient):
        nobs = prev_output.shape[1]
        self._check_gradient(next_gradient, nobs)
        self.dlz = self.activation.apply_jacobian(self.z, self.output, next_gradient)

        # dL/dW = x (dL/dz)', dL/db = dL/dz, both averaged over observations
        self.weight_grad[...] = prev_output @ self.dlz.T / nobs
        self.bias_grad[...] = np.mean(self.dlz, axis=1)
        self.input_gradient = self.weight @ self.dlz

    def activation_type(self):
        return self.activation.layer_type()

    def fill_meta_info(self, meta, index):
        super().fill_meta_info(meta, index)
        meta[f"in_size{index}"] = self._in_size
        meta[f"out_size{index}"] = self._out_size

    def __repr__(self):
        return (f"FullyConnected(in_size={self._in_size}, "
                f"out_size={self._out_size}, activation={self.activation_type()!r})")
