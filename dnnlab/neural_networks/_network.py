"""
Feed-forward network: an ordered chain of layers plus one output unit.
"""
import logging

import numpy as np

from ..base import BaseEstimator, SCALAR
from ..common.utils import RNG, as_matrix, create_shuffled_batches, num_observations
from ..exceptions import ConfigurationError, ValidationError
from .callbacks import Callback
from .initializers import Normal
from .outputs import RegressionMSE, output_id

logger = logging.getLogger(__name__)


class Network(BaseEstimator):
    """
    Neural network trained by mini-batch back-propagation.

    Layers are added in order with ``add_layer``; the loss is defined by the
    output unit (``RegressionMSE`` unless replaced with ``set_output``).
    Data are passed with one observation per column.
    The network has no hyperparameters of its own, so ``get_params()``
    returns an empty dict.

    Example:
        >>> net = Network()
        >>> net.add_layer(FullyConnected(2, 10, activation='relu'))
        >>> net.add_layer(FullyConnected(10, 1, activation='sigmoid'))
        >>> net.init(Normal(0.0, 0.5), seed=123)
        >>> net.fit(RMSProp(lr=0.1), x, y, batch_size=4, epochs=100)
    """

    def __init__(self, rng=None):
        """
        Args:
            rng (RNG, optional): Random number generator used for parameter
                initialization and shuffling; ``RNG(1)`` when omitted
        """
        self._rng = rng if rng is not None else RNG(1)
        self._layers = []
        self._output = RegressionMSE()
        self._callback = Callback()

    def add_layer(self, layer):
        """Append ``layer`` to the end of the chain."""
        self._layers.append(layer)
        logger.info("Added layer %d: %r", len(self._layers) - 1, layer)
        return self

    def set_output(self, output):
        """Replace the output unit; ``None`` leaves the network unfit for training."""
        self._output = output
        logger.info("Output unit set to %r", output)
        return self

    def set_callback(self, callback):
        self._callback = callback
        return self

    def set_default_callback(self):
        self._callback = Callback()
        return self

    def num_layers(self):
        return len(self._layers)

    def get_layers(self):
        return list(self._layers)

    def get_output(self):
        return self._output

    @property
    def rng(self):
        return self._rng

    def _check_unit_sizes(self):
        if not self._layers:
            raise ConfigurationError("Network has no layers")
        # Activation layers report size 0 and are transparent to the check
        sized = [(i, layer) for i, layer in enumerate(self._layers)
                 if layer.in_size > 0 or layer.out_size > 0]
        for (i, prev), (j, layer) in zip(sized, sized[1:]):
            if prev.out_size != layer.in_size:
                raise ConfigurationError(
                    f"Unit sizes do not match: layer {i} has {prev.out_size} output units "
                    f"but layer {j} has {layer.in_size} input units")

    def _check_output(self):
        if self._output is None:
            raise ConfigurationError("Network has no output unit")

    def init(self, initializer=None, seed=None):
        """
        Initialize all layer parameters.

        Args:
            initializer (Initializer, optional): Defaults to Normal(0, 0.01)
            seed (int, optional): Reseed the network RNG first when positive

        Raises:
            ConfigurationError: if sizes of adjacent layers do not match
        """
        self._check_unit_sizes()
        if seed is not None and seed > 0:
            self._rng.seed(seed)
        if initializer is None:
            initializer = Normal(0.0, 0.01)

        for layer in self._layers:
            layer.init(initializer, self._rng)
        logger.info("Initialized %d layers with %r", len(self._layers), initializer)
        return self

    def forward(self, x):
        """Run the forward sweep; the result is the last layer's ``output``."""
        if not self._layers:
            raise ConfigurationError("Network has no layers")
        first = self._layers[0]
        if first.in_size > 0 and x.shape[0] != first.in_size:
            raise ConfigurationError(
                f"Input data have incorrect dimension: {x.shape[0]} rows, "
                f"first layer expects {first.in_size}")

        first.forward(x)
        for prev, layer in zip(self._layers, self._layers[1:]):
            layer.forward(prev.output)
        logger.debug("Forward pass: %s -> %s", x.shape, self._layers[-1].output.shape)

    def backward(self, x, y):
        """
        Evaluate the output unit on ``y`` and run the backward sweep.

        ``forward(x)`` must have been called with the same ``x``.
        """
        layers = self._layers
        nlayer = len(layers)
        self._check_output()
        y = np.asarray(y, dtype=SCALAR)
        self._output.check_target(y)
        self._output.evaluate(layers[-1].output, y)

        if nlayer == 1:
            layers[0].backward(x, self._output.gradient())
            return

        layers[-1].backward(layers[-2].output, self._output.gradient())
        for i in range(nlayer - 2, 0, -1):
            layers[i].backward(layers[i - 1].output, layers[i + 1].input_gradient)
        layers[0].backward(x, layers[1].input_gradient)
        logger.debug("Backward pass: loss = %g", self._output.loss())

    def update(self, optimizer):
        for layer in self._layers:
            layer.update(optimizer)

    def fit(self, optimizer, x, y, batch_size, epochs, seed=None):
        """
        Train the network with mini-batch gradient descent.

        Observations are shuffled and cut into batches once; every epoch
        then visits the same batches in the same order.

        Args:
            optimizer (Optimizer): Update rule; its state is reset first
            x (ndarray): Predictors, d x n
            y (ndarray): Targets, p x n, or a vector of n labels
            batch_size (int): Observations per batch; the last one may be smaller
            epochs (int): Number of passes over the data
            seed (int, optional): Reseed the network RNG first when positive

        Returns:
            self
        """
        self._check_unit_sizes()
        self._check_output()
        x = as_matrix(x, "x")
        y = np.asarray(y, dtype=SCALAR)
        if y.ndim not in (1, 2):
            raise ValidationError(f"y must be a 1D or 2D array, got {y.ndim} dimensions")
        self._output.check_target(y)

        optimizer.reset()
        if seed is not None and seed > 0:
            self._rng.seed(seed)

        x_batches, y_batches = create_shuffled_batches(x, y, batch_size, self._rng)
        nbatch = len(x_batches)
        logger.info("Training on %d observations: %d batches x %d epochs with %s",
                    x.shape[1], nbatch, epochs, optimizer.optimizer_type())

        callback = self._callback
        callback.total_batches = nbatch
        callback.total_epochs = epochs
        warned = False
        for epoch in range(epochs):
            callback.epoch_index = epoch
            for i in range(nbatch):
                callback.batch_index = i
                callback.pre_batch(self, x_batches[i], y_batches[i])

                self.forward(x_batches[i])
                self.backward(x_batches[i], y_batches[i])
                self.update(optimizer)

                callback.post_batch(self, x_batches[i], y_batches[i])

                if not warned and not np.isfinite(self._output.loss()):
                    logger.warning("Non-finite loss at epoch %d, batch %d", epoch, i)
                    warned = True

        return self

    def predict(self, x):
        """
        Args:
            x (ndarray): Predictors, d x n

        Returns:
            ndarray: Output of the last layer, one column per observation
        """
        x = as_matrix(x, "x")
        self.forward(x)
        return self._layers[-1].output.copy()

    def get_parameters(self):
        """List of flat parameter vectors, one per layer."""
        return [layer.get_parameters() for layer in self._layers]

    def set_parameters(self, params):
        if len(params) != len(self._layers):
            raise ConfigurationError(
                f"Parameter list has {len(params)} entries for {len(self._layers)} layers")
        for layer, param in zip(self._layers, params):
            layer.set_parameters(param)

    def get_derivatives(self):
        """List of flat parameter gradients, one per layer."""
        return [layer.get_derivatives() for layer in self._layers]

    def get_meta_info(self):
        """Layer and output types with their geometry, keyed by name."""
        meta = {'Nlayers': len(self._layers)}
        for i, layer in enumerate(self._layers):
            layer.fill_meta_info(meta, i)
        meta['OutputLayer'] = output_id(self._output.output_type())
        return meta

    def check_gradient(self, x, y, npoints, seed=None):
        """
        Compare analytic parameter gradients with central differences of
        the loss at ``npoints`` randomly chosen parameters.

        Returns:
            ndarray: (npoints, 2) array of (analytic, numeric) derivatives
        """
        self._check_unit_sizes()
        self._check_output()
        if seed is not None and seed > 0:
            self._rng.seed(seed)
        x = as_matrix(x, "x")
        y = np.asarray(y, dtype=SCALAR)
        if num_observations(y) != x.shape[1]:
            raise ValidationError("Input X and Y have different number of observations")
        self._output.check_target(y)

        self.forward(x)
        self.backward(x, y)
        params = self.get_parameters()
        derivs = self.get_derivatives()
        candidates = [i for i, p in enumerate(params) if p.size > 0]
        if not candidates:
            raise ConfigurationError("Network has no trainable parameters")

        eps = 1e-5
        result = np.zeros((npoints, 2), dtype=SCALAR)
        for k in range(npoints):
            layer = candidates[int(self._rng.rand() * len(candidates))]
            index = int(self._rng.rand() * params[layer].size)
            old = params[layer][index]

            params[layer][index] = old - eps
            self._layers[layer].set_parameters(params[layer])
            self.forward(x)
            self._output.evaluate(self._layers[-1].output, y)
            loss_minus = self._output.loss()

            params[layer][index] = old + eps
            self._layers[layer].set_parameters(params[layer])
            self.forward(x)
            self._output.evaluate(self._layers[-1].output, y)
            loss_plus = self._output.loss()

            params[layer][index] = old
            self._layers[layer].set_parameters(params[layer])
            result[k] = derivs[layer][index], (loss_plus - loss_minus) / (2.0 * eps)

        return result

    def __repr__(self):
        return f"Network(layers={self._layers!r}, output={self._output!r})"
