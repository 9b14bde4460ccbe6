"""
Output units: loss functions evaluated on the last layer's output.

An output unit turns the last layer's output and the target batch into the
gradient ``dL/d(output)`` that seeds back-propagation. The gradient is per
observation; averaging over the batch happens in the layers. ``loss()``
reports the batch loss averaged over observations.
"""
import numpy as np

from ..exceptions import ValidationError

OUTPUT_IDS = {
    'RegressionMSE': 0,
    'BinaryClassEntropy': 1,
    'MultiClassEntropy': 2,
}


def output_id(output_type):
    """Convert an output type string to its integer id."""
    if output_type not in OUTPUT_IDS:
        raise ValueError(f"Output is not of a known type: {output_type}")
    return OUTPUT_IDS[output_type]


class Output:
    """Base class of output units."""

    def __init__(self):
        self._din = None
        self._loss = np.nan

    def check_target(self, target):
        """
        Validate target data; called before every ``evaluate``.

        Raises:
            ValidationError: if ``target`` is not a valid encoding for this unit
        """

    def evaluate(self, prev_layer_data, target):
        """
        Compute and store the gradient of the loss w.r.t. ``prev_layer_data``.

        Args:
            prev_layer_data (ndarray): Output of the last layer, nclass x nobs
            target (ndarray): Target matrix of the same shape, or a label vector
        """
        raise NotImplementedError

    def gradient(self):
        """dL/d(prev_layer_data) computed by the last ``evaluate``."""
        return self._din

    def loss(self):
        """Loss value computed by the last ``evaluate``."""
        return self._loss

    def output_type(self):
        return type(self).__name__

    def _target_matrix(self, prev_layer_data, target):
        if target.ndim == 1 and prev_layer_data.shape[0] == 1:
            target = target.reshape(1, -1)
        if target.shape != prev_layer_data.shape:
            raise ValidationError(
                f"[class {self.output_type()}]: Target data have incorrect dimension "
                f"{target.shape}, expected {prev_layer_data.shape}")
        return target

    def __repr__(self):
        return f"{self.output_type()}()"


class RegressionMSE(Output):
    """
    Mean squared error: L = 0.5 * ||yhat - y||^2 / nobs
    """

    def evaluate(self, prev_layer_data, target):
        target = self._target_matrix(prev_layer_data, target)
        nobs = prev_layer_data.shape[1]
        self._din = prev_layer_data - target
        self._loss = 0.5 * np.sum(self._din ** 2) / nobs


class BinaryClassEntropy(Output):
    """
    Binary cross-entropy on probabilities in (0, 1).

    Targets are 0/1 values, given either as a matrix matching the last layer
    output or, when that output has a single row, as a vector of labels.
    """

    def check_target(self, target):
        target = np.asarray(target)
        if not np.all((target == 0) | (target == 1)):
            raise ValidationError(
                "[class BinaryClassEntropy]: Target data must only contain zero or one")

    def evaluate(self, prev_layer_data, target):
        target = self._target_matrix(prev_layer_data, target)
        nobs = prev_layer_data.shape[1]

        # dL/dp = -1/p for y = 1, 1/(1 - p) for y = 0
        self._din = np.where(target < 0.5,
                             1.0 / (1.0 - prev_layer_data),
                             -1.0 / prev_layer_data)
        # L = -y log(p) - (1 - y) log(1 - p) = log|dL/dp|
        self._loss = np.sum(np.log(np.abs(self._din))) / nobs


class MultiClassEntropy(Output):
    """
    Multi-class cross-entropy on class probabilities, usually after Softmax.

    Targets are either a one-hot matrix (nclass x nobs) or a vector of
    integer class labels in [0, nclass).
    """

    def check_target(self, target):
        target = np.asarray(target)
        if target.ndim == 1:
            if not np.all(np.mod(target, 1) == 0) or np.any(target < 0):
                raise ValidationError(
                    "[class MultiClassEntropy]: Target data must be non-negative integers")
            return
        if not np.all((target == 0) | (target == 1)):
            raise ValidationError(
                "[class MultiClassEntropy]: Target data must only contain zero or one")
        if not np.all(target.sum(axis=0) == 1):
            raise ValidationError(
                "[class MultiClassEntropy]: Each column of target data must contain exactly one 1")

    def evaluate(self, prev_layer_data, target):
        nclass, nobs = prev_layer_data.shape
        if target.ndim == 1:
            self._evaluate_labels(prev_layer_data, target, nclass, nobs)
            return

        target = self._target_matrix(prev_layer_data, target)
        self._din = -target / prev_layer_data
        self._loss = -np.sum(target * np.log(prev_layer_data)) / nobs

    def _evaluate_labels(self, prev_layer_data, labels, nclass, nobs):
        if labels.shape[0] != nobs:
            raise ValidationError(
                "[class MultiClassEntropy]: Target data have incorrect dimension "
                f"({labels.shape[0]} labels for {nobs} observations)")
        labels = labels.astype(int)
        if np.any(labels < 0):
            raise ValidationError(
                "[class MultiClassEntropy]: Target data have negative class labels")
        if np.any(labels >= nclass):
            raise ValidationError(
                "[class MultiClassEntropy]: Target data have values larger than the number of classes")

        obs = np.arange(nobs)
        prob = prev_layer_data[labels, obs]
        self._din = np.zeros_like(prev_layer_data)
        self._din[labels, obs] = -1.0 / prob
        self._loss = -np.sum(np.log(prob)) / nobs
