import numpy as np
import pytest

from dnnlab.common.utils import RNG


def _numeric_gradient(func, point, eps=1e-6):
    """Central differences of scalar ``func`` at every entry of ``point``."""
    point = np.array(point, dtype=np.float64)
    grad = np.zeros_like(point)
    for i in range(point.size):
        old = point.flat[i]
        point.flat[i] = old + eps
        f_plus = func(point)
        point.flat[i] = old - eps
        f_minus = func(point)
        point.flat[i] = old
        grad.flat[i] = (f_plus - f_minus) / (2 * eps)
    return grad


def _check_layer_gradients(layer, x, rtol=1e-4, atol=1e-6):
    """
    Compare the analytic gradients of ``layer`` with central differences of
    the loss L = sum(output ** 2).
    """
    nobs = x.shape[1]

    layer.forward(x)
    layer.backward(x, 2.0 * layer.output)
    input_grad = layer.input_gradient.copy()
    # Layers average parameter gradients over observations
    param_grad = layer.get_derivatives() * nobs
    params = layer.get_parameters()

    def loss_wrt_input(point):
        layer.forward(point)
        return np.sum(layer.output ** 2)

    def loss_wrt_params(point):
        layer.set_parameters(point)
        layer.forward(x)
        return np.sum(layer.output ** 2)

    np.testing.assert_allclose(input_grad, _numeric_gradient(loss_wrt_input, x),
                               rtol=rtol, atol=atol)
    if params.size:
        numeric = _numeric_gradient(loss_wrt_params, params)
        layer.set_parameters(params)
        np.testing.assert_allclose(param_grad, numeric, rtol=rtol, atol=atol)


@pytest.fixture
def rng():
    return RNG(123)


@pytest.fixture
def data_rng():
    return np.random.default_rng(2024)


@pytest.fixture
def numeric_gradient():
    return _numeric_gradient


@pytest.fixture
def check_layer_gradients():
    return _check_layer_gradients
