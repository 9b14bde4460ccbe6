import numpy as np
import pytest

from dnnlab.exceptions import ConfigurationError
from dnnlab.neural_networks import (ConvDims, Convolutional, MaxPooling, Normal,
                                    convolve_full, convolve_valid)
from dnnlab.neural_networks._convolution import flatten_channel


def naive_valid(images, filters):
    n_obs, _, rows, cols = images.shape
    _, out_channels, fr, fc = filters.shape
    out = np.zeros((n_obs, out_channels, rows - fr + 1, cols - fc + 1))
    for k in range(n_obs):
        for j in range(out_channels):
            for r in range(rows - fr + 1):
                for c in range(cols - fc + 1):
                    out[k, j, r, c] = np.sum(images[k, :, r:r + fr, c:c + fc] * filters[:, j])
    return out


def naive_full(images, filters):
    fr, fc = filters.shape[2:]
    padded = np.pad(images, ((0, 0), (0, 0), (fr - 1, fr - 1), (fc - 1, fc - 1)))
    return naive_valid(padded, filters[:, :, ::-1, ::-1])


def test_conv_dims_derived_sizes():
    dims = ConvDims(in_channels=3, out_channels=4, channel_rows=6, channel_cols=5,
                    filter_rows=3, filter_cols=2)
    assert dims.img_cols == 15
    assert dims.conv_rows == 4
    assert dims.conv_cols == 4


def test_conv_dims_rejects_non_positive_sizes():
    with pytest.raises(ConfigurationError):
        ConvDims(in_channels=0, out_channels=1, channel_rows=3, channel_cols=3,
                 filter_rows=1, filter_cols=1)


@pytest.mark.parametrize("filter_rows, filter_cols", [(4, 1), (1, 4)])
def test_valid_convolution_rejects_filter_larger_than_channel(filter_rows, filter_cols):
    dims = ConvDims(1, 1, 3, 3, filter_rows, filter_cols)
    with pytest.raises(ConfigurationError):
        dims.check_filter_fits()
    with pytest.raises(ConfigurationError):
        convolve_valid(dims, np.zeros((1, 1, 3, 3)), np.zeros((1, 1, filter_rows, filter_cols)))
    with pytest.raises(ConfigurationError):
        Convolutional(1, 1, 3, 3, filter_rows, filter_cols)


def test_flatten_channel_layout():
    images = np.arange(2 * 1 * 3 * 4, dtype=float).reshape(2, 1, 3, 4)
    flat = flatten_channel(images, 0, 2)

    assert flat.shape == (2 * 2, 4 * 2)
    # Row 0: observation 0, strip starting at image row 0
    np.testing.assert_array_equal(flat[0], [0, 4, 1, 5, 2, 6, 3, 7])
    # Row 3: observation 1, strip starting at image row 1
    np.testing.assert_array_equal(flat[3], [16, 20, 17, 21, 18, 22, 19, 23])


@pytest.mark.parametrize("n_obs, in_ch, out_ch, rows, cols, fr, fc", [
    (1, 1, 1, 5, 5, 3, 3),
    (3, 2, 3, 6, 7, 2, 3),
    (2, 3, 2, 4, 4, 4, 4),
    (4, 2, 1, 5, 3, 1, 1),
    (2, 1, 2, 3, 6, 3, 2),
])
def test_convolve_valid_matches_naive(data_rng, n_obs, in_ch, out_ch, rows, cols, fr, fc):
    dims = ConvDims(in_ch, out_ch, rows, cols, fr, fc)
    images = data_rng.normal(size=(n_obs, in_ch, rows, cols))
    filters = data_rng.normal(size=(in_ch, out_ch, fr, fc))

    result = convolve_valid(dims, images, filters)

    assert result.shape == (n_obs, out_ch, dims.conv_rows, dims.conv_cols)
    np.testing.assert_allclose(result, naive_valid(images, filters), atol=1e-12)


@pytest.mark.parametrize("n_obs, in_ch, out_ch, rows, cols, fr, fc", [
    (1, 1, 1, 3, 3, 2, 2),
    (3, 2, 3, 4, 5, 2, 3),
    (2, 3, 2, 2, 2, 2, 2),
    (2, 1, 2, 1, 4, 1, 3),
    (1, 2, 2, 5, 2, 3, 1),
    (2, 2, 1, 2, 2, 3, 3),
    (1, 1, 2, 1, 1, 4, 4),
    (2, 3, 2, 2, 3, 4, 5),
])
def test_convolve_full_matches_naive(data_rng, n_obs, in_ch, out_ch, rows, cols, fr, fc):
    dims = ConvDims(in_ch, out_ch, rows, cols, fr, fc)
    images = data_rng.normal(size=(n_obs, in_ch, rows, cols))
    filters = data_rng.normal(size=(in_ch, out_ch, fr, fc))

    result = convolve_full(dims, images, filters)

    assert result.shape == (n_obs, out_ch, rows + fr - 1, cols + fc - 1)
    np.testing.assert_allclose(result, naive_full(images, filters), atol=1e-12)


def test_single_channel_matches_multi_channel(data_rng):
    images = data_rng.normal(size=(2, 3, 5, 5))
    filters = data_rng.normal(size=(3, 2, 2, 3))
    multi = convolve_valid(ConvDims(3, 2, 5, 5, 2, 3), images, filters)

    single = np.zeros_like(multi)
    for i in range(3):
        for j in range(2):
            single[:, j:j + 1] += convolve_valid(ConvDims(1, 1, 5, 5, 2, 3),
                                                 images[:, i:i + 1], filters[i:i + 1, j:j + 1])

    np.testing.assert_allclose(multi, single, atol=1e-12)


def test_convolve_is_linear_in_filters(data_rng):
    dims = ConvDims(2, 2, 4, 4, 2, 2)
    images = data_rng.normal(size=(3, 2, 4, 4))
    f1 = data_rng.normal(size=(2, 2, 2, 2))
    f2 = data_rng.normal(size=(2, 2, 2, 2))

    np.testing.assert_allclose(convolve_valid(dims, images, f1 + 2 * f2),
                               convolve_valid(dims, images, f1) + 2 * convolve_valid(dims, images, f2),
                               atol=1e-12)


def test_convolve_rejects_mismatched_shapes():
    dims = ConvDims(2, 1, 4, 4, 2, 2)
    with pytest.raises(ConfigurationError):
        convolve_valid(dims, np.zeros((1, 3, 4, 4)), np.zeros((2, 1, 2, 2)))
    with pytest.raises(ConfigurationError):
        convolve_valid(dims, np.zeros((1, 2, 4, 4)), np.zeros((2, 2, 2, 2)))


def test_convolutional_forward_layout(rng, data_rng):
    layer = Convolutional(2, 3, 5, 4, 2, 2)
    layer.init(Normal(0.0, 1.0), rng)
    nobs = 3
    x = data_rng.normal(size=(2 * 5 * 4, nobs))

    layer.forward(x)

    images = x.T.reshape(nobs, 2, 5, 4)
    expected = naive_valid(images, layer.weight) + layer.bias[np.newaxis, :, np.newaxis, np.newaxis]
    assert layer.output.shape == (3 * 4 * 3, nobs)
    np.testing.assert_allclose(layer.output, expected.reshape(nobs, -1).T, atol=1e-12)


@pytest.mark.parametrize("activation", ['identity', 'relu', 'tanh', 'mish'])
def test_convolutional_gradients(rng, data_rng, check_layer_gradients, activation):
    layer = Convolutional(2, 3, 5, 6, 2, 3, activation=activation)
    layer.init(Normal(0.0, 0.3), rng)
    x = data_rng.normal(size=(layer.in_size, 3))
    check_layer_gradients(layer, x)


@pytest.mark.parametrize("in_ch, out_ch, rows, cols, fr, fc, nobs", [
    (1, 1, 4, 4, 3, 3, 1),
    (2, 2, 3, 4, 3, 4, 2),
    (1, 2, 5, 5, 4, 3, 3),
    (2, 1, 2, 6, 2, 5, 2),
    (3, 2, 1, 1, 1, 1, 2),
])
def test_convolutional_gradients_large_filters(rng, data_rng, check_layer_gradients,
                                               in_ch, out_ch, rows, cols, fr, fc, nobs):
    # Output planes smaller than the filter, down to a single pixel
    layer = Convolutional(in_ch, out_ch, rows, cols, fr, fc, activation='tanh')
    layer.init(Normal(0.0, 0.5), rng)
    assert layer.dims.conv_rows < fr or layer.dims.conv_rows == 1
    x = data_rng.normal(size=(layer.in_size, nobs))
    check_layer_gradients(layer, x)


def test_convolutional_input_gradient_is_full_convolution(rng, data_rng):
    layer = Convolutional(2, 3, 5, 5, 3, 2)
    layer.init(Normal(0.0, 1.0), rng)
    nobs = 2
    x = data_rng.normal(size=(layer.in_size, nobs))
    next_grad = data_rng.normal(size=(layer.out_size, nobs))

    layer.forward(x)
    layer.backward(x, next_grad)

    dims = layer.dims
    dlz = next_grad.T.reshape(nobs, dims.out_channels, dims.conv_rows, dims.conv_cols)
    back_dims = ConvDims(dims.out_channels, dims.in_channels, dims.conv_rows, dims.conv_cols,
                         dims.filter_rows, dims.filter_cols)
    expected = convolve_full(back_dims, dlz, layer.weight.swapaxes(0, 1))
    np.testing.assert_allclose(layer.input_gradient, expected.reshape(nobs, -1).T, atol=1e-12)
    np.testing.assert_allclose(layer.input_gradient,
                               naive_full(dlz, layer.weight.swapaxes(0, 1)).reshape(nobs, -1).T,
                               atol=1e-12)


def test_convolutional_meta_info():
    layer = Convolutional(2, 3, 5, 6, 2, 3, activation='relu')
    meta = {}
    layer.fill_meta_info(meta, 0)
    assert meta['Layer0'] == 1
    assert meta['Activation0'] == 100
    assert meta['filter_cols0'] == 3
    assert layer.in_size == 60
    assert layer.out_size == 3 * 4 * 4


def test_max_pooling_forward_backward():
    layer = MaxPooling(1, 4, 4, 2, 2)
    plane = np.array([[1.0, 2.0, 5.0, 0.0],
                      [3.0, 4.0, 1.0, 1.0],
                      [0.0, 0.0, 7.0, 8.0],
                      [9.0, 0.0, 6.0, 6.0]])
    x = plane.reshape(-1, 1)

    layer.forward(x)
    np.testing.assert_allclose(layer.output.ravel(), [4.0, 5.0, 9.0, 8.0])

    layer.backward(x, np.array([[10.0], [20.0], [30.0], [40.0]]))
    expected = np.zeros((4, 4))
    expected[1, 1] = 10.0
    expected[0, 2] = 20.0
    expected[3, 0] = 30.0
    expected[2, 3] = 40.0
    np.testing.assert_allclose(layer.input_gradient, expected.reshape(-1, 1))


def test_max_pooling_drops_partial_blocks(data_rng):
    layer = MaxPooling(2, 5, 7, 2, 3)
    assert layer.out_size == 2 * 2 * 2
    x = data_rng.normal(size=(layer.in_size, 3))
    layer.forward(x)
    layer.backward(x, np.ones((layer.out_size, 3)))

    images = x.T.reshape(3, 2, 5, 7)
    expected = images[:, :, :4, :6].reshape(3, 2, 2, 2, 2, 3).max(axis=(3, 5))
    np.testing.assert_allclose(layer.output, expected.reshape(3, -1).T)
    # Exactly one position per block receives gradient, none in the cropped margin
    grad = layer.input_gradient.T.reshape(3, 2, 5, 7)
    assert grad.sum() == pytest.approx(3 * 8)
    assert np.all(grad[:, :, 4, :] == 0)
    assert np.all(grad[:, :, :, 6] == 0)


def test_max_pooling_gradients(data_rng, check_layer_gradients):
    layer = MaxPooling(2, 4, 6, 2, 3, activation='sigmoid')
    x = data_rng.normal(size=(layer.in_size, 2))
    check_layer_gradients(layer, x)


def test_max_pooling_rejects_large_window():
    with pytest.raises(ConfigurationError):
        MaxPooling(1, 2, 2, 3, 1)
