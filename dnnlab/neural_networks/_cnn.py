"""
Convolutional and max-pooling layers.

Each observation column holds ``channels`` image planes stored one after
another, every plane row-major in ``(rows, cols)``.
"""
import numpy as np

from ..base import SCALAR
from ..exceptions import ConfigurationError
from ._convolution import ConvDims, convolve_full, convolve_valid
from .layers import Layer, get_activation


def columns_to_images(data, channels, rows, cols):
    """(channels*rows*cols, nobs) batch -> (nobs, channels, rows, cols)"""
    return data.T.reshape(data.shape[1], channels, rows, cols)


def images_to_columns(images):
    """(nobs, channels, rows, cols) -> (channels*rows*cols, nobs) batch"""
    return images.reshape(images.shape[0], -1).T


class Convolutional(Layer):
    """
    Convolutional layer with "valid" geometry, stride 1 and no padding.

    ``weight`` has shape (in_channels, out_channels, filter_rows, filter_cols)
    and ``bias`` one entry per output channel, added to every position of
    that channel.
    """
    _param_names = ('weight', 'bias')

    def __init__(self, in_channels, out_channels, channel_rows, channel_cols,
                 filter_rows, filter_cols, activation='identity'):
        """
        Args:
            in_channels (int): Number of input image planes
            out_channels (int): Number of output image planes
            channel_rows (int): Rows of each input plane
            channel_cols (int): Columns of each input plane
            filter_rows (int): Rows of each filter
            filter_cols (int): Columns of each filter
            activation (str or Activation): Activation applied to z
        """
        self.dims = ConvDims(in_channels, out_channels, channel_rows, channel_cols,
                             filter_rows, filter_cols)
        self.dims.check_filter_fits()
        super().__init__(in_channels * channel_rows * channel_cols,
                         out_channels * self.dims.conv_rows * self.dims.conv_cols)
        self.activation = get_activation(activation)
        self.weight = None
        self.bias = None
        self.weight_grad = None
        self.bias_grad = None
        self.z = None
        self.dlz = None

    def _param_shapes(self):
        d = self.dims
        return {'weight': (d.in_channels, d.out_channels, d.filter_rows, d.filter_cols),
                'bias': (d.out_channels,)}

    def forward(self, prev_output):
        self._check_initialized()
        self._check_input(prev_output)
        d = self.dims
        images = columns_to_images(prev_output, d.in_channels, d.channel_rows, d.channel_cols)

        conv = convolve_valid(d, images, self.weight)
        conv += self.bias[np.newaxis, :, np.newaxis, np.newaxis]
        self.z = images_to_columns(conv)
        self.output = self.activation.activate(self.z)

    def backward(self, prev_output, next_gradient):
        nobs = prev_output.shape[1]
        self._check_gradient(next_gradient, nobs)
        d = self.dims
        self.dlz = self.activation.apply_jacobian(self.z, self.output, next_gradient)
        dlz_images = columns_to_images(self.dlz, d.out_channels, d.conv_rows, d.conv_cols)
        images = columns_to_images(prev_output, d.in_channels, d.channel_rows, d.channel_cols)

        # dL/dW: correlate each input plane with each dL/dz plane; observations
        # play the role of input channels and input channels the role of
        # observations, so the sum over observations comes out of the product
        grad_dims = ConvDims(nobs, d.out_channels, d.channel_rows, d.channel_cols,
                             d.conv_rows, d.conv_cols)
        weight_grad = convolve_valid(grad_dims, images.swapaxes(0, 1), dlz_images)
        self.weight_grad[...] = weight_grad / nobs

        self.bias_grad[...] = dlz_images.sum(axis=(2, 3)).mean(axis=0)

        # dL/dx: full convolution of dL/dz with the filters from output to input channels;
        # the dL/dz planes may be smaller than the filter
        back_dims = ConvDims(d.out_channels, d.in_channels, d.conv_rows, d.conv_cols,
                             d.filter_rows, d.filter_cols)
        input_grad = convolve_full(back_dims, dlz_images, self.weight.swapaxes(0, 1))
        self.input_gradient = images_to_columns(input_grad)

    def activation_type(self):
        return self.activation.layer_type()

    def fill_meta_info(self, meta, index):
        super().fill_meta_info(meta, index)
        d = self.dims
        meta[f"in_channels{index}"] = d.in_channels
        meta[f"out_channels{index}"] = d.out_channels
        meta[f"channel_rows{index}"] = d.channel_rows
        meta[f"channel_cols{index}"] = d.channel_cols
        meta[f"filter_rows{index}"] = d.filter_rows
        meta[f"filter_cols{index}"] = d.filter_cols

    def __repr__(self):
        d = self.dims
        return (f"Convolutional(in_channels={d.in_channels}, out_channels={d.out_channels}, "
                f"channel=({d.channel_rows}, {d.channel_cols}), "
                f"filter=({d.filter_rows}, {d.filter_cols}), "
                f"activation={self.activation_type()!r})")


class MaxPooling(Layer):
    """
    Max pooling over non-overlapping ``pool_rows x pool_cols`` blocks.

    Trailing rows and columns that do not fill a whole block are dropped,
    so each output plane is ``(channel_rows // pool_rows, channel_cols // pool_cols)``.
    """

    def __init__(self, in_channels, channel_rows, channel_cols,
                 pool_rows=2, pool_cols=2, activation='identity'):
        if min(in_channels, channel_rows, channel_cols, pool_rows, pool_cols) <= 0:
            raise ConfigurationError("[class MaxPooling]: Sizes must be positive")
        if pool_rows > channel_rows or pool_cols > channel_cols:
            raise ConfigurationError(
                f"[class MaxPooling]: Pooling window ({pool_rows}, {pool_cols}) is larger "
                f"than the channel ({channel_rows}, {channel_cols})")
        self.in_channels = in_channels
        self.channel_rows = channel_rows
        self.channel_cols = channel_cols
        self.pool_rows = pool_rows
        self.pool_cols = pool_cols
        self.out_rows = channel_rows // pool_rows
        self.out_cols = channel_cols // pool_cols
        super().__init__(in_channels * channel_rows * channel_cols,
                         in_channels * self.out_rows * self.out_cols)
        self.activation = get_activation(activation)
        self.z = None
        self.dlz = None
        # Index of each block maximum inside one observation column
        self._max_index = None

    def forward(self, prev_output):
        self._check_input(prev_output)
        nobs = prev_output.shape[1]
        pr, pc = self.pool_rows, self.pool_cols
        orows, ocols = self.out_rows, self.out_cols
        images = columns_to_images(prev_output, self.in_channels,
                                   self.channel_rows, self.channel_cols)

        cropped = images[:, :, :orows * pr, :ocols * pc]
        blocks = cropped.reshape(nobs, self.in_channels, orows, pr, ocols, pc)
        blocks = blocks.transpose(0, 1, 2, 4, 3, 5).reshape(nobs, self.in_channels, orows, ocols, pr * pc)
        argmax = blocks.argmax(axis=-1)
        pooled = np.take_along_axis(blocks, argmax[..., np.newaxis], axis=-1)[..., 0]

        rows = np.arange(orows)[:, np.newaxis] * pr + argmax // pc
        cols = np.arange(ocols)[np.newaxis, :] * pc + argmax % pc
        channels = np.arange(self.in_channels)[:, np.newaxis, np.newaxis]
        self._max_index = ((channels * self.channel_rows + rows) * self.channel_cols + cols).reshape(nobs, -1)

        self.z = images_to_columns(pooled)
        self.output = self.activation.activate(self.z)

    def backward(self, prev_output, next_gradient):
        nobs = prev_output.shape[1]
        self._check_gradient(next_gradient, nobs)
        self.dlz = self.activation.apply_jacobian(self.z, self.output, next_gradient)

        # Blocks do not overlap, so every input position receives at most one gradient
        grad = np.zeros((nobs, self.in_size), dtype=SCALAR)
        grad[np.arange(nobs)[:, np.newaxis], self._max_index] = self.dlz.T
        self.input_gradient = grad.T

    def activation_type(self):
        return self.activation.layer_type()

    def fill_meta_info(self, meta, index):
        super().fill_meta_info(meta, index)
        meta[f"in_channels{index}"] = self.in_channels
        meta[f"channel_rows{index}"] = self.channel_rows
        meta[f"channel_cols{index}"] = self.channel_cols
        meta[f"pool_rows{index}"] = self.pool_rows
        meta[f"pool_cols{index}"] = self.pool_cols

    def __repr__(self):
        return (f"MaxPooling(in_channels={self.in_channels}, "
                f"channel=({self.channel_rows}, {self.channel_cols}), "
                f"pool=({self.pool_rows}, {self.pool_cols}))")
