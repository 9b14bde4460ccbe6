"""
Memory-efficient convolution (MEC) for batches of multi-channel images.

Instead of building the im2col matrix, whose size grows with
``filter_rows * filter_cols``, each input channel is flattened once into a
matrix of vertical strips that are ``filter_rows`` tall. Every output column
is then a dense product of a contiguous window of that matrix with the
filters reshaped to ``(filter_cols * filter_rows, out_channels)``.

Images are passed as 4-D arrays ``(n_obs, channels, rows, cols)`` and filters
as ``(in_channels, out_channels, filter_rows, filter_cols)``.
"""
from dataclasses import dataclass, fields

import numpy as np

from ..base import SCALAR
from ..exceptions import ConfigurationError


@dataclass(frozen=True)
class ConvDims:
    """Geometry of one convolution."""
    in_channels: int
    out_channels: int
    channel_rows: int
    channel_cols: int
    filter_rows: int
    filter_cols: int

    def __post_init__(self):
        for field in fields(self):
            value = getattr(self, field.name)
            if value <= 0:
                raise ConfigurationError(
                    f"[class ConvDims]: {field.name} must be positive, got {value}")

    def check_filter_fits(self):
        """Raise unless the filter fits inside one channel plane."""
        if self.filter_rows > self.channel_rows or self.filter_cols > self.channel_cols:
            raise ConfigurationError(
                f"[class ConvDims]: Filter ({self.filter_rows}, {self.filter_cols}) is larger "
                f"than the channel ({self.channel_rows}, {self.channel_cols})")

    @property
    def img_cols(self):
        return self.in_channels * self.channel_cols

    @property
    def conv_rows(self):
        return self.channel_rows - self.filter_rows + 1

    @property
    def conv_cols(self):
        return self.channel_cols - self.filter_cols + 1


def _check_shapes(dims, src, filters):
    expected = (dims.in_channels, dims.channel_rows, dims.channel_cols)
    if src.ndim != 4 or src.shape[1:] != expected:
        raise ConfigurationError(
            f"Source images have shape {src.shape}, expected (n_obs, {expected[0]}, "
            f"{expected[1]}, {expected[2]})")
    expected = (dims.in_channels, dims.out_channels, dims.filter_rows, dims.filter_cols)
    if filters.shape != expected:
        raise ConfigurationError(f"Filters have shape {filters.shape}, expected {expected}")


def flatten_channel(images, channel, filter_rows):
    """
    Flatten one channel of all observations into vertical strips.

    Row ``k * strip_rows + r`` of the result holds the strip of observation
    ``k`` starting at image row ``r``; column ``c * filter_rows + t`` holds
    the pixel at row ``r + t`` and column ``c``.

    Args:
        images (ndarray): (n_obs, channels, rows, cols)
        channel (int): Channel to flatten
        filter_rows (int): Height of a strip

    Returns:
        ndarray of shape (n_obs * strip_rows, cols * filter_rows) where
        strip_rows = rows - filter_rows + 1
    """
    n_obs, _, rows, cols = images.shape
    strip_rows = rows - filter_rows + 1
    plane = images[:, channel]
    strips = np.stack([plane[:, t:t + strip_rows, :] for t in range(filter_rows)], axis=-1)
    return strips.reshape(n_obs * strip_rows, cols * filter_rows)


def filter_block(filters, channel):
    """
    Reshape the filters of one input channel to (filter_cols * filter_rows, out_channels).

    Row ``b * filter_rows + t`` holds the filter weights at (t, b), matching
    the column order of ``flatten_channel``.
    """
    block = filters[channel].transpose(2, 1, 0)
    return block.reshape(-1, filters.shape[1])


def moving_product(flat, block, out_cols, filter_rows, result):
    """Accumulate ``flat[:, window_j] @ block`` into column block j of ``result``."""
    out_channels = block.shape[1]
    width = block.shape[0]
    for j in range(out_cols):
        left = j * filter_rows
        result[:, j * out_channels:(j + 1) * out_channels] += flat[:, left:left + width] @ block


def moving_product_padded(flat, block, out_cols, filter_rows, pad_cols, result):
    """
    Moving product over a source that is implicitly zero-padded with
    ``pad_cols`` columns on the left and right.

    Windows that hang over either edge are clipped together with the
    matching rows of ``block``.
    """
    out_channels = block.shape[1]
    width = block.shape[0]
    flat_cols = flat.shape[1]
    for j in range(out_cols):
        left = (j - pad_cols) * filter_rows
        lo = max(left, 0)
        hi = min(left + width, flat_cols)
        if hi <= lo:
            continue
        result[:, j * out_channels:(j + 1) * out_channels] += \
            flat[:, lo:hi] @ block[lo - left:hi - left]


def _repack(result, n_obs, rows, cols, out_channels):
    # result rows are (observation, row), columns are (col, out_channel)
    return result.reshape(n_obs, rows, cols, out_channels).transpose(0, 3, 1, 2)


def convolve_valid(dims, src, filters):
    """
    "Valid" convolution of a batch of images.

    Computes, for every observation k and output channel j,
    ``sum_i correlate(src[k, i], filters[i, j])`` over the positions where the
    filter fits entirely inside the image.

    Args:
        dims (ConvDims): Convolution geometry
        src (ndarray): (n_obs, in_channels, channel_rows, channel_cols)
        filters (ndarray): (in_channels, out_channels, filter_rows, filter_cols)

    Returns:
        ndarray: (n_obs, out_channels, conv_rows, conv_cols)
    """
    dims.check_filter_fits()
    _check_shapes(dims, src, filters)
    n_obs = src.shape[0]
    result = np.zeros((n_obs * dims.conv_rows, dims.conv_cols * dims.out_channels), dtype=SCALAR)

    for i in range(dims.in_channels):
        flat = flatten_channel(src, i, dims.filter_rows)
        moving_product(flat, filter_block(filters, i), dims.conv_cols, dims.filter_rows, result)

    return _repack(result, n_obs, dims.conv_rows, dims.conv_cols, dims.out_channels)


def convolve_full(dims, src, filters):
    """
    "Full" convolution of a batch of images.

    The source is zero-padded by ``filter - 1`` on every side and correlated
    with the 180-degree rotated filters, so each output plane is
    ``(channel_rows + filter_rows - 1, channel_cols + filter_cols - 1)``.
    Row padding is explicit; column padding is handled by the clipped
    moving product. The source plane may be smaller than the filter.

    Args:
        dims (ConvDims): Geometry of the source (channel sizes are those of ``src``)
        src (ndarray): (n_obs, in_channels, channel_rows, channel_cols)
        filters (ndarray): (in_channels, out_channels, filter_rows, filter_cols),
            not rotated

    Returns:
        ndarray: (n_obs, out_channels, channel_rows + filter_rows - 1,
        channel_cols + filter_cols - 1)
    """
    _check_shapes(dims, src, filters)
    n_obs = src.shape[0]
    fr, fc = dims.filter_rows, dims.filter_cols
    out_rows = dims.channel_rows + fr - 1
    out_cols = dims.channel_cols + fc - 1

    padded = np.pad(src, ((0, 0), (0, 0), (fr - 1, fr - 1), (0, 0)), mode='constant')
    rotated = filters[:, :, ::-1, ::-1]
    result = np.zeros((n_obs * out_rows, out_cols * dims.out_channels), dtype=SCALAR)

    for i in range(dims.in_channels):
        flat = flatten_channel(padded, i, fr)
        moving_product_padded(flat, filter_block(rotated, i), out_cols, fr, fc - 1, result)

    return _repack(result, n_obs, out_rows, out_cols, dims.out_channels)
