"""
Neural network layers, losses, optimizers and the training loop.
"""
from .layers import (
    Layer,
    Activation,
    FullyConnected,
    Identity,
    ReLU,
    Sigmoid,
    Tanh,
    Softmax,
    Mish,
    LAYER_IDS,
    get_activation
)
from ._convolution import (ConvDims, convolve_valid, convolve_full)
from ._cnn import (Convolutional, MaxPooling)
from .outputs import (
    Output,
    RegressionMSE,
    BinaryClassEntropy,
    MultiClassEntropy,
    OUTPUT_IDS
)
from .optimizers import (
    Optimizer,
    SGDOptimizer,
    AdaGradOptimizer,
    RMSPropOptimizer,
    AdamOptimizer,
    SGD,
    AdaGrad,
    RMSProp,
    Adam,
    get_optimizer
)
from .initializers import (Initializer, Normal, Uniform)
from .callbacks import (Callback, VerboseCallback, LossHistory)
from ._network import Network

__all__ = [
    'Layer',
    'Activation',
    'FullyConnected',
    'Identity',
    'ReLU',
    'Sigmoid',
    'Tanh',
    'Softmax',
    'Mish',
    'LAYER_IDS',
    'get_activation',
    'ConvDims',
    'convolve_valid',
    'convolve_full',
    'Convolutional',
    'MaxPooling',
    'Output',
    'RegressionMSE',
    'BinaryClassEntropy',
    'MultiClassEntropy',
    'OUTPUT_IDS',
    'Optimizer',
    'SGDOptimizer',
    'AdaGradOptimizer',
    'RMSPropOptimizer',
    'AdamOptimizer',
    'SGD',
    'AdaGrad',
    'RMSProp',
    'Adam',
    'get_optimizer',
    'Initializer',
    'Normal',
    'Uniform',
    'Callback',
    'VerboseCallback',
    'LossHistory',
    'Network'
]
