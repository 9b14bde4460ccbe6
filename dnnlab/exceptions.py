"""
Exceptions raised by dnnlab.

Both derive from ValueError so callers that already guard against bad
arguments with ``except ValueError`` keep working.
"""


class ConfigurationError(ValueError):
    """
    The network or one of its layers is not set up consistently: adjacent
    layer sizes disagree, an input batch has the wrong number of rows, a
    parameter vector has the wrong length, or a layer geometry is invalid.
    """


class ValidationError(ValueError):
    """
    Target data handed to an output unit is malformed, e.g. not a valid
    0/1 or one-hot encoding, or its shape does not match the network output.
    """
