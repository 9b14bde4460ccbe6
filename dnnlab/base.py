# pylint: disable=missing-docstring
from abc import abstractmethod
from typing import Any, Dict, Tuple, TypeVar
import numpy as np

# Floating point type of every parameter, activation and gradient buffer
SCALAR = np.float64

# Define a type variable that's used correctly
T = TypeVar("T", bound="BaseComponent")


class BaseComponent:
    """
    Shared hyperparameter handling for configurable components
    (optimizers, initializers, networks).

    Subclasses list the constructor arguments that make up their
    configuration in ``_hyper_params``.
    """
    _hyper_params: Tuple[str, ...] = ()

    def get_params(self) -> Dict[str, Any]:
        """
        Get the hyperparameters of this component.

        :return: Dictionary of hyperparameter names mapped to their values.
        """
        return {name: getattr(self, name) for name in self._hyper_params}

    def set_params(self: T, **params) -> T:
        """
        Set hyperparameters of this component.

        :param params: Hyperparameter names mapped to their new values.
        :return: self
        """
        for param, value in params.items():
            if param not in self._hyper_params:
                raise ValueError(
                    f"Invalid parameter '{param}' for {type(self).__name__}. "
                    f"Choose from {list(self._hyper_params)}."
                )
            setattr(self, param, value)
        return self

    def __repr__(self):
        args = ", ".join(f"{k}={v!r}" for k, v in self.get_params().items())
        return f"{type(self).__name__}({args})"


# pylint: disable=invalid-name line-too-long
class BaseEstimator(BaseComponent):
    @abstractmethod
    def fit(self, *args, **kwargs) -> Any:
        """
        Train the estimator on predictors and responses.

        :return: the fitted estimator
        """
        raise NotImplementedError

    @abstractmethod
    def predict(self, x: np.ndarray) -> np.ndarray:
        """
        :param x: numpy array of shape (d, N) with d being the number of feature dimensions and N being the number of observations (one observation per column)
        :return: numpy array of shape (d', N) holding one prediction per column
        """
        raise NotImplementedError
