"""The boundary between `optbridge` and a differentiable computational graph.

`optbridge` does not compute losses or gradients itself. It relies on a graph
object following the [`Graph`][optbridge.graph.Graph] protocol, which exposes
its trainable parameters and executes forward and backward computations on the
current parameter state.

For problems that are written directly in NumPy, the
[`ArrayGraph`][optbridge.graph.ArrayGraph] class provides a graph that stores
its parameters in NumPy arrays and evaluates user-supplied
[`Objective`][optbridge.graph.Objective] callables.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Protocol

import numpy as np

if TYPE_CHECKING:
    from collections.abc import Mapping

    from numpy.typing import ArrayLike, NDArray


class Graph(Protocol):
    """Protocol for differentiable graphs.

    The parameters returned by `parameters` are the live storage of the graph:
    writing into these arrays changes the parameter values used by the next
    forward or backward computation. The order of the mapping defines the
    order of the parameters in the flat parameter vector and must not change
    between calls.

    The `loss` argument of `forward` and `backward` is an opaque loss
    expression that is passed through unchanged from the caller of the driver.
    Graphs that only compute a single loss may ignore it.
    """

    def parameters(self) -> Mapping[str, NDArray[np.float64]]:
        """Return the trainable parameters of the graph.

        Returns:
            An ordered mapping of parameter names to writeable arrays.
        """

    def forward(self, loss: Any) -> float:  # noqa: ANN401
        """Execute the forward computation with the current parameters.

        Args:
            loss: The loss expression to evaluate.

        Returns:
            The value of the loss.
        """

    def backward(self, loss: Any) -> Mapping[str, ArrayLike]:  # noqa: ANN401
        """Execute the backward computation with the current parameters.

        Args:
            loss: The loss expression to differentiate.

        Returns:
            A mapping of parameter names to gradient arrays, with the same
            shapes as the parameters.
        """


@dataclass(frozen=True, slots=True)
class Objective:
    """A loss expression for an [`ArrayGraph`][optbridge.graph.ArrayGraph].

    Both callables receive the parameter mapping of the graph. They should not
    modify the parameter arrays.

    Attributes:
        value:    Function returning the loss value.
        gradient: Function returning the gradient of the loss with respect to
                  each parameter.
    """

    value: Callable[[Mapping[str, NDArray[np.float64]]], float]
    gradient: Callable[[Mapping[str, NDArray[np.float64]]], Mapping[str, ArrayLike]]


class ArrayGraph:
    """A graph storing its parameters in NumPy arrays.

    The parameters are copied on construction into new `float64` arrays, in
    the order given. Losses are evaluated by passing an
    [`Objective`][optbridge.graph.Objective] as the loss expression.

    The number of forward and backward executions is counted, which is mainly
    useful for testing.
    """

    def __init__(self, parameters: Mapping[str, ArrayLike]) -> None:
        """Initialize the graph.

        Args:
            parameters: The initial values of the trainable parameters.
        """
        self._parameters: dict[str, NDArray[np.float64]] = {
            name: np.array(value, dtype=np.float64)
            for name, value in parameters.items()
        }
        self.forward_count = 0
        self.backward_count = 0

    def parameters(self) -> Mapping[str, NDArray[np.float64]]:
        """Return the trainable parameters.

        See the [optbridge.graph.Graph][] protocol.

        # noqa
        """
        return self._parameters

    def forward(self, loss: Objective) -> float:
        """Evaluate the loss.

        See the [optbridge.graph.Graph][] protocol.

        # noqa
        """
        self.forward_count += 1
        return float(_check_objective(loss).value(self._parameters))

    def backward(self, loss: Objective) -> Mapping[str, ArrayLike]:
        """Evaluate the gradient of the loss.

        See the [optbridge.graph.Graph][] protocol.

        # noqa
        """
        self.backward_count += 1
        return _check_objective(loss).gradient(self._parameters)


def _check_objective(loss: Any) -> Objective:  # noqa: ANN401
    if not isinstance(loss, Objective):
        msg = f"ArrayGraph requires an Objective as loss expression, got {loss!r}"
        raise TypeError(msg)
    return loss
