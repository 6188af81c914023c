"""This module defines the protocols at the optimizer boundary.

The driver hands optimizers a loss function and a gradient function that
follow the [`LossFunction`][optbridge.plugins.optimizer.protocol.LossFunction]
and [`GradientFunction`][optbridge.plugins.optimizer.protocol.GradientFunction]
protocols. Optimizers themselves need not derive from the
[`Optimizer`][optbridge.plugins.optimizer.base.Optimizer] base class: any
object that follows the
[`OptimizerProtocol`][optbridge.plugins.optimizer.protocol.OptimizerProtocol]
can be passed to the driver.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray


class LossFunction(Protocol):
    """Protocol for the loss function passed to optimizers."""

    def __call__(self, vector: NDArray[np.float64], /) -> float:
        """Evaluate the loss.

        Each call executes the graph once. The result only depends on the
        vector, but the call changes the parameter state of the graph.

        Args:
            vector: The parameter vector.

        Returns:
            The loss value.
        """


class GradientFunction(Protocol):
    """Protocol for the gradient function passed to optimizers."""

    def __call__(
        self, out: NDArray[np.float64], vector: NDArray[np.float64], /
    ) -> None:
        """Evaluate the gradient of the loss.

        The gradient is written into `out` instead of being returned, so that
        optimizers can reuse a single buffer.

        Args:
            out:    The buffer receiving the gradient.
            vector: The parameter vector.
        """


@runtime_checkable
class OptimizerProtocol(Protocol):
    """Protocol for optimizer objects.

    Before calling `optimize`, the driver sets the following attributes on the
    object:

    - `loss_fn`: A [`LossFunction`][optbridge.plugins.optimizer.protocol.LossFunction].
    - `grad_fn`: A [`GradientFunction`][optbridge.plugins.optimizer.protocol.GradientFunction].
    - `initial_vector`: The starting parameter vector.
    - `options`: The merged [`OptimizerOptions`][optbridge.config.OptimizerOptions].
      The previous value of `options` is restored after the run.

    The `optimize` method runs the optimization loop. It should return the
    sequence of losses observed at the start of each iteration; the driver
    uses it if the optimizer does not record a history by other means.
    """

    def optimize(self) -> Any:  # noqa: ANN401
        """Run the optimization.

        Returns:
            The loss history, or a sequence of losses.
        """
