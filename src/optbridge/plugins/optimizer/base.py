"""This module defines base classes for optimizers and optimizer plugins."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar

from optbridge.config import DEFAULT_MAX_ITERATIONS, OptimizerOptions
from optbridge.config.options import OptionsSchemaModel
from optbridge.enums import ExitCode
from optbridge.plugins.base import Plugin

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray

    from optbridge.history import LossHistory

    from .protocol import GradientFunction, LossFunction


class Optimizer(ABC):
    """Abstract Base Class for Optimizer Implementations.

    This class defines the interface of all optimizers driven by `optbridge`.
    An optimizer is constructed with its own options, passed as keyword
    arguments. The driver then injects everything needed for a run by calling
    [`bind`][optbridge.plugins.optimizer.base.Optimizer.bind], after which it
    calls [`optimize`][optbridge.plugins.optimizer.base.Optimizer.optimize].

    The optimizer owns the entire iterative loop: it decides on step sizes,
    line searches and stopping criteria. At the start of each iteration whose
    update it is about to accept, it must call
    [`record`][optbridge.plugins.optimizer.base.Optimizer.record] with the
    current loss. It must not record more entries than the iteration budget
    `options.max_iterations`.

    Subclasses must implement:
    - `optimize`: To contain the main optimization loop.

    Subclasses can set:
    - `method`:          The name of the method, used for option validation.
    - `options_schema`:  A schema of the optimizer-specific options, see
                         [`OptionsSchemaModel`][optbridge.config.OptionsSchemaModel].
    - `default_options`: Default values of optimizer-specific options.

    Attributes:
        loss_fn:        The loss function, injected by the driver.
        grad_fn:        The gradient function, injected by the driver.
        initial_vector: The starting parameter vector, injected by the driver.
        options:        The options in effect. Until the first run these are the
                        configured options, afterwards the merged options of
                        the most recent run.
        solution:       The final accepted parameter vector, set by `optimize`.
        exit_code:      The reason the optimization stopped, set by `optimize`.
    """

    method: str = ""
    options_schema: ClassVar[dict[str, Any] | None] = None
    default_options: ClassVar[dict[str, Any]] = {}

    loss_fn: LossFunction
    grad_fn: GradientFunction
    initial_vector: NDArray[np.float64]

    def __init__(self, **options: Any) -> None:  # noqa: ANN401
        """Initialize an optimizer object.

        Options that are reserved by the driver (`max_iterations`, `tolerance`)
        may be given, but the driver takes precedence over them when a run is
        started. All other options are validated against `options_schema`.

        Args:
            options: The options of the optimizer.
        """
        self._configured_options = OptimizerOptions.from_mapping(
            {**self.default_options, **options}
        )
        self.check_options(self._configured_options.extras)
        self.options = self._configured_options
        self.solution: NDArray[np.float64] | None = None
        self.exit_code = ExitCode.UNKNOWN
        self._history: LossHistory | None = None

    @abstractmethod
    def optimize(self) -> LossHistory:
        """Run the optimization.

        This method must be implemented by concrete `Optimizer` subclasses. It
        uses `loss_fn` and `grad_fn` to evaluate candidate vectors, starting
        from `initial_vector`, and records the loss at the start of each
        iteration.

        Returns:
            The loss history, normally the `history` property.
        """

    def bind(
        self,
        *,
        loss_fn: LossFunction,
        grad_fn: GradientFunction,
        initial_vector: NDArray[np.float64],
        options: OptimizerOptions,
        history: LossHistory,
    ) -> None:
        """Inject the fields needed for a run.

        This is called by the driver before `optimize`. It also resets the
        `solution` and `exit_code` attributes from any previous run.

        Args:
            loss_fn:        The loss function.
            grad_fn:        The gradient function.
            initial_vector: The starting parameter vector.
            options:        The merged options.
            history:        The history receiving recorded losses.
        """
        self.loss_fn = loss_fn
        self.grad_fn = grad_fn
        self.initial_vector = initial_vector
        self.options = options
        self.solution = None
        self.exit_code = ExitCode.UNKNOWN
        self._history = history

    @property
    def configured_options(self) -> OptimizerOptions:
        """The options given when the optimizer was created.

        The driver merges these with its own options at the start of every
        run. They are not changed by a run.

        Returns:
            The configured options.
        """
        return self._configured_options

    @property
    def history(self) -> LossHistory:
        """The history of the current run.

        Returns:
            The loss history.

        Raises:
            RuntimeError: If the optimizer has not been bound to a run.
        """
        if self._history is None:
            msg = "The optimizer is not bound to an optimization run"
            raise RuntimeError(msg)
        return self._history

    @property
    def max_iterations(self) -> int:
        """The iteration budget.

        Returns:
            The maximum number of iterations.
        """
        if self.options.max_iterations is None:
            return DEFAULT_MAX_ITERATIONS
        return self.options.max_iterations

    def record(self, loss: float | None = None) -> None:
        """Record the loss at the start of an iteration.

        Call this before applying an update that the optimizer has accepted.
        Without an argument, the most recently evaluated loss is recorded.

        Args:
            loss: The loss value to record.

        Raises:
            RuntimeError: If no loss is given and none has been evaluated.
        """
        if loss is None:
            loss = getattr(self.loss_fn, "latest", None)
            if loss is None:
                msg = "No loss has been evaluated yet"
                raise RuntimeError(msg)
        self.history.append(loss)

    def check_options(self, options: dict[str, Any]) -> None:
        """Validate optimizer-specific options.

        The options are validated against `options_schema` for the method
        named by `method`. If the optimizer does not define a schema, any
        options are accepted.

        Args:
            options: The optimizer-specific options.

        Raises:
            ValidationError: If the options are invalid.
        """
        if self.options_schema is not None:
            OptionsSchemaModel.model_validate(self.options_schema).validate_options(
                self.method, options
            )


class OptimizerPlugin(Plugin):
    """Abstract Base Class for Optimizer Plugins (Factories).

    This class defines the interface for plugins responsible for creating
    [`Optimizer`][optbridge.plugins.optimizer.base.Optimizer] instances from a
    method name. The [`PluginManager`][optbridge.plugins.PluginManager] finds
    the plugin that supports a requested method and calls its `create` class
    method.
    """

    @classmethod
    @abstractmethod
    def create(cls, method: str, options: dict[str, Any]) -> Optimizer:
        """Create an Optimizer instance.

        Args:
            method:  The method name, possibly prefixed with the plugin name.
            options: The options of the optimizer.

        Returns:
            An initialized instance of an `Optimizer` subclass.
        """

    @classmethod
    def validate_options(cls, method: str, options: dict[str, Any] | None) -> None:
        """Validate the optimizer-specific options for a given method.

        This default implementation performs no validation. Subclasses should
        override this method to implement validation logic specific to the
        methods they support.

        Args:
            method:  The method name.
            options: The dictionary of options.

        Raises:
            Exception: If the provided options are invalid.
        """
