"""The driver that runs an optimizer against an evaluation session."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

import numpy as np

from optbridge.config import OptimizerOptions, merge_options
from optbridge.enums import ConflictPolicy, ExitCode
from optbridge.exceptions import UnsupportedOptimizer
from optbridge.history import HistoryObserver, LossHistory
from optbridge.plugins import PluginManager
from optbridge.plugins.optimizer.base import Optimizer
from optbridge.plugins.optimizer.protocol import OptimizerProtocol

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from optbridge.session import EvaluationSession

_logger = logging.getLogger(__name__)


class _InstrumentedLoss:
    def __init__(self, session: EvaluationSession, loss: Any) -> None:  # noqa: ANN401
        self._session = session
        self._loss = loss
        self.evaluations: list[float] = []

    @property
    def count(self) -> int:
        return len(self.evaluations)

    @property
    def latest(self) -> float | None:
        return self.evaluations[-1] if self.evaluations else None

    def __call__(self, vector: NDArray[np.float64], /) -> float:
        value = self._session.evaluate_loss(vector, self._loss)
        self.evaluations.append(value)
        return value


class _InstrumentedGradient:
    def __init__(self, session: EvaluationSession, loss: Any) -> None:  # noqa: ANN401
        self._session = session
        self._loss = loss
        self.count = 0

    def __call__(
        self, out: NDArray[np.float64], vector: NDArray[np.float64], /
    ) -> None:
        self._session.evaluate_gradient(vector, out, self._loss)
        self.count += 1


class Driver:
    """Runs optimizers against evaluation sessions.

    The driver connects an optimizer to an
    [`EvaluationSession`][optbridge.session.EvaluationSession]. A run proceeds
    as follows:

    1. The optimizer is resolved and validated. It may be given as a method
       name, which is looked up using the
       [`PluginManager`][optbridge.plugins.PluginManager], or as an object
       following the optimizer contract.
    2. A loss function and a gradient function bound to the session are
       created. Both count their calls; the loss function also keeps every
       value it returns.
    3. The current parameters of the graph are flattened into the initial
       vector.
    4. The options of the optimizer are merged with the options passed to the
       driver, the driver taking precedence (see
       [`merge_options`][optbridge.config.merge_options]).
    5. The optimizer is run, holding exclusive access to the session.
    6. The loss history is returned. If the optimizer did not record any
       entries itself, the driver uses the sequence returned by its
       `optimize` method, or failing that, the losses it evaluated, truncated
       to the iteration budget.

    If the optimizer reports a solution, it is written into the graph after
    the run. The options configured on the optimizer are not changed by a run:
    an [`Optimizer`][optbridge.plugins.optimizer.base.Optimizer] keeps them in
    `configured_options`, and for other objects the `options` attribute is
    restored when the run ends. Errors raised during the run propagate
    unchanged: there are no retries and no partial results.
    """

    def __init__(
        self,
        plugin_manager: PluginManager | None = None,
        *,
        conflict_policy: ConflictPolicy = ConflictPolicy.OVERRIDE,
    ) -> None:
        """Initialize the driver.

        Args:
            plugin_manager:  The plugin manager used to resolve method names.
            conflict_policy: How to handle conflicting options.
        """
        self._plugin_manager = (
            PluginManager() if plugin_manager is None else plugin_manager
        )
        self._conflict_policy = ConflictPolicy(conflict_policy)

    def run(
        self,
        session: EvaluationSession,
        loss: Any,  # noqa: ANN401
        optimizer: Optimizer | OptimizerProtocol | str,
        override_options: Mapping[str, Any] | None = None,
        *,
        callback: HistoryObserver | None = None,
    ) -> LossHistory:
        """Run an optimization.

        Args:
            session:          The session to evaluate.
            loss:             The loss expression, or `None` for the session
                              default.
            optimizer:        The optimizer, or the name of an optimization
                              method.
            override_options: Options that take precedence over those of the
                              optimizer.
            callback:         Optional function called for each history entry.

        Returns:
            The loss at the start of each completed iteration.

        Raises:
            UnsupportedOptimizer: If the optimizer does not satisfy the contract.
            OptionConflict:       If options conflict in strict mode.
            SessionBusy:          If the session is already running an optimization.
        """
        instance = self._resolve_optimizer(optimizer)
        loss_fn = _InstrumentedLoss(session, loss)
        grad_fn = _InstrumentedGradient(session, loss)
        initial_vector = session.flatten()

        options = merge_options(
            _instance_options(instance),
            override_options or {},
            policy=self._conflict_policy,
        )
        if isinstance(instance, Optimizer):
            instance.check_options(options.extras)
        history = LossHistory(options.max_iterations or 0, observer=callback)

        _logger.debug(
            "Starting %s with %d parameters, options: %s",
            type(instance).__name__,
            initial_vector.size,
            options.to_dict(),
        )
        configured = getattr(instance, "options", None)
        with session.exclusive():
            if isinstance(instance, Optimizer):
                instance.bind(
                    loss_fn=loss_fn,
                    grad_fn=grad_fn,
                    initial_vector=initial_vector,
                    options=options,
                    history=history,
                )
            else:
                instance.loss_fn = loss_fn  # type: ignore[attr-defined]
                instance.grad_fn = grad_fn  # type: ignore[attr-defined]
                instance.initial_vector = initial_vector  # type: ignore[attr-defined]
                instance.options = options  # type: ignore[attr-defined]
            try:
                returned = instance.optimize()
            finally:
                if not isinstance(instance, Optimizer):
                    instance.options = configured  # type: ignore[attr-defined]

            if len(history) == 0:
                _fill_history(history, returned, loss_fn.evaluations)

            solution = getattr(instance, "solution", None)
            if solution is not None:
                session.codec.unflatten(solution)

        history.loss_evaluations = loss_fn.count
        history.gradient_evaluations = grad_fn.count
        history.exit_code = ExitCode(getattr(instance, "exit_code", ExitCode.UNKNOWN))
        _logger.info(
            "Optimization finished after %d iterations (%s), "
            "%d loss and %d gradient evaluations, final loss: %s",
            len(history),
            history.exit_code.name,
            history.loss_evaluations,
            history.gradient_evaluations,
            history[-1] if history else None,
        )
        return history

    def _resolve_optimizer(
        self, optimizer: Optimizer | OptimizerProtocol | str
    ) -> Optimizer | OptimizerProtocol:
        if isinstance(optimizer, str):
            try:
                plugin = self._plugin_manager.get_plugin("optimizer", optimizer)
            except ValueError as exc:
                msg = f"Unknown optimization method: {optimizer}"
                raise UnsupportedOptimizer(msg) from exc
            instance: Optimizer | OptimizerProtocol = plugin.create(optimizer, {})
            return instance
        if isinstance(optimizer, type):
            msg = (
                f"Expected an optimizer instance, got the class {optimizer.__name__}"
            )
            raise UnsupportedOptimizer(msg)
        if isinstance(optimizer, OptimizerProtocol) and callable(optimizer.optimize):
            return optimizer
        msg = f"Object of type {type(optimizer).__name__} is not an optimizer"
        raise UnsupportedOptimizer(msg)


def optimize(
    session: EvaluationSession,
    loss: Any = None,  # noqa: ANN401
    *,
    optimizer: Optimizer | OptimizerProtocol | str = "lbfgs",
    callback: HistoryObserver | None = None,
    conflict_policy: ConflictPolicy = ConflictPolicy.OVERRIDE,
    **options: Any,  # noqa: ANN401
) -> LossHistory:
    """Optimize the parameters of the graph of a session.

    This is the main entry point of `optbridge`. It runs the given optimizer
    against the session, and leaves the optimized parameters in the graph.

    **Example**:
    ```py
    import numpy as np

    from optbridge import ArrayGraph, EvaluationSession, Objective, optimize

    graph = ArrayGraph({"x": [0.0]})
    objective = Objective(
        value=lambda p: float(((p["x"] - 3.0) ** 2).sum()),
        gradient=lambda p: {"x": 2.0 * (p["x"] - 3.0)},
    )
    history = optimize(
        EvaluationSession(graph),
        objective,
        optimizer="gradient_descent",
        step_size=0.1,
        max_iterations=50,
    )
    print(history[-1], graph.parameters()["x"])
    ```

    Args:
        session:         The session to evaluate.
        loss:            The loss expression, or `None` for the session default.
        optimizer:       An optimizer, or the name of an optimization method.
        callback:        Optional function called with the iteration index and
                         the loss for each history entry.
        conflict_policy: How to handle conflicting options.
        options:         Options for the optimizer. `max_iterations` and
                         `tolerance` take precedence over the values set on
                         the optimizer.

    Returns:
        The loss at the start of each completed iteration.
    """
    return Driver(conflict_policy=conflict_policy).run(
        session, loss, optimizer, options, callback=callback
    )


def _instance_options(instance: Any) -> OptimizerOptions:  # noqa: ANN401
    if isinstance(instance, Optimizer):
        return instance.configured_options
    options = getattr(instance, "options", None)
    if isinstance(options, OptimizerOptions):
        return options
    if isinstance(options, Mapping):
        return OptimizerOptions.from_mapping(options)
    return OptimizerOptions()


def _fill_history(
    history: LossHistory, returned: Any, evaluations: list[float]  # noqa: ANN401
) -> None:
    if (
        returned is not history
        and isinstance(returned, Sequence | np.ndarray)
        and not isinstance(returned, str | bytes)
        and len(returned) > 0
    ):
        values = [float(value) for value in np.ravel(returned)]
        _logger.debug("Using the history returned by the optimizer")
    else:
        values = evaluations
        _logger.debug("Using the evaluated losses as history")
    for value in values[: history.capacity]:
        history.append(value)
