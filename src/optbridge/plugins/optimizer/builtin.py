"""This module implements the built-in optimization plugin.

The built-in optimizers are reference implementations of the optimizer
contract that depend only on NumPy:

* [`GradientDescent`][optbridge.plugins.optimizer.builtin.GradientDescent]:
  fixed step size gradient descent, with optional heavy-ball momentum.
* [`LBFGS`][optbridge.plugins.optimizer.builtin.LBFGS]: a limited-memory
  quasi-Newton method with a backtracking line search.
"""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING, Any, Final

import numpy as np
from pydantic import NonNegativeFloat, PositiveFloat, PositiveInt

from optbridge.config.options import OptionsSchemaModel
from optbridge.enums import ExitCode
from optbridge.exceptions import UnsupportedOptimizer

from .base import Optimizer, OptimizerPlugin

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from optbridge.history import LossHistory

_SUPPORTED_METHODS: Final = {"gradient_descent", "lbfgs"}

_OPTIONS_SCHEMA: Final[dict[str, Any]] = {
    "methods": {
        "gradient_descent": {
            "options": {
                "step_size": PositiveFloat,
                "momentum": NonNegativeFloat,
            },
        },
        "lbfgs": {
            "options": {
                "memory": PositiveInt,
                "c1": PositiveFloat,
                "max_line_search": PositiveInt,
                "initial_step": PositiveFloat,
            },
        },
    },
}


class GradientDescent(Optimizer):
    """Gradient descent with a fixed step size.

    Each iteration evaluates the loss and the gradient, records the loss, and
    takes a step along the negative gradient. With a non-zero `momentum`, the
    step is accumulated in a velocity vector (heavy-ball method).

    The optimization stops when the norm of the gradient falls to or below the
    `tolerance`, or after `max_iterations` iterations.

    Options:
        step_size: The step size (default: 0.01).
        momentum:  The momentum coefficient (default: 0.0).
    """

    method = "gradient_descent"
    options_schema = _OPTIONS_SCHEMA
    default_options = {"step_size": 0.01, "momentum": 0.0}

    def optimize(self) -> LossHistory:
        """Run the optimization.

        See the [optbridge.plugins.optimizer.base.Optimizer][] abstract base class.

        # noqa
        """
        step_size = self.options.get("step_size")
        momentum = self.options.get("momentum")

        variables = self.initial_vector.copy()
        gradient = np.empty_like(variables)
        velocity = np.zeros_like(variables)

        self.exit_code = ExitCode.MAX_ITERATIONS_REACHED
        for _ in range(self.max_iterations):
            loss = self.loss_fn(variables)
            self.grad_fn(gradient, variables)
            self.record(loss)
            if _converged(gradient, self.options.tolerance):
                self.exit_code = ExitCode.CONVERGED
                break
            velocity = momentum * velocity - step_size * gradient
            variables = variables + velocity

        self.solution = variables
        return self.history


class LBFGS(Optimizer):
    """Limited-memory BFGS with a backtracking line search.

    The search direction is computed with the two-loop recursion from the last
    `memory` pairs of steps and gradient differences. Pairs that violate the
    curvature condition are skipped. If the direction is not a descent
    direction, the memory is cleared and the negative gradient is used.

    The step length is found by halving an initial step until the Armijo
    sufficient decrease condition holds, for at most `max_line_search` loss
    evaluations. The initial step is `initial_step`, except in the first
    iteration after the memory is cleared, where it is scaled down by the
    1-norm of the gradient.

    The optimization stops when the norm of the gradient falls to or below the
    `tolerance`, when the line search fails, or after `max_iterations`
    iterations.

    Options:
        memory:          The number of stored pairs (default: 10).
        c1:              The sufficient decrease parameter (default: 1e-4).
        max_line_search: Maximum loss evaluations per line search (default: 20).
        initial_step:    The initial step length (default: 1.0).
    """

    method = "lbfgs"
    options_schema = _OPTIONS_SCHEMA
    default_options = {
        "memory": 10,
        "c1": 1e-4,
        "max_line_search": 20,
        "initial_step": 1.0,
    }

    def optimize(self) -> LossHistory:
        """Run the optimization.

        See the [optbridge.plugins.optimizer.base.Optimizer][] abstract base class.

        # noqa
        """
        c1 = self.options.get("c1")
        max_line_search = self.options.get("max_line_search")
        initial_step = self.options.get("initial_step")
        pairs: deque[tuple[NDArray[np.float64], NDArray[np.float64], float]] = deque(
            maxlen=self.options.get("memory")
        )

        variables = self.initial_vector.copy()
        loss = self.loss_fn(variables)
        gradient = np.empty_like(variables)
        self.grad_fn(gradient, variables)

        self.exit_code = ExitCode.MAX_ITERATIONS_REACHED
        for _ in range(self.max_iterations):
            self.record(loss)
            if _converged(gradient, self.options.tolerance):
                self.exit_code = ExitCode.CONVERGED
                break

            direction = -_two_loop_recursion(gradient, pairs)
            slope = float(gradient @ direction)
            if slope >= 0.0:
                pairs.clear()
                direction = -gradient
                slope = -float(gradient @ gradient)

            step = initial_step
            if not pairs:
                step = min(initial_step, 1.0 / float(np.abs(gradient).sum()))

            for _ in range(max_line_search):
                candidate = variables + step * direction
                candidate_loss = self.loss_fn(candidate)
                if candidate_loss <= loss + c1 * step * slope:
                    break
                step *= 0.5
            else:
                self.exit_code = ExitCode.LINE_SEARCH_FAILED
                break

            candidate_gradient = np.empty_like(variables)
            self.grad_fn(candidate_gradient, candidate)

            s = candidate - variables
            y = candidate_gradient - gradient
            sy = float(s @ y)
            if sy > np.finfo(np.float64).eps * float(y @ y):
                pairs.append((s, y, 1.0 / sy))

            variables, loss, gradient = candidate, candidate_loss, candidate_gradient

        self.solution = variables
        return self.history


def _converged(gradient: NDArray[np.float64], tolerance: float | None) -> bool:
    return bool(np.linalg.norm(gradient) <= (0.0 if tolerance is None else tolerance))


def _two_loop_recursion(
    gradient: NDArray[np.float64],
    pairs: deque[tuple[NDArray[np.float64], NDArray[np.float64], float]],
) -> NDArray[np.float64]:
    q = gradient.copy()
    alphas = []
    for s, y, rho in reversed(pairs):
        alpha = rho * float(s @ q)
        q -= alpha * y
        alphas.append(alpha)
    if pairs:
        s, y, _ = pairs[-1]
        q *= float(s @ y) / float(y @ y)
    for (s, y, rho), alpha in zip(pairs, reversed(alphas), strict=True):
        beta = rho * float(y @ q)
        q += (alpha - beta) * s
    return q


class BuiltinOptimizerPlugin(OptimizerPlugin):
    """The plugin providing the built-in optimizers."""

    @classmethod
    def create(cls, method: str, options: dict[str, Any]) -> Optimizer:
        """Create an optimizer.

        See the [optbridge.plugins.optimizer.base.OptimizerPlugin][] abstract base class.

        # noqa
        """
        _, _, method = method.lower().rpartition("/")
        if method in {"lbfgs", "default"}:
            return LBFGS(**options)
        if method == "gradient_descent":
            return GradientDescent(**options)
        msg = f"Built-in optimizer algorithm {method} is not supported"
        raise UnsupportedOptimizer(msg)

    @classmethod
    def is_supported(cls, method: str) -> bool:
        """Check if a method is supported.

        See the [optbridge.plugins.optimizer.base.OptimizerPlugin][] abstract base class.

        # noqa
        """
        return method.lower() in (_SUPPORTED_METHODS | {"default"})

    @classmethod
    def validate_options(cls, method: str, options: dict[str, Any] | None) -> None:
        """Validate the options of a given method.

        See the [optbridge.plugins.optimizer.base.OptimizerPlugin][] abstract base class.

        # noqa
        """
        _, _, method = method.lower().rpartition("/")
        if options is not None:
            OptionsSchemaModel.model_validate(_OPTIONS_SCHEMA).validate_options(
                "lbfgs" if method == "default" else method, options
            )
