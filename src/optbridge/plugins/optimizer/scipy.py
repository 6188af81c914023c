"""This module implements the SciPy optimization plugin."""

from __future__ import annotations

import logging
from collections import deque
from typing import TYPE_CHECKING, Any, Final

import numpy as np
from scipy.optimize import minimize

from optbridge.config.options import OptionsSchemaModel
from optbridge.enums import ExitCode
from optbridge.exceptions import UnsupportedOptimizer

from .base import Optimizer, OptimizerPlugin

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from optbridge.history import LossHistory

_logger = logging.getLogger(__name__)

_SUPPORTED_METHODS: Final[set[str]] = {
    name.lower()
    for name in (
        "Nelder-Mead",
        "Powell",
        "CG",
        "BFGS",
        "Newton-CG",
        "L-BFGS-B",
        "TNC",
        "SLSQP",
    )
}

# These methods do not use a gradient:
_NO_GRADIENT: Final = {name.lower() for name in ["Nelder-Mead", "Powell"]}

# Number of recent loss evaluations that are cached:
_CACHE_SIZE: Final = 8


class SciPyOptimizer(Optimizer):
    """SciPy optimization backend for optbridge.

    This class adapts several algorithms of SciPy's
    [`scipy.optimize.minimize`](https://docs.scipy.org/doc/scipy/reference/generated/scipy.optimize.minimize.html)
    function to the optimizer contract. The algorithm is selected with the
    `method` argument, all other keyword arguments are method-specific options
    that are forwarded to SciPy.

    The iteration budget is passed as the `maxiter` option (`maxfun` for the
    TNC method), and the tolerance as the `tol` argument of `minimize`.
    Gradient-free methods (Nelder-Mead, Powell) never evaluate the gradient.

    SciPy reports progress through a callback that is invoked after each
    iteration with the new iterate. The optimizer translates this into loss
    history entries: when an iteration completes, the loss of the iterate it
    started from is recorded. Loss values are cached, so recording usually does
    not require additional evaluations.

    The table below lists the supported methods together with the
    method-specific options:

    | Method      | Method Options                                           |
    |-------------|----------------------------------------------------------|
    | Nelder-Mead | disp, maxiter, maxfev, xatol, fatol, adaptive            |
    | Powell      | disp, maxiter, maxfev, xtol, ftol                        |
    | CG          | disp, maxiter, gtol, norm, c1, c2                        |
    | BFGS        | disp, maxiter, gtol, norm, xrtol, c1, c2                 |
    | Newton-CG   | disp, maxiter, xtol, c1, c2                              |
    | L-BFGS-B    | disp, maxiter, maxcor, ftol, gtol, maxfun, maxls         |
    | TNC         | disp, maxfun, scale, offset, maxCGit, eta, stepmx, ...   |
    | SLSQP       | disp, maxiter, ftol                                      |
    """

    options_schema = None

    def __init__(self, method: str = "L-BFGS-B", **options: Any) -> None:  # noqa: ANN401
        """Initialize the SciPy optimizer.

        Args:
            method:  The SciPy method name, optionally prefixed with `scipy/`.
            options: The options of the optimizer.

        Raises:
            UnsupportedOptimizer: If the method is not supported.
        """
        _, _, self.method = method.lower().rpartition("/")
        if self.method == "default":
            self.method = "l-bfgs-b"
        if self.method not in _SUPPORTED_METHODS:
            msg = f"SciPy optimizer algorithm {self.method} is not supported"
            raise UnsupportedOptimizer(msg)
        super().__init__(**options)
        self._cache: deque[tuple[bytes, float]] = deque(maxlen=_CACHE_SIZE)

    def optimize(self) -> LossHistory:
        """Run the optimization.

        See the [optbridge.plugins.optimizer.base.Optimizer][] abstract base class.

        # noqa
        """
        self._cache.clear()
        previous = self._function(self.initial_vector)

        def _callback(variables: NDArray[np.float64]) -> None:
            nonlocal previous
            if not self.history.is_full:
                self.record(previous)
            previous = self._function(variables)

        result = minimize(
            fun=self._function,
            x0=self.initial_vector,
            method=self.method,
            jac=(False if self.method in _NO_GRADIENT else self._gradient),
            tol=self.options.tolerance,
            callback=_callback,
            options=self._parse_options(),
        )
        _logger.debug("SciPy %s finished: %s", self.method, result.message)

        if result.success:
            self.exit_code = ExitCode.CONVERGED
        elif result.get("nit", 0) >= self.max_iterations:
            self.exit_code = ExitCode.MAX_ITERATIONS_REACHED
        else:
            self.exit_code = ExitCode.BACKEND_STOPPED
        self.solution = np.array(result.x, dtype=np.float64)
        return self.history

    def check_options(self, options: dict[str, Any]) -> None:
        """Validate optimizer-specific options.

        See the [optbridge.plugins.optimizer.base.Optimizer][] abstract base class.

        # noqa
        """
        SciPyOptimizerPlugin.validate_options(self.method, options)

    def _function(self, variables: NDArray[np.float64]) -> float:
        key = np.asarray(variables, dtype=np.float64).tobytes()
        for cached_key, value in self._cache:
            if cached_key == key:
                return value
        value = self.loss_fn(variables)
        self._cache.append((key, value))
        return value

    def _gradient(self, variables: NDArray[np.float64]) -> NDArray[np.float64]:
        gradient = np.empty(np.shape(variables), dtype=np.float64)
        self.grad_fn(gradient, np.asarray(variables, dtype=np.float64))
        return gradient

    def _parse_options(self) -> dict[str, Any]:
        options = dict(self.options.extras)
        # The iteration budget is set by the driver, and always overrides any
        # native SciPy setting.
        if self.method == "tnc":
            options["maxfun"] = self.max_iterations
        else:
            options["maxiter"] = self.max_iterations
        return options


class SciPyOptimizerPlugin(OptimizerPlugin):
    """The SciPy optimizer plugin class."""

    @classmethod
    def create(cls, method: str, options: dict[str, Any]) -> SciPyOptimizer:
        """Create an optimizer.

        See the [optbridge.plugins.optimizer.base.OptimizerPlugin][] abstract base class.

        # noqa
        """
        return SciPyOptimizer(method, **options)

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
                "l-bfgs-b" if method == "default" else method, options
            )


_OPTIONS_SCHEMA: dict[str, Any] = {
    "methods": {
        "Nelder-Mead": {
            "options": {
                "disp": bool,
                "maxiter": int,
                "maxfev": int,
                "xatol": float,
                "fatol": float,
                "adaptive": bool,
            },
            "url": "https://docs.scipy.org/doc/scipy/reference/optimize.minimize-neldermead.html",
        },
        "Powell": {
            "options": {
                "disp": bool,
                "maxiter": int,
                "maxfev": int,
                "xtol": float,
                "ftol": float,
            },
            "url": "https://docs.scipy.org/doc/scipy/reference/optimize.minimize-powell.html",
        },
        "CG": {
            "options": {
                "disp": bool,
                "maxiter": int,
                "gtol": float,
                "norm": float,
                "c1": float,
                "c2": float,
            },
            "url": "https://docs.scipy.org/doc/scipy/reference/optimize.minimize-cg.html",
        },
        "BFGS": {
            "options": {
                "disp": bool,
                "maxiter": int,
                "gtol": float,
                "norm": float,
                "xrtol": float,
                "c1": float,
                "c2": float,
            },
            "url": "https://docs.scipy.org/doc/scipy/reference/optimize.minimize-bfgs.html",
        },
        "Newton-CG": {
            "options": {
                "disp": bool,
                "maxiter": int,
                "xtol": float,
                "c1": float,
                "c2": float,
            },
            "url": "https://docs.scipy.org/doc/scipy/reference/optimize.minimize-newtoncg.html",
        },
        "L-BFGS-B": {
            "options": {
                "disp": int,
                "maxiter": int,
                "maxcor": int,
                "ftol": float,
                "gtol": float,
                "maxfun": int,
                "maxls": int,
            },
            "url": "https://docs.scipy.org/doc/scipy/reference/optimize.minimize-lbfgsb.html",
        },
        "TNC": {
            "options": {
                "disp": bool,
                "maxfun": int,
                "scale": list[float],
                "offset": float,
                "maxCGit": int,
                "eta": float,
                "stepmx": float,
                "accuracy": float,
                "minfev": float,
                "ftol": float,
                "xtol": float,
                "gtol": float,
                "rescale": float,
            },
            "url": "https://docs.scipy.org/doc/scipy/reference/optimize.minimize-tnc.html",
        },
        "SLSQP": {
            "options": {
                "disp": bool,
                "maxiter": int,
                "ftol": float,
            },
            "url": "https://docs.scipy.org/doc/scipy/reference/optimize.minimize-slsqp.html",
        },
    },
}
