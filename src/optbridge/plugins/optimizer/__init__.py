"""Framework and implementations for optimizer plugins.

This module provides the components for integrating optimization algorithms
into `optbridge`.

**Core Concepts:**

* **Optimizer Implementation:** The optimization logic resides in classes that
  inherit from the [`Optimizer`][optbridge.plugins.optimizer.base.Optimizer]
  abstract base class. The driver injects a loss function, a gradient
  function, the initial parameter vector and the merged options, and then
  calls the `optimize` method, which runs the whole optimization loop.
* **Structural Contract:** Objects that do not derive from `Optimizer` can
  still be used, if they follow the
  [`OptimizerProtocol`][optbridge.plugins.optimizer.protocol.OptimizerProtocol].
* **Plugin Interface:** Optimizer plugins inherit from the
  [`OptimizerPlugin`][optbridge.plugins.optimizer.base.OptimizerPlugin] base
  class, a factory that creates optimizers from a method name.

**Built-in Optimizers:**

* [`GradientDescent`][optbridge.plugins.optimizer.builtin.GradientDescent] and
  [`LBFGS`][optbridge.plugins.optimizer.builtin.LBFGS], provided by the
  `builtin` plugin.
* [`SciPyOptimizer`][optbridge.plugins.optimizer.scipy.SciPyOptimizer]:
  Provides access to algorithms from the `scipy.optimize` library, via the
  `scipy` plugin.
"""

from .base import Optimizer, OptimizerPlugin
from .builtin import LBFGS, GradientDescent
from .protocol import GradientFunction, LossFunction, OptimizerProtocol
from .scipy import SciPyOptimizer

__all__ = [
    "LBFGS",
    "GradientDescent",
    "GradientFunction",
    "LossFunction",
    "Optimizer",
    "OptimizerPlugin",
    "OptimizerProtocol",
    "SciPyOptimizer",
]
