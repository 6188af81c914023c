"""Optimizer bridge for differentiable computational graphs.

`optbridge` connects a graph that computes a scalar loss and its gradient to
interchangeable optimization algorithms. The main entry point is the
[`optimize`][optbridge.optimize] function, which runs an optimizer against an
[`EvaluationSession`][optbridge.EvaluationSession] and returns the
[`LossHistory`][optbridge.LossHistory] of the run.
"""

from .codec import ParameterCodec, flatten, unflatten
from .driver import Driver, optimize
from .enums import ConflictPolicy, ExitCode
from .graph import ArrayGraph, Graph, Objective
from .history import LossHistory
from .plugins.optimizer import LBFGS, GradientDescent, Optimizer, SciPyOptimizer
from .session import EvaluationSession

__all__ = [
    "LBFGS",
    "ArrayGraph",
    "ConflictPolicy",
    "Driver",
    "EvaluationSession",
    "ExitCode",
    "GradientDescent",
    "Graph",
    "LossHistory",
    "Objective",
    "Optimizer",
    "ParameterCodec",
    "SciPyOptimizer",
    "flatten",
    "optimize",
    "unflatten",
]
