"""Example of optimization of a multi-dimensional Rosenbrock test function.

This example stores the variables of the Rosenbrock function in an
`ArrayGraph`, and minimizes the function using the built-in L-BFGS optimizer.
Run it with the `--scipy` argument to use the BFGS method of SciPy instead. The
loss history is reported while the optimization runs.
"""

import sys
from typing import Any

import numpy as np
from numpy.typing import NDArray

from optbridge import ArrayGraph, EvaluationSession, LossHistory, Objective, optimize

DIM = 5

CONFIG: dict[str, Any] = {
    "optimizer": "lbfgs",
    "max_iterations": 500,
    "tolerance": 1e-6,
}


def rosenbrock(parameters: dict[str, NDArray[np.float64]]) -> float:
    """Evaluate the multi-dimensional Rosenbrock function.

    Args:
        parameters: The parameters of the graph.

    Returns:
        The value of the function.
    """
    x = parameters["x"]
    return float(np.sum((1.0 - x[:-1]) ** 2 + 100.0 * (x[1:] - x[:-1] ** 2) ** 2))


def rosenbrock_gradient(
    parameters: dict[str, NDArray[np.float64]],
) -> dict[str, NDArray[np.float64]]:
    """Evaluate the gradient of the multi-dimensional Rosenbrock function.

    Args:
        parameters: The parameters of the graph.

    Returns:
        The gradient with respect to the `x` parameter.
    """
    x = parameters["x"]
    gradient = np.zeros_like(x)
    gradient[:-1] = -2.0 * (1.0 - x[:-1]) - 400.0 * x[:-1] * (x[1:] - x[:-1] ** 2)
    gradient[1:] += 200.0 * (x[1:] - x[:-1] ** 2)
    return {"x": gradient}


def report(iteration: int, loss: float) -> None:
    """Report the loss at the start of an iteration.

    Args:
        iteration: The iteration index.
        loss:      The loss value.
    """
    if iteration % 10 == 0:
        print(f"  iteration {iteration:4d}: loss = {loss:.6e}")


def run_optimization(config: dict[str, Any]) -> tuple[ArrayGraph, LossHistory]:
    """Run the optimization.

    Args:
        config: The configuration of the optimizer.

    Returns:
        The optimized graph and the loss history.
    """
    graph = ArrayGraph({"x": 2 * np.arange(DIM) / DIM + 0.5})
    objective = Objective(value=rosenbrock, gradient=rosenbrock_gradient)
    with EvaluationSession(graph, objective) as session:
        history = optimize(session, callback=report, **config)

    print(f"  exit code: {history.exit_code.name}")
    print(f"  variables: {graph.parameters()['x']}")
    print(f"  objective: {history[-1]}\n")

    return graph, history


def main(argv: list[str] | None = None) -> None:
    """Run the example and check the result.

    Args:
        argv: Optional command line arguments.
    """
    if argv is not None and "--scipy" in argv:
        CONFIG["optimizer"] = "scipy/bfgs"
    graph, history = run_optimization(CONFIG)
    assert len(history) <= CONFIG["max_iterations"]
    assert history[-1] < history[0]
    assert np.allclose(graph.parameters()["x"], 1.0, atol=1e-2)


if __name__ == "__main__":
    main(sys.argv)
