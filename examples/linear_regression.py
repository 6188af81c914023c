"""Example of fitting a linear model with several parameter arrays.

The weights and the bias of a linear model are stored as separate parameters
of an `ArrayGraph`, with different shapes. The optimizer only sees a single
flat vector; the session converts between both representations. The model is
fitted by gradient descent with momentum. Method options are set on the
optimizer object, while the iteration budget and the tolerance are set when
starting the run.
"""

from typing import Any

import numpy as np
from numpy.typing import NDArray

from optbridge import ArrayGraph, EvaluationSession, GradientDescent, Objective, optimize

SAMPLES = 100
FEATURES = 3
OUTPUTS = 2

RNG = np.random.default_rng(42)
INPUTS = RNG.normal(size=(SAMPLES, FEATURES))
TRUE_WEIGHTS = RNG.normal(size=(FEATURES, OUTPUTS))
TRUE_BIAS = np.array([1.0, -1.0])
TARGETS = INPUTS @ TRUE_WEIGHTS + TRUE_BIAS + 0.01 * RNG.normal(size=(SAMPLES, OUTPUTS))


def _residuals(parameters: dict[str, NDArray[np.float64]]) -> NDArray[np.float64]:
    return INPUTS @ parameters["weights"] + parameters["bias"] - TARGETS


def mean_squared_error(parameters: dict[str, NDArray[np.float64]]) -> float:
    """Return the mean squared error of the model."""
    return float(np.mean(_residuals(parameters) ** 2))


def mean_squared_error_gradient(
    parameters: dict[str, NDArray[np.float64]],
) -> dict[str, Any]:
    """Return the gradient of the mean squared error for each parameter."""
    residuals = _residuals(parameters)
    scale = 2.0 / residuals.size
    return {
        "weights": scale * INPUTS.T @ residuals,
        "bias": scale * residuals.sum(axis=0),
    }


def main() -> None:
    """Run the example and check the result."""
    graph = ArrayGraph(
        {"weights": np.zeros((FEATURES, OUTPUTS)), "bias": np.zeros(OUTPUTS)}
    )
    objective = Objective(value=mean_squared_error, gradient=mean_squared_error_gradient)
    optimizer = GradientDescent(step_size=0.2, momentum=0.5)

    with EvaluationSession(graph, objective) as session:
        history = optimize(
            session, optimizer=optimizer, max_iterations=2000, tolerance=1e-6
        )

    print(f"  iterations: {len(history)} ({history.exit_code.name})")
    print(f"  weights:\n{graph.parameters()['weights']}")
    print(f"  bias: {graph.parameters()['bias']}")
    print(f"  loss: {history[-1]}")

    assert history[-1] < 1e-3
    assert np.allclose(graph.parameters()["weights"], TRUE_WEIGHTS, atol=1e-2)
    assert np.allclose(graph.parameters()["bias"], TRUE_BIAS, atol=1e-2)


if __name__ == "__main__":
    main()
