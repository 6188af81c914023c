from typing import Any, Callable

import numpy as np
import pytest
from numpy.typing import ArrayLike

from optbridge import ArrayGraph, EvaluationSession, Objective


def _distance_squared(target: ArrayLike) -> Objective:
    target = np.asarray(target, dtype=np.float64)
    return Objective(
        value=lambda parameters: float(((parameters["x"] - target) ** 2).sum()),
        gradient=lambda parameters: {"x": 2.0 * (parameters["x"] - target)},
    )


def _rosenbrock(parameters: Any) -> float:
    x, y = parameters["x"]
    return float((1.0 - x) ** 2 + 100.0 * (y - x * x) ** 2)


def _rosenbrock_gradient(parameters: Any) -> dict[str, Any]:
    x, y = parameters["x"]
    return {
        "x": np.array(
            [-2.0 * (1.0 - x) - 400.0 * x * (y - x * x), 200.0 * (y - x * x)]
        )
    }


@pytest.fixture(name="quadratic", scope="session")
def fixture_quadratic() -> Objective:
    return _distance_squared([3.0])


@pytest.fixture(scope="session")
def distance_squared() -> Callable[[ArrayLike], Objective]:
    return _distance_squared


@pytest.fixture(name="rosenbrock", scope="session")
def fixture_rosenbrock() -> Objective:
    return Objective(value=_rosenbrock, gradient=_rosenbrock_gradient)


@pytest.fixture
def make_session() -> Callable[..., EvaluationSession]:
    def _make_session(initial_values: ArrayLike, loss: Any = None) -> EvaluationSession:
        return EvaluationSession(ArrayGraph({"x": initial_values}), loss)

    return _make_session


@pytest.fixture(name="layered_graph")
def fixture_layered_graph() -> ArrayGraph:
    return ArrayGraph(
        {
            "weights": np.arange(6.0).reshape(2, 3),
            "bias": [10.0, 11.0, 12.0],
            "scale": 20.0,
        }
    )
