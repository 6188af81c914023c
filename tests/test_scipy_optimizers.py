from typing import Callable

import numpy as np
import pytest
from numpy.typing import ArrayLike
from pydantic import ValidationError

from optbridge import EvaluationSession, ExitCode, Objective, SciPyOptimizer, optimize
from optbridge.enums import ConflictPolicy
from optbridge.exceptions import OptionConflict, UnsupportedOptimizer
from optbridge.plugins.optimizer.scipy import _NO_GRADIENT, _SUPPORTED_METHODS

_TARGET = [0.5, 0.5, 0.5]


@pytest.fixture(name="target_session")
def fixture_target_session(
    make_session: Callable[..., EvaluationSession],
    distance_squared: Callable[[ArrayLike], Objective],
) -> EvaluationSession:
    return make_session([0.0, 0.0, 0.1], distance_squared(_TARGET))


@pytest.mark.parametrize("method", sorted(_SUPPORTED_METHODS))
def test_scipy_methods(target_session: EvaluationSession, method: str) -> None:
    history = optimize(
        target_session,
        optimizer=SciPyOptimizer(method),
        tolerance=1e-6,
        max_iterations=500,
    )
    assert 0 < len(history) <= 500
    assert history[0] == pytest.approx(0.66)
    assert np.allclose(target_session.flatten(), _TARGET, atol=0.02)
    if method in _NO_GRADIENT:
        assert history.gradient_evaluations == 0
    else:
        assert history.gradient_evaluations > 0


@pytest.mark.parametrize("method", ["scipy/slsqp", "bfgs", "L-BFGS-B", "scipy/default"])
def test_scipy_method_names(target_session: EvaluationSession, method: str) -> None:
    history = optimize(target_session, optimizer=method, tolerance=1e-6)
    assert history.exit_code == ExitCode.CONVERGED
    assert np.allclose(target_session.flatten(), _TARGET, atol=0.02)


@pytest.mark.parametrize("method", ["bfgs", "l-bfgs-b"])
def test_scipy_budget(
    make_session: Callable[..., EvaluationSession],
    rosenbrock: Objective,
    method: str,
) -> None:
    session = make_session([-1.2, 1.0], rosenbrock)
    history = optimize(session, optimizer=SciPyOptimizer(method), max_iterations=3)
    assert 0 < len(history) <= 3
    assert history.exit_code == ExitCode.MAX_ITERATIONS_REACHED
    assert history[0] == pytest.approx(24.2)


def test_scipy_history_precedes_update(
    make_session: Callable[..., EvaluationSession], rosenbrock: Objective
) -> None:
    session = make_session([-1.2, 1.0], rosenbrock)
    iterates: list[float] = []
    history = optimize(
        session,
        optimizer="scipy/bfgs",
        max_iterations=100,
        callback=lambda _, loss: iterates.append(loss),
    )
    assert history.values.tolist() == iterates
    assert np.all(np.diff(history.values) <= 0.0)
    assert history.exit_code == ExitCode.CONVERGED
    assert np.allclose(session.flatten(), [1.0, 1.0], atol=1e-3)


def test_scipy_native_budget_is_ignored(
    make_session: Callable[..., EvaluationSession], rosenbrock: Objective
) -> None:
    session = make_session([-1.2, 1.0], rosenbrock)
    optimizer = SciPyOptimizer("bfgs", maxiter=2)
    history = optimize(session, optimizer=optimizer, max_iterations=100)
    assert len(history) > 2

    session = make_session([-1.2, 1.0], rosenbrock)
    with pytest.raises(OptionConflict, match="`maxiter`"):
        optimize(
            session,
            optimizer=optimizer,
            max_iterations=100,
            conflict_policy=ConflictPolicy.ERROR,
        )


def test_scipy_method_options(target_session: EvaluationSession) -> None:
    history = optimize(
        target_session, optimizer="scipy/nelder-mead", xatol=1e-8, fatol=1e-8
    )
    assert np.allclose(target_session.flatten(), _TARGET, atol=1e-4)
    assert history.gradient_evaluations == 0


def test_scipy_invalid_options(target_session: EvaluationSession) -> None:
    with pytest.raises(
        ValidationError, match=r"Unknown or unsupported option\(s\): `foo`"
    ):
        SciPyOptimizer("bfgs", foo=1)
    with pytest.raises(ValidationError, match="Input should be a valid number"):
        SciPyOptimizer("bfgs", gtol="foo")
    with pytest.raises(
        ValidationError, match=r"Unknown or unsupported option\(s\): `maxcor`"
    ):
        optimize(target_session, optimizer="scipy/bfgs", maxcor=5)


def test_scipy_unsupported_method(target_session: EvaluationSession) -> None:
    with pytest.raises(UnsupportedOptimizer, match="dogleg"):
        SciPyOptimizer("dogleg")
    with pytest.raises(UnsupportedOptimizer, match="scipy/dogleg"):
        optimize(target_session, optimizer="scipy/dogleg")
    assert not target_session.is_active


def test_scipy_default_method() -> None:
    assert SciPyOptimizer().method == "l-bfgs-b"
    assert SciPyOptimizer("scipy/default").method == "l-bfgs-b"
