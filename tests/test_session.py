from typing import Callable

import numpy as np
import pytest

from optbridge import ArrayGraph, EvaluationSession, Objective
from optbridge.exceptions import NumericalFailure, SessionBusy, ShapeMismatch


def test_session_properties(make_session: Callable[..., EvaluationSession]) -> None:
    session = make_session([1.0, 2.0])
    assert session.parameter_count == 2
    assert session.codec.names == ("x",)
    assert not session.is_active
    assert not session.closed
    assert np.array_equal(session.flatten(), [1.0, 2.0])


def test_evaluate_loss(
    make_session: Callable[..., EvaluationSession], quadratic: Objective
) -> None:
    session = make_session([0.0], quadratic)
    graph = session.graph
    assert isinstance(graph, ArrayGraph)

    assert session.evaluate_loss(np.array([1.0])) == pytest.approx(4.0)
    assert graph.forward_count == 1
    assert graph.backward_count == 0
    assert np.array_equal(graph.parameters()["x"], [1.0])


def test_evaluate_loss_explicit(
    make_session: Callable[..., EvaluationSession], quadratic: Objective
) -> None:
    session = make_session([0.0])
    assert session.evaluate_loss([5.0], quadratic) == pytest.approx(4.0)
    with pytest.raises(TypeError, match="requires an Objective"):
        session.evaluate_loss([5.0])


def test_evaluate_gradient(
    make_session: Callable[..., EvaluationSession], quadratic: Objective
) -> None:
    session = make_session([0.0], quadratic)
    graph = session.graph
    assert isinstance(graph, ArrayGraph)

    out = np.zeros(1)
    assert session.evaluate_gradient(np.array([2.0]), out) is None  # type: ignore[func-returns-value]
    assert np.array_equal(out, [-2.0])
    assert graph.backward_count == 1
    assert graph.forward_count == 0


def test_evaluate_wrong_vector(
    make_session: Callable[..., EvaluationSession], quadratic: Objective
) -> None:
    session = make_session([1.0], quadratic)
    with pytest.raises(ShapeMismatch):
        session.evaluate_loss(np.array([1.0, 2.0]))
    with pytest.raises(ShapeMismatch):
        session.evaluate_gradient(np.array([1.0, 2.0]), np.zeros(1))
    assert session.graph.forward_count == 0  # type: ignore[attr-defined]
    assert np.array_equal(session.flatten(), [1.0])


@pytest.mark.parametrize(
    "out", [np.zeros(2), np.zeros((1, 1)), np.zeros(1, dtype=np.float32)]
)
def test_evaluate_gradient_wrong_buffer(
    make_session: Callable[..., EvaluationSession],
    quadratic: Objective,
    out: np.ndarray,
) -> None:
    session = make_session([1.0], quadratic)
    with pytest.raises(ShapeMismatch):
        session.evaluate_gradient(np.array([2.0]), out)
    assert session.graph.backward_count == 0  # type: ignore[attr-defined]
    assert np.array_equal(session.flatten(), [1.0])


def test_evaluate_gradient_wrong_shape(
    make_session: Callable[..., EvaluationSession],
) -> None:
    objective = Objective(
        value=lambda parameters: 0.0,
        gradient=lambda parameters: {"x": np.zeros(3)},
    )
    session = make_session([1.0, 2.0], objective)
    with pytest.raises(ShapeMismatch, match="`x` has shape"):
        session.evaluate_gradient(np.zeros(2), np.zeros(2))


@pytest.mark.parametrize("value", [np.nan, np.inf, -np.inf])
def test_non_finite_loss(
    make_session: Callable[..., EvaluationSession], value: float
) -> None:
    objective = Objective(
        value=lambda parameters: value,
        gradient=lambda parameters: {"x": np.zeros(1)},
    )
    session = make_session([1.0], objective)
    with pytest.raises(NumericalFailure, match="non-finite") as exc_info:
        session.evaluate_loss(np.array([1.0]))
    assert exc_info.value.quantity == "loss"


def test_non_finite_gradient(make_session: Callable[..., EvaluationSession]) -> None:
    objective = Objective(
        value=lambda parameters: 0.0,
        gradient=lambda parameters: {"x": np.array([1.0, np.nan])},
    )
    session = make_session([1.0, 1.0], objective)
    with pytest.raises(NumericalFailure) as exc_info:
        session.evaluate_gradient(np.zeros(2), np.zeros(2))
    assert exc_info.value.quantity == "gradient"


def test_exclusive(make_session: Callable[..., EvaluationSession]) -> None:
    session = make_session([1.0])
    with session.exclusive() as active:
        assert active is session
        assert session.is_active
        with pytest.raises(SessionBusy), session.exclusive():
            pass
        with pytest.raises(SessionBusy):
            session.close()
    assert not session.is_active


def test_exclusive_released_on_error(
    make_session: Callable[..., EvaluationSession],
) -> None:
    session = make_session([1.0])
    with pytest.raises(ZeroDivisionError), session.exclusive():
        _ = 1 / 0
    assert not session.is_active


def test_closed_session(
    make_session: Callable[..., EvaluationSession], quadratic: Objective
) -> None:
    with make_session([1.0], quadratic) as session:
        assert session.evaluate_loss([1.0]) == pytest.approx(4.0)
    assert session.closed
    with pytest.raises(RuntimeError, match="closed"):
        session.evaluate_loss([1.0])
    with pytest.raises(RuntimeError, match="closed"):
        session.flatten()
    with pytest.raises(RuntimeError, match="closed"), session.exclusive():
        pass
