"""The evaluation session, the live execution context of a graph."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Self

import numpy as np

from optbridge.codec import ParameterCodec
from optbridge.exceptions import NumericalFailure, ShapeMismatch, SessionBusy

if TYPE_CHECKING:
    from collections.abc import Iterator
    from types import TracebackType

    from numpy.typing import ArrayLike, NDArray

    from optbridge.graph import Graph

_logger = logging.getLogger(__name__)


class EvaluationSession:
    """Evaluates the loss and gradient of a graph at given parameter vectors.

    A session exclusively owns a graph and the parameter codec for it. Each
    evaluation writes the requested parameter vector into the graph, runs one
    forward or backward computation, and returns the result. As a consequence,
    the state of the graph after an evaluation reflects the last evaluated
    vector; callers should not assume that it is left unchanged.

    A session may be given a default loss expression, used by evaluations that
    do not specify one. Sessions can be used as context managers; once closed,
    they refuse further evaluations.

    Only one optimization may run against a session at a time. The driver
    enforces this with the [`exclusive`][optbridge.session.EvaluationSession.exclusive]
    context manager.
    """

    def __init__(self, graph: Graph, loss: Any = None) -> None:  # noqa: ANN401
        """Initialize the session.

        Args:
            graph: The graph to evaluate.
            loss:  The default loss expression.
        """
        self._graph = graph
        self._codec = ParameterCodec(graph)
        self._loss = loss
        self._active = False
        self._closed = False

    @property
    def graph(self) -> Graph:
        """The graph owned by this session.

        Returns:
            The graph.
        """
        return self._graph

    @property
    def codec(self) -> ParameterCodec:
        """The parameter codec of the graph.

        Returns:
            The codec.
        """
        return self._codec

    @property
    def parameter_count(self) -> int:
        """The number of scalar parameters of the graph.

        Returns:
            The length of parameter vectors accepted by this session.
        """
        return self._codec.size

    @property
    def is_active(self) -> bool:
        """Whether an optimization is currently running against this session.

        Returns:
            `True` while inside [`exclusive`][optbridge.session.EvaluationSession.exclusive].
        """
        return self._active

    @property
    def closed(self) -> bool:
        """Whether the session has been closed.

        Returns:
            `True` if the session is closed.
        """
        return self._closed

    def flatten(self) -> NDArray[np.float64]:
        """Return the current parameters of the graph as a vector.

        Returns:
            A new flat parameter vector.
        """
        self._check_open()
        return self._codec.flatten()

    def evaluate_loss(
        self,
        vector: ArrayLike,
        loss: Any = None,  # noqa: ANN401
    ) -> float:
        """Evaluate the loss at a parameter vector.

        Args:
            vector: The parameter vector.
            loss:   The loss expression, the session default if `None`.

        Returns:
            The loss value.

        Raises:
            ShapeMismatch:    If the vector has the wrong length.
            NumericalFailure: If the loss is not finite.
        """
        self._check_open()
        self._codec.unflatten(vector)
        value = float(self._graph.forward(self._loss if loss is None else loss))
        _logger.debug("Loss evaluated: %s", value)
        if not np.isfinite(value):
            msg = f"The loss evaluated to a non-finite value: {value}"
            raise NumericalFailure(msg, quantity="loss")
        return value

    def evaluate_gradient(
        self,
        vector: ArrayLike,
        out: NDArray[np.float64],
        loss: Any = None,  # noqa: ANN401
    ) -> None:
        """Evaluate the gradient of the loss at a parameter vector.

        The gradient is written into `out`, which must be a writeable `float64`
        array with one entry per parameter.

        Args:
            vector: The parameter vector.
            out:    The buffer receiving the gradient.
            loss:   The loss expression, the session default if `None`.

        Raises:
            ShapeMismatch:    If the vector or the buffer have the wrong length,
                              or the graph returns gradients of the wrong shape.
            NumericalFailure: If the gradient contains non-finite values.
        """
        self._check_open()
        if not isinstance(out, np.ndarray) or out.dtype != np.float64:
            msg = "The gradient buffer must be a float64 NumPy array"
            raise ShapeMismatch(msg)
        if out.shape != (self._codec.size,):
            msg = (
                f"Gradient buffer has shape {out.shape}, "
                f"expected ({self._codec.size},)"
            )
            raise ShapeMismatch(msg, expected=self._codec.size, actual=out.size)
        self._codec.unflatten(vector)
        gradients = self._graph.backward(self._loss if loss is None else loss)
        self._codec.pack(gradients, out=out)
        _logger.debug("Gradient evaluated, norm: %s", np.linalg.norm(out))
        if not np.all(np.isfinite(out)):
            msg = "The gradient contains non-finite values"
            raise NumericalFailure(msg, quantity="gradient")

    @contextmanager
    def exclusive(self) -> Iterator[Self]:
        """Mark the session as running an optimization.

        Yields:
            The session.

        Raises:
            SessionBusy: If an optimization is already running.
        """
        self._check_open()
        if self._active:
            msg = "An optimization is already running against this session"
            raise SessionBusy(msg)
        self._active = True
        try:
            yield self
        finally:
            self._active = False

    def close(self) -> None:
        """Close the session.

        Raises:
            SessionBusy: If an optimization is still running.
        """
        if self._active:
            msg = "Cannot close a session while an optimization is running"
            raise SessionBusy(msg)
        self._closed = True

    def __enter__(self) -> Self:
        """Enter the session context.

        Returns:
            The session.
        """
        self._check_open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        """Close the session on leaving the context."""
        self.close()

    def _check_open(self) -> None:
        if self._closed:
            msg = "The evaluation session is closed"
            raise RuntimeError(msg)
