"""Exceptions raised within the `optbridge` library."""

from __future__ import annotations


class BridgeError(Exception):
    """Base class of all errors raised by `optbridge`."""


class ShapeMismatch(BridgeError, ValueError):  # noqa: N818
    """Raised when a vector does not match the parameter layout of a graph.

    This is raised by the parameter codec when a vector of the wrong length is
    written into a graph, when a gradient array does not have the shape of its
    parameter, or when the parameter layout of a graph changed after the codec
    was constructed.
    """

    def __init__(
        self,
        message: str,
        *,
        expected: int | None = None,
        actual: int | None = None,
    ) -> None:
        """Initialize the ShapeMismatch exception.

        Args:
            message:  The error message.
            expected: The expected number of entries, if applicable.
            actual:   The actual number of entries, if applicable.
        """
        self.expected = expected
        self.actual = actual
        super().__init__(message)


class UnsupportedOptimizer(BridgeError, TypeError):  # noqa: N818
    """Raised when an object does not satisfy the optimizer contract.

    Objects passed as an optimizer must either be a method name known to the
    plugin manager, or an instance providing an `optimize` method.
    """


class NumericalFailure(BridgeError, ArithmeticError):  # noqa: N818
    """Raised when a loss or gradient evaluates to a non-finite value.

    Non-finite values are never clamped or replaced; the run is aborted and the
    error propagates to the caller of the driver.
    """

    def __init__(self, message: str, *, quantity: str) -> None:
        """Initialize the NumericalFailure exception.

        Args:
            message:  The error message.
            quantity: Either `"loss"` or `"gradient"`.
        """
        self.quantity = quantity
        super().__init__(message)


class OptionConflict(BridgeError, ValueError):  # noqa: N818
    """Raised in strict mode when a reserved option is set inconsistently."""

    def __init__(self, message: str, *, key: str) -> None:
        """Initialize the OptionConflict exception.

        Args:
            message: The error message.
            key:     The option key that caused the conflict.
        """
        self.key = key
        super().__init__(message)


class SessionBusy(BridgeError, RuntimeError):  # noqa: N818
    """Raised when a session is already running an optimization.

    A session exclusively owns the state of its graph. Starting a second
    optimization against it, for instance from inside a loss function, would
    corrupt that state and is refused.
    """
