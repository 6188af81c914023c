"""The loss history returned by an optimization run."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Callable, overload

import numpy as np

from optbridge.config.utils import immutable_array
from optbridge.enums import ExitCode

if TYPE_CHECKING:
    from numpy.typing import NDArray

HistoryObserver = Callable[[int, float], None]
"""Signature of functions notified of each new history entry.

The observer receives the zero-based iteration index and the loss value.
"""


class LossHistory(Sequence[float]):
    """Append-only record of the loss at the start of each iteration.

    The history has a fixed capacity, equal to the iteration budget of the run.
    Entries can only be added with [`append`][optbridge.history.LossHistory.append];
    adding more entries than the capacity allows is an error. Only populated
    entries are visible: an optimizer that stops early produces a shorter
    history, not a padded one.

    After a run, the driver fills in the number of loss and gradient
    evaluations that were performed, and the exit code reported by the
    optimizer.

    Attributes:
        loss_evaluations:     Number of loss evaluations during the run.
        gradient_evaluations: Number of gradient evaluations during the run.
        exit_code:            The reason the optimizer stopped.
    """

    def __init__(self, capacity: int, observer: HistoryObserver | None = None) -> None:
        """Initialize an empty history.

        Args:
            capacity: The maximum number of entries.
            observer: Optional function called for each new entry.
        """
        if capacity < 0:
            msg = f"History capacity must not be negative, got {capacity}"
            raise ValueError(msg)
        self._values = np.zeros(capacity, dtype=np.float64)
        self._size = 0
        self._observer = observer
        self.loss_evaluations = 0
        self.gradient_evaluations = 0
        self.exit_code = ExitCode.UNKNOWN

    @property
    def capacity(self) -> int:
        """The maximum number of entries.

        Returns:
            The capacity of the history.
        """
        return self._values.size

    @property
    def is_full(self) -> bool:
        """Whether the capacity of the history has been reached.

        Returns:
            `True` if no more entries can be appended.
        """
        return self._size == self._values.size

    @property
    def values(self) -> NDArray[np.float64]:
        """The populated entries as an immutable array.

        Returns:
            A read-only copy of the recorded losses.
        """
        return immutable_array(self._values[: self._size])

    def append(self, loss: float) -> None:
        """Record the loss of a new iteration.

        Args:
            loss: The loss at the start of the iteration.

        Raises:
            IndexError: If the capacity of the history is exhausted.
        """
        if self.is_full:
            msg = f"The iteration budget of {self.capacity} is exhausted"
            raise IndexError(msg)
        self._values[self._size] = loss
        self._size += 1
        if self._observer is not None:
            self._observer(self._size - 1, float(loss))

    @overload
    def __getitem__(self, index: int) -> float: ...

    @overload
    def __getitem__(self, index: slice) -> Sequence[float]: ...

    def __getitem__(self, index: int | slice) -> float | Sequence[float]:
        """Return an entry, or a list of entries for a slice."""
        if isinstance(index, slice):
            return self._values[: self._size][index].tolist()  # type: ignore[no-any-return]
        return float(self._values[: self._size][index])

    def __len__(self) -> int:
        """Return the number of populated entries."""
        return self._size

    def __repr__(self) -> str:
        """Return a string representation of the history."""
        return (
            f"LossHistory({self.values.tolist()!r}, capacity={self.capacity}, "
            f"exit_code={self.exit_code.name})"
        )
