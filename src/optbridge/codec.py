"""Conversion between graph parameters and flat parameter vectors.

Optimizers operate on a single one-dimensional vector of floating point values,
whereas a graph stores its trainable parameters as a collection of named
arrays of arbitrary shape. The
[`ParameterCodec`][optbridge.codec.ParameterCodec] class maps between both
representations using a fixed layout that is computed once from the graph.
"""

from __future__ import annotations

from dataclasses import dataclass
from math import prod
from typing import TYPE_CHECKING

import numpy as np

from optbridge.exceptions import ShapeMismatch

if TYPE_CHECKING:
    from collections.abc import Mapping

    from numpy.typing import ArrayLike, NDArray

    from optbridge.graph import Graph


@dataclass(frozen=True, slots=True)
class _Segment:
    name: str
    start: int
    stop: int
    shape: tuple[int, ...]


class ParameterCodec:
    """Flattens graph parameters into a vector and writes vectors back.

    The layout of the flat vector follows the order of the mapping returned by
    [`Graph.parameters`][optbridge.graph.Graph.parameters]: each parameter
    occupies a contiguous segment, filled in C order. The layout is computed
    when the codec is created. If the set of parameters or their shapes
    change afterwards, the codec refuses to operate and raises a
    [`ShapeMismatch`][optbridge.exceptions.ShapeMismatch] error.
    """

    def __init__(self, graph: Graph) -> None:
        """Initialize the codec for a graph.

        Args:
            graph: The graph whose parameters are converted.
        """
        self._graph = graph
        self._segments = _layout(graph.parameters())
        self._size = self._segments[-1].stop if self._segments else 0

    @property
    def size(self) -> int:
        """The number of scalar parameters.

        Returns:
            The length of the flat parameter vector.
        """
        return self._size

    @property
    def names(self) -> tuple[str, ...]:
        """The parameter names, in vector order.

        Returns:
            The names of the parameters.
        """
        return tuple(segment.name for segment in self._segments)

    @property
    def shapes(self) -> tuple[tuple[int, ...], ...]:
        """The parameter shapes, in vector order.

        Returns:
            The shapes of the parameters.
        """
        return tuple(segment.shape for segment in self._segments)

    def flatten(self) -> NDArray[np.float64]:
        """Return the current parameters as a flat vector.

        Returns:
            A new one-dimensional `float64` array.

        Raises:
            ShapeMismatch: If the parameter layout of the graph has changed.
        """
        parameters = self._checked_parameters()
        vector = np.empty(self._size, dtype=np.float64)
        for segment in self._segments:
            vector[segment.start : segment.stop] = np.ravel(parameters[segment.name])
        return vector

    def unflatten(self, vector: ArrayLike) -> None:
        """Write a flat vector into the parameters of the graph.

        The vector is validated before anything is written, so a failed call
        leaves the parameters of the graph unchanged.

        Args:
            vector: The flat parameter vector.

        Raises:
            ShapeMismatch: If the length of the vector differs from the number
                           of parameters, or the layout of the graph changed.
        """
        vector = np.asarray(vector, dtype=np.float64)
        if vector.ndim != 1 or vector.size != self._size:
            msg = (
                f"Parameter vector has shape {vector.shape}, "
                f"expected ({self._size},)"
            )
            raise ShapeMismatch(msg, expected=self._size, actual=vector.size)
        parameters = self._checked_parameters()
        for segment in self._segments:
            np.copyto(
                parameters[segment.name],
                vector[segment.start : segment.stop].reshape(segment.shape),
            )

    def pack(
        self,
        arrays: Mapping[str, ArrayLike],
        out: NDArray[np.float64] | None = None,
    ) -> NDArray[np.float64]:
        """Marshal a mapping of per-parameter arrays into a flat vector.

        This is used to convert gradients returned by the graph into the
        layout of the parameter vector.

        Args:
            arrays: Arrays keyed by parameter name, shaped like the parameters.
            out:    Optional buffer receiving the result.

        Returns:
            The flat vector, `out` if it was given.

        Raises:
            ShapeMismatch: If an array is missing or has the wrong shape, or
                           if `out` does not have the right length.
        """
        if out is None:
            out = np.empty(self._size, dtype=np.float64)
        elif out.shape != (self._size,):
            msg = f"Output buffer has shape {out.shape}, expected ({self._size},)"
            raise ShapeMismatch(msg, expected=self._size, actual=out.size)
        for segment in self._segments:
            if segment.name not in arrays:
                msg = f"No value given for parameter `{segment.name}`"
                raise ShapeMismatch(msg)
            array = np.asarray(arrays[segment.name], dtype=np.float64)
            if array.shape != segment.shape:
                msg = (
                    f"Value for parameter `{segment.name}` has shape "
                    f"{array.shape}, expected {segment.shape}"
                )
                raise ShapeMismatch(msg)
            out[segment.start : segment.stop] = np.ravel(array)
        return out

    def _checked_parameters(self) -> Mapping[str, NDArray[np.float64]]:
        parameters = self._graph.parameters()
        if _layout(parameters) != self._segments:
            msg = "The parameter layout of the graph has changed"
            raise ShapeMismatch(msg)
        return parameters


def flatten(graph: Graph) -> NDArray[np.float64]:
    """Return the parameters of a graph as a flat vector.

    Args:
        graph: The graph.

    Returns:
        The flat parameter vector.
    """
    return ParameterCodec(graph).flatten()


def unflatten(vector: ArrayLike, graph: Graph) -> None:
    """Write a flat vector into the parameters of a graph.

    Args:
        vector: The flat parameter vector.
        graph:  The graph.

    Raises:
        ShapeMismatch: If the length of the vector is wrong.
    """
    ParameterCodec(graph).unflatten(vector)


def _layout(parameters: Mapping[str, NDArray[np.float64]]) -> tuple[_Segment, ...]:
    segments = []
    start = 0
    for name, array in parameters.items():
        shape = tuple(int(dim) for dim in np.shape(array))
        stop = start + prod(shape)
        segments.append(_Segment(name=name, start=start, stop=stop, shape=shape))
        start = stop
    return tuple(segments)
