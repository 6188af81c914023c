"""Configuration classes for optimizer options.

Optimizer options are stored in
[`OptimizerOptions`][optbridge.config.OptimizerOptions] objects, which separate
the reserved options controlled by the driver from optimizer-specific extras.
The [`merge_options`][optbridge.config.merge_options] function implements the
precedence rules applied when the driver starts a run. Method-specific options
are validated using [`OptionsSchemaModel`][optbridge.config.OptionsSchemaModel]
objects.
"""

from ._optimizer_options import (
    DEFAULT_MAX_ITERATIONS,
    RESERVED_OPTIONS,
    OptimizerOptions,
    merge_options,
)
from .options import MethodSchemaModel, OptionsSchemaModel

__all__ = [
    "DEFAULT_MAX_ITERATIONS",
    "RESERVED_OPTIONS",
    "MethodSchemaModel",
    "OptimizerOptions",
    "OptionsSchemaModel",
    "merge_options",
]
