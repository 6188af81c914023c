"""Plugin functionality for adding optimizers.

Optimizers can be requested by name, for instance `"lbfgs"` or
`"scipy/bfgs"`. The [`PluginManager`][optbridge.plugins.PluginManager] maps
these names to [`OptimizerPlugin`][optbridge.plugins.optimizer.base.OptimizerPlugin]
classes, which act as factories for
[`Optimizer`][optbridge.plugins.optimizer.base.Optimizer] objects. Next to the
built-in plugins, plugins installed by other packages are discovered using
entry points.
"""

from ._manager import PluginManager, PluginType

__all__ = [
    "PluginManager",
    "PluginType",
]
