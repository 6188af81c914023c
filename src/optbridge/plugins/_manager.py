"""The plugin manager."""

from __future__ import annotations

from functools import cache
from importlib.metadata import entry_points
from typing import TYPE_CHECKING, Any, Final, Literal

from .optimizer.base import OptimizerPlugin
from .optimizer.builtin import BuiltinOptimizerPlugin
from .optimizer.scipy import SciPyOptimizerPlugin

if TYPE_CHECKING:
    from optbridge.plugins.base import Plugin


_PLUGIN_TYPES: Final = {
    "optimizer": OptimizerPlugin,
}

_BUILTIN_PLUGINS: Final[dict[str, dict[str, type[Plugin]]]] = {
    "optimizer": {
        "builtin": BuiltinOptimizerPlugin,
        "scipy": SciPyOptimizerPlugin,
    },
}

PluginType = Literal["optimizer"]
"""Represents the valid types of plugins supported by `optbridge`.

* `"optimizer"`: Plugins providing optimization algorithms
  ([`OptimizerPlugin`][optbridge.plugins.optimizer.base.OptimizerPlugin]).
"""


class PluginManager:
    """Manages the discovery and retrieval of `optbridge` plugins.

    The manager holds the built-in plugins (the `builtin` optimizers and the
    `scipy` adapter) and any plugins installed by other packages through
    Python's entry points mechanism, under the `optbridge.plugins.*` groups.

    **Example: Registering a Custom Optimizer Plugin**

    To make a custom optimizer plugin available, define an entry point in the
    `pyproject.toml` file of your package:

    ```toml
    [project.entry-points."optbridge.plugins.optimizer"]
    my_optimizer = "my_package.my_module:MyOptimizerPlugin"
    ```

    The plugin is then available via
    `plugin_manager.get_plugin("optimizer", "my_optimizer/some_method")`, or
    via `plugin_manager.get_plugin("optimizer", "some_method")` if no other
    plugin provides `some_method` first.
    """

    def __init__(self) -> None:
        """Initialize the plugin manager."""
        self._plugins: dict[PluginType, dict[str, type[Plugin]]] = {
            "optimizer": {},
        }

        for plugin_type in self._plugins:
            for name, plugin in _BUILTIN_PLUGINS[plugin_type].items():
                self._add_plugin(plugin_type, name, plugin)
            for name, plugin in _from_entry_points(plugin_type).items():
                self._add_plugin(plugin_type, name, plugin)

    def _add_plugin(
        self,
        plugin_type: PluginType,
        name: str,
        plugin: type[Plugin],
    ) -> None:
        name_lower = name.lower()
        if name_lower in self._plugins[plugin_type]:
            msg = f"Duplicate plugin name: {name_lower}"
            raise ValueError(msg)
        self._plugins[plugin_type][name_lower] = plugin

    def _get_plugin(
        self, plugin_type: PluginType, method: str
    ) -> tuple[str, Any] | None:
        split_method = method.split("/", maxsplit=1)
        if len(split_method) > 1:
            plugin_name, method = split_method
            plugin = self._plugins[plugin_type].get(plugin_name.lower())
            if plugin and plugin.is_supported(method):
                return plugin_name.lower(), plugin
        else:
            method = split_method[0]
            if method.lower() == "default":
                msg = "Cannot specify 'default' method without a plugin name"
                raise ValueError(msg)
            for plugin_name, plugin in self._plugins[plugin_type].items():
                if plugin.is_supported(method):
                    return plugin_name, plugin
        return None

    def get_plugin(self, plugin_type: PluginType, method: str) -> Any:  # noqa: ANN401
        """Retrieve a plugin class by its type and a supported method name.

        The `method` argument can be specified in two ways:

        1.  **Explicit Plugin:** `"plugin-name/method-name"` requests
            `method-name` from the plugin named `plugin-name`.
        2.  **Implicit Plugin:** `"method-name"` searches all plugins of the
            given type, in registration order, and returns the first one
            that supports `method-name`.

        Args:
            plugin_type: The category of the plugin.
            method:      The method name, optionally prefixed with the plugin
                         name and a slash.

        Returns:
            The plugin class that matches the criteria.

        Raises:
            ValueError: If no matching plugin is found, or if "default" is used
                        as a method name without a plugin name.
        """
        plugin = self._get_plugin(plugin_type, method)
        if plugin is not None:
            return plugin[1]
        msg = f"Method not found: {method}"
        raise ValueError(msg)

    def get_plugin_name(self, plugin_type: PluginType, method: str) -> str | None:
        """Return the name of the plugin that supports a given method.

        Args:
            plugin_type: The category of the plugin.
            method:      The method name, optionally prefixed with the plugin
                         name and a slash.

        Returns:
            The name of a matching plugin, or `None`.
        """
        plugin = self._get_plugin(plugin_type, method)
        if plugin is None:
            return None
        return plugin[0]


@cache  # Without the cache, repeated calls are very slow
def _from_entry_points(plugin_type: str) -> dict[str, type[Plugin]]:
    plugins: dict[str, type[Plugin]] = {}
    for entry_point in entry_points().select(group=f"optbridge.plugins.{plugin_type}"):
        plugin = entry_point.load()
        plugins[entry_point.name] = plugin
        if not issubclass(plugins[entry_point.name], _PLUGIN_TYPES[plugin_type]):
            msg = (
                f"Incorrect type for {plugin_type} plugin `{entry_point.name}`"
                f": {type(plugins[entry_point.name])}"
            )
            raise TypeError(msg)
    return plugins
