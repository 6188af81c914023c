"""This module defines the abstract base class for plugins."""

from __future__ import annotations

from abc import ABC, abstractmethod


class Plugin(ABC):
    """Abstract base class for all `optbridge` plugins.

    Plugins make optimizers available by name. Each plugin class declares the
    method names it provides through the `is_supported` class method. The
    [`PluginManager`][optbridge.plugins.PluginManager] uses this to find the
    plugin responsible for a method requested by the user.

    A method can also be requested from one plugin explicitly, using the
    `plugin-name/method-name` format.
    """

    @classmethod
    @abstractmethod
    def is_supported(cls, method: str) -> bool:
        """Verify if this plugin supports a specific named method.

        Args:
            method: The name of the method, without a plugin prefix.

        Returns:
            `True` if the plugin supports the specified method.
        """

