"""
Plugin registry.

Process-wide, ordered collection of available processor plugins keyed by
their unique ``id``. Populated at startup (bundled plugins register when
stepsim.plugins is imported, external ones through import_plugins()), then
optionally frozen. The step controller only reads from it.
"""

from __future__ import annotations
import importlib
import logging
from typing import Dict, Iterator, List

from .errors import RegistryError
from .plugin import check_plugin, instantiate_plugin

log = logging.getLogger('stepsim.registry')


class PluginRegistry:
    def __init__(self):
        self._plugins: Dict[str, object] = {}
        self._frozen = False

    def register(self, plugin):
        """Add a plugin instance, or instantiate and add a plugin class.

        Returns its argument so it can be used as a class decorator:

            @default_registry.register
            class MyCpu(ProcessorPlugin): ...
        """
        if self._frozen:
            raise RegistryError("plugin registry is frozen")
        instance = instantiate_plugin(plugin)
        check_plugin(instance)
        if instance.id in self._plugins:
            raise RegistryError(f"duplicate plugin id: {instance.id!r}")
        self._plugins[instance.id] = instance
        log.debug("registered plugin %s (%s)", instance.id, instance.name)
        return plugin

    def get(self, plugin_id: str):
        try:
            return self._plugins[plugin_id]
        except KeyError:
            known = ", ".join(self._plugins) or "none"
            raise RegistryError(f"unknown plugin {plugin_id!r} (available: {known})") from None

    def ids(self) -> List[str]:
        return list(self._plugins)

    def freeze(self):
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __contains__(self, plugin_id) -> bool:
        return plugin_id in self._plugins

    def __iter__(self) -> Iterator:
        return iter(list(self._plugins.values()))

    def __len__(self) -> int:
        return len(self._plugins)


default_registry = PluginRegistry()


def register_plugin(plugin):
    """Register with the process-wide registry (decorator-friendly)."""
    return default_registry.register(plugin)


def import_plugins(module_name: str):
    """Import a module whose import-time code registers plugins."""
    try:
        return importlib.import_module(module_name)
    except ImportError as e:
        raise RegistryError(f"cannot import plugin module {module_name!r}: {e}") from e
