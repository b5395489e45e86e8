"""
Bundled processor plugins.

Importing this package registers them with stepsim.registry.default_registry.
"""

from ..registry import default_registry
from .tiny8 import Tiny8

if "tiny8" not in default_registry:
    default_registry.register(Tiny8)

__all__ = ["Tiny8"]
