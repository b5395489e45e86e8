"""Plugin module loaded by name (import_plugins / simstep --plugin-module)."""

from stepsim import MemoryConfig, default_registry

from fake_plugins import Acc


class Acc4(Acc):
    id = "acc4"
    name = "Accumulator test machine (4 words)"
    memory = MemoryConfig(size=4, word_size=4)


class WrongWidth(Acc):
    """Emits 1-bit encodings for a 4-bit machine."""
    id = "wrong-width"
    name = "Broken encoder"

    def compile(self, source):
        return [{"address": 0, "text": "inc", "encoding": "1"}]


for plugin in (Acc4, WrongWidth):
    if plugin.id not in default_registry:
        default_registry.register(plugin)
