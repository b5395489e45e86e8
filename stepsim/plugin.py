"""
Processor plugin contract.

A plugin describes one processor: its identity, register set, memory layout
and two pure operations:

    compile(source)            -> sequence of instruction records
    execute(instruction, state) -> next MachineState

Plugins are duck typed. ProcessorPlugin is a convenient base class, but any
object exposing the same attributes is accepted; check_plugin() verifies the
capability set explicitly instead of assuming it.

Program-counter convention (shared by every plugin):
    execute() may leave ``program_counter`` untouched, in which case the
    engine advances it by one. Any other value is taken as a jump target and
    honoured verbatim. A jump to the instruction's own index is therefore
    indistinguishable from "not set" and advances normally.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from .errors import ContractViolation
from .instruction import InstructionRecord
from .state import MachineState


@dataclass(frozen=True)
class MemoryConfig:
    size: int        # words
    word_size: int   # bits per instruction encoding

    def __post_init__(self):
        for attr in ("size", "word_size"):
            value = getattr(self, attr)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ContractViolation(f"memory {attr} must be a positive integer, got {value!r}")


class ProcessorPlugin:
    """Base class for processor plugins.

    Subclasses set ``id``, ``name``, ``registers`` and ``memory`` as class
    attributes and implement compile() and execute().

    Usage:
        class Acc(ProcessorPlugin):
            id = "acc"
            name = "Accumulator machine"
            registers = ("A",)
            memory = MemoryConfig(size=16, word_size=8)

            def compile(self, source): ...
            def execute(self, instruction, state): ...
    """

    id: str = ""
    name: str = ""
    registers: Tuple[str, ...] = ()
    memory: Optional[MemoryConfig] = None

    def compile(self, source: str) -> Sequence[InstructionRecord]:
        raise NotImplementedError

    def execute(self, instruction: InstructionRecord, state: MachineState) -> MachineState:
        raise NotImplementedError

    def initial_state(self) -> Optional[MachineState]:
        """Machine state before the first step; None means all zeros."""
        return None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id!r}>"


def plugin_label(plugin) -> Optional[str]:
    pid = getattr(plugin, "id", None)
    return pid if isinstance(pid, str) else None


def instantiate_plugin(plugin):
    """Return ``plugin`` itself, or an instance when given a plugin class.

    A constructor that raises is reported as a ContractViolation.
    """
    if not isinstance(plugin, type):
        return plugin
    try:
        return plugin()
    except ContractViolation:
        raise
    except Exception as e:
        raise ContractViolation(
            f"constructing {plugin.__name__} raised {type(e).__name__}: {e}",
            plugin_label(plugin)) from e


def check_plugin(plugin) -> None:
    """Verify that ``plugin`` exposes the full capability set.

    Raises ContractViolation describing the first missing or malformed
    capability.
    """
    label = plugin_label(plugin)

    for attr in ("id", "name"):
        value = getattr(plugin, attr, None)
        if not isinstance(value, str) or not value:
            raise ContractViolation(f"plugin {attr} must be a non-empty string", label)

    registers = getattr(plugin, "registers", None)
    if registers is None or isinstance(registers, (str, bytes)):
        raise ContractViolation("plugin registers must be a collection of names", label)
    try:
        names = list(registers)
    except TypeError:
        raise ContractViolation("plugin registers must be a collection of names", label) from None
    if not names:
        raise ContractViolation("plugin must declare at least one register", label)
    if not all(isinstance(n, str) and n for n in names):
        raise ContractViolation("register names must be non-empty strings", label)
    if len(set(names)) != len(names):
        raise ContractViolation("register names must be unique", label)

    memory = getattr(plugin, "memory", None)
    if not isinstance(memory, MemoryConfig):
        size = getattr(memory, "size", None)
        word_size = getattr(memory, "word_size", None)
        if size is None or word_size is None:
            raise ContractViolation("plugin memory must declare size and word_size", label)
        # Validates as a side effect
        MemoryConfig(size, word_size)

    for op in ("compile", "execute"):
        if not callable(getattr(plugin, op, None)):
            raise ContractViolation(f"plugin has no callable {op}()", label)


def register_names(plugin) -> Tuple[str, ...]:
    return tuple(plugin.registers)


def check_state_shape(plugin, state, context: str = "state") -> MachineState:
    """Validate a state produced by ``plugin`` against its declared layout."""
    label = plugin_label(plugin)
    if not isinstance(state, MachineState):
        raise ContractViolation(
            f"{context} must be a MachineState, got {type(state).__name__}", label)

    expected = set(register_names(plugin))
    actual = set(state.registers)
    if actual != expected:
        extra = sorted(actual - expected)
        missing = sorted(expected - actual)
        details = []
        if missing:
            details.append(f"missing {', '.join(missing)}")
        if extra:
            details.append(f"unexpected {', '.join(extra)}")
        raise ContractViolation(f"{context} register set mismatch ({'; '.join(details)})", label)

    for name, value in state.registers.items():
        if isinstance(value, bool) or not isinstance(value, int):
            raise ContractViolation(f"{context} register {name} is not an integer: {value!r}", label)

    size = plugin.memory.size
    if len(state.memory) != size:
        raise ContractViolation(
            f"{context} memory has {len(state.memory)} words, expected {size}", label)
    if not all(isinstance(w, int) and not isinstance(w, bool) for w in state.memory):
        raise ContractViolation(f"{context} memory must hold integers", label)

    pc = state.program_counter
    if isinstance(pc, bool) or not isinstance(pc, int) or pc < 0:
        raise ContractViolation(f"{context} program counter must be a non-negative integer, got {pc!r}", label)

    return state


def initial_state_for(plugin) -> MachineState:
    """The plugin's declared initial state, or the zeroed default."""
    provider = getattr(plugin, "initial_state", None)
    state = provider() if callable(provider) else provider
    if state is None:
        return MachineState.zeroed(register_names(plugin), plugin.memory.size)
    return check_state_shape(plugin, state, "initial state")
