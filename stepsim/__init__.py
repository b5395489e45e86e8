"""
stepsim - plugin-driven compile-and-step processor simulator
============================================================
Compile a small C-like program for a pluggable processor definition, then
step through it one instruction at a time while watching registers and
memory change.

Architecture:
    ┌──────────┐    ┌──────────────┐    ┌────────────────┐    ┌─────────┐
    │  Source  │───>│ compile_     │───>│ StepController │───>│ History │
    │  (text)  │    │ program()    │    │ (state machine)│    │ (states)│
    └──────────┘    └──────────────┘    └────────────────┘    └─────────┘
                          │                     │
                          v                     v
                    plugin.compile()      plugin.execute()

    Each piece has one job:
    - plugin.py:      the processor contract + explicit shape checks
    - compiler.py:    calls plugin.compile() once, validates the records
    - controller.py:  IDLE -> READY -> RUNNING -> HALTED, reset / rewind
    - history.py:     one timeline of immutable MachineStates
    - registry.py:    process-wide id -> plugin table
    - plugins/:       bundled tiny8 demo processor with a tiny C front end

Only PLUGIN code knows an instruction set; the engine never reads the
instruction text or encoding.
"""

__version__ = "0.1.0"

from .errors import (
    SimError, CompileError, ContractViolation, ExecutionError,
    ControllerError, RegistryError, HaltSignal,
)
from .instruction import InstructionRecord, format_address
from .state import MachineState, StateDiff
from .plugin import MemoryConfig, ProcessorPlugin, check_plugin, instantiate_plugin
from .compiler import CompiledProgram, compile_program
from .history import History, HistoryEntry
from .config import EngineConfig, DEFAULT_CONFIG
from .registry import PluginRegistry, default_registry, register_plugin, import_plugins
from .controller import StepController, ControllerState, HaltCause, StopReason
from . import plugins   # registers the bundled plugins


def simulate(plugin, source: str, max_steps=None, config=None) -> StepController:
    """Load ``source`` and run it to completion; returns the controller.

    Convenience wrapper for scripts and tests:

        ctl = simulate("tiny8", "int a = 2; a *= 3;")
        ctl.current_state.memory[0]   # 6
    """
    ctl = StepController(config=config)
    ctl.load(plugin, source)
    ctl.run(max_steps=max_steps)
    return ctl
