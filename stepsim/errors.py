"""
Exception hierarchy for the stepsim engine.

Every error the engine surfaces derives from SimError so a host can catch
the whole family in one place. The classes map onto the failure causes a
controller transition can report:

  CompileError       plugin says the source is not compilable
  ContractViolation  plugin returned something the engine cannot accept
  ExecutionError     plugin could not interpret an instruction
  ControllerError    caller asked for a transition the state machine forbids
  RegistryError      unknown or duplicate plugin id

HaltSignal is not a failure: a plugin raises it from ``execute`` to stop the
machine on a HALT-style instruction (same role as the emulator's
_HaltException for WAI/SWI).
"""

from __future__ import annotations
from typing import Optional


class SimError(Exception):
    """Base class for all stepsim errors."""


class CompileError(SimError):
    def __init__(self, message: str, line: Optional[int] = None,
                 col: Optional[int] = None):
        self.message = message
        self.line = line
        self.col = col
        if line is not None:
            loc = f"L{line}:{col}" if col is not None else f"L{line}"
            super().__init__(f"{loc}: {message}")
        else:
            super().__init__(message)


class ContractViolation(SimError):
    def __init__(self, message: str, plugin_id: Optional[str] = None):
        self.message = message
        self.plugin_id = plugin_id
        if plugin_id:
            super().__init__(f"[{plugin_id}] {message}")
        else:
            super().__init__(message)


class ExecutionError(SimError):
    def __init__(self, message: str, address: Optional[int] = None):
        self.message = message
        self.address = address
        if address is not None:
            super().__init__(f"at address {address}: {message}")
        else:
            super().__init__(message)


class ControllerError(SimError):
    pass


class RegistryError(SimError):
    pass


class HaltSignal(SimError):
    """Raised by a plugin's execute() to stop on an explicit halt.

    ``state`` is the machine state produced by the halting instruction, or
    None when the instruction leaves the state untouched.
    """

    def __init__(self, state=None, message: str = "halt"):
        self.state = state
        super().__init__(message)
