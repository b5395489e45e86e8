"""
Step controller: drives a processor plugin through a compiled program one
instruction at a time.

States:
    IDLE     no program loaded
    READY    program compiled, history holds only the initial snapshot
    RUNNING  at least one step taken, program counter may still be in range
    HALTED   terminal until reset()/rewind_to()/load()

Execution model (per step):
    1. Program counter outside the program  -> HALTED (normal termination)
    2. plugin.execute(program[pc], state)    -> new state
    3. Validate the new state's shape against the plugin's layout
    4. Returned PC equal to the input PC     -> engine advances it by one,
       any other PC is a jump and is kept as returned
    5. Append (state, instruction) to history

Halt causes:
    PROGRAM_COUNTER_OUT_OF_BOUNDS  ran off the end of the program (normal)
    HALT_INSTRUCTION               plugin raised HaltSignal
    STEP_LIMIT_EXCEEDED            run() reached its step cap
    EXECUTION_FAULT                plugin raised while executing
    CONTRACT_VIOLATION             plugin returned a malformed state

A failed transition never half-applies: faults leave history exactly as it
was before the faulting step, and a failed load() leaves the controller as it
was before the call.

Usage:
    ctl = StepController()
    ctl.load("tiny8", "int a = 5; int b = a + 2;")
    ctl.step()                      # one instruction
    ctl.run()                       # until halt / breakpoint / cap
    ctl.rewind_to(1)                # back to the state after step 1
    print(ctl.current_state.display())

Not thread-safe: one logical owner per controller.
"""

from __future__ import annotations
import logging
from enum import Enum
from typing import Callable, Generator, Iterable, Optional, Set

from .compiler import CompiledProgram, compile_program
from .config import DEFAULT_CONFIG, EngineConfig
from .errors import (
    ContractViolation, ControllerError, ExecutionError, HaltSignal,
)
from .history import History
from .instruction import InstructionRecord, format_address
from .plugin import check_state_shape, initial_state_for, instantiate_plugin, plugin_label
from .registry import PluginRegistry, default_registry
from .state import MachineState

log = logging.getLogger('stepsim.controller')


class ControllerState(Enum):
    IDLE = 'IDLE'
    READY = 'READY'
    RUNNING = 'RUNNING'
    HALTED = 'HALTED'


class HaltCause(Enum):
    PROGRAM_COUNTER_OUT_OF_BOUNDS = 'PROGRAM_COUNTER_OUT_OF_BOUNDS'
    HALT_INSTRUCTION = 'HALT_INSTRUCTION'
    STEP_LIMIT_EXCEEDED = 'STEP_LIMIT_EXCEEDED'
    EXECUTION_FAULT = 'EXECUTION_FAULT'
    CONTRACT_VIOLATION = 'CONTRACT_VIOLATION'

    @property
    def is_fault(self) -> bool:
        return self in (HaltCause.EXECUTION_FAULT, HaltCause.CONTRACT_VIOLATION)


class StopReason(Enum):
    """Why a run() call returned."""
    HALTED = 'HALTED'
    BREAKPOINT = 'BREAKPOINT'
    CANCELLED = 'CANCELLED'


class StepController:

    def __init__(self, config: Optional[EngineConfig] = None,
                 registry: Optional[PluginRegistry] = None):
        self.config = config or DEFAULT_CONFIG
        self.registry = registry if registry is not None else default_registry

        self._status = ControllerState.IDLE
        self._plugin = None
        self._program: Optional[CompiledProgram] = None
        self._initial: Optional[MachineState] = None
        self._current: Optional[MachineState] = None
        self.history = History()

        self.halt_cause: Optional[HaltCause] = None
        self.last_error: Optional[Exception] = None

        # Breakpoints: instruction indices where run() pauses
        self._breakpoints: Set[int] = set()
        self._cancel_requested = False

    # ══════════════════════════════════════════════
    # Loading
    # ══════════════════════════════════════════════

    def load(self, plugin, source: str) -> CompiledProgram:
        """Compile ``source`` with ``plugin`` (object, class or registry id).

        On success the controller is READY with a fresh history. On
        CompileError / ContractViolation / RegistryError nothing changes.
        """
        if isinstance(plugin, str):
            plugin = self.registry.get(plugin)
        else:
            plugin = instantiate_plugin(plugin)

        program = compile_program(plugin, source)
        initial = initial_state_for(plugin)

        # Commit only after every fallible stage succeeded
        self._plugin = plugin
        self._program = program
        self._initial = initial
        self._current = initial
        self.history = History(initial)
        self.halt_cause = None
        self.last_error = None
        self._cancel_requested = False
        self._status = ControllerState.READY

        log.info("loaded %d instruction(s) for plugin %s",
                 len(program), plugin_label(plugin))
        return program

    # ══════════════════════════════════════════════
    # Execution
    # ══════════════════════════════════════════════

    def step(self) -> Optional[HaltCause]:
        """Execute one instruction. Returns the HaltCause if halted, else None."""
        self._require_loaded("step")
        if self._status is ControllerState.HALTED:
            return self.halt_cause

        state = self._current
        pc = state.program_counter
        if not self._in_bounds(pc):
            return self._halt(HaltCause.PROGRAM_COUNTER_OUT_OF_BOUNDS)

        instruction = self._program[pc]
        try:
            new_state = self._plugin.execute(instruction, state)
        except HaltSignal as sig:
            final = sig.state if sig.state is not None else state
            try:
                check_state_shape(self._plugin, final, "halt state")
            except ContractViolation as e:
                return self._fault(HaltCause.CONTRACT_VIOLATION, e, instruction)
            self._commit(self._advance(final, pc), instruction)
            return self._halt(HaltCause.HALT_INSTRUCTION)
        except ExecutionError as e:
            return self._fault(HaltCause.EXECUTION_FAULT, e, instruction)
        except ContractViolation as e:
            return self._fault(HaltCause.CONTRACT_VIOLATION, e, instruction)
        except Exception as e:
            err = ExecutionError(f"{type(e).__name__}: {e}", instruction.address)
            err.__cause__ = e
            return self._fault(HaltCause.EXECUTION_FAULT, err, instruction)

        try:
            check_state_shape(self._plugin, new_state, "execute() result")
        except ContractViolation as e:
            return self._fault(HaltCause.CONTRACT_VIOLATION, e, instruction)

        self._commit(self._advance(new_state, pc), instruction)
        self._status = ControllerState.RUNNING
        return None

    def run(self, max_steps: Optional[int] = None,
            on_batch: Optional[Callable[[StepController], None]] = None) -> StopReason:
        """Step until halted, a breakpoint, or cancellation.

        ``max_steps`` caps the steps on the current timeline (defaults to
        config.max_steps); hitting it halts with STEP_LIMIT_EXCEEDED.
        ``on_batch`` is called after every config.batch_size steps and may
        call cancel().
        """
        batches = self.run_batches(max_steps)
        while True:
            try:
                next(batches)
            except StopIteration as stop:
                return stop.value
            if on_batch is not None:
                on_batch(self)

    def run_batches(self, max_steps: Optional[int] = None) -> Generator[int, None, StopReason]:
        """Generator form of run(): yields the step count after each batch.

        The yield is the cooperative suspension point for a host loop.
        Cancellation requested with cancel() takes effect at the next yield;
        the controller stays RUNNING. The generator's return value is the
        StopReason.
        """
        self._require_loaded("run")
        limit = self.config.max_steps if max_steps is None else max_steps
        if limit <= 0:
            raise ValueError(f"max_steps must be positive, got {limit}")
        self._cancel_requested = False

        first = True
        in_batch = 0
        while self._status is not ControllerState.HALTED:
            pc = self._current.program_counter
            if self._in_bounds(pc):
                if not first and pc in self._breakpoints:
                    log.info("breakpoint at instruction %d", pc)
                    return StopReason.BREAKPOINT
                if self.history.steps >= limit:
                    self._halt(HaltCause.STEP_LIMIT_EXCEEDED)
                    break

            self.step()
            first = False
            in_batch += 1

            if in_batch >= self.config.batch_size and self._status is not ControllerState.HALTED:
                in_batch = 0
                yield self.history.steps
                if self._cancel_requested:
                    self._cancel_requested = False
                    log.info("run cancelled after %d step(s)", self.history.steps)
                    return StopReason.CANCELLED

        return StopReason.HALTED

    def cancel(self):
        """Ask an in-progress run() to stop at its next yield point."""
        self._cancel_requested = True

    def reset(self):
        """Back to READY with the initial state; no recompilation."""
        self._require_loaded("reset")
        self.history.seed(self._initial)
        self._current = self._initial
        self.halt_cause = None
        self.last_error = None
        self._cancel_requested = False
        self._status = ControllerState.READY
        log.debug("reset to initial state")

    def rewind_to(self, step_index: int):
        """Return to the state recorded after ``step_index`` steps.

        Later history is discarded; stepping forward again rebuilds it.
        """
        self._require_loaded("rewind")
        try:
            entry = self.history.entry(step_index)
        except (IndexError, TypeError) as e:
            raise ControllerError(f"cannot rewind to step {step_index!r}: {e}") from e

        self.history.truncate_after(step_index)
        self._current = entry.state
        self.halt_cause = None
        self.last_error = None
        self._status = (ControllerState.READY if step_index == 0
                        else ControllerState.RUNNING)
        log.debug("rewound to step %d", step_index)

    # ══════════════════════════════════════════════
    # Breakpoints
    # ══════════════════════════════════════════════

    def add_breakpoint(self, index: int):
        self._breakpoints.add(index)

    def remove_breakpoint(self, index: int):
        self._breakpoints.discard(index)

    def clear_breakpoints(self):
        self._breakpoints.clear()

    @property
    def breakpoints(self) -> Iterable[int]:
        return sorted(self._breakpoints)

    # ══════════════════════════════════════════════
    # Inspection
    # ══════════════════════════════════════════════

    @property
    def state(self) -> ControllerState:
        return self._status

    @property
    def current_state(self) -> Optional[MachineState]:
        return self._current

    @property
    def initial_state(self) -> Optional[MachineState]:
        return self._initial

    @property
    def program(self) -> Optional[CompiledProgram]:
        return self._program

    @property
    def plugin(self):
        return self._plugin

    @property
    def steps_taken(self) -> int:
        return self.history.steps

    @property
    def is_halted(self) -> bool:
        return self._status is ControllerState.HALTED

    @property
    def current_instruction(self) -> Optional[InstructionRecord]:
        if self._current is None or not self._in_bounds(self._current.program_counter):
            return None
        return self._program[self._current.program_counter]

    def trace(self) -> str:
        """History rendered one executed step per line."""
        lines = []
        size = self._plugin.memory.size if self._plugin is not None else 1
        for entry in self.history:
            if entry.instruction is None:
                where, text = "-", "<initial>"
            else:
                where = "$" + format_address(entry.instruction.address, size)
                text = entry.instruction.text
            lines.append(f"{entry.step_index:5d}  {where:>6}  {text:20s} {entry.state.display()}")
        return "\n".join(lines)

    def snapshot(self) -> dict:
        """Viewer-friendly dict of the controller and current machine state."""
        data = {
            "status": self._status.value,
            "plugin": plugin_label(self._plugin),
            "halt_cause": self.halt_cause.value if self.halt_cause else None,
            "error": str(self.last_error) if self.last_error else None,
            "steps": self.history.steps,
        }
        if self._current is not None:
            data.update(self._current.to_dict())
            instr = self.current_instruction
            data["current_address"] = (
                format_address(instr.address, self._plugin.memory.size)
                if instr is not None else None)
            data["current_text"] = instr.text if instr is not None else None
        return data

    def __repr__(self) -> str:
        return (f"<StepController {self._status.value} plugin={plugin_label(self._plugin)!r} "
                f"steps={self.history.steps}>")

    # ══════════════════════════════════════════════
    # Internals
    # ══════════════════════════════════════════════

    def _require_loaded(self, action: str):
        if self._status is ControllerState.IDLE:
            raise ControllerError(f"cannot {action}: no program loaded")

    def _in_bounds(self, pc: int) -> bool:
        return 0 <= pc < len(self._program)

    @staticmethod
    def _advance(state: MachineState, pc_before: int) -> MachineState:
        # Untouched PC means "fall through"; anything else is a jump
        if state.program_counter == pc_before:
            return state.with_program_counter(pc_before + 1)
        return state

    def _commit(self, state: MachineState, instruction: InstructionRecord):
        self.history.append(state, instruction)
        self._current = state
        if self.config.trace:
            log.debug("step %d: %s -> %s", self.history.steps,
                      instruction.text, state.display())

    def _halt(self, cause: HaltCause) -> HaltCause:
        self.halt_cause = cause
        self._status = ControllerState.HALTED
        log.info("halted: %s after %d step(s)", cause.value, self.history.steps)
        return cause

    def _fault(self, cause: HaltCause, error: Exception,
               instruction: InstructionRecord) -> HaltCause:
        self.last_error = error
        log.warning("%s at instruction %d (%s): %s", cause.value,
                    self._current.program_counter, instruction.text, error)
        return self._halt(cause)
