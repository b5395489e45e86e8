"""
Step controller state machine.

Covers load / step / run / reset / rewind_to, the program-counter rule,
halt causes, breakpoints, cooperative batching and cancellation.
"""

import logging

import pytest

from stepsim import (
    CompileError, ContractViolation, ControllerError, ControllerState,
    EngineConfig, ExecutionError, HaltCause, MachineState, RegistryError,
    StepController, StopReason,
)

from fake_plugins import Acc, NeedsPort, ScenarioA, Scripted, record


JUMPY = "inc\ninc\nstore\ndec\njmp 6\nnop\ninc\n"


def _acc(ctl):
    return ctl.current_state.registers["ACC"]


# ─── Loading ─────────────────────

class TestLoad:
    def test_starts_idle(self, controller):
        assert controller.state is ControllerState.IDLE
        assert controller.current_state is None
        assert controller.program is None

    def test_load_by_id_is_ready(self, controller):
        program = controller.load("acc", "inc\n")
        assert controller.state is ControllerState.READY
        assert controller.program is program
        assert len(controller.history) == 1
        assert controller.current_state == MachineState({"ACC": 0}, [0, 0], 0)

    def test_load_class_or_instance(self, controller):
        controller.load(ScenarioA, "int a = 5;")
        assert controller.plugin.id == "scenario-a"
        controller.load(Acc(), "inc")
        assert controller.plugin.id == "acc"

    def test_failing_plugin_constructor_is_contract_violation(self, controller):
        with pytest.raises(ContractViolation, match="constructing NeedsPort raised TypeError") as exc:
            controller.load(NeedsPort, "inc")
        assert exc.value.plugin_id == "needs-port"
        assert isinstance(exc.value.__cause__, TypeError)
        assert controller.state is ControllerState.IDLE

    def test_plugin_initial_state_used(self, controller):
        initial = MachineState({"A": 7}, [3], 0)
        controller.load(Scripted(result=[record()], initial=initial), "")
        assert controller.current_state == initial
        assert controller.initial_state == initial

    def test_malformed_initial_state_rejected(self, controller):
        bad = MachineState({"B": 0}, [0], 0)
        with pytest.raises(ContractViolation, match="register set"):
            controller.load(Scripted(result=[record()], initial=bad), "")
        assert controller.state is ControllerState.IDLE

    def test_compile_error_keeps_idle(self, controller):
        with pytest.raises(CompileError):
            controller.load("acc", "fly")
        assert controller.state is ControllerState.IDLE

    def test_failed_load_keeps_previous_run(self, controller):
        program = controller.load("acc", "inc\ninc\n")
        controller.step()
        before = controller.snapshot()

        with pytest.raises(CompileError):
            controller.load("acc", "fly")
        with pytest.raises(RegistryError):
            controller.load("nope", "inc")
        with pytest.raises(ContractViolation):
            controller.load(Scripted(result=[record(encoding="1")]), "")

        assert controller.program is program
        assert controller.snapshot() == before
        assert controller.state is ControllerState.RUNNING

    def test_reload_discards_run(self, controller):
        controller.load("acc", "inc\n")
        controller.run()
        controller.load("acc", "dec\n")
        assert controller.state is ControllerState.READY
        assert controller.halt_cause is None
        assert controller.steps_taken == 0


# ─── Stepping ─────────────────────

class TestStep:
    def test_scenario_a(self, controller):
        controller.load("scenario-a", "int a = 5;")
        assert controller.step() is None
        assert controller.current_state.registers["R0"] == 5
        assert controller.current_state.program_counter == 1
        assert controller.state is ControllerState.RUNNING

        assert controller.step() is HaltCause.PROGRAM_COUNTER_OUT_OF_BOUNDS
        assert controller.state is ControllerState.HALTED
        assert controller.current_state.program_counter == 1
        assert len(controller.history) == 2

    def test_visits_every_instruction_once(self, controller):
        program = controller.load("acc", "inc\ninc\ninc\n")
        while controller.step() is None:
            pass
        assert controller.steps_taken == len(program)
        assert len(controller.history) == len(program) + 1
        assert _acc(controller) == 3

    def test_step_requires_program(self, controller):
        with pytest.raises(ControllerError):
            controller.step()

    def test_empty_program_halts_immediately(self, controller):
        controller.load("acc", "")
        assert controller.step() is HaltCause.PROGRAM_COUNTER_OUT_OF_BOUNDS
        assert len(controller.history) == 1

    def test_step_after_halt_is_noop(self, controller):
        controller.load("acc", "inc\n")
        controller.run()
        snap = controller.snapshot()
        assert controller.step() is HaltCause.PROGRAM_COUNTER_OUT_OF_BOUNDS
        assert controller.snapshot() == snap

    def test_previous_states_untouched(self, controller):
        controller.load("acc", "inc\ninc\n")
        seed = controller.current_state
        controller.run()
        assert controller.history.at(0) is seed
        assert seed.registers["ACC"] == 0

    def test_history_records_instruction(self, controller):
        controller.load("acc", "inc\nstore\n")
        controller.run()
        assert [e.instruction.text for e in list(controller.history)[1:]] == ["inc", "store"]


class TestProgramCounterRule:
    def test_jump_honoured(self, controller):
        controller.load("acc", JUMPY)
        for _ in range(5):
            controller.step()
        assert controller.current_state.program_counter == 6

    def test_jump_skips_instructions(self, controller):
        controller.load("acc", JUMPY)
        controller.run()
        assert controller.steps_taken == 6
        assert _acc(controller) == 2
        assert controller.current_state.memory == (2, 0)
        assert controller.current_state.program_counter == 7

    def test_self_jump_falls_through(self, controller):
        controller.load("acc", "nop\njmp 1\ninc\n")
        controller.run()
        assert controller.steps_taken == 3
        assert _acc(controller) == 1

    def test_backward_jump_loops(self, small_controller):
        small_controller.load("acc", "inc\njmp 0\n")
        small_controller.run(max_steps=10)
        assert small_controller.halt_cause is HaltCause.STEP_LIMIT_EXCEEDED
        assert small_controller.current_state.registers["ACC"] == 5


# ─── Faults ─────────────────────

class TestFaults:
    def test_scenario_b_execution_error(self, controller):
        controller.load("acc", "inc\nbogus\ninc\n")
        controller.step()
        before = controller.history.states()

        assert controller.step() is HaltCause.EXECUTION_FAULT
        assert controller.state is ControllerState.HALTED
        assert isinstance(controller.last_error, ExecutionError)
        assert controller.history.states() == before
        assert controller.current_state.program_counter == 1

    def test_plugin_bug_wrapped(self, controller):
        controller.load("acc", "boom\n")
        assert controller.step() is HaltCause.EXECUTION_FAULT
        assert isinstance(controller.last_error, ExecutionError)
        assert isinstance(controller.last_error.__cause__, ZeroDivisionError)
        assert len(controller.history) == 1

    def test_malformed_state_is_contract_violation(self, controller):
        controller.load("acc", "inc\nevil\n")
        controller.run()
        assert controller.halt_cause is HaltCause.CONTRACT_VIOLATION
        assert controller.halt_cause.is_fault
        assert isinstance(controller.last_error, ContractViolation)
        assert controller.steps_taken == 1

    def test_fault_is_logged(self, controller, caplog):
        controller.load("acc", "bogus\n")
        with caplog.at_level(logging.WARNING, logger="stepsim.controller"):
            controller.step()
        assert "EXECUTION_FAULT" in caplog.text

    def test_halt_signal_counts_as_step(self, controller):
        controller.load("acc", "inc\nhalt\ninc\n")
        assert controller.run() is StopReason.HALTED
        assert controller.halt_cause is HaltCause.HALT_INSTRUCTION
        assert not controller.halt_cause.is_fault
        assert controller.steps_taken == 2
        assert _acc(controller) == 1
        assert controller.history.latest.instruction.text == "halt"


# ─── Running ─────────────────────

class TestRun:
    def test_scenario_c_step_limit(self, small_controller):
        small_controller.load("spin", "")
        assert small_controller.run() is StopReason.HALTED
        assert small_controller.halt_cause is HaltCause.STEP_LIMIT_EXCEEDED
        assert small_controller.steps_taken == 50

    def test_explicit_cap(self, small_controller):
        small_controller.load("spin", "")
        small_controller.run(max_steps=7)
        assert small_controller.steps_taken == 7
        assert small_controller.current_state.registers["X"] == 7

    def test_cap_not_hit_when_program_ends(self, controller):
        controller.load("acc", "inc\ninc\n")
        controller.run(max_steps=2)
        assert controller.halt_cause is HaltCause.PROGRAM_COUNTER_OUT_OF_BOUNDS

    def test_cap_must_be_positive(self, controller):
        controller.load("acc", "inc")
        with pytest.raises(ValueError):
            controller.run(max_steps=0)

    def test_run_requires_program(self, controller):
        with pytest.raises(ControllerError):
            controller.run()

    def test_on_batch_called_per_batch(self, small_controller):
        seen = []
        small_controller.load("spin", "")
        small_controller.run(max_steps=10, on_batch=lambda c: seen.append(c.steps_taken))
        assert seen == [4, 8]

    def test_cancel_between_batches(self, small_controller):
        small_controller.load("spin", "")
        reason = small_controller.run(on_batch=lambda c: c.cancel())
        assert reason is StopReason.CANCELLED
        assert small_controller.state is ControllerState.RUNNING
        assert small_controller.steps_taken == 4

        # Suspension, not rollback: the next run carries on
        small_controller.run()
        assert small_controller.halt_cause is HaltCause.STEP_LIMIT_EXCEEDED
        assert small_controller.steps_taken == 50

    def test_run_batches_generator(self, small_controller):
        small_controller.load("spin", "")
        batches = small_controller.run_batches()
        assert next(batches) == 4
        assert next(batches) == 8
        small_controller.cancel()
        with pytest.raises(StopIteration) as stop:
            next(batches)
        assert stop.value.value is StopReason.CANCELLED
        assert small_controller.steps_taken == 8

    def test_trace_logging(self, registry, caplog):
        ctl = StepController(config=EngineConfig(trace=True), registry=registry)
        ctl.load("acc", "inc\n")
        with caplog.at_level(logging.DEBUG, logger="stepsim.controller"):
            ctl.run()
        assert "step 1: inc" in caplog.text


class TestBreakpoints:
    def test_stops_before_breakpoint(self, controller):
        controller.load("acc", "inc\ninc\ninc\ninc\n")
        controller.add_breakpoint(2)
        assert controller.run() is StopReason.BREAKPOINT
        assert controller.steps_taken == 2
        assert controller.current_state.program_counter == 2
        assert controller.state is ControllerState.RUNNING

    def test_resume_from_breakpoint(self, controller):
        controller.load("acc", "inc\ninc\ninc\ninc\n")
        controller.add_breakpoint(2)
        controller.run()
        assert controller.run() is StopReason.HALTED
        assert controller.steps_taken == 4

    def test_breakpoint_inside_loop_hits_each_pass(self, controller):
        controller.load("acc", "inc\njmp 0\n")
        controller.add_breakpoint(1)
        controller.run()
        controller.run()
        assert controller.steps_taken == 3

    def test_remove_and_clear(self, controller):
        controller.add_breakpoint(1)
        controller.add_breakpoint(3)
        controller.remove_breakpoint(1)
        assert list(controller.breakpoints) == [3]
        controller.clear_breakpoints()
        assert list(controller.breakpoints) == []


# ─── Reset / rewind ─────────────────────

class TestResetRewind:
    def test_reset_restores_ready(self, controller):
        controller.load("acc", JUMPY)
        ready = controller.snapshot()
        controller.run()
        controller.reset()
        assert controller.snapshot() == ready
        assert controller.state is ControllerState.READY
        assert len(controller.history) == 1

    def test_reset_is_idempotent(self, controller):
        controller.load("acc", JUMPY)
        controller.run()
        controller.reset()
        once = (controller.snapshot(), controller.history.states())
        controller.reset()
        assert (controller.snapshot(), controller.history.states()) == once

    def test_reset_does_not_recompile(self, controller):
        program = controller.load("acc", "inc\n")
        controller.run()
        controller.reset()
        assert controller.program is program

    def test_reset_requires_program(self, controller):
        with pytest.raises(ControllerError):
            controller.reset()

    def test_rewind_round_trip(self, controller):
        controller.load("acc", JUMPY)
        controller.run()
        original = controller.history.states()

        controller.rewind_to(2)
        assert controller.state is ControllerState.RUNNING
        assert controller.current_state == original[2]
        assert len(controller.history) == 3
        for _ in range(3):
            controller.step()
        assert controller.history.states() == original[:6]

        controller.run()
        assert controller.history.states() == original

    def test_rewind_to_zero_is_ready(self, controller):
        controller.load("acc", "inc\n")
        controller.run()
        controller.rewind_to(0)
        assert controller.state is ControllerState.READY
        assert controller.halt_cause is None

    def test_rewind_from_fault_clears_error(self, controller):
        controller.load("acc", "inc\nbogus\n")
        controller.run()
        controller.rewind_to(1)
        assert controller.last_error is None
        assert controller.state is ControllerState.RUNNING

    @pytest.mark.parametrize("index", [5, -1, "1"])
    def test_rewind_outside_timeline(self, controller, index):
        controller.load("acc", "inc\n")
        controller.step()
        with pytest.raises(ControllerError):
            controller.rewind_to(index)
        assert controller.steps_taken == 1

    def test_rewind_requires_program(self, controller):
        with pytest.raises(ControllerError):
            controller.rewind_to(0)


# ─── Inspection ─────────────────────

class TestInspection:
    def test_current_instruction(self, controller):
        controller.load("scenario-a", "int a = 5;")
        assert controller.current_instruction.text == "LOAD R0,#5"
        controller.step()
        assert controller.current_instruction is None

    def test_snapshot(self, controller):
        controller.load("scenario-a", "int a = 5;")
        snap = controller.snapshot()
        assert snap["status"] == "READY"
        assert snap["plugin"] == "scenario-a"
        assert snap["current_address"] == "0"
        assert snap["current_text"] == "LOAD R0,#5"
        controller.step()
        snap = controller.snapshot()
        assert snap["registers"] == {"R0": 5, "R1": 0}
        assert snap["steps"] == 1
        assert snap["halt_cause"] is None

    def test_snapshot_reports_fault(self, controller):
        controller.load("acc", "bogus\n")
        controller.step()
        snap = controller.snapshot()
        assert snap["status"] == "HALTED"
        assert snap["halt_cause"] == "EXECUTION_FAULT"
        assert "cannot decode" in snap["error"]

    def test_trace(self, controller):
        controller.load("acc", "inc\nstore\n")
        controller.run()
        lines = controller.trace().splitlines()
        assert len(lines) == 3
        assert lines[0].split()[:3] == ["0", "-", "<initial>"]
        assert "$0" in lines[1] and "inc" in lines[1] and "ACC=01" in lines[1]

    def test_repr(self, controller):
        assert "IDLE" in repr(controller)
