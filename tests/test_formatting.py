from rich.console import Console

from stepsim import MachineState, compile_program
from stepsim.formatting import format_listing, format_state, memory_table, state_table

from fake_plugins import Acc


def _render(renderable) -> str:
    console = Console(width=100, record=True, force_terminal=False)
    console.print(renderable)
    return console.export_text()


class TestPlainText:
    def test_listing_marks_current(self):
        program = compile_program(Acc(), "inc\nstore\n")
        lines = format_listing(program, current=1).splitlines()
        assert lines[0].startswith("   0  0001")
        assert lines[1].startswith("=> 1  0011")

    def test_state_rows(self):
        state = MachineState({"A": 10}, list(range(10)), 2)
        lines = format_state(state).splitlines()
        assert lines[0] == "PC=0002 A=0A"
        assert lines[1] == "  $0: 00 01 02 03 04 05 06 07"
        assert lines[2] == "  $8: 08 09"


class TestRichTables:
    def test_state_table(self):
        before = MachineState({"A": 1, "B": 2}, [0], 0)
        after = before.with_registers(B=3).with_program_counter(1)
        text = _render(state_table(after, before))
        assert "Registers" in text
        assert "0001" in text
        assert "03" in text

    def test_memory_table(self):
        state = MachineState({"A": 0}, [0xAB] * 12)
        text = _render(memory_table(state, row=8))
        assert "$0" in text and "$8" in text
        assert text.count("AB") == 12
