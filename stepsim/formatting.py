"""
Text and rich renderings of programs and machine states for viewers.
"""

from __future__ import annotations
from typing import Optional

from rich.table import Table
from rich.text import Text

from .compiler import CompiledProgram
from .instruction import format_address
from .state import MachineState


def format_listing(program: CompiledProgram, current: Optional[int] = None) -> str:
    """Program listing; ``current`` marks the instruction at that index."""
    lines = []
    for i, line in enumerate(program.listing().splitlines()):
        marker = "=>" if i == current else "  "
        lines.append(f"{marker} {line}")
    return "\n".join(lines)


def format_state(state: MachineState, memory_size: Optional[int] = None) -> str:
    """Registers on one line, then memory eight words per row."""
    size = memory_size if memory_size is not None else len(state.memory)
    lines = [state.display()]
    row = 8
    for base in range(0, len(state.memory), row):
        words = " ".join(f"{w:02X}" for w in state.memory[base:base + row])
        lines.append(f"  ${format_address(base, size)}: {words}")
    return "\n".join(lines)


def state_table(state: MachineState, previous: Optional[MachineState] = None,
                title: str = "Registers") -> Table:
    """Register table; values that changed since ``previous`` are highlighted."""
    changed = previous.diff(state).registers if previous is not None else {}
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Register")
    table.add_column("Hex", justify="right")
    table.add_column("Dec", justify="right")

    pc_style = "bold yellow" if previous is not None and \
        previous.program_counter != state.program_counter else ""
    table.add_row("PC", Text(f"{state.program_counter:04X}", style=pc_style),
                  Text(str(state.program_counter), style=pc_style))
    for name, value in state.registers.items():
        style = "bold yellow" if name in changed else ""
        table.add_row(name, Text(f"{value & 0xFFFFFFFF:02X}", style=style),
                      Text(str(value), style=style))
    return table


def memory_table(state: MachineState, previous: Optional[MachineState] = None,
                 row: int = 8, title: str = "Memory") -> Table:
    changed = previous.diff(state).memory if previous is not None else {}
    size = len(state.memory)
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Addr")
    for col in range(row):
        table.add_column(f"+{col:X}", justify="right")

    for base in range(0, size, row):
        cells = []
        for addr in range(base, min(base + row, size)):
            style = "bold yellow" if addr in changed else ""
            cells.append(Text(f"{state.memory[addr] & 0xFFFFFFFF:02X}", style=style))
        table.add_row(f"${format_address(base, size)}", *cells)
    return table
