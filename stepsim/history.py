"""
History / snapshot log.

Entry 0 is the seed (initial state, no instruction). Entry n is the state
after the n-th executed step together with the instruction that produced it.
Only one timeline is kept: rewinding truncates, and stepping forward again
overwrites what was cut.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Iterator, List, Optional

from .instruction import InstructionRecord
from .state import MachineState


@dataclass(frozen=True)
class HistoryEntry:
    step_index: int
    state: MachineState
    instruction: Optional[InstructionRecord] = None


class History:
    """Append-only (during forward execution) list of HistoryEntry."""

    def __init__(self, initial: Optional[MachineState] = None):
        self._entries: List[HistoryEntry] = []
        if initial is not None:
            self.seed(initial)

    def seed(self, state: MachineState):
        """Drop everything and start a new timeline at ``state``."""
        self._entries = [HistoryEntry(0, state, None)]

    def append(self, state: MachineState, instruction: InstructionRecord) -> HistoryEntry:
        if not self._entries:
            raise IndexError("history has no seed entry")
        entry = HistoryEntry(len(self._entries), state, instruction)
        self._entries.append(entry)
        return entry

    def truncate_after(self, index: int):
        """Keep entries 0..index inclusive."""
        self._check_index(index)
        del self._entries[index + 1:]

    def at(self, index: int) -> MachineState:
        return self.entry(index).state

    def entry(self, index: int) -> HistoryEntry:
        self._check_index(index)
        return self._entries[index]

    def length(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[HistoryEntry]:
        return iter(list(self._entries))

    @property
    def latest(self) -> HistoryEntry:
        if not self._entries:
            raise IndexError("history is empty")
        return self._entries[-1]

    @property
    def steps(self) -> int:
        """Executed steps on this timeline (entries minus the seed)."""
        return max(0, len(self._entries) - 1)

    def states(self) -> List[MachineState]:
        return [e.state for e in self._entries]

    def _check_index(self, index: int):
        if isinstance(index, bool) or not isinstance(index, int):
            raise TypeError(f"history index must be an int, got {type(index).__name__}")
        if not 0 <= index < len(self._entries):
            raise IndexError(f"history index {index} out of range (length {len(self._entries)})")
