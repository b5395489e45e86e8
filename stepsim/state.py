"""
Machine state snapshots.

Register model:
  registers        name -> int, keys fixed to the plugin's register set
  memory           fixed-length tuple of ints (plugin's memory size in words)
  program_counter  index into the compiled instruction sequence, not a raw
                   memory address

A MachineState is frozen once built. Every "update" helper returns a new
instance, so the history log can keep references to every state it has seen
without copying.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple


@dataclass(frozen=True)
class StateDiff:
    """What changed between two states (for viewers)."""
    registers: Dict[str, Tuple[int, int]] = field(default_factory=dict)
    memory: Dict[int, Tuple[int, int]] = field(default_factory=dict)
    program_counter: Optional[Tuple[int, int]] = None

    def __bool__(self) -> bool:
        return bool(self.registers or self.memory or self.program_counter)


@dataclass(frozen=True)
class MachineState:
    registers: Mapping[str, int]
    memory: Sequence[int]
    program_counter: int = 0

    def __post_init__(self):
        # Freeze containers handed in by plugins (dict/list are common)
        object.__setattr__(self, "registers",
                           MappingProxyType(dict(self.registers)))
        object.__setattr__(self, "memory", tuple(self.memory))

    def __hash__(self) -> int:
        return hash((frozenset(self.registers.items()), self.memory,
                     self.program_counter))

    def __eq__(self, other) -> bool:
        if not isinstance(other, MachineState):
            return NotImplemented
        return (dict(self.registers) == dict(other.registers)
                and self.memory == other.memory
                and self.program_counter == other.program_counter)

    # --- Construction ---

    @classmethod
    def zeroed(cls, register_names: Iterable[str], memory_size: int) -> MachineState:
        """All registers 0, memory filled with 0, PC = 0."""
        return cls(
            registers={name: 0 for name in register_names},
            memory=(0,) * memory_size,
            program_counter=0,
        )

    # --- Derived states ---

    def replace(self, registers: Optional[Mapping[str, int]] = None,
                memory: Optional[Sequence[int]] = None,
                program_counter: Optional[int] = None) -> MachineState:
        return MachineState(
            registers=self.registers if registers is None else registers,
            memory=self.memory if memory is None else memory,
            program_counter=(self.program_counter if program_counter is None
                             else program_counter),
        )

    def with_registers(self, **values: int) -> MachineState:
        unknown = [name for name in values if name not in self.registers]
        if unknown:
            raise KeyError(f"unknown register(s): {', '.join(unknown)}")
        regs = dict(self.registers)
        regs.update(values)
        return self.replace(registers=regs)

    def with_memory(self, address: int, value: int) -> MachineState:
        if not 0 <= address < len(self.memory):
            raise IndexError(f"memory address {address} out of range "
                             f"(size {len(self.memory)})")
        mem = list(self.memory)
        mem[address] = value
        return self.replace(memory=mem)

    def with_program_counter(self, pc: int) -> MachineState:
        return self.replace(program_counter=pc)

    # --- Inspection ---

    def diff(self, other: MachineState) -> StateDiff:
        """Changes going from ``self`` to ``other``."""
        regs = {
            name: (value, other.registers.get(name))
            for name, value in self.registers.items()
            if other.registers.get(name) != value
        }
        mem = {
            addr: (old, new)
            for addr, (old, new) in enumerate(zip(self.memory, other.memory))
            if old != new
        }
        pc = None
        if self.program_counter != other.program_counter:
            pc = (self.program_counter, other.program_counter)
        return StateDiff(registers=regs, memory=mem, program_counter=pc)

    def display(self) -> str:
        """One-line register dump for traces."""
        parts = [f"PC={self.program_counter:04X}"]
        for name, value in self.registers.items():
            parts.append(f"{name}={value:02X}" if value >= 0 else f"{name}={value}")
        return " ".join(parts)

    def to_dict(self) -> dict:
        return {
            "registers": dict(self.registers),
            "memory": list(self.memory),
            "program_counter": self.program_counter,
        }
