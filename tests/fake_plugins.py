"""
Small processor plugins used by the engine tests.

  ScenarioA  R0/R1, 4 words, 8-bit encodings; "int a = 5;" -> LOAD R0,#5
  Acc        accumulator machine with a one-word-per-line assembly language
  Spin       execute() always returns program counter 0
  Scripted   compile() returns whatever the test hands it
  NeedsPort  an Acc whose constructor needs an argument
"""

import re

from stepsim import (
    CompileError, ExecutionError, HaltSignal, MemoryConfig, ProcessorPlugin,
)


class ScenarioA(ProcessorPlugin):
    id = "scenario-a"
    name = "Scenario A"
    registers = ("R0", "R1")
    memory = MemoryConfig(size=4, word_size=8)

    def compile(self, source):
        records = []
        for m in re.finditer(r"int\s+\w+\s*=\s*(\d+)\s*;", source):
            value = int(m.group(1))
            if value > 0xFF:
                raise CompileError(f"constant {value} does not fit in 8 bits", 1, m.start() + 1)
            records.append({
                "address": len(records),
                "text": f"LOAD R0,#{value}",
                "encoding": format(value, "08b"),
            })
        if not records and source.strip():
            raise CompileError("nothing to compile", 1, 1)
        return records

    def execute(self, instruction, state):
        return state.with_registers(R0=int(instruction.encoding, 2))


ACC_OPS = {
    "nop": "0000",
    "inc": "0001",
    "dec": "0010",
    "store": "0011",
    "halt": "0100",
    "bogus": "0101",     # decodes to nothing: ExecutionError
    "boom": "0110",      # plugin bug: raises a plain Python exception
    "evil": "0111",      # returns a malformed state
}


class Acc(ProcessorPlugin):
    """One accumulator, two memory words, 4-bit words.

    ``jmp N`` (N < 8) encodes as 1NNN.
    """

    id = "acc"
    name = "Accumulator test machine"
    registers = ("ACC",)
    memory = MemoryConfig(size=2, word_size=4)

    def compile(self, source):
        records = []
        for lineno, raw in enumerate(source.splitlines(), 1):
            text = raw.split(";")[0].strip()
            if not text:
                continue
            parts = text.split()
            op = parts[0].lower()
            if op == "jmp" and len(parts) == 2 and parts[1].isdigit() and int(parts[1]) < 8:
                encoding = "1" + format(int(parts[1]), "03b")
            elif op in ACC_OPS and len(parts) == 1:
                encoding = ACC_OPS[op]
            else:
                raise CompileError(f"unknown instruction {text!r}", lineno, 1)
            records.append({"address": len(records), "text": text, "encoding": encoding})
        return records

    def execute(self, instruction, state):
        enc = instruction.encoding
        acc = state.registers["ACC"]
        if enc[0] == "1":
            return state.with_program_counter(int(enc[1:], 2))
        if enc == "0000":
            return state
        if enc == "0001":
            return state.with_registers(ACC=(acc + 1) & 0xF)
        if enc == "0010":
            return state.with_registers(ACC=(acc - 1) & 0xF)
        if enc == "0011":
            return state.with_memory(0, acc)
        if enc == "0100":
            raise HaltSignal(state)
        if enc == "0110":
            return 1 // 0
        if enc == "0111":
            return {"ACC": acc}
        raise ExecutionError(f"cannot decode {enc}", instruction.address)


class Spin(ProcessorPlugin):
    id = "spin"
    name = "Always jumps to 0"
    registers = ("X",)
    memory = MemoryConfig(size=1, word_size=1)

    def compile(self, source):
        return [{"address": i, "text": "SPIN", "encoding": "1"} for i in range(2)]

    def execute(self, instruction, state):
        return state.with_registers(X=state.registers["X"] + 1).with_program_counter(0)


_UNSET = object()


class Scripted(ProcessorPlugin):
    """compile() returns (or raises) a canned result."""

    id = "scripted"
    name = "Scripted"
    registers = ("A",)
    memory = MemoryConfig(size=1, word_size=8)

    def __init__(self, result=_UNSET, error=None, initial=None):
        self.result = [] if result is _UNSET else result
        self.error = error
        self.initial = initial
        self.calls = 0

    def compile(self, source):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result

    def execute(self, instruction, state):
        return state

    def initial_state(self):
        return self.initial


class NeedsPort(Acc):
    id = "needs-port"

    def __init__(self, port):
        self.port = port


def record(address=0, text="X", encoding="00000000"):
    return {"address": address, "text": text, "encoding": encoding}
