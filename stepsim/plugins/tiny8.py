"""
tiny8: a small 8-bit register machine bundled as the demo plugin.

Registers R0..R3 hold 8-bit values; data memory is 32 words. Each
instruction is one 16-bit word:

    15   12 11 10 9  8 7            0
    [opcode][  rd ][ rs ][    imm    ]

Opcode table:
    0  NOP                 5  SUB   rd, rs      10 CMPLT rd, rs  rd = rd < rs
    1  LOADI rd, #imm      6  AND   rd, rs      11 CMPEQ rd, rs  rd = rd == rs
    2  LOAD  rd, [imm]     7  OR    rd, rs      12 JMP   imm
    3  STORE rd, [imm]     8  XOR   rd, rs      13 JZ    rd, imm
    4  ADD   rd, rs        9  MUL   rd, rs      14 HALT
                                                15 MOV   rd, rs

Arithmetic wraps modulo 256 and comparisons are unsigned. Fields an opcode
does not use must be zero; anything else is an undefined encoding.

The instruction address is its index in the program, so jump immediates
are program counter values.
"""

from __future__ import annotations
import logging
from typing import Callable, Dict, List

from ..errors import ExecutionError, HaltSignal
from ..instruction import InstructionRecord, is_bit_string
from ..plugin import MemoryConfig, ProcessorPlugin
from ..state import MachineState
from .tinyc import Instr, compile_source

log = logging.getLogger('stepsim.plugins.tiny8')


WORD_SIZE = 16
DATA_WORDS = 32
REGISTERS = ("R0", "R1", "R2", "R3")

OPCODES: Dict[str, int] = {
    'NOP':   0x0,
    'LOADI': 0x1,
    'LOAD':  0x2,
    'STORE': 0x3,
    'ADD':   0x4,
    'SUB':   0x5,
    'AND':   0x6,
    'OR':    0x7,
    'XOR':   0x8,
    'MUL':   0x9,
    'CMPLT': 0xA,
    'CMPEQ': 0xB,
    'JMP':   0xC,
    'JZ':    0xD,
    'HALT':  0xE,
    'MOV':   0xF,
}
MNEMONICS = {code: name for name, code in OPCODES.items()}

# Operand shapes: which of rd / rs / imm each opcode reads
FORM_NONE = 'NONE'        # NOP, HALT
FORM_RI = 'RI'            # LOADI, LOAD, STORE, JZ
FORM_RR = 'RR'            # register-register ALU ops
FORM_I = 'I'              # JMP

FORMS = {
    'NOP': FORM_NONE, 'HALT': FORM_NONE,
    'LOADI': FORM_RI, 'LOAD': FORM_RI, 'STORE': FORM_RI, 'JZ': FORM_RI,
    'JMP': FORM_I,
}


def encode(op: str, rd: int = 0, rs: int = 0, imm: int = 0) -> str:
    """Pack one instruction into its 16-character bit string."""
    word = (OPCODES[op] << 12) | ((rd & 3) << 10) | ((rs & 3) << 8) | (imm & 0xFF)
    return format(word, '016b')


def decode(encoding: str):
    """Split a bit string into (mnemonic, rd, rs, imm).

    Raises ExecutionError for anything that is not a defined tiny8 word.
    """
    if len(encoding) != WORD_SIZE or not is_bit_string(encoding):
        raise ExecutionError(f"malformed encoding {encoding!r}")
    word = int(encoding, 2)
    op = MNEMONICS[word >> 12]
    rd = (word >> 10) & 3
    rs = (word >> 8) & 3
    imm = word & 0xFF

    form = FORMS.get(op, FORM_RR)
    unused = {
        FORM_NONE: rd or rs or imm,
        FORM_RI: rs,
        FORM_RR: imm,
        FORM_I: rd or rs,
    }[form]
    if unused:
        raise ExecutionError(f"undefined encoding {encoding} for {op}")
    return op, rd, rs, imm


def format_instr(op: str, rd: int = 0, rs: int = 0, imm: int = 0) -> str:
    form = FORMS.get(op, FORM_RR)
    if form == FORM_NONE:
        return op
    if form == FORM_I:
        return f"{op} {imm}"
    if op == 'LOADI':
        return f"{op} R{rd}, #{imm}"
    if op in ('LOAD', 'STORE'):
        return f"{op} R{rd}, [{imm}]"
    if op == 'JZ':
        return f"{op} R{rd}, {imm}"
    return f"{op} R{rd}, R{rs}"


# Register-register operations: (a, b) -> result before masking
ALU: Dict[str, Callable[[int, int], int]] = {
    'ADD':   lambda a, b: a + b,
    'SUB':   lambda a, b: a - b,
    'AND':   lambda a, b: a & b,
    'OR':    lambda a, b: a | b,
    'XOR':   lambda a, b: a ^ b,
    'MUL':   lambda a, b: a * b,
    'CMPLT': lambda a, b: int(a < b),
    'CMPEQ': lambda a, b: int(a == b),
    'MOV':   lambda a, b: b,
}


class Tiny8(ProcessorPlugin):
    id = "tiny8"
    name = "tiny8 (4 x 8-bit registers, 32-word data memory)"
    registers = REGISTERS
    memory = MemoryConfig(size=DATA_WORDS, word_size=WORD_SIZE)

    def compile(self, source: str) -> List[InstructionRecord]:
        code = compile_source(source)
        log.debug("tiny8: %d instruction(s) generated", len(code))
        return [self._record(index, ins) for index, ins in enumerate(code)]

    @staticmethod
    def _record(index: int, ins: Instr) -> InstructionRecord:
        return InstructionRecord(
            address=index,
            text=format_instr(ins.op, ins.rd, ins.rs, ins.imm),
            encoding=encode(ins.op, ins.rd, ins.rs, ins.imm),
        )

    def execute(self, instruction: InstructionRecord, state: MachineState) -> MachineState:
        op, rd, rs, imm = decode(instruction.encoding)
        dst = REGISTERS[rd]

        if op == 'NOP':
            return state
        if op == 'HALT':
            raise HaltSignal(state, f"HALT at {instruction.address}")
        if op == 'LOADI':
            return state.with_registers(**{dst: imm})
        if op == 'LOAD':
            self._check_data_address(imm, instruction)
            return state.with_registers(**{dst: state.memory[imm]})
        if op == 'STORE':
            self._check_data_address(imm, instruction)
            return state.with_memory(imm, state.registers[dst])
        if op == 'JMP':
            return state.with_program_counter(imm)
        if op == 'JZ':
            if state.registers[dst] == 0:
                return state.with_program_counter(imm)
            return state

        a = state.registers[dst]
        b = state.registers[REGISTERS[rs]]
        return state.with_registers(**{dst: ALU[op](a, b) & 0xFF})

    @staticmethod
    def _check_data_address(addr: int, instruction: InstructionRecord):
        if addr >= DATA_WORDS:
            raise ExecutionError(f"data address {addr} outside {DATA_WORDS}-word memory",
                                 instruction.address)
