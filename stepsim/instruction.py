"""
Instruction records produced by a plugin's compile() step.

An InstructionRecord is pure data: where the instruction lives, how it reads
and how it is encoded. The engine never interprets ``text``; the encoding is
a string of '0'/'1' characters exactly ``word_size`` long.
"""

from __future__ import annotations
from collections.abc import Mapping
from dataclasses import dataclass

from .errors import ContractViolation


RECORD_FIELDS = ("address", "text", "encoding")


@dataclass(frozen=True)
class InstructionRecord:
    address: int
    text: str
    encoding: str

    @classmethod
    def from_any(cls, obj) -> InstructionRecord:
        """Normalise a plugin result element into an InstructionRecord.

        Accepts an InstructionRecord, a mapping with the three keys, or any
        object carrying them as attributes.
        """
        if isinstance(obj, InstructionRecord):
            return obj
        if isinstance(obj, Mapping):
            missing = [f for f in RECORD_FIELDS if f not in obj]
            if missing:
                raise ContractViolation(
                    f"instruction record missing field(s): {', '.join(missing)}")
            return cls(obj["address"], obj["text"], obj["encoding"])
        missing = [f for f in RECORD_FIELDS if not hasattr(obj, f)]
        if missing:
            raise ContractViolation(
                f"instruction record missing field(s): {', '.join(missing)}")
        return cls(obj.address, obj.text, obj.encoding)

    @property
    def width(self) -> int:
        return len(self.encoding)

    def encoding_value(self) -> int:
        return int(self.encoding, 2) if self.encoding else 0

    def encoding_hex(self) -> str:
        """Encoding as hex, padded to the nibble count of the word."""
        digits = max(1, (len(self.encoding) + 3) // 4)
        return f"{self.encoding_value():0{digits}X}"

    def __str__(self) -> str:
        return f"{self.address}: {self.text}"


def is_bit_string(value) -> bool:
    return isinstance(value, str) and all(ch in "01" for ch in value)


def address_width(memory_size: int) -> int:
    """Hex digits needed to show any address below ``memory_size``."""
    if memory_size <= 1:
        return 1
    # exact at powers of 16, unlike math.log
    width = 0
    span = 1
    while span < memory_size:
        span *= 16
        width += 1
    return max(1, width)


def format_address(address: int, memory_size: int) -> str:
    """Zero-padded upper-case hex, ceil(log16(memory_size)) digits wide."""
    return f"{address:0{address_width(memory_size)}X}"
