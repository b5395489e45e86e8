"""
Compilation stage: source text -> CompiledProgram via the active plugin.

    ┌──────────┐    ┌──────────────────┐    ┌────────────┐    ┌─────────────────┐
    │  Source  │───>│ plugin.compile() │───>│ validation │───>│ CompiledProgram │
    └──────────┘    └──────────────────┘    └────────────┘    └─────────────────┘

The plugin is called exactly once. Its CompileError is the compile outcome
and propagates unchanged; anything else wrong with what comes back (wrong
shape, wrong encoding width, unordered addresses, unexpected exceptions) is a
ContractViolation, because it points at a broken plugin rather than at the
user's source.
"""

from __future__ import annotations
import logging
from collections.abc import Mapping, Sequence
from typing import Iterator, List, Optional, Tuple

from .errors import CompileError, ContractViolation
from .instruction import InstructionRecord, format_address, is_bit_string
from .plugin import check_plugin, plugin_label

log = logging.getLogger('stepsim.compiler')


class CompiledProgram(Sequence):
    """Immutable, ordered instruction sequence for one plugin."""

    def __init__(self, records, plugin_id: str, word_size: int, memory_size: int):
        self._records: Tuple[InstructionRecord, ...] = tuple(records)
        self.plugin_id = plugin_id
        self.word_size = word_size
        self.memory_size = memory_size

    def __getitem__(self, index):
        return self._records[index]

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[InstructionRecord]:
        return iter(self._records)

    def __eq__(self, other) -> bool:
        if not isinstance(other, CompiledProgram):
            return NotImplemented
        return self._records == other._records and self.plugin_id == other.plugin_id

    def __hash__(self) -> int:
        return hash((self._records, self.plugin_id))

    def __repr__(self) -> str:
        return f"<CompiledProgram plugin={self.plugin_id!r} instructions={len(self)}>"

    @property
    def records(self) -> Tuple[InstructionRecord, ...]:
        return self._records

    def index_of_address(self, address: int) -> Optional[int]:
        """Position of the first instruction at ``address`` (None if absent)."""
        for i, rec in enumerate(self._records):
            if rec.address == address:
                return i
            if rec.address > address:
                break
        return None

    def listing(self) -> str:
        """Address / encoding / text listing, one instruction per line."""
        lines = []
        for rec in self._records:
            addr = format_address(rec.address, self.memory_size)
            lines.append(f"{addr}  {rec.encoding}  {rec.encoding_hex():>4}  {rec.text}")
        return "\n".join(lines)


def compile_program(plugin, source: str) -> CompiledProgram:
    """Compile ``source`` with ``plugin`` and validate the result.

    Raises:
        CompileError: the plugin rejected the source.
        ContractViolation: the plugin or its output is malformed.
    """
    check_plugin(plugin)
    label = plugin_label(plugin)

    try:
        result = plugin.compile(source)
    except (CompileError, ContractViolation):
        raise
    except Exception as e:
        raise ContractViolation(
            f"compile() raised {type(e).__name__}: {e}", label) from e

    # A returned (rather than raised) CompileError is still the compile outcome
    if isinstance(result, CompileError):
        raise result

    records = validate_records(result, plugin.memory.word_size, label)
    log.debug("compiled %d instruction(s) for %s", len(records), label)
    return CompiledProgram(records, label, plugin.memory.word_size, plugin.memory.size)


def validate_records(result, word_size: int, label: Optional[str] = None) -> List[InstructionRecord]:
    """Check a raw compile() result and normalise it into records."""
    if result is None:
        raise ContractViolation("compile() returned None", label)
    if isinstance(result, (str, bytes, bytearray, Mapping)) or not isinstance(result, Sequence):
        raise ContractViolation(
            f"compile() must return an ordered sequence, got {type(result).__name__}", label)

    records: List[InstructionRecord] = []
    prev_address = None
    for i, item in enumerate(result):
        try:
            rec = InstructionRecord.from_any(item)
        except ContractViolation as e:
            raise ContractViolation(f"instruction {i}: {e.message}", label) from None

        if isinstance(rec.address, bool) or not isinstance(rec.address, int) or rec.address < 0:
            raise ContractViolation(
                f"instruction {i}: address must be a non-negative integer, got {rec.address!r}", label)
        if not isinstance(rec.text, str):
            raise ContractViolation(f"instruction {i}: text must be a string", label)
        if not is_bit_string(rec.encoding):
            raise ContractViolation(
                f"instruction {i}: encoding must be a string of 0/1 characters, got {rec.encoding!r}", label)
        if len(rec.encoding) != word_size:
            raise ContractViolation(
                f"instruction {i}: encoding is {len(rec.encoding)} bits, word size is {word_size}", label)

        if prev_address is not None:
            if rec.address < prev_address:
                raise ContractViolation(
                    f"instruction {i}: address {rec.address} precedes previous address {prev_address}", label)
            if rec.address == prev_address:
                log.warning("%s: instruction %d shares address %d with its predecessor",
                            label, i, rec.address)
        prev_address = rec.address
        records.append(rec)

    return records
