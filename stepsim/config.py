"""
Engine configuration.

Module-level defaults plus an EngineConfig value the controller reads. The
CLI starts from the defaults and layers its options on top with replace().
"""

from __future__ import annotations
from dataclasses import dataclass, fields, replace as dc_replace


DEFAULT_MAX_STEPS = 100_000     # runaway-plugin guard for run()
DEFAULT_BATCH_SIZE = 1_000      # steps between cooperative yields in run()


@dataclass(frozen=True)
class EngineConfig:
    max_steps: int = DEFAULT_MAX_STEPS
    batch_size: int = DEFAULT_BATCH_SIZE
    trace: bool = False             # log every step at DEBUG

    def __post_init__(self):
        for name in ("max_steps", "batch_size"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")

    def replace(self, **overrides) -> EngineConfig:
        """Copy with the given fields changed; None values are ignored."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise TypeError(f"unknown config field(s): {', '.join(sorted(unknown))}")
        changes = {k: v for k, v in overrides.items() if v is not None}
        return dc_replace(self, **changes)


DEFAULT_CONFIG = EngineConfig()
