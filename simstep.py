#!/usr/bin/env python3
"""
simstep: compile a C-like program for a processor plugin and step through it

Usage:
    simstep <input.c> [--plugin ID] [--plugin-module MOD] [--steps N | --run]
                      [--max-steps N] [--batch-size N] [--listing] [--trace]
                      [--json] [--list-plugins] [-v]

Without --steps the program runs until it halts (or hits --max-steps).

Exit codes:
    0  program ran (halted normally, hit the step limit, or paused)
    1  compile error, unknown plugin, unreadable input
    2  plugin contract violation
    3  execution fault

Examples:
    simstep blink.c                         # tiny8, run to completion
    simstep blink.c --steps 5 --trace       # first five instructions
    simstep blink.c --listing --json
    simstep --list-plugins --plugin-module my_cpu_plugin
"""

import argparse
import json
import logging
import sys

from rich.console import Console

from stepsim import __version__
from stepsim.config import DEFAULT_CONFIG
from stepsim.controller import HaltCause, StepController
from stepsim.errors import CompileError, ContractViolation, RegistryError
from stepsim.formatting import format_listing, memory_table, state_table
from stepsim.log_setup import setup_logging
from stepsim.registry import default_registry, import_plugins

log = logging.getLogger('stepsim.cli')

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CONTRACT = 2
EXIT_FAULT = 3


def positive_int(value: str) -> int:
    """argparse type: positive integer, decimal or 0x hex."""
    try:
        n = int(value, 0)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value!r}") from None
    if n <= 0:
        raise argparse.ArgumentTypeError(f"must be positive: {value!r}")
    return n


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="simstep",
        description="Plugin-driven compile-and-step processor simulator",
    )
    parser.add_argument("input", nargs="?", help="Input source file (UTF-8)")
    parser.add_argument("--plugin", default="tiny8",
                        help="Processor plugin id (default: tiny8)")
    parser.add_argument("--plugin-module", action="append", default=[], metavar="MOD",
                        help="Import MOD so it can register extra plugins (repeatable)")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--steps", type=positive_int, metavar="N",
                      help="Execute at most N instructions")
    mode.add_argument("--run", action="store_true",
                      help="Run until halt (default)")
    parser.add_argument("--max-steps", type=positive_int, default=None,
                        help=f"Step limit for --run (default: {DEFAULT_CONFIG.max_steps})")
    parser.add_argument("--batch-size", type=positive_int, default=None,
                        help=f"Steps between progress updates (default: {DEFAULT_CONFIG.batch_size})")
    parser.add_argument("--listing", action="store_true",
                        help="Print the compiled program listing")
    parser.add_argument("--trace", action="store_true",
                        help="Print every recorded step")
    parser.add_argument("--json", action="store_true",
                        help="Print the final snapshot as JSON instead of tables")
    parser.add_argument("--list-plugins", action="store_true",
                        help="List available plugins and exit")
    parser.add_argument("--log-dir", default=None,
                        help="Also write a full debug log to this directory")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Show engine log messages on stderr")
    parser.add_argument("--version", action="version",
                        version=f"simstep {__version__}")
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(
        console_level=logging.DEBUG if args.verbose else logging.WARNING,
        log_dir=args.log_dir,
    )
    console = Console()

    try:
        for module in args.plugin_module:
            import_plugins(module)
    except RegistryError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    if args.list_plugins:
        for plugin in default_registry:
            print(f"{plugin.id:12s} {plugin.name}")
        return EXIT_OK

    if not args.input:
        parser.error("an input file is required unless --list-plugins is given")

    try:
        with open(args.input, "r", encoding="utf-8") as f:
            source = f.read()
    except FileNotFoundError:
        print(f"Error: File not found: {args.input}", file=sys.stderr)
        return EXIT_ERROR
    except (OSError, UnicodeDecodeError) as e:
        print(f"Error reading {args.input}: {e}", file=sys.stderr)
        return EXIT_ERROR

    config = DEFAULT_CONFIG.replace(max_steps=args.max_steps,
                                    batch_size=args.batch_size,
                                    trace=args.verbose)
    ctl = StepController(config=config)

    try:
        program = ctl.load(args.plugin, source)
    except CompileError as e:
        print(f"Compile error: {e}", file=sys.stderr)
        return EXIT_ERROR
    except ContractViolation as e:
        print(f"Plugin contract violation: {e}", file=sys.stderr)
        return EXIT_CONTRACT
    except RegistryError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    log.info("%s: %d instruction(s) for %s", args.input, len(program), args.plugin)

    if args.listing and not args.json:
        console.print(format_listing(program), highlight=False, markup=False)
        console.print()

    if args.steps is not None:
        for _ in range(args.steps):
            if ctl.step() is not None:
                break
    else:
        def progress(c):
            log.debug("... %d steps", c.steps_taken)
        ctl.run(on_batch=progress)

    if args.json:
        data = ctl.snapshot()
        if args.listing:
            data["listing"] = [
                {"address": r.address, "text": r.text, "encoding": r.encoding}
                for r in program
            ]
        if args.trace:
            data["trace"] = ctl.trace().splitlines()
        print(json.dumps(data, indent=2))
    else:
        if args.trace:
            console.print(ctl.trace(), highlight=False, markup=False)
            console.print()
        previous = ctl.history.at(ctl.steps_taken - 1) if ctl.steps_taken else None
        console.print(state_table(ctl.current_state, previous))
        console.print(memory_table(ctl.current_state, previous))
        status = ctl.halt_cause.value if ctl.halt_cause else ctl.state.value
        console.print(f"{ctl.steps_taken} step(s), {status}", highlight=False)

    if ctl.halt_cause is HaltCause.CONTRACT_VIOLATION:
        print(f"Plugin contract violation: {ctl.last_error}", file=sys.stderr)
        return EXIT_CONTRACT
    if ctl.halt_cause is HaltCause.EXECUTION_FAULT:
        print(f"Execution fault: {ctl.last_error}", file=sys.stderr)
        return EXIT_FAULT
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
