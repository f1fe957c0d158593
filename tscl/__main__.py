#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
tscl/__main__.py
================

Entry point for the ``tscl`` command line tool.

Usage
-----
    python -m tscl <command> [options] <input>

Commands
--------
    solve       Solve a constraint set and print the sketch table
    check       Parse and ingest a constraint set (no saturation)
    dump-graph  Print the (saturated) constraint graph in Graphviz DOT
    convert     Convert between TSCL text, the proto3 JSON document and the
                protobuf binary message

Inputs are TSCL text, a JSON constraint document or a binary protobuf
message.  Unless ``--input-format`` says otherwise, a ``.pb`` or ``.binpb``
file is binary and the rest is chosen from the content (a document starting
with ``{`` is JSON).  ``-`` reads standard input.

Exit codes
----------
    0   success
    1   the solve reported diagnostics of severity error
    2   usage, syntax, wire-format or configuration error
    3   saturation budget exceeded
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import textwrap
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Sequence, TextIO, Tuple

from typesketch import __version__
from typesketch.config import PathPolicy, SolverConfig
from typesketch.constraint_set import ConstraintSet
from typesketch.errors import (
    Diagnostic,
    SaturationBudgetExceeded,
    Severity,
    WireFormatError,
)
from typesketch.saturation import Saturator
from typesketch.solver import Solver
from typesketch.wire import (
    constraint_set_from_bytes,
    constraint_set_to_bytes,
    dump_constraint_set,
    loads_constraint_set,
    sketches_to_json,
)

from .parser import TsclSyntaxError, format_constraint_set, parse

logger = logging.getLogger("tscl")

__description__ = "tscl — type sketch constraint solver"

EXIT_OK = 0
EXIT_DIAGNOSTICS = 1
EXIT_USAGE = 2
EXIT_BUDGET = 3

_BINARY_SUFFIXES = (".pb", ".binpb")


# ═══════════════════════════════════════════════════════════════════════════
# TERMINAL COLORS
# ═══════════════════════════════════════════════════════════════════════════

class _Colors:
    """ANSI color codes, disabled when not writing to a TTY."""

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled

    def _code(self, code: str) -> str:
        return code if self.enabled else ""

    @property
    def RESET(self) -> str:
        return self._code("\033[0m")

    @property
    def BOLD(self) -> str:
        return self._code("\033[1m")

    @property
    def RED(self) -> str:
        return self._code("\033[31m")

    @property
    def GREEN(self) -> str:
        return self._code("\033[32m")

    @property
    def MAGENTA(self) -> str:
        return self._code("\033[35m")

    @property
    def CYAN(self) -> str:
        return self._code("\033[36m")


def _get_colors(stream: TextIO) -> _Colors:
    is_tty = hasattr(stream, "isatty") and stream.isatty()
    return _Colors(enabled=is_tty and os.environ.get("NO_COLOR") is None)


# ═══════════════════════════════════════════════════════════════════════════
# DIAGNOSTIC FORMATTER
# ═══════════════════════════════════════════════════════════════════════════

class DiagnosticFormatter:
    """Writes solver diagnostics in GCC/Clang style::

        p.load.σ0@0: error: malformed label σ0@0: bit_size must be positive
    """

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self.stream = stream or sys.stderr
        self.colors = _get_colors(self.stream)
        self.counts: Dict[Severity, int] = {s: 0 for s in Severity}

    def _emit(self, severity: Severity, message: str, where: str = "") -> None:
        self.counts[severity] += 1
        c = self.colors
        color = {
            Severity.ERROR: c.RED,
            Severity.WARNING: c.MAGENTA,
            Severity.INFORMATION: c.CYAN,
        }[severity]
        prefix = f"{where}: " if where else ""
        self.stream.write(
            f"{c.BOLD}{prefix}{color}{severity.value}:{c.RESET} {message}\n"
        )

    def error(self, message: str, where: str = "") -> None:
        self._emit(Severity.ERROR, message, where)

    def diagnostic(self, diag: Diagnostic) -> None:
        where = str(diag.subject) if diag.subject is not None else ""
        self._emit(diag.severity, f"{diag.message} [{diag.kind.value}]", where)

    def diagnostics(self, diags: Iterable[Diagnostic]) -> None:
        for diag in diags:
            self.diagnostic(diag)

    def syntax_error(self, exc: TsclSyntaxError) -> None:
        where = f"{exc.filename or '<input>'}:{exc.line}:{exc.column}"
        self._emit(Severity.ERROR, exc.message, where)
        if exc.source_line:
            c = self.colors
            self.stream.write(f"  {exc.source_line.rstrip()}\n")
            self.stream.write(f"{c.GREEN}{' ' * (exc.column + 1)}^{c.RESET}\n")

    def summary(self) -> None:
        c = self.colors
        parts = []
        if self.counts[Severity.ERROR]:
            parts.append(f"{c.RED}{self.counts[Severity.ERROR]} error(s){c.RESET}")
        if self.counts[Severity.WARNING]:
            parts.append(f"{c.MAGENTA}{self.counts[Severity.WARNING]} warning(s){c.RESET}")
        if self.counts[Severity.INFORMATION]:
            parts.append(f"{c.CYAN}{self.counts[Severity.INFORMATION]} note(s){c.RESET}")
        if parts:
            self.stream.write(", ".join(parts) + " generated.\n")

    @property
    def has_errors(self) -> bool:
        return self.counts[Severity.ERROR] > 0


# ═══════════════════════════════════════════════════════════════════════════
# INPUT / CONFIG
# ═══════════════════════════════════════════════════════════════════════════

class InputError(Exception):
    """Anything that makes the input unusable before solving starts."""


def _read_source(path: str) -> Tuple[str, str]:
    if path == "-":
        return sys.stdin.read(), "<stdin>"
    try:
        return Path(path).read_text(encoding="utf-8"), path
    except FileNotFoundError:
        raise InputError(f"input not found: {path}") from None
    except (OSError, UnicodeDecodeError) as exc:
        raise InputError(f"cannot read {path}: {exc}") from exc


def _read_binary(path: str) -> Tuple[bytes, str]:
    if path == "-":
        return sys.stdin.buffer.read(), "<stdin>"
    try:
        return Path(path).read_bytes(), path
    except FileNotFoundError:
        raise InputError(f"input not found: {path}") from None
    except OSError as exc:
        raise InputError(f"cannot read {path}: {exc}") from exc


def load_input(path: str, input_format: str = "auto") -> ConstraintSet:
    """Load TSCL text, a JSON constraint document or a binary message."""
    if input_format == "auto" and Path(path).suffix in _BINARY_SUFFIXES:
        input_format = "binary"
    if input_format == "binary":
        data, filename = _read_binary(path)
        logger.debug("Reading %s as a binary constraint message", filename)
        return constraint_set_from_bytes(data)
    text, filename = _read_source(path)
    if input_format == "json" or (input_format == "auto" and text.lstrip().startswith("{")):
        logger.debug("Reading %s as a JSON constraint document", filename)
        return loads_constraint_set(text)
    logger.debug("Reading %s as TSCL text", filename)
    return parse(text, filename=filename)


def build_config(args: argparse.Namespace) -> SolverConfig:
    """Config file first, then command line overrides."""
    base: Dict[str, Any] = {}
    if getattr(args, "config", None):
        try:
            with open(args.config, "r", encoding="utf-8") as f:
                base = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise InputError(f"cannot load config {args.config}: {exc}") from exc
        if not isinstance(base, dict):
            raise InputError(f"config {args.config} must hold a JSON object")
    overrides = {
        "max_path_length": args.max_path_length,
        "path_policy": args.path_policy,
        "max_saturation_steps": args.max_steps,
        "deadline_seconds": args.deadline,
        "pointer_width": args.pointer_width,
    }
    base.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return SolverConfig.from_dict(base)
    except (TypeError, ValueError) as exc:
        raise InputError(f"invalid configuration: {exc}") from exc


def _write_output(text: str, output: Optional[str]) -> None:
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(text)
            if not text.endswith("\n"):
                f.write("\n")
    else:
        sys.stdout.write(text)
        if not text.endswith("\n"):
            sys.stdout.write("\n")


# ═══════════════════════════════════════════════════════════════════════════
# COMMAND HANDLERS
# ═══════════════════════════════════════════════════════════════════════════

def cmd_solve(args: argparse.Namespace) -> int:
    """Handle the 'solve' command."""
    formatter = DiagnosticFormatter()
    constraints = load_input(args.input, args.input_format)
    result = Solver(constraints, build_config(args)).solve()

    if args.format == "json":
        _write_output(sketches_to_json(result.sketches), args.output)
    else:
        table = result.sketches
        lines = [
            f"target {json.dumps(ts.target.value, ensure_ascii=False)}: "
            f"{table.render(ts.sketch_id, depth=args.depth)}"
            for ts in sorted(table.targets.values(), key=lambda t: t.target.sort_key)
        ]
        _write_output("\n".join(lines), args.output)

    formatter.diagnostics(result.reports)
    if args.verbose:
        sys.stderr.write(result.summary() + "\n")
    formatter.summary()
    return EXIT_DIAGNOSTICS if formatter.has_errors else EXIT_OK


def cmd_check(args: argparse.Namespace) -> int:
    """Handle the 'check' command (parse + ingestion, no saturation)."""
    formatter = DiagnosticFormatter()
    constraints = load_input(args.input, args.input_format)
    builder = Solver(constraints, build_config(args)).build_graph()
    formatter.diagnostics(builder.graph.reports)
    if not args.quiet and not formatter.has_errors:
        c = formatter.colors
        sys.stderr.write(
            f"{c.GREEN}✓{c.RESET} {len(constraints)} constraints, "
            f"{builder.graph.node_count} nodes.\n"
        )
    formatter.summary()
    return EXIT_DIAGNOSTICS if formatter.has_errors else EXIT_OK


def cmd_dump_graph(args: argparse.Namespace) -> int:
    """Handle the 'dump-graph' command."""
    constraints = load_input(args.input, args.input_format)
    config = build_config(args)
    graph = Solver(constraints, config).build_graph().graph
    if not args.unsaturated:
        Saturator(graph, config).run()
    title = "unsaturated" if args.unsaturated else "saturated"
    _write_output(graph.to_dot(title=title), args.output)
    return EXIT_OK


def cmd_convert(args: argparse.Namespace) -> int:
    """Handle the 'convert' command."""
    constraints = load_input(args.input, args.input_format)
    if args.to == "binary":
        data = constraint_set_to_bytes(constraints)
        if args.output:
            Path(args.output).write_bytes(data)
        else:
            sys.stdout.buffer.write(data)
            sys.stdout.flush()
        return EXIT_OK
    if args.to == "json":
        text = dump_constraint_set(constraints)
    else:
        try:
            text = format_constraint_set(constraints, ascii_only=args.ascii)
        except ValueError as exc:
            raise InputError(str(exc)) from exc
    _write_output(text, args.output)
    return EXIT_OK


# ═══════════════════════════════════════════════════════════════════════════
# ARGUMENT PARSER
# ═══════════════════════════════════════════════════════════════════════════

def _positive_int(text: str) -> int:
    value = int(text)
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return value


def _solver_options() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    group = common.add_argument_group("solver options")
    group.add_argument(
        "--config",
        metavar="FILE",
        default=None,
        help="JSON file with SolverConfig fields; command line options win",
    )
    group.add_argument(
        "--max-path-length",
        type=_positive_int,
        default=None,
        help="Longest DTV path admitted (default: 16)",
    )
    group.add_argument(
        "--path-policy",
        choices=[p.value for p in PathPolicy],
        default=None,
        help="What to do with longer paths (default: truncate)",
    )
    group.add_argument(
        "--max-steps",
        type=int,
        default=None,
        help="Saturation step budget",
    )
    group.add_argument(
        "--deadline",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Saturation wall-clock budget",
    )
    group.add_argument(
        "--pointer-width",
        type=_positive_int,
        default=None,
        metavar="BITS",
        help="Width of leaves never reached through a field (default: 64)",
    )
    return common


def _io_options() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("input", help="TSCL, JSON or binary constraint file ('-' for stdin)")
    common.add_argument(
        "--input-format",
        choices=["auto", "tscl", "json", "binary"],
        default="auto",
        help="How to read the input (default: auto)",
    )
    common.add_argument(
        "-o", "--output",
        default=None,
        help="Write to this file instead of stdout",
    )
    common.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="More logging (repeat for debug output)",
    )
    return common


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the tscl CLI."""
    parser = argparse.ArgumentParser(
        prog="tscl",
        description=__description__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              %(prog)s solve constraints.tscl
              %(prog)s solve constraints.json --format text
              %(prog)s check constraints.tscl --path-policy reject
              %(prog)s dump-graph constraints.tscl -o graph.dot
              %(prog)s convert constraints.tscl --to json
              %(prog)s convert constraints.json --to binary -o constraints.pb
        """),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        description="available commands",
        metavar="<command>",
    )
    io_opts = _io_options()
    solver_opts = _solver_options()

    # ── solve ────────────────────────────────────────────────────────────

    p_solve = subparsers.add_parser(
        "solve",
        parents=[io_opts, solver_opts],
        help="Solve a constraint set and print the sketches",
    )
    p_solve.add_argument(
        "--format",
        choices=["json", "text"],
        default="json",
        help="Sketch table as JSON (default) or one C-like line per target",
    )
    p_solve.add_argument(
        "--depth",
        type=_positive_int,
        default=3,
        help="Nesting depth of the text rendering (default: 3)",
    )
    p_solve.set_defaults(func=cmd_solve)

    # ── check ────────────────────────────────────────────────────────────

    p_check = subparsers.add_parser(
        "check",
        parents=[io_opts, solver_opts],
        help="Parse and ingest a constraint set without solving it",
    )
    p_check.add_argument(
        "-q", "--quiet",
        action="store_true",
        default=False,
        help="Only print diagnostics",
    )
    p_check.set_defaults(func=cmd_check)

    # ── dump-graph ───────────────────────────────────────────────────────

    p_dump = subparsers.add_parser(
        "dump-graph",
        parents=[io_opts, solver_opts],
        help="Print the constraint graph in Graphviz DOT",
    )
    p_dump.add_argument(
        "--unsaturated",
        action="store_true",
        default=False,
        help="Dump the graph as built, before saturation",
    )
    p_dump.set_defaults(func=cmd_dump_graph)

    # ── convert ──────────────────────────────────────────────────────────

    p_convert = subparsers.add_parser(
        "convert",
        parents=[io_opts],
        help="Convert between TSCL text, the JSON document and the binary message",
    )
    p_convert.add_argument(
        "--to",
        choices=["json", "text", "binary"],
        default="json",
        help="Output format (default: json)",
    )
    p_convert.add_argument(
        "--ascii",
        action="store_true",
        default=False,
        help="Write '<=' and 'fN@k' instead of '⊑' and 'σN@k'",
    )
    p_convert.set_defaults(func=cmd_convert)

    return parser


# ═══════════════════════════════════════════════════════════════════════════
# MAIN
# ═══════════════════════════════════════════════════════════════════════════

def _configure_logging(verbosity: int) -> None:
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for the tscl CLI.

    Returns
    -------
    int
        Exit code, see the module docstring.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_USAGE

    _configure_logging(args.verbose)
    formatter = DiagnosticFormatter()
    try:
        return args.func(args)
    except TsclSyntaxError as exc:
        formatter.syntax_error(exc)
        return EXIT_USAGE
    except (WireFormatError, InputError) as exc:
        formatter.error(str(exc))
        return EXIT_USAGE
    except SaturationBudgetExceeded as exc:
        formatter.error(str(exc))
        return EXIT_BUDGET
    except KeyboardInterrupt:
        sys.stderr.write("\nInterrupted.\n")
        return 130
    except BrokenPipeError:
        devnull = os.open(os.devnull, os.O_WRONLY)
        os.dup2(devnull, sys.stdout.fileno())
        return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
