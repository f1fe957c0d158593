"""tscl — the type sketch constraint language.

A line-oriented text form for constraint sets, plus the ``tscl`` command
line tool that solves them.

Submodules
----------
grammar
    The parsimonious PEG grammar (``TSCL_GRAMMAR``).
parser
    ``parse`` / ``parse_file`` / ``parse_dtv`` and the ``format_*``
    renderers; ``TsclSyntaxError``.
__main__
    CLI entry-point with subcommands: ``solve``, ``check``,
    ``dump-graph``, ``convert``.

Usage
-----
Command-line::

    tscl solve constraints.tscl
    tscl solve constraints.json --format text
    tscl dump-graph constraints.tscl | dot -Tsvg > graph.svg

Programmatic::

    from tscl import parse
    from typesketch import solve

    result = solve(parse(open("constraints.tscl").read()))
"""

from __future__ import annotations

from typesketch import __version__

from .parser import (
    TsclSyntaxError,
    format_constraint,
    format_constraint_set,
    format_dtv,
    format_tid,
    parse,
    parse_dtv,
    parse_file,
)

__all__: list[str] = [
    "__version__",
    "TsclSyntaxError",
    "format_constraint",
    "format_constraint_set",
    "format_dtv",
    "format_tid",
    "parse",
    "parse_dtv",
    "parse_file",
]
