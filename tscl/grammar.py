"""
tscl/grammar.py
===============

Parsimonious PEG grammar for TSCL, the type sketch constraint language.

A TSCL document holds one statement per line; ``#`` starts a comment that
runs to the end of the line.  Two statement forms exist::

    x.load.σ32@4 <= y                # subtyping:  lhs ⊑ rhs
    target 7: f.out_0 ⊑ s.σ32@0      # additional: bound to target 7

A DTV is a base name followed by ``.label`` segments.  A base that is not
an identifier goes in double quotes: ``"instr_001011d8_2@RSP:8".load``.
Labels are ``load``, ``store``, ``in_N``, ``out_N`` and ``σBITS@OFFSET``
(written ``fBITS@OFFSET`` in ASCII).  Field sizes and offsets are syntactically
signed so that geometry errors surface as ingestion diagnostics rather
than syntax errors.

The grammar is a plain string so that tests can compile it at the grammar
level; :mod:`tscl.parser` compiles it once at import time.
"""

TSCL_GRAMMAR = r'''
    # ─────────────────────────────────────────────────────────────
    # Document structure
    # ─────────────────────────────────────────────────────────────

    document        = line (newline line)* end
    line            = statement_line / blank_line
    statement_line  = ws statement ws comment? eol
    blank_line      = ws comment? eol

    # ─────────────────────────────────────────────────────────────
    # Statements
    # ─────────────────────────────────────────────────────────────

    statement       = additional / subtyping
    additional      = "target" ws1 tid ws ":" ws subtyping
    subtyping       = dtv ws subtype_op ws dtv
    subtype_op      = "<=" / "⊑"

    tid             = integer / quoted / identifier

    # ─────────────────────────────────────────────────────────────
    # Derived type variables and labels
    # ─────────────────────────────────────────────────────────────

    dtv             = base label_suffix*
    base            = identifier / quoted_name
    label_suffix    = "." label
    label           = field_label / in_label / out_label / pointer_label

    pointer_label   = ~"(load|store)(?![A-Za-z0-9_$@])"
    in_label        = ~"in_([0-9]+)(?![A-Za-z0-9_$@])"
    out_label       = ~"out_([0-9]+)(?![A-Za-z0-9_$@])"
    field_label     = ~"[σf](-?[0-9]+)@(-?[0-9]+)(?![A-Za-z0-9_$@])"

    # ─────────────────────────────────────────────────────────────
    # Lexical
    # ─────────────────────────────────────────────────────────────

    identifier      = ~"[A-Za-z_$][A-Za-z0-9_$@]*"
    integer         = ~"-?[0-9]+(?![A-Za-z0-9_$@])"
    quoted          = ~'"[^"\r\n]*"'
    quoted_name     = ~'"[^"\r\n]+"'

    comment         = ~"#[^\r\n]*"
    ws              = ~"[ \t]*"
    ws1             = ~"[ \t]+"
    newline         = ~"\r?\n"
    eol             = ~"(?![^\r\n])"
    end             = !~"."s
'''
