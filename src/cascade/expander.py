"""Whole-source expansion: find every using! invocation and splice in plain Rust."""

from __future__ import annotations

import logging
from typing import List, Optional

from lark import Tree

from .codegen import Emitter
from .errors import ParseError
from .lower import lower
from .options import DEFAULT_OPTIONS, ExpandOptions
from .parser_rd import parse_source as parse_invocations

logger = logging.getLogger(__name__)


def _line_indent(source: str, pos: int) -> str:
    """Leading whitespace of the line containing pos."""
    line_start = source.rfind('\n', 0, pos) + 1
    end = line_start
    while end < len(source) and source[end] in ' \t':
        end += 1
    return source[line_start:end]


def parse_source(source: str, options: Optional[ExpandOptions] = None) -> List[Tree]:
    """Parse and lower every outermost invocation in source, in order."""
    options = options or DEFAULT_OPTIONS
    return [lower(node, options) for node in parse_invocations(source, options)]


def expand_source(source: str, options: Optional[ExpandOptions] = None) -> str:
    """
    Replace every using! invocation in a Rust source text.

    Text outside the invocations is kept byte-for-byte. Raises LexError or
    ParseError without producing partial output.
    """
    options = options or DEFAULT_OPTIONS
    invocations = parse_source(source, options)

    if not invocations:
        logger.debug("no %s! invocations found", options.macro_name)
        return source

    out: List[str] = []
    cursor = 0

    for node in invocations:
        start, end = node.meta.start_pos, node.meta.end_pos
        logger.debug(
            "expanding %s! at line %s, col %s (target %s)",
            options.macro_name, node.meta.line, node.meta.column, node.children[0],
        )

        emitter = Emitter(source, options, base_indent=_line_indent(source, start))
        out.append(source[cursor:start])
        out.append(emitter.visit(node))
        cursor = end

    out.append(source[cursor:])
    logger.debug("expanded %d invocation(s)", len(invocations))
    return ''.join(out)


def expand_invocation(text: str, options: Optional[ExpandOptions] = None) -> str:
    """Expand a text holding exactly one invocation and nothing else."""
    options = options or DEFAULT_OPTIONS
    invocations = parse_source(text, options)

    if len(invocations) != 1:
        raise ParseError(f"Expected exactly one {options.macro_name}! invocation, found {len(invocations)}")

    node = invocations[0]
    if text[:node.meta.start_pos].strip() or text[node.meta.end_pos:].strip().rstrip(';'):
        raise ParseError(f"Unexpected text around the {options.macro_name}! invocation")

    return Emitter(text, options).visit(node)
