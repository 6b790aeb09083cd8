from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .errors import LexError, ParseError
from .expander import expand_source, parse_source
from .options import DEFAULT_OPTIONS, ExpandOptions


def _load_source(arg: Optional[str]) -> str:
    """
    Resolve CLI input into source text.
    - None or "-" => read stdin.
    - Existing path => read file contents.
    - Otherwise treat the argument as literal source.
    """

    if arg is None or arg == "-":
        data = sys.stdin.read()
        if not data:
            raise SystemExit("No input provided on stdin")
        return data

    candidate = Path(arg)
    if candidate.exists():
        return candidate.read_text(encoding="utf-8")

    return arg


def _options(args: argparse.Namespace) -> ExpandOptions:
    return ExpandOptions(
        target_name=args.target_name,
        tmp_name=args.tmp_name,
        macro_name=args.macro,
        indent=" " * args.indent,
    )


def main(argv: Optional[List[str]] = None) -> None:
    ap = argparse.ArgumentParser(prog="cascade", description="Expand using! method-cascading blocks in Rust source")
    ap.add_argument("source", nargs="?", help="Path to a Rust source file, '-' or literal source (defaults to stdin)")
    ap.add_argument("-o", "--output", help="Write the expansion to this file instead of stdout")
    ap.add_argument("--target-name", default=DEFAULT_OPTIONS.target_name, help="Name of the generated target binding")
    ap.add_argument("--tmp-name", default=DEFAULT_OPTIONS.tmp_name, help="Name of the control-flow temporary")
    ap.add_argument("--macro", default=DEFAULT_OPTIONS.macro_name, help="Macro name to expand")
    ap.add_argument("--indent", type=int, default=len(DEFAULT_OPTIONS.indent), help="Spaces per generated block level")
    ap.add_argument("--tree", action="store_true", help="Print the lowered tree of each invocation")
    ap.add_argument("--check", action="store_true", help="Exit with status 1 if the input contains invocations")
    ap.add_argument("-v", "--verbose", action="store_true", help="Log expansion steps")

    args = ap.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    options = _options(args)
    code = _load_source(args.source)

    try:
        if args.tree or args.check:
            invocations = parse_source(code, options)
        else:
            expanded = expand_source(code, options)
    except (LexError, ParseError) as err:
        sys.stderr.write(f"error: {err}\n")
        sys.exit(1)

    if args.check:
        if invocations:
            sys.stderr.write(f"{len(invocations)} {options.macro_name}! invocation(s) to expand\n")
            sys.exit(1)
        return

    if args.tree:
        print("\n".join(node.pretty() for node in invocations), end="")
        return

    if args.output:
        Path(args.output).write_text(expanded, encoding="utf-8")
    else:
        sys.stdout.write(expanded)


if __name__ == "__main__":
    main()
