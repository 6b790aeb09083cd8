"""Method-cascading expander for Rust: rewrites using! blocks into plain statements."""

from .errors import LexError, ParseError
from .expander import expand_invocation, expand_source, parse_source
from .options import DEFAULT_OPTIONS, ExpandOptions

__all__ = [
    "DEFAULT_OPTIONS",
    "ExpandOptions",
    "LexError",
    "ParseError",
    "expand_invocation",
    "expand_source",
    "parse_source",
]
