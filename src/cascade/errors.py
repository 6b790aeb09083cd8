"""
Errors raised while expanding `using!` invocations.

Both carry the source position of the offending token so callers can point at
the exact region that failed to match the block grammar.
"""

from typing import Any, Optional


class LexError(Exception):
    """Lexical analysis error"""

    def __init__(self, message: str, line: int = 0, column: int = 0):
        self.message = message
        self.line = line
        self.column = column
        super().__init__(f"{message} at line {line}, col {column}")


class ParseError(Exception):
    """Parse error with position info"""

    def __init__(self, message: str, token: Optional[Any] = None):
        self.message = message
        self.token = token
        self.line = getattr(token, "line", None)
        self.column = getattr(token, "column", None)
        super().__init__(
            f"{message} at line {self.line}, col {self.column}" if token is not None else message
        )
