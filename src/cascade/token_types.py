"""
Token Types for the cascade lexer

Shared between lexer, token-tree builder and parser to avoid circular
dependencies. Only the Rust keywords the block grammar dispatches on get their
own type; every other keyword is an IDENT and travels through verbatim.
"""

from typing import Any
from dataclasses import dataclass
from enum import Enum, auto


class TT(Enum):
    """Token Types"""

    # Literals
    NUMBER = auto()
    STRING = auto()
    CHAR = auto()
    LIFETIME = auto()
    IDENT = auto()

    # Keywords
    IF = auto()
    ELSE = auto()
    MATCH = auto()
    LOOP = auto()
    WHILE = auto()
    FOR = auto()
    IN = auto()
    LET = auto()
    UNSAFE = auto()

    # Arithmetic / bitwise
    PLUS = auto()
    MINUS = auto()
    STAR = auto()
    SLASH = auto()
    PERCENT = auto()
    CARET = auto()
    NOT = auto()  # !
    AND = auto()  # &
    OR = auto()  # |
    SHL = auto()
    SHR = auto()

    # Logical
    ANDAND = auto()
    OROR = auto()

    # Comparison
    EQ = auto()
    NE = auto()
    LT = auto()
    GT = auto()
    LE = auto()
    GE = auto()

    # Assignment
    ASSIGN = auto()  # =
    PLUSEQ = auto()
    MINUSEQ = auto()
    STAREQ = auto()
    SLASHEQ = auto()
    PERCENTEQ = auto()
    CARETEQ = auto()
    ANDEQ = auto()
    OREQ = auto()
    SHLEQ = auto()
    SHREQ = auto()

    # Punctuation
    LPAR = auto()
    RPAR = auto()
    LSQB = auto()
    RSQB = auto()
    LBRACE = auto()
    RBRACE = auto()
    DOT = auto()
    DOTDOT = auto()
    DOTDOTDOT = auto()
    DOTDOTEQ = auto()
    COMMA = auto()
    SEMI = auto()
    COLON = auto()
    PATHSEP = auto()  # ::
    RARROW = auto()  # ->
    FATARROW = auto()  # =>
    AT = auto()
    POUND = auto()
    DOLLAR = auto()
    QMARK = auto()
    TILDE = auto()

    # Special
    EOF = auto()


@dataclass
class Tok:
    """Token with position info"""

    type: TT
    value: Any
    line: int = 0
    column: int = 0
    start_pos: int = 0
    end_pos: int = 0

    def __repr__(self):
        return f"Tok({self.type.name}, {self.value!r}, {self.line}:{self.column})"
