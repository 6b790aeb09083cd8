"""
Lexer for cascade - Recursive Descent Parser front end

Tokenizes Rust source text into a flat stream of tokens.

Features:
- Single-pass tokenization
- Position tracking (line, column, start/end offsets)
- Rust literal forms (raw strings, byte strings, chars vs lifetimes)
- Nested block comments
"""

from typing import List

from .errors import LexError
from .token_types import TT, Tok

__all__ = ["Lexer", "LexError", "TT", "tokenize"]

# ============================================================================
# Lexer Implementation
# ============================================================================

class Lexer:
    """
    Rust lexer producing position-tagged tokens.

    Whitespace and comments are dropped; the original text between tokens is
    recovered later from the start/end offsets when code is emitted verbatim.
    """

    # Keyword mapping
    KEYWORDS = {
        'if': TT.IF,
        'else': TT.ELSE,
        'match': TT.MATCH,
        'loop': TT.LOOP,
        'while': TT.WHILE,
        'for': TT.FOR,
        'in': TT.IN,
        'let': TT.LET,
        'unsafe': TT.UNSAFE,
    }

    # Operator mapping: longest matches first to handle prefixes correctly
    OPERATORS = [
        # Three-character operators
        ('<<=', TT.SHLEQ),
        ('>>=', TT.SHREQ),
        ('...', TT.DOTDOTDOT),
        ('..=', TT.DOTDOTEQ),

        # Two-character operators
        ('::', TT.PATHSEP),
        ('->', TT.RARROW),
        ('=>', TT.FATARROW),
        ('==', TT.EQ),
        ('!=', TT.NE),
        ('<=', TT.LE),
        ('>=', TT.GE),
        ('&&', TT.ANDAND),
        ('||', TT.OROR),
        ('+=', TT.PLUSEQ),
        ('-=', TT.MINUSEQ),
        ('*=', TT.STAREQ),
        ('/=', TT.SLASHEQ),
        ('%=', TT.PERCENTEQ),
        ('^=', TT.CARETEQ),
        ('&=', TT.ANDEQ),
        ('|=', TT.OREQ),
        ('<<', TT.SHL),
        ('>>', TT.SHR),
        ('..', TT.DOTDOT),

        # Single-character operators
        ('+', TT.PLUS),
        ('-', TT.MINUS),
        ('*', TT.STAR),
        ('/', TT.SLASH),
        ('%', TT.PERCENT),
        ('^', TT.CARET),
        ('!', TT.NOT),
        ('&', TT.AND),
        ('|', TT.OR),
        ('=', TT.ASSIGN),
        ('<', TT.LT),
        ('>', TT.GT),
        ('(', TT.LPAR),
        (')', TT.RPAR),
        ('[', TT.LSQB),
        (']', TT.RSQB),
        ('{', TT.LBRACE),
        ('}', TT.RBRACE),
        ('.', TT.DOT),
        (',', TT.COMMA),
        (';', TT.SEMI),
        (':', TT.COLON),
        ('@', TT.AT),
        ('#', TT.POUND),
        ('$', TT.DOLLAR),
        ('?', TT.QMARK),
        ('~', TT.TILDE),
    ]

    # Prefixes that turn a following quote into a string/char literal
    LITERAL_PREFIXES = ('br', 'cr', 'b', 'c', 'r')

    def __init__(self, source: str):
        self.source = source
        self.pos = 0
        self.line = 1
        self.column = 1
        self.tokens: List[Tok] = []

        # Start of the token being scanned
        self.tok_pos = 0
        self.tok_line = 1
        self.tok_column = 1

    # ========================================================================
    # Main Tokenization
    # ========================================================================

    def tokenize(self) -> List[Tok]:
        """Tokenize entire source, return token list"""
        while self.pos < len(self.source):
            self.scan_token()

        self.mark()
        self.emit(TT.EOF, None)
        return self.tokens

    def scan_token(self):
        """Scan next token"""
        if self.skip_whitespace():
            return

        # Comments
        if self.peek() == '/' and self.peek(1) == '/':
            self.skip_comment()
            return
        if self.peek() == '/' and self.peek(1) == '*':
            self.skip_block_comment()
            return

        self.mark()
        ch = self.peek()

        if ch == '"':
            self.scan_string()
            return

        if ch == "'":
            self.scan_quote()
            return

        if ch.isdigit():
            self.scan_number()
            return

        if ch.isalpha() or ch == '_':
            if self.scan_prefixed_literal():
                return
            self.scan_identifier()
            return

        self.scan_operator()

    # ========================================================================
    # Token Scanners
    # ========================================================================

    def scan_string(self):
        """Scan string literal: "..." (escapes kept as-is)"""
        value = self.advance()  # Opening quote
        value += self.scan_quoted_content('"')

        if self.pos >= len(self.source):
            raise LexError("Unterminated string", self.tok_line, self.tok_column)

        value += self.advance()  # Closing quote
        self.emit(TT.STRING, value)

    def scan_quoted_content(self, quote: str, allow_escapes: bool = True) -> str:
        """Helper to scan content between quotes"""
        content = ''
        while self.pos < len(self.source) and self.peek() != quote:
            if allow_escapes and self.peek() == '\\':
                content += self.advance()
                if self.pos < len(self.source):
                    content += self.advance()
            else:
                content += self.advance()
        return content

    def scan_raw_string(self, prefix: str):
        """Scan raw string body: r"..." or r#"..."# (prefix already consumed)"""
        hashes = ''
        while self.peek() == '#':
            hashes += self.advance()

        if self.peek() != '"':
            raise LexError("Expected '\"' to open raw string", self.line, self.column)

        self.advance()
        terminator = '"' + hashes
        content = ''

        while self.pos < len(self.source):
            if self.source.startswith(terminator, self.pos):
                self.advance(len(terminator))
                self.emit(TT.STRING, f'{prefix}{hashes}"{content}{terminator}')
                return
            content += self.advance()

        raise LexError("Unterminated raw string", self.tok_line, self.tok_column)

    def scan_prefixed_literal(self) -> bool:
        """Scan b"..", br#".."#, c"..", r"..", b'x' or raw identifiers r#name"""
        if self.peek() == 'r' and self.peek(1) == '#' and self.is_ident_start(self.peek(2)):
            # Raw identifier: r#type
            self.advance(2)
            value = 'r#'
            while self.is_ident_char(self.peek()):
                value += self.advance()
            self.emit(TT.IDENT, value)
            return True

        for prefix in self.LITERAL_PREFIXES:
            if not self.source.startswith(prefix, self.pos):
                continue

            nxt = self.peek(len(prefix))

            if prefix.endswith('r') and nxt in ('"', '#'):
                self.advance(len(prefix))
                self.scan_raw_string(prefix)
                return True

            if prefix in ('b', 'c') and nxt == '"':
                self.advance(len(prefix))
                value = prefix + self.advance()
                value += self.scan_quoted_content('"')
                if self.pos >= len(self.source):
                    raise LexError("Unterminated string", self.tok_line, self.tok_column)
                value += self.advance()
                self.emit(TT.STRING, value)
                return True

            if prefix == 'b' and nxt == "'":
                self.advance()
                self.scan_char('b')
                return True

        return False

    def scan_quote(self):
        """Scan a char literal 'x' / '\\n' or a lifetime 'a"""
        if self.peek(1) == '\\' or (self.peek(1) not in ('\0', "'") and self.peek(2) == "'"):
            self.scan_char('')
            return

        if self.is_ident_start(self.peek(1)):
            value = self.advance()
            while self.is_ident_char(self.peek()):
                value += self.advance()
            self.emit(TT.LIFETIME, value)
            return

        raise LexError("Invalid character literal", self.tok_line, self.tok_column)

    def scan_char(self, prefix: str):
        """Scan char literal body starting at the opening quote"""
        value = prefix + self.advance()
        value += self.scan_quoted_content("'")

        if self.pos >= len(self.source):
            raise LexError("Unterminated character literal", self.tok_line, self.tok_column)

        value += self.advance()
        self.emit(TT.CHAR, value)

    def scan_number(self):
        """Scan number literal, including base prefixes and type suffixes"""
        value = ''

        if self.peek() == '0' and self.peek(1) in ('x', 'o', 'b'):
            value += self.advance(2)
            while self.peek().isalnum() or self.peek() == '_':
                value += self.advance()
            self.emit(TT.NUMBER, value)
            return

        # Integer part
        while self.peek().isdigit() or self.peek() == '_':
            value += self.advance()

        # Decimal part; `1..2` and `1.foo()` stay integers
        if self.peek() == '.' and self.peek(1).isdigit():
            value += self.advance()
            while self.peek().isdigit() or self.peek() == '_':
                value += self.advance()
        elif self.peek() == '.' and self.peek(1) != '.' and not self.is_ident_start(self.peek(1)):
            value += self.advance()
            self.emit(TT.NUMBER, value)
            return

        # Scientific notation
        if self.peek() in ('e', 'E') and (
            self.peek(1).isdigit() or (self.peek(1) in ('+', '-') and self.peek(2).isdigit())
        ):
            value += self.advance()
            if self.peek() in ('+', '-'):
                value += self.advance()
            while self.peek().isdigit() or self.peek() == '_':
                value += self.advance()

        # Suffix: u8, i64, f32, usize ...
        while self.is_ident_char(self.peek()):
            value += self.advance()

        self.emit(TT.NUMBER, value)

    def scan_identifier(self):
        """Scan identifier or keyword"""
        value = ''

        while self.is_ident_char(self.peek()):
            value += self.advance()

        token_type = self.KEYWORDS.get(value, TT.IDENT)
        self.emit(token_type, value)

    def scan_operator(self):
        """Scan operators and punctuation"""
        for op_str, op_type in self.OPERATORS:
            if self.source.startswith(op_str, self.pos):
                self.advance(len(op_str))
                self.emit(op_type, op_str)
                return

        ch = self.peek()
        raise LexError(f"Unexpected character '{ch}'", self.line, self.column)

    # ========================================================================
    # Utilities
    # ========================================================================

    @staticmethod
    def is_ident_start(ch: str) -> bool:
        return ch.isalpha() or ch == '_'

    @staticmethod
    def is_ident_char(ch: str) -> bool:
        return ch.isalnum() or ch == '_'

    def peek(self, offset: int = 0) -> str:
        """Look ahead at character"""
        idx = self.pos + offset
        if idx < len(self.source):
            return self.source[idx]
        return '\0'

    def advance(self, n: int = 1) -> str:
        """Consume n characters and return them as a string"""
        if n < 0:
            raise ValueError(f"advance() requires n >= 0, got {n}")
        result = ''
        for _ in range(n):
            ch = self.source[self.pos] if self.pos < len(self.source) else '\0'
            result += ch
            self.pos += 1
            if ch == '\n':
                self.line += 1
                self.column = 1
            else:
                self.column += 1
        return result

    def skip_whitespace(self) -> bool:
        """Skip whitespace including newlines, return True if any skipped"""
        skipped = False
        while self.pos < len(self.source) and self.peek().isspace():
            self.advance()
            skipped = True
        return skipped

    def skip_comment(self):
        """Skip comment until end of line"""
        while self.peek() not in ('\n', '\0'):
            self.advance()

    def skip_block_comment(self):
        """Skip /* ... */, which nests in Rust"""
        start_line, start_column = self.line, self.column
        depth = 0

        while self.pos < len(self.source):
            if self.peek() == '/' and self.peek(1) == '*':
                self.advance(2)
                depth += 1
            elif self.peek() == '*' and self.peek(1) == '/':
                self.advance(2)
                depth -= 1
                if depth == 0:
                    return
            else:
                self.advance()

        raise LexError("Unterminated block comment", start_line, start_column)

    def mark(self):
        """Record where the next token starts"""
        self.tok_pos = self.pos
        self.tok_line = self.line
        self.tok_column = self.column

    def emit(self, token_type: TT, value):
        """Emit a token spanning from the last mark to the current position"""
        tok = Tok(
            type=token_type,
            value=value,
            line=self.tok_line,
            column=self.tok_column,
            start_pos=self.tok_pos,
            end_pos=self.pos,
        )
        self.tokens.append(tok)


def tokenize(source: str) -> List[Tok]:
    """Convenience function to tokenize source"""
    lexer = Lexer(source)
    return lexer.tokenize()
