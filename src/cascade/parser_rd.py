"""
Recursive Descent Parser for using blocks

Structure:
- Lexer: token stream from source (lexer_rd)
- Token trees: delimiter-balanced groups (tree)
- Parser: recursive descent over one block's token trees, producing an
  explicit AST of lark Trees

Every block is parsed by its own Parser frame owning its target binding, scope
kind and position, so nested blocks and nested invocations never share state.

Surface AST labels:
    using        TARGET, init, block
    block        SCOPE, item*
    item         stmt | chain_stmt | assign_stmt | let_stmt | block_stmt
                 | if_stmt | while_stmt | for_stmt | discard | tail
    chain        TARGET, (field | call)+
    if_expr      branch+, else_branch        (if_stmt has no else_branch)
    match_expr   scrutinee, arm*
    loop_expr    label?, block
    verbatim     token trees passed through unchanged
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from lark import Token, Tree
from lark.tree import Meta

from .errors import ParseError
from .lexer_rd import tokenize
from .options import DEFAULT_OPTIONS, ExpandOptions
from .token_types import TT
from .tree import (
    Node,
    build_token_trees,
    first_token,
    group_close,
    group_inner,
    group_open,
    is_group,
    is_token,
    is_tree,
    tree_children,
    tree_label,
)

__all__ = [
    "ParseError",
    "Parser",
    "collect_invocations",
    "lift_invocations",
    "parse_invocation",
    "parse_source",
]

ROOT = 'root'
NESTED = 'nested'

# Keywords that open a block-like expression (no trailing comma needed in a match arm)
BLOCK_LIKE = (TT.IF, TT.MATCH, TT.LOOP, TT.WHILE, TT.FOR, TT.UNSAFE)

# Nesting change of generic-argument angle brackets per token type
_ANGLE_DELTA: Dict[str, int] = {
    TT.LT.name: 1,
    TT.SHL.name: 2,
    TT.GT.name: -1,
    TT.SHR.name: -2,
}

# Closing angles glued onto an `=` by longest-match lexing
_GLUED_ASSIGN: Dict[str, str] = {
    TT.GE.name: '>',
    TT.SHREQ.name: '>>',
}

# ============================================================================
# Token Navigation
# ============================================================================

class Cursor:
    """Position over one level of token trees; groups count as single nodes."""

    def __init__(self, nodes: Sequence[Node], end: Optional[Token] = None):
        self.nodes = list(nodes)
        self.pos = 0
        self.end = end  # closing delimiter, reported for end-of-block errors

    @property
    def current(self) -> Optional[Node]:
        return self.peek()

    def peek(self, offset: int = 0) -> Optional[Node]:
        """Look ahead at node"""
        idx = self.pos + offset
        if idx < len(self.nodes):
            return self.nodes[idx]
        return None

    def at_end(self) -> bool:
        return self.pos >= len(self.nodes)

    def advance(self) -> Node:
        """Consume current node and move to next"""
        if self.at_end():
            raise ParseError("Unexpected end of input", self.end)
        node = self.nodes[self.pos]
        self.pos += 1
        return node

    def check(self, *types: TT) -> bool:
        """Check if current node is a token of any of the given types"""
        return self.check_at(0, *types)

    def check_at(self, offset: int, *types: TT) -> bool:
        node = self.peek(offset)
        return node is not None and is_token(node) and node.type in {t.name for t in types}

    def check_group(self, label: str, offset: int = 0) -> bool:
        node = self.peek(offset)
        return node is not None and is_group(node, label)

    def match(self, *types: TT) -> bool:
        """Check and consume if current token matches"""
        if self.check(*types):
            self.advance()
            return True
        return False

    def expect(self, token_type: TT, message: Optional[str] = None) -> Token:
        """Consume token of expected type or raise error"""
        if not self.check(token_type):
            msg = message or f"Expected {token_type.name}, got {self.describe()}"
            raise ParseError(msg, self.error_token())
        return self.advance()

    def expect_group(self, label: str, message: str) -> Tree:
        if not self.check_group(label):
            raise ParseError(message, self.error_token())
        return self.advance()

    def error_token(self) -> Optional[Token]:
        if self.at_end():
            return self.end
        return first_token(self.current)

    def describe(self) -> str:
        tok = None if self.at_end() else first_token(self.current)
        return 'end of block' if tok is None else f"'{tok}'"

    def take_until(self, *types: TT) -> List[Node]:
        """Collect nodes up to (not including) a top-level token of the given types."""
        start = self.pos
        while not self.at_end() and not self.check(*types):
            self.pos += 1
        return self.nodes[start:self.pos]

    def take_until_group(self, label: str) -> List[Node]:
        start = self.pos
        while not self.at_end() and not self.check_group(label):
            self.pos += 1
        return self.nodes[start:self.pos]

    def take_condition(self) -> List[Node]:
        """Collect an `if`/`while` condition up to its body.

        `let` conditions can carry struct patterns (`if let Foo { x } = y`), so
        the body is the first brace group after the top-level `=`.
        """
        start = self.pos
        seen_assign = not self.check(TT.LET)

        while not self.at_end():
            if seen_assign and self.check_group('brace'):
                break
            if self.check(TT.ASSIGN):
                seen_assign = True
            self.pos += 1

        return self.nodes[start:self.pos]

    def take_type(self) -> List[Node]:
        """Collect a type annotation up to the top-level `=` or `;`.

        A `>=` or `>>=` that closes the last generic list (`Vec<u8>= ..`) is
        split into its closing angles and the `=` that follows them.
        """
        start = self.pos
        depth = 0

        while not self.at_end():
            node = self.current
            if is_token(node):
                if depth <= 0 and node.type in (TT.ASSIGN.name, TT.SEMI.name):
                    break
                closing = _GLUED_ASSIGN.get(node.type)
                if closing is not None and depth == len(closing):
                    self.split_assign(node, closing)
                    self.pos += 1
                    break
                depth += _ANGLE_DELTA.get(node.type, 0)
            self.pos += 1

        return self.nodes[start:self.pos]

    def split_assign(self, tok: Token, closing: str) -> None:
        """Replace the current glued token by `closing` followed by `=`."""
        width = len(closing)
        close_tok = Token(
            TT.GT.name if width == 1 else TT.SHR.name,
            closing,
            start_pos=tok.start_pos,
            line=tok.line,
            column=tok.column,
            end_line=tok.line,
            end_pos=tok.start_pos + width,
        )
        assign_tok = Token(
            TT.ASSIGN.name,
            '=',
            start_pos=tok.start_pos + width,
            line=tok.line,
            column=tok.column + width,
            end_line=tok.line,
            end_pos=tok.end_pos,
        )
        self.nodes[self.pos:self.pos + 1] = [close_tok, assign_tok]


# ============================================================================
# Parser
# ============================================================================

class Parser(Cursor):
    """
    Recursive descent parser for one using block.

    A block is a sequence of items:
    1. `;` separators (skipped)
    2. target expressions: `.field`, `.method(args)`, `.method::<T>(args)`,
       `.field = value;`
    3. `let` bindings whose value is itself a nested block
    4. nested `{ }` / `unsafe { }` blocks
    5. `if` / `match` / `loop` (value-producing) and `while` / `for`
    6. any other statement, passed through verbatim up to its `;`

    The last item may be a trailing value: a chain, block, control-flow
    expression or bare expression with no `;` after it.
    """

    def __init__(
        self,
        nodes: Sequence[Node],
        target: str,
        scope: str = ROOT,
        options: ExpandOptions = DEFAULT_OPTIONS,
        end: Optional[Token] = None,
    ):
        super().__init__(nodes, end)
        self.target = target
        self.scope = scope
        self.options = options

    # ========================================================================
    # Blocks
    # ========================================================================

    def parse_block(self) -> Tree:
        """Parse every item up to the end of this block"""
        items: List[Tree] = []

        while not self.at_end():
            if self.match(TT.SEMI):
                continue
            items.append(self.parse_item())

        return Tree('block', [Token('SCOPE', self.scope), *items])

    def parse_item(self) -> Tree:
        """Parse a single statement, or the block's trailing value"""
        if self.check(TT.DOT):
            return self.parse_chain_item()

        if self.check_group('brace'):
            return self.parse_brace_item(self.advance())

        if self.check(TT.UNSAFE) and self.check_group('brace', 1):
            self.advance()
            return self.parse_brace_item(self.advance(), unsafe=True)

        if self.check(TT.LET):
            return self.parse_let()

        label: Optional[Token] = None
        if (
            self.check(TT.LIFETIME)
            and self.check_at(1, TT.COLON)
            and self.check_at(2, TT.LOOP, TT.WHILE, TT.FOR)
        ):
            label = self.advance()
            self.advance()

        if self.check(TT.IF):
            node = self.parse_if()
            if node.data == 'if_stmt':
                return node
            return self.maybe_trailing(node)
        if self.check(TT.MATCH):
            return self.maybe_trailing(self.parse_match())
        if self.check(TT.LOOP):
            return self.maybe_trailing(self.parse_loop(label))
        if self.check(TT.WHILE):
            return self.parse_while(label)
        if self.check(TT.FOR):
            return self.parse_for(label)

        return self.parse_opaque_item()

    def parse_brace_item(self, group: Tree, unsafe: bool = False) -> Tree:
        block = self.parse_nested(group)
        node = Tree('unsafe_block', [block]) if unsafe else block

        if self.at_end():
            return Tree('tail', [node])
        return Tree('block_stmt', [node])

    def parse_nested(self, group: Tree) -> Tree:
        """Parse the contents of a brace group as a nested block"""
        return self.parse_nested_nodes(group_inner(group), group_close(group))

    def parse_nested_nodes(self, nodes: Sequence[Node], end: Optional[Token]) -> Tree:
        parser = Parser(nodes, self.target, NESTED, self.options, end=end)
        return parser.parse_block()

    def parse_opaque_item(self) -> Tree:
        """Any other statement, or a bare trailing expression"""
        nodes = self.take_until(TT.SEMI)

        if self.at_end():
            return Tree('tail', [self.verbatim(nodes)])

        self.advance()
        return Tree('stmt', [self.verbatim(nodes)])

    def maybe_trailing(self, node: Tree) -> Tree:
        """
        Decide the fate of a value-producing if/match/loop.

        At the end of the block it is the block's result; otherwise an optional
        `;` is consumed and its value is discarded.
        """
        if self.at_end():
            return Tree('tail', [node])

        self.match(TT.SEMI)
        return Tree('discard', [node])

    def verbatim(self, nodes: Sequence[Node]) -> Tree:
        return Tree('verbatim', lift_invocations(nodes, self.options))

    # ========================================================================
    # Target Expressions
    # ========================================================================

    def parse_chain_item(self) -> Tree:
        chain = self.parse_chain()

        if self.check(TT.ASSIGN):
            return self.parse_chain_assignment(chain)
        if self.at_end():
            return Tree('tail', [chain])
        if self.match(TT.SEMI):
            return Tree('chain_stmt', [chain])

        raise ParseError(
            f"Unexpected {self.describe()} after target expression; "
            "target expressions cannot be part of compound expressions",
            self.error_token(),
        )

    def parse_chain(self) -> Tree:
        """Fold `.a.b(x).c::<T>()` onto the target, left to right"""
        accessors: List[Node] = [Token('TARGET', self.target)]

        while self.check(TT.DOT):
            accessors.append(self.parse_accessor())

        return Tree('chain', accessors)

    def parse_accessor(self) -> Tree:
        self.expect(TT.DOT)
        name = self.expect(TT.IDENT, f"Expected a field or method name after '.', got {self.describe()}")

        generics: Optional[Tree] = None
        if self.check(TT.PATHSEP):
            generics = self.parse_generics()
            if not self.check_group('paren'):
                raise ParseError("Expected an argument list after generic arguments", self.error_token())

        if self.check_group('paren'):
            args = Tree('args', [self.verbatim([self.advance()])])
            children: List[Node] = [name]
            if generics is not None:
                children.append(generics)
            children.append(args)
            return Tree('call', children)

        return Tree('field', [name])

    def parse_generics(self) -> Tree:
        """Parse a turbofish `::<...>`, balancing nested angle brackets"""
        start = self.pos
        self.advance()  # ::

        if not self.check(TT.LT):
            raise ParseError("Expected '<' after '::' in target expression", self.error_token())

        depth = 0
        while True:
            if self.at_end():
                raise ParseError("Unclosed generic argument list", self.end)

            node = self.advance()
            if is_token(node):
                depth += _ANGLE_DELTA.get(node.type, 0)
            if depth <= 0:
                break

        if depth < 0:
            raise ParseError("Unbalanced '>' in generic arguments", node)

        return Tree('generics', [self.verbatim(self.nodes[start:self.pos])])

    def parse_chain_assignment(self, chain: Tree) -> Tree:
        """`.field = value;`, the value parsed like a let right-hand side"""
        assign = self.advance()

        if tree_label(chain.children[-1]) != 'field':
            raise ParseError("Only a field can be assigned through a target expression", assign)

        value = self.take_until(TT.SEMI)
        if not self.check(TT.SEMI):
            raise ParseError("Expected ';' after assignment", self.error_token())
        semi = self.advance()

        if not value:
            raise ParseError("Expected an expression after '='", assign)

        return Tree('assign_stmt', [chain, self.parse_nested_nodes(value, semi)])

    # ========================================================================
    # Let Bindings
    # ========================================================================

    def parse_let(self) -> Tree:
        """
        Parse let binding:
        let pattern [: Type] = value;
        let pattern [: Type] = value else { diverge };
        let pattern [: Type];
        """
        let_tok = self.advance()

        pattern = self.take_until(TT.COLON, TT.ASSIGN, TT.SEMI)
        if not pattern:
            raise ParseError("Expected a pattern after 'let'", self.error_token() or let_tok)
        children: List[Tree] = [Tree('pattern', [self.verbatim(pattern)])]

        if self.check(TT.COLON):
            colon = self.advance()
            annotation = self.take_type()
            if not annotation:
                raise ParseError("Expected a type after ':'", colon)
            children.append(Tree('annotation', [self.verbatim(annotation)]))

        if self.match(TT.SEMI):
            return Tree('let_stmt', children)

        assign = self.expect(TT.ASSIGN, f"Expected '=' or ';' in let binding, got {self.describe()}")

        value = self.take_until(TT.SEMI)
        if not self.check(TT.SEMI):
            raise ParseError("Expected ';' to end the let binding", self.error_token())
        semi = self.advance()

        if not value:
            raise ParseError("Expected an expression after '='", assign)

        else_branch: Optional[Tree] = None
        if (
            len(value) > 2
            and not (is_token(value[0]) and value[0].type in {t.name for t in BLOCK_LIKE})
            and is_token(value[-2])
            and value[-2].type == TT.ELSE.name
            and is_group(value[-1], 'brace')
        ):
            else_branch = Tree('else_branch', [self.parse_nested(value[-1])])
            value = value[:-2]

        children.append(Tree('value', [self.parse_nested_nodes(value, semi)]))
        if else_branch is not None:
            children.append(else_branch)

        return Tree('let_stmt', children)

    # ========================================================================
    # Control Flow
    # ========================================================================

    def parse_if(self) -> Tree:
        """
        Parse if expression:
        if cond { } [else if cond { }]* [else { }]

        Without a final else the form is a statement only.
        """
        branches: List[Tree] = [self.parse_if_branch()]
        else_branch: Optional[Tree] = None

        while self.check(TT.ELSE):
            self.advance()
            if self.check(TT.IF):
                branches.append(self.parse_if_branch())
                continue
            body = self.expect_group('brace', f"Expected '{{' or 'if' after 'else', got {self.describe()}")
            else_branch = Tree('else_branch', [self.parse_nested(body)])
            break

        if else_branch is None:
            return Tree('if_stmt', branches)
        return Tree('if_expr', [*branches, else_branch])

    def parse_if_branch(self) -> Tree:
        if_tok = self.advance()
        cond = self.take_condition()
        if not cond:
            raise ParseError("Expected a condition after 'if'", if_tok)
        body = self.expect_group('brace', "Expected '{' after if condition")
        return Tree('branch', [Tree('cond', [self.verbatim(cond)]), self.parse_nested(body)])

    def parse_match(self) -> Tree:
        """Parse match expression: match scrutinee { pattern [if guard] => body, ... }"""
        match_tok = self.advance()
        scrutinee = self.take_until_group('brace')
        if not scrutinee:
            raise ParseError("Expected an expression after 'match'", match_tok)
        body = self.expect_group('brace', "Expected '{' after match scrutinee")

        arms_parser = Parser(group_inner(body), self.target, NESTED, self.options, end=group_close(body))
        arms = arms_parser.parse_match_arms()
        return Tree('match_expr', [Tree('scrutinee', [self.verbatim(scrutinee)]), *arms])

    def parse_match_arms(self) -> List[Tree]:
        arms: List[Tree] = []
        while not self.at_end():
            arms.append(self.parse_match_arm())
        return arms

    def parse_match_arm(self) -> Tree:
        pattern = self.take_until(TT.IF, TT.FATARROW)
        if not pattern:
            raise ParseError("Expected a pattern in match arm", self.error_token())
        children: List[Tree] = [Tree('pattern', [self.verbatim(pattern)])]

        if self.check(TT.IF):
            if_tok = self.advance()
            guard = self.take_until(TT.FATARROW)
            if not guard:
                raise ParseError("Expected a guard expression after 'if'", if_tok)
            children.append(Tree('guard', [self.verbatim(guard)]))

        arrow = self.expect(TT.FATARROW, f"Expected '=>' in match arm, got {self.describe()}")
        children.append(self.parse_arm_body(arrow))
        return Tree('arm', children)

    def parse_arm_body(self, arrow: Token) -> Tree:
        """
        An arm body is a `{ }` block, a block-like expression, or any other
        expression (including a target expression) ending at `,`.
        """
        if self.check_group('brace'):
            body = self.advance()
            self.match(TT.COMMA)
            return self.parse_nested(body)

        start = self.pos
        if self.check(*BLOCK_LIKE):
            self.skip_block_like()
            nodes = self.nodes[start:self.pos]
        else:
            nodes = self.take_until(TT.COMMA)

        end = self.current if self.check(TT.COMMA) else self.end
        self.match(TT.COMMA)

        if not nodes:
            raise ParseError("Expected an expression after '=>'", arrow)

        return self.parse_nested_nodes(nodes, end)

    def skip_block_like(self) -> None:
        """Move past a block-like expression without parsing it"""
        keyword = self.advance()

        if keyword.type in (TT.IF.name, TT.WHILE.name):
            self.take_condition()
        else:
            self.take_until_group('brace')
        self.expect_group('brace', f"Expected '{{' after '{keyword}'")

        if keyword.type != TT.IF.name:
            return

        while self.match(TT.ELSE):
            if self.check(TT.IF):
                self.advance()
                self.take_condition()
                self.expect_group('brace', "Expected '{' after if condition")
                continue
            self.expect_group('brace', "Expected '{' after 'else'")
            break

    def parse_loop(self, label: Optional[Token]) -> Tree:
        """Parse loop: [label:] loop { }, valued through `break value`"""
        self.advance()
        body = self.expect_group('brace', "Expected '{' after 'loop'")
        return Tree('loop_expr', [*self.labels(label), self.parse_nested(body)])

    def parse_while(self, label: Optional[Token]) -> Tree:
        """Parse while loop: [label:] while [let pattern =] cond { }"""
        while_tok = self.advance()
        cond = self.take_condition()
        if not cond:
            raise ParseError("Expected a condition after 'while'", while_tok)
        body = self.expect_group('brace', "Expected '{' after while condition")
        return Tree('while_stmt', [*self.labels(label), Tree('cond', [self.verbatim(cond)]), self.parse_nested(body)])

    def parse_for(self, label: Optional[Token]) -> Tree:
        """Parse for loop: [label:] for pattern in expr { }"""
        for_tok = self.advance()
        pattern = self.take_until(TT.IN)
        if not pattern:
            raise ParseError("Expected a pattern after 'for'", for_tok)
        self.expect(TT.IN, "Expected 'in' after for pattern")

        iterable = self.take_until_group('brace')
        if not iterable:
            raise ParseError("Expected an iterator expression after 'in'", self.error_token())
        body = self.expect_group('brace', "Expected '{' after for iterator")

        return Tree('for_stmt', [
            *self.labels(label),
            Tree('pattern', [self.verbatim(pattern)]),
            Tree('iter', [self.verbatim(iterable)]),
            self.parse_nested(body),
        ])

    @staticmethod
    def labels(label: Optional[Token]) -> List[Tree]:
        return [Tree('label', [label])] if label is not None else []


# ============================================================================
# Invocations
# ============================================================================

def _is_invocation_at(nodes: Sequence[Node], idx: int, options: ExpandOptions) -> bool:
    if idx + 2 >= len(nodes):
        return False

    name, bang, group = nodes[idx], nodes[idx + 1], nodes[idx + 2]
    return (
        is_token(name)
        and name.type == TT.IDENT.name
        and name == options.macro_name
        and is_token(bang)
        and bang.type == TT.NOT.name
        and is_group(group)
    )


def lift_invocations(nodes: Sequence[Node], options: ExpandOptions = DEFAULT_OPTIONS) -> List[Node]:
    """Replace every `using!(...)` (at any group depth) with its parsed tree."""
    out: List[Node] = []
    idx = 0

    while idx < len(nodes):
        node = nodes[idx]

        if _is_invocation_at(nodes, idx, options):
            start: Token = node

            # Absorb a path prefix: `using::using!(...)`, `::using!(...)`
            while out and is_token(out[-1]) and out[-1].type == TT.PATHSEP.name:
                start = out.pop()
                if out and is_token(out[-1]) and out[-1].type == TT.IDENT.name:
                    start = out.pop()
                    continue
                break

            out.append(parse_invocation(nodes[idx + 2], options, start=start))
            idx += 3
            continue

        if is_group(node):
            inner = lift_invocations(group_inner(node), options)
            node = Tree(node.data, [node.children[0], *inner, node.children[-1]])

        out.append(node)
        idx += 1

    return out


def parse_invocation(group: Tree, options: ExpandOptions = DEFAULT_OPTIONS, start: Optional[Token] = None) -> Tree:
    """
    Parse the delimited body of one invocation:
    (expr => { block })  or  (name @ expr => { block })
    """
    cursor = Cursor(group_inner(group), end=group_close(group))

    binding: Optional[Token] = None
    if cursor.check(TT.IDENT) and cursor.check_at(1, TT.AT):
        binding = cursor.advance()
        cursor.advance()

    init = cursor.take_until(TT.FATARROW)
    if not cursor.check(TT.FATARROW):
        raise ParseError("Expected '=>' after the target expression", cursor.error_token())
    arrow = cursor.advance()
    if not init:
        raise ParseError("Expected an expression before '=>'", arrow)

    body = cursor.expect_group('brace', f"Expected '{{' to open the {options.macro_name} block")
    cursor.match(TT.COMMA)
    if not cursor.at_end():
        raise ParseError(f"Unexpected {cursor.describe()} after the {options.macro_name} block", cursor.error_token())

    target = str(binding) if binding is not None else options.target_name
    block = Parser(group_inner(body), target, ROOT, options, end=group_close(body)).parse_block()

    head = start if start is not None else group_open(group)
    meta = Meta()
    meta.empty = False
    meta.line = head.line
    meta.column = head.column
    meta.start_pos = head.start_pos
    meta.end_pos = group_close(group).end_pos

    return Tree(
        'using',
        [Token('TARGET', target), Tree('init', [Tree('verbatim', lift_invocations(init, options))]), block],
        meta,
    )


def collect_invocations(nodes: Sequence[Node]) -> List[Tree]:
    """Outermost invocation trees, in source order."""
    found: List[Tree] = []

    for node in nodes:
        if tree_label(node) == 'using':
            found.append(node)
        elif is_tree(node):
            found.extend(collect_invocations(tree_children(node)))

    return found


def parse_source(source: str, options: ExpandOptions = DEFAULT_OPTIONS) -> List[Tree]:
    """
    Parse every outermost invocation in a Rust source text.

    Returns the surface trees (before lowering), each carrying its source span
    in `meta.start_pos` / `meta.end_pos`.
    """
    nodes = build_token_trees(tokenize(source))
    return collect_invocations(lift_invocations(nodes, options))
