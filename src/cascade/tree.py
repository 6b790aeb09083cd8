"""Token trees and shared helpers for working with lark Tree/Token nodes.

The parser never sees raw characters or a flat token list: the lexer output is
grouped into `paren`, `bracket` and `brace` trees whose first and last
children are the delimiter tokens, and every other token is an atom. The same
node types (lark `Tree` and `Token`) are reused for the AST built on top.
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Tuple, TypeGuard

from lark import Token, Tree
from typing_extensions import TypeAlias

from .errors import ParseError
from .token_types import TT, Tok

Node: TypeAlias = Tree | Token

GROUP_LABELS = ('paren', 'bracket', 'brace')

# opener -> (group label, closer)
_OPENERS: Dict[TT, Tuple[str, TT]] = {
    TT.LPAR: ('paren', TT.RPAR),
    TT.LSQB: ('bracket', TT.RSQB),
    TT.LBRACE: ('brace', TT.RBRACE),
}
_CLOSERS = {TT.RPAR, TT.RSQB, TT.RBRACE}


def to_token(tok: Tok) -> Token:
    """Convert a lexer token into a positioned lark Token."""
    end_line = tok.line + tok.value.count('\n') if isinstance(tok.value, str) else tok.line
    return Token(
        tok.type.name,
        tok.value if tok.value is not None else '',
        start_pos=tok.start_pos,
        line=tok.line,
        column=tok.column,
        end_line=end_line,
        end_pos=tok.end_pos,
    )


def build_token_trees(toks: Iterable[Tok]) -> List[Node]:
    """Group a flat token stream into delimiter-balanced token trees."""
    stack: List[Tuple[Tok, List[Node]]] = []
    current: List[Node] = []

    for tok in toks:
        if tok.type == TT.EOF:
            break

        if tok.type in _OPENERS:
            stack.append((tok, current))
            current = [to_token(tok)]
            continue

        if tok.type in _CLOSERS:
            if not stack:
                raise ParseError(f"Unexpected closing delimiter '{tok.value}'", tok)

            opener, parent = stack.pop()
            label, closer = _OPENERS[opener.type]

            if tok.type != closer:
                raise ParseError(
                    f"Mismatched closing delimiter '{tok.value}' for '{opener.value}' "
                    f"opened at line {opener.line}, col {opener.column}",
                    tok,
                )

            current.append(to_token(tok))
            parent.append(Tree(label, current))
            current = parent
            continue

        current.append(to_token(tok))

    if stack:
        opener, _ = stack[-1]
        raise ParseError(f"Unclosed delimiter '{opener.value}'", opener)

    return current


def is_tree(node: Node) -> TypeGuard[Tree]:
    return isinstance(node, Tree)

def is_token(node: Node) -> TypeGuard[Token]:
    return isinstance(node, Token)

def is_group(node: Node, label: Optional[str] = None) -> TypeGuard[Tree]:
    if not is_tree(node) or node.data not in GROUP_LABELS:
        return False
    return label is None or node.data == label

def tree_label(node: Node) -> Optional[str]:
    return node.data if is_tree(node) else None

def tree_children(node: Node) -> List[Node]:
    if not is_tree(node):
        return []

    children = getattr(node, "children", None)
    if children is None:
        return []

    return list(children)

def group_inner(group: Tree) -> List[Node]:
    """Children of a delimiter group without its open/close tokens."""
    return list(group.children[1:-1])

def group_open(group: Tree) -> Token:
    return group.children[0]

def group_close(group: Tree) -> Token:
    return group.children[-1]

def child_by_label(node: Node, label: str) -> Optional[Node]:
    for ch in tree_children(node):
        if tree_label(ch) == label:
            return ch

    return None

def first_token(node: Node) -> Optional[Token]:
    """Leftmost positioned token under node, used for error locations."""
    if is_token(node):
        return node

    for child in tree_children(node):
        found = first_token(child)
        if found is not None:
            return found

    return None
