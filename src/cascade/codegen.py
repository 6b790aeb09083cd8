"""
Code generator: renders a lowered using tree back to Rust text.

Generated lines are laid out one statement per line, indented by block depth
relative to the invocation's own line. Verbatim runs are copied from the
original source between their first and last token, so spacing, comments and
literal contents survive untouched; nested invocations inside them are
rendered in place.
"""

from __future__ import annotations

from typing import Iterable, Iterator, List, Sequence, Union

from lark import Token, Tree
from lark.visitors import Interpreter

from .options import DEFAULT_OPTIONS, ExpandOptions
from .tree import Node, child_by_label, is_token, tree_children, tree_label

# Tail forms that can stand as a value without another pair of braces
_BARE_VALUES = ('chain', 'verbatim', 'tmp_ref', 'target_ref', 'block', 'unsafe_block')

Leaf = Union[Token, Tree]


class Emitter(Interpreter):
    def __init__(self, source: str, options: ExpandOptions = DEFAULT_OPTIONS, base_indent: str = ''):
        super().__init__()
        self.source = source
        self.options = options
        self.base_indent = base_indent
        self.depth = 0

    def pad(self) -> str:
        return self.base_indent + self.options.indent * self.depth

    def lines(self, rendered: Sequence[str]) -> str:
        """Brace a list of already rendered lines one level deeper than the current depth."""
        if not rendered:
            return '{}'

        inner = self.base_indent + self.options.indent * (self.depth + 1)
        body = '\n'.join(inner + line for line in rendered)
        return '{\n' + body + '\n' + self.pad() + '}'

    def braced(self, block: Tree, head: Iterable[str] = ()) -> str:
        items = block.children[1:]

        self.depth += 1
        try:
            rendered = list(head) + [self.visit(item) for item in items]
        finally:
            self.depth -= 1

        return self.lines(rendered)

    def as_value(self, block: Tree) -> str:
        """A block used as a value: bare when it is just one simple expression."""
        items = block.children[1:]

        if len(items) == 1 and tree_label(items[0]) == 'tail':
            inner = items[0].children[0]
            if tree_label(inner) in _BARE_VALUES:
                return self.visit(inner)

        return self.braced(block)

    # ---- invocation ----

    def using(self, tree: Tree) -> str:
        target, init, block = tree.children
        head = [
            '#[allow(unused_mut)]',
            f'let mut {target} = {self.visit(init.children[0])};',
        ]
        return self.braced(block, head)

    # ---- blocks and statements ----

    def block(self, tree: Tree) -> str:
        return self.braced(tree)

    def unsafe_block(self, tree: Tree) -> str:
        return 'unsafe ' + self.visit(tree.children[0])

    def block_stmt(self, tree: Tree) -> str:
        return self.visit(tree.children[0]) + ';'

    def stmt(self, tree: Tree) -> str:
        return self.visit(tree.children[0]) + ';'

    def chain_stmt(self, tree: Tree) -> str:
        return self.visit(tree.children[0]) + ';'

    def assign_stmt(self, tree: Tree) -> str:
        chain, value = tree.children
        return f'{self.visit(chain)} = {self.as_value(value)};'

    def let_stmt(self, tree: Tree) -> str:
        pattern = child_by_label(tree, 'pattern')
        annotation = child_by_label(tree, 'annotation')
        value = child_by_label(tree, 'value')
        else_branch = child_by_label(tree, 'else_branch')

        text = 'let ' + self.visit(pattern.children[0])
        if annotation is not None:
            text += ': ' + self.visit(annotation.children[0])

        if value is not None:
            rendered = self.as_value(value.children[0])
            # an initializer ending in `}` is not allowed before `else`
            if else_branch is not None and rendered.startswith('{'):
                rendered = f'({rendered})'
            text += ' = ' + rendered

        if else_branch is not None:
            text += ' else ' + self.braced(else_branch.children[0])

        return text + ';'

    def tail(self, tree: Tree) -> str:
        return self.visit(tree.children[0])

    def bind_tmp(self, tree: Tree) -> str:
        tmp, construct = tree.children
        return f'let {tmp} = {self.visit(construct)};'

    def tmp_ref(self, tree: Tree) -> str:
        return str(tree.children[0])

    def target_ref(self, tree: Tree) -> str:
        return str(tree.children[0])

    # ---- target expressions ----

    def chain(self, tree: Tree) -> str:
        target, *accessors = tree.children
        return str(target) + ''.join(self.visit(acc) for acc in accessors)

    def field(self, tree: Tree) -> str:
        return '.' + str(tree.children[0])

    def call(self, tree: Tree) -> str:
        name, *rest = tree.children
        return '.' + str(name) + ''.join(self.visit(part.children[0]) for part in rest)

    # ---- control flow ----

    def if_stmt(self, tree: Tree) -> str:
        return self.if_expr(tree)

    def if_expr(self, tree: Tree) -> str:
        parts: List[str] = []

        for idx, branch in enumerate(tree.children):
            if tree_label(branch) == 'else_branch':
                parts.append('else ' + self.braced(branch.children[0]))
                continue

            cond, body = branch.children
            keyword = 'if' if idx == 0 else 'else if'
            parts.append(f'{keyword} {self.visit(cond.children[0])} {self.braced(body)}')

        return ' '.join(parts)

    def match_expr(self, tree: Tree) -> str:
        scrutinee, *arms = tree.children
        head = f'match {self.visit(scrutinee.children[0])} '

        self.depth += 1
        try:
            rendered = [self.arm(arm) for arm in arms]
        finally:
            self.depth -= 1

        return head + self.lines(rendered)

    def arm(self, tree: Tree) -> str:
        pattern, body = tree.children[0], tree.children[-1]
        guard = child_by_label(tree, 'guard')

        text = self.visit(pattern.children[0])
        if guard is not None:
            text += ' if ' + self.visit(guard.children[0])

        return f'{text} => {self.as_value(body)},'

    def loop_body(self, block: Tree) -> str:
        """Body of a while/for loop; a trailing value is discarded as a statement."""
        items = block.children[1:]
        if not items or tree_label(items[-1]) != 'tail':
            return self.braced(block)

        self.depth += 1
        try:
            rendered = [self.visit(item) for item in items[:-1]]
            rendered.append(self.visit(items[-1]) + ';')
        finally:
            self.depth -= 1

        return self.lines(rendered)

    def label(self, tree: Tree) -> str:
        return f'{tree.children[0]}: '

    def loop_expr(self, tree: Tree) -> str:
        *label, body = tree.children
        return ''.join(self.visit(lbl) for lbl in label) + 'loop ' + self.braced(body)

    def while_stmt(self, tree: Tree) -> str:
        *label, cond, body = tree.children
        prefix = ''.join(self.visit(lbl) for lbl in label)
        return f'{prefix}while {self.visit(cond.children[0])} {self.loop_body(body)}'

    def for_stmt(self, tree: Tree) -> str:
        *label, pattern, iterable, body = tree.children
        prefix = ''.join(self.visit(lbl) for lbl in label)
        return (
            f'{prefix}for {self.visit(pattern.children[0])} '
            f'in {self.visit(iterable.children[0])} {self.loop_body(body)}'
        )

    # ---- passthrough ----

    def verbatim(self, tree: Tree) -> str:
        """Copy source text across the run, expanding nested invocations"""
        pieces: List[str] = []
        cursor = None

        for leaf in _leaves(tree.children):
            if is_token(leaf):
                start, end = leaf.start_pos, leaf.end_pos
                text = self.source[start:end]
            else:
                start, end = leaf.meta.start_pos, leaf.meta.end_pos
                text = self.visit(leaf)

            if cursor is not None:
                pieces.append(self.source[cursor:start])
            pieces.append(text)
            cursor = end

        return ''.join(pieces)


def _leaves(nodes: Sequence[Node]) -> Iterator[Leaf]:
    """Tokens and nested invocations of a verbatim run, in source order."""
    for node in nodes:
        if is_token(node) or tree_label(node) == 'using':
            yield node
        else:
            yield from _leaves(tree_children(node))
