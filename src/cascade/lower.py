from __future__ import annotations

from typing import List

from lark import Token, Transformer, Tree, v_args

from .options import DEFAULT_OPTIONS, ExpandOptions
from .tree import Node, tree_label


def lower(ast: Node, options: ExpandOptions = DEFAULT_OPTIONS) -> Node:
    """Lowering pass: control-flow temporaries + root default result."""
    return TemporaryLowering(options).transform(ast)


# Control flow that produces a value and may therefore be a block's result
VALUE_FORMS = ('if_expr', 'match_expr', 'loop_expr')


class TemporaryLowering(Transformer):
    """
    Rewrite `discard` / `tail` control flow into temporaries.

        if c { a } else { b } ;  ->  let __using_tmp = if c { a } else { b };
        match x { .. }    (end)  ->  let __using_tmp = match x { .. }; __using_tmp

    One temporary name is shadowed for every construct, so an earlier value is
    never observable after a later construct runs.
    """

    def __init__(self, options: ExpandOptions = DEFAULT_OPTIONS):
        super().__init__(visit_tokens=False)
        self.options = options

    def _tmp(self) -> Token:
        return Token('TMP', self.options.tmp_name)

    def _bind_temporary(self, construct: Tree) -> Tree:
        return Tree('bind_tmp', [self._tmp(), construct])

    def block(self, c: List[Node]) -> Tree:
        scope, *items = c
        out: List[Node] = []

        for item in items:
            label = tree_label(item)

            if label == 'discard':
                out.append(self._bind_temporary(item.children[0]))
                continue

            if label == 'tail' and tree_label(item.children[0]) in VALUE_FORMS:
                out.append(self._bind_temporary(item.children[0]))
                out.append(Tree('tail', [Tree('tmp_ref', [self._tmp()])]))
                continue

            out.append(item)

        return Tree('block', [scope, *out])

    @v_args(meta=True)
    def using(self, meta, c: List[Node]) -> Tree:
        target, init, block = c
        items = block.children

        # Root block without a trailing value yields the target itself
        if tree_label(items[-1]) != 'tail':
            block = Tree('block', [*items, Tree('tail', [Tree('target_ref', [target])])])

        return Tree('using', [target, init, block], meta)
