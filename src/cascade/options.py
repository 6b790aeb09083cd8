from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ExpandOptions:
    """Knobs for one expansion run.

    The names default to double-underscore identifiers so the generated
    bindings cannot collide with anything written inside a using block.
    """

    target_name: str = "__using_target"
    tmp_name: str = "__using_tmp"
    macro_name: str = "using"
    indent: str = "    "


DEFAULT_OPTIONS = ExpandOptions()
