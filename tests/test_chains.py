from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

import pytest

from tests.support.harness import (
    T,
    ExpandOptions,
    ParseError,
    assert_expands_to,
    expand_invocation,
    expected,
)


@dataclass(frozen=True)
class Case:
    """One invocation and the plain Rust it should expand to."""

    name: str
    source: str
    want: str
    options: Optional[ExpandOptions] = None


CHAIN_CASES: List[Case] = [
    Case(
        "statements-default-to-target",
        "using!(Vec::new() => { .push(1); .push(2); })",
        expected("Vec::new()", f"{T}.push(1); {T}.push(2); {T}"),
    ),
    Case(
        "trailing-chain",
        "using!(Vec::new() => { .push(1); .push(2); .iter().sum::<i32>() })",
        expected("Vec::new()", f"{T}.push(1); {T}.push(2); {T}.iter().sum::<i32>()"),
    ),
    Case(
        "field-access",
        "using!(point => { .x })",
        expected("point", f"{T}.x"),
    ),
    Case(
        "field-then-method",
        "using!(state => { .items.clear(); .count })",
        expected("state", f"{T}.items.clear(); {T}.count"),
    ),
    Case(
        "nested-generics",
        "using!(it => { .collect::<Vec<Vec<u8>>>() })",
        expected("it", f"{T}.collect::<Vec<Vec<u8>>>()"),
    ),
    Case(
        "closure-argument",
        "using!(v => { .retain(|x| *x > 1); .sort_by(|a, b| b.cmp(a)); })",
        expected("v", f"{T}.retain(|x| *x > 1); {T}.sort_by(|a, b| b.cmp(a)); {T}"),
    ),
    Case(
        "empty-block",
        "using!(5 => {})",
        expected("5", T),
    ),
    Case(
        "stray-semicolons",
        "using!(v => { ;; .push(1);; })",
        expected("v", f"{T}.push(1); {T}"),
    ),
    Case(
        "chain-assignment",
        "using!(Point::default() => { .x = 3; .y = .x; })",
        expected("Point::default()", f"{T}.x = 3; {T}.y = {T}.x; {T}"),
    ),
    Case(
        "chain-assignment-deep-field",
        "using!(config => { .server.port = 8080; })",
        expected("config", f"{T}.server.port = 8080; {T}"),
    ),
    Case(
        "opaque-statement-and-tail",
        'using!(Vec::new() => { println!("{}", 1); .push(1); 2 * 3 })',
        expected("Vec::new()", f'println!("{{}}", 1); {T}.push(1); 2 * 3'),
    ),
    Case(
        "named-target",
        "using!(vec @ Vec::new() => { .push(1); vec.len() })",
        expected("Vec::new()", "vec.push(1); vec.len()", target="vec"),
    ),
    Case(
        "custom-target-name",
        "using!(Vec::new() => { .push(1); })",
        expected("Vec::new()", "t.push(1); t", target="t"),
        options=ExpandOptions(target_name="t"),
    ),
    Case(
        "await-as-field",
        "using!(client => { .send(req).await })",
        expected("client", f"{T}.send(req).await"),
    ),
    Case(
        "raw-identifier-method",
        "using!(b => { .r#type(1); })",
        expected("b", f"{T}.r#type(1); {T}"),
    ),
    Case(
        "initializer-with-closure-block",
        "using!(make(|| { 1 }) => { .push(2); })",
        expected("make(|| { 1 })", f"{T}.push(2); {T}"),
    ),
    Case(
        "trailing-comma-in-invocation",
        "using!(v => { .push(1) },)",
        expected("v", f"{T}.push(1)"),
    ),
]


@pytest.mark.parametrize("case", CHAIN_CASES, ids=lambda case: case.name)
def test_chain_expansion(case: Case) -> None:
    assert_expands_to(case.source, case.want, case.options)


def test_target_is_bound_once() -> None:
    out = expand_invocation("using!(next_id() => { .a(); .b(); .c(); })")

    assert out.count("next_id()") == 1
    assert out.count(f"let mut {T}") == 1


def test_output_layout() -> None:
    out = expand_invocation("using!(Vec::new() => { .push(1); .push(2); })")

    assert out == (
        "{\n"
        "    #[allow(unused_mut)]\n"
        f"    let mut {T} = Vec::new();\n"
        f"    {T}.push(1);\n"
        f"    {T}.push(2);\n"
        f"    {T}\n"
        "}"
    )


@pytest.mark.parametrize(
    "source, message",
    [
        pytest.param(
            "using!(v => { .last().unwrap() + 1 })",
            "cannot be part of compound expressions",
            id="compound-expression",
        ),
        pytest.param(
            "using!(v => { .len() == 0; })",
            "Unexpected '==' after target expression",
            id="compound-comparison",
        ),
        pytest.param(
            "using!(v => { .len() = 3; })",
            "Only a field can be assigned",
            id="assign-to-call",
        ),
        pytest.param(
            "using!(v => { .x = 3 })",
            "Expected ';' after assignment",
            id="assign-missing-semicolon",
        ),
        pytest.param(
            "using!(v => { .x = ; })",
            "Expected an expression after '='",
            id="assign-missing-value",
        ),
        pytest.param(
            "using!(v => { .; })",
            "Expected a field or method name after '.'",
            id="missing-name",
        ),
        pytest.param(
            "using!(v => { .0; })",
            "Expected a field or method name after '.'",
            id="tuple-index",
        ),
        pytest.param(
            "using!(v => { .collect::<Vec<u8>(); })",
            "Unclosed generic argument list",
            id="unclosed-generics",
        ),
        pytest.param(
            "using!(v => { .collect::Vec(); })",
            "Expected '<' after '::'",
            id="path-not-generics",
        ),
        pytest.param(
            "using!(v => { .into::<u8>; })",
            "Expected an argument list after generic arguments",
            id="generics-without-call",
        ),
    ],
)
def test_chain_errors(source: str, message: str) -> None:
    with pytest.raises(ParseError) as exc_info:
        expand_invocation(source)

    assert message in str(exc_info.value)


def test_error_reports_position() -> None:
    source = "using!(v => {\n    .push(1);\n    .last().unwrap() + 1\n})"

    with pytest.raises(ParseError) as exc_info:
        expand_invocation(source)

    err = exc_info.value
    assert (err.line, err.column) == (3, 22)
    assert str(err).endswith("at line 3, col 22")
