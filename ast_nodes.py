"""
Abacus Abstract Syntax Tree
Frozen dataclasses shared by the parser and the interpreter, plus the
canonical pretty-printer used by --parse and round-trip checks
"""

from typing import Optional, Tuple, Union
from dataclasses import dataclass, field
import math

import numpy as np


@dataclass(frozen=True)
class SourceSpan:
    """Source location information for tokens, nodes and diagnostics"""
    filename: str
    start_line: int
    start_col: int
    end_line: int
    end_col: int
    text: str = ""

    def __str__(self) -> str:
        if self.start_line == self.end_line:
            return f"{self.filename}:{self.start_line}:{self.start_col}-{self.end_col}"
        return f"{self.filename}:{self.start_line}:{self.start_col}-{self.end_line}:{self.end_col}"


def _span_field():
    # Spans never take part in structural equality
    return field(default=None, compare=False, repr=False)


# ============================================================================
# EXPRESSIONS
# ============================================================================

@dataclass(frozen=True)
class Literal:
    value: float
    span: Optional[SourceSpan] = _span_field()


@dataclass(frozen=True)
class Variable:
    name: str
    span: Optional[SourceSpan] = _span_field()


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: 'Expression'
    right: 'Expression'
    span: Optional[SourceSpan] = _span_field()


@dataclass(frozen=True)
class Call:
    name: str
    args: Tuple['Expression', ...]
    span: Optional[SourceSpan] = _span_field()


@dataclass(frozen=True)
class ListLiteral:
    elements: Tuple['Expression', ...]
    span: Optional[SourceSpan] = _span_field()


Expression = Union[Literal, Variable, BinaryOp, Call, ListLiteral]


# ============================================================================
# STATEMENTS
# ============================================================================

@dataclass(frozen=True)
class Assignment:
    name: str
    value: Expression
    span: Optional[SourceSpan] = _span_field()


@dataclass(frozen=True)
class FunctionDef:
    name: str
    params: Tuple[str, ...]
    body: Expression
    span: Optional[SourceSpan] = _span_field()


@dataclass(frozen=True)
class ExpressionStatement:
    expression: Expression
    span: Optional[SourceSpan] = _span_field()


@dataclass(frozen=True)
class FromToAsLoop:
    """from START to STOP as VAR [with step STEP] { BODY }"""
    start: Expression
    stop: Expression
    step: Optional[Expression]
    var: str
    body: Tuple['Statement', ...]
    span: Optional[SourceSpan] = _span_field()


@dataclass(frozen=True)
class ForInLoop:
    var: str
    source: Expression
    body: Tuple['Statement', ...]
    span: Optional[SourceSpan] = _span_field()


@dataclass(frozen=True)
class Destructuring:
    """[a, b, ...] = VALUE"""
    names: Tuple[str, ...]
    value: Expression
    span: Optional[SourceSpan] = _span_field()


Statement = Union[Assignment, FunctionDef, ExpressionStatement, FromToAsLoop, ForInLoop, Destructuring]


@dataclass(frozen=True)
class Program:
    statements: Tuple[Statement, ...]
    filename: str = field(default="<input>", compare=False)

    def __len__(self) -> int:
        return len(self.statements)


# ============================================================================
# PRETTY PRINTING
# ============================================================================

PRECEDENCE = {'+': 1, '-': 1, '*': 2, '/': 2, '^': 4}
RIGHT_ASSOCIATIVE = {'^'}
INDENT = "    "


def format_number(value: float) -> str:
    """Positional decimal form: 11, 0.5, -0, inf, NaN"""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    return np.format_float_positional(value, trim='-')


def _needs_parens(operand: Expression, op: str, is_right: bool) -> bool:
    if isinstance(operand, Literal):
        # -2 ^ x reads back as -(2 ^ x)
        return op == '^' and not is_right and math.copysign(1.0, operand.value) < 0
    if not isinstance(operand, BinaryOp):
        return False

    outer = PRECEDENCE[op]
    inner = PRECEDENCE[operand.op]
    if inner != outer:
        return inner < outer
    if op in RIGHT_ASSOCIATIVE:
        return not is_right
    return is_right


def format_expression(expr: Expression) -> str:
    """Render an expression with the minimum parentheses needed to parse back"""
    if isinstance(expr, Literal):
        return format_number(expr.value)
    if isinstance(expr, Variable):
        return expr.name
    if isinstance(expr, Call):
        return f"{expr.name}({', '.join(format_expression(arg) for arg in expr.args)})"
    if isinstance(expr, ListLiteral):
        return f"[{', '.join(format_expression(e) for e in expr.elements)}]"
    if isinstance(expr, BinaryOp):
        left = format_expression(expr.left)
        right = format_expression(expr.right)
        if _needs_parens(expr.left, expr.op, is_right=False):
            left = f"({left})"
        if _needs_parens(expr.right, expr.op, is_right=True):
            right = f"({right})"
        return f"{left} {expr.op} {right}"
    raise TypeError(f"Not an expression node: {expr!r}")


def _format_block(body: Tuple[Statement, ...], indent: int) -> str:
    if not body:
        return "{\n" + INDENT * indent + "}"
    lines = [format_statement(stmt, indent + 1) for stmt in body]
    return "{\n" + "\n".join(lines) + "\n" + INDENT * indent + "}"


def format_statement(stmt: Statement, indent: int = 0) -> str:
    """Render one statement in canonical source form"""
    prefix = INDENT * indent

    if isinstance(stmt, Assignment):
        return f"{prefix}{stmt.name} = {format_expression(stmt.value)}"
    if isinstance(stmt, FunctionDef):
        return f"{prefix}{stmt.name}({', '.join(stmt.params)}) = {format_expression(stmt.body)}"
    if isinstance(stmt, ExpressionStatement):
        return prefix + format_expression(stmt.expression)
    if isinstance(stmt, Destructuring):
        return f"{prefix}[{', '.join(stmt.names)}] = {format_expression(stmt.value)}"
    if isinstance(stmt, FromToAsLoop):
        header = (f"{prefix}from {format_expression(stmt.start)} "
                  f"to {format_expression(stmt.stop)} as {stmt.var}")
        if stmt.step is not None:
            header += f" with step {format_expression(stmt.step)}"
        return f"{header} {_format_block(stmt.body, indent)}"
    if isinstance(stmt, ForInLoop):
        header = f"{prefix}for {stmt.var} in {format_expression(stmt.source)}"
        return f"{header} {_format_block(stmt.body, indent)}"
    raise TypeError(f"Not a statement node: {stmt!r}")


def format_program(program: Program) -> str:
    """Canonical source text for a whole program"""
    return "".join(format_statement(stmt) + "\n" for stmt in program.statements)
