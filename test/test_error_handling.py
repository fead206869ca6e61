"""
Diagnostics tests for Abacus
"""

import pytest

from ast_nodes import SourceSpan
from error_handling import (
  AbacusLexError, AbacusSyntaxError, AbacusNameError, AbacusLoopError, AbacusTypeError,
  ErrorHandler, make_diagnostic, format_diagnostic, get_context_lines, generate_suggestions
)
from interpreter import create_interpreter


SOURCE = "x = 1\ny = x + z\nw = 3"


def span_at(line, col, filename="prog.abacus"):
  return SourceSpan(filename, line, col, line, col + 1)


class TestDiagnostics:
  """Structured diagnostics and their text form"""

  def test_context_lines_with_caret(self):
    context = get_context_lines(SOURCE, 2, 9)
    assert context.split("\n") == [
      "   1 | x = 1",
      "   2 | y = x + z",
      "     |         ^",
      "   3 | w = 3",
    ]

  def test_context_for_line_out_of_range(self):
    assert get_context_lines(SOURCE, 10, 1) == ""

  def test_make_diagnostic_defaults(self):
    diagnostic = make_diagnostic("NameError", "undefined variable 'z'")
    assert diagnostic['suggestions'] == []
    assert diagnostic['line'] == 0

  def test_format_without_position(self):
    text = format_diagnostic(make_diagnostic("LoopError", "loop step must be a non-zero number"))
    assert text == "<input>: LoopError: loop step must be a non-zero number\n"

  def test_runtime_error_diagnostic(self):
    error = AbacusNameError("z", span_at(2, 9))
    error.statement = "Assignment"
    handler = ErrorHandler(SOURCE, "prog.abacus")
    diagnostic = handler.diagnose(error, ["x", "y", "zz"])

    assert diagnostic['kind'] == "NameError"
    assert diagnostic['statement'] == "Assignment"
    assert (diagnostic['line'], diagnostic['column']) == (2, 9)
    assert diagnostic['suggestions'] == ["did you mean 'zz'?"]

    text = handler.format(error, ["zz"])
    assert text.startswith("prog.abacus:2:9: NameError in Assignment: undefined variable 'z'\n")
    assert "  hint: did you mean 'zz'?" in text

  def test_end_to_end_runtime_diagnostic(self, parser):
    interpreter = create_interpreter()
    with pytest.raises(AbacusNameError) as exc_info:
      interpreter.run(parser.parse_string(SOURCE, "prog.abacus"))
    text = ErrorHandler(SOURCE, "prog.abacus").format(exc_info.value)
    assert "prog.abacus:2:9: NameError in Assignment" in text
    assert "^" in text


class TestErrorTypes:
  """Exception attributes and messages"""

  def test_kinds(self):
    assert AbacusLexError("$").kind == "LexError"
    assert AbacusSyntaxError("expression", "')'").kind == "SyntaxError"
    assert AbacusNameError("x").kind == "NameError"
    assert AbacusTypeError("bad").kind == "TypeError"
    assert AbacusLoopError("zero").kind == "LoopError"

  def test_syntax_error_message(self):
    error = AbacusSyntaxError("'}'", "end of input", span_at(3, 1))
    assert error.message == "expected '}', found end of input"
    assert str(error) == "SyntaxError at prog.abacus:3:1-2: expected '}', found end of input"

  def test_runtime_error_str_names_statement(self):
    error = AbacusTypeError("cannot destructure a Num value", span_at(1, 10))
    error.statement = "Destructuring"
    assert str(error) == "TypeError in Destructuring at prog.abacus:1:10-11: cannot destructure a Num value"


class TestSuggestions:
  """Hints for common mistakes"""

  def test_string_literal_hint(self):
    assert "string literals" in generate_suggestions(AbacusLexError('"'))[0]

  def test_missing_brace_hint(self):
    assert generate_suggestions(AbacusSyntaxError("'}'", "end of input")) == [
      "a loop body is missing its closing '}'"
    ]

  def test_no_close_match(self):
    assert generate_suggestions(AbacusNameError("zebra"), ["x", "y"]) == []

  def test_builtin_misspelling(self):
    suggestions = generate_suggestions(AbacusNameError("sqr"), ["sqrt", "sin"])
    assert suggestions == ["did you mean 'sqrt'?"]

  def test_loop_error_hint(self):
    assert generate_suggestions(AbacusLoopError("zero step"))
