"""
Command line driver tests for Abacus
"""

import pytest

import main


@pytest.fixture
def script(tmp_path):
  def write(text, name="prog.abacus"):
    path = tmp_path / name
    path.write_text(text)
    return str(path)
  return write


class TestCommandLine:
  """Script running, --tokens, --parse and failures"""

  def test_run_script_prints_values(self, script, capsys):
    main.main([script("x = 2 * 5 + 1\nx\nfrom 0 to 2 as i { i / 2 }")])
    assert capsys.readouterr().out == "11\n0\n0.5\n"

  def test_parse_prints_canonical_form(self, script, capsys):
    main.main(["--parse", script("f(x)=x*2\nf( 3 )")])
    assert capsys.readouterr().out == "f(x) = x * 2\nf(3)\n"

  def test_tokens(self, script, capsys):
    main.main(["--tokens", script("x = 1")])
    lines = capsys.readouterr().out.splitlines()
    assert lines == ["1:1\tIDENTIFIER(x)", "1:3\tOPERATOR(=)", "1:5\tNUMBER(1)", "1:6\tEOF"]

  def test_runtime_error_exits_with_status_1(self, script, capsys):
    with pytest.raises(SystemExit) as exc_info:
      main.main([script("1\nsqr(4)")])
    assert exc_info.value.code == 1
    captured = capsys.readouterr()
    assert captured.out == "1\n"
    assert "NameError in ExpressionStatement: undefined function 'sqr'" in captured.err
    assert "did you mean 'sqrt'?" in captured.err

  def test_syntax_error_prints_nothing_else(self, script, capsys):
    with pytest.raises(SystemExit):
      main.main([script("1\nx = (")])
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "SyntaxError" in captured.err

  def test_recursion_error_is_reported(self, script, capsys):
    with pytest.raises(SystemExit) as exc_info:
      main.main([script("f(x) = f(x)\nf(1)")])
    assert exc_info.value.code == 1
    assert "maximum recursion depth" in capsys.readouterr().err

  def test_missing_file(self, tmp_path, capsys):
    with pytest.raises(SystemExit) as exc_info:
      main.main([str(tmp_path / "nope.abacus")])
    assert exc_info.value.code == 1
    assert "not found" in capsys.readouterr().out

  def test_parse_needs_a_script(self, capsys):
    with pytest.raises(SystemExit) as exc_info:
      main.main(["--parse"])
    assert exc_info.value.code == 2


class TestInteractiveHelpers:
  """Pieces of the interactive prompt"""

  def test_open_braces(self):
    assert main.open_braces("for y in [1] {") == 1
    assert main.open_braces("for y in [1] { y }") == 0
    assert main.open_braces("x = 1 # {") == 0

  def test_session(self, monkeypatch, capsys):
    lines = iter(["x = 3", "for y in [1, 2] {", "  x * y", "}", ":env", "undefined_name", "exit"])
    monkeypatch.setattr("builtins.input", lambda prompt="": next(lines))
    monkeypatch.setattr(main, "setup_readline", lambda: None)

    main.run_interactive_mode()

    captured = capsys.readouterr()
    assert "3\n6\n" in captured.out
    assert "  x = 3" in captured.out
    assert "undefined variable 'undefined_name'" in captured.err
