"""
Error taxonomy and diagnostics for Abacus
Exceptions carry kind, message and source span; diagnostics are plain
dictionaries rendered with source context and suggestions
"""

from typing import Iterable, List, Optional, Dict
import difflib

from ast_nodes import SourceSpan


# ============================================================================
# EXCEPTIONS
# ============================================================================

class AbacusError(Exception):
    """Base class for every error raised by the lexer, parser and interpreter"""
    kind = "Error"

    def __init__(self, message: str, span: Optional[SourceSpan] = None):
        self.message = message
        self.span = span
        super().__init__(message)

    def __str__(self) -> str:
        if self.span:
            return f"{self.kind} at {self.span}: {self.message}"
        return f"{self.kind}: {self.message}"


class AbacusLexError(AbacusError):
    """Unrecognized character in the source text"""
    kind = "LexError"

    def __init__(self, char: str, span: Optional[SourceSpan] = None):
        self.char = char
        super().__init__(f"unrecognized character {char!r}", span)


class AbacusSyntaxError(AbacusError):
    """Token sequence does not match the grammar"""
    kind = "SyntaxError"

    def __init__(self, expected: str, got: str, span: Optional[SourceSpan] = None):
        self.expected = expected
        self.got = got
        super().__init__(f"expected {expected}, found {got}", span)


class AbacusRuntimeError(AbacusError):
    """Evaluation failure

    `name` is the variable, function or operator involved and `statement` the
    kind of statement that was executing when the error was raised.
    """
    kind = "RuntimeError"

    def __init__(self, message: str, span: Optional[SourceSpan] = None, name: Optional[str] = None):
        self.name = name
        self.statement: Optional[str] = None
        super().__init__(message, span)

    def __str__(self) -> str:
        where = f" in {self.statement}" if self.statement else ""
        if self.span:
            where += f" at {self.span}"
        return f"{self.kind}{where}: {self.message}"


class AbacusNameError(AbacusRuntimeError):
    kind = "NameError"

    def __init__(self, name: str, span: Optional[SourceSpan] = None, what: str = "variable"):
        super().__init__(f"undefined {what} '{name}'", span, name)


class AbacusArityError(AbacusRuntimeError):
    kind = "ArityError"

    def __init__(self, name: str, expected: int, got: int, span: Optional[SourceSpan] = None):
        self.expected = expected
        self.got = got
        plural = "" if expected == 1 else "s"
        super().__init__(f"{name} expects {expected} argument{plural}, got {got}", span, name)


class AbacusTypeError(AbacusRuntimeError):
    kind = "TypeError"


class AbacusLoopError(AbacusRuntimeError):
    kind = "LoopError"


# ============================================================================
# DATA STRUCTURES (Immutable Dictionaries)
# ============================================================================

def make_diagnostic(
    kind: str,
    message: str,
    filename: str = "<input>",
    line: int = 0,
    column: int = 0,
    statement: Optional[str] = None,
    context: Optional[str] = None,
    suggestions: Optional[List[str]] = None
) -> Dict:
    """Create an immutable diagnostic structure"""
    return {
        'kind': kind,
        'message': message,
        'filename': filename,
        'line': line,
        'column': column,
        'statement': statement,
        'context': context,
        'suggestions': suggestions or []
    }


def format_diagnostic(diagnostic: Dict) -> str:
    """Format a diagnostic as text"""
    if diagnostic['line']:
        location = f"{diagnostic['filename']}:{diagnostic['line']}:{diagnostic['column']}"
    else:
        location = diagnostic['filename']

    header = f"{location}: {diagnostic['kind']}"
    if diagnostic['statement']:
        header += f" in {diagnostic['statement']}"
    result = f"{header}: {diagnostic['message']}\n"

    if diagnostic['context']:
        result += diagnostic['context'] + "\n"

    for suggestion in diagnostic['suggestions']:
        result += f"  hint: {suggestion}\n"

    return result


# ============================================================================
# PURE FUNCTIONS
# ============================================================================

def get_context_lines(source_text: str, line_num: int, col_num: int, context_lines: int = 1) -> str:
    """Source lines around the error with a caret under the offending column"""
    lines = source_text.split('\n')
    if not 0 < line_num <= len(lines):
        return ""

    start_line = max(0, line_num - context_lines - 1)
    end_line = min(len(lines), line_num + context_lines)

    context_parts = []
    for i in range(start_line, end_line):
        context_parts.append(f"{i + 1:4d} | {lines[i]}")
        if i == line_num - 1:
            context_parts.append(f"{'':4} | {' ' * max(col_num - 1, 0)}^")

    return '\n'.join(context_parts)


def generate_suggestions(error: AbacusError, names: Iterable[str] = ()) -> List[str]:
    """Hints for the most common mistakes"""
    suggestions = []

    if isinstance(error, AbacusLexError):
        if error.char in "\"'":
            suggestions.append("Abacus has no string literals; values are numbers and lists")
        elif error.char in "%<>!&|":
            suggestions.append("supported operators are + - * / ^")

    elif isinstance(error, AbacusSyntaxError):
        if error.expected == "'}'":
            suggestions.append("a loop body is missing its closing '}'")
        elif error.expected == "keyword 'step'":
            suggestions.append("write the step as 'with step <expr>'")
        elif error.expected == "end of statement" and error.got == "'='":
            suggestions.append("only a name, name(params) or [names] may appear left of '='")
        elif error.expected == "end of statement":
            suggestions.append("put each statement on its own line or separate them with ';'")

    elif isinstance(error, AbacusNameError):
        matches = difflib.get_close_matches(error.name, list(names), n=3)
        if matches:
            suggestions.append("did you mean " + ", ".join(f"'{m}'" for m in matches) + "?")

    elif isinstance(error, AbacusLoopError):
        suggestions.append("use a non-zero step, e.g. 'with step 1' or 'with step -1'")

    return suggestions


def error_to_diagnostic(error: AbacusError, source_text: str = "", filename: str = "<input>",
                        names: Iterable[str] = ()) -> Dict:
    """Convert an Abacus exception to a diagnostic dict"""
    span = error.span
    line = span.start_line if span else 0
    column = span.start_col if span else 0
    context = get_context_lines(source_text, line, column) if span and source_text else None

    return make_diagnostic(
        kind=error.kind,
        message=error.message,
        filename=span.filename if span else filename,
        line=line,
        column=column,
        statement=getattr(error, 'statement', None),
        context=context,
        suggestions=generate_suggestions(error, names)
    )


class ErrorHandler:
    """Renders errors against one source text"""

    def __init__(self, source_text: str, filename: str = "<input>"):
        self.source_text = source_text
        self.filename = filename

    def diagnose(self, error: AbacusError, names: Iterable[str] = ()) -> Dict:
        return error_to_diagnostic(error, self.source_text, self.filename, names)

    def format(self, error: AbacusError, names: Iterable[str] = ()) -> str:
        return format_diagnostic(self.diagnose(error, names))
