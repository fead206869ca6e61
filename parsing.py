"""
Abacus Language Parser
Token stream built from pyparsing elements, recursive descent into the AST
"""

from typing import Any, Iterator, List, Optional, Tuple
from collections import deque
from dataclasses import dataclass

from pyparsing import Literal as PyParsingLiteral, MatchFirst, Regex, Word, alphanums, alphas, col, lineno, one_of

from ast_nodes import (
    SourceSpan, Literal, Variable, BinaryOp, Call, ListLiteral,
    Assignment, FunctionDef, ExpressionStatement, FromToAsLoop, ForInLoop, Destructuring,
    Program, Expression, Statement, format_number
)
from error_handling import AbacusLexError, AbacusSyntaxError


KEYWORDS = ("from", "to", "as", "with", "step", "for", "in")
OPERATORS = "+ - * / ^ ="
DELIMITERS = "( ) [ ] { } , ;"
# Newlines are significant, every other blank is a separator
BLANKS = " \t\r\f\v"


@dataclass(frozen=True)
class Token:
    """Abacus token with source information"""
    kind: str
    value: Any
    span: SourceSpan

    def __str__(self) -> str:
        if self.kind in ("NEWLINE", "EOF"):
            return self.kind
        if self.kind == "NUMBER":
            return f"NUMBER({format_number(self.value)})"
        return f"{self.kind}({self.value})"

    def describe(self) -> str:
        """Human readable form used in syntax errors"""
        if self.kind == "NUMBER":
            return f"number {format_number(self.value)}"
        if self.kind == "IDENTIFIER":
            return f"identifier '{self.value}'"
        if self.kind == "KEYWORD":
            return f"keyword '{self.value}'"
        if self.kind == "NEWLINE":
            return "end of line"
        if self.kind == "EOF":
            return "end of input"
        return f"'{self.value}'"


def describe_expected(kind: str, value: Optional[str] = None) -> str:
    if value is None:
        return kind.lower()
    if kind == "KEYWORD":
        return f"keyword '{value}'"
    return f"'{value}'"


class Tokenizer:
    """Abacus tokenizer: one pyparsing alternative per token kind"""

    def __init__(self, filename: str = "<input>", debug: bool = False):
        self.filename = filename
        self.debug = debug
        self._setup_token_patterns()

    def _setup_token_patterns(self):
        """Setup all token patterns for Abacus"""

        comment = Regex(r"#[^\n]*").set_parse_action(lambda t: ("COMMENT", t[0]))
        newline = PyParsingLiteral("\n").set_parse_action(lambda t: ("NEWLINE", "\n"))

        # Digits with optional fraction: 3, 3., 3.25, .5
        number = Regex(r"\d+(?:\.\d*)?|\.\d+").set_parse_action(lambda t: ("NUMBER", float(t[0])))

        # Keywords only match whole words, so `fromage` stays an identifier
        keyword = one_of(KEYWORDS, as_keyword=True).set_parse_action(lambda t: ("KEYWORD", t[0]))
        identifier = Word(alphas + "_", alphanums + "_").set_parse_action(lambda t: ("IDENTIFIER", t[0]))

        operator = one_of(OPERATORS).set_parse_action(lambda t: ("OPERATOR", t[0]))
        delimiter = one_of(DELIMITERS).set_parse_action(lambda t: ("DELIMITER", t[0]))

        alternatives = [comment, newline, number, keyword, identifier, operator, delimiter]
        for element in alternatives:
            element.set_whitespace_chars(BLANKS)

        self.token = MatchFirst(alternatives)
        self.token.set_whitespace_chars(BLANKS)
        # Keep tabs so reported columns match the source text
        self.token.parse_with_tabs()

    def _span(self, text: str, start: int, end: int) -> SourceSpan:
        line = lineno(start, text)
        column = col(start, text)
        return SourceSpan(self.filename, line, column, line, column + (end - start), text[start:end])

    def _check_gap(self, text: str, start: int, end: int):
        """Anything other than blanks between two matches is an unknown character"""
        for position in range(start, end):
            if text[position] not in BLANKS:
                raise AbacusLexError(text[position], self._span(text, position, position + 1))

    def tokenize(self, text: str) -> Iterator[Token]:
        """Lazily produce tokens, ending with a single EOF token"""
        depth = 0
        position = 0

        for tokens, start, end in self.token.scan_string(text):
            self._check_gap(text, position, start)
            position = end

            kind, value = tokens[0]
            if kind == "COMMENT":
                continue
            if kind == "NEWLINE" and depth > 0:
                # Newlines inside () and [] do not end a statement
                continue
            if kind == "DELIMITER":
                if value in "([":
                    depth += 1
                elif value in ")]":
                    depth = max(depth - 1, 0)

            token = Token(kind, value, self._span(text, start, end))
            if self.debug:
                print(f"[debug] token {token} at {token.span}")
            yield token

        self._check_gap(text, position, len(text))
        yield Token("EOF", None, self._span(text, len(text), len(text)))


class Parser:
    """Recursive descent parser over a token stream"""

    def __init__(self, tokens: Iterator[Token], filename: str = "<input>", debug: bool = False):
        self.tokens = iter(tokens)
        self.filename = filename
        self.debug = debug
        self._buffer = deque()
        self._last_read: Optional[Token] = None
        self._previous: Optional[Token] = None

    # ------------------------------------------------------------------------
    # Token stream helpers
    # ------------------------------------------------------------------------

    def _peek(self, offset: int = 0) -> Token:
        while len(self._buffer) <= offset:
            if self._last_read is None or self._last_read.kind != "EOF":
                self._last_read = next(self.tokens)
            # EOF repeats once the stream is exhausted
            self._buffer.append(self._last_read)
        return self._buffer[offset]

    def _advance(self) -> Token:
        token = self._peek()
        self._buffer.popleft()
        self._previous = token
        return token

    def _check(self, kind: str, value: Optional[str] = None, offset: int = 0) -> bool:
        token = self._peek(offset)
        return token.kind == kind and (value is None or token.value == value)

    def _accept(self, kind: str, value: Optional[str] = None) -> Optional[Token]:
        if self._check(kind, value):
            return self._advance()
        return None

    def _expect(self, kind: str, value: Optional[str] = None, expected: Optional[str] = None) -> Token:
        if self._check(kind, value):
            return self._advance()
        raise self._error(expected or describe_expected(kind, value))

    def _error(self, expected: str) -> AbacusSyntaxError:
        token = self._peek()
        return AbacusSyntaxError(expected, token.describe(), token.span)

    def _span_from(self, first: Token) -> SourceSpan:
        last = self._previous or first
        return SourceSpan(
            self.filename,
            first.span.start_line, first.span.start_col,
            last.span.end_line, last.span.end_col
        )

    def _matching_offset(self, offset: int) -> Optional[int]:
        """Offset of the bracket closing the one at `offset`, None if unclosed"""
        opener = self._peek(offset).value
        closer = ")" if opener == "(" else "]"
        depth = 0
        while True:
            token = self._peek(offset)
            if token.kind == "EOF":
                return None
            if token.kind == "DELIMITER" and token.value == opener:
                depth += 1
            elif token.kind == "DELIMITER" and token.value == closer:
                depth -= 1
                if depth == 0:
                    return offset
            offset += 1

    def _followed_by_equals(self, offset: int) -> bool:
        closing = self._matching_offset(offset)
        return closing is not None and self._check("OPERATOR", "=", closing + 1)

    def _skip_terminators(self):
        while self._accept("NEWLINE") or self._accept("DELIMITER", ";"):
            pass

    def _end_statement(self):
        if self._accept("NEWLINE") or self._accept("DELIMITER", ";"):
            return
        if self._check("DELIMITER", "}") or self._check("EOF"):
            return
        raise self._error("end of statement")

    # ------------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------------

    def parse_program(self) -> Program:
        """Parse a complete Abacus program"""
        statements = []
        self._skip_terminators()
        while not self._check("EOF"):
            statements.append(self._parse_statement())
            self._skip_terminators()
        return Program(tuple(statements), self.filename)

    def _parse_statement(self) -> Statement:
        token = self._peek()

        if token.kind == "KEYWORD" and token.value == "from":
            statement = self._parse_from_loop()
        elif token.kind == "KEYWORD" and token.value == "for":
            statement = self._parse_for_loop()
        elif token.kind == "IDENTIFIER" and self._check("OPERATOR", "=", 1):
            statement = self._parse_assignment()
        elif token.kind == "IDENTIFIER" and self._check("DELIMITER", "(", 1) and self._followed_by_equals(1):
            statement = self._parse_function_def()
        elif token.kind == "DELIMITER" and token.value == "[" and self._followed_by_equals(0):
            statement = self._parse_destructuring()
        else:
            expression = self.parse_expression()
            statement = ExpressionStatement(expression, expression.span)

        if self.debug:
            print(f"[debug] parsed {type(statement).__name__} at {statement.span}")
        self._end_statement()
        return statement

    def _parse_assignment(self) -> Assignment:
        name = self._advance()
        self._expect("OPERATOR", "=")
        value = self.parse_expression()
        return Assignment(name.value, value, self._span_from(name))

    def _parse_function_def(self) -> FunctionDef:
        name = self._advance()
        self._expect("DELIMITER", "(")
        params = []
        while not self._check("DELIMITER", ")"):
            params.append(self._expect("IDENTIFIER", expected="parameter name").value)
            if not self._accept("DELIMITER", ","):
                break
        self._expect("DELIMITER", ")")
        self._expect("OPERATOR", "=")
        body = self.parse_expression()
        return FunctionDef(name.value, tuple(params), body, self._span_from(name))

    def _parse_destructuring(self) -> Destructuring:
        opener = self._advance()
        names = []
        while not self._check("DELIMITER", "]"):
            names.append(self._expect("IDENTIFIER", expected="variable name").value)
            if not self._accept("DELIMITER", ","):
                break
        self._expect("DELIMITER", "]")
        self._expect("OPERATOR", "=")
        value = self.parse_expression()
        return Destructuring(tuple(names), value, self._span_from(opener))

    def _parse_from_loop(self) -> FromToAsLoop:
        keyword = self._advance()
        start = self.parse_expression()
        self._expect("KEYWORD", "to")
        stop = self.parse_expression()
        self._expect("KEYWORD", "as")
        var = self._expect("IDENTIFIER", expected="loop variable").value

        step = None
        if self._accept("KEYWORD", "with"):
            self._expect("KEYWORD", "step")
            step = self.parse_expression()

        body = self._parse_block()
        return FromToAsLoop(start, stop, step, var, body, self._span_from(keyword))

    def _parse_for_loop(self) -> ForInLoop:
        keyword = self._advance()
        var = self._expect("IDENTIFIER", expected="loop variable").value
        self._expect("KEYWORD", "in")
        source = self.parse_expression()
        body = self._parse_block()
        return ForInLoop(var, source, body, self._span_from(keyword))

    def _parse_block(self) -> Tuple[Statement, ...]:
        while self._accept("NEWLINE"):
            pass
        self._expect("DELIMITER", "{")

        statements = []
        self._skip_terminators()
        while not self._check("DELIMITER", "}"):
            if self._check("EOF"):
                raise self._error("'}'")
            statements.append(self._parse_statement())
            self._skip_terminators()

        self._expect("DELIMITER", "}")
        return tuple(statements)

    # ------------------------------------------------------------------------
    # Expressions, weakest binding first
    # ------------------------------------------------------------------------

    def parse_expression(self) -> Expression:
        return self._parse_additive()

    def parse_standalone_expression(self) -> Expression:
        """One expression that must make up the whole input"""
        expression = self.parse_expression()
        self._skip_terminators()
        self._expect("EOF", expected="end of input")
        return expression

    def _parse_binary(self, operators: str, operand) -> Expression:
        first = self._peek()
        left = operand()
        while self._peek().kind == "OPERATOR" and self._peek().value in operators.split():
            op = self._advance().value
            right = operand()
            left = BinaryOp(op, left, right, self._span_from(first))
        return left

    def _parse_additive(self) -> Expression:
        return self._parse_binary("+ -", self._parse_multiplicative)

    def _parse_multiplicative(self) -> Expression:
        return self._parse_binary("* /", self._parse_unary)

    def _parse_unary(self) -> Expression:
        sign = self._accept("OPERATOR", "-") or self._accept("OPERATOR", "+")
        if sign is None:
            return self._parse_power()
        if sign.value == "+":
            return self._parse_unary()

        # -2 folds into the literal unless it is the base of a power
        if self._check("NUMBER") and not self._check("OPERATOR", "^", 1):
            number = self._advance()
            return Literal(-number.value, self._span_from(sign))

        operand = self._parse_unary()
        return BinaryOp("*", Literal(-1.0, sign.span), operand, self._span_from(sign))

    def _parse_power(self) -> Expression:
        first = self._peek()
        base = self._parse_primary()
        if self._accept("OPERATOR", "^"):
            exponent = self._parse_unary()
            return BinaryOp("^", base, exponent, self._span_from(first))
        return base

    def _parse_primary(self) -> Expression:
        token = self._peek()

        if token.kind == "NUMBER":
            self._advance()
            return Literal(token.value, token.span)

        if token.kind == "IDENTIFIER":
            self._advance()
            if self._accept("DELIMITER", "("):
                args, _ = self._parse_sequence(")")
                return Call(token.value, tuple(args), self._span_from(token))
            return Variable(token.value, token.span)

        if token.kind == "DELIMITER" and token.value == "(":
            return self._parse_parenthesized()

        if token.kind == "DELIMITER" and token.value == "[":
            self._advance()
            elements, _ = self._parse_sequence("]")
            return ListLiteral(tuple(elements), self._span_from(token))

        raise self._error("expression")

    def _parse_parenthesized(self) -> Expression:
        opener = self._advance()
        items, saw_comma = self._parse_sequence(")")
        if len(items) == 1 and not saw_comma:
            return items[0]
        # (), (e,) and (e1, e2, ...) are list literals
        return ListLiteral(tuple(items), self._span_from(opener))

    def _parse_sequence(self, closer: str) -> Tuple[List[Expression], bool]:
        """Comma separated expressions up to `closer`, trailing comma allowed"""
        items = []
        saw_comma = False
        while not self._check("DELIMITER", closer):
            items.append(self.parse_expression())
            if not self._accept("DELIMITER", ","):
                break
            saw_comma = True
        self._expect("DELIMITER", closer)
        return items, saw_comma


class AbacusParser:
    """Main Abacus parser combining tokenizer and recursive descent"""

    def __init__(self, debug: bool = False):
        self.debug = debug

    def _parser(self, text: str, filename: str) -> Parser:
        tokens = Tokenizer(filename, self.debug).tokenize(text)
        return Parser(tokens, filename, self.debug)

    def parse_file(self, filepath: str) -> Program:
        """Parse an Abacus source file"""
        with open(filepath, 'r', encoding='utf-8') as f:
            content = f.read()
        return self.parse_string(content, filepath)

    def parse_string(self, text: str, filename: str = "<input>") -> Program:
        """Parse Abacus source code from string"""
        return self._parser(text, filename).parse_program()

    def parse_expression(self, text: str, filename: str = "<input>") -> Expression:
        """Parse a single Abacus expression"""
        return self._parser(text, filename).parse_standalone_expression()

    def tokenize(self, text: str, filename: str = "<input>") -> List[Token]:
        """Tokenize Abacus source code"""
        return list(Tokenizer(filename, self.debug).tokenize(text))


# Factory functions for creating parsers
def create_parser(debug: bool = False) -> AbacusParser:
    """Create an Abacus parser"""
    return AbacusParser(debug=debug)


def create_debug_parser() -> AbacusParser:
    """Create an Abacus parser with debug enabled"""
    return AbacusParser(debug=True)
