"""
Expression Compiler
===================

Turns "TTree::Draw"-like text into a ``NamedExpression``. The text is parsed
once by recursive descent; every grammar rule returns a ``NamedExpression``
built with the expression operators, so the result is a chain of closures
ready to be called on millions of records without touching the text again.

Grammar, lowest to highest precedence:

    or          := and ('||' and)*
    and         := equality ('&&' equality)*
    equality    := relational (('==' | '!=') relational)*
    relational  := additive (('<' | '>' | '<=' | '>=') additive)*
    additive    := term (('+' | '-') term)*
    term        := unary (('*' | '/' | '%') unary)*
    unary       := ('+' | '-' | '!') unary | postfix
    postfix     := primary ('[' or ']')*
    primary     := NUMBER | IDENT | IDENT '(' or ')' | '(' or ')'

Identifiers resolve to registered expressions first, then to record
branches of known shape, then to the constants ``inf`` and ``nan``, then to
branches of the compiler's default shape.
"""

from __future__ import annotations
import math
import operator
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional

from .core import NamedExpression
from .exceptions import ParseError
from .operators import EvaluatorShape, UnaryOperator, apply_unary
from .records import FrameLike, branch, shapes_from_frame


# ==============================================================================
# BUILT-IN FUNCTIONS
# ==============================================================================

def _sqrt(x: float) -> float:
    return math.sqrt(x) if x >= 0 else math.nan


def _log(x: float) -> float:
    if x > 0:
        return math.log(x)
    return -math.inf if x == 0 else math.nan


def _log10(x: float) -> float:
    if x > 0:
        return math.log10(x)
    return -math.inf if x == 0 else math.nan


def _exp(x: float) -> float:
    try:
        return math.exp(x)
    except OverflowError:
        return math.inf


def _floor(x: float) -> float:
    return float(math.floor(x)) if math.isfinite(x) else x


def _ceil(x: float) -> float:
    return float(math.ceil(x)) if math.isfinite(x) else x


FUNCTIONS: Dict[str, UnaryOperator] = {
    'abs': abs,
    'sqrt': _sqrt,
    'exp': _exp,
    'log': _log,
    'log10': _log10,
    'sin': math.sin,
    'cos': math.cos,
    'tan': math.tan,
    'floor': _floor,
    'ceil': _ceil,
}

# Non-finite constants, spelled the way ``format_constant`` names them
CONSTANTS: Dict[str, float] = {
    'inf': math.inf,
    'nan': math.nan,
}


# ==============================================================================
# LEXER
# ==============================================================================

@dataclass
class Token:
    """Token from lexer"""
    type: str  # NUMBER, IDENT, OPERATOR, LPAREN, ..., END
    value: str
    pos: int = 0


class Lexer:
    """Tokenize expression text"""

    PATTERNS = [
        ('NUMBER', r'(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?'),
        ('IDENT', r'[A-Za-z_][A-Za-z0-9_]*'),
        ('OPERATOR', r'\|\||&&|==|!=|<=|>=|[<>+\-*/%!]'),
        ('LPAREN', r'\('),
        ('RPAREN', r'\)'),
        ('LBRACKET', r'\['),
        ('RBRACKET', r'\]'),
        ('COMMA', r','),
        ('WHITESPACE', r'\s+'),
    ]
    _REGEX = re.compile('|'.join(f'(?P<{name}>{pattern})' for name, pattern in PATTERNS))

    def __init__(self, text: str):
        self.text = text

    def tokenize(self) -> List[Token]:
        tokens: List[Token] = []
        pos = 0
        while pos < len(self.text):
            match = self._REGEX.match(self.text, pos)
            if match is None:
                raise ParseError(f"Invalid character '{self.text[pos]}'", self.text, pos)
            if match.lastgroup != 'WHITESPACE':
                tokens.append(Token(match.lastgroup, match.group(), pos))
            pos = match.end()
        tokens.append(Token('END', '', len(self.text)))
        return tokens


# ==============================================================================
# PARSER
# ==============================================================================

_BINARY_LEVELS = (
    ('||',),
    ('&&',),
    ('==', '!='),
    ('<', '>', '<=', '>='),
    ('+', '-'),
    ('*', '/', '%'),
)

_BINARY: Dict[str, Callable[[NamedExpression, NamedExpression], NamedExpression]] = {
    '||': NamedExpression.logical_or,
    '&&': NamedExpression.logical_and,
    '==': operator.eq,
    '!=': operator.ne,
    '<': operator.lt,
    '>': operator.gt,
    '<=': operator.le,
    '>=': operator.ge,
    '+': operator.add,
    '-': operator.sub,
    '*': operator.mul,
    '/': operator.truediv,
    '%': operator.mod,
}

_UNARY: Dict[str, Callable[[NamedExpression], NamedExpression]] = {
    '+': operator.pos,
    '-': operator.neg,
    '!': NamedExpression.logical_not,
}


class _Parser:
    """Single-use recursive-descent parser over one expression text."""

    def __init__(self, compiler: ExpressionCompiler, text: str):
        self.compiler = compiler
        self.text = text
        self.tokens = Lexer(text).tokenize()
        self.index = 0

    def current(self) -> Token:
        return self.tokens[self.index]

    def advance(self) -> Token:
        token = self.tokens[self.index]
        if token.type != 'END':
            self.index += 1
        return token

    def expect(self, token_type: str) -> Token:
        token = self.current()
        if token.type != token_type:
            found = token.value or 'end of expression'
            raise ParseError(f"Expected {token_type}, found '{found}'", self.text, token.pos)
        return self.advance()

    def parse(self) -> NamedExpression:
        expression = self.parse_or()
        token = self.current()
        if token.type != 'END':
            raise ParseError(f"Unexpected token '{token.value}'", self.text, token.pos)
        return expression

    def parse_or(self) -> NamedExpression:
        return self.parse_binary(0)

    def parse_binary(self, level: int) -> NamedExpression:
        if level == len(_BINARY_LEVELS):
            return self.parse_unary()
        symbols = _BINARY_LEVELS[level]
        left = self.parse_binary(level + 1)
        while self.current().type == 'OPERATOR' and self.current().value in symbols:
            symbol = self.advance().value
            right = self.parse_binary(level + 1)
            left = _BINARY[symbol](left, right)
        return left

    def parse_unary(self) -> NamedExpression:
        token = self.current()
        if token.type == 'OPERATOR' and token.value in _UNARY:
            self.advance()
            return _UNARY[token.value](self.parse_unary())
        return self.parse_postfix()

    def parse_postfix(self) -> NamedExpression:
        expression = self.parse_primary()
        while self.current().type == 'LBRACKET':
            self.advance()
            index = self.parse_or()
            self.expect('RBRACKET')
            expression = expression[index]
        return expression

    def parse_primary(self) -> NamedExpression:
        token = self.current()

        if token.type == 'NUMBER':
            self.advance()
            return NamedExpression.from_constant(float(token.value))

        if token.type == 'IDENT':
            self.advance()
            if self.current().type == 'LPAREN':
                return self.parse_function_call(token)
            return self.compiler.resolve(token.value, text=self.text, position=token.pos)

        if token.type == 'LPAREN':
            self.advance()
            expression = self.parse_or()
            self.expect('RPAREN')
            return expression

        if token.type == 'END':
            raise ParseError("Unexpected end of expression", self.text, token.pos)
        raise ParseError(f"Unexpected token '{token.value}'", self.text, token.pos)

    def parse_function_call(self, name_token: Token) -> NamedExpression:
        function = self.compiler.functions.get(name_token.value)
        if function is None:
            raise ParseError(f"Unknown function '{name_token.value}'", self.text, name_token.pos)
        self.expect('LPAREN')
        argument = self.parse_or()
        self.expect('RPAREN')
        return NamedExpression(f"{name_token.value}({argument.name})",
                               apply_unary(argument.evaluator, function))


# ==============================================================================
# COMPILER
# ==============================================================================

class ExpressionCompiler:
    """
    Compiles expression text into ``NamedExpression`` objects.

    Args:
        variables: Named expressions usable as identifiers
        shapes: Record branch shapes (see ``records.shapes_from_schema``)
        default_shape: Shape of identifiers found nowhere else; ``None``
            makes unknown identifiers a ``ParseError``
        functions: Unary functions callable as ``name(expr)``; the built-in
            ``FUNCTIONS`` when omitted
    """

    def __init__(self,
                 variables: Optional[Mapping[str, NamedExpression]] = None,
                 shapes: Optional[Mapping[str, EvaluatorShape]] = None,
                 default_shape: Optional[EvaluatorShape] = EvaluatorShape.SCALAR,
                 functions: Optional[Mapping[str, UnaryOperator]] = None):
        self._variables: Dict[str, NamedExpression] = dict(variables or {})
        self._shapes: Dict[str, EvaluatorShape] = dict(shapes or {})
        self.default_shape = default_shape
        self.functions: Dict[str, UnaryOperator] = dict(FUNCTIONS if functions is None else functions)

    @classmethod
    def from_frame(cls, frame: FrameLike, **kwargs) -> ExpressionCompiler:
        """Compiler whose branch shapes come from a polars frame schema."""
        return cls(shapes=shapes_from_frame(frame), **kwargs)

    def register(self, name: str, expression: NamedExpression) -> ExpressionCompiler:
        """Make ``expression`` available as identifier ``name``."""
        if not re.fullmatch(r'[A-Za-z_][A-Za-z0-9_]*', name):
            raise ValueError(f"Invalid identifier: {name!r}")
        self._variables[name] = expression
        return self

    def resolve(self, name: str, text: Optional[str] = None,
                position: Optional[int] = None) -> NamedExpression:
        """Leaf expression for identifier ``name``."""
        if name in self._variables:
            return self._variables[name].copy().set_name(name)
        if name in self._shapes:
            return branch(name, self._shapes[name])
        if name in CONSTANTS:
            return NamedExpression.from_constant(CONSTANTS[name])
        shape = self.default_shape
        if shape is None:
            raise ParseError(f"Unknown identifier '{name}'", text, position)
        return branch(name, shape)

    def compile(self, text: str) -> NamedExpression:
        """
        Compile ``text``.

        Raises:
            ParseError: ``text`` is not a well-formed expression
            ShapeMismatchError: ``text`` indexes a scalar or uses a vector index
        """
        if not isinstance(text, str):
            raise TypeError(f"Expression text must be a string, got {type(text).__name__}")
        return _Parser(self, text).parse()


_default_compiler = ExpressionCompiler()


def get_default_compiler() -> ExpressionCompiler:
    return _default_compiler


def set_default_compiler(compiler: ExpressionCompiler) -> ExpressionCompiler:
    """Install the compiler used by ``NamedExpression.from_text``; returns the previous one."""
    global _default_compiler
    previous = _default_compiler
    _default_compiler = compiler
    return previous


def compile_expression(text: str, compiler: Optional[ExpressionCompiler] = None) -> NamedExpression:
    return (compiler or _default_compiler).compile(text)


__all__ = [
    'FUNCTIONS',
    'CONSTANTS',
    'Token',
    'Lexer',
    'ExpressionCompiler',
    'get_default_compiler',
    'set_default_compiler',
    'compile_expression',
]
