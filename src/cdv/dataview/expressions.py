"""
Constant Expression Evaluator
=============================

This module evaluates the small constant expressions that appear in layout
descriptions: enum member values, array sizes, bitfield widths and #if
conditions. It is a bounded recursive-descent evaluator over tokens the
lexer already produced; nothing is ever executed.

Supported Operations
--------------------
**Arithmetic:** + - * / %

**Bitwise:** & | ^ ~ << >> >>>

**Logical:** && || !

**Comparison:** < <= > >= == !=

**Conditional:** cond ? a : b

**Primary:** numbers, "strings", true, false, identifiers from the scope,
(grouped expressions), and defined(NAME) when enabled.

Bitwise and shift operators use 32-bit two's complement semantics, the way
the generated JavaScript would compute them, so ``1 << 31`` is
``-2147483648`` and ``~12`` is ``-13``.

Expression Grammar
------------------
Precedence from lowest to highest:

1. Conditional: ? :
2. Logical OR: ||
3. Logical AND: &&
4. Bitwise OR: |
5. Bitwise XOR: ^
6. Bitwise AND: &
7. Equality: == !=
8. Relational: < <= > >=
9. Shift: << >> >>>
10. Additive: + -
11. Multiplicative: * / %
12. Unary: + - ~ !
13. Primary

Example Usage
-------------
>>> from cdv.dataview.expressions import ConstantEvaluator
>>> from cdv.dataview.lexer import tokenize
>>> evaluator = ConstantEvaluator({"COUNT": 4})
>>> evaluator.evaluate(tokenize("COUNT * 2 + 1")[:-1])
9
"""

import math
from typing import Optional, Union

from cdv.errors import SourceLocation
from cdv.dataview.errors import ExpressionError
from cdv.dataview.lexer import DToken, DTokenType


Value = Union[int, float, str, bool]

# Largest element count accepted for an array field
MAX_ARRAY_COUNT = 2**31 - 1


def to_int32(value: Union[int, float]) -> int:
    """
    Convert a number to a signed 32-bit integer the way JavaScript does.

    Fractions are truncated toward zero and the result wraps modulo 2**32.
    """
    if isinstance(value, float):
        if not math.isfinite(value):
            return 0
        value = int(value)
    value &= 0xFFFFFFFF
    if value & 0x80000000:
        value -= 0x100000000
    return value


def to_uint32(value: Union[int, float]) -> int:
    """Convert a number to an unsigned 32-bit integer."""
    return to_int32(value) & 0xFFFFFFFF


def is_truthy(value: Value) -> bool:
    """Truthiness of a constant value: zero, empty string and false are false."""
    return bool(value)


class ConstantEvaluator:
    """
    Evaluates constant expressions against a read-only scope.

    The scope holds enum constants defined earlier in the compilation (or,
    for #if conditions, the compiler's feature flags). The evaluator never
    modifies it.

    Attributes:
        scope: Mapping of identifier to constant value
        allow_defined: Whether defined(NAME) is recognized
    """

    def __init__(self, scope: Optional[dict[str, Value]] = None, allow_defined: bool = False):
        """
        Initialize the evaluator.

        Args:
            scope: Identifier values visible to expressions
            allow_defined: Enable the defined() predicate (#if conditions)
        """
        self.scope = scope if scope is not None else {}
        self.allow_defined = allow_defined
        self._tokens: list[DToken] = []
        self._pos = 0
        self._location: Optional[SourceLocation] = None

    # =========================================================================
    # Main Evaluation Interface
    # =========================================================================

    def evaluate(
        self,
        tokens: list[DToken],
        location: Optional[SourceLocation] = None,
    ) -> Value:
        """
        Evaluate an expression from a list of tokens.

        Args:
            tokens: Token list representing the expression
            location: Source location for error reporting

        Returns:
            An int, finite float, str or bool

        Raises:
            ExpressionError: If the expression is malformed, refers to an
                undefined identifier, or produces an unusable result
        """
        tokens = [t for t in tokens if t.type not in (DTokenType.COMMENT, DTokenType.EOF)]
        if not tokens:
            raise ExpressionError("empty expression", location)

        self._tokens = tokens
        self._pos = 0
        self._location = location or tokens[0].location

        try:
            result = self._parse_conditional()
        except OverflowError:
            raise ExpressionError("expression result is not finite", self._location)

        if self._pos < len(self._tokens):
            tok = self._current()
            raise ExpressionError(
                f"unexpected '{tok.text}' in expression",
                self._location,
            )

        if isinstance(result, float):
            if not math.isfinite(result):
                raise ExpressionError("expression result is not finite", self._location)
            if result.is_integer():
                result = int(result)
        elif not isinstance(result, (int, str, bool)):
            raise ExpressionError("expression must be a number, string or boolean", self._location)

        return result

    def evaluate_count(
        self,
        tokens: list[DToken],
        location: Optional[SourceLocation] = None,
        what: str = "array count",
    ) -> int:
        """
        Evaluate an expression that must be a positive integer count.

        Raises:
            ExpressionError: If the result is not an integer in 1..MAX_ARRAY_COUNT
        """
        value = self.evaluate(tokens, location)
        if isinstance(value, bool) or not isinstance(value, int):
            raise ExpressionError(f"invalid {what} '{value}'", self._location)
        if value <= 0:
            raise ExpressionError(f"invalid {what} {value}", self._location)
        if value > MAX_ARRAY_COUNT:
            raise ExpressionError(f"{what} {value} too large", self._location)
        return value

    # =========================================================================
    # Token Navigation
    # =========================================================================

    def _current(self) -> DToken:
        """Get current token (a synthetic EOF past the end)."""
        if self._pos >= len(self._tokens):
            last = self._tokens[-1]
            return DToken(DTokenType.EOF, "", last.line, last.column, last.filename)
        return self._tokens[self._pos]

    def _advance(self) -> DToken:
        """Consume and return current token."""
        token = self._current()
        self._pos += 1
        return token

    def _match(self, *texts: str) -> Optional[str]:
        """Consume the current token if it is one of the given operators."""
        token = self._current()
        if token.type != DTokenType.EOF and any(token.is_punct(t) for t in texts):
            self._advance()
            return token.text
        return None

    def _expect(self, text: str, message: str) -> DToken:
        """Expect a specific punctuation token, raising error if not found."""
        if not self._current().is_punct(text):
            raise ExpressionError(message, self._location)
        return self._advance()

    # =========================================================================
    # Recursive Descent Parser with Evaluation
    # =========================================================================

    def _parse_conditional(self) -> Value:
        """Parse the ternary operator (lowest precedence)."""
        condition = self._parse_logical_or()
        if self._match("?"):
            when_true = self._parse_conditional()
            self._expect(":", "expected ':' in conditional expression")
            when_false = self._parse_conditional()
            return when_true if is_truthy(condition) else when_false
        return condition

    def _parse_logical_or(self) -> Value:
        """Parse logical OR, which yields the deciding operand as in JavaScript."""
        left = self._parse_logical_and()
        while self._match("||"):
            right = self._parse_logical_and()
            left = left if is_truthy(left) else right
        return left

    def _parse_logical_and(self) -> Value:
        """Parse logical AND."""
        left = self._parse_bit_or()
        while self._match("&&"):
            right = self._parse_bit_or()
            left = right if is_truthy(left) else left
        return left

    def _parse_bit_or(self) -> Value:
        """Parse bitwise OR."""
        left = self._parse_bit_xor()
        while self._match("|"):
            right = self._parse_bit_xor()
            left = to_int32(self._number(left)) | to_int32(self._number(right))
        return left

    def _parse_bit_xor(self) -> Value:
        """Parse bitwise XOR."""
        left = self._parse_bit_and()
        while self._match("^"):
            right = self._parse_bit_and()
            left = to_int32(self._number(left)) ^ to_int32(self._number(right))
        return left

    def _parse_bit_and(self) -> Value:
        """Parse bitwise AND."""
        left = self._parse_equality()
        while self._match("&"):
            right = self._parse_equality()
            left = to_int32(self._number(left)) & to_int32(self._number(right))
        return left

    def _parse_equality(self) -> Value:
        """Parse == and !=."""
        left = self._parse_relational()
        while True:
            op = self._match("==", "!=")
            if op is None:
                return left
            right = self._parse_relational()
            equal = self._equal(left, right)
            left = equal if op == "==" else not equal

    def _parse_relational(self) -> Value:
        """Parse < <= > >=."""
        left = self._parse_shift()
        while True:
            op = self._match("<", "<=", ">", ">=")
            if op is None:
                return left
            right = self._parse_shift()
            if isinstance(left, str) and isinstance(right, str):
                a, b = left, right
            else:
                a, b = self._number(left), self._number(right)
            if op == "<":
                left = a < b
            elif op == "<=":
                left = a <= b
            elif op == ">":
                left = a > b
            else:
                left = a >= b

    def _parse_shift(self) -> Value:
        """Parse << >> >>> with 32-bit semantics."""
        left = self._parse_additive()
        while True:
            op = self._match("<<", ">>", ">>>")
            if op is None:
                return left
            right = self._parse_additive()
            count = to_uint32(self._number(right)) & 31
            if op == "<<":
                left = to_int32(to_int32(self._number(left)) << count)
            elif op == ">>":
                left = to_int32(self._number(left)) >> count
            else:
                left = to_uint32(self._number(left)) >> count

    def _parse_additive(self) -> Value:
        """Parse addition and subtraction; + concatenates when either side is a string."""
        left = self._parse_multiplicative()
        while True:
            op = self._match("+", "-")
            if op is None:
                return left
            right = self._parse_multiplicative()
            if op == "+" and (isinstance(left, str) or isinstance(right, str)):
                left = self._text(left) + self._text(right)
            elif op == "+":
                left = self._number(left) + self._number(right)
            else:
                left = self._number(left) - self._number(right)

    def _parse_multiplicative(self) -> Value:
        """Parse multiplication, division, and modulo."""
        left = self._parse_unary()
        while True:
            op = self._match("*", "/", "%")
            if op is None:
                return left
            right = self._number(self._parse_unary())
            left = self._number(left)
            if op == "*":
                left = left * right
            elif right == 0:
                raise ExpressionError(
                    "division by zero" if op == "/" else "modulo by zero",
                    self._location,
                )
            elif op == "/":
                if isinstance(left, int) and isinstance(right, int) and left % right == 0:
                    left = left // right
                else:
                    left = left / right
            else:
                left = math.fmod(left, right)
                if left.is_integer():
                    left = int(left)

    def _parse_unary(self) -> Value:
        """Parse unary operators (+, -, ~, !)."""
        if self._match("+"):
            return self._number(self._parse_unary())
        if self._match("-"):
            return -self._number(self._parse_unary())
        if self._match("~"):
            return ~to_int32(self._number(self._parse_unary()))
        if self._match("!"):
            return not is_truthy(self._parse_unary())
        return self._parse_primary()

    def _parse_primary(self) -> Value:
        """Parse primary expressions (literals, identifiers, defined(), groups)."""
        tok = self._current()

        if tok.type == DTokenType.NUMBER:
            self._advance()
            return self._parse_number(tok.text)

        if tok.type == DTokenType.STRING:
            self._advance()
            return tok.text

        if tok.type == DTokenType.LPAREN:
            self._advance()
            result = self._parse_conditional()
            self._expect(")", "expected ')' to close expression")
            return result

        if tok.type == DTokenType.IDENTIFIER:
            self._advance()
            if tok.text == "true":
                return True
            if tok.text == "false":
                return False
            if tok.text == "defined" and self.allow_defined:
                return self._parse_defined()
            return self._resolve(tok.text)

        if tok.type == DTokenType.EOF:
            raise ExpressionError("unexpected end of expression", self._location)

        raise ExpressionError(f"expected value, got '{tok.text}'", self._location)

    def _parse_defined(self) -> bool:
        """Parse defined(NAME) or defined NAME."""
        parenthesized = self._match("(") is not None
        tok = self._current()
        if tok.type != DTokenType.IDENTIFIER:
            raise ExpressionError("expected identifier after 'defined'", self._location)
        self._advance()
        if parenthesized:
            self._expect(")", "expected ')' after defined(NAME")
        return tok.text in self.scope

    # =========================================================================
    # Value Helpers
    # =========================================================================

    def _resolve(self, name: str) -> Value:
        """Look up an identifier in the scope."""
        if name in self.scope:
            return self.scope[name]
        raise ExpressionError(f"'{name}' is not defined", self._location)

    def _parse_number(self, text: str) -> Union[int, float]:
        """Convert numeric literal text to its value."""
        cleaned = text.replace("_", "")
        try:
            if cleaned[:2].lower() in ("0x", "0b", "0o"):
                return int(cleaned, 0)
            if any(c in cleaned for c in ".eE"):
                return float(cleaned)
            return int(cleaned, 10)
        except ValueError:
            raise ExpressionError(f"invalid number '{text}'", self._location) from None

    def _number(self, value: Value) -> Union[int, float]:
        """Coerce a value to a number the way JavaScript arithmetic does."""
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, (int, float)):
            return value
        try:
            number = float(value) if value.strip() else 0
        except ValueError:
            raise ExpressionError(f"'{value}' is not a number", self._location) from None
        if isinstance(number, float) and number.is_integer():
            return int(number)
        return number

    @staticmethod
    def _text(value: Value) -> str:
        """Render a value as JavaScript would when concatenating."""
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return str(value)

    def _equal(self, left: Value, right: Value) -> bool:
        """Equality with numeric coercion unless both sides are strings."""
        if isinstance(left, str) and isinstance(right, str):
            return left == right
        return self._number(left) == self._number(right)


# =============================================================================
# Convenience Functions
# =============================================================================

def evaluate_expression(
    tokens: list[DToken],
    scope: Optional[dict[str, Value]] = None,
    location: Optional[SourceLocation] = None,
    allow_defined: bool = False,
) -> Value:
    """
    Convenience function to evaluate an expression.

    Args:
        tokens: Token list representing the expression
        scope: Identifier values visible to the expression
        location: Source location for errors
        allow_defined: Enable the defined() predicate

    Returns:
        Expression result
    """
    evaluator = ConstantEvaluator(scope, allow_defined=allow_defined)
    return evaluator.evaluate(tokens, location)
