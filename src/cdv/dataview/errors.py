"""
DataView Compiler Error Hierarchy
=================================

This module defines the exception hierarchy for the DataView compiler.
All exceptions inherit from DataViewError, which itself inherits from
the base CdvError for consistent error handling across the toolchain.

Exception Hierarchy
-------------------
DataViewError (base for all compiler errors)
├── DataViewSyntaxError - malformed declarations, braces, semicolons
│   └── UnterminatedCommentError - block comment missing its */
├── DataViewLayoutError - type resolution and layout rule violations
│   ├── DuplicateNameError - field or type declared twice
│   └── UnknownTypeError - reference to an undeclared type
├── ExpressionError - constant expression evaluation failures
├── ConditionalError - unbalanced #if/#else/#endif and #error
└── PragmaError - unknown pragma settings or invalid values

Diagnostics
-----------
The compiler never stops at the first bad declaration. Each error is
added to a DiagnosticCollector and parsing resumes at the next
statement. The collector renders the errors as one comment block that
can be prepended to the generated code:

    /*
    point.h:3:4: error: duplicate field name 'x'
        int32_t x;
        ^

    1 error, 0 warnings
    */
"""

from typing import Optional, List

from cdv.errors import CdvError, SourceLocation


# =============================================================================
# Base DataView Exception
# =============================================================================

class DataViewError(CdvError):
    """
    Base exception for all DataView compiler errors.

    Attributes:
        message: The error description
        location: Where in the source the error occurred
        hint: A suggestion for fixing the error
        source_line: The actual source text at the error location
    """

    def __init__(
        self,
        message: str,
        location: Optional[SourceLocation] = None,
        hint: Optional[str] = None,
        source_line: Optional[str] = None,
    ):
        self.message = message
        self.location = location
        self.hint = hint
        self.source_line = source_line
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """
        Format the error message with location, source context, and hint.

        Example:

            point.h:3:4: error: unknown type 'int33_t'
                int33_t x;
                ^
            hint: fixed-width types are int8_t ... int64_t
        """
        parts = []

        if self.location:
            parts.append(f"{self.location}: error: {self.message}")
        else:
            parts.append(f"error: {self.message}")

        if self.source_line is not None and self.location is not None:
            parts.append(f"    {self.source_line}")
            if self.location.column > 0:
                padding = " " * (4 + self.location.column - 1)
                parts.append(f"{padding}^")

        if self.hint:
            parts.append(f"hint: {self.hint}")

        return "\n".join(parts)

    def with_context(
        self,
        location: Optional[SourceLocation],
        source_line: Optional[str],
    ) -> "DataViewError":
        """
        Fill in location and source line if they are still missing.

        Errors raised deep in the evaluator or layout code often know
        nothing about where they happened; the parser attaches the
        statement's position before recording them.

        Returns:
            self, so the call can be used inline
        """
        if self.location is None:
            self.location = location
        if self.source_line is None:
            self.source_line = source_line
        self.args = (self._format_message(),)
        return self


# =============================================================================
# Syntax Errors
# =============================================================================

class DataViewSyntaxError(DataViewError):
    """
    Syntax error in a layout description.

    Examples:
        - Missing semicolon or brace
        - Struct declared inside another struct
        - Unexpected token at top level
    """
    pass


class UnterminatedCommentError(DataViewSyntaxError):
    """
    Block comment without a closing */.

    This is the one fatal lexical condition: the remaining source is
    discarded and the compile produces no declarations.
    """

    def __init__(
        self,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        super().__init__(
            "unterminated block comment",
            location=location,
            hint="add closing */ to terminate the comment",
            source_line=source_line,
        )


# =============================================================================
# Layout Errors
# =============================================================================

class DataViewLayoutError(DataViewError):
    """
    A declaration that parses but violates a layout rule.

    Examples:
        - Bitfield wider than its declared type
        - Flexible array member that is not the last field
        - Struct with no fields
    """
    pass


class DuplicateNameError(DataViewLayoutError):
    """A field, type or constant name declared more than once."""

    def __init__(
        self,
        kind: str,
        name: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.kind = kind
        self.name = name
        super().__init__(
            f"duplicate {kind} name '{name}'",
            location=location,
            source_line=source_line,
        )


class UnknownTypeError(DataViewLayoutError):
    """Reference to a type that is neither built in nor declared earlier."""

    def __init__(
        self,
        name: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
        similar: Optional[List[str]] = None,
    ):
        self.name = name
        hint = None
        if similar:
            hint = f"did you mean '{similar[0]}'?"
        super().__init__(
            f"unknown type '{name}'",
            location=location,
            hint=hint,
            source_line=source_line,
        )


# =============================================================================
# Expression, Conditional and Pragma Errors
# =============================================================================

class ExpressionError(DataViewError):
    """
    Error evaluating a constant expression.

    Raised for undefined identifiers, division by zero, malformed
    expressions and results that are not numbers, strings or booleans.
    """
    pass


class ConditionalError(DataViewError):
    """
    Error in #if / #else / #endif handling, or an active #error directive.
    """
    pass


class PragmaError(DataViewError):
    """Unknown pragma setting or invalid pragma value."""
    pass


# =============================================================================
# Error Collection
# =============================================================================

class DiagnosticCollector:
    """
    Collects compiler errors for batch reporting.

    The parser uses this to continue processing after a bad statement,
    so a single malformed field does not hide problems later in the file.

    Example:
        collector = DiagnosticCollector()

        for statement in statements:
            try:
                compile_statement(statement)
            except DataViewError as e:
                collector.add(e)

        if collector.errors:
            print(collector.report())
    """

    def __init__(self, max_errors: int = 100):
        """
        Initialize the collector.

        Args:
            max_errors: Maximum errors to collect before stopping
        """
        self.errors: List[DataViewError] = []
        self.warnings: List[str] = []
        self.max_errors = max_errors

    def add(self, error: DataViewError) -> None:
        """Add an error to the collection."""
        self.errors.append(error)

    def add_warning(self, message: str, location: Optional[SourceLocation] = None) -> None:
        """Add a warning message."""
        if location:
            self.warnings.append(f"{location}: warning: {message}")
        else:
            self.warnings.append(f"warning: {message}")

    def should_stop(self) -> bool:
        """Return True if max_errors has been reached."""
        return len(self.errors) >= self.max_errors

    def error_count(self) -> int:
        """Return the number of collected errors."""
        return len(self.errors)

    def report(self) -> str:
        """
        Format all errors and warnings as a comment block.

        Returns an empty string when nothing was collected, so the result
        can always be prepended to generated code.
        """
        if not self.errors and not self.warnings:
            return ""

        lines = ["/*"]

        for error in self.errors:
            lines.append(str(error).replace("*/", "* /"))
            lines.append("")

        for warning in self.warnings:
            lines.append(warning.replace("*/", "* /"))

        error_word = "error" if len(self.errors) == 1 else "errors"
        warning_word = "warning" if len(self.warnings) == 1 else "warnings"
        lines.append(f"{len(self.errors)} {error_word}, {len(self.warnings)} {warning_word}")
        lines.append("*/")
        lines.append("")

        return "\n".join(lines)
