"""
cdv Error Hierarchy
===================

This module defines the root of the exception hierarchy for the cdv
toolchain. All exceptions inherit from CdvError, allowing callers to catch
every toolchain error with a single except clause if desired.

Exception Hierarchy
-------------------
CdvError (base)
└── DataViewError (DataView compiler, see cdv.dataview.errors)
    ├── DataViewSyntaxError - lexer and declaration syntax errors
    ├── DataViewLayoutError - layout and type resolution errors
    ├── ExpressionError - constant expression evaluation errors
    ├── ConditionalError - #if / #else / #endif / #error handling
    └── PragmaError - unknown settings and invalid values

Design Philosophy
-----------------
Each exception captures source location information (filename, line, column)
when applicable. This allows for detailed error messages that help users
quickly locate and fix issues in their layout descriptions.

Error messages follow this format:
    filename:line:column: error: description
        source_line_text
        ^ (pointer to error location)
    hint: suggestion for fixing (when available)
"""

from dataclasses import dataclass


# =============================================================================
# Base Exception Class
# =============================================================================

class CdvError(Exception):
    """
    Base exception for all cdv errors.

    All exceptions in the toolchain inherit from this class, allowing
    callers to catch every cdv error with a single except clause:

        try:
            result = compile_dataview(source)
        except CdvError as e:
            print(f"Error: {e}")
    """
    pass


# =============================================================================
# Source Location Tracking
# =============================================================================

@dataclass(frozen=True)
class SourceLocation:
    """
    Represents a location in source code for error reporting.

    Tokens, declarations and diagnostics all carry one of these so that
    every message can point back at the offending line. The immutable
    (frozen) design ensures locations cannot be accidentally modified.

    Attributes:
        filename: Name of the source file (or "<input>" for string input)
        line: Line number (1-indexed)
        column: Column number (1-indexed)
    """
    filename: str
    line: int
    column: int

    def __str__(self) -> str:
        """Format as 'filename:line:column' for error messages."""
        return f"{self.filename}:{self.line}:{self.column}"
