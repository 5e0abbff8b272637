"""
DataView Class Compiler
=======================

This package compiles C-like binary layout descriptions into JavaScript or
TypeScript classes that extend DataView, with one typed accessor property
per field.

    struct Point {
        int32_t x;
        int32_t y;
    };

becomes a ``Point`` class whose ``x`` and ``y`` getters and setters read
and write little-endian 32-bit integers at offsets 0 and 4 of the
underlying buffer.

Pipeline
--------
    Source → Lexer → Conditional filter → Parser / layout → Code generator

- A lexer (tokenizer) for the description language
- A restricted preprocessor for #if / #else / #endif / #error
- A constant expression evaluator for enum values and array counts
- A parser that computes offsets, alignment, padding and bitfield packing
- A code generator for two dialects (JavaScript, TypeScript) and three
  platforms (xs, node, web)

Usage
-----
>>> from cdv.dataview import compile_dataview
>>> result = compile_dataview('struct Point { int32_t x; int32_t y; };')
>>> print(result.diagnostics + result.code)
"""

__version__ = "1.0.0"
__author__ = "cdv Contributors"

# =============================================================================
# Public API Imports
# =============================================================================

from cdv.dataview.compiler import (
    CompilationContext,
    CompileResult,
    CompilerOptions,
    DataViewCompiler,
    compile_dataview,
)
from cdv.dataview.errors import (
    DataViewError,
    DataViewSyntaxError,
    UnterminatedCommentError,
    DataViewLayoutError,
    DuplicateNameError,
    UnknownTypeError,
    ExpressionError,
    ConditionalError,
    PragmaError,
    DiagnosticCollector,
)
from cdv.dataview.lexer import DataViewLexer, DToken, DTokenType, split, tokenize
from cdv.dataview.expressions import ConstantEvaluator, evaluate_expression
from cdv.dataview.preprocessor import ConditionalFilter
from cdv.dataview.pragmas import PragmaState
from cdv.dataview.types import (
    FieldDescriptor,
    NumericKind,
    TextKind,
    BitfieldKind,
    NestedKind,
    FlexibleKind,
    TypeInfo,
    TypeKind,
    TypeRegistry,
)
from cdv.dataview.bitfields import BitfieldRun, PendingBitfield
from cdv.dataview.parser import DeclarationParser
from cdv.dataview.codegen import (
    CodeGenerator,
    EmitTarget,
    JavaScriptTarget,
    TypeScriptTarget,
)

__all__ = [
    # Compiler
    "CompilationContext",
    "CompileResult",
    "CompilerOptions",
    "DataViewCompiler",
    "compile_dataview",
    # Errors
    "DataViewError",
    "DataViewSyntaxError",
    "UnterminatedCommentError",
    "DataViewLayoutError",
    "DuplicateNameError",
    "UnknownTypeError",
    "ExpressionError",
    "ConditionalError",
    "PragmaError",
    "DiagnosticCollector",
    # Lexer
    "DataViewLexer",
    "DToken",
    "DTokenType",
    "split",
    "tokenize",
    # Expressions and conditionals
    "ConstantEvaluator",
    "evaluate_expression",
    "ConditionalFilter",
    # Settings
    "PragmaState",
    # Types
    "FieldDescriptor",
    "NumericKind",
    "TextKind",
    "BitfieldKind",
    "NestedKind",
    "FlexibleKind",
    "TypeInfo",
    "TypeKind",
    "TypeRegistry",
    # Layout
    "BitfieldRun",
    "PendingBitfield",
    "DeclarationParser",
    # Code generation
    "CodeGenerator",
    "EmitTarget",
    "JavaScriptTarget",
    "TypeScriptTarget",
]
