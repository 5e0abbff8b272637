"""
DataView Compiler Main Module
=============================

This module provides the main compiler interface. It runs the complete
pipeline for one layout description:

    Source → Lex → Filter (#if) → Parse / Layout → Generate → Assembly

Usage
-----
Command line:
    $ cdvc point.h point.js

Programmatic:
    >>> from cdv.dataview import compile_dataview
    >>> result = compile_dataview('struct Point { int32_t x; int32_t y; };')
    >>> result.language
    'js'

Error Handling
--------------
Compilation never raises for bad input. Every problem becomes a
diagnostic and the code for all declarations that compiled is still
returned, so callers decide whether diagnostics block using the output.
The one fatal input error is an unterminated block comment, which leaves
nothing to compile.

Re-entrancy
-----------
Every call builds a fresh CompilationContext (settings, type registry,
constants, diagnostics and generator). Nothing is shared between calls.
"""

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping, Optional

from cdv.dataview.codegen import CodeGenerator
from cdv.dataview.errors import DataViewError, DiagnosticCollector
from cdv.dataview.lexer import DataViewLexer, DToken, DTokenType
from cdv.dataview.parser import DeclarationParser
from cdv.dataview.pragmas import PragmaState
from cdv.dataview.types import TypeRegistry


logger = logging.getLogger(__name__)


@dataclass
class CompilerOptions:
    """
    Compiler configuration options.

    Attributes:
        filename: Source name used in diagnostics
        pragma_overrides: Settings applied before the source, in order, as
            if each were a #pragma line at the top of the file
        padding_prefix: Field name prefix marking layout-only fields
        max_errors: Stop parsing after this many errors
    """
    filename: str = "<input>"
    pragma_overrides: Optional[Mapping[str, str]] = None
    padding_prefix: str = "__"
    max_errors: int = 100

    def __post_init__(self):
        if self.pragma_overrides is None:
            self.pragma_overrides = {}
        if not self.padding_prefix:
            raise ValueError("padding_prefix must not be empty")


@dataclass
class CompilationContext:
    """All mutable state of one compile call."""
    pragmas: PragmaState
    registry: TypeRegistry
    collector: DiagnosticCollector
    generator: CodeGenerator

    @classmethod
    def create(cls, max_errors: int = 100) -> "CompilationContext":
        pragmas = PragmaState()
        registry = TypeRegistry()
        return cls(
            pragmas=pragmas,
            registry=registry,
            collector=DiagnosticCollector(max_errors),
            generator=CodeGenerator(pragmas, registry),
        )


@dataclass
class CompileResult:
    """
    Result of a compilation.

    Attributes:
        code: Generated JavaScript or TypeScript
        diagnostics: Errors as a comment block (empty when clean)
        language: "js" or "ts"
        platform: "xs", "node" or "web"
        errors: The individual errors behind the diagnostics
    """
    code: str
    diagnostics: str = ""
    language: str = "js"
    platform: str = "xs"
    errors: list[DataViewError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """True if the description compiled without diagnostics."""
        return not self.errors


class DataViewCompiler:
    """
    Compiler from layout descriptions to DataView classes.

    Example:
        compiler = DataViewCompiler(CompilerOptions(filename="point.h"))
        result = compiler.compile_source(source)
        print(result.diagnostics + result.code)

    Attributes:
        options: Compiler configuration options
    """

    def __init__(self, options: Optional[CompilerOptions] = None):
        """
        Initialize the compiler.

        Args:
            options: Compiler configuration (uses defaults if None)
        """
        self.options = options or CompilerOptions()

    def compile_source(self, source: str) -> CompileResult:
        """
        Compile a layout description.

        Args:
            source: Description source text

        Returns:
            CompileResult with the generated code and any diagnostics
        """
        context = CompilationContext.create(self.options.max_errors)
        filename = self.options.filename

        self._apply_overrides(context)

        lexer = DataViewLexer(source, filename)
        tokens = self._lex(lexer, context)

        parser = DeclarationParser(
            tokens,
            context.pragmas,
            context.registry,
            context.generator,
            context.collector,
            padding_prefix=self.options.padding_prefix,
            source_line=lexer.source_line,
        )
        parser.parse()

        code = context.generator.assemble(source)
        collector = context.collector
        logger.debug(
            f"{filename}: {len(context.registry)} types, "
            f"{collector.error_count()} errors"
        )

        return CompileResult(
            code=code,
            diagnostics=collector.report(),
            language=context.pragmas.language_code,
            platform=context.pragmas.platform,
            errors=list(collector.errors),
        )

    def compile_file(self, filepath: str) -> CompileResult:
        """
        Compile a description file.

        Raises:
            FileNotFoundError: If the file does not exist
        """
        path = Path(filepath)
        if not path.exists():
            raise FileNotFoundError(f"Source file not found: {filepath}")
        options = replace(self.options, filename=str(path))
        return DataViewCompiler(options).compile_source(path.read_text(encoding="utf-8"))

    def _apply_overrides(self, context: CompilationContext) -> None:
        """Apply caller-supplied pragma values before the source is read."""
        for name, value in self.options.pragma_overrides.items():
            if name == "inject":
                context.generator.inject(value)
                continue
            try:
                context.pragmas.apply(name, value)
            except DataViewError as e:
                context.collector.add(e)

    def _lex(self, lexer: DataViewLexer, context: CompilationContext) -> list[DToken]:
        """
        Tokenize the source.

        An unterminated block comment is fatal: the error is recorded and
        an empty token stream is compiled instead.
        """
        try:
            return list(lexer.tokenize())
        except DataViewError as e:
            context.collector.add(e)
            logger.debug(f"lexing failed: {e.message}")
            return [DToken(DTokenType.EOF, "", 1, 1, lexer.filename)]


# =============================================================================
# Convenience Functions
# =============================================================================

def compile_dataview(
    source: str,
    pragma_overrides: Optional[Mapping[str, str]] = None,
    filename: str = "<input>",
    padding_prefix: str = "__",
) -> CompileResult:
    """
    Compile a layout description to DataView classes.

    This is the primary high-level interface.

    Args:
        source: Description source text
        pragma_overrides: Settings applied before the source, in order
        filename: Source name used in diagnostics
        padding_prefix: Field name prefix marking layout-only fields

    Returns:
        CompileResult with code, diagnostics, language and platform

    Example:
        >>> result = compile_dataview(
        ...     'struct Point { int32_t x; int32_t y; };',
        ...     {"language": "typescript"},
        ... )
        >>> result.language
        'ts'
    """
    options = CompilerOptions(
        filename=filename,
        pragma_overrides=pragma_overrides,
        padding_prefix=padding_prefix,
    )
    return DataViewCompiler(options).compile_source(source)
