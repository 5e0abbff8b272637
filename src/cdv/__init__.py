"""
cdv - DataView Class Compiler
=============================

cdv turns C-like descriptions of binary layouts into JavaScript or
TypeScript classes that read and write those layouts through DataView.
It is meant for code that exchanges fixed-format binary records: network
protocols, file formats, device registers and shared memory.

Main Components
---------------
- **dataview**: the compiler (lexer, conditional filter, parser and
  layout engine, code generator)

- **cli**: the ``cdvc`` command-line tool

Quick Start
-----------
Compile a description:
    >>> from cdv import compile_dataview
    >>> result = compile_dataview('''
    ... struct Header {
    ...     uint16_t magic;
    ...     uint8_t  version;
    ...     uint8_t  flags;
    ...     uint32_t length;
    ... };
    ... ''')
    >>> result.diagnostics
    ''

Or use the command-line tool:
    $ cdvc header.h header.js
    $ cdvc -p language=typescript header.h

Version History
---------------
1.0.0 - Initial release
"""

__version__ = "1.0.0"
__author__ = "cdv Contributors"

# =============================================================================
# Public API Exports
# =============================================================================

from cdv.errors import CdvError, SourceLocation
from cdv.dataview import (
    CompileResult,
    CompilerOptions,
    DataViewCompiler,
    DataViewError,
    compile_dataview,
)

__all__ = [
    "__version__",
    "CdvError",
    "SourceLocation",
    "CompileResult",
    "CompilerOptions",
    "DataViewCompiler",
    "DataViewError",
    "compile_dataview",
]
