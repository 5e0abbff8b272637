"""
cdvc - DataView Compiler Command-Line Interface
===============================================

This module implements the command-line interface for the DataView class
compiler.

Usage Examples
--------------
Basic compilation (writes point.js):
    $ cdvc point.h

With output file:
    $ cdvc point.h build/point.js

TypeScript for Node.js:
    $ cdvc -p language=typescript/node point.h

Verbose mode:
    $ cdvc -v point.h

Exit Status
-----------
0 when the description compiled cleanly, 1 when it produced diagnostics
(the output file is still written, with the diagnostics at the top), and
2 for invalid arguments.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import click

from cdv import __version__
from cdv.cli.errors import ExitCode, handle_cli_exception
from cdv.dataview import CompilerOptions, DataViewCompiler


def parse_pragma_options(ctx, param, values: tuple[str, ...]) -> dict[str, str]:
    """Turn repeated NAME=VALUE options into an ordered mapping."""
    overrides = {}
    for item in values:
        name, sep, value = item.partition("=")
        name = name.strip()
        if not sep or not name:
            raise click.BadParameter(f"expected NAME=VALUE, got '{item}'", param=param)
        overrides[name] = value.strip()
    return overrides


# =============================================================================
# CLI Definition
# =============================================================================

@click.command()
@click.argument(
    "input_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.argument(
    "output_file",
    required=False,
    type=click.Path(dir_okay=False, path_type=Path),
)
@click.option(
    "-p", "--pragma", "pragmas",
    multiple=True,
    metavar="NAME=VALUE",
    callback=parse_pragma_options,
    help="Set a pragma before the source is read (can be repeated)",
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Verbose output",
)
@click.version_option(version=__version__, prog_name="cdvc")
def main(
    input_file: Path,
    output_file: Optional[Path],
    pragmas: dict[str, str],
    verbose: bool,
) -> None:
    """
    Compile a binary layout description to DataView classes.

    INPUT_FILE is the description to compile. OUTPUT_FILE defaults to
    INPUT_FILE with a .js or .ts suffix, depending on the language pragma.

    \b
    Examples:
        cdvc point.h                          # Outputs point.js
        cdvc point.h out/point.js             # Specify output file
        cdvc -p language=typescript point.h   # Outputs point.ts
        cdvc -p endian=big -p json=true point.h
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s" if verbose else "%(message)s",
    )

    try:
        source = input_file.read_text(encoding="utf-8")

        options = CompilerOptions(filename=str(input_file), pragma_overrides=pragmas)
        result = DataViewCompiler(options).compile_source(source)

        if output_file is None:
            output_file = input_file.with_suffix("." + result.language)
        if output_file.resolve() == input_file.resolve():
            raise click.BadParameter(
                f"output file would overwrite the input '{input_file}'",
                param_hint="OUTPUT_FILE",
            )

        output_file.write_text(result.diagnostics + result.code, encoding="utf-8")

        if verbose:
            click.echo(f"Wrote {len(result.code)} bytes to {output_file}")
            click.echo(f"Language: {result.language}, platform: {result.platform}")

    except Exception as e:
        handle_cli_exception(e, verbose)

    if result.errors:
        click.echo(result.diagnostics, err=True, nl=False)
        click.echo(f"Compiled {input_file} -> {output_file} with errors", err=True)
        sys.exit(ExitCode.BUILD_ERROR)

    click.echo(f"Compiled {input_file} -> {output_file}")


if __name__ == "__main__":
    main()
