"""
cdv Command-Line Interface
==========================

This package provides the command-line tool for cdv:

- **cdvc**: DataView class compiler

The tool is implemented as a Click-based CLI application with help text
and consistent exit codes (see errors.py).
"""

__all__ = ["cdvc"]
