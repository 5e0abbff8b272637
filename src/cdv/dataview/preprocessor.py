"""
Conditional Compilation Filter
==============================

This module implements the restricted preprocessor of the layout
description language: #if / #else / #endif / #error. There is no macro
expansion and no #include; conditions are constant expressions over a fixed
set of feature flags.

Supported Directives
--------------------
- #if <expression>: start a conditional block
- #else: alternative branch
- #endif: end a conditional block
- #error <text>: report <text> as a diagnostic (only in active code)

Feature Flags
-------------
Conditions see only the compiler's feature flags and the defined()
predicate:

    __COMPILEDATAVIEW                 compiler version number
    __COMPILEDATAVIEW_JAVASCRIPT__    defined when emitting JavaScript
    __COMPILEDATAVIEW_TYPESCRIPT__    defined when emitting TypeScript
    __COMPILEDATAVIEW_XS__            defined for the xs platform
    __COMPILEDATAVIEW_NODE__          defined for the node platform
    __COMPILEDATAVIEW_WEB__           defined for the web platform

Example:
    #if defined(__COMPILEDATAVIEW_TYPESCRIPT__)
        #pragma strictFrom(true)
    #else
        #pragma json(false)
    #endif

Filtering Model
---------------
The filter wraps the token stream and is pulled lazily by the parser, so
a #pragma that changes the output language is already in effect for the
next #if. Conditions inside an inactive region are never evaluated, which
keeps undefined names in dead branches from producing errors.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, Optional

from cdv.errors import SourceLocation
from cdv.dataview.errors import ConditionalError, DataViewError
from cdv.dataview.expressions import ConstantEvaluator, Value, is_truthy
from cdv.dataview.lexer import DToken, DTokenType


logger = logging.getLogger(__name__)


@dataclass
class ConditionFrame:
    """
    One level of #if nesting.

    Attributes:
        active: Whether tokens in this branch are compiled
        seen_else: Whether the #else of this block has been seen
        location: Where the #if was written (None for the root frame)
    """
    active: bool
    seen_else: bool = False
    location: Optional[SourceLocation] = None


class ConditionalFilter:
    """
    Removes tokens in inactive #if branches from a token stream.

    Errors are reported through a callback rather than raised, so a bad
    directive never stops the parse.

    Usage:
        filter = ConditionalFilter(flags, collector.add, lexer.source_line)
        for token in filter.filter(tokens):
            ...
    """

    DIRECTIVES = ("if", "else", "endif", "error")

    def __init__(
        self,
        flags: Callable[[], dict[str, Value]],
        report: Callable[[DataViewError], None],
        source_line: Callable[[int], str] = lambda line: "",
    ):
        """
        Initialize the filter.

        Args:
            flags: Returns the feature flags visible to #if conditions
            report: Receives every directive error
            source_line: Returns the text of a source line for diagnostics
        """
        self._flags = flags
        self._report = report
        self._source_line = source_line
        self._stack: list[ConditionFrame] = [ConditionFrame(active=True)]

    @property
    def active(self) -> bool:
        """True if tokens at the current position are compiled."""
        return self._stack[-1].active

    def filter(self, tokens: Iterable[DToken]) -> Iterator[DToken]:
        """
        Yield the tokens of active regions, consuming conditional directives.

        Args:
            tokens: Token stream from the lexer, ending with EOF

        Yields:
            Tokens the parser should see, ending with EOF
        """
        stream = iter(tokens)
        for token in stream:
            if token.type == DTokenType.EOF:
                self._check_closed()
                yield token
                return

            keyword = token.directive
            if keyword in self.DIRECTIVES:
                body = []
                part = token
                for part in stream:
                    if part.type in (DTokenType.NEWLINE, DTokenType.EOF):
                        break
                    body.append(part)
                try:
                    self._handle(keyword, token, body)
                except DataViewError as e:
                    self._report(e.with_context(token.location, self._source_line(token.line)))
                if part.type == DTokenType.EOF:
                    self._check_closed()
                    yield part
                    return
                continue

            if self.active:
                yield token

    # =========================================================================
    # Directive Handling
    # =========================================================================

    def _handle(self, keyword: str, token: DToken, body: list[DToken]) -> None:
        """Dispatch one conditional directive."""
        if keyword == "if":
            self._handle_if(token, body)
        elif keyword == "else":
            self._handle_else(token)
        elif keyword == "endif":
            self._handle_endif(token)
        elif self.active:
            message = " ".join(t.text for t in body).strip()
            raise ConditionalError(message or "#error", token.location)

    def _handle_if(self, token: DToken, body: list[DToken]) -> None:
        """Push a frame for #if, evaluating the condition only in live code."""
        if not self.active:
            self._stack.append(ConditionFrame(active=False, location=token.location))
            logger.debug(f"line {token.line}: #if skipped in inactive region")
            return

        frame = ConditionFrame(active=False, location=token.location)
        self._stack.append(frame)

        evaluator = ConstantEvaluator(self._flags(), allow_defined=True)
        frame.active = is_truthy(evaluator.evaluate(body, token.location))
        logger.debug(f"line {token.line}: #if -> {frame.active}")

    def _handle_else(self, token: DToken) -> None:
        """Flip the current frame for #else."""
        if len(self._stack) == 1:
            raise ConditionalError("#else without #if", token.location)

        frame = self._stack[-1]
        if frame.seen_else:
            raise ConditionalError(
                "duplicate #else",
                token.location,
                hint=f"the #if at {frame.location} already has an #else",
            )

        frame.seen_else = True
        if self._stack[-2].active:
            frame.active = not frame.active

    def _handle_endif(self, token: DToken) -> None:
        """Pop the current frame for #endif."""
        if len(self._stack) == 1:
            raise ConditionalError("#endif without #if", token.location)
        self._stack.pop()

    def _check_closed(self) -> None:
        """Report unclosed #if blocks once, at end of input."""
        if len(self._stack) > 1:
            frame = self._stack[1]
            error = ConditionalError(
                "unterminated #if at end of file",
                frame.location,
                hint="add a matching #endif",
                source_line=self._source_line(frame.location.line) if frame.location else None,
            )
            self._report(error)
            del self._stack[1:]
