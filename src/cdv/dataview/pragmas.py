"""
Pragma Settings
===============

Layout descriptions configure the compiler with ``#pragma setting(value)``
lines. This module holds the settings for one compilation and validates
every change.

Settings
--------
| Setting           | Values                                   | Default      |
|-------------------|------------------------------------------|--------------|
| extends           | class name                               | DataView     |
| endian            | little, big, host                        | little       |
| hostEndian        | little, big, unknown                     | unknown      |
| pack              | 1, 2, 4, 8, 16                           | 16           |
| language          | javascript, typescript [/xs /node /web]  | javascript/xs|
| get, set          | true, false                              | true         |
| export            | true, false                              | true         |
| outputByteLength  | true, false                              | false        |
| checkByteLength   | true, false                              | false        |
| json              | true, false                              | false        |
| bitfields         | lsb, msb                                 | lsb          |
| comments          | header, true, false                      | header       |
| injectInterface   | interface name, none                     | none         |
| import            | import clause                            |              |
| outputSource      | true, false                              | true         |
| strictFrom        | true, false                              | false        |

``implements`` is accepted as another name for ``injectInterface``.
``inject`` inserts code and is handled by the parser, which knows whether a
class is open.

hostEndian and language change how every later declaration is compiled,
so they must appear before the first struct, union or enum.
"""

from dataclasses import dataclass, field
from typing import Optional

from cdv.dataview.errors import PragmaError
from cdv.dataview.expressions import Value


# Value of __COMPILEDATAVIEW seen by #if conditions
COMPILER_VERSION = 1

LANGUAGES = {"javascript": "js", "typescript": "ts"}
PLATFORMS = ("xs", "node", "web")
PACK_VALUES = (1, 2, 4, 8, 16)

# Settings that may not change once declarations have been compiled
LEADING_ONLY = ("hostEndian", "language")

BOOLEAN_SETTINGS = {
    "get": "get",
    "set": "set",
    "export": "export",
    "outputByteLength": "output_byte_length",
    "checkByteLength": "check_byte_length",
    "json": "json",
    "outputSource": "output_source",
    "strictFrom": "strict_from",
}


def boolean_setting(value: str, name: str) -> bool:
    """
    Parse a true/false pragma value.

    Raises:
        PragmaError: For anything other than "true" or "false"
    """
    if value == "true":
        return True
    if value == "false":
        return False
    raise PragmaError(f"invalid {name} '{value}' specified", hint="use true or false")


@dataclass
class PragmaState:
    """
    Compiler settings for one compilation.

    A fresh instance is created for every compile call; nothing carries
    over between calls.
    """
    extends: str = "DataView"
    endian: str = "little"
    host_endian: str = "unknown"
    pack: int = 16
    language: str = "javascript"
    platform: str = "xs"
    get: bool = True
    set: bool = True
    export: bool = True
    output_byte_length: bool = False
    check_byte_length: bool = False
    json: bool = False
    bitfields: str = "lsb"
    comments: str = "header"
    implements: Optional[str] = None
    imports: list[str] = field(default_factory=list)
    output_source: bool = True
    strict_from: bool = False

    @property
    def language_code(self) -> str:
        """Short language name used for output file suffixes: js or ts."""
        return LANGUAGES[self.language]

    @property
    def typescript(self) -> bool:
        """True when generating TypeScript."""
        return self.language == "typescript"

    def feature_flags(self) -> dict[str, Value]:
        """Identifiers visible to #if conditions."""
        return {
            "__COMPILEDATAVIEW": COMPILER_VERSION,
            f"__COMPILEDATAVIEW_{self.language.upper()}__": True,
            f"__COMPILEDATAVIEW_{self.platform.upper()}__": True,
        }

    def apply(self, name: str, value: str, declarations_seen: bool = False) -> None:
        """
        Apply one pragma.

        Args:
            name: Setting name as written in the source
            value: Setting value (text between the parentheses, trimmed)
            declarations_seen: True once a struct, union or enum was compiled

        Raises:
            PragmaError: Unknown setting, invalid value, or a leading-only
                setting after declarations
        """
        value = value.strip()

        if name in LEADING_ONLY and declarations_seen:
            raise PragmaError(
                f"{name} must be set before any declarations",
                hint="move the pragma to the top of the file",
            )

        if name in BOOLEAN_SETTINGS:
            setattr(self, BOOLEAN_SETTINGS[name], boolean_setting(value, name))
        elif name == "extends":
            if not value:
                raise PragmaError("extends requires a class name")
            self.extends = value
        elif name == "endian":
            self.endian = self._choice(name, value, ("little", "big", "host"))
        elif name == "hostEndian":
            self.host_endian = self._choice(name, value, ("little", "big", "unknown"))
        elif name == "pack":
            self._apply_pack(value)
        elif name == "language":
            self._apply_language(value)
        elif name == "bitfields":
            self.bitfields = self._choice(name, value, ("lsb", "msb"))
        elif name == "comments":
            self.comments = self._choice(name, value, ("header", "true", "false"))
        elif name in ("injectInterface", "implements"):
            if not value:
                raise PragmaError(f"{name} requires an interface name or none")
            self.implements = None if value == "none" else value
        elif name == "import":
            if not value:
                raise PragmaError("import requires an import clause")
            if value not in self.imports:
                self.imports.append(value)
        else:
            raise PragmaError(f"unknown pragma '{name}'")

    @staticmethod
    def _choice(name: str, value: str, choices: tuple[str, ...]) -> str:
        """Validate value against a fixed set of choices."""
        if value not in choices:
            raise PragmaError(
                f"invalid {name} '{value}' specified",
                hint=f"use one of: {', '.join(choices)}",
            )
        return value

    def _apply_pack(self, value: str) -> None:
        """Validate and apply pack(N)."""
        try:
            pack = int(value, 10)
        except ValueError:
            pack = 0
        if pack not in PACK_VALUES:
            raise PragmaError(
                f"invalid pack '{value}' specified",
                hint="use 1, 2, 4, 8 or 16",
            )
        self.pack = pack

    def _apply_language(self, value: str) -> None:
        """Validate and apply language(name[/platform])."""
        language, _, platform = value.partition("/")
        language = language.strip()
        platform = platform.strip()
        if language not in LANGUAGES:
            raise PragmaError(
                f"invalid language '{language}' specified",
                hint="use javascript or typescript, optionally followed by /xs, /node or /web",
            )
        if platform and platform not in PLATFORMS:
            raise PragmaError(
                f"invalid platform '{platform}' specified",
                hint="use xs, node or web",
            )
        self.language = language
        if platform:
            self.platform = platform
