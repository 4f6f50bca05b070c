"""Language id → parser table.

Built once by :func:`build_registry` and handed to the pipeline; the table is
read-only afterwards, so worker threads can share it.
"""

import logging
from collections.abc import Iterable, Iterator, Mapping
from types import MappingProxyType

from .base import LanguageParser
from .csharp import CSharpParser
from .go import GoParser
from .java import JavaParser
from .linebased import HclParser, MarkdownParser, ShellParser, SqlParser, TextParser, YamlParser
from .php import PhpParser
from .python import PythonParser
from .ruby import RubyParser
from .rust import RustParser
from .typescript import JavaScriptParser, TypeScriptParser

log = logging.getLogger(__name__)

# Languages detected by extension but without a dedicated extractor.
TEXT_FALLBACK_LANGUAGES = (
    "swift", "kotlin", "scala", "elixir", "dart",
    "lua", "zig", "haskell", "c", "cpp", "dockerfile", "toml", "json", "xml",
)


class ParserRegistry(Mapping[str, LanguageParser]):
    def __init__(self, parsers: Iterable[LanguageParser]):
        table: dict[str, LanguageParser] = {}
        for parser in parsers:
            if not parser.language:
                raise ValueError(f"{type(parser).__name__} has no language id")
            if parser.language in table:
                raise ValueError(f"duplicate parser for {parser.language!r}")
            table[parser.language] = parser
        self._table = MappingProxyType(table)

    def __getitem__(self, language: str) -> LanguageParser:
        return self._table[language]

    def __iter__(self) -> Iterator[str]:
        return iter(self._table)

    def __len__(self) -> int:
        return len(self._table)

    def get(self, language: str | None, default: LanguageParser | None = None) -> LanguageParser | None:
        if language is None:
            return default
        return self._table.get(language, default)

    def languages(self) -> list[str]:
        return sorted(self._table)


def build_registry(text_fallback: Iterable[str] = TEXT_FALLBACK_LANGUAGES) -> ParserRegistry:
    parsers: list[LanguageParser] = [
        TypeScriptParser(),
        JavaScriptParser(),
        PythonParser(),
        GoParser(),
        RustParser(),
        JavaParser(),
        CSharpParser(),
        RubyParser(),
        PhpParser(),
        YamlParser(),
        SqlParser(),
        ShellParser(),
        HclParser(),
        MarkdownParser(),
    ]
    parsers.extend(TextParser(lang) for lang in text_fallback)
    registry = ParserRegistry(parsers)
    log.debug("Parser registry: %s", ", ".join(registry.languages()))
    return registry
