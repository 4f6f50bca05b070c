"""Parser contract and the tree-sitter plumbing shared by AST-based parsers.

Uses tree-walking (child_by_field_name, node.children) rather than the
Query API, which was removed in tree-sitter 0.25.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from tree_sitter import Node, Parser, Tree
from tree_sitter_language_pack import get_language

from ..models import DocComment, ExportInfo, ImportInfo, Location, Symbol

log = logging.getLogger(__name__)

_SIGNATURE_MAX = 200


class ParseError(Exception):
    """A grammar-backed parser could not produce a syntax tree."""


@dataclass
class ParseResult:
    symbols: list[Symbol] = field(default_factory=list)
    imports: list[ImportInfo] = field(default_factory=list)
    exports: list[ExportInfo] = field(default_factory=list)
    module_doc: DocComment | None = None

    def add(self, sym: Symbol, export: bool | None = None) -> Symbol:
        """Append a symbol and, when it is exported, a matching export record."""
        self.symbols.append(sym)
        if (sym.exported if export is None else export):
            self.exports.append(ExportInfo(name=sym.name, symbol_id=sym.id))
        return sym

    def dedupe(self) -> int:
        """Drop symbols whose id repeats an earlier one; returns how many were dropped."""
        seen: set[str] = set()
        kept: list[Symbol] = []
        for sym in self.symbols:
            if sym.id in seen:
                continue
            seen.add(sym.id)
            kept.append(sym)
        dropped = len(self.symbols) - len(kept)
        self.symbols = kept
        return dropped


class LanguageParser(ABC):
    """One implementation per supported language.  Stateless between calls."""

    language: str = ""

    @abstractmethod
    def parse(self, content: str, file_path: str) -> ParseResult:
        ...


class TreeSitterParser(LanguageParser):
    grammar: str = ""

    def grammar_for(self, file_path: str) -> str:
        return self.grammar

    def parse_tree(self, content: str, file_path: str) -> tuple[Tree, bytes]:
        grammar = self.grammar_for(file_path)
        try:
            # A fresh Parser per call keeps parsing safe across worker threads.
            parser = Parser(get_language(grammar))
        except Exception as e:
            raise ParseError(f"cannot load tree-sitter grammar {grammar!r}: {e}") from e
        source = content.encode("utf-8")
        tree = parser.parse(source)
        if tree is None or tree.root_node is None:
            raise ParseError(f"no syntax tree for {file_path}")
        return tree, source

    def parse(self, content: str, file_path: str) -> ParseResult:
        tree, _ = self.parse_tree(content, file_path)
        result = ParseResult()
        self.extract(tree.root_node, file_path, result)
        return result

    @abstractmethod
    def extract(self, root: Node, file_path: str, result: ParseResult) -> None:
        ...


# ── node helpers ─────────────────────────────────────────────────────────────

def text(node: Node | None) -> str:
    if node is None or not node.text:
        return ""
    return node.text.decode("utf-8", errors="replace")


def make_id(file_path: str, name: str, parent: str | None = None) -> str:
    return f"{file_path}:{parent}.{name}" if parent else f"{file_path}:{name}"


def location(node: Node, file_path: str) -> Location:
    return Location(
        file=file_path,
        line=node.start_point[0] + 1,
        column=node.start_point[1],
        end_line=node.end_point[0] + 1,
        end_column=node.end_point[1],
    )


def child_of_type(node: Node | None, *types: str) -> Node | None:
    if node is None:
        return None
    for child in node.children:
        if child.type in types:
            return child
    return None


def children_of_type(node: Node | None, *types: str) -> list[Node]:
    if node is None:
        return []
    return [c for c in node.children if c.type in types]


def preceding_comments(node: Node, comment_types: tuple[str, ...] = ("comment",)) -> list[Node]:
    """Contiguous run of comment siblings directly above ``node``, in source order."""
    run: list[Node] = []
    sibling = node.prev_sibling
    while sibling is not None and sibling.type in comment_types:
        run.append(sibling)
        sibling = sibling.prev_sibling
    run.reverse()
    return run


def signature(node: Node, stop: str = "{") -> str:
    """Declaration header: the node text up to the body opener, on one line."""
    raw = text(node)
    cut = raw.find(stop) if stop else -1
    if cut > 0:
        raw = raw[:cut]
    sig = " ".join(raw.split())
    if len(sig) > _SIGNATURE_MAX:
        sig = sig[:_SIGNATURE_MAX - 3] + "..."
    return sig


def strip_quotes(value: str) -> str:
    return value.strip().strip("\"'`")


def is_upper_first(name: str) -> bool:
    return bool(name) and name[0].isupper()


# ── doc comments ─────────────────────────────────────────────────────────────

_LINE_PREFIX = re.compile(r"^\s*(?:///?!?|//|#|--|\*)\s?")


def line_comment_doc(comments: list[Node]) -> DocComment | None:
    """Build a DocComment from a run of ``//`` / ``#`` style line comments."""
    lines: list[str] = []
    for c in comments:
        raw = text(c)
        if raw.startswith("/*"):
            doc = block_comment_doc(raw)
            if doc is not None:
                lines.extend([doc.summary] + ([doc.description] if doc.description else []))
            continue
        lines.append(_LINE_PREFIX.sub("", raw, count=1).rstrip())
    return doc_from_lines(lines)


def doc_from_lines(lines: list[str]) -> DocComment | None:
    while lines and not lines[0].strip():
        lines = lines[1:]
    while lines and not lines[-1].strip():
        lines = lines[:-1]
    if not lines:
        return None
    summary = lines[0].strip()
    description = "\n".join(lines).strip() if len(lines) > 1 else None
    return DocComment(summary=summary, description=description)


_TAG = re.compile(r"^@(\w+)\s*(.*)$")
_PARAM_TAG = re.compile(r"^(?:\{[^}]*\}\s*)?\[?([\w$.]+)[^\]\s]*\]?\s*(?:-\s*)?(.*)$")


def _block_lines(raw: str) -> list[str]:
    body = raw.strip()
    if body.startswith("/**"):
        body = body[3:]
    elif body.startswith("/*"):
        body = body[2:]
    if body.endswith("*/"):
        body = body[:-2]
    out = []
    for line in body.splitlines():
        line = line.strip()
        if line.startswith("*"):
            line = line[1:]
            if line.startswith(" "):
                line = line[1:]
        out.append(line.rstrip())
    return out


def block_comment_doc(raw: str) -> DocComment | None:
    """Parse a ``/** ... */`` JSDoc / Javadoc block, including its @tags."""
    lines = _block_lines(raw)
    prose: list[str] = []
    params: dict[str, str] = {}
    tags: dict[str, str] = {}
    throws: list[str] = []
    examples: list[str] = []
    see: list[str] = []
    returns = deprecated = since = None

    current: tuple[str, str] | None = None
    buf: list[str] = []

    def flush():
        nonlocal returns, deprecated, since
        if current is None:
            return
        tag, first = current
        value = "\n".join([first] + buf).strip()
        if tag == "param":
            m = _PARAM_TAG.match(value)
            if m:
                params[m.group(1)] = m.group(2).strip()
        elif tag in ("returns", "return"):
            returns = re.sub(r"^\{[^}]*\}\s*", "", value)
        elif tag in ("throws", "throw", "exception"):
            throws.append(value)
        elif tag == "example":
            examples.append(value)
        elif tag == "deprecated":
            deprecated = value
        elif tag == "since":
            since = value
        elif tag == "see":
            see.append(value)
        else:
            tags[tag] = value

    for line in lines:
        m = _TAG.match(line)
        if m:
            flush()
            current = (m.group(1), m.group(2))
            buf = []
        elif current is not None:
            buf.append(line)
        else:
            prose.append(line)
    flush()

    doc = doc_from_lines(prose) or DocComment()
    if not doc.summary and not (params or returns or tags or deprecated is not None):
        return None
    doc.params = params or None
    doc.returns = returns
    doc.throws = throws or None
    doc.examples = examples or None
    doc.tags = tags or None
    doc.deprecated = deprecated
    doc.since = since
    doc.see = see or None
    return doc
