"""Line-oriented parsers for languages without a tree-sitter extractor.

These scan text with regular expressions.  Every symbol they emit is public
and exported, and each parser derives a short module summary from the file
name or content so the manifest still says something useful about the file.
"""

import logging
import re
from pathlib import PurePosixPath

from ..models import DocComment, Location, Symbol
from .base import LanguageParser, ParseResult

log = logging.getLogger(__name__)


def _symbol(file_path: str, name: str, kind: str, line: int,
            type_annotation: str | None = None, doc: str = "") -> Symbol:
    return Symbol(
        id=f"{file_path}:{name}",
        name=name,
        kind=kind,
        visibility="public",
        location=Location(file=file_path, line=line, column=0),
        exported=True,
        type_annotation=type_annotation,
        docs=DocComment(summary=doc) if doc else None,
    )


def _basename(file_path: str) -> str:
    return PurePosixPath(file_path).name.lower()


def _finish(symbols: list[Symbol], summary: str) -> ParseResult:
    result = ParseResult(module_doc=DocComment(summary=summary) if summary else None)
    for sym in symbols:
        result.add(sym)
    return result


# ── YAML ─────────────────────────────────────────────────────────────────────

_YAML_KEY = re.compile(r"^([a-zA-Z_][a-zA-Z0-9_-]*)\s*:")
_K8S_KIND = re.compile(r"kind:\s*(\S+)", re.IGNORECASE)


def yaml_purpose(content: str, file_path: str) -> str:
    lower = content.lower()
    name = _basename(file_path)
    if "hosts:" in lower and "tasks:" in lower:
        return "Ansible playbook"
    if "- role:" in lower or "ansible.builtin" in lower:
        return "Ansible role configuration"
    if "services:" in lower and ("image:" in lower or "build:" in lower):
        return "Docker Compose file"
    if "apiversion:" in lower and "kind:" in lower:
        m = _K8S_KIND.search(content)
        return f"Kubernetes {m.group(1) if m else 'resource'}"
    if ("on:" in lower or "'on':" in lower) and "jobs:" in lower:
        return "GitHub Actions workflow"
    if name in ("chart.yaml", "chart.yml"):
        return "Helm chart definition"
    if name in ("values.yaml", "values.yml"):
        return "Helm values configuration"
    if name == ".gitlab-ci.yml":
        return "GitLab CI/CD configuration"
    if name == ".travis.yml":
        return "Travis CI configuration"
    if name.endswith((".yml", ".yaml")):
        return "YAML configuration file"
    return ""


class YamlParser(LanguageParser):
    """Top-level keys become properties; the summary names the file's purpose."""

    language = "yaml"

    def parse(self, content: str, file_path: str) -> ParseResult:
        symbols = []
        for lineno, line in enumerate(content.split("\n"), 1):
            m = _YAML_KEY.match(line)
            if m:
                symbols.append(_symbol(file_path, m.group(1), "property", lineno))
        return _finish(symbols, yaml_purpose(content, file_path))


# ── SQL ──────────────────────────────────────────────────────────────────────

_SQL_CREATE = re.compile(
    r"^\s*CREATE\s+(?:OR\s+REPLACE\s+)?(?:TEMP(?:ORARY)?\s+)?"
    r"(TABLE|(?:MATERIALIZED\s+)?VIEW|FUNCTION|PROCEDURE|TRIGGER|INDEX|TYPE|SCHEMA|SEQUENCE|ENUM)\s+"
    r"(?:IF\s+NOT\s+EXISTS\s+)?[`\"']?([a-zA-Z_][a-zA-Z0-9_.]*?)[`\"']?\s*(?:\(|AS\b|;|\s|$)",
    re.IGNORECASE,
)
_SQL_KINDS = {
    "table": "class",
    "view": "interface",
    "materialized view": "interface",
    "function": "function",
    "procedure": "function",
    "trigger": "function",
    "index": "property",
    "type": "type",
    "schema": "namespace",
    "sequence": "variable",
    "enum": "enum",
}


class SqlParser(LanguageParser):
    """``CREATE`` statements become symbols, documented by a preceding ``--`` line."""

    language = "sql"

    def parse(self, content: str, file_path: str) -> ParseResult:
        symbols: list[Symbol] = []
        prev_comment = ""
        for lineno, line in enumerate(content.split("\n"), 1):
            stripped = line.strip()
            if stripped.startswith("--"):
                prev_comment = stripped[2:].strip()
                continue
            m = _SQL_CREATE.match(stripped)
            if m:
                obj_type = " ".join(m.group(1).lower().split())
                symbols.append(_symbol(
                    file_path, m.group(2), _SQL_KINDS.get(obj_type, "property"), lineno,
                    type_annotation=obj_type.upper(), doc=prev_comment,
                ))
                prev_comment = ""
                continue
            if stripped and not stripped.startswith("/*"):
                prev_comment = ""
        return _finish(symbols, self._summary(symbols, file_path))

    @staticmethod
    def _summary(symbols: list[Symbol], file_path: str) -> str:
        tables = sum(1 for s in symbols if s.type_annotation == "TABLE")
        funcs = sum(1 for s in symbols if s.kind == "function")
        if tables and funcs:
            summary = f"SQL schema ({tables} tables, {funcs} functions)"
        elif tables:
            summary = f"SQL schema ({tables} tables)"
        elif funcs:
            summary = f"SQL functions ({funcs} functions)"
        elif symbols:
            summary = f"SQL definitions ({len(symbols)} objects)"
        else:
            summary = "SQL file"
        name = _basename(file_path)
        if "migration" in name or "migrate" in name:
            return f"Database migration: {summary}"
        if "seed" in name:
            return "Database seed data"
        return summary


# ── Shell ────────────────────────────────────────────────────────────────────

_SH_FUNC = re.compile(r"^([a-zA-Z_][a-zA-Z0-9_]*)\s*\(\)")
_SH_FUNC_KEYWORD = re.compile(r"^function\s+([a-zA-Z_][a-zA-Z0-9_]*)")
_SH_EXPORT = re.compile(r"^export\s+([A-Z_][A-Z0-9_]*)=")
_SH_READONLY = re.compile(r"^(?:readonly|declare\s+-r)\s+([A-Z_][A-Z0-9_]*)=")


class ShellParser(LanguageParser):
    language = "shell"

    def parse(self, content: str, file_path: str) -> ParseResult:
        lines = content.split("\n")
        symbols: list[Symbol] = []
        prev_comment = ""
        for lineno, line in enumerate(lines, 1):
            stripped = line.strip()
            if stripped.startswith("#") and not stripped.startswith("#!"):
                prev_comment = stripped.lstrip("#").strip()
                continue
            found = None
            m = _SH_FUNC.match(stripped) or _SH_FUNC_KEYWORD.match(stripped)
            if m:
                found = (m.group(1), "function")
            elif m := _SH_EXPORT.match(stripped):
                found = (m.group(1), "variable")
            elif m := _SH_READONLY.match(stripped):
                found = (m.group(1), "constant")
            if found:
                symbols.append(_symbol(file_path, found[0], found[1], lineno, doc=prev_comment))
                prev_comment = ""
            elif stripped:
                prev_comment = ""
        return _finish(symbols, self._summary(lines))

    @staticmethod
    def _summary(lines: list[str]) -> str:
        shell = "shell"
        start = 0
        if lines and lines[0].startswith("#!"):
            start = 1
            shebang = lines[0]
            if "bash" in shebang:
                shell = "bash"
            elif "zsh" in shebang:
                shell = "zsh"
            elif "sh" in shebang:
                shell = "sh"
        for line in lines[start:20]:
            stripped = line.strip()
            if stripped.startswith("#") and not stripped.startswith("#!"):
                return stripped.lstrip("#").strip() or f"{shell.capitalize()} script"
            if stripped:
                break
        return f"{shell.capitalize()} script"


# ── HCL / Terraform ──────────────────────────────────────────────────────────

_HCL_BLOCK = re.compile(
    r'^(resource|data|variable|output|module|provider|terraform|locals)\s+'
    r'(?:"([^"]+)"\s+)?(?:"([^"]+)"\s*)?\{'
)
_HCL_BARE_BLOCK = re.compile(r"^(terraform|locals)\s*\{")
_HCL_KINDS = {
    "resource": "class",
    "data": "property",
    "variable": "variable",
    "output": "property",
    "module": "module",
    "provider": "namespace",
    "terraform": "namespace",
    "locals": "namespace",
}
_HCL_FILES = {
    "main.tf": "Main Terraform configuration",
    "variables.tf": "Terraform variable definitions",
    "outputs.tf": "Terraform output definitions",
    "providers.tf": "Terraform provider configuration",
    "versions.tf": "Terraform version constraints",
    "backend.tf": "Terraform backend configuration",
}


class HclParser(LanguageParser):
    """Blocks become ``resource.aws_instance.web`` style symbols."""

    language = "hcl"

    def parse(self, content: str, file_path: str) -> ParseResult:
        symbols: list[Symbol] = []
        prev_comment = ""
        for lineno, line in enumerate(content.split("\n"), 1):
            stripped = line.strip()
            if stripped.startswith(("#", "//")):
                prev_comment = stripped.lstrip("#/").strip()
                continue
            m = _HCL_BLOCK.match(stripped) or _HCL_BARE_BLOCK.match(stripped)
            if m:
                block = m.group(1)
                labels = [g for g in m.groups()[1:] if g]
                name = ".".join([block] + labels)
                symbols.append(_symbol(file_path, name, _HCL_KINDS[block], lineno,
                                       type_annotation=block, doc=prev_comment))
                prev_comment = ""
                continue
            if stripped:
                prev_comment = ""
        name = PurePosixPath(file_path).name
        summary = _HCL_FILES.get(name)
        if summary is None:
            summary = "HCL configuration" if name.endswith(".hcl") else "Terraform configuration"
        return _finish(symbols, summary)


# ── Markdown ─────────────────────────────────────────────────────────────────

_MD_HEADING = re.compile(r"^(#{1,6})\s+(.+)$")
_MD_INLINE = (
    (re.compile(r"\[([^\]]*)\]\([^)]*\)"), r"\1"),
    (re.compile(r"`([^`]*)`"), r"\1"),
    (re.compile(r"\*\*([^*]*)\*\*"), r"\1"),
    (re.compile(r"\*([^*]*)\*"), r"\1"),
)
_MD_HTML_TAG_LINE = re.compile(r"^</?[a-z][^>]*>$", re.IGNORECASE)
_MD_LINK_LINE = re.compile(r"^(\s*<a\s|.*•.*<a\s)", re.IGNORECASE)
_MD_TAGS = re.compile(r"<[^>]+>")
_MD_FILES = {
    "readme.md": "Project README",
    "contributing.md": "Contributing guide",
    "changelog.md": "Project changelog",
    "license.md": "License information",
}


def _strip_inline(value: str) -> str:
    for pattern, repl in _MD_INLINE:
        value = pattern.sub(repl, value)
    return value.strip()


def _prose_summary(lines: list[str]) -> str:
    """First real sentence, skipping headings, badges, HTML and fences."""
    for line in lines:
        stripped = line.strip()
        if not stripped:
            continue
        if _MD_HTML_TAG_LINE.match(stripped) or stripped.startswith("<!--"):
            continue
        if stripped.startswith("[![") or stripped.lower().startswith("<img "):
            continue
        if _MD_LINK_LINE.match(stripped):
            continue
        if stripped.startswith(("---", "```")) or _MD_HEADING.match(stripped):
            continue
        text = _MD_TAGS.sub("", stripped).strip()
        if not text or (len(text) < 20 and "." not in text):
            continue
        return text[:200]
    return ""


class MarkdownParser(LanguageParser):
    """Headings become properties typed ``h1`` .. ``h6``."""

    language = "markdown"

    def parse(self, content: str, file_path: str) -> ParseResult:
        lines = content.split("\n")
        symbols: list[Symbol] = []
        first_heading = ""
        for lineno, line in enumerate(lines, 1):
            m = _MD_HEADING.match(line)
            if not m:
                continue
            title = _strip_inline(m.group(2))
            first_heading = first_heading or m.group(2).strip()
            symbols.append(_symbol(file_path, title, "property", lineno,
                                   type_annotation=f"h{len(m.group(1))}"))
        summary = _prose_summary(lines) or first_heading or _MD_FILES.get(_basename(file_path), "")
        return _finish(symbols, summary)


# ── fallback ─────────────────────────────────────────────────────────────────

_COMMENT_LINE = (
    re.compile(r"^\s*#\s*(.+)$"),
    re.compile(r"^\s*//\s*(.+)$"),
    re.compile(r"^\s*/\*\*?\s*(.+)$"),
    re.compile(r"^\s*--\s*(.+)$"),
    re.compile(r"^\s*<!--\s*(.+)$"),
)


class TextParser(LanguageParser):
    """No symbols; the module doc is a leading comment line, if there is one."""

    def __init__(self, language: str):
        self.language = language

    def parse(self, content: str, file_path: str) -> ParseResult:
        for line in content.split("\n")[:10]:
            if not line.strip():
                continue
            for pattern in _COMMENT_LINE:
                m = pattern.match(line)
                if m:
                    summary = m.group(1).strip().removesuffix("*/").removesuffix("-->").strip()
                    return _finish([], summary)
            # only a comment on the first non-empty line counts
            break
        return ParseResult()
