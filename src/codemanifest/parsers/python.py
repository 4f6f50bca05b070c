"""Python symbol extraction.

Export rule: when the module defines ``__all__`` only the names listed there
are exported; otherwise every top-level name without a leading underscore is.
Dunder names (``__init__``) count as public.
"""

import logging
import re

from tree_sitter import Node

from ..models import DocComment, ImportInfo, ImportSpecifier, Parameter, ReturnInfo, Symbol
from .base import (
    ParseResult, TreeSitterParser, child_of_type, location, make_id,
    strip_quotes, text,
)

log = logging.getLogger(__name__)

_SKIP_PARAMS = ("self", "cls")
_STRING_PREFIX = re.compile(r"^[rRuUbBfF]{0,2}")
_GOOGLE_SECTION = re.compile(
    r"^(Raises?|Yields?|Notes?|Examples?|Attributes?|See Also|References?|Warnings?|Todo):",
    re.IGNORECASE,
)
_GOOGLE_PARAM = re.compile(r"^\*{0,2}(\w+)\s*(?:\([^)]*\))?\s*:\s*(.*)")
_NUMPY_PARAMS = re.compile(r"Parameters\s*\n\s*-+\s*\n(.*?)(?=\n\s*\w[\w ]*\s*\n\s*-+|\Z)", re.DOTALL)
_REST_PARAM = re.compile(r":param\s+(?:\w+\s+)?(\w+):\s*(.*)")
_REST_RETURN = re.compile(r":returns?:\s*(.*)")


def _is_public(name: str) -> bool:
    if name.startswith("__") and name.endswith("__"):
        return True
    return bool(name) and not name.startswith("_")


# ── docstrings ───────────────────────────────────────────────────────────────

def _string_body(raw: str) -> str:
    raw = _STRING_PREFIX.sub("", raw.strip(), count=1)
    for quote in ('"""', "'''"):
        if raw.startswith(quote) and raw.endswith(quote) and len(raw) >= 6:
            return raw[3:-3]
    return strip_quotes(raw)


def parse_docstring(raw: str) -> DocComment | None:
    content = _string_body(raw)
    lines = [line.strip() for line in content.strip().splitlines()]
    if not lines:
        return None

    params: dict[str, str] = {}
    returns: str | None = None
    section = ""
    for line in lines[1:]:
        if re.match(r"^Args?:|^Arguments:|^Parameters:", line, re.IGNORECASE):
            section = "args"
            continue
        if re.match(r"^Returns?:", line, re.IGNORECASE):
            section = "returns"
            continue
        if _GOOGLE_SECTION.match(line):
            section = "other"
            continue
        if section == "args":
            m = _GOOGLE_PARAM.match(line)
            if m:
                params[m.group(1)] = m.group(2)
        elif section == "returns" and line:
            returns = f"{returns} {line}" if returns else line

    numpy = _NUMPY_PARAMS.search(content)
    if numpy:
        current = ""
        for line in numpy.group(1).splitlines():
            stripped = line.strip()
            m = re.match(r"^(\w+)\s*:", stripped)
            if m:
                current = m.group(1)
                desc = stripped[m.end():].strip()
                if desc:
                    params[current] = desc
            elif current and stripped:
                params[current] = f"{params[current]} {stripped}" if params.get(current) else stripped

    for m in _REST_PARAM.finditer(content):
        params[m.group(1)] = m.group(2)
    rest_return = _REST_RETURN.search(content)
    if rest_return:
        returns = rest_return.group(1)

    return DocComment(
        summary=lines[0],
        description=content.strip() if len(lines) > 1 else None,
        params=params or None,
        returns=returns,
    )


def _docstring(block: Node | None) -> DocComment | None:
    if block is None:
        return None
    for child in block.children:
        if child.type == "comment":
            continue
        if child.type != "expression_statement":
            return None
        string = child_of_type(child, "string")
        return parse_docstring(text(string)) if string is not None else None
    return None


# ── imports ──────────────────────────────────────────────────────────────────

def _imports(node: Node) -> list[ImportInfo]:
    out: list[ImportInfo] = []
    if node.type == "import_statement":
        for child in node.children:
            if child.type == "dotted_name":
                name = text(child)
                out.append(ImportInfo(source=name, specifiers=[ImportSpecifier(name=name)]))
            elif child.type == "aliased_import":
                name = text(child.child_by_field_name("name"))
                alias = text(child.child_by_field_name("alias")) or None
                out.append(ImportInfo(
                    source=name, specifiers=[ImportSpecifier(name=name, alias=alias)],
                ))
        return out

    module = node.child_by_field_name("module_name")
    source = text(module)
    if not source:
        return out
    specifiers: list[ImportSpecifier] = []
    for child in node.children:
        if child == module:
            continue
        if child.type == "dotted_name":
            specifiers.append(ImportSpecifier(name=text(child)))
        elif child.type == "aliased_import":
            specifiers.append(ImportSpecifier(
                name=text(child.child_by_field_name("name")),
                alias=text(child.child_by_field_name("alias")) or None,
            ))
        elif child.type == "wildcard_import":
            specifiers.append(ImportSpecifier(name="*", is_namespace=True))
    out.append(ImportInfo(source=source, specifiers=specifiers))
    return out


# ── parameters ───────────────────────────────────────────────────────────────

def _parameters(params: Node | None) -> list[Parameter]:
    out: list[Parameter] = []
    if params is None:
        return out
    for p in params.children:
        t = p.type
        if t == "identifier":
            name = text(p)
            if name not in _SKIP_PARAMS:
                out.append(Parameter(name=name))
        elif t == "typed_parameter":
            inner = child_of_type(p, "identifier", "list_splat_pattern", "dictionary_splat_pattern")
            name = text(inner).lstrip("*")
            rest = inner is not None and inner.type != "identifier"
            if name in _SKIP_PARAMS:
                continue
            out.append(Parameter(
                name=name, type=text(p.child_by_field_name("type")) or None,
                optional=rest, rest=rest,
            ))
        elif t in ("default_parameter", "typed_default_parameter"):
            name = text(p.child_by_field_name("name"))
            if name in _SKIP_PARAMS:
                continue
            out.append(Parameter(
                name=name,
                type=text(p.child_by_field_name("type")) or None,
                default_value=text(p.child_by_field_name("value")) or None,
                optional=True,
            ))
        elif t in ("list_splat_pattern", "dictionary_splat_pattern"):
            out.append(Parameter(name=text(p).lstrip("*"), optional=True, rest=True))
    return out


def _signature(node: Node) -> str:
    name = text(node.child_by_field_name("name"))
    if node.type == "class_definition":
        bases = node.child_by_field_name("superclasses")
        return f"class {name}{text(bases)}"
    prefix = "async def" if any(c.type == "async" for c in node.children) else "def"
    params = text(node.child_by_field_name("parameters")) or "()"
    ret = text(node.child_by_field_name("return_type"))
    sig = f"{prefix} {name}{params}" + (f" -> {ret}" if ret else "")
    return " ".join(sig.split())


def _unwrap(node: Node) -> tuple[Node, list[str]]:
    """``decorated_definition`` → (inner definition, decorator names)."""
    if node.type != "decorated_definition":
        return node, []
    decorators = [text(d).lstrip("@").strip() for d in node.children if d.type == "decorator"]
    inner = node.child_by_field_name("definition") or node.children[-1]
    return inner, decorators


def _all_names(root: Node) -> list[str] | None:
    for node in root.children:
        if node.type != "expression_statement":
            continue
        assign = child_of_type(node, "assignment")
        if assign is None or text(assign.child_by_field_name("left")) != "__all__":
            continue
        right = assign.child_by_field_name("right")
        if right is None:
            return []
        return [strip_quotes(text(c)) for c in right.children if c.type == "string"]
    return None


class PythonParser(TreeSitterParser):
    language = "python"
    grammar = "python"

    def extract(self, root: Node, file_path: str, result: ParseResult) -> None:
        result.module_doc = _docstring(root)
        exported_names = _all_names(root)

        def exported(name: str) -> bool:
            if exported_names is not None:
                return name in exported_names
            return _is_public(name) and not name.startswith("__")

        for node in root.children:
            t = node.type
            if t in ("import_statement", "import_from_statement"):
                result.imports.extend(_imports(node))
            elif t in ("function_definition", "class_definition", "decorated_definition"):
                definition, decorators = _unwrap(node)
                name = text(definition.child_by_field_name("name"))
                if not name:
                    continue
                if definition.type == "class_definition":
                    self._class(definition, node, decorators, file_path, exported(name), result)
                else:
                    result.add(self._function(definition, node, decorators, file_path,
                                              exported(name)))
            elif t == "expression_statement":
                sym = self._assignment(node, file_path, exported)
                if sym is not None:
                    result.add(sym)

    def _function(self, node: Node, outer: Node, decorators: list[str], file_path: str,
                  exported: bool, parent: Symbol | None = None) -> Symbol:
        name = text(node.child_by_field_name("name"))
        docs = _docstring(node.child_by_field_name("body"))
        parameters = _parameters(node.child_by_field_name("parameters"))
        ret = text(node.child_by_field_name("return_type")) or None
        returns = ReturnInfo(type=ret) if ret else None
        if docs is not None:
            for p in parameters:
                if docs.params and p.name in docs.params:
                    p.description = docs.params[p.name]
            if docs.returns:
                returns = returns or ReturnInfo()
                returns.description = docs.returns
        is_property = any(d in ("property", "cached_property", "functools.cached_property")
                          for d in decorators)
        return Symbol(
            id=make_id(file_path, name, parent.name if parent else None),
            name=name,
            kind=("property" if is_property else "method") if parent else "function",
            visibility="public" if _is_public(name) else "private",
            location=location(outer, file_path),
            exported=exported,
            parameters=parameters or None,
            returns=returns,
            docs=docs,
            parent_id=parent.id if parent else None,
            decorators=decorators or None,
            is_async=True if any(c.type == "async" for c in node.children) else None,
            signature=_signature(node),
        )

    def _class(self, node: Node, outer: Node, decorators: list[str], file_path: str,
               exported: bool, result: ParseResult, parent: Symbol | None = None) -> Symbol:
        name = text(node.child_by_field_name("name"))
        bases_node = node.child_by_field_name("superclasses")
        bases = [
            text(c) for c in (bases_node.children if bases_node is not None else [])
            if c.is_named and c.type != "keyword_argument" and c.type != "comment"
        ]
        body = node.child_by_field_name("body")
        sym = Symbol(
            id=make_id(file_path, name, parent.name if parent else None),
            name=name,
            kind="class",
            visibility="public" if _is_public(name) else "private",
            location=location(outer, file_path),
            exported=exported,
            docs=_docstring(body),
            parent_id=parent.id if parent else None,
            extends=bases[0] if bases else None,
            implements=bases[1:] or None,
            decorators=decorators or None,
            signature=_signature(node),
        )
        if parent is None:
            result.add(sym)
        else:
            result.symbols.append(sym)

        children: list[str] = []
        seen: set[str] = set()
        for member in (body.children if body is not None else []):
            definition, member_decorators = _unwrap(member)
            m_name = text(definition.child_by_field_name("name"))
            if definition.type == "function_definition":
                child = self._function(definition, member, member_decorators, file_path,
                                       exported and _is_public(m_name), parent=sym)
            elif definition.type == "class_definition":
                nested = self._class(definition, member, member_decorators, file_path,
                                     exported and _is_public(m_name), result, parent=sym)
                children.append(nested.id)
                continue
            elif member.type == "expression_statement":
                child = self._class_attribute(member, file_path, sym)
            else:
                continue
            # overloads and property setters reuse a name; keep the first
            if child is None or child.id in seen:
                continue
            seen.add(child.id)
            result.symbols.append(child)
            children.append(child.id)
        sym.children = children or None
        return sym

    def _class_attribute(self, node: Node, file_path: str, parent: Symbol) -> Symbol | None:
        assign = child_of_type(node, "assignment")
        left = assign.child_by_field_name("left") if assign is not None else None
        if left is None or left.type != "identifier":
            return None
        name = text(left)
        return Symbol(
            id=make_id(file_path, name, parent.name),
            name=name,
            kind="property",
            visibility="public" if _is_public(name) else "private",
            location=location(node, file_path),
            exported=parent.exported and _is_public(name),
            type_annotation=text(assign.child_by_field_name("type")) or None,
            parent_id=parent.id,
            signature=" ".join(text(node).split())[:200],
        )

    def _assignment(self, node: Node, file_path: str, exported) -> Symbol | None:
        assign = child_of_type(node, "assignment")
        left = assign.child_by_field_name("left") if assign is not None else None
        if left is None or left.type != "identifier":
            return None
        name = text(left)
        if name == "__all__" or name.startswith("_"):
            return None
        is_constant = name.upper() == name and len(name) > 1
        return Symbol(
            id=make_id(file_path, name),
            name=name,
            kind="constant" if is_constant else "variable",
            visibility="public",
            location=location(node, file_path),
            exported=exported(name),
            type_annotation=text(assign.child_by_field_name("type")) or None,
            signature=" ".join(text(node).split())[:200],
        )
