"""Rust symbol extraction.

Export rule: an item is exported when it carries a bare ``pub`` visibility
modifier.  ``pub(crate)`` / ``pub(super)`` items are ``internal`` and not
exported.  ``pub use`` is recorded as a re-export.
"""

import logging
import re

from tree_sitter import Node

from ..models import DocComment, ExportInfo, ImportInfo, ImportSpecifier, Parameter, ReturnInfo, Symbol
from .base import (
    ParseResult, TreeSitterParser, child_of_type, children_of_type,
    doc_from_lines, location, make_id, signature, text,
)

log = logging.getLogger(__name__)

_COMMENTS = ("line_comment", "block_comment")
_ITEM_KINDS = {
    "function_item": "function",
    "function_signature_item": "function",
    "struct_item": "class",
    "union_item": "class",
    "enum_item": "enum",
    "trait_item": "interface",
    "type_item": "type",
    "const_item": "constant",
    "static_item": "variable",
    "mod_item": "module",
    "macro_definition": "function",
}


def _visibility(node: Node) -> tuple[str, bool]:
    vis = child_of_type(node, "visibility_modifier")
    if vis is None:
        return "private", False
    raw = text(vis).replace(" ", "")
    if raw == "pub":
        return "public", True
    return "internal", False


def _doc_comment(node: Node) -> tuple[DocComment | None, list[str]]:
    """Outer ``///`` / ``/** */`` docs above ``node``, skipping attributes."""
    lines: list[str] = []
    attributes: list[str] = []
    sibling = node.prev_sibling
    while sibling is not None:
        if sibling.type == "attribute_item":
            attributes.append(text(sibling).removeprefix("#[").removesuffix("]"))
        elif sibling.type in _COMMENTS:
            raw = text(sibling)
            if raw.startswith("///") and not raw.startswith("////"):
                lines.append(raw[3:].removeprefix(" ").rstrip())
            elif raw.startswith("/**"):
                body = raw[3:].removesuffix("*/")
                block = [ln.strip().lstrip("*").strip() for ln in body.splitlines()]
                lines.extend(reversed(block))
            else:
                break
        else:
            break
        sibling = sibling.prev_sibling
    lines.reverse()
    attributes.reverse()
    return doc_from_lines(lines), attributes


def _module_doc(root: Node) -> DocComment | None:
    lines: list[str] = []
    for child in root.children:
        if child.type not in _COMMENTS:
            break
        raw = text(child)
        if raw.startswith("//!"):
            lines.append(raw[3:].removeprefix(" ").rstrip())
        elif raw.startswith("/*!"):
            body = raw[3:].removesuffix("*/")
            lines.extend(ln.strip().lstrip("*").strip() for ln in body.splitlines())
        elif lines:
            break
    return doc_from_lines(lines)


# ── use declarations ─────────────────────────────────────────────────────────

_USE = re.compile(r"^(?:pub(?:\([^)]*\))?\s+)?use\s+(.+?);?$", re.DOTALL)
_ALIAS = re.compile(r"^([\w:]+)\s+as\s+(\w+)$")


def _use(node: Node) -> ImportInfo | None:
    m = _USE.match(text(node).strip())
    if not m:
        return None
    path = " ".join(m.group(1).split()).rstrip(";")
    brace = path.find("{")
    specifiers: list[ImportSpecifier] = []
    if brace != -1:
        base = path[:brace].rstrip(":").rstrip()
        for item in path[brace + 1:].rstrip("}").split(","):
            item = item.strip()
            if not item:
                continue
            alias = _ALIAS.match(item)
            if alias:
                specifiers.append(ImportSpecifier(name=alias.group(1), alias=alias.group(2)))
            elif item == "self":
                specifiers.append(ImportSpecifier(name=base.rsplit("::", 1)[-1]))
            elif item == "*":
                specifiers.append(ImportSpecifier(name="*", is_namespace=True))
            else:
                specifiers.append(ImportSpecifier(name=item))
        return ImportInfo(source=base, specifiers=specifiers)

    alias = _ALIAS.match(path)
    target, alias_name = (alias.group(1), alias.group(2)) if alias else (path, None)
    base, _, last = target.rpartition("::")
    specifiers.append(ImportSpecifier(name=last, alias=alias_name, is_namespace=last == "*"))
    return ImportInfo(source=base or target, specifiers=specifiers)


# ── parameters ───────────────────────────────────────────────────────────────

def _parameters(node: Node) -> list[Parameter]:
    out: list[Parameter] = []
    params = node.child_by_field_name("parameters")
    if params is None:
        return out
    for p in params.children:
        if p.type == "parameter":
            out.append(Parameter(
                name=text(p.child_by_field_name("pattern")).removeprefix("mut "),
                type=text(p.child_by_field_name("type")) or None,
            ))
        elif p.type == "variadic_parameter":
            out.append(Parameter(name="...", rest=True, optional=True))
    return out


def _returns(node: Node) -> ReturnInfo | None:
    ret = text(node.child_by_field_name("return_type"))
    return ReturnInfo(type=ret) if ret else None


def _is_async(node: Node) -> bool | None:
    modifiers = child_of_type(node, "function_modifiers")
    return True if modifiers is not None and "async" in text(modifiers) else None


class RustParser(TreeSitterParser):
    language = "rust"
    grammar = "rust"

    def extract(self, root: Node, file_path: str, result: ParseResult) -> None:
        result.module_doc = _module_doc(root)
        types: dict[str, Symbol] = {}
        impls: list[Node] = []

        for node in root.children:
            t = node.type
            if t == "use_declaration":
                imp = _use(node)
                if imp is None:
                    continue
                result.imports.append(imp)
                if _visibility(node)[1]:
                    for spec in imp.specifiers:
                        result.exports.append(ExportInfo(
                            name=spec.alias or spec.name,
                            is_re_export=True,
                            source=imp.source,
                        ))
            elif t == "impl_item":
                impls.append(node)
            elif t in _ITEM_KINDS:
                sym = self._item(node, file_path)
                if sym is None:
                    continue
                result.add(sym)
                if sym.kind in ("class", "enum", "interface"):
                    types[sym.name] = sym
                    self._members(node, sym, file_path, result)

        for node in impls:
            self._impl(node, file_path, result, types)

    def _item(self, node: Node, file_path: str, parent: Symbol | None = None) -> Symbol | None:
        name = text(node.child_by_field_name("name"))
        if not name:
            return None
        visibility, exported = _visibility(node)
        docs, attributes = _doc_comment(node)
        kind = _ITEM_KINDS[node.type]
        if parent is not None and kind == "function":
            kind = "method"
            if parent.kind == "interface":
                # trait methods are as visible as the trait
                visibility, exported = parent.visibility, parent.exported
        sym = Symbol(
            id=make_id(file_path, name, parent.name if parent else None),
            name=name,
            kind=kind,
            visibility=visibility,
            location=location(node, file_path),
            exported=exported,
            docs=docs,
            decorators=attributes or None,
            parent_id=parent.id if parent else None,
            signature=signature(node),
        )
        if node.type in ("function_item", "function_signature_item"):
            parameters = _parameters(node)
            sym.parameters = parameters or None
            sym.returns = _returns(node)
            sym.is_async = _is_async(node)
            sym.signature = signature(node).rstrip(";")
        elif node.type in ("const_item", "static_item", "type_item"):
            sym.type_annotation = text(node.child_by_field_name("type")) or None
            sym.signature = signature(node, stop="=")
        return sym

    def _members(self, node: Node, parent: Symbol, file_path: str, result: ParseResult) -> None:
        body = node.child_by_field_name("body")
        if body is None:
            return
        children: list[str] = []
        for member in body.children:
            if member.type == "field_declaration":
                name = text(member.child_by_field_name("name"))
                visibility, exported = _visibility(member)
                docs, _ = _doc_comment(member)
                sym = Symbol(
                    id=make_id(file_path, name, parent.name),
                    name=name,
                    kind="property",
                    visibility=visibility,
                    location=location(member, file_path),
                    exported=parent.exported and exported,
                    type_annotation=text(member.child_by_field_name("type")) or None,
                    docs=docs,
                    parent_id=parent.id,
                    signature=" ".join(text(member).split()),
                )
            elif member.type == "enum_variant":
                name = text(member.child_by_field_name("name"))
                docs, _ = _doc_comment(member)
                sym = Symbol(
                    id=make_id(file_path, name, parent.name),
                    name=name,
                    kind="constant",
                    visibility=parent.visibility,
                    location=location(member, file_path),
                    exported=parent.exported,
                    docs=docs,
                    parent_id=parent.id,
                    signature=" ".join(text(member).split()),
                )
            elif member.type in ("function_item", "function_signature_item"):
                sym = self._item(member, file_path, parent=parent)
            else:
                continue
            if sym is None or not sym.name:
                continue
            result.symbols.append(sym)
            children.append(sym.id)
        parent.children = children or None

    def _impl(self, node: Node, file_path: str, result: ParseResult,
              types: dict[str, Symbol]) -> None:
        type_name = text(node.child_by_field_name("type")).split("<", 1)[0].strip()
        trait = text(node.child_by_field_name("trait")) or None
        body = node.child_by_field_name("body")
        if not type_name or body is None:
            return
        owner = types.get(type_name)
        if owner is not None and trait:
            owner.implements = (owner.implements or []) + [trait]
        for member in children_of_type(body, "function_item"):
            name = text(member.child_by_field_name("name"))
            if not name:
                continue
            visibility, exported = _visibility(member)
            if trait:
                # trait impl methods take the visibility of the type
                visibility = owner.visibility if owner is not None else "public"
                exported = owner.exported if owner is not None else False
            elif owner is not None:
                exported = exported and owner.exported
            docs, attributes = _doc_comment(member)
            parameters = _parameters(member)
            sym = Symbol(
                id=make_id(file_path, name, type_name),
                name=name,
                kind="method",
                visibility=visibility,
                location=location(member, file_path),
                exported=exported,
                parameters=parameters or None,
                returns=_returns(member),
                docs=docs,
                decorators=attributes or None,
                parent_id=owner.id if owner is not None else None,
                is_async=_is_async(member),
                type_annotation=trait,
                signature=signature(member),
            )
            result.add(sym)
            if owner is not None:
                owner.children = (owner.children or []) + [sym.id]
