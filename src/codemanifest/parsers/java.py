"""Java symbol extraction.

Export rule: a declaration is exported when it is ``public``.  Members of an
interface are implicitly public.  Declarations without a modifier are
package-private and reported as ``internal``.
"""

import logging

from tree_sitter import Node

from ..models import ImportInfo, ImportSpecifier, Parameter, ReturnInfo, Symbol
from .base import (
    ParseResult, TreeSitterParser, block_comment_doc, child_of_type,
    children_of_type, location, make_id, preceding_comments, signature, text,
)

log = logging.getLogger(__name__)

_COMMENTS = ("block_comment", "line_comment")
_TYPE_DECLS = {
    "class_declaration": "class",
    "record_declaration": "class",
    "interface_declaration": "interface",
    "annotation_type_declaration": "interface",
    "enum_declaration": "enum",
}


def _modifiers(node: Node) -> tuple[set[str], list[str]]:
    """Keyword modifiers and annotation texts of a declaration."""
    mods = child_of_type(node, "modifiers")
    keywords: set[str] = set()
    annotations: list[str] = []
    if mods is None:
        return keywords, annotations
    for child in mods.children:
        if child.type in ("marker_annotation", "annotation"):
            annotations.append(text(child).removeprefix("@"))
        else:
            keywords.add(text(child))
    return keywords, annotations


def _visibility(keywords: set[str], in_interface: bool = False) -> str:
    for vis in ("public", "protected", "private"):
        if vis in keywords:
            return vis
    return "public" if in_interface else "internal"


def _javadoc(node: Node):
    comments = preceding_comments(node, _COMMENTS)
    if comments and text(comments[-1]).startswith("/**"):
        return block_comment_doc(text(comments[-1]))
    return None


def _import(node: Node) -> ImportInfo | None:
    raw = " ".join(text(node).split()).removeprefix("import").rstrip(";").strip()
    is_static = raw.startswith("static ")
    raw = raw.removeprefix("static ").replace(" ", "")
    if not raw:
        return None
    base, _, last = raw.rpartition(".")
    if last == "*":
        return ImportInfo(source=base, specifiers=[ImportSpecifier(name="*", is_namespace=True)])
    # static imports name a member; the source is its owning class
    return ImportInfo(
        source=base if is_static else raw,
        specifiers=[ImportSpecifier(name=last)],
    )


def _parameters(node: Node) -> list[Parameter]:
    out: list[Parameter] = []
    params = node.child_by_field_name("parameters")
    if params is None:
        return out
    for p in params.children:
        if p.type == "formal_parameter":
            out.append(Parameter(
                name=text(p.child_by_field_name("name")),
                type=text(p.child_by_field_name("type")) or None,
            ))
        elif p.type == "spread_parameter":
            declarator = child_of_type(p, "variable_declarator")
            type_node = next((c for c in p.children if c.is_named and c.type not in
                              ("modifiers", "variable_declarator")), None)
            out.append(Parameter(
                name=text(declarator.child_by_field_name("name")) if declarator else "args",
                type=(text(type_node) + "...") if type_node else None,
                rest=True,
                optional=True,
            ))
    return out


def _type_list(node: Node | None) -> list[str]:
    if node is None:
        return []
    holder = child_of_type(node, "type_list") or node
    return [text(c) for c in holder.children if c.is_named]


class JavaParser(TreeSitterParser):
    language = "java"
    grammar = "java"

    def extract(self, root: Node, file_path: str, result: ParseResult) -> None:
        for node in root.children:
            t = node.type
            if t == "package_declaration":
                result.module_doc = _javadoc(node)
            elif t == "import_declaration":
                imp = _import(node)
                if imp is not None:
                    result.imports.append(imp)
            elif t in _TYPE_DECLS:
                self._type(node, file_path, result, parent=None)

    def _type(self, node: Node, file_path: str, result: ParseResult,
              parent: Symbol | None) -> Symbol | None:
        name = text(node.child_by_field_name("name"))
        if not name:
            return None
        keywords, annotations = _modifiers(node)
        in_interface = parent is not None and parent.kind == "interface"
        visibility = _visibility(keywords, in_interface)
        exported = visibility == "public" and (parent is None or parent.exported)
        kind = _TYPE_DECLS[node.type]

        bases: list[str] = []
        superclass = node.child_by_field_name("superclass")
        if superclass is not None:
            bases = [text(c) for c in superclass.children if c.is_named]
        ext_ifaces = child_of_type(node, "extends_interfaces")
        if ext_ifaces is not None:
            bases.extend(_type_list(ext_ifaces))
        # an interface extending several others keeps the rest as implements
        implements = bases[1:] + _type_list(node.child_by_field_name("interfaces"))

        sym = Symbol(
            id=make_id(file_path, name, parent.name if parent else None),
            name=name,
            kind=kind,
            visibility=visibility,
            location=location(node, file_path),
            exported=exported,
            docs=_javadoc(node),
            parent_id=parent.id if parent else None,
            extends=bases[0] if bases else None,
            implements=implements or None,
            decorators=annotations or None,
            signature=signature(node),
        )
        if parent is None:
            result.add(sym)
        else:
            result.symbols.append(sym)
        self._members(node.child_by_field_name("body"), sym, file_path, result)
        return sym

    def _members(self, body: Node | None, owner: Symbol, file_path: str,
                 result: ParseResult) -> None:
        if body is None:
            return
        members = list(body.children)
        for decls in children_of_type(body, "enum_body_declarations"):
            members.extend(decls.children)

        children: list[str] = []
        in_interface = owner.kind == "interface"
        for member in members:
            t = member.type
            if t in _TYPE_DECLS:
                nested = self._type(member, file_path, result, parent=owner)
                if nested is not None:
                    children.append(nested.id)
                continue
            if t == "enum_constant":
                name = text(member.child_by_field_name("name"))
                sym = self._member(member, owner, file_path, name, "constant",
                                   owner.visibility, [])
            elif t in ("method_declaration", "constructor_declaration"):
                keywords, annotations = _modifiers(member)
                name = text(member.child_by_field_name("name"))
                sym = self._member(member, owner, file_path, name, "method",
                                   _visibility(keywords, in_interface), annotations)
                parameters = _parameters(member)
                sym.parameters = parameters or None
                ret = text(member.child_by_field_name("type"))
                sym.returns = ReturnInfo(type=ret) if ret else None
                throws = child_of_type(member, "throws")
                if throws is not None and sym.docs is not None and not sym.docs.throws:
                    sym.docs.throws = [text(c) for c in throws.children if c.is_named]
            elif t in ("field_declaration", "constant_declaration"):
                keywords, annotations = _modifiers(member)
                kind = "constant" if t == "constant_declaration" or {"static", "final"} <= keywords else "property"
                for declarator in children_of_type(member, "variable_declarator"):
                    name = text(declarator.child_by_field_name("name"))
                    sym = self._member(member, owner, file_path, name, kind,
                                       _visibility(keywords, in_interface), annotations)
                    sym.type_annotation = text(member.child_by_field_name("type")) or None
                    sym.signature = signature(member, stop="=").rstrip(";").strip()
                    result.symbols.append(sym)
                    children.append(sym.id)
                continue
            else:
                continue
            if not sym.name:
                continue
            result.symbols.append(sym)
            children.append(sym.id)
        owner.children = children or None

    def _member(self, node: Node, owner: Symbol, file_path: str, name: str, kind: str,
                visibility: str, annotations: list[str]) -> Symbol:
        return Symbol(
            id=make_id(file_path, name, owner.name),
            name=name,
            kind=kind,
            visibility=visibility,
            location=location(node, file_path),
            exported=owner.exported and visibility == "public",
            docs=_javadoc(node),
            parent_id=owner.id,
            decorators=annotations or None,
            signature=signature(node).rstrip(";").strip(),
        )
