"""PHP symbol extraction.

Export rule: top-level classes, interfaces, traits, enums and functions are
exported.  Members are exported when they are ``public``; a member without a
visibility modifier is public.
"""

import logging
import re

from tree_sitter import Node

from ..models import DocComment, ImportInfo, ImportSpecifier, Parameter, ReturnInfo, Symbol
from .base import (
    ParseResult, TreeSitterParser, block_comment_doc, child_of_type, children_of_type,
    line_comment_doc, location, make_id, preceding_comments, signature, text,
)

log = logging.getLogger(__name__)

_TYPE_DECLS = {
    "class_declaration": "class",
    "interface_declaration": "interface",
    "trait_declaration": "class",
    "enum_declaration": "enum",
}
_GROUP_USE = re.compile(r"use\s+(?:function\s+|const\s+)?([\w\\]+)\\\{([^}]+)\}")
_SINGLE_USE = re.compile(r"^\s*([\w\\]+?)(?:\s+as\s+(\w+))?\s*$")
_RETURN_TYPE = re.compile(r"\)\s*:\s*([\w|\\?]+)")
_DOC_PARAM = re.compile(r"@param\s+(?:(\S+)\s+)?(?:\.\.\.)?\$(\w+)\s*(.*)")
_DOC_RETURN = re.compile(r"@return\s+(\S+)\s*(.*)")


def _var(node: Node | None) -> str:
    return text(node).lstrip("$")


def _phpdoc(node: Node) -> DocComment | None:
    comments = preceding_comments(node)
    if not comments:
        return None
    raw = text(comments[-1])
    if not raw.startswith("/**"):
        return line_comment_doc(comments[-1:]) if raw.startswith(("//", "#")) else None
    doc = block_comment_doc(raw)
    if doc is None:
        return None
    # PHPDoc puts the type before the $name, unlike JSDoc
    params = {m.group(2): m.group(3).strip() for m in _DOC_PARAM.finditer(raw)}
    doc.params = params or None
    ret = _DOC_RETURN.search(raw)
    if ret is not None:
        doc.returns = ret.group(2).rstrip("*/").strip() or None
    return doc


def _doc_return_type(node: Node) -> str | None:
    comments = preceding_comments(node)
    if comments and text(comments[-1]).startswith("/**"):
        m = _DOC_RETURN.search(text(comments[-1]))
        if m:
            return m.group(1)
    return None


def _use(node: Node) -> list[ImportInfo]:
    raw = " ".join(text(node).split())
    group = _GROUP_USE.search(raw)
    if group is not None:
        prefix = group.group(1)
        specifiers = []
        for item in group.group(2).split(","):
            m = _SINGLE_USE.match(item)
            if m:
                specifiers.append(ImportSpecifier(name=m.group(1), alias=m.group(2)))
        return [ImportInfo(source=prefix, specifiers=specifiers)]

    body = re.sub(r"^use\s+(?:function\s+|const\s+)?", "", raw).rstrip(";")
    out = []
    for item in body.split(","):
        m = _SINGLE_USE.match(item)
        if m is None:
            continue
        source = m.group(1).lstrip("\\")
        out.append(ImportInfo(source=source, specifiers=[
            ImportSpecifier(name=source.rpartition("\\")[2], alias=m.group(2)),
        ]))
    return out


def _visibility(node: Node) -> str:
    mod = child_of_type(node, "visibility_modifier")
    return text(mod) if mod is not None else "public"


def _attributes(node: Node) -> list[str]:
    return [text(g).removeprefix("#[").removesuffix("]")
            for lst in children_of_type(node, "attribute_list")
            for g in children_of_type(lst, "attribute_group")]


def _parameters(node: Node) -> list[Parameter]:
    params = node.child_by_field_name("parameters") or child_of_type(node, "formal_parameters")
    out: list[Parameter] = []
    for p in (params.children if params is not None else []):
        if p.type not in ("simple_parameter", "variadic_parameter", "property_promotion_parameter"):
            continue
        name_node = p.child_by_field_name("name") or child_of_type(p, "variable_name")
        default = p.child_by_field_name("default_value")
        variadic = p.type == "variadic_parameter"
        out.append(Parameter(
            name=_var(name_node) or "args",
            type=text(p.child_by_field_name("type")) or None,
            default_value=text(default) or None,
            optional=True if default is not None or variadic else None,
            rest=True if variadic else None,
        ))
    return out


def _return_type(node: Node) -> str | None:
    ret = text(node.child_by_field_name("return_type"))
    if ret:
        return ret.lstrip(":").strip()
    m = _RETURN_TYPE.search(signature(node))
    return m.group(1) if m else None


def _bases(node: Node) -> tuple[str | None, list[str]]:
    base = child_of_type(node, "base_clause")
    names = [text(c) for c in base.children if c.is_named] if base is not None else []
    iface = child_of_type(node, "class_interface_clause")
    implements = [text(c) for c in iface.children if c.is_named] if iface is not None else []
    if node.type == "interface_declaration":
        # interfaces extend interfaces
        return None, names + implements
    return (names[0] if names else None), names[1:] + implements


class PhpParser(TreeSitterParser):
    language = "php"
    grammar = "php"

    def extract(self, root: Node, file_path: str, result: ParseResult) -> None:
        result.module_doc = self._file_doc(root)
        self._scope(root, file_path, result)

    def _file_doc(self, root: Node) -> DocComment | None:
        for node in root.children:
            if node.type == "php_tag":
                continue
            if node.type != "comment" or not text(node).startswith("/**"):
                return None
            following = node.next_sibling
            # a docblock glued to a declaration documents the declaration
            if following is not None and (following.type in _TYPE_DECLS
                                          or following.type == "function_definition"):
                return None
            return block_comment_doc(text(node))
        return None

    def _scope(self, node: Node, file_path: str, result: ParseResult) -> None:
        for child in node.children:
            t = child.type
            if t == "namespace_use_declaration":
                result.imports.extend(_use(child))
            elif t == "namespace_definition":
                body = child.child_by_field_name("body") or child_of_type(
                    child, "compound_statement")
                if body is not None:
                    self._scope(body, file_path, result)
            elif t in _TYPE_DECLS:
                self._type(child, file_path, result)
            elif t == "function_definition":
                sym = self._callable(child, file_path, None, "public")
                if sym is not None:
                    result.add(sym)
            elif t == "const_declaration":
                for sym in self._constants(child, file_path, None, "public"):
                    result.add(sym)

    def _type(self, node: Node, file_path: str, result: ParseResult) -> None:
        name = text(node.child_by_field_name("name") or child_of_type(node, "name"))
        if not name:
            return
        extends, implements = _bases(node)
        sym = result.add(Symbol(
            id=make_id(file_path, name),
            name=name,
            kind=_TYPE_DECLS[node.type],
            visibility="public",
            location=location(node, file_path),
            exported=True,
            docs=_phpdoc(node),
            extends=extends,
            implements=implements or None,
            decorators=_attributes(node) or None,
            signature=signature(node),
        ))
        body = node.child_by_field_name("body") or child_of_type(
            node, "declaration_list", "enum_declaration_list")

        children: list[str] = []
        for member in (body.children if body is not None else []):
            t = member.type
            if t == "method_declaration":
                members = [self._callable(member, file_path, sym, _visibility(member))]
            elif t == "property_declaration":
                members = self._properties(member, file_path, sym)
            elif t == "const_declaration":
                members = self._constants(member, file_path, sym, _visibility(member))
            elif t == "enum_case":
                case = text(member.child_by_field_name("name") or child_of_type(member, "name"))
                members = [self._member(member, file_path, sym, case, "constant", "public")]
            else:
                continue
            for child in members:
                if child is None or not child.name:
                    continue
                result.symbols.append(child)
                children.append(child.id)
        sym.children = children or None

    def _member(self, node: Node, file_path: str, owner: Symbol | None, name: str,
                kind: str, visibility: str) -> Symbol:
        return Symbol(
            id=make_id(file_path, name, owner.name if owner else None),
            name=name,
            kind=kind,
            visibility=visibility,
            location=location(node, file_path),
            exported=visibility == "public" and (owner is None or owner.exported),
            docs=_phpdoc(node),
            parent_id=owner.id if owner else None,
            decorators=_attributes(node) or None,
            signature=signature(node).rstrip(";").strip(),
        )

    def _callable(self, node: Node, file_path: str, owner: Symbol | None,
                  visibility: str) -> Symbol | None:
        name = text(node.child_by_field_name("name") or child_of_type(node, "name"))
        if not name:
            return None
        sym = self._member(node, file_path, owner, name,
                           "method" if owner is not None else "function", visibility)
        parameters = _parameters(node)
        if sym.docs is not None and sym.docs.params:
            for p in parameters:
                p.description = sym.docs.params.get(p.name)
        sym.parameters = parameters or None
        ret = _return_type(node) or _doc_return_type(node)
        if ret or (sym.docs is not None and sym.docs.returns):
            sym.returns = ReturnInfo(type=ret, description=sym.docs.returns if sym.docs else None)
        return sym

    def _properties(self, node: Node, file_path: str, owner: Symbol) -> list[Symbol]:
        out = []
        type_node = node.child_by_field_name("type")
        for element in children_of_type(node, "property_element"):
            name = _var(element.child_by_field_name("name") or child_of_type(element, "variable_name"))
            sym = self._member(node, file_path, owner, name, "property", _visibility(node))
            sym.type_annotation = text(type_node) or None
            sym.signature = signature(node, stop="=").rstrip(";").strip()
            out.append(sym)
        return out

    def _constants(self, node: Node, file_path: str, owner: Symbol | None,
                   visibility: str) -> list[Symbol]:
        out = []
        for element in children_of_type(node, "const_element"):
            name = text(element.child_by_field_name("name") or child_of_type(element, "name"))
            sym = self._member(node, file_path, owner, name, "constant", visibility)
            sym.signature = " ".join(text(element).split())[:200]
            out.append(sym)
        return out
