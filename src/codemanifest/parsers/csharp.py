"""C# symbol extraction.

Export rule: a declaration is exported when it is visible outside its file's
type, i.e. ``public`` or ``internal``.  Top-level types without a modifier are
``internal``; members without one are ``private``, except inside an interface
where they are implicitly public.  A member is only exported when its owning
type is.
"""

import logging
import re

from tree_sitter import Node

from ..models import DocComment, ImportInfo, ImportSpecifier, Parameter, ReturnInfo, Symbol
from .base import (
    ParseResult, TreeSitterParser, child_of_type, children_of_type, doc_from_lines,
    line_comment_doc, location, make_id, preceding_comments, signature, text,
)

log = logging.getLogger(__name__)

_TYPE_DECLS = {
    "class_declaration": "class",
    "struct_declaration": "class",
    "record_declaration": "class",
    "record_struct_declaration": "class",
    "interface_declaration": "interface",
    "enum_declaration": "enum",
}
_NAMESPACES = ("namespace_declaration", "file_scoped_namespace_declaration")
_EXPORTED = ("public", "internal")

_USING = re.compile(r"using\s+(static\s+)?(?:(\w+)\s*=\s*)?([\w.]+(?:<[^>]*>)?)\s*;")
_XML_TAG = re.compile(r"<(\w+)([^>]*)>(.*?)</\1>", re.DOTALL)
_XML_NAME = re.compile(r'name\s*=\s*"([^"]*)"')
_XML_INLINE = re.compile(r'<(?:see|seealso|paramref|typeparamref)\s+\w+\s*=\s*"([^"]*)"\s*/>')


def _modifiers(node: Node) -> tuple[set[str], list[str]]:
    keywords = {text(c) for c in children_of_type(node, "modifier")}
    attributes = [
        text(a) for lst in children_of_type(node, "attribute_list")
        for a in children_of_type(lst, "attribute")
    ]
    return keywords, attributes


def _visibility(keywords: set[str], default: str) -> str:
    for vis in ("public", "internal", "protected", "private"):
        if vis in keywords:
            return vis
    return default


def _xml_text(raw: str) -> str:
    raw = _XML_INLINE.sub(r"\1", raw)
    return " ".join(re.sub(r"<[^>]+>", "", raw).split())


def _xml_doc(comments: list[Node]) -> DocComment | None:
    """Parse a run of ``///`` XML documentation comments."""
    lines = [text(c) for c in comments if text(c).startswith("///")]
    if not lines:
        return line_comment_doc(comments) if comments else None
    body = "\n".join(re.sub(r"^///\s?", "", line) for line in lines)
    if "<" not in body:
        return doc_from_lines(body.splitlines())

    summary = ""
    remarks = None
    params: dict[str, str] = {}
    returns = None
    throws: list[str] = []
    examples: list[str] = []
    for tag, attrs, inner in _XML_TAG.findall(body):
        if tag == "summary":
            summary = _xml_text(inner)
        elif tag == "remarks":
            remarks = _xml_text(inner) or None
        elif tag == "param":
            m = _XML_NAME.search(attrs)
            if m:
                params[m.group(1)] = _xml_text(inner)
        elif tag == "returns":
            returns = _xml_text(inner) or None
        elif tag == "exception":
            cref = re.search(r'cref\s*=\s*"([^"]*)"', attrs)
            throws.append(" ".join(filter(None, [cref.group(1) if cref else "", _xml_text(inner)])))
        elif tag == "example":
            examples.append(inner.strip())
    if not summary and not params and returns is None:
        return None
    return DocComment(
        summary=summary,
        description=remarks,
        params=params or None,
        returns=returns,
        throws=throws or None,
        examples=examples or None,
    )


def _docs(node: Node) -> DocComment | None:
    comments = preceding_comments(node)
    # only the run that sits directly on the declaration
    tail: list[Node] = []
    for c in reversed(comments):
        if tail and c.end_point[0] + 1 < tail[0].start_point[0]:
            break
        tail.insert(0, c)
    return _xml_doc(tail) if tail else None


def _using(node: Node) -> ImportInfo | None:
    m = _USING.search(" ".join(text(node).split()))
    if m is None:
        return None
    is_static, alias, source = m.group(1), m.group(2), m.group(3)
    if alias:
        return ImportInfo(source=source, specifiers=[
            ImportSpecifier(name=source.rpartition(".")[2], alias=alias),
        ])
    if is_static:
        return ImportInfo(source=source, specifiers=[
            ImportSpecifier(name=source.rpartition(".")[2]),
        ])
    return ImportInfo(source=source, specifiers=[
        ImportSpecifier(name=source, is_namespace=True),
    ])


def _parameters(node: Node) -> list[Parameter]:
    params = node.child_by_field_name("parameters") or child_of_type(node, "parameter_list")
    out: list[Parameter] = []
    for p in children_of_type(params, "parameter"):
        name = text(p.child_by_field_name("name") or child_of_type(p, "identifier"))
        default = child_of_type(p, "equals_value_clause")
        raw = text(p)
        out.append(Parameter(
            name=name,
            type=text(p.child_by_field_name("type")) or None,
            default_value=text(default).lstrip("=").strip() if default is not None else None,
            optional=True if default is not None else None,
            rest=True if raw.startswith("params ") else None,
        ))
    return out


def _bases(node: Node) -> list[str]:
    base_list = child_of_type(node, "base_list")
    if base_list is None:
        return []
    out = []
    for c in base_list.children:
        if not c.is_named:
            continue
        # primary constructor arguments are not part of the base name
        if c.type == "primary_constructor_base_type":
            c = c.children[0]
        out.append(text(c))
    return out


def _body(node: Node) -> Node | None:
    return node.child_by_field_name("body") or child_of_type(
        node, "declaration_list", "enum_member_declaration_list")


class CSharpParser(TreeSitterParser):
    language = "csharp"
    grammar = "csharp"

    def extract(self, root: Node, file_path: str, result: ParseResult) -> None:
        result.module_doc = self._file_doc(root)
        self._scope(root, file_path, result)

    def _file_doc(self, root: Node) -> DocComment | None:
        leading: list[Node] = []
        for node in root.children:
            if node.type != "comment":
                # a comment run glued to a type belongs to the type
                if node.type in _TYPE_DECLS and leading and \
                        leading[-1].end_point[0] + 1 >= node.start_point[0]:
                    return None
                break
            leading.append(node)
        return _xml_doc(leading) if leading else None

    def _scope(self, node: Node, file_path: str, result: ParseResult) -> None:
        for child in node.children:
            t = child.type
            if t == "using_directive":
                imp = _using(child)
                if imp is not None:
                    result.imports.append(imp)
            elif t in _NAMESPACES:
                body = _body(child)
                self._scope(body if body is not None else child, file_path, result)
            elif t == "declaration_list":
                self._scope(child, file_path, result)
            elif t in _TYPE_DECLS:
                self._type(child, file_path, result, parent=None)

    def _type(self, node: Node, file_path: str, result: ParseResult,
              parent: Symbol | None) -> Symbol | None:
        name = text(node.child_by_field_name("name") or child_of_type(node, "identifier"))
        if not name:
            return None
        keywords, attributes = _modifiers(node)
        visibility = _visibility(keywords, "internal" if parent is None else "private")
        kind = _TYPE_DECLS[node.type]
        bases = _bases(node)
        # an interface can only list interfaces; a class lists its base class first
        extends = bases[0] if bases and kind != "interface" else None
        implements = bases[1:] if extends else bases

        sym = Symbol(
            id=make_id(file_path, name, parent.name if parent else None),
            name=name,
            kind=kind,
            visibility=visibility,
            location=location(node, file_path),
            exported=visibility in _EXPORTED and (parent is None or parent.exported),
            docs=_docs(node),
            parent_id=parent.id if parent else None,
            extends=extends,
            implements=implements or None,
            decorators=attributes or None,
            signature=signature(node),
        )
        if parent is None:
            result.add(sym)
        else:
            result.symbols.append(sym)
        self._members(_body(node), sym, file_path, result)
        return sym

    def _members(self, body: Node | None, owner: Symbol, file_path: str,
                 result: ParseResult) -> None:
        if body is None:
            return
        default = "public" if owner.kind in ("interface", "enum") else "private"
        children: list[str] = []
        for member in body.children:
            t = member.type
            if t in _TYPE_DECLS:
                nested = self._type(member, file_path, result, parent=owner)
                if nested is not None:
                    children.append(nested.id)
                continue
            keywords, attributes = _modifiers(member)
            visibility = _visibility(keywords, default)
            if t == "enum_member_declaration":
                name = text(member.child_by_field_name("name") or child_of_type(member, "identifier"))
                syms = [self._member(member, owner, file_path, name, "constant", owner.visibility, [])]
            elif t in ("method_declaration", "constructor_declaration"):
                name = text(member.child_by_field_name("name") or child_of_type(member, "identifier"))
                sym = self._member(member, owner, file_path, name, "method", visibility, attributes)
                parameters = _parameters(member)
                if sym.docs is not None and sym.docs.params:
                    for p in parameters:
                        p.description = sym.docs.params.get(p.name)
                sym.parameters = parameters or None
                ret = text(member.child_by_field_name("returns") or member.child_by_field_name("type"))
                if ret or (sym.docs is not None and sym.docs.returns):
                    sym.returns = ReturnInfo(type=ret or None,
                                             description=sym.docs.returns if sym.docs else None)
                sym.is_async = True if "async" in keywords else None
                syms = [sym]
            elif t == "property_declaration":
                name = text(member.child_by_field_name("name") or child_of_type(member, "identifier"))
                sym = self._member(member, owner, file_path, name, "property", visibility, attributes)
                sym.type_annotation = text(member.child_by_field_name("type")) or None
                syms = [sym]
            elif t in ("field_declaration", "event_field_declaration"):
                declaration = child_of_type(member, "variable_declaration")
                kind = "constant" if "const" in keywords or {"static", "readonly"} <= keywords \
                    else "property"
                syms = []
                for declarator in children_of_type(declaration, "variable_declarator"):
                    name = text(declarator.child_by_field_name("name")
                                or child_of_type(declarator, "identifier"))
                    sym = self._member(member, owner, file_path, name, kind, visibility, attributes)
                    sym.type_annotation = text(declaration.child_by_field_name("type")) or None
                    sym.signature = signature(member, stop="=").rstrip(";").strip()
                    syms.append(sym)
            else:
                continue
            for sym in syms:
                if not sym.name:
                    continue
                result.symbols.append(sym)
                children.append(sym.id)
        owner.children = children or None

    def _member(self, node: Node, owner: Symbol, file_path: str, name: str, kind: str,
                visibility: str, attributes: list[str]) -> Symbol:
        return Symbol(
            id=make_id(file_path, name, owner.name),
            name=name,
            kind=kind,
            visibility=visibility,
            location=location(node, file_path),
            exported=owner.exported and visibility in _EXPORTED,
            docs=_docs(node),
            parent_id=owner.id,
            decorators=attributes or None,
            signature=signature(node).rstrip(";").strip(),
        )
