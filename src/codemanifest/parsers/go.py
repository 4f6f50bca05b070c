"""Go symbol extraction.

Export rule: an identifier is exported when its first letter is upper case.
Methods are members of their receiver type (``file:Type.Method``).
"""

import logging

from tree_sitter import Node

from ..models import ImportInfo, ImportSpecifier, Parameter, ReturnInfo, Symbol
from .base import (
    ParseResult, TreeSitterParser, children_of_type, is_upper_first,
    line_comment_doc, location, make_id, preceding_comments, signature,
    strip_quotes, text,
)

log = logging.getLogger(__name__)


def _visibility(name: str) -> str:
    return "public" if is_upper_first(name) else "private"


def _imports(node: Node) -> list[ImportInfo]:
    specs = children_of_type(node, "import_spec")
    for spec_list in children_of_type(node, "import_spec_list"):
        specs.extend(children_of_type(spec_list, "import_spec"))
    out: list[ImportInfo] = []
    for spec in specs:
        path = strip_quotes(text(spec.child_by_field_name("path")))
        if not path:
            continue
        alias = text(spec.child_by_field_name("name")) or None
        out.append(ImportInfo(
            source=path,
            specifiers=[ImportSpecifier(
                name=path.rsplit("/", 1)[-1],
                alias=alias,
                is_namespace=alias == ".",
            )],
        ))
    return out


def _parameters(params: Node | None) -> list[Parameter]:
    out: list[Parameter] = []
    if params is None:
        return out
    for decl in params.children:
        if decl.type not in ("parameter_declaration", "variadic_parameter_declaration"):
            continue
        rest = decl.type == "variadic_parameter_declaration"
        type_text = text(decl.child_by_field_name("type")) or None
        if rest and type_text:
            type_text = "..." + type_text
        names = [text(c) for c in decl.children if c.type == "identifier"]
        if not names:
            # unnamed parameter: only the type is known
            out.append(Parameter(name="_", type=type_text, rest=rest, optional=rest))
            continue
        for name in names:
            out.append(Parameter(name=name, type=type_text, rest=rest, optional=rest))
    return out


def _returns(node: Node) -> ReturnInfo | None:
    result = node.child_by_field_name("result")
    if result is None:
        return None
    return ReturnInfo(type=" ".join(text(result).split()))


def _receiver_type(receiver: Node | None) -> str:
    """``(s *Server)`` → ``Server``."""
    if receiver is None:
        return ""
    for decl in receiver.children:
        if decl.type == "parameter_declaration":
            raw = text(decl.child_by_field_name("type"))
            raw = raw.lstrip("*").strip()
            # generic receivers: Stack[T]
            return raw.split("[", 1)[0]
    return ""


class GoParser(TreeSitterParser):
    language = "go"
    grammar = "go"

    def extract(self, root: Node, file_path: str, result: ParseResult) -> None:
        types: dict[str, Symbol] = {}
        methods: list[Symbol] = []

        for node in root.children:
            t = node.type
            if t == "package_clause":
                result.module_doc = line_comment_doc(preceding_comments(node))
            elif t == "import_declaration":
                result.imports.extend(_imports(node))
            elif t == "function_declaration":
                result.add(self._function(node, file_path))
            elif t == "method_declaration":
                sym = self._method(node, file_path)
                if sym is not None:
                    methods.append(sym)
            elif t == "type_declaration":
                self._types(node, file_path, result, types)
            elif t in ("const_declaration", "var_declaration"):
                self._values(node, file_path, result)

        for sym in methods:
            result.add(sym)
            parent = types.get(sym.parent_id or "")
            if parent is not None:
                parent.children = (parent.children or []) + [sym.id]
            else:
                # receiver declared in another file of the package
                sym.parent_id = None

    def _function(self, node: Node, file_path: str) -> Symbol:
        name = text(node.child_by_field_name("name"))
        parameters = _parameters(node.child_by_field_name("parameters"))
        return Symbol(
            id=make_id(file_path, name),
            name=name,
            kind="function",
            visibility=_visibility(name),
            location=location(node, file_path),
            exported=is_upper_first(name),
            parameters=parameters or None,
            returns=_returns(node),
            docs=line_comment_doc(preceding_comments(node)),
            signature=signature(node),
        )

    def _method(self, node: Node, file_path: str) -> Symbol | None:
        name = text(node.child_by_field_name("name"))
        receiver = _receiver_type(node.child_by_field_name("receiver"))
        if not name or not receiver:
            return None
        parameters = _parameters(node.child_by_field_name("parameters"))
        return Symbol(
            id=make_id(file_path, name, receiver),
            name=name,
            kind="method",
            visibility=_visibility(name),
            location=location(node, file_path),
            exported=is_upper_first(name),
            parameters=parameters or None,
            returns=_returns(node),
            docs=line_comment_doc(preceding_comments(node)),
            parent_id=make_id(file_path, receiver),
            type_annotation=" ".join(text(node.child_by_field_name("receiver")).strip("()").split()),
            signature=signature(node),
        )

    def _types(self, node: Node, file_path: str, result: ParseResult,
               types: dict[str, Symbol]) -> None:
        specs = children_of_type(node, "type_spec", "type_alias")
        group_docs = line_comment_doc(preceding_comments(node))
        for spec in specs:
            name = text(spec.child_by_field_name("name"))
            if not name:
                continue
            body = spec.child_by_field_name("type")
            kind = "type"
            if body is not None and body.type == "struct_type":
                kind = "class"
            elif body is not None and body.type == "interface_type":
                kind = "interface"
            docs = line_comment_doc(preceding_comments(spec)) if len(specs) > 1 else group_docs
            sym = result.add(Symbol(
                id=make_id(file_path, name),
                name=name,
                kind=kind,
                visibility=_visibility(name),
                location=location(spec, file_path),
                exported=is_upper_first(name),
                docs=docs,
                type_annotation=None if kind != "type" else (text(body) or None),
                signature=signature(spec),
            ))
            types[sym.id] = sym
            if kind == "class":
                self._fields(body, sym, file_path, result)
            elif kind == "interface":
                self._interface_methods(body, sym, file_path, result)

    def _fields(self, struct: Node, parent: Symbol, file_path: str, result: ParseResult) -> None:
        children: list[str] = []
        for field_list in children_of_type(struct, "field_declaration_list"):
            for decl in children_of_type(field_list, "field_declaration"):
                type_text = text(decl.child_by_field_name("type")) or None
                names = [text(c) for c in decl.children if c.type == "field_identifier"]
                if not names and type_text:
                    # embedded field: its name is the type name
                    names = [type_text.lstrip("*").rsplit(".", 1)[-1]]
                for name in names:
                    sym = Symbol(
                        id=make_id(file_path, name, parent.name),
                        name=name,
                        kind="property",
                        visibility=_visibility(name),
                        location=location(decl, file_path),
                        exported=parent.exported and is_upper_first(name),
                        type_annotation=type_text,
                        docs=line_comment_doc(preceding_comments(decl)),
                        parent_id=parent.id,
                        signature=" ".join(text(decl).split()),
                    )
                    result.symbols.append(sym)
                    children.append(sym.id)
        parent.children = children or None

    def _interface_methods(self, iface: Node, parent: Symbol, file_path: str,
                           result: ParseResult) -> None:
        children: list[str] = []
        for elem in children_of_type(iface, "method_elem", "method_spec"):
            name = text(elem.child_by_field_name("name"))
            if not name:
                continue
            parameters = _parameters(elem.child_by_field_name("parameters"))
            sym = Symbol(
                id=make_id(file_path, name, parent.name),
                name=name,
                kind="method",
                visibility=_visibility(name),
                location=location(elem, file_path),
                exported=parent.exported and is_upper_first(name),
                parameters=parameters or None,
                returns=_returns(elem),
                docs=line_comment_doc(preceding_comments(elem)),
                parent_id=parent.id,
                signature=" ".join(text(elem).split()),
            )
            result.symbols.append(sym)
            children.append(sym.id)
        parent.children = children or None

    def _values(self, node: Node, file_path: str, result: ParseResult) -> None:
        kind = "constant" if node.type == "const_declaration" else "variable"
        specs = children_of_type(node, "const_spec", "var_spec")
        for spec_list in children_of_type(node, "var_spec_list"):
            specs.extend(children_of_type(spec_list, "var_spec"))
        group_docs = line_comment_doc(preceding_comments(node))
        for spec in specs:
            type_text = text(spec.child_by_field_name("type")) or None
            docs = line_comment_doc(preceding_comments(spec)) or group_docs
            for ident in children_of_type(spec, "identifier"):
                name = text(ident)
                if name == "_":
                    continue
                result.add(Symbol(
                    id=make_id(file_path, name),
                    name=name,
                    kind=kind,
                    visibility=_visibility(name),
                    location=location(spec, file_path),
                    exported=is_upper_first(name),
                    type_annotation=type_text,
                    docs=docs,
                    signature=" ".join(text(spec).split())[:200],
                ))
