"""TypeScript / JavaScript symbol extraction.

Export rule: a declaration is exported when it sits inside an
``export_statement`` (``export function``, ``export default class``, ...)
or is named in an ``export { ... }`` clause.  Everything else is private to
the module.  Class members follow their accessibility modifier, ``#private``
names are private.
"""

import logging

from tree_sitter import Node

from ..models import (
    DocComment, ExportInfo, ImportInfo, ImportSpecifier, Parameter,
    ReturnInfo, Symbol,
)
from .base import (
    ParseResult, TreeSitterParser, block_comment_doc, child_of_type,
    children_of_type, line_comment_doc, location, make_id, preceding_comments,
    signature, strip_quotes, text,
)

log = logging.getLogger(__name__)

_FUNCTION_NODES = (
    "function_declaration", "generator_function_declaration",
    "function_signature",
)
_CLASS_NODES = ("class_declaration", "abstract_class_declaration", "class")
_VARIABLE_NODES = ("lexical_declaration", "variable_declaration")
_FUNCTION_VALUES = (
    "arrow_function", "function_expression", "function",
    "generator_function",
)
_PARAM_NODES = (
    "required_parameter", "optional_parameter", "identifier",
    "assignment_pattern", "rest_pattern", "object_pattern", "array_pattern",
)


def _type_text(annotation: Node | None) -> str | None:
    """``: number`` → ``number``."""
    if annotation is None:
        return None
    raw = text(annotation).strip()
    if raw.startswith(":"):
        raw = raw[1:].strip()
    return raw or None


def _docs(node: Node) -> DocComment | None:
    comments = preceding_comments(node)
    if not comments:
        return None
    last = text(comments[-1])
    if last.startswith("/**"):
        return block_comment_doc(last)
    return line_comment_doc(comments)


def _module_doc(root: Node) -> DocComment | None:
    leading: list[Node] = []
    for child in root.children:
        if child.type == "comment":
            leading.append(child)
            continue
        break
    if not leading:
        return None
    first = text(leading[0])
    if first.startswith("#!"):
        leading = leading[1:]
        if not leading:
            return None
    last = text(leading[-1])
    if last.startswith("/**"):
        return block_comment_doc(last)
    return line_comment_doc(leading)


# ── imports ──────────────────────────────────────────────────────────────────

def _import(node: Node) -> ImportInfo | None:
    source_node = node.child_by_field_name("source") or child_of_type(node, "string")
    if source_node is None:
        return None
    type_only = any(c.type == "type" for c in node.children)
    specifiers: list[ImportSpecifier] = []
    clause = child_of_type(node, "import_clause")
    if clause is not None:
        for part in clause.children:
            if part.type == "identifier":
                specifiers.append(ImportSpecifier(name=text(part), is_default=True))
            elif part.type == "namespace_import":
                ident = child_of_type(part, "identifier")
                specifiers.append(ImportSpecifier(
                    name="*", alias=text(ident) or None, is_namespace=True,
                ))
            elif part.type == "named_imports":
                for spec in children_of_type(part, "import_specifier"):
                    name = spec.child_by_field_name("name")
                    alias = spec.child_by_field_name("alias")
                    specifiers.append(ImportSpecifier(
                        name=text(name) or text(spec),
                        alias=text(alias) or None,
                    ))
    return ImportInfo(
        source=strip_quotes(text(source_node)),
        specifiers=specifiers,
        is_type_only=type_only,
    )


def _require_source(value: Node | None) -> str | None:
    """``require('./x')`` → ``./x``."""
    if value is None or value.type != "call_expression":
        return None
    fn = value.child_by_field_name("function")
    if text(fn) != "require":
        return None
    args = value.child_by_field_name("arguments")
    arg = child_of_type(args, "string")
    return strip_quotes(text(arg)) if arg is not None else None


# ── parameters ───────────────────────────────────────────────────────────────

def _parameters(params: Node | None) -> list[Parameter]:
    out: list[Parameter] = []
    if params is None:
        return out
    for p in params.children:
        if p.type not in _PARAM_NODES:
            continue
        if p.type in ("required_parameter", "optional_parameter"):
            pattern = p.child_by_field_name("pattern")
            value = p.child_by_field_name("value")
            rest = pattern is not None and pattern.type == "rest_pattern"
            name = text(pattern)
            if rest:
                name = name.lstrip(".")
            if name == "this":
                continue
            out.append(Parameter(
                name=name,
                type=_type_text(p.child_by_field_name("type")),
                default_value=text(value) or None,
                optional=p.type == "optional_parameter" or value is not None or rest,
                rest=rest,
            ))
        elif p.type == "assignment_pattern":
            left = p.child_by_field_name("left")
            right = p.child_by_field_name("right")
            out.append(Parameter(
                name=text(left), default_value=text(right) or None, optional=True,
            ))
        elif p.type == "rest_pattern":
            out.append(Parameter(name=text(p).lstrip("."), optional=True, rest=True))
        else:
            out.append(Parameter(name=text(p)))
    return out


def _callable_parts(node: Node) -> tuple[list[Parameter], ReturnInfo | None]:
    params = node.child_by_field_name("parameters")
    if params is None:
        single = node.child_by_field_name("parameter")
        parameters = [Parameter(name=text(single))] if single is not None else []
    else:
        parameters = _parameters(params)
    ret = _type_text(node.child_by_field_name("return_type"))
    return parameters, (ReturnInfo(type=ret) if ret else None)


def _is_async(node: Node) -> bool | None:
    return True if any(c.type == "async" for c in node.children) else None


def _decorators(node: Node) -> list[str] | None:
    names = [text(d).lstrip("@") for d in children_of_type(node, "decorator")]
    return names or None


def _with_doc_params(parameters: list[Parameter], returns: ReturnInfo | None,
                     docs: DocComment | None) -> ReturnInfo | None:
    if docs is None:
        return returns
    if docs.params:
        for p in parameters:
            if p.name in docs.params:
                p.description = docs.params[p.name] or None
    if docs.returns:
        returns = returns or ReturnInfo()
        returns.description = docs.returns
    return returns


# ── parser ───────────────────────────────────────────────────────────────────

class TypeScriptParser(TreeSitterParser):
    language = "typescript"
    grammar = "typescript"

    def grammar_for(self, file_path: str) -> str:
        if file_path.endswith(".tsx"):
            return "tsx"
        return self.grammar

    def extract(self, root: Node, file_path: str, result: ParseResult) -> None:
        result.module_doc = _module_doc(root)
        local_ids: dict[str, str] = {}
        pending_exports: list[ExportInfo] = []

        for node in root.children:
            if node.type == "import_statement":
                imp = _import(node)
                if imp is not None:
                    result.imports.append(imp)
            elif node.type == "export_statement":
                self._export_statement(node, file_path, result, pending_exports)
            else:
                for sym in self._declaration(node, node, file_path, result, exported=False):
                    local_ids[sym.name] = sym.id

        # `export { a, b as c }` naming earlier local declarations
        by_id = {s.id: s for s in result.symbols}
        for exp in pending_exports:
            sym_id = local_ids.get(exp.name)
            if sym_id is not None:
                exp.symbol_id = sym_id
                by_id[sym_id].exported = True
                by_id[sym_id].visibility = "public"
            result.exports.append(exp)

    def _export_statement(self, node: Node, file_path: str, result: ParseResult,
                          pending: list[ExportInfo]) -> None:
        is_default = any(c.type == "default" for c in node.children)
        source_node = node.child_by_field_name("source")
        declaration = node.child_by_field_name("declaration")

        if declaration is not None:
            for sym in self._declaration(declaration, node, file_path, result,
                                         exported=True, is_default=is_default):
                result.exports.append(ExportInfo(
                    name=sym.name, is_default=is_default, symbol_id=sym.id,
                ))
            return

        clause = child_of_type(node, "export_clause")
        if source_node is not None:
            source = strip_quotes(text(source_node))
            type_only = any(c.type == "type" for c in node.children)
            specifiers: list[ImportSpecifier] = []
            if clause is None:
                ns = child_of_type(node, "namespace_export")
                alias = text(child_of_type(ns, "identifier", "string")) if ns else ""
                result.exports.append(ExportInfo(
                    name=alias or "*", is_re_export=True, source=source,
                ))
                specifiers.append(ImportSpecifier(name="*", alias=alias or None, is_namespace=True))
            else:
                for spec in children_of_type(clause, "export_specifier"):
                    name = text(spec.child_by_field_name("name"))
                    alias = text(spec.child_by_field_name("alias")) or None
                    result.exports.append(ExportInfo(
                        name=alias or name, alias=alias, is_re_export=True, source=source,
                    ))
                    specifiers.append(ImportSpecifier(name=name, alias=alias))
            # a re-export is also a dependency on its source module
            result.imports.append(ImportInfo(
                source=source, specifiers=specifiers, is_type_only=type_only,
            ))
            return

        if clause is not None:
            for spec in children_of_type(clause, "export_specifier"):
                name = text(spec.child_by_field_name("name"))
                alias = text(spec.child_by_field_name("alias")) or None
                pending.append(ExportInfo(
                    name=name, alias=alias, is_default=alias == "default",
                ))
            return

        value = node.child_by_field_name("value")
        if not is_default or value is None:
            return
        if value.type == "identifier":
            pending.append(ExportInfo(name=text(value), is_default=True))
            return
        declared = self._declaration(value, node, file_path, result,
                                     exported=True, is_default=True)
        for sym in declared:
            result.exports.append(ExportInfo(name=sym.name, is_default=True, symbol_id=sym.id))
        if not declared:
            result.exports.append(ExportInfo(name="default", is_default=True))

    def _declaration(self, node: Node, outer: Node, file_path: str, result: ParseResult,
                     exported: bool, is_default: bool = False) -> list[Symbol]:
        t = node.type
        if t == "ambient_declaration":
            inner = next((c for c in node.children if c.is_named and c.type != "comment"), None)
            if inner is None:
                return []
            return self._declaration(inner, outer, file_path, result, exported, is_default)
        if t in _FUNCTION_NODES or (t in _FUNCTION_VALUES and is_default):
            return [self._function(node, outer, file_path, result, exported, is_default)]
        if t in _CLASS_NODES:
            return [self._class(node, outer, file_path, result, exported, is_default)]
        if t == "interface_declaration":
            return [self._interface(node, outer, file_path, result, exported)]
        if t == "type_alias_declaration":
            return [self._simple(node, outer, file_path, result, exported, "type",
                                 type_annotation=text(node.child_by_field_name("value")) or None)]
        if t == "enum_declaration":
            return [self._simple(node, outer, file_path, result, exported, "enum")]
        if t in ("internal_module", "module"):
            return [self._simple(node, outer, file_path, result, exported, "namespace")]
        if t in _VARIABLE_NODES:
            return self._variables(node, outer, file_path, result, exported)
        return []

    def _base_symbol(self, node: Node, outer: Node, name: str, kind: str, file_path: str,
                     exported: bool, parent: str | None = None) -> Symbol:
        return Symbol(
            id=make_id(file_path, name, parent),
            name=name,
            kind=kind,
            visibility="public" if exported else "private",
            location=location(outer, file_path),
            exported=exported,
            docs=_docs(outer),
            signature=signature(node),
        )

    def _function(self, node: Node, outer: Node, file_path: str, result: ParseResult,
                  exported: bool, is_default: bool) -> Symbol:
        name = text(node.child_by_field_name("name")) or ("default" if is_default else "anonymous")
        sym = self._base_symbol(node, outer, name, "function", file_path, exported)
        parameters, returns = _callable_parts(node)
        sym.parameters = parameters or None
        sym.returns = _with_doc_params(parameters, returns, sym.docs)
        sym.is_async = _is_async(node)
        result.symbols.append(sym)
        return sym

    def _class(self, node: Node, outer: Node, file_path: str, result: ParseResult,
               exported: bool, is_default: bool) -> Symbol:
        name = text(node.child_by_field_name("name")) or ("default" if is_default else "anonymous")
        sym = self._base_symbol(node, outer, name, "class", file_path, exported)
        sym.decorators = _decorators(node) or _decorators(outer)
        sym.type_annotation = "abstract" if node.type == "abstract_class_declaration" else None

        heritage = child_of_type(node, "class_heritage")
        if heritage is not None:
            extends = child_of_type(heritage, "extends_clause")
            if extends is not None:
                value = extends.child_by_field_name("value")
                sym.extends = text(value) or text(extends).removeprefix("extends").strip()
            elif any(c.type == "extends" for c in heritage.children):
                # javascript grammar: `extends` directly under class_heritage
                named = [c for c in heritage.children if c.is_named]
                sym.extends = text(named[0]) if named else None
            implements = child_of_type(heritage, "implements_clause")
            if implements is not None:
                sym.implements = [text(c) for c in implements.children if c.is_named] or None

        result.symbols.append(sym)
        children: list[str] = []
        body = node.child_by_field_name("body")
        for member in (body.children if body is not None else []):
            child = self._member(member, sym, file_path)
            if child is not None:
                result.symbols.append(child)
                children.append(child.id)
        sym.children = children or None
        return sym

    def _member(self, member: Node, parent: Symbol, file_path: str) -> Symbol | None:
        t = member.type
        if t in ("method_definition", "method_signature", "abstract_method_signature"):
            kind = "method"
        elif t in ("public_field_definition", "field_definition", "property_signature"):
            kind = "property"
        else:
            return None
        name_node = member.child_by_field_name("name") or member.child_by_field_name("property")
        name = text(name_node)
        if not name:
            return None
        modifier = text(child_of_type(member, "accessibility_modifier"))
        if name.startswith("#") or modifier == "private":
            visibility = "private"
        elif modifier == "protected":
            visibility = "protected"
        else:
            visibility = "public"
        sym = Symbol(
            id=make_id(file_path, name, parent.name),
            name=name,
            kind=kind,
            visibility=visibility,
            location=location(member, file_path),
            exported=parent.exported and visibility == "public",
            docs=_docs(member),
            parent_id=parent.id,
            signature=signature(member),
            decorators=_decorators(member),
        )
        if kind == "method":
            parameters, returns = _callable_parts(member)
            sym.parameters = parameters or None
            sym.returns = _with_doc_params(parameters, returns, sym.docs)
            sym.is_async = _is_async(member)
        else:
            sym.type_annotation = _type_text(member.child_by_field_name("type"))
        return sym

    def _interface(self, node: Node, outer: Node, file_path: str, result: ParseResult,
                   exported: bool) -> Symbol:
        name = text(node.child_by_field_name("name"))
        sym = self._base_symbol(node, outer, name, "interface", file_path, exported)
        extends = child_of_type(node, "extends_type_clause")
        if extends is not None:
            bases = [text(c) for c in extends.children if c.is_named]
            sym.extends = bases[0] if bases else None
            sym.implements = bases[1:] or None
        result.symbols.append(sym)
        children: list[str] = []
        body = node.child_by_field_name("body")
        for member in (body.children if body is not None else []):
            child = self._member(member, sym, file_path)
            if child is not None:
                result.symbols.append(child)
                children.append(child.id)
        sym.children = children or None
        return sym

    def _simple(self, node: Node, outer: Node, file_path: str, result: ParseResult,
                exported: bool, kind: str, type_annotation: str | None = None) -> Symbol:
        name = text(node.child_by_field_name("name"))
        sym = self._base_symbol(node, outer, name, kind, file_path, exported)
        sym.type_annotation = type_annotation
        result.symbols.append(sym)
        return sym

    def _variables(self, node: Node, outer: Node, file_path: str, result: ParseResult,
                   exported: bool) -> list[Symbol]:
        is_const = any(c.type == "const" for c in node.children)
        out: list[Symbol] = []
        for decl in children_of_type(node, "variable_declarator"):
            name_node = decl.child_by_field_name("name")
            value = decl.child_by_field_name("value")
            required = _require_source(value)
            if required is not None:
                result.imports.append(ImportInfo(
                    source=required,
                    specifiers=_require_specifiers(name_node),
                ))
                continue
            if name_node is not None and name_node.type in ("object_pattern", "array_pattern"):
                kind = "constant" if is_const else "variable"
                for bound in _pattern_names(name_node):
                    sym = self._base_symbol(decl, outer, text(bound), kind, file_path, exported)
                    sym.signature = signature(outer)
                    result.symbols.append(sym)
                    out.append(sym)
                continue
            if name_node is None or name_node.type != "identifier":
                continue
            name = text(name_node)
            if value is not None and value.type in _FUNCTION_VALUES:
                sym = self._base_symbol(value, outer, name, "function", file_path, exported)
                parameters, returns = _callable_parts(value)
                sym.parameters = parameters or None
                sym.returns = _with_doc_params(parameters, returns, sym.docs)
                sym.is_async = _is_async(value)
                sym.signature = signature(outer, stop="=>") if value.type == "arrow_function" \
                    else signature(outer)
            else:
                kind = "constant" if is_const else "variable"
                sym = self._base_symbol(decl, outer, name, kind, file_path, exported)
                sym.type_annotation = _type_text(decl.child_by_field_name("type"))
                sym.signature = signature(outer)
            result.symbols.append(sym)
            out.append(sym)
        return out


def _pattern_names(node: Node | None) -> list[Node]:
    """Identifiers bound by a destructuring pattern, nested patterns included."""
    if node is None:
        return []
    t = node.type
    if t in ("identifier", "shorthand_property_identifier_pattern"):
        return [node]
    if t == "pair_pattern":
        return _pattern_names(node.child_by_field_name("value"))
    if t in ("object_assignment_pattern", "assignment_pattern"):
        return _pattern_names(node.child_by_field_name("left"))
    if t in ("object_pattern", "array_pattern", "rest_pattern"):
        return [name for child in node.children for name in _pattern_names(child)]
    return []


def _require_specifiers(name_node: Node | None) -> list[ImportSpecifier]:
    if name_node is None:
        return []
    if name_node.type == "identifier":
        return [ImportSpecifier(name=text(name_node), is_default=True)]
    names = []
    for child in name_node.children:
        if child.type in ("shorthand_property_identifier_pattern", "identifier"):
            names.append(ImportSpecifier(name=text(child)))
        elif child.type == "pair_pattern":
            key = child.child_by_field_name("key")
            value = child.child_by_field_name("value")
            names.append(ImportSpecifier(name=text(key), alias=text(value) or None))
    return names


class JavaScriptParser(TypeScriptParser):
    language = "javascript"
    grammar = "javascript"

    def grammar_for(self, file_path: str) -> str:
        return self.grammar
