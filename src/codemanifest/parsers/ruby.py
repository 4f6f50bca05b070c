"""Ruby symbol extraction.

Export rule: classes, modules and constants are always exported.  A method is
exported unless it is private, either because it follows a bare ``private``
line in its class body, is named in ``private :name``, is wrapped as
``private def name``, or has a leading underscore.
"""

import logging
import re

from tree_sitter import Node

from ..models import DocComment, ImportInfo, ImportSpecifier, Parameter, ReturnInfo, Symbol
from .base import (
    ParseResult, TreeSitterParser, child_of_type, doc_from_lines, location, make_id,
    preceding_comments, signature, text,
)

log = logging.getLogger(__name__)

_VISIBILITY_CALLS = ("private", "protected", "public")
_ATTR_CALLS = ("attr_accessor", "attr_reader", "attr_writer")
_CALLS = ("call", "command")
_REQUIRE = re.compile(r"^(require|require_relative|load)\s*\(?\s*[\"']([^\"']+)[\"']")
_CONSTANT = re.compile(r"^[A-Z][A-Z0-9_]*$")
_MAGIC = re.compile(r"^#\s*(?:frozen_string_literal|encoding|coding|warn_indent):")
_YARD_PARAM = re.compile(r"^(?:\[([^\]]*)\]\s*)?(\w+)\s*(?:\[([^\]]*)\])?\s*(.*)$")
_YARD_TYPE = re.compile(r"^\[([^\]]*)\]\s*")


def _comment_lines(comments: list[Node]) -> list[str]:
    lines: list[str] = []
    for c in comments:
        raw = text(c)
        if raw.startswith("=begin"):
            lines.extend(raw.splitlines()[1:-1])
        elif not _MAGIC.match(raw):
            lines.append(re.sub(r"^#\s?", "", raw).rstrip())
    return lines


def _yard_doc(comments: list[Node]) -> DocComment | None:
    """Prose plus the YARD ``@param`` / ``@return`` / ``@raise`` tags of a comment run."""
    prose: list[str] = []
    params: dict[str, str] = {}
    tags: dict[str, str] = {}
    throws: list[str] = []
    examples: list[str] = []
    returns = deprecated = None
    for line in _comment_lines(comments):
        stripped = line.strip()
        if not stripped.startswith("@"):
            prose.append(line)
            continue
        tag, _, rest = stripped[1:].partition(" ")
        rest = rest.strip()
        if tag == "param":
            m = _YARD_PARAM.match(rest)
            if m:
                params[m.group(2)] = m.group(4).strip()
        elif tag == "return":
            returns = _YARD_TYPE.sub("", rest) or None
        elif tag == "raise":
            throws.append(rest)
        elif tag == "example":
            examples.append(rest)
        elif tag == "deprecated":
            deprecated = rest or "deprecated"
        else:
            tags[tag] = rest
    doc = doc_from_lines(prose)
    if doc is None and not (params or returns or tags):
        return None
    doc = doc or DocComment(summary="")
    doc.params = params or None
    doc.returns = returns
    doc.throws = throws or None
    doc.examples = examples or None
    doc.deprecated = deprecated
    doc.tags = tags or None
    return doc


def _return_type(comments: list[Node]) -> str | None:
    for line in _comment_lines(comments):
        m = re.match(r"^\s*@return\s+\[([^\]]*)\]", line)
        if m:
            return m.group(1)
    return None


def _call_name(node: Node) -> str:
    return text(node.child_by_field_name("method") or child_of_type(node, "identifier"))


def _call_args(node: Node) -> list[Node]:
    args = node.child_by_field_name("arguments") or child_of_type(node, "argument_list")
    return [c for c in args.children if c.is_named] if args is not None else []


def _symbol_names(args: list[Node]) -> list[str]:
    return [text(a).lstrip(":").strip("\"'") for a in args
            if a.type in ("simple_symbol", "symbol", "string")]


def _require(node: Node) -> ImportInfo | None:
    m = _REQUIRE.match(text(node))
    if m is None:
        return None
    source = m.group(2)
    return ImportInfo(source=source, specifiers=[
        ImportSpecifier(name=source.rpartition("/")[2], is_default=True),
    ])


def _parameters(node: Node) -> list[Parameter]:
    params = node.child_by_field_name("parameters") or child_of_type(
        node, "method_parameters", "lambda_parameters")
    out: list[Parameter] = []
    for p in (params.children if params is not None else []):
        t = p.type
        if t == "identifier":
            out.append(Parameter(name=text(p)))
        elif t == "optional_parameter":
            out.append(Parameter(
                name=text(p.child_by_field_name("name")),
                default_value=text(p.child_by_field_name("value")) or None,
                optional=True,
            ))
        elif t == "keyword_parameter":
            value = p.child_by_field_name("value")
            out.append(Parameter(
                name=text(p.child_by_field_name("name")),
                default_value=text(value) or None,
                optional=True if value is not None else None,
            ))
        elif t in ("splat_parameter", "hash_splat_parameter"):
            out.append(Parameter(
                name=text(p.child_by_field_name("name")) or ("args" if t == "splat_parameter" else "opts"),
                optional=True,
                rest=True,
            ))
        elif t == "block_parameter":
            out.append(Parameter(name=text(p.child_by_field_name("name")) or "block", optional=True))
    return out


def _explicit_visibility(body: Node | None) -> dict[str, str]:
    """Method names given to ``private :a, :b`` style calls in a body."""
    names: dict[str, str] = {}
    for node in (body.children if body is not None else []):
        if node.type in _CALLS and _call_name(node) in _VISIBILITY_CALLS:
            for name in _symbol_names(_call_args(node)):
                names[name] = _call_name(node)
    return names


def _comments_above(node: Node) -> list[Node]:
    comments = preceding_comments(node)
    parent = node.parent
    # a comment ahead of a body's first statement sits outside the body node
    if not comments and node.prev_sibling is None and parent is not None \
            and parent.type == "body_statement":
        comments = preceding_comments(parent)
    return comments


def _body(node: Node) -> Node | None:
    return node.child_by_field_name("body") or child_of_type(node, "body_statement")


class RubyParser(TreeSitterParser):
    language = "ruby"
    grammar = "ruby"

    def extract(self, root: Node, file_path: str, result: ParseResult) -> None:
        result.module_doc = self._file_doc(root)
        self._scope(root, file_path, result, owner=None)

    def _file_doc(self, root: Node) -> DocComment | None:
        leading: list[Node] = []
        for node in root.children:
            if node.type != "comment":
                # a comment run glued to a declaration documents the declaration
                if node.type in ("class", "module", "method") and leading and \
                        leading[-1].end_point[0] + 1 >= node.start_point[0]:
                    return None
                break
            leading.append(node)
        return _yard_doc(leading) if leading else None

    def _scope(self, body: Node | None, file_path: str, result: ParseResult,
               owner: Symbol | None) -> list[str]:
        if body is None:
            return []
        explicit = _explicit_visibility(body)
        section = "public"
        children: list[str] = []

        def keep(sym: Symbol | None) -> None:
            if sym is None:
                return
            if owner is None:
                result.add(sym)
            else:
                result.symbols.append(sym)
                children.append(sym.id)

        for node in body.children:
            t = node.type
            if t == "identifier" and text(node) in _VISIBILITY_CALLS:
                section = text(node)
            elif t in ("class", "module"):
                nested = self._namespace(node, file_path, result, owner)
                if nested is not None and owner is not None:
                    children.append(nested.id)
            elif t == "method":
                keep(self._method(node, node, file_path, owner,
                                  explicit.get(text(node.child_by_field_name("name")), section)))
            elif t == "singleton_method":
                keep(self._method(node, node, file_path, owner, "public", singleton=True))
            elif t == "singleton_class":
                for member_id in self._scope(_body(node), file_path, result, owner):
                    children.append(member_id)
            elif t == "assignment":
                keep(self._constant(node, file_path, owner))
            elif t in _CALLS:
                name = _call_name(node)
                imp = _require(node) if owner is None else None
                if imp is not None:
                    result.imports.append(imp)
                elif name in _VISIBILITY_CALLS:
                    # private def helper ... end
                    for arg in _call_args(node):
                        if arg.type == "method":
                            keep(self._method(arg, node, file_path, owner, name))
                elif name in _ATTR_CALLS and owner is not None:
                    for attr in _symbol_names(_call_args(node)):
                        keep(self._attribute(node, attr, file_path, owner, section))
        return children

    def _namespace(self, node: Node, file_path: str, result: ParseResult,
                   owner: Symbol | None) -> Symbol | None:
        name_node = node.child_by_field_name("name") or child_of_type(
            node, "constant", "scope_resolution")
        name = text(name_node)
        if not name:
            return None
        superclass = node.child_by_field_name("superclass") or child_of_type(node, "superclass")
        extends = text(superclass).lstrip("<").strip() or None
        sym = Symbol(
            id=make_id(file_path, name, owner.name if owner else None),
            name=name,
            kind="class" if node.type == "class" else "module",
            visibility="public",
            location=location(node, file_path),
            exported=True if owner is None else owner.exported,
            docs=_yard_doc(_comments_above(node)),
            parent_id=owner.id if owner else None,
            extends=extends,
            signature=f"{node.type} {name}" + (f" < {extends}" if extends else ""),
        )
        if owner is None:
            result.add(sym)
        else:
            result.symbols.append(sym)
        sym.children = self._scope(_body(node), file_path, result, owner=sym) or None
        return sym

    def _method(self, node: Node, outer: Node, file_path: str, owner: Symbol | None,
                visibility: str, singleton: bool = False) -> Symbol | None:
        name = text(node.child_by_field_name("name"))
        if not name:
            return None
        if name.startswith("_") and visibility == "public":
            visibility = "private"
        comments = _comments_above(outer)
        docs = _yard_doc(comments)
        parameters = _parameters(node)
        if docs is not None and docs.params:
            for p in parameters:
                p.description = docs.params.get(p.name)
        ret_type = _return_type(comments)
        returns = None
        if ret_type or (docs is not None and docs.returns):
            returns = ReturnInfo(type=ret_type, description=docs.returns if docs else None)
        exported = visibility != "private" and (owner is None or owner.exported)
        display = f"self.{name}" if singleton else name
        return Symbol(
            id=make_id(file_path, display, owner.name if owner else None),
            name=name,
            kind="method",
            visibility=visibility,
            location=location(outer, file_path),
            exported=exported,
            parameters=parameters or None,
            returns=returns,
            docs=docs,
            parent_id=owner.id if owner else None,
            signature=signature(node, stop="\n"),
        )

    def _constant(self, node: Node, file_path: str, owner: Symbol | None) -> Symbol | None:
        left = node.child_by_field_name("left")
        if left is None or left.type != "constant" or not _CONSTANT.match(text(left)):
            return None
        name = text(left)
        return Symbol(
            id=make_id(file_path, name, owner.name if owner else None),
            name=name,
            kind="constant",
            visibility="public",
            location=location(node, file_path),
            exported=True if owner is None else owner.exported,
            docs=_yard_doc(_comments_above(node)),
            parent_id=owner.id if owner else None,
            signature=" ".join(text(node).split())[:200],
        )

    def _attribute(self, node: Node, name: str, file_path: str, owner: Symbol,
                   visibility: str) -> Symbol:
        return Symbol(
            id=make_id(file_path, name, owner.name),
            name=name,
            kind="property",
            visibility=visibility,
            location=location(node, file_path),
            exported=owner.exported and visibility != "private",
            docs=_yard_doc(_comments_above(node)),
            parent_id=owner.id,
            signature=" ".join(text(node).split()),
        )
