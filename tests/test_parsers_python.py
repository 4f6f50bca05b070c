from codemanifest.parsers.python import PythonParser, parse_docstring

WIDGETS_PY = '''\
"""Widget toolkit.

Widgets render themselves onto a canvas.
"""

import os
import json as j
from .base import Base, Mixin as M
from typing import *

__all__ = ["Widget", "fetch", "MAX_SIZE"]

MAX_SIZE = 10
default_name = "w"
_cache = {}


def helper(a, b=2):
    """Helps.

    Args:
        a: the first
        b (int): the second

    Returns:
        The help.
    """
    return a


def _hidden():
    pass


@dataclass
class Widget(Base, Mixin):
    """A widget."""

    color: str = "red"

    @property
    def size(self) -> int:
        return 1

    def render(self, *args, **kwargs):
        pass

    def _internal(self):
        pass


async def fetch(url: str) -> bytes:
    return b""
'''


def _parse():
    return PythonParser().parse(WIDGETS_PY, "pkg/widgets.py")


def _by_id(result):
    return {s.id: s for s in result.symbols}


def test_module_docstring():
    doc = _parse().module_doc
    assert doc.summary == "Widget toolkit."
    assert "canvas" in doc.description


def test_dunder_all_decides_exports():
    symbols = _by_id(_parse())
    assert symbols["pkg/widgets.py:Widget"].exported is True
    assert symbols["pkg/widgets.py:fetch"].exported is True
    assert symbols["pkg/widgets.py:MAX_SIZE"].exported is True
    assert symbols["pkg/widgets.py:helper"].exported is False
    assert symbols["pkg/widgets.py:default_name"].exported is False


def test_without_dunder_all_underscore_is_private():
    source = "def run():\n    pass\n\ndef _step():\n    pass\n"
    symbols = _by_id(PythonParser().parse(source, "m.py"))
    assert symbols["m.py:run"].exported is True
    assert symbols["m.py:_step"].exported is False
    assert symbols["m.py:_step"].visibility == "private"


def test_assignments():
    symbols = _by_id(_parse())
    assert symbols["pkg/widgets.py:MAX_SIZE"].kind == "constant"
    assert symbols["pkg/widgets.py:default_name"].kind == "variable"
    assert "pkg/widgets.py:_cache" not in symbols
    assert "pkg/widgets.py:__all__" not in symbols


def test_google_docstring_fills_parameters():
    helper = _by_id(_parse())["pkg/widgets.py:helper"]
    assert helper.docs.summary == "Helps."
    a, b = helper.parameters
    assert a.description == "the first"
    assert b.description == "the second"
    assert b.default_value == "2" and b.optional is True
    assert helper.returns.description == "The help."


def test_class_bases_decorators_and_members():
    symbols = _by_id(_parse())
    widget = symbols["pkg/widgets.py:Widget"]
    assert widget.kind == "class"
    assert widget.extends == "Base"
    assert widget.implements == ["Mixin"]
    assert widget.decorators == ["dataclass"]
    assert widget.docs.summary == "A widget."
    assert widget.children == [
        "pkg/widgets.py:Widget.color",
        "pkg/widgets.py:Widget.size",
        "pkg/widgets.py:Widget.render",
        "pkg/widgets.py:Widget._internal",
    ]

    color = symbols["pkg/widgets.py:Widget.color"]
    assert color.kind == "property"
    assert color.type_annotation == "str"

    size = symbols["pkg/widgets.py:Widget.size"]
    assert size.kind == "property"
    assert size.returns.type == "int"
    assert size.parent_id == widget.id

    render = symbols["pkg/widgets.py:Widget.render"]
    assert render.kind == "method"
    assert [(p.name, p.rest) for p in render.parameters] == [("args", True), ("kwargs", True)]

    internal = symbols["pkg/widgets.py:Widget._internal"]
    assert internal.visibility == "private"
    assert internal.exported is False


def test_async_function():
    fetch = _by_id(_parse())["pkg/widgets.py:fetch"]
    assert fetch.is_async is True
    assert fetch.signature == "async def fetch(url: str) -> bytes"
    assert fetch.parameters[0].type == "str"


def test_imports():
    imports = _parse().imports
    by_source = {i.source: i for i in imports}
    assert set(by_source) == {"os", "json", ".base", "typing"}
    assert by_source["json"].specifiers[0].alias == "j"
    base = by_source[".base"].specifiers
    assert [(s.name, s.alias) for s in base] == [("Base", None), ("Mixin", "M")]
    star = by_source["typing"].specifiers
    assert len(star) == 1 and star[0].is_namespace


def test_rest_style_docstring():
    doc = parse_docstring('"""Load it.\n\n:param path: where\n:returns: the data\n"""')
    assert doc.summary == "Load it."
    assert doc.params == {"path": "where"}
    assert doc.returns == "the data"


def test_nested_classes_are_members():
    source = (
        "class Outer:\n"
        "    class Inner:\n"
        '        """Inner config."""\n'
        "        def go(self):\n"
        "            pass\n"
        "\n"
        "    class _Hidden:\n"
        "        pass\n"
    )
    result = PythonParser().parse(source, "pkg/outer.py")
    symbols = _by_id(result)
    inner = symbols["pkg/outer.py:Outer.Inner"]
    assert inner.kind == "class"
    assert inner.parent_id == "pkg/outer.py:Outer"
    assert inner.exported is True
    assert inner.docs.summary == "Inner config."
    assert inner.children == ["pkg/outer.py:Inner.go"]
    assert symbols["pkg/outer.py:Outer.Inner"].id in symbols["pkg/outer.py:Outer"].children
    assert symbols["pkg/outer.py:Outer._Hidden"].exported is False
    assert [e.name for e in result.exports] == ["Outer"]
