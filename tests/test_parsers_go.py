from codemanifest.parsers.go import GoParser

GEO_GO = '''\
// Package geo provides geometry helpers.
package geo

import (
	"fmt"
	m "math"
)

// Pi is a constant.
const Pi = 3.14

// Point is a location.
type Point struct {
	X int
	y int
}

// Move shifts the point.
func (p *Point) Move(dx, dy int) Point {
	return *p
}

// Shape has an area.
type Shape interface {
	Area() float64
}

// Add sums two ints.
func Add(a, b int) int { return a + b }

func sub(a int, b int) int { return a - b }
'''


def _parse():
    return GoParser().parse(GEO_GO, "geo/geo.go")


def _by_id(result):
    return {s.id: s for s in result.symbols}


def test_package_comment_is_module_doc():
    assert _parse().module_doc.summary == "Package geo provides geometry helpers."


def test_capitalisation_decides_export():
    symbols = _by_id(_parse())
    add = symbols["geo/geo.go:Add"]
    assert add.exported is True
    assert add.visibility == "public"
    assert add.docs.summary == "Add sums two ints."
    assert [(p.name, p.type) for p in add.parameters] == [("a", "int"), ("b", "int")]
    assert add.returns.type == "int"

    sub = symbols["geo/geo.go:sub"]
    assert sub.exported is False
    assert sub.visibility == "private"
    assert sub.docs is None


def test_struct_fields_and_methods():
    symbols = _by_id(_parse())
    point = symbols["geo/geo.go:Point"]
    assert point.kind == "class"
    assert point.docs.summary == "Point is a location."
    assert point.children == ["geo/geo.go:Point.X", "geo/geo.go:Point.y", "geo/geo.go:Point.Move"]
    assert symbols["geo/geo.go:Point.X"].exported is True
    assert symbols["geo/geo.go:Point.y"].exported is False

    move = symbols["geo/geo.go:Point.Move"]
    assert move.kind == "method"
    assert move.parent_id == point.id
    assert [p.name for p in move.parameters] == ["dx", "dy"]
    assert move.returns.type == "Point"


def test_interface_and_constant():
    symbols = _by_id(_parse())
    shape = symbols["geo/geo.go:Shape"]
    assert shape.kind == "interface"
    assert shape.children == ["geo/geo.go:Shape.Area"]
    assert symbols["geo/geo.go:Shape.Area"].returns.type == "float64"

    pi = symbols["geo/geo.go:Pi"]
    assert pi.kind == "constant"
    assert pi.exported is True
    assert pi.docs.summary == "Pi is a constant."


def test_imports_with_alias():
    imports = {i.source: i for i in _parse().imports}
    assert set(imports) == {"fmt", "math"}
    spec = imports["math"].specifiers[0]
    assert spec.name == "math" and spec.alias == "m"
    assert imports["fmt"].specifiers[0].alias is None


def test_method_on_type_from_another_file_has_no_parent():
    source = "package geo\n\nfunc (c *Circle) Area() float64 { return 0 }\n"
    area = _by_id(GoParser().parse(source, "geo/circle_area.go"))["geo/circle_area.go:Circle.Area"]
    assert area.parent_id is None
