from codemanifest.parsers.csharp import CSharpParser

INVOICE_CS = '''\
// Billing services for the storefront.

using System;
using System.Collections.Generic;
using static System.Math;
using Json = System.Text.Json;

namespace Acme.Billing
{
    /// <summary>Computes invoices.</summary>
    [Serializable]
    public class Invoice : Document, IPayable
    {
        public const int Limit = 10;
        private string id;
        internal int Count { get; set; }

        /// <summary>
        /// Totals the lines.
        /// </summary>
        /// <param name="lines">The lines to add.</param>
        /// <returns>The total.</returns>
        public int Total(List<Line> lines, int scale)
        {
            return 0;
        }

        void Reset() { }

        public enum Status { Open, Paid }
    }

    class Helper
    {
        public void Run() { }
    }

    public interface IPayable
    {
        void Pay(int amount);
    }
}
'''


def _parse():
    return CSharpParser().parse(INVOICE_CS, "src/Invoice.cs")


def _by_id(result):
    return {s.id: s for s in result.symbols}


def test_leading_comment_is_module_doc():
    assert _parse().module_doc.summary == "Billing services for the storefront."


def test_using_directives():
    imports = _parse().imports
    assert [i.source for i in imports] == [
        "System", "System.Collections.Generic", "System.Math", "System.Text.Json",
    ]
    assert imports[0].specifiers[0].is_namespace is True
    assert imports[2].specifiers[0].name == "Math"
    assert imports[3].specifiers[0].alias == "Json"


def test_public_and_internal_types_are_exported():
    result = _parse()
    symbols = _by_id(result)
    invoice = symbols["src/Invoice.cs:Invoice"]
    assert (invoice.kind, invoice.visibility, invoice.exported) == ("class", "public", True)
    assert invoice.extends == "Document"
    assert invoice.implements == ["IPayable"]
    assert invoice.decorators == ["Serializable"]
    assert invoice.docs.summary == "Computes invoices."

    helper = symbols["src/Invoice.cs:Helper"]
    assert (helper.visibility, helper.exported) == ("internal", True)
    assert symbols["src/Invoice.cs:IPayable"].kind == "interface"
    assert [e.name for e in result.exports] == ["Invoice", "Helper", "IPayable"]


def test_member_visibility_defaults():
    symbols = _by_id(_parse())
    limit = symbols["src/Invoice.cs:Invoice.Limit"]
    assert (limit.kind, limit.exported) == ("constant", True)
    field = symbols["src/Invoice.cs:Invoice.id"]
    assert (field.visibility, field.exported) == ("private", False)
    count = symbols["src/Invoice.cs:Invoice.Count"]
    assert (count.kind, count.visibility, count.exported) == ("property", "internal", True)
    reset = symbols["src/Invoice.cs:Invoice.Reset"]
    assert (reset.visibility, reset.exported) == ("private", False)
    # interface members are implicitly public
    pay = symbols["src/Invoice.cs:IPayable.Pay"]
    assert (pay.visibility, pay.exported) == ("public", True)


def test_method_xml_docs():
    total = _by_id(_parse())["src/Invoice.cs:Invoice.Total"]
    assert total.kind == "method"
    assert total.docs.summary == "Totals the lines."
    assert [p.name for p in total.parameters] == ["lines", "scale"]
    assert total.parameters[0].type == "List<Line>"
    assert total.parameters[0].description == "The lines to add."
    assert total.returns.type == "int"
    assert total.returns.description == "The total."


def test_nested_enum_members():
    symbols = _by_id(_parse())
    status = symbols["src/Invoice.cs:Invoice.Status"]
    assert status.kind == "enum"
    assert status.parent_id == "src/Invoice.cs:Invoice"
    assert status.children == ["src/Invoice.cs:Status.Open", "src/Invoice.cs:Status.Paid"]
    assert "src/Invoice.cs:Invoice.Status" in symbols["src/Invoice.cs:Invoice"].children
