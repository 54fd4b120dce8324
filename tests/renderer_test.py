from __future__ import annotations

import unittest

from letter_logic.graph.context import VariableContext, VariableDefinition
from letter_logic.graph.formatting import FormatOptions
from letter_logic.graph.instructions import (
    BlockFragment,
    ComponentFragment,
    RepeatedFragment,
    StyledFragment,
    TextFragment,
    VariableFragment,
)
from letter_logic.graph.renderer import Renderer


def cell(header: str, *children) -> StyledFragment:
    return StyledFragment(kind="cell", children=tuple(children), attributes={"header": header})


class TextRenderingTests(unittest.TestCase):
    def setUp(self) -> None:
        self.renderer = Renderer(output_format="text")

    def test_inline_fragments_of_one_node_join_without_separator(self) -> None:
        output = self.renderer.render(
            [
                TextFragment("Dear ", node_id="greeting"),
                VariableFragment(name="member.name", value="Ana", node_id="greeting"),
                TextFragment(",", node_id="greeting"),
                TextFragment("Thank you.", node_id="body"),
            ]
        )
        self.assertEqual(output.content, "Dear Ana,\nThank you.")
        self.assertEqual(output.warnings, [])

    def test_missing_variables(self) -> None:
        output = self.renderer.render(
            [
                VariableFragment(name="member.name", found=False, required=True, node_id="a"),
                VariableFragment(name="member.suffix", found=False, node_id="a"),
            ]
        )
        self.assertEqual(output.content, "[[MISSING: member.name]]")
        self.assertEqual(output.warnings, ["Required variable 'member.name' is missing; rendered placeholder."])

    def test_format_comes_from_fragment_then_definition(self) -> None:
        context = VariableContext(
            {},
            definitions=[VariableDefinition.model_validate({"key": "claim.total", "format": "currency"})],
        )
        output = self.renderer.render(
            [
                VariableFragment(name="claim.total", value=1234.5, node_id="a"),
                TextFragment(" / ", node_id="a"),
                VariableFragment(name="due", value="2024-03-05", format=FormatOptions.model_validate("MDY"), node_id="a"),
            ],
            context,
        )
        self.assertEqual(output.content, "$1,234.50 / 03/05/2024")

    def test_wrappers_in_text_mode(self) -> None:
        output = self.renderer.render(
            [
                StyledFragment(kind="formatting", children=(TextFragment("shout"),), attributes={"text_case": "upper"}),
                StyledFragment(kind="alert", children=(TextFragment("Act now"),), attributes={"level": "warning"}),
                StyledFragment(
                    kind="alert",
                    children=(TextFragment("Read this"),),
                    attributes={"level": "info", "title": "Note"},
                ),
            ]
        )
        self.assertEqual(output.content, "SHOUT\n[WARNING] Act now\nNote: Read this")

    def test_table_in_text_mode(self) -> None:
        table = RepeatedFragment(
            items=((cell("Code", TextFragment("A1")), cell("Amount", TextFragment("$10.00"))),),
            layout="table",
            headers=("Code", "Amount"),
            caption="Lines",
        )
        self.assertEqual(self.renderer.render([table]).content, "Lines\nCode | Amount\nA1 | $10.00")

    def test_locale_wrapper_changes_number_format(self) -> None:
        currency = FormatOptions(kind="currency")
        output = self.renderer.render(
            [
                StyledFragment(
                    kind="locale",
                    children=(VariableFragment(name="amount", value=1234.5, format=currency),),
                    attributes={"locale": "es-US"},
                )
            ]
        )
        self.assertEqual(output.content, "$1.234,50")


class HtmlRenderingTests(unittest.TestCase):
    def setUp(self) -> None:
        self.renderer = Renderer(output_format="html")

    def test_variable_values_are_escaped_but_authored_text_is_not(self) -> None:
        output = self.renderer.render(
            [
                TextFragment("<p>Dear ", node_id="a"),
                VariableFragment(name="name", value="<Ana & Ben>\nJr", node_id="a"),
                TextFragment("</p>", node_id="a"),
            ]
        )
        self.assertEqual(output.content, "<p>Dear &lt;Ana &amp; Ben&gt;<br>Jr</p>")

    def test_custom_placeholder_is_escaped(self) -> None:
        renderer = Renderer(output_format="html", missing_placeholder="<missing {name}>")
        output = renderer.render([VariableFragment(name="x", found=False, required=True)])
        self.assertEqual(output.content, "&lt;missing x&gt;")

    def test_blocks_and_components_carry_data_attributes(self) -> None:
        output = self.renderer.render(
            [
                BlockFragment(block_id="appeal-rights", children=(TextFragment("Appeal."),), compliance_flags=("erisa",)),
                ComponentFragment(component_id="notice", missing=True),
            ]
        )
        self.assertEqual(
            output.content,
            '<div class="block" data-block-id="appeal-rights" data-compliance="erisa">Appeal.</div>\n'
            '<div class="component missing" data-component-id="notice">[[MISSING CONTENT: component notice]]</div>',
        )

    def test_formatting_span(self) -> None:
        output = self.renderer.render(
            [
                StyledFragment(
                    kind="formatting",
                    children=(TextFragment("x"),),
                    attributes={
                        "bold": True,
                        "italic": True,
                        "text_case": "upper",
                        "css_class": "callout",
                        "styles": {"color": "red"},
                    },
                ),
                StyledFragment(kind="formatting", children=(TextFragment("plain"),), attributes={}),
            ]
        )
        self.assertEqual(
            output.content,
            '<span class="callout" style="font-weight: bold; font-style: italic; '
            'text-transform: uppercase; color: red">x</span>\n<span>plain</span>',
        )

    def test_inline_repeat_uses_separator(self) -> None:
        repeated = RepeatedFragment(
            items=((TextFragment("a"),), (TextFragment("b"),), (TextFragment("c"),)),
            separator=", ",
        )
        self.assertEqual(self.renderer.render([repeated]).content, "a, b, c")

    def test_table_headers_are_escaped(self) -> None:
        table = RepeatedFragment(
            items=((cell("Q&A", VariableFragment(name="v", value="1 < 2")),),),
            layout="table",
            headers=("Q&A",),
        )
        self.assertEqual(
            self.renderer.render([table]).content,
            '<table class="table-loop"><thead><tr><th>Q&amp;A</th></tr></thead>'
            "<tbody><tr><td>1 &lt; 2</td></tr></tbody></table>",
        )

    def test_unsupported_format(self) -> None:
        with self.assertRaises(ValueError):
            Renderer(output_format="pdf")  # type: ignore[arg-type]


if __name__ == "__main__":
    unittest.main()
