from __future__ import annotations

import unittest
from datetime import date

from letter_logic.graph.context import VariableContext, VariableDefinition
from letter_logic.graph.expressions import (
    EvalError,
    ExpressionEvaluator,
    MissingVariable,
    ParseError,
    TypeMismatch,
    UnknownFunction,
    evaluate,
    parse,
    split_template,
    template_references,
    unbalanced_offset,
)
from letter_logic.graph.expressions.syntax import BinaryOp, Call, LogicalOp, VariableRef


class ParserTests(unittest.TestCase):
    def test_precedence_binds_multiplication_tighter_than_addition(self) -> None:
        tree = parse("1 + 2 * 3")
        self.assertIsInstance(tree, BinaryOp)
        self.assertEqual(tree.operator, "+")
        self.assertIsInstance(tree.right, BinaryOp)
        self.assertEqual(tree.right.operator, "*")

    def test_braced_and_bare_paths_parse_to_the_same_reference(self) -> None:
        braced = parse("{{claim.lines[0].amount}}")
        bare = parse("claim.lines[0].amount")
        self.assertIsInstance(braced, VariableRef)
        self.assertEqual(braced.path, ("claim", "lines", 0, "amount"))
        self.assertEqual(braced.path, bare.path)
        self.assertEqual(braced.name, "claim.lines.0.amount")

    def test_strict_equality_aliases_to_equality(self) -> None:
        tree = parse("{{a}} === 1")
        self.assertEqual(tree.operator, "==")

    def test_word_operators_and_function_names(self) -> None:
        tree = parse("a and not b")
        self.assertIsInstance(tree, LogicalOp)
        call = parse("sum(claim.lines.amount)")
        self.assertIsInstance(call, Call)
        self.assertEqual(call.name, "SUM")

    def test_syntax_errors_report_offset(self) -> None:
        with self.assertRaises(ParseError) as raised:
            parse("1 + * 2")
        self.assertEqual(raised.exception.offset, 4)

        with self.assertRaises(ParseError):
            parse("'unterminated")
        with self.assertRaises(ParseError):
            parse("")

    def test_parse_is_cached_per_text(self) -> None:
        self.assertIs(parse("{{x}} > 1"), parse("{{x}} > 1"))


class EvaluationTests(unittest.TestCase):
    def test_arithmetic_normalizes_integral_floats(self) -> None:
        self.assertEqual(evaluate("{{a}} * {{b}} / 100", {"a": 250, "b": 4}), 10)
        self.assertIsInstance(evaluate("{{a}} * {{b}} / 100", {"a": 250, "b": 4}), int)
        self.assertEqual(evaluate("7 / 2", {}), 3.5)
        self.assertEqual(evaluate("7 % 4", {}), 3)
        self.assertEqual(evaluate("-{{a}} + 1", {"a": 3}), -2)

    def test_string_concatenation(self) -> None:
        self.assertEqual(evaluate("'Total: ' + {{n}}", {"n": 10.0}), "Total: 10")
        self.assertEqual(evaluate("{{first}} + ' ' + {{last}}", {"first": "Ana", "last": "Lopez"}), "Ana Lopez")

    def test_logical_operators_short_circuit_and_return_booleans(self) -> None:
        # The right side would divide by zero if it were evaluated.
        self.assertIs(evaluate("false && 1 / 0 == 1", {}), False)
        self.assertIs(evaluate("true || 1 / 0 == 1", {}), True)
        self.assertIs(evaluate("{{name}} && 1", {"name": "x"}), True)

    def test_equality_between_families_is_a_type_mismatch(self) -> None:
        with self.assertRaises(TypeMismatch):
            evaluate("1 == '1'", {})
        self.assertIs(evaluate("{{x}} == null", {"x": None}), True)
        self.assertIs(evaluate("{{x}} != null", {"x": 0}), True)

    def test_ordering_requires_compatible_types(self) -> None:
        self.assertIs(evaluate("{{a}} < {{b}}", {"a": 1, "b": 2.5}), True)
        self.assertIs(evaluate("'abc' < 'abd'", {}), True)
        with self.assertRaises(TypeMismatch):
            evaluate("{{a}} > 'x'", {"a": 1})
        with self.assertRaises(TypeMismatch):
            evaluate("true > false", {})

    def test_division_by_zero(self) -> None:
        with self.assertRaises(EvalError):
            evaluate("1 / 0", {})
        with self.assertRaises(EvalError):
            evaluate("1 % 0", {})

    def test_unknown_function(self) -> None:
        with self.assertRaises(UnknownFunction):
            evaluate("NOPE(1)", {})

    def test_dates_compare_with_iso_strings(self) -> None:
        context = VariableContext({"due": "2024-03-01"}, as_of=date(2024, 2, 1))
        self.assertIs(evaluate("TODAY() < {{due}}", context), True)
        self.assertEqual(evaluate("DATE({{due}}) - TODAY()", context), 29)
        self.assertEqual(evaluate("TODAY() + 1", context), date(2024, 2, 2))

    def test_missing_optional_variable_is_null_with_warning(self) -> None:
        warnings: list[str] = []
        self.assertIsNone(evaluate("{{member.middleName}}", {"member": {}}, warnings=warnings))
        self.assertEqual(warnings, ["Optional variable 'member.middleName' is missing; using null."])

    def test_missing_required_variable_raises(self) -> None:
        context = VariableContext({}, definitions=[VariableDefinition(key="member", required=True)])
        with self.assertRaises(MissingVariable) as raised:
            evaluate("{{member.id}} == 'A1'", context)
        self.assertEqual(raised.exception.name, "member.id")

    def test_present_null_is_not_missing(self) -> None:
        warnings: list[str] = []
        self.assertIsNone(evaluate("{{x}}", {"x": None}, warnings=warnings))
        self.assertEqual(warnings, [])


class BuiltinFunctionTests(unittest.TestCase):
    def setUp(self) -> None:
        self.context = VariableContext(
            {
                "claim": {"lines": [{"amount": 10}, {"amount": 20.5}, {"amount": None}]},
                "member": {"dob": "1980-06-15", "name": "  Ana  "},
            },
            as_of=date(2024, 6, 14),
        )

    def _eval(self, expression: str) -> object:
        return evaluate(expression, self.context)

    def test_aggregates_over_plucked_fields(self) -> None:
        self.assertEqual(self._eval("SUM(claim.lines.amount)"), 30.5)
        self.assertEqual(self._eval("SUM(claim.lines, 'amount')"), 30.5)
        self.assertEqual(self._eval("MAX(claim.lines.amount)"), 20.5)
        self.assertEqual(self._eval("MIN(3, 1, 2)"), 1)
        self.assertEqual(self._eval("AVG(2, 4)"), 3)
        self.assertEqual(self._eval("COUNT(claim.lines)"), 3)

    def test_rounding_is_half_up(self) -> None:
        self.assertEqual(self._eval("ROUND(2.5)"), 3)
        self.assertEqual(self._eval("ROUND(2.345, 2)"), 2.35)
        self.assertEqual(self._eval("ABS(-4)"), 4)

    def test_text_functions(self) -> None:
        self.assertEqual(self._eval("TRIM(member.name)"), "Ana")
        self.assertEqual(self._eval("UPPER('a') + LOWER('B')"), "Ab")
        self.assertEqual(self._eval("LEN('abc')"), 3)
        self.assertEqual(self._eval("CONCAT('a', 1, true)"), "a1true")
        self.assertIs(self._eval("CONTAINS('medical necessity', 'necessity')"), True)
        self.assertIs(self._eval("STARTS_WITH('J1234', 'J')"), True)
        self.assertIs(self._eval("MATCHES('J1234', '^J[0-9]{4}$')"), True)
        self.assertEqual(self._eval("COALESCE(null, null, 'x')"), "x")

    def test_if_is_lazy(self) -> None:
        self.assertEqual(self._eval("IF(true, 'yes', 1 / 0)"), "yes")
        self.assertIsNone(self._eval("IF(false, 'yes')"))

    def test_date_functions_use_request_as_of(self) -> None:
        self.assertEqual(self._eval("TODAY()"), date(2024, 6, 14))
        self.assertEqual(self._eval("AGE(member.dob)"), 43)
        self.assertEqual(self._eval("ADD_DAYS('2024-01-30', 2)"), date(2024, 2, 1))
        self.assertEqual(self._eval("DATE_DIFF('2024-01-01', '2024-03-01', 'months')"), 2)
        self.assertEqual(self._eval("DATE_DIFF('2024-01-01', '2024-01-15', 'weeks')"), 2)
        self.assertEqual(self._eval("FORMAT_DATE('2024-03-05', 'MDY')"), "03/05/2024")

    def test_number_formatting_functions(self) -> None:
        self.assertEqual(self._eval("FORMAT_NUMBER(1234567.891, 2)"), "1,234,567.89")
        self.assertEqual(self._eval("FORMAT_CURRENCY(1234.5)"), "$1,234.50")

    def test_argument_errors(self) -> None:
        with self.assertRaises(EvalError):
            self._eval("ROUND()")
        with self.assertRaises(TypeMismatch):
            self._eval("SUM('a', 1)")
        with self.assertRaises(TypeMismatch):
            self._eval("DATE('not a date')")

    def test_custom_functions_extend_the_registry(self) -> None:
        evaluator = ExpressionEvaluator({"double": lambda args, scope: args[0] * 2})
        self.assertEqual(evaluator.evaluate("DOUBLE(21)", {}), 42)


class TemplateTests(unittest.TestCase):
    def test_split_template(self) -> None:
        segments = split_template("Dear {{ member.name }}, total {{SUM(claim.lines.amount)}}.")
        self.assertEqual(
            [(segment.text, segment.is_token) for segment in segments],
            [
                ("Dear ", False),
                ("member.name", True),
                (", total ", False),
                ("SUM(claim.lines.amount)", True),
                (".", False),
            ],
        )

    def test_references_and_balance(self) -> None:
        self.assertEqual(template_references("{{a}} and {{b.c}}"), ["a", "b.c"])
        self.assertIsNone(unbalanced_offset("{{a}} text"))
        self.assertEqual(unbalanced_offset("Hello {{name"), 6)
        self.assertEqual(unbalanced_offset("oops }} here"), 5)


if __name__ == "__main__":
    unittest.main()
