from __future__ import annotations

import unittest
from decimal import Decimal

from impl_eval.ast import Expr, Rational, StrLit, Symbol
from impl_eval.errors import ErrorKind, ParseError, Subject
from impl_eval.lexer import RPAREN, Token, tokenize
from impl_eval.parser import parse, parse_batch, parse_program


def _shape(node):
    """Structure of a tree with all source ranges dropped."""
    if isinstance(node, Expr):
        return (node.operation.value.name, tuple(_shape(operand.value) for operand in node.operands))
    return node


class ParserGrammarConformanceTests(unittest.TestCase):
    def _parse_one(self, source: str):
        program = parse_program(source)
        self.assertEqual(len(program), 1)
        return program[0]

    def _parse_error(self, source: str) -> ParseError:
        with self.assertRaises(ParseError) as ctx:
            parse(tokenize(source), source_len=len(source))
        return ctx.exception

    def test_parenthesized_expression_spans_and_operands(self) -> None:
        expr = self._parse_one("(add 1 2)")
        self.assertEqual(expr.range, (0, 9))
        self.assertEqual(expr.value.operation.value.name, "add")
        self.assertEqual(expr.value.operation.range, (1, 4))
        self.assertEqual([operand.value for operand in expr.value.operands], [Rational(Decimal(1)), Rational(Decimal(2))])
        self.assertEqual([operand.range for operand in expr.value.operands], [(5, 6), (7, 8)])

    def test_outer_parentheses_are_optional_at_top_level(self) -> None:
        explicit = self._parse_one("(add 1 2)")
        implicit = self._parse_one("add 1 2")
        self.assertEqual(_shape(implicit.value), _shape(explicit.value))
        self.assertEqual(str(implicit.value), "(add 1 2)")
        # The implicit wrapper was never typed, so its range is empty.
        self.assertEqual(implicit.width, 0)
        self.assertEqual(explicit.width, 9)

    def test_nullary_operation_with_and_without_parentheses(self) -> None:
        self.assertEqual(_shape(self._parse_one("pi").value), ("pi", ()))
        self.assertEqual(_shape(self._parse_one("(pi)").value), ("pi", ()))

    def test_arithmetic_operators_desugar_to_named_operations(self) -> None:
        cases = {
            "(+ 1 2)": "(add 1 2)",
            "(- 5 3)": "(sub 5 3)",
            "(* 2 3)": "(mul 2 3)",
            "(/ 1 2)": "(div 1 2)",
            "- 5 3": "(sub 5 3)",
        }
        for source, expected in cases.items():
            with self.subTest(source=source):
                self.assertEqual(str(self._parse_one(source).value), expected)

    def test_root_infix_sugar(self) -> None:
        cases = {
            "1 + 2": "(add 1 2)",
            "1 + 2 * 3": "(add 1 (mul 2 3))",
            "8 / 2 / 2": "(div (div 8 2) 2)",
            "1 - 2 + 3": "(add (sub 1 2) 3)",
            "(add 1 2) * 3": "(mul (add 1 2) 3)",
            "x * (sub 4 1)": "(mul x (sub 4 1))",
        }
        for source, expected in cases.items():
            with self.subTest(source=source):
                self.assertEqual(str(self._parse_one(source).value), expected)

    def test_infix_spans_cover_operands_and_operator(self) -> None:
        expr = self._parse_one("1 + 2")
        self.assertEqual(expr.range, (0, 5))
        self.assertEqual(expr.value.operation.range, (2, 3))

    def test_nested_and_mixed_operands(self) -> None:
        expr = self._parse_one('(let x (mul 2 "s"))')
        self.assertEqual(
            _shape(expr.value),
            ("let", (Symbol("x"), ("mul", (Rational(Decimal(2)), StrLit("s"))))),
        )
        inner = expr.value.operands[1]
        self.assertEqual(inner.range, (7, 18))

    def test_program_of_several_top_level_expressions(self) -> None:
        program = parse_program("(add 1 2) (sub 3 1)\n(pi)")
        self.assertEqual([str(expr.value) for expr in program], ["(add 1 2)", "(sub 3 1)", "(pi)"])

    def test_empty_program(self) -> None:
        self.assertEqual(parse_program(""), [])
        self.assertEqual(parse_program("  ; nothing here"), [])

    def test_missing_right_paren_at_end_of_input(self) -> None:
        err = self._parse_error("(add 1 2")
        self.assertEqual(err.kind, ErrorKind.EXPECTED)
        self.assertEqual(err.subject, Subject.TOKEN)
        self.assertEqual(err.token, Token(RPAREN, ")"))
        self.assertEqual(err.range, (8, 8))
        self.assertEqual(str(err), "expected token ')'")
        self.assertEqual(err.stage, "parser")

    def test_non_operand_token_where_right_paren_expected(self) -> None:
        err = self._parse_error("(add 1 {)")
        self.assertEqual(str(err), "expected token ')'")
        self.assertEqual(err.range, (7, 8))

    def test_invalid_operation_tokens(self) -> None:
        for source, expected_range in (("(1 2)", (1, 2)), ('("s")', (1, 4)), ("({ 1)", (1, 2)), ("}", (0, 1))):
            with self.subTest(source=source):
                err = self._parse_error(source)
                self.assertEqual(err.kind, ErrorKind.INVALID)
                self.assertEqual(err.subject, Subject.OPERATION_ID)
                self.assertEqual(err.range, expected_range)

    def test_missing_operation_before_right_paren(self) -> None:
        for source, expected_range in (("()", (1, 2)), (")", (0, 1)), ("(add 1 ())", (8, 9))):
            with self.subTest(source=source):
                err = self._parse_error(source)
                self.assertEqual(err.kind, ErrorKind.EXPECTED)
                self.assertEqual(err.subject, Subject.OPERATION_ID)
                self.assertEqual(err.range, expected_range)
                self.assertEqual(str(err), "expected operation")

    def test_missing_operation_at_end_of_input(self) -> None:
        err = self._parse_error("(")
        self.assertEqual(err.kind, ErrorKind.EXPECTED)
        self.assertEqual(err.subject, Subject.OPERATION_ID)
        self.assertEqual(err.range, (1, 1))

    def test_invalid_rational_literals(self) -> None:
        for source, expected_range in (("(add 1.2.3 1)", (5, 10)), ("(add . 1)", (5, 6)), ("(add 1 -.)", (7, 9))):
            with self.subTest(source=source):
                err = self._parse_error(source)
                self.assertEqual(err.kind, ErrorKind.INVALID)
                self.assertEqual(err.subject, Subject.RATIONAL)
                self.assertEqual(err.range, expected_range)

    def test_implicit_expression_must_run_to_end_of_input(self) -> None:
        err = self._parse_error("add 1 2)")
        self.assertEqual(err.kind, ErrorKind.INVALID)
        self.assertEqual(err.subject, Subject.TOKEN)
        self.assertEqual(err.range, (7, 8))

    def test_infix_operator_requires_right_operand(self) -> None:
        for source, expected_range in (("1 +", (3, 3)), ("1 + )", (4, 5))):
            with self.subTest(source=source):
                err = self._parse_error(source)
                self.assertEqual(err.kind, ErrorKind.EXPECTED)
                self.assertEqual(err.subject, Subject.OPERAND)
                self.assertEqual(err.range, expected_range)

    def test_excessive_nesting_is_a_parse_error(self) -> None:
        depth = 5000
        source = "(sin " * depth + "0" + ")" * depth
        err = self._parse_error(source)
        self.assertEqual(err.kind, ErrorKind.INVALID)
        self.assertEqual(err.subject, Subject.EXPR)

    def test_batch_parsing_recovers_after_a_failed_expression(self) -> None:
        source = "(add 1 {) (sub 4 1) () (mul 2 3)"
        results = parse_batch(tokenize(source), source_len=len(source))
        self.assertEqual(len(results), 4)
        self.assertIsInstance(results[0], ParseError)
        self.assertEqual(str(results[1].value), "(sub 4 1)")
        self.assertIsInstance(results[2], ParseError)
        self.assertEqual(str(results[3].value), "(mul 2 3)")

    def test_batch_parsing_drops_only_a_stray_token(self) -> None:
        for source in ("(add 1 2)) (add 3 4)", "(add 1 2) } (add 3 4)", "(add 1 2) 7 (add 3 4)", "$ # (add 3 4)"):
            with self.subTest(source=source):
                results = parse_batch(tokenize(source), source_len=len(source))
                errors = [result for result in results if isinstance(result, ParseError)]
                exprs = [str(result.value) for result in results if not isinstance(result, ParseError)]
                self.assertTrue(errors)
                self.assertEqual(exprs[-1], "(add 3 4)")
                self.assertEqual(len(results), len(errors) + len(exprs))

    def test_batch_parsing_of_implicit_expression_runs_to_end(self) -> None:
        source = "add 1 2) (add 3 4)"
        results = parse_batch(tokenize(source), source_len=len(source))
        self.assertEqual(len(results), 1)
        self.assertIsInstance(results[0], ParseError)

    def test_long_infix_chain_parses_without_deep_recursion(self) -> None:
        expr = self._parse_one(" + ".join(["1"] * 3000))
        self.assertEqual(expr.value.operation.value.name, "add")
        self.assertEqual(expr.range, (0, 4 * 3000 - 3))

    def test_batch_parsing_of_unclosed_expression_ends_the_batch(self) -> None:
        source = "(foo (add 1 2"
        results = parse_batch(tokenize(source), source_len=len(source))
        self.assertEqual(len(results), 1)
        self.assertIsInstance(results[0], ParseError)

    def test_error_ranges_stay_within_the_input(self) -> None:
        sources = ("(", ")", "(add", "(add 1 2", "()", "(1)", "add 1 2)", "1 +", "(add 1.2.3)", "((add 1 2))", "+ $")
        for source in sources:
            with self.subTest(source=source):
                for result in parse_batch(tokenize(source), source_len=len(source)):
                    start, end = result.range
                    self.assertTrue(0 <= start <= end <= len(source))


if __name__ == "__main__":
    unittest.main()
