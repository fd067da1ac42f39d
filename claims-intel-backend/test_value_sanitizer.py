"""
Tests for literal escaping, numeric coercion and HMO id normalization.
"""

import unittest

from value_sanitizer import (
    escape_literal,
    is_numeric,
    is_simple_identifier,
    normalize_hmo_id,
    numeric_literal,
    quote_column,
    quote_identifier,
    quote_literal,
)


class TestLiterals(unittest.TestCase):

    def test_single_quote_doubled(self):
        self.assertEqual(escape_literal("O'Brien"), "O''Brien")
        self.assertEqual(quote_literal("O'Brien"), "'O''Brien'")

    def test_none_is_empty(self):
        self.assertEqual(escape_literal(None), "")
        self.assertEqual(quote_literal(None), "''")

    def test_injection_attempt_stays_inside_literal(self):
        literal = quote_literal("x'; DROP TABLE claims; --")
        self.assertEqual(literal, "'x''; DROP TABLE claims; --'")
        # strip the outer quotes, every remaining quote is paired
        self.assertNotIn("'", literal[1:-1].replace("''", ""))


class TestNumeric(unittest.TestCase):

    def test_accepts_numbers_and_numeric_text(self):
        for value in (73, -1, 2.5, "73", " 12 ", "-1", "0.25"):
            self.assertTrue(is_numeric(value), value)

    def test_rejects_non_numeric(self):
        for value in (None, "", "   ", "abc", "12abc", True, False, "1_000", "nan", "inf", float("inf")):
            self.assertFalse(is_numeric(value), value)

    def test_numeric_literal_canonical_text(self):
        self.assertEqual(numeric_literal("73"), "73")
        self.assertEqual(numeric_literal(" -1 "), "-1")
        self.assertEqual(numeric_literal(73.0), "73")
        self.assertEqual(numeric_literal("0.50"), "0.5")

    def test_numeric_literal_rejects_text(self):
        with self.assertRaises(ValueError):
            numeric_literal("73; DROP")


class TestNormalizeHmoId(unittest.TestCase):

    def test_negative_folded(self):
        self.assertEqual(normalize_hmo_id(-73), "73")
        self.assertEqual(normalize_hmo_id("-73"), "73")

    def test_positive_unchanged(self):
        self.assertEqual(normalize_hmo_id("73"), "73")

    def test_zero_sentinel_and_junk_mean_unset(self):
        for value in (0, "0", "-0", None, "", "abc"):
            self.assertIsNone(normalize_hmo_id(value), value)


class TestIdentifiers(unittest.TestCase):

    def test_quote_identifier(self):
        self.assertEqual(quote_identifier("desc"), "`desc`")
        self.assertEqual(quote_identifier("we`ird"), "`we``ird`")

    def test_quote_column_with_alias(self):
        self.assertEqual(quote_column("p.name"), "`p`.`name`")
        self.assertEqual(quote_column("id", "c"), "`c`.`id`")
        self.assertEqual(quote_column("id"), "`id`")

    def test_simple_identifier(self):
        self.assertTrue(is_simple_identifier("hmo_id"))
        self.assertFalse(is_simple_identifier("1abc"))
        self.assertFalse(is_simple_identifier("a b"))
        self.assertFalse(is_simple_identifier(""))


if __name__ == "__main__":
    unittest.main()
