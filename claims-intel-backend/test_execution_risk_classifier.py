"""
Tests for heavy-template guarding: LIMIT injection and warnings.
"""

import unittest

from execution_risk_classifier import (
    EXPENSIVE_WARNING,
    NO_LIMIT_WARNING,
    SAFE_ROW_LIMIT,
    QueryRiskClass,
    assess,
    effective_limit,
    is_expensive,
    safety_warning,
)
from query_templates import UnknownTemplateError, get_default_registry


class TestIsExpensive(unittest.TestCase):

    def test_heavy_without_filters(self):
        self.assertTrue(is_expensive("full_claims_extract", {}))
        self.assertTrue(is_expensive("full_claims_extract", None))

    def test_hmo_makes_bounded(self):
        self.assertFalse(is_expensive("full_claims_extract", {"hmo_id": "73"}))
        self.assertFalse(is_expensive("full_claims_extract", {"hmo_id": -73}))

    def test_hmo_sentinel_or_junk_does_not_count(self):
        self.assertTrue(is_expensive("full_claims_extract", {"hmo_id": "0"}))
        self.assertTrue(is_expensive("full_claims_extract", {"hmo_id": "abc"}))

    def test_needs_both_dates(self):
        self.assertTrue(is_expensive("tariff_full_export", {"date_from": "2026-01-01"}))
        self.assertFalse(is_expensive("tariff_full_export", {
            "date_from": "2026-01-01", "date_to": "2026-01-31",
        }))

    def test_light_templates_never_expensive(self):
        self.assertFalse(is_expensive("claim_count", {}))
        self.assertFalse(is_expensive("v1_cares", {}))


class TestEffectiveLimit(unittest.TestCase):

    def test_heavy_gets_safe_limit(self):
        self.assertEqual(effective_limit("full_claims_extract"), SAFE_ROW_LIMIT)
        self.assertEqual(effective_limit("full_claims_extract", row_limit=250), 250)

    def test_toggle_off(self):
        self.assertIsNone(effective_limit("full_claims_extract", limit_on=False))

    def test_light_never_limited(self):
        self.assertIsNone(effective_limit("v1_cares"))

    def test_accepts_template_object(self):
        template = get_default_registry().get("erp_detail_list")
        self.assertEqual(effective_limit(template), SAFE_ROW_LIMIT)

    def test_unknown_template(self):
        with self.assertRaises(UnknownTemplateError):
            effective_limit("nope")


class TestAssess(unittest.TestCase):

    def test_expensive_warning_takes_precedence(self):
        self.assertEqual(safety_warning("full_claims_extract", {}, limit_on=False), EXPENSIVE_WARNING)
        result = assess("full_claims_extract", {}, limit_on=False)
        self.assertIs(result.risk_class, QueryRiskClass.EXPENSIVE)
        self.assertIsNone(result.effective_limit)

    def test_unbounded(self):
        result = assess("full_claims_extract", {"hmo_id": 73}, limit_on=False)
        self.assertIs(result.risk_class, QueryRiskClass.UNBOUNDED)
        self.assertEqual(result.warning, NO_LIMIT_WARNING)

    def test_bounded(self):
        result = assess("full_claims_extract", {"hmo_id": 73})
        self.assertIs(result.risk_class, QueryRiskClass.BOUNDED)
        self.assertIsNone(result.warning)
        self.assertEqual(result.effective_limit, SAFE_ROW_LIMIT)

    def test_safe(self):
        result = assess("claim_count", {})
        self.assertIs(result.risk_class, QueryRiskClass.SAFE)
        self.assertFalse(result.heavy)
        self.assertIsNone(result.effective_limit)

    def test_to_dict(self):
        data = assess("todays_claims", {"hmo_id": 73}, row_limit=500).to_dict()
        self.assertEqual(data, {
            "template": "todays_claims",
            "heavy": True,
            "expensive": False,
            "limit_on": True,
            "effective_limit": 500,
            "warning": None,
            "risk_class": "BOUNDED",
        })


if __name__ == "__main__":
    unittest.main()
