"""
Tests for the playbook template registry and SQL synthesis.

No database required: assertions are on the generated text.
"""

import unittest

from query_templates import (
    DEFAULT_CATEGORIES,
    DEFAULT_TEMPLATES,
    FilterValues,
    InvalidFilterError,
    QueryTemplate,
    TemplateRegistry,
    UnknownTemplateError,
    build_template,
    get_default_registry,
)


class TestFilterValues(unittest.TestCase):

    def test_empty_values_are_absent(self):
        values = FilterValues.from_mapping({"hmo_id": "", "date_from": None, "provider_name": "  "})
        self.assertEqual(values.to_dict(), {})

    def test_unknown_filter_rejected(self):
        with self.assertRaises(InvalidFilterError):
            FilterValues.from_mapping({"drop_table": "1"})

    def test_boolean_parsing(self):
        values = FilterValues.from_mapping({"vetted_only": "true", "has_unmatched_tariff": "no"})
        self.assertTrue(values.flag("vetted_only"))
        self.assertFalse(values.flag("has_unmatched_tariff"))
        # explicit false is still present
        self.assertTrue(values.has("has_unmatched_tariff"))

    def test_bad_boolean_rejected(self):
        with self.assertRaises(InvalidFilterError):
            FilterValues.from_mapping({"vetted_only": "maybe"})

    def test_restricted_to_expands_date_range(self):
        values = FilterValues.from_mapping({"hmo_id": 73, "date_from": "2026-01-01", "erp_prefix": "UG"})
        restricted = values.restricted_to(("hmo_id", "date_range"))
        self.assertEqual(restricted.to_dict(), {"hmo_id": 73, "date_from": "2026-01-01"})


class TestTemplateBuild(unittest.TestCase):

    def test_claim_count_end_to_end(self):
        sql = build_template("claim_count", {
            "hmo_id": "-73",
            "date_from": "2026-01-01",
            "date_to": "2026-01-31",
        }, row_limit=1000)
        self.assertEqual(sql, (
            "-- Aggregate: no LIMIT needed\n"
            "SELECT\n"
            "  COUNT(DISTINCT `claims`.`id`) AS `claim_count`\n"
            "FROM `claims`\n"
            "WHERE\n"
            "  `claims`.`hmo_id` = 73\n"
            "  AND `claims`.`submitted_at` >= '2026-01-01'\n"
            "  AND `claims`.`submitted_at` < DATE_ADD('2026-01-31', INTERVAL 1 DAY);"
        ))

    def test_deterministic(self):
        filters = {"hmo_id": 73, "date_from": "2026-01-01", "provider_name": "St. Mary's"}
        first = build_template("full_claims_extract", filters, 500)
        second = build_template("full_claims_extract", dict(filters), 500)
        self.assertEqual(first, second)

    def test_provider_name_escaped(self):
        sql = build_template("full_claims_extract", {"provider_name": "St. Mary's"})
        self.assertIn("`providers`.`name` LIKE '%St. Mary''s%'", sql)

    def test_half_open_date_range(self):
        sql = build_template("full_claims_extract", {"date_from": "2026-02-01", "date_to": "2026-02-28"})
        self.assertIn("`claims`.`created_at` >= '2026-02-01'", sql)
        self.assertIn("`claims`.`created_at` < DATE_ADD('2026-02-28', INTERVAL 1 DAY)", sql)
        self.assertNotIn("BETWEEN", sql)
        self.assertNotIn("23:59:59", sql)

    def test_date_field_whitelisted(self):
        sql = build_template("full_claims_extract", {"date_from": "2026-02-01", "date_field": "vetted_at"})
        self.assertIn("`claims`.`vetted_at` >= '2026-02-01'", sql)
        sql = build_template("full_claims_extract", {"date_from": "2026-02-01", "date_field": "id`; --"})
        self.assertIn("`claims`.`created_at` >= '2026-02-01'", sql)
        self.assertNotIn("--", sql)

    def test_hmo_sign_normalized(self):
        negative = build_template("todays_claims", {"hmo_id": -73})
        positive = build_template("todays_claims", {"hmo_id": 73})
        self.assertEqual(negative, positive)
        self.assertIn("`c`.`hmo_id` = 73", positive)

    def test_hmo_zero_means_unfiltered(self):
        sql = build_template("todays_claims", {"hmo_id": "0"})
        self.assertNotIn("hmo_id` =", sql)

    def test_non_numeric_status_omitted(self):
        sql = build_template("claim_count", {"hmo_status": "approved"})
        self.assertNotIn("hmo_status", sql)
        sql = build_template("claim_count", {"hmo_status": "-1"})
        self.assertIn("`claims`.`hmo_status` = -1", sql)

    def test_no_where_without_filters(self):
        sql = build_template("claim_count")
        self.assertNotIn("WHERE", sql)
        self.assertTrue(sql.endswith("FROM `claims`;"))

    def test_limit_applied_to_row_templates(self):
        sql = build_template("full_claims_extract", {}, 1000)
        self.assertTrue(sql.endswith("ORDER BY `claims`.`created_at` DESC\nLIMIT 1000;"))
        self.assertNotIn("LIMIT", build_template("full_claims_extract"))

    def test_aggregates_never_limited(self):
        registry = get_default_registry()
        for template in DEFAULT_TEMPLATES:
            if template.aggregate:
                sql = registry.build(template.key, {}, 1000)
                self.assertNotIn("LIMIT", sql, template.key)

    def test_unaccepted_filters_ignored(self):
        with_filter = build_template("unmapped_by_hmo", {"hmo_id": 73})
        self.assertEqual(with_filter, build_template("unmapped_by_hmo"))

    def test_invalid_row_limit(self):
        for bad in (0, -5, "abc", 2.5, True):
            with self.assertRaises(InvalidFilterError):
                build_template("full_claims_extract", {}, bad)

    def test_erp_prefix(self):
        sql = build_template("erp_range", {"erp_prefix": "KE"})
        self.assertIn("`hmo_erp_id` LIKE 'KE%'", sql)
        self.assertIn("SUBSTRING(`hmo_erp_id`, 3)", sql)
        default = build_template("erp_range")
        self.assertIn("LIKE 'UG%'", default)

    def test_medication_flag_adds_cares_join(self):
        sql = build_template("unflagged_by_hmo", {"care_type_medication": True})
        self.assertIn("JOIN `cares` `c` ON `pt`.`care_id` = `c`.`id`", sql)
        self.assertIn("`c`.`type_id` = 1", sql)
        plain = build_template("unflagged_by_hmo")
        self.assertNotIn("`cares`", plain)

    def test_tariff_flag_and_variation_filters(self):
        sql = build_template("tariff_full_export", {"flagged_status": "flagged", "variation_filter": "without"})
        self.assertIn("`pt`.`flagged_as_correct_at` IS NOT NULL", sql)
        self.assertIn("`pt`.`care_variation_id` IS NULL", sql)

    def test_status_breakdown_factory(self):
        sql = build_template("item_status_breakdown")
        self.assertEqual(sql, (
            "SELECT `item_status`, COUNT(*) AS `total`\n"
            "FROM `claim_items`\n"
            "GROUP BY `item_status`\n"
            "ORDER BY `item_status`;"
        ))


class TestRegistry(unittest.TestCase):

    def test_unknown_template(self):
        with self.assertRaises(UnknownTemplateError) as ctx:
            get_default_registry().get("nope")
        self.assertEqual(ctx.exception.key, "nope")
        self.assertIsInstance(ctx.exception, KeyError)

    def test_heavy_keys(self):
        self.assertEqual(set(get_default_registry().heavy_keys), {
            "full_claims_extract", "claims_summary", "todays_claims", "erp_detail_list",
            "tariff_full_export", "tariff_with_variations",
        })

    def test_contains_and_categories(self):
        registry = get_default_registry()
        self.assertIn("claim_count", registry)
        self.assertNotIn("nope", registry)
        keys = [t.key for t in registry.templates_in("reference")]
        self.assertEqual(keys, ["distinct_hmo_status", "distinct_provider_status", "item_status_breakdown"])

    def test_to_dict_lists_tool_tabs_first(self):
        categories = get_default_registry().to_dict()["categories"]
        self.assertEqual([c["key"] for c in categories[:2]], ["ai_assistant", "custom_builder"])
        self.assertEqual(categories[0]["templates"], [])

    def test_duplicate_key_rejected(self):
        with self.assertRaises(ValueError):
            TemplateRegistry([DEFAULT_TEMPLATES[0], DEFAULT_TEMPLATES[0]], DEFAULT_CATEGORIES)

    def test_unknown_filter_declaration_rejected(self):
        bad = QueryTemplate("bad", "Bad", "", "reference", False, True, ("colour",), lambda f, limit: ";")
        with self.assertRaises(ValueError):
            TemplateRegistry([bad], DEFAULT_CATEGORIES)


if __name__ == "__main__":
    unittest.main()
