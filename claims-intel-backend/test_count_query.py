"""
Tests for row-count query derivation.
"""

import unittest

from count_query import derive_count_query
from query_templates import build_template


class TestDeriveCountQuery(unittest.TestCase):

    def test_strips_order_and_limit(self):
        sql = "SELECT `id`, `name` FROM `cares` WHERE `active` = 1 ORDER BY `name` LIMIT 1000;"
        self.assertEqual(
            derive_count_query(sql),
            "SELECT COUNT(*) AS total_rows\nFROM `cares` WHERE `active` = 1;",
        )

    def test_group_by_counts_groups(self):
        sql = (
            "SELECT `hmo_status`, COUNT(*) AS `total`\n"
            "FROM `claims`\n"
            "GROUP BY `hmo_status`\n"
            "ORDER BY `hmo_status`;"
        )
        self.assertEqual(
            derive_count_query(sql),
            "SELECT COUNT(*) AS total_groups\nFROM `claims`\nGROUP BY `hmo_status`;",
        )

    def test_template_output(self):
        sql = build_template("full_claims_extract", {"hmo_id": 73}, 1000)
        count_sql = derive_count_query(sql)
        self.assertTrue(count_sql.startswith("SELECT COUNT(*) AS total_rows\nFROM `claims`"))
        self.assertIn("`claims`.`hmo_id` = 73", count_sql)
        self.assertNotIn("ORDER BY", count_sql)
        self.assertNotIn("LIMIT", count_sql)
        self.assertTrue(count_sql.endswith(";"))

    def test_leading_comment_mentioning_limit(self):
        sql = build_template("claim_count", {"hmo_id": 73})
        count_sql = derive_count_query(sql)
        self.assertIsNotNone(count_sql)
        self.assertIn("`claims`.`hmo_id` = 73", count_sql)

    def test_subquery_keywords_ignored(self):
        sql = (
            "SELECT * FROM (SELECT `id` FROM `claims` ORDER BY `id` LIMIT 5) AS `t` "
            "ORDER BY `id` DESC LIMIT 10"
        )
        count_sql = derive_count_query(sql)
        self.assertIn("LIMIT 5", count_sql)
        self.assertNotIn("LIMIT 10", count_sql)

    def test_string_literal_keywords_ignored(self):
        sql = "SELECT `id` FROM `claims` WHERE `approval_code` = 'ORDER BY x' LIMIT 3"
        self.assertEqual(
            derive_count_query(sql),
            "SELECT COUNT(*) AS total_rows\nFROM `claims` WHERE `approval_code` = 'ORDER BY x';",
        )

    def test_non_select_returns_none(self):
        self.assertIsNone(derive_count_query("UPDATE `claims` SET `hmo_status` = 1"))
        self.assertIsNone(derive_count_query(""))
        self.assertIsNone(derive_count_query("   "))

    def test_select_without_from(self):
        self.assertIsNone(derive_count_query("SELECT 1"))


if __name__ == "__main__":
    unittest.main()
