"""
Tests for the visual custom builder: transitions, join cascade and rendering.
"""

import unittest

from custom_builder import (
    BuilderState,
    CustomQueryBuilder,
    JoinResult,
    TableUnavailable,
    WhereCondition,
    canonical_reference,
    render_sql,
)
from schema_catalog import get_default_catalog


class TestRenderSQL(unittest.TestCase):

    def test_default_state(self):
        sql = render_sql(BuilderState())
        self.assertEqual(sql, (
            "SELECT\n"
            "  `c`.`id`,\n"
            "  `c`.`hmo_id`,\n"
            "  `c`.`total_amount`,\n"
            "  `c`.`approved_amount`,\n"
            "  `c`.`hmo_status`,\n"
            "  `c`.`created_at`\n"
            "FROM `claims` `c`\n"
            "ORDER BY `c`.`created_at` DESC\n"
            "LIMIT 1000;"
        ))

    def test_no_columns_selects_star(self):
        sql = render_sql(BuilderState(selected_columns=[], order_column=None, row_limit=None))
        self.assertEqual(sql, "SELECT\n  `c`.*\nFROM `claims` `c`;")

    def test_where_and_date_range(self):
        state = BuilderState(
            where_conditions=[
                WhereCondition("c.hmo_id", "=", "73"),
                WhereCondition("c.approval_code", "IS NULL"),
                WhereCondition("c.provider_status", "=", ""),
            ],
            date_from="2026-01-01",
            date_to="2026-01-31",
        )
        sql = render_sql(state)
        self.assertIn(
            "WHERE\n"
            "  `c`.`hmo_id` = '73'\n"
            "  AND `c`.`approval_code` IS NULL\n"
            "  AND `c`.`created_at` >= '2026-01-01'\n"
            "  AND `c`.`created_at` < DATE_ADD('2026-01-31', INTERVAL 1 DAY)",
            sql,
        )
        # blank value row is inactive
        self.assertNotIn("provider_status", sql)

    def test_where_value_escaped(self):
        state = BuilderState(where_conditions=[WhereCondition("p.name", "LIKE", "%Mary's%")])
        self.assertIn("`p`.`name` LIKE '%Mary''s%'", render_sql(state))

    def test_in_operator_verbatim(self):
        state = BuilderState(where_conditions=[WhereCondition("c.hmo_status", "IN", "0, 1")])
        self.assertIn("`c`.`hmo_status` IN (0, 1)", render_sql(state))

    def test_invalid_operator(self):
        state = BuilderState(where_conditions=[WhereCondition("c.id", "; DROP", "1")])
        with self.assertRaises(ValueError):
            render_sql(state)

    def test_limit_cleared(self):
        for cleared in (None, "", "0", 0):
            self.assertNotIn("LIMIT", render_sql(BuilderState(row_limit=cleared)))

    def test_bad_limit(self):
        for bad in ("-5", "2.5", "ten"):
            with self.assertRaises(ValueError):
                render_sql(BuilderState(row_limit=bad))

    def test_unknown_base_table(self):
        with self.assertRaises(TableUnavailable):
            render_sql(BuilderState(base_table="nowhere"))

    def test_round_trip_through_dict(self):
        state = BuilderState(where_conditions=[WhereCondition("c.id", ">", "10")])
        restored = BuilderState.from_dict(state.to_dict())
        self.assertEqual(render_sql(restored), render_sql(state))


    def test_same_column_rendered_once(self):
        state = BuilderState(selected_columns=["id", "c.id"], order_column=None, row_limit=None)
        self.assertEqual(render_sql(state), "SELECT\n  `c`.`id`\nFROM `claims` `c`;")

    def test_malformed_references_rejected(self):
        bad_states = [
            BuilderState(selected_columns=["id`; DROP TABLE claims; --"]),
            BuilderState(selected_columns=[None]),
            BuilderState(order_column="c.created at"),
            BuilderState(where_conditions=[WhereCondition("", "=", "1")]),
        ]
        for state in bad_states:
            with self.assertRaises(ValueError):
                render_sql(state)

    def test_canonical_reference(self):
        claims = get_default_catalog().table("claims")
        self.assertEqual(canonical_reference("c.id", claims), "id")
        self.assertEqual(canonical_reference(" id ", claims), "id")
        self.assertEqual(canonical_reference("p.name", claims), "p.name")
        with self.assertRaises(ValueError):
            canonical_reference("p.", claims)

class TestBuilderTransitions(unittest.TestCase):

    def setUp(self):
        self.builder = CustomQueryBuilder()

    def test_set_base_table_resets(self):
        self.builder.add_join("providers")
        self.builder.set_base_table("provider_tariffs")
        state = self.builder.state
        self.assertEqual(state.base_table, "provider_tariffs")
        self.assertEqual(state.selected_columns, ["id"])
        self.assertEqual(state.joins, [])
        self.assertEqual(state.date_column, "created_at")
        self.assertEqual(state.order_column, "created_at")

    def test_set_base_table_without_created_at(self):
        self.builder.set_base_table("enrollees")
        self.assertEqual(self.builder.state.date_column, "birthdate")
        self.assertIsNone(self.builder.state.order_column)
        self.builder.set_base_table("hmos")
        self.assertIsNone(self.builder.state.date_column)

    def test_unknown_base_table(self):
        with self.assertRaises(TableUnavailable):
            self.builder.set_base_table("nowhere")

    def test_toggle_column(self):
        self.assertFalse(self.builder.toggle_column("hmo_id"))
        self.assertNotIn("hmo_id", self.builder.state.selected_columns)
        self.assertTrue(self.builder.toggle_column("hmo_id"))
        self.assertEqual(self.builder.state.selected_columns[-1], "hmo_id")

    def test_toggle_unknown_column(self):
        with self.assertRaises(ValueError):
            self.builder.toggle_column("p.name")

    def test_toggle_qualified_base_column(self):
        self.builder.set_base_table("claims")
        self.assertEqual(self.builder.state.selected_columns, ["id"])
        self.assertFalse(self.builder.toggle_column("c.id"))
        self.assertEqual(self.builder.state.selected_columns, [])
        self.assertTrue(self.builder.toggle_column("c.id"))
        self.assertEqual(self.builder.state.selected_columns, ["id"])
        self.assertFalse(self.builder.toggle_column("id"))
        self.assertEqual(self.builder.state.selected_columns, [])

    def test_missing_column_reference(self):
        for reference in (None, "", "   "):
            with self.assertRaises(ValueError):
                self.builder.toggle_column(reference)
        index = self.builder.add_where()
        with self.assertRaises(ValueError):
            self.builder.update_where(index, "column", None)
        self.assertEqual(self.builder.state.where_conditions[index].column, "c.id")

    def test_add_join_results(self):
        self.assertEqual(self.builder.add_join("providers"), JoinResult.OK)
        self.assertEqual(self.builder.add_join("providers"), JoinResult.ALREADY_JOINED)
        self.assertEqual(self.builder.add_join("cares"), JoinResult.UNAVAILABLE)
        self.assertEqual(self.builder.state.joined_aliases(), ["p"])
        self.assertIn("p.name", self.builder.available_columns())

    def test_join_rendered(self):
        self.builder.add_join("providers")
        self.builder.toggle_column("p.name")
        sql = self.builder.render()
        self.assertIn("LEFT JOIN `providers` `p` ON `c`.`provider_id` = `p`.`id`", sql)
        self.assertIn("`p`.`name`", sql)

    def test_remove_join_cascades(self):
        self.builder.add_join("providers")
        self.builder.add_join("hmos")
        self.builder.toggle_column("p.name")
        self.builder.toggle_column("h.name")
        index = self.builder.add_where()
        self.builder.update_where(index, "column", "p.state")
        self.builder.update_where(index, "value", "Lagos")
        self.builder.set_order("p.name", "ASC")

        self.assertTrue(self.builder.remove_join("providers"))

        state = self.builder.state
        self.assertEqual(state.selected_columns[-1], "h.name")
        self.assertEqual(state.joined_aliases(), ["h"])
        self.assertNotIn("p.name", state.selected_columns)
        self.assertIn("h.name", state.selected_columns)
        self.assertEqual(state.where_conditions, [])
        self.assertIsNone(state.order_column)
        self.assertNotIn("`p`", self.builder.render())

    def test_remove_missing_join(self):
        self.assertFalse(self.builder.remove_join("providers"))

    def test_where_rows(self):
        index = self.builder.add_where()
        self.assertEqual(self.builder.state.where_conditions[index].column, "c.id")
        self.builder.update_where(index, "operator", ">=")
        self.builder.update_where(index, "value", "100")
        self.assertIn("`c`.`id` >= '100'", self.builder.render())
        with self.assertRaises(ValueError):
            self.builder.update_where(index, "operator", "<>")
        with self.assertRaises(ValueError):
            self.builder.update_where(index, "colour", "red")
        self.builder.remove_where(index)
        self.assertEqual(self.builder.state.where_conditions, [])

    def test_date_range_column_checked(self):
        self.builder.set_date_range("encounter_date", "2026-03-01", "")
        self.assertIn("`c`.`encounter_date` >= '2026-03-01'", self.builder.render())
        with self.assertRaises(ValueError):
            self.builder.set_date_range("hmo_id", "2026-03-01")

    def test_order_and_limit(self):
        self.builder.set_order("total_amount", "asc")
        self.builder.set_limit("50")
        sql = self.builder.render()
        self.assertTrue(sql.endswith("ORDER BY `c`.`total_amount` ASC\nLIMIT 50;"))
        with self.assertRaises(ValueError):
            self.builder.set_order("total_amount", "SIDEWAYS")
        with self.assertRaises(ValueError):
            self.builder.set_limit("-1")

    def test_select_all(self):
        self.builder.select_all()
        self.assertEqual(self.builder.state.selected_columns, list(self.builder.base.columns))


if __name__ == "__main__":
    unittest.main()
