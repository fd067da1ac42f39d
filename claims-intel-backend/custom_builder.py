"""
Claims Intel - Visual Custom Builder
====================================

State machine behind the "Custom Builder" tab: pick a base table, toggle
columns, join related tables along authored catalog edges, add WHERE rows,
a date range, ORDER BY and LIMIT. render_sql() turns a BuilderState snapshot
into SQL text.

Column references
-----------------
Selected columns, WHERE columns and the order column are stored as either a
bare column name (belongs to the base table) or "alias.column" (belongs to a
joined table, or explicitly to the base table). Both parts must be simple
identifiers. Selected columns are kept in canonical form: bare for the base
table, "alias.column" for joins, so "c.id" and "id" are one selection.

The builder never forces a LIMIT. Its default of 1000 is only a starting
value the user can clear; heavy-query safety belongs to the template path.
"""

import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from schema_catalog import OPERATORS, SchemaCatalog, TableDescriptor, get_default_catalog
from value_sanitizer import (
    is_numeric,
    is_simple_identifier,
    numeric_literal,
    quote_column,
    quote_identifier,
    quote_literal,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_TABLE = "claims"
DEFAULT_COLUMNS = ["id", "hmo_id", "total_amount", "approved_amount", "hmo_status", "created_at"]
DEFAULT_ROW_LIMIT = 1000
ORDER_DIRECTIONS = ("ASC", "DESC")
VALUELESS_OPERATORS = ("IS NULL", "IS NOT NULL")
WHERE_FIELDS = ("column", "operator", "value")


class JoinResult(Enum):
    """Outcome of add_join. UNAVAILABLE means no authored edge exists."""
    OK = "ok"
    ALREADY_JOINED = "already_joined"
    UNAVAILABLE = "unavailable"


class TableUnavailable(ValueError):
    """Base table is not in the catalog."""


@dataclass
class JoinRecord:
    table: str
    alias: str
    on_clause: str
    join_type: str = "LEFT JOIN"


@dataclass
class WhereCondition:
    column: str
    operator: str = "="
    value: str = ""

    def is_active(self) -> bool:
        if self.operator in VALUELESS_OPERATORS:
            return True
        return self.value is not None and str(self.value).strip() != ""


@dataclass
class BuilderState:
    base_table: str = DEFAULT_BASE_TABLE
    selected_columns: List[str] = field(default_factory=lambda: list(DEFAULT_COLUMNS))
    joins: List[JoinRecord] = field(default_factory=list)
    where_conditions: List[WhereCondition] = field(default_factory=list)
    date_column: Optional[str] = "created_at"
    date_from: str = ""
    date_to: str = ""
    order_column: Optional[str] = "created_at"
    order_direction: str = "DESC"
    row_limit: Any = DEFAULT_ROW_LIMIT

    def joined_aliases(self) -> List[str]:
        return [j.alias for j in self.joins]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BuilderState":
        data = dict(data)
        data["joins"] = [JoinRecord(**j) for j in data.get("joins") or []]
        data["where_conditions"] = [WhereCondition(**w) for w in data.get("where_conditions") or []]
        if data.get("selected_columns") is None:
            data["selected_columns"] = []
        return cls(**data)


# =============================================================================
# Rendering
# =============================================================================

def _split_reference(reference: Any, base: TableDescriptor) -> Tuple[str, str]:
    """(alias, column) of a reference; a bare name belongs to the base table."""
    if not isinstance(reference, str) or not reference.strip():
        raise ValueError(f"Column reference must be a non-empty string, got {reference!r}")
    reference = reference.strip()
    if "." in reference:
        alias, column = reference.split(".", 1)
    else:
        alias, column = base.alias, reference
    if not (is_simple_identifier(alias) and is_simple_identifier(column)):
        raise ValueError(f"Invalid column reference: {reference!r}")
    return alias, column


def canonical_reference(reference: Any, base: TableDescriptor) -> str:
    """Bare name for a base-table column, "alias.column" for any other table."""
    alias, column = _split_reference(reference, base)
    return column if alias == base.alias else f"{alias}.{column}"


def _render_column(reference: Any, base: TableDescriptor) -> str:
    alias, column = _split_reference(reference, base)
    return quote_column(f"{alias}.{column}")


def _render_limit(row_limit: Any) -> Optional[str]:
    if row_limit is None or isinstance(row_limit, bool):
        return None
    text = str(row_limit).strip()
    if text in ("", "0"):
        return None
    if not is_numeric(text) or not numeric_literal(text).isdigit():
        raise ValueError(f"LIMIT must be a positive integer, got {row_limit!r}")
    return numeric_literal(text)


def _render_condition(condition: WhereCondition, base: TableDescriptor) -> str:
    if condition.operator not in OPERATORS:
        raise ValueError(f"Unsupported operator: {condition.operator}")
    column = _render_column(condition.column, base)
    if condition.operator in VALUELESS_OPERATORS:
        return f"{column} {condition.operator}"
    if condition.operator == "IN":
        # caller supplies a valid comma list
        return f"{column} IN ({condition.value})"
    return f"{column} {condition.operator} {quote_literal(condition.value)}"


def render_sql(state: BuilderState, catalog: Optional[SchemaCatalog] = None) -> str:
    """
    Render a builder snapshot as a single SQL statement.

    Pure: reads only the state and the catalog. Raises TableUnavailable when
    the base table is unknown and ValueError for an invalid operator, order
    direction, limit or column reference. A column selected twice under
    different spellings ("id" and "c.id") is rendered once.
    """
    catalog = catalog or get_default_catalog()
    base = catalog.table(state.base_table)
    if base is None:
        raise TableUnavailable(f"Unknown table: {state.base_table}")

    columns: List[str] = []
    for reference in state.selected_columns:
        rendered = _render_column(reference, base)
        if rendered not in columns:
            columns.append(rendered)
    if columns:
        select = ",\n".join(f"  {c}" for c in columns)
    else:
        select = f"  {quote_identifier(base.alias)}.*"

    lines = [
        f"SELECT\n{select}",
        f"FROM {quote_identifier(base.name)} {quote_identifier(base.alias)}",
    ]
    for join in state.joins:
        lines.append(
            f"{join.join_type} {quote_identifier(join.table)} {quote_identifier(join.alias)} ON {join.on_clause}"
        )

    conditions = [_render_condition(w, base) for w in state.where_conditions if w.is_active()]
    if state.date_column:
        date_column = _render_column(state.date_column, base)
        if state.date_from:
            conditions.append(f"{date_column} >= {quote_literal(state.date_from)}")
        if state.date_to:
            conditions.append(
                f"{date_column} < DATE_ADD({quote_literal(state.date_to)}, INTERVAL 1 DAY)"
            )
    if conditions:
        lines.append("WHERE\n  " + "\n  AND ".join(conditions))

    if state.order_column:
        direction = (state.order_direction or "DESC").upper()
        if direction not in ORDER_DIRECTIONS:
            raise ValueError(f"Order direction must be ASC or DESC, got {state.order_direction!r}")
        lines.append(f"ORDER BY {_render_column(state.order_column, base)} {direction}")

    limit = _render_limit(state.row_limit)
    if limit:
        lines.append(f"LIMIT {limit}")

    return "\n".join(lines) + ";"


# =============================================================================
# Builder
# =============================================================================

class CustomQueryBuilder:
    """Mutable session wrapper around a BuilderState."""

    def __init__(self, catalog: Optional[SchemaCatalog] = None, state: Optional[BuilderState] = None):
        self.catalog = catalog or get_default_catalog()
        self.state = state or BuilderState()
        if self.catalog.table(self.state.base_table) is None:
            raise TableUnavailable(f"Unknown table: {self.state.base_table}")

    @property
    def base(self) -> TableDescriptor:
        return self.catalog.table(self.state.base_table)

    def _table_for_alias(self, alias: str) -> Optional[TableDescriptor]:
        if alias == self.base.alias:
            return self.base
        if alias in self.state.joined_aliases():
            return self.catalog.table_for_alias(alias)
        return None

    def _check_column(self, reference: str) -> str:
        """
        Canonical form of reference (see canonical_reference).

        Raises ValueError unless it names a column of the base or a joined table.
        """
        alias, column = _split_reference(reference, self.base)
        table = self._table_for_alias(alias)
        if table is None or not table.has_column(column):
            raise ValueError(f"Column not available: {reference}")
        return canonical_reference(reference, self.base)

    def _alias_of(self, reference: str) -> str:
        return _split_reference(reference, self.base)[0]

    def available_columns(self) -> List[str]:
        """Every selectable reference: bare base columns, then alias.column per join."""
        columns = list(self.base.columns)
        for join in self.state.joins:
            table = self.catalog.table(join.table)
            columns.extend(f"{join.alias}.{c}" for c in table.columns)
        return columns

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def set_base_table(self, table_name: str) -> None:
        table = self.catalog.table(table_name)
        if table is None:
            raise TableUnavailable(f"Unknown table: {table_name}")
        date_columns = table.date_columns
        if "created_at" in date_columns:
            date_column = "created_at"
        else:
            date_column = date_columns[0] if date_columns else None
        self.state = BuilderState(
            base_table=table.name,
            selected_columns=["id"],
            date_column=date_column,
            order_column="created_at" if table.has_column("created_at") else None,
            order_direction=self.state.order_direction,
            row_limit=self.state.row_limit,
        )
        logger.info(f"[BUILDER] Base table set to {table.name}")

    def toggle_column(self, reference: str) -> bool:
        """Add the column at the end, or remove it. Returns True when now selected."""
        if reference in self.state.selected_columns:
            self.state.selected_columns.remove(reference)
            return False
        canonical = self._check_column(reference)
        for selected in self.state.selected_columns:
            if canonical_reference(selected, self.base) == canonical:
                self.state.selected_columns.remove(selected)
                return False
        self.state.selected_columns.append(canonical)
        return True

    def select_all(self) -> None:
        self.state.selected_columns = list(self.base.columns)

    def add_join(self, table_name: str) -> JoinResult:
        if any(j.table == table_name for j in self.state.joins):
            return JoinResult.ALREADY_JOINED
        edge = self.catalog.join(self.state.base_table, table_name)
        target = self.catalog.table(table_name)
        if edge is None or target is None:
            logger.warning(f"[BUILDER] No join edge {self.state.base_table} -> {table_name}")
            return JoinResult.UNAVAILABLE
        self.state.joins.append(JoinRecord(table=target.name, alias=target.alias, on_clause=edge.on_clause))
        logger.info(f"[BUILDER] Joined {target.name} ({target.alias})")
        return JoinResult.OK

    def remove_join(self, table_name: str) -> bool:
        """Remove a join and every column, condition and ordering that uses its alias."""
        record = next((j for j in self.state.joins if j.table == table_name), None)
        if record is None:
            return False
        alias = record.alias
        self.state.joins.remove(record)
        self.state.selected_columns = [
            c for c in self.state.selected_columns if self._alias_of(c) != alias
        ]
        self.state.where_conditions = [
            w for w in self.state.where_conditions if self._alias_of(w.column) != alias
        ]
        if self.state.order_column and self._alias_of(self.state.order_column) == alias:
            self.state.order_column = None
        logger.info(f"[BUILDER] Removed join {table_name} and its {record.alias}.* references")
        return True

    def add_where(self) -> int:
        self.state.where_conditions.append(WhereCondition(column=f"{self.base.alias}.id"))
        return len(self.state.where_conditions) - 1

    def update_where(self, index: int, field_name: str, value: Any) -> WhereCondition:
        condition = self.state.where_conditions[index]
        if field_name not in WHERE_FIELDS:
            raise ValueError(f"Unknown condition field: {field_name}")
        if field_name == "column":
            self._check_column(value)
        elif field_name == "operator" and value not in OPERATORS:
            raise ValueError(f"Unsupported operator: {value}")
        setattr(condition, field_name, "" if value is None else value)
        return condition

    def remove_where(self, index: int) -> None:
        del self.state.where_conditions[index]

    def set_date_range(self, column: Optional[str], date_from: str = "", date_to: str = "") -> None:
        if column is not None and column not in self.base.date_columns:
            raise ValueError(f"{column} is not a date column of {self.base.name}")
        self.state.date_column = column
        self.state.date_from = date_from or ""
        self.state.date_to = date_to or ""

    def set_order(self, column: Optional[str], direction: str = "DESC") -> None:
        direction = (direction or "DESC").upper()
        if direction not in ORDER_DIRECTIONS:
            raise ValueError(f"Order direction must be ASC or DESC, got {direction!r}")
        if column:
            self._check_column(column)
        self.state.order_column = column or None
        self.state.order_direction = direction

    def set_limit(self, row_limit: Any) -> None:
        # validates; None, "" and "0" all mean no LIMIT
        _render_limit(row_limit)
        self.state.row_limit = row_limit

    def render(self) -> str:
        return render_sql(self.state, self.catalog)
