"""
Claims Intel - Schema Catalog
=============================

Static description of the claims warehouse as seen by the query builder:
tables, their aliases and ordered column lists, and the join edges the
Custom Builder is allowed to navigate.

The catalog is plain immutable data. It is built once at startup and
injected into the template synthesizer and the custom builder; a default
instance is exposed through get_default_catalog() for convenience.

Lookups never raise for "not found": a missing table or join edge is
returned as None and callers treat it as "unavailable".
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TableDescriptor:
    """A catalog table: SQL name, unique alias, display metadata and columns."""
    name: str
    alias: str
    label: str
    size: str
    columns: Tuple[str, ...]

    def has_column(self, column: str) -> bool:
        return column in self.columns

    @property
    def date_columns(self) -> Tuple[str, ...]:
        """Columns usable for a date-range filter (timestamps and dates)."""
        return tuple(
            c for c in self.columns
            if "_at" in c or "date" in c or c == "birthdate"
        )


@dataclass(frozen=True)
class JoinEdge:
    """Authored join from one table to another. on_clause is alias-qualified."""
    from_table: str
    to_table: str
    on_clause: str
    label: str


class SchemaCatalog:
    """
    Immutable lookup over tables and directed join edges.

    Invariants checked at construction:
    - aliases are unique across the catalog
    - no table lists the same column twice
    - every join edge connects two known tables and its ON clause only
      references the aliases of those two tables
    """

    def __init__(
        self,
        tables: List[TableDescriptor],
        joins: List[JoinEdge],
        status_maps: Optional[Mapping[str, Mapping[str, str]]] = None,
        hmo_list: Optional[List[Dict[str, object]]] = None,
    ):
        self._tables: Dict[str, TableDescriptor] = {}
        self._by_alias: Dict[str, TableDescriptor] = {}
        for table in tables:
            if table.name in self._tables:
                raise ValueError(f"Duplicate table in catalog: {table.name}")
            if table.alias in self._by_alias:
                raise ValueError(
                    f"Alias '{table.alias}' used by both "
                    f"{self._by_alias[table.alias].name} and {table.name}"
                )
            if len(set(table.columns)) != len(table.columns):
                raise ValueError(f"Duplicate columns in table {table.name}")
            self._tables[table.name] = table
            self._by_alias[table.alias] = table

        # {from_table: {to_table: JoinEdge}} keeps authored order per table
        self._joins: Dict[str, Dict[str, JoinEdge]] = {}
        for edge in joins:
            self._validate_edge(edge)
            self._joins.setdefault(edge.from_table, {})[edge.to_table] = edge

        self.status_maps = dict(status_maps or {})
        self.hmo_list = list(hmo_list or [])

        logger.debug(
            f"[CATALOG] {len(self._tables)} tables, "
            f"{sum(len(v) for v in self._joins.values())} join edges"
        )

    def _validate_edge(self, edge: JoinEdge) -> None:
        source = self._tables.get(edge.from_table)
        target = self._tables.get(edge.to_table)
        if source is None or target is None:
            raise ValueError(
                f"Join {edge.from_table} -> {edge.to_table} references an unknown table"
            )
        allowed = {source.alias, target.alias}
        referenced = set(_aliases_in_clause(edge.on_clause))
        if not referenced or not referenced <= allowed:
            raise ValueError(
                f"Join {edge.from_table} -> {edge.to_table} ON clause references "
                f"{sorted(referenced - allowed) or 'no alias'}"
            )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @property
    def tables(self) -> List[TableDescriptor]:
        return list(self._tables.values())

    def table(self, name: str) -> Optional[TableDescriptor]:
        return self._tables.get(name)

    def table_for_alias(self, alias: str) -> Optional[TableDescriptor]:
        return self._by_alias.get(alias)

    def join(self, from_table: str, to_table: str) -> Optional[JoinEdge]:
        return self._joins.get(from_table, {}).get(to_table)

    def available_joins(self, from_table: str) -> List[JoinEdge]:
        return list(self._joins.get(from_table, {}).values())

    def to_dict(self) -> Dict[str, object]:
        """JSON-friendly view used by the catalog endpoint."""
        return {
            "tables": {
                t.name: {
                    "alias": t.alias,
                    "label": t.label,
                    "size": t.size,
                    "columns": list(t.columns),
                    "date_columns": list(t.date_columns),
                }
                for t in self._tables.values()
            },
            "joins": {
                source: {
                    target: {"on": edge.on_clause, "label": edge.label}
                    for target, edge in edges.items()
                }
                for source, edges in self._joins.items()
            },
            "status_maps": self.status_maps,
            "hmo_list": self.hmo_list,
            "operators": list(OPERATORS),
        }


def _aliases_in_clause(on_clause: str) -> List[str]:
    """Extract the alias part of every `alias`.`column` pair in an ON clause."""
    aliases = []
    for part in on_clause.replace("(", " ").replace(")", " ").split():
        if "." in part:
            alias = part.split(".", 1)[0].strip("`")
            if alias:
                aliases.append(alias)
    return aliases


# =============================================================================
# Default catalog
# =============================================================================

OPERATORS = ("=", "!=", ">", ">=", "<", "<=", "LIKE", "IS NULL", "IS NOT NULL", "IN")

STATUS_MAPS = {
    "hmo_status": {"-1": "Rejected", "0": "Pending", "1": "Approved"},
    "provider_status": {"-1": "Draft", "0": "Pending", "1": "Submitted"},
}

HMO_LIST = [
    {"id": 73, "name": "UAP Old Mutual (Uganda)"},
    {"id": 4, "name": "UAP (Legacy ID)"},
    {"id": 38, "name": "HMO Partner 38"},
    {"id": 74, "name": "Jubilee Health (Kenya)"},
    {"id": 75, "name": "Jubilee Health (Tanzania)"},
    {"id": 76, "name": "AXA Mansard"},
    {"id": 77, "name": "Cornerstone Insurance"},
    {"id": 78, "name": "Universal Insurance"},
]

DEFAULT_TABLES = [
    TableDescriptor("claims", "c", "Claims", "5.3M rows", (
        "id", "hmo_id", "provider_id", "enrollee_id", "encounter_date",
        "total_amount", "approved_amount", "auto_vet_amount", "hmo_status",
        "provider_status", "hmo_erp_id", "approval_code", "entry_point",
        "hmo_pile_id", "has_unmatched_tariff", "vetted_at", "submitted_at",
        "created_at", "updated_at", "paid_at",
    )),
    TableDescriptor("claim_items", "ci", "Claim Items", "24.7M rows", (
        "id", "claim_id", "care_id", "tariff_id", "description", "qty", "amount",
        "unit_price_billed", "unit_price_approved", "approved_amount",
        "approved_qty", "hmo_approved", "comment_id", "provider_comment",
    )),
    TableDescriptor("providers", "p", "Providers", "9.8K rows", (
        "id", "name", "email", "phone", "address", "state", "nhis_code", "category_id",
    )),
    TableDescriptor("enrollees", "e", "Enrollees", "2M rows", (
        "id", "hmo_id", "insurance_no", "firstname", "lastname", "middle_name",
        "sex", "birthdate", "status", "hmo_plan_id", "hmo_client_id", "state", "lga",
    )),
    TableDescriptor("hmos", "h", "HMOs", "167 rows", (
        "id", "name", "code", "email", "currency", "country_id", "is_active",
    )),
    TableDescriptor("provider_tariffs", "pt", "Provider Tariffs", "18.9M rows", (
        "id", "hmo_id", "provider_id", "care_id", "care_variation_id", "desc",
        "amount", "amount_max", "flagged_as_correct_at", "is_approved",
        "created_at", "updated_at",
    )),
    TableDescriptor("cares", "ca", "Cares", "398K rows", (
        "id", "name", "base_name", "type", "type_id", "active", "cve_version",
        "gender_limit", "age_min", "age_max",
    )),
    TableDescriptor("care_variations", "cv", "Care Variations", "30K rows", (
        "id", "care_id", "age_min", "age_max", "meta",
    )),
]

DEFAULT_JOINS = [
    JoinEdge("claims", "providers", "`c`.`provider_id` = `p`.`id`", "Provider details"),
    JoinEdge("claims", "enrollees", "`c`.`enrollee_id` = `e`.`id`", "Enrollee details"),
    JoinEdge("claims", "hmos", "`c`.`hmo_id` = `h`.`id`", "HMO name"),
    JoinEdge("claims", "claim_items", "`c`.`id` = `ci`.`claim_id`", "Line items"),
    JoinEdge("claim_items", "claims", "`ci`.`claim_id` = `c`.`id`", "Parent claim"),
    JoinEdge("claim_items", "cares", "`ci`.`care_id` = `ca`.`id`", "Care catalog"),
    JoinEdge("claim_items", "provider_tariffs", "`ci`.`tariff_id` = `pt`.`id`", "Tariff pricing"),
    JoinEdge("provider_tariffs", "hmos", "`pt`.`hmo_id` = `h`.`id`", "HMO name"),
    JoinEdge("provider_tariffs", "providers", "`pt`.`provider_id` = `p`.`id`", "Provider name"),
    JoinEdge("provider_tariffs", "cares", "`pt`.`care_id` = `ca`.`id`", "Care catalog"),
    JoinEdge("provider_tariffs", "care_variations", "`pt`.`care_variation_id` = `cv`.`id`", "Variation details"),
    JoinEdge("enrollees", "hmos", "`e`.`hmo_id` = `h`.`id`", "HMO name"),
    JoinEdge("cares", "care_variations", "`cv`.`care_id` = `ca`.`id`", "Variations"),
]


_default_catalog: Optional[SchemaCatalog] = None


def get_default_catalog() -> SchemaCatalog:
    """Get the singleton catalog built from the default table/join definitions."""
    global _default_catalog
    if _default_catalog is None:
        _default_catalog = SchemaCatalog(
            DEFAULT_TABLES, DEFAULT_JOINS, status_maps=STATUS_MAPS, hmo_list=HMO_LIST
        )
    return _default_catalog
