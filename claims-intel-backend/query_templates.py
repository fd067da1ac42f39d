"""
Claims Intel - Template Query Synthesizer
=========================================

Registry of parameterized playbook queries. Each template declares which
filter fields it accepts and a pure build function:

    build(filters, row_limit) -> SQL text

GUARANTEES
----------
- Deterministic: the same (filters, row_limit) always yields the same text.
- Only conditions for PRESENT filters are rendered; an absent filter means
  "unfiltered", never zero/false.
- Every interpolated value goes through value_sanitizer.
- Date ranges are half-open: col >= 'from' AND col < DATE_ADD('to', INTERVAL 1 DAY).
  Never BETWEEN, never a hardcoded end-of-day timestamp.
- Aggregate templates (single row or complete grouping) never carry a LIMIT,
  whatever row_limit the caller passes.

Unknown template keys raise UnknownTemplateError: that is a caller bug, not
bad user input.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from value_sanitizer import (
    escape_literal,
    is_numeric,
    normalize_hmo_id,
    numeric_literal,
    quote_literal,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Errors
# =============================================================================

class UnknownTemplateError(KeyError):
    """Requested template key is not in the registry."""

    def __init__(self, key: str):
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"Unknown query template: {self.key}"


class InvalidFilterError(ValueError):
    """A filter name outside the known filter set, or a malformed row limit."""


# =============================================================================
# Filters
# =============================================================================

FILTER_FIELDS = frozenset({
    "hmo_id", "date_from", "date_to", "date_field", "hmo_status",
    "provider_status", "provider_name", "vetted_only", "has_unmatched_tariff",
    "care_type_medication", "erp_prefix", "flagged_status", "variation_filter",
})

BOOLEAN_FILTERS = frozenset({"vetted_only", "has_unmatched_tariff", "care_type_medication"})

# "date_range" is the UI-level name for the date_from/date_to pair
DATE_RANGE = "date_range"

DATE_FIELDS = ("created_at", "encounter_date", "submitted_at", "vetted_at", "paid_at")

_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off"}


def _parse_flag(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise InvalidFilterError(f"Filter '{name}' expects a boolean, got {value!r}")


@dataclass(frozen=True)
class FilterValues:
    """
    Filter mapping with explicit presence.

    A name is present only if it was supplied with a non-empty value. Boolean
    filters keep an explicit False (present, but compiles to nothing).
    """
    values: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "FilterValues":
        if isinstance(data, FilterValues):
            return data
        cleaned: Dict[str, Any] = {}
        for name, value in (data or {}).items():
            if name not in FILTER_FIELDS:
                raise InvalidFilterError(f"Unknown filter: {name}")
            if value is None:
                continue
            if isinstance(value, str):
                value = value.strip()
                if value == "":
                    continue
            if name in BOOLEAN_FILTERS:
                value = _parse_flag(name, value)
            cleaned[name] = value
        return cls(cleaned)

    def has(self, name: str) -> bool:
        return name in self.values

    def get(self, name: str, default: Any = None) -> Any:
        return self.values.get(name, default)

    def flag(self, name: str) -> bool:
        return self.values.get(name) is True

    def restricted_to(self, accepted: Iterable[str]) -> "FilterValues":
        allowed = set(accepted)
        if DATE_RANGE in allowed:
            allowed.update({"date_from", "date_to"})
        return FilterValues({k: v for k, v in self.values.items() if k in allowed})

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.values)


# =============================================================================
# SQL assembly helpers
# =============================================================================

class WhereBuilder:
    """Accumulates AND-ed conditions in insertion order."""

    def __init__(self, initial: Iterable[str] = ()):
        self.conditions: List[str] = list(initial)

    def add(self, condition: str) -> None:
        self.conditions.append(condition)

    def hmo_id(self, column: str, filters: FilterValues) -> None:
        hmo = normalize_hmo_id(filters.get("hmo_id"))
        if hmo is not None:
            self.add(f"{column} = {hmo}")

    def numeric(self, column: str, filters: FilterValues, name: str) -> None:
        value = filters.get(name)
        if is_numeric(value):
            self.add(f"{column} = {numeric_literal(value)}")

    def flag(self, filters: FilterValues, name: str, predicate: str) -> None:
        if filters.flag(name):
            self.add(predicate)

    def date_range(self, column: str, filters: FilterValues) -> None:
        if filters.has("date_from"):
            self.add(f"{column} >= {quote_literal(filters.get('date_from'))}")
        if filters.has("date_to"):
            self.add(
                f"{column} < DATE_ADD({quote_literal(filters.get('date_to'))}, INTERVAL 1 DAY)"
            )

    def render(self) -> str:
        if not self.conditions:
            return ""
        return "WHERE\n  " + "\n  AND ".join(self.conditions)


def _date_column(table_ref: str, filters: FilterValues, default: str) -> str:
    date_field = filters.get("date_field")
    if date_field not in DATE_FIELDS:
        date_field = default
    return f"`{table_ref}`.`{date_field}`"


def _select(*columns: str) -> str:
    return "SELECT\n" + ",\n".join(f"  {c}" for c in columns)


def _limit(row_limit: Optional[int]) -> str:
    return f"LIMIT {row_limit}" if row_limit else ""


def _statement(*clauses: str) -> str:
    return "\n".join(c for c in clauses if c) + ";"


# =============================================================================
# Template model
# =============================================================================

BuildFunction = Callable[[FilterValues, Optional[int]], str]


@dataclass(frozen=True)
class QueryTemplate:
    key: str
    name: str
    description: str
    category: str
    heavy: bool
    aggregate: bool
    accepted_filters: Tuple[str, ...]
    builder: BuildFunction

    def accepts(self, name: str) -> bool:
        if name in ("date_from", "date_to"):
            return DATE_RANGE in self.accepted_filters
        return name in self.accepted_filters

    def build(self, filters: Optional[Mapping[str, Any]] = None, row_limit: Optional[int] = None) -> str:
        values = FilterValues.from_mapping(filters).restricted_to(self.accepted_filters)
        limit = _validate_row_limit(row_limit)
        if self.aggregate:
            limit = None
        return self.builder(values, limit)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "heavy": self.heavy,
            "aggregate": self.aggregate,
            "filters": list(self.accepted_filters),
        }


@dataclass(frozen=True)
class TemplateCategory:
    key: str
    name: str
    icon: str
    description: str


def _validate_row_limit(row_limit: Any) -> Optional[int]:
    if row_limit is None:
        return None
    if isinstance(row_limit, bool) or not is_numeric(row_limit):
        raise InvalidFilterError(f"Row limit must be a positive integer, got {row_limit!r}")
    text = numeric_literal(row_limit)
    if not text.isdigit() or int(text) <= 0:
        raise InvalidFilterError(f"Row limit must be a positive integer, got {row_limit!r}")
    return int(text)


# =============================================================================
# Claims reports
# =============================================================================

def _full_claims_extract(f: FilterValues, limit: Optional[int]) -> str:
    where = WhereBuilder()
    where.hmo_id("`claims`.`hmo_id`", f)
    where.numeric("`claims`.`hmo_status`", f, "hmo_status")
    where.numeric("`claims`.`provider_status`", f, "provider_status")
    if f.has("provider_name"):
        where.add(f"`providers`.`name` LIKE '%{escape_literal(f.get('provider_name'))}%'")
    where.flag(f, "vetted_only", "`claims`.`vetted_at` IS NOT NULL")
    where.flag(f, "has_unmatched_tariff", "`claims`.`has_unmatched_tariff` = 1")
    where.date_range(_date_column("claims", f, "created_at"), f)
    return _statement(
        _select(
            "`claims`.`id`",
            "`claims`.`hmo_id`",
            "`providers`.`name` AS `Provider_Name`",
            "CONCAT(`enrollees`.`firstname`, ' ', `enrollees`.`lastname`) AS `Enrollee_Name`",
            "TIMESTAMPDIFF(YEAR, `enrollees`.`birthdate`, CURDATE()) AS `Enrollee_Age`",
            "`claims`.`encounter_date`",
            "`enrollees`.`insurance_no`",
            "`claims`.`total_amount` AS `Amount_Submitted`",
            "`claims`.`approved_amount` AS `Amount_Approved`",
            "`claims`.`submitted_at`",
            "`claims`.`provider_status`",
            "`claims`.`hmo_status`",
            "`claims`.`hmo_pile_id`",
            "`claims`.`approval_code`",
            "`claims`.`vetted_at`",
            "`claims`.`hmo_erp_id`",
            "`claims`.`entry_point`",
            "`claim_items`.`description` AS `Item_Name`",
            "`claim_items`.`id` AS `Item_ID`",
            "`claim_items`.`qty` AS `Item_Qty`",
            "`claim_items`.`amount` AS `Item_Billed`",
            "`claim_items`.`approved_amount` AS `Item_Approved`",
            "`claim_items`.`approved_qty`",
            "`claim_item_comments`.`name` AS `Item_Comment`",
        ),
        "FROM `claims`",
        "LEFT JOIN `providers` ON `claims`.`provider_id` = `providers`.`id`",
        "LEFT JOIN `enrollees` ON `claims`.`enrollee_id` = `enrollees`.`id`",
        "LEFT JOIN `claim_items` ON `claims`.`id` = `claim_items`.`claim_id`",
        "LEFT JOIN `claim_item_comments` ON `claim_items`.`comment_id` = `claim_item_comments`.`id`",
        where.render(),
        "ORDER BY `claims`.`created_at` DESC",
        _limit(limit),
    )


def _claims_summary(f: FilterValues, limit: Optional[int]) -> str:
    where = WhereBuilder()
    where.hmo_id("`claims`.`hmo_id`", f)
    where.numeric("`claims`.`provider_status`", f, "provider_status")
    if f.has("provider_name"):
        where.add(f"`providers`.`name` = {quote_literal(f.get('provider_name'))}")
    where.date_range(_date_column("claims", f, "encounter_date"), f)
    return _statement(
        _select(
            "`claims`.`id` AS `Claim_ID`",
            "`claims`.`hmo_id`",
            "`providers`.`name` AS `Provider_Name`",
            "CONCAT(`enrollees`.`firstname`, ' ', `enrollees`.`lastname`) AS `Enrollee_Name`",
            "`claims`.`encounter_date`",
            "`claims`.`total_amount`",
            "`claims`.`approved_amount`",
            "COUNT(DISTINCT `claim_items`.`id`) AS `Item_Count`",
            "SUM(`claim_items`.`amount`) AS `Total_Item_Billed`",
            "SUM(`claim_items`.`approved_amount`) AS `Total_Item_Approved`",
        ),
        "FROM `claims`",
        "LEFT JOIN `providers` ON `claims`.`provider_id` = `providers`.`id`",
        "LEFT JOIN `enrollees` ON `claims`.`enrollee_id` = `enrollees`.`id`",
        "LEFT JOIN `claim_items` ON `claims`.`id` = `claim_items`.`claim_id`",
        where.render(),
        "GROUP BY `claims`.`id`",
        "ORDER BY `claims`.`encounter_date` DESC",
        _limit(limit),
    )


def _claim_count(f: FilterValues, limit: Optional[int]) -> str:
    where = WhereBuilder()
    where.hmo_id("`claims`.`hmo_id`", f)
    where.numeric("`claims`.`hmo_status`", f, "hmo_status")
    where.numeric("`claims`.`provider_status`", f, "provider_status")
    where.date_range(_date_column("claims", f, "submitted_at"), f)
    return _statement(
        "-- Aggregate: no LIMIT needed",
        _select("COUNT(DISTINCT `claims`.`id`) AS `claim_count`"),
        "FROM `claims`",
        where.render(),
    )


def _claims_status_breakdown(f: FilterValues, limit: Optional[int]) -> str:
    where = WhereBuilder()
    where.hmo_id("`claims`.`hmo_id`", f)
    where.date_range(_date_column("claims", f, "created_at"), f)
    return _statement(
        "-- hmo_status: -1=Rejected, 0=Pending, 1=Approved",
        _select(
            "`hmo_status`",
            "COUNT(*) AS `total`",
            "SUM(`approved_amount`) AS `total_approved_amount`",
            "COUNT(`vetted_at`) AS `vetted_count`",
        ),
        "FROM `claims`",
        where.render(),
        "GROUP BY `hmo_status`",
        "ORDER BY `hmo_status`",
    )


def _todays_claims(f: FilterValues, limit: Optional[int]) -> str:
    where = WhereBuilder([
        "`c`.`created_at` >= CURDATE()",
        "`c`.`created_at` < DATE_ADD(CURDATE(), INTERVAL 1 DAY)",
    ])
    where.hmo_id("`c`.`hmo_id`", f)
    return _statement(
        _select(
            "`c`.`id`",
            "`c`.`hmo_id`",
            "`p`.`name` AS `provider_name`",
            "CONCAT(`e`.`firstname`, ' ', `e`.`lastname`) AS `enrollee_name`",
            "`c`.`encounter_date`",
            "`c`.`total_amount` AS `amount_submitted`",
            "`c`.`approved_amount` AS `amount_approved`",
            "`c`.`submitted_at`",
            "`c`.`provider_status`",
            "`c`.`hmo_status`",
        ),
        "FROM `claims` `c`",
        "JOIN `providers` `p` ON `c`.`provider_id` = `p`.`id`",
        "JOIN `enrollees` `e` ON `c`.`enrollee_id` = `e`.`id`",
        where.render(),
        "ORDER BY `c`.`created_at` DESC",
        _limit(limit),
    )


# =============================================================================
# Claims ERP / ID
# =============================================================================

def _erp_prefix(f: FilterValues) -> Tuple[str, int]:
    """Escaped prefix text and the 1-based SUBSTRING start of the numeric part."""
    prefix = str(f.get("erp_prefix") or "UG")
    return escape_literal(prefix), len(prefix) + 1


def _erp_range(f: FilterValues, limit: Optional[int]) -> str:
    prefix, start = _erp_prefix(f)
    where = WhereBuilder()
    where.hmo_id("`hmo_id`", f)
    where.date_range("`encounter_date`", f)
    where.add(f"`hmo_erp_id` LIKE '{prefix}%'")
    return _statement(
        _select(
            f"CONCAT('{prefix}', MIN(CAST(SUBSTRING(`hmo_erp_id`, {start}) AS UNSIGNED))) AS `first_erp_id`",
            f"CONCAT('{prefix}', MAX(CAST(SUBSTRING(`hmo_erp_id`, {start}) AS UNSIGNED))) AS `last_erp_id`",
        ),
        "FROM `claims`",
        where.render(),
    )


def _erp_detail_list(f: FilterValues, limit: Optional[int]) -> str:
    prefix, start = _erp_prefix(f)
    where = WhereBuilder()
    where.hmo_id("`c`.`hmo_id`", f)
    where.date_range("`c`.`encounter_date`", f)
    where.add(f"`c`.`hmo_erp_id` LIKE '{prefix}%'")
    return _statement(
        _select(
            "`c`.`hmo_erp_id`",
            "`c`.`encounter_date`",
            "CONCAT(`e`.`firstname`, ' ', `e`.`lastname`) AS `enrollee_name`",
            "`e`.`insurance_no`",
            "`p`.`name` AS `provider_name`",
            "`c`.`total_amount`",
        ),
        "FROM `claims` `c`",
        "JOIN `enrollees` `e` ON `e`.`id` = `c`.`enrollee_id`",
        "JOIN `providers` `p` ON `p`.`id` = `c`.`provider_id`",
        where.render(),
        "ORDER BY `c`.`encounter_date` ASC, "
        f"CAST(SUBSTRING(`c`.`hmo_erp_id`, {start}) AS UNSIGNED) ASC",
        _limit(limit),
    )


# =============================================================================
# Tariff analysis
# =============================================================================

def _unflagged_by_hmo(f: FilterValues, limit: Optional[int]) -> str:
    medication = f.flag("care_type_medication")
    where = WhereBuilder([
        "`pt`.`care_id` IS NOT NULL",
        "`pt`.`flagged_as_correct_at` IS NULL",
    ])
    if medication:
        where.add("`c`.`type_id` = 1")
        where.add("`pt`.`care_variation_id` IS NULL")
    return _statement(
        _select(
            "`h`.`name` AS `hmo_name`",
            "COUNT(DISTINCT `pt`.`id`) AS `total_unflagged_mapped`",
        ),
        "FROM `provider_tariffs` `pt`",
        "JOIN `hmos` `h` ON `pt`.`hmo_id` = `h`.`id`",
        "JOIN `cares` `c` ON `pt`.`care_id` = `c`.`id`" if medication else "",
        where.render(),
        "GROUP BY `h`.`id`, `h`.`name`",
        "ORDER BY `total_unflagged_mapped` DESC",
    )


def _unmapped_by_hmo(f: FilterValues, limit: Optional[int]) -> str:
    where = WhereBuilder([
        "`pt`.`care_id` IS NULL",
        "`pt`.`flagged_as_correct_at` IS NULL",
    ])
    return _statement(
        _select(
            "`h`.`name` AS `hmo_name`",
            "COUNT(DISTINCT `pt`.`id`) AS `total_unmapped_unflagged`",
        ),
        "FROM `provider_tariffs` `pt`",
        "JOIN `hmos` `h` ON `pt`.`hmo_id` = `h`.`id`",
        where.render(),
        "GROUP BY `h`.`id`, `h`.`name`",
        "ORDER BY `total_unmapped_unflagged` DESC",
    )


def _new_tariffs_today(f: FilterValues, limit: Optional[int]) -> str:
    where = WhereBuilder([
        "`pt`.`created_at` >= CURDATE()",
        "`pt`.`created_at` < DATE_ADD(CURDATE(), INTERVAL 1 DAY)",
    ])
    where.hmo_id("`pt`.`hmo_id`", f)
    return _statement(
        _select("COUNT(DISTINCT `pt`.`id`) AS `total_new_provider_tariffs_today`"),
        "FROM `provider_tariffs` `pt`",
        where.render(),
    )


# =============================================================================
# Tariff exports
# =============================================================================

def _tariff_full_export(f: FilterValues, limit: Optional[int]) -> str:
    where = WhereBuilder()
    where.hmo_id("`pt`.`hmo_id`", f)
    flagged = f.get("flagged_status")
    if flagged == "unflagged":
        where.add("`pt`.`flagged_as_correct_at` IS NULL")
    elif flagged == "flagged":
        where.add("`pt`.`flagged_as_correct_at` IS NOT NULL")
    where.flag(f, "care_type_medication", "`c`.`type_id` = 1")
    variation = f.get("variation_filter")
    if variation == "with":
        where.add("`pt`.`care_variation_id` IS NOT NULL")
    elif variation == "without":
        where.add("`pt`.`care_variation_id` IS NULL")
    where.add("`pt`.`care_id` IS NOT NULL")
    where.date_range(_date_column("pt", f, "created_at"), f)
    return _statement(
        _select(
            "`pt`.`id`",
            "`pt`.`care_id`",
            "`h`.`name` AS `hmo_name`",
            "`p`.`name` AS `provider_name`",
            "`c`.`name` AS `care_name`",
            "`pt`.`desc`",
            "`pt`.`amount`",
            "`pt`.`created_at`",
        ),
        "FROM `provider_tariffs` `pt`",
        "JOIN `cares` `c` ON `pt`.`care_id` = `c`.`id`",
        "JOIN `hmos` `h` ON `pt`.`hmo_id` = `h`.`id`",
        "LEFT JOIN `providers` `p` ON `pt`.`provider_id` = `p`.`id`",
        where.render(),
        "ORDER BY `pt`.`created_at` DESC",
        _limit(limit),
    )


def _tariff_with_variations(f: FilterValues, limit: Optional[int]) -> str:
    where = WhereBuilder(["`c`.`type_id` = 1"])
    where.hmo_id("`pt`.`hmo_id`", f)
    if f.get("flagged_status") == "unflagged":
        where.add("`pt`.`flagged_as_correct_at` IS NULL")
    where.date_range("`pt`.`created_at`", f)
    return _statement(
        _select(
            "`pt`.`id`",
            "`pt`.`care_id`",
            "`c`.`name` AS `care_name`",
            "`h`.`name` AS `hmo_name`",
            "JSON_UNQUOTE(JSON_EXTRACT(`cv`.`meta`, '$.strength')) AS `strength`",
            "`df`.`name` AS `drug_form`",
            "`pt`.`amount`",
            "`pt`.`desc`",
            "`pt`.`care_variation_id`",
            "`pt`.`created_at`",
        ),
        "FROM `provider_tariffs` `pt`",
        "JOIN `cares` `c` ON `pt`.`care_id` = `c`.`id`",
        "JOIN `hmos` `h` ON `pt`.`hmo_id` = `h`.`id`",
        "LEFT JOIN `care_variations` `cv` ON `pt`.`care_variation_id` = `cv`.`id`",
        "LEFT JOIN `drug_forms` `df` ON `df`.`id` = "
        "CAST(JSON_UNQUOTE(JSON_EXTRACT(`cv`.`meta`, '$.drug_form_id')) AS UNSIGNED)",
        where.render(),
        "ORDER BY `pt`.`created_at` DESC",
        _limit(limit),
    )


# =============================================================================
# Cares / CVE and reference lookups
# =============================================================================

def _v1_cares(f: FilterValues, limit: Optional[int]) -> str:
    return _statement(
        "SELECT `id`, `name`, `type`, `active`, `type_id`, `cve_version`",
        "FROM `cares`",
        "WHERE `cve_version` IS NULL OR `cve_version` <> 2",
        "ORDER BY `name`",
        _limit(limit),
    )


def _cve_version_summary(f: FilterValues, limit: Optional[int]) -> str:
    return _statement(
        "SELECT `cve_version`, COUNT(*) AS `total_cares`",
        "FROM `cares`",
        "GROUP BY `cve_version`",
        "ORDER BY `cve_version`",
    )


def _distinct_hmo_status(f: FilterValues, limit: Optional[int]) -> str:
    return _statement("SELECT DISTINCT `hmo_status` FROM `claims` ORDER BY `hmo_status`")


def _status_breakdown(table: str, column: str) -> BuildFunction:
    def build(f: FilterValues, limit: Optional[int]) -> str:
        return _statement(
            f"SELECT `{column}`, COUNT(*) AS `total`",
            f"FROM `{table}`",
            f"GROUP BY `{column}`",
            f"ORDER BY `{column}`",
        )
    return build


# =============================================================================
# Registry
# =============================================================================

DEFAULT_CATEGORIES = [
    TemplateCategory("claims_reports", "Claims Reports", "📋",
                     "Pre-built queries for claims data with provider, enrollee, and item details"),
    TemplateCategory("claims_erp", "Claims ERP/ID", "🔗",
                     "Lookup and validate ERP IDs for reconciliation"),
    TemplateCategory("tariff_counts", "Tariff Analysis", "💰",
                     "Analyze tariff mappings, gaps, and counts"),
    TemplateCategory("tariff_exports", "Tariff Exports", "📦",
                     "Export tariff data with care, provider and HMO details"),
    TemplateCategory("cares_analysis", "Cares / CVE", "🧬",
                     "Care catalog analysis and V1/V2 migration status"),
    TemplateCategory("reference", "Reference", "🔍",
                     "Quick lookups for status codes and system values"),
]

# Tabs without templates, listed so clients can render the full category bar
TOOL_CATEGORIES = [
    TemplateCategory("ai_assistant", "AI Assistant", "🤖",
                     "Type what you need in plain English and AI writes the SQL for you"),
    TemplateCategory("custom_builder", "Custom Builder", "🔨",
                     "Build queries visually: pick tables, columns, joins, and filters step by step"),
]

DEFAULT_TEMPLATES = [
    QueryTemplate("full_claims_extract", "Full Claims Extract",
                  "Detailed claims with items, enrollees, and provider info",
                  "claims_reports", heavy=True, aggregate=False,
                  accepted_filters=("hmo_id", "date_range", "date_field", "hmo_status",
                                    "provider_status", "provider_name", "vetted_only",
                                    "has_unmatched_tariff"),
                  builder=_full_claims_extract),
    QueryTemplate("claims_summary", "Claims Summary (Grouped)",
                  "Aggregated claim counts and amounts per claim",
                  "claims_reports", heavy=True, aggregate=False,
                  accepted_filters=("hmo_id", "date_range", "date_field", "provider_status",
                                    "provider_name"),
                  builder=_claims_summary),
    QueryTemplate("claim_count", "Claim Count", "Count of claims with filters",
                  "claims_reports", heavy=False, aggregate=True,
                  accepted_filters=("hmo_id", "date_range", "date_field", "provider_status",
                                    "hmo_status"),
                  builder=_claim_count),
    QueryTemplate("claims_status_breakdown", "Status Breakdown",
                  "Claims grouped by hmo_status with amounts",
                  "claims_reports", heavy=False, aggregate=True,
                  accepted_filters=("hmo_id", "date_range", "date_field"),
                  builder=_claims_status_breakdown),
    QueryTemplate("todays_claims", "Today's Claims", "Claims created today for a specific HMO",
                  "claims_reports", heavy=True, aggregate=False,
                  accepted_filters=("hmo_id",),
                  builder=_todays_claims),
    QueryTemplate("erp_range", "ERP ID Range", "First and last ERP IDs in a date range",
                  "claims_erp", heavy=False, aggregate=True,
                  accepted_filters=("hmo_id", "date_range", "erp_prefix"),
                  builder=_erp_range),
    QueryTemplate("erp_detail_list", "ERP Detail List", "Claims with ERP IDs sorted chronologically",
                  "claims_erp", heavy=True, aggregate=False,
                  accepted_filters=("hmo_id", "date_range", "erp_prefix"),
                  builder=_erp_detail_list),
    QueryTemplate("unflagged_by_hmo", "Unflagged Mapped by HMO",
                  "Count unflagged, mapped tariffs per HMO",
                  "tariff_counts", heavy=False, aggregate=True,
                  accepted_filters=("care_type_medication",),
                  builder=_unflagged_by_hmo),
    QueryTemplate("unmapped_by_hmo", "Unmapped by HMO",
                  "Count unmapped, unflagged tariffs per HMO",
                  "tariff_counts", heavy=False, aggregate=True,
                  accepted_filters=(),
                  builder=_unmapped_by_hmo),
    QueryTemplate("new_tariffs_today", "New Tariffs Today", "Count of new tariffs created today",
                  "tariff_counts", heavy=False, aggregate=True,
                  accepted_filters=("hmo_id",),
                  builder=_new_tariffs_today),
    QueryTemplate("tariff_full_export", "Full Tariff Export",
                  "Tariffs with HMO, provider, care details",
                  "tariff_exports", heavy=True, aggregate=False,
                  accepted_filters=("hmo_id", "date_range", "date_field", "flagged_status",
                                    "care_type_medication", "variation_filter"),
                  builder=_tariff_full_export),
    QueryTemplate("tariff_with_variations", "Tariffs + Variations",
                  "Medication tariffs with strength and drug form",
                  "tariff_exports", heavy=True, aggregate=False,
                  accepted_filters=("hmo_id", "date_range", "flagged_status"),
                  builder=_tariff_with_variations),
    QueryTemplate("v1_cares", "Non-V2 Cares", "All cares not yet on CVE version 2",
                  "cares_analysis", heavy=False, aggregate=False,
                  accepted_filters=(),
                  builder=_v1_cares),
    QueryTemplate("cve_version_summary", "CVE Version Summary",
                  "Count of cares grouped by CVE version",
                  "cares_analysis", heavy=False, aggregate=True,
                  accepted_filters=(),
                  builder=_cve_version_summary),
    QueryTemplate("distinct_hmo_status", "Distinct HMO Statuses", "All unique hmo_status values",
                  "reference", heavy=False, aggregate=True,
                  accepted_filters=(),
                  builder=_distinct_hmo_status),
    QueryTemplate("distinct_provider_status", "Provider Status Breakdown",
                  "Provider status values with counts",
                  "reference", heavy=False, aggregate=True,
                  accepted_filters=(),
                  builder=_status_breakdown("claims", "provider_status")),
    QueryTemplate("item_status_breakdown", "Claim Item Status", "All item_status values with counts",
                  "reference", heavy=False, aggregate=True,
                  accepted_filters=(),
                  builder=_status_breakdown("claim_items", "item_status")),
]


class TemplateRegistry:
    """Fixed, ordered registry of query templates grouped by category."""

    def __init__(self, templates: List[QueryTemplate], categories: List[TemplateCategory]):
        self._categories: Dict[str, TemplateCategory] = {c.key: c for c in categories}
        self._templates: Dict[str, QueryTemplate] = {}
        for template in templates:
            if template.key in self._templates:
                raise ValueError(f"Duplicate template key: {template.key}")
            if template.category not in self._categories:
                raise ValueError(f"Template {template.key} has unknown category {template.category}")
            unknown = set(template.accepted_filters) - FILTER_FIELDS - {DATE_RANGE}
            if unknown:
                raise ValueError(f"Template {template.key} accepts unknown filters {sorted(unknown)}")
            self._templates[template.key] = template

    @property
    def keys(self) -> List[str]:
        return list(self._templates)

    @property
    def heavy_keys(self) -> List[str]:
        return [k for k, t in self._templates.items() if t.heavy]

    def get(self, key: str) -> QueryTemplate:
        try:
            return self._templates[key]
        except KeyError:
            raise UnknownTemplateError(key) from None

    def __contains__(self, key: str) -> bool:
        return key in self._templates

    def templates_in(self, category: str) -> List[QueryTemplate]:
        return [t for t in self._templates.values() if t.category == category]

    def build(
        self,
        key: str,
        filters: Optional[Mapping[str, Any]] = None,
        row_limit: Optional[int] = None,
    ) -> str:
        template = self.get(key)
        sql = template.build(filters, row_limit)
        logger.debug(f"[TEMPLATE] Built {key} ({len(sql)} chars, limit={row_limit})")
        return sql

    def to_dict(self) -> Dict[str, Any]:
        categories = []
        for category in TOOL_CATEGORIES + list(self._categories.values()):
            categories.append({
                "key": category.key,
                "name": category.name,
                "icon": category.icon,
                "description": category.description,
                "templates": [t.to_dict() for t in self.templates_in(category.key)],
            })
        return {"categories": categories}


_default_registry: Optional[TemplateRegistry] = None


def get_default_registry() -> TemplateRegistry:
    """Get the singleton registry of playbook templates."""
    global _default_registry
    if _default_registry is None:
        _default_registry = TemplateRegistry(DEFAULT_TEMPLATES, DEFAULT_CATEGORIES)
    return _default_registry


def build_template(
    key: str,
    filters: Optional[Mapping[str, Any]] = None,
    row_limit: Optional[int] = None,
) -> str:
    """Build SQL for a template of the default registry."""
    return get_default_registry().build(key, filters, row_limit)
