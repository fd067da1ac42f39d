"""
Claims Intel - Execution Risk Classifier
========================================

Decides how a playbook template's SQL must be guarded before it is handed to
the user for pasting into the BI tool.

HEAVY TEMPLATES
---------------
A template is heavy when its result scales with the multi-million-row claims
or tariff tables (full extracts, per-claim summaries, ERP listings, tariff
exports). Heavy templates get a LIMIT injected unless the user explicitly
toggles it off.

CLASSIFICATION
--------------
SAFE
    Not heavy. No LIMIT injected, no warning.

BOUNDED
    Heavy, but narrowed by a concrete HMO or by a complete date range, and
    the LIMIT toggle is on.

UNBOUNDED
    Heavy, LIMIT toggled off. Large result set possible.

EXPENSIVE
    Heavy, no concrete HMO (unset, non-numeric or the "0" sentinel) and not
    both ends of the date range. May scan millions of rows. Takes precedence
    over UNBOUNDED for the warning text.

The classifier is advisory: it never rejects a query. Warnings are surfaced
next to the SQL so the user decides.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

from query_templates import FilterValues, QueryTemplate, get_default_registry
from value_sanitizer import normalize_hmo_id

logger = logging.getLogger(__name__)

SAFE_ROW_LIMIT = 1000

EXPENSIVE_WARNING = "⚠️ No HMO or date filter — this may return millions of rows and be very slow."
NO_LIMIT_WARNING = "⚠️ LIMIT is off — large result set possible. Use with caution."


class QueryRiskClass(Enum):
    SAFE = "SAFE"
    BOUNDED = "BOUNDED"
    UNBOUNDED = "UNBOUNDED"
    EXPENSIVE = "EXPENSIVE"


@dataclass
class SafetyAssessment:
    """Result of assessing a template + filters + LIMIT toggle."""
    template: str
    heavy: bool
    expensive: bool
    limit_on: bool
    effective_limit: Optional[int]
    warning: Optional[str]
    risk_class: QueryRiskClass

    def to_dict(self) -> Dict[str, Any]:
        return {
            "template": self.template,
            "heavy": self.heavy,
            "expensive": self.expensive,
            "limit_on": self.limit_on,
            "effective_limit": self.effective_limit,
            "warning": self.warning,
            "risk_class": self.risk_class.value,
        }


TemplateRef = Union[str, QueryTemplate]


def _resolve(template: TemplateRef) -> QueryTemplate:
    if isinstance(template, QueryTemplate):
        return template
    return get_default_registry().get(template)


def is_expensive(template: TemplateRef, filters: Optional[Mapping[str, Any]] = None) -> bool:
    """Heavy AND no concrete hmo_id AND not both date_from and date_to."""
    tpl = _resolve(template)
    if not tpl.heavy:
        return False
    values = FilterValues.from_mapping(filters)
    has_hmo = normalize_hmo_id(values.get("hmo_id")) is not None
    has_range = values.has("date_from") and values.has("date_to")
    return not has_hmo and not has_range


def effective_limit(
    template: TemplateRef,
    limit_on: bool = True,
    row_limit: int = SAFE_ROW_LIMIT,
) -> Optional[int]:
    """LIMIT to inject: row_limit for heavy templates with the toggle on, else None."""
    tpl = _resolve(template)
    if tpl.heavy and limit_on:
        return row_limit
    return None


def safety_warning(
    template: TemplateRef,
    filters: Optional[Mapping[str, Any]] = None,
    limit_on: bool = True,
) -> Optional[str]:
    tpl = _resolve(template)
    if is_expensive(tpl, filters):
        return EXPENSIVE_WARNING
    if tpl.heavy and not limit_on:
        return NO_LIMIT_WARNING
    return None


def assess(
    template: TemplateRef,
    filters: Optional[Mapping[str, Any]] = None,
    limit_on: bool = True,
    row_limit: int = SAFE_ROW_LIMIT,
) -> SafetyAssessment:
    """Bundle heavy/expensive classification, LIMIT injection and warning text."""
    tpl = _resolve(template)
    expensive = is_expensive(tpl, filters)

    if not tpl.heavy:
        risk_class = QueryRiskClass.SAFE
    elif expensive:
        risk_class = QueryRiskClass.EXPENSIVE
    elif not limit_on:
        risk_class = QueryRiskClass.UNBOUNDED
    else:
        risk_class = QueryRiskClass.BOUNDED

    if risk_class is QueryRiskClass.EXPENSIVE:
        logger.warning(f"[GUARD] {tpl.key}: heavy template without HMO or full date range")
    else:
        logger.debug(f"[GUARD] {tpl.key}: {risk_class.value}")

    return SafetyAssessment(
        template=tpl.key,
        heavy=tpl.heavy,
        expensive=expensive,
        limit_on=limit_on,
        effective_limit=effective_limit(tpl, limit_on, row_limit),
        warning=safety_warning(tpl, filters, limit_on),
        risk_class=risk_class,
    )
