"""
Claims Intel v1.0 - Claims Analytics Backend
============================================

Serves the claims dashboard and the SQL playbook:

- Claims: daily per-insurer counts from the Google Sheet, dashboard stats,
  month / custom-period comparison, pivot CSV export
- Slack: raw posts, summary snapshot and period reports via webhooks
- Query Builder: playbook templates (with heavy-query guard), visual custom
  builder sessions, row-count derivation
- AI: one-shot Groq SQL generation from plain English
- Saved queries

No SQL is executed here; generated text is copied into the BI tool.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

import claims_analytics
import config
from claims_analytics import Period
from claims_source import ClaimRecord, ClaimsSourceError, get_claims_source
from count_query import derive_count_query
from custom_builder import BuilderState, CustomQueryBuilder, TableUnavailable, render_sql
from env_guard import environment_status, validate_environment
from execution_risk_classifier import assess
from query_cache import get_response_cache
from query_templates import InvalidFilterError, UnknownTemplateError, get_default_registry
from saved_queries import get_saved_query_store
from schema_catalog import get_default_catalog
from slack_messages import format_report_message, format_summary_message
from slack_notifier import get_slack_notifier
from sql_generation_client import (
    EmptyGenerationError,
    GenerationUnavailableError,
    PromptValidationError,
    SQLGenerationError,
    get_sql_generation_client,
)

# Libraries stay at WARNING, our modules log at LOG_LEVEL
logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)
APP_LOGGERS = (
    __name__, "claims_source", "claims_analytics", "slack_notifier", "sql_generation_client",
    "query_templates", "custom_builder", "count_query", "execution_risk_classifier", "saved_queries",
)
for _name in APP_LOGGERS:
    logging.getLogger(_name).setLevel(config.LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Report environment on startup; nothing to clean up on shutdown"""
    logger.info("Initializing Claims Intel v1.0...")
    validate_environment(strict=False)

    registry = get_default_registry()
    catalog = get_default_catalog()
    logger.info("=" * 60)
    logger.info("Claims Intel v1.0 Ready!")
    logger.info(f"Templates: {len(registry.keys)} ({len(registry.heavy_keys)} heavy)")
    logger.info(f"Catalog: {len(catalog.tables)} tables")
    logger.info(f"Claims sheet: {'configured' if get_claims_source().configured else 'NOT configured'}")
    logger.info(f"Slack channels: {get_slack_notifier().configured_channels() or 'none'}")
    logger.info(f"AI generation: {'enabled' if get_sql_generation_client().available else 'disabled'}")
    logger.info("=" * 60)

    yield

    logger.info("Shutting down Claims Intel...")


app = FastAPI(
    title="Claims Intel API",
    description="Claims dashboard analytics, Slack reports and SQL playbook generation",
    version="1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# {session_id: {builder, created_at, last_active}}
builder_sessions: Dict[str, Dict[str, Any]] = {}


# =============================================================================
# Request models
# =============================================================================

class PeriodModel(BaseModel):
    start: date = Field(alias="from")
    end: date = Field(alias="to")
    label: Optional[str] = None

    def to_period(self) -> Period:
        return Period(self.start.isoformat(), self.end.isoformat(), self.label or "")


class ClaimsWindowRequest(BaseModel):
    start: Optional[str] = None
    end: Optional[str] = None
    insurers: Optional[List[str]] = None
    sort_by: str = "claims"
    sort_dir: str = "desc"


class CompareRequest(BaseModel):
    mode: str = "month"  # "month" or "custom"
    months: Optional[List[str]] = None
    periods: Optional[List[PeriodModel]] = None
    insurers: Optional[List[str]] = None


class SlackPostRequest(BaseModel):
    channels: List[str] = []
    message: str
    blocks: Optional[List[Dict[str, Any]]] = None


class SlackSummaryRequest(BaseModel):
    channels: List[str] = []
    start: Optional[str] = None
    end: Optional[str] = None
    insurers: Optional[List[str]] = None


class SlackReportRequest(BaseModel):
    channels: List[str] = []
    preset: Optional[str] = None
    periods: Optional[List[PeriodModel]] = None
    insurers: Optional[List[str]] = None


class TemplateRequest(BaseModel):
    filters: Dict[str, Any] = {}
    limit_on: bool = True
    include_count: bool = False


class CountRequest(BaseModel):
    sql: str


class CustomQueryRequest(BaseModel):
    state: Dict[str, Any] = {}
    include_count: bool = False


class BuilderSessionRequest(BaseModel):
    base_table: Optional[str] = None


class BuilderActionRequest(BaseModel):
    action: str
    table: Optional[str] = None
    column: Optional[str] = None
    index: Optional[int] = None
    field: Optional[str] = None
    value: Any = None
    date_from: str = ""
    date_to: str = ""
    direction: str = "DESC"
    row_limit: Any = None


class GenerateSQLRequest(BaseModel):
    prompt: Any = None
    include_count: bool = False


class SaveQueryRequest(BaseModel):
    name: str
    sql: str
    category: Optional[str] = None
    template: Optional[str] = None


# =============================================================================
# Helpers
# =============================================================================

async def load_claims(refresh: bool = False) -> List[ClaimRecord]:
    try:
        return await get_claims_source().get_claims(use_cache=not refresh)
    except ClaimsSourceError as e:
        logger.error(f"[CLAIMS] Failed to load claims: {e}")
        raise HTTPException(status_code=500, detail=str(e))


def resolve_window(records: List[ClaimRecord], start: Optional[str], end: Optional[str]):
    """Missing bounds default to the last 30 days of data."""
    default_start, default_end = claims_analytics.default_window(records)
    return start or default_start, end or default_end


def resolve_insurers(records: List[ClaimRecord], insurers: Optional[List[str]]) -> List[str]:
    return list(insurers) if insurers is not None else claims_analytics.all_insurers(records)


def latest_date(records: List[ClaimRecord]) -> str:
    _, last = claims_analytics.date_bounds(records)
    if not last:
        raise HTTPException(status_code=422, detail="No claims data available")
    return last


def builder_response(session_id: str, builder: CustomQueryBuilder) -> Dict[str, Any]:
    joined = {j.table for j in builder.state.joins}
    return {
        "session_id": session_id,
        "state": builder.state.to_dict(),
        "available_columns": builder.available_columns(),
        # authored edges from the base table, joined ones flagged
        "available_joins": [
            {"table": e.to_table, "label": e.label, "joined": e.to_table in joined}
            for e in builder.catalog.available_joins(builder.state.base_table)
        ],
        "sql": builder.render(),
    }


def get_builder_session(session_id: str) -> Dict[str, Any]:
    session = builder_sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    session["last_active"] = datetime.now()
    return session


def apply_builder_action(builder: CustomQueryBuilder, request: BuilderActionRequest) -> Dict[str, Any]:
    """Run one builder transition; returns action-specific extras."""
    action = request.action
    if action == "set_base_table":
        builder.set_base_table(request.table)
    elif action == "toggle_column":
        return {"selected": builder.toggle_column(request.column)}
    elif action == "select_all":
        builder.select_all()
    elif action == "add_join":
        return {"join_result": builder.add_join(request.table).value}
    elif action == "remove_join":
        return {"removed": builder.remove_join(request.table)}
    elif action == "add_where":
        return {"index": builder.add_where()}
    elif action == "update_where":
        if request.index is None:
            raise ValueError("update_where needs an index")
        builder.update_where(request.index, request.field, request.value)
    elif action == "remove_where":
        if request.index is None:
            raise ValueError("remove_where needs an index")
        builder.remove_where(request.index)
    elif action == "set_date_range":
        builder.set_date_range(request.column, request.date_from, request.date_to)
    elif action == "set_order":
        builder.set_order(request.column, request.direction)
    elif action == "set_limit":
        builder.set_limit(request.row_limit)
    else:
        raise ValueError(f"Unknown builder action: {action}")
    return {}


# =============================================================================
# Service
# =============================================================================

@app.get("/")
async def root():
    return {
        "message": "Claims Intel API v1.0",
        "status": "online",
        "features": [
            "Claims dashboard analytics",
            "Slack summary and period reports",
            "SQL playbook templates with heavy-query guard",
            "Visual custom query builder",
            "AI SQL generation (Groq)",
            "Saved queries",
        ],
    }


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "claims_configured": get_claims_source().configured,
        "slack_channels": get_slack_notifier().configured_channels(),
        "ai_available": get_sql_generation_client().available,
        "builder_sessions": len(builder_sessions),
        "cache": get_response_cache().get_stats(),
        "environment": environment_status(),
    }


# =============================================================================
# Claims
# =============================================================================

@app.get("/claims")
async def get_claims(refresh: bool = False):
    records = await load_claims(refresh)
    return {
        "success": True,
        "data": [r.to_dict() for r in records],
        "count": len(records),
        "updated_at": datetime.now().isoformat(),
    }


@app.post("/claims/summary")
async def claims_summary(request: ClaimsWindowRequest):
    records = await load_claims()
    start, end = resolve_window(records, request.start, request.end)
    insurers = resolve_insurers(records, request.insurers)
    df = claims_analytics.filter_records(records, start, end, insurers)
    try:
        totals = claims_analytics.insurer_totals(df, request.sort_by, request.sort_dir)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return {
        "start": start,
        "end": end,
        "insurers": sorted(insurers),
        "all_insurers": claims_analytics.all_insurers(records),
        "stats": claims_analytics.overall_stats(df),
        "daily": claims_analytics.daily_totals(df),
        "insurer_totals": totals,
        "trend": claims_analytics.trend_series(df),
        "pivot": claims_analytics.pivot(df, insurers),
    }


@app.post("/claims/compare")
async def claims_compare(request: CompareRequest):
    records = await load_claims()
    insurers = resolve_insurers(records, request.insurers)

    if request.mode == "month":
        months = request.months or claims_analytics.available_months(records)[-3:]
        periods = claims_analytics.month_comparison(records, months, insurers)
    elif request.mode == "custom":
        if request.periods:
            custom = [p.to_period() for p in request.periods]
        else:
            custom = claims_analytics.default_custom_periods(latest_date(records))
        periods = claims_analytics.period_comparison(records, custom, insurers)
    else:
        raise HTTPException(status_code=422, detail=f"Unknown comparison mode: {request.mode}")

    return {
        "mode": request.mode,
        "available_months": claims_analytics.available_months(records),
        "periods": periods,
        "insurer_table": claims_analytics.insurer_comparison(periods, insurers),
    }


@app.post("/claims/export")
async def claims_export(request: ClaimsWindowRequest):
    records = await load_claims()
    start, end = resolve_window(records, request.start, request.end)
    insurers = resolve_insurers(records, request.insurers)
    df = claims_analytics.filter_records(records, start, end, insurers)
    csv_text = claims_analytics.pivot_csv(df, insurers)
    return PlainTextResponse(
        csv_text,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="claims_{start}_to_{end}.csv"'},
    )


# =============================================================================
# Slack
# =============================================================================

async def post_to_slack(channels: List[str], message: str, blocks=None) -> Dict[str, Any]:
    try:
        return await get_slack_notifier().post(channels, message, blocks)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/slack/channels")
async def slack_channels():
    notifier = get_slack_notifier()
    return {
        "channels": list(notifier.webhooks),
        "configured": notifier.configured_channels(),
    }


@app.post("/slack")
async def slack_post(request: SlackPostRequest):
    return await post_to_slack(request.channels, request.message, request.blocks)


@app.post("/slack/summary")
async def slack_summary(request: SlackSummaryRequest):
    if not request.channels:
        raise HTTPException(status_code=400, detail="No channels selected")
    records = await load_claims()
    start, end = resolve_window(records, request.start, request.end)
    insurers = resolve_insurers(records, request.insurers)
    message = format_summary_message(records, start, end, insurers)
    result = await post_to_slack(request.channels, message)
    return {**result, "message": message}


@app.post("/slack/report")
async def slack_report(request: SlackReportRequest):
    if not request.channels:
        raise HTTPException(status_code=400, detail="No channels selected")
    records = await load_claims()

    if request.periods:
        periods = [p.to_period() for p in request.periods]
    elif request.preset:
        presets = claims_analytics.report_presets(latest_date(records))
        if request.preset not in presets:
            raise HTTPException(status_code=422, detail=f"Unknown report preset: {request.preset}")
        periods = presets[request.preset]
    else:
        raise HTTPException(status_code=422, detail="Provide a preset or custom periods")

    insurers = resolve_insurers(records, request.insurers)
    computed = claims_analytics.report_periods(records, periods, insurers)
    message = format_report_message(computed)
    result = await post_to_slack(request.channels, message)
    return {**result, "message": message, "periods": computed}


# =============================================================================
# Query Builder
# =============================================================================

@app.get("/query-builder/catalog")
async def query_builder_catalog():
    return {
        **get_default_catalog().to_dict(),
        **get_default_registry().to_dict(),
    }


@app.post("/query-builder/templates/{key}")
async def build_template_sql(key: str, request: TemplateRequest):
    registry = get_default_registry()
    try:
        assessment = assess(key, request.filters, request.limit_on, config.DEFAULT_ROW_LIMIT)
        sql = registry.build(key, request.filters, assessment.effective_limit)
    except UnknownTemplateError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidFilterError as e:
        raise HTTPException(status_code=422, detail=str(e))

    logger.info(f"[TEMPLATE] {key} -> {assessment.risk_class.value}")
    return {
        "template": key,
        "sql": sql,
        "count_sql": derive_count_query(sql) if request.include_count else None,
        "safety": assessment.to_dict(),
    }


@app.post("/query-builder/count")
async def count_sql(request: CountRequest):
    return {"count_sql": derive_count_query(request.sql)}


@app.post("/query-builder/custom")
async def custom_query(request: CustomQueryRequest):
    try:
        state = BuilderState.from_dict(request.state)
        sql = render_sql(state)
    except TableUnavailable as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (TypeError, ValueError) as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {
        "sql": sql,
        "count_sql": derive_count_query(sql) if request.include_count else None,
    }


@app.post("/query-builder/sessions")
async def create_builder_session(request: BuilderSessionRequest):
    builder = CustomQueryBuilder()
    if request.base_table:
        try:
            builder.set_base_table(request.base_table)
        except TableUnavailable as e:
            raise HTTPException(status_code=400, detail=str(e))

    session_id = str(uuid.uuid4())
    builder_sessions[session_id] = {
        "builder": builder,
        "created_at": datetime.now(),
        "last_active": datetime.now(),
    }
    logger.info(f"[BUILDER] Created session {session_id[:8]}...")
    return builder_response(session_id, builder)


@app.get("/query-builder/sessions")
async def list_builder_sessions():
    return {
        "sessions": [
            {
                "session_id": sid,
                "base_table": data["builder"].state.base_table,
                "created_at": data["created_at"].isoformat(),
                "last_active": data["last_active"].isoformat(),
            }
            for sid, data in builder_sessions.items()
        ],
        "total": len(builder_sessions),
    }


@app.get("/query-builder/sessions/{session_id}")
async def get_builder_state(session_id: str):
    session = get_builder_session(session_id)
    return builder_response(session_id, session["builder"])


@app.post("/query-builder/sessions/{session_id}/actions")
async def builder_action(session_id: str, request: BuilderActionRequest):
    builder = get_builder_session(session_id)["builder"]
    try:
        extras = apply_builder_action(builder, request)
    except TableUnavailable as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (ValueError, IndexError) as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {**builder_response(session_id, builder), **extras}


@app.delete("/query-builder/sessions/{session_id}")
async def delete_builder_session(session_id: str):
    if session_id in builder_sessions:
        del builder_sessions[session_id]
        return {"message": "Session deleted"}
    raise HTTPException(status_code=404, detail="Session not found")


# =============================================================================
# AI generation
# =============================================================================

@app.post("/generate-sql")
async def generate_sql(request: GenerateSQLRequest):
    client = get_sql_generation_client()
    try:
        sql = await client.generate_sql(request.prompt)
    except PromptValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except GenerationUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except EmptyGenerationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except SQLGenerationError:
        raise HTTPException(status_code=500, detail="Failed to generate SQL. Please try again.")

    return {
        "sql": sql,
        "count_sql": derive_count_query(sql) if request.include_count else None,
    }


# =============================================================================
# Saved queries
# =============================================================================

@app.get("/saved-queries")
async def list_saved_queries():
    entries = get_saved_query_store().entries()
    return {
        "queries": [{"index": i, **q.to_dict()} for i, q in enumerate(entries)],
        "total": len(entries),
    }


@app.post("/saved-queries")
async def save_query(request: SaveQueryRequest):
    try:
        query = get_saved_query_store().save(request.name, request.sql, request.category, request.template)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"saved": query.to_dict()}


@app.get("/saved-queries/{index}")
async def load_saved_query(index: int):
    try:
        return get_saved_query_store().get(index).to_dict()
    except IndexError:
        raise HTTPException(status_code=404, detail="Saved query not found")


@app.delete("/saved-queries/{index}")
async def delete_saved_query(index: int):
    try:
        removed = get_saved_query_store().delete(index)
    except IndexError:
        raise HTTPException(status_code=404, detail="Saved query not found")
    return {"deleted": removed.to_dict()}


@app.delete("/saved-queries")
async def clear_saved_queries():
    get_saved_query_store().clear()
    return {"message": "Saved queries cleared"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
