"""
Claims Intel - AI SQL Generation
Turns a plain-English request into a MySQL query for the claims warehouse
using a one-shot Groq LLM call (no agent, no tools).
"""

import logging
import re
from datetime import datetime
from typing import Any, Optional

from llama_index.core.llms import ChatMessage, MessageRole
from llama_index.llms.groq import Groq

import config
from query_cache import ResponseCache, get_response_cache

logger = logging.getLogger(__name__)

MAX_PROMPT_CHARS = 2000

_FENCE_OPEN_RE = re.compile(r"^```[A-Za-z]*\s*\n?")
_FENCE_CLOSE_RE = re.compile(r"\n?```\s*$")


class PromptValidationError(ValueError):
    """Prompt is empty or longer than MAX_PROMPT_CHARS."""


class EmptyGenerationError(RuntimeError):
    """The model answered with no SQL."""


class GenerationUnavailableError(RuntimeError):
    """No API key configured."""


class SQLGenerationError(RuntimeError):
    """The LLM provider call failed."""


SCHEMA_CONTEXT = """You are a MySQL query generator for a health insurance claims platform. Generate ONLY the SQL query, no explanation.

DATABASE SCHEMA:
1. claims (5.3M rows) - Core claims table
   - id (PK), hmo_id (FK->hmos), provider_id (FK->providers), enrollee_id (FK->enrollees)
   - hmo_pile_id, encounter_date (date), admission_start, admission_end
   - total_amount, approved_amount, auto_vet_amount (decimal)
   - provider_status (tinyint): 0=Pending, 1=Submitted, -1=Draft
   - hmo_status (int): 0=Pending, 1=Approved, -1=Rejected
   - approval_code, hmo_erp_id, entry_point, has_unmatched_tariff (tinyint)
   - created_at, updated_at, submitted_at, vetted_at, paid_at, synced_at, returned_at

2. claim_items (24.7M rows) - Line items per claim
   - id (PK), claim_id (FK->claims), care_id (FK->cares), tariff_id (FK->provider_tariffs)
   - description, qty, amount (billed), unit_price_billed, unit_price_approved
   - approved_amount, approved_qty, hmo_approved (tinyint)
   - comment_id (FK->claim_item_comments), provider_comment (mediumtext)
   - auto_vet_comments (JSON), dispute (longtext)

3. provider_tariffs (18.9M rows) - Pricing/tariff data
   - id (PK), hmo_id (FK->hmos), provider_id (FK->providers), care_id (FK->cares)
   - care_variation_id (FK->care_variations), desc, code, amount, amount_max
   - is_approved, flagged_as_correct_at (timestamp, NULL=unflagged), created_at, updated_at

4. cares (398K rows) - Master care/service catalog
   - id (PK), name, base_name, type, type_id (1=medications), active, cve_version (2=V2)
   - gender_limit, age_min, age_max

5. care_variations (30K rows) - id (PK), care_id (FK->cares), age_min, age_max,
   meta (JSON: $.strength, $.drug_form_id)

6. enrollees (2M rows) - id (PK), hmo_id, insurance_no, firstname, lastname, middle_name,
   sex, birthdate, status, hmo_plan_id, hmo_client_id, state, lga

7. providers (9.8K rows) - id (PK), name, email, phone, address, state, nhis_code, category_id

8. hmos (167 rows) - id (PK), name, code, email, currency, country_id, is_active

RELATED TABLES: claim_item_comments (id, name, hmo_id), drug_forms (id, name),
hmo_plans (id, name, hmo_id), diagnoses (id, name), claim_diagnoses (claim_id, diagnosis_id)

COMMON JOIN PATTERNS:
- claims -> providers: claims.provider_id = providers.id
- claims -> enrollees: claims.enrollee_id = enrollees.id
- claims -> claim_items: claims.id = claim_items.claim_id
- claim_items -> claim_item_comments: claim_items.comment_id = claim_item_comments.id
- claim_items -> cares: claim_items.care_id = cares.id
- provider_tariffs -> cares: provider_tariffs.care_id = cares.id
- provider_tariffs -> care_variations: provider_tariffs.care_variation_id = care_variations.id
- provider_tariffs -> hmos: provider_tariffs.hmo_id = hmos.id
- care_variations -> drug_forms: drug_forms.id = CAST(JSON_EXTRACT(care_variations.meta, '$.drug_form_id') AS UNSIGNED)

RULES:
- Always use backticks for reserved words and column names
- Use LEFT JOINs unless an inner join is explicitly needed
- Do NOT add LIMIT unless the user asks for a limit, "top N" or "first N"
- Date filters: use >= start AND < end (never BETWEEN, never 23:59:59)
- Wrap datetime columns in SELECT with DATE_FORMAT(column, '%Y-%m-%d %H:%i:%s')
- Medications: cares.type_id = 1. V2 cares: cares.cve_version = 2
- Unflagged tariffs: provider_tariffs.flagged_as_correct_at IS NULL
- Enrollee age: TIMESTAMPDIFF(YEAR, enrollees.birthdate, CURDATE())
- ERP IDs for Uganda: hmo_erp_id LIKE 'UG%', sort by CAST(SUBSTRING(hmo_erp_id, 3) AS UNSIGNED)
- Always include a sensible ORDER BY (newest first by default)
- JSON extraction: JSON_UNQUOTE(JSON_EXTRACT(column, '$.path'))

COMMENT FIELDS:
- "vetting comments", "auto-vet comments", "AI comments" -> claim_items.auto_vet_comments (JSON);
  search with LOWER(CAST(ci.auto_vet_comments AS CHAR)) LIKE '%keyword%' and ci.auto_vet_comments IS NOT NULL
- "provider comment" -> claim_items.provider_comment; "dispute", "appeal" -> claim_items.dispute
- "HMO comment", "reviewer comment", "item comment" -> claim_item_comments.name (join on comment_id)
- Plain "comments" defaults to claim_items.auto_vet_comments

HMO FILTERING:
- Always filter HMO via claims.hmo_id, joining to claims first when the base table is a child table
- hmo_id values are always positive integers; use the absolute value of a negative id (-73 -> 73)

DYNAMIC DATES:
- "start of this year" -> DATE_FORMAT(CURDATE(), '%Y-01-01'); "this month" -> DATE_FORMAT(CURDATE(), '%Y-%m-01')
- "today" -> CURDATE(); "yesterday" -> DATE_SUB(CURDATE(), INTERVAL 1 DAY)
- "last N days" -> DATE_SUB(CURDATE(), INTERVAL N DAY)
- Never hardcode a specific year

IMPORTANT: Return ONLY the SQL query. No markdown, no explanation, no backtick fences."""


def validate_prompt(prompt: Any) -> str:
    """Stripped prompt, or PromptValidationError."""
    if not isinstance(prompt, str) or not prompt.strip():
        raise PromptValidationError("Missing or empty 'prompt' field")
    if len(prompt) > MAX_PROMPT_CHARS:
        raise PromptValidationError(f"Prompt too long (max {MAX_PROMPT_CHARS} characters)")
    return prompt.strip()


def strip_sql_fences(text: str) -> str:
    """Remove a surrounding ```sql ... ``` markdown fence if the model added one."""
    text = (text or "").strip()
    text = _FENCE_OPEN_RE.sub("", text)
    text = _FENCE_CLOSE_RE.sub("", text)
    return text.strip()


class SQLGenerationClient:
    """One-shot Groq call with the schema context as system prompt"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        llm: Any = None,
        cache: Optional[ResponseCache] = None,
        cache_ttl_seconds: int = 3600,
    ):
        self.api_key = api_key if api_key is not None else config.GROQ_API_KEY
        self.model = model or config.GROQ_MODEL
        self._llm = llm
        self.cache = cache or get_response_cache()
        self.cache_ttl_seconds = cache_ttl_seconds

    @property
    def available(self) -> bool:
        return self._llm is not None or bool(self.api_key)

    def _get_llm(self):
        if self._llm is None:
            if not self.api_key:
                raise GenerationUnavailableError(
                    "GROQ_API_KEY not found! Set it in your environment. "
                    "You can get one at: https://console.groq.com/keys"
                )
            self._llm = Groq(
                model=self.model,
                api_key=self.api_key,
                temperature=0.0,
                max_tokens=2000,
            )
            logger.info(f"✓ Groq LLM initialized: {self.model}")
        return self._llm

    async def generate_sql(self, prompt: str, use_cache: bool = True) -> str:
        """
        Generate SQL for a plain-English request.

        Raises:
            PromptValidationError: empty or too long prompt
            GenerationUnavailableError: no API key
            EmptyGenerationError: model returned nothing usable
            SQLGenerationError: provider call failed
        """
        prompt = validate_prompt(prompt)
        cache_key = ResponseCache.make_key("generated_sql", self.model, prompt)
        if use_cache:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.info(f"Cache hit for model {self.model}")
                return cached

        llm = self._get_llm()
        messages = [
            ChatMessage(role=MessageRole.SYSTEM, content=SCHEMA_CONTEXT),
            ChatMessage(role=MessageRole.USER, content=prompt),
        ]

        start_time = datetime.now()
        try:
            response = await llm.achat(messages)
        except Exception as e:
            logger.error(f"[generate-sql] Error: {e}")
            raise SQLGenerationError(f"Generation failed: {e}") from e

        sql = strip_sql_fences(response.message.content or "")
        if not sql:
            raise EmptyGenerationError("No SQL generated. Try being more specific.")

        if use_cache:
            self.cache.set(cache_key, sql, ttl=self.cache_ttl_seconds, entry_type="generated_sql")

        elapsed = (datetime.now() - start_time).total_seconds()
        logger.info(f"Generated SQL from {self.model} in {elapsed:.2f}s")
        return sql


_generation_client: Optional[SQLGenerationClient] = None


def get_sql_generation_client() -> SQLGenerationClient:
    """Get singleton generation client configured from the environment"""
    global _generation_client
    if _generation_client is None:
        _generation_client = SQLGenerationClient()
    return _generation_client
