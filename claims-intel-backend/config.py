"""
Claims Intel - Configuration

Settings are read once from the environment (and a local .env file).
Nothing here is mandatory: a missing collaborator setting only degrades the
endpoint that needs it.
"""

import os

from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}") from None


# Claims sheet
GOOGLE_SERVICE_ACCOUNT_JSON_BASE64 = os.getenv("GOOGLE_SERVICE_ACCOUNT_JSON_BASE64")
GOOGLE_SHEET_ID = os.getenv("GOOGLE_SHEET_ID")
CLAIMS_SHEET_RANGE = os.getenv("CLAIMS_SHEET_RANGE", "Raw Data!A:D")
CLAIMS_CACHE_TTL = _int_env("CLAIMS_CACHE_TTL", 300)

# Slack webhooks
SLACK_WEBHOOK_HEALTHOPS = os.getenv("SLACK_WEBHOOK_HEALTHOPS")
SLACK_WEBHOOK_CS = os.getenv("SLACK_WEBHOOK_CS")

# AI SQL generation
GROQ_API_KEY = os.getenv("GROQ_API_KEY")
GROQ_MODEL = os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile")

# Query builder
SAVED_QUERIES_FILE = os.getenv("SAVED_QUERIES_FILE", "saved_queries.json")
DEFAULT_ROW_LIMIT = _int_env("DEFAULT_ROW_LIMIT", 1000)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
