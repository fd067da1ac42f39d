"""
Claims Intel - Row-Count Query Derivation
=========================================

Given a generated SELECT, produce the statement that counts what it would
return:

    SELECT ... FROM body [GROUP BY g] [ORDER BY o] [LIMIT n];
        -> SELECT COUNT(*) AS total_rows FROM body;                 (no GROUP BY)
        -> SELECT COUNT(*) AS total_groups FROM body GROUP BY g;    (GROUP BY)

The statement is tokenized with sqlparse and only TOP-LEVEL keywords are
considered, so FROM/ORDER BY/LIMIT inside comments, string literals or
parenthesized subqueries never cut the body.
"""

import logging
from typing import List, Optional

import sqlparse
from sqlparse.sql import Statement, Token

logger = logging.getLogger(__name__)

_BODY_TERMINATORS = ("GROUP BY", "ORDER BY", "LIMIT")
_GROUP_TERMINATORS = ("ORDER BY", "LIMIT")


def _keyword(token: Token) -> Optional[str]:
    """Normalized top-level keyword text ("GROUP\\n BY" -> "GROUP BY"), else None."""
    if not token.is_keyword:
        return None
    return " ".join(token.normalized.split())


def _first_statement(sql: str) -> Optional[Statement]:
    for statement in sqlparse.parse(sql):
        if str(statement).strip():
            return statement
    return None


def _join(tokens: List[Token]) -> str:
    text = "".join(str(t) for t in tokens).strip()
    return text.rstrip(";").rstrip()


def derive_count_query(sql: str) -> Optional[str]:
    """
    Derive a COUNT(*) statement for a SELECT.

    Returns None when the text is not a SELECT or has no top-level FROM.
    """
    if not sql or not sql.strip():
        return None
    statement = _first_statement(sql)
    if statement is None or statement.get_type() != "SELECT":
        logger.debug("[COUNT] Not a SELECT statement, no count query derived")
        return None

    tokens = list(statement.tokens)
    from_index = next(
        (i for i, t in enumerate(tokens) if _keyword(t) == "FROM"), None
    )
    if from_index is None:
        logger.debug("[COUNT] No top-level FROM, no count query derived")
        return None

    end = len(tokens)
    for i in range(from_index + 1, len(tokens)):
        if _keyword(tokens[i]) in _BODY_TERMINATORS:
            end = i
            break
    body = _join(tokens[from_index + 1:end])

    if end < len(tokens) and _keyword(tokens[end]) == "GROUP BY":
        group_end = len(tokens)
        for i in range(end + 1, len(tokens)):
            if _keyword(tokens[i]) in _GROUP_TERMINATORS:
                group_end = i
                break
        grouping = _join(tokens[end:group_end])
        logger.info("[COUNT] Derived group count query")
        return f"SELECT COUNT(*) AS total_groups\nFROM {body}\n{grouping};"

    logger.info("[COUNT] Derived row count query")
    return f"SELECT COUNT(*) AS total_rows\nFROM {body};"
