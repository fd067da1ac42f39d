"""
Tests for AI SQL generation with a stand-in LLM object (no Groq calls).
"""

import unittest
from types import SimpleNamespace
from unittest.mock import AsyncMock

from llama_index.core.llms import MessageRole

from query_cache import ResponseCache
from sql_generation_client import (
    MAX_PROMPT_CHARS,
    SCHEMA_CONTEXT,
    EmptyGenerationError,
    GenerationUnavailableError,
    PromptValidationError,
    SQLGenerationClient,
    SQLGenerationError,
    strip_sql_fences,
    validate_prompt,
)


def chat_response(text):
    return SimpleNamespace(message=SimpleNamespace(content=text))


class TestHelpers(unittest.TestCase):

    def test_validate_prompt(self):
        self.assertEqual(validate_prompt("  count claims  "), "count claims")
        for bad in ("", "   ", None, 42):
            with self.assertRaises(PromptValidationError):
                validate_prompt(bad)
        with self.assertRaises(PromptValidationError):
            validate_prompt("x" * (MAX_PROMPT_CHARS + 1))
        self.assertEqual(len(validate_prompt("x" * MAX_PROMPT_CHARS)), MAX_PROMPT_CHARS)

    def test_strip_fences(self):
        self.assertEqual(strip_sql_fences("```sql\nSELECT 1;\n```"), "SELECT 1;")
        self.assertEqual(strip_sql_fences("```\nSELECT 1;```"), "SELECT 1;")
        self.assertEqual(strip_sql_fences("SELECT 1;"), "SELECT 1;")
        self.assertEqual(strip_sql_fences(None), "")


class TestSQLGenerationClient(unittest.IsolatedAsyncioTestCase):

    def make_client(self, llm, api_key="gsk_test"):
        return SQLGenerationClient(api_key=api_key, model="test-model", llm=llm, cache=ResponseCache())

    async def test_generate_strips_fences_and_sends_schema(self):
        llm = SimpleNamespace(achat=AsyncMock(return_value=chat_response("```sql\nSELECT COUNT(*) FROM `claims`;\n```")))
        client = self.make_client(llm)
        sql = await client.generate_sql("how many claims?")
        self.assertEqual(sql, "SELECT COUNT(*) FROM `claims`;")

        messages = llm.achat.await_args.args[0]
        self.assertEqual(messages[0].role, MessageRole.SYSTEM)
        self.assertEqual(messages[0].content, SCHEMA_CONTEXT)
        self.assertEqual(messages[1].content, "how many claims?")

    async def test_cached_per_prompt(self):
        llm = SimpleNamespace(achat=AsyncMock(return_value=chat_response("SELECT 1;")))
        client = self.make_client(llm)
        await client.generate_sql("one")
        await client.generate_sql("one")
        self.assertEqual(llm.achat.await_count, 1)
        await client.generate_sql("one", use_cache=False)
        self.assertEqual(llm.achat.await_count, 2)

    async def test_empty_generation(self):
        llm = SimpleNamespace(achat=AsyncMock(return_value=chat_response("```sql\n```")))
        with self.assertRaises(EmptyGenerationError):
            await self.make_client(llm).generate_sql("anything")

    async def test_provider_failure_wrapped(self):
        llm = SimpleNamespace(achat=AsyncMock(side_effect=ConnectionError("rate limited")))
        with self.assertRaises(SQLGenerationError):
            await self.make_client(llm).generate_sql("anything")

    async def test_prompt_validated_before_call(self):
        llm = SimpleNamespace(achat=AsyncMock())
        with self.assertRaises(PromptValidationError):
            await self.make_client(llm).generate_sql("   ")
        llm.achat.assert_not_awaited()

    async def test_unavailable_without_key(self):
        client = SQLGenerationClient(api_key="", model="test-model", cache=ResponseCache())
        self.assertFalse(client.available)
        with self.assertRaises(GenerationUnavailableError):
            await client.generate_sql("count claims")


if __name__ == "__main__":
    unittest.main()
