# python -m pytest app/tests/cores/test_prompt.py -v

import asyncio

import httpx
import openai
import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel

from app.core.errors import GenerationError
from app.core.prompt import SQLChain, extract_sql


class TestExtractSql:
    def test_strips_markdown_fence(self):
        assert extract_sql("```sql\nSELECT * FROM orders\n```") == "SELECT * FROM orders"

    def test_strips_leading_prose(self):
        response = "Here is the query you asked for:\nSELECT id\nFROM orders\nThe query returns ids."

        assert extract_sql(response) == "SELECT id\nFROM orders"

    def test_strips_bare_sql_tag(self):
        assert extract_sql("sql\nSELECT 1") == "SELECT 1"

    def test_plain_sql_is_unchanged(self):
        assert extract_sql("SELECT name FROM users WHERE id = 1") == "SELECT name FROM users WHERE id = 1"

    def test_empty_response(self):
        assert extract_sql("") == ""


class _SlowChat(FakeListChatModel):
    async def _agenerate(self, *args, **kwargs):
        await asyncio.sleep(1)
        return await super()._agenerate(*args, **kwargs)


class _UnreachableChat(FakeListChatModel):
    async def _agenerate(self, *args, **kwargs):
        raise openai.APIConnectionError(request=httpx.Request("POST", "http://localhost:11434/v1/chat/completions"))


class TestSQLChain:
    @pytest.mark.asyncio
    async def test_generate_sql_uses_schema_and_cleans_output(self, orders_schema):
        llm = FakeListChatModel(responses=["```sql\nSELECT total FROM orders\n```"])

        sql = await SQLChain(llm).generate_sql("order totals", orders_schema)

        assert sql == "SELECT total FROM orders"

    def test_prompt_contains_schema_and_question(self, orders_schema):
        chain = SQLChain(FakeListChatModel(responses=["SELECT 1"]))

        messages = chain.prompt.format_messages(question="order totals", schema_text=orders_schema.to_prompt_text())

        assert "Table orders:" in messages[1].content
        assert "Natural Language Query: order totals" in messages[1].content

    @pytest.mark.asyncio
    async def test_empty_output_is_generation_error(self, orders_schema):
        llm = FakeListChatModel(responses=["```\n```"])

        with pytest.raises(GenerationError):
            await SQLChain(llm).generate_sql("q", orders_schema)

    @pytest.mark.asyncio
    async def test_timeout_is_generation_error(self, orders_schema):
        llm = _SlowChat(responses=["SELECT 1"])

        with pytest.raises(GenerationError) as excinfo:
            await SQLChain(llm, timeout_seconds=0.01).generate_sql("q", orders_schema)

        assert "timed out" in excinfo.value.message

    @pytest.mark.asyncio
    async def test_unreachable_provider_is_generation_error(self, orders_schema):
        llm = _UnreachableChat(responses=["SELECT 1"])

        with pytest.raises(GenerationError) as excinfo:
            await SQLChain(llm).generate_sql("q", orders_schema)

        assert "unreachable" in excinfo.value.message
