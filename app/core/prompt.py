"""LangChain prompt and SQL generation chain"""
import asyncio
import re
from typing import Any, Optional, Protocol

import openai
from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate

from app.config import settings
from app.core.errors import GenerationError
from app.core.schema_catalog import Schema
from app.smart_logger import SmartLogger


SQL_SYSTEM_PROMPT = (
    "You are a SQL expert. Generate ONLY the SQL query without any explanation, "
    "markdown formatting, or preamble."
)

SQL_GENERATION_TEMPLATE = """Given the following PostgreSQL database schema and a natural language query, generate ONLY the SQL query without any explanation or markdown formatting.

Database Schema:
{schema_text}

Rules:
1. Generate a single read-only SELECT statement (a WITH clause is allowed)
2. Use ONLY the tables and columns listed in the schema above, spelled exactly as shown
3. Do NOT add SQL comments (-- or /* */)
4. Do NOT combine results with UNION
5. A row limit is applied automatically; add LIMIT only when the question asks for a specific number of rows

Natural Language Query: {question}

Generate the SQL query:"""


class QueryGenerator(Protocol):
    async def generate_sql(self, question: str, schema: Schema) -> str:
        ...


_FENCE_RE = re.compile(r"```[a-zA-Z]*\n?")
_PROSE_RE = re.compile(r"^(HERE|THE|THIS)\b")
_SQL_START_RE = re.compile(r"^(SELECT|WITH|INSERT|UPDATE|DELETE)\b")


def extract_sql(response: str) -> str:
    """Strip markdown fences, a leading `sql` tag and leading prose from model output."""
    sql = _FENCE_RE.sub("", (response or "").strip()).strip()
    if sql.lower().startswith("sql\n") or sql.lower() == "sql":
        sql = sql[3:].strip()

    lines = []
    for line in sql.split("\n"):
        trimmed = line.strip().upper()
        if not trimmed:
            continue
        if _SQL_START_RE.match(trimmed) or not _PROSE_RE.match(trimmed):
            lines.append(line)
    return "\n".join(lines).strip()


class SQLChain:
    """SQL generation chain using LangChain"""

    def __init__(self, llm: Any, timeout_seconds: Optional[float] = None):
        self.llm = llm
        self.timeout = float(timeout_seconds if timeout_seconds is not None else settings.generation_timeout_seconds)
        self.prompt = ChatPromptTemplate.from_messages(
            [("system", SQL_SYSTEM_PROMPT), ("human", SQL_GENERATION_TEMPLATE)]
        )
        self.output_parser = StrOutputParser()

        # Build chain
        self.chain = self.prompt | self.llm | self.output_parser

    async def generate_sql(self, question: str, schema: Schema) -> str:
        """
        Generate SQL for a question.

        Raises:
            GenerationError: when the model fails, times out, or returns no SQL.
        """
        try:
            raw = await asyncio.wait_for(
                self.chain.ainvoke({"question": question, "schema_text": schema.to_prompt_text()}),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            raise GenerationError(f"Query generation timed out after {self.timeout} seconds") from exc
        except (openai.AuthenticationError, openai.PermissionDeniedError) as exc:
            raise GenerationError(f"LLM provider rejected the credentials: {exc}") from exc
        except openai.APIConnectionError as exc:
            raise GenerationError(f"LLM provider is unreachable: {exc}") from exc
        except Exception as exc:
            raise GenerationError(f"Failed to generate SQL: {exc}") from exc

        sql = extract_sql(str(raw))
        SmartLogger.log(
            "INFO",
            "text2sql.generate.done",
            category="text2sql.generate",
            params={"question": question, "raw": raw, "sql": sql},
        )
        if not sql:
            raise GenerationError("Query generator returned no SQL")
        return sql
