"""Canonical identifier quoting against a live schema"""
from typing import Optional

from app.core.schema_catalog import Schema
from app.core.sql_tokenizer import (
    SQL_KEYWORDS,
    WORD,
    SqlTokenizer,
    default_tokenizer,
)


class IdentifierQuoter:
    """
    Quotes table/column names found in the schema and upper-cases SQL keywords.

    Every other token (literals, numbers, operators, aliases, function names) passes
    through untouched, so `quote(quote(sql)) == quote(sql)`.
    """

    def __init__(self, tokenizer: Optional[SqlTokenizer] = None, quote_char: str = '"'):
        self.tokenizer = tokenizer or default_tokenizer
        self.quote_char = quote_char

    def quote(self, sql: str, schema: Schema) -> str:
        identifiers = schema.identifiers()
        out = []
        for token in self.tokenizer.tokenize(sql):
            if token.kind != WORD:
                out.append(token.text)
                continue
            upper = token.text.upper()
            if upper in SQL_KEYWORDS:
                out.append(upper)
            elif token.text.lower() in identifiers:
                out.append(f"{self.quote_char}{token.text}{self.quote_char}")
            else:
                out.append(token.text)
        return "".join(out)
