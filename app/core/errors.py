"""Error taxonomy for the text-to-SQL pipeline"""
import copy
from typing import Optional


class Text2SQLError(Exception):
    """Base class for every failure surfaced by the pipeline"""

    stage = "pipeline"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def prefixed(self, prefix: str) -> "Text2SQLError":
        """Copy of this error, same class and attributes, with `prefix` on the message."""
        clone = copy.copy(self)
        clone.message = f"{prefix}{self.message}"
        clone.args = (clone.message,)
        return clone


class SchemaError(Text2SQLError):
    """Schema introspection failed"""

    stage = "schema"


class GenerationError(Text2SQLError):
    """The query generator failed or returned unusable text"""

    stage = "generation"


class SafetyRejection(Text2SQLError):
    """The query was blocked before any execution attempt"""

    stage = "safety"

    def __init__(self, reason: str, sql: str = ""):
        super().__init__("Generated DB Query is invalid. Please rephrase your query.")
        self.reason = reason
        self.sql = sql


class ValidationFailure(Text2SQLError):
    """Dry run failed and no repair made the query valid"""

    stage = "validation"

    def __init__(self, engine_error: str, sql: str = "", repaired_sql: Optional[str] = None):
        super().__init__("Generated DB Query is invalid. Please rephrase your query.")
        self.engine_error = engine_error
        self.sql = sql
        self.repaired_sql = repaired_sql


class ExecutionError(Text2SQLError):
    """The engine rejected an already validated query"""

    stage = "execution"
