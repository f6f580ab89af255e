"""Live schema introspection and the in-memory schema model"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from app.core.errors import SchemaError
from app.smart_logger import SmartLogger


@dataclass(frozen=True)
class Column:
    name: str
    type: Optional[str] = None
    nullable: bool = True
    default: Optional[str] = None


@dataclass(frozen=True)
class ForeignKey:
    table: str
    column: str
    foreign_table: str
    foreign_column: str

    def as_tuple(self) -> tuple:
        return (self.table, self.column, self.foreign_table, self.foreign_column)


@dataclass
class Schema:
    """Tables (in discovery order) mapped to their ordered columns, plus FK edges."""

    tables: Dict[str, List[Column]] = field(default_factory=dict)
    foreign_keys: List[ForeignKey] = field(default_factory=list)

    @classmethod
    def from_names(cls, tables: Dict[str, List[str]]) -> "Schema":
        """Build a minimal schema where columns carry only a name."""
        return cls(tables={t: [Column(name=c) for c in cols] for t, cols in tables.items()})

    def table_names(self) -> List[str]:
        return list(self.tables.keys())

    def find_table(self, name: str) -> Optional[str]:
        """Case-insensitive lookup returning the canonical table name."""
        wanted = (name or "").strip().strip('"').lower()
        for table in self.tables:
            if table.lower() == wanted:
                return table
        return None

    def columns_of(self, table: str) -> List[str]:
        actual = self.find_table(table)
        if actual is None:
            return []
        return [c.name for c in self.tables[actual]]

    def all_column_names(self) -> List[str]:
        seen: Set[str] = set()
        names: List[str] = []
        for columns in self.tables.values():
            for column in columns:
                if column.name not in seen:
                    seen.add(column.name)
                    names.append(column.name)
        return names

    def identifiers(self) -> Set[str]:
        """Lower-cased table and column names."""
        out = {t.lower() for t in self.tables}
        for columns in self.tables.values():
            out.update(c.name.lower() for c in columns)
        return out

    def foreign_keys_of(self, table: str) -> List[ForeignKey]:
        actual = self.find_table(table)
        return [fk for fk in self.foreign_keys if fk.table == actual]

    def to_prompt_text(self) -> str:
        lines: List[str] = []
        for table, columns in self.tables.items():
            lines.append(f"Table {table}:")
            for column in columns:
                parts = [f"  - {column.name}"]
                if column.type:
                    parts.append(column.type)
                if not column.nullable:
                    parts.append("NOT NULL")
                if column.default is not None:
                    parts.append(f"DEFAULT {column.default}")
                lines.append(" ".join(parts))
        if self.foreign_keys:
            lines.append("Foreign keys:")
            for fk in self.foreign_keys:
                lines.append(f"  - {fk.table}.{fk.column} -> {fk.foreign_table}.{fk.foreign_column}")
        return "\n".join(lines)


_TABLES_SQL = """
SELECT table_name
FROM information_schema.tables
WHERE table_schema = $1
  AND table_type IN ('BASE TABLE', 'VIEW')
ORDER BY table_name
"""

_COLUMNS_SQL = """
SELECT column_name, data_type, is_nullable, column_default
FROM information_schema.columns
WHERE table_schema = $1 AND table_name = $2
ORDER BY ordinal_position
"""

_FOREIGN_KEYS_SQL = """
SELECT
    tc.table_name,
    kcu.column_name,
    ccu.table_name AS foreign_table_name,
    ccu.column_name AS foreign_column_name
FROM information_schema.table_constraints AS tc
JOIN information_schema.key_column_usage AS kcu
    ON tc.constraint_name = kcu.constraint_name
    AND tc.constraint_schema = kcu.constraint_schema
JOIN information_schema.constraint_column_usage AS ccu
    ON ccu.constraint_name = tc.constraint_name
    AND ccu.constraint_schema = tc.constraint_schema
WHERE tc.constraint_type = 'FOREIGN KEY' AND tc.table_schema = $1
ORDER BY tc.table_name, kcu.ordinal_position
"""


class SchemaCatalog:
    """Reads tables, columns and foreign keys of one namespace over a pooled connection."""

    def __init__(self, pool: Any, schema_name: str = "public"):
        self.pool = pool
        self.schema_name = schema_name

    async def extract(self) -> Schema:
        """
        Introspect the active namespace.

        Raises:
            SchemaError: if any introspection query fails.
        """
        try:
            async with self.pool.acquire() as conn:
                table_rows = await conn.fetch(_TABLES_SQL, self.schema_name)

                tables: Dict[str, List[Column]] = {}
                for row in table_rows:
                    table_name = row["table_name"]
                    column_rows = await conn.fetch(_COLUMNS_SQL, self.schema_name, table_name)
                    tables[table_name] = [
                        Column(
                            name=col["column_name"],
                            type=col["data_type"],
                            nullable=str(col["is_nullable"]).upper() == "YES",
                            default=col["column_default"],
                        )
                        for col in column_rows
                    ]

                fk_rows = await conn.fetch(_FOREIGN_KEYS_SQL, self.schema_name)
        except Exception as exc:
            SmartLogger.log(
                "ERROR",
                "text2sql.schema.extract.failed",
                category="text2sql.schema",
                params={"schema": self.schema_name, "error": str(exc)},
                max_inline_chars=0,
            )
            raise SchemaError(f"Failed to read database schema: {exc}") from exc

        foreign_keys = [
            ForeignKey(
                table=r["table_name"],
                column=r["column_name"],
                foreign_table=r["foreign_table_name"],
                foreign_column=r["foreign_column_name"],
            )
            for r in fk_rows
        ]

        SmartLogger.log(
            "DEBUG",
            "text2sql.schema.extract.done",
            category="text2sql.schema",
            params={"schema": self.schema_name, "tables": len(tables), "foreign_keys": len(foreign_keys)},
        )
        return Schema(tables=tables, foreign_keys=foreign_keys)
