import pytest

from app.core.schema_catalog import Schema
from app.tests.fakes import ORDERS_TABLES


@pytest.fixture
def orders_schema() -> Schema:
    return Schema.from_names(ORDERS_TABLES)


@pytest.fixture
def shop_schema() -> Schema:
    return Schema.from_names(
        {
            "users": ["id", "name", "email", "createdAt"],
            "orders": ["id", "user_id", "total", "status"],
        }
    )
