# python -m pytest app/tests/routers/test_query_router.py -v

import pytest
from fastapi.testclient import TestClient

from app.config import PROFILES, Settings
from app.deps import AppContext, get_pipeline
from app.main import app
from app.tests.fakes import ORDERS_TABLES, FakeDatabase, StaticGenerator


def _context(db: FakeDatabase, generated: str) -> AppContext:
    return AppContext(
        settings=Settings(_env_file=None),
        profile=PROFILES["llama3.2-postgres"],
        db=db,
        generator=StaticGenerator(generated),
    )


@pytest.fixture
def client_for():
    def _make(db: FakeDatabase, generated: str) -> TestClient:
        context = _context(db, generated)
        app.dependency_overrides[get_pipeline] = context.build_pipeline
        return TestClient(app)

    yield _make
    app.dependency_overrides.clear()


def test_health():
    assert TestClient(app).get("/health").json() == {"status": "ok"}


@pytest.mark.parametrize("body", [{}, {"query": 42}, {"query": ""}, ["query"]])
def test_invalid_body_is_400(client_for, body):
    client = client_for(FakeDatabase(ORDERS_TABLES), "SELECT 1")

    response = client.post("/query", json=body)

    assert response.status_code == 400
    assert response.json() == {"error": "Query is required and must be a string"}


def test_non_json_body_is_400(client_for):
    client = client_for(FakeDatabase(ORDERS_TABLES), "SELECT 1")

    response = client.post("/query", content=b"not json", headers={"content-type": "application/json"})

    assert response.status_code == 400


def test_success_payload(client_for):
    db = FakeDatabase(ORDERS_TABLES, rows=[{"id": 1, "total": 150}])
    client = client_for(db, "SELECT id, total FROM orders WHERE total > 100")

    response = client.post("/query", json={"query": "orders over 100"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["query"] == "orders over 100"
    assert body["data"]["generatedQuery"] == "SELECT id, total FROM orders WHERE total > 100"
    assert body["data"]["result"]["rows"] == [{"id": 1, "total": 150}]
    assert body["data"]["result"]["fields"] == ["id", "total"]
    assert isinstance(body["data"]["executionTimeMs"], (int, float))


def test_pipeline_failure_is_500(client_for):
    client = client_for(FakeDatabase(ORDERS_TABLES), "DROP TABLE orders")

    response = client.post("/query", json={"query": "drop it"})

    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "error": "Failed to process query: Generated DB Query is invalid. Please rephrase your query.",
    }


def test_uninitialized_service_is_503():
    app.state.context = None

    response = TestClient(app).post("/query", json={"query": "anything"})

    assert response.status_code == 503
