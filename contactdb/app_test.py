import pytest
from fastapi.testclient import TestClient

from contactdb.app import app
from contactdb.core.logging import REQUEST_ID_HEADER


@pytest.fixture
def client():
    return TestClient(app)


@pytest.mark.unit
class TestRequestContext:
    def test_request_id_is_echoed(self, client):
        response = client.get("/health", headers={REQUEST_ID_HEADER: "req-123"})

        assert response.status_code == 200
        assert response.headers[REQUEST_ID_HEADER] == "req-123"

    def test_request_id_is_generated(self, client):
        response = client.get("/health")

        assert len(response.headers[REQUEST_ID_HEADER]) == 32

    def test_routes_require_auth(self, client):
        response = client.get("/api/databases")

        assert response.status_code in (401, 403)
        assert REQUEST_ID_HEADER in response.headers
