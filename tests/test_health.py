from app.db.deps import get_db
from app.main import app


def test_health_endpoint(client):
    """Test the health check endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is True
    assert data["integrations"] == {"queue_configured": False, "telegram_dry_run": True}


def test_ready_endpoint(client):
    response = client.get("/ready")
    assert response.status_code == 200
    assert response.json() == {"ok": True, "database": "connected"}


def test_ready_endpoint_reports_database_down(client):
    class BrokenSession:
        def execute(self, *args, **kwargs):
            raise RuntimeError("connection refused")

    app.dependency_overrides[get_db] = lambda: BrokenSession()

    response = client.get("/ready")

    assert response.status_code == 503
    data = response.json()
    assert data["ok"] is False
    assert data["database"] == "disconnected"
