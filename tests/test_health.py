from __future__ import annotations

from unittest.mock import patch

from sqlalchemy.exc import OperationalError


def test_health_endpoint_returns_ok(client) -> None:
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.get_json() == {"status": "ok"}


def test_db_health_ok(client) -> None:
    response = client.get("/api/db-health")

    assert response.status_code == 200
    assert response.get_json() == {"database": "ok"}


def test_db_health_unavailable(client) -> None:
    with patch("salonflow.routes.db.session.execute", side_effect=OperationalError("SELECT 1", {}, Exception("down"))):
        response = client.get("/api/db-health")

    assert response.status_code == 500
    assert response.get_json() == {"database": "unavailable"}
