"""
Tests for health server

Tests the Flask probe endpoints (liveness, readiness, detailed health) and
the Prometheus scrape endpoint, against a database created by the real
record store and audit log.

Fun fact: The concept of "health checks" in distributed systems was pioneered by Amazon
in the early 2000s when building their highly available retail platform. Today, every
cloud-native system uses similar patterns!
"""

import sqlite3

import pytest

from alicerce import health_server
from alicerce.app import Alicerce
from alicerce.health_server import app, initialize_health_server
from alicerce.kernel.identity import CurrentUser, Role

STAFF = CurrentUser(user_id="u-dc", name="Ana Prado", role=Role.PROCUREMENT)


@pytest.fixture(autouse=True)
def reset_server():
    """Each test starts with an uninitialized server"""
    yield
    health_server._db_path = None
    health_server._instance = None


@pytest.fixture
def alicerce(tmp_path):
    """Alicerce instance with one group and one draft demand"""
    instance = Alicerce(tmp_path / "alicerce.db")
    group = instance.create_group(STAFF, "Papelaria")
    instance.create_demand(
        STAFF,
        title="Papel A4",
        department="Secretaria de Educação",
        items=[{"description": "Resma", "quantity": 5, "group_id": group.group_id}],
    )
    return instance


@pytest.fixture
def client():
    """Flask test client"""
    app.config["TESTING"] = True
    with app.test_client() as client:
        yield client


# =============================================================================
# Initialization
# =============================================================================


def test_initialize_accepts_string_path(tmp_path):
    initialize_health_server(str(tmp_path / "x.db"))

    assert health_server._db_path == tmp_path / "x.db"
    assert health_server._instance is None


# =============================================================================
# Security headers
# =============================================================================


@pytest.mark.parametrize("path", ["/health/live", "/health/ready", "/health", "/metrics"])
def test_security_headers_on_every_endpoint(client, path):
    response = client.get(path)

    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert "default-src 'none'" in response.headers["Content-Security-Policy"]


# =============================================================================
# Liveness and readiness
# =============================================================================


def test_liveness_works_without_initialization(client):
    response = client.get("/health/live")

    assert response.status_code == 200
    assert response.get_json() == {"status": "alive", "service": "alicerce"}


def test_readiness_counts_records(client, alicerce):
    initialize_health_server(alicerce.sqlite_path)

    response = client.get("/health/ready")

    assert response.status_code == 200
    data = response.get_json()
    assert data["status"] == "ready"
    # One group, one demand, one item
    assert data["record_count"] == 3


def test_readiness_503_when_not_initialized(client):
    response = client.get("/health/ready")

    assert response.status_code == 503
    assert response.get_json()["reason"] == "database_path_not_initialized"


def test_readiness_503_when_db_file_missing(client, tmp_path):
    initialize_health_server(tmp_path / "missing.db")

    response = client.get("/health/ready")

    assert response.status_code == 503
    assert response.get_json()["reason"] == "database_file_not_found"


def test_readiness_503_when_schema_missing(client, tmp_path):
    db_path = tmp_path / "empty.db"
    sqlite3.connect(str(db_path)).close()
    initialize_health_server(db_path)

    response = client.get("/health/ready")

    assert response.status_code == 503
    data = response.get_json()
    assert data["reason"] == "schema_missing"
    assert data["missing_tables"] == ["audit_log", "records"]


def test_readiness_503_when_file_is_not_a_database(client, tmp_path):
    db_path = tmp_path / "notes.db"
    db_path.write_bytes(b"this is not sqlite" * 10)
    initialize_health_server(db_path)

    response = client.get("/health/ready")

    assert response.status_code == 503
    assert response.get_json()["reason"] == "database_operational_error"


# =============================================================================
# Detailed health
# =============================================================================


def test_detailed_health_reports_records_and_audit(client, alicerce):
    initialize_health_server(alicerce.sqlite_path)

    response = client.get("/health")

    assert response.status_code == 200
    data = response.get_json()
    assert data["status"] == "healthy"
    assert data["database"]["records"] == {"demands": 1, "groups": 1, "items": 1}
    assert data["database"]["audit_entries"] == 2
    assert data["database"]["email_deliveries"] == {}
    assert data["database"]["last_audit_at"] is not None
    assert "demands_by_status" not in data


def test_detailed_health_with_instance(client, alicerce):
    initialize_health_server(alicerce.sqlite_path, alicerce)

    data = client.get("/health").get_json()

    assert data["demands_by_status"]["Rascunho"] == 1
    assert data["demands_by_status"]["Em Cotação"] == 0
    assert data["active_suppliers"] == 0


def test_detailed_health_degraded_without_database(client):
    response = client.get("/health")

    assert response.status_code == 503
    data = response.get_json()
    assert data["status"] == "degraded"
    assert data["database"] == {"status": "not_initialized"}


def test_detailed_health_degraded_on_database_error(client, tmp_path):
    db_path = tmp_path / "broken.db"
    sqlite3.connect(str(db_path)).close()
    initialize_health_server(db_path)

    response = client.get("/health")

    assert response.status_code == 503
    database = response.get_json()["database"]
    assert database["status"] == "unhealthy"
    assert database["reason"] == "schema_missing"


def test_detailed_health_survives_summary_failure(client, alicerce):
    class BrokenInstance:
        def health(self):
            raise RuntimeError("summary unavailable")

    initialize_health_server(alicerce.sqlite_path, BrokenInstance())

    response = client.get("/health")

    assert response.status_code == 200
    assert response.get_json()["demands_by_status"]["error"] == "summary unavailable"


# =============================================================================
# Metrics
# =============================================================================


def test_metrics_exposes_alicerce_series(client, alicerce):
    alicerce.health()

    response = client.get("/metrics")

    assert response.status_code == 200
    assert response.mimetype == "text/plain"
    body = response.get_data(as_text=True)
    assert "alicerce_operations_processed_total" in body
    assert "alicerce_demands_by_status" in body
