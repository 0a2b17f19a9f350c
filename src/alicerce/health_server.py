"""
Probe and scrape endpoints for an Alicerce deployment.

    /health/live   the process answers
    /health/ready  the database file exists and carries both the record
                   store and the audit log
    /health        record counts per collection, audit size, e-mail
                   delivery outcomes and, with an app instance, demands
                   by status
    /metrics       Prometheus text format

The probes open their own short-lived read connection and never go through
the engine, so a wedged engine cannot make the database look unhealthy.

Usage:
    python -m alicerce.health_server --db alicerce.db --port 8080

Fun fact: Kubernetes only added separate liveness and readiness probes in
2015; before that a pod that was merely warming up got restarted forever.
"""

import argparse
import json
import sqlite3
from collections import Counter
from collections.abc import Iterator
from contextlib import closing, contextmanager
from pathlib import Path
from typing import Any

from flask import Flask, Response, jsonify
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from alicerce import __version__
from alicerce.app import Alicerce
from alicerce.kernel.logging import configure_logging, get_logger

logger = get_logger(__name__)

SERVICE_NAME = "alicerce"
REQUIRED_TABLES = ("audit_log", "records")

app = Flask(__name__)

# Set by initialize_health_server()
_db_path: Path | None = None
_instance: Any = None


class ProbeFailed(Exception):
    """The database cannot serve the engine; reason is a stable slug"""

    def __init__(self, reason: str, **details: Any) -> None:
        super().__init__(reason)
        self.reason = reason
        self.details = details


def initialize_health_server(db_path: str | Path, instance: Any = None) -> None:
    """
    Point the probes at a database

    Args:
        db_path: SQLite file shared with the engine
        instance: Alicerce instance; enables demands_by_status in /health
    """
    global _db_path, _instance
    _db_path = Path(db_path)
    _instance = instance
    logger.info("health_server_initialized", db_path=str(_db_path))


@contextmanager
def _probe_connection() -> Iterator[sqlite3.Connection]:
    """Read connection with the schema checked, or ProbeFailed"""
    if _db_path is None:
        raise ProbeFailed("database_path_not_initialized")
    if not _db_path.exists():
        raise ProbeFailed("database_file_not_found", db_path=str(_db_path))
    try:
        with closing(sqlite3.connect(str(_db_path), timeout=1.0)) as conn:
            present = {
                row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
            }
            missing = [table for table in REQUIRED_TABLES if table not in present]
            if missing:
                raise ProbeFailed("schema_missing", missing_tables=missing)
            yield conn
    except sqlite3.Error as e:
        raise ProbeFailed("database_operational_error", error=str(e)) from e


def _database_stats(conn: sqlite3.Connection) -> dict[str, Any]:
    records = conn.execute(
        "SELECT collection, COUNT(*) FROM records GROUP BY collection ORDER BY collection"
    ).fetchall()
    deliveries = Counter(
        json.loads(data_json).get("status")
        for (data_json,) in conn.execute(
            "SELECT data_json FROM records WHERE collection = 'email_logs'"
        )
    )
    audit_entries, last_audit_at = conn.execute(
        "SELECT COUNT(*), MAX(occurred_at) FROM audit_log"
    ).fetchone()
    page_count = conn.execute("PRAGMA page_count").fetchone()[0]
    page_size = conn.execute("PRAGMA page_size").fetchone()[0]
    return {
        "status": "healthy",
        "path": str(_db_path),
        "records": dict(records),
        "email_deliveries": dict(deliveries),
        "audit_entries": audit_entries,
        "last_audit_at": last_audit_at,
        "size_mb": round(page_count * page_size / (1024 * 1024), 2),
    }


@app.after_request
def add_security_headers(response: Response) -> Response:
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
    return response


@app.route("/health/live", methods=["GET"])
def liveness() -> tuple[Response, int]:
    return jsonify({"status": "alive", "service": SERVICE_NAME}), 200


@app.route("/health/ready", methods=["GET"])
def readiness() -> tuple[Response, int]:
    """200 once the record store and audit log can be queried, 503 otherwise"""
    try:
        with _probe_connection() as conn:
            record_count = conn.execute("SELECT COUNT(*) FROM records").fetchone()[0]
    except ProbeFailed as e:
        logger.error("readiness_failed", reason=e.reason, **e.details)
        return jsonify({"status": "not_ready", "reason": e.reason, **e.details}), 503

    return jsonify({"status": "ready", "database": "accessible", "record_count": record_count}), 200


@app.route("/health", methods=["GET"])
def detailed_health() -> tuple[Response, int]:
    """
    Database statistics plus the operational summary of the app instance

    A failing summary is reported inline and does not degrade the status;
    only the database decides between 200 and 503.
    """
    health_data: dict[str, Any] = {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": __version__,
    }

    try:
        with _probe_connection() as conn:
            health_data["database"] = _database_stats(conn)
    except ProbeFailed as e:
        health_data["status"] = "degraded"
        if e.reason == "database_path_not_initialized":
            health_data["database"] = {"status": "not_initialized"}
        else:
            logger.error("database_health_failed", reason=e.reason, **e.details)
            health_data["database"] = {"status": "unhealthy", "reason": e.reason, **e.details}

    if _instance is not None:
        try:
            summary = _instance.health()
            health_data["demands_by_status"] = summary["demands_by_status"]
            health_data["active_suppliers"] = summary["active_suppliers"]
        except Exception as e:
            logger.warning("demand_summary_failed", error=str(e))
            health_data["demands_by_status"] = {"status": "unavailable", "error": str(e)}

    return jsonify(health_data), 200 if health_data["status"] == "healthy" else 503


@app.route("/metrics", methods=["GET"])
def metrics() -> Response:
    return Response(generate_latest(), mimetype=CONTENT_TYPE_LATEST)


def run_health_server(port: int = 8080, debug: bool = False) -> None:
    logger.info("health_server_starting", port=port)
    app.run(host="0.0.0.0", port=port, debug=debug)


def main() -> None:
    parser = argparse.ArgumentParser(description="Alicerce health and metrics server")
    parser.add_argument("--db", type=str, default=".alicerce.db", help="Database path")
    parser.add_argument("--port", type=int, default=8080, help="Port to listen on (default: 8080)")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Logging level (default: ALICERCE_LOG_LEVEL or INFO)",
    )
    parser.add_argument("--json-logs", action="store_true", help="Output logs as JSON lines")
    args = parser.parse_args()

    configure_logging(json_output=args.json_logs or None, log_level=args.log_level)

    initialize_health_server(args.db, Alicerce(args.db) if Path(args.db).exists() else None)
    run_health_server(port=args.port)


if __name__ == "__main__":
    main()
