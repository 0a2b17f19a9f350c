"""
Pytest configuration and shared fixtures

Every test gets its own SQLite file, a frozen clock and a simulated e-mail
transport, so nothing leaks between tests and no message ever leaves the
machine.

Fun fact: The name "conftest" comes from pytest's configuration testing
framework. Files named conftest.py are automatically discovered and their
fixtures are available to all tests in the same directory and subdirectories!
"""

import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

import pytest

from alicerce.audit.log import SQLiteAuditLog
from alicerce.audit.recorder import AuditRecorder
from alicerce.demand.engine import LifecycleEngine
from alicerce.kernel.identity import CurrentUser, Role
from alicerce.kernel.settings import EngineSettings
from alicerce.kernel.store import SQLiteStore
from alicerce.kernel.time import TestTimeProvider
from alicerce.notify.dispatcher import NotificationDispatcher
from alicerce.notify.notifier import SimulatedNotifier
from alicerce.supplier.registry import SupplierRegistry


@pytest.fixture
def temp_db() -> Iterator[Path]:
    """Provide a temporary database file that's cleaned up after test"""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    yield db_path

    # Cleanup (WAL mode leaves -wal and -shm files next to the database)
    for path in (db_path, Path(f"{db_path}-wal"), Path(f"{db_path}-shm")):
        if path.exists():
            path.unlink()


@pytest.fixture
def test_time() -> TestTimeProvider:
    """
    Provide a controllable time provider for deterministic tests

    Default time: 2025-01-15 12:00:00 UTC, a Wednesday, so business-day
    deadline arithmetic has a weekend to cross within the first week.
    """
    return TestTimeProvider(datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def settings() -> EngineSettings:
    """Engine settings with a small pool and a short timeout"""
    return EngineSettings(notification_max_workers=4, notification_timeout_seconds=5.0)


@pytest.fixture
def store(temp_db: Path) -> SQLiteStore:
    """Provide a fresh record store for each test"""
    return SQLiteStore(temp_db)


@pytest.fixture
def audit_log(temp_db: Path) -> SQLiteAuditLog:
    return SQLiteAuditLog(temp_db)


@pytest.fixture
def recorder(audit_log: SQLiteAuditLog, test_time: TestTimeProvider) -> AuditRecorder:
    return AuditRecorder(audit_log, test_time)


@pytest.fixture
def notifier() -> SimulatedNotifier:
    """
    Simulated transport that records every message

    Tests that need failing recipients add addresses to notifier.fail_for.
    """
    return SimulatedNotifier()


@pytest.fixture
def dispatcher(
    notifier: SimulatedNotifier,
    settings: EngineSettings,
    test_time: TestTimeProvider,
    store: SQLiteStore,
) -> NotificationDispatcher:
    return NotificationDispatcher(notifier, settings, test_time, store=store)


@pytest.fixture
def registry(
    store: SQLiteStore,
    recorder: AuditRecorder,
    dispatcher: NotificationDispatcher,
    test_time: TestTimeProvider,
) -> SupplierRegistry:
    """Provide the supplier directory backed by the test store"""
    return SupplierRegistry(store, recorder, dispatcher, test_time)


@pytest.fixture
def engine(
    store: SQLiteStore,
    recorder: AuditRecorder,
    dispatcher: NotificationDispatcher,
    registry: SupplierRegistry,
    test_time: TestTimeProvider,
    settings: EngineSettings,
) -> LifecycleEngine:
    """Provide the lifecycle engine wired to the test infrastructure"""
    return LifecycleEngine(store, recorder, dispatcher, registry, test_time, settings)


# =============================================================================
# Acting users, one per role
# =============================================================================


@pytest.fixture
def secretariat_user() -> CurrentUser:
    return CurrentUser(user_id="u-sec", name="Maria Souza", role=Role.SECRETARIAT)


@pytest.fixture
def warehouse_user() -> CurrentUser:
    return CurrentUser(user_id="u-alm", name="João Lima", role=Role.WAREHOUSE)


@pytest.fixture
def procurement_user() -> CurrentUser:
    return CurrentUser(user_id="u-dc", name="Ana Prado", role=Role.PROCUREMENT)


@pytest.fixture
def admin_user() -> CurrentUser:
    return CurrentUser(user_id="u-adm", name="Carlos Admin", role=Role.ADMIN)


@pytest.fixture
def citizen_user() -> CurrentUser:
    return CurrentUser(user_id="u-cid", name="Cidadão", role=Role.CITIZEN)
