"""
Kernel - Shared infrastructure for the lifecycle engine

The kernel provides the record store, clock, identifiers, identity, errors
and the logging/metrics plumbing that every domain module builds upon.

Fun fact: SQLite's WAL mode lets readers keep reading while a writer
commits, which is exactly what a portal full of suppliers refreshing the
same open demand needs.
"""

from alicerce.kernel.errors import (
    AlicerceError,
    InvalidTransition,
    NotAuthorized,
    RecordNotFound,
    StoreError,
    ValidationFailed,
    VersionConflict,
)
from alicerce.kernel.identity import CurrentUser, Role
from alicerce.kernel.ids import generate_id, generate_protocol
from alicerce.kernel.store import SQLiteStore, Store
from alicerce.kernel.time import RealTimeProvider, TestTimeProvider, TimeProvider

__all__ = [
    # IDs
    "generate_id",
    "generate_protocol",
    # Time
    "TimeProvider",
    "RealTimeProvider",
    "TestTimeProvider",
    # Identity
    "CurrentUser",
    "Role",
    # Store
    "Store",
    "SQLiteStore",
    # Errors
    "AlicerceError",
    "StoreError",
    "RecordNotFound",
    "VersionConflict",
    "ValidationFailed",
    "InvalidTransition",
    "NotAuthorized",
]
