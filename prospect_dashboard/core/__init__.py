"""
Core infrastructure package for the Prospect Dashboard backend.

Provides:
- Configuration management via pydantic-settings
- The JSON document store and its lifecycle
- Per-date processing locks
- Domain exceptions

Key components are re-exported for convenient importing:

    from prospect_dashboard.core import get_settings, init_store, close_store

FastAPI dependencies live in ``prospect_dashboard.core.dependencies`` and are
not re-exported here, because they depend on the services package.
"""

# =============================================================================
# Re-exports from prospect_dashboard.core.config
# =============================================================================
from prospect_dashboard.core.config import Settings, get_settings

# =============================================================================
# Re-exports from prospect_dashboard.core.exceptions
# =============================================================================
from prospect_dashboard.core.exceptions import (
    DashboardError,
    InvalidTransitionError,
    LockBusyError,
    NotFoundError,
)

# =============================================================================
# Re-exports from prospect_dashboard.core.store
# =============================================================================
from prospect_dashboard.core.store import (
    DocumentStore,
    InMemoryStore,
    JsonFileStore,
    close_store,
    get_store,
    init_store,
)

# =============================================================================
# Re-exports from prospect_dashboard.core.locks
# =============================================================================
from prospect_dashboard.core.locks import DateLockManager, KeyedMutex, get_lock_manager

__all__ = [
    # Configuration
    'Settings',
    'get_settings',
    # Errors
    'DashboardError',
    'NotFoundError',
    'LockBusyError',
    'InvalidTransitionError',
    # Document store
    'DocumentStore',
    'InMemoryStore',
    'JsonFileStore',
    'init_store',
    'get_store',
    'close_store',
    # Locks
    'DateLockManager',
    'KeyedMutex',
    'get_lock_manager',
]
