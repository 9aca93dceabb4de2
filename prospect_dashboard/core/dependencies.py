"""
FastAPI dependency injection module for the Prospect Dashboard backend.

Endpoints receive their collaborators through these dependencies instead of
reaching for module globals, so tests can swap any of them with
``app.dependency_overrides``.

Key Dependencies Provided:
- get_settings_dependency / SettingsDep: the cached Settings singleton
- get_store_dependency / StoreDep: the document store opened at startup
- get_lock_manager_dependency / LockManagerDep: the processing lock table
- get_classifier_dependency / ClassifierDep: the configured classifier
- get_repository / RepositoryDep: snapshot repository over the store
- get_processor / ProcessorDep: processing-run service
- require_ingest_token: bearer-token check of the ingestion endpoint

Usage Examples:
    @router.get("/dates/{date}")
    async def get_date(date: str, repository: RepositoryDep) -> DateResults:
        return await repository.results(date)

    @router.post("/ingest/daily", dependencies=[Depends(require_ingest_token)])
    async def ingest(...):
        ...
"""

import logging
import secrets
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, status

from prospect_dashboard.core.config import Settings, get_settings
from prospect_dashboard.core.locks import DateLockManager, get_lock_manager
from prospect_dashboard.core.store import DocumentStore, get_store
from prospect_dashboard.services.classifier import Classifier, get_classifier
from prospect_dashboard.services.processing import DateProcessor
from prospect_dashboard.services.snapshots import SnapshotRepository

logger = logging.getLogger(__name__)


# =============================================================================
# Settings Dependency
# =============================================================================

def get_settings_dependency() -> Settings:
    """
    Return the Settings singleton instance.

    Thin wrapper around get_settings() so tests can override it:

        app.dependency_overrides[get_settings_dependency] = lambda: test_settings
    """
    return get_settings()


SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]


# =============================================================================
# Infrastructure Dependencies
# =============================================================================

async def get_store_dependency() -> DocumentStore:
    """
    Return the document store opened by the application lifespan.

    Raises:
        RuntimeError: If the store has not been initialized.
    """
    return await get_store()


def get_lock_manager_dependency() -> DateLockManager:
    return get_lock_manager()


def get_classifier_dependency() -> Classifier:
    return get_classifier()


StoreDep = Annotated[DocumentStore, Depends(get_store_dependency)]
LockManagerDep = Annotated[DateLockManager, Depends(get_lock_manager_dependency)]


# =============================================================================
# Service Dependencies
# =============================================================================

def get_repository(store: StoreDep, settings: SettingsDep) -> SnapshotRepository:
    return SnapshotRepository(store, max_retries=settings.max_retries)


def get_processor(
    settings: SettingsDep,
    lock_manager: LockManagerDep,
    repository: Annotated[SnapshotRepository, Depends(get_repository)],
    classifier: Annotated[Classifier, Depends(get_classifier_dependency)],
) -> DateProcessor:
    return DateProcessor.from_settings(settings, repository, classifier, lock_manager)


ClassifierDep = Annotated[Classifier, Depends(get_classifier_dependency)]
RepositoryDep = Annotated[SnapshotRepository, Depends(get_repository)]
ProcessorDep = Annotated[DateProcessor, Depends(get_processor)]


# =============================================================================
# Authentication
# =============================================================================

def require_ingest_token(
    settings: SettingsDep,
    authorization: Annotated[Optional[str], Header()] = None,
) -> None:
    """
    Check the ``Authorization`` header of an ingestion request.

    Both ``Bearer <key>`` and a bare ``<key>`` are accepted.

    Raises:
        HTTPException: 500 when no ingestion key is configured, 401 when the
            header is missing or does not match.
    """
    if not settings.ingest_api_key:
        logger.error("INGEST_API_KEY is not set; rejecting ingestion request")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Ingestion is not configured",
        )

    token = (authorization or "").strip()
    if token.startswith("Bearer "):
        token = token[len("Bearer "):].strip()

    if not token or not secrets.compare_digest(token, settings.ingest_api_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized. Provide a valid API key in the Authorization header.",
            headers={"WWW-Authenticate": "Bearer"},
        )
