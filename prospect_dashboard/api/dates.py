"""
FastAPI router module for daily snapshots.

Implements the dashboard reads (GET /dates, GET /dates/{date} and its
prospect and household views) and the admin operations on one date
(reset, stop, deduplicate, delete).

Admin operations do not take the processing lock: a reset or stop issued
while a batch is running wins, and the batch skips the records it changed.
"""

import logging
from typing import Dict, List

from fastapi import APIRouter, HTTPException

from prospect_dashboard.core.dependencies import RepositoryDep
from prospect_dashboard.core.exceptions import NotFoundError
from prospect_dashboard.models import (
    DateListItem,
    DateResults,
    DeduplicationReport,
    HouseholdGroup,
    ProcessedConversation,
    validate_date_string,
)
from prospect_dashboard.services.conversations import (
    deduplicate_snapshot,
    household_groups,
    prospect_records,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _checked(date: str) -> str:
    try:
        return validate_date_string(date)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# =============================================================================
# Reads
# =============================================================================

@router.get("", response_model=Dict[str, List[DateListItem]])
async def list_dates(repository: RepositoryDep) -> Dict[str, List[DateListItem]]:
    """Every stored date, newest first, with its summary."""
    try:
        return {"dates": await repository.list_with_summary()}
    except Exception as e:
        logger.error(f"Error listing dates: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to list dates")


@router.get("/{date}", response_model=DateResults)
async def get_date_results(date: str, repository: RepositoryDep) -> DateResults:
    """
    Aggregated prospect counts for one date.

    A date without data returns zero counts rather than 404, so the
    dashboard can render an empty day.
    """
    date = _checked(date)
    return await repository.results(date)


@router.get("/{date}/prospects", response_model=Dict[str, List[ProcessedConversation]])
async def get_prospects(date: str, repository: RepositoryDep) -> Dict[str, List[ProcessedConversation]]:
    date = _checked(date)
    try:
        snapshot = await repository.require(date)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"prospects": prospect_records(snapshot.results)}


@router.get("/{date}/households", response_model=Dict[str, List[HouseholdGroup]])
async def get_households(date: str, repository: RepositoryDep) -> Dict[str, List[HouseholdGroup]]:
    """Prospects grouped by household, contract-backed households first."""
    date = _checked(date)
    try:
        snapshot = await repository.require(date)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"households": household_groups(snapshot.results)}


# =============================================================================
# Admin
# =============================================================================

@router.post("/{date}/reset", response_model=dict)
async def reset_date(date: str, repository: RepositoryDep) -> dict:
    """Send every conversation of the date back to pending."""
    date = _checked(date)
    try:
        snapshot = await repository.reset(date)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {
        "success": True,
        "date": date,
        "message": f"Reset {snapshot.totalConversations} conversations to pending",
        "totalConversations": snapshot.totalConversations,
    }


@router.post("/{date}/stop", response_model=dict)
async def stop_processing(date: str, repository: RepositoryDep) -> dict:
    date = _checked(date)
    try:
        snapshot = await repository.stop(date)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {
        "success": True,
        "date": date,
        "message": "Processing stopped",
        "processedCount": snapshot.processedCount,
        "totalConversations": snapshot.totalConversations,
    }


@router.post("/{date}/deduplicate", response_model=DeduplicationReport)
async def deduplicate_date(date: str, repository: RepositoryDep) -> DeduplicationReport:
    date = _checked(date)
    try:
        return await deduplicate_snapshot(repository, date)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.delete("/{date}", response_model=dict)
async def delete_date(date: str, repository: RepositoryDep) -> dict:
    date = _checked(date)
    try:
        await repository.delete(date)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True, "date": date, "message": f"Deleted data for {date}"}
