"""
FastAPI router module for daily conversation ingestion.

Implements POST /ingest/daily (bearer-token protected) for the export job
that pushes each day's chat conversations, and GET /ingest/daily describing
the expected payload.

Large days are sent in batches; each batch is merged into the stored
snapshot as it arrives, and only the last batch gets the full response with
the snapshot totals.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from prospect_dashboard.core.dependencies import RepositoryDep, require_ingest_token
from prospect_dashboard.models import IngestRequest, IngestResponse
from prospect_dashboard.services.conversations import ingest_daily

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/daily",
    response_model=IngestResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(require_ingest_token)],
)
async def post_daily(request: IngestRequest, repository: RepositoryDep) -> IngestResponse:
    """
    Merge a batch of conversations into the snapshot of ``request.date``.

    Raises:
        HTTPException 400: If the conversations list is empty.
        HTTPException 500: If the snapshot cannot be updated.
    """
    if not request.conversations:
        raise HTTPException(status_code=400, detail="Conversations array is empty")

    try:
        return await ingest_daily(repository, request)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error ingesting conversations for {request.date}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to process daily data")


@router.get("/daily", response_model=dict)
async def describe_daily() -> dict:
    return {
        "endpoint": "/ingest/daily",
        "method": "POST",
        "description": "Ingest daily conversation data",
        "authentication": {
            "type": "Bearer token",
            "header": "Authorization: Bearer <your-api-key>",
        },
        "requiredFields": ["date", "conversations"],
        "optionalFields": ["fileName", "batchInfo"],
        "conversationFields": {
            "required": ["conversationId", "messages"],
            "optional": [
                "chatStartDateTime", "maidId", "clientId", "contractId",
                "maidName", "clientName", "contractType",
            ],
        },
    }
