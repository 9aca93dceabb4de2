"""
FastAPI router modules for payments and conversions.

``router`` implements POST/GET /ingest/payments: an upload replaces the
stored payment data, and the GET returns its summary. POST is bearer-token
protected like the conversation ingestion.

``conversions_router`` implements GET /conversions/{date}: the prospects of
the date whose contract paid for a prospected category on that day, with an
optional complaints check (``includeComplaints=true``).
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from prospect_dashboard.core.dependencies import RepositoryDep, StoreDep, require_ingest_token
from prospect_dashboard.core.exceptions import NotFoundError
from prospect_dashboard.models import (
    ConversionsResponse,
    PaymentsSummary,
    PaymentsUpload,
    validate_date_string,
)
from prospect_dashboard.services.payments import (
    conversions_for_date,
    load_payments,
    summarize,
    upload_payments,
)

logger = logging.getLogger(__name__)

router = APIRouter()
conversions_router = APIRouter()


@router.post("/payments", response_model=dict, dependencies=[Depends(require_ingest_token)])
async def post_payments(upload: PaymentsUpload, store: StoreDep) -> dict:
    """
    Replace the stored payments with the uploaded rows.

    Raises:
        HTTPException 400: If the upload has no usable rows.
        HTTPException 500: If the payments cannot be stored.
    """
    try:
        data, skipped, errors = await upload_payments(store, upload)
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error processing payments: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to process payment data")

    summary = summarize(data)
    summary.skippedRows = skipped
    return {
        "success": True,
        "message": f"Successfully processed {data.totalPayments} payments",
        "data": summary.model_dump(exclude_none=True),
        "errors": [error.as_dict() for error in errors],
    }


@router.get("/payments", response_model=PaymentsSummary, response_model_exclude_none=True)
async def get_payments(store: StoreDep) -> PaymentsSummary:
    return summarize(await load_payments(store))


@conversions_router.get("/{date}", response_model=ConversionsResponse, response_model_exclude_none=True)
async def get_conversions(
    date: str,
    repository: RepositoryDep,
    store: StoreDep,
    includeComplaints: bool = Query(default=False),
) -> ConversionsResponse:
    """
    Conversions of one date.

    Raises:
        HTTPException 400: If the date is malformed.
        HTTPException 404: If there is no snapshot for the date.
    """
    try:
        date = validate_date_string(date)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        return await conversions_for_date(repository, store, date, include_complaints=includeComplaints)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Error calculating conversions for {date}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to calculate conversions")
