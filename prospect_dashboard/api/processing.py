"""
FastAPI router module for processing runs.

POST /process/date runs one classification batch for a date. The dashboard
calls it repeatedly until the response reports ``isComplete``; a request for
a date that is already being processed is rejected with 409 instead of
waiting.
"""

import logging

from fastapi import APIRouter, HTTPException

from prospect_dashboard.core.dependencies import ProcessorDep
from prospect_dashboard.core.exceptions import LockBusyError, NotFoundError
from prospect_dashboard.models import ProcessDateRequest, ProcessDateResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/date", response_model=ProcessDateResponse)
async def process_date(request: ProcessDateRequest, processor: ProcessorDep) -> ProcessDateResponse:
    """
    Classify the next batch of pending conversations of ``request.date``.

    Raises:
        HTTPException 404: If there is no data for the date.
        HTTPException 409: If the date is already being processed.
        HTTPException 500: On any other failure.
    """
    try:
        return await processor.process(request.date, request.batchSize)
    except LockBusyError as e:
        raise HTTPException(
            status_code=409,
            detail={
                "error": str(e),
                "holder": e.holder,
                "expiresAt": e.expires_at.isoformat() if e.expires_at else None,
            },
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error processing {request.date}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to process date")
