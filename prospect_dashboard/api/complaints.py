"""
FastAPI router module for P&L complaints.

Implements GET/POST /pnl-complaints, DELETE /pnl-complaints/range and
GET /pnl-complaints/volumes. Uploads replace the stored complaints or, in
``append`` mode, extend them; either way every sale is recomputed from the
full complaint history.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from prospect_dashboard.core.dependencies import SettingsDep, StoreDep
from prospect_dashboard.models import ComplaintsUpload, validate_date_string
from prospect_dashboard.services.complaints import (
    delete_complaints_range,
    get_service_volumes,
    load_complaints,
    upload_complaints,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _check_range(start_date: Optional[str], end_date: Optional[str]) -> None:
    try:
        for value in (start_date, end_date):
            if value:
                validate_date_string(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("", response_model=dict)
async def get_complaints(store: StoreDep) -> dict:
    data = await load_complaints(store)
    if data is None:
        return {"data": None}
    return {"data": data.model_dump(mode="json", exclude={"rawComplaints"})}


@router.post("", response_model=dict)
async def post_complaints(upload: ComplaintsUpload, store: StoreDep, settings: SettingsDep) -> dict:
    """
    Store uploaded complaints.

    Raises:
        HTTPException 400: If neither ``complaints`` nor ``csvText`` is given.
    """
    try:
        data, received, errors = await upload_complaints(store, upload, settings.sale_window_months)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error uploading complaints: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to process complaints")

    return {
        "success": True,
        "mode": upload.mode.value,
        "received": received,
        "rawComplaintsCount": data.rawComplaintsCount,
        "unmappedCount": data.unmappedCount,
        "summary": data.summary.model_dump(),
        "errors": [error.as_dict() for error in errors],
    }


@router.delete("/range", response_model=dict)
async def delete_range(
    store: StoreDep,
    settings: SettingsDep,
    startDate: Optional[str] = Query(default=None),
    endDate: Optional[str] = Query(default=None),
) -> dict:
    """Remove complaints dated within the range and recompute sales."""
    _check_range(startDate, endDate)
    if not startDate and not endDate:
        raise HTTPException(status_code=400, detail="Provide startDate and/or endDate")

    data, removed = await delete_complaints_range(store, startDate, endDate, settings.sale_window_months)
    if data is None:
        raise HTTPException(status_code=404, detail="No complaints stored")
    return {
        "success": True,
        "removed": removed,
        "rawComplaintsCount": data.rawComplaintsCount,
        "summary": data.summary.model_dump(),
    }


@router.get("/volumes", response_model=dict)
async def get_volumes(
    store: StoreDep,
    startDate: Optional[str] = Query(default=None),
    endDate: Optional[str] = Query(default=None),
) -> dict:
    _check_range(startDate, endDate)
    volumes = get_service_volumes(await load_complaints(store), startDate, endDate)
    return {"startDate": startDate, "endDate": endDate, "volumes": volumes}
