"""
FastAPI router module for OEC (overseas) sales.

Implements GET/POST/DELETE /overseas-sales and GET /overseas-sales/range.
Uploads accept JSON to-do rows or raw CSV text and merge into the stored
data unless ``replace`` is set.
"""

import logging

from fastapi import APIRouter, HTTPException, Query

from prospect_dashboard.core.dependencies import SettingsDep, StoreDep
from prospect_dashboard.models import OverseasSalesUpload, SalesInRange, validate_date_string
from prospect_dashboard.services.overseas_sales import (
    delete_overseas_sales,
    get_sales_in_range,
    load_overseas_sales,
    summarize,
    upload_overseas_sales,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=dict)
async def get_overseas_sales(store: StoreDep) -> dict:
    return summarize(await load_overseas_sales(store))


@router.post("", response_model=dict)
async def post_overseas_sales(upload: OverseasSalesUpload, store: StoreDep, settings: SettingsDep) -> dict:
    """
    Merge uploaded to-dos into the stored sales.

    Raises:
        HTTPException 400: If neither ``todos`` nor ``csvText`` is given, or
            no row is valid.
    """
    try:
        data, added, errors = await upload_overseas_sales(store, upload, settings.sale_window_months)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error uploading overseas sales: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to process overseas sales")

    if errors and not added and not data.sales:
        raise HTTPException(status_code=400, detail={"errors": [error.as_dict() for error in errors]})

    return {
        "success": True,
        "added": added,
        "totalRawTodos": data.totalRawTodos,
        "totalDedupedSales": data.totalDedupedSales,
        "salesByMonth": data.salesByMonth,
        "errors": [error.as_dict() for error in errors],
    }


@router.delete("", response_model=dict)
async def clear_overseas_sales(store: StoreDep) -> dict:
    removed = await delete_overseas_sales(store)
    return {"success": True, "deleted": removed}


@router.get("/range", response_model=SalesInRange)
async def overseas_sales_in_range(
    store: StoreDep,
    startDate: str = Query(..., description="YYYY-MM-DD, inclusive"),
    endDate: str = Query(..., description="YYYY-MM-DD, inclusive"),
) -> SalesInRange:
    try:
        validate_date_string(startDate)
        validate_date_string(endDate)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    data = await load_overseas_sales(store)
    count = get_sales_in_range(data, startDate, endDate) if data else 0
    return SalesInRange(startDate=startDate, endDate=endDate, sales=count)
