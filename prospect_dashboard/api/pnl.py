"""
FastAPI router module for the P&L view.

Implements GET/PUT/DELETE /pnl/config for the cost and fee configuration and
GET /pnl for the statement built from complaint sale volumes.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, HTTPException, Query

from prospect_dashboard.core.dependencies import StoreDep
from prospect_dashboard.models import PnLConfig, PnLStatement, validate_date_string
from prospect_dashboard.services.complaints import get_service_volumes, load_complaints
from prospect_dashboard.services.pnl import (
    build_pnl,
    load_config,
    months_in_range,
    reset_config,
    save_config,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/config", response_model=PnLConfig)
async def get_config(store: StoreDep) -> PnLConfig:
    return await load_config(store)


@router.put("/config", response_model=PnLConfig)
async def put_config(store: StoreDep, raw: Dict[str, Any] = Body(...)) -> PnLConfig:
    """Save a configuration; invalid values fall back to their defaults."""
    return await save_config(store, raw)


@router.delete("/config", response_model=PnLConfig)
async def delete_config(store: StoreDep) -> PnLConfig:
    return await reset_config(store)


@router.get("", response_model=PnLStatement)
async def get_pnl(
    store: StoreDep,
    startDate: Optional[str] = Query(default=None),
    endDate: Optional[str] = Query(default=None),
) -> PnLStatement:
    """
    P&L statement for the complaint sales within the range.

    Fixed costs are charged once per calendar month the range touches.
    """
    try:
        for value in (startDate, endDate):
            if value:
                validate_date_string(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        volumes = get_service_volumes(await load_complaints(store), startDate, endDate)
        config = await load_config(store)
        return build_pnl(volumes, config, months_in_range(startDate, endDate))
    except Exception as e:
        logger.error(f"Error building P&L: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to build P&L")
