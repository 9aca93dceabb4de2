"""
Prospect Dashboard API package initialization.

This package contains the FastAPI router modules:
- ingest: daily conversation ingestion (bearer token)
- dates: daily snapshot views and admin operations
- processing: classification batches per date
- overseas_sales: OEC sales upload and range counts
- complaints: P&L complaint uploads, range deletion and volumes
- payments: payment uploads (under /ingest) and the per-date conversions view
- pnl: P&L configuration and statement
"""

from fastapi import APIRouter

from prospect_dashboard.api.complaints import router as complaints_router
from prospect_dashboard.api.dates import router as dates_router
from prospect_dashboard.api.ingest import router as ingest_router
from prospect_dashboard.api.overseas_sales import router as overseas_sales_router
from prospect_dashboard.api.payments import conversions_router
from prospect_dashboard.api.payments import router as payments_router
from prospect_dashboard.api.pnl import router as pnl_router
from prospect_dashboard.api.processing import router as processing_router

# Create main API router
api_router = APIRouter()

api_router.include_router(ingest_router, prefix="/ingest", tags=["ingest"])
api_router.include_router(payments_router, prefix="/ingest", tags=["payments"])
api_router.include_router(dates_router, prefix="/dates", tags=["dates"])
api_router.include_router(processing_router, prefix="/process", tags=["processing"])
api_router.include_router(overseas_sales_router, prefix="/overseas-sales", tags=["overseas-sales"])
api_router.include_router(complaints_router, prefix="/pnl-complaints", tags=["pnl-complaints"])
api_router.include_router(conversions_router, prefix="/conversions", tags=["conversions"])
api_router.include_router(pnl_router, prefix="/pnl", tags=["pnl"])

__all__ = [
    "api_router",
    "ingest_router",
    "dates_router",
    "processing_router",
    "overseas_sales_router",
    "complaints_router",
    "payments_router",
    "conversions_router",
    "pnl_router",
]
