"""
Prospect Dashboard Backend Package.

FastAPI service behind the prospect dashboard: ingests daily chat
conversations, merges them per client or maid, classifies them into
OEC / OWWA / travel-visa prospects and conversions, and serves
household-level counts together with the OEC sales and P&L views.

Subpackages:
    - api: FastAPI route handlers
    - core: Configuration, document store, locks, dependencies
    - models: Pydantic schemas and enums
    - services: Business logic services
"""

__version__ = "1.0.0"
