"""
Overseas (OEC) Sales Tracking

Counts OEC sales from CRM to-dos. One household asking for an OEC several
times within a few weeks is one sale, so to-dos are deduplicated:

- to-dos with the same (contract, client, housemaid) form one sale key
- within a key, to-dos are windowed by calendar months from the start of
  each period; every period is one deduplicated sale
- to-dos without a creation date count as occurrences but open no period

The raw to-dos are stored next to the computed sales, so merging a new
upload reprocesses the complete history.
"""

import logging
from collections import OrderedDict
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from prospect_dashboard.core.locks import KeyedMutex
from prospect_dashboard.core.store import DocumentStore
from prospect_dashboard.models import (
    OverseasSale,
    OverseasSalesData,
    OverseasSalesUpload,
    SalePeriod,
    TodoRow,
)
from prospect_dashboard.services.dates import day_key, month_key, parse_timestamp, to_iso, utcnow
from prospect_dashboard.services.grouping import DEFAULT_WINDOW_MONTHS, build_events, group_events
from prospect_dashboard.services.identity import SALE_IDENTITY
from prospect_dashboard.services.ingestion import RowError, load_rows
from prospect_dashboard.services.reconcile import FieldPolicy, reconcile_records

logger = logging.getLogger(__name__)

OVERSEAS_SALES_KEY = "overseas-sales.json"

SALE_POLICY = FieldPolicy(
    key_field="id",
    start_field="firstSaleDate",
    end_field="lastSaleDate",
    scalar_fields=("contractId", "clientId", "housemaidId"),
)

_mutex = KeyedMutex()


def sale_key(todo: TodoRow) -> str:
    return SALE_IDENTITY.resolve(todo.model_dump())


def process_overseas_sales(
    todos: Sequence[TodoRow],
    window_months: int = DEFAULT_WINDOW_MONTHS,
    now: Optional[datetime] = None,
) -> OverseasSalesData:
    """
    Deduplicate to-dos into sales.

    Args:
        todos: Every known to-do.
        window_months: Sale window in calendar months.
        now: Timestamp recorded as ``lastUpdated``.

    Returns:
        OverseasSalesData with one OverseasSale per sale key.
    """
    by_key: "OrderedDict[str, List[TodoRow]]" = OrderedDict()
    for todo in todos:
        by_key.setdefault(sale_key(todo), []).append(todo)

    sales: List[OverseasSale] = []
    sales_by_month: Dict[str, int] = {}
    total_deduped = 0

    for key, key_todos in by_key.items():
        dated = [todo for todo in key_todos if parse_timestamp(todo.createdAt) is not None]
        undated = [todo for todo in key_todos if parse_timestamp(todo.createdAt) is None]

        events = build_events(
            [todo.model_dump() for todo in dated],
            key_fn=lambda record: key,
            timestamp_fn=lambda record: parse_timestamp(record["createdAt"]),
            id_fn=lambda record, index: record["id"],
        )
        periods = group_events(events, window_months)
        total_deduped += len(periods)
        for period in periods:
            month = month_key(period.start)
            sales_by_month[month] = sales_by_month.get(month, 0) + 1

        ordered = sorted(events, key=lambda e: e.sort_key)
        start = to_iso(ordered[0].timestamp) if ordered else ""
        end = to_iso(ordered[-1].timestamp) if ordered else ""
        merged = reconcile_records(
            f"sale_{key}",
            [todo.model_dump() for todo in key_todos],
            SALE_POLICY,
            start=start,
            end=end,
        )

        sales.append(
            OverseasSale(
                **merged,
                occurrenceCount=len(key_todos),
                deduplicatedCount=len(periods),
                relatedTodoIds=[event.event_id for event in ordered] + [todo.id for todo in undated],
                periods=[
                    SalePeriod(startDate=to_iso(period.start), endDate=to_iso(period.end), todoIds=period.event_ids)
                    for period in periods
                ],
            )
        )

    logger.info(f"Processed {len(todos)} to-dos into {total_deduped} sales across {len(sales)} keys")
    return OverseasSalesData(
        lastUpdated=to_iso(now or utcnow()),
        totalRawTodos=len(todos),
        totalDedupedSales=total_deduped,
        sales=sales,
        salesByMonth=dict(sorted(sales_by_month.items())),
        rawTodos=list(todos),
    )


def merge_overseas_sales(
    existing: Optional[OverseasSalesData],
    todos: Sequence[TodoRow],
    window_months: int = DEFAULT_WINDOW_MONTHS,
) -> Tuple[OverseasSalesData, int]:
    """
    Add to-dos to existing data, ignoring ids already known.

    Returns:
        Tuple of (data, number of new to-dos added).
    """
    known = set()
    if existing is not None:
        known.update(todo.id for todo in existing.rawTodos)
        for sale in existing.sales:
            known.update(sale.relatedTodoIds)

    fresh: List[TodoRow] = []
    for todo in todos:
        if todo.id in known:
            continue
        known.add(todo.id)
        fresh.append(todo)

    if existing is not None and not fresh:
        return existing, 0

    history = list(existing.rawTodos) if existing is not None else []
    return process_overseas_sales(history + fresh, window_months), len(fresh)


def get_sales_in_range(data: OverseasSalesData, start_date: str, end_date: str) -> int:
    """Number of sale periods whose start day lies within [start_date, end_date]."""
    count = 0
    for sale in data.sales:
        for period in sale.periods:
            started = parse_timestamp(period.startDate)
            if started is not None and start_date <= day_key(started) <= end_date:
                count += 1
    return count


# =============================================================================
# Storage
# =============================================================================

async def load_overseas_sales(store: DocumentStore) -> Optional[OverseasSalesData]:
    document = await store.get(OVERSEAS_SALES_KEY)
    if document is None:
        return None
    return OverseasSalesData.model_validate(document)


async def save_overseas_sales(store: DocumentStore, data: OverseasSalesData) -> None:
    await store.put(OVERSEAS_SALES_KEY, data.model_dump(mode="json"))


async def delete_overseas_sales(store: DocumentStore) -> bool:
    async with _mutex.locked(OVERSEAS_SALES_KEY):
        return await store.delete(OVERSEAS_SALES_KEY)


async def upload_overseas_sales(
    store: DocumentStore,
    upload: OverseasSalesUpload,
    window_months: int = DEFAULT_WINDOW_MONTHS,
) -> Tuple[OverseasSalesData, int, List[RowError]]:
    """
    Validate uploaded to-dos and merge them into (or replace) the stored data.

    Raises:
        ValueError: If the upload carries neither rows nor CSV text.
    """
    todos, errors = load_rows(TodoRow, upload.todos, upload.csvText)

    async with _mutex.locked(OVERSEAS_SALES_KEY):
        existing = None if upload.replace else await load_overseas_sales(store)
        data, added = merge_overseas_sales(existing, todos, window_months)
        await save_overseas_sales(store, data)

    logger.info(f"Overseas sales upload: {added} new to-dos, {data.totalDedupedSales} sales")
    return data, added, errors


def summarize(data: Optional[OverseasSalesData]) -> Dict[str, Any]:
    """Stored data without the raw to-do history, for the dashboard."""
    if data is None:
        return {"lastUpdated": None, "totalRawTodos": 0, "totalDedupedSales": 0, "sales": [], "salesByMonth": {}}
    return data.model_dump(mode="json", exclude={"rawTodos"})
