"""
P&L Complaints

Service sales are recorded in the CRM as "complaints" of a service type
(``Overseas Employment Certificate``, ``Travel to Lebanon``...). This module
maps complaint types to P&L services and deduplicates them into sales the
same way OEC to-dos are deduplicated: one sale per service, contract,
client and housemaid within a calendar-month window.

Complaints of a type that maps to no service are ignored and counted in
``unmappedCount``. Complaints without a parseable creation date are dated at
processing time.
"""

import logging
from collections import OrderedDict
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from prospect_dashboard.core.locks import KeyedMutex
from prospect_dashboard.core.store import DocumentStore
from prospect_dashboard.models import (
    Complaint,
    ComplaintSale,
    ComplaintsData,
    ComplaintsSummary,
    ComplaintsUpload,
    ComplaintsUploadMode,
    ServiceKey,
    ServiceSales,
)
from prospect_dashboard.services.dates import day_key, month_key, normalize_timestamp, parse_timestamp, to_iso, utcnow
from prospect_dashboard.services.grouping import DEFAULT_WINDOW_MONTHS, build_events, group_events
from prospect_dashboard.services.identity import SALE_IDENTITY
from prospect_dashboard.services.ingestion import RowError, load_rows

logger = logging.getLogger(__name__)

PNL_COMPLAINTS_KEY = "pnl-complaints.json"

# Lower-cased, trimmed complaint type -> service
COMPLAINT_TYPE_MAP: Dict[str, ServiceKey] = {
    "overseas employment certificate": ServiceKey.OEC,
    "overseas": ServiceKey.OEC,
    "oec": ServiceKey.OEC,
    "client owwa registration": ServiceKey.OWWA,
    "owwa registration": ServiceKey.OWWA,
    "owwa": ServiceKey.OWWA,
    "tourist visa to lebanon": ServiceKey.TTL,
    "travel to lebanon": ServiceKey.TTL,
    "ttl": ServiceKey.TTL,
    "tourist visa to egypt": ServiceKey.TTE,
    "travel to egypt": ServiceKey.TTE,
    "tte": ServiceKey.TTE,
    "tourist visa to jordan": ServiceKey.TTJ,
    "travel to jordan": ServiceKey.TTJ,
    "ttj": ServiceKey.TTJ,
    "ethiopian passport renewal": ServiceKey.ETHIOPIAN_PP,
    "ethiopian pp": ServiceKey.ETHIOPIAN_PP,
    "ethiopian pp renewal": ServiceKey.ETHIOPIAN_PP,
    "filipina passport renewal": ServiceKey.FILIPINA_PP,
    "filipina pp": ServiceKey.FILIPINA_PP,
    "filipina pp renewal": ServiceKey.FILIPINA_PP,
    "gcc travel": ServiceKey.GCC,
    "gcc": ServiceKey.GCC,
    "schengen": ServiceKey.SCHENGEN,
    "schengen visa": ServiceKey.SCHENGEN,
    "schengen countries": ServiceKey.SCHENGEN,
}

SERVICE_NAMES: Dict[ServiceKey, str] = {
    ServiceKey.OEC: "Overseas Employment Certificate",
    ServiceKey.OWWA: "OWWA Registration",
    ServiceKey.TTL: "Travel to Lebanon",
    ServiceKey.TTE: "Travel to Egypt",
    ServiceKey.TTJ: "Travel to Jordan",
    ServiceKey.SCHENGEN: "Schengen Countries",
    ServiceKey.GCC: "GCC",
    ServiceKey.ETHIOPIAN_PP: "Ethiopian Passport Renewal",
    ServiceKey.FILIPINA_PP: "Filipina Passport Renewal",
}

_mutex = KeyedMutex()


def service_for(complaint_type: str) -> Optional[ServiceKey]:
    return COMPLAINT_TYPE_MAP.get((complaint_type or "").strip().lower())


def complaint_sale_key(complaint: Complaint) -> str:
    service = complaint.serviceKey.value if complaint.serviceKey else ""
    return SALE_IDENTITY.resolve(complaint.model_dump(), qualifier=service)


def empty_services() -> Dict[str, ServiceSales]:
    return {
        key.value: ServiceSales(serviceKey=key, serviceName=SERVICE_NAMES[key])
        for key in ServiceKey
    }


# =============================================================================
# Processing
# =============================================================================

def process_complaints(
    complaints: Sequence[Complaint],
    window_months: int = DEFAULT_WINDOW_MONTHS,
    now: Optional[datetime] = None,
) -> ComplaintsData:
    """
    Deduplicate complaints into per-service sales.

    Args:
        complaints: Every known complaint, mapped or not.
        window_months: Sale window in calendar months.
        now: Processing time, used for undated complaints and ``lastUpdated``.
    """
    now = now or utcnow()
    mapped: List[Complaint] = []
    unmapped = 0
    for complaint in complaints:
        service = service_for(complaint.complaintType)
        if service is None:
            unmapped += 1
            continue
        mapped.append(complaint.model_copy(update={"serviceKey": service}))

    by_key: "OrderedDict[str, List[Complaint]]" = OrderedDict()
    for complaint in mapped:
        by_key.setdefault(complaint_sale_key(complaint), []).append(complaint)

    services = empty_services()
    all_clients = set()
    all_contracts = set()

    for key, group in by_key.items():
        first = group[0]
        service = services[first.serviceKey.value]
        if first.clientId:
            all_clients.add(first.clientId)
        if first.contractId:
            all_contracts.add(first.contractId)

        events = build_events(
            [complaint.model_dump() for complaint in group],
            key_fn=lambda record: key,
            timestamp_fn=lambda record: normalize_timestamp(record["creationDate"], now),
        )
        periods = group_events(events, window_months)

        service.totalComplaints += len(group)
        service.uniqueSales += len(periods)
        for period in periods:
            month = month_key(period.start)
            service.byMonth[month] = service.byMonth.get(month, 0) + 1
            service.sales.append(
                ComplaintSale(
                    id=f"sale_{key}_{day_key(period.start)}",
                    serviceKey=first.serviceKey,
                    contractId=first.contractId,
                    clientId=first.clientId,
                    housemaidId=first.housemaidId,
                    firstSaleDate=to_iso(period.start),
                    lastSaleDate=to_iso(period.end),
                    occurrenceCount=len(period.events),
                    complaintDates=[to_iso(timestamp) for timestamp in sorted(period.timestamps)],
                )
            )

    for service in services.values():
        service.uniqueClients = len({sale.clientId for sale in service.sales if sale.clientId})
        service.uniqueContracts = len({sale.contractId for sale in service.sales if sale.contractId})
        service.byMonth = dict(sorted(service.byMonth.items()))

    summary = ComplaintsSummary(
        totalUniqueSales=sum(service.uniqueSales for service in services.values()),
        totalUniqueClients=len(all_clients),
        totalUniqueContracts=len(all_contracts),
    )
    if unmapped:
        logger.info(f"Ignored {unmapped} complaints with unmapped types")

    return ComplaintsData(
        lastUpdated=to_iso(now),
        rawComplaintsCount=len(complaints),
        unmappedCount=unmapped,
        services=services,
        summary=summary,
        rawComplaints=list(complaints),
    )


def append_complaints(
    existing: Optional[ComplaintsData],
    complaints: Sequence[Complaint],
    window_months: int = DEFAULT_WINDOW_MONTHS,
) -> ComplaintsData:
    history = list(existing.rawComplaints) if existing is not None else []
    return process_complaints(history + list(complaints), window_months)


def filter_complaints_by_date_range(
    data: ComplaintsData,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    window_months: int = DEFAULT_WINDOW_MONTHS,
) -> Tuple[ComplaintsData, int]:
    """
    Drop complaints dated within [start_date, end_date] and reprocess.

    Undated complaints are kept. With neither bound given nothing changes.

    Returns:
        Tuple of (data, number of complaints removed).
    """
    if not start_date and not end_date:
        return data, 0

    lower = start_date or "0000-01-01"
    upper = end_date or "9999-12-31"
    kept: List[Complaint] = []
    for complaint in data.rawComplaints:
        created = parse_timestamp(complaint.creationDate)
        if created is not None and lower <= day_key(created) <= upper:
            continue
        kept.append(complaint)

    removed = len(data.rawComplaints) - len(kept)
    return process_complaints(kept, window_months), removed


def get_service_volumes(
    data: Optional[ComplaintsData],
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> Dict[str, int]:
    """
    Sales per service whose first date lies within the range (all sales
    when no range is given). Every service is present.
    """
    volumes = {key.value: 0 for key in ServiceKey}
    if data is None:
        return volumes

    lower = start_date or "0000-01-01"
    upper = end_date or "9999-12-31"
    for key, service in data.services.items():
        for sale in service.sales:
            started = parse_timestamp(sale.firstSaleDate)
            if started is not None and lower <= day_key(started) <= upper:
                volumes[key] = volumes.get(key, 0) + 1
    return volumes


# =============================================================================
# Storage
# =============================================================================

async def load_complaints(store: DocumentStore) -> Optional[ComplaintsData]:
    document = await store.get(PNL_COMPLAINTS_KEY)
    if document is None:
        return None
    return ComplaintsData.model_validate(document)


async def save_complaints(store: DocumentStore, data: ComplaintsData) -> None:
    await store.put(PNL_COMPLAINTS_KEY, data.model_dump(mode="json"))


async def upload_complaints(
    store: DocumentStore,
    upload: ComplaintsUpload,
    window_months: int = DEFAULT_WINDOW_MONTHS,
) -> Tuple[ComplaintsData, int, List[RowError]]:
    """
    Validate uploaded complaints and replace or extend the stored data.

    Raises:
        ValueError: If the upload carries neither rows nor CSV text.
    """
    complaints, errors = load_rows(Complaint, upload.complaints, upload.csvText)

    async with _mutex.locked(PNL_COMPLAINTS_KEY):
        if upload.mode == ComplaintsUploadMode.APPEND:
            data = append_complaints(await load_complaints(store), complaints, window_months)
        else:
            data = process_complaints(complaints, window_months)
        await save_complaints(store, data)

    logger.info(
        f"Complaints upload ({upload.mode.value}): {len(complaints)} rows, "
        f"{data.summary.totalUniqueSales} unique sales"
    )
    return data, len(complaints), errors


async def delete_complaints_range(
    store: DocumentStore,
    start_date: Optional[str],
    end_date: Optional[str],
    window_months: int = DEFAULT_WINDOW_MONTHS,
) -> Tuple[Optional[ComplaintsData], int]:
    async with _mutex.locked(PNL_COMPLAINTS_KEY):
        data = await load_complaints(store)
        if data is None:
            return None, 0
        data, removed = filter_complaints_by_date_range(data, start_date, end_date, window_months)
        if removed:
            await save_complaints(store, data)
    logger.info(f"Removed {removed} complaints between {start_date} and {end_date}")
    return data, removed
