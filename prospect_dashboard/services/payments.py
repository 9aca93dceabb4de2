"""
Payments and Conversions

The CRM payments export tells which contracts actually paid for a service.
Uploaded rows are normalized and deduplicated into one stored document:

- a payment type maps to a P&L service by exact name first, then by keyword
  (``Travel to Lebanon Visa`` -> ttl, ``Philippine passport renewal`` ->
  filipinaPP); unknown types keep ``service=None``
- the status is normalized to ``received``, ``pre_pdp`` or ``other``
- rows without a contract, status or payment date are skipped
- one payment is kept per contract, payment type and payment day

The conversions view of a date matches the classified prospects of that
day's snapshot to the payments RECEIVED on the same day, by contract id. A
prospect converts in a category only when it was classified as a prospect of
that category and its contract paid for a service of the category; the
travel services (ttl, tte, ttj, schengen, gcc) all count as travel visa.
Passport renewals are stored and reported in the upload breakdown but have
no prospect category to convert.

With ``includeComplaints`` the view also checks the P&L complaints created
on the date against every prospect, linked by contract, maid or client id,
and reports conversion rates with and without complained prospects.
"""

import logging
from collections import OrderedDict
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from prospect_dashboard.core.locks import KeyedMutex
from prospect_dashboard.core.store import DocumentStore
from prospect_dashboard.models import (
    CategoryCounts,
    CategoryFlags,
    CleanConversionStats,
    Complaint,
    ComplaintsAnalysis,
    Conversion,
    ConversionComplaintCheck,
    ConversionsResponse,
    PaymentData,
    PaymentRow,
    PaymentStatus,
    PaymentsSummary,
    PaymentsUpload,
    ProcessedConversation,
    ProcessedPayment,
    ProspectCategory,
    ServiceComplaintCheck,
    ServiceKey,
)
from prospect_dashboard.services.complaints import load_complaints, service_for
from prospect_dashboard.services.conversations import PROSPECT_FLAGS, is_prospect
from prospect_dashboard.services.dates import day_key, parse_timestamp, to_iso, utcnow
from prospect_dashboard.services.identity import PAYMENT_IDENTITY
from prospect_dashboard.services.ingestion import RowError, load_rows
from prospect_dashboard.services.snapshots import SnapshotRepository

logger = logging.getLogger(__name__)

PAYMENTS_KEY = "payments-data.json"

# Lower-cased, trimmed payment type -> service
PAYMENT_TYPE_MAP: Dict[str, ServiceKey] = {
    "the maid's overseas employment certificate": ServiceKey.OEC,
    "overseas employment certificate": ServiceKey.OEC,
    "oec": ServiceKey.OEC,
    "the maid's contract verification": ServiceKey.OEC,
    "contract verification": ServiceKey.OEC,
    "owwa registration": ServiceKey.OWWA,
    "owwa": ServiceKey.OWWA,
    "travel to lebanon visa": ServiceKey.TTL,
    "travel to lebanon": ServiceKey.TTL,
    "travel to egypt visa": ServiceKey.TTE,
    "travel to egypt": ServiceKey.TTE,
    "travel to jordan visa": ServiceKey.TTJ,
    "travel to jordan": ServiceKey.TTJ,
    "travel to morocco visa": ServiceKey.SCHENGEN,
    "travel to morocco": ServiceKey.SCHENGEN,
    "travel to turkey visa": ServiceKey.SCHENGEN,
    "travel to turkey": ServiceKey.SCHENGEN,
    "filipina passport renewal": ServiceKey.FILIPINA_PP,
    "filipino passport renewal": ServiceKey.FILIPINA_PP,
    "philippine passport renewal": ServiceKey.FILIPINA_PP,
    "philippines passport renewal": ServiceKey.FILIPINA_PP,
    "ethiopian passport renewal": ServiceKey.ETHIOPIAN_PP,
    "ethiopia passport renewal": ServiceKey.ETHIOPIAN_PP,
    "passport renewal": ServiceKey.ETHIOPIAN_PP,
    "good conduct certificate application": ServiceKey.GCC,
    "good conduct certificate": ServiceKey.GCC,
    "gcc": ServiceKey.GCC,
}

# Keyword fallback, checked in order; a passport keyword needs "passport" too
PAYMENT_KEYWORDS: Tuple[Tuple[Tuple[str, ...], ServiceKey], ...] = (
    (("oec", "employment certificate", "contract verification"), ServiceKey.OEC),
    (("owwa",), ServiceKey.OWWA),
    (("lebanon",), ServiceKey.TTL),
    (("egypt",), ServiceKey.TTE),
    (("jordan",), ServiceKey.TTJ),
    (("morocco", "turkey", "schengen"), ServiceKey.SCHENGEN),
    (("gcc",), ServiceKey.GCC),
)
PASSPORT_KEYWORDS: Tuple[Tuple[Tuple[str, ...], ServiceKey], ...] = (
    (("filipina", "filipino", "philippine"), ServiceKey.FILIPINA_PP),
    (("ethiopia",), ServiceKey.ETHIOPIAN_PP),
)

TRAVEL_SERVICES = (ServiceKey.TTL, ServiceKey.TTE, ServiceKey.TTJ, ServiceKey.SCHENGEN, ServiceKey.GCC)

CATEGORY_BY_SERVICE: Dict[ServiceKey, ProspectCategory] = {
    ServiceKey.OEC: ProspectCategory.OEC,
    ServiceKey.OWWA: ProspectCategory.OWWA,
    **{service: ProspectCategory.TRAVEL_VISA for service in TRAVEL_SERVICES},
}

_mutex = KeyedMutex()


def payment_service(payment_type: str) -> Optional[ServiceKey]:
    normalized = (payment_type or "").strip().lower()
    if normalized in PAYMENT_TYPE_MAP:
        return PAYMENT_TYPE_MAP[normalized]

    for keywords, service in PAYMENT_KEYWORDS:
        if any(keyword in normalized for keyword in keywords):
            return service
    if "passport" in normalized:
        for keywords, service in PASSPORT_KEYWORDS:
            if any(keyword in normalized for keyword in keywords):
                return service
        return ServiceKey.ETHIOPIAN_PP
    return None


def normalize_status(status: str) -> PaymentStatus:
    try:
        return PaymentStatus((status or "").strip().lower())
    except ValueError:
        return PaymentStatus.OTHER


def payment_day(value: str) -> str:
    """``YYYY-MM-DD`` of a payment date; unparseable values are kept trimmed."""
    parsed = parse_timestamp(value)
    return day_key(parsed) if parsed is not None else (value or "").strip()


def category_of(service: Optional[ServiceKey]) -> Optional[ProspectCategory]:
    return CATEGORY_BY_SERVICE.get(service) if service is not None else None


# =============================================================================
# Processing
# =============================================================================

def process_payments(rows: Sequence[PaymentRow]) -> Tuple[List[ProcessedPayment], int]:
    """
    Normalize and deduplicate payment rows, keeping the first of each
    contract, payment type and payment day.

    Returns:
        Tuple of (payments, number of rows skipped as incomplete or repeated).
    """
    unique: "OrderedDict[str, ProcessedPayment]" = OrderedDict()
    incomplete = 0
    for row in rows:
        if not (row.contractId and row.status and row.dateOfPayment):
            incomplete += 1
            continue
        payment = ProcessedPayment(
            paymentType=row.paymentType,
            creationDate=row.creationDate,
            contractId=row.contractId,
            clientId=row.clientId,
            status=normalize_status(row.status),
            dateOfPayment=payment_day(row.dateOfPayment),
            service=payment_service(row.paymentType),
            amountOfPayment=row.amountOfPayment,
        )
        unique.setdefault(PAYMENT_IDENTITY.resolve(payment.model_dump()), payment)

    repeated = len(rows) - incomplete - len(unique)
    if incomplete:
        logger.warning(f"Skipped {incomplete} payments without contract, status or payment date")
    if repeated:
        logger.info(f"Dropped {repeated} repeated payments")
    return list(unique.values()), incomplete + repeated


def build_payment_data(payments: List[ProcessedPayment], now: Optional[datetime] = None) -> PaymentData:
    return PaymentData(
        uploadDate=to_iso(now or utcnow()),
        totalPayments=len(payments),
        receivedPayments=sum(1 for payment in payments if payment.status == PaymentStatus.RECEIVED),
        payments=payments,
    )


def payment_breakdown(payments: Sequence[ProcessedPayment]) -> Dict[str, int]:
    """Received payments per service, plus unmapped, received and total counts."""
    breakdown = {key.value: 0 for key in ServiceKey}
    breakdown["other"] = 0
    for payment in payments:
        if payment.service is None:
            breakdown["other"] += 1
        elif payment.status == PaymentStatus.RECEIVED:
            breakdown[payment.service.value] += 1
    breakdown["received"] = sum(1 for payment in payments if payment.status == PaymentStatus.RECEIVED)
    breakdown["total"] = len(payments)
    return breakdown


def summarize(data: Optional[PaymentData]) -> PaymentsSummary:
    if data is None:
        return PaymentsSummary()
    return PaymentsSummary(
        totalPayments=data.totalPayments,
        receivedPayments=data.receivedPayments,
        uploadDate=data.uploadDate,
        breakdown=payment_breakdown(data.payments),
    )


# =============================================================================
# Storage
# =============================================================================

async def load_payments(store: DocumentStore) -> Optional[PaymentData]:
    document = await store.get(PAYMENTS_KEY)
    if document is None:
        return None
    return PaymentData.model_validate(document)


async def save_payments(store: DocumentStore, data: PaymentData) -> None:
    await store.put(PAYMENTS_KEY, data.model_dump(mode="json"))


async def upload_payments(store: DocumentStore, upload: PaymentsUpload) -> Tuple[PaymentData, int, List[RowError]]:
    """
    Validate uploaded payments and replace the stored payment data.

    Returns:
        Tuple of (stored data, rows skipped as incomplete or repeated,
        row errors).

    Raises:
        ValueError: If the upload carries neither rows nor CSV text, or no
            row survives validation.
    """
    rows, errors = load_rows(PaymentRow, upload.payments, upload.csvText)
    if not rows:
        raise ValueError("No payments provided")

    payments, skipped = process_payments(rows)
    data = build_payment_data(payments)
    async with _mutex.locked(PAYMENTS_KEY):
        await save_payments(store, data)

    logger.info(f"Saved {data.totalPayments} payments ({data.receivedPayments} received)")
    return data, skipped, errors


# =============================================================================
# Conversions
# =============================================================================

PaymentIndex = Dict[str, Dict[str, List[str]]]


def received_payment_index(payments: Sequence[ProcessedPayment], date: str) -> PaymentIndex:
    """
    Payment days per contract and prospect category, for the payments
    received on ``date``.
    """
    index: PaymentIndex = {}
    for payment in payments:
        if payment.status != PaymentStatus.RECEIVED or payment.dateOfPayment != date:
            continue
        category = category_of(payment.service)
        if category is None:
            continue
        index.setdefault(payment.contractId, {}).setdefault(category.value, []).append(payment.dateOfPayment)
    return index


def prospected_categories(record: ProcessedConversation) -> List[str]:
    return [name for name, (prospect, _) in PROSPECT_FLAGS.items() if getattr(record, prospect)]


def match_conversions(records: Sequence[ProcessedConversation], index: PaymentIndex) -> List[Conversion]:
    conversions: List[Conversion] = []
    for record in records:
        if not record.contractId or not is_prospect(record):
            continue
        paid = index.get(record.contractId)
        if not paid:
            continue
        converted = [name for name in prospected_categories(record) if name in paid]
        if not converted:
            continue
        conversions.append(
            Conversion(
                contractId=record.contractId,
                services=CategoryFlags(**{name: True for name in converted}),
                paymentDates={name: list(paid[name]) for name in converted},
            )
        )
    return conversions


def complaints_on(complaints: Sequence[Complaint], date: str) -> List[Complaint]:
    dated = []
    for complaint in complaints:
        created = parse_timestamp(complaint.creationDate)
        if created is not None and day_key(created) == date:
            dated.append(complaint)
    return dated


def complaint_category(complaint: Complaint) -> Optional[str]:
    category = category_of(service_for(complaint.complaintType))
    return category.value if category is not None else None


def _linked(complaint: Complaint, record: ProcessedConversation) -> bool:
    return bool(
        (record.contractId and complaint.contractId == record.contractId)
        or (record.maidId and complaint.housemaidId == record.maidId)
        or (record.clientId and complaint.clientId == record.clientId)
    )


def check_complaints(
    records: Sequence[ProcessedConversation],
    index: PaymentIndex,
    complaints: Sequence[Complaint],
) -> List[ConversionComplaintCheck]:
    """
    One entry per prospect with a contract id, converted or not. Only the
    categories the record is a prospect of are present in ``services``.
    """
    checks: List[ConversionComplaintCheck] = []
    for record in records:
        if not record.contractId or not is_prospect(record):
            continue
        paid = index.get(record.contractId, {})
        linked = [complaint for complaint in complaints if _linked(complaint, record)]

        check = ConversionComplaintCheck(contractId=record.contractId)
        for name in prospected_categories(record):
            types = [
                complaint.complaintType
                for complaint in linked
                if complaint_category(complaint) == name
            ]
            check.services[name] = ServiceComplaintCheck(
                converted=name in paid,
                hasComplaint=bool(types),
                complaintTypes=types,
            )
            if name in paid:
                check.paymentDates[name] = list(paid[name])
        checks.append(check)
    return checks


def clean_conversion_stats(checks: Sequence[ConversionComplaintCheck]) -> Dict[str, CleanConversionStats]:
    stats = {category.value: CleanConversionStats() for category in ProspectCategory}
    for check in checks:
        for name, service in check.services.items():
            entry = stats[name]
            entry.prospects += 1
            if service.converted:
                entry.conversions += 1
                if not service.hasComplaint:
                    entry.cleanConversions += 1
            if service.hasComplaint:
                entry.withComplaints += 1

    for entry in stats.values():
        if entry.prospects:
            entry.overallRate = entry.conversions / entry.prospects * 100
            entry.cleanRate = entry.cleanConversions / entry.prospects * 100
    return stats


async def conversions_for_date(
    repository: SnapshotRepository,
    store: DocumentStore,
    date: str,
    include_complaints: bool = False,
) -> ConversionsResponse:
    """
    Prospects of ``date`` whose contract paid on the same day.

    Raises:
        NotFoundError: If there is no snapshot for the date.
    """
    snapshot = await repository.require(date)
    data = await load_payments(store)
    if data is None:
        return ConversionsResponse(date=date, message="No payment data available")

    index = received_payment_index(data.payments, date)
    conversions = match_conversions(snapshot.results, index)
    response = ConversionsResponse(
        date=date,
        conversions=conversions,
        totalConversions=len(conversions),
        byService=CategoryCounts(**{
            name: sum(1 for conversion in conversions if getattr(conversion.services, name))
            for name in PROSPECT_FLAGS
        }),
    )

    if include_complaints:
        stored = await load_complaints(store)
        complaints = complaints_on(stored.rawComplaints, date) if stored is not None else []
        checks = check_complaints(snapshot.results, index, complaints)
        response.complaintsAnalysis = ComplaintsAnalysis(
            conversionsWithComplaints=checks,
            cleanConversionStats=clean_conversion_stats(checks),
        )

    logger.info(f"{len(conversions)} conversions on {date} from {len(index)} paying contracts")
    return response
