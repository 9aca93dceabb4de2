"""
Daily Snapshot Repository

Owns the ``daily/<date>.json`` documents: loading, read-modify-write editing,
summary recomputation, processing-run bookkeeping, and the admin operations
(reset, stop, delete).

Every mutation goes through ``SnapshotRepository.edit``, which holds a
per-date mutex while the document is read, changed in memory and written
back, so two writers never interleave on the same date. The summary and the
counters are recomputed on every save and never trusted from the caller.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, List, Optional

from prospect_dashboard.core.exceptions import NotFoundError
from prospect_dashboard.core.locks import KeyedMutex
from prospect_dashboard.core.store import DocumentStore
from prospect_dashboard.models import (
    ByContractType,
    ContractType,
    ContractTypeCounts,
    DailySnapshot,
    DailySummary,
    DateListItem,
    DateResults,
    CategoryCounts,
    ProcessedConversation,
    ProcessingStatus,
    ProspectCategory,
    RunStats,
)
from prospect_dashboard.services import state_machine
from prospect_dashboard.services.aggregation import (
    Category,
    aggregate,
    first_non_empty,
    flag,
    household_key,
)
from prospect_dashboard.services.dates import to_iso, utcnow

logger = logging.getLogger(__name__)

DAILY_PREFIX = "daily/"

# Prospect categories of a conversation record
CONVERSATION_CATEGORIES = (
    Category(ProspectCategory.OEC.value, flag("isOECProspect"), flag("oecConverted")),
    Category(ProspectCategory.OWWA.value, flag("isOWWAProspect"), flag("owwaConverted")),
    Category(
        ProspectCategory.TRAVEL_VISA.value,
        flag("isTravelVisaProspect"),
        flag("travelVisaConverted"),
        values_field="travelVisaCountries",
    ),
)

CONTRACT_TYPES = tuple(contract_type.value for contract_type in ContractType)

# Shared by every repository instance of the process
_edit_mutex = KeyedMutex()


def daily_key(date: str) -> str:
    return f"{DAILY_PREFIX}{date}.json"


def date_from_key(key: str) -> str:
    return key[len(DAILY_PREFIX):-len(".json")]


# =============================================================================
# Summary
# =============================================================================

def household_contract_type(members) -> str:
    return first_non_empty(members, "contractType")


def calculate_summary(results: List[ProcessedConversation]) -> DailySummary:
    """
    Household-level prospect counts of a snapshot.

    A household is a contract (or a single standalone record); it counts once
    per category however many of its members qualify.
    """
    entities = [record.model_dump() for record in results]
    summary = aggregate(
        entities,
        CONVERSATION_CATEGORIES,
        household_fn=household_key,
        dimension_fn=household_contract_type,
        dimension_values=CONTRACT_TYPES,
    )

    by_contract_type = ByContractType(
        CC=ContractTypeCounts(
            oec=summary["oec"].by_dimension["CC"],
            owwa=summary["owwa"].by_dimension["CC"],
            travelVisa=summary["travelVisa"].by_dimension["CC"],
        ),
        MV=ContractTypeCounts(
            oec=summary["oec"].by_dimension["MV"],
            owwa=summary["owwa"].by_dimension["MV"],
            travelVisa=summary["travelVisa"].by_dimension["MV"],
        ),
    )

    return DailySummary(
        oec=summary["oec"].total,
        owwa=summary["owwa"].total,
        travelVisa=summary["travelVisa"].total,
        oecConverted=summary["oec"].converted,
        owwaConverted=summary["owwa"].converted,
        travelVisaConverted=summary["travelVisa"].converted,
        countryCounts=dict(sorted(summary["travelVisa"].value_counts.items())),
        byContractType=by_contract_type,
    )


def refresh_counts(snapshot: DailySnapshot, max_retries: int) -> DailySnapshot:
    snapshot.totalConversations = len(snapshot.results)
    snapshot.processedCount = sum(
        1 for record in snapshot.results if state_machine.is_terminal(record, max_retries)
    )
    snapshot.summary = calculate_summary(snapshot.results)
    return snapshot


# =============================================================================
# Runs
# =============================================================================

def start_run(snapshot: DailySnapshot, now: Optional[datetime] = None) -> RunStats:
    now = now or utcnow()
    run = RunStats(
        runId=f"{snapshot.date}-{int(now.timestamp() * 1000)}",
        startedAt=to_iso(now),
    )
    snapshot.runs.append(run)
    snapshot.isProcessing = True
    snapshot.currentRunId = run.runId
    logger.info(f"Started run {run.runId}")
    return run


def complete_run(snapshot: DailySnapshot, run_id: Optional[str], now: Optional[datetime] = None) -> None:
    run = snapshot.run(run_id)
    if run is not None and run.completedAt is None:
        run.completedAt = to_iso(now or utcnow())
        logger.info(f"Completed run {run.runId}")
    snapshot.isProcessing = False
    snapshot.currentRunId = None


# =============================================================================
# Repository
# =============================================================================

class SnapshotRepository:
    """
    Date-keyed snapshot persistence on top of a DocumentStore.

    Args:
        store: Document store.
        max_retries: Retry limit used when counting processed records.
    """

    def __init__(self, store: DocumentStore, max_retries: int = 3, mutex: Optional[KeyedMutex] = None):
        self.store = store
        self.max_retries = max_retries
        self._mutex = mutex or _edit_mutex

    async def load(self, date: str) -> Optional[DailySnapshot]:
        document = await self.store.get(daily_key(date))
        if document is None:
            return None
        return DailySnapshot.model_validate(document)

    async def require(self, date: str) -> DailySnapshot:
        snapshot = await self.load(date)
        if snapshot is None:
            raise NotFoundError(f"No data found for {date}", key=daily_key(date))
        return snapshot

    async def save(self, snapshot: DailySnapshot) -> DailySnapshot:
        refresh_counts(snapshot, self.max_retries)
        await self.store.put(daily_key(snapshot.date), snapshot.model_dump(mode="json"))
        return snapshot

    @asynccontextmanager
    async def edit(self, date: str, create: bool = False) -> AsyncIterator[DailySnapshot]:
        """
        Read-modify-write one snapshot under the per-date mutex.

        The snapshot is saved when the block exits normally and discarded if
        it raises.

        Raises:
            NotFoundError: If the snapshot does not exist and ``create`` is False.
        """
        async with self._mutex.locked(date):
            snapshot = await self.load(date)
            if snapshot is None:
                if not create:
                    raise NotFoundError(f"No data found for {date}", key=daily_key(date))
                snapshot = DailySnapshot(date=date)
            yield snapshot
            await self.save(snapshot)

    async def list_dates(self) -> List[str]:
        """All snapshot dates, newest first."""
        keys = await self.store.list(DAILY_PREFIX)
        return sorted((date_from_key(key) for key in keys if key.endswith(".json")), reverse=True)

    async def delete(self, date: str) -> None:
        async with self._mutex.locked(date):
            removed = await self.store.delete(daily_key(date))
        if not removed:
            raise NotFoundError(f"No data found for {date}", key=daily_key(date))
        logger.info(f"Deleted snapshot {date}")

    # =========================================================================
    # Admin operations
    # =========================================================================

    async def reset(self, date: str) -> DailySnapshot:
        """Send every record back to pending with its classification cleared."""
        async with self.edit(date) as snapshot:
            for record in snapshot.results:
                state_machine.admin_reset(record)
            if snapshot.currentRunId:
                complete_run(snapshot, snapshot.currentRunId)
            snapshot.isProcessing = False
            snapshot.currentRunId = None
        logger.info(f"Reset {len(snapshot.results)} records for {date}")
        return snapshot

    async def stop(self, date: str) -> DailySnapshot:
        """Complete the active run and release records left in processing."""
        async with self.edit(date) as snapshot:
            released = 0
            for record in snapshot.results:
                if record.processingStatus == ProcessingStatus.PROCESSING:
                    state_machine.release(record)
                    released += 1
            complete_run(snapshot, snapshot.currentRunId)
        logger.info(f"Stopped processing for {date} ({released} records released)")
        return snapshot

    # =========================================================================
    # Views
    # =========================================================================

    async def results(self, date: str) -> DateResults:
        snapshot = await self.load(date)
        if snapshot is None:
            return DateResults(date=date)
        summary = snapshot.summary
        return DateResults(
            date=date,
            fileName=snapshot.fileName,
            totalProcessed=snapshot.processedCount,
            totalConversations=snapshot.totalConversations,
            isProcessing=snapshot.isProcessing,
            prospects=CategoryCounts(oec=summary.oec, owwa=summary.owwa, travelVisa=summary.travelVisa),
            conversions=CategoryCounts(
                oec=summary.oecConverted,
                owwa=summary.owwaConverted,
                travelVisa=summary.travelVisaConverted,
            ),
            countryCounts=summary.countryCounts,
            byContractType=summary.byContractType,
            latestRun=snapshot.latest_run(),
        )

    async def list_with_summary(self) -> List[DateListItem]:
        items = []
        for date in await self.list_dates():
            snapshot = await self.load(date)
            if snapshot is None:
                continue
            items.append(
                DateListItem(
                    date=date,
                    fileName=snapshot.fileName,
                    totalConversations=snapshot.totalConversations,
                    processedCount=snapshot.processedCount,
                    isProcessing=snapshot.isProcessing,
                    summary=snapshot.summary,
                    latestRun=snapshot.latest_run(),
                )
            )
        return items
