"""
Daily conversation ingestion and snapshot maintenance.

Ingestion turns a batch of raw conversations into merged entity records of a
daily snapshot:

1. Conversations without message text are skipped. A conversation without
   an id gets ``msg:<digest>`` of its content as its id.
2. Each conversation is keyed with CONVERSATION_IDENTITY
   (``client:<id>`` > ``maid:<id>`` > conversation id).
3. Conversations sharing a key are reconciled into one record: earliest
   start time, first non-empty names and ids, messages joined in start-time
   order, conversation ids unioned.
4. A record whose key already exists in the snapshot is merged into it:
   only conversations with ids not yet recorded contribute messages, empty
   fields are filled, the earliest start time is kept, and the existing
   status and classification are left untouched. Conversations already
   recorded are counted as skipped.

``deduplicate_snapshot`` repairs snapshots written before ingestion merged
by identity: records that share a conversation id or resolve to the same
key collapse into one.
"""

import logging
from collections import OrderedDict
from datetime import datetime
from typing import Any, Dict, List, Optional

from prospect_dashboard.models import (
    BatchStatus,
    CategoryFlags,
    DeduplicationReport,
    HouseholdGroup,
    IngestRequest,
    IngestResponse,
    ProcessedConversation,
    ProcessingStatus,
)
from prospect_dashboard.services.aggregation import group_households, household_key
from prospect_dashboard.services.dates import normalize_timestamp, parse_timestamp, to_iso, utcnow
from prospect_dashboard.services.grouping import Period, RawEvent, build_events
from prospect_dashboard.services.identity import CONVERSATION_IDENTITY, synthesize_key
from prospect_dashboard.services.reconcile import FieldPolicy, reconcile, reconcile_records
from prospect_dashboard.services.snapshots import SnapshotRepository

logger = logging.getLogger(__name__)

MESSAGE_SEPARATOR = "\n\n--- Next Conversation ---\n\n"

SCALAR_FIELDS = ("maidId", "clientId", "contractId", "maidName", "clientName", "contractType")

CONVERSATION_POLICY = FieldPolicy(
    key_field="id",
    start_field="chatStartDateTime",
    end_field=None,
    scalar_fields=SCALAR_FIELDS,
    text_fields=(("messages", MESSAGE_SEPARATOR),),
    id_list_fields=(("conversationId", ","),),
)

# Snapshot repair also carries the classification over
DEDUP_POLICY = FieldPolicy(
    key_field="id",
    start_field="chatStartDateTime",
    end_field=None,
    scalar_fields=SCALAR_FIELDS + ("processedAt", "lastError"),
    text_fields=(("messages", MESSAGE_SEPARATOR),),
    set_fields=("travelVisaCountries",),
    id_list_fields=(("conversationId", ","),),
    any_fields=(
        "isOECProspect",
        "oecConverted",
        "isOWWAProspect",
        "owwaConverted",
        "isTravelVisaProspect",
        "travelVisaConverted",
    ),
    max_fields=(
        "isOECProspectConfidence",
        "oecConvertedConfidence",
        "isOWWAProspectConfidence",
        "owwaConvertedConfidence",
        "isTravelVisaProspectConfidence",
        "travelVisaConvertedConfidence",
        "retryCount",
    ),
)

PROSPECT_FLAGS = {
    "oec": ("isOECProspect", "oecConverted"),
    "owwa": ("isOWWAProspect", "owwaConverted"),
    "travelVisa": ("isTravelVisaProspect", "travelVisaConverted"),
}


# =============================================================================
# Ingestion
# =============================================================================

def _conversation_id(record: Dict[str, Any], index: int) -> str:
    return str(record.get("conversationId") or f"#{index:06d}")


def build_conversation_events(
    conversations: List[Dict[str, Any]],
    now: Optional[datetime] = None,
) -> List[RawEvent]:
    """
    Key and timestamp raw conversations. A conversation id repeated within
    the batch is kept once.

    A conversation exported without an id gets ``msg:<digest>`` of its
    content, so it can be merged into an existing record and a re-sent copy
    is recognized.
    """
    now = now or utcnow()
    seen = set()
    unique = []
    for record in conversations:
        if not record.get("conversationId"):
            record = dict(record, conversationId=synthesize_key(record, "msg"))
        conversation_id = record["conversationId"]
        if conversation_id in seen:
            continue
        seen.add(conversation_id)
        unique.append(record)

    return build_events(
        unique,
        key_fn=CONVERSATION_IDENTITY.resolve,
        timestamp_fn=lambda record: normalize_timestamp(record.get("chatStartDateTime"), now),
        id_fn=_conversation_id,
    )


def merge_into_records(events: List[RawEvent]) -> "OrderedDict[str, ProcessedConversation]":
    """
    One new record per identity key.

    A daily snapshot covers a single date, so every event of a key belongs to
    the same record; no month window applies here.
    """
    by_key: "OrderedDict[str, List[RawEvent]]" = OrderedDict()
    for event in events:
        by_key.setdefault(event.key, []).append(event)

    records: "OrderedDict[str, ProcessedConversation]" = OrderedDict()
    for key, key_events in by_key.items():
        period = Period(
            key=key,
            start=min(event.timestamp for event in key_events),
            end=max(event.timestamp for event in key_events),
            events=key_events,
        )
        records[key] = ProcessedConversation(**reconcile(period, CONVERSATION_POLICY))
    return records


def merge_existing(existing: ProcessedConversation, events: List[RawEvent]) -> int:
    """
    Merge incoming events of ``existing.id`` into the stored record.

    Returns:
        Number of conversations whose messages were appended.
    """
    known = set(existing.conversation_ids())
    fresh = sorted(
        (event for event in events if event.record["conversationId"] not in known),
        key=lambda e: e.sort_key,
    )

    if fresh:
        texts = [event.record["messages"] for event in fresh]
        if existing.messages:
            texts.insert(0, existing.messages)
        existing.messages = MESSAGE_SEPARATOR.join(texts)
        known.update(event.record["conversationId"] for event in fresh)
        existing.conversationId = ",".join(sorted(known))

    for name in SCALAR_FIELDS:
        if getattr(existing, name):
            continue
        for event in sorted(events, key=lambda e: e.sort_key):
            value = event.record.get(name)
            if value:
                setattr(existing, name, value)
                break

    earliest = min(event.timestamp for event in events)
    current = parse_timestamp(existing.chatStartDateTime)
    if current is None or earliest < current:
        existing.chatStartDateTime = to_iso(earliest)

    return len(fresh)


async def ingest_daily(repository: SnapshotRepository, request: IngestRequest) -> IngestResponse:
    """
    Ingest one batch of conversations into the snapshot of ``request.date``.

    Returns:
        IngestResponse; a compact response with a message for non-final
        batches.
    """
    raw = [conversation.model_dump() for conversation in request.conversations]
    with_text = [record for record in raw if (record.get("messages") or "").strip()]
    without_text = len(raw) - len(with_text)

    batch = request.batchInfo
    if batch:
        logger.info(
            f"Batch {batch.batchIndex + 1}/{batch.totalBatches}: "
            f"{len(raw)} conversations for {request.date}"
        )
    else:
        logger.info(f"Ingesting {len(raw)} conversations for {request.date}")

    events = build_conversation_events(with_text)
    events_by_key: Dict[str, List[RawEvent]] = {}
    for event in events:
        events_by_key.setdefault(event.key, []).append(event)

    # repeated ids within the batch were collapsed by build_conversation_events
    already_ingested = len(with_text) - len(events)
    imported = 0
    merged = 0
    async with repository.edit(request.date, create=True) as snapshot:
        if request.fileName:
            snapshot.fileName = request.fileName
        for key, record in merge_into_records(events).items():
            existing = snapshot.find(key)
            if existing is None:
                snapshot.results.append(record)
                imported += 1
                continue
            appended = merge_existing(existing, events_by_key[key])
            already_ingested += len(events_by_key[key]) - appended
            if appended:
                merged += 1

    if without_text:
        logger.warning(f"Skipped {without_text} conversations without messages for {request.date}")
    if already_ingested:
        logger.info(f"Skipped {already_ingested} conversations already ingested for {request.date}")
    skipped = without_text + already_ingested

    batch_status = None
    if batch:
        batch_status = BatchStatus(
            batchIndex=batch.batchIndex,
            totalBatches=batch.totalBatches,
            isComplete=batch.isLast,
        )

    if batch and not batch.isLast:
        return IngestResponse(
            date=request.date,
            imported=imported,
            merged=merged,
            skipped=skipped,
            batch=batch_status,
            message=f"Batch {batch.batchIndex + 1}/{batch.totalBatches} received",
        )

    logger.info(
        f"Ingest complete for {request.date}: {imported} new, {merged} merged, "
        f"total {snapshot.totalConversations}"
    )
    return IngestResponse(
        date=request.date,
        imported=imported,
        merged=merged,
        skipped=skipped,
        totalConversations=snapshot.totalConversations,
        pendingAnalysis=snapshot.totalConversations - snapshot.processedCount,
        batch=batch_status,
    )


# =============================================================================
# Snapshot repair
# =============================================================================

def _find(parents: List[int], index: int) -> int:
    while parents[index] != index:
        parents[index] = parents[parents[index]]
        index = parents[index]
    return index


def duplicate_groups(records: List[ProcessedConversation]) -> List[List[ProcessedConversation]]:
    """
    Connected groups of records sharing a conversation id or an identity key.
    Groups keep the order of their first member.
    """
    parents = list(range(len(records)))
    owners: Dict[str, int] = {}

    for index, record in enumerate(records):
        links = [f"conversation:{cid}" for cid in record.conversation_ids()]
        links.append(f"key:{CONVERSATION_IDENTITY.resolve(record.model_dump())}")
        for link in links:
            if link in owners:
                parents[_find(parents, index)] = _find(parents, owners[link])
            else:
                owners[link] = index

    groups: "OrderedDict[int, List[ProcessedConversation]]" = OrderedDict()
    for index, record in enumerate(records):
        groups.setdefault(_find(parents, index), []).append(record)
    return list(groups.values())


def merge_duplicates(group: List[ProcessedConversation]) -> ProcessedConversation:
    """Collapse one duplicate group; a ``success`` status wins."""
    if len(group) == 1:
        return group[0]

    now = utcnow()
    ordered = sorted(
        group,
        key=lambda record: (normalize_timestamp(record.chatStartDateTime, now), record.id),
    )
    documents = [record.model_dump() for record in ordered]
    start = min(normalize_timestamp(record.chatStartDateTime, now) for record in ordered)
    merged = reconcile_records(ordered[0].id, documents, DEDUP_POLICY, start=to_iso(start))
    merged["retryCount"] = int(merged["retryCount"])

    statuses = [record.processingStatus for record in ordered]
    if ProcessingStatus.SUCCESS in statuses:
        merged["processingStatus"] = ProcessingStatus.SUCCESS
        merged["lastError"] = None
    else:
        merged["processingStatus"] = statuses[0]
    if not merged["processedAt"]:
        merged["processedAt"] = None
    if not merged["lastError"]:
        merged["lastError"] = None
    return ProcessedConversation(**merged)


async def deduplicate_snapshot(repository: SnapshotRepository, date: str) -> DeduplicationReport:
    async with repository.edit(date) as snapshot:
        before = len(snapshot.results)
        groups = duplicate_groups(snapshot.results)
        snapshot.results = [merge_duplicates(group) for group in groups]
        merged_groups = sum(1 for group in groups if len(group) > 1)

    logger.info(f"Deduplicated {date}: {before} -> {len(snapshot.results)} records")
    return DeduplicationReport(
        date=date,
        before=before,
        after=len(snapshot.results),
        mergedGroups=merged_groups,
    )


# =============================================================================
# Views
# =============================================================================

def is_prospect(record: ProcessedConversation) -> bool:
    return any(getattr(record, prospect) for prospect, _ in PROSPECT_FLAGS.values())


def prospect_records(records: List[ProcessedConversation]) -> List[ProcessedConversation]:
    return [record for record in records if is_prospect(record)]


def household_groups(records: List[ProcessedConversation]) -> List[HouseholdGroup]:
    """
    Prospect records grouped by household, contract-backed households first,
    then ordered by household id.
    """
    prospects = prospect_records(records)
    by_id = {record.id: record for record in prospects}
    households = group_households([record.model_dump() for record in prospects], household_key)

    groups = []
    for household_id, documents in households.items():
        members = [by_id[document["id"]] for document in documents]
        maid_names: List[str] = []
        for member in members:
            if member.maidName and member.maidName not in maid_names:
                maid_names.append(member.maidName)

        groups.append(
            HouseholdGroup(
                householdId=household_id,
                contractId=members[0].contractId,
                members=members,
                hasClient=any(member.clientId for member in members),
                hasMaid=any(member.maidId for member in members),
                clientName=next((member.clientName for member in members if member.clientName), ""),
                maidNames=maid_names,
                isProspect=True,
                prospectTypes=CategoryFlags(**{
                    name: any(getattr(member, prospect) for member in members)
                    for name, (prospect, _) in PROSPECT_FLAGS.items()
                }),
                conversions=CategoryFlags(**{
                    name: any(getattr(member, converted) for member in members)
                    for name, (_, converted) in PROSPECT_FLAGS.items()
                }),
            )
        )

    groups.sort(key=lambda group: (0 if group.contractId else 1, group.householdId))
    return groups
