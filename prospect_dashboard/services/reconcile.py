"""
Field Reconciler

Turns one Period into one merged entity (a plain dict) under a FieldPolicy:

- scalar fields: first non-empty value in timestamp order wins; later values
  never overwrite it
- time span: start = earliest timestamp, end = latest (equal for one event)
- text fields: every non-empty text, in timestamp order, joined with the
  field's separator; nothing is truncated or de-duplicated
- set fields: union of list values, sentinel values (``unspecified``) and
  blanks dropped, emitted sorted
- id-list fields: delimited strings (``"c1,c2"``) merged as sets and
  re-joined sorted
- any fields: boolean OR; max fields: numeric maximum

Events are re-sorted by (timestamp, event id) before reconciling, so the
output depends only on the set of events in the period: reconciling the same
period twice, or the same events in another order, yields identical output.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from prospect_dashboard.services.dates import to_iso
from prospect_dashboard.services.grouping import Period

UNSPECIFIED_SENTINEL = "unspecified"

MergedEntity = Dict[str, Any]


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


@dataclass(frozen=True)
class FieldPolicy:
    """
    How each field of a merged entity is derived.

    Attributes:
        key_field: Output field receiving the period's identity key.
        start_field / end_field: Output fields for the time span (None to omit).
        scalar_fields: First-non-empty-wins fields.
        text_fields: ``(field, separator)`` pairs concatenated in order.
        set_fields: List-valued fields merged as sets.
        id_list_fields: ``(field, delimiter)`` pairs of delimited id strings.
        any_fields: Boolean fields merged with OR.
        max_fields: Numeric fields merged with max.
        sentinels: Lower-cased values dropped from set fields.
        event_ids_field: Output field listing contributing event ids (None to omit).
    """
    key_field: str = "id"
    start_field: Optional[str] = "startTime"
    end_field: Optional[str] = "endTime"
    scalar_fields: Tuple[str, ...] = ()
    text_fields: Tuple[Tuple[str, str], ...] = ()
    set_fields: Tuple[str, ...] = ()
    id_list_fields: Tuple[Tuple[str, str], ...] = ()
    any_fields: Tuple[str, ...] = ()
    max_fields: Tuple[str, ...] = ()
    sentinels: Tuple[str, ...] = (UNSPECIFIED_SENTINEL,)
    event_ids_field: Optional[str] = None


def merge_set_values(values: Iterable[Any], sentinels: Tuple[str, ...] = (UNSPECIFIED_SENTINEL,)) -> List[str]:
    """Union of string values without blanks or sentinels, sorted."""
    merged = set()
    for value in values:
        if _is_empty(value):
            continue
        text = str(value).strip()
        if text.lower() in sentinels:
            continue
        merged.add(text)
    return sorted(merged)


def _split_ids(value: Any, delimiter: str) -> List[str]:
    if _is_empty(value):
        return []
    if isinstance(value, (list, tuple, set)):
        parts = value
    else:
        parts = str(value).split(delimiter)
    return [str(part).strip() for part in parts if str(part).strip()]


def reconcile_records(
    key: str,
    records: List[Mapping[str, Any]],
    policy: FieldPolicy,
    start: Optional[str] = None,
    end: Optional[str] = None,
    event_ids: Optional[List[str]] = None,
) -> MergedEntity:
    """
    Reconcile already-ordered records. Lower-level form of ``reconcile``.
    """
    merged: MergedEntity = {policy.key_field: key}
    if policy.start_field and start is not None:
        merged[policy.start_field] = start
    if policy.end_field and end is not None:
        merged[policy.end_field] = end

    for name in policy.scalar_fields:
        merged[name] = ""
        for record in records:
            value = record.get(name)
            if not _is_empty(value):
                merged[name] = value
                break

    for name, separator in policy.text_fields:
        texts = [str(record.get(name)) for record in records if not _is_empty(record.get(name))]
        merged[name] = separator.join(texts)

    for name in policy.set_fields:
        values: List[Any] = []
        for record in records:
            values.extend(record.get(name) or [])
        merged[name] = merge_set_values(values, policy.sentinels)

    for name, delimiter in policy.id_list_fields:
        ids = set()
        for record in records:
            ids.update(_split_ids(record.get(name), delimiter))
        merged[name] = delimiter.join(sorted(ids))

    for name in policy.any_fields:
        merged[name] = any(bool(record.get(name)) for record in records)

    for name in policy.max_fields:
        numbers = [float(record.get(name)) for record in records if isinstance(record.get(name), (int, float))]
        merged[name] = max(numbers) if numbers else 0.0

    if policy.event_ids_field and event_ids is not None:
        merged[policy.event_ids_field] = list(event_ids)

    return merged


def reconcile(period: Period, policy: FieldPolicy) -> MergedEntity:
    """
    Reconcile a Period into one merged entity.

    Args:
        period: Output of the temporal grouper.
        policy: Field derivation rules for the data source.

    Returns:
        A new dict; ``period`` is not modified.
    """
    events = sorted(period.events, key=lambda e: e.sort_key)
    start = min(event.timestamp for event in events)
    end = max(event.timestamp for event in events)
    return reconcile_records(
        key=period.key,
        records=[event.record for event in events],
        policy=policy,
        start=to_iso(start),
        end=to_iso(end),
        event_ids=[event.event_id for event in events],
    )
