"""
Identity Resolver

Derives the grouping key of a raw record. Two records with the same key are
candidates for merging; the temporal grouper decides whether they actually
land in the same period.

Two policies cover every data source:

PrecedenceIdentity
    The first populated identifier tier wins. Conversations use
    ``client:<clientId>`` > ``maid:<maidId>`` > ``<conversationId>``, and a
    record with none of those gets ``anon:<digest>``, a digest of the record's
    canonical JSON. The fallback is therefore pure: the same record always
    yields the same key, whatever order records are processed in.

    Records for the same person whose identifiers populate DIFFERENT tiers
    (one row carries only the clientId, another only the maidId) resolve to
    different keys and are not merged. That is accepted behaviour: the
    resolver never guesses links between tiers.

CompositeIdentity
    All parts are always present in the key, with a placeholder for empty
    ones: ``oec_C1_no-client_H9``. Used for sales, where contract, client and
    housemaid together define "the same sale".
"""

import hashlib
import json
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def synthesize_key(record: Mapping[str, Any], prefix: str = "anon") -> str:
    """Deterministic key for a record that carries no identifier at all."""
    canonical = json.dumps(record, sort_keys=True, default=str, separators=(",", ":"))
    digest = hashlib.sha1(canonical.encode("utf-8")).hexdigest()[:16]
    return f"{prefix}:{digest}"


@dataclass(frozen=True)
class PrecedenceIdentity:
    """
    Ordered identifier tiers.

    Attributes:
        tiers: ``(field, prefix)`` pairs, highest precedence first. An empty
            prefix uses the raw value as the key.
        synthesized_prefix: Prefix of the digest key used when no tier is
            populated.
    """
    tiers: Tuple[Tuple[str, str], ...]
    synthesized_prefix: str = "anon"

    def resolve(self, record: Mapping[str, Any]) -> str:
        for field_name, prefix in self.tiers:
            value = _text(record.get(field_name))
            if value:
                return f"{prefix}:{value}" if prefix else value
        return synthesize_key(record, self.synthesized_prefix)


@dataclass(frozen=True)
class CompositeIdentity:
    """
    Fixed-position composite key.

    Attributes:
        parts: ``(field, placeholder)`` pairs joined in order.
        separator: Joiner between parts.
    """
    parts: Tuple[Tuple[str, str], ...]
    separator: str = "_"

    def resolve(self, record: Mapping[str, Any], qualifier: Optional[str] = None) -> str:
        values = [_text(record.get(field_name)) or placeholder for field_name, placeholder in self.parts]
        if qualifier is not None:
            values.insert(0, qualifier or "unknown")
        return self.separator.join(values)


# =============================================================================
# Policies used by the data sources
# =============================================================================

CONVERSATION_IDENTITY = PrecedenceIdentity(
    tiers=(
        ("clientId", "client"),
        ("maidId", "maid"),
        ("conversationId", ""),
    ),
)

SALE_IDENTITY = CompositeIdentity(
    parts=(
        ("contractId", "no-contract"),
        ("clientId", "no-client"),
        ("housemaidId", "no-housemaid"),
    ),
)

# One payment per contract, payment type and payment day
PAYMENT_IDENTITY = CompositeIdentity(
    parts=(
        ("contractId", "no-contract"),
        ("paymentType", "no-type"),
        ("dateOfPayment", "no-date"),
    ),
    separator="|",
)


def resolve_identity(record: Mapping[str, Any], policy: Any = CONVERSATION_IDENTITY) -> str:
    """Resolve ``record`` with ``policy`` (conversation precedence by default)."""
    return policy.resolve(record)
