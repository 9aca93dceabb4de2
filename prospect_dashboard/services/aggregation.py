"""
Aggregator

Computes dashboard counts over merged entities, counting each HOUSEHOLD once.

Entities are grouped by a household key (contract id, or
``standalone_<entity id>`` when the entity has no contract). For every
category:

- ``total``: households where at least one member satisfies the prospect
  predicate
- ``converted``: of those, households where at least one member also
  satisfies the conversion predicate
- ``by_dimension``: the same households split by the household's dimension
  value (e.g. contract type CC / MV, first non-empty among members).
  Households without a recognised value are counted in ``total`` only.
- ``value_counts``: for set-valued categories (countries), the union of the
  values of the household's qualifying members, each value counted once per
  household

A household can satisfy several categories or none, so category totals need
not add up to the household count, and no total can exceed it.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from prospect_dashboard.services.reconcile import merge_set_values

logger = logging.getLogger(__name__)

Entity = Mapping[str, Any]
Predicate = Callable[[Entity], bool]


# =============================================================================
# Configuration
# =============================================================================

@dataclass(frozen=True)
class Category:
    """
    A named prospect category.

    Attributes:
        name: Output name (``oec``, ``owwa``, ``travelVisa``).
        predicate: Entity qualifies as a prospect.
        converted: Entity also converted; None when the category has no
            conversion notion.
        values_field: List field whose values are unioned per household
            (only from members satisfying ``predicate``).
    """
    name: str
    predicate: Predicate
    converted: Optional[Predicate] = None
    values_field: Optional[str] = None


def flag(field_name: str) -> Predicate:
    """Predicate reading a boolean field."""
    return lambda entity: bool(entity.get(field_name))


def household_key(entity: Entity, contract_field: str = "contractId", id_field: str = "id") -> str:
    """Contract id, or a per-entity standalone key when it is empty."""
    contract = str(entity.get(contract_field) or "").strip()
    if contract:
        return contract
    return f"standalone_{entity.get(id_field)}"


def first_non_empty(members: Sequence[Entity], field_name: str) -> str:
    for member in members:
        value = str(member.get(field_name) or "").strip()
        if value:
            return value
    return ""


def group_households(
    entities: Sequence[Entity],
    household_fn: Callable[[Entity], str] = household_key,
) -> "OrderedDict[str, List[Entity]]":
    households: "OrderedDict[str, List[Entity]]" = OrderedDict()
    for entity in entities:
        households.setdefault(household_fn(entity), []).append(entity)
    return households


# =============================================================================
# Result
# =============================================================================

@dataclass
class CategoryTotals:
    total: int = 0
    converted: int = 0
    by_dimension: Dict[str, int] = field(default_factory=dict)
    value_counts: Dict[str, int] = field(default_factory=dict)


@dataclass
class AggregateSummary:
    households: int = 0
    categories: Dict[str, CategoryTotals] = field(default_factory=dict)

    def __getitem__(self, name: str) -> CategoryTotals:
        return self.categories[name]


# =============================================================================
# Aggregation
# =============================================================================

def aggregate(
    entities: Sequence[Entity],
    categories: Sequence[Category],
    household_fn: Callable[[Entity], str] = household_key,
    dimension_fn: Optional[Callable[[Sequence[Entity]], str]] = None,
    dimension_values: Sequence[str] = (),
) -> AggregateSummary:
    """
    Count categories per household.

    Args:
        entities: Merged entities.
        categories: Categories to count.
        household_fn: Household key of one entity.
        dimension_fn: Dimension value of a household (its member list).
        dimension_values: Recognised dimension values; each gets a zero
            entry in ``by_dimension`` even when unused.

    Returns:
        AggregateSummary with one CategoryTotals per category.
    """
    households = group_households(entities, household_fn)
    summary = AggregateSummary(households=len(households))
    for category in categories:
        summary.categories[category.name] = CategoryTotals(
            by_dimension={value: 0 for value in dimension_values}
        )

    for members in households.values():
        dimension = dimension_fn(members) if dimension_fn else ""
        for category in categories:
            qualifying = [member for member in members if category.predicate(member)]
            if not qualifying:
                continue

            totals = summary.categories[category.name]
            totals.total += 1
            if category.converted and any(category.converted(member) for member in members):
                totals.converted += 1
            if dimension in totals.by_dimension:
                totals.by_dimension[dimension] += 1

            if category.values_field:
                values: List[Any] = []
                for member in qualifying:
                    values.extend(member.get(category.values_field) or [])
                for value in merge_set_values(values):
                    totals.value_counts[value] = totals.value_counts.get(value, 0) + 1

    return summary
