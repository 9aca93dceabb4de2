"""
P&L Configuration and Statement

Per-service unit costs and fees plus the monthly fixed costs, stored as one
document. Values coming from the store or the editor are validated field by
field: a missing, negative or non-numeric value falls back to its default
instead of failing the whole configuration.

Statement formulas, per service:

    price         = serviceFee + unitCost
    totalRevenue  = volume * price
    totalCost     = volume * unitCost
    grossProfit   = totalRevenue - totalCost   (= volume * serviceFee)

and overall ``netProfit = grossProfit - monthly fixed costs * months``.
"""

import logging
import math
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from prospect_dashboard.core.store import DocumentStore
from prospect_dashboard.models import (
    MonthlyFixedCosts,
    PnLConfig,
    PnLStatement,
    ServiceKey,
    ServicePnL,
)
from prospect_dashboard.services.complaints import SERVICE_NAMES

logger = logging.getLogger(__name__)

PNL_CONFIG_KEY = "pnl-config.json"

DEFAULT_SERVICE_COSTS: Dict[str, float] = {
    ServiceKey.OEC.value: 61.5,
    ServiceKey.OWWA.value: 92.0,
    ServiceKey.TTL.value: 400.0,
    ServiceKey.TTE.value: 400.0,
    ServiceKey.TTJ.value: 220.0,
    ServiceKey.SCHENGEN.value: 0.0,
    ServiceKey.GCC.value: 220.0,
    ServiceKey.ETHIOPIAN_PP.value: 1330.0,
    ServiceKey.FILIPINA_PP.value: 0.0,
}

DEFAULT_SERVICE_FEES: Dict[str, float] = {key.value: 0.0 for key in ServiceKey}


def default_config() -> PnLConfig:
    return PnLConfig(
        serviceCosts=dict(DEFAULT_SERVICE_COSTS),
        serviceFees=dict(DEFAULT_SERVICE_FEES),
        monthlyFixedCosts=MonthlyFixedCosts(),
    )


# =============================================================================
# Validation
# =============================================================================

def validate_number(value: Any, default: float, minimum: float = 0.0) -> float:
    """Non-negative number from a number or numeric string, else ``default``."""
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return default
    else:
        return default
    if math.isnan(number) or math.isinf(number) or number < minimum:
        return default
    return number


def _validate_services(raw: Any, defaults: Mapping[str, float]) -> Dict[str, float]:
    result = dict(defaults)
    if not isinstance(raw, Mapping):
        return result
    for key in defaults:
        if key in raw:
            result[key] = validate_number(raw[key], defaults[key])
    return result


def parse_config(raw: Any) -> PnLConfig:
    """Build a valid PnLConfig from untrusted input."""
    if not isinstance(raw, Mapping):
        return default_config()

    fixed_defaults = MonthlyFixedCosts()
    fixed_raw = raw.get("monthlyFixedCosts")
    fixed = {}
    for name, default in fixed_defaults.model_dump().items():
        value = fixed_raw.get(name) if isinstance(fixed_raw, Mapping) else None
        fixed[name] = validate_number(value, default)

    return PnLConfig(
        serviceCosts=_validate_services(raw.get("serviceCosts"), DEFAULT_SERVICE_COSTS),
        serviceFees=_validate_services(raw.get("serviceFees"), DEFAULT_SERVICE_FEES),
        monthlyFixedCosts=MonthlyFixedCosts(**fixed),
    )


# =============================================================================
# Storage
# =============================================================================

async def load_config(store: DocumentStore) -> PnLConfig:
    document = await store.get(PNL_CONFIG_KEY)
    if document is None:
        return default_config()
    return parse_config(document)


async def save_config(store: DocumentStore, raw: Any) -> PnLConfig:
    config = parse_config(raw)
    await store.put(PNL_CONFIG_KEY, config.model_dump(mode="json"))
    logger.info("Saved P&L configuration")
    return config


async def reset_config(store: DocumentStore) -> PnLConfig:
    await store.delete(PNL_CONFIG_KEY)
    logger.info("Reset P&L configuration to defaults")
    return default_config()


# =============================================================================
# Statement
# =============================================================================

def months_in_range(start_date: Optional[str], end_date: Optional[str]) -> int:
    """Calendar months touched by [start_date, end_date]; 1 without a full range."""
    if not start_date or not end_date:
        return 1
    start = datetime.strptime(start_date, "%Y-%m-%d")
    end = datetime.strptime(end_date, "%Y-%m-%d")
    if end < start:
        start, end = end, start
    return (end.year - start.year) * 12 + (end.month - start.month) + 1


def build_pnl(volumes: Mapping[str, int], config: PnLConfig, months: int = 1) -> PnLStatement:
    """
    P&L statement for service volumes.

    Args:
        volumes: Sales per service key; missing services count as 0.
        config: Costs and fees.
        months: Months of fixed costs to charge.
    """
    services = []
    for key in ServiceKey:
        volume = int(volumes.get(key.value, 0))
        unit_cost = config.serviceCosts.get(key.value, DEFAULT_SERVICE_COSTS[key.value])
        fee = config.serviceFees.get(key.value, 0.0)
        price = fee + unit_cost
        revenue = volume * price
        cost = volume * unit_cost
        services.append(
            ServicePnL(
                serviceKey=key,
                name=SERVICE_NAMES[key],
                volume=volume,
                unitCost=unit_cost,
                serviceFee=fee,
                price=price,
                totalRevenue=revenue,
                totalCost=cost,
                grossProfit=revenue - cost,
            )
        )

    total_revenue = sum(service.totalRevenue for service in services)
    total_cost = sum(service.totalCost for service in services)
    gross_profit = total_revenue - total_cost
    fixed_costs = config.monthlyFixedCosts.total() * months

    return PnLStatement(
        services=services,
        totalRevenue=total_revenue,
        totalCost=total_cost,
        grossProfit=gross_profit,
        fixedCosts=fixed_costs,
        netProfit=gross_profit - fixed_costs,
        months=months,
    )
