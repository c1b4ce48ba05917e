"""
Detailed cost breakdown and aggregation.

Collects one line item per (component, category) with a non-zero cost,
discounts the line items of a period in one vectorized step and aggregates
them by asset type or by zone. Tables are pandas DataFrames with columns
``zone, type, category, value``.
"""

import logging
from collections import namedtuple
from typing import List, Sequence

import numpy as np
import pandas as pd

from .component_costs import (
    COST_CATEGORIES,
    FIXED_COST_CATEGORIES,
    VARIABLE_OPERATING_COST_CATEGORIES,
    cost_line_items,
    fixed_line_items,
)
from .discounting import undo_discount_fixed_costs
from .economics import period_start_year, present_value_annuity_factor, present_value_factor
from .network import Period, get_edges, get_nodes, get_storages, get_type, get_zone_name
from .settings import CaseSettings

logger = logging.getLogger(__name__)

COST_COLUMNS = ["zone", "type", "category", "value"]

DetailedCosts = namedtuple("DetailedCosts", ["discounted", "undiscounted"])


def empty_cost_table(columns: Sequence[str] = COST_COLUMNS) -> pd.DataFrame:
    table = pd.DataFrame({col: pd.Series(dtype="object") for col in columns})
    table["value"] = table["value"].astype("float64")
    return table


def period_discount_factors(period_idx: int, settings: CaseSettings):
    """(discount_factor, opex_multiplier, period_length) of a 1-based period."""
    lengths = settings.PeriodLengths
    rate = settings.DiscountRate
    discount_factor = present_value_factor(rate, period_start_year(lengths, period_idx))
    opexmult = present_value_annuity_factor(rate, lengths[period_idx - 1])
    return discount_factor, opexmult, lengths[period_idx - 1]


def _collect_line_items(period: Period, fixed_only: bool = False):
    """Rows ``(zone, type, category, pv, cf)`` for every non-zero cost of the period."""
    rows = []
    edges, edge_asset_map = get_edges(period, return_ids_map=True)
    storages, storage_asset_map = get_storages(period, return_ids_map=True)

    for component, asset_map in [(e, edge_asset_map) for e in edges] + [(g, storage_asset_map) for g in storages]:
        items = fixed_line_items(component) if fixed_only else cost_line_items(component)
        items = [item for item in items if not (item[1] == 0 and item[2] == 0)]
        if not items:
            continue
        zone = get_zone_name(component)
        asset_type = get_type(asset_map[component.id])
        for category, cost_pv, cost_cf in items:
            rows.append((zone, asset_type, category, cost_pv, cost_cf))

    if not fixed_only:
        for node in get_nodes(period):
            zone = get_zone_name(node)
            node_type = get_type(node)
            for category, cost_pv, cost_cf in cost_line_items(node):
                if cost_pv > 0:
                    rows.append((zone, node_type, category, cost_pv, cost_cf))
    return rows


def _tables_from_rows(rows, discounted_values, undiscounted_values) -> DetailedCosts:
    if not rows:
        return DetailedCosts(empty_cost_table(), empty_cost_table())
    keys = pd.DataFrame([r[:3] for r in rows], columns=COST_COLUMNS[:3])
    discounted = keys.assign(value=discounted_values)
    undiscounted = keys.copy().assign(value=undiscounted_values)
    return DetailedCosts(discounted, undiscounted)


def get_detailed_costs(period: Period, settings: CaseSettings, scaling: float = 1.0) -> DetailedCosts:
    """
    Discounted and undiscounted line-item costs of one period.

    Investment/FixedOM line items already hold period-start present values
    (or cash flows), so the discounted table applies only the period discount
    factor to them. Operating line items are annual sums: they get
    ``discount_factor * opex_multiplier`` (discounted) or ``period_length``
    (undiscounted). Every value is multiplied by ``scaling**2``.

    Returns:
        DetailedCosts(discounted, undiscounted), both with columns
        zone, type, category, value
    """
    # Cash-flow views must be current before reading them
    undo_discount_fixed_costs(period, settings)

    rows = _collect_line_items(period)
    categories = np.array([r[2] for r in rows], dtype=object)
    values_discounted = np.array([r[3] for r in rows], dtype=float)
    values_undiscounted = np.array([r[4] for r in rows], dtype=float)

    discount_factor, opexmult, period_length = period_discount_factors(period.period_index, settings)
    is_fixed = np.isin(categories, list(FIXED_COST_CATEGORIES))
    is_variable = np.isin(categories, list(VARIABLE_OPERATING_COST_CATEGORIES))

    values_discounted[is_fixed] *= discount_factor
    values_discounted[is_variable] *= discount_factor * opexmult
    values_undiscounted[is_variable] *= period_length

    if scaling != 1.0:
        values_discounted *= scaling ** 2
        values_undiscounted *= scaling ** 2

    logger.debug(f"Collected {len(rows)} cost line items for period {period.period_index}")
    return _tables_from_rows(rows, values_discounted, values_undiscounted)


def get_fixed_costs_benders(period: Period, settings: CaseSettings, scaling: float = 1.0) -> DetailedCosts:
    """Investment and fixed O&M line items of a planning-problem period."""
    undo_discount_fixed_costs(period, settings)

    rows = _collect_line_items(period, fixed_only=True)
    values_discounted = np.array([r[3] for r in rows], dtype=float)
    values_undiscounted = np.array([r[4] for r in rows], dtype=float)

    discount_factor, _, _ = period_discount_factors(period.period_index, settings)
    values_discounted *= discount_factor

    if scaling != 1.0:
        values_discounted *= scaling ** 2
        values_undiscounted *= scaling ** 2
    return _tables_from_rows(rows, values_discounted, values_undiscounted)


def get_detailed_costs_benders(
    period: Period,
    operational_costs: pd.DataFrame,
    settings: CaseSettings,
    scaling: float = 1.0,
) -> DetailedCosts:
    """
    Fixed costs of the planning problem combined with operating costs from subproblems.

    ``operational_costs`` holds annual (undiscounted) operating line items,
    already scaled and aggregated over the period's subproblems.
    """
    fixed_costs = get_fixed_costs_benders(period, settings, scaling)
    if operational_costs is None or operational_costs.empty:
        return fixed_costs

    discount_factor, opexmult, period_length = period_discount_factors(period.period_index, settings)
    op_discounted = operational_costs[COST_COLUMNS].copy()
    op_undiscounted = operational_costs[COST_COLUMNS].copy()
    op_discounted["value"] = op_discounted["value"] * (discount_factor * opexmult)
    op_undiscounted["value"] = op_undiscounted["value"] * period_length

    return DetailedCosts(
        _concat([fixed_costs.discounted, op_discounted]),
        _concat([fixed_costs.undiscounted, op_undiscounted]),
    )


def _concat(tables: List[pd.DataFrame]) -> pd.DataFrame:
    tables = [t for t in tables if not t.empty]
    if not tables:
        return empty_cost_table()
    return pd.concat(tables, ignore_index=True)


# -----------------------------
# Aggregation
# -----------------------------

def _aggregate(costs: pd.DataFrame, keys: List[str]) -> pd.DataFrame:
    if costs is None or costs.empty:
        return empty_cost_table(keys + ["value"])
    return costs.groupby(keys, sort=False, as_index=False)["value"].sum()


def aggregate_costs_by_type(costs: pd.DataFrame) -> pd.DataFrame:
    """One row per (type, category)."""
    return _aggregate(costs, ["type", "category"])


def aggregate_costs_by_zone(costs: pd.DataFrame) -> pd.DataFrame:
    """One row per (zone, category)."""
    return _aggregate(costs, ["zone", "category"])


def aggregate_operational_costs(cost_tables: Sequence[pd.DataFrame]) -> pd.DataFrame:
    """Sum operating line items of several subproblems per (zone, type, category)."""
    non_empty = [t for t in cost_tables if t is not None and not t.empty]
    if not non_empty:
        return empty_cost_table()
    combined = pd.concat(non_empty, ignore_index=True)
    return _aggregate(combined, ["zone", "type", "category"])


def add_total_row(costs: pd.DataFrame, group_col: str) -> pd.DataFrame:
    """
    Append a 'Total' row per category and a grand-total row with category 'Total'.

    The grand total is the sum of the per-category totals.
    """
    if costs.empty:
        return costs
    total_by_category = costs.groupby("category", sort=False, as_index=False)["value"].sum()
    total_by_category[group_col] = "Total"
    grand_total = total_by_category["value"].sum()
    total_row = pd.DataFrame({group_col: ["Total"], "category": ["Total"], "value": [grand_total]})
    columns = list(costs.columns)
    return pd.concat(
        [costs, total_by_category[columns], total_row[columns]],
        ignore_index=True,
    )


def reshape_costs_wide(costs: pd.DataFrame, group_col: str) -> pd.DataFrame:
    """Pivot a long aggregated table to one column per category, plus a 'Total' column."""
    if costs.empty:
        return costs
    wide = costs.pivot_table(
        index=group_col, columns="category", values="value",
        aggfunc="sum", fill_value=0.0, sort=False,
    ).reset_index()
    wide.columns.name = None
    cost_cols = [c for c in wide.columns if c != group_col and c in COST_CATEGORIES]
    if cost_cols:
        wide["Total"] = wide[cost_cols].sum(axis=1)
    return wide
