"""
CSV writers and output drivers.

One results directory is written per period (``results_period_<idx>``) with
capacities, system costs, detailed cost breakdowns, flows, non-served demand,
storage levels and, when enabled, duals. The three drivers at the bottom
(Monolithic, Myopic, Benders) share the same writers.
"""

import logging
from pathlib import Path
from typing import Optional

import pandas as pd

from . import config
from .benders import (
    BendersResults,
    collect_data_from_subproblems,
    collect_distributed_constraint_duals,
    collect_distributed_policy_slack_vars,
    get_period_to_subproblem_mapping,
    populate_constraint_duals_from_subproblems,
    populate_slack_vars_from_subproblems,
    prepare_costs_benders,
    write_benders_convergence,
)
from .cost_breakdown import (
    DetailedCosts,
    add_total_row,
    aggregate_costs_by_type,
    aggregate_costs_by_zone,
    aggregate_operational_costs,
    get_detailed_costs,
    get_detailed_costs_benders,
    reshape_costs_wide,
)
from .cost_expressions import (
    compute_undiscounted_costs,
    compute_variable_cost_discount_scaling,
    create_discounted_cost_expressions,
    get_optimal_discounted_costs,
    get_optimal_undiscounted_costs,
)
from .network import Case, Period, constraint_dual_value, get_nodes, series_value
from .result_tables import (
    FLOW_COLUMNS,
    NSD_COLUMNS,
    STORAGE_COLUMNS,
    get_optimal_capacity,
    get_optimal_flows,
    get_optimal_non_served_demands,
    get_optimal_storage_levels,
    reshape_timeseries_wide,
    reshape_wide,
)
from .settings import CaseSettings, write_settings
from .validation import validate_total_cost

logger = logging.getLogger(__name__)


def write_dataframe(path, df: pd.DataFrame) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)
    logger.info(f"Results written to {path}")
    return path


def mkpath_for_period(case_path, period_idx: int) -> Path:
    """Create (if needed) and return the results directory of a period."""
    results_dir = Path(case_path) / f"{config.RESULTS_DIR_PREFIX}{period_idx}"
    results_dir.mkdir(parents=True, exist_ok=True)
    return results_dir


def _is_wide(settings: CaseSettings) -> bool:
    return settings.OutputLayout == "wide"


# -----------------------------
# Result tables
# -----------------------------

def write_capacity(path, period: Period, settings: CaseSettings, scaling: float = 1.0) -> pd.DataFrame:
    capacity = get_optimal_capacity(period, scaling)
    if _is_wide(settings):
        capacity = reshape_wide(capacity)
    write_dataframe(path, capacity)
    return capacity


def write_flows(path, flows: pd.DataFrame, settings: CaseSettings) -> None:
    if _is_wide(settings):
        flows = reshape_timeseries_wide(flows, ["component_id"])
    write_dataframe(path, flows)


def write_non_served_demand(path, nsd: pd.DataFrame, settings: CaseSettings) -> None:
    if nsd.empty:
        logger.debug("No non-served demand variables; skipping non_served_demand.csv")
        return
    if _is_wide(settings):
        nsd = reshape_timeseries_wide(nsd, ["component_id", "segment"])
    write_dataframe(path, nsd)


def write_storage_level(path, storage_levels: pd.DataFrame, settings: CaseSettings) -> None:
    if storage_levels.empty:
        logger.debug("No storages; skipping storage_level.csv")
        return
    if _is_wide(settings):
        storage_levels = reshape_timeseries_wide(storage_levels, ["component_id"])
    write_dataframe(path, storage_levels)


def _system_costs_layout(costs: pd.DataFrame, settings: CaseSettings) -> pd.DataFrame:
    if not _is_wide(settings):
        return costs
    return pd.DataFrame([dict(zip(costs["variable"], costs["value"]))])


def write_costs(path, model_costs, settings: CaseSettings, scaling: float = 1.0) -> pd.DataFrame:
    costs = get_optimal_discounted_costs(model_costs, scaling)
    write_dataframe(path, _system_costs_layout(costs, settings))
    return costs


def write_undiscounted_costs(path, model_costs, settings: CaseSettings, scaling: float = 1.0) -> pd.DataFrame:
    costs = get_optimal_undiscounted_costs(model_costs, scaling)
    write_dataframe(path, _system_costs_layout(costs, settings))
    return costs


# -----------------------------
# Detailed cost breakdown
# -----------------------------

def _wide_with_total(aggregated: pd.DataFrame, group_col: str) -> pd.DataFrame:
    wide = reshape_costs_wide(aggregated, group_col)
    if wide.empty:
        return wide
    total_row = wide.drop(columns=[group_col]).sum().to_dict()
    total_row[group_col] = "Total"
    return pd.concat([wide, pd.DataFrame([total_row])[wide.columns]], ignore_index=True)


def write_cost_breakdown_files(results_dir, costs: pd.DataFrame, model_costs, settings: CaseSettings,
                               discounted: bool, scaling: float = 1.0) -> bool:
    """
    Write the by-type and by-zone breakdowns of one cost table.

    Returns:
        True if both breakdowns match the model objective
    """
    results_dir = Path(results_dir)
    prefix = "" if discounted else "undiscounted_"
    is_valid = True
    for group_col, aggregate in (("type", aggregate_costs_by_type), ("zone", aggregate_costs_by_zone)):
        aggregated = aggregate(costs)
        with_totals = add_total_row(aggregated, group_col)
        is_valid &= validate_total_cost(with_totals, model_costs, discounted, scaling)
        table = _wide_with_total(aggregated, group_col) if _is_wide(settings) else with_totals
        write_dataframe(results_dir / f"{prefix}costs_by_{group_col}.csv", table)
    return is_valid


def write_detailed_costs(results_dir, period: Period, model_costs, settings: CaseSettings,
                         scaling: float = 1.0, detailed: Optional[DetailedCosts] = None) -> DetailedCosts:
    if detailed is None:
        detailed = get_detailed_costs(period, settings, scaling)
    write_cost_breakdown_files(results_dir, detailed.discounted, model_costs, settings, True, scaling)
    write_cost_breakdown_files(results_dir, detailed.undiscounted, model_costs, settings, False, scaling)
    return detailed


def write_detailed_costs_benders(results_dir, period: Period, model_costs, operational_costs: pd.DataFrame,
                                 settings: CaseSettings, scaling: float = 1.0) -> DetailedCosts:
    detailed = get_detailed_costs_benders(period, operational_costs, settings, scaling)
    return write_detailed_costs(results_dir, period, model_costs, settings, scaling, detailed)


# -----------------------------
# Duals
# -----------------------------

def ensure_duals_available(period: Period) -> None:
    """Read balance duals from the solved model for nodes that do not hold them yet."""
    for node in get_nodes(period):
        constraint = node.balance_constraint
        if constraint is not None and constraint.constraint_dual is None:
            constraint.set_constraint_dual(node.time_interval)


def get_balance_duals(period: Period, scaling: float = 1.0) -> pd.DataFrame:
    """
    Demand balance duals, one column per node, divided by ``weight(t) * scaling``.

    Dividing by the subperiod weight turns the dual back into a marginal price
    per unit of demand; ``scaling`` undoes the period discounting.
    """
    columns = {}
    times = None
    for node in get_nodes(period):
        constraint = node.balance_constraint
        if constraint is None or not constraint.constraint_dual:
            continue
        duals = constraint.constraint_dual.get(config.DEMAND_BALANCE_ID)
        if duals is None:
            continue
        node_times = list(node.time_interval)
        columns[node.id] = [d / (node.weight_at(t) * scaling) for d, t in zip(duals, node_times)]
        if times is None:
            times = node_times
    if not columns:
        return pd.DataFrame()
    return pd.DataFrame({"time": times, **columns})


def write_balance_duals(results_dir, period: Period, scaling: float = 1.0) -> None:
    duals = get_balance_duals(period, scaling)
    if duals.empty:
        logger.debug("No balance duals to write")
        return
    write_dataframe(Path(results_dir) / config.BALANCE_DUALS_FILE, duals)


def get_co2_cap_duals(period: Period, scaling: float = 1.0) -> pd.DataFrame:
    ct = config.CO2_CAP_CONSTRAINT
    rows = []
    with_slack = False
    for node in get_nodes(period):
        if ct not in node.policy_budgeting_constraints:
            continue
        row = {
            "Node": node.id,
            "CO2_Shadow_Price": -constraint_dual_value(node.policy_budgeting_constraints[ct]) / scaling,
        }
        if ct in node.price_unmet_policy:
            with_slack = True
            slack = node.policy_slack_vars.get(f"{ct}_Slack")
            row["CO2_Slack"] = sum(
                node.subperiod_weight(w) * series_value(slack, w) for w in node.subperiod_indices
            )
        rows.append(row)
    if not rows:
        return pd.DataFrame()
    columns = ["Node", "CO2_Shadow_Price"] + (["CO2_Slack"] if with_slack else [])
    return pd.DataFrame(rows, columns=columns)


def write_co2_cap_duals(results_dir, period: Period, scaling: float = 1.0) -> None:
    duals = get_co2_cap_duals(period, scaling)
    if duals.empty:
        logger.debug("No CO2 cap constraints; skipping co2_cap_duals.csv")
        return
    write_dataframe(Path(results_dir) / config.CO2_CAP_DUALS_FILE, duals)


def write_duals(results_dir, period: Period, scaling: float = 1.0) -> None:
    write_balance_duals(results_dir, period, scaling)
    write_co2_cap_duals(results_dir, period, scaling)


def write_duals_benders(results_dir, period: Period, scaling: float = 1.0) -> None:
    """
    Balance duals come from the subproblems and are written unscaled. CO2-cap
    duals come from the discounted planning problem and are divided by ``scaling``.
    """
    write_balance_duals(results_dir, period, 1.0)
    write_co2_cap_duals(results_dir, period, scaling)


# -----------------------------
# Drivers
# -----------------------------

def write_period_outputs(results_dir, period: Period, model, settings: CaseSettings, scaling: float = 1.0) -> None:
    """Write every result file of one solved period (Monolithic and Myopic)."""
    results_dir = Path(results_dir)
    results_dir.mkdir(parents=True, exist_ok=True)
    idx = period.period_index
    logger.info(f"Writing results of period {idx} to {results_dir}")

    write_capacity(results_dir / config.CAPACITY_FILE, period, settings, scaling)

    create_discounted_cost_expressions(model, period, settings)
    compute_undiscounted_costs(model, period, settings)
    write_costs(results_dir / config.COSTS_FILE, model, settings, scaling)
    write_undiscounted_costs(results_dir / config.UNDISCOUNTED_COSTS_FILE, model, settings, scaling)
    write_detailed_costs(results_dir, period, model, settings, scaling)

    write_flows(results_dir / config.FLOWS_FILE, get_optimal_flows(period, scaling), settings)
    write_non_served_demand(results_dir / config.NSD_FILE, get_optimal_non_served_demands(period, scaling), settings)
    write_storage_level(results_dir / config.STORAGE_LEVEL_FILE, get_optimal_storage_levels(period, scaling), settings)

    if settings.DualExportsEnabled:
        ensure_duals_available(period)
        write_duals(results_dir, period, compute_variable_cost_discount_scaling(idx, settings))


def write_outputs(case_path, case: Case, model, scaling: float = 1.0) -> None:
    """Monolithic: one results directory per period from a single solved model."""
    for period in case.periods:
        results_dir = mkpath_for_period(case_path, period.period_index)
        write_period_outputs(results_dir, period, model, case.settings, scaling)
    write_settings(case.settings, Path(case_path) / config.SETTINGS_FILE)


def write_outputs_myopic(results_dir, period: Period, model, settings: CaseSettings, scaling: float = 1.0) -> None:
    write_period_outputs(results_dir, period, model, settings, scaling)
    if settings.MyopicSettings.get("WriteModelLP", False):
        lp_path = Path(results_dir) / f"model_period_{period.period_index}.lp"
        model.write(str(lp_path), io_options={"symbolic_solver_labels": True})
        logger.info(f"Model written to {lp_path}")


def _concat(tables, columns) -> pd.DataFrame:
    tables = [t for t in tables if not t.empty]
    return pd.concat(tables, ignore_index=True) if tables else pd.DataFrame(columns=columns)


def write_outputs_benders(case_path, case: Case, bd_results: BendersResults, scaling: float = 1.0,
                          executor=None) -> None:
    """
    Benders: collect subproblem results, split them by period and write each period.

    Capacities and fixed costs come from the planning problem; operating
    results come from the subproblems mapped to each period.
    """
    settings = case.settings
    period_to_subproblems, _ = get_period_to_subproblem_mapping(case.periods)
    subproblems_data = collect_data_from_subproblems(settings, bd_results, scaling, executor)

    slack_vars = {}
    constraint_duals = {}
    if settings.DualExportsEnabled:
        slack_vars = collect_distributed_policy_slack_vars(bd_results, settings, executor)
        constraint_duals = collect_distributed_constraint_duals(bd_results, settings, executor)

    for period in case.periods:
        idx = period.period_index
        results_dir = mkpath_for_period(case_path, idx)
        logger.info(f"Writing Benders results of period {idx} to {results_dir}")
        indices = period_to_subproblems[idx]
        period_data = subproblems_data.select(indices)

        if settings.DualExportsEnabled:
            populate_slack_vars_from_subproblems(period, slack_vars.get(idx, {}))
            populate_constraint_duals_from_subproblems(period, constraint_duals.get(idx, {}))

        write_capacity(results_dir / config.CAPACITY_FILE, period, settings, scaling)

        model_costs = prepare_costs_benders(period, bd_results, indices, settings)
        write_costs(results_dir / config.COSTS_FILE, model_costs, settings, scaling)
        write_undiscounted_costs(results_dir / config.UNDISCOUNTED_COSTS_FILE, model_costs, settings, scaling)
        operational_costs = aggregate_operational_costs(period_data.operational_costs)
        write_detailed_costs_benders(results_dir, period, model_costs, operational_costs, settings, scaling)

        write_flows(results_dir / config.FLOWS_FILE, _concat(period_data.flows, FLOW_COLUMNS), settings)
        write_non_served_demand(results_dir / config.NSD_FILE, _concat(period_data.nsd, NSD_COLUMNS), settings)
        write_storage_level(
            results_dir / config.STORAGE_LEVEL_FILE, _concat(period_data.storage_levels, STORAGE_COLUMNS), settings
        )

        if settings.DualExportsEnabled:
            write_duals_benders(results_dir, period, compute_variable_cost_discount_scaling(idx, settings))

    write_benders_convergence(case_path, bd_results)
    write_settings(settings, Path(case_path) / config.SETTINGS_FILE)
