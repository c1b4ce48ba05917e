"""
Benders subproblem result collector.

Operational subproblems are solved independently, possibly on worker
processes. This module gathers their flows, storage levels, non-served demand,
operating costs, policy slack variables and balance duals, merges them by
planning period and writes slack/dual values back onto the planning problem's
nodes so reporting is the same for every algorithm.

Worker batches are plain return values; the coordinator merges them with pure
functions that treat any conflicting value as a data error.
"""

import logging
import os
from collections import namedtuple
from concurrent.futures import Executor, ProcessPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import pyomo.environ as pyo

from . import config
from .component_costs import operational_line_items
from .cost_breakdown import COST_COLUMNS, empty_cost_table, period_discount_factors
from .cost_expressions import compute_undiscounted_costs, create_discounted_cost_expressions
from .exceptions import SubproblemIndexError, SubproblemMergeError
from .network import (
    Period,
    find_node,
    get_edges,
    get_nodes,
    get_storages,
    get_type,
    get_zone_name,
    value_of,
)
from .result_tables import (
    FLOW_COLUMNS,
    NSD_COLUMNS,
    STORAGE_COLUMNS,
    get_optimal_flow,
    get_optimal_non_served_demand,
    get_optimal_storage_level,
)
from .settings import CaseSettings
from .validation import model_cost

logger = logging.getLogger(__name__)

SubproblemResult = namedtuple("SubproblemResult", ["flows", "storage_levels", "nsd", "operational_costs"])


@dataclass
class BendersResults:
    """Solved planning problem, subproblem solutions and convergence history."""
    planning_problem: Any  # pyomo model of the planning problem
    planning_sol: Dict[str, float] = field(default_factory=dict)  # variable name -> value
    subop_sol: Dict[int, Dict[str, float]] = field(default_factory=dict)  # subproblem -> {"op_cost": ...}
    op_subproblem: List[Dict[str, Any]] = field(default_factory=list)  # [{"system_local": Period}, ...]
    LB_hist: List[float] = field(default_factory=list)
    UB_hist: List[float] = field(default_factory=list)
    gap_hist: List[float] = field(default_factory=list)
    cpu_time: List[float] = field(default_factory=list)
    termination_status: str = ""
    worker_partitions: Optional[List[List[int]]] = None  # subproblem indices held by each worker


class SubproblemsData:
    """
    Per-subproblem result tables, one entry per Benders subproblem in the same order.

    ``data[i]`` returns a ``SubproblemResult``; ``data.select(indices)`` returns
    the subproblems of one planning period.
    """

    def __init__(self, results: Iterable[SubproblemResult] = ()):
        self.flows: List[pd.DataFrame] = []
        self.storage_levels: List[pd.DataFrame] = []
        self.nsd: List[pd.DataFrame] = []
        self.operational_costs: List[pd.DataFrame] = []
        for result in results:
            self.append(result)

    def __len__(self):
        lengths = {len(self.flows), len(self.storage_levels), len(self.nsd), len(self.operational_costs)}
        if len(lengths) != 1:
            raise SubproblemMergeError(
                f"Inconsistent subproblem tables: {len(self.flows)} flows, {len(self.storage_levels)} storage, "
                f"{len(self.nsd)} nsd, {len(self.operational_costs)} cost tables"
            )
        return len(self.flows)

    def _check_index(self, i: int) -> int:
        n = len(self)
        if not 0 <= i < n:
            raise SubproblemIndexError(f"Subproblem index {i} out of range for {n} collected subproblems")
        return i

    def __getitem__(self, i: int) -> SubproblemResult:
        i = self._check_index(i)
        return SubproblemResult(self.flows[i], self.storage_levels[i], self.nsd[i], self.operational_costs[i])

    def __setitem__(self, i: int, result: SubproblemResult):
        i = self._check_index(i)
        self.flows[i] = result.flows
        self.storage_levels[i] = result.storage_levels
        self.nsd[i] = result.nsd
        self.operational_costs[i] = result.operational_costs

    def __iter__(self):
        for i in range(len(self)):
            yield self[i]

    def append(self, result: SubproblemResult) -> None:
        self.flows.append(result.flows)
        self.storage_levels.append(result.storage_levels)
        self.nsd.append(result.nsd)
        self.operational_costs.append(result.operational_costs)

    def pop(self) -> SubproblemResult:
        return SubproblemResult(
            self.flows.pop(), self.storage_levels.pop(), self.nsd.pop(), self.operational_costs.pop()
        )

    def select(self, indices: Sequence[int]) -> "SubproblemsData":
        return SubproblemsData(self[i] for i in indices)


def get_period_to_subproblem_mapping(periods: Sequence[Period]) -> Tuple[Dict[int, List[int]], Dict[int, int]]:
    """
    Map each planning period to the 0-based indices of its subproblems.

    Subproblems are numbered consecutively, one per subperiod, period after period.

    Returns:
        (period_idx -> [subproblem indices], subproblem index -> period_idx)
    """
    period_to_subproblems = {}
    subproblem_to_period = {}
    next_index = 0
    for period in periods:
        time_data = period.reference_time_data
        n_subperiods = len(time_data.subperiod_indices) if time_data is not None else 0
        indices = list(range(next_index, next_index + n_subperiods))
        period_to_subproblems[period.period_index] = indices
        for i in indices:
            subproblem_to_period[i] = period.period_index
        next_index += n_subperiods
    return period_to_subproblems, subproblem_to_period


# -----------------------------
# Extraction (runs where the subproblem lives)
# -----------------------------

def extract_subproblem_results(system: Period, scaling: float = 1.0) -> SubproblemResult:
    """Flows, storage levels, non-served demand and operating cost line items of one subproblem."""
    edges, edge_asset_map = get_edges(system, return_ids_map=True)
    storages, storage_asset_map = get_storages(system, return_ids_map=True)
    nodes_with_costs = [n for n in get_nodes(system) if n.has_operational_costs()]

    flow_tables = []
    cost_rows = []
    for e in edges:
        flow_tables.append(get_optimal_flow(e, scaling, edge_asset_map))
        zone = get_zone_name(e)
        asset_type = get_type(edge_asset_map[e.id])
        for category, value, _ in operational_line_items(e):
            if value > 0:
                cost_rows.append((zone, asset_type, category, value * scaling ** 2))

    nsd_tables = []
    for node in nodes_with_costs:
        nsd_tables.append(get_optimal_non_served_demand(node, scaling))
        zone = get_zone_name(node)
        node_type = get_type(node)
        for category, value, _ in operational_line_items(node):
            if value > 0:
                cost_rows.append((zone, node_type, category, value * scaling ** 2))

    flows = _concat(flow_tables, FLOW_COLUMNS)
    nsd = _concat(nsd_tables, NSD_COLUMNS)
    storage_levels = get_optimal_storage_level(storages, scaling, storage_asset_map)
    if storage_levels.empty:
        storage_levels = pd.DataFrame(columns=STORAGE_COLUMNS)
    operational_costs = (
        pd.DataFrame(cost_rows, columns=COST_COLUMNS) if cost_rows else empty_cost_table()
    )
    return SubproblemResult(flows, storage_levels, nsd, operational_costs)


def _concat(tables: List[pd.DataFrame], columns) -> pd.DataFrame:
    tables = [t for t in tables if not t.empty]
    return pd.concat(tables, ignore_index=True) if tables else pd.DataFrame(columns=columns)


def extract_batch(batch: Sequence[Tuple[int, Period]], scaling: float = 1.0) -> List[Tuple[int, SubproblemResult]]:
    return [(i, extract_subproblem_results(system, scaling)) for i, system in batch]


def densearray_to_dict(container) -> Dict[Any, float]:
    """Flatten a time-indexed container (dict, list, Series, pyomo component) to ``{index: value}``."""
    if isinstance(container, pd.Series):
        return {idx: value_of(v) for idx, v in container.items()}
    if isinstance(container, (list, tuple, np.ndarray)):
        return {i: value_of(v) for i, v in enumerate(container, start=1)}
    if hasattr(container, "is_indexed") and container.is_indexed():
        return {idx: value_of(container[idx]) for idx in container.index_set()}
    if isinstance(container, Mapping):
        return {idx: value_of(v) for idx, v in container.items()}
    raise TypeError(f"Unsupported container type {type(container).__name__}")


def dict_to_densearray(values: Mapping) -> pd.Series:
    """Rebuild a dense, index-sorted series from ``{index: value}``; tuple keys give a MultiIndex."""
    if not values:
        return pd.Series(dtype="float64")
    first_key = next(iter(values))
    if isinstance(first_key, tuple):
        axes = [sorted({k[d] for k in values}) for d in range(len(first_key))]
        index = pd.MultiIndex.from_product(axes)
        return pd.Series([values.get(k, np.nan) for k in index], index=index, dtype="float64")
    if isinstance(first_key, (int, np.integer)):
        keys = sorted(values)
        return pd.Series([values[k] for k in keys], index=keys, dtype="float64")
    raise TypeError(f"Unsupported key type: {type(first_key).__name__}")


def collect_local_slack_vars(systems: Sequence[Period]) -> Dict[int, Dict[Tuple[str, str], Dict[Any, float]]]:
    """period_idx -> (node_id, slack key) -> {subperiod: value} for the given subproblems."""
    batches = []
    for system in systems:
        period_idx = system.period_index
        entry = {}
        for node in get_nodes(system):
            for slack_key, slack_vars in node.policy_slack_vars.items():
                entry[(node.id, slack_key)] = densearray_to_dict(slack_vars)
        if entry:
            batches.append({period_idx: entry})
    return merge_distributed_slack_vars_dicts(batches)


def collect_local_constraint_duals(systems: Sequence[Period]) -> Dict[int, Dict[str, Dict[str, Dict[int, float]]]]:
    """period_idx -> node_id -> balance_id -> {t: dual} for the given subproblems."""
    batches = []
    for system in systems:
        period_idx = system.period_index
        entry = {}
        for node in get_nodes(system):
            constraint = node.balance_constraint
            if constraint is None:
                continue
            if constraint.constraint_dual is None:
                constraint.set_constraint_dual(node.time_interval)
            duals = constraint.constraint_dual
            if not duals:
                continue
            times = list(node.time_interval)
            entry[node.id] = {
                balance_id: dict(zip(times, values)) for balance_id, values in duals.items()
            }
        if entry:
            batches.append({period_idx: entry})
    return merge_distributed_balance_duals(batches)


# -----------------------------
# Deterministic merges
# -----------------------------

def merge_time_dicts(left: Mapping, right: Mapping, context: str = "") -> Dict:
    """Disjoint union of two ``{index: value}`` dicts; equal duplicates are accepted."""
    merged = dict(left)
    for idx, value in right.items():
        if idx in merged and merged[idx] != value:
            raise SubproblemMergeError(
                f"Conflicting values for {context} at index {idx}: {merged[idx]} != {value}"
            )
        merged[idx] = value
    return merged


def merge_distributed_slack_vars_dicts(worker_results: Sequence[Mapping]) -> Dict[int, Dict]:
    """Merge per-worker ``period -> (node, slack key) -> {w: value}`` dicts."""
    merged: Dict[int, Dict] = {}
    for worker_dict in worker_results:
        for period_idx, period_dict in worker_dict.items():
            target = merged.setdefault(period_idx, {})
            for key, data in period_dict.items():
                context = f"period {period_idx}, node {key[0]}, {key[1]}"
                target[key] = merge_time_dicts(target.get(key, {}), data, context)
    return merged


def merge_distributed_balance_duals(worker_results: Sequence[Mapping]) -> Dict[int, Dict]:
    """Merge per-worker ``period -> node -> balance id -> {t: dual}`` dicts."""
    merged: Dict[int, Dict] = {}
    for worker_dict in worker_results:
        for period_idx, period_dict in worker_dict.items():
            period_target = merged.setdefault(period_idx, {})
            for node_id, balance_dict in period_dict.items():
                node_target = period_target.setdefault(node_id, {})
                for balance_id, time_dict in balance_dict.items():
                    context = f"period {period_idx}, node {node_id}, balance {balance_id}"
                    node_target[balance_id] = merge_time_dicts(node_target.get(balance_id, {}), time_dict, context)
    return merged


# -----------------------------
# Collection (local or scatter-gather)
# -----------------------------

def default_worker_partitions(n_subproblems: int, n_workers: Optional[int] = None) -> List[List[int]]:
    """Contiguous blocks of subproblem indices, one per worker."""
    if n_subproblems == 0:
        return []
    n_workers = n_workers or os.cpu_count() or 1
    n_workers = max(1, min(n_workers, n_subproblems))
    return [block.tolist() for block in np.array_split(np.arange(n_subproblems), n_workers)]


def _worker_batches(bd_results: BendersResults) -> List[List[Tuple[int, Period]]]:
    partitions = bd_results.worker_partitions
    if partitions is None:
        partitions = default_worker_partitions(len(bd_results.op_subproblem))
    n = len(bd_results.op_subproblem)
    batches = []
    for part in partitions:
        for i in part:
            if not 0 <= i < n:
                raise SubproblemIndexError(f"Worker partition references subproblem {i}; only {n} exist")
        batches.append([(i, bd_results.op_subproblem[i]["system_local"]) for i in part])
    return batches


def scatter_gather(bd_results: BendersResults, task: Callable, *args, executor: Optional[Executor] = None) -> List[Any]:
    """
    Run ``task(batch, *args)`` once per worker partition and return the replies in worker order.

    A failing worker re-raises here; no partial results are returned.
    """
    batches = _worker_batches(bd_results)
    if not batches:
        return []
    if executor is None:
        with ProcessPoolExecutor(max_workers=len(batches)) as pool:
            futures = [pool.submit(task, batch, *args) for batch in batches]
            return [f.result() for f in futures]
    futures = [executor.submit(task, batch, *args) for batch in batches]
    return [f.result() for f in futures]


def collect_local_data(bd_results: BendersResults, scaling: float = 1.0) -> SubproblemsData:
    results = SubproblemsData()
    for sp in bd_results.op_subproblem:
        results.append(extract_subproblem_results(sp["system_local"], scaling))
    return results


def collect_distributed_data(bd_results: BendersResults, scaling: float = 1.0,
                             executor: Optional[Executor] = None) -> SubproblemsData:
    chunks = scatter_gather(bd_results, extract_batch, scaling, executor=executor)
    by_index = {}
    for chunk in chunks:
        for i, result in chunk:
            if i in by_index:
                raise SubproblemMergeError(f"Subproblem {i} was returned by more than one worker")
            by_index[i] = result
    missing = [i for i in range(len(bd_results.op_subproblem)) if i not in by_index]
    if missing:
        raise SubproblemIndexError(f"No worker returned results for subproblems {missing}")
    return SubproblemsData(by_index[i] for i in range(len(bd_results.op_subproblem)))


def _is_distributed(settings: Optional[CaseSettings]) -> bool:
    return bool(settings is not None and settings.BendersSettings.get("Distributed", False))


def collect_data_from_subproblems(settings: CaseSettings, bd_results: BendersResults, scaling: float = 1.0,
                                  executor: Optional[Executor] = None) -> SubproblemsData:
    """Result tables of every subproblem; local and distributed collection give the same shape."""
    if _is_distributed(settings):
        return collect_distributed_data(bd_results, scaling, executor)
    return collect_local_data(bd_results, scaling)


def _batch_systems(batch: Sequence[Tuple[int, Period]]) -> List[Period]:
    return [system for _, system in batch]


def slack_vars_task(batch):
    return collect_local_slack_vars(_batch_systems(batch))


def constraint_duals_task(batch):
    return collect_local_constraint_duals(_batch_systems(batch))


def collect_distributed_policy_slack_vars(bd_results: BendersResults, settings: Optional[CaseSettings] = None,
                                          executor: Optional[Executor] = None) -> Dict[int, Dict]:
    """period_idx -> (node_id, slack key) -> {subperiod: value} over every subproblem."""
    if not _is_distributed(settings):
        return collect_local_slack_vars([sp["system_local"] for sp in bd_results.op_subproblem])
    return merge_distributed_slack_vars_dicts(scatter_gather(bd_results, slack_vars_task, executor=executor))


def collect_distributed_constraint_duals(bd_results: BendersResults, settings: Optional[CaseSettings] = None,
                                         executor: Optional[Executor] = None) -> Dict[int, Dict]:
    """period_idx -> node_id -> balance_id -> {t: dual} over every subproblem."""
    if not _is_distributed(settings):
        return collect_local_constraint_duals([sp["system_local"] for sp in bd_results.op_subproblem])
    return merge_distributed_balance_duals(scatter_gather(bd_results, constraint_duals_task, executor=executor))


# -----------------------------
# Write-back onto the planning problem
# -----------------------------

def populate_slack_vars_from_subproblems(period: Period, slack_vars: Mapping[Tuple[str, str], Mapping]) -> None:
    for (node_id, slack_key), values in slack_vars.items():
        node = find_node(period, node_id)
        if node is None:
            raise SubproblemMergeError(f"Node {node_id} not found in planning problem")
        node.policy_slack_vars[slack_key] = dict_to_densearray(values)


def populate_constraint_duals_from_subproblems(period: Period, constraint_duals: Mapping[str, Mapping]) -> None:
    """Store collected balance duals on the planning-problem nodes as time-ordered lists."""
    for node_id, balance_dict in constraint_duals.items():
        node = find_node(period, node_id)
        if node is None:
            raise SubproblemMergeError(f"Node {node_id} not found in planning problem")
        constraint = node.balance_constraint
        if constraint is None:
            continue
        if constraint.constraint_dual is None:
            constraint.constraint_dual = {}
        n_steps = len(node.time_interval)
        for balance_id, time_dict in balance_dict.items():
            dual_values = [time_dict[t] for t in sorted(time_dict)]
            if len(dual_values) != n_steps:
                raise SubproblemMergeError(
                    f"Node {node_id} balance {balance_id}: {len(dual_values)} duals collected "
                    f"for {n_steps} time steps"
                )
            constraint.constraint_dual[balance_id] = dual_values


# -----------------------------
# System costs
# -----------------------------

def load_planning_solution(model, values: Mapping[str, float]) -> int:
    """Set planning variables to their Benders solution values; returns the number set."""
    count = 0
    for var in model.component_data_objects(pyo.Var, descend_into=True):
        if var.name in values:
            var.set_value(values[var.name], skip_validation=True)
            count += 1
    return count


def compute_benders_variable_costs(subop_sol: Mapping[int, Mapping[str, float]], subop_indices: Sequence[int],
                                   period: Period, settings: CaseSettings) -> Tuple[float, float]:
    """(undiscounted, discounted) operating cost of a period from its subproblem objectives."""
    missing = [w for w in subop_indices if w not in subop_sol]
    if missing:
        raise SubproblemIndexError(f"No subproblem solution for indices {missing}")
    discounted_variable_cost = sum(subop_sol[w]["op_cost"] for w in subop_indices)
    discount_factor, opexmult, period_length = period_discount_factors(period.period_index, settings)
    variable_cost = period_length * discounted_variable_cost / (discount_factor * opexmult)
    return variable_cost, discounted_variable_cost


def prepare_costs_benders(period: Period, bd_results: BendersResults, subop_indices: Sequence[int],
                          settings: CaseSettings) -> Dict[str, float]:
    """eFixedCost, eVariableCost, eDiscountedFixedCost and eDiscountedVariableCost of one period."""
    planning_problem = bd_results.planning_problem
    load_planning_solution(planning_problem, bd_results.planning_sol)

    create_discounted_cost_expressions(planning_problem, period, settings)
    compute_undiscounted_costs(planning_problem, period, settings)

    variable_cost, discounted_variable_cost = compute_benders_variable_costs(
        bd_results.subop_sol, subop_indices, period, settings
    )
    return {
        "eFixedCost": model_cost(planning_problem, "eFixedCost"),
        "eVariableCost": variable_cost,
        "eDiscountedFixedCost": model_cost(planning_problem, "eDiscountedFixedCost"),
        "eDiscountedVariableCost": discounted_variable_cost,
    }


def get_benders_convergence(bd_results: BendersResults) -> pd.DataFrame:
    n_iter = len(bd_results.LB_hist)
    status = [bd_results.termination_status] + [""] * (n_iter - 1) if n_iter else []
    return pd.DataFrame({
        "Iter": list(range(1, n_iter + 1)),
        "CPU_Time": bd_results.cpu_time,
        "LB": bd_results.LB_hist,
        "UB": bd_results.UB_hist,
        "Gap": bd_results.gap_hist,
        "Status": status,
    })


def write_benders_convergence(case_path, bd_results: BendersResults) -> None:
    path = os.path.join(case_path, config.BENDERS_CONVERGENCE_FILE)
    get_benders_convergence(bd_results).to_csv(path, index=False)
    logger.info(f"Benders convergence history written to {path}")
