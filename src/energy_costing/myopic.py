"""
Myopic iteration driver.

Solves the periods of a case one after the other. Each period only sees its
own horizon; the solved capacity of period ``p`` becomes the existing capacity
of period ``p + 1``. A run can restart from a later period using the
``capacity.csv`` files written by an earlier run, and can stop after a given
period.

Building and solving one period's optimisation model is left to the
``solve_period(period, settings)`` callable, which must return the solved
pyomo model (with the objective cost expressions registered).
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pandas as pd

from . import config
from .discounting import compute_annualized_costs, discount_fixed_costs
from .economics import get_retirement_period
from .exceptions import RestartDataError
from .network import CapacityComponent, Case, Period, get_capacity_components, value_of
from .outputs import mkpath_for_period, write_outputs_myopic
from .settings import CaseSettings, write_settings

logger = logging.getLogger(__name__)

CAPACITY_VARIABLES = ["capacity", "new_capacity", "retired_capacity"]


@dataclass
class MyopicResults:
    models: Optional[List[Any]] = None  # only kept when ReturnModels is set
    periods_solved: List[int] = field(default_factory=list)


def compute_retirement_period(period: Period, settings: CaseSettings) -> None:
    """Set the retirement period of every retirable component of the period."""
    idx = period.period_index
    for component in get_capacity_components(period):
        if component.can_retire:
            component.retirement_period = get_retirement_period(idx, component.lifetime, settings.PeriodLengths)


def validate_existing_capacity(component: CapacityComponent) -> None:
    existing = value_of(component.existing_capacity)
    if existing > 0:
        logger.warning(
            f"Component {component.id} has existing capacity {existing} but was not part of the "
            f"previous period; its capacity is not carried over"
        )


def carry_over_capacities(period: Period, prev_period: Period, perfect_foresight: bool = False) -> None:
    """
    Carry the solved capacities of ``prev_period`` into ``period``.

    Without perfect foresight the previous total capacity becomes the existing
    capacity. The new/retired capacity tracks are copied in both cases.
    """
    prev_components = {c.id: c for c in get_capacity_components(prev_period)}
    prev_idx = prev_period.period_index
    for component in get_capacity_components(period):
        prev = prev_components.get(component.id)
        if prev is None:
            validate_existing_capacity(component)
            continue
        if not perfect_foresight:
            component.existing_capacity = value_of(prev.capacity)
        component.new_capacity_track = {k: value_of(v) for k, v in prev.new_capacity_track.items()}
        component.retired_capacity_track = {k: value_of(v) for k, v in prev.retired_capacity_track.items()}
        component.new_capacity_track[prev_idx] = value_of(prev.new_capacity)
        component.retired_capacity_track[prev_idx] = value_of(prev.retired_capacity)


def _capacity_table(df: pd.DataFrame, path: Path) -> pd.DataFrame:
    """Capacity results indexed by component_id with one column per capacity variable."""
    if {"component_id", "variable", "value"}.issubset(df.columns):
        wide = df.pivot_table(index="component_id", columns="variable", values="value", aggfunc="first")
        wide.columns.name = None
        return wide
    if {"component_id", "capacity"}.issubset(df.columns):
        return df.set_index("component_id")
    raise RestartDataError(
        f"{path}: capacity results must be long (component_id, variable, value) "
        f"or wide (component_id, capacity, ...); found columns {list(df.columns)}"
    )


def load_previous_capacity_results(case: Case, from_period: int) -> Dict[int, pd.DataFrame]:
    """Capacity results of periods ``1 .. from_period - 1`` written by an earlier run."""
    folder = case.settings.MyopicSettings.get("Restart", {}).get("folder", "results")
    results_path = Path(case.data_dirpath) / folder
    results = {}
    for period_idx in range(1, from_period):
        path = results_path / f"{config.RESULTS_DIR_PREFIX}{period_idx}" / config.CAPACITY_FILE
        if not path.exists():
            raise RestartDataError(f"Cannot restart from period {from_period}: {path} not found")
        logger.info(f"Loading capacity results of period {period_idx} from {path}")
        results[period_idx] = _capacity_table(pd.read_csv(path), path)
    return results


def carry_over_capacities_from_results(period: Period, results: Dict[int, pd.DataFrame], last_period_idx: int) -> None:
    """Restart variant of ``carry_over_capacities`` reading capacity tables instead of a solved period."""
    last = results[last_period_idx]
    for component in get_capacity_components(period):
        if component.id not in last.index:
            logger.info(f"Component {component.id} not found in restart results; keeping its inputs")
            continue
        component.existing_capacity = float(last.loc[component.id, "capacity"])
        for period_idx, table in sorted(results.items()):
            if component.id not in table.index:
                continue
            if "new_capacity" in table.columns:
                component.new_capacity_track[period_idx] = float(table.loc[component.id, "new_capacity"])
            if "retired_capacity" in table.columns:
                component.retired_capacity_track[period_idx] = float(table.loc[component.id, "retired_capacity"])


def run_myopic_iteration(
    case: Case,
    solve_period: Callable[[Period, CaseSettings], Any],
    output_path=None,
    scaling: float = 1.0,
) -> MyopicResults:
    """
    Solve and report every period of a Myopic case in increasing index order.

    Args:
        case: Case with one Period per planning period
        solve_period: Builds and solves one period; returns the solved model
        output_path: Directory receiving ``results_period_<idx>`` folders
            (default ``<data_dirpath>/results``)
        scaling: Scaling factor of the model units

    Returns:
        MyopicResults with the solved period indices (and models if ReturnModels)
    """
    settings = case.settings
    myopic_settings = settings.MyopicSettings
    restart = myopic_settings.get("Restart", {})
    from_period = int(restart.get("from_period", 1)) if restart.get("enabled", False) else 1
    stop_after = myopic_settings.get("StopAfterPeriod")
    return_models = bool(myopic_settings.get("ReturnModels", False))
    output_path = Path(output_path) if output_path is not None else Path(case.data_dirpath) / "results"

    periods = sorted(case.periods, key=lambda p: p.period_index)
    results = MyopicResults(models=[] if return_models else None)

    if from_period > 1:
        logger.info(f"Restarting Myopic iteration from period {from_period}")
        previous = load_previous_capacity_results(case, from_period)
        restart_period = next((p for p in periods if p.period_index == from_period), None)
        if restart_period is not None:
            carry_over_capacities_from_results(restart_period, previous, from_period - 1)

    for i, period in enumerate(periods):
        period_idx = period.period_index
        if period_idx < from_period:
            logger.info(f"Skipping period {period_idx} (restart from period {from_period})")
            continue
        if stop_after is not None and period_idx > stop_after:
            logger.info(f"Stopping after period {stop_after}")
            break

        logger.info(f"Solving period {period_idx} of {len(periods)}")
        compute_retirement_period(period, settings)
        compute_annualized_costs(period, settings)
        discount_fixed_costs(period, settings)
        model = solve_period(period, settings)

        results_dir = mkpath_for_period(output_path, period_idx)
        write_outputs_myopic(results_dir, period, model, settings, scaling)

        if i + 1 < len(periods):
            carry_over_capacities(periods[i + 1], period, perfect_foresight=False)

        results.periods_solved.append(period_idx)
        if return_models:
            results.models.append(model)

    write_settings(settings, output_path / config.SETTINGS_FILE)
    return results
