"""
Model-level cost expressions.

Builds the per-period fixed and variable cost expressions of a pyomo model,
the minimisation objective, and the discounted/undiscounted system cost
expressions used for reporting one period. Expressions are (re)registered by
name so reporting passes can be repeated on the same model.
"""

import logging
from typing import Dict, Sequence, Tuple

import numpy as np
import pandas as pd
import pyomo.environ as pyo

from .component_costs import operational_cost_terms, period_cost_rate
from .cost_breakdown import period_discount_factors
from .discounting import add_costs_not_seen_by_myopic, undo_discount_fixed_costs
from .network import Period, get_capacity_components, get_edges, get_nodes
from .settings import CaseSettings, SolutionAlgorithm
from .validation import model_cost

logger = logging.getLogger(__name__)


def _replace_component(model, name: str, component) -> None:
    if hasattr(model, name):
        model.del_component(name)
    model.add_component(name, component)


_OBJECTIVE_COMPONENTS = [
    "SystemCost", "eFixedCost", "eVariableCost", "eFixedCostByPeriod",
    "eInvestmentFixedCostByPeriod", "eOMFixedCostByPeriod", "eVariableCostByPeriod",
    "CostPeriods",
]


def fixed_cost_terms(period: Period, view: str = "pv") -> Tuple[object, object]:
    """
    Investment and fixed O&M cost of a period as (investment, om) expressions.

    ``view`` selects the present-value ('pv') or cash-flow ('cf') period rates.
    """
    investment = 0.0
    om = 0.0
    for component in get_capacity_components(period):
        if component.can_expand:
            investment = investment + period_cost_rate(component, "investment_cost", view) * component.new_capacity
        if component.fixed_om_cost > 0:
            om = om + period_cost_rate(component, "fixed_om_cost", view) * component.capacity
    return investment, om


def variable_cost_terms(period: Period):
    """Annual operating cost of a period: every edge and node cost term."""
    terms = []
    for edge in get_edges(period):
        terms.extend(operational_cost_terms(edge))
    for node in get_nodes(period):
        terms.extend(operational_cost_terms(node))
    return sum((coef * quantity for coef, quantity in terms), 0.0)


def build_objective_cost_expressions(model, periods: Sequence[Period], settings: CaseSettings):
    """
    Register the cost expressions and objective of a multi-period model.

    Each period's fixed cost is discounted to the case start with the
    period-start discount factor; its variable cost also gets the period
    opex multiplier. Myopic models pass a single period.

    Returns:
        The objective component
    """
    indices = [p.period_index for p in periods]
    investment: Dict[int, object] = {}
    om: Dict[int, object] = {}
    variable: Dict[int, object] = {}
    discount_factor: Dict[int, float] = {}
    opexmult: Dict[int, float] = {}

    for period in periods:
        idx = period.period_index
        logger.info(f" -- Building cost expressions for period {idx}")
        investment[idx], om[idx] = fixed_cost_terms(period, "pv")
        variable[idx] = variable_cost_terms(period)
        discount_factor[idx], opexmult[idx], _ = period_discount_factors(idx, settings)

    # Indexed expressions go before the set that indexes them
    for name in _OBJECTIVE_COMPONENTS:
        if hasattr(model, name):
            model.del_component(name)
    model.add_component("CostPeriods", pyo.Set(initialize=indices, ordered=True))
    _replace_component(model, "eInvestmentFixedCostByPeriod", pyo.Expression(
        model.CostPeriods, rule=lambda m, s: discount_factor[s] * investment[s]))
    _replace_component(model, "eOMFixedCostByPeriod", pyo.Expression(
        model.CostPeriods, rule=lambda m, s: discount_factor[s] * om[s]))
    _replace_component(model, "eFixedCostByPeriod", pyo.Expression(
        model.CostPeriods, rule=lambda m, s: m.eInvestmentFixedCostByPeriod[s] + m.eOMFixedCostByPeriod[s]))
    _replace_component(model, "eVariableCostByPeriod", pyo.Expression(
        model.CostPeriods, rule=lambda m, s: discount_factor[s] * opexmult[s] * variable[s]))
    _replace_component(model, "eFixedCost", pyo.Expression(
        expr=sum(model.eFixedCostByPeriod[s] for s in indices)))
    _replace_component(model, "eVariableCost", pyo.Expression(
        expr=sum(model.eVariableCostByPeriod[s] for s in indices)))

    # Built from the per-period terms so the report passes can re-register eFixedCost/eVariableCost
    objective = pyo.Objective(
        expr=sum(model.eFixedCostByPeriod[s] + model.eVariableCostByPeriod[s] for s in indices),
        sense=pyo.minimize,
    )
    _replace_component(model, "SystemCost", objective)
    return objective


def create_discounted_cost_expressions(model, period: Period, settings: CaseSettings) -> None:
    """
    Register eDiscountedFixedCost and eDiscountedVariableCost for one period.

    Under Myopic the investment annuities beyond the period are added first so
    totals are comparable with perfect-foresight runs. Under Benders the
    variable cost comes from the subproblems and is not registered here.
    """
    idx = period.period_index
    discount_factor, _, _ = period_discount_factors(idx, settings)
    mode = settings.SolutionAlgorithm

    if mode is SolutionAlgorithm.MYOPIC:
        add_costs_not_seen_by_myopic(period, settings)
        investment, _ = fixed_cost_terms(period, "pv")
        _replace_component(model, "eDiscountedInvestmentFixedCost", pyo.Expression(
            expr=discount_factor * investment))
        _replace_component(model, "eDiscountedFixedCost", pyo.Expression(
            expr=model.eDiscountedInvestmentFixedCost + model.eOMFixedCostByPeriod[idx]))
    else:
        _replace_component(model, "eDiscountedFixedCost", pyo.Expression(
            expr=model.eFixedCostByPeriod[idx]))

    if mode is not SolutionAlgorithm.BENDERS:
        _replace_component(model, "eDiscountedVariableCost", pyo.Expression(
            expr=model.eVariableCostByPeriod[idx]))


def compute_undiscounted_costs(model, period: Period, settings: CaseSettings) -> None:
    """
    Register eFixedCost (cash-flow fixed costs) and eVariableCost for one period.

    The undiscounted variable cost is recovered from the discounted one as
    ``L * eVariableCostByPeriod[p] / (discount_factor * opex_multiplier)``.
    """
    idx = period.period_index
    undo_discount_fixed_costs(period, settings)
    investment, om = fixed_cost_terms(period, "cf")
    _replace_component(model, "eInvestmentFixedCost", pyo.Expression(expr=investment))
    _replace_component(model, "eOMFixedCost", pyo.Expression(expr=om))
    _replace_component(model, "eFixedCost", pyo.Expression(
        expr=model.eInvestmentFixedCost + model.eOMFixedCost))

    if settings.SolutionAlgorithm is not SolutionAlgorithm.BENDERS:
        discount_factor, opexmult, period_length = period_discount_factors(idx, settings)
        _replace_component(model, "eVariableCost", pyo.Expression(
            expr=period_length * model.eVariableCostByPeriod[idx] / (discount_factor * opexmult)))


def compute_variable_cost_discount_scaling(period_idx: int, settings: CaseSettings) -> float:
    """Factor turning a period's discounted annual operating cost back into an annual cost."""
    discount_factor, opexmult, _ = period_discount_factors(period_idx, settings)
    return discount_factor * opexmult


# -----------------------------
# System cost tables
# -----------------------------

def _system_cost_table(fixed: float, variable: float, names, scaling: float) -> pd.DataFrame:
    values = np.array([fixed, variable, fixed + variable]) * scaling ** 2
    return pd.DataFrame({
        "commodity": ["all"] * 3,
        "zone": ["all"] * 3,
        "resource_id": ["all"] * 3,
        "component_id": ["all"] * 3,
        "type": ["Cost"] * 3,
        "variable": names,
        "value": values,
    })


def get_optimal_discounted_costs(model_costs, scaling: float = 1.0) -> pd.DataFrame:
    """Discounted fixed, variable and total system cost of a solved period."""
    logger.debug(" -- Getting optimal discounted costs for the system.")
    return _system_cost_table(
        model_cost(model_costs, "eDiscountedFixedCost"),
        model_cost(model_costs, "eDiscountedVariableCost"),
        ["DiscountedFixedCost", "DiscountedVariableCost", "DiscountedTotalCost"],
        scaling,
    )


def get_optimal_undiscounted_costs(model_costs, scaling: float = 1.0) -> pd.DataFrame:
    """Undiscounted fixed, variable and total system cost of a solved period."""
    logger.debug(" -- Getting optimal undiscounted costs for the system.")
    return _system_cost_table(
        model_cost(model_costs, "eFixedCost"),
        model_cost(model_costs, "eVariableCost"),
        ["FixedCost", "VariableCost", "TotalCost"],
        scaling,
    )
