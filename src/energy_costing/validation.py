"""
Objective-value validator.

Cross-checks the grand total of an aggregated cost breakdown against the cost
expressions of the solved model. A mismatch is a reporting problem, so it is
logged as a warning and never raised.
"""

import logging
from typing import Mapping

import pandas as pd
import pyomo.environ as pyo

from . import config

logger = logging.getLogger(__name__)


def model_cost(model_costs, name: str) -> float:
    """
    Value of a named cost on a solved pyomo model or in a mapping of precomputed values.

    Missing or unpopulated costs count as 0.0.
    """
    if isinstance(model_costs, Mapping):
        component = model_costs.get(name)
    else:
        component = getattr(model_costs, name, None)
    if component is None:
        logger.debug(f"Cost '{name}' not found; using 0.0")
        return 0.0
    val = pyo.value(component, exception=False)
    return 0.0 if val is None else float(val)


def expected_objective(model_costs, discounted: bool, scaling: float = 1.0) -> float:
    if discounted:
        fixed = model_cost(model_costs, "eDiscountedFixedCost")
        variable = model_cost(model_costs, "eDiscountedVariableCost")
    else:
        fixed = model_cost(model_costs, "eFixedCost")
        variable = model_cost(model_costs, "eVariableCost")
    return fixed + variable * scaling ** 2


def grand_total(costs: pd.DataFrame) -> float:
    """Value of the row with category 'Total' (0.0 for an empty breakdown)."""
    if costs.empty:
        return 0.0
    totals = costs.loc[costs["category"] == "Total", "value"]
    if len(totals) != 1:
        raise ValueError(f"Expected exactly one grand-total row, found {len(totals)}")
    return float(totals.iloc[0])


def validate_total_cost(
    costs: pd.DataFrame,
    model_costs,
    discounted: bool,
    scaling: float = 1.0,
    validation_tolerance: float = config.VALIDATION_TOLERANCE,
) -> bool:
    """
    Compare the grand total of an aggregated breakdown with the model objective.

    Args:
        costs: Aggregated table with a 'Total' category row (see add_total_row)
        model_costs: Solved pyomo model or mapping holding eDiscountedFixedCost,
            eDiscountedVariableCost, eFixedCost and eVariableCost
        discounted: Compare with the discounted or the undiscounted pair
        scaling: Scaling factor applied to the breakdown
        validation_tolerance: Relative tolerance

    Returns:
        True if ``|total - objective| < tolerance * max(|objective|, 1)``
    """
    objective_value = expected_objective(model_costs, discounted, scaling)
    total = grand_total(costs)
    diff = abs(total - objective_value)
    is_valid = diff < validation_tolerance * max(abs(objective_value), 1.0)
    if not is_valid:
        kind = "discounted" if discounted else "undiscounted"
        logger.warning(
            f"Objective value validation failed ({kind}): breakdown total {total:.6f}, "
            f"objective {objective_value:.6f}, difference {diff:.6g}"
        )
    return is_valid
