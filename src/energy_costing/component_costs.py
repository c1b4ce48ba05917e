"""
Per-component cost computers.

Fixed costs (investment, fixed O&M) come back as ``(present_value, cash_flow)``
pairs read from the period views set by the discounting passes. Operating
costs are subperiod-weighted sums over the time steps of one year of
representative operation; discounting them is left to the breakdown engine.

Every operating cost is assembled from ``(coefficient, quantity)`` terms so the
same definitions serve both numeric reporting and the pyomo cost expressions.
"""

import logging
from functools import singledispatch
from typing import List, Tuple

from .exceptions import CostBasisError
from .network import (
    CapacityComponent,
    CostBasis,
    Edge,
    EdgeWithUC,
    Node,
    Storage,
    Transformation,
    value_of,
)

logger = logging.getLogger(__name__)

# Cost categories
INVESTMENT = "Investment"
FIXED_OM = "FixedOM"
VARIABLE_OM = "VariableOM"
FUEL = "Fuel"
STARTUP = "Startup"
NON_SERVED_DEMAND = "NonServedDemand"
SUPPLY = "Supply"
UNMET_POLICY_PENALTY = "UnmetPolicyPenalty"

COST_CATEGORIES = [
    INVESTMENT, FIXED_OM, VARIABLE_OM, FUEL, STARTUP,
    NON_SERVED_DEMAND, SUPPLY, UNMET_POLICY_PENALTY,
]
# Discounted with the period-start discount factor only
FIXED_COST_CATEGORIES = frozenset([INVESTMENT, FIXED_OM])
# Discounted with discount factor * opex multiplier
VARIABLE_OPERATING_COST_CATEGORIES = frozenset(
    [VARIABLE_OM, FUEL, STARTUP, NON_SERVED_DEMAND, SUPPLY, UNMET_POLICY_PENALTY]
)

# Which pass fills each view and the basis bit it leaves behind
_VIEWS = {
    "pv": (CostBasis.DISCOUNTED, "discount_fixed_costs"),
    "cf": (CostBasis.UNDISCOUNTED, "undo_discount_fixed_costs"),
}


def period_cost_rate(component: CapacityComponent, cost_name: str, view: str) -> float:
    """
    Per-unit period cost ``<view>_period_<cost_name>`` of a capacity-bearing component.

    Args:
        component: Edge or Storage
        cost_name: 'investment_cost', 'fixed_om_cost' or 'variable_om_cost'
        view: 'pv' (present value at period start) or 'cf' (undiscounted cash flow)

    Raises:
        CostBasisError: if the pass that fills the view has not run since the
            component was last marked stale
    """
    basis, required_pass = _VIEWS[view]
    field_name = f"{view}_period_{cost_name}"
    rate = getattr(component, field_name)
    if rate is None or basis not in component.cost_basis:
        raise CostBasisError(component.id, field_name, required_pass)
    return rate


def _item(container, index):
    """Raw entry of a time series (number, pyomo variable or expression); 0.0 if absent."""
    if container is None:
        return 0.0
    if isinstance(container, (list, tuple)):
        pos = index - 1
        return container[pos] if 0 <= pos < len(container) else 0.0
    if hasattr(container, "is_indexed") and container.is_indexed():
        return container[index] if index in container.index_set() else 0.0
    return container.get(index, 0.0)


def weighted_sum(terms) -> float:
    """Numeric value of ``sum(coef * quantity)``."""
    return sum(coef * value_of(quantity) for coef, quantity in terms)


def _segment_price(prices, segment) -> float:
    return float(prices[segment - 1]) if segment - 1 < len(prices) else 0.0


# -----------------------------
# Operating cost terms
# -----------------------------

def variable_om_terms(edge: Edge) -> List[Tuple[float, object]]:
    if edge.variable_om_cost <= 0:
        return []
    return [
        (edge.weight_at(t) * edge.variable_om_cost, _item(edge.flow, t))
        for t in edge.time_interval
    ]


def fuel_terms(edge: Edge) -> List[Tuple[float, object]]:
    origin = edge.start_vertex
    if not isinstance(origin, Node) or not origin.has_price():
        return []
    return [
        (edge.weight_at(t) * origin.price_at(t), _item(edge.flow, t))
        for t in edge.time_interval
    ]


def startup_terms(edge: Edge) -> List[Tuple[float, object]]:
    if not isinstance(edge, EdgeWithUC) or edge.startup_cost <= 0:
        return []
    return [
        (edge.weight_at(t) * edge.startup_cost * edge.capacity_size, _item(edge.ustart, t))
        for t in edge.time_interval
    ]


def non_served_demand_terms(node: Node) -> List[Tuple[float, object]]:
    if not node.has_non_served_demand():
        return []
    return [
        (node.weight_at(t) * _segment_price(node.price_nsd, s), _item(node.non_served_demand, (s, t)))
        for t in node.time_interval
        for s in node.nsd_segments
    ]


def supply_terms(node: Node) -> List[Tuple[float, object]]:
    if not node.has_supply():
        return []
    return [
        (node.weight_at(t) * _segment_price(node.price_supply, s), _item(node.supply_flow, (s, t)))
        for t in node.time_interval
        for s in node.supply_segments
    ]


def policy_slack_terms(node: Node) -> List[Tuple[float, object]]:
    terms = []
    for ct_type, penalty_price in node.price_unmet_policy.items():
        slack_vars = node.policy_slack_vars.get(f"{ct_type}_Slack")
        if slack_vars is None:
            continue
        for w in node.subperiod_indices:
            terms.append((node.subperiod_weight(w) * penalty_price, _item(slack_vars, w)))
    return terms


# -----------------------------
# Cost computers
# -----------------------------

def investment_cost(component: CapacityComponent) -> Tuple[float, float]:
    """(pv, cf) investment cost: period cost rate times new capacity."""
    if not (component.has_capacity and component.can_expand):
        return 0.0, 0.0
    pv = period_cost_rate(component, "investment_cost", "pv")
    cf = period_cost_rate(component, "investment_cost", "cf")
    new_capacity = value_of(component.new_capacity)
    return pv * new_capacity, cf * new_capacity


def fixed_om_cost(component: CapacityComponent) -> Tuple[float, float]:
    """(pv, cf) fixed O&M cost: period cost rate times total capacity."""
    if not (component.has_capacity and component.fixed_om_cost > 0):
        return 0.0, 0.0
    pv = period_cost_rate(component, "fixed_om_cost", "pv")
    cf = period_cost_rate(component, "fixed_om_cost", "cf")
    capacity = value_of(component.capacity)
    return pv * capacity, cf * capacity


def variable_om_cost(edge: Edge) -> float:
    return weighted_sum(variable_om_terms(edge))


def fuel_cost(edge: Edge) -> float:
    return weighted_sum(fuel_terms(edge))


def startup_cost(edge: Edge) -> float:
    """Zero for edges without unit commitment."""
    return weighted_sum(startup_terms(edge))


def non_served_demand_cost(node: Node) -> float:
    return weighted_sum(non_served_demand_terms(node))


def supply_cost(node: Node) -> float:
    return weighted_sum(supply_terms(node))


def policy_slack_cost(node: Node) -> float:
    return weighted_sum(policy_slack_terms(node))


# -----------------------------
# Line items per component kind
# -----------------------------

@singledispatch
def cost_line_items(component) -> List[Tuple[str, float, float]]:
    """
    All cost categories of a component as ``(category, pv, cf)`` triples.

    Operating categories carry the same annual value in both slots; the
    breakdown engine discounts or undiscounts them per period. Components
    without costs (transformations) return an empty list.
    """
    return []


@cost_line_items.register
def _(component: Transformation):
    return []


@cost_line_items.register
def _(storage: Storage):
    return fixed_line_items(storage)


@cost_line_items.register
def _(edge: Edge):
    return fixed_line_items(edge) + operational_line_items(edge)


@cost_line_items.register
def _(node: Node):
    return operational_line_items(node)


def fixed_line_items(component: CapacityComponent) -> List[Tuple[str, float, float]]:
    inv_pv, inv_cf = investment_cost(component)
    fom_pv, fom_cf = fixed_om_cost(component)
    return [(INVESTMENT, inv_pv, inv_cf), (FIXED_OM, fom_pv, fom_cf)]


def operational_line_items(component) -> List[Tuple[str, float, float]]:
    if isinstance(component, Edge):
        items = [
            (VARIABLE_OM, variable_om_cost(component)),
            (FUEL, fuel_cost(component)),
            (STARTUP, startup_cost(component)),
        ]
    elif isinstance(component, Node):
        items = [
            (NON_SERVED_DEMAND, non_served_demand_cost(component)),
            (SUPPLY, supply_cost(component)),
            (UNMET_POLICY_PENALTY, policy_slack_cost(component)),
        ]
    else:
        items = []
    return [(category, value, value) for category, value in items]


def operational_cost_terms(component) -> List[Tuple[float, object]]:
    """Every operating cost term of an edge or node, for building model expressions."""
    if isinstance(component, Edge):
        return variable_om_terms(component) + fuel_terms(component) + startup_terms(component)
    if isinstance(component, Node):
        return (
            non_served_demand_terms(component)
            + supply_terms(component)
            + policy_slack_terms(component)
        )
    return []
