"""
Discounting state manager.

Sets the present-value (``pv_period_*``) and cash-flow (``cf_period_*``)
views of every capacity-bearing component in a period. Nodes and
transformations carry no period cost views and are skipped.
"""

import logging
from typing import Iterable

from .economics import (
    capital_recovery_factor,
    present_value_annuity_factor,
    years_remaining,
)
from .exceptions import CostBasisError
from .network import CapacityComponent, CostBasis, Period
from .settings import CaseSettings, applicable_horizon

logger = logging.getLogger(__name__)


def _capacity_components(period: Period) -> Iterable[CapacityComponent]:
    for asset in period.assets:
        yield from asset.capacity_components()


def compute_annualized_costs(period: Period, settings: CaseSettings) -> None:
    """Derive missing annualized investment costs from overnight costs.

    The annuity uses the component's WACC, defaulting to the case discount rate.
    """
    for component in _capacity_components(period):
        if component.annualized_investment_cost is not None:
            continue
        if component.investment_cost == 0:
            component.annualized_investment_cost = 0.0
        else:
            if component.wacc is None:
                component.wacc = settings.DiscountRate
            component.annualized_investment_cost = component.investment_cost * capital_recovery_factor(
                component.wacc, component.capital_recovery_period
            )
        component.mark_stale()


def annualized_investment(component: CapacityComponent) -> float:
    """Annualized investment cost; components without an investment cost annualize to 0."""
    if component.annualized_investment_cost is not None:
        return component.annualized_investment_cost
    if component.investment_cost != 0:
        raise CostBasisError(component.id, "annualized_investment_cost", "compute_annualized_costs")
    return 0.0


def discount_component(component: CapacityComponent, settings: CaseSettings) -> None:
    rate = settings.DiscountRate
    lengths = settings.PeriodLengths
    period_idx = component.period_index
    period_length = lengths[period_idx - 1]

    payment_years = min(
        component.capital_recovery_period,
        applicable_horizon(settings.SolutionAlgorithm, period_idx, lengths),
    )
    annualized = annualized_investment(component)
    component.pv_period_investment_cost = annualized * present_value_annuity_factor(rate, payment_years)

    period_annuity = present_value_annuity_factor(rate, period_length)
    component.pv_period_fixed_om_cost = component.fixed_om_cost * period_annuity
    component.pv_period_variable_om_cost = component.variable_om_cost * period_annuity

    component.cost_basis = CostBasis.DISCOUNTED
    component.myopic_finalized = False


def undo_discount_component(component: CapacityComponent, settings: CaseSettings) -> None:
    if CostBasis.DISCOUNTED not in component.cost_basis:
        raise CostBasisError(component.id, "pv_period_investment_cost", "discount_fixed_costs")
    rate = settings.DiscountRate
    lengths = settings.PeriodLengths
    period_idx = component.period_index
    period_length = lengths[period_idx - 1]

    # Reporting only: the full remaining horizon applies to every algorithm
    payment_years = min(component.capital_recovery_period, years_remaining(period_idx, lengths))
    component.cf_period_investment_cost = (
        payment_years
        * component.pv_period_investment_cost
        * capital_recovery_factor(rate, payment_years)
    )
    component.cf_period_fixed_om_cost = period_length * component.fixed_om_cost
    component.cf_period_variable_om_cost = period_length * component.variable_om_cost
    component.cost_basis |= CostBasis.UNDISCOUNTED


def discount_fixed_costs(period: Period, settings: CaseSettings) -> None:
    """
    Set the present-value period costs of every capacity-bearing component.

    Investment is annuitized over ``min(capital_recovery_period, horizon)``
    years, where the horizon is the period length under Myopic and the
    remaining model years otherwise. O&M rates are multiplied by the period
    annuity factor. Any cash-flow view set earlier becomes stale.
    """
    count = 0
    for component in _capacity_components(period):
        discount_component(component, settings)
        count += 1
    logger.debug(f"Discounted fixed costs of {count} components in period {period.period_index}")


def undo_discount_fixed_costs(period: Period, settings: CaseSettings) -> None:
    """
    Set the undiscounted cash-flow period costs from the present-value views.

    Raises:
        CostBasisError: for a component whose present values are not set
    """
    for component in _capacity_components(period):
        undo_discount_component(component, settings)


def add_costs_not_seen_by_myopic(period: Period, settings: CaseSettings) -> None:
    """
    Add the investment annuities beyond the myopic horizon to ``pv_period_investment_cost``.

    One-shot per discounting pass: components already finalized since their
    last ``discount_fixed_costs`` are skipped with a warning.
    """
    rate = settings.DiscountRate
    lengths = settings.PeriodLengths
    skipped = []
    for component in _capacity_components(period):
        if component.myopic_finalized:
            skipped.append(component.id)
            continue
        if CostBasis.DISCOUNTED not in component.cost_basis:
            raise CostBasisError(component.id, "pv_period_investment_cost", "discount_fixed_costs")
        period_idx = component.period_index
        k_total = min(component.capital_recovery_period, years_remaining(period_idx, lengths))
        k_myopic = min(component.capital_recovery_period, lengths[period_idx - 1])
        total_mult = present_value_annuity_factor(rate, k_total)
        myopic_mult = present_value_annuity_factor(rate, k_myopic)
        annualized = annualized_investment(component)
        component.pv_period_investment_cost += annualized * (total_mult - myopic_mult)
        component.myopic_finalized = True
        # cash flows must be recomputed from the new present value
        component.cost_basis = CostBasis.DISCOUNTED
    if skipped:
        logger.warning(
            f"Costs not seen by myopic already added for {len(skipped)} components "
            f"in period {period.period_index}; skipping {skipped}"
        )
