"""
Cost accounting for multi-period energy capacity-expansion models.

This package turns solved capacity-expansion models into period-level cost
reports and checks them against the model objective:
- Economics primitives: discount, annuity and capital recovery factors
- Discounting of fixed costs into present-value and cash-flow views
- Per-component cost line items and detailed/aggregated breakdowns
- Objective-value validation
- Benders subproblem result collection and Myopic period iteration
- CSV writers for every solution algorithm

Usage:
    from energy_costing import CaseSettings, discount_fixed_costs, get_detailed_costs

    settings = CaseSettings(DiscountRate=0.05, PeriodLengths=(5, 5, 5))
    discount_fixed_costs(period, settings)
    costs = get_detailed_costs(period, settings)
"""

from .economics import (
    total_years,
    years_remaining,
    present_value_factor,
    present_value_annuity_factor,
    capital_recovery_factor,
    get_retirement_period,
)
from .settings import SolutionAlgorithm, CaseSettings, applicable_horizon, load_case_settings
from .exceptions import (
    CostAccountingError,
    CostBasisError,
    SubproblemMergeError,
    SubproblemIndexError,
    SettingsError,
    RestartDataError,
)
from .network import (
    CostBasis, TimeData, Node, Edge, EdgeWithUC, Storage, Transformation,
    BalanceConstraint, Asset, Period, Case
)
from .discounting import (
    compute_annualized_costs,
    discount_fixed_costs,
    undo_discount_fixed_costs,
    add_costs_not_seen_by_myopic,
)
from .cost_breakdown import (
    get_detailed_costs,
    get_detailed_costs_benders,
    aggregate_costs_by_type,
    aggregate_costs_by_zone,
    aggregate_operational_costs,
    add_total_row,
)
from .validation import validate_total_cost
from .benders import BendersResults, SubproblemsData, get_period_to_subproblem_mapping
from .outputs import write_outputs, write_outputs_benders
from .myopic import run_myopic_iteration
from .logging_setup import initialize_logger, get_logger

__version__ = "0.1.0"

__all__ = [
    # Economics
    'total_years',
    'years_remaining',
    'present_value_factor',
    'present_value_annuity_factor',
    'capital_recovery_factor',
    'get_retirement_period',

    # Settings
    'SolutionAlgorithm',
    'CaseSettings',
    'applicable_horizon',
    'load_case_settings',

    # Errors
    'CostAccountingError',
    'CostBasisError',
    'SubproblemMergeError',
    'SubproblemIndexError',
    'SettingsError',
    'RestartDataError',

    # Network data model
    'CostBasis',
    'TimeData',
    'Node',
    'Edge',
    'EdgeWithUC',
    'Storage',
    'Transformation',
    'BalanceConstraint',
    'Asset',
    'Period',
    'Case',

    # Discounting and costs
    'compute_annualized_costs',
    'discount_fixed_costs',
    'undo_discount_fixed_costs',
    'add_costs_not_seen_by_myopic',
    'get_detailed_costs',
    'get_detailed_costs_benders',
    'aggregate_costs_by_type',
    'aggregate_costs_by_zone',
    'aggregate_operational_costs',
    'add_total_row',
    'validate_total_cost',

    # Drivers
    'BendersResults',
    'SubproblemsData',
    'get_period_to_subproblem_mapping',
    'write_outputs',
    'write_outputs_benders',
    'run_myopic_iteration',

    # Logging
    'initialize_logger',
    'get_logger',
]
