"""
Unit tests for cost_expressions.py module.
Tests the model-level cost expressions against the detailed breakdown,
using pyomo models with fixed variable values (no solver needed).
"""

import unittest
import sys
import os

import pyomo.environ as pyo
import pytest

# Add src directory to Python path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from energy_costing.cost_breakdown import (
    add_total_row,
    aggregate_costs_by_type,
    aggregate_costs_by_zone,
    get_detailed_costs,
)
from energy_costing.cost_expressions import (
    build_objective_cost_expressions,
    compute_undiscounted_costs,
    compute_variable_cost_discount_scaling,
    create_discounted_cost_expressions,
    get_optimal_discounted_costs,
    get_optimal_undiscounted_costs,
)
from energy_costing.discounting import discount_fixed_costs
from energy_costing.economics import present_value_annuity_factor, present_value_factor
from energy_costing.settings import CaseSettings

from conftest import attach_capacity_variables, build_period


def build_model(settings, period_indices):
    model = pyo.ConcreteModel()
    periods = []
    for idx in period_indices:
        period = build_period(settings, period_index=idx)
        discount_fixed_costs(period, settings)
        attach_capacity_variables(model, period)
        periods.append(period)
    build_objective_cost_expressions(model, periods, settings)
    return model, periods


class TestObjective(unittest.TestCase):

    def setUp(self):
        self.settings = CaseSettings(DiscountRate=0.05, PeriodLengths=(5, 5, 5))
        self.model, self.periods = build_model(self.settings, [1, 2, 3])

    def test_objective_is_sum_of_period_costs(self):
        total = 0.0
        for period in self.periods:
            create_discounted_cost_expressions(self.model, period, self.settings)
            total += pyo.value(self.model.eDiscountedFixedCost) + pyo.value(self.model.eDiscountedVariableCost)
        self.assertAlmostEqual(pyo.value(self.model.SystemCost), total)

    def test_variable_cost_by_period(self):
        discount_factor = present_value_factor(0.05, 10)
        opexmult = present_value_annuity_factor(0.05, 5)
        self.assertAlmostEqual(pyo.value(self.model.eVariableCostByPeriod[3]), 30.0 * discount_factor * opexmult)

    def test_rebuilding_replaces_components(self):
        build_objective_cost_expressions(self.model, self.periods, self.settings)
        self.assertEqual(len(list(self.model.component_objects(pyo.Objective))), 1)
        self.assertEqual(list(self.model.CostPeriods), [1, 2, 3])

    def test_breakdown_matches_model(self):
        for period in self.periods:
            create_discounted_cost_expressions(self.model, period, self.settings)
            compute_undiscounted_costs(self.model, period, self.settings)
            costs = get_detailed_costs(period, self.settings)
            for table, discounted in ((costs.discounted, True), (costs.undiscounted, False)):
                by_type = add_total_row(aggregate_costs_by_type(table), "type")
                by_zone = add_total_row(aggregate_costs_by_zone(table), "zone")
                total = pyo.value(self.model.eDiscountedFixedCost + self.model.eDiscountedVariableCost) \
                    if discounted else pyo.value(self.model.eFixedCost + self.model.eVariableCost)
                for aggregated in (by_type, by_zone):
                    grand = aggregated.loc[aggregated["category"] == "Total", "value"].iloc[0]
                    self.assertAlmostEqual(grand, total, places=6)

    def test_undiscounted_costs(self):
        period = self.periods[1]
        compute_undiscounted_costs(self.model, period, self.settings)
        self.assertAlmostEqual(pyo.value(self.model.eVariableCost), 5 * 30.0)
        # 10 years remaining: every annuity payment of both components falls in the horizon
        investment = pyo.value(self.model.eInvestmentFixedCost)
        self.assertAlmostEqual(investment, 10 * 100.0 * 5.0 + 5 * 50.0 * 1.0)


class TestAlgorithms(unittest.TestCase):

    def test_myopic_fixed_cost_matches_perfect_foresight(self):
        monolithic = CaseSettings(DiscountRate=0.05, PeriodLengths=(5, 5, 5))
        myopic = CaseSettings(DiscountRate=0.05, PeriodLengths=(5, 5, 5), SolutionAlgorithm="Myopic")
        mono_model, mono_periods = build_model(monolithic, [1])
        myo_model, myo_periods = build_model(myopic, [1])
        create_discounted_cost_expressions(mono_model, mono_periods[0], monolithic)
        create_discounted_cost_expressions(myo_model, myo_periods[0], myopic)
        self.assertAlmostEqual(pyo.value(myo_model.eDiscountedFixedCost), pyo.value(mono_model.eDiscountedFixedCost))
        self.assertLess(pyo.value(myo_model.SystemCost), pyo.value(mono_model.SystemCost))

    def test_benders_variable_cost_comes_from_subproblems(self):
        benders = CaseSettings(DiscountRate=0.05, PeriodLengths=(5,), SolutionAlgorithm="Benders")
        model, periods = build_model(benders, [1])
        create_discounted_cost_expressions(model, periods[0], benders)
        compute_undiscounted_costs(model, periods[0], benders)
        self.assertTrue(hasattr(model, "eDiscountedFixedCost"))
        self.assertFalse(hasattr(model, "eDiscountedVariableCost"))


def test_system_cost_tables():
    model_costs = {"eDiscountedFixedCost": 10.0, "eDiscountedVariableCost": 5.0,
                   "eFixedCost": 20.0, "eVariableCost": 8.0}
    discounted = get_optimal_discounted_costs(model_costs, scaling=2.0)
    assert list(discounted["variable"]) == ["DiscountedFixedCost", "DiscountedVariableCost", "DiscountedTotalCost"]
    assert list(discounted["value"]) == pytest.approx([40.0, 20.0, 60.0])
    undiscounted = get_optimal_undiscounted_costs(model_costs)
    assert list(undiscounted["variable"]) == ["FixedCost", "VariableCost", "TotalCost"]
    assert list(undiscounted["value"]) == pytest.approx([20.0, 8.0, 28.0])
    assert set(undiscounted["type"]) == {"Cost"}


def test_dual_discount_scaling():
    settings = CaseSettings(DiscountRate=0.05, PeriodLengths=(5, 5))
    expected = present_value_factor(0.05, 5) * present_value_annuity_factor(0.05, 5)
    assert compute_variable_cost_discount_scaling(2, settings) == pytest.approx(expected)
    zero = CaseSettings(DiscountRate=0.0, PeriodLengths=(5,))
    assert compute_variable_cost_discount_scaling(1, zero) == 5.0


if __name__ == '__main__':
    unittest.main()
