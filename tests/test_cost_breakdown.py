"""
Unit tests for cost_breakdown.py module.
Tests detailed cost tables, their discounting and aggregation.
"""

import unittest
import sys
import os

import pandas as pd
import pytest

# Add src directory to Python path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from energy_costing.cost_breakdown import (
    COST_COLUMNS,
    add_total_row,
    aggregate_costs_by_type,
    aggregate_costs_by_zone,
    aggregate_operational_costs,
    get_detailed_costs,
    get_detailed_costs_benders,
    period_discount_factors,
    reshape_costs_wide,
)
from energy_costing.discounting import discount_fixed_costs
from energy_costing.economics import present_value_annuity_factor, present_value_factor
from energy_costing.exceptions import CostBasisError
from energy_costing.network import Period
from energy_costing.settings import CaseSettings

from conftest import build_period


def _value(table, type_name, category):
    rows = table[(table["type"] == type_name) & (table["category"] == category)]
    assert len(rows) == 1
    return float(rows["value"].iloc[0])


class TestDetailedCosts(unittest.TestCase):

    def setUp(self):
        self.settings = CaseSettings(DiscountRate=0.0, PeriodLengths=(5,))
        self.period = build_period(self.settings)
        discount_fixed_costs(self.period, self.settings)

    def test_line_items(self):
        costs = get_detailed_costs(self.period, self.settings)
        discounted = costs.discounted
        self.assertEqual(list(discounted.columns), COST_COLUMNS)
        self.assertAlmostEqual(_value(discounted, "ThermalPower{NaturalGas}", "VariableOM"), 6.0 * 5)
        self.assertAlmostEqual(_value(discounted, "ThermalPower{NaturalGas}", "Fuel"), 24.0 * 5)
        self.assertAlmostEqual(_value(discounted, "Battery", "Investment"), 250.0)
        self.assertAlmostEqual(discounted["value"].sum(), 3700.0)
        self.assertAlmostEqual(costs.undiscounted["value"].sum(), 3700.0)

    def test_zero_cost_node_rows_are_dropped(self):
        costs = get_detailed_costs(self.period, self.settings)
        self.assertNotIn("NonServedDemand", set(costs.discounted["category"]))
        self.assertEqual(set(costs.discounted["zone"]), {"SE"})

    def test_scaling_is_squared(self):
        unscaled = get_detailed_costs(self.period, self.settings, scaling=1.0).undiscounted
        scaled = get_detailed_costs(self.period, self.settings, scaling=2.0).undiscounted
        self.assertAlmostEqual(
            _value(scaled, "ThermalPower{NaturalGas}", "VariableOM"),
            4 * _value(unscaled, "ThermalPower{NaturalGas}", "VariableOM"),
        )

    def test_requires_discounting(self):
        fresh = build_period(self.settings)
        with self.assertRaises(CostBasisError):
            get_detailed_costs(fresh, self.settings)


def test_discount_factors_by_category():
    settings = CaseSettings(DiscountRate=0.05, PeriodLengths=(5, 5, 5))
    period = build_period(settings, period_index=2)
    discount_fixed_costs(period, settings)
    costs = get_detailed_costs(period, settings)

    discount_factor = present_value_factor(0.05, 5)
    opexmult = present_value_annuity_factor(0.05, 5)
    assert period_discount_factors(2, settings) == (pytest.approx(discount_factor), pytest.approx(opexmult), 5)

    annual_variable_om = 6.0
    assert _value(costs.discounted, "ThermalPower{NaturalGas}", "VariableOM") == pytest.approx(
        annual_variable_om * discount_factor * opexmult)
    assert _value(costs.undiscounted, "ThermalPower{NaturalGas}", "VariableOM") == pytest.approx(
        annual_variable_om * 5)

    battery = period.assets[1].components["storage"]
    assert _value(costs.discounted, "Battery", "FixedOM") == pytest.approx(
        battery.pv_period_fixed_om_cost * 5.0 * discount_factor)
    assert _value(costs.undiscounted, "Battery", "FixedOM") == pytest.approx(2.0 * 5 * 5.0)


def test_empty_system():
    settings = CaseSettings(DiscountRate=0.05, PeriodLengths=(5,))
    period = Period(assets=[], nodes=[], settings=settings)
    costs = get_detailed_costs(period, settings)
    for table in (costs.discounted, costs.undiscounted):
        assert list(table.columns) == COST_COLUMNS
        assert len(table) == 0
    assert aggregate_costs_by_type(costs.discounted).empty
    assert add_total_row(aggregate_costs_by_zone(costs.discounted), "zone").empty


@pytest.fixture
def cost_table():
    return pd.DataFrame({
        "zone": ["SE", "SE", "NE", "NE", "SE"],
        "type": ["Battery", "ThermalPower", "ThermalPower", "ThermalPower", "Battery"],
        "category": ["Investment", "Fuel", "Fuel", "VariableOM", "FixedOM"],
        "value": [10.0, 20.0, 5.0, 1.5, 2.0],
    })


def test_aggregation_conserves_value(cost_table):
    by_type = aggregate_costs_by_type(cost_table)
    by_zone = aggregate_costs_by_zone(cost_table)
    assert by_type["value"].sum() == pytest.approx(cost_table["value"].sum())
    assert by_zone["value"].sum() == pytest.approx(cost_table["value"].sum())
    assert len(by_type) == 4
    fuel = by_type[(by_type["type"] == "ThermalPower") & (by_type["category"] == "Fuel")]
    assert float(fuel["value"].iloc[0]) == pytest.approx(25.0)


def test_add_total_row(cost_table):
    by_zone = aggregate_costs_by_zone(cost_table)
    with_totals = add_total_row(by_zone, "zone")
    totals = with_totals[with_totals["zone"] == "Total"].set_index("category")["value"]
    assert totals["Fuel"] == pytest.approx(25.0)
    assert totals["Investment"] == pytest.approx(10.0)
    assert totals["Total"] == pytest.approx(38.5)
    assert (with_totals["category"] == "Total").sum() == 1
    # the input table is left untouched
    assert "Total" not in set(by_zone["zone"])


def test_reshape_costs_wide(cost_table):
    wide = reshape_costs_wide(aggregate_costs_by_zone(cost_table), "zone").set_index("zone")
    assert wide.loc["SE", "Fuel"] == pytest.approx(20.0)
    assert wide.loc["NE", "Investment"] == pytest.approx(0.0)
    assert wide.loc["SE", "Total"] == pytest.approx(32.0)
    assert wide.loc["NE", "Total"] == pytest.approx(6.5)


def test_operational_costs_of_subproblems_are_summed():
    first = pd.DataFrame({"zone": ["SE"], "type": ["ThermalPower"], "category": ["VariableOM"], "value": [1.0]})
    second = pd.DataFrame({"zone": ["SE"], "type": ["ThermalPower"], "category": ["VariableOM"], "value": [2.0]})
    combined = aggregate_operational_costs([first, second])
    assert len(combined) == 1
    assert combined["value"].iloc[0] == pytest.approx(3.0)
    assert aggregate_operational_costs([]).empty


def test_detailed_costs_benders():
    settings = CaseSettings(DiscountRate=0.0, PeriodLengths=(5,), SolutionAlgorithm="Benders")
    period = build_period(settings)
    discount_fixed_costs(period, settings)
    operational = pd.DataFrame({
        "zone": ["SE"], "type": ["ThermalPower{NaturalGas}"], "category": ["Fuel"], "value": [24.0],
    })
    costs = get_detailed_costs_benders(period, operational, settings)
    assert set(costs.discounted["category"]) == {"Investment", "FixedOM", "Fuel"}
    assert _value(costs.discounted, "ThermalPower{NaturalGas}", "Fuel") == pytest.approx(24.0 * 5)
    assert _value(costs.undiscounted, "ThermalPower{NaturalGas}", "Fuel") == pytest.approx(24.0 * 5)
    assert _value(costs.discounted, "Battery", "Investment") == pytest.approx(250.0)


if __name__ == '__main__':
    unittest.main()
