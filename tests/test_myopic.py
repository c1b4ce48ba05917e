"""
Unit tests for myopic.py module.
Tests the period-by-period driver with a stand-in solver that only fixes
capacity variables, plus capacity carry-over and restarts.
"""

import unittest
import sys
import os
import tempfile
from pathlib import Path

import pandas as pd
import pyomo.environ as pyo

# Add src directory to Python path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from energy_costing.cost_expressions import build_objective_cost_expressions
from energy_costing.exceptions import RestartDataError
from energy_costing.myopic import (
    carry_over_capacities,
    compute_retirement_period,
    load_previous_capacity_results,
    run_myopic_iteration,
    validate_existing_capacity,
)
from energy_costing.network import Case, Storage, get_capacity_components
from energy_costing.settings import CaseSettings

from conftest import attach_capacity_variables, build_period


def solve_period(period, settings):
    model = pyo.ConcreteModel()
    attach_capacity_variables(model, period)
    build_objective_cost_expressions(model, [period], settings)
    return model


def myopic_settings(**myopic):
    return CaseSettings.from_dict({
        "DiscountRate": 0.0,
        "PeriodLengths": [5, 5],
        "SolutionAlgorithm": "Myopic",
        "MyopicSettings": myopic,
    })


def components_by_id(period):
    return {c.id: c for c in get_capacity_components(period)}


def write_capacity_results(results_dir, df):
    results_dir.mkdir(parents=True, exist_ok=True)
    df.to_csv(results_dir / "capacity.csv", index=False)


class TestMyopicIteration(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.case_dir = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def make_case(self, settings):
        periods = [build_period(settings, period_index=idx) for idx in (1, 2)]
        return Case(periods=periods, settings=settings, data_dirpath=str(self.case_dir))

    def test_capacity_carried_to_next_period(self):
        case = self.make_case(myopic_settings())
        results = run_myopic_iteration(case, solve_period)

        self.assertEqual(results.periods_solved, [1, 2])
        self.assertIsNone(results.models)
        second = components_by_id(case.periods[1])
        self.assertEqual(second["ngcc_elec_edge"].existing_capacity, 15.0)
        self.assertEqual(second["battery_storage"].existing_capacity, 5.0)
        self.assertEqual(second["ngcc_elec_edge"].new_capacity_track, {1: 5.0})

        results_dir = self.case_dir / "results"
        for idx in (1, 2):
            self.assertTrue((results_dir / f"results_period_{idx}" / "costs_by_type.csv").exists())
        self.assertTrue((results_dir / "settings.json").exists())

    def test_second_period_reports_carried_capacity(self):
        case = self.make_case(myopic_settings())
        run_myopic_iteration(case, solve_period)
        capacity = pd.read_csv(self.case_dir / "results" / "results_period_2" / "capacity.csv")
        elec = capacity[capacity["component_id"] == "ngcc_elec_edge"].set_index("variable")["value"]
        self.assertEqual(elec["capacity"], 20.0)

    def test_stop_after_period(self):
        case = self.make_case(myopic_settings(StopAfterPeriod=1))
        results = run_myopic_iteration(case, solve_period, output_path=self.case_dir / "out")
        self.assertEqual(results.periods_solved, [1])
        self.assertFalse((self.case_dir / "out" / "results_period_2").exists())

    def test_return_models(self):
        case = self.make_case(myopic_settings(ReturnModels=True))
        results = run_myopic_iteration(case, solve_period)
        self.assertEqual(len(results.models), 2)
        self.assertTrue(hasattr(results.models[0], "SystemCost"))

    def test_restart_from_long_results(self):
        write_capacity_results(self.case_dir / "results" / "results_period_1", pd.DataFrame({
            "component_id": ["ngcc_elec_edge"] * 3,
            "variable": ["capacity", "new_capacity", "retired_capacity"],
            "value": [20.0, 3.0, 0.0],
        }))
        case = self.make_case(myopic_settings(Restart={"enabled": True, "from_period": 2}))
        results = run_myopic_iteration(case, solve_period)

        self.assertEqual(results.periods_solved, [2])
        second = components_by_id(case.periods[1])
        self.assertEqual(second["ngcc_elec_edge"].existing_capacity, 20.0)
        self.assertEqual(second["ngcc_elec_edge"].new_capacity_track, {1: 3.0})
        # not in the restart file: inputs are kept
        self.assertEqual(second["battery_storage"].existing_capacity, 4.0)

    def test_restart_from_wide_results(self):
        write_capacity_results(self.case_dir / "saved" / "results_period_1", pd.DataFrame({
            "component_id": ["ngcc_elec_edge", "battery_storage"],
            "capacity": [12.0, 6.0],
            "new_capacity": [2.0, 2.0],
        }))
        settings = myopic_settings(Restart={"enabled": True, "from_period": 2, "folder": "saved"})
        case = self.make_case(settings)
        run_myopic_iteration(case, solve_period)

        second = components_by_id(case.periods[1])
        self.assertEqual(second["battery_storage"].existing_capacity, 6.0)
        self.assertEqual(second["battery_storage"].new_capacity_track, {1: 2.0})

    def test_restart_with_missing_results(self):
        case = self.make_case(myopic_settings(Restart={"enabled": True, "from_period": 2}))
        with self.assertRaises(RestartDataError):
            run_myopic_iteration(case, solve_period)

    def test_restart_with_unknown_format(self):
        write_capacity_results(self.case_dir / "results" / "results_period_1",
                               pd.DataFrame({"name": ["ngcc_elec_edge"], "size": [1.0]}))
        case = self.make_case(myopic_settings(Restart={"enabled": True, "from_period": 2}))
        with self.assertRaises(RestartDataError):
            load_previous_capacity_results(case, 2)

    def test_restart_disabled_ignores_from_period(self):
        case = self.make_case(myopic_settings(Restart={"enabled": False, "from_period": 2}))
        results = run_myopic_iteration(case, solve_period)
        self.assertEqual(results.periods_solved, [1, 2])


class TestCarryOver(unittest.TestCase):

    def setUp(self):
        self.settings = myopic_settings()
        self.first = build_period(self.settings, period_index=1)
        self.second = build_period(self.settings, period_index=2)

    def test_perfect_foresight_keeps_existing_capacity(self):
        carry_over_capacities(self.second, self.first, perfect_foresight=True)
        elec = components_by_id(self.second)["ngcc_elec_edge"]
        self.assertEqual(elec.existing_capacity, 10.0)
        self.assertEqual(elec.new_capacity_track, {1: 5.0})
        self.assertEqual(elec.retired_capacity_track, {1: 0.0})

    def test_new_component_warns_about_existing_capacity(self):
        extra = Storage(id="h2_storage", time_data=self.second.reference_time_data, existing_capacity=2.0)
        self.second.assets[1].components["h2"] = extra
        with self.assertLogs("energy_costing.myopic", level="WARNING") as logs:
            carry_over_capacities(self.second, self.first)
        self.assertIn("h2_storage", logs.output[0])

    def test_validate_existing_capacity_silent_for_zero(self):
        storage = Storage(id="empty_storage")
        with self.assertNoLogs("energy_costing.myopic", level="WARNING"):
            validate_existing_capacity(storage)

    def test_retirement_period(self):
        settings = CaseSettings.from_dict({"PeriodLengths": [5, 5, 5, 5], "SolutionAlgorithm": "Myopic"})
        period = build_period(settings, period_index=4)
        elec = components_by_id(period)["ngcc_elec_edge"]
        elec.can_retire = True
        elec.lifetime = 15
        compute_retirement_period(period, settings)
        self.assertEqual(elec.retirement_period, 1)


if __name__ == '__main__':
    unittest.main()
