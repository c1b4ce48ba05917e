"""
Shared test fixtures for the cost accounting tests.
"""

import pytest
import pyomo.environ as pyo

# Add src directory to Python path if running tests from a different location
import sys
import os
sys.path.append(os.path.abspath(os.path.join(
    os.path.dirname(__file__), '..', 'src')))

from energy_costing.network import (  # noqa: E402
    Asset,
    Edge,
    Node,
    Period,
    Storage,
    TimeData,
    Transformation,
    get_capacity_components,
    indexed,
    indexed_2d,
    value_of,
)
from energy_costing.settings import CaseSettings  # noqa: E402


def build_period(settings, period_index=1, time_data=None, n_steps=3):
    """
    Small power system: a gas plant (fuel edge + electricity edge), a battery,
    a priced gas node and an electricity demand node with one NSD segment.

    Annual operating costs with unit weights: VariableOM 6, Fuel 24.
    """
    td = time_data if time_data is not None else TimeData.uniform(n_steps, period_index=period_index)
    steps = list(td.time_interval)
    n = len(steps)
    start = steps[0] if steps else 1

    def series(values):
        return indexed(values[:n], start=start)

    gas_node = Node(id="natgas_SE", time_data=td, location="SE", commodity="NaturalGas",
                    price=series([2.0] * n))
    elec_node = Node(id="elec_SE", time_data=td, location="SE", max_nsd=[1.0], price_nsd=[1000.0],
                     non_served_demand={(1, t): 0.0 for t in steps})
    plant = Transformation(id="ngcc_transform", time_data=td, location="SE")
    fuel_edge = Edge(id="ngcc_fuel_edge", time_data=td, start_vertex=gas_node, end_vertex=plant,
                     commodity="NaturalGas", flow=series([2.0, 4.0, 6.0]))
    elec_edge = Edge(id="ngcc_elec_edge", time_data=td, start_vertex=plant, end_vertex=elec_node,
                     has_capacity=True, can_expand=True, existing_capacity=10.0, new_capacity=5.0,
                     annualized_investment_cost=100.0, capital_recovery_period=10, lifetime=30,
                     fixed_om_cost=10.0, variable_om_cost=1.0, flow=series([1.0, 2.0, 3.0]))
    battery = Storage(id="battery_storage", time_data=td, location="SE", can_expand=True,
                      existing_capacity=4.0, new_capacity=1.0, annualized_investment_cost=50.0,
                      capital_recovery_period=5, lifetime=15, fixed_om_cost=2.0,
                      storage_level=series([1.0, 2.0, 1.0]))
    ngcc = Asset(id="ngcc_SE", type_name="ThermalPower{NaturalGas}", components={
        "transform": plant, "fuel_edge": fuel_edge, "elec_edge": elec_edge,
    })
    bat = Asset(id="battery_SE", type_name="Battery", components={"storage": battery})
    return Period(assets=[ngcc, bat], nodes=[gas_node, elec_node], settings=settings,
                  time_data={"Electricity": td}, name=f"period_{period_index}")


def attach_capacity_variables(model, period):
    """Replace numeric new capacities with fixed pyomo variables, as a solved model holds them."""
    for component in get_capacity_components(period):
        var = pyo.Var(within=pyo.NonNegativeReals, initialize=value_of(component.new_capacity))
        model.add_component(f"vNEW_CAPACITY_{component.id}_p{component.period_index}", var)
        var.fix()
        component.new_capacity = var
    return model


@pytest.fixture
def zero_rate_settings():
    return CaseSettings(DiscountRate=0.0, PeriodLengths=(5,))


@pytest.fixture
def settings_three_periods():
    return CaseSettings(DiscountRate=0.05, PeriodLengths=(5, 5, 5))


@pytest.fixture
def period_factory():
    return build_period


@pytest.fixture
def nsd_node():
    """Node with two NSD segments priced at 100 over three unit-weight time steps."""
    return Node(
        id="elec_demand",
        time_data=TimeData.uniform(3),
        max_nsd=[0.1, 0.2],
        price_nsd=[100.0, 100.0],
        non_served_demand=indexed_2d([[1, 2, 3], [4, 5, 6]]),
    )
