"""
Network data model consumed by the cost accounting engine.

Building the network and its constraints happens elsewhere; this module only
defines the containers the accounting code reads from and writes to. Decision
values may be pyomo variables/expressions or plain numbers, and are always read
through ``value_of`` so solved models and hand-filled test data look the same.
"""

import logging
from dataclasses import dataclass, field
from enum import Flag
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import pyomo.environ as pyo

from . import config
from .settings import CaseSettings

logger = logging.getLogger(__name__)


def value_of(component, default=0.0):
    """
    Numeric value of a decision variable, expression, parameter or number.

    Unpopulated variables (no solver value) and NaN resolve to ``default``.
    """
    if component is None:
        return default
    if isinstance(component, (int, float, np.number)):
        val = float(component)
    else:
        val = pyo.value(component, exception=False)
    if val is None or (isinstance(val, float) and np.isnan(val)):
        return default
    return float(val)


def series_value(container, index, default=0.0):
    """Value of ``container[index]`` for dicts, lists (1-based), pandas series and pyomo indexed components."""
    if container is None:
        return default
    if isinstance(container, (list, tuple, np.ndarray)):
        pos = index - 1
        if pos < 0 or pos >= len(container):
            return default
        return value_of(container[pos], default)
    if isinstance(container, pd.Series):
        return value_of(container.get(index), default)
    if hasattr(container, "is_indexed") and container.is_indexed():
        if index not in container.index_set():
            return default
        return value_of(container[index], default)
    if isinstance(container, Mapping):
        return value_of(container.get(index), default)
    raise TypeError(f"Unsupported container type {type(container).__name__}")


def indexed(values: Iterable, start: int = 1) -> Dict[int, Any]:
    """Dict keyed by consecutive integers starting at ``start``."""
    return {i: v for i, v in enumerate(values, start=start)}


def indexed_2d(rows: Sequence[Sequence], start: int = 1) -> Dict[Tuple[int, int], Any]:
    """Dict keyed by ``(row, column)``, e.g. ``(segment, time)``."""
    return {
        (s, t): v
        for s, row in enumerate(rows, start=start)
        for t, v in enumerate(row, start=start)
    }


class CostBasis(Flag):
    """Which cost representations of a capacity-bearing component are current."""
    STALE = 0
    DISCOUNTED = 1
    UNDISCOUNTED = 2


@dataclass
class TimeData:
    """Time steps of one period and how they map to weighted subperiods."""
    time_interval: range = range(1, 2)
    subperiod_map: Dict[int, int] = field(default_factory=dict)  # t -> w
    subperiod_weights: Dict[int, float] = field(default_factory=dict)  # w -> weight
    period_index: int = 1

    def current_subperiod(self, t: int) -> int:
        return self.subperiod_map.get(t, 1)

    def subperiod_weight(self, w: int) -> float:
        return float(self.subperiod_weights.get(w, 1.0))

    def weight_at(self, t: int) -> float:
        return self.subperiod_weight(self.current_subperiod(t))

    @property
    def subperiod_indices(self) -> List[int]:
        if not self.subperiod_map:
            return sorted(self.subperiod_weights) or [1]
        return sorted(set(self.subperiod_map.values()))

    @classmethod
    def uniform(cls, n_steps: int, weight: float = 1.0, period_index: int = 1, start: int = 1) -> "TimeData":
        """One subperiod covering ``n_steps`` time steps."""
        interval = range(start, start + n_steps)
        return cls(
            time_interval=interval,
            subperiod_map={t: 1 for t in interval},
            subperiod_weights={1: weight},
            period_index=period_index,
        )

    @classmethod
    def from_subperiods(cls, subperiod_lengths: Sequence[int], weights: Sequence[float],
                        period_index: int = 1, start: int = 1) -> "TimeData":
        """Consecutive subperiods numbered from 1, each with its own weight."""
        subperiod_map = {}
        t = start
        for w, length in enumerate(subperiod_lengths, start=1):
            for _ in range(length):
                subperiod_map[t] = w
                t += 1
        return cls(
            time_interval=range(start, t),
            subperiod_map=subperiod_map,
            subperiod_weights=indexed(weights),
            period_index=period_index,
        )

    def restrict(self, subperiods: Iterable[int]) -> "TimeData":
        """Time data of the listed subperiods only (one Benders subproblem)."""
        keep = set(subperiods)
        steps = [t for t in self.time_interval if self.current_subperiod(t) in keep]
        interval = range(steps[0], steps[-1] + 1) if steps else range(0)
        return TimeData(
            time_interval=interval,
            subperiod_map={t: self.subperiod_map[t] for t in steps},
            subperiod_weights={w: self.subperiod_weights[w] for w in keep if w in self.subperiod_weights},
            period_index=self.period_index,
        )


@dataclass
class Component:
    id: str
    time_data: Optional[TimeData] = None

    @property
    def period_index(self) -> int:
        return self.time_data.period_index if self.time_data is not None else 1

    @property
    def time_interval(self) -> range:
        return self.time_data.time_interval if self.time_data is not None else range(0)

    def weight_at(self, t: int) -> float:
        return self.time_data.weight_at(t) if self.time_data is not None else 1.0

    @property
    def subperiod_indices(self) -> List[int]:
        return self.time_data.subperiod_indices if self.time_data is not None else []

    def subperiod_weight(self, w: int) -> float:
        return self.time_data.subperiod_weight(w) if self.time_data is not None else 1.0


@dataclass
class Vertex(Component):
    location: Optional[str] = None


@dataclass
class BalanceConstraint:
    """Balance equations of a node and, after solve, their duals by balance id."""
    balance_ids: List[str] = field(default_factory=lambda: ["demand"])
    constraint_ref: Any = None  # pyomo constraint indexed by (balance_id, t)
    constraint_dual: Optional[Dict[str, List[float]]] = None

    def set_constraint_dual(self, time_interval: Iterable[int]) -> Dict[str, List[float]]:
        """Read the duals of every balance equation from the owning model's ``dual`` suffix."""
        if self.constraint_ref is None:
            return self.constraint_dual
        duals = {}
        for balance_id in self.balance_ids:
            duals[balance_id] = [
                constraint_dual_value(self.constraint_ref[balance_id, t]) for t in time_interval
            ]
        self.constraint_dual = duals
        return duals


def constraint_dual_value(constraint, default=0.0) -> float:
    """Dual of a solved constraint, looked up on its model's ``dual`` suffix.

    Numbers are returned unchanged so duals can also be stored directly.
    """
    if constraint is None:
        return default
    if isinstance(constraint, (int, float, np.number)):
        return float(constraint)
    dual_suffix = getattr(constraint.model(), "dual", None)
    if dual_suffix is None:
        logger.warning(f"No dual suffix on the model owning {constraint.name}; returning {default}")
        return default
    return value_of(dual_suffix.get(constraint), default)


@dataclass
class Node(Vertex):
    commodity: str = config.DEFAULT_COMMODITY
    price: Any = field(default_factory=dict)  # t -> price
    max_nsd: List[float] = field(default_factory=list)  # one entry per NSD segment
    price_nsd: List[float] = field(default_factory=list)
    non_served_demand: Any = field(default_factory=dict)  # (s, t) -> value
    max_supply: List[float] = field(default_factory=list)  # one entry per supply segment
    price_supply: List[float] = field(default_factory=list)
    supply_flow: Any = field(default_factory=dict)  # (s, t) -> value
    price_unmet_policy: Dict[str, float] = field(default_factory=dict)  # constraint type -> price
    policy_slack_vars: Dict[str, Any] = field(default_factory=dict)  # "<type>_Slack" -> {w: value}
    balance_constraint: Optional[BalanceConstraint] = None
    policy_budgeting_constraints: Dict[str, Any] = field(default_factory=dict)  # constraint type -> constraint

    @property
    def nsd_segments(self) -> range:
        return range(1, len(self.max_nsd) + 1)

    @property
    def supply_segments(self) -> range:
        return range(1, len(self.max_supply) + 1)

    def price_at(self, t: int) -> float:
        return series_value(self.price, t)

    def has_price(self) -> bool:
        return self.price is not None and len(self.price) > 0

    def has_non_served_demand(self) -> bool:
        return len(self.max_nsd) > 0 and self.non_served_demand is not None and len(self.non_served_demand) > 0

    def has_supply(self) -> bool:
        return any(x != 0 for x in self.max_supply)

    def has_operational_costs(self) -> bool:
        return self.has_non_served_demand() or self.has_supply() or bool(self.policy_slack_vars)


@dataclass
class Transformation(Vertex):
    pass


@dataclass
class CapacityComponent(Component):
    """Fields shared by edges and storages: capacity decisions, cost rates and their period views."""
    has_capacity: bool = False
    can_expand: bool = False
    can_retire: bool = False
    existing_capacity: Any = 0.0
    new_capacity: Any = 0.0
    retired_capacity: Any = 0.0
    investment_cost: float = 0.0  # overnight cost per unit of capacity
    annualized_investment_cost: Optional[float] = None
    wacc: Optional[float] = None
    capital_recovery_period: int = 1
    lifetime: int = 1
    retirement_period: int = 0
    fixed_om_cost: float = 0.0
    variable_om_cost: float = 0.0

    # Present value at period start, set by discount_fixed_costs
    pv_period_investment_cost: Optional[float] = None
    pv_period_fixed_om_cost: Optional[float] = None
    pv_period_variable_om_cost: Optional[float] = None
    # Undiscounted period cash flows, set by undo_discount_fixed_costs
    cf_period_investment_cost: Optional[float] = None
    cf_period_fixed_om_cost: Optional[float] = None
    cf_period_variable_om_cost: Optional[float] = None

    cost_basis: CostBasis = CostBasis.STALE
    myopic_finalized: bool = False

    new_capacity_track: Dict[int, Any] = field(default_factory=dict)  # period -> new capacity
    retired_capacity_track: Dict[int, Any] = field(default_factory=dict)

    @property
    def capacity(self):
        return self.existing_capacity + self.new_capacity - self.retired_capacity

    def mark_stale(self) -> None:
        """Invalidate both cost views, e.g. after a cost rate changed."""
        self.cost_basis = CostBasis.STALE
        self.myopic_finalized = False
        self.pv_period_investment_cost = None
        self.pv_period_fixed_om_cost = None
        self.pv_period_variable_om_cost = None
        self.cf_period_investment_cost = None
        self.cf_period_fixed_om_cost = None
        self.cf_period_variable_om_cost = None


@dataclass
class Edge(CapacityComponent):
    start_vertex: Optional[Vertex] = None
    end_vertex: Optional[Vertex] = None
    commodity: str = config.DEFAULT_COMMODITY
    flow: Any = field(default_factory=dict)  # t -> flow

    def flow_at(self, t: int) -> float:
        return series_value(self.flow, t)


@dataclass
class EdgeWithUC(Edge):
    """Edge with unit commitment: startups are priced per unit of ``capacity_size``."""
    startup_cost: float = 0.0
    capacity_size: float = 1.0
    ustart: Any = field(default_factory=dict)  # t -> startups


@dataclass
class Storage(CapacityComponent, Vertex):
    has_capacity: bool = True
    commodity: str = config.DEFAULT_COMMODITY
    storage_level: Any = field(default_factory=dict)  # t -> level


@dataclass
class Asset:
    """A named group of network components, e.g. a power plant with its edges."""
    id: str
    type_name: str
    components: Dict[str, Component] = field(default_factory=dict)

    def iter_components(self) -> List[Component]:
        return list(self.components.values())

    def capacity_components(self) -> List[CapacityComponent]:
        return [c for c in self.components.values() if isinstance(c, CapacityComponent)]


@dataclass
class Period:
    """One planning period with its own copy of the network."""
    assets: List[Asset]
    nodes: List[Node]
    settings: CaseSettings
    time_data: Dict[str, TimeData] = field(default_factory=dict)  # commodity -> time data
    name: str = ""

    @property
    def period_index(self) -> int:
        if config.DEFAULT_COMMODITY in self.time_data:
            return self.time_data[config.DEFAULT_COMMODITY].period_index
        if self.time_data:
            return next(iter(self.time_data.values())).period_index
        for component in self.iter_components():
            if component.time_data is not None:
                return component.period_index
        return 1

    @property
    def reference_time_data(self) -> Optional[TimeData]:
        if config.DEFAULT_COMMODITY in self.time_data:
            return self.time_data[config.DEFAULT_COMMODITY]
        return next(iter(self.time_data.values()), None)

    def iter_components(self) -> List[Component]:
        return [c for asset in self.assets for c in asset.iter_components()]


@dataclass
class Case:
    periods: List[Period]
    settings: CaseSettings
    name: str = "case"
    data_dirpath: str = "."

    @property
    def num_periods(self) -> int:
        return len(self.periods)


# -----------------------------
# Lookups
# -----------------------------

def get_edges(period: Period, return_ids_map: bool = False):
    edges = []
    asset_map = {}
    for asset in period.assets:
        for component in asset.iter_components():
            if isinstance(component, Edge):
                edges.append(component)
                asset_map[component.id] = asset
    return (edges, asset_map) if return_ids_map else edges


def get_storages(period: Period, return_ids_map: bool = False):
    storages = []
    asset_map = {}
    for asset in period.assets:
        for component in asset.iter_components():
            if isinstance(component, Storage):
                storages.append(component)
                asset_map[component.id] = asset
    return (storages, asset_map) if return_ids_map else storages


def get_nodes(period: Period) -> List[Node]:
    return [n for n in period.nodes if isinstance(n, Node)]


def find_node(period: Period, node_id: str) -> Optional[Node]:
    for node in get_nodes(period):
        if node.id == node_id:
            return node
    return None


def get_capacity_components(period: Period, return_ids_map: bool = False):
    edges, edge_map = get_edges(period, return_ids_map=True)
    storages, storage_map = get_storages(period, return_ids_map=True)
    components = [e for e in edges if e.has_capacity] + storages
    if return_ids_map:
        return components, {**edge_map, **storage_map}
    return components


def get_zone_name(obj) -> str:
    """Zone of a vertex, or of an edge derived from the locations of its vertices."""
    if isinstance(obj, Edge):
        start_loc = obj.start_vertex.location if obj.start_vertex is not None else None
        end_loc = obj.end_vertex.location if obj.end_vertex is not None else None
        if start_loc is not None and end_loc is not None:
            return str(start_loc) if start_loc == end_loc else f"{start_loc}_{end_loc}"
        if start_loc is not None:
            return str(start_loc)
        if end_loc is not None:
            return str(end_loc)
        start_id = obj.start_vertex.id if obj.start_vertex is not None else ""
        end_id = obj.end_vertex.id if obj.end_vertex is not None else ""
        return f"{start_id}_{end_id}"
    return str(obj.id) if obj.location is None else str(obj.location)


def get_type(obj) -> str:
    if isinstance(obj, Asset):
        return obj.type_name
    commodity = getattr(obj, "commodity", None)
    name = type(obj).__name__
    return f"{name}{{{commodity}}}" if commodity else name


def get_commodity_name(obj) -> str:
    return getattr(obj, "commodity", "")


def get_resource_id(obj, asset_map: Optional[Mapping[str, Asset]] = None) -> str:
    if isinstance(obj, Node) or asset_map is None:
        return obj.id
    return asset_map[obj.id].id


# Sign of an edge flow seen from the network, by (start, end) vertex kinds
_FLOW_SIGNS = {
    (Node, Node): 1.0,
    (Node, Storage): -1.0,
    (Node, Transformation): -1.0,
    (Storage, Node): 1.0,
    (Storage, Storage): 1.0,
    (Storage, Transformation): 1.0,
    (Transformation, Node): 1.0,
    (Transformation, Storage): -1.0,
    (Transformation, Transformation): 1.0,
}


def _vertex_kind(vertex):
    for kind in (Node, Storage, Transformation):
        if isinstance(vertex, kind):
            return kind
    return None


def get_flow_sign(edge: Edge) -> float:
    key = (_vertex_kind(edge.start_vertex), _vertex_kind(edge.end_vertex))
    return _FLOW_SIGNS.get(key, 1.0)
