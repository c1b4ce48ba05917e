"""
Result tables of a solved period: capacities, flows, non-served demand and
storage levels, in long layout, plus the long-to-wide reshape.
"""

import logging
from typing import List, Mapping, Optional, Sequence

import pandas as pd

from .network import (
    Asset,
    Edge,
    Node,
    Period,
    Storage,
    get_capacity_components,
    get_commodity_name,
    get_edges,
    get_flow_sign,
    get_nodes,
    get_resource_id,
    get_storages,
    get_type,
    get_zone_name,
    series_value,
    value_of,
)

logger = logging.getLogger(__name__)

CAPACITY_COLUMNS = ["commodity", "zone", "resource_id", "component_id", "type", "variable", "value"]
FLOW_COLUMNS = ["commodity", "node_in", "node_out", "resource_id", "component_id", "type", "time", "value"]
NSD_COLUMNS = ["commodity", "zone", "component_id", "type", "segment", "time", "value"]
STORAGE_COLUMNS = ["commodity", "zone", "resource_id", "component_id", "type", "time", "value"]


def _empty(columns: Sequence[str]) -> pd.DataFrame:
    return pd.DataFrame(columns=list(columns))


def _concat(tables: List[pd.DataFrame], columns: Sequence[str]) -> pd.DataFrame:
    tables = [t for t in tables if t is not None and not t.empty]
    if not tables:
        return _empty(columns)
    return pd.concat(tables, ignore_index=True)


def get_optimal_capacity(period: Period, scaling: float = 1.0) -> pd.DataFrame:
    """capacity, new_capacity and retired_capacity of every capacity-bearing component."""
    components, asset_map = get_capacity_components(period, return_ids_map=True)
    rows = []
    for component in components:
        asset = asset_map[component.id]
        base = {
            "commodity": get_commodity_name(component),
            "zone": get_zone_name(component),
            "resource_id": asset.id,
            "component_id": component.id,
            "type": get_type(asset),
        }
        for variable, quantity in [
            ("capacity", component.capacity),
            ("new_capacity", component.new_capacity),
            ("retired_capacity", component.retired_capacity),
        ]:
            rows.append({**base, "variable": variable, "value": value_of(quantity) * scaling})
    if not rows:
        return _empty(CAPACITY_COLUMNS)
    return pd.DataFrame(rows, columns=CAPACITY_COLUMNS)


def get_optimal_flow(edge: Edge, scaling: float = 1.0,
                     asset_map: Optional[Mapping[str, Asset]] = None) -> pd.DataFrame:
    """Signed flow of one edge at every time step."""
    sign = get_flow_sign(edge)
    times = list(edge.time_interval)
    return pd.DataFrame({
        "commodity": get_commodity_name(edge),
        "node_in": edge.start_vertex.id if edge.start_vertex is not None else "",
        "node_out": edge.end_vertex.id if edge.end_vertex is not None else "",
        "resource_id": get_resource_id(edge, asset_map),
        "component_id": edge.id,
        "type": get_type(asset_map[edge.id]) if asset_map else get_type(edge),
        "time": times,
        "value": [sign * edge.flow_at(t) * scaling for t in times],
    }, columns=FLOW_COLUMNS)


def get_optimal_flows(period: Period, scaling: float = 1.0) -> pd.DataFrame:
    edges, asset_map = get_edges(period, return_ids_map=True)
    return _concat([get_optimal_flow(e, scaling, asset_map) for e in edges], FLOW_COLUMNS)


def get_optimal_non_served_demand(node: Node, scaling: float = 1.0) -> pd.DataFrame:
    if not node.has_non_served_demand():
        return _empty(NSD_COLUMNS)
    rows = [
        {
            "commodity": get_commodity_name(node),
            "zone": get_zone_name(node),
            "component_id": node.id,
            "type": get_type(node),
            "segment": s,
            "time": t,
            "value": series_value(node.non_served_demand, (s, t)) * scaling,
        }
        for s in node.nsd_segments
        for t in node.time_interval
    ]
    return pd.DataFrame(rows, columns=NSD_COLUMNS)


def get_optimal_non_served_demands(period: Period, scaling: float = 1.0) -> pd.DataFrame:
    return _concat([get_optimal_non_served_demand(n, scaling) for n in get_nodes(period)], NSD_COLUMNS)


def get_optimal_storage_level(storages: Sequence[Storage], scaling: float = 1.0,
                              asset_map: Optional[Mapping[str, Asset]] = None) -> pd.DataFrame:
    rows = []
    for g in storages:
        for t in g.time_interval:
            rows.append({
                "commodity": get_commodity_name(g),
                "zone": get_zone_name(g),
                "resource_id": get_resource_id(g, asset_map),
                "component_id": g.id,
                "type": get_type(asset_map[g.id]) if asset_map else get_type(g),
                "time": t,
                "value": series_value(g.storage_level, t) * scaling,
            })
    if not rows:
        return _empty(STORAGE_COLUMNS)
    return pd.DataFrame(rows, columns=STORAGE_COLUMNS)


def get_optimal_storage_levels(period: Period, scaling: float = 1.0) -> pd.DataFrame:
    storages, asset_map = get_storages(period, return_ids_map=True)
    return get_optimal_storage_level(storages, scaling, asset_map)


def reshape_wide(df: pd.DataFrame, variable_col: str = "variable", value_col: str = "value") -> pd.DataFrame:
    """Pivot ``variable_col`` values into columns; the remaining columns form the row key."""
    if df.empty:
        return df
    index_cols = [c for c in df.columns if c not in (variable_col, value_col)]
    wide = df.pivot_table(
        index=index_cols, columns=variable_col, values=value_col,
        aggfunc="first", sort=False,
    ).reset_index()
    wide.columns.name = None
    return wide


def reshape_timeseries_wide(df: pd.DataFrame, label_cols: Sequence[str]) -> pd.DataFrame:
    """One row per time step, one column per component (labels joined with '_')."""
    if df.empty:
        return df
    labels = df[list(label_cols)].astype(str).agg("_".join, axis=1)
    wide = df.assign(label=labels).pivot_table(
        index="time", columns="label", values="value", aggfunc="sum", sort=False,
    ).reset_index()
    wide.columns.name = None
    return wide
