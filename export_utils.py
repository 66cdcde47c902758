"""Export Utilities Module

Purpose: Centralize all disk export logic (GeoJSON/GraphML) for the routing
graph and for computed routes, so the core graph and routing code never
touches the filesystem.

Key design notes:
- Coordinates are stored as (lat, lon) internally; GeoJSON geometries are
  written in (lon, lat) order with EPSG:4326.
- One edge row per chunk (forward direction only); the reverse edge has the
  same attributes.
- Impassable edges have infinite weight, which GeoJSON cannot hold, so the
  weight column is left empty for them and `passable` is False.
- Functions are tolerant; they catch exceptions and print messages instead of
  halting the entire pipeline (export is usually a terminal step).
"""

import math
from pathlib import Path

import geopandas as gpd
import networkx as nx
from shapely.geometry import LineString, Point

from config import OUT_NODES, OUT_EDGES, OUT_GRAPHML, OUT_ROUTE
from graph import to_networkx


def node_id(key):
    """Stable string id for a node key (GraphML and GeoJSON need strings)."""
    if isinstance(key, tuple):
        return f"{key[0]:.6f},{key[1]:.6f}"
    return str(key)


def _line(path):
    return LineString([(lon, lat) for lat, lon in path])


def graph_to_gdfs(graph):
    """Return (nodes_gdf, edges_gdf) in EPSG:4326."""
    node_rows = []
    for key in sorted(graph.nodes(), key=repr):
        lat, lon = graph.position(key)
        degree = len({e.target for e in graph.edges_from(key)})
        node_rows.append({"node_id": node_id(key), "degree": degree, "geometry": Point(lon, lat)})

    edge_rows = []
    for e in graph.iter_edges():
        if e.direction != "forward":
            continue
        edge_rows.append({
            "edge_id": e.chunk_id,
            "u": node_id(e.source),
            "v": node_id(e.target),
            "segment_id": e.segment_id,
            "kind": e.kind,
            "length_m": float(e.length_m),
            "weight": float(e.weight) if e.passable else None,
            "passable": e.passable,
            "score": float(e.score),
            "accessible": bool(e.accessible),
            "confidence": e.confidence,
            "issues": ";".join(e.issues),
            "geometry": _line(e.path),
        })

    nodes_gdf = gpd.GeoDataFrame(node_rows, geometry="geometry", crs="EPSG:4326") if node_rows else \
        gpd.GeoDataFrame(columns=["node_id", "degree", "geometry"], geometry="geometry", crs="EPSG:4326")
    edges_gdf = gpd.GeoDataFrame(edge_rows, geometry="geometry", crs="EPSG:4326") if edge_rows else \
        gpd.GeoDataFrame(columns=["edge_id", "u", "v", "geometry"], geometry="geometry", crs="EPSG:4326")
    return nodes_gdf, edges_gdf


def graph_to_graphml_graph(graph):
    """Aggregated undirected nx.Graph with string node ids and x/y attributes."""
    G = to_networkx(graph, passable_only=False)
    H = nx.Graph()
    for key, data in G.nodes(data=True):
        H.add_node(node_id(key), x=float(data["lon"]), y=float(data["lat"]))
    for u, v, data in G.edges(data=True):
        weight = data["weight"]
        H.add_edge(
            node_id(u), node_id(v),
            length_m=float(data["length_m"]),
            weight=float(weight) if math.isfinite(weight) else -1.0,
            score=float(data["score"]),
            kind=data["kind"],
            agg_count=int(data["agg_count"]),
        )
    return H


def export_graph(graph, out_nodes=OUT_NODES, out_edges=OUT_EDGES, out_graphml=OUT_GRAPHML):
    """Write nodes/edges GeoJSON and an aggregated GraphML file."""
    for p in (out_nodes, out_edges, out_graphml):
        Path(p).parent.mkdir(parents=True, exist_ok=True)
    try:
        nodes_gdf, edges_gdf = graph_to_gdfs(graph)
        nodes_gdf.to_file(out_nodes, driver="GeoJSON")
        edges_gdf.to_file(out_edges, driver="GeoJSON")
    except Exception as e:
        print("GeoJSON export failed:", e)
    # write graphml (impassable edges carry weight -1)
    try:
        nx.write_graphml(graph_to_graphml_graph(graph), out_graphml)
    except Exception as e:
        print("GraphML export failed:", e)
    print("Exported to:", out_nodes, out_edges, out_graphml)


def route_to_gdf(result):
    """One row per traversed segment plus a summary row for the full polyline."""
    metrics = result.get("metrics", {})
    rows = []
    polyline = result.get("polyline") or []
    if len(polyline) >= 2:
        rows.append({"part": "route", **metrics, "geometry": _line(polyline)})
    for idx, seg in enumerate(result.get("segments", [])):
        path = seg.get("path") or []
        if len(path) < 2:
            continue
        rows.append({
            "part": f"segment_{idx}",
            "segment_id": seg.get("id"),
            "kind": seg.get("kind"),
            "length_m": seg.get("length_m"),
            "score": seg.get("score"),
            "accessible": seg.get("accessible"),
            "issues": ";".join(seg.get("issues") or ()),
            "geometry": _line(path),
        })
    if not rows:
        return gpd.GeoDataFrame(columns=["part", "geometry"], geometry="geometry", crs="EPSG:4326")
    return gpd.GeoDataFrame(rows, geometry="geometry", crs="EPSG:4326")


def export_route(result, out_path=OUT_ROUTE):
    """Write a successful route result to GeoJSON; returns the path or None."""
    if not result.get("success"):
        print(f"Route export skipped: {result.get('reason', 'route failed')}")
        return None
    try:
        Path(out_path).parent.mkdir(parents=True, exist_ok=True)
        route_to_gdf(result).to_file(out_path, driver="GeoJSON")
        print(f"Exported route: {out_path}")
        return out_path
    except Exception as e:
        print("Route export failed:", e)
        return None
