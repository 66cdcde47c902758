"""
Path solving over a snapped request view.

Implements a bounded Dijkstra search and turns the traversed edges into the
route result handed back to callers.
"""

import heapq
import math
import time
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, NamedTuple

from config import MAX_SEARCH_ITERATIONS, SEARCH_TIME_BUDGET_S
from graph import AdjacencyView
from snapping import SnappingError
from utils import normalize_coordinate

FOUND = "found"
UNREACHABLE = "unreachable"
EXCEEDED = "exceeded"

# settled nodes between two wall-clock checks
_TIME_CHECK_INTERVAL = 256


class SearchOutcome(NamedTuple):
    status: str
    cost: float
    edges: List[Any]
    relaxations: int


@dataclass
class RouteMetrics:
    """Metrics for an evaluated route."""
    total_distance_m: float
    total_cost: float
    average_accessibility_score: float
    accessible_segment_ratio: float
    start_distance_to_network_m: float
    end_distance_to_network_m: float

    def to_dict(self):
        return asdict(self)


def dijkstra(view, source, target, max_iterations=MAX_SEARCH_ITERATIONS,
             time_budget_s=SEARCH_TIME_BUDGET_S):
    """
    Lowest-cost path from source to target over a graph or AdjacencyView.

    Args:
        view: anything exposing edges_from(key)
        source: start node key
        target: goal node key
        max_iterations: cap on edge relaxations
        time_budget_s: wall-clock budget in seconds (None disables it)

    Returns:
        SearchOutcome with status found / unreachable / exceeded
    """
    if source == target:
        return SearchOutcome(FOUND, 0.0, [], 0)

    deadline = None if time_budget_s is None else time.monotonic() + time_budget_s
    dist = {source: 0.0}
    prev = {}
    settled = set()
    heap = [(0.0, 0, source)]
    counter = 1
    relaxations = 0
    pops = 0

    while heap:
        cost, _, node = heapq.heappop(heap)
        if node in settled:
            continue
        if node == target:
            return SearchOutcome(FOUND, cost, _reconstruct(prev, source, target), relaxations)

        if deadline is not None and pops % _TIME_CHECK_INTERVAL == 0 and time.monotonic() >= deadline:
            return SearchOutcome(EXCEEDED, math.inf, [], relaxations)
        pops += 1
        settled.add(node)

        for edge in view.edges_from(node):
            if not edge.passable or edge.target in settled:
                continue
            relaxations += 1
            if relaxations > max_iterations:
                return SearchOutcome(EXCEEDED, math.inf, [], relaxations)
            new_cost = cost + edge.weight
            if new_cost < dist.get(edge.target, math.inf):
                dist[edge.target] = new_cost
                prev[edge.target] = edge
                heapq.heappush(heap, (new_cost, counter, edge.target))
                counter += 1

    return SearchOutcome(UNREACHABLE, math.inf, [], relaxations)


def _reconstruct(prev, source, target):
    edges = []
    node = target
    while node != source:
        edge = prev[node]
        edges.append(edge)
        node = edge.source
    edges.reverse()
    return edges


def compute_route_metrics(edges, start_offset_m=0.0, end_offset_m=0.0, total_cost=None):
    total_length = sum(e.length_m for e in edges)
    if total_cost is None:
        total_cost = sum(e.weight for e in edges)
    if total_length > 0:
        avg_score = sum(e.score * e.length_m for e in edges) / total_length
    elif edges:
        avg_score = sum(e.score for e in edges) / len(edges)
    else:
        avg_score = 0.0
    ratio = sum(1 for e in edges if e.accessible) / len(edges) if edges else 0.0
    return RouteMetrics(
        total_distance_m=total_length,
        total_cost=total_cost,
        average_accessibility_score=avg_score,
        accessible_segment_ratio=ratio,
        start_distance_to_network_m=start_offset_m,
        end_distance_to_network_m=end_offset_m,
    )


def _stitch(points):
    out = []
    for p in points:
        p = [float(p[0]), float(p[1])]
        if not out or out[-1] != p:
            out.append(p)
    return out


def _failure(reason, start=None, end=None):
    result: Dict[str, Any] = {"success": False, "reason": reason}
    if start is not None:
        result["start"] = start
    if end is not None:
        result["end"] = end
    return result


def route(bundle, start, end, max_iterations=MAX_SEARCH_ITERATIONS,
          time_budget_s=SEARCH_TIME_BUDGET_S):
    """
    Route between two arbitrary coordinates on a prepared graph bundle.

    Only coordinate contract violations raise (TypeError / ValueError);
    every routing failure comes back as {"success": False, "reason": ...}.
    """
    start_pt = normalize_coordinate(start, "start")
    end_pt = normalize_coordinate(end, "end")
    view = AdjacencyView(bundle.graph)

    try:
        s = bundle.snapper.snap(view, start_pt[0], start_pt[1], "start")
    except SnappingError as exc:
        return _failure(str(exc))
    start_info = s.to_dict(start_pt)

    if start_pt == end_pt:
        return _assemble(view, s, s, start_info, s.to_dict(end_pt), [], 0.0, start_pt, end_pt)

    try:
        e = bundle.snapper.snap(view, end_pt[0], end_pt[1], "end")
    except SnappingError as exc:
        return _failure(str(exc), start=start_info)
    end_info = e.to_dict(end_pt)

    outcome = dijkstra(view, s.node, e.node, max_iterations, time_budget_s)
    if outcome.status == UNREACHABLE:
        return _failure("no_path_found", start_info, end_info)
    if outcome.status == EXCEEDED:
        return _failure("search_exceeded_bound", start_info, end_info)
    return _assemble(view, s, e, start_info, end_info, outcome.edges, outcome.cost,
                     start_pt, end_pt)


def _assemble(view, s, e, start_info, end_info, edges, cost, start_pt, end_pt):
    nodes = [s.node] + [edge.target for edge in edges]
    points = [start_pt]
    if edges:
        for edge in edges:
            points.extend(edge.path)
    else:
        points.append(s.position)
    points.append(end_pt)

    metrics = compute_route_metrics(edges, s.offset_m, e.offset_m, total_cost=cost)
    return {
        "success": True,
        "start": start_info,
        "end": end_info,
        "path": [list(view.position(n)) for n in nodes],
        "polyline": _stitch(points),
        "segments": [edge.to_dict() for edge in edges],
        "metrics": metrics.to_dict(),
    }
