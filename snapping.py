"""Snapping

Projects an arbitrary query coordinate onto the routable network. The
projection is exposed to the path solver through a request-scoped virtual
node: its connector edges are written into the request's AdjacencyView
(copy-on-write), never into the shared PedestrianGraph, so concurrent
requests cannot observe each other's virtual nodes.

Connector cost reuses the per-meter cost of the host edge
(weight / length_m), charged on the perpendicular offset plus the distance
walked along the host to reach its endpoint.
"""

import math
from dataclasses import dataclass, field
from typing import Hashable, List, Tuple

from config import SNAP_RADIUS_M, MAX_SNAP_CANDIDATES, SNAP_EPSILON_M
from graph import GraphEdge
from utils import haversine_m, polyline_length_m, project_onto_polyline


class SnappingError(RuntimeError):
    """Raised when a query point has no edge candidate and no fallback node."""


@dataclass(frozen=True)
class SnapCandidate:
    point: Tuple[float, float]   # projected (lat, lon)
    offset_m: float              # query -> projected point
    edge: GraphEdge              # host edge (forward direction of its chunk)
    along_m: float               # host source -> projected point, along the path
    segment_index: int           # sub-segment of host.path holding the projection


@dataclass
class SnapResult:
    node: Hashable
    position: Tuple[float, float]
    offset_m: float
    method: str                  # edge | node | fallback
    candidates: List[SnapCandidate] = field(default_factory=list)

    def to_dict(self, requested=None):
        out = {
            "snapped_node": list(self.node) if isinstance(self.node, tuple) else self.node,
            "position": list(self.position),
            "offset_m": self.offset_m,
            "method": self.method,
        }
        if requested is not None:
            out["requested"] = list(requested)
        return out


def _project_onto_edge(query, edge):
    """Closest point of edge.path to query as (point, offset_m, along_m, index)."""
    point, idx = project_onto_polyline(query, edge.path)
    along = polyline_length_m(edge.path[: idx + 1]) + haversine_m(edge.path[idx], point)
    return point, haversine_m(query, point), along, idx


def _dedupe(points):
    out = []
    for p in points:
        if not out or out[-1] != p:
            out.append(p)
    return tuple(out)


def _path_between(host_path, ca, cb):
    """Geometry along host_path from candidate ca's projection to cb's."""
    if ca.along_m > cb.along_m:
        return tuple(reversed(_path_between(host_path, cb, ca)))
    middle = host_path[ca.segment_index + 1: cb.segment_index + 1]
    return _dedupe((ca.point,) + tuple(middle) + (cb.point,))


class Snapper:

    def __init__(self, graph, index, connectivity, radius_m=SNAP_RADIUS_M,
                 max_candidates=MAX_SNAP_CANDIDATES, epsilon_m=SNAP_EPSILON_M):
        self.graph = graph
        self.index = index
        self.connectivity = connectivity
        self.radius_m = radius_m
        self.max_candidates = max_candidates
        self.epsilon_m = epsilon_m

    def find_candidates(self, lat, lon):
        """Ranked projections onto nearby edges (shortest offset first)."""
        query = (lat, lon)
        candidates = []
        for edge in self.index.edges_near(lat, lon, self.radius_m):
            if len(edge.path) < 2:
                continue
            point, offset, along, idx = _project_onto_edge(query, edge)
            if offset <= self.radius_m:
                candidates.append(SnapCandidate(point, offset, edge, along, idx))
        candidates.sort(key=lambda c: (c.offset_m, c.edge.chunk_id or ""))
        return candidates[: self.max_candidates]

    def snap(self, view, lat, lon, label):
        """Anchor (lat, lon) in view and return the SnapResult.

        Raises:
            SnappingError: the graph holds no node at all
        """
        candidates = self.find_candidates(lat, lon)
        if not candidates:
            return self._fallback(lat, lon)

        best = candidates[0]
        host = best.edge
        if best.along_m <= self.epsilon_m:
            return SnapResult(host.source, self.graph.position(host.source),
                              best.offset_m, "node", candidates)
        if host.length_m - best.along_m <= self.epsilon_m:
            return SnapResult(host.target, self.graph.position(host.target),
                              best.offset_m, "node", candidates)

        key = f"virtual:{label}"
        if view.has_node(key):
            raise ValueError(f"virtual node {key!r} already exists in this view")
        view.add_node(key, best.point)
        for cand in candidates:
            self._attach(view, key, cand, label)
        return SnapResult(key, best.point, best.offset_m, "edge", candidates)

    def _fallback(self, lat, lon):
        nearest = self.connectivity.nearest_in_largest(lat, lon)
        if nearest is None:
            raise SnappingError("no_snapping_nodes_found")
        node, dist = nearest
        return SnapResult(node, self.graph.position(node), dist, "fallback", [])

    def _connector(self, host, source, target, path, offset_m, label):
        length = polyline_length_m(path)
        if not host.passable:
            weight = math.inf
        elif host.length_m > 0:
            weight = (offset_m + length) * (host.weight / host.length_m)
        else:
            weight = offset_m + length
        return GraphEdge(
            source=source, target=target, weight=weight, length_m=length,
            score=host.score, accessible=host.accessible, confidence=host.confidence,
            issues=host.issues, path=path, segment_id=host.segment_id,
            chunk_id=f"{host.chunk_id}@{label}", kind="connector",
            direction="forward", tags=host.tags,
        )

    def _attach(self, view, key, cand, label):
        host = cand.edge
        i = cand.segment_index
        to_source = _dedupe((cand.point,) + tuple(reversed(host.path[: i + 1])))
        to_target = _dedupe((cand.point,) + tuple(host.path[i + 1:]))

        for path, end in ((to_source, host.source), (to_target, host.target)):
            out = self._connector(host, key, end, path, cand.offset_m, label)
            view.add_edge(out)
            view.add_edge(self._reversed(out))

        # another query point of this request sits on the same chunk: link directly
        for other_key, other in view.anchors.get(host.chunk_id, ()):
            if other_key == key:
                continue
            path = _path_between(host.path, cand, other)
            link = self._connector(host, key, other_key, path,
                                   cand.offset_m + other.offset_m, label)
            view.add_edge(link)
            view.add_edge(self._reversed(link))
        view.anchors[host.chunk_id].append((key, cand))

    @staticmethod
    def _reversed(edge):
        return GraphEdge(
            source=edge.target, target=edge.source, weight=edge.weight,
            length_m=edge.length_m, score=edge.score, accessible=edge.accessible,
            confidence=edge.confidence, issues=edge.issues,
            path=tuple(reversed(edge.path)), segment_id=edge.segment_id,
            chunk_id=edge.chunk_id, kind=edge.kind, direction="reverse", tags=edge.tags,
        )
