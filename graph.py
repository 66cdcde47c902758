# graph.py
import math
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, Optional, Tuple

import networkx as nx


@dataclass(frozen=True)
class GraphEdge:
    """One directed traversal of a chunk of pedestrian infrastructure."""
    source: Hashable
    target: Hashable
    weight: float
    length_m: float
    score: float
    accessible: bool
    confidence: str
    issues: Tuple[str, ...]
    path: Tuple[Tuple[float, float], ...]   # (lat, lon), source -> target
    segment_id: Optional[str] = None
    chunk_id: Optional[str] = None
    kind: str = "segment"                   # segment | weld | connector
    direction: str = "forward"
    tags: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def passable(self):
        return math.isfinite(self.weight)

    def to_dict(self):
        return {
            "id": self.segment_id,
            "chunk_id": self.chunk_id,
            "kind": self.kind,
            "direction": self.direction,
            "score": self.score,
            "accessible": self.accessible,
            "confidence": self.confidence,
            "issues": list(self.issues),
            "weight": self.weight,
            "length_m": self.length_m,
            "path": [list(p) for p in self.path],
            "tags": dict(self.tags),
        }


class PedestrianGraph:
    """Node-position index plus adjacency, read-only after construction.

    Node keys are rounded (lat, lon) tuples; each node maps to a tuple of its
    outgoing edges so the shared structure cannot be appended to in place.
    """

    def __init__(self, node_positions, adjacency):
        self._positions = dict(node_positions)
        self._adjacency = {k: tuple(v) for k, v in adjacency.items()}
        for key in self._positions:
            self._adjacency.setdefault(key, ())

    @property
    def node_count(self):
        return len(self._positions)

    @property
    def edge_count(self):
        return sum(len(edges) for edges in self._adjacency.values())

    def nodes(self):
        return self._positions.keys()

    def has_node(self, key):
        return key in self._positions

    def position(self, key):
        return self._positions[key]

    def edges_from(self, key):
        return self._adjacency.get(key, ())

    def iter_edges(self):
        for key in sorted(self._adjacency, key=repr):
            yield from self._adjacency[key]

    def total_weight(self):
        # sum of finite weights; excluded (infinite) edges are left out
        return sum(e.weight for e in self.iter_edges() if e.passable)

    def total_length_m(self):
        # each chunk is stored twice (forward + reverse)
        return sum(e.length_m for e in self.iter_edges() if e.direction == "forward")


class AdjacencyView:
    """Request-scoped copy-on-write view over a PedestrianGraph.

    Edge lists are cloned only for nodes that receive new edges; every other
    lookup falls through to the shared base graph.
    """

    def __init__(self, graph):
        self.graph = graph
        self._overlay = {}
        self._virtual_positions = {}
        # chunk_id -> [(virtual key, SnapCandidate)] anchored in this request
        self.anchors = defaultdict(list)

    def add_node(self, key, position):
        self._virtual_positions[key] = position

    def has_node(self, key):
        return key in self._virtual_positions or self.graph.has_node(key)

    def position(self, key):
        if key in self._virtual_positions:
            return self._virtual_positions[key]
        return self.graph.position(key)

    def edges_from(self, key):
        edges = self._overlay.get(key)
        if edges is not None:
            return edges
        return self.graph.edges_from(key)

    def add_edge(self, edge):
        edges = self._overlay.get(edge.source)
        if edges is None:
            edges = list(self.graph.edges_from(edge.source))
            self._overlay[edge.source] = edges
        edges.append(edge)

    @property
    def touched_nodes(self):
        return set(self._overlay)


def to_networkx(graph, passable_only=True):
    """Collapse the directed edge pairs into an undirected nx.Graph.

    Parallel chunks between the same node pair are aggregated, keeping the
    cheapest weight (same approach as the GraphML export).
    """
    G = nx.Graph()
    for key in graph.nodes():
        lat, lon = graph.position(key)
        G.add_node(key, lat=lat, lon=lon)
    for e in graph.iter_edges():
        if e.direction != "forward":
            continue
        if passable_only and not e.passable:
            continue
        if G.has_edge(e.source, e.target):
            data = G[e.source][e.target]
            data["agg_count"] += 1
            if e.weight < data["weight"]:
                data.update(weight=e.weight, length_m=e.length_m, score=e.score, kind=e.kind)
        else:
            G.add_edge(
                e.source, e.target,
                weight=e.weight, length_m=e.length_m, score=e.score,
                kind=e.kind, agg_count=1,
            )
    return G
