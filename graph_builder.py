"""Graph Builder

Purpose: Turn scored accessibility segments into a routable pedestrian graph
(nodes + directed weighted edges) that the snapper and path solver can use.

High-level steps:
1. Junction detection: count every rounded vertex across all segments; a
   coordinate seen more than once is a junction.
2. Atomic edge extraction: walk each polyline and cut it at junctions and at
   its final vertex, so no edge ever passes through an intersection.
3. Weight assignment: physical length scaled by an accessibility penalty and
   a category multiplier (accessible / limited / severe).
4. Topology repair ("welding"): node pairs closer than WELD_TOLERANCE_M that
   are not connected get a short synthetic crossing edge.

Every chunk yields exactly two directed edges (forward and reverse) with the
same length and weight; one-way restrictions are not modeled.

Note: nodes are identified by their coordinate rounded to COORD_PRECISION
decimals, so two points closer than ~0.1 m collapse into one node.
"""

import math
import warnings
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import Dict, Optional

from config import (
    COORD_PRECISION, DEFAULT_LIMITED_THRESHOLD, THRESHOLD_DECIMALS, LIMITED_MULTIPLIER,
    SEVERE_MULTIPLIER, CONFIDENCE_PENALTIES, ISSUE_PENALTIES, WELD_TOLERANCE_M, WELD_PENALTY, GRID_SIZE,
)
from graph import GraphEdge, PedestrianGraph
from segments import parse_segments
from spatial_index import SpatialIndex
from utils import coord_key, haversine_m, polyline_length_m

_OPTION_ALIASES = {
    "allowLimitedSegments": "allow_limited_segments",
    "allowNonAccessible": "allow_non_accessible",
    "limitedThreshold": "limited_threshold",
}


@dataclass(frozen=True)
class RoutingOptions:
    allow_limited_segments: bool = True
    allow_non_accessible: bool = False
    limited_threshold: float = DEFAULT_LIMITED_THRESHOLD

    def __post_init__(self):
        for name in ("allow_limited_segments", "allow_non_accessible"):
            value = getattr(self, name)
            if not isinstance(value, bool):
                raise TypeError(f"{name} must be a bool, got {type(value).__name__}")
        threshold = self.limited_threshold
        if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
            raise TypeError(f"limited_threshold must be a number, got {type(threshold).__name__}")
        if not (0.0 <= threshold <= 1.0):
            raise ValueError(f"limited_threshold must be within [0, 1], got {threshold}")
        # nearby thresholds share one cached graph bundle
        object.__setattr__(self, "limited_threshold", round(float(threshold), THRESHOLD_DECIMALS))

    @classmethod
    def from_mapping(cls, options=None):
        """Accept snake_case or camelCase keys; unknown keys are an error."""
        if options is None:
            return cls()
        if isinstance(options, cls):
            return options
        kwargs = {}
        for key, value in dict(options).items():
            name = _OPTION_ALIASES.get(key, key)
            if name not in ("allow_limited_segments", "allow_non_accessible", "limited_threshold"):
                raise ValueError(f"Unknown routing option: {key!r}")
            kwargs[name] = value
        if isinstance(kwargs.get("limited_threshold"), str):
            kwargs["limited_threshold"] = float(kwargs["limited_threshold"])
        return cls(**kwargs)


@dataclass(frozen=True)
class CostModel:
    """Penalty tables and multipliers used to turn length into traversal cost."""
    limited_multiplier: float = LIMITED_MULTIPLIER
    severe_multiplier: float = SEVERE_MULTIPLIER
    confidence_penalties: Dict[str, float] = field(default_factory=lambda: dict(CONFIDENCE_PENALTIES))
    issue_penalties: Dict[str, float] = field(default_factory=lambda: dict(ISSUE_PENALTIES))
    weld_penalty: float = WELD_PENALTY

    def penalty(self, attributes):
        p = max(0.0, 1.0 - attributes.accessibility_score)
        p += self.confidence_penalties.get(attributes.confidence, 0.0)
        for issue in attributes.issues:
            p += self.issue_penalties.get(issue, 0.0)
        return p

    def category_multiplier(self, attributes, options):
        """Multiplier for the segment's category, or None if the options exclude it."""
        if attributes.is_wheelchair_passable:
            return 1.0
        if attributes.accessibility_score >= options.limited_threshold:
            return self.limited_multiplier if options.allow_limited_segments else None
        return self.severe_multiplier if options.allow_non_accessible else None

    def weight(self, length_m, attributes, options):
        multiplier = self.category_multiplier(attributes, options)
        if multiplier is None:
            return math.inf
        return length_m * (1.0 + self.penalty(attributes)) * multiplier


def _vertex_keys(coords, precision):
    """Rounded (key, position) pairs with consecutive duplicates collapsed."""
    out = []
    for lat, lon in coords:
        key = coord_key(lat, lon, precision)
        if out and out[-1][0] == key:
            continue
        out.append((key, key))
    return out


def detect_junctions(segments, precision=COORD_PRECISION):
    """Return the set of rounded coordinates that occur more than once."""
    counts = Counter()
    for seg in segments:
        for key, _pos in _vertex_keys(seg.coordinates, precision):
            counts[key] += 1
    return {k for k, c in counts.items() if c > 1}


def split_into_chunks(vertices, junctions):
    """Cut a list of (key, position) vertices at junctions and at the end.

    Returns a list of chunk paths (lists of positions); the first and last
    positions of each chunk are node keys. A chunk that closes on itself
    (a ring footway) is cut again at its middle vertex, so every chunk joins
    two distinct nodes.
    """
    if len(vertices) < 2:
        return []
    chunks = []
    current = [vertices[0][1]]
    last = len(vertices) - 1
    for i in range(1, len(vertices)):
        key, pos = vertices[i]
        current.append(pos)
        if key in junctions or i == last:
            if current[0] == current[-1]:
                mid = len(current) // 2
                chunks.append(current[: mid + 1])
                chunks.append(current[mid:])
            else:
                chunks.append(current)
            current = [pos]
    return chunks


def build_routing_graph(segments, options=None, cost_model=None,
                        weld_tolerance_m=WELD_TOLERANCE_M, precision=COORD_PRECISION,
                        grid_size=GRID_SIZE):
    """
    Build a PedestrianGraph from accessibility segments.

    Args:
        segments: AccessibilitySegment objects or raw input records
        options: RoutingOptions (or a mapping of option keys)
        cost_model: CostModel overriding the default penalty tables
        weld_tolerance_m: Maximum gap bridged by synthetic weld edges (0 disables)
        precision: Decimal places used for node keys
        grid_size: Cells per degree of the grid used while welding

    Returns:
        PedestrianGraph
    """
    options = RoutingOptions.from_mapping(options)
    cost_model = cost_model or CostModel()
    segments = parse_segments(segments)
    print(f"Building routing graph from {len(segments)} segments...")

    junctions = detect_junctions(segments, precision)
    print(f"  Junctions detected: {len(junctions)}")

    positions = {}
    adjacency = defaultdict(list)
    skipped = 0
    chunk_count = 0

    for seg_idx, seg in enumerate(segments):
        vertices = _vertex_keys(seg.coordinates, precision)
        if len(vertices) < 2:
            skipped += 1
            continue
        attrs = seg.attributes
        seg_id = seg.segment_id if seg.segment_id is not None else f"seg_{seg_idx}"
        tags = {k: v for k, v in attrs.tags.as_display_dict().items() if v is not None}
        for part_idx, path in enumerate(split_into_chunks(vertices, junctions)):
            u, v = path[0], path[-1]
            length = polyline_length_m(path)
            weight = cost_model.weight(length, attrs, options)
            chunk_id = f"{seg_id}#{part_idx}"
            common = dict(
                weight=weight, length_m=length, score=attrs.accessibility_score,
                accessible=attrs.is_wheelchair_passable, confidence=attrs.confidence,
                issues=attrs.issues, segment_id=seg_id, chunk_id=chunk_id,
                kind="segment", tags=tags,
            )
            positions[u] = u
            positions[v] = v
            adjacency[u].append(GraphEdge(source=u, target=v, path=tuple(path),
                                          direction="forward", **common))
            adjacency[v].append(GraphEdge(source=v, target=u, path=tuple(reversed(path)),
                                          direction="reverse", **common))
            chunk_count += 1

    if skipped:
        warnings.warn(f"Skipped {skipped} degenerate segment(s) with fewer than two distinct points.")
    print(f"  Atomic chunks: {chunk_count} ({2 * chunk_count} directed edges)")

    welds = 0
    if weld_tolerance_m > 0 and positions:
        welds = weld_nearby_nodes(positions, adjacency, weld_tolerance_m, cost_model, grid_size)
    print(f"  Weld edges added: {welds}")

    graph = PedestrianGraph(positions, adjacency)
    print(f"  Nodes: {graph.node_count} Edges: {graph.edge_count}")
    return graph


def weld_nearby_nodes(positions, adjacency, tolerance_m, cost_model, grid_size=GRID_SIZE):
    """Connect unconnected node pairs closer than tolerance_m.

    Mutates adjacency in place (only used while the graph is being built) and
    returns the number of weld chunks added.
    """
    index = SpatialIndex(grid_size)
    for key in sorted(positions):
        index.insert_node(key, *positions[key])

    welded = set()
    count = 0
    for key in sorted(positions):
        lat, lon = positions[key]
        neighbors = {e.target for e in adjacency.get(key, ())}
        for dist, other in index.nodes_within(lat, lon, tolerance_m):
            if other == key or other in neighbors:
                continue
            pair = (key, other) if key < other else (other, key)
            if pair in welded:
                continue
            welded.add(pair)
            a, b = pair
            length = haversine_m(positions[a], positions[b])
            common = dict(
                weight=length * (1.0 + cost_model.weld_penalty), length_m=length,
                score=1.0, accessible=True, confidence="medium", issues=(),
                segment_id=None, chunk_id=f"weld#{count}", kind="weld",
                tags={"synthetic": "crossing"},
            )
            adjacency[a].append(GraphEdge(source=a, target=b, path=(positions[a], positions[b]),
                                          direction="forward", **common))
            adjacency[b].append(GraphEdge(source=b, target=a, path=(positions[b], positions[a]),
                                          direction="reverse", **common))
            count += 1
    return count
