"""
Routing engine: owns the segment snapshot and the graph bundles built from it.

A GraphBundle (graph + spatial index + connectivity + snapper) is built at
most once per RoutingOptions and then shared read-only by every request.
Requests never write to a bundle; their snapping edits live in a per-request
AdjacencyView created inside routing.route().
"""

import threading
from dataclasses import dataclass
from typing import Optional

from config import (
    GRID_SIZE, MAX_CACHED_BUNDLES, MAX_SEARCH_ITERATIONS, PROCESSED_SEGMENTS_JSON,
    SEARCH_TIME_BUDGET_S,
)
from connectivity import ConnectivityAnalyzer
from graph import PedestrianGraph
from graph_builder import CostModel, RoutingOptions, build_routing_graph
from routing import route
from segments import parse_segments
from snapping import Snapper
from spatial_index import SpatialIndex


@dataclass(frozen=True)
class GraphBundle:
    graph: PedestrianGraph
    index: SpatialIndex
    connectivity: ConnectivityAnalyzer
    snapper: Snapper
    options: RoutingOptions


def build_graph_bundle(segments, options=None, cost_model=None, grid_size=GRID_SIZE):
    """Build graph, spatial index, connectivity and snapper for one option set."""
    options = RoutingOptions.from_mapping(options)
    graph = build_routing_graph(segments, options=options, cost_model=cost_model, grid_size=grid_size)
    index = SpatialIndex.from_graph(graph, grid_size=grid_size)
    connectivity = ConnectivityAnalyzer(graph)
    snapper = Snapper(graph, index, connectivity)
    return GraphBundle(graph, index, connectivity, snapper, options)


class RoutingEngine:
    """Thread-safe entry point for routing requests.

    Bundles are cached per RoutingOptions, at most max_bundles of them with
    the oldest build evicted first. The first request for a given option set
    builds its bundle under a lock; later requests read the cache without
    locking. reload() swaps in a new snapshot atomically, so requests
    already running keep the bundle they started with.
    """

    def __init__(self, segments, cost_model: Optional[CostModel] = None,
                 max_iterations=MAX_SEARCH_ITERATIONS, time_budget_s=SEARCH_TIME_BUDGET_S,
                 max_bundles=MAX_CACHED_BUNDLES):
        self.cost_model = cost_model or CostModel()
        self.max_bundles = max_bundles
        self.max_iterations = max_iterations
        self.time_budget_s = time_budget_s
        self._build_lock = threading.Lock()
        self._segments = tuple(parse_segments(segments))
        self._bundles = {}
        self.builds = 0

    @classmethod
    def from_file(cls, path=PROCESSED_SEGMENTS_JSON, **kwargs):
        # local import keeps the geopandas stack out of pure routing imports
        from data_loader import load_accessible_segments
        return cls(load_accessible_segments(path), **kwargs)

    @property
    def segment_count(self):
        return len(self._segments)

    @property
    def cached_bundles(self):
        return len(self._bundles)

    def bundle_for(self, options=None):
        options = RoutingOptions.from_mapping(options)
        bundles = self._bundles
        bundle = bundles.get(options)
        if bundle is not None:
            return bundle
        with self._build_lock:
            # re-read: another thread may have built it (or reloaded) meanwhile
            bundles = self._bundles
            bundle = bundles.get(options)
            if bundle is None:
                bundle = build_graph_bundle(self._segments, options, self.cost_model)
                self.builds += 1
                new_map = dict(bundles)
                new_map[options] = bundle
                while len(new_map) > self.max_bundles:
                    # dicts keep insertion order: the first key is the oldest build
                    del new_map[next(iter(new_map))]
                self._bundles = new_map
        return bundle

    def reload(self, segments):
        """Replace the segment snapshot; bundles are rebuilt lazily on demand."""
        parsed = tuple(parse_segments(segments))
        with self._build_lock:
            self._segments = parsed
            self._bundles = {}

    def route(self, start, end, options=None):
        """
        Route between two coordinates.

        Args:
            start: {"lat", "lon"|"lng"} mapping or (lat, lon) pair
            end: same as start
            options: RoutingOptions or a mapping of option keys

        Returns:
            result dict (see routing.route)
        """
        bundle = self.bundle_for(options)
        return route(bundle, start, end, self.max_iterations, self.time_budget_s)
