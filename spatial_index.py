"""Uniform grid over (lat, lon) for nearest-node and nearby-edge lookups.

Cells are keyed by ``(floor(lat * grid_size), floor(lon * grid_size))``.
Queries expand outward in Chebyshev rings around the query cell, so their
cost depends on local density rather than on the size of the whole network.
"""

import math
from collections import defaultdict

from config import GRID_SIZE, MAX_SEARCH_RING
from utils import haversine_m

METERS_PER_DEGREE_LAT = 111320.0


class SpatialIndex:

    def __init__(self, grid_size=GRID_SIZE):
        self.grid_size = grid_size
        self._node_cells = defaultdict(list)
        self._edge_cells = defaultdict(list)
        self.node_count = 0
        self.edge_count = 0

    @classmethod
    def from_graph(cls, graph, grid_size=GRID_SIZE, include_edges=True):
        """Index every node and, optionally, one direction of every chunk."""
        index = cls(grid_size)
        for key in graph.nodes():
            lat, lon = graph.position(key)
            index.insert_node(key, lat, lon)
        if include_edges:
            for edge in graph.iter_edges():
                if edge.direction == "forward":
                    index.insert_edge(edge)
        return index

    def cell_for(self, lat, lon):
        return (math.floor(lat * self.grid_size), math.floor(lon * self.grid_size))

    def insert_node(self, key, lat, lon):
        self._node_cells[self.cell_for(lat, lon)].append((key, lat, lon))
        self.node_count += 1

    def insert_edge(self, edge):
        cells = set()
        for a, b in zip(edge.path, edge.path[1:]):
            ci0, cj0 = self.cell_for(min(a[0], b[0]), min(a[1], b[1]))
            ci1, cj1 = self.cell_for(max(a[0], b[0]), max(a[1], b[1]))
            for ci in range(ci0, ci1 + 1):
                for cj in range(cj0, cj1 + 1):
                    cells.add((ci, cj))
        if len(edge.path) == 1:
            cells.add(self.cell_for(*edge.path[0]))
        for cell in cells:
            self._edge_cells[cell].append(edge)
        self.edge_count += 1

    @staticmethod
    def _ring(ci, cj, r):
        if r == 0:
            yield (ci, cj)
            return
        for dj in range(-r, r + 1):
            yield (ci - r, cj + dj)
            yield (ci + r, cj + dj)
        for di in range(-r + 1, r):
            yield (ci + di, cj - r)
            yield (ci + di, cj + r)

    def rings_for_radius(self, lat, radius_m):
        """Number of rings that fully cover radius_m around a point at lat."""
        cell_deg = 1.0 / self.grid_size
        cell_w = cell_deg * METERS_PER_DEGREE_LAT * max(math.cos(math.radians(lat)), 1e-6)
        cell_h = cell_deg * METERS_PER_DEGREE_LAT
        return int(math.ceil(radius_m / min(cell_w, cell_h)))

    def nearest_nodes(self, lat, lon, k=1, max_ring=MAX_SEARCH_RING):
        """Return up to k (distance_m, key) pairs sorted by distance.

        Once k candidates are collected one more ring is scanned, since a
        closer node may sit just across the boundary of the last ring.
        """
        ci, cj = self.cell_for(lat, lon)
        found = []
        stop_at = None
        for r in range(max_ring + 1):
            for cell in self._ring(ci, cj, r):
                for key, nlat, nlon in self._node_cells.get(cell, ()):
                    found.append((haversine_m((lat, lon), (nlat, nlon)), key))
            if stop_at is None and len(found) >= k:
                stop_at = r + 1
            if stop_at is not None and r >= stop_at:
                break
        found.sort(key=lambda t: (t[0], repr(t[1])))
        return found[:k]

    def nodes_within(self, lat, lon, radius_m):
        ci, cj = self.cell_for(lat, lon)
        found = []
        for r in range(self.rings_for_radius(lat, radius_m) + 1):
            for cell in self._ring(ci, cj, r):
                for key, nlat, nlon in self._node_cells.get(cell, ()):
                    d = haversine_m((lat, lon), (nlat, nlon))
                    if d <= radius_m:
                        found.append((d, key))
        found.sort(key=lambda t: (t[0], repr(t[1])))
        return found

    def edges_near(self, lat, lon, radius_m):
        """Edges registered in any cell within radius_m, one per chunk."""
        ci, cj = self.cell_for(lat, lon)
        seen = set()
        edges = []
        for r in range(self.rings_for_radius(lat, radius_m) + 1):
            for cell in self._ring(ci, cj, r):
                for edge in self._edge_cells.get(cell, ()):
                    if edge.chunk_id in seen:
                        continue
                    seen.add(edge.chunk_id)
                    edges.append(edge)
        return edges
