# connectivity.py
import networkx as nx
import numpy as np

from graph import to_networkx
from utils import EARTH_RADIUS_M


class ConnectivityAnalyzer:
    """Connected components of the passable network, computed once per graph.

    Components are taken over finite-weight edges only, so a node reachable
    solely through excluded segments forms its own component. The largest
    component is the fallback snapping target for far-away query points.
    """

    def __init__(self, graph):
        self.graph = graph
        G = to_networkx(graph, passable_only=True)
        comps = [sorted(c, key=repr) for c in nx.connected_components(G)]
        # deterministic: larger first, then by smallest member
        comps.sort(key=lambda c: (-len(c), repr(c[0])))
        self.components = comps
        self._component_of = {}
        for idx, comp in enumerate(comps):
            for key in comp:
                self._component_of[key] = idx

        if comps:
            largest = comps[0]
            self._largest_keys = largest
            coords = np.array([graph.position(k) for k in largest], dtype=float)
            self._largest_lat = np.radians(coords[:, 0])
            self._largest_lon = np.radians(coords[:, 1])
        else:
            self._largest_keys = []
            self._largest_lat = np.empty(0)
            self._largest_lon = np.empty(0)

    @property
    def largest_component(self):
        return self._largest_keys

    def component_of(self, key):
        return self._component_of.get(key)

    def same_component(self, a, b):
        ca = self.component_of(a)
        return ca is not None and ca == self.component_of(b)

    def nearest_in_largest(self, lat, lon):
        """Return (key, distance_m) of the closest largest-component node, or None."""
        if not self._largest_keys:
            return None
        phi = np.radians(lat)
        lam = np.radians(lon)
        dphi = self._largest_lat - phi
        dlam = self._largest_lon - lam
        h = np.sin(dphi / 2) ** 2 + np.cos(phi) * np.cos(self._largest_lat) * np.sin(dlam / 2) ** 2
        dist = 2 * EARTH_RADIUS_M * np.arctan2(np.sqrt(h), np.sqrt(np.clip(1 - h, 0.0, None)))
        i = int(np.argmin(dist))
        return self._largest_keys[i], float(dist[i])

    def summary(self):
        sizes = [len(c) for c in self.components]
        return {
            "num_components": len(sizes),
            "largest_component_nodes": sizes[0] if sizes else 0,
            "components_over_10_nodes": sum(1 for s in sizes if s > 10),
            "tiny_components": sum(1 for s in sizes if s <= 2),
            "top_component_sizes": sizes[:5],
        }
