# analyze_graph.py
"""
Compute quality metrics for the routing graph.
Use these metrics to spot disconnected islands and unrepaired gaps before
serving routes from a new data snapshot.
"""
from collections import Counter

from config import PROCESSED_SEGMENTS_JSON, WELD_TOLERANCE_M
from connectivity import ConnectivityAnalyzer
from spatial_index import SpatialIndex


def detect_gaps(graph, tolerance_m=WELD_TOLERANCE_M, index=None):
    """Node pairs closer than tolerance_m that share no edge.

    Returns a list of (distance_m, a, b) sorted by distance.
    """
    if index is None:
        index = SpatialIndex.from_graph(graph, include_edges=False)
    gaps = []
    seen = set()
    for key in sorted(graph.nodes(), key=repr):
        lat, lon = graph.position(key)
        neighbors = {e.target for e in graph.edges_from(key)}
        for dist, other in index.nodes_within(lat, lon, tolerance_m):
            if other == key or other in neighbors or dist <= 0:
                continue
            pair = tuple(sorted((key, other), key=repr))
            if pair in seen:
                continue
            seen.add(pair)
            gaps.append((dist, pair[0], pair[1]))
    gaps.sort(key=lambda g: (g[0], repr(g[1])))
    return gaps


def compute_metrics(graph, connectivity=None, weld_tolerance_m=WELD_TOLERANCE_M):
    """Compute comprehensive graph quality metrics."""
    metrics = {}
    connectivity = connectivity or ConnectivityAnalyzer(graph)

    forward = [e for e in graph.iter_edges() if e.direction == "forward"]

    # Basic counts
    metrics['num_nodes'] = graph.node_count
    metrics['num_edges'] = graph.edge_count
    metrics['num_chunks'] = len(forward)

    # Total network length
    lengths = [e.length_m for e in forward]
    total_length_m = sum(lengths)
    metrics['total_length_m'] = total_length_m
    metrics['total_length_km'] = total_length_m / 1000.0
    metrics['avg_edge_length_m'] = total_length_m / len(lengths) if lengths else 0
    metrics['min_edge_length_m'] = min(lengths) if lengths else 0
    metrics['max_edge_length_m'] = max(lengths) if lengths else 0

    # Edge kinds and passability
    metrics['edge_kinds'] = dict(sorted(Counter(e.kind for e in forward).items()))
    metrics['num_weld_edges'] = metrics['edge_kinds'].get('weld', 0)
    metrics['num_impassable_chunks'] = sum(1 for e in forward if not e.passable)
    metrics['num_accessible_chunks'] = sum(1 for e in forward if e.accessible)

    # Graph connectivity (passable edges only)
    summary = connectivity.summary()
    metrics['num_connected_components'] = summary['num_components']
    metrics['largest_component_nodes'] = summary['largest_component_nodes']
    metrics['largest_component_pct'] = (
        summary['largest_component_nodes'] / graph.node_count * 100 if graph.node_count > 0 else 0
    )
    metrics['components_over_10_nodes'] = summary['components_over_10_nodes']
    metrics['tiny_components'] = summary['tiny_components']
    metrics['top_component_sizes'] = summary['top_component_sizes']

    # Node degrees (distinct neighbours)
    degrees = [len({e.target for e in graph.edges_from(k)}) for k in graph.nodes()]
    metrics['avg_node_degree'] = sum(degrees) / len(degrees) if degrees else 0
    metrics['max_node_degree'] = max(degrees) if degrees else 0
    metrics['min_node_degree'] = min(degrees) if degrees else 0
    metrics['num_terminal_nodes'] = sum(1 for d in degrees if d == 1)
    metrics['num_intersections'] = sum(1 for d in degrees if d > 2)

    # Residual gaps the welding step did not close
    gaps = detect_gaps(graph, weld_tolerance_m)
    metrics['num_gaps'] = len(gaps)
    metrics['gap_examples'] = gaps[:20]

    # Spatial extent (lat/lon)
    if graph.node_count:
        lats = [graph.position(k)[0] for k in graph.nodes()]
        lons = [graph.position(k)[1] for k in graph.nodes()]
        metrics['bounds'] = (min(lons), min(lats), max(lons), max(lats))
    else:
        metrics['bounds'] = None

    return metrics


def print_metrics(metrics):
    """Print metrics in a formatted report."""
    print("\n" + "=" * 70)
    print("ROUTING GRAPH QUALITY METRICS")
    print("=" * 70)

    print("\n📊 BASIC STATISTICS")
    print(f"  Nodes:                    {metrics['num_nodes']:,}")
    print(f"  Directed edges:           {metrics['num_edges']:,}")
    print(f"  Chunks:                   {metrics['num_chunks']:,}")
    print(f"  Total length:             {metrics['total_length_km']:.2f} km ({metrics['total_length_m']:.1f} m)")

    print("\n📏 EDGE STATISTICS")
    print(f"  Average edge length:      {metrics['avg_edge_length_m']:.2f} m")
    print(f"  Min edge length:          {metrics['min_edge_length_m']:.2f} m")
    print(f"  Max edge length:          {metrics['max_edge_length_m']:.2f} m")
    print(f"  Accessible chunks:        {metrics['num_accessible_chunks']:,}")
    print(f"  Impassable chunks:        {metrics['num_impassable_chunks']:,}")
    print(f"\n  Edge kinds:")
    for kind, count in metrics['edge_kinds'].items():
        print(f"    - {kind:15s}   {count:,}")

    print("\n🔗 CONNECTIVITY")
    print(f"  Connected components:     {metrics['num_connected_components']}")
    print(f"  Largest component:        {metrics['largest_component_nodes']:,} nodes ({metrics['largest_component_pct']:.1f}%)")
    print(f"  Components > 10 nodes:    {metrics['components_over_10_nodes']}")
    print(f"  Tiny components (<= 2):   {metrics['tiny_components']}")
    for i, size in enumerate(metrics['top_component_sizes']):
        print(f"    Component {i}: {size} nodes")
    print(f"  Average node degree:      {metrics['avg_node_degree']:.2f}")
    print(f"  Max node degree:          {metrics['max_node_degree']}")
    print(f"  Terminal nodes (deg=1):   {metrics['num_terminal_nodes']:,}")
    print(f"  Intersections (deg>2):    {metrics['num_intersections']:,}")

    print("\n🩹 TOPOLOGY REPAIR")
    print(f"  Weld edges:               {metrics['num_weld_edges']:,}")
    print(f"  Residual gaps:            {metrics['num_gaps']:,}")
    for dist, a, b in metrics['gap_examples']:
        print(f"    Gap: {dist:.3f}m between {a} and {b}")

    print("\n🗺️  SPATIAL EXTENT")
    print(f"  Bounds (lon/lat):         {metrics['bounds']}")

    print("\n" + "=" * 70)


def main(path=PROCESSED_SEGMENTS_JSON):
    """Main analysis entry point."""
    from data_loader import load_accessible_segments
    from graph_builder import build_routing_graph

    try:
        print("Loading processed segments...")
        segments = load_accessible_segments(path)

        graph = build_routing_graph(segments)

        print("Computing metrics...")
        metrics = compute_metrics(graph)

        print_metrics(metrics)

        return metrics
    except (FileNotFoundError, ValueError) as e:
        print(f"ERROR: {e}")
        return None


if __name__ == "__main__":
    main()
