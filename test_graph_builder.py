"""
Tests for graph construction (graph_builder.py, graph.py).

Covers junction splitting, weight assignment per category, routing option
exclusions, welding and the copy-on-write adjacency view.
"""

import math
from collections import defaultdict

import pytest

from conftest import BASE_LAT, BASE_LON, make_record
from graph import AdjacencyView, GraphEdge, to_networkx
from graph_builder import (
    CostModel, RoutingOptions, build_routing_graph, detect_junctions, split_into_chunks,
)
from segments import SegmentAttributes, parse_segments
from utils import coord_key, polyline_length_m


def test_cross_network_is_split_at_the_junction(cross_network):
    graph = build_routing_graph(cross_network)
    junction = coord_key(BASE_LAT, BASE_LON + 0.001)
    assert graph.node_count == 5
    assert graph.edge_count == 8
    assert {e.target for e in graph.edges_from(junction)} == set(graph.nodes()) - {junction}
    chunk_ids = sorted({e.chunk_id for e in graph.iter_edges()})
    assert chunk_ids == ["way/ew#0", "way/ew#1", "way/ns#0", "way/ns#1"]


def test_detect_junctions_counts_shared_vertices(cross_network):
    junctions = detect_junctions(parse_segments(cross_network))
    assert junctions == {coord_key(BASE_LAT, BASE_LON + 0.001)}


def test_split_into_chunks_cuts_at_junctions_and_end():
    verts = [(k, k) for k in [(0.0, 0.0), (0.0, 1.0), (0.0, 2.0), (0.0, 3.0)]]
    chunks = split_into_chunks(verts, {(0.0, 1.0)})
    assert chunks == [[(0.0, 0.0), (0.0, 1.0)], [(0.0, 1.0), (0.0, 2.0), (0.0, 3.0)]]
    assert split_into_chunks(verts[:1], set()) == []


def test_split_into_chunks_cuts_a_closed_ring():
    a, b = (0.0, 0.0), (0.0, 1.0)
    chunks = split_into_chunks([(a, a), (b, b), (a, a)], {a})
    assert chunks == [[a, b], [b, a]]


def _ring():
    corners = [(BASE_LAT, BASE_LON), (BASE_LAT, BASE_LON + 0.001),
               (BASE_LAT + 0.001, BASE_LON + 0.001), (BASE_LAT + 0.001, BASE_LON)]
    return make_record(corners + corners[:1], segment_id="way/ring")


def test_standalone_ring_footway_is_kept():
    graph = build_routing_graph([_ring()])
    assert set(graph.nodes()) == {coord_key(BASE_LAT, BASE_LON),
                                  coord_key(BASE_LAT + 0.001, BASE_LON + 0.001)}
    assert graph.edge_count == 4
    assert all(e.source != e.target for e in graph.iter_edges())
    expected = 2 * (78.7 + 111.2)
    assert graph.total_length_m() == pytest.approx(expected, abs=1.0)


def test_ring_attached_at_one_vertex_is_kept():
    spur = make_record([(BASE_LAT - 0.001, BASE_LON), (BASE_LAT, BASE_LON)], segment_id="way/spur")
    graph = build_routing_graph([_ring(), spur])
    assert graph.node_count == 3
    assert sorted({e.chunk_id for e in graph.iter_edges()}) == ["way/ring#0", "way/ring#1", "way/spur#0"]
    junction = coord_key(BASE_LAT, BASE_LON)
    assert len(list(graph.edges_from(junction))) == 3



def test_every_chunk_has_a_symmetric_edge_pair(cross_network):
    graph = build_routing_graph(cross_network)
    by_chunk = defaultdict(list)
    for e in graph.iter_edges():
        by_chunk[e.chunk_id].append(e)
    for edges in by_chunk.values():
        assert sorted(e.direction for e in edges) == ["forward", "reverse"]
        fwd, rev = sorted(edges, key=lambda e: e.direction)
        assert (fwd.source, fwd.target) == (rev.target, rev.source)
        assert fwd.weight == rev.weight
        assert fwd.length_m == rev.length_m
        assert fwd.path == tuple(reversed(rev.path))


def test_accessible_high_confidence_weight_equals_length(straight_segment):
    graph = build_routing_graph(straight_segment)
    edge = next(iter(graph.iter_edges()))
    assert edge.weight == pytest.approx(edge.length_m)
    assert edge.length_m == pytest.approx(78.7, abs=0.2)
    assert edge.accessible and edge.kind == "segment"
    assert edge.tags["wheelchair"] == "yes"


def test_limited_segment_weight_and_exclusion():
    rec = make_record([(BASE_LAT, BASE_LON), (BASE_LAT, BASE_LON + 0.001)],
                      score=0.55, passable=False, confidence="medium")
    edge = next(iter(build_routing_graph([rec]).iter_edges()))
    # penalty = (1 - 0.55) + 0.15 ; limited multiplier 2.5
    assert edge.weight == pytest.approx(edge.length_m * 1.6 * 2.5)

    strict = build_routing_graph([rec], options={"allowLimitedSegments": False})
    edge = next(iter(strict.iter_edges()))
    assert math.isinf(edge.weight)
    assert not edge.passable


def test_severe_segment_excluded_unless_allowed(steps_segment):
    graph = build_routing_graph(steps_segment)
    assert all(not e.passable for e in graph.iter_edges())
    assert graph.node_count == 2

    relaxed = build_routing_graph(steps_segment, options=RoutingOptions(allow_non_accessible=True))
    edge = next(iter(relaxed.iter_edges()))
    # penalty = 1.0 + 0.35 (low) + 5.0 (steps) ; severe multiplier 10
    assert edge.weight == pytest.approx(edge.length_m * 7.35 * 10.0)


def test_cost_model_overrides():
    rec = make_record([(BASE_LAT, BASE_LON), (BASE_LAT, BASE_LON + 0.001)],
                      score=0.55, passable=False, confidence="high")
    model = CostModel(limited_multiplier=1.0)
    edge = next(iter(build_routing_graph([rec], cost_model=model).iter_edges()))
    assert edge.weight == pytest.approx(edge.length_m * 1.45)


def test_limited_threshold_moves_segments_between_categories():
    rec = make_record([(BASE_LAT, BASE_LON), (BASE_LAT, BASE_LON + 0.001)],
                      score=0.4, passable=False, confidence="high")
    assert not next(iter(build_routing_graph([rec]).iter_edges())).passable
    lowered = build_routing_graph([rec], options={"limited_threshold": 0.3})
    assert next(iter(lowered.iter_edges())).passable


def test_routing_options_validation():
    opts = RoutingOptions.from_mapping({"allowNonAccessible": True, "limitedThreshold": "0.7"})
    assert opts == RoutingOptions(allow_non_accessible=True, limited_threshold=0.7)
    assert RoutingOptions.from_mapping(None) == RoutingOptions()
    assert hash(RoutingOptions()) == hash(RoutingOptions.from_mapping({}))
    with pytest.raises(ValueError):
        RoutingOptions.from_mapping({"avoidStairs": True})
    with pytest.raises(ValueError):
        RoutingOptions(limited_threshold=1.5)


def test_routing_option_flags_must_be_bools():
    with pytest.raises(TypeError):
        RoutingOptions.from_mapping({"allowNonAccessible": "false"})
    with pytest.raises(TypeError):
        RoutingOptions(allow_limited_segments=1)
    with pytest.raises(TypeError):
        RoutingOptions(limited_threshold=True)
    with pytest.raises(TypeError):
        RoutingOptions.from_mapping({"limitedThreshold": None})


def test_nearby_thresholds_collapse_to_one_option_set():
    assert RoutingOptions(limited_threshold=0.5004) == RoutingOptions()
    assert RoutingOptions(limited_threshold=0.504).limited_threshold == 0.5
    assert RoutingOptions(limited_threshold=0.506) != RoutingOptions()



def test_degenerate_segments_are_skipped_with_warning(straight_segment):
    flat = make_record([(BASE_LAT, BASE_LON), (BASE_LAT, BASE_LON)])
    with pytest.warns(UserWarning, match="degenerate"):
        graph = build_routing_graph(straight_segment + [flat])
    assert graph.node_count == 2


def test_malformed_records_are_skipped_with_warning(straight_segment):
    broken = {"geometry": [[-75.0, 45.0]], "attributes": {}}
    with pytest.warns(UserWarning, match="malformed"):
        graph = build_routing_graph(straight_segment + [broken, "not a record"])
    assert graph.node_count == 2


@pytest.mark.parametrize("bad", [float("nan"), float("inf"), "nan"])
def test_non_finite_scores_are_rejected(straight_segment, bad):
    with pytest.raises(ValueError):
        SegmentAttributes.from_mapping({"accessibility_score": bad})
    rec = make_record([(BASE_LAT + 0.001, BASE_LON), (BASE_LAT + 0.001, BASE_LON + 0.001)], score=bad)
    with pytest.warns(UserWarning, match="malformed"):
        graph = build_routing_graph(straight_segment + [rec])
    assert graph.node_count == 2


def test_welding_bridges_sub_meter_gaps():
    gap_lon = BASE_LON + 0.001 + 0.000006   # about 0.47 m east of the first segment's end
    recs = [
        make_record([(BASE_LAT, BASE_LON), (BASE_LAT, BASE_LON + 0.001)]),
        make_record([(BASE_LAT, gap_lon), (BASE_LAT, BASE_LON + 0.002)]),
    ]
    graph = build_routing_graph(recs)
    welds = [e for e in graph.iter_edges() if e.kind == "weld"]
    assert len(welds) == 2
    assert welds[0].length_m == pytest.approx(0.47, abs=0.05)
    assert welds[0].weight == pytest.approx(welds[0].length_m * 1.1)
    assert graph.edge_count == 6

    unwelded = build_routing_graph(recs, weld_tolerance_m=0)
    assert not any(e.kind == "weld" for e in unwelded.iter_edges())


def test_total_length_counts_each_chunk_once(cross_network):
    graph = build_routing_graph(cross_network)
    expected = sum(polyline_length_m(e.path) for e in graph.iter_edges() if e.direction == "forward")
    assert graph.total_length_m() == pytest.approx(expected)
    # two 78.7 m east-west chunks and two 111.2 m north-south chunks
    assert graph.total_length_m() == pytest.approx(2 * 78.7 + 2 * 111.2, abs=1.0)


def test_adjacency_view_is_copy_on_write(straight_segment):
    graph = build_routing_graph(straight_segment)
    node = coord_key(BASE_LAT, BASE_LON)
    before = graph.edges_from(node)
    view = AdjacencyView(graph)
    view.add_node("virtual:test", (BASE_LAT, BASE_LON + 0.0005))
    view.add_edge(GraphEdge(source=node, target="virtual:test", weight=1.0, length_m=1.0,
                            score=1.0, accessible=True, confidence="high", issues=(),
                            path=((BASE_LAT, BASE_LON), (BASE_LAT, BASE_LON + 0.0005))))
    assert len(view.edges_from(node)) == len(before) + 1
    assert graph.edges_from(node) == before
    assert not graph.has_node("virtual:test")
    assert view.has_node("virtual:test")
    assert view.touched_nodes == {node}


def test_networkx_conversion_respects_passability(steps_segment, straight_segment):
    assert to_networkx(build_routing_graph(steps_segment)).number_of_edges() == 0
    assert to_networkx(build_routing_graph(steps_segment), passable_only=False).number_of_edges() == 1
    assert to_networkx(build_routing_graph(straight_segment)).number_of_edges() == 1
