import pytest

from conftest import BASE_LAT, BASE_LON
from graph_builder import build_routing_graph
from spatial_index import SpatialIndex
from utils import coord_key


def test_cell_for_floors_both_axes():
    index = SpatialIndex(grid_size=1000)
    assert index.cell_for(45.0005, -74.9995) == (45000, -75000)
    assert index.cell_for(-0.0001, 0.0001) == (-1, 0)


def test_ring_enumerates_the_square_border():
    ring1 = list(SpatialIndex._ring(0, 0, 1))
    assert len(ring1) == 8
    assert set(ring1) == {(i, j) for i in (-1, 0, 1) for j in (-1, 0, 1)} - {(0, 0)}
    assert list(SpatialIndex._ring(3, 4, 0)) == [(3, 4)]
    assert len(set(SpatialIndex._ring(0, 0, 2))) == 16


def test_nearest_nodes_sorted_by_distance():
    index = SpatialIndex()
    index.insert_node("far", BASE_LAT + 0.003, BASE_LON)
    index.insert_node("near", BASE_LAT + 0.0001, BASE_LON)
    index.insert_node("mid", BASE_LAT + 0.001, BASE_LON)
    found = index.nearest_nodes(BASE_LAT, BASE_LON, k=2)
    assert [key for _, key in found] == ["near", "mid"]
    assert found[0][0] == pytest.approx(11.1, abs=0.1)


def test_nearest_nodes_scans_one_ring_past_the_first_hit():
    index = SpatialIndex(grid_size=1000)
    # same cell as the query but farther than a node just across the cell border
    index.insert_node("same_cell", BASE_LAT + 0.0009, BASE_LON + 0.0009)
    index.insert_node("next_cell", BASE_LAT + 0.0001, BASE_LON - 0.00005)
    found = index.nearest_nodes(BASE_LAT + 0.0001, BASE_LON + 0.00001, k=1)
    assert found[0][1] == "next_cell"


def test_nearest_nodes_respects_max_ring():
    index = SpatialIndex(grid_size=1000)
    index.insert_node("distant", BASE_LAT + 0.05, BASE_LON)
    assert index.nearest_nodes(BASE_LAT, BASE_LON, k=1, max_ring=3) == []


def test_nodes_within_radius(cross_network):
    graph = build_routing_graph(cross_network)
    index = SpatialIndex.from_graph(graph)
    junction = coord_key(BASE_LAT, BASE_LON + 0.001)
    hits = index.nodes_within(BASE_LAT, BASE_LON + 0.001, 90.0)
    keys = [key for _, key in hits]
    assert keys[0] == junction
    # two east-west neighbours at ~78.7 m; north-south ones are ~111 m away
    assert len(keys) == 3


def test_edges_near_returns_each_chunk_once(cross_network):
    graph = build_routing_graph(cross_network)
    index = SpatialIndex.from_graph(graph)
    assert index.edge_count == 4
    edges = index.edges_near(BASE_LAT, BASE_LON + 0.001, 30.0)
    chunk_ids = [e.chunk_id for e in edges]
    assert len(chunk_ids) == len(set(chunk_ids))
    assert set(chunk_ids) == {"way/ew#0", "way/ew#1", "way/ns#0", "way/ns#1"}
    assert all(e.direction == "forward" for e in edges)


def test_edges_near_empty_far_away(straight_segment):
    index = SpatialIndex.from_graph(build_routing_graph(straight_segment))
    assert index.edges_near(BASE_LAT + 1.0, BASE_LON, 30.0) == []


def test_rings_for_radius_grows_with_radius():
    index = SpatialIndex(grid_size=1000)
    assert index.rings_for_radius(BASE_LAT, 30.0) == 1
    assert index.rings_for_radius(BASE_LAT, 200.0) == 3
