import math

import pytest
from shapely.geometry import LineString, MultiLineString, Point

from utils import (
    coord_key, haversine_m, longest_linestring_from_multigeom, normalize_coordinate,
    polyline_length_m, project_onto_polyline, to_latlon,
)


def test_haversine_one_millidegree_of_latitude():
    assert haversine_m((45.0, -75.0), (45.001, -75.0)) == pytest.approx(111.19, abs=0.05)
    assert haversine_m((45.0, -75.0), (45.0, -75.0)) == 0.0


def test_longitude_shrinks_with_latitude():
    at_equator = haversine_m((0.0, 0.0), (0.0, 0.001))
    at_45 = haversine_m((45.0, 0.0), (45.0, 0.001))
    assert at_45 == pytest.approx(at_equator * math.cos(math.radians(45.0)), rel=1e-3)


def test_projection_inside_segment():
    point, index = project_onto_polyline((45.0001, -74.9995), [(45.0, -75.0), (45.0, -74.999)])
    assert point[0] == pytest.approx(45.0)
    assert point[1] == pytest.approx(-74.9995)
    assert index == 0


def test_projection_is_clamped_to_endpoints():
    path = [(45.0, -75.0), (45.0, -74.999)]
    point, index = project_onto_polyline((45.0, -75.01), path)
    assert point == pytest.approx((45.0, -75.0))
    assert index == 0
    point, _ = project_onto_polyline((45.0, -74.9), path)
    assert point == pytest.approx((45.0, -74.999))


def test_projection_reports_the_sub_segment():
    path = [(45.0, -75.0), (45.0, -74.999), (45.001, -74.999)]
    point, index = project_onto_polyline((45.0005, -74.9989), path)
    assert index == 1
    assert point == pytest.approx((45.0005, -74.999))


def test_projection_is_perpendicular_on_the_ground():
    path = [(45.0, -75.0), (45.001, -74.999)]
    query = (45.0006, -74.9996)
    point, _ = project_onto_polyline(query, path)
    best = min(haversine_m(query, (45.0 + t * 1e-6, -75.0 + t * 1e-6)) for t in range(1001))
    assert haversine_m(query, point) == pytest.approx(best, abs=0.01)


def test_projection_on_degenerate_segment():
    point, index = project_onto_polyline((45.1, -75.1), [(45.0, -75.0), (45.0, -75.0)])
    assert point == (45.0, -75.0)
    assert index == 0


def test_polyline_length_sums_parts():
    a, b, c = (45.0, -75.0), (45.0, -74.999), (45.001, -74.999)
    assert polyline_length_m([a, b, c]) == pytest.approx(haversine_m(a, b) + haversine_m(b, c))
    assert polyline_length_m([a]) == 0.0


def test_coord_key_rounds_to_precision():
    assert coord_key(45.12345678, -75.87654321) == (45.123457, -75.876543)
    assert coord_key(45.12345678, -75.87654321, precision=3) == (45.123, -75.877)


def test_to_latlon_swaps_geojson_order():
    assert to_latlon([-75.0, 45.0]) == (45.0, -75.0)
    with pytest.raises(ValueError):
        to_latlon([1.0])
    with pytest.raises(ValueError):
        to_latlon([float("nan"), 45.0])


@pytest.mark.parametrize("value", [
    {"lat": 45.0, "lon": -75.0},
    {"lat": 45.0, "lng": -75.0},
    (45.0, -75.0),
    [45, -75],
])
def test_normalize_coordinate_accepted_forms(value):
    assert normalize_coordinate(value) == (45.0, -75.0)


@pytest.mark.parametrize("value", ["45,-75", {"lat": "45", "lon": -75.0}, {"lat": 45.0},
                                   (True, 1.0), None, (1.0, 2.0, 3.0)])
def test_normalize_coordinate_rejects_wrong_types(value):
    with pytest.raises(TypeError):
        normalize_coordinate(value, "start")


def test_normalize_coordinate_rejects_out_of_range():
    with pytest.raises(ValueError):
        normalize_coordinate((91.0, 0.0))
    with pytest.raises(ValueError):
        normalize_coordinate({"lat": 0.0, "lon": 181.0})


def test_longest_linestring_from_multigeom():
    short = LineString([(0, 0), (1, 0)])
    long_ = LineString([(0, 0), (5, 0)])
    assert longest_linestring_from_multigeom(MultiLineString([short, long_])).equals(long_)
    assert longest_linestring_from_multigeom(short) is short
    assert longest_linestring_from_multigeom(Point(0, 0)) is None
