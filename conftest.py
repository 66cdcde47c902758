"""Shared fixtures for the routing test suite.

Test networks live around (45.0, -75.0). At that latitude 0.001 deg of
longitude is about 78.7 m and 0.0001 deg of latitude about 11.1 m.
"""

import pytest

BASE_LAT = 45.0
BASE_LON = -75.0


def make_record(coords, score=1.0, passable=True, confidence="high", issues=(),
                tags=None, segment_id=None):
    """Input record from (lat, lon) pairs (geometry is written as [lon, lat])."""
    record = {
        "geometry": [[lon, lat] for lat, lon in coords],
        "attributes": {
            "accessibility_score": score,
            "is_wheelchair_passable": passable,
            "confidence": confidence,
            "issues": list(issues),
            "tags": dict(tags or {}),
        },
    }
    if segment_id is not None:
        record["segment_id"] = segment_id
    return record


@pytest.fixture()
def record_factory():
    return make_record


@pytest.fixture()
def straight_segment():
    """One accessible, fully confirmed segment about 78.7 m long."""
    return [make_record([(BASE_LAT, BASE_LON), (BASE_LAT, BASE_LON + 0.001)],
                        tags={"highway": "footway", "wheelchair": "yes"}, segment_id="way/1")]


@pytest.fixture()
def steps_segment():
    """A flight of steps with no alternative."""
    return [make_record([(BASE_LAT, BASE_LON), (BASE_LAT, BASE_LON + 0.001)],
                        score=0.0, passable=False, confidence="low", issues=("steps",),
                        tags={"highway": "steps"}, segment_id="way/steps")]


@pytest.fixture()
def cross_network():
    """Two segments crossing at (45.0, -74.999): 5 nodes, 4 chunks."""
    junction = (BASE_LAT, BASE_LON + 0.001)
    east_west = make_record(
        [(BASE_LAT, BASE_LON), junction, (BASE_LAT, BASE_LON + 0.002)], segment_id="way/ew")
    north_south = make_record(
        [(BASE_LAT - 0.001, BASE_LON + 0.001), junction, (BASE_LAT + 0.001, BASE_LON + 0.001)],
        segment_id="way/ns")
    return [east_west, north_south]


@pytest.fixture()
def chain_network():
    """Ten short consecutive segments along one street (about 7.9 m each)."""
    records = []
    for i in range(10):
        a = (BASE_LAT, BASE_LON + i * 0.0001)
        b = (BASE_LAT, BASE_LON + (i + 1) * 0.0001)
        records.append(make_record([a, b], segment_id=f"way/chain{i}"))
    return records
