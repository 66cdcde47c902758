# utils.py
import math
from collections.abc import Mapping, Sequence

from shapely.geometry import LineString, MultiLineString, Point

from config import COORD_PRECISION

EARTH_RADIUS_M = 6371000.0


def haversine_m(a, b):
    """Great-circle distance in meters between two (lat, lon) pairs."""
    lat1, lon1 = a
    lat2, lon2 = b
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = phi2 - phi1
    dlambda = math.radians(lon2 - lon1)
    h = (
        math.sin(dphi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def project_onto_polyline(p, path):
    """Closest point of a (lat, lon) polyline to p.

    The line is measured in a local planar frame (x = lon * cos(lat), y = lat)
    so the projection is perpendicular on the ground rather than in raw degrees.

    Returns:
        tuple: ((lat, lon) of the projected point, index i of the sub-segment
        path[i] -> path[i + 1] holding it)
    """
    k = math.cos(math.radians(p[0]))
    line = LineString([(lon * k, lat) for lat, lon in path])
    if line.length == 0:
        return tuple(path[0]), 0
    d = line.project(Point(p[1] * k, p[0]))
    hit = line.interpolate(d)

    coords = line.coords
    index = 0
    walked = 0.0
    for i in range(len(coords) - 1):
        index = i
        walked += math.hypot(coords[i + 1][0] - coords[i][0], coords[i + 1][1] - coords[i][1])
        if walked >= d:
            break
    return (hit.y, hit.x / k), index


def polyline_length_m(coords):
    length = 0.0
    for i in range(1, len(coords)):
        length += haversine_m(coords[i - 1], coords[i])
    return length


def coord_key(lat, lon, precision=COORD_PRECISION):
    # deterministic node identity: both axes rounded to a fixed precision
    return (round(lat, precision), round(lon, precision))


def to_latlon(coord):
    """Convert a [lon, lat] input pair to a (lat, lon) tuple of floats."""
    if not isinstance(coord, Sequence) or isinstance(coord, str) or len(coord) < 2:
        raise ValueError(f"Invalid coordinate: {coord!r}")
    lon, lat = float(coord[0]), float(coord[1])
    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise ValueError(f"Invalid coordinate: {coord!r}")
    return (lat, lon)


def normalize_coordinate(value, label="coordinate"):
    """Accept {'lat', 'lon'|'lng'} mappings or (lat, lon) pairs.

    Raises TypeError for values of the wrong type and ValueError for
    coordinates outside the valid lat/lon ranges.
    """
    if isinstance(value, Mapping):
        lat = value.get("lat")
        lon = value.get("lon", value.get("lng"))
    elif isinstance(value, Sequence) and not isinstance(value, str) and len(value) == 2:
        lat, lon = value
    else:
        raise TypeError(f"{label} must be a {{lat, lon}} mapping or a (lat, lon) pair")

    for v in (lat, lon):
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise TypeError(f"{label}.lat and {label}.lon are required numbers")
    lat, lon = float(lat), float(lon)
    if not (-90.0 <= lat <= 90.0) or not (-180.0 <= lon <= 180.0):
        raise ValueError(f"{label} out of range: ({lat}, {lon})")
    return (lat, lon)


def longest_linestring_from_multigeom(geom):
    # If MultiLineString, return longest part, otherwise return geom
    if isinstance(geom, MultiLineString):
        parts = list(geom.geoms)
        if not parts:
            return None
        parts.sort(key=lambda p: p.length, reverse=True)
        return parts[0]
    if isinstance(geom, LineString):
        return geom
    return None
