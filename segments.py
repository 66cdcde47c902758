"""Segment Model

Typed representation of one piece of pedestrian infrastructure (a sidewalk,
path or crossing) as handed to the routing engine.

Input records look like::

    {
        "segment_id": "way/123",
        "geometry": {"type": "LineString", "coordinates": [[lon, lat], ...]},
        "attributes": {
            "accessibility_score": 0.95,
            "is_wheelchair_passable": true,
            "confidence": "high",
            "issues": [],
            "tags": {"highway": "footway", "surface": "asphalt"}
        }
    }

Coordinates arrive as [lon, lat] (GeoJSON order) and are stored internally
as (lat, lon) tuples.
"""

import math
import warnings
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from config import ACCESSIBLE_SCORE_THRESHOLD, DEFAULT_ACCESSIBILITY_SCORE
from utils import to_latlon

CONFIDENCE_LEVELS = ("low", "medium", "high")

# recognized tag -> raw property names checked in order
_TAG_SOURCES = {
    "highway": ("highway",),
    "foot": ("foot",),
    "wheelchair": ("wheelchair", "sidewalk:wheelchair"),
    "kerb": ("kerb", "kerb:height"),
    "surface": ("surface", "sidewalk:surface"),
    "smoothness": ("smoothness", "sidewalk:smoothness"),
    "incline": ("incline", "sidewalk:incline"),
    "width": ("width", "sidewalk:width"),
}


def _clean_value(value):
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


@dataclass(frozen=True)
class SegmentTags:
    """Recognized accessibility tags plus a pass-through bag for display."""
    highway: Optional[str] = None
    foot: Optional[str] = None
    wheelchair: Optional[str] = None
    kerb: Optional[str] = None
    surface: Optional[str] = None
    smoothness: Optional[str] = None
    incline: Optional[object] = None   # str ("8%", "up") or number
    width: Optional[object] = None     # str ("1.2 m") or number
    extra: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_properties(cls, properties=None):
        properties = dict(properties or {})
        values = {}
        consumed = set()
        for name, sources in _TAG_SOURCES.items():
            for src in sources:
                consumed.add(src)
                value = _clean_value(properties.get(src))
                if value is not None and name not in values:
                    if name in ("incline", "width") and isinstance(value, (int, float)):
                        values[name] = value
                    else:
                        values[name] = str(value)
        extra = {}
        for k, v in properties.items():
            v = _clean_value(v)
            if k in consumed or v is None or isinstance(v, (dict, list)):
                continue
            extra[str(k)] = str(v)
        return cls(extra=extra, **values)

    def as_display_dict(self):
        return {
            "highway": self.highway,
            "foot": self.foot,
            "surface": self.surface,
            "smoothness": self.smoothness,
            "kerb": self.kerb,
            "incline": self.incline,
            "width": self.width,
            "wheelchair": self.wheelchair,
        }


@dataclass(frozen=True)
class SegmentAttributes:
    accessibility_score: float = DEFAULT_ACCESSIBILITY_SCORE
    is_wheelchair_passable: bool = True
    confidence: str = "medium"
    issues: Tuple[str, ...] = ()
    tags: SegmentTags = field(default_factory=SegmentTags)

    @classmethod
    def from_mapping(cls, attrs=None):
        attrs = attrs or {}
        score = attrs.get("accessibility_score")
        if score is None:
            score = DEFAULT_ACCESSIBILITY_SCORE
        score = float(score)
        if not math.isfinite(score):
            raise ValueError(f"accessibility_score must be finite, got {score}")
        score = max(0.0, min(1.0, score))
        passable = attrs.get("is_wheelchair_passable")
        if passable is None:
            passable = score >= ACCESSIBLE_SCORE_THRESHOLD
        confidence = attrs.get("confidence") or "medium"
        if confidence not in CONFIDENCE_LEVELS:
            confidence = "medium"
        issues = tuple(str(i) for i in (attrs.get("issues") or ()))
        tags = attrs.get("tags")
        if not isinstance(tags, SegmentTags):
            tags = SegmentTags.from_properties(tags)
        return cls(
            accessibility_score=score,
            is_wheelchair_passable=bool(passable),
            confidence=confidence,
            issues=issues,
            tags=tags,
        )

    def to_dict(self):
        return {
            "accessibility_score": self.accessibility_score,
            "is_wheelchair_passable": self.is_wheelchair_passable,
            "confidence": self.confidence,
            "issues": list(self.issues),
            "tags": {k: v for k, v in self.tags.as_display_dict().items() if v is not None},
        }


@dataclass(frozen=True)
class AccessibilitySegment:
    coordinates: Tuple[Tuple[float, float], ...]   # (lat, lon)
    attributes: SegmentAttributes = field(default_factory=SegmentAttributes)
    segment_id: Optional[str] = None
    sources: Tuple[str, ...] = ()
    venue_scores: Tuple[dict, ...] = ()

    @classmethod
    def from_record(cls, record):
        """Build a segment from an input record; raises ValueError if malformed."""
        if not isinstance(record, dict):
            raise ValueError("segment record must be a mapping")
        geometry = record.get("geometry")
        if isinstance(geometry, dict):
            if geometry.get("type") != "LineString":
                raise ValueError(f"unsupported geometry type: {geometry.get('type')!r}")
            raw_coords = geometry.get("coordinates")
        else:
            raw_coords = geometry
        if not isinstance(raw_coords, (list, tuple)) or len(raw_coords) < 2:
            raise ValueError("segment geometry needs at least two coordinates")
        coords = tuple(to_latlon(c) for c in raw_coords)
        seg_id = record.get("segment_id", record.get("id"))
        return cls(
            coordinates=coords,
            attributes=SegmentAttributes.from_mapping(record.get("attributes")),
            segment_id=str(seg_id) if seg_id is not None else None,
            sources=tuple(record.get("sources") or ()),
            venue_scores=tuple(record.get("venue_scores") or ()),
        )

    def to_record(self):
        return {
            "segment_id": self.segment_id,
            "osm_type": (self.segment_id or "way").split("/")[0],
            "geometry": {
                "type": "LineString",
                "coordinates": [[lon, lat] for lat, lon in self.coordinates],
            },
            "attributes": self.attributes.to_dict(),
            "sources": list(self.sources),
            "venue_scores": list(self.venue_scores),
        }


def parse_segments(records):
    """Parse input records, skipping malformed ones with a single warning."""
    segments = []
    skipped = 0
    for record in records:
        if isinstance(record, AccessibilitySegment):
            segments.append(record)
            continue
        try:
            segments.append(AccessibilitySegment.from_record(record))
        except (ValueError, TypeError):
            skipped += 1
    if skipped:
        warnings.warn(f"Skipped {skipped} malformed segment record(s).")
    return segments
