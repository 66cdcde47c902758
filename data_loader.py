"""Data Loading Module

Purpose: Read the raw OpenSidewalks export (GeoJSON) and turn every line
feature into a scored AccessibilitySegment that the routing engine can load.
Optionally merge venue-level accessibility records (Wheelmap / AccessNow
style CSV) keyed by the segment they sit on.

Beginner concepts:
1. GeoDataFrame: Like a pandas DataFrame but each row has a geometry shape.
2. OpenSidewalks features are LineStrings in EPSG:4326 ([lon, lat] order);
   MultiLineStrings are reduced to their longest part.
3. The processed file is plain JSON so the engine can start without the
   geopandas stack having to re-read the raw export.

High-level flow:
  load_opensidewalks_features() -> GeoDataFrame (one row per line feature)
  load_venue_accessibility()    -> DataFrame (possibly empty)
  build_accessible_segments()   -> [AccessibilitySegment]
  save_processed_segments()     -> {generated_at, segment_count, segments}
  load_accessible_segments()    <- the same file, for the engine
"""

import json
import warnings
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path

import pandas as pd
import geopandas as gpd

from config import RAW_SIDEWALKS_GEOJSON, PROCESSED_SEGMENTS_JSON, VENUE_ACCESSIBILITY_CSV
from scoring import score_segment
from segments import AccessibilitySegment, SegmentAttributes, SegmentTags, parse_segments
from utils import longest_linestring_from_multigeom

FEATURE_ID_COL = "feature_id"
VENUE_ID_COLS = ("segment_id", "osm_way_id")


def _is_present(value):
    if isinstance(value, (list, tuple, dict)):
        return True
    return bool(pd.notna(value))


def load_opensidewalks_features(path=RAW_SIDEWALKS_GEOJSON):
    """Read the raw OpenSidewalks GeoJSON into a GeoDataFrame of LineStrings.

    Raises:
        FileNotFoundError: the export has not been fetched yet
        ValueError: the file is not a FeatureCollection
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(
            f"OpenSidewalks GeoJSON not found at {path.resolve()}. "
            "Fetch the raw export first or point OPENSIDEWALKS_PATH at it."
        )
    with open(path, "r", encoding="utf-8") as f:
        geojson = json.load(f)
    features = geojson.get("features") if isinstance(geojson, dict) else None
    if not isinstance(features, list):
        raise ValueError(f"Unexpected GeoJSON structure in {path}")

    if not features:
        return gpd.GeoDataFrame(columns=[FEATURE_ID_COL, "geometry"], geometry="geometry", crs="EPSG:4326")

    gdf = gpd.GeoDataFrame.from_features(features, crs="EPSG:4326")
    # feature-level ids are not carried over by from_features
    gdf[FEATURE_ID_COL] = [f.get("id") if isinstance(f, dict) else None for f in features]

    gdf["geometry"] = gdf.geometry.apply(longest_linestring_from_multigeom)
    before = len(gdf)
    gdf = gdf[gdf.geometry.notna()].copy()
    gdf = gdf[~gdf.geometry.is_empty].copy()
    if len(gdf) != before:
        print(f"Dropped {before - len(gdf)} non-line features ({len(gdf)} line features kept)")
    return gdf


def load_venue_accessibility(path=VENUE_ACCESSIBILITY_CSV):
    """Load venue accessibility records from CSV (empty frame if there is no file).

    Expected columns: segment_id or osm_way_id, plus optional source and
    score / wheelchair.
    """
    if path is None or not Path(path).exists():
        print("No venue accessibility data found; continuing with sidewalk tags only.")
        return pd.DataFrame(columns=list(VENUE_ID_COLS) + ["source", "score"])
    df = pd.read_csv(path, low_memory=False)
    if not any(c in df.columns for c in VENUE_ID_COLS):
        raise ValueError(f"Venue CSV {path} needs a segment_id or osm_way_id column")
    return df


def _venue_lookup(venues):
    lookup = defaultdict(list)
    if venues is None or len(venues) == 0:
        return lookup
    for rec in venues.to_dict("records"):
        seg_id = None
        for col in VENUE_ID_COLS:
            if _is_present(rec.get(col)):
                seg_id = str(rec[col])
                break
        if seg_id is None:
            continue
        source = rec.get("source")
        score = rec.get("score")
        if not _is_present(score):
            score = rec.get("wheelchair")
        lookup[seg_id].append({
            "source": source if _is_present(source) else "wheelmap",
            "score": score if _is_present(score) else None,
        })
    return lookup


def build_accessible_segments(gdf, venues=None):
    """
    Score every feature and attach venue records.

    A segment with at least one venue record gets at least 'medium'
    confidence. Features whose geometry has fewer than two points are
    skipped with a warning.

    Args:
        gdf: GeoDataFrame from load_opensidewalks_features
        venues: DataFrame from load_venue_accessibility (optional)

    Returns:
        list of AccessibilitySegment
    """
    lookup = _venue_lookup(venues)
    prop_cols = [c for c in gdf.columns if c not in ("geometry", FEATURE_ID_COL)]
    segments = []
    skipped = 0

    for _, row in gdf.iterrows():
        geom = row.geometry
        coords = [(float(c[1]), float(c[0])) for c in geom.coords]
        if len(coords) < 2:
            skipped += 1
            continue

        props = {c: row[c] for c in prop_cols if _is_present(row[c])}
        seg_id = props.get("id")
        if seg_id is None and FEATURE_ID_COL in gdf.columns and _is_present(row[FEATURE_ID_COL]):
            seg_id = row[FEATURE_ID_COL]
        seg_id = str(seg_id) if seg_id is not None else None

        assessment = score_segment(props)
        confidence = assessment.confidence
        venue_scores = lookup.get(seg_id, []) if seg_id is not None else []
        if venue_scores and confidence != "high":
            confidence = "medium"

        attrs = SegmentAttributes(
            accessibility_score=assessment.score,
            is_wheelchair_passable=assessment.is_accessible,
            confidence=confidence,
            issues=tuple(assessment.issues),
            tags=SegmentTags.from_properties(props),
        )
        segments.append(AccessibilitySegment(
            coordinates=tuple(coords),
            attributes=attrs,
            segment_id=seg_id,
            sources=("opensidewalks",),
            venue_scores=tuple(venue_scores),
        ))

    if skipped:
        warnings.warn(f"Skipped {skipped} feature(s) with fewer than two coordinates.")
    return segments


def save_processed_segments(segments, path=PROCESSED_SEGMENTS_JSON):
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "segment_count": len(segments),
        "segments": [s.to_record() for s in segments],
    }
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)
    print(f"Saved normalized accessibility data to {path}")
    return path


def load_accessible_segments(path=PROCESSED_SEGMENTS_JSON):
    """Load the processed segment file written by save_processed_segments.

    Accepts either the {generated_at, segment_count, segments} payload or a
    bare list of segment records.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(
            f"Processed accessibility data not found at {path.resolve()}. "
            "Run `python run_pipeline.py --process` first."
        )
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict) and isinstance(data.get("segments"), list):
        records = data["segments"]
    elif isinstance(data, list):
        records = data
    else:
        raise ValueError(f"Unexpected processed data structure in {path}")
    return parse_segments(records)


def process_accessibility(raw_path=RAW_SIDEWALKS_GEOJSON, output_path=PROCESSED_SEGMENTS_JSON,
                          venues_path=VENUE_ACCESSIBILITY_CSV):
    """Raw OpenSidewalks export -> processed segment file. Returns the segments."""
    print("Loading OpenSidewalks segments...")
    gdf = load_opensidewalks_features(raw_path)
    print(f"Loaded {len(gdf)} sidewalk features.")

    venues = load_venue_accessibility(venues_path)
    if len(venues):
        print(f"Loaded {len(venues)} venue accessibility records.")

    segments = build_accessible_segments(gdf, venues)
    save_processed_segments(segments, output_path)
    return segments
