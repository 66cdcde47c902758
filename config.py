# config.py
import os
from pathlib import Path

# Data locations (raw OpenSidewalks export in, normalized segments out)
DATA_DIR = Path("data")
RAW_SIDEWALKS_GEOJSON = Path(os.environ.get(
    "OPENSIDEWALKS_PATH", DATA_DIR / "raw" / "opensidewalks" / "sidewalks.geojson"))
PROCESSED_SEGMENTS_JSON = Path(os.environ.get(
    "ACCESSIBILITY_OUTPUT_PATH", DATA_DIR / "processed" / "accessible_segments.json"))
VENUE_ACCESSIBILITY_CSV = Path(os.environ.get(
    "VENUE_ACCESSIBILITY_PATH", DATA_DIR / "raw" / "venues" / "venue_accessibility.csv"))

# Exports
OUT_DIR = Path(os.environ.get("ROUTING_OUTPUT_DIR", "output"))
OUT_NODES = OUT_DIR / "routing_nodes.geojson"
OUT_EDGES = OUT_DIR / "routing_edges.geojson"
OUT_GRAPHML = OUT_DIR / "routing_graph.graphml"
OUT_ROUTE = OUT_DIR / "route.geojson"

# Node identity: coordinates rounded to this many decimals (1e-6 deg ~ 0.1 m)
COORD_PRECISION = 6

# Accessibility scoring
DEFAULT_ACCESSIBILITY_SCORE = 0.9   # unverified but presumed passable
ACCESSIBLE_SCORE_THRESHOLD = 0.6    # score >= threshold => passable
GOOD_SURFACES = {"asphalt", "paved", "concrete", "concrete:lanes", "paving_stones"}
BAD_SURFACES = {"gravel", "dirt", "ground", "grass", "cobblestone", "sand", "woodchips"}
GOOD_SMOOTHNESS = {"excellent", "good", "intermediate"}
BAD_SMOOTHNESS = {"bad", "very_bad", "horrible", "very_horrible", "impassable"}
INCLINE_STEEP = 0.08                # grade above which the segment is flagged
INCLINE_UNSPECIFIED = 0.06          # grade assumed for incline=up/down
WIDTH_NARROW_M = 1.0
WIDTH_GOOD_M = 1.5

# Cost model defaults (hand-tuned, overridable through graph_builder.CostModel)
DEFAULT_LIMITED_THRESHOLD = 0.5
THRESHOLD_DECIMALS = 2             # limited_threshold is rounded to this many places
MAX_CACHED_BUNDLES = 8             # graph bundles kept per engine (oldest evicted first)
LIMITED_MULTIPLIER = 2.5
SEVERE_MULTIPLIER = 10.0
CONFIDENCE_PENALTIES = {"low": 0.35, "medium": 0.15, "high": 0.0}
ISSUE_PENALTIES = {
    "kerb_high": 0.3,
    "surface_gravel": 0.25,
    "surface_cobblestone": 0.3,
    "narrow_width": 0.2,
    "steep_incline": 0.35,
    "wheelchair_limited": 0.25,
    "wheelchair_no": 1.0,
    "steps": 5.0,
}

# Topology repair
WELD_TOLERANCE_M = 1.0       # unconnected nodes closer than this get welded
WELD_PENALTY = 0.1

# Spatial grid: cells per degree (1000 => 0.001 deg, ~111 m of latitude)
GRID_SIZE = 1000
MAX_SEARCH_RING = 10

# Snapping
SNAP_RADIUS_M = 30.0
MAX_SNAP_CANDIDATES = 5
SNAP_EPSILON_M = 0.05

# Search bounds
MAX_SEARCH_ITERATIONS = 1_000_000
SEARCH_TIME_BUDGET_S = 10.0

# Route summary
WALKING_SPEED_MPS = 1.15              # ~4.1 km/h, conservative accessible pace
FAR_FROM_NETWORK_WARNING_M = 50.0
