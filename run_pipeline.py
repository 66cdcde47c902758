# run_pipeline.py
import json

from config import (
    RAW_SIDEWALKS_GEOJSON, PROCESSED_SEGMENTS_JSON, VENUE_ACCESSIBILITY_CSV,
    OUT_NODES, OUT_EDGES, OUT_GRAPHML, OUT_ROUTE,
)
from data_loader import load_accessible_segments, process_accessibility
from engine import RoutingEngine
from export_utils import export_graph, export_route
from analyze_graph import compute_metrics, print_metrics
from route_summary import summarize_route


def parse_latlon(text):
    """Parse a 'lat,lon' string, validating both ranges."""
    parts = [p.strip() for p in str(text).split(",")]
    if len(parts) != 2:
        raise ValueError("Please enter exactly 2 values (lat, lon)")
    lat, lon = float(parts[0]), float(parts[1])
    if not -90 <= lat <= 90:
        raise ValueError("Invalid latitude value. Must be between -90 and 90")
    if not -180 <= lon <= 180:
        raise ValueError("Invalid longitude value. Must be between -180 and 180")
    return lat, lon


def get_point_from_user(label):
    """Prompt user for a 'lat,lon' coordinate."""
    print(f"\nEnter the {label} point as: lat, lon")
    print("Example for Ottawa: 45.4215, -75.6972")

    while True:
        try:
            return parse_latlon(input(f"\n{label.capitalize()}: ").strip())
        except ValueError as e:
            print(f"Error: {e}")
        except KeyboardInterrupt:
            print("\nCancelled by user")
            raise SystemExit(0)


def main(process=False, raw_path=RAW_SIDEWALKS_GEOJSON, processed_path=PROCESSED_SEGMENTS_JSON,
         venues_path=VENUE_ACCESSIBILITY_CSV, export=True, analyze=False,
         start=None, end=None, options=None, prompt_route=False):
    """Run the accessible routing pipeline.

    Args:
        process: If True, rebuild the processed segment file from the raw export
        export: Write nodes/edges GeoJSON and GraphML
        analyze: Print the graph quality report
        start, end: (lat, lon) pairs; when both are given a route is computed
        options: routing option mapping (e.g. {"allow_non_accessible": True})
        prompt_route: If True, interactively prompt for start and end
    """
    if process:
        segments = process_accessibility(raw_path, processed_path, venues_path)
    else:
        print(f"Loading processed segments from {processed_path} …")
        segments = load_accessible_segments(processed_path)
    print("Segments loaded:", len(segments))

    engine = RoutingEngine(segments)
    bundle = engine.bundle_for(options)
    graph = bundle.graph

    if export:
        export_graph(graph, OUT_NODES, OUT_EDGES, OUT_GRAPHML)

    metrics = None
    if analyze:
        metrics = compute_metrics(graph, bundle.connectivity)
        print_metrics(metrics)

    if prompt_route:
        start = get_point_from_user("start")
        end = get_point_from_user("end")

    result = None
    if start is not None and end is not None:
        print(f"\nRouting {start} -> {end} …")
        result = engine.route(start, end, options)
        summary = summarize_route(result)
        print(json.dumps(summary, indent=2, default=str))
        if export:
            export_route(result, OUT_ROUTE)

    print("Done.")
    return engine, metrics, result


if __name__ == "__main__":
    import argparse

    def _latlon_arg(text):
        try:
            return parse_latlon(text)
        except ValueError as e:
            raise argparse.ArgumentTypeError(str(e))

    parser = argparse.ArgumentParser(description="Accessible pedestrian routing pipeline")
    parser.add_argument("--process", action="store_true", help="Rebuild processed segments from the raw OpenSidewalks export")
    parser.add_argument("--raw", type=str, default=str(RAW_SIDEWALKS_GEOJSON), help="Raw OpenSidewalks GeoJSON")
    parser.add_argument("--segments", type=str, default=str(PROCESSED_SEGMENTS_JSON), help="Processed segment JSON")
    parser.add_argument("--venues", type=str, default=str(VENUE_ACCESSIBILITY_CSV), help="Venue accessibility CSV")
    parser.add_argument("--no-export", action="store_true", help="Skip GeoJSON/GraphML export")
    parser.add_argument("--analyze", action="store_true", help="Print the graph quality report")
    parser.add_argument("--start", type=_latlon_arg, help="Route start as 'lat,lon'")
    parser.add_argument("--end", type=_latlon_arg, help="Route end as 'lat,lon'")
    parser.add_argument("--prompt", action="store_true", help="Prompt for start and end interactively")
    parser.add_argument("--strict", action="store_true", help="Exclude limited segments as well as non-accessible ones")
    parser.add_argument("--relaxed", action="store_true", help="Allow non-accessible segments (heavily penalized)")
    parser.add_argument("--limited-threshold", type=float, default=None, help="Score separating limited from severe segments")
    args = parser.parse_args()

    route_options = {}
    if args.strict:
        route_options["allow_limited_segments"] = False
    if args.relaxed:
        route_options["allow_non_accessible"] = True
    if args.limited_threshold is not None:
        route_options["limited_threshold"] = args.limited_threshold

    main(
        process=args.process,
        raw_path=args.raw,
        processed_path=args.segments,
        venues_path=args.venues,
        export=not args.no_export,
        analyze=args.analyze,
        start=args.start,
        end=args.end,
        options=route_options or None,
        prompt_route=args.prompt,
    )
