# route_summary.py
from collections import Counter

from config import WALKING_SPEED_MPS, FAR_FROM_NETWORK_WARNING_M


def estimate_duration_min(distance_m, speed_mps=WALKING_SPEED_MPS):
    if distance_m is None or distance_m <= 0 or distance_m != distance_m or distance_m == float("inf"):
        return 0.0
    return distance_m / speed_mps / 60.0


def collect_issue_counts(segments):
    counts = Counter()
    for seg in segments or ():
        for issue in seg.get("issues") or ():
            counts[issue] += 1
    return dict(sorted(counts.items()))


def summarize_route(result, speed_mps=WALKING_SPEED_MPS, warn_distance_m=FAR_FROM_NETWORK_WARNING_M):
    """
    Condense a route result into what a directions panel shows.

    Args:
        result: dict returned by RoutingEngine.route / routing.route
        speed_mps: walking speed used for the duration estimate
        warn_distance_m: endpoint offsets above this produce a warning

    Returns:
        dict with distance_m, duration_min, accessibility figures, issue
        counts, per-segment guidance and warnings. Failed routes return
        {"success": False, "reason": ..., "warnings": [...]}.
    """
    if not result.get("success"):
        reason = result.get("reason", "unknown")
        return {"success": False, "reason": reason, "warnings": [f"No route: {reason}"]}

    metrics = result.get("metrics", {})
    segments = result.get("segments", [])
    distance = metrics.get("total_distance_m", 0.0)

    warnings_out = []
    for label, key in (("Start", "start_distance_to_network_m"), ("End", "end_distance_to_network_m")):
        offset = metrics.get(key)
        if offset is not None and offset > warn_distance_m:
            warnings_out.append(
                f"{label} point is {offset:.0f} m from the nearest accessible path; "
                "the route begins at the closest network point."
            )
    if not segments:
        warnings_out.append("Route has no traversed segments (start and end share a network point).")

    guidance = []
    for idx, seg in enumerate(segments):
        guidance.append({
            "index": idx,
            "summary": ("Proceed along accessible segment" if seg.get("accessible")
                        else "Proceed with caution (limited accessibility)"),
            "distance_m": seg.get("length_m"),
            "issues": list(seg.get("issues") or ()),
            "confidence": seg.get("confidence"),
        })

    return {
        "success": True,
        "distance_m": distance,
        "duration_min": estimate_duration_min(distance, speed_mps),
        "accessibility": {
            "average_score": metrics.get("average_accessibility_score"),
            "accessible_segment_ratio": metrics.get("accessible_segment_ratio"),
            "start_distance_to_network_m": metrics.get("start_distance_to_network_m"),
            "end_distance_to_network_m": metrics.get("end_distance_to_network_m"),
            "segment_issues": collect_issue_counts(segments),
        },
        "guidance": guidance,
        "warnings": warnings_out,
    }
