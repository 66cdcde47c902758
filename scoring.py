# scoring.py
import re
import warnings
from collections.abc import Mapping
from typing import NamedTuple

from config import (
    DEFAULT_ACCESSIBILITY_SCORE, ACCESSIBLE_SCORE_THRESHOLD,
    GOOD_SURFACES, BAD_SURFACES, GOOD_SMOOTHNESS, BAD_SMOOTHNESS,
    INCLINE_STEEP, INCLINE_UNSPECIFIED, WIDTH_NARROW_M, WIDTH_GOOD_M,
)
from segments import SegmentTags

# signals that make a segment impassable regardless of the final score
BLOCKING_ISSUES = {"steps", "wheelchair_no"}

_PERCENT_RE = re.compile(r"^(-?\d+(?:\.\d+)?)\s*%$")


class AccessibilityAssessment(NamedTuple):
    score: float
    is_accessible: bool
    confidence: str
    issues: list
    tags: dict


def parse_incline(value):
    """Return the absolute grade as a fraction, or None if unparseable."""
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return abs(float(value))
    text = str(value).strip().lower()
    if text in ("up", "down"):
        return INCLINE_UNSPECIFIED
    m = _PERCENT_RE.match(text)
    if m:
        return abs(float(m.group(1)) / 100.0)
    try:
        return abs(float(text))
    except ValueError:
        warnings.warn(f"Unparseable incline value: {value!r}")
        return None


def parse_width(value):
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    digits = re.sub(r"[^\d.]", "", str(value))
    try:
        return float(digits)
    except ValueError:
        return None


def score_segment(tags=None):
    """
    Score a segment's tags for wheelchair accessibility.

    Rules (additive, starting from DEFAULT_ACCESSIBILITY_SCORE):
      1. wheelchair=yes confirms access (+0.1); limited -0.2; no -0.8
      2. lowered/flush kerb +0.05; raised/high kerb -0.4
      3. good surface +0.05; loose or rough surface -0.3
      4. good smoothness +0.05; bad smoothness -0.5
      5. incline above 8% -0.4 (gentler grades are neutral)
      6. width >= 1.5 m +0.05; below 1.0 m -0.3
      7. highway=steps -0.9
    The result is clamped to [0, 1].

    Confidence is 'high' with two or more positive signals or an explicit
    wheelchair=yes, 'low' whenever a negative signal fired, else 'medium'.

    Args:
        tags: SegmentTags, or a raw property mapping (possibly empty)

    Returns:
        AccessibilityAssessment
    """
    if tags is None or isinstance(tags, Mapping):
        tags = SegmentTags.from_properties(tags)

    score = DEFAULT_ACCESSIBILITY_SCORE
    issues = []
    positive = 0
    negative = 0

    def apply(delta, issue=None):
        nonlocal score, positive, negative
        score += delta
        if delta < 0:
            negative += 1
            if issue:
                issues.append(issue)
        elif delta > 0:
            positive += 1

    wheelchair = (tags.wheelchair or "").lower()
    if wheelchair == "yes":
        apply(0.1)
    elif wheelchair == "limited":
        apply(-0.2, "wheelchair_limited")
    elif wheelchair == "no":
        apply(-0.8, "wheelchair_no")

    if tags.kerb:
        kerb = tags.kerb.lower()
        if "lowered" in kerb or "flush" in kerb or kerb == "raised:0":
            apply(0.05)
        elif "raised" in kerb or "high" in kerb:
            apply(-0.4, "kerb_high")

    if tags.surface:
        surface = tags.surface.lower()
        if surface in GOOD_SURFACES:
            apply(0.05)
        elif surface in BAD_SURFACES:
            apply(-0.3, f"surface_{surface}")

    if tags.smoothness:
        smoothness = tags.smoothness.lower()
        if smoothness in GOOD_SMOOTHNESS:
            apply(0.05)
        elif smoothness in BAD_SMOOTHNESS:
            apply(-0.5, f"smoothness_{smoothness}")

    incline = parse_incline(tags.incline)
    # gentler grades carry no signal either way
    if incline is not None and incline > INCLINE_STEEP:
        apply(-0.4, "steep_incline")

    width = parse_width(tags.width)
    if width is not None:
        if width < WIDTH_NARROW_M:
            apply(-0.3, "narrow_width")
        elif width >= WIDTH_GOOD_M:
            apply(0.05)

    if (tags.highway or "").lower() == "steps":
        apply(-0.9, "steps")

    score = max(0.0, min(1.0, score))

    confidence = "medium"
    if positive >= 2 or wheelchair == "yes":
        confidence = "high"
    if negative > 0:
        confidence = "low"

    is_accessible = score >= ACCESSIBLE_SCORE_THRESHOLD and not BLOCKING_ISSUES.intersection(issues)

    return AccessibilityAssessment(
        score=score,
        is_accessible=is_accessible,
        confidence=confidence,
        issues=issues,
        tags=tags.as_display_dict(),
    )
