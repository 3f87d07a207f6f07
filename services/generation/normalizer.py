"""
Request normalization.

Turns the caller's free-form hints (duration, width/height, aspect ratio,
resolution) into values a backend accepts. Out-of-range durations are
clamped, never rejected.
"""

import math
from dataclasses import dataclass
from typing import Optional, Union

# Aspect ratios every backend understands
SUPPORTED_ASPECT_RATIOS = {
    "16:9": 16 / 9,
    "9:16": 9 / 16,
    "1:1": 1.0,
    "4:3": 4 / 3,
    "3:4": 3 / 4,
    "21:9": 21 / 9,
}

# Resolution tiers keyed by the short side of the frame
RESOLUTION_TIERS = (
    ("480p", 480),
    ("720p", 720),
    ("1080p", 1080),
    ("1440p", 1440),
    ("2160p", 2160),
)


@dataclass(frozen=True)
class DurationRule:
    """Provider-defined duration range, optionally with discrete steps."""
    min_seconds: int
    max_seconds: int
    default_seconds: int
    allowed: Optional[tuple[int, ...]] = None

    def apply(self, requested: Optional[float]) -> int:
        """Clamp (and snap, if the backend only takes fixed values).

        Absent, zero and NaN durations use the default; infinities clamp.
        """
        raw = requested if requested and not math.isnan(requested) else self.default_seconds
        duration = clamp_duration(raw, self.min_seconds, self.max_seconds)
        if self.allowed:
            duration = snap_duration(duration, self.allowed)
        return duration


def clamp_duration(value: float, minimum: int, maximum: int) -> int:
    """Clamp a duration into [minimum, maximum] and round to whole seconds."""
    return int(round(max(minimum, min(maximum, value))))


def snap_duration(value: int, allowed: tuple[int, ...]) -> int:
    """Nearest allowed value; ties go to the lower one."""
    return min(sorted(allowed), key=lambda candidate: abs(candidate - value))


def nearest_aspect_ratio(width: int, height: int) -> str:
    """Pick the supported aspect ratio closest to width/height."""
    ratio = width / height
    return min(
        SUPPORTED_ASPECT_RATIOS,
        key=lambda name: abs(math.log(SUPPORTED_ASPECT_RATIOS[name] / ratio)),
    )


def resolution_for_size(width: int, height: int) -> str:
    """Smallest tier that covers the short side of the frame."""
    short_side = min(width, height)
    for label, pixels in RESOLUTION_TIERS:
        if short_side <= pixels:
            return label
    return RESOLUTION_TIERS[-1][0]


def calculate_video_resolution(
    width: Optional[int] = None,
    height: Optional[int] = None,
    aspect_ratio: Optional[str] = None,
    resolution: Optional[str] = None,
    default_resolution: str = "720p",
    default_aspect_ratio: str = "16:9",
    allowed_resolutions: Optional[tuple[str, ...]] = None,
) -> tuple[str, str]:
    """
    Work out (aspect_ratio, resolution) from the caller's hints.

    Explicit aspect_ratio/resolution win over width/height. Resolutions the
    backend does not offer fall back to the closest allowed tier.

    Returns:
        Tuple of (aspect ratio like "16:9", resolution label like "720p")
    """
    if aspect_ratio not in SUPPORTED_ASPECT_RATIOS:
        aspect_ratio = None
    if aspect_ratio is None and width and height:
        aspect_ratio = nearest_aspect_ratio(width, height)

    label = resolution.lower() if resolution else None
    if label is None and width and height:
        label = resolution_for_size(width, height)
    label = label or default_resolution.lower()

    if allowed_resolutions and label not in allowed_resolutions:
        label = _closest_tier(label, allowed_resolutions)

    return aspect_ratio or default_aspect_ratio, label


def _closest_tier(label: str, allowed: tuple[str, ...]) -> str:
    pixels = dict(RESOLUTION_TIERS)
    target = pixels.get(label)
    if target is None:
        return allowed[0]
    return min(allowed, key=lambda candidate: abs(pixels.get(candidate, 0) - target))


def resolution_label(value: Union[str, int, None]) -> Optional[str]:
    """Provider-reported resolution as a label like "720p"."""
    if value is None or value == "":
        return None
    text = str(value).strip().lower()
    return f"{text}p" if text.isdigit() else text
