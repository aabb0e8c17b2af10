"""Configuration for the dispatch simulation."""
import logging
import math
import os
from dataclasses import dataclass


def _float_env(key: str, default: float, allow_zero: bool = False) -> float:
    val = os.environ.get(key)
    if val is None or val == "":
        return default
    try:
        v = float(val)
    except ValueError:
        return default
    if v < 0 or (v == 0 and not allow_zero):
        return default
    return v


def _int_env(key: str, default: int) -> int:
    val = os.environ.get(key)
    if val is None or val == "":
        return default
    try:
        return max(1, int(val))
    except ValueError:
        return default


# Movement pacing (seconds). 300 ms per route segment at ~60fps.
FRAME_INTERVAL_S = _float_env("DISPATCH_FRAME_INTERVAL_S", 0.016, allow_zero=True)
SEGMENT_DURATION_S = _float_env("DISPATCH_SEGMENT_DURATION_S", 0.3)

# On-scene dwell before heading to the hospital
LOADING_DWELL_S = _float_env("DISPATCH_LOADING_DWELL_S", 10.0, allow_zero=True)

# Routing
OSRM_SERVER_URL = os.environ.get("OSRM_SERVER_URL", "https://router.project-osrm.org")
OSRM_TIMEOUT_S = _float_env("OSRM_TIMEOUT_S", 10.0)

# Fleet seeding
NUM_AMBULANCES = _int_env("DISPATCH_NUM_AMBULANCES", 10)


@dataclass(frozen=True)
class SimulationConfig:
    """Timing constants for one simulation session."""

    frame_interval: float = FRAME_INTERVAL_S
    segment_duration: float = SEGMENT_DURATION_S
    loading_dwell: float = LOADING_DWELL_S
    frames_per_segment_override: int = 0

    @property
    def frames_per_segment(self) -> int:
        if self.frames_per_segment_override:
            return max(2, self.frames_per_segment_override)
        if self.frame_interval <= 0:
            return 2
        return max(2, math.floor(self.segment_duration / self.frame_interval))

    @classmethod
    def from_env(cls) -> "SimulationConfig":
        return cls(
            frame_interval=_float_env("DISPATCH_FRAME_INTERVAL_S", 0.016, allow_zero=True),
            segment_duration=_float_env("DISPATCH_SEGMENT_DURATION_S", 0.3),
            loading_dwell=_float_env("DISPATCH_LOADING_DWELL_S", 10.0, allow_zero=True),
        )


def setup_logging(verbose: bool = False) -> None:
    """Configure root logging; ``verbose`` turns on per-frame debug output."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )
