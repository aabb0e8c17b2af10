"""
Time-paced movement of an ambulance along a route.
"""
import logging
import threading
from typing import Iterator, Optional, Sequence

import numpy as np

from ambulance_dispatch.config import SimulationConfig
from ambulance_dispatch.utils.geo_utils import Coordinate, interpolate

logger = logging.getLogger(__name__)


class MovementSimulator:
    """
    Interpolates positions along a route, one frame per ``frame_interval``.

    Every segment of the route is split into ``frames_per_segment`` frames;
    the first frame sits on the segment start and the last on its end.
    """

    def __init__(self, config: Optional[SimulationConfig] = None) -> None:
        self.config = config or SimulationConfig()

    def frame_progress(self) -> np.ndarray:
        return np.linspace(0.0, 1.0, self.config.frames_per_segment)

    def drive(self, route: Sequence[Coordinate],
              cancel_event: Optional[threading.Event] = None) -> Iterator[Coordinate]:
        """
        Yield interpolated positions along ``route``, pacing between frames.

        Routes with fewer than two waypoints yield nothing. When
        ``cancel_event`` is set the generator stops before the next frame;
        the pause between frames is a wait on that event, so a cancel takes
        effect within one frame interval.
        """
        if len(route) < 2:
            return
        cancel_event = cancel_event or threading.Event()
        progress = self.frame_progress()
        interval = self.config.frame_interval

        for start, end in zip(route, route[1:]):
            for p in progress:
                if cancel_event.is_set():
                    logger.debug("drive cancelled")
                    return
                yield interpolate(start, end, float(p))
                if cancel_event.wait(interval):
                    logger.debug("drive cancelled")
                    return

    def frame_count(self, route: Sequence[Coordinate]) -> int:
        """Number of positions ``drive`` emits for an uncancelled run."""
        if len(route) < 2:
            return 0
        return (len(route) - 1) * self.config.frames_per_segment
