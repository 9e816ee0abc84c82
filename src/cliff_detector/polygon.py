"""Conversion of cliff blocks into a ground-frame boundary polyline."""

import logging
import math
from dataclasses import dataclass, field

import numpy as np

from .classifier import BlockClassification
from .config import DetectorConfig
from .projection.protocol import ProjectionModel
from .rays import ray_for

logger = logging.getLogger(__name__)


@dataclass
class CliffPolygon:
    """Detected drop-off boundary in the robot's local ground frame.

    An open polyline ordered left to right across the image. Empty means no
    cliff was detected in the frame.

    Attributes:
        points: Boundary points, shape (N, 2), float64. Column 0 is the lateral
            offset x (meters, positive to the right), column 1 the forward
            distance y (meters).
        frame_id: Frame identifier copied from the depth frame.
        stamp: Timestamp copied from the depth frame (seconds).
    """

    points: np.ndarray = field(default_factory=lambda: np.zeros((0, 2)))
    frame_id: str = ""
    stamp: float = 0.0

    def __len__(self) -> int:
        return len(self.points)

    @property
    def is_empty(self) -> bool:
        return len(self.points) == 0

    def to_dict(self) -> dict:
        """JSON serializable representation."""
        return {
            "frame_id": self.frame_id,
            "stamp": self.stamp,
            "points": [{"x": float(x), "y": float(y)} for x, y in self.points],
        }


def ground_point(
    model: ProjectionModel,
    pixel: tuple[float, float],
    mount_height: float,
    tilt_angle: float,
) -> tuple[float, float] | None:
    """Intersect the ray through a pixel with the floor plane.

    The camera frame (x right, y down, z forward) is pitched down by
    ``tilt_angle`` degrees about its x axis relative to a level frame.

    Returns:
        (lateral, forward) floor coordinates in meters, or None if the ray
        does not descend.
    """
    direction = ray_for(model, pixel)
    dx, dy, dz = (float(v) for v in direction)

    tilt = math.radians(tilt_angle)
    down = dy * math.cos(tilt) + dz * math.sin(tilt)
    forward = dz * math.cos(tilt) - dy * math.sin(tilt)
    if down <= 0.0:
        return None

    scale = mount_height / down
    return scale * dx, scale * forward


def build_cliff_polygon(
    classification: BlockClassification,
    model: ProjectionModel,
    config: DetectorConfig,
    frame_id: str = "",
    stamp: float = 0.0,
) -> CliffPolygon:
    """Build the boundary polyline from classified blocks.

    For every block column the cliff block nearest to the horizon is taken.
    Its representative pixel (top row, central column) is projected onto the
    floor. Columns without cliff blocks contribute no point.

    Args:
        classification: Block votes for one frame.
        model: Camera model used to back-project pixels.
        config: Detector configuration (mount height and tilt).
        frame_id: Frame identifier for the output.
        stamp: Timestamp for the output.

    Returns:
        Boundary polyline, possibly empty.
    """
    size = classification.block_size
    points = []

    for block_col in range(classification.grid_shape[1]):
        cliff_rows = np.flatnonzero(classification.cliff_mask[:, block_col])
        if len(cliff_rows) == 0:
            continue

        row, col = classification.block_origin(int(cliff_rows[0]), block_col)
        pixel = (col + (size - 1) / 2.0, float(row))
        point = ground_point(model, pixel, config.mount_height, config.tilt_angle)
        if point is None:
            logger.debug(
                "Skipping block column %d: ray through pixel %s misses the floor",
                block_col,
                pixel,
            )
            continue
        points.append(point)

    return CliffPolygon(
        points=np.asarray(points, dtype=np.float64).reshape(-1, 2),
        frame_id=frame_id,
        stamp=stamp,
    )


__all__ = ["CliffPolygon", "build_cliff_polygon", "ground_point"]
