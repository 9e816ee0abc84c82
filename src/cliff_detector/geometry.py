"""Per-row floor geometry derived from camera intrinsics and mount pose."""

import logging
import math
from dataclasses import dataclass

import numpy as np
import torch

from .config import DetectorConfig
from .errors import InvalidConfiguration, InvalidModel
from .projection.protocol import ProjectionModel
from .rays import angle_between, ray_for

logger = logging.getLogger(__name__)

# Rows whose ray never meets the floor (or meets it out of sensor reach)
# carry this value in the ground distance table and never vote.
NO_GROUND = 0

# Hard cap on the expected floor range (meters).
MAX_GROUND_RANGE_M = 100.0


@dataclass(frozen=True, eq=False)
class GeometryTables:
    """Per-row lookup tables for the used region of the depth image.

    All arrays are indexed by ``row - top_row`` and have length
    ``used_depth_height``.

    Attributes:
        image_size: Image dimensions (width, height) the tables were built for.
        top_row: First image row of the used region.
        rows: Image row of every table entry, shape (U,), int64.
        delta_angles: Signed angle between the row's ray and the optical axis
            (radians, positive below the axis), shape (U,), float64.
        ground_distances_mm: Expected range along the row's ray to a flat floor
            (millimeters), or NO_GROUND, shape (U,), uint32.
        tilt_compensation_factors: Scale turning a z-depth sample into a range
            along the row's ray, shape (U,), float64.
        min_angle: Signed angle of the top of the used region (radians).
        max_angle: Signed angle of the bottom image row (radians).
    """

    image_size: tuple[int, int]
    top_row: int
    rows: np.ndarray
    delta_angles: np.ndarray
    ground_distances_mm: np.ndarray
    tilt_compensation_factors: np.ndarray
    min_angle: float
    max_angle: float

    def __len__(self) -> int:
        return len(self.rows)

    @property
    def ground_mask(self) -> np.ndarray:
        """Rows where a floor is expected, shape (U,), bool."""
        return self.ground_distances_mm != NO_GROUND

    def equals(self, other: "GeometryTables") -> bool:
        """Bit-exact comparison of two table sets."""
        return (
            self.image_size == other.image_size
            and self.top_row == other.top_row
            and self.min_angle == other.min_angle
            and self.max_angle == other.max_angle
            and np.array_equal(self.rows, other.rows)
            and np.array_equal(self.delta_angles, other.delta_angles)
            and np.array_equal(self.ground_distances_mm, other.ground_distances_mm)
            and np.array_equal(
                self.tilt_compensation_factors, other.tilt_compensation_factors
            )
        )


def _signed_angle(
    model: ProjectionModel,
    pixel: tuple[float, float],
    center: tuple[float, float],
) -> float:
    """Angle from the center ray to the pixel ray, negative above the axis."""
    angle = angle_between(ray_for(model, center), ray_for(model, pixel))
    return -angle if pixel[1] < center[1] else angle


def field_of_view(
    model: ProjectionModel,
    pixel_top: tuple[float, float],
    pixel_center: tuple[float, float],
    pixel_bottom: tuple[float, float],
) -> tuple[float, float]:
    """Vertical angular extent between two pixels around the optical center.

    Args:
        model: Camera model.
        pixel_top: Pixel at the top of the used region.
        pixel_center: Pixel on the optical axis.
        pixel_bottom: Pixel on the bottom image row.

    Returns:
        (min_angle, max_angle) in radians. Angles are negative above the
        optical axis and positive below it, so the row index grows with the angle.
    """
    min_angle = _signed_angle(model, pixel_top, pixel_center)
    max_angle = _signed_angle(model, pixel_bottom, pixel_center)
    return min_angle, max_angle


def calc_delta_angles(
    model: ProjectionModel,
    rows: np.ndarray,
    vertical_fov: tuple[float, float],
    interpolation: str = "perspective",
) -> np.ndarray:
    """Angle of every row from the optical axis.

    Args:
        model: Camera model.
        rows: Image rows to evaluate, ascending, shape (U,).
        vertical_fov: (min_angle, max_angle) of the first and last row.
        interpolation: "perspective" casts a ray per row through the principal
            column; "linear" spreads the field of view evenly over the rows.

    Returns:
        Signed angles in radians, shape (U,), float64.
    """
    rows = np.asarray(rows)
    if interpolation == "linear":
        min_angle, max_angle = vertical_fov
        if len(rows) < 2:
            return np.full(len(rows), max_angle, dtype=np.float64)
        fraction = (rows - rows[0]) / float(rows[-1] - rows[0])
        return min_angle + (max_angle - min_angle) * fraction

    if interpolation != "perspective":
        raise InvalidConfiguration(f"Unknown row interpolation: {interpolation!r}")

    cx, cy = model.principal_point
    pixels = torch.stack(
        [
            torch.full((len(rows),), cx, dtype=torch.float64),
            torch.from_numpy(rows.astype(np.float64)),
        ],
        dim=-1,
    )  # (U, 2)
    _, directions = model.cast_ray(pixels)
    axis = ray_for(model, (cx, cy))

    directions = directions.to(torch.float64)
    cos_angle = (directions @ axis) / (
        torch.linalg.norm(directions, dim=-1) * torch.linalg.norm(axis)
    )
    angles = torch.arccos(torch.clamp(cos_angle, -1.0, 1.0)).numpy()
    return np.where(rows < cy, -angles, angles)


def calc_ground_distances(
    delta_angles: np.ndarray,
    mount_height: float,
    tilt_angle: float,
    range_max: float,
) -> np.ndarray:
    """Expected range to a flat floor along every row's ray.

    A ray ``delta`` below the optical axis of a sensor pitched down by
    ``tilt`` descends at ``delta + tilt`` below the horizon and meets the floor
    after ``mount_height / sin(delta + tilt)``. Rays at or above the horizon, and
    rays whose floor point lies beyond ``range_max`` in depth, get NO_GROUND.

    Args:
        delta_angles: Row angles from the optical axis (radians), shape (U,).
        mount_height: Sensor height above the floor (meters).
        tilt_angle: Sensor pitch (degrees, positive down).
        range_max: Maximum sensor range (meters).

    Returns:
        Ranges in millimeters, shape (U,), uint32.
    """
    elevation = delta_angles + math.radians(tilt_angle)
    with np.errstate(divide="ignore", invalid="ignore"):
        ranges_m = mount_height / np.sin(elevation)
        depth_m = ranges_m * np.cos(delta_angles)

    no_ground = (
        (elevation <= 0)
        | ~np.isfinite(ranges_m)
        | (ranges_m > MAX_GROUND_RANGE_M)
        | (depth_m > range_max)
    )
    ranges_mm = np.rint(np.where(no_ground, NO_GROUND, ranges_m * 1000.0))
    return ranges_mm.astype(np.uint32)


def calc_tilt_compensation_factors(delta_angles: np.ndarray) -> np.ndarray:
    """Scale factors turning a z-depth sample into a range along the row's ray.

    Depth cameras report the distance along the optical axis. The ray of a
    row ``delta`` off the axis is longer by ``1 / cos(delta)``.
    """
    return 1.0 / np.cos(delta_angles)


def build_geometry_tables(
    config: DetectorConfig, model: ProjectionModel | None
) -> GeometryTables:
    """Build the per-row tables for a configuration and camera model.

    Pure function of its inputs: the same configuration and intrinsics always
    produce bit-identical tables.

    Raises:
        InvalidModel: If the camera model is missing or not a ProjectionModel.
        InvalidConfiguration: If the used region does not fit the image.
    """
    if model is None:
        raise InvalidModel("Camera model not initialized")
    if not isinstance(model, ProjectionModel):
        raise InvalidModel(
            f"{type(model).__name__} does not implement the ProjectionModel protocol"
        )

    width, height = model.image_size
    if config.used_depth_height > height:
        raise InvalidConfiguration(
            f"used_depth_height ({config.used_depth_height}) exceeds image height "
            f"({height})"
        )
    if config.block_size > min(config.used_depth_height, width):
        raise InvalidConfiguration(
            f"block_size ({config.block_size}) does not fit the used region "
            f"({width}x{config.used_depth_height})"
        )

    top_row = height - config.used_depth_height
    rows = np.arange(top_row, height, dtype=np.int64)
    cx, cy = model.principal_point

    vertical_fov = field_of_view(
        model, (cx, float(top_row)), (cx, cy), (cx, float(height - 1))
    )
    delta_angles = calc_delta_angles(model, rows, vertical_fov, config.interpolation)
    ground_distances_mm = calc_ground_distances(
        delta_angles, config.mount_height, config.tilt_angle, config.range_max
    )
    tilt_factors = calc_tilt_compensation_factors(delta_angles)

    tables = GeometryTables(
        image_size=(width, height),
        top_row=top_row,
        rows=rows,
        delta_angles=delta_angles,
        ground_distances_mm=ground_distances_mm,
        tilt_compensation_factors=tilt_factors,
        min_angle=vertical_fov[0],
        max_angle=vertical_fov[1],
    )

    logger.info(
        "Built geometry tables: rows %d-%d, fov [%.2f, %.2f] deg, "
        "%d/%d rows see the floor",
        top_row,
        height - 1,
        math.degrees(vertical_fov[0]),
        math.degrees(vertical_fov[1]),
        int(tables.ground_mask.sum()),
        len(tables),
    )
    return tables


def render_ground_depth(tables: GeometryTables) -> np.ndarray:
    """Depth image a sensor would report when looking at a flat floor.

    Rows outside the used region and rows without expected floor are 0.

    Returns:
        Depth image (H, W) uint16 in millimeters.
    """
    width, height = tables.image_size
    depth = np.zeros((height, width), dtype=np.uint16)

    z_mm = tables.ground_distances_mm / tables.tilt_compensation_factors
    z_mm = np.where(tables.ground_mask, np.rint(z_mm), 0)
    depth[tables.top_row :, :] = np.clip(z_mm, 0, 65535).astype(np.uint16)[:, None]
    return depth


__all__ = [
    "GeometryTables",
    "NO_GROUND",
    "MAX_GROUND_RANGE_M",
    "build_geometry_tables",
    "calc_delta_angles",
    "calc_ground_distances",
    "calc_tilt_compensation_factors",
    "field_of_view",
    "render_ground_depth",
]
