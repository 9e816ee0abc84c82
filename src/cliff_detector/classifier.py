"""Block voting over the used region of a depth frame."""

import logging
from dataclasses import dataclass

import numpy as np

from .config import DetectorConfig
from .errors import InvalidConfiguration, MalformedFrame
from .geometry import GeometryTables

logger = logging.getLogger(__name__)


@dataclass
class BlockClassification:
    """Result of voting every block of one depth frame.

    Block (i, j) covers image rows ``top_row + i * block_size`` onward and
    columns ``j * block_size`` onward. Block row 0 is the one nearest to the
    horizon.

    Attributes:
        top_row: First image row of the block grid.
        block_size: Block edge length (pixels).
        cliff_counts: Samples farther than the expected floor, shape (R, C), int64.
        ground_counts: Valid samples at or before the expected floor,
            shape (R, C), int64.
        cliff_mask: Blocks classified as cliff, shape (R, C), bool.
        median_ranges_mm: Median corrected range of the cliff samples of each
            cliff block (millimeters), NaN elsewhere, shape (R, C), float64.
    """

    top_row: int
    block_size: int
    cliff_counts: np.ndarray
    ground_counts: np.ndarray
    cliff_mask: np.ndarray
    median_ranges_mm: np.ndarray

    @property
    def grid_shape(self) -> tuple[int, int]:
        return self.cliff_mask.shape

    @property
    def num_cliff_blocks(self) -> int:
        return int(self.cliff_mask.sum())

    def block_origin(self, block_row: int, block_col: int) -> tuple[int, int]:
        """Top-left pixel (row, col) of a block."""
        return (
            self.top_row + block_row * self.block_size,
            block_col * self.block_size,
        )


def _sample_blocks(
    values: np.ndarray, num_rows: int, num_cols: int, config: DetectorConfig
) -> np.ndarray:
    """Reshape a (H, W) region into strided samples, shape (R, r, C, c)."""
    size = config.block_size
    blocks = values[: num_rows * size, : num_cols * size].reshape(
        num_rows, size, num_cols, size
    )
    return blocks[:, :: config.row_step, :, :: config.col_step]


def classify_blocks(
    depth: np.ndarray, tables: GeometryTables, config: DetectorConfig
) -> BlockClassification:
    """Vote every block of the used region as cliff or not.

    A sample is valid when it is non-zero, lies within [range_min, range_max]
    and its row expects a floor. Valid samples whose tilt compensated range
    exceeds the expected floor range plus the ground margin vote cliff, the
    others vote ground. A block is a cliff block when its cliff votes reach
    ``block_points_threshold``. Blocks without valid samples are never cliffs.

    Args:
        depth: Depth image (H, W) uint16 in millimeters.
        tables: Geometry tables built for the same image size and configuration.
        config: Detector configuration.

    Returns:
        Per-block vote counts and classification.

    Raises:
        MalformedFrame: If the frame does not match the tables.
        InvalidConfiguration: If a block does not fit the used region.
    """
    width, height = tables.image_size
    if depth.ndim != 2 or depth.shape != (height, width):
        raise MalformedFrame(
            f"Depth frame shape {depth.shape} does not match geometry tables "
            f"({height}, {width})"
        )

    size = config.block_size
    if size > min(len(tables), width):
        raise InvalidConfiguration(
            f"block_size ({size}) does not fit the used region "
            f"({width}x{len(tables)})"
        )
    num_rows = len(tables) // size
    num_cols = width // size

    region = depth[tables.top_row :, :]
    raw = _sample_blocks(region, num_rows, num_cols, config).astype(np.float64)

    # Per-row tables broadcast over (R, r, C, c)
    def _row_table(table: np.ndarray) -> np.ndarray:
        column = table[: num_rows * size].reshape(num_rows, size)[:, :: config.row_step]
        return column[:, :, None, None]

    factors = _row_table(tables.tilt_compensation_factors)
    expected = _row_table(tables.ground_distances_mm.astype(np.float64))
    has_ground = _row_table(tables.ground_mask)

    valid = (
        (raw > 0)
        & (raw >= config.range_min_mm)
        & (raw <= config.range_max_mm)
        & has_ground
    )
    corrected = raw * factors
    # Compared in z-depth units; samples are whole millimeters, so a floor
    # sample may round up to half a millimeter past the expected depth.
    limit_z = (expected + config.ground_margin_mm) / factors + 0.5
    beyond = valid & (raw > limit_z)

    cliff_counts = beyond.sum(axis=(1, 3))
    ground_counts = (valid & ~beyond).sum(axis=(1, 3))
    cliff_mask = (cliff_counts >= config.block_points_threshold) & (cliff_counts > 0)

    median_ranges_mm = np.full(cliff_mask.shape, np.nan)
    for i, j in zip(*np.nonzero(cliff_mask)):
        samples = corrected[i, :, j, :][beyond[i, :, j, :]]
        median_ranges_mm[i, j] = float(np.median(samples))

    logger.debug(
        "Classified %d of %d blocks as cliff", int(cliff_mask.sum()), cliff_mask.size
    )

    return BlockClassification(
        top_row=tables.top_row,
        block_size=size,
        cliff_counts=cliff_counts,
        ground_counts=ground_counts,
        cliff_mask=cliff_mask,
        median_ranges_mm=median_ranges_mm,
    )


def annotate_depth(
    depth: np.ndarray,
    classification: BlockClassification,
    marker: int = 65535,
) -> np.ndarray:
    """Copy of the depth frame with every cliff block painted with ``marker``.

    Does not modify the input frame.
    """
    annotated = depth.copy()
    size = classification.block_size
    for i, j in zip(*np.nonzero(classification.cliff_mask)):
        row, col = classification.block_origin(int(i), int(j))
        annotated[row : row + size, col : col + size] = marker
    return annotated


__all__ = ["BlockClassification", "classify_blocks", "annotate_depth"]
