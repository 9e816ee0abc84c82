"""Shared pytest fixtures for cliff detector tests."""

import numpy as np
import pytest
import torch

from cliff_detector.config import DetectorConfig
from cliff_detector.geometry import (
    GeometryTables,
    build_geometry_tables,
    render_ground_depth,
)
from cliff_detector.projection import PinholeProjectionModel

# Synthetic camera: 160x120, f = 120 px, principal point at the image center.
WIDTH, HEIGHT = 160, 120
FOCAL = 120.0
CX, CY = 79.5, 59.5


@pytest.fixture
def camera_model():
    """Distortion free pinhole camera looking along its optical axis."""
    K = torch.tensor(
        [[FOCAL, 0.0, CX], [0.0, FOCAL, CY], [0.0, 0.0, 1.0]], dtype=torch.float64
    )
    return PinholeProjectionModel(K, (WIDTH, HEIGHT))


@pytest.fixture
def flat_config():
    """Level sensor 0.3 m above the floor scanning the lower half of the image.

    Blocks are 4x4 with every pixel sampled (16 samples per block).
    """
    return DetectorConfig(
        range_min=0.3,
        range_max=5.0,
        mount_height=0.3,
        tilt_angle=0.0,
        used_depth_height=60,
        block_size=4,
        block_points_threshold=3,
        row_step=1,
        col_step=1,
        ground_margin=0.05,
    )


@pytest.fixture
def flat_tables(flat_config, camera_model):
    """Geometry tables for the flat_config / camera_model pair."""
    return build_geometry_tables(flat_config, camera_model)


def _step_frame(tables: GeometryTables, start_row: int, offset_mm: float) -> np.ndarray:
    depth = render_ground_depth(tables)
    rows = tables.rows
    selected = (rows >= start_row) & tables.ground_mask
    ranges = tables.ground_distances_mm[selected] + offset_mm
    z_mm = np.rint(ranges / tables.tilt_compensation_factors[selected])
    depth[rows[selected], :] = z_mm.astype(np.uint16)[:, None]
    return depth


@pytest.fixture
def step_frame():
    """Factory for a flat floor whose rows from ``start_row`` down read farther.

    The returned callable takes (tables, start_row, offset_mm) and produces a
    uint16 depth image whose tilt compensated ranges exceed the expected floor
    by ``offset_mm`` on every row at or below ``start_row``.
    """
    return _step_frame
