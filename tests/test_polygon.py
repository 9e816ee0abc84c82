"""Tests for the ground-frame boundary polyline."""

import json
import math

import numpy as np
import pytest

from cliff_detector.classifier import BlockClassification, classify_blocks
from cliff_detector.polygon import CliffPolygon, build_cliff_polygon, ground_point

# Must match the camera_model fixture
FOCAL = 120.0
CX, CY = 79.5, 59.5


def _classification(mask: np.ndarray, top_row: int = 60, block_size: int = 4):
    """Hand-built classification with the given cliff mask."""
    counts = mask.astype(np.int64) * 16
    return BlockClassification(
        top_row=top_row,
        block_size=block_size,
        cliff_counts=counts,
        ground_counts=16 - counts,
        cliff_mask=mask,
        median_ranges_mm=np.where(mask, 1000.0, np.nan),
    )


class TestGroundPoint:
    """Tests for ground_point."""

    def test_level_sensor(self, camera_model):
        """A pixel f rows below center looks 45 deg down: forward equals height."""
        point = ground_point(camera_model, (CX, CY + FOCAL), 0.3, 0.0)

        assert point == pytest.approx((0.0, 0.3))

    def test_lateral_offset_positive_right(self, camera_model):
        point = ground_point(camera_model, (CX + 60.0, CY + 60.0), 0.5, 0.0)

        x, y = point
        assert x == pytest.approx(0.5)
        assert y == pytest.approx(1.0)

    def test_tilted_sensor_optical_axis(self, camera_model):
        """The optical axis pitched down 30 deg meets the floor at h / tan(30)."""
        x, y = ground_point(camera_model, (CX, CY), 0.3, 30.0)

        assert x == pytest.approx(0.0)
        assert y == pytest.approx(0.3 / math.tan(math.radians(30.0)))

    def test_ray_above_horizon(self, camera_model):
        assert ground_point(camera_model, (CX, 0.0), 0.3, 0.0) is None

    def test_horizontal_ray(self, camera_model):
        assert ground_point(camera_model, (CX, CY), 0.3, 0.0) is None


class TestBuildCliffPolygon:
    """Tests for build_cliff_polygon."""

    def test_no_cliff_blocks(self, camera_model, flat_config):
        mask = np.zeros((15, 40), dtype=bool)
        polygon = build_cliff_polygon(_classification(mask), camera_model, flat_config)

        assert polygon.is_empty
        assert polygon.points.shape == (0, 2)

    def test_step_frame_boundary(
        self, camera_model, flat_config, flat_tables, step_frame
    ):
        depth = step_frame(flat_tables, 80, 200.0)
        classification = classify_blocks(depth, flat_tables, flat_config)

        polygon = build_cliff_polygon(
            classification, camera_model, flat_config, frame_id="depth", stamp=1.5
        )

        assert len(polygon) == 40
        assert polygon.frame_id == "depth"
        assert polygon.stamp == 1.5

        expected_y = 0.3 * FOCAL / (80 - CY)
        np.testing.assert_allclose(polygon.points[:, 1], expected_y)

        expected_x = [0.3 * ((4 * j + 1.5) - CX) / (80 - CY) for j in range(40)]
        np.testing.assert_allclose(polygon.points[:, 0], expected_x, atol=1e-12)
        assert np.all(np.diff(polygon.points[:, 0]) > 0)

    def test_topmost_block_per_column(self, camera_model, flat_config):
        mask = np.zeros((15, 40), dtype=bool)
        mask[7, 3] = True
        mask[10, 3] = True

        polygon = build_cliff_polygon(_classification(mask), camera_model, flat_config)

        assert len(polygon) == 1
        # Block row 7 starts at image row 88
        assert polygon.points[0, 1] == pytest.approx(0.3 * FOCAL / (88 - CY))

    def test_columns_without_cliff_are_skipped(self, camera_model, flat_config):
        mask = np.zeros((15, 40), dtype=bool)
        mask[12, [0, 5, 39]] = True

        polygon = build_cliff_polygon(_classification(mask), camera_model, flat_config)

        assert len(polygon) == 3
        assert polygon.points[0, 0] < polygon.points[1, 0] < polygon.points[2, 0]

    def test_rays_missing_the_floor_are_skipped(self, camera_model, flat_config):
        """Blocks above the optical axis of a level sensor produce no point."""
        mask = np.zeros((30, 40), dtype=bool)
        mask[0, 0] = True
        mask[20, 1] = True

        polygon = build_cliff_polygon(
            _classification(mask, top_row=0), camera_model, flat_config
        )

        assert len(polygon) == 1
        assert polygon.points[0, 1] == pytest.approx(0.3 * FOCAL / (80 - CY))


class TestCliffPolygon:
    """Tests for the CliffPolygon container."""

    def test_default_is_empty(self):
        polygon = CliffPolygon()
        assert polygon.is_empty
        assert len(polygon) == 0

    def test_to_dict_is_json_serializable(self):
        polygon = CliffPolygon(
            points=np.array([[-0.1, 1.0], [0.2, 1.1]]), frame_id="cam", stamp=3.0
        )

        data = json.loads(json.dumps(polygon.to_dict()))

        assert data == {
            "frame_id": "cam",
            "stamp": 3.0,
            "points": [{"x": -0.1, "y": 1.0}, {"x": 0.2, "y": 1.1}],
        }
