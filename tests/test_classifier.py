"""Tests for block voting."""

import numpy as np
import pytest

from cliff_detector.classifier import annotate_depth, classify_blocks
from cliff_detector.errors import InvalidConfiguration, MalformedFrame
from cliff_detector.geometry import render_ground_depth

# Block (10, 0) of the flat_config grid covers rows 100-103, columns 0-3.
BLOCK_ROW, BLOCK_TOP = 10, 100


def _far(tables, row: int, offset_mm: float = 500.0) -> int:
    """z-depth whose corrected range lies offset_mm beyond the floor at row."""
    idx = row - tables.top_row
    expected = tables.ground_distances_mm[idx] + offset_mm
    return int(round(expected / tables.tilt_compensation_factors[idx]))


class TestClassifyBlocks:
    """Tests for classify_blocks."""

    def test_grid_shape(self, flat_tables, flat_config):
        depth = render_ground_depth(flat_tables)
        result = classify_blocks(depth, flat_tables, flat_config)

        assert result.grid_shape == (15, 40)
        assert result.block_origin(0, 0) == (60, 0)
        assert result.block_origin(2, 3) == (68, 12)

    def test_flat_floor_has_no_cliff(self, flat_tables, flat_config):
        """Samples exactly at the expected floor never exceed the margin."""
        depth = render_ground_depth(flat_tables)
        result = classify_blocks(depth, flat_tables, flat_config)

        assert result.num_cliff_blocks == 0
        assert np.all(result.cliff_counts == 0)
        # Rows 67 and below see the floor: block rows 2+ are full of ground votes.
        assert np.all(result.ground_counts[2:] == 16)
        assert np.all(np.isnan(result.median_ranges_mm))

    def test_within_margin_is_ground(self, flat_tables, flat_config, step_frame):
        depth = step_frame(flat_tables, 80, 40.0)
        result = classify_blocks(depth, flat_tables, flat_config)

        assert result.num_cliff_blocks == 0

    def test_flat_floor_with_zero_margin(self, flat_tables, flat_config):
        """Millimeter rounding of floor samples never reads as a drop."""
        config = flat_config.model_copy(
            update={"ground_margin": 0.0, "block_points_threshold": 1}
        )
        depth = render_ground_depth(flat_tables)

        result = classify_blocks(depth, flat_tables, config)

        assert np.all(result.cliff_counts == 0)
        assert result.num_cliff_blocks == 0

    def test_zero_margin_detects_small_drop(self, flat_tables, flat_config, step_frame):
        config = flat_config.model_copy(update={"ground_margin": 0.0})
        depth = step_frame(flat_tables, 80, 5.0)

        result = classify_blocks(depth, flat_tables, config)

        assert np.all(result.cliff_mask[5:])
        assert not np.any(result.cliff_mask[:5])

    def test_beyond_margin_is_cliff(self, flat_tables, flat_config, step_frame):
        depth = step_frame(flat_tables, 80, 200.0)
        result = classify_blocks(depth, flat_tables, flat_config)

        assert np.all(result.cliff_mask[5:])
        assert not np.any(result.cliff_mask[:5])
        assert np.all(result.cliff_counts[5:] == 16)

    def test_median_range_of_cliff_blocks(self, flat_tables, flat_config, step_frame):
        depth = step_frame(flat_tables, 80, 200.0)
        result = classify_blocks(depth, flat_tables, flat_config)

        # Block row 5 covers rows 80-83; its median lies between their ranges.
        ranges = flat_tables.ground_distances_mm[20:24] + 200.0
        median = result.median_ranges_mm[5, 0]
        assert ranges.min() - 1.0 <= median <= ranges.max() + 1.0

    def test_threshold_is_inclusive(self, flat_tables, flat_config):
        """A block with exactly block_points_threshold cliff samples is a cliff."""
        depth = render_ground_depth(flat_tables)
        far = _far(flat_tables, BLOCK_TOP)
        depth[BLOCK_TOP, 0:3] = far  # 3 samples == threshold

        result = classify_blocks(depth, flat_tables, flat_config)

        assert result.cliff_counts[BLOCK_ROW, 0] == 3
        assert result.cliff_mask[BLOCK_ROW, 0]
        assert result.num_cliff_blocks == 1

    def test_below_threshold_is_not_cliff(self, flat_tables, flat_config):
        depth = render_ground_depth(flat_tables)
        depth[BLOCK_TOP, 0:2] = _far(flat_tables, BLOCK_TOP)

        result = classify_blocks(depth, flat_tables, flat_config)

        assert result.cliff_counts[BLOCK_ROW, 0] == 2
        assert result.ground_counts[BLOCK_ROW, 0] == 14
        assert result.num_cliff_blocks == 0

    def test_invalid_samples_do_not_vote(self, flat_tables, flat_config):
        """Zero and out-of-range samples count toward neither side."""
        depth = render_ground_depth(flat_tables)
        depth[BLOCK_TOP : BLOCK_TOP + 2, 0:4] = 0
        depth[BLOCK_TOP + 2, 0:4] = 6000  # beyond range_max
        depth[BLOCK_TOP + 3, 0:4] = 200  # below range_min

        result = classify_blocks(depth, flat_tables, flat_config)

        assert result.cliff_counts[BLOCK_ROW, 0] == 0
        assert result.ground_counts[BLOCK_ROW, 0] == 0
        assert not result.cliff_mask[BLOCK_ROW, 0]

    def test_block_without_valid_samples_is_never_cliff(self, flat_tables, flat_config):
        depth = np.zeros((120, 160), dtype=np.uint16)
        config = flat_config.model_copy(update={"block_points_threshold": 1})

        result = classify_blocks(depth, flat_tables, config)

        assert result.num_cliff_blocks == 0
        assert np.all(result.ground_counts == 0)

    def test_rows_without_expected_floor_do_not_vote(self, flat_tables, flat_config):
        """Rows 60-66 expect no floor within range and are skipped."""
        depth = render_ground_depth(flat_tables)
        depth[60:64, :] = 4900

        result = classify_blocks(depth, flat_tables, flat_config)

        assert np.all(result.cliff_counts[0] == 0)
        assert np.all(result.ground_counts[0] == 0)

    def test_strides_skip_pixels(self, flat_tables, flat_config):
        """With steps of 2 only even offsets inside a block are sampled."""
        config = flat_config.model_copy(
            update={"row_step": 2, "col_step": 2, "block_points_threshold": 1}
        )
        depth = render_ground_depth(flat_tables)
        far = _far(flat_tables, BLOCK_TOP + 1)
        depth[BLOCK_TOP + 1, 0:4] = far  # odd row offset
        depth[BLOCK_TOP : BLOCK_TOP + 4, 1] = _far(flat_tables, BLOCK_TOP + 3)

        result = classify_blocks(depth, flat_tables, config)

        assert result.cliff_counts[BLOCK_ROW, 0] == 0
        assert result.ground_counts[BLOCK_ROW, 0] == 4

    def test_threshold_monotonic(self, flat_tables, flat_config):
        """Raising the threshold never adds cliff blocks."""
        rng = np.random.default_rng(0)
        depth = render_ground_depth(flat_tables).astype(np.int64)
        depth += rng.integers(-100, 300, size=depth.shape)
        depth = np.clip(depth, 0, 65535).astype(np.uint16)

        counts = []
        for threshold in range(1, flat_config.samples_per_block + 1):
            config = flat_config.model_copy(
                update={"block_points_threshold": threshold}
            )
            counts.append(classify_blocks(depth, flat_tables, config).num_cliff_blocks)

        assert counts[0] > 0
        assert all(a >= b for a, b in zip(counts, counts[1:]))

    def test_shape_mismatch_raises(self, flat_tables, flat_config):
        with pytest.raises(MalformedFrame, match="does not match"):
            classify_blocks(
                np.zeros((100, 160), dtype=np.uint16), flat_tables, flat_config
            )

    def test_block_larger_than_region_raises(self, flat_tables, flat_config):
        """The 60 row used region cannot hold a 64px block."""
        config = flat_config.model_copy(update={"block_size": 64})

        with pytest.raises(InvalidConfiguration, match="does not fit"):
            classify_blocks(render_ground_depth(flat_tables), flat_tables, config)

    def test_does_not_modify_frame(self, flat_tables, flat_config, step_frame):
        depth = step_frame(flat_tables, 80, 200.0)
        before = depth.copy()

        classify_blocks(depth, flat_tables, flat_config)

        np.testing.assert_array_equal(depth, before)


class TestAnnotateDepth:
    """Tests for annotate_depth."""

    def test_marks_cliff_blocks_only(self, flat_tables, flat_config):
        depth = render_ground_depth(flat_tables)
        depth[BLOCK_TOP, 0:4] = _far(flat_tables, BLOCK_TOP)
        result = classify_blocks(depth, flat_tables, flat_config)

        annotated = annotate_depth(depth, result, marker=12345)

        assert np.all(annotated[BLOCK_TOP : BLOCK_TOP + 4, 0:4] == 12345)
        assert np.sum(annotated == 12345) == 16
        assert annotated.dtype == np.uint16

    def test_input_untouched(self, flat_tables, flat_config, step_frame):
        depth = step_frame(flat_tables, 80, 200.0)
        before = depth.copy()
        result = classify_blocks(depth, flat_tables, flat_config)

        annotated = annotate_depth(depth, result)

        np.testing.assert_array_equal(depth, before)
        assert np.all(annotated[80:120] == 65535)
