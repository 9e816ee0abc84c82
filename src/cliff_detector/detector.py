"""Cliff detection on single depth frames."""

import logging
from dataclasses import dataclass

import numpy as np

from .classifier import BlockClassification, annotate_depth, classify_blocks
from .config import ConfigurationStore, DetectorConfig
from .errors import InvalidModel, MalformedFrame
from .frame import DepthFrame
from .geometry import GeometryTables, build_geometry_tables
from .polygon import CliffPolygon, build_cliff_polygon
from .projection.protocol import ProjectionModel

logger = logging.getLogger(__name__)


@dataclass
class DetectionResult:
    """Everything produced for one depth frame.

    Attributes:
        polygon: Detected drop-off boundary (possibly empty).
        classification: Per-block votes behind the polygon.
        annotated_depth: Copy of the frame with cliff blocks marked, only when
            ``publish_depth_enable`` is set.
    """

    polygon: CliffPolygon
    classification: BlockClassification
    annotated_depth: np.ndarray | None = None


class CliffDetector:
    """Detects descending floor discontinuities in depth frames.

    The only state carried across frames is the geometry table cache, rebuilt
    lazily when parameters or the camera model change. Calls are not safe to
    run concurrently on one instance; use one detector per thread or serialize
    calls.

    Args:
        config: Initial configuration. Defaults to ``DetectorConfig()``.

    Attributes:
        params: Runtime parameter surface (setters, getters, staleness).
    """

    def __init__(self, config: DetectorConfig | None = None) -> None:
        self.params = ConfigurationStore(config)
        self._tables: GeometryTables | None = None
        self._tables_model: ProjectionModel | None = None

    @property
    def tables(self) -> GeometryTables | None:
        """Geometry tables from the last rebuild, or None before the first frame."""
        return self._tables

    def _ensure_tables(
        self, config: DetectorConfig, model: ProjectionModel
    ) -> GeometryTables:
        if (
            self._tables is None
            or self.params.tables_stale
            or model is not self._tables_model
            or self._tables.image_size != tuple(model.image_size)
        ):
            self._tables = build_geometry_tables(config, model)
            self._tables_model = model
            self.params.mark_tables_built()
        return self._tables

    def detect(
        self, frame: DepthFrame | np.ndarray, camera_model: ProjectionModel | None
    ) -> DetectionResult:
        """Run detection on one frame and keep the intermediate results.

        Args:
            frame: Depth frame, or a raw depth array wrapped on the fly.
            camera_model: Camera model matching the frame.

        Returns:
            Polygon, block classification and optional annotated depth.

        Raises:
            InvalidConfiguration: If the staged parameters are invalid or do
                not fit the image.
            InvalidModel: If the camera model is missing or unusable.
            MalformedFrame: If the frame does not match the camera model.
        """
        config = self.params.resolve()

        if camera_model is None:
            raise InvalidModel("Camera model not initialized")
        if not isinstance(camera_model, ProjectionModel):
            raise InvalidModel(
                f"{type(camera_model).__name__} does not implement the "
                "ProjectionModel protocol"
            )

        if not isinstance(frame, DepthFrame):
            frame = DepthFrame.from_array(frame)

        width, height = camera_model.image_size
        if (frame.height, frame.width) != (height, width):
            raise MalformedFrame(
                f"Depth frame is {frame.width}x{frame.height} but the camera model "
                f"expects {width}x{height}"
            )

        tables = self._ensure_tables(config, camera_model)
        classification = classify_blocks(frame.data, tables, config)
        polygon = build_cliff_polygon(
            classification,
            camera_model,
            config,
            frame_id=frame.frame_id,
            stamp=frame.stamp,
        )

        annotated = None
        if config.publish_depth_enable:
            annotated = annotate_depth(frame.data, classification, config.depth_marker)

        logger.debug(
            "Frame %r: %d cliff blocks, %d boundary points",
            frame.frame_id,
            classification.num_cliff_blocks,
            len(polygon),
        )
        return DetectionResult(
            polygon=polygon, classification=classification, annotated_depth=annotated
        )

    def detect_cliff(
        self, frame: DepthFrame | np.ndarray, camera_model: ProjectionModel | None
    ) -> CliffPolygon:
        """Detect the drop-off boundary in one depth frame.

        See :meth:`detect` for arguments and errors.
        """
        return self.detect(frame, camera_model).polygon


__all__ = ["CliffDetector", "DetectionResult"]
