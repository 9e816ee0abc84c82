"""Detection of descending floor discontinuities in single depth frames."""

from .classifier import BlockClassification, annotate_depth, classify_blocks
from .config import ConfigurationStore, DetectorConfig
from .detector import CliffDetector, DetectionResult
from .errors import (
    CliffDetectorError,
    InvalidConfiguration,
    InvalidModel,
    MalformedFrame,
)
from .frame import DepthFrame, load_depth_image, save_depth_image
from .geometry import (
    NO_GROUND,
    GeometryTables,
    build_geometry_tables,
    render_ground_depth,
)
from .polygon import CliffPolygon, build_cliff_polygon, ground_point
from .projection import PinholeProjectionModel, ProjectionModel, load_camera_info
from .rays import angle_between, length_of, ray_for

__version__ = "0.1.0"

__all__ = [
    "DetectorConfig",
    "ConfigurationStore",
    "CliffDetector",
    "DetectionResult",
    "CliffDetectorError",
    "InvalidConfiguration",
    "InvalidModel",
    "MalformedFrame",
    "DepthFrame",
    "load_depth_image",
    "save_depth_image",
    "ProjectionModel",
    "PinholeProjectionModel",
    "load_camera_info",
    "ray_for",
    "angle_between",
    "length_of",
    "GeometryTables",
    "NO_GROUND",
    "build_geometry_tables",
    "render_ground_depth",
    "BlockClassification",
    "classify_blocks",
    "annotate_depth",
    "CliffPolygon",
    "build_cliff_polygon",
    "ground_point",
]
