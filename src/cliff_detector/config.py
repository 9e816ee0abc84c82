"""Configuration management for the cliff detector."""

import logging
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    ValidationError,
    field_validator,
    model_validator,
)

from .errors import InvalidConfiguration

logger = logging.getLogger(__name__)

# Fields that feed the per-row geometry tables. Changing any of them forces a
# rebuild before the next detection.
GEOMETRY_FIELDS = frozenset(
    {
        "range_min",
        "range_max",
        "mount_height",
        "tilt_angle",
        "used_depth_height",
        "interpolation",
    }
)

UINT16_MAX = 65535


class DetectorConfig(BaseModel):
    """Immutable parameter set for one cliff detector.

    Attributes:
        range_min: Minimum sensor range (meters). Closer samples are ignored.
        range_max: Maximum sensor range (meters). Farther samples are ignored.
        mount_height: Height of the sensor optical center above the floor (meters).
        tilt_angle: Downward pitch of the sensor (degrees). Positive looks at the floor.
        used_depth_height: Number of image rows, counted from the bottom, to scan.
        block_size: Edge length of the square voting block (pixels).
        block_points_threshold: Minimum number of cliff samples that make a
            block a cliff block.
        row_step: Row stride inside a block (pixels).
        col_step: Column stride inside a block (pixels).
        ground_margin: Tolerance added to the expected floor range (meters).
        publish_depth_enable: Produce an annotated copy of the depth frame.
        interpolation: Row angle model. "perspective" measures every row through
            the camera model, "linear" spreads the field of view evenly over rows.
        depth_marker: Value painted over cliff blocks in the annotated depth (mm).
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    # Sensor range
    range_min: float = 0.5
    range_max: float = 5.0

    # Mount pose
    mount_height: float = 0.4
    tilt_angle: float = 20.0

    # Scanning
    used_depth_height: int = 320
    block_size: int = 8
    block_points_threshold: int = 10
    row_step: int = 2
    col_step: int = 2
    ground_margin: float = 0.05

    # Output
    publish_depth_enable: bool = False
    interpolation: Literal["perspective", "linear"] = "perspective"
    depth_marker: int = UINT16_MAX

    @field_validator("range_min", "ground_margin")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        """Validate that the value is not negative."""
        if v < 0:
            raise ValueError(f"must be non-negative, got {v}")
        return v

    @field_validator("mount_height")
    @classmethod
    def validate_mount_height(cls, v: float) -> float:
        """Validate that the sensor sits above the floor."""
        if v <= 0:
            raise ValueError(f"mount_height must be positive, got {v}")
        return v

    @field_validator("tilt_angle")
    @classmethod
    def validate_tilt_angle(cls, v: float) -> float:
        """Validate that the tilt keeps the optical axis off the vertical."""
        if not -90.0 < v < 90.0:
            raise ValueError(f"tilt_angle must be within (-90, 90) degrees, got {v}")
        return v

    @field_validator(
        "used_depth_height",
        "block_size",
        "block_points_threshold",
        "row_step",
        "col_step",
    )
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        """Validate that pixel counts and strides are at least one."""
        if v < 1:
            raise ValueError(f"must be >= 1, got {v}")
        return v

    @field_validator("depth_marker")
    @classmethod
    def validate_depth_marker(cls, v: int) -> int:
        """Validate that the marker fits a 16-bit depth sample."""
        if not 0 <= v <= UINT16_MAX:
            raise ValueError(f"depth_marker must fit in uint16, got {v}")
        return v

    @model_validator(mode="after")
    def check_cross_field_constraints(self) -> "DetectorConfig":
        """Validate range ordering and block capacity, warn about extra fields."""
        if self.range_min >= self.range_max:
            raise ValueError(
                f"range_min ({self.range_min}) must be smaller than "
                f"range_max ({self.range_max})"
            )

        if self.block_points_threshold > self.samples_per_block:
            raise ValueError(
                f"block_points_threshold ({self.block_points_threshold}) exceeds the "
                f"{self.samples_per_block} samples a {self.block_size}px block holds "
                f"with steps ({self.row_step}, {self.col_step})"
            )

        if self.__pydantic_extra__:
            logger.warning(
                "Unknown config keys in DetectorConfig (ignored): %s",
                list(self.__pydantic_extra__.keys()),
            )
        return self

    @property
    def samples_per_block(self) -> int:
        """Number of pixels sampled inside one block."""
        rows = len(range(0, self.block_size, self.row_step))
        cols = len(range(0, self.block_size, self.col_step))
        return rows * cols

    @property
    def range_min_mm(self) -> float:
        return self.range_min * 1000.0

    @property
    def range_max_mm(self) -> float:
        return self.range_max * 1000.0

    @property
    def ground_margin_mm(self) -> float:
        return self.ground_margin * 1000.0

    @classmethod
    def from_yaml(cls, path: str | Path) -> "DetectorConfig":
        """Load configuration from a YAML file.

        Missing fields use their default values.

        Args:
            path: Path to YAML configuration file.

        Returns:
            Loaded configuration with defaults filled in.

        Raises:
            FileNotFoundError: If the file does not exist.
            yaml.YAMLError: If the file is not valid YAML.
            InvalidConfiguration: If validation fails (with all errors collected).
        """
        path = Path(path)
        with open(path) as f:
            data = yaml.safe_load(f)

        if data is None:
            data = {}

        return validate_config(data)

    def to_yaml(self, path: str | Path) -> None:
        """Save configuration to a YAML file.

        All fields including defaults are written for explicitness.

        Args:
            path: Path to output YAML file.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(mode="json")

        with open(path, "w") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)


def validate_config(data: dict[str, Any]) -> DetectorConfig:
    """Validate a raw parameter mapping into a DetectorConfig.

    Args:
        data: Parameter mapping (e.g. loaded from YAML).

    Returns:
        Validated configuration.

    Raises:
        InvalidConfiguration: If any value or combination of values is invalid.
    """
    try:
        return DetectorConfig.model_validate(data)
    except ValidationError as e:
        formatted_errors = format_validation_errors(e)
        raise InvalidConfiguration(
            f"Configuration validation failed:\n{formatted_errors}"
        ) from None


def format_validation_errors(error: ValidationError) -> str:
    """Format Pydantic validation errors with YAML-style paths.

    Args:
        error: Pydantic ValidationError.

    Returns:
        Formatted error string with YAML paths and messages.
    """
    lines = []
    for err in error.errors():
        path = ".".join(str(part) for part in err["loc"]) or "<root>"
        lines.append(f"  {path}: {err['msg']}")

    return "\n".join(lines)


class ConfigurationStore:
    """Runtime parameter surface with staleness tracking.

    Setters only check types and stage the new value. Combinations are
    validated atomically by :meth:`resolve`, so values can be changed one at a
    time (e.g. raising ``range_min`` before ``range_max``) without tripping over
    transient states. Every setter that feeds the geometry tables marks them
    stale.

    Args:
        config: Initial configuration. Defaults to ``DetectorConfig()``.
    """

    def __init__(self, config: DetectorConfig | None = None) -> None:
        if config is None:
            config = DetectorConfig()
        self._values: dict[str, Any] = config.model_dump()
        self._resolved: DetectorConfig | None = config
        self._tables_stale = True
        self.cam_model_update = False

    # -- staging ---------------------------------------------------------

    def _stage(self, key: str, value: Any) -> None:
        if self._values.get(key) == value:
            return
        self._values[key] = value
        self._resolved = None
        if key in GEOMETRY_FIELDS:
            self._tables_stale = True
        logger.debug("Staged %s=%r", key, value)

    @staticmethod
    def _as_float(name: str, value: Any) -> float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeError(f"{name} must be a number, got {type(value).__name__}")
        return float(value)

    @staticmethod
    def _as_count(name: str, value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"{name} must be an integer, got {type(value).__name__}")
        if value < 0:
            raise ValueError(f"{name} must be non-negative, got {value}")
        return value

    def update(self, **values: Any) -> DetectorConfig:
        """Stage several values and validate the result at once.

        Raises:
            InvalidConfiguration: If the combined values are invalid. The store
                is left unchanged in that case.
        """
        candidate = {**self._values, **values}
        config = validate_config(candidate)
        for key, value in values.items():
            self._stage(key, value)
        self._resolved = config
        return config

    def resolve(self) -> DetectorConfig:
        """Validate the staged values into an immutable configuration.

        Raises:
            InvalidConfiguration: If the staged combination is invalid.
        """
        if self._resolved is None:
            self._resolved = validate_config(self._values)
        return self._resolved

    # -- staleness -------------------------------------------------------

    @property
    def tables_stale(self) -> bool:
        """True when the geometry tables must be rebuilt before use."""
        return self._tables_stale or self.cam_model_update

    def mark_tables_built(self) -> None:
        self._tables_stale = False

    # -- setters ---------------------------------------------------------

    def set_min_range(self, rmin: float) -> None:
        self._stage("range_min", self._as_float("range_min", rmin))

    def set_max_range(self, rmax: float) -> None:
        self._stage("range_max", self._as_float("range_max", rmax))

    def set_sensor_mount_height(self, height: float) -> None:
        self._stage("mount_height", self._as_float("mount_height", height))

    def set_sensor_tilt_angle(self, angle: float) -> None:
        self._stage("tilt_angle", self._as_float("tilt_angle", angle))

    def set_used_depth_height(self, height: int) -> None:
        self._stage("used_depth_height", self._as_count("used_depth_height", height))

    def set_block_size(self, size: int) -> None:
        self._stage("block_size", self._as_count("block_size", size))

    def set_block_points_threshold(self, thresh: int) -> None:
        self._stage(
            "block_points_threshold", self._as_count("block_points_threshold", thresh)
        )

    def set_depth_img_step_row(self, step: int) -> None:
        self._stage("row_step", self._as_count("row_step", step))

    def set_depth_img_step_col(self, step: int) -> None:
        self._stage("col_step", self._as_count("col_step", step))

    def set_ground_margin(self, margin: float) -> None:
        self._stage("ground_margin", self._as_float("ground_margin", margin))

    def set_publish_depth_enable(self, enable: bool) -> None:
        self._stage("publish_depth_enable", bool(enable))

    def set_cam_model_update(self, update: bool) -> None:
        """Rebuild the tables on every frame while set (camera info may change)."""
        self.cam_model_update = bool(update)

    def set_parameters_configured(self, configured: bool) -> None:
        """Signal that parameters were (re)configured externally."""
        if configured:
            self._tables_stale = True

    # -- getters ---------------------------------------------------------

    def get_sensor_mount_height(self) -> float:
        return self._values["mount_height"]

    def get_sensor_tilt_angle(self) -> float:
        return self._values["tilt_angle"]

    def get_publish_depth_enable(self) -> bool:
        return self._values["publish_depth_enable"]

    def get(self, key: str) -> Any:
        """Return a staged (possibly not yet validated) value."""
        return self._values[key]


__all__ = [
    "DetectorConfig",
    "ConfigurationStore",
    "GEOMETRY_FIELDS",
    "format_validation_errors",
    "validate_config",
]
