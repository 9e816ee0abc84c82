"""Depth frame container and 16-bit depth image I/O."""

import logging
from dataclasses import dataclass
from pathlib import Path

import cv2
import numpy as np

from .errors import MalformedFrame

logger = logging.getLogger(__name__)


@dataclass
class DepthFrame:
    """One depth image borrowed for a single detection call.

    Attributes:
        data: Depth samples (H, W) uint16 in millimeters, 0 = no return.
        frame_id: Sensor frame identifier, copied into the output polygon.
        stamp: Acquisition time in seconds, copied into the output polygon.
    """

    data: np.ndarray
    frame_id: str = ""
    stamp: float = 0.0

    @property
    def height(self) -> int:
        return self.data.shape[0]

    @property
    def width(self) -> int:
        return self.data.shape[1]

    @classmethod
    def from_array(
        cls, data: np.ndarray, frame_id: str = "", stamp: float = 0.0
    ) -> "DepthFrame":
        """Validate and wrap a depth buffer.

        uint16 buffers are taken as millimeters. Floating point buffers are
        taken as meters and converted; NaN, infinite and non-positive samples
        become 0 (no return).

        Raises:
            MalformedFrame: If the buffer is not a non-empty 2D uint16 or float array.
        """
        data = np.asarray(data)
        if data.ndim != 2 or data.size == 0:
            raise MalformedFrame(
                f"Depth frame must be a non-empty 2D array, got shape {data.shape}"
            )

        if np.issubdtype(data.dtype, np.floating):
            meters = np.where(np.isfinite(data) & (data > 0), data, 0.0)
            data = np.clip(np.rint(meters * 1000.0), 0, 65535).astype(np.uint16)
        elif data.dtype != np.uint16:
            raise MalformedFrame(
                f"Unsupported depth encoding {data.dtype} (expected uint16 millimeters "
                "or float meters)"
            )

        return cls(data=data, frame_id=frame_id, stamp=float(stamp))


def load_depth_image(
    path: str | Path, frame_id: str | None = None, stamp: float = 0.0
) -> DepthFrame:
    """Read a 16-bit depth PNG into a DepthFrame.

    Args:
        path: Path to the depth image.
        frame_id: Frame identifier. Defaults to the file stem.
        stamp: Timestamp in seconds.

    Raises:
        FileNotFoundError: If the file does not exist.
        MalformedFrame: If the file cannot be decoded as a single-channel depth image.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Depth image not found: {path}")

    depth = cv2.imread(str(path), cv2.IMREAD_ANYDEPTH)
    if depth is None:
        raise MalformedFrame(f"Failed to decode depth image: {path}")

    logger.debug("Loaded depth image %s (%s, %s)", path, depth.shape, depth.dtype)
    return DepthFrame.from_array(
        depth, frame_id=path.stem if frame_id is None else frame_id, stamp=stamp
    )


def save_depth_image(path: str | Path, depth: np.ndarray) -> None:
    """Write a uint16 depth image as a 16-bit PNG."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if not cv2.imwrite(str(path), depth.astype(np.uint16)):
        raise OSError(f"Failed to write depth image: {path}")


__all__ = ["DepthFrame", "load_depth_image", "save_depth_image"]
