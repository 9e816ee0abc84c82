"""Pinhole projection model built from depth camera intrinsics."""

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import cv2
import numpy as np
import torch
import yaml

from ..errors import InvalidModel

logger = logging.getLogger(__name__)


class PinholeProjectionModel:
    """Pinhole camera model with optional lens distortion.

    Implements the ProjectionModel protocol. Raw pixels are rectified with
    OpenCV when distortion coefficients are present, then back-projected
    through the inverse intrinsic matrix.

    Args:
        K: Intrinsic matrix, shape (3, 3).
        image_size: Image dimensions as (width, height) in pixels.
        dist_coeffs: Distortion coefficients (plumb bob / OpenCV order), or None.

    Raises:
        InvalidModel: If the intrinsics cannot describe a camera (wrong shape,
            non-finite or singular K, non-positive image size).
    """

    def __init__(
        self,
        K: torch.Tensor | np.ndarray,
        image_size: tuple[int, int],
        dist_coeffs: torch.Tensor | np.ndarray | None = None,
    ) -> None:
        self.K = torch.as_tensor(K, dtype=torch.float64)
        if self.K.shape != (3, 3):
            raise InvalidModel(f"K must have shape (3, 3), got {tuple(self.K.shape)}")
        if not torch.isfinite(self.K).all():
            raise InvalidModel("K contains non-finite values")
        if self.K[0, 0] <= 0 or self.K[1, 1] <= 0:
            raise InvalidModel(
                "Camera model not initialized: focal lengths must be positive "
                f"(fx={self.K[0, 0].item()}, fy={self.K[1, 1].item()})"
            )

        width, height = image_size
        if width <= 0 or height <= 0:
            raise InvalidModel(f"Invalid image size: {image_size}")
        self._image_size = (int(width), int(height))

        if dist_coeffs is not None:
            dist_coeffs = torch.as_tensor(dist_coeffs, dtype=torch.float64).flatten()
            if not torch.any(dist_coeffs != 0):
                dist_coeffs = None
        self.dist_coeffs = dist_coeffs

        if torch.linalg.det(self.K).abs() < 1e-12:
            raise InvalidModel("Camera model not initialized: K is singular")

        # Precompute derived quantities
        self.K_inv = torch.linalg.inv(self.K)  # shape (3, 3)

    @property
    def image_size(self) -> tuple[int, int]:
        """Image dimensions as (width, height) in pixels."""
        return self._image_size

    @property
    def principal_point(self) -> tuple[float, float]:
        """Principal point (cx, cy) in pixels."""
        return self.cx, self.cy

    @property
    def fx(self) -> float:
        return self.K[0, 0].item()

    @property
    def fy(self) -> float:
        return self.K[1, 1].item()

    @property
    def cx(self) -> float:
        return self.K[0, 2].item()

    @property
    def cy(self) -> float:
        return self.K[1, 2].item()

    def rectify(self, pixels: torch.Tensor) -> torch.Tensor:
        """Map raw pixels to normalized image coordinates (z = 1 plane).

        Args:
            pixels: Raw pixel coordinates (u, v), shape (N, 2).

        Returns:
            Normalized coordinates (x, y), shape (N, 2), float64.
        """
        pixels = pixels.to(torch.float64)
        if self.dist_coeffs is None:
            ones = torch.ones(pixels.shape[0], 1, dtype=torch.float64)
            pixels_h = torch.cat([pixels, ones], dim=-1)  # (N, 3)
            normalized = (self.K_inv @ pixels_h.T).T  # (N, 3)
            return normalized[:, :2] / normalized[:, 2:3]

        undistorted = cv2.undistortPoints(
            pixels.cpu().numpy().reshape(-1, 1, 2),
            self.K.numpy(),
            self.dist_coeffs.numpy(),
        )
        return torch.from_numpy(undistorted.reshape(-1, 2)).to(torch.float64)

    def cast_ray(self, pixels: torch.Tensor) -> tuple[torch.Tensor, torch.Tensor]:
        """Cast rays from pixel coordinates into the scene.

        Args:
            pixels: 2D pixel coordinates (u, v), shape (N, 2).

        Returns:
            origins: Optical center for every ray, shape (N, 3), float64 zeros.
            directions: Unit ray direction vectors, shape (N, 3), float64.
        """
        normalized = self.rectify(pixels)
        N = normalized.shape[0]

        ones = torch.ones(N, 1, dtype=torch.float64)
        directions = torch.cat([normalized, ones], dim=-1)  # (N, 3)
        directions = directions / torch.linalg.norm(directions, dim=-1, keepdim=True)

        origins = torch.zeros(N, 3, dtype=torch.float64)
        return origins, directions

    @classmethod
    def from_camera_info(cls, info: Mapping[str, Any]) -> "PinholeProjectionModel":
        """Build a model from a CameraInfo style mapping.

        Accepts both the CameraInfo message layout (``width``, ``height``,
        ``k``/``K``, ``d``/``D``) and the camera calibration YAML layout
        (``image_width``, ``image_height``, ``camera_matrix.data``,
        ``distortion_coefficients.data``).

        Raises:
            InvalidModel: If required keys are missing or K is all zeros
                (an uncalibrated camera).
        """
        if "camera_matrix" in info:
            width = info.get("image_width")
            height = info.get("image_height")
            k = info["camera_matrix"].get("data")
            d = info.get("distortion_coefficients", {}).get("data")
        else:
            width = info.get("width")
            height = info.get("height")
            k = info.get("k", info.get("K"))
            d = info.get("d", info.get("D"))

        if width is None or height is None or k is None:
            raise InvalidModel(
                "Camera model not initialized: camera info needs width, height and K"
            )

        K = np.asarray(k, dtype=np.float64)
        if K.size != 9:
            raise InvalidModel(f"K must have 9 entries, got {K.size}")
        if not np.any(K):
            raise InvalidModel("Camera model not initialized: K is all zeros")

        dist_coeffs = None
        if d is not None and len(d):
            dist_coeffs = np.asarray(d, dtype=np.float64)
        return cls(K.reshape(3, 3), (int(width), int(height)), dist_coeffs)


def load_camera_info(path: str | Path) -> PinholeProjectionModel:
    """Load a camera model from a CameraInfo YAML or JSON file.

    Args:
        path: Path to the camera info file.

    Returns:
        Pinhole model described by the file.

    Raises:
        FileNotFoundError: If the file does not exist.
        InvalidModel: If the file does not describe a calibrated camera.
    """
    path = Path(path)
    with open(path) as f:
        info = yaml.safe_load(f)

    if not isinstance(info, Mapping):
        raise InvalidModel(f"Camera info file is not a mapping: {path}")

    model = PinholeProjectionModel.from_camera_info(info)
    logger.info(
        "Loaded camera model from %s (%dx%d, fx=%.1f, fy=%.1f)",
        path,
        model.image_size[0],
        model.image_size[1],
        model.fx,
        model.fy,
    )
    return model
