"""Protocol definition for projection models."""

from typing import Protocol, runtime_checkable

import torch


@runtime_checkable
class ProjectionModel(Protocol):
    """Protocol for pixel-to-ray camera models.

    Defines the capability the cliff detector needs from camera intrinsics:
    the image resolution and the back-projection of pixels into rays. The
    detector only reads from the model and never mutates it, so callers can
    share one instance with other consumers.

    Rays are expressed in the camera optical frame: x right, y down,
    z forward along the optical axis.
    """

    @property
    def image_size(self) -> tuple[int, int]:
        """Full image resolution as (width, height) in pixels."""
        ...

    @property
    def principal_point(self) -> tuple[float, float]:
        """Pixel (u, v) where the optical axis meets the image."""
        ...

    def cast_ray(self, pixels: torch.Tensor) -> tuple[torch.Tensor, torch.Tensor]:
        """Cast rays from pixel coordinates into the scene.

        Args:
            pixels: 2D pixel coordinates (u, v), shape (N, 2), float64.

        Returns:
            origins: Ray origin points, shape (N, 3). For a pinhole camera
                these are all the optical center (zeros).
            directions: Unit ray direction vectors, shape (N, 3).
        """
        ...
