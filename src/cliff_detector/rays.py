"""Ray helpers on top of a projection model."""

import torch

from .errors import InvalidConfiguration, InvalidModel
from .projection.protocol import ProjectionModel


def ray_for(model: ProjectionModel | None, pixel: tuple[float, float]) -> torch.Tensor:
    """Direction of the ray through a single pixel.

    Args:
        model: Camera model providing back-projection.
        pixel: Pixel coordinate (u, v).

    Returns:
        Unit direction vector, shape (3,), float64, in the camera optical frame.

    Raises:
        InvalidModel: If no usable camera model is supplied.
    """
    if model is None:
        raise InvalidModel("Camera model not initialized")
    if not isinstance(model, ProjectionModel):
        raise InvalidModel(
            f"{type(model).__name__} does not implement the ProjectionModel protocol"
        )

    pixels = torch.tensor([pixel], dtype=torch.float64)
    _, directions = model.cast_ray(pixels)
    return directions[0].to(torch.float64)


def length_of(vec: torch.Tensor) -> float:
    """Euclidean norm of a 3D vector starting at the origin."""
    vec = torch.as_tensor(vec, dtype=torch.float64)
    return torch.sqrt((vec * vec).sum()).item()


def angle_between(ray1: torch.Tensor, ray2: torch.Tensor) -> float:
    """Angle between two rays from the origin (radians).

    Uses angle = arccos(a.b / (|a||b|)). The cosine is clamped to [-1, 1] so
    rounding never pushes it outside the arccos domain.

    Raises:
        InvalidConfiguration: If either ray has zero length.
    """
    ray1 = torch.as_tensor(ray1, dtype=torch.float64)
    ray2 = torch.as_tensor(ray2, dtype=torch.float64)

    norm = length_of(ray1) * length_of(ray2)
    if norm == 0.0:
        raise InvalidConfiguration(
            "Angle between rays is undefined for a zero-length ray"
        )

    cos_angle = torch.clamp((ray1 * ray2).sum() / norm, -1.0, 1.0)
    return torch.arccos(cos_angle).item()


__all__ = ["ray_for", "length_of", "angle_between"]
