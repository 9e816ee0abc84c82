"""Projection models for depth camera geometry."""

from .pinhole import PinholeProjectionModel, load_camera_info
from .protocol import ProjectionModel

__all__ = ["ProjectionModel", "PinholeProjectionModel", "load_camera_info"]
