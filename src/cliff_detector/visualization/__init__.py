"""Visualization outputs for detection results."""

from .depth import render_depth_map, render_detection

__all__ = ["render_depth_map", "render_detection"]
