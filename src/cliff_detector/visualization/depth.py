"""Depth frame and cliff boundary rendering."""

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
from matplotlib.patches import Rectangle
from pathlib import Path

from ..detector import DetectionResult


def _to_meters(depth: np.ndarray) -> np.ndarray:
    """uint16 millimeters to float meters with NaN for missing returns."""
    meters = depth.astype(np.float32) / 1000.0
    meters[depth == 0] = np.nan
    return meters


def _draw_depth(ax, depth: np.ndarray, vmin: float | None, vmax: float | None):
    cmap = plt.cm.viridis.copy()
    cmap.set_bad(color="0.8")  # gray for no return

    meters = _to_meters(depth)
    valid = meters[np.isfinite(meters)]
    if vmin is None and len(valid) > 0:
        vmin = float(valid.min())
    if vmax is None and len(valid) > 0:
        vmax = float(valid.max())

    return ax.imshow(meters, cmap=cmap, vmin=vmin, vmax=vmax)


def render_depth_map(
    depth: np.ndarray,
    output_path: str | Path,
    title: str = "",
    vmin: float | None = None,
    vmax: float | None = None,
    dpi: int = 150,
) -> None:
    """Render a depth frame as a colormapped image with colorbar.

    Args:
        depth: Depth frame, shape (H, W), uint16 millimeters. 0 for no return.
        output_path: Path to save the PNG image.
        title: Optional title suffix (e.g. the frame id).
        vmin: Colormap minimum (meters). If None, auto from valid data.
        vmax: Colormap maximum (meters). If None, auto from valid data.
        dpi: Output resolution.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    fig, ax = plt.subplots(1, 1, figsize=(8, 6))
    im = _draw_depth(ax, depth, vmin, vmax)
    cbar = fig.colorbar(im, ax=ax, shrink=0.8)
    cbar.set_label("Depth (m)")

    ax.set_title(f"Depth - {title}" if title else "Depth")
    ax.axis("off")

    fig.savefig(output_path, dpi=dpi, bbox_inches="tight", pad_inches=0.1)
    plt.close(fig)


def render_detection(
    depth: np.ndarray,
    result: DetectionResult,
    output_path: str | Path,
    dpi: int = 150,
) -> None:
    """Render a depth frame with cliff blocks and the ground-frame boundary.

    Left panel: depth with the used region boundary and cliff blocks outlined.
    Right panel: boundary points in the robot ground frame (x lateral, y forward).

    Args:
        depth: Depth frame, shape (H, W), uint16 millimeters.
        result: Detection result for the same frame.
        output_path: Path to save the PNG image.
        dpi: Output resolution.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    classification = result.classification
    polygon = result.polygon
    size = classification.block_size

    fig, (ax_depth, ax_ground) = plt.subplots(
        1, 2, figsize=(13, 5), gridspec_kw={"width_ratios": [3, 2]}
    )

    im = _draw_depth(ax_depth, depth, None, None)
    fig.colorbar(im, ax=ax_depth, shrink=0.8).set_label("Depth (m)")
    ax_depth.axhline(classification.top_row - 0.5, color="white", lw=1, ls="--")
    for i, j in zip(*np.nonzero(classification.cliff_mask)):
        row, col = classification.block_origin(int(i), int(j))
        ax_depth.add_patch(
            Rectangle(
                (col - 0.5, row - 0.5),
                size,
                size,
                fill=False,
                edgecolor="red",
                linewidth=0.8,
            )
        )
    title = "Cliff blocks"
    if polygon.frame_id:
        title += f" - {polygon.frame_id}"
    ax_depth.set_title(f"{title} ({classification.num_cliff_blocks})")
    ax_depth.axis("off")

    if not polygon.is_empty:
        ax_ground.plot(polygon.points[:, 0], polygon.points[:, 1], "o-", color="red")
    ax_ground.plot([0.0], [0.0], marker="^", color="black", markersize=10)
    ax_ground.set_xlabel("Lateral x (m)")
    ax_ground.set_ylabel("Forward y (m)")
    ax_ground.set_title(f"Boundary ({len(polygon)} points)")
    ax_ground.set_aspect("equal", adjustable="datalim")
    ax_ground.grid(True, alpha=0.3)

    fig.savefig(output_path, dpi=dpi, bbox_inches="tight", pad_inches=0.1)
    plt.close(fig)
