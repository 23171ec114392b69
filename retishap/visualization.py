import logging
from typing import Optional, Sequence, Tuple

import numpy as np
import matplotlib.pyplot as plt
from matplotlib.colors import TwoSlopeNorm

from .segmentation import Segment, segment_label_map

logger = logging.getLogger(__name__)

FILL_THRESHOLD = 0.1
OUTLINE_THRESHOLD = 0.6
MAX_OUTLINED = 5
MAX_ALPHA = 0.7
CORNER_RADIUS = 3
OUTLINE_WIDTH = 2
OUTLINE_COLOR = (1.0, 1.0, 1.0)


def contribution_color(relative: float) -> Tuple[Tuple[float, float, float], float]:
    """
    RGB color and alpha for a contribution scaled to [-1, 1] by the largest
    absolute contribution. Positive values are red, negative values blue.
    """
    intensity = min(1.0, abs(relative))
    alpha = intensity * MAX_ALPHA
    if relative > 0:
        color = (1.0, 1.0 - intensity * 0.8, 1.0 - intensity)
    else:
        color = (1.0 - intensity, 1.0 - intensity * 0.8, 1.0)
    return color, alpha


def rounded_rect_mask(height: int, width: int, radius: int = CORNER_RADIUS) -> np.ndarray:
    """Boolean (height, width) mask of a rectangle with rounded corners."""
    mask = np.ones((height, width), dtype=bool)
    radius = min(radius, height // 2, width // 2)
    if radius <= 0:
        return mask

    rr, cc = np.ogrid[:height, :width]
    # Distance from the nearest corner circle center, per axis
    dy = np.maximum(np.maximum(radius - 0.5 - rr, rr - (height - radius - 0.5)), 0)
    dx = np.maximum(np.maximum(radius - 0.5 - cc, cc - (width - radius - 0.5)), 0)
    mask &= (dy ** 2 + dx ** 2) <= radius ** 2
    return mask


def _clip_to_image(segment: Segment, height: int, width: int) -> Optional[Segment]:
    x0, y0 = max(0, segment.x), max(0, segment.y)
    x1 = min(width, segment.x + segment.width)
    y1 = min(height, segment.y + segment.height)
    if x1 <= x0 or y1 <= y0:
        return None
    return Segment(x0, y0, x1 - x0, y1 - y0)


def render_overlay(
    original: np.ndarray,
    segments: Sequence[Segment],
    values: np.ndarray,
    working_size: Tuple[int, int],
) -> np.ndarray:
    """
    Paint contribution values over the original image.

    Segments whose absolute value exceeds 10% of the largest absolute value
    are filled with a translucent color, red for positive and blue for
    negative contributions, most important last. The five most important
    segments are outlined in white when they exceed 60% of the largest
    absolute value.

    Args:
        original (np.ndarray): Original image of shape (H, W, 3) in [0, 1].
        segments (Sequence[Segment]): Segments in working-image coordinates.
        values (np.ndarray): One contribution value per segment.
        working_size (Tuple[int, int]): (height, width) of the working image
            the segments were defined on.

    Returns:
        np.ndarray: New float32 image with the original's shape.
    """
    values = np.asarray(values, dtype=np.float64)
    if len(values) != len(segments):
        raise ValueError(f"Got {len(values)} values for {len(segments)} segments")

    overlay = np.array(original, dtype=np.float32, copy=True)
    if len(values) == 0:
        return overlay

    max_abs = float(np.max(np.abs(values)))
    if max_abs == 0 or not np.isfinite(max_abs):
        return overlay

    height, width = overlay.shape[:2]
    scale_x = width / working_size[1]
    scale_y = height / working_size[0]

    relative = values / max_abs
    order = np.argsort(np.abs(values), kind="stable")

    for idx in order:
        if abs(relative[idx]) <= FILL_THRESHOLD:
            continue
        region = _clip_to_image(segments[idx].scaled(scale_x, scale_y), height, width)
        if region is None:
            continue
        color, alpha = contribution_color(relative[idx])
        rows, cols = region.slices()
        mask = rounded_rect_mask(region.height, region.width)
        patch = overlay[rows, cols]
        patch[mask] = (1.0 - alpha) * patch[mask] + alpha * np.asarray(color, dtype=np.float32)

    for idx in order[-MAX_OUTLINED:]:
        if abs(relative[idx]) <= OUTLINE_THRESHOLD:
            continue
        region = _clip_to_image(segments[idx].scaled(scale_x, scale_y), height, width)
        if region is None:
            continue
        rows, cols = region.slices()
        mask = rounded_rect_mask(region.height, region.width)
        inner = np.zeros_like(mask)
        w = OUTLINE_WIDTH
        if region.height > 2 * w and region.width > 2 * w:
            inner[w:-w, w:-w] = mask[w:-w, w:-w]
        overlay[rows, cols][mask & ~inner] = OUTLINE_COLOR

    return np.clip(overlay, 0.0, 1.0)


def create_heat_mask(shape: Tuple[int, int], segments: Sequence[Segment], values: np.ndarray) -> np.ndarray:
    """
    Per-pixel map of contribution values on the working image; uncovered
    pixels are 0.
    """
    labels = segment_label_map(shape, segments)
    lookup = np.append(np.asarray(values, dtype=np.float64), 0.0)
    # Label -1 indexes the trailing zero
    return lookup[labels]


def plot_explanation(
    original: np.ndarray,
    overlay: np.ndarray,
    heat_mask: np.ndarray,
    title: str = "Contribution Analysis",
    save_path: Optional[str] = None,
):
    """
    Figure with the original image, the contribution overlay and the heat
    mask with a diverging colorbar.

    Returns:
        matplotlib.figure.Figure: The figure, saved to save_path if given.
    """
    fig, axes = plt.subplots(1, 3, figsize=(15, 5))

    axes[0].imshow(original)
    axes[0].set_title("Original")

    axes[1].imshow(overlay)
    axes[1].set_title("Visual Explanation")

    vmax = float(np.max(np.abs(heat_mask))) or 1.0
    im = axes[2].imshow(
        heat_mask,
        cmap="bwr",
        norm=TwoSlopeNorm(vmin=-vmax, vcenter=0.0, vmax=vmax),
        interpolation="nearest",
    )
    axes[2].set_title("Contribution Heat Mask")
    fig.colorbar(im, ax=axes[2], fraction=0.046, pad=0.04)

    for ax in axes:
        ax.axis("off")
    fig.suptitle(title)
    fig.tight_layout()

    if save_path:
        fig.savefig(save_path, bbox_inches="tight")
        logger.info(f"Saved explanation figure to {save_path}")

    return fig
