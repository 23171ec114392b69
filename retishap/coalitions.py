from typing import FrozenSet, Iterable, Sequence

import numpy as np

from .image_utils import BASELINE_GRAY, crop, gray_image
from .segmentation import Segment


class CoalitionSampler:
    """
    Draws random coalitions of segment indices.

    The coalition size is uniform in [1, num_segments] and its members are a
    uniform sample without replacement of that size.

    Args:
        seed: Seed or numpy Generator. None draws fresh entropy.
    """

    def __init__(self, seed=None):
        self.rng = np.random.default_rng(seed)

    def draw(self, num_segments: int) -> FrozenSet[int]:
        if num_segments < 1:
            raise ValueError("num_segments must be a positive integer.")
        size = int(self.rng.integers(1, num_segments, endpoint=True))
        members = self.rng.choice(num_segments, size=size, replace=False)
        return frozenset(int(m) for m in members)

    def draw_many(self, num_segments: int, num_coalitions: int):
        return [self.draw(num_segments) for _ in range(num_coalitions)]


def build_coalition_image(
    img: np.ndarray,
    segments: Sequence[Segment],
    coalition: Iterable[int],
    fill_value: float = BASELINE_GRAY,
) -> np.ndarray:
    """
    Masked copy of img showing only the segments in the coalition.

    Every pixel outside the coalition's segments is set to the baseline gray,
    so the result differs from a flat baseline image only inside the
    coalition.

    Args:
        img (np.ndarray): Working image of shape (H, W, 3).
        segments (Sequence[Segment]): All segments of the working image.
        coalition (Iterable[int]): Indices of the segments to keep.
        fill_value (float): Gray level of the baseline fill.

    Returns:
        np.ndarray: New image with the same shape as img.
    """
    height, width = img.shape[:2]
    masked = gray_image(height, width, fill_value)
    for idx in coalition:
        rows, cols = segments[idx].slices()
        masked[rows, cols] = crop(img, segments[idx])
    return masked
