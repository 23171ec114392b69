import logging
from typing import List, NamedTuple, Sequence, Tuple

import numpy as np

from .image_utils import CANONICAL_SIZE, resize_to_fit

logger = logging.getLogger(__name__)

SEGMENT_SIZE = 20
MAX_SEGMENTS = 80
# Side of the lattice used when the full grid has too many cells
MAX_LATTICE = 9


class Segment(NamedTuple):
    """Axis-aligned rectangle in working-image pixel coordinates."""

    x: int
    y: int
    width: int
    height: int

    def slices(self) -> Tuple[slice, slice]:
        """Row and column slices selecting this segment from an (H, W, ...) array."""
        return slice(self.y, self.y + self.height), slice(self.x, self.x + self.width)

    def scaled(self, scale_x: float, scale_y: float) -> "Segment":
        """
        The same region in an image scaled by (scale_x, scale_y). Edges are
        rounded so neighbouring segments stay adjacent.
        """
        x0 = int(round(self.x * scale_x))
        y0 = int(round(self.y * scale_y))
        x1 = int(round((self.x + self.width) * scale_x))
        y1 = int(round((self.y + self.height) * scale_y))
        return Segment(x0, y0, max(1, x1 - x0), max(1, y1 - y0))

    @property
    def area(self) -> int:
        return self.width * self.height


def grid_segments(
    height: int,
    width: int,
    segment_size: int = SEGMENT_SIZE,
    max_segments: int = MAX_SEGMENTS,
) -> List[Segment]:
    """
    Partition a height x width image into square grid cells.

    The full row-major grid is returned when it has at most max_segments
    cells. Larger grids are sub-sampled on a lattice of at most 9x9 strides,
    rows first, stopping once max_segments cells are emitted. Strips at the
    right and bottom edges narrower than segment_size are not covered; an
    image smaller than one cell yields a single segment clipped to the image.

    Args:
        height (int): Image height in pixels.
        width (int): Image width in pixels.
        segment_size (int): Edge length of each cell.
        max_segments (int): Upper bound on the number of segments.

    Returns:
        List[Segment]: Segments in canonical index order.
    """
    if height < 1 or width < 1:
        raise ValueError(f"Image dimensions must be positive, got {width}x{height}")
    if segment_size < 1:
        raise ValueError("segment_size must be a positive integer.")
    if max_segments < 1:
        raise ValueError("max_segments must be a positive integer.")

    cols = max(1, width // segment_size)
    rows = max(1, height // segment_size)

    def cell(row, col):
        x = col * segment_size
        y = row * segment_size
        return Segment(x, y, min(segment_size, width - x), min(segment_size, height - y))

    if cols * rows <= max_segments:
        return [cell(row, col) for row in range(rows) for col in range(cols)]

    step_col = max(1, cols // MAX_LATTICE)
    step_row = max(1, rows // MAX_LATTICE)

    segments = []
    for row in range(0, rows, step_row):
        for col in range(0, cols, step_col):
            segments.append(cell(row, col))
            if len(segments) >= max_segments:
                return segments
    return segments


def segment_image(
    img: np.ndarray,
    canonical_size: int = CANONICAL_SIZE,
    segment_size: int = SEGMENT_SIZE,
    max_segments: int = MAX_SEGMENTS,
) -> Tuple[np.ndarray, List[Segment]]:
    """
    Resize an image to the working resolution and split it into segments.

    Returns:
        Tuple[np.ndarray, List[Segment]]: The working image and its segments.
    """
    working = resize_to_fit(img, canonical_size)
    height, width = working.shape[:2]
    segments = grid_segments(height, width, segment_size, max_segments)
    logger.info(f"Created {len(segments)} segments for a {width}x{height} working image")
    return working, segments


def segment_label_map(shape: Tuple[int, int], segments: Sequence[Segment]) -> np.ndarray:
    """
    Label map with the segment index at every covered pixel and -1 elsewhere.
    """
    labels = np.full(shape, -1, dtype=np.int32)
    for idx, segment in enumerate(segments):
        rows, cols = segment.slices()
        labels[rows, cols] = idx
    return labels
