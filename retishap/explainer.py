import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple

import numpy as np

from .estimator import (
    MAX_SAMPLES,
    MIN_SUCCESS_FRACTION,
    NORMALIZATION_EPSILON,
    SAMPLES_PER_SEGMENT,
    ContributionEstimator,
)
from .exceptions import ExplanationError, ScoringUnavailableError
from .image_utils import BASELINE_GRAY, CANONICAL_SIZE, to_float_image, to_pil
from .report import (
    IMPORTANT_FRACTION,
    NEGATIVE_LABEL,
    POSITIVE_LABEL,
    ImportantRegion,
    find_important_regions,
    summarize,
)
from .scoring import Scorer, as_scorer
from .segmentation import MAX_SEGMENTS, SEGMENT_SIZE, Segment, segment_image
from .visualization import create_heat_mask, plot_explanation, render_overlay

logger = logging.getLogger(__name__)


@dataclass
class ExplanationResult:
    overlay: Optional[np.ndarray]
    analysis_text: str
    confidence: float
    values: np.ndarray = field(default_factory=lambda: np.zeros(0))
    baseline_prediction: float = 0.0
    segments: List[Segment] = field(default_factory=list)
    important_regions: List[ImportantRegion] = field(default_factory=list)
    working_size: Tuple[int, int] = (0, 0)
    num_samples: int = 0
    num_failed_samples: int = 0
    normalized: bool = False

    @property
    def original_prediction(self) -> float:
        return self.confidence

    @property
    def succeeded(self) -> bool:
        return self.overlay is not None

    def overlay_image(self):
        """Overlay as a PIL image, or None for a failed run."""
        return to_pil(self.overlay) if self.overlay is not None else None

    def heat_mask(self) -> np.ndarray:
        return create_heat_mask(self.working_size, self.segments, self.values)

    def plot(self, original, title: str = "Contribution Analysis", save_path: Optional[str] = None):
        if self.overlay is None:
            raise ValueError("No overlay to plot: the explanation failed.")
        return plot_explanation(
            to_float_image(original), self.overlay, self.heat_mask(), title, save_path
        )


class SHAPImageExplainer:
    """
    Explains an image classifier's probability output with randomly sampled
    segment coalitions.

    Args:
        model: Scorer, callable `fn(image) -> probability` or object with a
            `predict(batch)` method. None means the classifier is unavailable.
        canonical_size (int): Working resolution; images are resized so that
            their longer side does not exceed it.
        segment_size (int): Edge length of the square segments.
        max_segments (int): Upper bound on the number of segments.
        max_samples (int): Upper bound on coalition samples.
        samples_per_segment (int): Samples per segment before capping.
        min_success_fraction (float): Fraction of samples that must score
            successfully.
        epsilon (float): Raw sums at or below this magnitude are not
            normalized.
        fill_value (float): Gray level of the baseline.
        important_fraction (float): Relative magnitude marking an important
            region.
        positive_label (str): Class name above the 0.5 threshold.
        negative_label (str): Class name at or below the 0.5 threshold.
        n_jobs (int): Threads used to score coalitions.
        seed: Seed for coalition sampling. None draws a fresh seed per run.
        show_progress (bool): Display a tqdm progress bar.
    """

    def __init__(
        self,
        model,
        canonical_size: int = CANONICAL_SIZE,
        segment_size: int = SEGMENT_SIZE,
        max_segments: int = MAX_SEGMENTS,
        max_samples: int = MAX_SAMPLES,
        samples_per_segment: int = SAMPLES_PER_SEGMENT,
        min_success_fraction: float = MIN_SUCCESS_FRACTION,
        epsilon: float = NORMALIZATION_EPSILON,
        fill_value: float = BASELINE_GRAY,
        important_fraction: float = IMPORTANT_FRACTION,
        positive_label: str = POSITIVE_LABEL,
        negative_label: str = NEGATIVE_LABEL,
        n_jobs: int = 1,
        seed=None,
        show_progress: bool = False,
    ) -> None:
        if not isinstance(segment_size, int) or segment_size <= 0:
            raise ValueError("segment_size must be a positive integer.")
        if not isinstance(max_segments, int) or max_segments <= 0:
            raise ValueError("max_segments must be a positive integer.")
        if not 0.0 <= important_fraction <= 1.0:
            raise ValueError("important_fraction must be between 0 and 1.")

        try:
            self.scorer: Optional[Scorer] = as_scorer(model)
        except ScoringUnavailableError as exc:
            logger.error(f"Classifier unavailable: {exc}")
            self.scorer = None

        self.canonical_size = canonical_size
        self.segment_size = segment_size
        self.max_segments = max_segments
        self.important_fraction = important_fraction
        self.positive_label = positive_label
        self.negative_label = negative_label
        self.estimator = ContributionEstimator(
            max_samples=max_samples,
            samples_per_segment=samples_per_segment,
            min_success_fraction=min_success_fraction,
            epsilon=epsilon,
            canonical_size=canonical_size,
            fill_value=fill_value,
            n_jobs=n_jobs,
            seed=seed,
            show_progress=show_progress,
        )

    def explain(
        self,
        image: Any,
        progress_callback: Optional[Callable[[int, int], None]] = None,
        cancel_event=None,
    ) -> ExplanationResult:
        """
        Explain the classifier's prediction for image.

        Args:
            image (Any): Path, PIL image or numpy array of any resolution.
            progress_callback (Callable | None): Called as
                `progress_callback(done, total)` after each coalition sample.
            cancel_event (threading.Event | None): Set it to abandon the run.

        Returns:
            ExplanationResult: Contributions, overlay and textual report.

        Raises:
            ScoringUnavailableError: If no classifier is available.
            InvalidImageError: If image cannot be converted.
            BaselinePredictionError: If the reference predictions fail.
            InsufficientSamplesError: If too many coalition samples fail.
            ExplanationCancelled: If cancel_event was set.
        """
        if self.scorer is None:
            raise ScoringUnavailableError("Model not available")

        logger.info("Starting SHAP analysis...")
        original = to_float_image(image)
        working, segments = segment_image(
            original, self.canonical_size, self.segment_size, self.max_segments
        )

        baseline = self.estimator.baseline_prediction(self.scorer)
        prediction = self.estimator.original_prediction(working, self.scorer)
        logger.info(f"Baseline: {baseline:.3f}, Original: {prediction:.3f}")

        estimate = self.estimator.estimate(
            working,
            segments,
            self.scorer,
            baseline=baseline,
            original=prediction,
            progress_callback=progress_callback,
            cancel_event=cancel_event,
        )

        overlay = render_overlay(original, segments, estimate.values, working.shape[:2])
        important_regions = find_important_regions(
            segments, estimate.values, self.important_fraction
        )
        analysis_text = summarize(
            prediction,
            baseline,
            estimate.values,
            important_regions,
            self.positive_label,
            self.negative_label,
        )

        logger.info("SHAP analysis complete")
        return ExplanationResult(
            overlay=overlay,
            analysis_text=analysis_text,
            confidence=prediction,
            values=estimate.values,
            baseline_prediction=baseline,
            segments=segments,
            important_regions=important_regions,
            working_size=working.shape[:2],
            num_samples=estimate.num_samples,
            num_failed_samples=estimate.num_failed,
            normalized=estimate.normalized,
        )

    def generate(self, image: Any, **kwargs) -> ExplanationResult:
        """
        Like explain, but failures are returned as a result without an
        overlay whose analysis_text holds the error message.
        """
        try:
            return self.explain(image, **kwargs)
        except ExplanationError as exc:
            logger.error(f"SHAP analysis failed: {exc}")
            return ExplanationResult(overlay=None, analysis_text=f"Error: {exc}", confidence=0.0)
