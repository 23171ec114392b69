import math
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple

import numpy as np
from tqdm import tqdm

from .coalitions import CoalitionSampler, build_coalition_image
from .exceptions import (
    BaselinePredictionError,
    ExplanationCancelled,
    InsufficientSamplesError,
    ScoringError,
)
from .image_utils import BASELINE_GRAY, CANONICAL_SIZE, gray_image
from .scoring import as_scorer
from .segmentation import Segment

logger = logging.getLogger(__name__)

MAX_SAMPLES = 50
SAMPLES_PER_SEGMENT = 2
MIN_SUCCESS_FRACTION = 0.5
# Raw sums at or below this magnitude are not rescaled
NORMALIZATION_EPSILON = 1e-12


@dataclass
class ContributionEstimate:
    values: np.ndarray
    baseline: float
    original: float
    num_samples: int
    num_succeeded: int
    normalized: bool

    @property
    def num_failed(self) -> int:
        return self.num_samples - self.num_succeeded


def normalize_contributions(
    values: np.ndarray,
    target_sum: float,
    epsilon: float = NORMALIZATION_EPSILON,
) -> Tuple[np.ndarray, bool]:
    """
    Rescale values so they sum to target_sum.

    Rescaling is skipped, and a copy of values returned unchanged, when the
    current sum is not finite or its magnitude is at most epsilon.

    Returns:
        Tuple[np.ndarray, bool]: The (possibly rescaled) values and whether
            rescaling was applied.
    """
    current_sum = float(np.sum(values))
    if not math.isfinite(current_sum) or abs(current_sum) <= epsilon:
        logger.warning(
            f"Contribution sum {current_sum} is too close to zero to normalize; "
            "keeping raw values."
        )
        return np.array(values, dtype=np.float64), False

    factor = target_sum / current_sum
    if not math.isfinite(factor):
        logger.warning(f"Normalization factor {factor} is not finite; keeping raw values.")
        return np.array(values, dtype=np.float64), False

    return np.asarray(values, dtype=np.float64) * factor, True


class ContributionEstimator:
    """
    Monte-Carlo estimate of per-segment contributions to a prediction.

    Each sample draws a random coalition of segments, scores the image in
    which only those segments are visible, and shares the change relative to
    the baseline prediction equally between the coalition's members. The
    averaged values are then rescaled so that they sum to
    `original - baseline`.

    Args:
        max_samples (int): Upper bound on the number of coalition samples.
        samples_per_segment (int): Samples drawn per segment, before capping
            at max_samples.
        min_success_fraction (float): Fraction of samples that must score
            successfully for the estimate to be returned.
        epsilon (float): Raw sums with magnitude at or below this value are
            left unnormalized.
        canonical_size (int): Side of the square baseline image.
        fill_value (float): Gray level used for the baseline and masked
            regions.
        n_jobs (int): Number of threads scoring coalitions concurrently.
            Cancelling a threaded run waits for in-flight scoring calls.
        seed: Seed or numpy Generator for coalition sampling.
        show_progress (bool): Display a tqdm progress bar.
    """

    def __init__(
        self,
        max_samples: int = MAX_SAMPLES,
        samples_per_segment: int = SAMPLES_PER_SEGMENT,
        min_success_fraction: float = MIN_SUCCESS_FRACTION,
        epsilon: float = NORMALIZATION_EPSILON,
        canonical_size: int = CANONICAL_SIZE,
        fill_value: float = BASELINE_GRAY,
        n_jobs: int = 1,
        seed=None,
        show_progress: bool = False,
    ) -> None:
        if not isinstance(max_samples, int) or max_samples <= 0:
            raise ValueError("max_samples must be a positive integer.")
        if not isinstance(samples_per_segment, int) or samples_per_segment <= 0:
            raise ValueError("samples_per_segment must be a positive integer.")
        if not 0.0 <= min_success_fraction <= 1.0:
            raise ValueError("min_success_fraction must be between 0 and 1.")
        if epsilon < 0:
            raise ValueError("epsilon must be non-negative.")
        if not isinstance(canonical_size, int) or canonical_size <= 0:
            raise ValueError("canonical_size must be a positive integer.")
        if not 0.0 <= fill_value <= 1.0:
            raise ValueError("fill_value must be between 0 and 1.")
        if not isinstance(n_jobs, int) or n_jobs <= 0:
            raise ValueError("n_jobs must be a positive integer.")

        self.max_samples = max_samples
        self.samples_per_segment = samples_per_segment
        self.min_success_fraction = min_success_fraction
        self.epsilon = epsilon
        self.canonical_size = canonical_size
        self.fill_value = fill_value
        self.n_jobs = n_jobs
        self.sampler = CoalitionSampler(seed)
        self.show_progress = show_progress

    def num_samples(self, num_segments: int) -> int:
        return min(self.max_samples, num_segments * self.samples_per_segment)

    def baseline_image(self) -> np.ndarray:
        return gray_image(self.canonical_size, self.canonical_size, self.fill_value)

    def baseline_prediction(self, scorer) -> float:
        """Score of the flat gray baseline image."""
        scorer = as_scorer(scorer)
        try:
            return scorer(self.baseline_image())
        except ScoringError as exc:
            raise BaselinePredictionError(f"Could not establish baseline: {exc}") from exc

    def original_prediction(self, img: np.ndarray, scorer) -> float:
        """Score of the unmasked working image."""
        scorer = as_scorer(scorer)
        try:
            return scorer(img)
        except ScoringError as exc:
            raise BaselinePredictionError(f"Could not get original prediction: {exc}") from exc

    def _score_coalition(self, img, segments, coalition, scorer) -> Optional[float]:
        coalition_img = build_coalition_image(img, segments, coalition, self.fill_value)
        try:
            return scorer(coalition_img)
        except ScoringError as exc:
            logger.warning(f"Skipping coalition of size {len(coalition)}: {exc}")
            return None

    def estimate(
        self,
        img: np.ndarray,
        segments: Sequence[Segment],
        scorer,
        baseline: Optional[float] = None,
        original: Optional[float] = None,
        progress_callback: Optional[Callable[[int, int], None]] = None,
        cancel_event=None,
    ) -> ContributionEstimate:
        """
        Estimate the contribution of every segment of img to its score.

        Args:
            img (np.ndarray): Working image of shape (H, W, 3).
            segments (Sequence[Segment]): Segments of img, in index order.
            scorer: Scorer, callable or model with `predict`.
            baseline (float | None): Precomputed baseline prediction.
            original (float | None): Precomputed prediction for img.
            progress_callback (Callable | None): Called as
                `progress_callback(done, total)` after each sample.
            cancel_event (threading.Event | None): When set, the run stops
                with ExplanationCancelled. The event is checked before each
                sample, or with n_jobs > 1 as each sample completes; pending
                samples are then cancelled but scoring calls already running
                are waited for before the exception is raised.

        Returns:
            ContributionEstimate: Per-segment values and run statistics.

        Raises:
            BaselinePredictionError: If the reference predictions fail.
            InsufficientSamplesError: If too few samples scored successfully.
            ExplanationCancelled: If cancel_event was set.
        """
        if len(segments) == 0:
            raise ValueError("At least one segment is required.")
        scorer = as_scorer(scorer)

        if baseline is None:
            baseline = self.baseline_prediction(scorer)
        if original is None:
            original = self.original_prediction(img, scorer)

        num_segments = len(segments)
        num_samples = self.num_samples(num_segments)
        coalitions = self.sampler.draw_many(num_segments, num_samples)
        logger.info(f"Calculating contributions with {num_samples} coalition samples...")

        sums = np.zeros(num_segments, dtype=np.float64)
        succeeded = 0

        def accumulate(coalition, score):
            nonlocal succeeded
            if score is None:
                return
            members = np.fromiter(coalition, dtype=np.int64)
            sums[members] += (score - baseline) / len(members)
            succeeded += 1

        def check_cancelled():
            if cancel_event is not None and cancel_event.is_set():
                raise ExplanationCancelled("Explanation cancelled")

        with tqdm(total=num_samples, disable=not self.show_progress, desc="Coalitions") as pbar:
            if self.n_jobs == 1:
                for done, coalition in enumerate(coalitions, start=1):
                    check_cancelled()
                    accumulate(coalition, self._score_coalition(img, segments, coalition, scorer))
                    self._report(done, num_samples, pbar, progress_callback)
            else:
                with ThreadPoolExecutor(max_workers=self.n_jobs) as executor:
                    futures = {
                        executor.submit(self._score_coalition, img, segments, coalition, scorer): coalition
                        for coalition in coalitions
                    }
                    try:
                        for done, future in enumerate(as_completed(futures), start=1):
                            check_cancelled()
                            accumulate(futures[future], future.result())
                            self._report(done, num_samples, pbar, progress_callback)
                    except BaseException:
                        for future in futures:
                            future.cancel()
                        raise

        required = math.ceil(self.min_success_fraction * num_samples)
        if succeeded == 0 or succeeded < required:
            raise InsufficientSamplesError(succeeded, max(required, 1), num_samples)
        if succeeded < num_samples:
            logger.warning(f"{num_samples - succeeded} of {num_samples} coalition samples failed")

        raw = sums / succeeded
        values, normalized = normalize_contributions(raw, original - baseline, self.epsilon)

        return ContributionEstimate(
            values=values,
            baseline=baseline,
            original=original,
            num_samples=num_samples,
            num_succeeded=succeeded,
            normalized=normalized,
        )

    @staticmethod
    def _report(done, total, pbar, progress_callback):
        pbar.update(1)
        if (done - 1) % 10 == 0:
            logger.debug(f"Processed {done}/{total} coalitions")
        if progress_callback is not None:
            progress_callback(done, total)
