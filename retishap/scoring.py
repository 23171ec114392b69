import math
import logging
from typing import Any, Callable, Optional

import numpy as np

from .exceptions import ScoringError, ScoringUnavailableError

logger = logging.getLogger(__name__)


class Scorer:
    """
    Adapter around an opaque classifier returning a probability in [0, 1].

    Subclasses implement `_raw_score`; `__call__` validates its output and
    clamps it to [0, 1]. Any failure of the wrapped model, or output that is
    missing, empty or not finite, is reported as a ScoringError.
    """

    def _raw_score(self, img: np.ndarray) -> Any:
        raise NotImplementedError

    def __call__(self, img: np.ndarray) -> float:
        try:
            raw = self._raw_score(img)
        except ScoringError:
            raise
        except Exception as exc:
            raise ScoringError(f"Scoring function failed: {exc}") from exc

        if raw is None:
            raise ScoringError("Scoring function returned no value")

        try:
            values = np.asarray(raw, dtype=np.float64).ravel()
        except (TypeError, ValueError) as exc:
            raise ScoringError(f"Scoring function returned a non-numeric result: {raw!r}") from exc
        if values.size == 0:
            raise ScoringError("Scoring function returned an empty result")

        value = float(values[0])
        if not math.isfinite(value):
            raise ScoringError(f"Scoring function returned a non-finite value: {value}")
        if not 0.0 <= value <= 1.0:
            logger.debug(f"Clamping score {value} to [0, 1]")
        return min(1.0, max(0.0, value))


class CallableScorer(Scorer):
    """Wraps a plain function `fn(image) -> probability`."""

    def __init__(self, fn: Callable[[np.ndarray], Any]):
        self.fn = fn

    def _raw_score(self, img):
        return self.fn(img)


class ModelScorer(Scorer):
    """
    Wraps a model exposing `predict(batch)`, e.g. a Keras or scikit-learn
    style estimator.

    Args:
        model: Object with a `predict` method accepting a (1, H, W, 3) batch.
        output_index (int): Position of the probability in the flattened
            prediction.
        preprocess (Callable | None): Optional transform applied to the
            (H, W, 3) float image before batching.
    """

    def __init__(self, model, output_index: int = 0, preprocess: Optional[Callable] = None):
        self.model = model
        self.output_index = output_index
        self.preprocess = preprocess

    def _raw_score(self, img):
        x = self.preprocess(img) if self.preprocess is not None else img
        preds = np.asarray(self.model.predict(x[np.newaxis, ...])).ravel()
        if preds.size <= self.output_index:
            raise ScoringError(
                f"Prediction has {preds.size} outputs, expected index {self.output_index}"
            )
        return preds[self.output_index]


def as_scorer(model) -> Scorer:
    """
    Build a Scorer from a Scorer, a model with `predict`, or a callable.

    Raises:
        ScoringUnavailableError: If model is None or of an unusable type.
    """
    if model is None:
        raise ScoringUnavailableError("Model not available")
    if isinstance(model, Scorer):
        return model
    if hasattr(model, "predict"):
        return ModelScorer(model)
    if callable(model):
        return CallableScorer(model)
    raise ScoringUnavailableError(f"Unsupported scoring function type: {type(model)}")
