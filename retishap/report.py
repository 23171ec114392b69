from typing import List, NamedTuple, Sequence, Tuple

import numpy as np

from .segmentation import Segment

POSITIVE_LABEL = "Diabetic Retinopathy"
NEGATIVE_LABEL = "Normal"
DECISION_THRESHOLD = 0.5
IMPORTANT_FRACTION = 0.3


class ImportantRegion(NamedTuple):
    segment: Segment
    value: float


def find_important_regions(
    segments: Sequence[Segment],
    values: np.ndarray,
    fraction: float = IMPORTANT_FRACTION,
) -> List[ImportantRegion]:
    """
    Segments whose absolute contribution is at least `fraction` of the
    largest absolute contribution, most important first.
    """
    values = np.asarray(values, dtype=np.float64)
    if len(values) == 0:
        return []
    max_abs = float(np.max(np.abs(values)))
    if max_abs == 0 or not np.isfinite(max_abs):
        return []

    threshold = max_abs * fraction
    regions = [
        ImportantRegion(segment, float(value))
        for segment, value in zip(segments, values)
        if abs(value) >= threshold
    ]
    return sorted(regions, key=lambda region: abs(region.value), reverse=True)


def contribution_sums(values: np.ndarray) -> Tuple[float, float, float]:
    """Total, positive-only and negative-only sums of the contributions."""
    values = np.asarray(values, dtype=np.float64)
    positive = float(values[values > 0].sum())
    negative = float(values[values < 0].sum())
    return positive + negative, positive, negative


def summarize(
    original_prediction: float,
    baseline_prediction: float,
    values: np.ndarray,
    important_regions: Sequence,
    positive_label: str = POSITIVE_LABEL,
    negative_label: str = NEGATIVE_LABEL,
) -> str:
    """Human-readable summary of an explanation."""
    label = positive_label if original_prediction > DECISION_THRESHOLD else negative_label
    total, positive, negative = contribution_sums(values)

    lines = [
        "SHAP Analysis Results:",
        f"Prediction: {label} ({original_prediction * 100:.1f}%)",
        "",
        "SHAP Explanation:",
        f"• Baseline probability: {baseline_prediction * 100:.1f}%",
        f"• Total contribution: {total:.3f}",
        f"• Positive contributions: {positive:.3f}",
        f"• Negative contributions: {negative:.3f}",
        f"• Important regions: {len(important_regions)}",
        "",
        f"Red areas increase {positive_label} probability, blue areas decrease it.",
    ]
    return "\n".join(lines)


def risk_assessment(probability: float) -> str:
    """Screening recommendation for a retinopathy probability."""
    probability = min(1.0, max(0.0, probability))
    percentage = probability * 100
    if probability > 0.7:
        return (
            f"High likelihood of diabetic retinopathy detected ({percentage:.1f}%)\n\n"
            "Recommendation: Consult an ophthalmologist immediately."
        )
    if probability > 0.5:
        return (
            f"Moderate signs detected ({percentage:.1f}%)\n\n"
            "Recommendation: Schedule an eye exam soon."
        )
    if probability > 0.3:
        return (
            f"Mild signs detected ({percentage:.1f}%)\n\n"
            "Recommendation: Monitor and maintain regular checkups."
        )
    return (
        f"No significant signs detected ({percentage:.1f}%)\n\n"
        "Recommendation: Continue regular monitoring."
    )
