from .exceptions import (
    BaselinePredictionError,
    ExplanationCancelled,
    ExplanationError,
    InsufficientSamplesError,
    InvalidImageError,
    ScoringError,
    ScoringUnavailableError,
)
from .scoring import CallableScorer, ModelScorer, Scorer, as_scorer
from .segmentation import Segment, grid_segments, segment_image
from .coalitions import CoalitionSampler, build_coalition_image
from .estimator import ContributionEstimate, ContributionEstimator, normalize_contributions
from .visualization import render_overlay, create_heat_mask, plot_explanation
from .report import find_important_regions, risk_assessment, summarize
from .explainer import ExplanationResult, SHAPImageExplainer
