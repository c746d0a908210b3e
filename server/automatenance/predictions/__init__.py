"""Pure prediction logic: features, baseline, suggestion decoding, reconciliation."""

from .baseline import baseline_predict, nice_title
from .features import FeatureSet, build_features, compute_inputs_hash
from .reconciler import choose_suggestions, compute_urgency, reconcile
from .suggestions import ParseResult, Suggestion, parse_suggestions

__all__ = [
    "FeatureSet",
    "build_features",
    "compute_inputs_hash",
    "baseline_predict",
    "nice_title",
    "Suggestion",
    "ParseResult",
    "parse_suggestions",
    "choose_suggestions",
    "compute_urgency",
    "reconcile",
]
