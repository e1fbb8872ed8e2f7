"""Repeated sampling of a prediction backend and aggregation of its answers."""

from .aggregation import build_chart_data, compute_frequency, compute_percentages
from .registry import RunRegistry
from .runner import RunInProgressError, SamplingRunner

__all__ = [
    "RunInProgressError",
    "RunRegistry",
    "SamplingRunner",
    "build_chart_data",
    "compute_frequency",
    "compute_percentages",
]
