"""Aggregate run results into frequency tables and chart-ready entries."""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Sequence

from manyshot.models import ChartEntry, RunResult

CHART_PALETTE: Sequence[str] = (
    "#2563eb",
    "#dc2626",
    "#16a34a",
    "#d97706",
    "#7c3aed",
    "#0891b2",
    "#db2777",
    "#4b5563",
)


def compute_frequency(results: Iterable[RunResult]) -> Dict[str, int]:
    """Count predictions per answer option, in order of first appearance."""

    frequency: Dict[str, int] = {}
    for result in results:
        answer = result.prediction.prediction
        frequency[answer] = frequency.get(answer, 0) + 1
    return frequency


def percentages_from_frequency(frequency: Mapping[str, int]) -> Dict[str, float]:
    total = sum(frequency.values())
    if total == 0:
        return {}
    return {option: round(count * 100 / total, 2) for option, count in frequency.items()}


def compute_percentages(results: Iterable[RunResult]) -> Dict[str, float]:
    return percentages_from_frequency(compute_frequency(results))


def build_chart_data(frequency: Mapping[str, int]) -> List[ChartEntry]:
    """Turn a frequency table into display entries with stable colours.

    Colours are assigned by order of first appearance, so an option keeps
    its colour while a run progresses.
    """

    percentages = percentages_from_frequency(frequency)
    return [
        ChartEntry(
            option=option,
            count=count,
            percentage=percentages.get(option, 0.0),
            color_index=index,
            color=CHART_PALETTE[index % len(CHART_PALETTE)],
        )
        for index, (option, count) in enumerate(frequency.items())
    ]


__all__ = [
    "CHART_PALETTE",
    "build_chart_data",
    "compute_frequency",
    "compute_percentages",
    "percentages_from_frequency",
]
