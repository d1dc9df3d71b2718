"""
Accessibility scoring.

This is the only place the score is computed. The worker path and the
externally reported results path both call it, so stored scores stay
comparable no matter which process produced the findings.
"""
import math
from typing import Any, Iterable, Mapping, Optional, Sequence

IMPACT_WEIGHTS = {
    "critical": 4,
    "serious": 3,
    "moderate": 2,
    "minor": 1,
}
DEFAULT_WEIGHT = 1
MAX_WEIGHT = max(IMPACT_WEIGHTS.values())


def _field(finding: Any, name: str) -> Any:
    if isinstance(finding, Mapping):
        return finding.get(name)
    return getattr(finding, name, None)


def impact_weight(impact: Optional[str]) -> int:
    return IMPACT_WEIGHTS.get(impact, DEFAULT_WEIGHT)


def violation_penalty(violation: Any) -> int:
    """weight(impact) x affected nodes, counting a violation with no nodes once."""
    nodes = _field(violation, "nodes") or []
    return impact_weight(_field(violation, "impact")) * max(1, len(nodes))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_accessibility_score(
    violations: Optional[Sequence[Any]],
    passes: Optional[Sequence[Any]],
) -> int:
    """
    Score a page from 0 to 100.

    Missing inputs mean the page could not be scored and give 0. A page with
    no checks at all passes vacuously with 100. Otherwise the weighted penalty
    is measured against the worst case where every check is a critical
    violation.
    """
    if violations is None or passes is None:
        return 0

    total_checks = len(violations) + len(passes)
    if total_checks == 0:
        return 100

    penalty = sum(violation_penalty(v) for v in violations)
    max_penalty = total_checks * MAX_WEIGHT

    score = round_half_up(100 - (penalty / max_penalty) * 100)
    return max(0, min(100, score))


def average_score(scores: Iterable[Optional[int]]) -> int:
    values = [s or 0 for s in scores]
    if not values:
        return 0
    return round_half_up(sum(values) / len(values))
