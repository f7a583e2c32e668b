"""
Pure functions turning per-file analysis results into a repository report.

Nothing in this module depends on the order of ``results``.
"""

from typing import Iterable, List, Optional

from .models import AnalysisResult, IssueCounts, Metrics, ScanSummary

HIGH_WEIGHT = 25
MEDIUM_WEIGHT = 15
LOW_WEIGHT = 5

HIGH_RISK_THRESHOLD = 70
MEDIUM_RISK_THRESHOLD = 40

DEFAULT_BEST_PRACTICES_LIMIT = 5

# Words that mark a metric description as a concern
CONCERN_MARKERS = ('high', 'refactor', 'concerns', 'large')

METRIC_WIDESPREAD = "Significant issues found in multiple files - comprehensive refactoring recommended"
METRIC_SOME = "Some files need improvement - targeted refactoring recommended"
METRIC_GOOD = "Good metrics across analyzed files"


def count_issues_by_severity(results: Iterable[AnalysisResult]) -> IssueCounts:
    """Sum classified issues over all results. Unclassified severities are not counted."""
    counts = IssueCounts()
    for result in results:
        counts.add_issues(result.issues)
    return counts


def risk_score(high: int, medium: int, low: int, file_count: int) -> int:
    """Weighted issue density, capped at 100."""
    weighted = high * HIGH_WEIGHT + medium * MEDIUM_WEIGHT + low * LOW_WEIGHT
    return min(100, weighted // max(1, file_count))


def risk_message(score: int) -> str:
    if score > HIGH_RISK_THRESHOLD:
        return "high risk"
    if score > MEDIUM_RISK_THRESHOLD:
        return "medium risk"
    return "low risk"


def best_practices(results: Iterable[AnalysisResult],
                   limit: int = DEFAULT_BEST_PRACTICES_LIMIT) -> List[str]:
    """Deduplicated best practices in first-seen order, truncated to ``limit``."""
    seen = set()
    practices = []
    for result in results:
        for practice in result.best_practices:
            if practice in seen:
                continue
            seen.add(practice)
            practices.append(practice)
            if len(practices) >= limit:
                return practices
    return practices


def aggregate_metric(results: Iterable[AnalysisResult], name: str) -> Optional[str]:
    """Summarize one metric across files.

    A metric is concerning when its description mentions any CONCERN_MARKERS.
    Returns None when no file reported the metric at all.
    """
    values = []
    for result in results:
        value = getattr(result.metrics, name, None)
        if value:
            values.append(str(value).lower())
    if not values:
        return None

    concerning = sum(1 for value in values if any(m in value for m in CONCERN_MARKERS))
    if concerning > len(values) // 2:
        return METRIC_WIDESPREAD
    if concerning > 0:
        return METRIC_SOME
    return METRIC_GOOD


def summarize(results: List[AnalysisResult]) -> ScanSummary:
    """Build the repository report. The score is normalized by successfully analyzed files."""
    analyzed = [r for r in results if r.success]
    counts = count_issues_by_severity(results)
    score = risk_score(counts.high, counts.medium, counts.low, len(analyzed))
    return ScanSummary(
        risk_score=score,
        risk_message=risk_message(score),
        issue_counts=counts,
        best_practices=best_practices(analyzed),
        metrics=Metrics(
            complexity=aggregate_metric(analyzed, 'complexity'),
            maintainability=aggregate_metric(analyzed, 'maintainability'),
        ),
        files_analyzed=len(analyzed),
        files_failed=len(results) - len(analyzed),
    )
