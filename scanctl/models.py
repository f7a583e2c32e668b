"""
Data model for scan jobs and per-file analysis results.
"""

import copy
from enum import Enum
from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional
from datetime import datetime, timezone


class Severity(Enum):
    """Issue severity levels, in descending order of weight."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def parse(cls, value: Any) -> Optional["Severity"]:
        """Parse a severity case-insensitively. Unknown values give None."""
        if value is None:
            return None
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


class JobStatus(Enum):
    """Lifecycle states of a scan job."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class FailureKind(Enum):
    """Why a single file did not produce a usable analysis."""
    SKIPPED = "skipped"
    FETCH_FAILED = "fetch_failed"
    QUOTA_EXHAUSTED = "quota_exhausted"
    ANALYSIS_FAILED = "analysis_failed"
    UNPARSEABLE = "unparseable"


@dataclass(frozen=True)
class FileTask:
    """A file discovered in the repository, waiting to be analyzed."""
    path: str
    size_bytes: int
    content_ref: str


@dataclass
class Issue:
    """A single finding reported by the AI service."""
    title: str
    severity: Optional[Severity]
    description: str = ""
    line: Optional[int] = None
    recommendation: str = ""
    file: Optional[str] = None
    raw_severity: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'title': self.title,
            'severity': self.severity.value if self.severity else None,
            'raw_severity': self.raw_severity,
            'description': self.description,
            'line': self.line,
            'recommendation': self.recommendation,
            'file': self.file,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Issue":
        return cls(
            title=data.get('title', ''),
            severity=Severity.parse(data.get('severity')),
            description=data.get('description', ''),
            line=data.get('line'),
            recommendation=data.get('recommendation', ''),
            file=data.get('file'),
            raw_severity=data.get('raw_severity'),
        )


@dataclass
class Metrics:
    """Code quality metrics as described by the AI service."""
    complexity: Optional[str] = None
    maintainability: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'complexity': self.complexity, 'maintainability': self.maintainability}


@dataclass
class AnalysisSummary:
    """Per-file risk summary."""
    risk_score: int = 0
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {'risk_score': self.risk_score, 'message': self.message}


@dataclass
class AnalysisResult:
    """Outcome of analyzing one file. Produced once, never mutated afterwards."""
    file: str
    language: str
    success: bool
    issues: List[Issue] = field(default_factory=list)
    summary: AnalysisSummary = field(default_factory=AnalysisSummary)
    metrics: Metrics = field(default_factory=Metrics)
    best_practices: List[str] = field(default_factory=list)
    error: Optional[str] = None
    failure_kind: Optional[FailureKind] = None
    skipped: bool = False
    used_fallback_parser: bool = False
    raw_response: Optional[str] = None

    def classified_issues(self) -> List[Issue]:
        """Issues whose severity is one of high/medium/low."""
        return [issue for issue in self.issues if issue.severity is not None]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'file': self.file,
            'language': self.language,
            'success': self.success,
            'skipped': self.skipped,
            'issues': [issue.to_dict() for issue in self.issues],
            'summary': self.summary.to_dict(),
            'metrics': self.metrics.to_dict(),
            'best_practices': list(self.best_practices),
            'error': self.error,
            'failure_kind': self.failure_kind.value if self.failure_kind else None,
            'used_fallback_parser': self.used_fallback_parser,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisResult":
        summary = data.get('summary') or {}
        metrics = data.get('metrics') or {}
        failure_kind = data.get('failure_kind')
        return cls(
            file=data['file'],
            language=data.get('language', 'unknown'),
            success=data.get('success', False),
            issues=[Issue.from_dict(i) for i in data.get('issues', [])],
            summary=AnalysisSummary(
                risk_score=summary.get('risk_score', 0),
                message=summary.get('message', ''),
            ),
            metrics=Metrics(
                complexity=metrics.get('complexity'),
                maintainability=metrics.get('maintainability'),
            ),
            best_practices=list(data.get('best_practices', [])),
            error=data.get('error'),
            failure_kind=FailureKind(failure_kind) if failure_kind else None,
            skipped=data.get('skipped', False),
            used_fallback_parser=data.get('used_fallback_parser', False),
        )


@dataclass
class IssueCounts:
    """Number of classified issues per severity."""
    high: int = 0
    medium: int = 0
    low: int = 0

    @property
    def total(self) -> int:
        return self.high + self.medium + self.low

    def add(self, severity: Optional[Severity], count: int = 1) -> None:
        """Count an issue. Unclassified severities are ignored."""
        if severity == Severity.HIGH:
            self.high += count
        elif severity == Severity.MEDIUM:
            self.medium += count
        elif severity == Severity.LOW:
            self.low += count

    def add_issues(self, issues: List[Issue]) -> None:
        for issue in issues:
            self.add(issue.severity)

    def to_dict(self) -> Dict[str, int]:
        return {'high': self.high, 'medium': self.medium, 'low': self.low}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "IssueCounts":
        data = data or {}
        return cls(high=data.get('high', 0), medium=data.get('medium', 0), low=data.get('low', 0))


@dataclass
class ScanSummary:
    """Repository-level report computed once a scan finishes."""
    risk_score: int
    risk_message: str
    issue_counts: IssueCounts
    best_practices: List[str] = field(default_factory=list)
    metrics: Metrics = field(default_factory=Metrics)
    files_analyzed: int = 0
    files_failed: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'risk_score': self.risk_score,
            'risk_message': self.risk_message,
            'issue_counts': self.issue_counts.to_dict(),
            'best_practices': list(self.best_practices),
            'metrics': self.metrics.to_dict(),
            'files_analyzed': self.files_analyzed,
            'files_failed': self.files_failed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScanSummary":
        metrics = data.get('metrics') or {}
        return cls(
            risk_score=data.get('risk_score', 0),
            risk_message=data.get('risk_message', ''),
            issue_counts=IssueCounts.from_dict(data.get('issue_counts')),
            best_practices=list(data.get('best_practices', [])),
            metrics=Metrics(
                complexity=metrics.get('complexity'),
                maintainability=metrics.get('maintainability'),
            ),
            files_analyzed=data.get('files_analyzed', 0),
            files_failed=data.get('files_failed', 0),
        )


@dataclass
class ScanJob:
    """State of one repository scan.

    Written only by the orchestrator that owns it; everyone else works on
    snapshots obtained from the job store.
    """
    id: str
    repository_id: str
    root: str
    user_id: Optional[str] = None
    status: JobStatus = JobStatus.PENDING
    progress_percent: int = 0
    total_files: int = 0
    processed_files: int = 0
    failed_files: int = 0
    issue_counts: IssueCounts = field(default_factory=IssueCounts)
    results: List[AnalysisResult] = field(default_factory=list)
    error: Optional[str] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    summary: Optional[ScanSummary] = None
    cancel_requested: bool = False

    def snapshot(self) -> "ScanJob":
        """Return an independent copy safe to hand to readers."""
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'repository_id': self.repository_id,
            'root': self.root,
            'user_id': self.user_id,
            'status': self.status.value,
            'progress_percent': self.progress_percent,
            'total_files': self.total_files,
            'processed_files': self.processed_files,
            'failed_files': self.failed_files,
            'issue_counts': self.issue_counts.to_dict(),
            'results': [result.to_dict() for result in self.results],
            'error': self.error,
            'started_at': self.started_at.isoformat(),
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
            'summary': self.summary.to_dict() if self.summary else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScanJob":
        return cls(
            id=data['id'],
            repository_id=data['repository_id'],
            root=data.get('root', data['repository_id']),
            user_id=data.get('user_id'),
            status=JobStatus(data.get('status', JobStatus.PENDING.value)),
            progress_percent=data.get('progress_percent', 0),
            total_files=data.get('total_files', 0),
            processed_files=data.get('processed_files', 0),
            failed_files=data.get('failed_files', 0),
            issue_counts=IssueCounts.from_dict(data.get('issue_counts')),
            results=[AnalysisResult.from_dict(r) for r in data.get('results', [])],
            error=data.get('error'),
            started_at=_parse_datetime(data.get('started_at')) or datetime.now(timezone.utc),
            finished_at=_parse_datetime(data.get('finished_at')),
            summary=ScanSummary.from_dict(data['summary']) if data.get('summary') else None,
        )


def _parse_datetime(dt_str: Optional[str]) -> Optional[datetime]:
    """Parse an ISO datetime string, tolerating a trailing Z."""
    if not dt_str:
        return None
    try:
        return datetime.fromisoformat(dt_str.replace('Z', '+00:00'))
    except ValueError:
        return None
