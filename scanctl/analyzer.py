"""
Per-file analysis through the AI service.

``FileAnalyzer.analyze`` never raises for a per-file problem. Every outcome,
including fetch failures, oversized files, quota exhaustion and unparseable
responses, comes back as an AnalysisResult with ``failure_kind`` set.
"""

import logging
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional

from .collaborators import AnalysisService, ContentStore
from .config import DEFAULT_MAX_FILE_SIZE
from .errors import is_quota_error
from .logging_config import get_logger
from .models import (
    AnalysisResult, AnalysisSummary, FailureKind, FileTask, Issue, Metrics, Severity
)
from .response_parser import RawAnalysis, parse_response
from .retry import RetryExecutor

logger = logging.getLogger(__name__)

UNKNOWN_LANGUAGE = "unknown"

LANGUAGE_BY_SUFFIX = {
    '.js': 'javascript',
    '.jsx': 'javascript',
    '.mjs': 'javascript',
    '.cjs': 'javascript',
    '.ts': 'typescript',
    '.tsx': 'typescript',
    '.py': 'python',
    '.java': 'java',
    '.cs': 'csharp',
    '.php': 'php',
    '.go': 'go',
    '.rb': 'ruby',
    '.rs': 'rust',
    '.swift': 'swift',
    '.cpp': 'cpp',
    '.cc': 'cpp',
    '.hpp': 'cpp',
    '.c': 'c',
    '.h': 'c',
    '.kt': 'kotlin',
    '.scala': 'scala',
    '.sh': 'shell',
    '.sql': 'sql',
}

DEFAULT_ANALYSIS_TYPES = ['security', 'quality']

PROMPT_TEMPLATE = """You are an expert code analyzer. Analyze the following {language} code for {analysis_types} issues:

```{language}
{content}
```

Provide your analysis in the following JSON format (and only JSON, no other text):
{{
  "summary": {{
    "riskScore": number between 0-100,
    "message": "brief summary of the risk level"
  }},
  "issues": [
    {{
      "title": "issue title",
      "severity": "High|Medium|Low",
      "description": "detailed description",
      "line": line number,
      "recommendation": "suggested fix"
    }}
  ],
  "metrics": {{
    "complexity": "score and description",
    "maintainability": "score and description"
  }},
  "bestPractices": [
    "suggestion 1",
    "suggestion 2",
    "suggestion 3",
    "suggestion 4",
    "suggestion 5"
  ]
}}
"""


def detect_language(path: str) -> str:
    """Map a file path to a language name by suffix."""
    return LANGUAGE_BY_SUFFIX.get(PurePosixPath(path).suffix.lower(), UNKNOWN_LANGUAGE)


def build_prompt(content: str, language: str, analysis_types: Optional[List[str]] = None) -> str:
    """Prompt asking the model for a JSON-only analysis of one file."""
    types = analysis_types or DEFAULT_ANALYSIS_TYPES
    return PROMPT_TEMPLATE.format(
        language=language,
        analysis_types=", ".join(types),
        content=content,
    )


def clamp_risk_score(value: Any) -> int:
    try:
        score = int(float(value))
    except (TypeError, ValueError):
        return 0
    return max(0, min(100, score))


def _optional_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def issues_from_payload(raw_issues: Any, file_path: str) -> List[Issue]:
    """Build Issue objects, normalizing severities and attaching the file path."""
    if not isinstance(raw_issues, list):
        return []

    issues = []
    for raw in raw_issues:
        if not isinstance(raw, dict):
            continue
        raw_severity = raw.get('severity')
        severity = Severity.parse(raw_severity)
        if severity is None:
            logger.debug(f"Unclassified severity {raw_severity!r} in {file_path}")
        issues.append(Issue(
            title=_text(raw.get('title')),
            severity=severity,
            raw_severity=None if raw_severity is None else str(raw_severity),
            description=_text(raw.get('description')),
            line=_optional_int(raw.get('line')),
            recommendation=_text(raw.get('recommendation')),
            file=file_path,
        ))
    return issues


def result_from_payload(payload: Dict[str, Any], task: FileTask, language: str,
                        used_fallback: bool = False) -> AnalysisResult:
    summary = payload.get('summary')
    if not isinstance(summary, dict):
        summary = {}
    metrics = payload.get('metrics')
    if not isinstance(metrics, dict):
        metrics = {}
    practices = payload.get('bestPractices')
    if not isinstance(practices, list):
        practices = []

    return AnalysisResult(
        file=task.path,
        language=language,
        success=True,
        issues=issues_from_payload(payload.get('issues'), task.path),
        summary=AnalysisSummary(
            risk_score=clamp_risk_score(summary.get('riskScore')),
            message=_text(summary.get('message')),
        ),
        metrics=Metrics(
            complexity=None if metrics.get('complexity') is None else str(metrics['complexity']),
            maintainability=None if metrics.get('maintainability') is None
            else str(metrics['maintainability']),
        ),
        best_practices=[p for p in practices if isinstance(p, str) and p.strip()],
        used_fallback_parser=used_fallback,
    )


class FileAnalyzer:
    """Fetches a file, sends it to the AI service and interprets the answer."""

    def __init__(self, content_store: ContentStore, service: AnalysisService,
                 retry_executor: RetryExecutor,
                 max_file_size: int = DEFAULT_MAX_FILE_SIZE,
                 analysis_types: Optional[List[str]] = None):
        self.content_store = content_store
        self.service = service
        self.retry_executor = retry_executor
        self.max_file_size = max_file_size
        self.analysis_types = list(analysis_types or DEFAULT_ANALYSIS_TYPES)
        self.log = get_logger("analyzer")

    def _failure(self, task: FileTask, language: str, kind: FailureKind, error: str,
                 raw_response: Optional[str] = None) -> AnalysisResult:
        self.log.warning("File analysis failed",
                         file=task.path,
                         failure_kind=kind.value,
                         error=error)
        return AnalysisResult(
            file=task.path,
            language=language,
            success=False,
            error=error,
            failure_kind=kind,
            skipped=kind == FailureKind.SKIPPED,
            raw_response=raw_response,
        )

    async def analyze(self, task: FileTask) -> AnalysisResult:
        """Analyze one file. Never raises for per-file failures."""
        language = detect_language(task.path)

        try:
            content = await self.content_store.get_content(task.content_ref)
        except Exception as e:
            return self._failure(task, language, FailureKind.FETCH_FAILED,
                                 f"Failed to fetch content: {e}")

        if not content:
            return self._failure(task, language, FailureKind.SKIPPED, "File is empty")
        if len(content) > self.max_file_size:
            return self._failure(task, language, FailureKind.SKIPPED,
                                 f"File too large ({len(content)} bytes, limit {self.max_file_size})")

        prompt = build_prompt(content.decode('utf-8', errors='replace'), language, self.analysis_types)

        async def submit_prompt():
            return await self.service.submit(prompt)

        try:
            response = await self.retry_executor.execute(submit_prompt)
        except Exception as e:
            kind = FailureKind.QUOTA_EXHAUSTED if is_quota_error(e) else FailureKind.ANALYSIS_FAILED
            return self._failure(task, language, kind, str(e) or type(e).__name__)

        parsed = parse_response(response)
        if isinstance(parsed, RawAnalysis):
            return self._failure(task, language, FailureKind.UNPARSEABLE,
                                 "Could not parse analysis response: " + "; ".join(parsed.errors),
                                 raw_response=parsed.raw_text)

        result = result_from_payload(parsed.payload, task, language, parsed.used_fallback)
        self.log.verbose("File analyzed",
                         file=task.path,
                         language=language,
                         issues=len(result.issues),
                         risk_score=result.summary.risk_score,
                         used_fallback_parser=result.used_fallback_parser)
        return result
