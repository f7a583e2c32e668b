"""
Defensive parsing of AI service responses.

The model is asked for bare JSON but routinely wraps it in Markdown fences,
adds chatter around it, or emits slightly broken JSON. ``parse_response``
recovers what it can and returns either a ParsedAnalysis or a RawAnalysis
carrying the unparseable text.
"""

import re
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

# Top-level keys of the analysis schema
SCHEMA_KEYS = ('summary', 'issues', 'metrics', 'bestPractices')

FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)
TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
CONTROL_CHAR_RE = re.compile(r"[\x00-\x1f]")
ESCAPE_PAIR_RE = re.compile(r'\\(.)', re.DOTALL)
VALID_ESCAPES = '"\\/bfnrtu'

RISK_SCORE_RE = re.compile(r'riskScore"?\s*:\s*(\d+)')
MESSAGE_RE = re.compile(r'message"?\s*:\s*"([^"]+)"')
ISSUE_RE = re.compile(
    r'"title"?\s*:\s*"([^"]+)"[^}]*'
    r'"severity"?\s*:\s*"([^"]+)"[^}]*'
    r'"description"?\s*:\s*"([^"]+)"[^}]*'
    r'"line"?\s*:\s*(\d+)[^}]*'
    r'"recommendation"?\s*:\s*"([^"]+)"'
)
QUOTED_RE = re.compile(r'"([^"]+)"')
COMPLEXITY_RE = re.compile(r'complexity"?\s*:\s*"([^"]+)"')
MAINTAINABILITY_RE = re.compile(r'maintainability"?\s*:\s*"([^"]+)"')

MAX_FALLBACK_PRACTICES = 5


@dataclass
class ParsedAnalysis:
    """Structured payload recovered from a response, in the schema's own keys."""
    payload: Dict[str, Any]
    used_fallback: bool = False


@dataclass
class RawAnalysis:
    """A response nothing could be recovered from."""
    raw_text: str
    errors: List[str] = field(default_factory=list)


ParseResult = Union[ParsedAnalysis, RawAnalysis]


def strip_code_fences(text: str) -> str:
    """Return the body of the first fenced block, or the text unchanged."""
    match = FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def bound_json_object(text: str) -> Optional[str]:
    """Cut the text down to the span between the first '{' and the last '}'."""
    start = text.find('{')
    end = text.rfind('}')
    if start == -1 or end <= start:
        return None
    return text[start:end + 1]


def _escape_backslash(match: re.Match) -> str:
    # Pairs are consumed left to right, so an escaped backslash is never split
    if match.group(1) in VALID_ESCAPES:
        return match.group(0)
    return '\\\\' + match.group(1)


def repair_json(text: str) -> str:
    """Fix the defects models commonly produce."""
    text = CONTROL_CHAR_RE.sub(' ', text)
    text = ESCAPE_PAIR_RE.sub(_escape_backslash, text)
    text = TRAILING_COMMA_RE.sub(r'\1', text)
    return text


def balanced_candidates(text: str) -> List[str]:
    """Every balanced ``{...}`` span in the text, longest first."""
    candidates = []
    starts = []
    for i, char in enumerate(text):
        if char == '{':
            starts.append(i)
        elif char == '}' and starts:
            start = starts.pop()
            candidates.append(text[start:i + 1])
    candidates.sort(key=len, reverse=True)
    return candidates


def _loads_object(text: str) -> Optional[Dict[str, Any]]:
    """json.loads, then json.loads after repair. Only dicts count."""
    for attempt in (text, repair_json(text)):
        try:
            value = json.loads(attempt)
        except ValueError:
            continue
        if isinstance(value, dict):
            return value
    return None


def _has_schema_key(payload: Dict[str, Any]) -> bool:
    return any(key in payload for key in SCHEMA_KEYS)


def extract_fields(text: str) -> Dict[str, Any]:
    """Regex extraction of whatever analysis fields appear in the text.

    Only fields actually found are returned; nothing is filled in with defaults.
    """
    payload: Dict[str, Any] = {}
    summary: Dict[str, Any] = {}

    match = RISK_SCORE_RE.search(text)
    if match:
        summary['riskScore'] = int(match.group(1))
    match = MESSAGE_RE.search(text)
    if match:
        summary['message'] = match.group(1)
    if summary:
        payload['summary'] = summary

    issues = []
    for title, severity, description, line, recommendation in ISSUE_RE.findall(text):
        issues.append({
            'title': title,
            'severity': severity,
            'description': description,
            'line': int(line),
            'recommendation': recommendation,
        })
    if issues:
        payload['issues'] = issues

    index = text.find('bestPractices')
    start = text.find('[', index) if index != -1 else -1
    if start != -1:
        end = text.find(']', start)
        section = text[start + 1:end] if end != -1 else text[start + 1:]
        practices = []
        for value in QUOTED_RE.findall(section):
            if len(value) > 10 and ':' not in value:
                practices.append(value)
            if len(practices) >= MAX_FALLBACK_PRACTICES:
                break
        if practices:
            payload['bestPractices'] = practices

    metrics = {}
    match = COMPLEXITY_RE.search(text)
    if match:
        metrics['complexity'] = match.group(1)
    match = MAINTAINABILITY_RE.search(text)
    if match:
        metrics['maintainability'] = match.group(1)
    if metrics:
        payload['metrics'] = metrics

    return payload


def parse_response(text: Optional[str]) -> ParseResult:
    """Recover an analysis payload from the model's text response.

    Steps, stopping at the first that yields a schema-shaped object:
    fences stripped and first/last brace bounded (as-is, then repaired);
    every balanced ``{...}`` candidate; regex field extraction.
    """
    if not text or not text.strip():
        return RawAnalysis(raw_text=text or "", errors=["empty response"])

    errors = []
    body = strip_code_fences(text)
    bounded = bound_json_object(body)

    if bounded is not None:
        payload = _loads_object(bounded)
        if payload is not None:
            return ParsedAnalysis(payload=payload)
        errors.append("bounded payload is not valid JSON")

    for candidate in balanced_candidates(text):
        payload = _loads_object(candidate)
        if payload is not None and _has_schema_key(payload):
            logger.debug("Recovered analysis from a balanced JSON candidate")
            return ParsedAnalysis(payload=payload)
    errors.append("no balanced JSON candidate matched the schema")

    payload = extract_fields(text)
    if payload:
        logger.debug(f"Recovered analysis fields by regex: {sorted(payload)}")
        return ParsedAnalysis(payload=payload, used_fallback=True)

    errors.append("no analysis fields found")
    return RawAnalysis(raw_text=text, errors=errors)
