"""Finding extraction from phase 1 results.

Sources are tried in order: structured oracle JSON, ``[HIGH]`` line markers in
free-form oracle text, then placeholder findings sized by the summary's
``high`` count. Extraction never raises.

NOTE: the ``[HIGH]`` marker grammar belongs to the upstream reviewer output and
is not under our control and may drift. Lines may carry a list bullet before
the tag; anything else falls through to placeholders.
"""

from __future__ import annotations

import json
import logging
import re

from pydantic import ValidationError

from party_review.models import (
    Finding,
    FindingCategory,
    FindingCounts,
    FindingSeverity,
    ParseResult,
    Phase1Result,
)

logger = logging.getLogger(__name__)

_CATEGORY_ORDER: tuple[FindingCategory, ...] = (
    FindingCategory.SECURITY,
    FindingCategory.LOGIC,
    FindingCategory.BEST_PRACTICES,
    FindingCategory.PERFORMANCE,
)

_SEVERITY_ORDER: dict[FindingSeverity, int] = {
    FindingSeverity.HIGH: 0,
    FindingSeverity.MEDIUM: 1,
    FindingSeverity.LOW: 2,
}

# Checked in order; first bucket with a matching keyword wins
_CATEGORY_KEYWORDS: list[tuple[FindingCategory, tuple[str, ...]]] = [
    (FindingCategory.SECURITY, ("security", "auth", "pii")),
    (FindingCategory.PERFORMANCE, ("performance", "query", "cache")),
    (FindingCategory.BEST_PRACTICES, ("test", "pattern", "practice")),
]

_HIGH_MARKER_RE = re.compile(r"^\s*(?:[-*]\s*)?\[HIGH\]\s*(?P<title>.+?)\s*$", re.IGNORECASE | re.MULTILINE)
_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def infer_category(title: str) -> FindingCategory:
    """Guess a category from keywords in a finding title."""
    lower = title.lower()
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(keyword in lower for keyword in keywords):
            return category
    return FindingCategory.LOGIC


def parse_oracle_response(text: str | None) -> ParseResult[dict]:
    """Pull the structured oracle JSON object out of possibly noisy text."""
    if not text or not isinstance(text, str):
        return ParseResult.failure("No response provided")
    match = _JSON_OBJECT_RE.search(text)
    if not match:
        return ParseResult.failure("No JSON found in oracle response")
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError:
        return ParseResult.failure("Failed to parse oracle response as JSON")
    if not isinstance(parsed, dict) or not parsed.get("summary"):
        return ParseResult.failure("No summary in oracle response")
    return ParseResult.success(parsed)


def _findings_from_buckets(buckets: object) -> list[Finding]:
    if not isinstance(buckets, dict):
        return []
    findings: list[Finding] = []
    for category in _CATEGORY_ORDER:
        for raw in buckets.get(category.value) or []:
            if not isinstance(raw, dict):
                continue
            try:
                findings.append(Finding.model_validate({"id": "", **raw, "category": category}))
            except ValidationError as exc:
                logger.debug("Skipping malformed %s finding: %s", category.value, exc)
    return findings


def extract_all_findings(parsed: dict) -> list[Finding]:
    """Flatten top-level and per-story oracle findings, tagging each with its bucket."""
    findings = _findings_from_buckets(parsed.get("findings"))
    for story in parsed.get("storyFindings") or []:
        if isinstance(story, dict):
            findings.extend(_findings_from_buckets(story.get("findings")))
    return findings


def count_findings(parsed: dict) -> FindingCounts:
    """Build finding counts from an oracle response summary plus its buckets."""
    summary = parsed.get("summary") or {}
    by_category = {category.value: 0 for category in _CATEGORY_ORDER}
    for finding in extract_all_findings(parsed):
        by_category[finding.category.value] += 1
    return FindingCounts(
        total=summary.get("totalIssues", 0),
        high=summary.get("highSeverity", 0),
        medium=summary.get("mediumSeverity", 0),
        low=summary.get("lowSeverity", 0),
        by_category=by_category,
    )


def sort_findings_by_severity(findings: list[Finding]) -> list[Finding]:
    return sorted(findings, key=lambda f: _SEVERITY_ORDER[f.severity])


def parse_high_markers(text: str | None) -> ParseResult[list[Finding]]:
    """Parse ``[HIGH] <title>`` lines from free-form analysis text."""
    if not text:
        return ParseResult.failure("No analysis text")
    titles = [m.group("title") for m in _HIGH_MARKER_RE.finditer(text)]
    if not titles:
        return ParseResult.failure("No [HIGH] markers found")
    return ParseResult.success([
        Finding(id=f"high-{i}", title=title, category=infer_category(title))
        for i, title in enumerate(titles, start=1)
    ])


def placeholder_findings(count: int) -> list[Finding]:
    return [
        Finding(id=f"high-{i}", title=f"High severity finding {i}", category=FindingCategory.LOGIC)
        for i in range(1, count + 1)
    ]


def extract_high_severity_findings(phase1: Phase1Result) -> list[Finding]:
    """Return the high-severity findings to put on the discussion agenda."""
    high_count = phase1.findings.high

    oracle = parse_oracle_response(phase1.oracle_analysis)
    if oracle.ok:
        high = [f for f in extract_all_findings(oracle.value) if f.severity == FindingSeverity.HIGH]
        if high:
            return [
                f if f.id else f.model_copy(update={"id": f"high-{i}"})
                for i, f in enumerate(high, start=1)
            ]

    markers = parse_high_markers(phase1.oracle_analysis)
    if markers.ok:
        return markers.value

    if high_count > 0:
        if phase1.oracle_analysis:
            logger.warning(
                "Could not parse high findings for %s (%s); using %d placeholder(s)",
                phase1.identifier, markers.error, high_count,
            )
        return placeholder_findings(high_count)
    return []
