# aggregator.py
"""
Collapses per-resource rule results into one verdict per criterion.
"""

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

import structlog
from jsonschema import Draft202012Validator, ValidationError

from vpat_scorer.config import DEFAULTS
from vpat_scorer.errors import ConfigError
from vpat_scorer.models import CriterionVerdict, NodeDetail, RuleMappingEntry, RuleResult, ScanResult
from vpat_scorer.utils import dedupe, numeric_sort_key

logger = structlog.get_logger(__name__)

CRITERION_TAG_RE = re.compile(r"^wcag(\d)(\d)(\d+)$")


def decode_criterion_tag(tag: Any) -> Optional[str]:
    """'wcag111' -> '1.1.1', 'wcag1411' -> '1.4.11'; None for level/category tags."""
    if not isinstance(tag, str):
        return None
    m = CRITERION_TAG_RE.match(tag)
    if not m:
        return None
    return f"{m.group(1)}.{m.group(2)}.{m.group(3)}"


def criteria_of(result: RuleResult) -> List[str]:
    return dedupe([c for c in (decode_criterion_tag(t) for t in (result.tags or [])) if c])


@dataclass
class _Accumulator:
    violations: Dict[str, List[str]] = field(default_factory=dict)   # resource -> descriptions
    passes: Set[str] = field(default_factory=set)
    incomplete: Set[str] = field(default_factory=set)
    issues: List[str] = field(default_factory=list)


def aggregate_results(scan_results: List[ScanResult], max_top_issues: Optional[int] = None) -> Dict[str, CriterionVerdict]:
    """
    Aggregate scan results across all resources into per-criterion verdicts.

    A criterion fails if any resource has a violation for it, is incomplete
    if none fail but any is incomplete, and passes otherwise. Keys are in
    first-seen order.
    """
    if max_top_issues is None:
        max_top_issues = DEFAULTS.scoring.max_top_issues
    acc: Dict[str, _Accumulator] = {}

    for result in scan_results:
        for v in result.violations:
            for criterion in criteria_of(v):
                entry = acc.setdefault(criterion, _Accumulator())
                entry.violations.setdefault(result.resource_id, []).append(v.description)
                entry.issues.append(v.description)
        for p in result.passes:
            for criterion in criteria_of(p):
                acc.setdefault(criterion, _Accumulator()).passes.add(result.resource_id)
        for inc in result.incomplete:
            for criterion in criteria_of(inc):
                acc.setdefault(criterion, _Accumulator()).incomplete.add(result.resource_id)

    verdicts: Dict[str, CriterionVerdict] = {}
    for criterion, data in acc.items():
        if data.violations:
            status = "fail"
        elif data.incomplete:
            status = "incomplete"
        else:
            status = "pass"
        verdicts[criterion] = CriterionVerdict(
            criterion=criterion,
            status=status,
            total_violations=sum(len(d) for d in data.violations.values()),
            resources_with_violations=len(data.violations),
            total_resources=len(scan_results),
            top_issues=tuple(dedupe([i for i in data.issues if i])[:max_top_issues]),
            affected_resources=tuple(data.violations.keys()),
        )

    logger.debug("verdicts_aggregated", resources=len(scan_results), criteria=len(verdicts))
    return verdicts


def rule_mapping_from_scans(scan_results: List[ScanResult]) -> List[RuleMappingEntry]:
    """Derive rule -> criteria entries from the tags seen in scan results, sorted by rule id."""
    seen: Dict[str, RuleMappingEntry] = {}
    for result in scan_results:
        for finding in result.violations + result.passes + result.incomplete:
            criteria = criteria_of(finding)
            if not criteria:
                continue
            prior = seen.get(finding.rule_id)
            if prior:
                merged = dedupe(list(prior.criteria) + criteria)
                tags = dedupe(list(prior.tags) + list(finding.tags))
                seen[finding.rule_id] = RuleMappingEntry(prior.rule_id, prior.description, tuple(merged), tuple(tags))
            else:
                seen[finding.rule_id] = RuleMappingEntry(
                    finding.rule_id, finding.description, tuple(criteria), tuple(finding.tags)
                )
    return [seen[k] for k in sorted(seen)]


def sorted_criteria(verdicts: Dict[str, CriterionVerdict]) -> List[CriterionVerdict]:
    return [verdicts[k] for k in sorted(verdicts, key=numeric_sort_key)]


# ==========================
# Loading scan results
# ==========================

_FINDING = {
    "type": "object",
    "required": ["ruleId"],
    "properties": {
        "ruleId": {"type": "string"},
        "description": {"type": ["string", "null"]},
        "impact": {"type": ["string", "null"]},
    },
}

SCAN_RESULTS_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "array",
    "items": {
        "type": "object",
        "anyOf": [{"required": ["url"]}, {"required": ["resourceId"]}],
        "properties": {
            "url": {"type": "string"},
            "resourceId": {"type": "string"},
            "violations": {"type": "array", "items": _FINDING},
            "passes": {"type": "array", "items": _FINDING},
            "incomplete": {"type": "array", "items": _FINDING},
        },
    },
}


def _finding_from_dict(data: Dict[str, Any]) -> RuleResult:
    tags = data.get("tags")
    if tags is None:
        tags = data.get("wcagTags")
    if not isinstance(tags, list):
        # malformed tags only cost the finding its criteria
        tags = []
    details = data.get("nodeDetails") or []
    nodes = data.get("nodes")
    if isinstance(nodes, list):
        # raw engine output carries node objects rather than a count
        details = details or nodes
        nodes = len(nodes)
    return RuleResult(
        rule_id=data["ruleId"],
        description=data.get("description") or "",
        impact=data.get("impact"),
        tags=[t for t in tags if isinstance(t, str)],
        nodes=int(nodes or 0),
        help=data.get("help") or "",
        help_url=data.get("helpUrl") or "",
        node_details=[
            NodeDetail(
                target=[str(t) for t in (d.get("target") or [])],
                html=d.get("html") or "",
                failure_summary=d.get("failureSummary") or "",
            )
            for d in details if isinstance(d, dict)
        ],
    )


def scan_result_from_dict(data: Dict[str, Any]) -> ScanResult:
    details = {d.get("ruleId"): d for d in data.get("violationDetails") or [] if isinstance(d, dict)}
    violations = []
    for v in data.get("violations") or []:
        merged = dict(details.get(v["ruleId"], {}))
        merged.update(v)
        violations.append(_finding_from_dict(merged))
    return ScanResult(
        resource_id=data.get("resourceId") or data.get("url"),
        violations=violations,
        passes=[_finding_from_dict(p) for p in data.get("passes") or []],
        incomplete=[_finding_from_dict(i) for i in data.get("incomplete") or []],
        timestamp=data.get("timestamp"),
    )


def load_scan_results(path: str) -> List[ScanResult]:
    """Load the scanning collaborator's JSON output."""
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"scan results not found: {p}")
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
        Draft202012Validator(SCAN_RESULTS_SCHEMA).validate(data)
    except json.JSONDecodeError as e:
        raise ConfigError(f"{p}: invalid JSON: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"{p}: invalid scan results: {e.message}") from e

    results = [scan_result_from_dict(item) for item in data]
    logger.info("scan_results_loaded", path=str(p), resources=len(results))
    return results
