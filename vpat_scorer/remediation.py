"""
Remediation report: violations grouped by rule across scanned resources,
rendered as Markdown for the team fixing them.
"""

from dataclasses import dataclass, field
from typing import Dict, List

from vpat_scorer.aggregator import criteria_of
from vpat_scorer.models import NodeDetail, RuleResult, ScanResult
from vpat_scorer.utils import escape_markdown, render_table_markdown

IMPACT_ORDER = {"critical": 0, "serious": 1, "moderate": 2, "minor": 3}


@dataclass
class Occurrence:
    resource_id: str
    nodes: List[NodeDetail]


@dataclass
class RemediationIssue:
    rule: RuleResult
    occurrences: List[Occurrence] = field(default_factory=list)
    total_nodes: int = 0

    @property
    def impact(self) -> str:
        return self.rule.impact or ""


def build_remediation_issues(scan_results: List[ScanResult]) -> List[RemediationIssue]:
    """Group violations by rule id, most severe impact first."""
    by_rule: Dict[str, RemediationIssue] = {}

    for result in scan_results:
        for violation in result.violations:
            if not violation.impact or not violation.node_details:
                continue
            issue = by_rule.get(violation.rule_id)
            if issue is None:
                issue = by_rule[violation.rule_id] = RemediationIssue(rule=violation)
            issue.occurrences.append(Occurrence(result.resource_id, violation.node_details))
            issue.total_nodes += len(violation.node_details)

    return sorted(by_rule.values(), key=lambda i: IMPACT_ORDER.get(i.impact, 4))


def _escape_html(text: str) -> str:
    return escape_markdown(text.replace("<", "&lt;").replace(">", "&gt;"))


def render_remediation_markdown(issues: List[RemediationIssue], product_name: str, report_date: str) -> str:
    lines = [f"# Remediation Report: {product_name}", f"**Date:** {report_date}", ""]

    groups: Dict[str, List[int]] = {}
    for issue in issues:
        counts = groups.setdefault(issue.impact, [0, 0])
        counts[0] += 1
        counts[1] += issue.total_nodes

    lines.append("## Summary")
    lines.append("")
    rows = [[level, groups[level][0], groups[level][1]] for level in IMPACT_ORDER if level in groups]
    lines.append(render_table_markdown(["Impact", "Rules", "Occurrences"], rows))
    lines.append("")

    if not issues:
        lines.append("No violations found.")
        return "\n".join(lines)

    current_impact = None
    for issue in issues:
        if issue.impact != current_impact:
            current_impact = issue.impact
            lines.append(f"## {current_impact.capitalize()} Issues")
            lines.append("")

        rule = issue.rule
        criteria = criteria_of(rule)
        help_text = escape_markdown(rule.help or rule.description)
        lines.append("<details>")
        lines.append(f"<summary><strong>{rule.rule_id}</strong>: {help_text} ({issue.total_nodes} occurrences)</summary>")
        lines.append("")
        lines.append(f"- **Impact:** {issue.impact}")
        lines.append(f"- **WCAG:** {', '.join(criteria) if criteria else 'best-practice'}")
        lines.append(f"- **Description:** {escape_markdown(rule.description)}")
        if rule.help_url:
            lines.append(f"- **Help:** [{help_text}]({rule.help_url})")
        lines.append("")

        for occurrence in issue.occurrences:
            lines.append(f"### {escape_markdown(occurrence.resource_id)}")
            lines.append("")
            lines.append("| Selector | HTML | Fix |")
            lines.append("|----------|------|-----|")
            for node in occurrence.nodes:
                selector = escape_markdown(" > ".join(node.target))
                lines.append(f"| `{selector}` | `{_escape_html(node.html[:300])}` | {escape_markdown(node.failure_summary)} |")
            lines.append("")

        lines.append("</details>")
        lines.append("")

    return "\n".join(lines)
