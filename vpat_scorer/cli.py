# cli.py
"""
Command-line entry point.

  vpat-scorer score configs/product.json [--dry-run] [--verbose] [--scores-out scores.json]
  vpat-scorer aggregate scan-results.json
  vpat-scorer dump-questions template.docx [--product 0] [--rules axe-to-wcag.json] [--out mapping.json]
  vpat-scorer rules scan-results.json [--out axe-to-wcag.json]
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import structlog

from vpat_scorer.aggregator import aggregate_results, load_scan_results, rule_mapping_from_scans, sorted_criteria
from vpat_scorer.config import load_run_config
from vpat_scorer.errors import MappingNotFoundError, VpatError
from vpat_scorer.mapping import RuleMapping, build_mapping_skeleton, load_question_mapping, load_rule_mapping
from vpat_scorer.models import QuestionScore
from vpat_scorer.remediation import build_remediation_issues, render_remediation_markdown
from vpat_scorer.scorer import QuestionScorer, load_carry_forward, scoring_summary
from vpat_scorer.template_reader import TemplateReader, extract_questions
from vpat_scorer.template_writer import write_template
from vpat_scorer.utils import render_table_markdown

logger = structlog.get_logger(__name__)

DEFAULT_MAPPING_PATH = Path("mappings") / "wcag-to-questions.json"


def configure_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


# ---------- Commands ----------

def cmd_score(args: argparse.Namespace) -> int:
    cfg = load_run_config(args.config)

    scan_results = load_scan_results(str(cfg.scan_results_path))
    verdicts = aggregate_results(scan_results)

    mapping = load_question_mapping(str(cfg.mapping_path or DEFAULT_MAPPING_PATH))
    carry_forward = load_carry_forward(str(cfg.carry_forward_path)) if cfg.carry_forward_path else None

    parsed = TemplateReader().parse(str(cfg.template_path))
    product = parsed.product(cfg.product_section_index)

    scores = QuestionScorer(mapping).score_product(product, verdicts, carry_forward)
    print_summary(cfg.product, scores, verbose=args.verbose)

    if args.scores_out:
        Path(args.scores_out).write_text(json.dumps([s.to_dict() for s in scores], indent=2), encoding="utf-8")

    report = render_remediation_markdown(build_remediation_issues(scan_results), cfg.product, cfg.report_date)
    report_path = cfg.remediation_report_path
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(report, encoding="utf-8")
    logger.info("remediation_report_written", path=str(report_path))

    if args.dry_run:
        logger.info("dry_run", skipped=str(cfg.output_path))
        return 0

    write_template(parsed, product, scores, str(cfg.output_path), report_date=cfg.report_date)
    print("Remember to manually review non-automatable questions (marked with *).")
    return 0


def cmd_aggregate(args: argparse.Namespace) -> int:
    verdicts = aggregate_results(load_scan_results(args.scans))
    rows = [
        [v.criterion, v.status, v.total_violations, f"{v.resources_with_violations}/{v.total_resources}"]
        for v in sorted_criteria(verdicts)
    ]
    print(render_table_markdown(["Criterion", "Status", "Violations", "Pages affected"], rows))
    return 0


def cmd_dump_questions(args: argparse.Namespace) -> int:
    parsed = TemplateReader().parse(args.template)
    product = parsed.product(args.product)
    questions = extract_questions(product)

    rule_mapping = None
    if args.rules:
        try:
            rule_mapping = load_rule_mapping(args.rules)
        except MappingNotFoundError as e:
            logger.warning("rule_mapping_missing", path=e.path)

    skeleton = build_mapping_skeleton(questions, rule_mapping)
    text = json.dumps(skeleton.to_json(), indent=2)
    if args.out:
        Path(args.out).parent.mkdir(parents=True, exist_ok=True)
        Path(args.out).write_text(text + "\n", encoding="utf-8")
        logger.info(
            "mapping_skeleton_written",
            path=args.out,
            sections=len(skeleton.entries),
            automatable_sections=len(skeleton.automatable_entries()),
            questions=len(questions),
        )
    else:
        sys.stdout.write(text + "\n")
    return 0


def cmd_rules(args: argparse.Namespace) -> int:
    rules = RuleMapping(entries=tuple(rule_mapping_from_scans(load_scan_results(args.scans))))
    text = json.dumps(rules.to_json(), indent=2)
    if args.out:
        Path(args.out).parent.mkdir(parents=True, exist_ok=True)
        Path(args.out).write_text(text + "\n", encoding="utf-8")
        logger.info("rule_mapping_written", path=args.out, rules=len(rules.entries))
        rows = [[e.rule_id, ", ".join(rules.criteria_for_rule(e.rule_id))] for e in rules.entries]
        print(render_table_markdown(["Rule", "Criteria"], rows))
    else:
        sys.stdout.write(text + "\n")
    return 0


def print_summary(product_name: str, scores: List[QuestionScore], *, verbose: bool = False) -> None:
    s = scoring_summary(scores)
    print(f"## {product_name}\n")
    print(render_table_markdown(
        ["Total", "Automated", "Manual", "Passing", "Failing", "N/A"],
        [[s.total, s.automated, s.manual, s.passing, s.failing, s.not_applicable]],
    ))
    print()
    if verbose:
        rows = [
            [q.question_text[:38], q.weight, "*" if q.score is None else q.score, "Y" if q.automatable else "N", q.comment[:48]]
            for q in scores
        ]
        print(render_table_markdown(["Question", "Weight", "Score", "Auto", "Comment"], rows))
        print()


# ---------- Entry point ----------

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="vpat-scorer", description="Score a VPAT/ACR template from accessibility scan results")
    sub = ap.add_subparsers(dest="command", required=True)

    score = sub.add_parser("score", help="Score a template and write the output document")
    score.add_argument("config", help="Path to run config JSON")
    score.add_argument("--dry-run", action="store_true", help="Score without writing the .docx")
    score.add_argument("--verbose", action="store_true", help="Per-question detail and debug logging")
    score.add_argument("--scores-out", help="Write question scores as JSON (usable as carry-forward)")
    score.set_defaults(func=cmd_score)

    agg = sub.add_parser("aggregate", help="Print per-criterion verdicts for scan results")
    agg.add_argument("scans", help="Path to scan results JSON")
    agg.add_argument("--verbose", action="store_true")
    agg.set_defaults(func=cmd_aggregate)

    dump = sub.add_parser("dump-questions", help="Generate a question mapping skeleton from a template")
    dump.add_argument("template", help="Path to .docx template")
    dump.add_argument("--product", type=int, default=0, help="Product section index")
    dump.add_argument("--rules", help="Rule-to-criterion mapping JSON used to suggest rules")
    dump.add_argument("--out", help="Output path (stdout when omitted)")
    dump.add_argument("--verbose", action="store_true")
    dump.set_defaults(func=cmd_dump_questions)

    rules = sub.add_parser("rules", help="Derive the rule-to-criterion mapping from scan results")
    rules.add_argument("scans", help="Path to scan results JSON")
    rules.add_argument("--out", help="Output path (stdout when omitted)")
    rules.add_argument("--verbose", action="store_true")
    rules.set_defaults(func=cmd_rules)
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    try:
        return args.func(args)
    except VpatError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
