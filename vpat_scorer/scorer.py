# scorer.py
"""
Assigns a score, weighted score and comment to every template question.

Automatable questions are resolved from aggregated criterion verdicts;
everything else keeps the template's recorded score, falls back to a
carried-forward score, or is left for manual review.
"""

import json
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import structlog
from jsonschema import Draft202012Validator

from vpat_scorer.config import DEFAULTS, ScoringConfig
from vpat_scorer.errors import ConfigError
from vpat_scorer.mapping import QuestionMapping
from vpat_scorer.models import (
    CriterionVerdict,
    Product,
    QuestionDefinition,
    QuestionScore,
    Row,
    ScoringSummary,
)
from vpat_scorer.utils import dedupe, is_under_prefix, section_prefix

logger = structlog.get_logger(__name__)

CarryForward = Dict[Tuple[int, int], QuestionScore]


# ==========================
# Fuzzy text matching
# ==========================

def normalize_text(text: str) -> str:
    """Collapse whitespace, strip punctuation, lowercase."""
    text = re.sub(r"\s+", " ", text or "")
    text = re.sub(r"[^\w\s]", "", text)
    return text.strip().lower()


def texts_match(template_text: str, mapping_text: str, cfg: Optional[ScoringConfig] = None) -> bool:
    """
    True when two question texts name the same question.

    Tolerates a few garbled characters: after normalization, the share of
    significant words of the first text found in (or containing) some word of
    the second must exceed the threshold, relative to the larger word count.
    """
    cfg = cfg or DEFAULTS.scoring
    a = normalize_text(template_text)
    b = normalize_text(mapping_text)
    if a == b:
        return True

    a_words = [w for w in a.split() if len(w) >= cfg.min_token_length]
    b_words = [w for w in b.split() if len(w) >= cfg.min_token_length]
    if not a_words or not b_words:
        return False

    matched = sum(1 for w in a_words if any(w in bw or bw in w for bw in b_words))
    return matched / max(len(a_words), len(b_words)) > cfg.fuzzy_threshold


# ==========================
# Scoring
# ==========================

class QuestionScorer:
    """Scores every question row of a product against a question mapping."""

    def __init__(self, mapping: QuestionMapping, cfg: Optional[ScoringConfig] = None):
        self.mapping = mapping
        self.cfg = cfg or DEFAULTS.scoring

    def score_product(
        self,
        product: Product,
        verdicts: Dict[str, CriterionVerdict],
        carry_forward: Optional[CarryForward] = None,
    ) -> List[QuestionScore]:
        scores: List[QuestionScore] = []

        for table in product.tables:
            prefix = ""
            for row in table.rows:
                if row.type == "section":
                    prefix = section_prefix(row.section_name)
                elif row.type == "question" and row.question_text:
                    scores.append(self.score_row(table.table_index, row, prefix, verdicts, carry_forward))

        summary = scoring_summary(scores)
        logger.info(
            "questions_scored",
            product=product.name,
            total=summary.total,
            automated=summary.automated,
            passing=summary.passing,
            failing=summary.failing,
            not_applicable=summary.not_applicable,
        )
        return scores

    def score_row(
        self,
        table_index: int,
        row: Row,
        prefix: str,
        verdicts: Dict[str, CriterionVerdict],
        carry_forward: Optional[CarryForward] = None,
    ) -> QuestionScore:
        weight = row.weight or 0
        definition = self.match_definition(prefix, row.question_text or "")
        automatable = bool(definition and definition.automatable)

        if automatable:
            score, comment = self._automated(prefix, verdicts)
        else:
            score, comment = self._manual(table_index, row, carry_forward)

        return QuestionScore(
            table_index=table_index,
            row_index=row.row_index,
            question_text=row.question_text or "",
            score=score,
            weight=weight,
            weighted_score=None if score is None else weight * score,
            comment=comment,
            automatable=automatable,
        )

    def match_definition(self, prefix: str, question_text: str) -> Optional[QuestionDefinition]:
        entry = self.mapping.find_entry(prefix)
        if entry is None:
            return None
        for definition in entry.questions:
            if texts_match(question_text, definition.question_text, self.cfg):
                return definition
        logger.debug("question_unmatched", prefix=prefix, question=question_text[:60])
        return None

    # ---------- Internal methods ----------

    def _automated(self, prefix: str, verdicts: Dict[str, CriterionVerdict]) -> Tuple[Optional[int], str]:
        relevant = [v for c, v in verdicts.items() if is_under_prefix(prefix, c)]
        if not relevant:
            return None, self.cfg.no_coverage_comment

        failed = [v for v in relevant if v.status == "fail"]
        if failed:
            total = sum(v.total_violations for v in failed)
            resources = dedupe([r for v in failed for r in v.affected_resources])
            issues = dedupe([i for v in failed for i in v.top_issues])[:self.cfg.max_top_issues]
            return 0, f"Found {total} violation(s) across {len(resources)} page(s). Issues: {'; '.join(issues)}"

        if any(v.status == "incomplete" for v in relevant):
            return None, self.cfg.incomplete_comment

        scanned = max(v.total_resources for v in relevant)
        return 1, f"No issues found across {scanned} page(s)."

    def _manual(self, table_index: int, row: Row, carry_forward: Optional[CarryForward]) -> Tuple[Optional[int], str]:
        existing_score = (row.score or "").strip()
        existing_comment = (row.comment or "").strip()

        if existing_score in ("1", "0"):
            return int(existing_score), existing_comment

        prior = (carry_forward or {}).get((table_index, row.row_index))
        if prior is not None and prior.score is not None:
            return prior.score, prior.comment or ""

        return None, existing_comment or self.cfg.manual_comment


def scoring_summary(scores: List[QuestionScore]) -> ScoringSummary:
    """Counts by automation and outcome; purely for reporting."""
    return ScoringSummary(
        total=len(scores),
        automated=sum(1 for s in scores if s.automatable),
        manual=sum(1 for s in scores if not s.automatable),
        passing=sum(1 for s in scores if s.score == 1),
        failing=sum(1 for s in scores if s.score == 0),
        not_applicable=sum(1 for s in scores if s.score is None),
    )


# ==========================
# Carry-forward scores
# ==========================

CARRY_FORWARD_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "array",
    "items": {
        "type": "object",
        "required": ["tableIndex", "rowIndex"],
        "properties": {
            "tableIndex": {"type": ["integer", "string"]},
            "rowIndex": {"type": ["integer", "string"]},
            "score": {"enum": [0, 1, None]},
            "weight": {"type": ["integer", "null"]},
            "comment": {"type": ["string", "null"]},
        },
    },
}


def load_carry_forward(path: str) -> CarryForward:
    """
    Load scores from a previous run.

    Accepts a list of score records (as written by `score --scores-out`) or
    an object keyed "tableIndex:rowIndex".
    """
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"carry-forward scores not found: {p}")
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"{p}: invalid JSON: {e}") from e

    if isinstance(data, dict):
        records = []
        for key, value in data.items():
            if not isinstance(value, dict):
                raise ConfigError(f"{p}: score record {key!r} must be an object")
            table_index, _, row_index = key.partition(":")
            records.append({**value, "tableIndex": table_index, "rowIndex": row_index})
    elif isinstance(data, list):
        records = data
    else:
        raise ConfigError(f"{p}: expected a list or object of score records")

    errors = sorted(Draft202012Validator(CARRY_FORWARD_SCHEMA).iter_errors(records), key=lambda e: list(e.path))
    if errors:
        where = "/".join(str(x) for x in errors[0].path) or "<root>"
        raise ConfigError(f"{p}: {where}: {errors[0].message}")

    try:
        scores = [QuestionScore.from_dict(r) for r in records]
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigError(f"{p}: invalid score record: {e}") from e
    logger.info("carry_forward_loaded", path=str(p), scores=len(scores))
    return {s.key: s for s in scores}
