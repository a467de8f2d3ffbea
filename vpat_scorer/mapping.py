# mapping.py
"""
Curated mapping tables: criterion section -> template questions, and
rule id -> criteria. Both are immutable once loaded and are passed to the
scorer explicitly.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import structlog
from jsonschema import Draft202012Validator

from vpat_scorer.errors import MappingFormatError, MappingNotFoundError
from vpat_scorer.models import MappingEntry, QuestionDefinition, RuleMappingEntry, TemplateQuestion
from vpat_scorer.utils import is_under_prefix, numeric_sort_key

logger = structlog.get_logger(__name__)

QUESTION_MAPPING_HINT = "Run: vpat-scorer dump-questions <template.docx> --out <mapping.json>"
RULE_MAPPING_HINT = "Run: vpat-scorer rules <scan-results.json> --out <rules.json>"

QUESTION_MAPPING_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "array",
    "items": {
        "type": "object",
        "required": ["criterionPrefix", "questions"],
        "properties": {
            "criterionPrefix": {"type": "string"},
            "sectionName": {"type": "string"},
            "questions": {
                "type": "array",
                "items": {
                    "type": "object",
                    "required": ["questionText", "automatable"],
                    "properties": {
                        "questionText": {"type": "string"},
                        "automatable": {"type": "boolean"},
                        "weight": {"type": ["integer", "null"]},
                        "ruleIds": {"type": "array", "items": {"type": "string"}},
                        "rowIndices": {"type": "object", "additionalProperties": {"type": "integer"}},
                    },
                },
            },
        },
    },
}

RULE_MAPPING_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "array",
    "items": {
        "type": "object",
        "required": ["ruleId", "criteria"],
        "properties": {
            "ruleId": {"type": "string"},
            "description": {"type": "string"},
            "criteria": {"type": "array", "items": {"type": "string"}},
            "tags": {"type": "array", "items": {"type": "string"}},
        },
    },
}


# ==========================
# Question mapping
# ==========================

@dataclass(frozen=True)
class QuestionMapping:
    entries: Tuple[MappingEntry, ...] = ()

    def find_entry(self, criterion_prefix: str) -> Optional[MappingEntry]:
        for entry in self.entries:
            if entry.criterion_prefix == criterion_prefix:
                return entry
        return None

    def automatable_entries(self) -> List[MappingEntry]:
        return [e for e in self.entries if any(q.automatable for q in e.questions)]

    def to_json(self) -> List[Dict[str, Any]]:
        out = []
        for entry in self.entries:
            questions = []
            for q in entry.questions:
                item: Dict[str, Any] = {
                    "questionText": q.question_text,
                    "rowIndices": dict(q.row_indices),
                    "ruleIds": list(q.rule_ids),
                    "automatable": q.automatable,
                }
                if q.weight is not None:
                    item["weight"] = q.weight
                questions.append(item)
            out.append({
                "criterionPrefix": entry.criterion_prefix,
                "sectionName": entry.section_name,
                "questions": questions,
            })
        return out

    @classmethod
    def from_json(cls, data: List[Dict[str, Any]]) -> "QuestionMapping":
        entries = []
        for raw in data:
            entries.append(MappingEntry(
                criterion_prefix=raw["criterionPrefix"],
                section_name=raw.get("sectionName", ""),
                questions=tuple(
                    QuestionDefinition(
                        question_text=q["questionText"],
                        automatable=q["automatable"],
                        rule_ids=tuple(q.get("ruleIds") or ()),
                        weight=q.get("weight"),
                        row_indices=tuple((q.get("rowIndices") or {}).items()),
                    )
                    for q in raw.get("questions", [])
                ),
            ))
        return cls(entries=tuple(entries))


# ==========================
# Rule mapping
# ==========================

@dataclass(frozen=True)
class RuleMapping:
    entries: Tuple[RuleMappingEntry, ...] = ()

    def get(self, rule_id: str) -> Optional[RuleMappingEntry]:
        for entry in self.entries:
            if entry.rule_id == rule_id:
                return entry
        return None

    def criteria_for_rule(self, rule_id: str) -> List[str]:
        entry = self.get(rule_id)
        return list(entry.criteria) if entry else []

    def rules_for_criterion(self, criterion: str) -> List[str]:
        """Rules reporting against `criterion` or anything nested under it."""
        return [
            e.rule_id for e in self.entries
            if any(is_under_prefix(criterion, c) for c in e.criteria)
        ]

    def to_json(self) -> List[Dict[str, Any]]:
        return [
            {"ruleId": e.rule_id, "description": e.description, "criteria": list(e.criteria), "tags": list(e.tags)}
            for e in self.entries
        ]

    @classmethod
    def from_json(cls, data: List[Dict[str, Any]]) -> "RuleMapping":
        return cls(entries=tuple(
            RuleMappingEntry(
                rule_id=raw["ruleId"],
                description=raw.get("description", ""),
                criteria=tuple(raw["criteria"]),
                tags=tuple(raw.get("tags") or ()),
            )
            for raw in data
        ))


# ==========================
# Loading
# ==========================

def _load_json(path: str, schema: Dict[str, Any], hint: str) -> Any:
    p = Path(path)
    if not p.exists():
        raise MappingNotFoundError(str(p), hint)
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise MappingFormatError(f"{p}: invalid JSON: {e}") from e
    errors = sorted(Draft202012Validator(schema).iter_errors(data), key=lambda e: list(e.path))
    if errors:
        where = "/".join(str(x) for x in errors[0].path) or "<root>"
        raise MappingFormatError(f"{p}: {where}: {errors[0].message}")
    return data


def load_question_mapping(path: str) -> QuestionMapping:
    mapping = QuestionMapping.from_json(_load_json(path, QUESTION_MAPPING_SCHEMA, QUESTION_MAPPING_HINT))
    logger.info("question_mapping_loaded", path=str(path), sections=len(mapping.entries))
    return mapping


def load_rule_mapping(path: str) -> RuleMapping:
    mapping = RuleMapping.from_json(_load_json(path, RULE_MAPPING_SCHEMA, RULE_MAPPING_HINT))
    logger.info("rule_mapping_loaded", path=str(path), rules=len(mapping.entries))
    return mapping


# ==========================
# Skeleton generation
# ==========================

def build_mapping_skeleton(
    questions: List[TemplateQuestion],
    rule_mapping: Optional[RuleMapping] = None,
) -> QuestionMapping:
    """
    Group template questions by criterion prefix into a mapping for curation.

    Every question under a prefix gets the rules reporting against that
    prefix; a question is marked automatable when any such rule exists.
    """
    grouped: Dict[str, List[TemplateQuestion]] = {}
    for q in questions:
        grouped.setdefault(q.criterion_prefix or "unknown", []).append(q)

    entries = []
    for prefix in sorted(grouped, key=numeric_sort_key):
        section_questions = grouped[prefix]
        rules = tuple(rule_mapping.rules_for_criterion(prefix)) if rule_mapping else ()
        entries.append(MappingEntry(
            criterion_prefix=prefix,
            section_name=section_questions[0].section,
            questions=tuple(
                QuestionDefinition(
                    question_text=q.question_text,
                    automatable=bool(rules),
                    rule_ids=rules,
                    weight=q.weight,
                    row_indices=((q.category, q.row_index),),
                )
                for q in section_questions
            ),
        ))
    return QuestionMapping(entries=tuple(entries))
