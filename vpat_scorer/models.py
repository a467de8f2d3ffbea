# models.py
"""
Data structures for the VPAT scoring pipeline.
Contains the core data models shared by the template reader, the verdict
aggregator, the question scorer and the document writer.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


# ==========================
# Template model
# ==========================

ROW_TYPES = ("header", "section", "question", "subtotal", "empty")


@dataclass
class Row:
    """One physical table row, classified into a semantic row type."""
    row_index: int
    type: str                    # one of ROW_TYPES
    cells: List[str]
    # question rows
    question_text: Optional[str] = None
    weight: int = 0
    score: str = ""              # "1", "0", "*" or ""
    weighted_score: str = ""
    comment: str = ""
    # section rows
    section_name: Optional[str] = None


@dataclass
class CategoryTable:
    """A scored category table of one product."""
    table_index: int
    category: str
    rows: List[Row] = field(default_factory=list)


@dataclass
class Product:
    """One standards table followed by its category tables."""
    name: str
    product_index: int
    standards_table_index: int
    tables: List[CategoryTable] = field(default_factory=list)


@dataclass
class TemplateQuestion:
    """A question row flattened with the context it was found in."""
    table_index: int
    row_index: int
    question_text: str
    weight: int
    current_score: str
    current_weighted_score: str
    current_comment: str
    criterion_prefix: str        # e.g. "1.1"
    category: str
    section: str                 # e.g. "1.1: Non-Text Content"


# ==========================
# Scan results and verdicts
# ==========================

@dataclass
class NodeDetail:
    target: List[str] = field(default_factory=list)
    html: str = ""
    failure_summary: str = ""


@dataclass
class RuleResult:
    """A single rule's outcome on a single scanned resource."""
    rule_id: str
    description: str = ""
    impact: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    nodes: int = 0
    help: str = ""
    help_url: str = ""
    node_details: List[NodeDetail] = field(default_factory=list)


@dataclass
class ScanResult:
    """All rule outcomes for one scanned resource."""
    resource_id: str
    violations: List[RuleResult] = field(default_factory=list)
    passes: List[RuleResult] = field(default_factory=list)
    incomplete: List[RuleResult] = field(default_factory=list)
    timestamp: Optional[str] = None


@dataclass(frozen=True)
class CriterionVerdict:
    """Aggregated outcome for one criterion across every scanned resource."""
    criterion: str               # e.g. "1.1.1"
    status: str                  # "pass" | "fail" | "incomplete"
    total_violations: int
    resources_with_violations: int
    total_resources: int
    top_issues: Tuple[str, ...] = ()
    affected_resources: Tuple[str, ...] = ()


# ==========================
# Scores
# ==========================

@dataclass
class QuestionScore:
    """Resolved score of one question row; weighted_score is None iff score is None."""
    table_index: int
    row_index: int
    question_text: str
    score: Optional[int]
    weight: int
    weighted_score: Optional[int]
    comment: str
    automatable: bool

    @property
    def key(self) -> Tuple[int, int]:
        return (self.table_index, self.row_index)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tableIndex": self.table_index,
            "rowIndex": self.row_index,
            "questionText": self.question_text,
            "score": self.score,
            "weight": self.weight,
            "weightedScore": self.weighted_score,
            "comment": self.comment,
            "automatable": self.automatable,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QuestionScore":
        score = data.get("score")
        weight = int(data.get("weight") or 0)
        return cls(
            table_index=int(data["tableIndex"]),
            row_index=int(data["rowIndex"]),
            question_text=data.get("questionText") or "",
            score=score,
            weight=weight,
            weighted_score=None if score is None else weight * score,
            comment=data.get("comment") or "",
            automatable=bool(data.get("automatable", False)),
        )


@dataclass(frozen=True)
class ScoringSummary:
    total: int
    automated: int
    manual: int
    passing: int
    failing: int
    not_applicable: int


# ==========================
# Mapping tables
# ==========================

@dataclass(frozen=True)
class QuestionDefinition:
    """A curated question under a criterion section."""
    question_text: str
    automatable: bool
    rule_ids: Tuple[str, ...] = ()
    weight: Optional[int] = None
    row_indices: Tuple[Tuple[str, int], ...] = ()


@dataclass(frozen=True)
class MappingEntry:
    """Criterion-section prefix and its ordered question definitions."""
    criterion_prefix: str        # e.g. "1.1"
    section_name: str
    questions: Tuple[QuestionDefinition, ...] = ()


@dataclass(frozen=True)
class RuleMappingEntry:
    """Which criteria a rule identifier reports against."""
    rule_id: str
    description: str
    criteria: Tuple[str, ...]
    tags: Tuple[str, ...] = ()
