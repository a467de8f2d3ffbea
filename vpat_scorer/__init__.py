"""Score VPAT/ACR accessibility templates from automated scan results."""

from vpat_scorer.aggregator import aggregate_results, decode_criterion_tag, load_scan_results
from vpat_scorer.mapping import QuestionMapping, RuleMapping, load_question_mapping, load_rule_mapping
from vpat_scorer.scorer import QuestionScorer, scoring_summary, texts_match
from vpat_scorer.template_reader import TemplateReader, classify_row, extract_questions
from vpat_scorer.template_writer import set_cell_text, update_table, write_template

__all__ = [
    "QuestionMapping",
    "QuestionScorer",
    "RuleMapping",
    "TemplateReader",
    "aggregate_results",
    "classify_row",
    "decode_criterion_tag",
    "extract_questions",
    "load_question_mapping",
    "load_rule_mapping",
    "load_scan_results",
    "scoring_summary",
    "set_cell_text",
    "texts_match",
    "update_table",
    "write_template",
]
