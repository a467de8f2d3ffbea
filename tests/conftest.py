"""Pytest configuration and fixtures."""

import json
from pathlib import Path
from typing import Dict, List, Optional

import pytest
import structlog

import wml
from vpat_scorer.mapping import QuestionMapping
from vpat_scorer.models import RuleResult, ScanResult


@pytest.fixture(autouse=True)
def reset_logging():
    """The CLI configures structlog against the captured stderr of one test."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def single_product_xml():
    """Document part with one product: heading, standards table, four category tables."""
    return wml.document(*wml.product_blocks("Acme Portal"))


@pytest.fixture
def make_scan_result():
    """Factory for scan results: findings given as (rule_id, tags, description)."""
    def _make(resource_id, violations=(), passes=(), incomplete=()):
        def findings(items):
            return [
                RuleResult(rule_id=rule_id, description=desc, impact="serious", tags=list(tags), nodes=1)
                for rule_id, tags, desc in items
            ]
        return ScanResult(
            resource_id=resource_id,
            violations=findings(violations),
            passes=findings(passes),
            incomplete=findings(incomplete),
        )
    return _make


@pytest.fixture
def mapping_json() -> List[Dict]:
    """Question mapping covering the fixture template's sections."""
    return [
        {
            "criterionPrefix": "1.1",
            "sectionName": "1.1: Non-Text Content",
            "questions": [
                {"questionText": "Do all images have alternative text?", "automatable": True, "weight": 3, "ruleIds": ["image-alt"]},
                {"questionText": "Are decorative images hidden from assistive technology?", "automatable": False, "ruleIds": []},
            ],
        },
        {
            "criterionPrefix": "2.1",
            "sectionName": "2.1: Keyboard Accessible",
            "questions": [
                {"questionText": "Can every control be reached by keyboard?", "automatable": True, "ruleIds": ["scrollable-region-focusable"]},
            ],
        },
        {
            "criterionPrefix": "3.1",
            "sectionName": "3.1: Readable",
            "questions": [
                {"questionText": "Is the page language declared?", "automatable": True, "ruleIds": ["html-has-lang"]},
            ],
        },
    ]


@pytest.fixture
def question_mapping(mapping_json) -> QuestionMapping:
    return QuestionMapping.from_json(mapping_json)


def _build_docx(path: Path, product_names: List[str], standards_heading: Optional[str] = None) -> Path:
    from docx import Document

    doc = Document()
    doc.add_paragraph("Report Date: 01/15/2024")
    for name in product_names:
        doc.add_heading(name, level=1)
        if standards_heading:
            doc.add_heading(standards_heading, level=2)
        _add_table(doc, [["Standard", "Included"], ["WCAG 2.1 AA", "Yes"]], cols=2)
        for section, question in (
            ("1.1: Non-Text Content", "Do all images have alternative text?"),
            ("2.1: Keyboard Accessible", "Can every control be reached by keyboard?"),
            ("3.1: Readable", "Is the page language declared?"),
            ("4.1: Compatible", "Are names and roles exposed to assistive technology?"),
        ):
            rows = [
                ["Questions", "Weight", "Score", "Weighted Score", "Comments"],
                [section],
                [question, "3", "", "", "old comment", "stale fragment"],
                ["Category Subtotal", "", "", "", "", "0", "0"],
            ]
            _add_table(doc, rows, cols=11)
    doc.save(str(path))
    return path


def _add_table(doc, rows, cols):
    table = doc.add_table(rows=len(rows), cols=cols)
    for r, values in enumerate(rows):
        for c, value in enumerate(values):
            table.rows[r].cells[c].text = value
    return table


@pytest.fixture
def template_docx(tmp_path):
    """A real .docx template authored with python-docx (one product)."""
    pytest.importorskip("docx")
    return _build_docx(tmp_path / "template.docx", ["Acme Portal"])


@pytest.fixture
def multi_product_docx(tmp_path):
    pytest.importorskip("docx")
    return _build_docx(tmp_path / "multi.docx", ["Docs", "Forms"], standards_heading="Applicable Standards")


@pytest.fixture
def write_json(tmp_path):
    def _write(name, data):
        path = tmp_path / name
        path.write_text(json.dumps(data), encoding="utf-8")
        return path
    return _write
