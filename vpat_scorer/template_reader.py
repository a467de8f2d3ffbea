# template_reader.py
"""
Template Reader

Parses a VPAT/ACR .docx template into products, category tables and
classified rows, keeping the parsed markup tree for later write-back.
"""

import re
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

import structlog

from vpat_scorer import xml_tree
from vpat_scorer.config import DEFAULTS, TemplateConfig
from vpat_scorer.errors import MarkupParseError, TemplateStructureError
from vpat_scorer.models import CategoryTable, Product, Row, TemplateQuestion
from vpat_scorer.utils import parse_leading_int, section_prefix
from vpat_scorer.xml_tree import Node

logger = structlog.get_logger(__name__)

SECTION_ROW_RE = re.compile(r"^\d+\.\d+:")


def classify_row(cells: List[str]) -> str:
    """Classify a row from its physical cell texts."""
    first = cells[0].strip() if cells else ""
    lowered = first.lower()

    if lowered == "questions":
        return "header"
    if "category subtotal" in lowered:
        return "subtotal"
    if SECTION_ROW_RE.match(first):
        return "section"
    if all(not c.strip() for c in cells):
        return "empty"
    if first:
        return "question"
    return "empty"


def table_rows(table: Node) -> List[Node]:
    return xml_tree.children(table, "w:tr")


def row_cells(tr: Node) -> List[Node]:
    return xml_tree.children(tr, "w:tc")


@dataclass
class Heading:
    text: str
    body_index: int
    style: str


@dataclass
class ParsedTemplate:
    """Products found in a template plus the tree they were read from."""
    products: List[Product]
    tree: Node
    table_nodes: List[Node]
    source_path: Optional[Path] = None

    def product(self, index: int) -> Product:
        if index < 0 or index >= len(self.products):
            raise TemplateStructureError(
                f"product section index {index} out of range: template has {len(self.products)} product(s)"
            )
        return self.products[index]


class TemplateReader:
    """Extracts the Product / CategoryTable / Row model from a template."""

    def __init__(self, cfg: Optional[TemplateConfig] = None):
        self.cfg = cfg or DEFAULTS.template

    # ---------- Public API ----------

    def parse(self, docx_path: str) -> ParsedTemplate:
        """Read the document part of a .docx container and parse it."""
        path = Path(docx_path)
        if not path.exists():
            raise TemplateStructureError(f"template not found: {path}")
        try:
            with zipfile.ZipFile(path) as zf:
                raw = zf.read(self.cfg.document_part)
        except zipfile.BadZipFile as e:
            raise TemplateStructureError(f"{path}: not a .docx container: {e}") from e
        except KeyError:
            raise TemplateStructureError(f"{path}: no {self.cfg.document_part} in container") from None
        try:
            markup = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MarkupParseError(f"{path}: {self.cfg.document_part} is not valid UTF-8: {e}") from e
        parsed = self.parse_markup(markup)
        parsed.source_path = path
        return parsed

    def parse_markup(self, markup: str) -> ParsedTemplate:
        """Parse a document part already loaded as text."""
        tree = xml_tree.parse(markup)
        body = xml_tree.find_first(tree, "w:body")
        if body is None:
            raise TemplateStructureError("no document body found")

        tables: List[Tuple[int, Node]] = []
        headings: List[Heading] = []
        for body_index, child in enumerate(xml_tree.children(body)):
            if child.tag == "w:tbl":
                tables.append((body_index, child))
            elif child.tag == "w:p":
                style = self._heading_style(child)
                if style:
                    headings.append(Heading(xml_tree.run_text(child).strip(), body_index, style))

        per_product = self.cfg.tables_per_product
        product_count = len(tables) // per_product
        if product_count == 0:
            raise TemplateStructureError(
                f"expected at least {per_product} tables in template, found {len(tables)}"
            )

        products = [self._build_product(p, product_count, tables, headings) for p in range(product_count)]
        logger.info("template_parsed", tables=len(tables), products=len(products), headings=len(headings))
        return ParsedTemplate(products=products, tree=tree, table_nodes=[n for _, n in tables])

    # ---------- Internal methods ----------

    def _build_product(
        self,
        product_index: int,
        product_count: int,
        tables: List[Tuple[int, Node]],
        headings: List[Heading],
    ) -> Product:
        base = product_index * self.cfg.tables_per_product
        category_tables = []
        for offset, category in enumerate(self.cfg.categories):
            table_index = base + 1 + offset
            if table_index < len(tables):
                category_tables.append(self._parse_table(tables[table_index][1], table_index, category))

        first_body_index = tables[base][0]
        return Product(
            name=self._product_name(product_index, product_count, first_body_index, headings),
            product_index=product_index,
            standards_table_index=base,
            tables=category_tables,
        )

    def _product_name(self, product_index: int, product_count: int, first_body_index: int, headings: List[Heading]) -> str:
        if product_index < len(self.cfg.default_product_names):
            name = self.cfg.default_product_names[product_index]
        else:
            name = self.cfg.product_name_fallback.format(n=product_index + 1)

        if product_count == 1:
            top = next((h for h in headings if h.style == self.cfg.top_heading_style), None)
            if top and top.text:
                return top.text
            return name

        preceding = [h for h in headings if h.body_index < first_body_index]
        if preceding:
            closest = preceding[-1]
            if closest.text and self.cfg.standards_marker not in closest.text.lower():
                return closest.text
        return name

    def _parse_table(self, table: Node, table_index: int, category: str) -> CategoryTable:
        rows: List[Row] = []
        for row_index, tr in enumerate(table_rows(table)):
            cells = [xml_tree.run_text(tc) for tc in row_cells(tr)]
            row_type = classify_row(cells)
            row = Row(row_index=row_index, type=row_type, cells=cells)

            if row_type == "section":
                row.section_name = cells[0].strip()
            elif row_type == "question":
                n = self.cfg.question_cell_count
                row.question_text = cells[0].strip()
                row.weight = parse_leading_int(cells[1] if len(cells) > 1 else "")
                row.score = cells[2].strip() if len(cells) > 2 else ""
                row.weighted_score = cells[3].strip() if len(cells) > 3 else ""
                row.comment = " ".join(cells[n:]).strip()
            rows.append(row)

        return CategoryTable(table_index=table_index, category=category, rows=rows)

    def _heading_style(self, paragraph: Node) -> Optional[str]:
        p_pr = xml_tree.children(paragraph, "w:pPr")
        if not p_pr:
            return None
        p_style = xml_tree.children(p_pr[0], "w:pStyle")
        if not p_style:
            return None
        style = p_style[0].get("w:val", "") or ""
        return style if style.startswith(self.cfg.heading_style_prefix) else None


def extract_questions(product: Product) -> List[TemplateQuestion]:
    """Flatten a product's question rows with their section context."""
    questions: List[TemplateQuestion] = []
    for table in product.tables:
        current_section = ""
        for row in table.rows:
            if row.type == "section":
                current_section = row.section_name or ""
            elif row.type == "question":
                questions.append(TemplateQuestion(
                    table_index=table.table_index,
                    row_index=row.row_index,
                    question_text=row.question_text or "",
                    weight=row.weight,
                    current_score=row.score,
                    current_weighted_score=row.weighted_score,
                    current_comment=row.comment,
                    criterion_prefix=section_prefix(current_section),
                    category=table.category,
                    section=current_section,
                ))
    return questions
