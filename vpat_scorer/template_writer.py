# template_writer.py
"""
Writes scores back into the template tree and saves a new .docx container.

Only the Score, Weighted Score and Comment cells of scored question rows and
the totals of the trailing subtotal row are touched; every other node keeps
its original markup.
"""

import os
import re
import shutil
import tempfile
import zipfile
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import structlog

from vpat_scorer import xml_tree
from vpat_scorer.config import DEFAULTS, TemplateConfig
from vpat_scorer.errors import TemplateStructureError
from vpat_scorer.models import Product, QuestionScore
from vpat_scorer.template_reader import ParsedTemplate, row_cells, table_rows
from vpat_scorer.xml_tree import Node, Text

logger = structlog.get_logger(__name__)

# Paragraph children that carry visible runs
_RUN_CONTAINERS = {"w:r", "w:hyperlink", "w:smartTag", "w:fldSimple"}
# Run children that carry visible text
_RUN_CONTENT = {"w:t", "w:tab", "w:br", "w:cr", "w:sym", "w:noBreakHyphen", "w:softHyphen"}

_DATE_RE = re.compile(r"\d{1,2}/\d{1,2}/\d{2,4}")


# ==========================
# Cell text
# ==========================

def _new_text(text: str) -> Node:
    return xml_tree.element("w:t", {"xml:space": "preserve"}, [Text.of(text)])


def set_run_text(run: Node, text: str) -> None:
    """Replace the text of a run, keeping its w:rPr and other properties."""
    kept: List = []
    placed = False
    for child in run.children:
        if isinstance(child, Node) and child.tag in _RUN_CONTENT:
            if not placed and child.tag == "w:t":
                child.children = [Text.of(text)]
                child.set("xml:space", "preserve")
                kept.append(child)
                placed = True
            continue
        kept.append(child)
    if not placed:
        kept.append(_new_text(text))
    run.children = kept


def set_cell_text(tc: Node, text: str) -> None:
    """
    Rewrite a table cell so it holds exactly one run with `text`.

    The first run of the first paragraph keeps its formatting; additional runs
    and additional paragraphs are dropped. A run is created when none exists.
    """
    paragraphs = xml_tree.children(tc, "w:p")
    if not paragraphs:
        tc.children.append(xml_tree.element("w:p", children=[xml_tree.element("w:r", children=[_new_text(text)])]))
        return

    para = paragraphs[0]
    extra = set(id(p) for p in paragraphs[1:])
    if extra:
        tc.children = [c for c in tc.children if id(c) not in extra]

    runs = xml_tree.children(para, "w:r")
    if runs:
        first_run = runs[0]
        set_run_text(first_run, text)
    else:
        first_run = xml_tree.element("w:r", children=[_new_text(text)])

    rebuilt: List = []
    placed = False
    for child in para.children:
        if isinstance(child, Node) and child.tag in _RUN_CONTAINERS:
            if not placed:
                rebuilt.append(first_run)
                placed = True
            continue
        rebuilt.append(child)
    if not placed:
        rebuilt.append(first_run)
    para.children = rebuilt


# ==========================
# Table updates
# ==========================

def update_table(
    table: Node,
    scores: Iterable[QuestionScore],
    table_index: int,
    cfg: Optional[TemplateConfig] = None,
) -> Tuple[int, int]:
    """
    Write scores for one table and recompute its subtotal row.

    Returns:
        (weighted score total, max possible total) over scored rows
    """
    cfg = cfg or DEFAULTS.template
    by_row: Dict[int, QuestionScore] = {s.row_index: s for s in scores if s.table_index == table_index}
    rows = table_rows(table)

    total_weighted = 0
    total_max = 0
    first_comment = cfg.question_cell_count

    for row_index, tr in enumerate(rows):
        score = by_row.get(row_index)
        if score is None:
            continue
        cells = row_cells(tr)

        if len(cells) >= first_comment:
            set_cell_text(cells[2], "*" if score.score is None else str(score.score))
            set_cell_text(cells[3], "" if score.weighted_score is None else str(score.weighted_score))
            if len(cells) > first_comment and score.comment:
                set_cell_text(cells[first_comment], score.comment)
                for extra in cells[first_comment + 1:]:
                    set_cell_text(extra, "")

        if score.score is not None:
            total_weighted += score.weighted_score or 0
            total_max += score.weight

    if rows:
        last = row_cells(rows[-1])
        needed = max(cfg.subtotal_max_column, cfg.subtotal_weighted_column) + 1
        if last and "category subtotal" in xml_tree.run_text(last[0]).strip().lower():
            if len(last) >= needed:
                set_cell_text(last[cfg.subtotal_weighted_column], str(total_weighted))
                set_cell_text(last[cfg.subtotal_max_column], str(total_max))
            else:
                logger.warning("subtotal_row_too_short", table_index=table_index, cells=len(last), needed=needed)

    return total_weighted, total_max


def update_report_date(tree: Node, report_date: str) -> int:
    """Rewrite the date run of every 'Report Date:' paragraph. Returns paragraphs updated."""
    updated = 0
    for para in xml_tree.find_all(tree, "w:p"):
        runs = xml_tree.children(para, "w:r")
        if "Report Date:" not in "".join(xml_tree.run_text(r) for r in runs):
            continue
        for run in runs:
            text = xml_tree.run_text(run)
            if "Report Date:" in text:
                # label and date share a run: replace the date only
                if _DATE_RE.search(text):
                    set_run_text(run, _DATE_RE.sub(lambda _: report_date, text, count=1))
                    updated += 1
                    break
                continue
            if _DATE_RE.search(text) or "Q" in text:
                set_run_text(run, report_date)
                updated += 1
                break
    return updated


def apply_scores(
    parsed: ParsedTemplate,
    product: Product,
    scores: List[QuestionScore],
    report_date: Optional[str] = None,
    cfg: Optional[TemplateConfig] = None,
) -> None:
    """Mutate the parsed tree in place for one product."""
    for table in product.tables:
        if table.table_index >= len(parsed.table_nodes):
            raise TemplateStructureError(
                f"table {table.table_index} not present: document has {len(parsed.table_nodes)} tables"
            )
        weighted, max_total = update_table(parsed.table_nodes[table.table_index], scores, table.table_index, cfg)
        logger.debug("table_updated", table_index=table.table_index, weighted=weighted, max_possible=max_total)

    if report_date:
        update_report_date(parsed.tree, report_date)


# ==========================
# Container
# ==========================

def write_container(source_path: Path, output_path: Path, document_xml: str, document_part: str) -> None:
    """
    Copy a .docx container replacing only `document_part`.

    The copy is built in a temporary file next to the output and moved into
    place once complete, so `output_path` may be the source itself and a
    failed write leaves no partial document behind.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{output_path.name}.", suffix=".tmp", dir=output_path.parent)
    os.close(fd)
    try:
        with zipfile.ZipFile(source_path) as src, zipfile.ZipFile(tmp_name, "w") as dst:
            for info in src.infolist():
                if info.filename == document_part:
                    dst.writestr(info, document_xml.encode("utf-8"))
                else:
                    dst.writestr(info, src.read(info.filename))
        shutil.copymode(source_path, tmp_name)
        os.replace(tmp_name, output_path)
    except BaseException:
        os.unlink(tmp_name)
        raise


def write_template(
    parsed: ParsedTemplate,
    product: Product,
    scores: List[QuestionScore],
    output_path: str,
    report_date: Optional[str] = None,
    cfg: Optional[TemplateConfig] = None,
) -> Path:
    """Apply scores for `product` and save the result next to the source container."""
    cfg = cfg or DEFAULTS.template
    if parsed.source_path is None:
        raise TemplateStructureError("template was not read from a container; nothing to copy")

    apply_scores(parsed, product, scores, report_date=report_date, cfg=cfg)
    out = Path(output_path)
    write_container(parsed.source_path, out, xml_tree.serialize(parsed.tree), cfg.document_part)
    logger.info("template_written", output=str(out), product=product.name, scores=len(scores))
    return out
