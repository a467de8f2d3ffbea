"""Small WordprocessingML builders for tests."""

from typing import List, Optional, Sequence

W_NS = 'xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main"'

HEADER = ["Questions", "Weight", "Score", "Weighted Score", "Comments"]


def run(text: str, bold: bool = False) -> str:
    rpr = '<w:rPr><w:b/><w:sz w:val="18"/></w:rPr>' if bold else '<w:rPr><w:sz w:val="18"/></w:rPr>'
    return f'<w:r>{rpr}<w:t xml:space="preserve">{text}</w:t></w:r>'


def cell(text: str = "", span: Optional[int] = None) -> str:
    grid = f'<w:gridSpan w:val="{span}"/>' if span else ""
    body = run(text) if text else ""
    return f'<w:tc><w:tcPr><w:tcW w:w="1000" w:type="dxa"/>{grid}</w:tcPr><w:p>{body}</w:p></w:tc>'


def row(*texts: str) -> str:
    return "<w:tr>" + "".join(cell(t) for t in texts) + "</w:tr>"


def subtotal_row(max_total: str = "0", weighted_total: str = "0") -> str:
    cells = ["Category Subtotal", "", "", "", "", max_total, weighted_total, "", "", "", ""]
    return row(*cells)


def table(*rows: str) -> str:
    return '<w:tbl><w:tblPr><w:tblW w:w="0" w:type="auto"/></w:tblPr>' + "".join(rows) + "</w:tbl>"


def heading(text: str, style: str = "Heading1") -> str:
    return f'<w:p><w:pPr><w:pStyle w:val="{style}"/></w:pPr>{run(text)}</w:p>'


def paragraph(text: str) -> str:
    return f"<w:p>{run(text)}</w:p>"


def document(*blocks: str) -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
        f"<w:document {W_NS}><w:body>" + "".join(blocks) + '<w:sectPr><w:pgSz w:w="12240" w:h="15840"/></w:sectPr></w:body></w:document>'
    )


def standards_table() -> str:
    return table(row("Standard", "Included"), row("WCAG 2.1 AA", "Yes"))


def category_table(section: str, questions: Sequence[Sequence[str]]) -> str:
    """Header, one section row, question rows [text, weight, score, weighted, comment...], subtotal."""
    rows: List[str] = [row(*HEADER), row(section, "", "", "", "")]
    rows.extend(row(*q) for q in questions)
    rows.append(subtotal_row())
    return table(*rows)


def product_blocks(name: str, style: str = "Heading1", perceivable: Optional[Sequence[Sequence[str]]] = None) -> List[str]:
    perceivable = perceivable if perceivable is not None else [
        ["Do all images have alternative text?", "3", "", "", ""],
        ["Are decorative images hidden from assistive technology?", "2", "1", "2", "Checked by hand"],
    ]
    return [
        heading(name, style),
        standards_table(),
        category_table("1.1: Non-Text Content", perceivable),
        category_table("2.1: Keyboard Accessible", [["Can every control be reached by keyboard?", "3", "", "", ""]]),
        category_table("3.1: Readable", [["Is the page language declared?", "1", "*", "", ""]]),
        category_table("4.1: Compatible", [["Are names and roles exposed to assistive technology?", "2", "", "", ""]]),
    ]
