# utils.py
"""
Shared utility functions for the scoring pipeline.
Consolidates criterion-number handling and Markdown table rendering.
"""

import re
from typing import Any, List, Optional, Sequence


# ==========================
# String & Formatting Utilities
# ==========================

def numeric_sort_key(criterion: str) -> List[str]:
    """Convert a dotted criterion number to a sortable key with consistent string types."""
    parts = []
    for part in criterion.split('.'):
        try:
            # Numeric parts: zero-pad so "1.4.11" sorts after "1.4.3"
            parts.append(f"{int(part):06d}")
        except ValueError:
            # Non-numeric parts sort after numeric parts
            parts.append(f"zzz_{part}")
    return parts


def is_under_prefix(prefix: str, criterion: str) -> bool:
    """Check if criterion is prefix itself or nested under it (e.g. '1.1.1' under '1.1')."""
    if not prefix:
        return False
    if criterion == prefix:
        return True
    return criterion.startswith(prefix + ".")


SECTION_PREFIX_RE = re.compile(r"^(\d+\.\d+):")


def section_prefix(section_name: Optional[str]) -> str:
    """'1.1: Non-Text Content' -> '1.1'; '' when the name carries no prefix."""
    m = SECTION_PREFIX_RE.match((section_name or "").strip())
    return m.group(1) if m else ""


def parse_leading_int(text: Optional[str], default: int = 0) -> int:
    """Integer prefix of text ('3 ' -> 3, '2x' -> 2), default when there is none."""
    m = re.match(r"\s*([+-]?\d+)", text or "")
    if not m:
        return default
    return int(m.group(1))


def dedupe(items: Sequence[str]) -> List[str]:
    """Remove duplicates, preserving first-seen order."""
    seen = set()
    out = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        out.append(item)
    return out


# ==========================
# Table Rendering
# ==========================

def escape_markdown(text: Any) -> str:
    return str(text if text is not None else "").replace("|", "\\|").replace("\n", " ")


def render_table_markdown(headers: Sequence[str], rows: Sequence[Sequence[Any]]) -> str:
    """
    Render headers and rows as a Markdown table.

    Args:
        headers: Column titles
        rows: Row values; padded or truncated to the header count

    Returns:
        Markdown string for the table, "" when there is nothing to render
    """
    if not headers and not rows:
        return ""

    lines = []
    if headers:
        lines.append("| " + " | ".join(escape_markdown(h) for h in headers) + " |")
        lines.append("| " + " | ".join(["---"] * len(headers)) + " |")

    for row in rows:
        if headers:
            data = list(row[:len(headers)]) + [""] * max(0, len(headers) - len(row))
        else:
            data = list(row)
        lines.append("| " + " | ".join(escape_markdown(cell) for cell in data) + " |")

    return "\n".join(lines)
