# config.py
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from jsonschema import Draft202012Validator

from vpat_scorer.errors import ConfigError


@dataclass(frozen=True)
class TemplateConfig:
    # Layout of one product: a standards table then one table per category
    tables_per_product: int = 5
    categories: Tuple[str, ...] = ("perceivable", "operable", "understandable", "robust")
    document_part: str = "word/document.xml"
    # Product naming
    heading_style_prefix: str = "Heading"
    top_heading_style: str = "Heading1"
    standards_marker: str = "standard"
    default_product_names: Tuple[str, ...] = ()
    product_name_fallback: str = "Product {n}"
    # Question rows: Question, Weight, Score, Weighted Score, then Comments
    question_cell_count: int = 4
    # Subtotal row has one physical cell per grid column
    subtotal_max_column: int = 5
    subtotal_weighted_column: int = 6


@dataclass(frozen=True)
class ScoringConfig:
    fuzzy_threshold: float = 0.7
    min_token_length: int = 3
    max_top_issues: int = 3
    no_coverage_comment: str = "No automated test coverage for this criterion."
    incomplete_comment: str = "Requires manual review: automated checks returned incomplete results."
    manual_comment: str = "Manual review required."


@dataclass(frozen=True)
class AppConfig:
    template: TemplateConfig = field(default_factory=TemplateConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)

# Global defaults used across modules
DEFAULTS = AppConfig()


# ==========================
# Per-run configuration
# ==========================

RUN_CONFIG_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["product", "reportDate", "templatePath", "outputPath", "productSectionIndex", "scanResultsPath"],
    "properties": {
        "product": {"type": "string", "minLength": 1},
        "reportDate": {"type": "string", "minLength": 1},
        "templatePath": {"type": "string", "minLength": 1},
        "outputPath": {"type": "string", "minLength": 1},
        "productSectionIndex": {"type": "integer", "minimum": 0},
        "scanResultsPath": {"type": "string", "minLength": 1},
        "mappingPath": {"type": "string", "minLength": 1},
        "carryForwardPath": {"type": ["string", "null"]},
        "remediationPath": {"type": ["string", "null"]},
    },
}


@dataclass
class RunConfig:
    product: str
    report_date: str
    template_path: Path
    output_path: Path
    product_section_index: int
    scan_results_path: Path
    mapping_path: Optional[Path] = None
    carry_forward_path: Optional[Path] = None
    remediation_path: Optional[Path] = None

    @property
    def remediation_report_path(self) -> Path:
        if self.remediation_path is not None:
            return self.remediation_path
        return self.output_path.with_name(self.output_path.stem + "-remediation.md")


def load_run_config(path: str) -> RunConfig:
    """Load and validate a run configuration; relative paths resolve against its directory."""
    config_path = Path(path).expanduser().resolve()
    if not config_path.exists():
        raise ConfigError(f"config file not found: {config_path}")
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"{config_path}: invalid JSON: {e}") from e

    errors = sorted(Draft202012Validator(RUN_CONFIG_SCHEMA).iter_errors(data), key=lambda e: list(e.path))
    if errors:
        first = errors[0]
        where = "/".join(str(p) for p in first.path) or "<root>"
        raise ConfigError(f"{config_path}: {where}: {first.message}")

    base = config_path.parent

    def _path(value: Optional[str]) -> Optional[Path]:
        if not value:
            return None
        p = Path(value).expanduser()
        return p if p.is_absolute() else (base / p)

    return RunConfig(
        product=data["product"],
        report_date=data["reportDate"],
        template_path=_path(data["templatePath"]),
        output_path=_path(data["outputPath"]),
        product_section_index=data["productSectionIndex"],
        scan_results_path=_path(data["scanResultsPath"]),
        mapping_path=_path(data.get("mappingPath")),
        carry_forward_path=_path(data.get("carryForwardPath")),
        remediation_path=_path(data.get("remediationPath")),
    )
