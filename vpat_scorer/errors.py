"""Exception types raised by the scoring pipeline."""

from typing import Optional


class VpatError(Exception):
    """Base class for all fatal pipeline errors."""


class MarkupParseError(VpatError, ValueError):
    """The document part is not well-formed markup."""


class TemplateStructureError(VpatError):
    """The template does not have the expected body / table layout."""


class MappingNotFoundError(VpatError, FileNotFoundError):
    """A required mapping file is missing."""

    def __init__(self, path: str, hint: Optional[str] = None):
        self.path = path
        self.hint = hint
        message = f"mapping file not found at {path}"
        if hint:
            message += f". {hint}"
        super().__init__(message)


class MappingFormatError(VpatError):
    """A mapping file exists but does not match its schema."""


class ConfigError(VpatError):
    """Run configuration is missing or invalid."""
