"""Test case import from CSV and spreadsheet files."""

from .importer import (
    DEFAULT_DELIMITERS,
    CaseFormat,
    CaseImporter,
    detect_delimiter,
    infer_format,
    split_cases,
)

__all__ = [
    "CaseImporter",
    "CaseFormat",
    "DEFAULT_DELIMITERS",
    "detect_delimiter",
    "infer_format",
    "split_cases",
]
