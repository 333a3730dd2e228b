"""Import test cases from delimited text or spreadsheet files."""

import csv
import io
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence

from promptgarden.errors import CaseImportError, EmptyDataset, InsufficientData
from promptgarden.models import CaseSplit, TestCase

logger = logging.getLogger(__name__)

# Checked in order against the header line; the first one present wins
DEFAULT_DELIMITERS: tuple[str, ...] = (";", ",", "\t", "|")

DELIMITED_EXTENSIONS = {".csv", ".tsv", ".txt"}
SPREADSHEET_EXTENSIONS = {".xlsx", ".xlsm"}
# openpyxl cannot read the binary Excel 97-2003 format
LEGACY_SPREADSHEET_EXTENSIONS = {".xls"}


class CaseFormat(str, Enum):
    """Supported tabular encodings."""

    DELIMITED = "delimited"
    SPREADSHEET = "spreadsheet"


def infer_format(filename: str | Path) -> CaseFormat:
    """Infer the tabular encoding from a file name."""
    suffix = Path(filename).suffix.lower()
    if suffix in SPREADSHEET_EXTENSIONS:
        return CaseFormat.SPREADSHEET
    if suffix in DELIMITED_EXTENSIONS:
        return CaseFormat.DELIMITED
    if suffix in LEGACY_SPREADSHEET_EXTENSIONS:
        raise CaseImportError(
            f"Legacy '{suffix}' workbooks are not supported. "
            "Save the file as .xlsx or .csv and import it again."
        )
    raise CaseImportError(
        f"Unsupported file type '{suffix or filename}'. "
        f"Use one of: {', '.join(sorted(DELIMITED_EXTENSIONS | SPREADSHEET_EXTENSIONS))}"
    )


def detect_delimiter(
    header_line: str,
    candidates: Sequence[str] = DEFAULT_DELIMITERS,
) -> str:
    """Pick the first candidate delimiter that appears in the header line."""
    for delimiter in candidates:
        if delimiter in header_line:
            return delimiter
    return ","


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _rows_to_cases(rows: Iterable[Sequence[Any]]) -> list[TestCase]:
    """Turn raw rows into test cases, skipping the header and short rows."""
    cases: list[TestCase] = []
    for index, row in enumerate(rows):
        if index == 0:
            continue

        cells = list(row)
        while cells and cells[-1] is None:
            cells.pop()

        if len(cells) < 2:
            continue

        cases.append(
            TestCase(
                user_prompt=_cell_text(cells[0]),
                expected_output=_cell_text(cells[1]),
            )
        )
    return cases


def split_cases(cases: Sequence[TestCase], training_count: int) -> CaseSplit:
    """
    Split cases into training and testing sets.

    Rows [0, training_count) become training cases and the remainder
    testing cases, both in original order.

    Raises:
        CaseImportError: If training_count is negative
        EmptyDataset: If there are no cases
        InsufficientData: If there are fewer cases than training_count
    """
    if training_count < 0:
        raise CaseImportError(f"Training count must be zero or positive, got {training_count}")
    if not cases:
        raise EmptyDataset()
    if len(cases) < training_count:
        raise InsufficientData(available=len(cases), requested=training_count)

    return CaseSplit(
        training=[case.model_copy() for case in cases[:training_count]],
        testing=[case.model_copy() for case in cases[training_count:]],
    )


class CaseImporter:
    """
    Parses tabular files into test cases and splits them for training.

    The first column is the user prompt, the second the expected output.
    The first row is always treated as a header.

    Usage:
        importer = CaseImporter()
        split = importer.import_file(Path("cases.csv"), training_count=8)
        print(len(split.training), len(split.testing))
    """

    def __init__(self, delimiters: Sequence[str] = DEFAULT_DELIMITERS):
        self.delimiters = tuple(delimiters)

    def parse_delimited(self, content: str | bytes) -> list[TestCase]:
        """Parse delimited text, auto-detecting the delimiter from the header."""
        if isinstance(content, bytes):
            try:
                content = content.decode("utf-8-sig")
            except UnicodeDecodeError as e:
                raise CaseImportError(
                    f"Delimited file is not valid UTF-8 (byte {e.start}). "
                    "Re-save it with UTF-8 encoding."
                ) from e
        elif content.startswith("\ufeff"):
            content = content[1:]

        header_line = content.splitlines()[0] if content else ""
        delimiter = detect_delimiter(header_line, self.delimiters)
        logger.debug(f"Detected delimiter {delimiter!r}")

        try:
            reader = csv.reader(io.StringIO(content), delimiter=delimiter)
            return _rows_to_cases(reader)
        except csv.Error as e:
            raise CaseImportError(f"Malformed delimited file: {e}") from e

    def parse_spreadsheet(self, content: bytes) -> list[TestCase]:
        """Parse the first worksheet of an xlsx workbook."""
        from openpyxl import load_workbook

        try:
            workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
        except Exception as e:
            raise CaseImportError(f"Could not read spreadsheet: {e}") from e

        try:
            if not workbook.worksheets:
                return []
            worksheet = workbook.worksheets[0]
            return _rows_to_cases(worksheet.iter_rows(values_only=True))
        finally:
            workbook.close()

    def parse(self, content: str | bytes, format: CaseFormat | str) -> list[TestCase]:
        """Parse content in the given format into an ordered list of cases."""
        format = CaseFormat(format)
        if format == CaseFormat.SPREADSHEET:
            if isinstance(content, str):
                raise CaseImportError("Spreadsheet content must be bytes")
            return self.parse_spreadsheet(content)
        return self.parse_delimited(content)

    def import_cases(
        self,
        content: str | bytes,
        format: CaseFormat | str,
        training_count: int,
    ) -> CaseSplit:
        """
        Parse content and split it into training and testing sets.

        Raises:
            EmptyDataset: If no valid rows were parsed
            InsufficientData: If there are fewer rows than training_count
            CaseImportError: If the content could not be parsed at all
        """
        cases = self.parse(content, format)
        split = split_cases(cases, training_count)
        logger.info(
            f"Imported {split.total} test cases: "
            f"{len(split.training)} training, {len(split.testing)} testing"
        )
        return split

    def import_file(
        self,
        path: Path,
        training_count: int,
        format: Optional[CaseFormat | str] = None,
    ) -> CaseSplit:
        """Read a case file from disk and split it."""
        path = Path(path)
        format = CaseFormat(format) if format else infer_format(path)

        try:
            content = path.read_bytes()
        except OSError as e:
            raise CaseImportError(f"Could not read {path}: {e}") from e

        return self.import_cases(content, format, training_count)
