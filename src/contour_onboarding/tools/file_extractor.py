"""File ingestion collaborator.

PDF and image parsing lives behind ``FileExtractor``. ``BasicFileExtractor``
reads spreadsheets (CSV and Excel workbooks) through pandas, plus JSON and
plain text.
"""

from __future__ import annotations

import io
import json
import logging
import re
import zipfile
from pathlib import Path
from typing import Any, Protocol

import pandas as pd
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

MAX_TEXT_CHARS = 20_000
MAX_ROWS = 200
HEADER_SCAN_ROWS = 10

XLSX_MIME_TYPES = (
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-excel.sheet.macroEnabled.12",
)
XLSX_SUFFIXES = (".xlsx", ".xlsm")

DIMENSION_KEYWORDS = [
    "cost center", "cost_center", "costcenter",
    "department", "dept",
    "division",
    "region", "geography", "country", "location",
    "legal entity", "legal_entity", "company", "entity",
    "business unit", "segment",
    "profit center", "profit_center", "profitcenter",
]

_CODE_RE = re.compile(r"^\d{3,}$")
_NUMBER_RE = re.compile(r"^-?\d+(\.\d+)?$")


class FileExtraction(BaseModel):
    extracted_data: dict[str, Any] = Field(default_factory=dict)
    summary: str = ""


class FileExtractor(Protocol):
    def extract(self, filename: str, mime_type: str, data: bytes) -> FileExtraction: ...


def extract_safely(extractor: FileExtractor, filename: str, mime_type: str, data: bytes) -> FileExtraction:
    """Run *extractor*, turning any failure into an empty extraction."""
    try:
        return extractor.extract(filename, mime_type, data)
    except Exception as exc:
        logger.warning("File extraction failed for %s: %s", filename, exc)
        return FileExtraction(summary=f"Could not read {filename}")


def detect_dimensions(headers: list[str]) -> list[str]:
    """Headers that look like organizational dimensions."""
    found = []
    for header in headers:
        lower = header.strip().lower()
        if any(keyword in lower for keyword in DIMENSION_KEYWORDS):
            found.append(header)
    return found


def detect_hierarchies(headers: list[str], rows: list[list[str]]) -> list[dict[str, Any]]:
    """Numeric code columns that nest by prefix, e.g. 4100 over 4110 and 4120."""
    hierarchies = []
    for col in range(len(headers)):
        values = list(dict.fromkeys(
            row[col] for row in rows if col < len(row) and _CODE_RE.match(row[col])
        ))
        if len(values) < 3:
            continue
        groups: dict[str, list[str]] = {}
        for value in values:
            if len(value) >= 4:
                groups.setdefault(value[:-2], []).append(value)
        for prefix, members in groups.items():
            parent = prefix + "00"
            if len(members) >= 2 and parent in values:
                children = [m for m in members if m != parent]
                if children:
                    hierarchies.append({"column": headers[col], "parent": parent, "children": children})
    return hierarchies


def find_header_row(rows: list[list[str]]) -> int:
    """First of the leading rows where at least half the cells are labels."""
    for index, row in enumerate(rows[:HEADER_SCAN_ROWS]):
        if len(row) < 2:
            continue
        labels = [c for c in row if c and not _NUMBER_RE.match(c)]
        if len(labels) >= len(row) * 0.5:
            return index
    return 0


def _cell(value: Any) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _rows(frame: pd.DataFrame) -> list[list[str]]:
    """Frame values as string rows with trailing blanks dropped."""
    rows = []
    for values in frame.itertuples(index=False, name=None):
        row = [_cell(v) for v in values]
        while row and not row[-1]:
            row.pop()
        rows.append(row)
    return rows


class BasicFileExtractor:
    """Spreadsheet, JSON and text extraction."""

    def extract(self, filename: str, mime_type: str, data: bytes) -> FileExtraction:
        suffix = Path(filename).suffix.lower()
        try:
            if mime_type in XLSX_MIME_TYPES or suffix in XLSX_SUFFIXES:
                return self._workbook(filename, data)
            if mime_type == "text/csv" or suffix == ".csv":
                return self._csv(filename, data)
            if mime_type == "application/json" or suffix == ".json":
                return self._json(filename, data)
            if mime_type.startswith("text/") or suffix in (".txt", ".md"):
                return self._text(filename, data)
        except (UnicodeDecodeError, ValueError, zipfile.BadZipFile) as exc:
            logger.warning("Could not extract %s: %s", filename, exc)
            return FileExtraction(summary=f"Could not read {filename}: {exc}")
        return FileExtraction(
            extracted_data={"unsupported": True},
            summary=f"{filename}: {mime_type} content is not extracted automatically",
        )

    def _text(self, filename: str, data: bytes) -> FileExtraction:
        text = data.decode("utf-8-sig")
        truncated = len(text) > MAX_TEXT_CHARS
        return FileExtraction(
            extracted_data={"text": text[:MAX_TEXT_CHARS], "truncated": truncated},
            summary=f"{filename}: {len(text)} characters of text",
        )

    def _json(self, filename: str, data: bytes) -> FileExtraction:
        parsed = json.loads(data.decode("utf-8-sig"))
        return FileExtraction(extracted_data={"data": parsed}, summary=f"{filename}: JSON document")

    def _csv(self, filename: str, data: bytes) -> FileExtraction:
        text = data.decode("utf-8-sig")
        if not text.strip():
            return self._table(filename, [])
        # Ragged rows (a title line above the header) need explicit column names.
        width = max(line.count(",") + 1 for line in text.splitlines())
        frame = pd.read_csv(
            io.StringIO(text),
            header=None,
            names=list(range(width)),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
        return self._table(filename, _rows(frame))

    def _workbook(self, filename: str, data: bytes) -> FileExtraction:
        with pd.ExcelFile(io.BytesIO(data), engine="openpyxl") as workbook:
            sheets = workbook.sheet_names
            frame = workbook.parse(sheets[0], header=None, dtype=object)
        logger.debug("Workbook %s sheets: %s", filename, sheets)
        return self._table(filename, _rows(frame), sheet_count=len(sheets))

    def _table(self, filename: str, rows: list[list[str]], sheet_count: int | None = None) -> FileExtraction:
        rows = [row for row in rows if any(c for c in row)]
        if not rows:
            return FileExtraction(
                extracted_data={
                    "headers": [], "rows": [], "row_count": 0,
                    "detected_dimensions": [], "detected_hierarchies": [],
                },
                summary=f"Empty spreadsheet: {filename}",
            )
        header_index = find_header_row(rows)
        headers = rows[header_index]
        body = rows[header_index + 1:]
        dimensions = detect_dimensions(headers)
        hierarchies = detect_hierarchies(headers, body)

        summary = f"{filename}: "
        if sheet_count is not None:
            summary += f"{sheet_count} sheet(s), "
        summary += f"{len(body)} rows, columns {', '.join(headers)}"
        if dimensions:
            summary += f"; possible dimensions: {', '.join(dimensions)}"
        for found in hierarchies:
            summary += f"; {found['column']} codes nest under {found['parent']}"
        return FileExtraction(
            extracted_data={
                "headers": headers,
                "rows": body[:MAX_ROWS],
                "row_count": len(body),
                "detected_dimensions": dimensions,
                "detected_hierarchies": hierarchies,
            },
            summary=summary,
        )
