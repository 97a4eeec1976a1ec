"""
parser.py — CSV, Excel and ODS ingestion of attendance exports.

Supports:
- CSV files separated by ';' or ','
- Excel (.xlsx, .xls) and ODS, every non-empty sheet
- German and English column headers
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from analyzer.dates import parse_date
from analyzer.models import AttendanceRecord

logger = logging.getLogger(__name__)

SAMPLE_DATA_DIR = Path(__file__).parent.parent / "sample_data"

# Record field -> accepted header spellings (lowercased)
COLUMN_ALIASES = {
    "surname": ["langname", "nachname", "surname", "last name", "last_name"],
    "given_name": ["vorname", "given name", "given_name", "first name", "first_name"],
    "class_name": ["klasse", "class", "klasse/kurs", "class_name"],
    "start_date": ["beginndatum", "datum", "start date", "start_date", "von"],
    "end_date": ["enddatum", "end date", "end_date", "bis"],
    "begin_time": ["beginnzeit", "begin time", "begin_time", "start time"],
    "end_time": ["endzeit", "end time", "end_time"],
    "absence_reason": ["abwesenheitsgrund", "grund", "reason", "absence reason", "absence_reason"],
    "note": ["text/grund", "text", "bemerkung", "note", "notes", "comment"],
    "status": ["status", "entschuldigungsstatus", "excuse status"],
}

REQUIRED_FIELDS = ("surname", "given_name", "start_date")


def _read_sheets(xls: pd.ExcelFile, kind: str) -> Dict[str, pd.DataFrame]:
    sheets = {}
    for sheet_name in xls.sheet_names:
        df = pd.read_excel(xls, sheet_name=sheet_name, dtype=str)
        if not df.empty and len(df.columns) > 1:
            sheets[sheet_name] = df
    if not sheets:
        raise ValueError(f"No valid sheets found in the {kind} file.")
    return sheets


def _detect_separator(file_path: str) -> str:
    """';' for German exports, ',' otherwise."""
    with open(file_path, encoding="utf-8-sig") as fh:
        header = fh.readline()
    return ";" if header.count(";") >= header.count(",") and ";" in header else ","


def parse_upload(file_path: str) -> Dict[str, pd.DataFrame]:
    """
    Parse an attendance export and return {sheet_name: DataFrame}.
    CSV files come back as {"Sheet1": df}. All cells are read as strings.
    """
    path = Path(file_path)
    ext = path.suffix.lower()

    if ext == ".csv":
        df = pd.read_csv(file_path, dtype=str, sep=_detect_separator(file_path), encoding="utf-8-sig")
        return {"Sheet1": df}
    elif ext in (".xlsx", ".xls"):
        engine = "openpyxl" if ext == ".xlsx" else "xlrd"
        return _read_sheets(pd.ExcelFile(file_path, engine=engine), "Excel")
    elif ext == ".ods":
        return _read_sheets(pd.ExcelFile(file_path, engine="odf"), "ODS")
    else:
        raise ValueError(f"Unsupported file type: {ext}")


def suggest_column_mapping(df: pd.DataFrame) -> Dict[str, Optional[str]]:
    """
    Map record fields to actual column names.
    Returns: { field: actual_column_name_or_None }
    """
    cols_lower = {str(c).lower().strip(): c for c in df.columns}
    mapping: Dict[str, Optional[str]] = {}
    for field, aliases in COLUMN_ALIASES.items():
        mapping[field] = next((cols_lower[a] for a in aliases if a in cols_lower), None)
    return mapping


def _cell(row: pd.Series, column: Optional[str]) -> str:
    if column is None:
        return ""
    value = row[column]
    if pd.isna(value):
        return ""
    return str(value).strip()


def records_from_dataframe(df: pd.DataFrame) -> List[AttendanceRecord]:
    """
    Build AttendanceRecord values from a parsed sheet.
    Rows with an unreadable start date keep start_date=None and are dropped
    later by the classifier.
    """
    mapping = suggest_column_mapping(df)
    missing = [f for f in REQUIRED_FIELDS if mapping[f] is None]
    if missing:
        raise ValueError(f"Missing required columns: {', '.join(missing)}")

    records = []
    for _, row in df.iterrows():
        start_raw = _cell(row, mapping["start_date"])
        start = parse_date(start_raw)
        if start is None and start_raw:
            logger.warning("Unparsable start date %r for %s, %s", start_raw,
                           _cell(row, mapping["surname"]), _cell(row, mapping["given_name"]))
        records.append(AttendanceRecord(
            surname=_cell(row, mapping["surname"]),
            given_name=_cell(row, mapping["given_name"]),
            class_name=_cell(row, mapping["class_name"]),
            start_date=start,
            end_date=parse_date(_cell(row, mapping["end_date"])),
            begin_time=_cell(row, mapping["begin_time"]),
            end_time=_cell(row, mapping["end_time"]),
            status=_cell(row, mapping["status"]),
            absence_reason=_cell(row, mapping["absence_reason"]),
            note=_cell(row, mapping["note"]),
        ))
    logger.info("Read %d attendance records", len(records))
    return records


def load_records(file_path: str) -> List[AttendanceRecord]:
    """All records from every sheet of an export."""
    records: List[AttendanceRecord] = []
    for sheet_name, df in parse_upload(file_path).items():
        logger.debug("Reading sheet %s (%d rows)", sheet_name, len(df))
        records.extend(records_from_dataframe(df))
    return records
