from __future__ import annotations
import csv
import io
import logging
import math
import re
import sys
from typing import Dict, List, Optional, Sequence
import pandas as pd

from src.core.errors import CsvParseError, NoColumnsError
from src.core.types import ColumnStats, DatasetSummary, TopFeature

logger = logging.getLogger(__name__)

MAX_REPORTED_ERRORS = 3
DEFAULT_PREVIEW_ROWS = 10
DEFAULT_TOP_N = 10

_DECIMAL = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
_PREFIXED = re.compile(r"^0([xX][0-9a-fA-F]+|[oO][0-7]+|[bB][01]+)$")

# cells are bounded by the upload size limit, not by the csv module default
csv.field_size_limit(2**31 - 1)


def _decode(data: bytes | str) -> str:
    if isinstance(data, bytes):
        return data.decode("utf-8-sig", errors="replace")
    return data.lstrip("\ufeff")


def _dedupe(header: Sequence[str]) -> List[str]:
    seen: Dict[str, int] = {}
    out: List[str] = []
    for name in header:
        if name in seen:
            seen[name] += 1
            candidate = f"{name}_{seen[name]}"
            while candidate in seen:
                seen[name] += 1
                candidate = f"{name}_{seen[name]}"
            seen[candidate] = 0
            out.append(candidate)
        else:
            seen[name] = 0
            out.append(name)
    return out


def read_table(data: bytes | str, strict: bool = True) -> pd.DataFrame:
    """Parse header CSV into a DataFrame of raw strings.

    Every cell is kept as text; blank lines are skipped. In strict mode rows whose
    field count differs from the header raise ``CsvParseError``; otherwise short
    rows are padded with "" and long rows are dropped.
    """
    reader = csv.reader(io.StringIO(_decode(data), newline=""))
    try:
        header = next((r for r in reader if r), None)
        if header is None:
            raise NoColumnsError()
        columns = _dedupe(header)
        width = len(columns)
        rows: List[List[str]] = []
        errors: List[dict] = []
        for line in reader:
            if not line:
                continue
            if not strict and all(not c.strip() for c in line):
                continue
            if len(line) != width:
                code = "TooFewFields" if len(line) < width else "TooManyFields"
                if strict:
                    errors.append({
                        "type": "FieldMismatch",
                        "code": code,
                        "message": f"Too {'few' if len(line) < width else 'many'} fields: expected {width} fields but parsed {len(line)}",
                        "row": len(rows) + len(errors),
                    })
                    continue
                if len(line) > width:
                    logger.debug("dropping row with %d fields (expected %d)", len(line), width)
                    continue
                line = line + [""] * (width - len(line))
            rows.append(line)
    except csv.Error as exc:
        if "field larger than field limit" in str(exc):
            err = {"type": "FieldSize", "code": "FieldTooLarge", "message": str(exc), "row": None}
        else:
            err = {"type": "Quotes", "code": "InvalidQuotes", "message": str(exc), "row": None}
        raise CsvParseError([err]) from exc
    if errors:
        raise CsvParseError(errors[:MAX_REPORTED_ERRORS])
    return pd.DataFrame(rows, columns=columns, dtype=object)


def to_number(value: object) -> Optional[float]:
    """Return the finite float a cell spells, or None."""
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        out = float(value)
        return out if math.isfinite(out) else None
    s = str(value).strip()
    if not s:
        return None
    if _DECIMAL.match(s):
        out = float(s)
    elif _PREFIXED.match(s):
        out = float(int(s, 0))
    else:
        return None
    return out if math.isfinite(out) else None


def is_number(value: object) -> bool:
    return to_number(value) is not None


def count_missing(frame: pd.DataFrame, columns: Sequence[str]) -> Dict[str, int]:
    out: Dict[str, int] = {}
    for col in columns:
        cells = frame[col].fillna("").astype(str).str.strip()
        out[col] = int(cells.eq("").sum())
    return out


def numeric_values(frame: pd.DataFrame, column: str) -> pd.Series:
    """Numeric cells of ``column`` as floats; non-numeric cells are NaN."""
    return frame[column].map(to_number).astype(float)


def numeric_columns(frame: pd.DataFrame, columns: Sequence[str]) -> List[str]:
    return [c for c in columns if numeric_values(frame, c).notna().any()]


def column_stats(frame: pd.DataFrame, column: str) -> Optional[ColumnStats]:
    values = numeric_values(frame, column).dropna()
    n = int(values.size)
    if n == 0:
        return None
    # scaled two-pass population variance; squares of large cells would overflow
    scale = float(values.abs().max())
    if scale == 0.0:
        return ColumnStats(n=n, mean=0.0, variance=0.0)
    scaled = values / scale
    mean_s = math.fsum(scaled) / n
    var_s = math.fsum((scaled - mean_s) ** 2) / n
    mean = mean_s * scale
    variance = max(0.0, var_s * scale * scale)
    if not math.isfinite(variance):
        logger.warning("variance of %s exceeds float range, clamping", column)
        variance = sys.float_info.max
    return ColumnStats(n=n, mean=mean, variance=variance)


def top_variable(stats: Dict[str, ColumnStats], limit: int = DEFAULT_TOP_N) -> List[TopFeature]:
    ranked = sorted(stats.items(), key=lambda kv: kv[1].variance, reverse=True)
    return [TopFeature(feature=c, variance=s.variance, mean=s.mean, n=s.n) for c, s in ranked[:limit]]


def summarize(data: bytes | str, preview_rows: int = DEFAULT_PREVIEW_ROWS, top_n: int = DEFAULT_TOP_N) -> DatasetSummary:
    frame = read_table(data, strict=True)
    columns = [str(c) for c in frame.columns]
    if not columns:
        raise NoColumnsError()

    missing = count_missing(frame, columns)
    numeric = numeric_columns(frame, columns)
    stats: Dict[str, ColumnStats] = {}
    for col in numeric:
        s = column_stats(frame, col)
        if s is not None:
            stats[col] = s

    preview = frame.head(preview_rows).to_dict(orient="records")
    summary = DatasetSummary(
        row_count=int(len(frame)),
        columns=columns,
        missing_by_column=missing,
        numeric_column_count=len(numeric),
        top_variable=top_variable(stats, top_n),
        preview=[{str(k): v for k, v in r.items()} for r in preview],
    )
    logger.info("summarized csv: %d rows, %d columns, %d numeric", summary.row_count, summary.column_count, summary.numeric_column_count)
    return summary
