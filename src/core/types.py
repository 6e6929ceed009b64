# src/core/types.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class ColumnStats:
    n: int
    mean: float
    variance: float


@dataclass(frozen=True)
class TopFeature:
    feature: str
    variance: float
    mean: float
    n: int

    def to_dict(self) -> Dict[str, Any]:
        return {"feature": self.feature, "variance": self.variance, "mean": self.mean, "n": self.n}


@dataclass
class DatasetSummary:
    row_count: int
    columns: List[str]
    missing_by_column: Dict[str, int]
    numeric_column_count: int
    top_variable: List[TopFeature] = field(default_factory=list)
    preview: List[Dict[str, str]] = field(default_factory=list)

    @property
    def column_count(self) -> int:
        return len(self.columns)

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation (camelCase keys, as stored with projects)."""
        return {
            "rowCount": self.row_count,
            "columnCount": self.column_count,
            "columns": list(self.columns),
            "missingByColumn": dict(self.missing_by_column),
            "numericColumnCount": self.numeric_column_count,
            "topVariable": [t.to_dict() for t in self.top_variable],
            "preview": [dict(r) for r in self.preview],
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "DatasetSummary":
        return DatasetSummary(
            row_count=int(data.get("rowCount") or 0),
            columns=list(data.get("columns") or []),
            missing_by_column=dict(data.get("missingByColumn") or {}),
            numeric_column_count=int(data.get("numericColumnCount") or 0),
            top_variable=[TopFeature(**t) for t in data.get("topVariable") or []],
            preview=list(data.get("preview") or []),
        )


@dataclass
class StoredFile:
    content: bytes
    filename: str
    content_type: str = "text/csv"


ChartConfig = Dict[str, Any]
DEFAULT_CHART_CONFIG: ChartConfig = {"selectedSample": None}


def default_chart_config() -> ChartConfig:
    return dict(DEFAULT_CHART_CONFIG)


def summary_counts(summary: Optional[Dict[str, Any]]) -> Dict[str, Optional[int]]:
    summary = summary or {}
    return {"rowCount": summary.get("rowCount"), "columnCount": summary.get("columnCount")}
