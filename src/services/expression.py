# src/services/expression.py
"""Gene x sample view of an uploaded expression CSV (table, bar chart, heatmap)."""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import math
import pandas as pd

from src.core.errors import ExpressionMatrixError
from src.services.analyzer import numeric_values, read_table

GENE_COLUMN = "Gene"
TABLE_ROW_LIMIT = 200


@dataclass
class ExpressionMatrix:
    genes: List[str]
    samples: List[str]
    values: pd.DataFrame  # index: row position, columns: samples, NaN for missing

    @property
    def shape(self) -> tuple[int, int]:
        return len(self.genes), len(self.samples)

    def resolve_sample(self, preferred: Optional[str] = None) -> str:
        if preferred and preferred in self.samples:
            return preferred
        return self.samples[0]

    def sample_values(self, sample: str) -> pd.Series:
        if sample not in self.samples:
            raise ExpressionMatrixError(f"Unknown sample column: {sample}")
        out = self.values[sample].copy()
        out.index = pd.Index(self.genes, name=GENE_COLUMN)
        return out

    def heatmap(self) -> List[List[Optional[float]]]:
        return [[_cell(v) for v in row] for row in self.values.itertuples(index=False, name=None)]

    def records(self, limit: int = TABLE_ROW_LIMIT) -> List[Dict[str, Any]]:
        out: List[Dict[str, Any]] = []
        for gene, row in zip(self.genes[:limit], self.values.head(limit).itertuples(index=False, name=None)):
            rec: Dict[str, Any] = {GENE_COLUMN: gene}
            rec.update({s: _cell(v) for s, v in zip(self.samples, row)})
            out.append(rec)
        return out


def _cell(v: Any) -> Optional[float]:
    if v is None:
        return None
    f = float(v)
    return f if math.isfinite(f) else None


def parse_expression_matrix(data: bytes | str) -> ExpressionMatrix:
    frame = read_table(data, strict=False)
    if GENE_COLUMN not in frame.columns:
        raise ExpressionMatrixError("Missing required 'Gene' column.")

    genes = frame[GENE_COLUMN].astype(str).str.strip()
    frame = frame[genes.ne("")].reset_index(drop=True)
    if frame.empty:
        raise ExpressionMatrixError("No valid rows found. Ensure first column is 'Gene'.")

    candidates = [c for c in frame.columns if c != GENE_COLUMN]
    parsed = {c: numeric_values(frame, c) for c in candidates}
    samples = [c for c in candidates if parsed[c].notna().any()]
    if not samples:
        raise ExpressionMatrixError("No numeric sample columns detected.")

    values = pd.DataFrame({c: parsed[c] for c in samples}, columns=samples)
    return ExpressionMatrix(genes=frame[GENE_COLUMN].astype(str).tolist(), samples=samples, values=values)
