# src/reports/report.py
from __future__ import annotations
from jinja2 import Template

from src.core.types import DatasetSummary

MD_TMPL = Template("""
# {{ title }}

**Rows:** {{ s.row_count }} · **Columns:** {{ s.column_count }} · **Numeric columns:** {{ s.numeric_column_count }}

## Missing values
{% if missing %}
| Column | Missing |
| --- | ---: |
{% for col, n in missing %}| {{ col }} | {{ n }} |
{% endfor %}
{% else %}
No missing values.
{% endif %}

## Top variable features
{% if s.top_variable %}
| Feature | Variance | Mean | n |
| --- | ---: | ---: | ---: |
{% for t in s.top_variable %}| {{ t.feature }} | {{ "%.4g"|format(t.variance) }} | {{ "%.4g"|format(t.mean) }} | {{ t.n }} |
{% endfor %}
{% else %}
No numeric columns detected.
{% endif %}
""")


def render_summary(summary: DatasetSummary, title: str = "Dataset summary") -> str:
    missing = [(c, n) for c, n in summary.missing_by_column.items() if n]
    return MD_TMPL.render(title=title, s=summary, missing=missing).strip() + "\n"
