# Streamlit UI: upload an expression CSV, explore it, save / reopen projects
import json
import matplotlib.pyplot as plt
import streamlit as st
from dotenv import load_dotenv

from src.core.errors import ExplorerError
from src.core.types import DatasetSummary
from src.reports.report import render_summary
from src.services.analyzer import summarize
from src.services.expression import TABLE_ROW_LIMIT, parse_expression_matrix
from src.services.projects import ProjectService
from src.utils.config import AppConfig

load_dotenv()
cfg = AppConfig.load()


@st.cache_resource
def get_service() -> ProjectService:
    return ProjectService.from_config(cfg)


def _load(content: bytes, filename: str, summary=None, selected=None, project_id=None):
    matrix = parse_expression_matrix(content)
    st.session_state.update(
        content=content,
        filename=filename,
        summary=summary or summarize(content, preview_rows=cfg.preview_rows, top_n=cfg.top_variable).to_dict(),
        matrix=matrix,
        sample=matrix.resolve_sample(selected),
        project_id=project_id,
    )


st.set_page_config(page_title="Expression Explorer", layout="wide")
st.title("Gene Expression Explorer")

with st.sidebar:
    st.header("Dataset")
    up = st.file_uploader("Upload your gene expression CSV", type=["csv"])
    if up is not None and st.session_state.get("upload_id") != up.file_id:
        st.session_state["upload_id"] = up.file_id
        try:
            _load(up.getvalue(), up.name)
        except ExplorerError as e:
            st.session_state.pop("matrix", None)
            st.error(str(e) or "Failed to parse CSV.")

    st.header("Projects")
    search = st.text_input("Search by name")
    try:
        projects = [p for p in get_service().list_projects() if search.strip().lower() in (p["name"] or "").lower()]
    except Exception as e:
        projects = []
        st.error(f"Failed to load projects: {e}")
    labels = {
        p["id"]: f"{p['name'] or p['original_filename'] or p['id']} · {'?' if p['rowCount'] is None else p['rowCount']} rows · {'?' if p['columnCount'] is None else p['columnCount']} cols"
        for p in projects
    }
    if labels:
        chosen = st.selectbox("Open existing project", list(labels), format_func=labels.get)
        if st.button("Open"):
            try:
                meta = get_service().get_project(chosen)
                stored = get_service().get_project_file(chosen)
                _load(
                    stored.content,
                    stored.filename,
                    summary=meta.get("dataset_summary"),
                    selected=(meta.get("chart_config") or {}).get("selectedSample"),
                    project_id=chosen,
                )
            except ExplorerError as e:
                st.error(str(e))
    else:
        st.caption("No saved projects yet.")

matrix = st.session_state.get("matrix")
if matrix is None:
    st.info("Upload a CSV with a 'Gene' column and one column per sample.")
    st.stop()

genes, samples = matrix.shape
st.subheader(f"Loaded {genes:,} genes · {samples} samples")

cols = st.columns([3, 1])
with cols[0]:
    sample = st.selectbox("Sample", matrix.samples, index=matrix.samples.index(st.session_state["sample"]))
    st.session_state["sample"] = sample
with cols[1]:
    if st.button("Save project", use_container_width=True):
        try:
            out = get_service().upload_project(
                st.session_state["content"],
                filename=st.session_state["filename"],
                name=st.session_state["filename"],
                chart_config=json.dumps({"selectedSample": sample, "columns": ["Gene", *matrix.samples]}),
            )
            st.session_state["project_id"] = out["id"]
            st.success("Saved")
        except ExplorerError as e:
            st.error(f"Failed to save project: {e}")

with st.expander("Summary", expanded=False):
    st.markdown(render_summary(DatasetSummary.from_dict(st.session_state["summary"]), title=st.session_state["filename"]))

st.subheader("Data Table")
st.dataframe(matrix.records(TABLE_ROW_LIMIT), use_container_width=True, height=360)
if genes > TABLE_ROW_LIMIT:
    st.caption(f"Showing first {TABLE_ROW_LIMIT} rows.")

st.subheader(f"Gene Expression: {sample}")
st.bar_chart(matrix.sample_values(sample), color="#0A1F44")

st.subheader("Heatmap of Gene Expression")
fig, ax = plt.subplots(figsize=(max(6, samples * 0.6), max(4, min(genes, 80) * 0.15)))
im = ax.imshow(matrix.values.to_numpy(dtype=float), aspect="auto", cmap="Blues", interpolation="nearest")
ax.set_xticks(range(samples), labels=matrix.samples, rotation=45, ha="right")
if genes <= 80:
    ax.set_yticks(range(genes), labels=matrix.genes)
else:
    ax.set_yticks([])
ax.set_xlabel("Samples")
ax.set_ylabel("Genes")
fig.colorbar(im, ax=ax)
st.pyplot(fig)
