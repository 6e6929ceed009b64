from __future__ import annotations
from typing import Any, Dict, List, Optional
import json
import logging
import re
import time

from sqlalchemy import select
from sqlalchemy.engine import Engine

from src.core.errors import ProjectNotFound, ValidationError
from src.core.types import StoredFile, default_chart_config, summary_counts
from src.services.analyzer import summarize, DEFAULT_PREVIEW_ROWS, DEFAULT_TOP_N
from src.storage.db import create_db_engine, get_session_factory, init_db
from src.storage.models import Project
from src.storage.objects import LocalObjectStore, ObjectStore, S3ObjectStore
from src.utils.config import AppConfig

logger = logging.getLogger(__name__)

DEFAULT_PROJECT_NAME = "Untitled Project"
DEFAULT_FILENAME = "dataset.csv"
_UNSAFE = re.compile(r"[^a-zA-Z0-9._-]")


def safe_filename(name: Optional[str]) -> str:
    return _UNSAFE.sub("_", name or DEFAULT_FILENAME)


def parse_chart_config(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return default_chart_config()
    try:
        cfg = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Invalid chart_config JSON, using default")
        return default_chart_config()
    if not isinstance(cfg, dict):
        logger.warning("chart_config is not an object, using default")
        return default_chart_config()
    return cfg


class ProjectService:
    def __init__(self, engine: Engine, store: ObjectStore, preview_rows: int = DEFAULT_PREVIEW_ROWS, top_n: int = DEFAULT_TOP_N):
        self.engine = engine
        self.store = store
        self.preview_rows = preview_rows
        self.top_n = top_n
        self._sessions = get_session_factory(engine)
        init_db(engine)

    @staticmethod
    def from_config(cfg: AppConfig) -> "ProjectService":
        if cfg.storage_backend == "s3":
            store: ObjectStore = S3ObjectStore(cfg.s3_bucket, cfg.s3_prefix, endpoint_url=cfg.s3_endpoint_url)
        elif cfg.storage_backend == "local":
            store = LocalObjectStore(cfg.storage_dir)
        else:
            raise ValueError(f"unknown STORAGE_BACKEND: {cfg.storage_backend}")
        return ProjectService(
            create_db_engine(cfg.database_url),
            store,
            preview_rows=cfg.preview_rows,
            top_n=cfg.top_variable,
        )

    def list_projects(self) -> List[Dict[str, Any]]:
        with self._sessions() as session:
            rows = session.scalars(select(Project).order_by(Project.created_at.desc())).all()
            return [
                {
                    "id": p.id,
                    "name": p.name,
                    "original_filename": p.original_filename,
                    "created_at": p.created_at.isoformat() if p.created_at else None,
                    **summary_counts(p.dataset_summary),
                }
                for p in rows
            ]

    def create_project(self, name: Optional[str], dataset_summary: Optional[Dict[str, Any]], chart_config: Optional[Dict[str, Any]]) -> str:
        if not name or dataset_summary is None or chart_config is None:
            raise ValidationError("Missing name, dataset_summary, or chart_config.")
        return self._insert(Project(name=name, dataset_summary=dataset_summary, chart_config=chart_config))

    def get_project(self, project_id: str) -> Dict[str, Any]:
        with self._sessions() as session:
            p = session.get(Project, project_id)
            if p is None:
                raise ProjectNotFound(project_id=project_id)
            return p.to_dict()

    def upload_project(
        self,
        content: bytes,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
        name: Optional[str] = None,
        chart_config: Optional[str] = None,
    ) -> Dict[str, Any]:
        name = name or DEFAULT_PROJECT_NAME
        config = parse_chart_config(chart_config)
        # validate before anything is stored
        summary = summarize(content, preview_rows=self.preview_rows, top_n=self.top_n)

        storage_path = f"{int(time.time() * 1000)}_{safe_filename(filename)}"
        self.store.upload(storage_path, content, content_type=content_type or "text/csv")

        dataset_summary = {**summary.to_dict(), "originalName": filename, "storagePath": storage_path}
        project_id = self._insert(Project(
            name=name,
            dataset_summary=dataset_summary,
            chart_config=config,
            file_path=storage_path,
            original_filename=filename or None,
        ))
        return {"id": project_id, "storagePath": storage_path}

    def get_project_file(self, project_id: str) -> StoredFile:
        with self._sessions() as session:
            p = session.get(Project, project_id)
            if p is None or not p.file_path:
                raise ProjectNotFound("File not found for this project", project_id=project_id)
            file_path, filename = p.file_path, p.original_filename
        return StoredFile(content=self.store.download(file_path), filename=filename or DEFAULT_FILENAME)

    def _insert(self, project: Project) -> str:
        with self._sessions() as session, session.begin():
            session.add(project)
            session.flush()
            project_id = project.id
        logger.info("saved project %s", project_id, extra={"project_id": project_id})
        return project_id
