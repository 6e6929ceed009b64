"""SQLAlchemy model for saved projects.

A project is an uploaded CSV (kept in the object store under ``file_path``), the
summary computed from it, and the chart selection the user had when saving.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, Index, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    original_filename: Mapped[str | None] = mapped_column(String(500), nullable=True)
    file_path: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    dataset_summary: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    chart_config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)

    __table_args__ = (
        Index("ix_projects_created_at", "created_at"),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "original_filename": self.original_filename,
            "file_path": self.file_path,
            "dataset_summary": self.dataset_summary,
            "chart_config": self.chart_config,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
