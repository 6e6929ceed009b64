# src/core/errors.py
from __future__ import annotations
from typing import Any, Dict, List, Optional


class ExplorerError(Exception):
    """Base class for errors raised by the analysis and project services."""


class NoColumnsError(ExplorerError):
    def __init__(self, message: str = "No columns detected. Is this a valid header CSV?"):
        super().__init__(message)


class CsvParseError(ExplorerError):
    def __init__(self, errors: List[Dict[str, Any]]):
        super().__init__("CSV parse error")
        self.errors = errors


class ExpressionMatrixError(ExplorerError):
    pass


class ValidationError(ExplorerError):
    pass


class ProjectNotFound(ExplorerError):
    def __init__(self, message: str = "Project not found", project_id: Optional[str] = None):
        super().__init__(message)
        self.project_id = project_id


class StorageError(ExplorerError):
    pass
