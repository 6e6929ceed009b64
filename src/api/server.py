from __future__ import annotations
from functools import lru_cache
from typing import Any, Optional
import logging, time

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, File, Form, Header, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from prometheus_client import Counter, Histogram, generate_latest
from pydantic import BaseModel

from src.core.errors import CsvParseError, NoColumnsError, ProjectNotFound, ValidationError
from src.services.analyzer import summarize
from src.services.projects import ProjectService, safe_filename
from src.utils.config import AppConfig
from src.utils.logging import new_request_id, setup_logging

load_dotenv()

REQUESTS = Counter("api_requests_total", "Total API requests", ["path", "method", "status"])
LATENCY = Histogram("api_request_latency_seconds", "Request latency", ["path"])

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    return AppConfig.load()


@lru_cache(maxsize=1)
def get_project_service() -> ProjectService:
    return ProjectService.from_config(get_config())


class ApiError(Exception):
    def __init__(self, status_code: int, error: str, details: Any = None):
        super().__init__(error)
        self.status_code = status_code
        self.error = error
        self.details = details


class ProjectIn(BaseModel):
    name: Optional[str] = None
    dataset_summary: Optional[dict[str, Any]] = None
    chart_config: Optional[dict[str, Any]] = None


def _error_body(error: str, details: Any = None) -> dict:
    body: dict[str, Any] = {"error": error}
    if details is not None:
        body["details"] = details
    return body


def create_app(cfg: AppConfig | None = None) -> FastAPI:
    cfg = cfg or get_config()
    setup_logging(cfg.log_level, json_format=cfg.log_json)

    app = FastAPI(title="Expression Explorer API")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(cfg.cors_origins),
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ApiError)
    async def _api_error(request: Request, exc: ApiError):
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc.error, exc.details))

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content=_error_body("Invalid request", jsonable_encoder(exc.errors())))

    @app.middleware("http")
    async def _observe(request: Request, call_next):
        request_id = new_request_id()
        start = time.time()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            elapsed = time.time() - start
            route = request.scope.get("route")
            path = getattr(route, "path", request.url.path)
            LATENCY.labels(path=path).observe(elapsed)
            REQUESTS.labels(path=path, method=request.method, status=str(status)).inc()
            logger.info(
                "%s %s -> %s", request.method, request.url.path, status,
                extra={"request_id": request_id, "path": path, "method": request.method,
                       "status": status, "elapsed_ms": int(elapsed * 1000)},
            )

    def require_api_key(x_api_key: str | None = Header(default=None, alias="X-API-Key")) -> None:
        if cfg.api_key and x_api_key != cfg.api_key:
            raise ApiError(401, "invalid api key")

    async def read_upload(file: UploadFile | None, missing_message: str) -> bytes:
        if file is None:
            raise ApiError(400, missing_message)
        content = await file.read()
        if len(content) > cfg.max_upload_bytes:
            raise ApiError(413, "File too large", f"limit is {cfg.max_upload_mb} MB")
        return content

    @app.get("/api/health")
    def health():
        return {"ok": True}

    @app.post("/api/analyze", dependencies=[Depends(require_api_key)])
    async def analyze(file: UploadFile | None = File(default=None)):
        content = await read_upload(file, "No file uploaded. Use field name 'file'.")
        logger.info("analyze upload", extra={"bytes": len(content)})
        try:
            summary = await run_in_threadpool(summarize, content, preview_rows=cfg.preview_rows, top_n=cfg.top_variable)
            return summary.to_dict()
        except CsvParseError as e:
            raise ApiError(400, "CSV parse error", e.errors) from e
        except NoColumnsError as e:
            raise ApiError(400, str(e)) from e
        except Exception as e:
            logger.exception("analyze failed")
            raise ApiError(500, "Server error", str(e)) from e

    @app.get("/api/projects", dependencies=[Depends(require_api_key)])
    def list_projects(service: ProjectService = Depends(get_project_service)):
        try:
            return service.list_projects()
        except Exception as e:
            logger.exception("list projects failed")
            raise ApiError(500, "Failed to list projects", str(e)) from e

    @app.post("/api/projects", dependencies=[Depends(require_api_key)])
    def create_project(body: ProjectIn, service: ProjectService = Depends(get_project_service)):
        try:
            project_id = service.create_project(body.name, body.dataset_summary, body.chart_config)
        except ValidationError as e:
            raise ApiError(400, str(e)) from e
        except Exception as e:
            logger.exception("save project failed")
            raise ApiError(500, "Failed to save project", str(e)) from e
        return {"id": project_id}

    @app.post("/api/projects/upload", dependencies=[Depends(require_api_key)])
    async def upload_project(
        file: UploadFile | None = File(default=None),
        name: str | None = Form(default=None),
        chart_config: str | None = Form(default=None),
        service: ProjectService = Depends(get_project_service),
    ):
        content = await read_upload(file, "No file uploaded (field name must be 'file').")
        try:
            return await run_in_threadpool(
                service.upload_project,
                content,
                filename=file.filename,
                content_type=file.content_type,
                name=name,
                chart_config=chart_config,
            )
        except CsvParseError as e:
            raise ApiError(400, "CSV parse error", e.errors) from e
        except NoColumnsError as e:
            raise ApiError(400, str(e)) from e
        except Exception as e:
            logger.exception("upload project failed")
            raise ApiError(500, "Failed to upload project", str(e)) from e

    @app.get("/api/projects/{project_id}", dependencies=[Depends(require_api_key)])
    def get_project(project_id: str, service: ProjectService = Depends(get_project_service)):
        try:
            return service.get_project(project_id)
        except ProjectNotFound as e:
            raise ApiError(404, str(e)) from e
        except Exception as e:
            logger.exception("load project failed")
            raise ApiError(500, "Failed to load project", str(e)) from e

    @app.get("/api/projects/{project_id}/file", dependencies=[Depends(require_api_key)])
    def get_project_file(project_id: str, service: ProjectService = Depends(get_project_service)):
        try:
            stored = service.get_project_file(project_id)
        except ProjectNotFound as e:
            raise ApiError(404, str(e)) from e
        except Exception as e:
            logger.exception("fetch file failed")
            raise ApiError(500, "Failed to fetch file", str(e)) from e
        filename = stored.filename if stored.filename.isascii() else safe_filename(stored.filename)
        filename = filename.replace('"', "_")
        return Response(
            content=stored.content,
            media_type="text/csv",
            headers={"Content-Disposition": f'inline; filename="{filename}"'},
        )

    @app.get("/metrics")
    def metrics():
        return PlainTextResponse(generate_latest(), media_type="text/plain; version=0.0.4; charset=utf-8")

    return app


app = create_app()
