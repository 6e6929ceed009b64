import dataclasses

import pytest
from fastapi.testclient import TestClient

from src.api.server import create_app, get_config, get_project_service
from src.services.projects import ProjectService
from src.storage.db import create_db_engine
from src.storage.objects import LocalObjectStore

CSV = b"Gene,S1,S2,Note\nA,1,10,x\nB,3,,y\nC,5,30,\n"


def _client(tmp_path, **overrides):
    cfg = dataclasses.replace(get_config(), **{"api_key": None, **overrides})
    app = create_app(cfg)
    service = ProjectService(
        create_db_engine(f"sqlite:///{tmp_path / 'projects.db'}"),
        LocalObjectStore(tmp_path / "uploads"),
    )
    app.dependency_overrides[get_project_service] = lambda: service
    return TestClient(app)


@pytest.fixture()
def client(tmp_path):
    return _client(tmp_path)


def test_health(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


def test_analyze(client):
    r = client.post("/api/analyze", files={"file": ("expr.csv", CSV, "text/csv")})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["rowCount"] == 3
    assert body["columnCount"] == 4
    assert body["missingByColumn"] == {"Gene": 0, "S1": 0, "S2": 1, "Note": 1}
    assert body["numericColumnCount"] == 2
    assert [t["feature"] for t in body["topVariable"]] == ["S2", "S1"]
    assert body["topVariable"][0]["variance"] == pytest.approx(100.0)
    assert body["preview"][1] == {"Gene": "B", "S1": "3", "S2": "", "Note": "y"}
    assert r.headers["X-Request-ID"]


def test_analyze_requires_file_field(client):
    r = client.post("/api/analyze", files={"upload": ("expr.csv", CSV, "text/csv")})
    assert r.status_code == 400
    assert r.json() == {"error": "No file uploaded. Use field name 'file'."}


def test_analyze_parse_error(client):
    r = client.post("/api/analyze", files={"file": ("bad.csv", b"a,b\n1,2,3\n", "text/csv")})
    assert r.status_code == 400
    body = r.json()
    assert body["error"] == "CSV parse error"
    assert body["details"][0]["code"] == "TooManyFields"


def test_analyze_no_columns(client):
    r = client.post("/api/analyze", files={"file": ("empty.csv", b"\n\n", "text/csv")})
    assert r.status_code == 400
    assert r.json()["error"] == "No columns detected. Is this a valid header CSV?"


def test_analyze_too_large(tmp_path):
    client = _client(tmp_path, max_upload_mb=0)
    r = client.post("/api/analyze", files={"file": ("expr.csv", CSV, "text/csv")})
    assert r.status_code == 413


def test_project_lifecycle(client):
    r = client.post(
        "/api/projects/upload",
        files={"file": ("my expr.csv", CSV, "text/csv")},
        data={"name": "Experiment", "chart_config": '{"selectedSample": "S2", "columns": ["Gene", "S1", "S2"]}'},
    )
    assert r.status_code == 200, r.text
    out = r.json()
    assert out["storagePath"].endswith("_my_expr.csv")

    listing = client.get("/api/projects").json()
    assert len(listing) == 1
    assert listing[0]["id"] == out["id"]
    assert listing[0]["name"] == "Experiment"
    assert (listing[0]["rowCount"], listing[0]["columnCount"]) == (3, 4)

    meta = client.get(f"/api/projects/{out['id']}").json()
    assert meta["chart_config"]["selectedSample"] == "S2"
    assert meta["dataset_summary"]["originalName"] == "my expr.csv"

    f = client.get(f"/api/projects/{out['id']}/file")
    assert f.status_code == 200
    assert f.content == CSV
    assert f.headers["content-type"].startswith("text/csv")
    assert f.headers["content-disposition"] == 'inline; filename="my expr.csv"'


def test_upload_requires_file(client):
    r = client.post("/api/projects/upload", data={"name": "x"}, files={"other": ("a.csv", CSV, "text/csv")})
    assert r.status_code == 400
    assert r.json()["error"] == "No file uploaded (field name must be 'file')."


def test_create_project_json(client):
    r = client.post("/api/projects", json={"name": "x"})
    assert r.status_code == 400
    assert r.json()["error"] == "Missing name, dataset_summary, or chart_config."

    r = client.post(
        "/api/projects",
        json={"name": "x", "dataset_summary": {"rowCount": 2, "columnCount": 3}, "chart_config": {"selectedSample": "S1"}},
    )
    assert r.status_code == 200
    pid = r.json()["id"]
    assert client.get(f"/api/projects/{pid}").json()["name"] == "x"
    r = client.get(f"/api/projects/{pid}/file")
    assert r.status_code == 404
    assert r.json()["error"] == "File not found for this project"


def test_unknown_project(client):
    r = client.get("/api/projects/does-not-exist")
    assert r.status_code == 404
    assert r.json() == {"error": "Project not found"}


def test_api_key(tmp_path):
    client = _client(tmp_path, api_key="secret")
    assert client.get("/api/health").status_code == 200
    assert client.get("/api/projects").status_code == 401
    assert client.get("/api/projects", headers={"X-API-Key": "secret"}).status_code == 200


def test_metrics(client):
    client.get("/api/health")
    r = client.get("/metrics")
    assert r.status_code == 200
    assert "api_requests_total" in r.text


def test_create_project_invalid_body(client):
    r = client.post("/api/projects", json={"name": "x", "dataset_summary": "s", "chart_config": {"a": 1}})
    assert r.status_code == 400
    body = r.json()
    assert body["error"] == "Invalid request"
    assert body["details"][0]["loc"][-1] == "dataset_summary"

    r = client.post("/api/projects", content=b"not json", headers={"Content-Type": "application/json"})
    assert r.status_code == 400
    assert r.json()["error"] == "Invalid request"


def test_create_project_accepts_empty_objects(client):
    r = client.post("/api/projects", json={"name": "x", "dataset_summary": {}, "chart_config": {}})
    assert r.status_code == 200
    assert client.get("/api/projects").json()[0]["rowCount"] is None


def test_analyze_huge_values_stay_json(client):
    r = client.post("/api/analyze", files={"file": ("big.csv", b"x,y\n1e200,1e308\n-1e200,1e308\n", "text/csv")})
    assert r.status_code == 200, r.text
    top = {t["feature"]: t for t in r.json()["topVariable"]}
    assert top["x"]["mean"] == 0.0
    assert top["y"]["variance"] == 0.0


class BrokenService:
    def list_projects(self):
        raise RuntimeError("database unavailable")

    def create_project(self, name, dataset_summary, chart_config):
        raise RuntimeError("database unavailable")

    def upload_project(self, content, **kwargs):
        raise RuntimeError("bucket unavailable")

    def get_project(self, project_id):
        raise RuntimeError("database unavailable")


@pytest.fixture()
def broken_client(tmp_path):
    client = _client(tmp_path)
    client.app.dependency_overrides[get_project_service] = lambda: BrokenService()
    return client


@pytest.mark.parametrize(
    "method, path, kwargs, error, details",
    [
        ("get", "/api/projects", {}, "Failed to list projects", "database unavailable"),
        ("post", "/api/projects", {"json": {"name": "x", "dataset_summary": {}, "chart_config": {}}}, "Failed to save project", "database unavailable"),
        ("post", "/api/projects/upload", {"files": {"file": ("a.csv", CSV, "text/csv")}}, "Failed to upload project", "bucket unavailable"),
        ("get", "/api/projects/abc", {}, "Failed to load project", "database unavailable"),
    ],
)
def test_service_failures_map_to_500(broken_client, method, path, kwargs, error, details):
    r = getattr(broken_client, method)(path, **kwargs)
    assert r.status_code == 500
    assert r.json() == {"error": error, "details": details}


def test_analyze_unexpected_failure(client, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("out of memory")

    monkeypatch.setattr("src.api.server.summarize", boom)
    r = client.post("/api/analyze", files={"file": ("expr.csv", CSV, "text/csv")})
    assert r.status_code == 500
    assert r.json() == {"error": "Server error", "details": "out of memory"}


def test_missing_stored_file_is_500(client, tmp_path):
    out = client.post("/api/projects/upload", files={"file": ("a.csv", CSV, "text/csv")}).json()
    (tmp_path / "uploads" / out["storagePath"]).unlink()
    r = client.get(f"/api/projects/{out['id']}/file")
    assert r.status_code == 500
    body = r.json()
    assert body["error"] == "Failed to fetch file"
    assert "object not found" in body["details"]
