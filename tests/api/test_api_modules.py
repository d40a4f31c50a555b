import pytest
from fastapi.testclient import TestClient

from modrules_api.app import app


@pytest.fixture
def client(monkeypatch, fixtures_dir):
    monkeypatch.setenv("MODRULES__SCAN__ROOT", str(fixtures_dir))
    return TestClient(app)


def test_api_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_api_modules_list(client):
    r = client.get("/modules")
    assert r.status_code == 200
    data = r.json()
    assert len(data["modules"]) == 7
    flurry = next(m for m in data["modules"] if m["name"] == "FlurryEditor")
    assert "Analytics" in flurry["private_dependencies"]
    assert flurry["public_dependencies"] == []
    assert data["failures"] == []


def test_api_module_detail(client):
    r = client.get("/modules/WaterEditor")
    assert r.status_code == 200
    data = r.json()
    assert data["name"] == "WaterEditor"
    assert data["pch_usage"] == "UseExplicitOrSharedPCHs"
    assert data["properties"]["PrivateIncludePaths"] == ["Editor/Private"]
    assert data["path"].endswith("WaterEditor.Build.cs")


def test_api_unknown_module_404(client):
    r = client.get("/modules/Core")
    assert r.status_code == 404
    assert "Core" in r.json()["detail"]
    r = client.get("/modules/Core/source")
    assert r.status_code == 404


def test_api_module_source(client):
    r = client.get("/modules/ComposureEditor/source")
    assert r.status_code == 200
    assert "public class ComposureEditor : ModuleRules" in r.text
    r = client.get("/modules/ComposureEditor/source", params={"format": "yaml"})
    assert r.status_code == 200
    assert r.text.startswith("name: ComposureEditor")
    r = client.get("/modules/ComposureEditor/source", params={"format": "xml"})
    assert r.status_code == 422


def test_api_check(client):
    r = client.get("/check")
    assert r.status_code == 200
    codes = {f["code"] for f in r.json()["findings"]}
    assert codes == {"duplicate-entry"}


def test_api_metrics_counts_requests(client):
    client.get("/health")
    r = client.get("/metrics")
    assert r.status_code == 200
    counters = r.json()["counters"]
    assert any(k.startswith("api_request_total") for k in counters)
