import json
from pathlib import Path

import pytest
from prometheus_client import REGISTRY

from app_stager.core.exceptions import UnpackExhaustedError
from app_stager.deploy.pipeline import DeploymentPipeline
from app_stager.utils.metrics import DeploymentTimings, export_metrics
from fakes import FlakyExtractor, make_zip


def sample(name: str, **labels) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


def test_timings_record_phases():
    timings = DeploymentTimings()
    timings.start_phase("unpack")
    timings.end_phase("unpack")
    timings.end_phase("never-started")
    timings.finish()

    data = timings.to_dict()
    assert set(data["phases_ms"]) == {"unpack"}
    assert data["total_ms"] >= data["phases_ms"]["unpack"]
    assert timings.total_seconds >= 0


@pytest.mark.asyncio
async def test_rollback_updates_counters(settings, fake_storage, tmp_path: Path, work_dir: Path):
    archive = make_zip(tmp_path / "upload.zip", {"app/index.js": b"new"})
    fake_storage.put("b", "app-1234.zip", archive.read_bytes())
    fake_storage.put("config-bucket", "current.json", json.dumps({"bucket": "b", "key": "app-1234.zip"}).encode())
    (work_dir / "app").mkdir()

    before_failures = sample("app_stager_unpack_attempts_total", result="failure")
    before_rollbacks = sample("app_stager_rollbacks_total")
    before_outcome = sample("app_stager_deployments_total", outcome="rolled_back")

    pipeline = DeploymentPipeline(settings, storage=fake_storage, extractor=FlakyExtractor(failures=5))
    with pytest.raises(UnpackExhaustedError):
        await pipeline.deploy()

    assert sample("app_stager_unpack_attempts_total", result="failure") == before_failures + 5
    assert sample("app_stager_rollbacks_total") == before_rollbacks + 1
    assert sample("app_stager_deployments_total", outcome="rolled_back") == before_outcome + 1


@pytest.mark.asyncio
async def test_disabled_metrics_leave_registry_unchanged(settings, fake_storage, tmp_path: Path, work_dir: Path):
    archive = make_zip(tmp_path / "upload.zip", {"app/index.js": b"new"})
    fake_storage.put("b", "app-5678.zip", archive.read_bytes())
    fake_storage.put("config-bucket", "current.json", json.dumps({"bucket": "b", "key": "app-5678.zip"}).encode())
    (work_dir / "app").mkdir()
    disabled = settings.model_copy(update={"metrics_enabled": False})

    names = [
        ("app_stager_unpack_attempts_total", {"result": "failure"}),
        ("app_stager_unpack_attempts_total", {"result": "success"}),
        ("app_stager_rollbacks_total", {}),
        ("app_stager_deployments_total", {"outcome": "rolled_back"}),
        ("app_stager_deployments_total", {"outcome": "deployed"}),
        ("app_stager_deployment_duration_seconds_count", {}),
    ]
    before = [sample(name, **labels) for name, labels in names]

    pipeline = DeploymentPipeline(disabled, storage=fake_storage, extractor=FlakyExtractor(failures=5))
    with pytest.raises(UnpackExhaustedError):
        await pipeline.deploy()
    assert await DeploymentPipeline(disabled, storage=fake_storage).deploy() == "app"

    assert [sample(name, **labels) for name, labels in names] == before


def test_export_metrics_writes_textfile(tmp_path: Path):
    target = tmp_path / "stager.prom"
    export_metrics(str(target))

    text = target.read_text()
    assert "# TYPE app_stager_deployments_total counter" in text
    assert "app_stager_deployment_duration_seconds" in text
