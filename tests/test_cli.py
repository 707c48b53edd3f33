from pathlib import Path
from unittest.mock import patch

import pytest

from app_stager.__main__ import main
from app_stager.core.exceptions import ConfigurationError, UnpackExhaustedError


@pytest.fixture(autouse=True)
def no_logging_setup():
    with patch("app_stager.__main__.setup_logging"):
        yield


def test_deploy_prints_output_path(capsys, tmp_path: Path):
    with patch("app_stager.__main__.run_deployment", return_value="app") as run:
        code = main(["deploy", "--bucket", "cfg", "--key", "current.json", "--work-dir", str(tmp_path)])

    assert code == 0
    assert capsys.readouterr().out.strip() == "app"
    settings = run.call_args.args[0]
    assert settings.bucket == "cfg"
    assert settings.key == "current.json"
    assert settings.work_dir == str(tmp_path)


def test_no_install_clears_install_command():
    with patch("app_stager.__main__.run_deployment", return_value="app") as run:
        main(["deploy", "--bucket", "cfg", "--key", "k", "--no-install"])
    assert run.call_args.args[0].install_command == ""


def test_config_file_is_loaded(tmp_path: Path):
    config = tmp_path / "stager.yaml"
    config.write_text("bucket: file-bucket\nkey: current.json\nunpack_backend: zipfile\n")

    with patch("app_stager.__main__.run_deployment", return_value="app") as run:
        main(["deploy", "--config", str(config), "--key", "other.json"])

    settings = run.call_args.args[0]
    assert settings.bucket == "file-bucket"
    assert settings.key == "other.json"
    assert settings.unpack_backend == "zipfile"


def test_fatal_error_exits_1(capsys):
    error = UnpackExhaustedError("exceeded unzip attempt limit", attempts=5)
    with patch("app_stager.__main__.run_deployment", side_effect=error):
        code = main(["deploy", "--bucket", "cfg", "--key", "k"])

    assert code == 1
    assert "UnpackExhaustedError" in capsys.readouterr().err


def test_configuration_error_exits_2():
    with patch("app_stager.__main__.run_deployment", side_effect=ConfigurationError("missing")):
        assert main(["deploy"]) == 2


def test_missing_config_file_exits_2(tmp_path: Path):
    assert main(["deploy", "--config", str(tmp_path / "nope.yaml")]) == 2


def test_no_command_prints_help(capsys):
    assert main([]) == 2
    assert "deploy" in capsys.readouterr().out


def test_metrics_file_written_after_failure(tmp_path: Path):
    target = tmp_path / "metrics" / "stager.prom"
    target.parent.mkdir()
    error = UnpackExhaustedError("exceeded unzip attempt limit", attempts=5)

    with patch("app_stager.__main__.run_deployment", side_effect=error):
        code = main(["deploy", "--bucket", "cfg", "--key", "k", "--metrics-file", str(target)])

    assert code == 1
    assert "app_stager_deployments_total" in target.read_text()


def test_metrics_file_skipped_when_metrics_disabled(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("APP_STAGER_METRICS_ENABLED", "false")
    target = tmp_path / "stager.prom"

    with patch("app_stager.__main__.run_deployment", return_value="app"):
        assert main(["deploy", "--bucket", "cfg", "--key", "k", "--metrics-file", str(target)]) == 0

    assert not target.exists()
