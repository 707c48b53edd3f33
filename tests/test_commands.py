import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from app_stager.core.exceptions import CommandError
from app_stager.deploy.commands import CommandRunner


def test_successful_command_captures_stdout(tmp_path: Path):
    result = CommandRunner().run("echo hello", cwd=tmp_path)
    assert result.ok
    assert result.stdout.strip() == "hello"


def test_command_runs_in_cwd(tmp_path: Path):
    CommandRunner().check("touch marker", cwd=tmp_path)
    assert (tmp_path / "marker").exists()


def test_failed_command_reports_stderr():
    result = CommandRunner().run("echo broken >&2; exit 3")
    assert not result.ok
    assert result.returncode == 3
    assert "broken" in result.stderr


def test_check_raises_command_error():
    with pytest.raises(CommandError) as exc_info:
        CommandRunner().check("echo nope >&2; exit 4")
    assert exc_info.value.returncode == 4
    assert "nope" in exc_info.value.stderr


def test_timeout_raises_command_error():
    with patch("subprocess.run", side_effect=subprocess.TimeoutExpired(cmd="sleep 10", timeout=0.1)):
        with pytest.raises(CommandError):
            CommandRunner(timeout=0.1).run("sleep 10")


def test_default_timeout_is_passed_to_subprocess():
    completed = subprocess.CompletedProcess(args="true", returncode=0, stdout="", stderr="")
    with patch("subprocess.run", return_value=completed) as run:
        CommandRunner(timeout=42).run("true")
        assert run.call_args.kwargs["timeout"] == 42
        CommandRunner(timeout=42).run("true", timeout=7)
        assert run.call_args.kwargs["timeout"] == 7
