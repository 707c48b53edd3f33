"""
Pytest configuration and fixtures for App Stager tests.
"""

import os
from pathlib import Path

import pytest

from app_stager.core.config import Settings
from fakes import FakeStorage


@pytest.fixture(autouse=True)
def clear_stager_env(monkeypatch):
    """Keep APP_STAGER_* variables from the developer shell out of tests."""
    for name in list(os.environ):
        if name.startswith("APP_STAGER_"):
            monkeypatch.delenv(name)


@pytest.fixture
def fake_storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def work_dir(tmp_path: Path) -> Path:
    d = tmp_path / "work"
    d.mkdir()
    return d


@pytest.fixture
def settings(work_dir: Path) -> Settings:
    return Settings(
        _env_file=None,
        bucket="config-bucket",
        key="current.json",
        work_dir=str(work_dir),
        unpack_backend="zipfile",
        install_command="",
    )
