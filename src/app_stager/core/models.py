"""Core data models for App Stager."""

from __future__ import annotations

import posixpath
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


HOLDING_SUFFIX = "-holding"
ZIP_SUFFIX = ".zip"


def holding_path_for(path: str) -> str:
    """Return the sibling holding directory for ``path``."""
    return path + HOLDING_SUFFIX


def output_path_for(zip_file_name: str) -> str:
    """Derive the app directory name from an artifact file name.

    ``myapp-ab12cd34.zip`` becomes ``myapp``: the trailing ``-`` delimited
    content hash is dropped. A name without ``-`` yields an empty string.
    """
    name = posixpath.basename(zip_file_name)
    if name.endswith(ZIP_SUFFIX):
        name = name[: -len(ZIP_SUFFIX)]

    # Remove content hash
    return "-".join(name.split("-")[:-1])


class DeploymentStatus(str, Enum):
    PENDING = "pending"
    RESOLVING = "resolving"
    STAGING = "staging"
    DOWNLOADING = "downloading"
    UNPACKING = "unpacking"
    COMMITTING = "committing"
    INSTALLING = "installing"
    DEPLOYED = "deployed"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"


class PointerDocument(BaseModel):
    """Pointer object naming the artifact that is currently released."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    bucket: str = Field(..., min_length=1, description="Bucket holding the artifact")
    key: str = Field(..., min_length=1, description="Artifact key, file name is <app>-<hash>.zip")


class DeploymentTarget(BaseModel):
    """Local names derived from the artifact key."""

    model_config = ConfigDict(frozen=True)

    zip_file_name: str
    output_path: str

    @classmethod
    def from_key(cls, key: str) -> "DeploymentTarget":
        zip_file_name = posixpath.basename(key)
        return cls(zip_file_name=zip_file_name, output_path=output_path_for(zip_file_name))

    @property
    def holding_path(self) -> str:
        return holding_path_for(self.output_path)


class DeploymentRequest(BaseModel):
    """Everything one deployment attempt needs, fixed for its lifetime."""

    model_config = ConfigDict(frozen=True)

    bucket: Optional[str] = None
    key: Optional[str] = None
    region: Optional[str] = None
    work_dir: str = "."
    deployment_id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])


@dataclass
class StagingState:
    """Tracks whether the previous app has been moved aside.

    ``holding_path`` is set only while a move into holding has succeeded and
    has not yet been undone by a commit or a rollback.
    """

    original_path: Optional[str] = None
    holding_path: Optional[str] = None

    @property
    def is_staged(self) -> bool:
        return self.original_path is not None and self.holding_path is not None

    def record(self, original_path: str, holding_path: str) -> None:
        self.original_path = original_path
        self.holding_path = holding_path

    def clear(self) -> None:
        self.original_path = None
        self.holding_path = None
