"""Archive extractors used by the stage manager."""

from __future__ import annotations

import shlex
import shutil
import zipfile
from pathlib import Path
from typing import Protocol

import structlog

from app_stager.core.exceptions import CommandError, UnpackError
from app_stager.deploy.commands import CommandRunner

logger = structlog.get_logger()


class Extractor(Protocol):
    def extract(self, zip_path: Path, dest_dir: Path) -> None:
        ...


class ShellUnzipExtractor:
    """Extracts with an external ``unzip`` command run inside ``dest_dir``."""

    def __init__(self, runner: CommandRunner, command_template: str = "unzip -o -q {zip_path}"):
        self.runner = runner
        self.command_template = command_template

    def extract(self, zip_path: Path, dest_dir: Path) -> None:
        command = self.command_template.format(zip_path=shlex.quote(str(Path(zip_path).resolve())))
        try:
            self.runner.check(command, cwd=dest_dir)
        except CommandError as e:
            raise UnpackError(f"unzip failed for {zip_path}: {e}") from e


class ZipfileExtractor:
    """Extracts in-process with ``zipfile``."""

    def extract(self, zip_path: Path, dest_dir: Path) -> None:
        try:
            with zipfile.ZipFile(zip_path, "r") as zf:
                self._safe_extract_zip(zf, dest_dir)
        except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError) as e:
            raise UnpackError(f"Failed to extract {zip_path}: {e}") from e

    def _safe_extract_zip(self, zf: zipfile.ZipFile, dest_dir: Path):
        """Safely extract a zipfile to dest_dir, preventing zip-slip.

        Raises UnpackError on path traversal.
        """
        dest_dir.mkdir(parents=True, exist_ok=True)
        base = dest_dir.resolve()
        for member in zf.infolist():
            member_path = Path(member.filename)
            # Skip absolute paths and parent traversals
            if member_path.is_absolute() or ".." in member_path.parts:
                raise UnpackError("Zip contains unsafe paths (zip-slip)")
            target = (base / member_path).resolve()
            if target != base and base not in target.parents:
                raise UnpackError("Zip extraction escaped destination (zip-slip)")
            if member.is_dir():
                target.mkdir(parents=True, exist_ok=True)
            else:
                target.parent.mkdir(parents=True, exist_ok=True)
                with zf.open(member, "r") as src, open(target, "wb") as dst:
                    shutil.copyfileobj(src, dst)


def build_extractor(settings, runner: CommandRunner) -> Extractor:
    if settings.unpack_backend == "zipfile":
        return ZipfileExtractor()
    return ShellUnzipExtractor(runner, settings.unzip_command)
