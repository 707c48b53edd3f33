"""Deployment pipeline: pointer -> stage -> download -> unpack -> commit -> install."""

from __future__ import annotations

import asyncio
import contextvars
import functools
from pathlib import Path
from typing import Any, Callable, Dict, Optional, TypeVar

import structlog

from app_stager.core.config import Settings
from app_stager.core.exceptions import (
    AppStagerError,
    ArtifactDownloadError,
    CommandError,
    CommitWarning,
    DependencyInstallWarning,
    StorageError,
    UnpackExhaustedError,
)
from app_stager.core.models import DeploymentRequest, DeploymentStatus, DeploymentTarget, PointerDocument, StagingState
from app_stager.deploy.commands import CommandRunner
from app_stager.deploy.pointer import PointerResolver
from app_stager.deploy.stage import StageManager
from app_stager.deploy.storage import S3StorageClient, StorageClient
from app_stager.deploy.unpack import Extractor, build_extractor
from app_stager.utils.logging import bind_deployment_context
from app_stager.utils.metrics import DEPLOYMENT_COUNT, DEPLOYMENT_DURATION, DeploymentTimings

logger = structlog.get_logger()

T = TypeVar("T")


class DeploymentPipeline:
    """Runs one deployment attempt at a time, each step after the previous one finishes."""

    def __init__(
        self,
        settings: Settings,
        storage: Optional[StorageClient] = None,
        runner: Optional[CommandRunner] = None,
        extractor: Optional[Extractor] = None,
    ):
        self.settings = settings
        self.runner = runner or CommandRunner(timeout=settings.command_timeout_seconds)
        self._storage = storage
        self._storage_clients: Dict[str, StorageClient] = {}
        self.stage_manager = StageManager(
            extractor or build_extractor(settings, self.runner),
            max_unpack_attempts=settings.max_unpack_attempts,
            metrics_enabled=settings.metrics_enabled,
        )
        self.status = DeploymentStatus.PENDING

    def request_from_settings(self) -> DeploymentRequest:
        return DeploymentRequest(
            bucket=self.settings.bucket,
            key=self.settings.key,
            region=self.settings.aws_region,
            work_dir=self.settings.work_dir,
        )

    def storage_for(self, request: DeploymentRequest) -> StorageClient:
        """Return the injected storage client, or an S3 client for the request region."""
        if self._storage is not None:
            return self._storage

        region = request.region or self.settings.aws_region
        if region not in self._storage_clients:
            self._storage_clients[region] = S3StorageClient.from_settings(self.settings, region=region)
        return self._storage_clients[region]

    async def _run(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        loop = asyncio.get_event_loop()
        ctx = contextvars.copy_context()
        return await loop.run_in_executor(None, functools.partial(ctx.run, func, *args, **kwargs))

    def _count(self, outcome: str) -> None:
        if self.settings.metrics_enabled:
            DEPLOYMENT_COUNT.labels(outcome=outcome).inc()

    def _set_status(self, status: DeploymentStatus) -> None:
        self.status = status
        logger.debug("Deployment status", status=status.value)

    async def deploy(self, request: Optional[DeploymentRequest] = None) -> str:
        """Deploy the artifact named by the pointer document.

        Returns:
            The output path of the deployed app, relative to the work directory

        Raises:
            ConfigurationError, PointerFetchError, PointerParseError,
            StageMoveError, ArtifactDownloadError, UnpackExhaustedError
        """
        request = request or self.request_from_settings()
        bind_deployment_context(request.deployment_id, request.bucket)
        timings = DeploymentTimings()

        try:
            output_path = await self._deploy(request, timings)
        except UnpackExhaustedError as e:
            self._set_status(DeploymentStatus.ROLLED_BACK)
            logger.error(
                "Deployment failed; previous app restored",
                error=str(e),
                attempts=e.attempts,
                rollback_error=str(e.rollback_error) if e.rollback_error else None,
            )
            self._count("rolled_back")
            raise
        except AppStagerError as e:
            self._set_status(DeploymentStatus.FAILED)
            self._count("failed")
            logger.error("Deployment failed", error=str(e), error_type=type(e).__name__)
            raise
        finally:
            timings.finish()
            if self.settings.metrics_enabled:
                DEPLOYMENT_DURATION.observe(timings.total_seconds)
            logger.info("Deployment timings", **timings.to_dict())

        self._set_status(DeploymentStatus.DEPLOYED)
        self._count("deployed")
        logger.info("Deployment complete", output_path=output_path)
        return output_path

    async def _deploy(self, request: DeploymentRequest, timings: DeploymentTimings) -> str:
        work_dir = Path(request.work_dir)
        storage = self.storage_for(request)

        # 1) Resolve pointer
        self._set_status(DeploymentStatus.RESOLVING)
        timings.start_phase("resolve")
        pointer, target = await self._run(PointerResolver(storage).resolve, request.bucket, request.key)
        timings.end_phase("resolve")

        output_dir = work_dir / target.output_path
        zip_path = work_dir / target.zip_file_name

        # 2) Move previous app aside
        self._set_status(DeploymentStatus.STAGING)
        timings.start_phase("stage")
        state = await self._run(self.stage_manager.stage, output_dir)
        timings.end_phase("stage")

        # 3) Download artifact
        self._set_status(DeploymentStatus.DOWNLOADING)
        timings.start_phase("download")
        await self._download(storage, pointer, zip_path, state)
        timings.end_phase("download")

        # 4) Unpack, rolling back on exhaustion
        self._set_status(DeploymentStatus.UNPACKING)
        timings.start_phase("unpack")
        await self._run(self.stage_manager.unpack, zip_path, output_dir, state, work_dir)
        timings.end_phase("unpack")

        # 5) Discard previous app
        self._set_status(DeploymentStatus.COMMITTING)
        timings.start_phase("commit")
        try:
            await self._run(self.stage_manager.commit, state)
        except CommitWarning as w:
            logger.warning("Commit failed; new app remains live", warning=str(w))
        timings.end_phase("commit")

        # 6) Best-effort dependency install
        self._set_status(DeploymentStatus.INSTALLING)
        timings.start_phase("install")
        try:
            await self._run(self.install_dependencies, target, output_dir)
        except DependencyInstallWarning as w:
            logger.warning("Unable to install dependencies", warning=str(w))
        timings.end_phase("install")

        return target.output_path

    async def _download(
        self,
        storage: StorageClient,
        pointer: PointerDocument,
        zip_path: Path,
        state: StagingState,
    ) -> None:
        logger.info("Saving artifact", bucket=pointer.bucket, key=pointer.key, dest=str(zip_path))
        try:
            await self._run(storage.stream_object_to_file, pointer.bucket, pointer.key, zip_path)
        except (StorageError, OSError) as e:
            if self.settings.rollback_on_download_failure and state.is_staged:
                try:
                    await self._run(self.stage_manager.rollback, state)
                except OSError as rollback_error:
                    logger.error("Rollback after download failure failed", error=str(rollback_error))
            elif state.is_staged:
                logger.warning("Previous app left in holding", holding=state.holding_path)
            raise ArtifactDownloadError(
                f"Could not download {pointer.bucket}/{pointer.key}: {e}",
                code=getattr(e, "code", None),
            ) from e

    def install_dependencies(self, target: DeploymentTarget, output_dir: Path) -> None:
        """Run the configured install command inside the new app directory.

        Raises:
            DependencyInstallWarning: If the command fails
        """
        command = self.settings.install_command.strip()
        if not command:
            logger.info("No install command configured, skipping dependency installation")
            return

        try:
            self.runner.check(command, cwd=output_dir)
        except CommandError as e:
            raise DependencyInstallWarning(f"Dependency install failed for {target.output_path}: {e}") from e

        logger.info("Installed dependencies", output_path=target.output_path, command=command)


def run_deployment(settings: Settings, request: Optional[DeploymentRequest] = None, **kwargs) -> str:
    """Synchronous entry point wrapping ``DeploymentPipeline.deploy``."""
    pipeline = DeploymentPipeline(settings, **kwargs)
    return asyncio.run(pipeline.deploy(request))
