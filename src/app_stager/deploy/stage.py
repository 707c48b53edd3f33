"""Stage manager: swaps the live app directory for a freshly unpacked one.

Per deployment attempt the filesystem moves through::

    Clean -> Staged -> Committed | RolledBack

``stage`` moves the current app into a sibling ``-holding`` directory,
``unpack`` extracts the new archive with a bounded number of attempts and
rolls back when they are exhausted, ``commit`` discards the holding directory
and ``rollback`` restores it. The ``StagingState`` passed between the calls is
the only record of what has been moved.
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Optional, Union

import structlog

from app_stager.core.exceptions import CommitWarning, StageMoveError, UnpackError, UnpackExhaustedError
from app_stager.core.models import StagingState, holding_path_for
from app_stager.deploy.unpack import Extractor
from app_stager.utils.metrics import ROLLBACK_COUNT, UNPACK_ATTEMPTS

logger = structlog.get_logger()

MAX_UNPACK_ATTEMPTS = 5

PathLike = Union[str, Path]


def _remove_path(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()


def _move(src: Path, dest: Path) -> None:
    """Move ``src`` to ``dest``, replacing anything already at ``dest``."""
    if dest.exists() or dest.is_symlink():
        _remove_path(dest)
    shutil.move(str(src), str(dest))


class StageManager:
    """Owns the current app directory and its holding sibling."""

    def __init__(
        self,
        extractor: Extractor,
        max_unpack_attempts: int = MAX_UNPACK_ATTEMPTS,
        metrics_enabled: bool = True,
    ):
        if max_unpack_attempts < 1:
            raise ValueError("max_unpack_attempts must be at least 1")
        self.extractor = extractor
        self.max_unpack_attempts = max_unpack_attempts
        self.metrics_enabled = metrics_enabled

    def stage(self, output_path: PathLike) -> StagingState:
        """Move the current app at ``output_path`` into holding.

        Returns an empty state when there is no previous app (first deployment).

        Raises:
            StageMoveError: If the move fails; nothing is recorded
        """
        state = StagingState()
        original = Path(output_path)
        if not original.exists():
            logger.info("No previous app to stage", path=str(original))
            return state

        holding = Path(holding_path_for(str(original)))
        if holding.exists():
            logger.warning("Replacing stale holding directory", path=str(holding))

        logger.info("Moving app into holding", src=str(original), dest=str(holding))
        try:
            _move(original, holding)
        except OSError as e:
            logger.error("Failed to move app into holding", src=str(original), dest=str(holding), error=str(e))
            raise StageMoveError(f"Could not move {original} to {holding}: {e}") from e

        state.record(str(original), str(holding))
        return state

    def unpack(
        self,
        zip_path: PathLike,
        output_path: PathLike,
        state: StagingState,
        cwd: Optional[PathLike] = None,
    ) -> int:
        """Extract ``zip_path`` into ``cwd``, expecting it to create ``output_path``.

        Attempts are immediate and bounded by ``max_unpack_attempts``. When all
        fail the previous app is rolled back before ``UnpackExhaustedError`` is
        raised; on a first deployment whatever the failed attempts created at
        ``output_path`` is removed instead. Returns the number of the
        successful attempt.
        """
        zip_path = Path(zip_path)
        output = Path(output_path)
        dest_dir = Path(cwd) if cwd is not None else output.parent
        existed_before = output.exists() or output.is_symlink()
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_unpack_attempts + 1):
            try:
                self.extractor.extract(zip_path, dest_dir)
                if not output.is_dir():
                    raise UnpackError(f"Archive {zip_path.name} did not produce {output}")
            except (UnpackError, OSError) as e:
                last_error = e
                if self.metrics_enabled:
                    UNPACK_ATTEMPTS.labels(result="failure").inc()
                logger.warning(
                    "Unpack attempt failed",
                    zip_path=str(zip_path),
                    attempt=attempt,
                    max_attempts=self.max_unpack_attempts,
                    error=str(e),
                )
                continue

            if self.metrics_enabled:
                UNPACK_ATTEMPTS.labels(result="success").inc()
            logger.info("Unzipped app", zip_path=str(zip_path), output=str(output), attempt=attempt)
            return attempt

        rollback_error: Optional[Exception] = None
        try:
            if state.is_staged:
                self.rollback(state)
            elif not existed_before:
                self._discard_partial(output)
        except OSError as e:
            rollback_error = e

        raise UnpackExhaustedError(
            f"Exceeded unzip attempt limit ({self.max_unpack_attempts}) for {zip_path}: {last_error}",
            attempts=self.max_unpack_attempts,
            rollback_error=rollback_error,
        ) from last_error

    def commit(self, state: StagingState) -> None:
        """Discard the previous app kept in holding.

        Raises:
            CommitWarning: If the holding directory could not be removed; the
                new app is left in place
        """
        if not state.is_staged:
            return

        holding = Path(state.holding_path)
        logger.info("Removing previous app", path=str(holding))
        try:
            if holding.exists() or holding.is_symlink():
                _remove_path(holding)
        except OSError as e:
            logger.error("Failed to remove holding directory", path=str(holding), error=str(e))
            raise CommitWarning(f"Could not remove {holding}: {e}") from e

        state.clear()

    def rollback(self, state: StagingState) -> None:
        """Restore the previous app from holding.

        Any partially unpacked output at the original path is replaced.
        Raises ``OSError`` if the move fails; the state is kept so the holding
        directory can still be found.
        """
        if not state.is_staged:
            return

        holding = Path(state.holding_path)
        original = Path(state.original_path)
        logger.info("Rolling back app from holding", src=str(holding), dest=str(original))
        try:
            _move(holding, original)
        except OSError as e:
            logger.error("Rollback failed", src=str(holding), dest=str(original), error=str(e))
            raise

        if self.metrics_enabled:
            ROLLBACK_COUNT.inc()
        state.clear()

    def _discard_partial(self, output: Path) -> None:
        """Remove output left by failed attempts when there is no previous app to restore."""
        if not (output.exists() or output.is_symlink()):
            return

        logger.info("Removing partially unpacked app", path=str(output))
        try:
            _remove_path(output)
        except OSError as e:
            logger.error("Failed to remove partially unpacked app", path=str(output), error=str(e))
            raise
