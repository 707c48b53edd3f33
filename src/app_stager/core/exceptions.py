"""Custom exceptions for App Stager."""

from typing import Optional


class AppStagerError(Exception):
    """Base exception for all stager errors."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class ConfigurationError(AppStagerError):
    """Required storage coordinates are missing."""
    pass


class PointerError(AppStagerError):
    """Pointer document errors."""
    pass


class PointerFetchError(PointerError):
    """Pointer object could not be fetched."""
    pass


class PointerParseError(PointerError):
    """Pointer object is malformed or names an unusable artifact."""
    pass


class StageMoveError(AppStagerError):
    """Moving the current app into holding failed."""
    pass


class ArtifactDownloadError(AppStagerError):
    """Artifact could not be streamed to the local zip path."""
    pass


class UnpackError(AppStagerError):
    """A single extraction attempt failed."""
    pass


class UnpackExhaustedError(AppStagerError):
    """Every extraction attempt failed; the previous app was rolled back."""

    def __init__(
        self,
        message: str,
        attempts: int,
        rollback_error: Optional[BaseException] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message, code=code)
        self.attempts = attempts
        self.rollback_error = rollback_error


class CommandError(AppStagerError):
    """Shell command exited non-zero, timed out, or could not start."""

    def __init__(self, message: str, command: str, returncode: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


class StorageError(AppStagerError):
    """Object storage errors."""
    pass


class StorageNotFoundError(StorageError):
    """Object does not exist."""
    pass


class StorageTransferError(StorageError):
    """Object transfer failed."""
    pass


class DeploymentWarning(AppStagerError):
    """Non-fatal deployment problem; logged, deployment still succeeds."""
    pass


class CommitWarning(DeploymentWarning):
    """Holding directory could not be removed after a successful unpack."""
    pass


class DependencyInstallWarning(DeploymentWarning):
    """Best-effort dependency installation failed."""
    pass
