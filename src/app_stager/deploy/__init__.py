"""
Deployment primitives.

- PointerResolver: reads the pointer document and derives the local target
- StageManager: move-to-holding, unpack with retry, commit and rollback
- DeploymentPipeline: sequences the steps for one deployment attempt
"""

from .commands import CommandResult, CommandRunner
from .pipeline import DeploymentPipeline, run_deployment
from .pointer import PointerResolver, parse_pointer
from .stage import StageManager
from .storage import S3StorageClient, StorageClient
from .unpack import ShellUnzipExtractor, ZipfileExtractor, build_extractor

__all__ = [
    "CommandResult",
    "CommandRunner",
    "DeploymentPipeline",
    "PointerResolver",
    "S3StorageClient",
    "ShellUnzipExtractor",
    "StageManager",
    "StorageClient",
    "ZipfileExtractor",
    "build_extractor",
    "parse_pointer",
    "run_deployment",
]
