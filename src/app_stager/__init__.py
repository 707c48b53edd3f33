"""App Stager - stage S3-hosted app archives onto the local filesystem with rollback."""

__version__ = "0.1.0"

from app_stager.core.config import Settings
from app_stager.deploy.pipeline import DeploymentPipeline, run_deployment

__all__ = ["Settings", "DeploymentPipeline", "run_deployment", "__version__"]
