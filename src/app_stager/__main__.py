"""CLI entrypoint (app-stager deploy)."""

from __future__ import annotations

import argparse
import sys
from typing import List, Optional

import structlog
from pydantic import ValidationError

from app_stager.core.config import Settings
from app_stager.core.exceptions import AppStagerError, ConfigurationError
from app_stager.deploy.pipeline import run_deployment
from app_stager.utils.logging import setup_logging
from app_stager.utils.metrics import export_metrics

logger = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="app-stager", description="Stage the latest app release from S3")
    sub = parser.add_subparsers(dest="cmd")

    cmd_deploy = sub.add_parser("deploy", help="Download and stage the release named by the pointer document")
    cmd_deploy.add_argument("--bucket", help="Bucket holding the pointer document")
    cmd_deploy.add_argument("--key", help="Key of the pointer document")
    cmd_deploy.add_argument("--region", dest="aws_region", help="AWS region")
    cmd_deploy.add_argument("--work-dir", dest="work_dir", help="Directory to unpack the app into")
    cmd_deploy.add_argument("--config", help="YAML settings file")
    cmd_deploy.add_argument(
        "--unpack-backend",
        dest="unpack_backend",
        choices=["unzip", "zipfile"],
        help="Extraction backend",
    )
    cmd_deploy.add_argument("--metrics-file", dest="metrics_file", help="Write Prometheus metrics to this file")
    cmd_deploy.add_argument(
        "--no-install",
        action="store_true",
        help="Skip the dependency install step",
    )
    return parser


def load_settings(args: argparse.Namespace) -> Settings:
    overrides = {
        "bucket": args.bucket,
        "key": args.key,
        "aws_region": args.aws_region,
        "work_dir": args.work_dir,
        "unpack_backend": args.unpack_backend,
        "metrics_file": args.metrics_file,
    }
    if args.no_install:
        overrides["install_command"] = ""

    if args.config:
        return Settings.from_yaml(args.config, **overrides)
    return Settings(**{k: v for k, v in overrides.items() if v is not None})


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd != "deploy":
        parser.print_help()
        return 2

    try:
        settings = load_settings(args)
    except (ValidationError, ConfigurationError) as e:
        print(f"ERROR: invalid configuration: {e}", file=sys.stderr)
        return 2

    setup_logging(settings.log_level, settings.log_format)

    try:
        output_path = run_deployment(settings)
    except ConfigurationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2
    except AppStagerError as e:
        print(f"ERROR: {type(e).__name__}: {e}", file=sys.stderr)
        return 1
    finally:
        if settings.metrics_enabled and settings.metrics_file:
            export_metrics(settings.metrics_file)

    print(output_path)
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
