"""CLI entrypoint for building LnOS UTM bundles."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any, Callable, Optional

import structlog
import yaml
from pydantic import ValidationError

from ..common.observability import configure_logging
from ..common.settings import BuildSettings
from .config import BundleConfig
from .errors import BuildError, ConfigurationError
from .metadata import publish_results
from .pipeline import BundlePipeline

LOGGER = structlog.get_logger("lnos_utm.bundle.cli")


def load_config(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"cannot read {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping")
    if "bundle" in data and isinstance(data["bundle"], dict):
        data = data["bundle"]
    return data


def cli_overrides(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {
        "output_dir": args.output_dir,
        "project_dir": args.project_dir,
        "name": args.name,
    }
    if args.command == "build":
        overrides.update(
            {
                "disk_size_gb": args.disk_size,
                "memory_mb": args.memory,
                "cpu_cores": args.cores,
                "template": args.template,
                "archive": True if args.zip else None,
                "ci": True if args.ci else None,
                "auto_install": False if args.no_install else None,
                "open_after_build": False if args.no_open else None,
            }
        )
    return {key: value for key, value in overrides.items() if value is not None}


def resolve_config(args: argparse.Namespace, settings: BuildSettings) -> BundleConfig:
    data = load_config(Path(args.config)) if args.config else {}
    data.update(cli_overrides(args))
    try:
        return BundleConfig.from_settings(settings, **data)
    except ValidationError as exc:
        raise ConfigurationError(f"invalid build configuration: {exc}") from exc


def build_command(config: BundleConfig) -> int:
    result = BundlePipeline(config).build()
    if config.ci:
        github_output = config.github_output if config.github_actions else None
        for line in publish_results(result.outputs(), github_output):
            print(line)
    return 0


def manual_command(config: BundleConfig) -> int:
    BundlePipeline(config).build_manual()
    return 0


def guide_command(config: BundleConfig) -> int:
    BundlePipeline(config).guide()
    return 0


COMMANDS: dict[str, Callable[[BundleConfig], int]] = {
    "build": build_command,
    "manual": manual_command,
    "guide": guide_command,
}


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", help="Path to a YAML file with a 'bundle' section")
    parser.add_argument("--output-dir", type=Path, help="Directory receiving the bundle and archive")
    parser.add_argument("--project-dir", type=Path, help="LnOS checkout providing scripts/ and a local ISO")
    parser.add_argument("--name", help="Bundle base name (default lnos-asahi-YYYY.MM.DD)")


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build LnOS virtual machine bundles for UTM on Apple Silicon")
    subparsers = parser.add_subparsers(dest="command", required=True)

    build_parser = subparsers.add_parser("build", help="Build a complete UTM bundle")
    _add_common_arguments(build_parser)
    build_parser.add_argument("--zip", action="store_true", help="Also create a distribution ZIP")
    build_parser.add_argument("--ci", action="store_true", help="Run with CI severity even without CI set")
    build_parser.add_argument("--disk-size", type=int, help="Disk size in GiB")
    build_parser.add_argument("--memory", type=int, help="Guest memory in MiB")
    build_parser.add_argument("--cores", type=int, help="Guest CPU cores")
    build_parser.add_argument("--template", choices=["full", "minimal"], help="Configuration template")
    build_parser.add_argument("--no-install", action="store_true", help="Fail instead of installing UTM")
    build_parser.add_argument("--no-open", action="store_true", help="Do not open the bundle in UTM")

    manual_parser = subparsers.add_parser("manual", help="Create a minimal bundle from an existing build")
    _add_common_arguments(manual_parser)

    guide_parser = subparsers.add_parser("guide", help="Print manual VM creation steps")
    _add_common_arguments(guide_parser)

    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    settings = BuildSettings()
    configure_logging("lnos-utm", settings.log_level, json_logs=settings.log_json)

    try:
        config = resolve_config(args, settings)
        return COMMANDS[args.command](config)
    except BuildError as exc:
        LOGGER.error(str(exc))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
