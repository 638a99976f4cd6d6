"""Command line interface for recording and consolidating build-info fragments.

Each CI step runs its own invocation against the same build name/number:

    buildinfo-accumulator add-module go api 42 --src-path services/api
    buildinfo-accumulator collect-env api 42
    buildinfo-accumulator show api 42 --agent-name github-actions --url "$RUN_URL"
    buildinfo-accumulator clean api 42

All invocations must agree on ``--temp-dir`` (or BUILDINFO_TEMP_DIR).
The consolidated document is printed to stdout; logs go to stderr.
"""

from __future__ import annotations

import argparse
import sys

from buildinfo_accumulator import __version__
from buildinfo_accumulator.build import Build
from buildinfo_accumulator.config import SECRET_ENV_PATTERNS, AccumulatorConfig, load_config
from buildinfo_accumulator.errors import BuildInfoError
from buildinfo_accumulator.logging_config import (
    LOG_FORMATS,
    bind_build_context,
    clear_build_context,
    get_logger,
    setup_logging,
)
from buildinfo_accumulator.schemas import ModuleType

logger = get_logger(__name__)


def _parse_properties(pairs: list[str]) -> dict[str, str]:
    properties = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise argparse.ArgumentTypeError(f"Expected KEY=VALUE, got {pair!r}")
        properties[key] = value
    return properties


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="buildinfo-accumulator",
        description="Stage build-info fragments and consolidate them into one document",
    )
    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument("--config", "-c", type=str, help="Path to a YAML config file")
    parser.add_argument("--temp-dir", type=str, help="Root directory of the staging areas")
    parser.add_argument("--log-level", type=str, help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--log-format", choices=LOG_FORMATS, help="Log renderer (default: console)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_identity(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("build_name")
        sub.add_argument("build_number")
        sub.add_argument("--project", default="", help="Project key")

    env = subparsers.add_parser("collect-env", help="Capture environment variables")
    add_identity(env)
    env.add_argument("--include", action="append", default=None, help="Glob of names to capture")
    env.add_argument("--exclude", action="append", default=None, help="Glob of names to skip")
    env.add_argument(
        "--exclude-secrets",
        action="store_true",
        help="Also skip names that usually hold credentials (*token*, *password*, ...)",
    )

    module = subparsers.add_parser("add-module", help="Collect one module")
    module.add_argument("kind", choices=[kind.value for kind in ModuleType])
    add_identity(module)
    module.add_argument("--src-path", default="", help="Project root (default: cwd)")
    module.add_argument("--module-id", default=None, help="Override the module id")
    module.add_argument("--property", action="append", default=[], help="KEY=VALUE")

    show = subparsers.add_parser("show", help="Print the consolidated build-info")
    add_identity(show)
    show.add_argument("--agent-name", default="")
    show.add_argument("--agent-version", default="")
    show.add_argument("--build-agent-version", default="")
    show.add_argument("--principal", default="")
    show.add_argument("--url", default="", help="Build URL")

    clean = subparsers.add_parser("clean", help="Remove the build's staging area")
    add_identity(clean)

    return parser


def _run(args: argparse.Namespace, config: AccumulatorConfig) -> None:
    temp_dir = args.temp_dir or config.temp_dir
    build = Build(args.build_name, args.build_number, args.project, temp_dir=temp_dir)
    bind_build_context(build.identity)

    if args.command == "collect-env":
        exclude = list(args.exclude if args.exclude is not None else config.env_exclude)
        if args.exclude_secrets:
            exclude.extend(SECRET_ENV_PATTERNS)
        build.collect_env(
            include=args.include if args.include is not None else config.env_include,
            exclude=exclude,
        )
    elif args.command == "add-module":
        collector = build.add_module(args.kind, args.src_path, module_id=args.module_id)
        collector.add_properties(_parse_properties(args.property))
        collector.collect()
    elif args.command == "show":
        build.set_agent_name(args.agent_name)
        build.set_agent_version(args.agent_version)
        build.set_build_agent_version(args.build_agent_version)
        build.set_principal(args.principal)
        build.set_build_url(args.url)
        print(build.to_build_info().to_json())
    elif args.command == "clean":
        build.clean()


def main(argv: list[str] | None = None) -> int:
    """CLI entry point.

    Returns:
        0 on success, 1 if the build-info could not be recorded or consolidated
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        setup_logging(log_format=args.log_format, log_level=args.log_level)
        config = load_config(args.config)
    except ValueError as exc:
        parser.error(str(exc))

    try:
        _run(args, config)
    except argparse.ArgumentTypeError as exc:
        parser.error(str(exc))
    except BuildInfoError as exc:
        logger.error("command_failed", command=args.command, error=str(exc))
        return 1
    finally:
        clear_build_context()
    return 0


if __name__ == "__main__":
    sys.exit(main())
