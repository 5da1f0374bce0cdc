"""CLI entrypoints for autodoc commands."""

from __future__ import annotations

import argparse
import shutil
import sys
from pathlib import Path
from typing import List

from .config import SUPPORTED_FORMATS, AutodocConfig, dump_config, load_config, write_config
from .diagrams import DiagramProcessor, MermaidCliRenderer
from .discovery import FileDiscovery
from .errors import AutodocError, ConfigError, DiscoveryError
from .hooks import ExtensionHooks
from .logging import configure_logging
from .metadata import parse_overrides
from .models import BuildReport
from .pipeline import BuildPipeline
from .scaffold import ProjectScaffolder
from .templates import TemplateStore
from .toolchain import ToolchainChecker
from .watcher import PollingWatcher


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_path_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Path to the document project (defaults to current directory).",
    )


def _add_project_options(parser: argparse.ArgumentParser) -> None:
    _add_path_option(parser)
    parser.add_argument(
        "-f",
        "--format",
        dest="formats",
        action="append",
        choices=SUPPORTED_FORMATS,
        help="Output format to build; repeat for several (defaults to autodoc.yml formats).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="autodoc",
        description="Build PDF, DOCX and HTML documents from Markdown fragments.",
    )
    _add_verbose_option(parser)
    parser.add_argument("--log-file", type=Path, default=None, help="Also write logs to this file.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    build_parser = subparsers.add_parser("build", help="Build the requested output formats.")
    _add_verbose_option(build_parser, suppress_default=True)
    _add_project_options(build_parser)
    build_parser.add_argument(
        "-M",
        "--metadata",
        dest="overrides",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Override a metadata field for this run; wins over every fragment.",
    )
    build_parser.add_argument(
        "--force",
        action="store_true",
        help="Ignore the build cache and rebuild every format.",
    )
    build_parser.add_argument("--jobs", type=int, default=None, help="Formats built in parallel.")
    build_parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds before a converter run is aborted.",
    )
    build_parser.add_argument(
        "--no-diagrams",
        action="store_true",
        help="Leave Mermaid blocks untouched instead of rendering them.",
    )
    build_parser.add_argument(
        "--watch",
        action="store_true",
        help="Keep running and rebuild whenever a source file changes.",
    )
    build_parser.add_argument(
        "--interval",
        type=float,
        default=1.0,
        help="Polling interval in seconds for --watch.",
    )

    status_parser = subparsers.add_parser("status", help="Show which inputs would be rebuilt.")
    _add_verbose_option(status_parser, suppress_default=True)
    _add_project_options(status_parser)

    check_parser = subparsers.add_parser("check", help="Check that external tools are installed.")
    _add_verbose_option(check_parser, suppress_default=True)
    _add_project_options(check_parser)

    init_parser = subparsers.add_parser("init", help="Create a starter document project.")
    _add_verbose_option(init_parser, suppress_default=True)
    init_parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Directory to initialize (created when missing).",
    )
    init_parser.add_argument("--name", default=None, help="Document title (defaults to the directory name).")

    config_parser = subparsers.add_parser("config", help="Create or show autodoc.yml.")
    _add_verbose_option(config_parser, suppress_default=True)
    config_subparsers = config_parser.add_subparsers(dest="config_command", required=True)
    config_init_parser = config_subparsers.add_parser("init", help="Write a default autodoc.yml.")
    _add_verbose_option(config_init_parser, suppress_default=True)
    _add_path_option(config_init_parser)
    config_show_parser = config_subparsers.add_parser("show", help="Print the resolved configuration.")
    _add_verbose_option(config_show_parser, suppress_default=True)
    _add_path_option(config_show_parser)

    templates_parser = subparsers.add_parser("templates", help="Inspect available templates.")
    _add_verbose_option(templates_parser, suppress_default=True)
    templates_subparsers = templates_parser.add_subparsers(dest="templates_command", required=True)
    templates_list_parser = templates_subparsers.add_parser("list", help="List templates on the search path.")
    _add_verbose_option(templates_list_parser, suppress_default=True)
    _add_path_option(templates_list_parser)

    diagrams_parser = subparsers.add_parser("diagrams", help="Render standalone Mermaid diagram files.")
    _add_verbose_option(diagrams_parser, suppress_default=True)
    _add_path_option(diagrams_parser)
    diagrams_parser.add_argument(
        "--force",
        action="store_true",
        help="Render every diagram even when its SVG is up to date.",
    )

    clean_parser = subparsers.add_parser("clean", help="Remove build outputs and the build cache.")
    _add_verbose_option(clean_parser, suppress_default=True)
    _add_path_option(clean_parser)

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for autodoc commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), log_file=args.log_file)

    if args.command == "init":
        _run_init(parser, args)
        return

    try:
        config = load_config(Path(args.path))
    except ConfigError as exc:
        parser.exit(1, f"{exc}\n")

    if args.command == "build":
        _run_build(parser, args, config)
    elif args.command == "status":
        _run_status(parser, args, config)
    elif args.command == "check":
        _run_check(parser, args, config)
    elif args.command == "clean":
        _run_clean(parser, config)
    elif args.command == "config":
        _run_config(parser, args, config)
    elif args.command == "templates":
        _run_templates(config)
    elif args.command == "diagrams":
        _run_diagrams(parser, args, config)
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")


def _run_init(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    scaffolder = ProjectScaffolder()
    try:
        result = scaffolder.initialize(Path(args.path), name=args.name)
    except (OSError, ConfigError) as exc:
        parser.exit(1, f"autodoc init failed: {exc}\n")
    for path in result.created:
        print(f"created {_relativize(path)}")
    for path in result.kept:
        print(f"kept {_relativize(path)}")
    print("Edit 00-setup.md, add numbered Markdown fragments, then run 'autodoc build'.")


def _run_config(parser: argparse.ArgumentParser, args: argparse.Namespace, config: AutodocConfig) -> None:
    if args.config_command == "show":
        print(dump_config(config), end="")
        return
    try:
        path = write_config(AutodocConfig(root=config.root))
    except FileExistsError as exc:
        parser.exit(1, f"Config file already exists at {exc}. Remove it first to regenerate.\n")
    print(f"Wrote {_relativize(path)}")


def _run_templates(config: AutodocConfig) -> None:
    store = TemplateStore.from_config(config)
    names = store.list_templates()
    if not names:
        print("No templates installed")
    for name in names:
        path = store.resolve(name)
        print(f"{name:<30} {_relativize(path)}".rstrip())
    print("Search path: " + ", ".join(str(path) for path in store.search_paths))


def _run_diagrams(parser: argparse.ArgumentParser, args: argparse.Namespace, config: AutodocConfig) -> None:
    if not config.diagrams.enabled:
        parser.exit(1, "Diagram rendering is disabled in the configuration\n")
    try:
        project = FileDiscovery.from_config(config).discover(config.root)
    except DiscoveryError as exc:
        parser.exit(1, f"{exc}\n")
    if not project.diagram_sources:
        print("No Mermaid diagram sources found")
        return
    renderer = MermaidCliRenderer(
        config.diagrams.executable,
        timeout=config.diagrams.timeout,
        theme=config.diagrams.theme,
    )
    processor = DiagramProcessor(config.output_path, renderer)
    rendered, errors = processor.process_sources(project.diagram_sources, force=bool(args.force))
    for artifact in rendered:
        print(f"rendered {_relativize(artifact)}")
    if not rendered and not errors:
        print("All diagrams up to date")
    for error in errors:
        print(f"error: {error.describe()}")
    if errors:
        parser.exit(1, f"{len(errors)} diagram(s) failed to render\n")


def _run_build(parser: argparse.ArgumentParser, args: argparse.Namespace, config: AutodocConfig) -> None:
    try:
        overrides = parse_overrides(args.overrides)
    except ValueError as exc:
        parser.exit(2, f"{exc}\n")
    if args.jobs is not None and args.jobs < 1:
        parser.exit(2, "--jobs must be a positive integer\n")
    if args.timeout is not None:
        if args.timeout <= 0:
            parser.exit(2, "--timeout must be positive\n")
        config.converter.timeout = args.timeout
    if args.no_diagrams:
        config.diagrams.enabled = False

    hooks = ExtensionHooks()
    hooks.load_entry_points()
    pipeline = BuildPipeline(config, hooks=hooks, jobs=args.jobs, force=bool(args.force))

    def _build() -> BuildReport:
        report = pipeline.run(args.formats, overrides=overrides)
        _print_report(report)
        return report

    if args.watch:
        watcher = PollingWatcher(config.root, _build, interval=args.interval, ignore_dirs=(config.output_path,))
        try:
            watcher.watch()
        except KeyboardInterrupt:
            pipeline.cancel()
            watcher.stop()
        return

    try:
        report = _build()
    except DiscoveryError as exc:
        parser.exit(1, f"{exc}\n")
    except AutodocError as exc:
        parser.exit(1, f"autodoc build failed: {exc}\nRun with --verbose for more details.\n")
    if not report.ok:
        parser.exit(report.exit_code, f"Failed formats: {', '.join(report.failed_formats())}\n")


def _run_status(parser: argparse.ArgumentParser, args: argparse.Namespace, config: AutodocConfig) -> None:
    pipeline = BuildPipeline(config)
    try:
        plans = pipeline.status(args.formats)
    except AutodocError as exc:
        parser.exit(1, f"{exc}\n")
    for fmt, stale in plans.items():
        if not stale:
            print(f"{fmt}: up to date")
            continue
        print(f"{fmt}: {len(stale)} input(s) to rebuild")
        for rel_path in stale:
            print(f"  - {rel_path}")


def _run_check(parser: argparse.ArgumentParser, args: argparse.Namespace, config: AutodocConfig) -> None:
    checker = ToolchainChecker(config)
    statuses = checker.check(args.formats)
    for status in statuses:
        marker = "ok" if status.available else "missing"
        label = "required" if status.required else "optional"
        detail = status.version or status.install_hint or ""
        print(f"{status.name:<10} {marker:<8} {label:<9} {detail}".rstrip())
    missing = [status.name for status in statuses if status.required and not status.available]
    if missing:
        parser.exit(1, f"Missing required tools: {', '.join(missing)}\n")


def _run_clean(parser: argparse.ArgumentParser, config: AutodocConfig) -> None:
    root = config.root.resolve()
    output = config.output_path.resolve()
    if output == root or root not in output.parents:
        parser.exit(1, f"Refusing to clean output directory outside the project: {output}\n")
    removed: List[str] = []
    if output.exists():
        shutil.rmtree(output)
        removed.append(_relativize(output))
    cache_path = config.cache_path
    if cache_path.exists():
        cache_path.unlink()
        removed.append(_relativize(cache_path))
    print("Removed " + ", ".join(removed) if removed else "Nothing to clean")


def _print_report(report: BuildReport) -> None:
    for result in report.results:
        if result.status == "failed":
            print(f"{result.format}: failed ({result.error})")
        elif result.status == "skipped":
            print(f"{result.format}: up to date ({_relativize(result.output)})")
        else:
            print(f"{result.format}: built {_relativize(result.output)}")
    for message in report.parse_errors + report.dependency_warnings + report.render_warnings:
        print(f"warning: {message}")


def _relativize(path: Path | None) -> str:
    if path is None:
        return ""
    try:
        return str(path.relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])
