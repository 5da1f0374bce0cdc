"""Build pipeline orchestration: discovery through per-format conversion."""

from __future__ import annotations

import os
import shutil
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .config import SUPPORTED_FORMATS, AutodocConfig
from .converter import PandocConverter, metadata_hash
from .dependencies import DependencyExtractor, DependencyGraph
from .diagrams import DiagramProcessor, DiagramRenderer, MermaidCliRenderer, find_diagram_blocks
from .discovery import FileDiscovery
from .errors import ConverterError, RenderError
from .hooks import ExtensionHooks
from .logging import get_logger, log_exception
from .metadata import MetadataParser, merge_metadata
from .models import (
    BuildManifest,
    BuildReport,
    CacheEntry,
    DiscoveredProject,
    FormatResult,
    MergedMetadata,
    ParsedFragment,
)
from .stores import BuildCache
from .templates import TemplateStore

_EXTENSIONS = {"pdf": ".pdf", "docx": ".docx", "html": ".html"}

STAGING_DIRNAME = ".staging"


@dataclass
class _RunContext:
    """State shared read-only by every format of one run."""

    project: DiscoveredProject
    fragments: List[ParsedFragment]
    graph: DependencyGraph
    metadata: MergedMetadata
    cache: BuildCache
    diagrams: DiagramProcessor
    standalone: Dict[Path, Path] = field(default_factory=dict)
    parse_errors: List[str] = field(default_factory=list)
    unreadable: List[str] = field(default_factory=list)
    render_warnings: List[str] = field(default_factory=list)


@dataclass
class _FormatPlan:
    fmt: str
    output: Path
    template: Optional[Path]
    template_hash: Optional[str]
    metadata_hash: str
    dependencies: Dict[Path, List[Path]]
    stale: List[str]
    input_set_changed: bool

    @property
    def up_to_date(self) -> bool:
        return not self.stale and not self.input_set_changed


class BuildPipeline:
    """Composes discovery, metadata merge, caching, diagrams and conversion."""

    def __init__(
        self,
        config: AutodocConfig,
        *,
        discovery: FileDiscovery | None = None,
        parser: MetadataParser | None = None,
        extractor: DependencyExtractor | None = None,
        renderer: DiagramRenderer | None = None,
        converter: PandocConverter | None = None,
        templates: TemplateStore | None = None,
        hooks: ExtensionHooks | None = None,
        jobs: int | None = None,
        force: bool = False,
    ) -> None:
        self.config = config
        self.discovery = discovery or FileDiscovery.from_config(config)
        self.parser = parser or MetadataParser()
        self.extractor = extractor or DependencyExtractor()
        if renderer is None and config.diagrams.enabled:
            renderer = MermaidCliRenderer(
                config.diagrams.executable,
                timeout=config.diagrams.timeout,
                theme=config.diagrams.theme,
            )
        self.renderer = renderer
        self.converter = converter or PandocConverter(config.converter)
        self.templates = templates or TemplateStore.from_config(config)
        self.hooks = hooks or ExtensionHooks()
        self.jobs = jobs or config.jobs or os.cpu_count() or 1
        self.force = force
        self.logger = get_logger("pipeline")
        self._run_lock = threading.Lock()
        self._cancel = threading.Event()

    def cancel(self) -> None:
        """Stop running conversions; their partial artifacts are discarded."""
        self._cancel.set()

    def run(
        self,
        formats: Sequence[str] | None = None,
        *,
        overrides: Mapping[str, Any] | None = None,
    ) -> BuildReport:
        """Build every requested format. Runs are serialised by a run lock."""
        with self._run_lock:
            self._cancel.clear()
            requested = _unique(formats or self.config.formats)
            context = self._prepare(overrides)
            report = BuildReport(
                metadata=context.metadata,
                parse_errors=list(context.parse_errors),
                dependency_warnings=[str(warning) for warning in context.graph.warnings],
                render_warnings=list(context.render_warnings),
            )

            supported = [fmt for fmt in requested if fmt in SUPPORTED_FORMATS]
            results: Dict[str, FormatResult] = {}
            for fmt in requested:
                if fmt not in SUPPORTED_FORMATS:
                    results[fmt] = FormatResult(format=fmt, status="failed", error=f"unsupported format '{fmt}'")

            if supported:
                workers = max(1, min(self.jobs, len(supported)))
                with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="autodoc-format") as executor:
                    futures = {fmt: executor.submit(self._build_format, fmt, context) for fmt in supported}
                    for fmt, future in futures.items():
                        result, render_errors = future.result()
                        results[fmt] = result
                        for error in render_errors:
                            message = error.describe()
                            if message not in report.render_warnings:
                                report.render_warnings.append(message)

            report.results = [results[fmt] for fmt in requested]
            context.cache.persist()
            if report.ok and supported and context.diagrams.enabled:
                context.diagrams.prune(self._expected_diagrams(context))
            self._log_summary(report)
            return report

    def status(
        self,
        formats: Sequence[str] | None = None,
        *,
        overrides: Mapping[str, Any] | None = None,
    ) -> Dict[str, List[str]]:
        """Return the inputs each format would rebuild, without building."""
        with self._run_lock:
            context = self._prepare(overrides, render_sources=False)
            plans: Dict[str, List[str]] = {}
            for fmt in _unique(formats or self.config.formats):
                if fmt not in SUPPORTED_FORMATS:
                    continue
                plan = self._plan(fmt, context)
                if plan.up_to_date:
                    plans[fmt] = []
                else:
                    plans[fmt] = plan.stale or [item.file.rel_path for item in context.fragments]
            return plans

    # ------------------------------------------------------------------
    # Shared phase

    def _prepare(self, overrides: Mapping[str, Any] | None, *, render_sources: bool = True) -> _RunContext:
        config = self.config
        self.hooks.run("pre_discovery", config=config)
        project = self.discovery.discover(config.root)
        self.hooks.run("post_discovery", config=config, project=project)

        fragments, parse_errors = self.parser.parse_all(project.fragments)
        graph = self.extractor.build_graph(fragments)
        metadata = merge_metadata(
            fragments,
            overrides=overrides,
            setup_file=config.setup_file,
            project_defaults=config.metadata,
        )

        cache = BuildCache(
            config.cache_path if config.cache.enabled else None,
            project.root,
            force=self.force or not config.cache.enabled,
            template_invalidates=config.cache.template_invalidates,
        )
        diagrams = DiagramProcessor(config.output_path, self.renderer, enabled=config.diagrams.enabled)
        context = _RunContext(
            project=project,
            fragments=fragments,
            graph=graph,
            metadata=metadata,
            cache=cache,
            diagrams=diagrams,
            parse_errors=[str(error) for error in parse_errors],
            unreadable=[cache.key_for(error.path) for error in parse_errors if error.fatal],
        )
        # Decisions must see the bytes that were parsed and will be staged.
        for fragment in fragments:
            if fragment.fingerprint is not None:
                cache.fingerprinter.seed(fragment.path, fragment.fingerprint)

        for source in project.diagram_sources:
            context.standalone[diagrams.artifact_for_source(source)] = source.path
        if render_sources:
            rendered, errors = diagrams.process_sources(project.diagram_sources)
            for artifact in rendered:
                cache.fingerprinter.forget(artifact)
            context.render_warnings = [error.describe() for error in errors]
        return context

    # ------------------------------------------------------------------
    # Per-format phase

    def _plan(self, fmt: str, context: _RunContext) -> _FormatPlan:
        cache = context.cache
        output = self.output_for(fmt)
        template = self.templates.find_for_format(fmt, self.config.templates.get(fmt))
        template_hash = cache.fingerprinter.fingerprint(template) if template is not None else None
        meta_hash = metadata_hash(context.metadata, fmt, pdf_engine=self.config.converter.pdf_engine)
        dependencies = {
            fragment.path: self._dependencies_for(fragment, context) for fragment in context.fragments
        }
        files = [fragment.file for fragment in context.fragments]
        stale = cache.stale_inputs(
            fmt,
            files,
            dependencies=dependencies,
            metadata_hash=meta_hash,
            template_hash=template_hash,
            artifact=output,
        )
        return _FormatPlan(
            fmt=fmt,
            output=output,
            template=template,
            template_hash=template_hash,
            metadata_hash=meta_hash,
            dependencies=dependencies,
            stale=stale,
            input_set_changed=cache.input_set_changed(fmt, files),
        )

    def _build_format(self, fmt: str, context: _RunContext) -> Tuple[FormatResult, List[RenderError]]:
        render_errors: List[RenderError] = []
        if not context.fragments:
            return FormatResult(format=fmt, status="failed", error="no Markdown fragments found"), render_errors
        if context.unreadable:
            error = f"unreadable fragment(s): {', '.join(context.unreadable)}"
            return FormatResult(format=fmt, status="failed", error=error), render_errors
        try:
            plan = self._plan(fmt, context)
            if plan.up_to_date:
                self.logger.info("%s is up to date: %s", fmt, plan.output)
                return FormatResult(format=fmt, status="skipped", output=plan.output), render_errors

            rebuilt = plan.stale or [fragment.file.rel_path for fragment in context.fragments]
            self.logger.info("Building %s (%d changed input(s))", fmt, len(rebuilt))

            staged, failed_owners = self._stage(fmt, plan, context, render_errors)
            manifest = BuildManifest(
                format=fmt,
                inputs=staged,
                metadata=context.metadata,
                output=plan.output,
                template=plan.template,
                bibliography_files=[item.path for item in context.project.bibliographies],
            )
            if self._cancel.is_set():
                raise ConverterError(fmt, "conversion cancelled", cancelled=True)
            self.hooks.run("pre_convert", config=self.config, manifest=manifest)
            self.converter.convert(manifest, root=context.project.root, cancel_event=self._cancel)

            # Fragments with a failed diagram stay untracked so the next run retries them.
            entries: List[CacheEntry] = [
                context.cache.make_entry(
                    fragment.file,
                    dependencies=plan.dependencies[fragment.path],
                    output=plan.output,
                )
                for fragment in context.fragments
                if fragment.path not in failed_owners
            ]
            context.cache.record_success(
                fmt,
                entries,
                metadata_hash=plan.metadata_hash,
                template_hash=plan.template_hash,
            )
            result = FormatResult(format=fmt, status="built", output=plan.output, rebuilt_inputs=rebuilt)
            self.hooks.run("post_convert", config=self.config, manifest=manifest, result=result)
            self.logger.info("Built %s: %s", fmt, plan.output)
            return result, render_errors
        except ConverterError as exc:
            self.logger.error("Failed to build %s: %s", fmt, exc)
            return FormatResult(format=fmt, status="failed", error=str(exc)), render_errors
        except Exception as exc:
            log_exception(self.logger, f"Failed to build {fmt}", exc)
            return FormatResult(format=fmt, status="failed", error=f"{fmt}: {exc}"), render_errors

    def _stage(
        self,
        fmt: str,
        plan: _FormatPlan,
        context: _RunContext,
        render_errors: List[RenderError],
    ) -> Tuple[List[Path], set[Path]]:
        """Write diagram-substituted fragments into the format's staging folder."""
        staging_dir = self.config.output_path / STAGING_DIRNAME / fmt
        if staging_dir.exists():
            shutil.rmtree(staging_dir)
        staging_dir.mkdir(parents=True)

        stale = set(plan.stale)
        staged: List[Path] = []
        failed_owners: set[Path] = set()
        for fragment in context.fragments:
            outcome = context.diagrams.process_fragment(fragment, changed=fragment.file.rel_path in stale)
            for artifact in outcome.rendered:
                context.cache.fingerprinter.forget(artifact)
            for artifact in outcome.artifacts:
                context.graph.add(fragment.path, artifact)
            if outcome.errors:
                render_errors.extend(outcome.errors)
                failed_owners.add(fragment.path)
            target = staging_dir / fragment.file.rel_path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(outcome.content, encoding="utf-8")
            staged.append(target)
        return staged, failed_owners

    def _dependencies_for(self, fragment: ParsedFragment, context: _RunContext) -> List[Path]:
        dependencies = set(context.graph.transitive_targets(fragment.path))
        for target in list(dependencies):
            source = context.standalone.get(target)
            if source is not None:
                context.graph.add(fragment.path, source)
                dependencies.add(source)
        if context.diagrams.enabled:
            for index, source in enumerate(find_diagram_blocks(fragment.content)):
                dependencies.add(context.diagrams.artifact_for_block(fragment, index, source))
        for bibliography in self._bibliography_paths(context):
            dependencies.add(bibliography)
        dependencies.discard(fragment.path)
        return sorted(dependencies)

    def _expected_diagrams(self, context: _RunContext) -> List[Path]:
        expected = list(context.standalone)
        for fragment in context.fragments:
            for index, source in enumerate(find_diagram_blocks(fragment.content)):
                expected.append(context.diagrams.artifact_for_block(fragment, index, source))
        return expected

    def _bibliography_paths(self, context: _RunContext) -> List[Path]:
        root = context.project.root
        declared = list(context.metadata.bibliography or [])
        if context.metadata.csl:
            declared.append(context.metadata.csl)
        paths = [path if path.is_absolute() else root / path for path in map(Path, declared)]
        if not context.metadata.bibliography:
            paths.extend(item.path for item in context.project.bibliographies)
        return paths

    def output_for(self, fmt: str) -> Path:
        return self.config.output_path / f"{self.config.name}{_EXTENSIONS.get(fmt, '.' + fmt)}"

    def _log_summary(self, report: BuildReport) -> None:
        for result in report.results:
            if result.status == "failed":
                self.logger.error("%s failed: %s", result.format, result.error)
        if report.ok:
            self.logger.info("All %d format(s) succeeded", len(report.results))
        else:
            self.logger.error("Failed formats: %s", ", ".join(report.failed_formats()))


def _unique(items: Sequence[str]) -> List[str]:
    seen: set[str] = set()
    ordered: List[str] = []
    for item in items:
        key = item.lower()
        if key not in seen:
            ordered.append(key)
            seen.add(key)
    return ordered


__all__ = ["BuildPipeline", "STAGING_DIRNAME"]
