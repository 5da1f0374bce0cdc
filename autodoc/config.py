"""Configuration loading for autodoc (autodoc.yml)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .errors import ConfigError
from .utils import as_bool, as_dict, as_float, as_int, as_str, as_str_list

CONFIG_FILENAMES = ("autodoc.yml", "autodoc.yaml", ".autodoc.yml", ".autodoc.yaml")
SUPPORTED_FORMATS = ("pdf", "docx", "html")


@dataclass
class ConverterConfig:
    """External converter (pandoc) invocation settings."""

    executable: List[str] = field(default_factory=lambda: ["pandoc"])
    timeout: float = 300.0
    pdf_engine: str = "xelatex"
    extra_args: List[str] = field(default_factory=list)


@dataclass
class DiagramConfig:
    """Diagram pre-rendering settings."""

    enabled: bool = True
    executable: List[str] = field(default_factory=lambda: ["mmdc"])
    timeout: float = 60.0
    theme: Optional[str] = None


@dataclass
class CacheConfig:
    """Build cache behaviour."""

    enabled: bool = True
    path: Optional[Path] = None
    template_invalidates: bool = True


@dataclass
class AutodocConfig:
    """Represents the project settings defined in autodoc.yml."""

    root: Path
    name: str = "document"
    output_dir: Path = Path("output")
    templates_dir: Path = Path("templates")
    setup_file: str = "00-setup.md"
    formats: List[str] = field(default_factory=lambda: ["pdf"])
    exclude_paths: List[str] = field(default_factory=list)
    jobs: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    templates: Dict[str, str] = field(default_factory=dict)
    converter: ConverterConfig = field(default_factory=ConverterConfig)
    diagrams: DiagramConfig = field(default_factory=DiagramConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)

    @property
    def output_path(self) -> Path:
        return _under_root(self.root, self.output_dir)

    @property
    def templates_path(self) -> Path:
        return _under_root(self.root, self.templates_dir)

    @property
    def cache_path(self) -> Path:
        if self.cache.path is not None:
            return _under_root(self.root, self.cache.path)
        return self.root / ".autodoc" / "build_cache.json"


def find_config_file(root: Path) -> Optional[Path]:
    for candidate in CONFIG_FILENAMES:
        path = root / candidate
        if path.is_file():
            return path
    return None


def load_config(config_path: Path) -> AutodocConfig:
    """Load configuration from a project directory or an explicit file."""
    config_path = config_path.expanduser()
    if config_path.is_dir():
        root = config_path.resolve()
        config_file = find_config_file(root)
    else:
        config_file = config_path.resolve()
        root = config_file.parent

    if config_file is None or not config_file.exists():
        return AutodocConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{config_file.name} must contain a mapping at the root")

    config = AutodocConfig(root=root)

    name = _as_str_value(data.get("name"))
    if name:
        config.name = name
    output_dir = _as_str_value(data.get("output_dir"))
    if output_dir:
        config.output_dir = Path(output_dir)
    templates_dir = _as_str_value(data.get("templates_dir"))
    if templates_dir:
        config.templates_dir = Path(templates_dir)
    setup_file = _as_str_value(data.get("setup_file"))
    if setup_file:
        config.setup_file = setup_file

    formats = [item.lower() for item in as_str_list(data.get("formats"))]
    unknown = sorted(set(formats) - set(SUPPORTED_FORMATS))
    if unknown:
        raise ConfigError(f"Unsupported output formats in {config_file.name}: {', '.join(unknown)}")
    if formats:
        config.formats = formats

    config.exclude_paths = as_str_list(data.get("exclude_paths"))
    jobs = as_int(data.get("jobs"))
    if jobs is not None:
        if jobs < 1:
            raise ConfigError("jobs must be a positive integer")
        config.jobs = jobs
    config.metadata = dict(as_dict(data.get("metadata")))

    templates = as_dict(data.get("templates"))
    config.templates = {
        str(key).lower(): str(value)
        for key, value in templates.items()
        if isinstance(value, str) and value.strip()
    }

    converter_data = as_dict(data.get("converter"))
    if converter_data:
        converter = config.converter
        executable = _as_command(converter_data.get("executable"))
        if executable:
            converter.executable = executable
        timeout = as_float(converter_data.get("timeout"))
        if timeout is not None and timeout > 0:
            converter.timeout = timeout
        engine = _as_str_value(converter_data.get("pdf_engine"))
        if engine:
            converter.pdf_engine = engine
        converter.extra_args = as_str_list(converter_data.get("extra_args"))

    diagram_data = as_dict(data.get("diagrams"))
    if diagram_data:
        diagrams = config.diagrams
        enabled = as_bool(diagram_data.get("enabled"))
        if enabled is not None:
            diagrams.enabled = enabled
        executable = _as_command(diagram_data.get("executable"))
        if executable:
            diagrams.executable = executable
        timeout = as_float(diagram_data.get("timeout"))
        if timeout is not None and timeout > 0:
            diagrams.timeout = timeout
        diagrams.theme = _as_str_value(diagram_data.get("theme"))

    cache_data = as_dict(data.get("cache"))
    if cache_data:
        cache = config.cache
        enabled = as_bool(cache_data.get("enabled"))
        if enabled is not None:
            cache.enabled = enabled
        cache_path = _as_str_value(cache_data.get("path"))
        if cache_path:
            cache.path = Path(cache_path)
        invalidates = as_bool(cache_data.get("template_invalidates"))
        if invalidates is not None:
            cache.template_invalidates = invalidates

    return config


def config_to_dict(config: AutodocConfig) -> Dict[str, Any]:
    """Return the settings of ``config`` in the shape autodoc.yml uses."""
    data: Dict[str, Any] = {
        "name": config.name,
        "output_dir": config.output_dir.as_posix(),
        "templates_dir": config.templates_dir.as_posix(),
        "setup_file": config.setup_file,
        "formats": list(config.formats),
        "exclude_paths": list(config.exclude_paths),
    }
    if config.jobs is not None:
        data["jobs"] = config.jobs
    data["metadata"] = dict(config.metadata)
    data["templates"] = dict(config.templates)
    data["converter"] = {
        "executable": list(config.converter.executable),
        "timeout": config.converter.timeout,
        "pdf_engine": config.converter.pdf_engine,
        "extra_args": list(config.converter.extra_args),
    }
    diagrams: Dict[str, Any] = {
        "enabled": config.diagrams.enabled,
        "executable": list(config.diagrams.executable),
        "timeout": config.diagrams.timeout,
    }
    if config.diagrams.theme:
        diagrams["theme"] = config.diagrams.theme
    data["diagrams"] = diagrams
    cache: Dict[str, Any] = {
        "enabled": config.cache.enabled,
        "template_invalidates": config.cache.template_invalidates,
    }
    if config.cache.path is not None:
        cache["path"] = config.cache.path.as_posix()
    data["cache"] = cache
    return data


def dump_config(config: AutodocConfig) -> str:
    return yaml.safe_dump(config_to_dict(config), sort_keys=False, allow_unicode=True)


def write_config(config: AutodocConfig, path: Optional[Path] = None) -> Path:
    """Write ``config`` to ``path`` (defaults to autodoc.yml in the project root).

    Raises FileExistsError when a configuration file is already present.
    """
    target = path or config.root / CONFIG_FILENAMES[0]
    existing = target if target.exists() else find_config_file(config.root)
    if existing is not None:
        raise FileExistsError(existing)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(dump_config(config), encoding="utf-8")
    return target


def _read_config(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded if loaded is not None else {}


def _under_root(root: Path, path: Path) -> Path:
    return path if path.is_absolute() else root / path


def _as_str_value(value: Any) -> Optional[str]:
    text = as_str(value)
    if text is None:
        return None
    text = text.strip()
    return text or None


def _as_command(value: Any) -> List[str]:
    if isinstance(value, str):
        return value.split()
    return as_str_list(value)


__all__ = [
    "AutodocConfig",
    "CacheConfig",
    "CONFIG_FILENAMES",
    "ConfigError",
    "ConverterConfig",
    "DiagramConfig",
    "SUPPORTED_FORMATS",
    "config_to_dict",
    "dump_config",
    "find_config_file",
    "load_config",
    "write_config",
]
