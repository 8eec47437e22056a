"""Configuration loading for pkgctx (.pkgctx.yml) and per-run options."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

from pkgctx.errors import ConfigError

CONFIG_FILENAME = ".pkgctx.yml"

OUTPUT_FORMATS = ("yaml", "json")


@dataclass(frozen=True)
class PkgctxConfig:
    """Tunable constants for the extraction pipeline."""

    # Hoisting: fraction of declaring functions that must share a description.
    hoist_threshold: float = 0.5
    hoist_min_functions: int = 3

    related_limit: int = 5
    max_examples: int = 3
    compact_max_chars: int = 80

    max_workers: int = 8

    # Transport
    http_timeout: float = 30.0
    retries: int = 3
    backoff_base: float = 0.5
    cran_mirror: str = "https://cloud.r-project.org"
    pypi_index: str = "https://pypi.org"
    github_base: str = "https://github.com"
    cache_dir: Path | None = None

    def with_overrides(self, **overrides: Any) -> PkgctxConfig:
        """Return a copy with non-None overrides applied."""
        values = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **values) if values else self


@dataclass(frozen=True)
class ExtractOptions:
    """Per-run switches, mirroring the command-line flags."""

    format: str = "yaml"
    compact: bool = False
    include_internal: bool = False
    emit_classes: bool = False
    emit_workflows: bool = False
    hoist_common_args: bool = False
    header: bool = True
    schema_version: str = "1.1"

    def enabled_flags(self) -> list[str]:
        """Names of the enabled transform flags, in a fixed order."""
        names = [
            "compact",
            "include_internal",
            "emit_classes",
            "emit_workflows",
            "hoist_common_args",
        ]
        return [n for n in names if getattr(self, n)]


def load_config(config_path: Path | None = None) -> PkgctxConfig:
    """Load configuration from disk.

    With no explicit path, ``.pkgctx.yml`` in the working directory is used
    when present; otherwise the defaults apply.
    """
    if config_path is None:
        candidate = Path.cwd() / CONFIG_FILENAME
        if not candidate.exists():
            return PkgctxConfig()
        config_path = candidate

    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {config_path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"{config_path}: top level must be a mapping")

    return _build_config(data, config_path)


# Lower bounds for numeric settings.
_MINIMUMS = {
    "hoist_min_functions": 2,
    "related_limit": 0,
    "max_examples": 0,
    "compact_max_chars": 16,
    "max_workers": 1,
    "retries": 0,
    "backoff_base": 0.0,
}


def _build_config(data: dict, source: Path) -> PkgctxConfig:
    known = {f.name: f for f in fields(PkgctxConfig)}
    defaults = PkgctxConfig()
    values: dict[str, Any] = {}

    for key, value in data.items():
        name = str(key).replace("-", "_")
        if name not in known:
            raise ConfigError(f"{source}: unknown setting '{key}'")
        values[name] = _coerce(name, value, getattr(defaults, name), source)

    config = replace(defaults, **values)
    if not 0.0 < config.hoist_threshold <= 1.0:
        raise ConfigError(f"{source}: hoist_threshold must be in (0, 1]")
    for name, minimum in _MINIMUMS.items():
        if getattr(config, name) < minimum:
            raise ConfigError(f"{source}: {name} must be at least {minimum}")
    if config.http_timeout <= 0:
        raise ConfigError(f"{source}: http_timeout must be positive")
    return config


def _coerce(name: str, value: Any, default: Any, source: Path) -> Any:
    if name == "cache_dir":
        if value is None:
            return None
        if not isinstance(value, str):
            raise ConfigError(f"{source}: '{name}' must be a path string")
        return Path(value).expanduser()

    if isinstance(default, bool) or default is None:
        expected: tuple[type, ...] = (bool,)
    elif isinstance(default, float):
        expected = (int, float)
    else:
        expected = (type(default),)

    if isinstance(value, bool) and bool not in expected:
        raise ConfigError(f"{source}: '{name}' must be {type(default).__name__}")
    if not isinstance(value, expected):
        raise ConfigError(f"{source}: '{name}' must be {type(default).__name__}")
    if isinstance(default, float):
        return float(value)
    if isinstance(default, str):
        return value.rstrip("/")
    return value
