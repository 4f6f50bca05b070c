"""Run configuration.

Defaults cover the common case; a YAML file passed with ``--config`` can
override any field.  Sections mirror the dataclasses::

    source:
      branch: develop
      exclude: ["legacy/**"]
    analysis:
      concurrency: 8
      ai_summaries: true
      ai_provider:
        name: anthropic
    sync:
      impact_depth: 1
"""

import dataclasses
import logging
import types
import typing
from dataclasses import dataclass, field
from pathlib import Path

import yaml

log = logging.getLogger(__name__)

DEFAULT_INCLUDE = [
    "**/*.ts", "**/*.tsx", "**/*.js", "**/*.jsx", "**/*.mjs", "**/*.cjs",
    "**/*.py", "**/*.pyi",
    "**/*.go",
    "**/*.rs",
    "**/*.java",
    "**/*.cs",
    "**/*.rb",
    "**/*.php",
    "**/*.sh", "**/*.bash",
    "**/*.yaml", "**/*.yml",
    "**/*.tf", "**/*.hcl",
    "**/*.md",
    "**/*.json",
    "**/*.toml",
    "**/*.xml",
    "**/*.sql",
    "**/*.dockerfile", "**/Dockerfile",
    "**/*.c", "**/*.h",
    "**/*.cpp", "**/*.hpp", "**/*.cc", "**/*.cxx",
    "**/*.swift",
    "**/*.kt", "**/*.kts",
    "**/*.scala",
]

DEFAULT_EXCLUDE = [
    "node_modules/**", "dist/**", "build/**", "out/**", ".git/**",
    ".next/**", ".nuxt/**", ".output/**", "vendor/**", "__pycache__/**",
    "venv/**", ".venv/**", "env/**", "target/**", "coverage/**",
    ".codemanifest/**", "site/**",
    "**/*.test.*", "**/*.spec.*", "**/__tests__/**",
    "**/*.d.ts", "**/*.min.js", "**/migrations/**",
]


class ConfigError(ValueError):
    """The config file is unreadable or holds values of the wrong shape."""


@dataclass
class ProviderConfig:
    name: str = "anthropic"         # anthropic | openai | gemini | ollama | local | openrouter | claude-cli
    model: str | None = None
    api_key_env: str = "CODEMANIFEST_AI_KEY"
    base_url: str | None = None
    timeout: float = 60.0           # seconds per provider call
    concurrency: int = 3
    delay_ms: int = 200             # pause before an admission slot is released
    max_retries: int = 3
    base_delay_ms: int = 2000       # retry backoff base
    max_tokens: int = 256


@dataclass
class SourceConfig:
    repo: str = ""                  # defaults to the root directory name
    branch: str = "main"
    include: list[str] = field(default_factory=lambda: list(DEFAULT_INCLUDE))
    exclude: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE))
    respect_gitignore: bool = True


@dataclass
class AnalysisConfig:
    max_file_size: int = 500_000    # bytes; larger files are skipped
    concurrency: int = 4            # parse workers
    parse_timeout: float = 30.0     # seconds per file
    monorepo: bool = True
    ai_summaries: bool = False
    ai_provider: ProviderConfig | None = None


@dataclass
class SyncConfig:
    state_file: str = ".codemanifest/state.json"
    manifest_file: str = ".codemanifest/manifest.json"
    impact_analysis: bool = True
    impact_depth: int | None = None     # None = transitive, 1 = direct importers
    fallback_to_full: bool = True


@dataclass
class Config:
    root: Path = field(default_factory=Path.cwd)
    source: SourceConfig = field(default_factory=SourceConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)

    def __post_init__(self):
        self.root = Path(self.root).resolve()
        if not self.source.repo:
            self.source.repo = self.root.name

    @property
    def state_path(self) -> Path:
        return self.root / self.sync.state_file

    @property
    def manifest_path(self) -> Path:
        return self.root / self.sync.manifest_file


# ── loading ──────────────────────────────────────────────────────────────────

def _check(value, tp, where: str):
    origin = typing.get_origin(tp)
    if origin in (typing.Union, types.UnionType):
        args = typing.get_args(tp)
        if value is None and type(None) in args:
            return None
        inner = [a for a in args if a is not type(None)]
        return _check(value, inner[0], where)
    if dataclasses.is_dataclass(tp):
        return _section(tp, value, where)
    if origin is list:
        (item,) = typing.get_args(tp)
        if not isinstance(value, list):
            raise ConfigError(f"{where}: expected a list, got {type(value).__name__}")
        return [_check(v, item, f"{where}[{i}]") for i, v in enumerate(value)]
    if tp is float and isinstance(value, int) and not isinstance(value, bool):
        return float(value)
    if tp is int and isinstance(value, bool):
        raise ConfigError(f"{where}: expected int, got bool")
    if not isinstance(value, tp):
        raise ConfigError(f"{where}: expected {tp.__name__}, got {type(value).__name__}")
    return value


def _section(cls, data, where: str):
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ConfigError(f"{where}: expected a mapping, got {type(data).__name__}")
    hints = typing.get_type_hints(cls)
    known = {f.name for f in dataclasses.fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"{where}: unknown key(s): {', '.join(unknown)}")
    kwargs = {k: _check(v, hints[k], f"{where}.{k}") for k, v in data.items()}
    return cls(**kwargs)


def load_config(path: str | Path | None = None, root: str | Path | None = None) -> Config:
    """Defaults, overridden by the YAML file at ``path`` when one is given."""
    root = Path(root) if root is not None else Path.cwd()
    if path is None:
        return Config(root=root)

    path = Path(path)
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except OSError as e:
        raise ConfigError(f"cannot read config {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")

    unknown = sorted(set(data) - {"source", "analysis", "sync"})
    if unknown:
        raise ConfigError(f"{path}: unknown section(s): {', '.join(unknown)}")

    config = Config(
        root=root,
        source=_section(SourceConfig, data.get("source"), "source"),
        analysis=_section(AnalysisConfig, data.get("analysis"), "analysis"),
        sync=_section(SyncConfig, data.get("sync"), "sync"),
    )
    if config.analysis.concurrency < 1:
        raise ConfigError("analysis.concurrency must be at least 1")
    provider = config.analysis.ai_provider
    if provider is not None and provider.concurrency < 1:
        raise ConfigError("analysis.ai_provider.concurrency must be at least 1")
    log.debug("Loaded config from %s", path)
    return config
