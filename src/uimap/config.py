"""Configuration for uimap.

Two layers of configuration exist:
- Settings: how the tool runs (project root, registry location, file types).
  Loaded from an optional YAML file.
- MappingConfig: what the user asserts about the mapping (manual overrides,
  module priority, critical mappings). Merged from up to three JSON files in
  a fixed precedence order: tool defaults, project-level, project-local.

Both are plain values passed into the indexer, matcher and auditor.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigError
from .indexer.utils import is_within_root
from .models.records import CriticalMapping, OverrideRule

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "inspector-map.json"
LOCAL_CONFIG_FILE_NAME = "inspector-map.local.json"
PROJECT_STATE_DIR = ".uimap"

# Automatic signals whose weight may be tuned. Manual overrides always score 1.0.
TUNABLE_SIGNALS = ("identifier_exact", "class_name", "identifier_prefix", "label_exact")

DEFAULT_IGNORED_DIRS = [
    "build",
    "DerivedData",
    "Pods",
    "Carthage",
    "node_modules",
]


class Settings(BaseModel):
    """uimap settings."""

    project_root: Path = Field(
        default_factory=lambda: Path(".").resolve(),
        description="Root of the source tree to index",
    )
    tool_root: Path = Field(
        default_factory=lambda: Path(".").resolve(),
        description="Directory holding config/inspector-map.json tool defaults",
    )
    registry_path: Optional[Path] = Field(
        default=None,
        description="Explicit identifier registry location",
    )
    output_dir: Optional[Path] = Field(
        default=None,
        description="Where audit artifacts are written",
    )
    source_extensions: List[str] = Field(default_factory=lambda: [".swift"])
    ignored_dirs: List[str] = Field(default_factory=lambda: list(DEFAULT_IGNORED_DIRS))
    max_alternatives: int = 4
    label_min_length: int = 3
    signal_weights: Dict[str, float] = Field(default_factory=dict)

    @field_validator("project_root", "tool_root", mode="before")
    def _coerce_path(cls, value: str | Path) -> Path:
        return Path(value).expanduser().resolve()

    @field_validator("registry_path", "output_dir", mode="before")
    def _coerce_optional_path(cls, value: str | Path | None) -> Optional[Path]:
        if value is None:
            return None
        return Path(value).expanduser().resolve()

    @field_validator("signal_weights")
    def _check_signal_weights(cls, value: Dict[str, float]) -> Dict[str, float]:
        for signal, weight in value.items():
            if signal not in TUNABLE_SIGNALS:
                raise ValueError(
                    f"unknown signal {signal!r}, expected one of {', '.join(TUNABLE_SIGNALS)}"
                )
            if not 0.0 <= weight <= 1.0:
                raise ValueError(f"weight for {signal} must be within [0, 1]")
        return value

    @property
    def resolved_registry_path(self) -> Path:
        if self.registry_path is not None:
            return self.registry_path
        return self.project_root / PROJECT_STATE_DIR / "identifier-registry.json"

    @property
    def resolved_output_dir(self) -> Path:
        if self.output_dir is not None:
            return self.output_dir
        return self.tool_root / "artifacts"

    def config_sources(self) -> List[Path]:
        """Mapping config files in precedence order, lowest first."""
        return [
            self.tool_root / "config" / CONFIG_FILE_NAME,
            self.project_root / PROJECT_STATE_DIR / CONFIG_FILE_NAME,
            self.project_root / PROJECT_STATE_DIR / LOCAL_CONFIG_FILE_NAME,
        ]


def load_settings(config_path: Optional[Path] = None, **overrides: object) -> Settings:
    """Load settings from YAML if provided, otherwise use defaults."""
    data: dict = {}
    if config_path is not None:
        if not config_path.exists():
            raise ConfigError("Settings file not found", path=config_path)
        try:
            data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML: {exc}", path=config_path) from exc
        if not isinstance(data, dict):
            raise ConfigError("Settings must be a mapping", path=config_path)
    data.update({key: value for key, value in overrides.items() if value is not None})
    try:
        return Settings(**data)
    except ValidationError as exc:
        key = ".".join(str(part) for part in exc.errors()[0]["loc"]) if exc.errors() else None
        raise ConfigError("Invalid settings", path=config_path, key=key) from exc


# --- mapping configuration -----------------------------------------------


class _OverrideEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    pattern: str
    file: str
    line: Optional[int] = None
    owner_type: Optional[str] = Field(default=None, alias="ownerType")
    module: Optional[str] = None


class _CriticalEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    pattern: str
    min_confidence: float = Field(default=0.7, alias="minConfidence", ge=0.0, le=1.0)


class _ConfigFile(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    overrides: List[_OverrideEntry] = Field(default_factory=list)
    module_priority: Optional[List[str]] = Field(default=None, alias="modulePriority")
    critical_mappings: List[_CriticalEntry] = Field(default_factory=list, alias="criticalMappings")


@dataclass(slots=True)
class MappingConfig:
    """Merged manual mapping configuration."""

    overrides: Dict[str, OverrideRule] = field(default_factory=dict)
    module_priority: List[str] = field(default_factory=list)
    critical_mappings: Dict[str, CriticalMapping] = field(default_factory=dict)
    sources: List[str] = field(default_factory=list)

    def override_rules(self) -> List[OverrideRule]:
        return list(self.overrides.values())

    def critical_rules(self) -> List[CriticalMapping]:
        return list(self.critical_mappings.values())


def _read_config_file(path: Path) -> _ConfigFile:
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"Unable to read config: {exc}", path=path) from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Malformed JSON at line {exc.lineno}", path=path) from exc
    return _validate_config(raw, path)


def _validate_config(raw: object, path: Optional[Path] = None) -> _ConfigFile:
    if not isinstance(raw, dict):
        raise ConfigError("Config must be a JSON object", path=path)
    try:
        return _ConfigFile.model_validate(raw)
    except ValidationError as exc:
        first = exc.errors()[0]
        key = ".".join(str(part) for part in first["loc"])
        raise ConfigError(first["msg"], path=path, key=key) from exc


def merge_config_data(tables: List[tuple[str, dict]]) -> MappingConfig:
    """Merge raw config mappings given as (source name, data) in precedence order."""
    return merge_config_files(
        [(source, _validate_config(data)) for source, data in tables]
    )


def merge_config_files(files: List[tuple[str, _ConfigFile]]) -> MappingConfig:
    """Ordered merge of config tables keyed by pattern; later files win."""
    overrides: Dict[str, OverrideRule] = {}
    critical: Dict[str, CriticalMapping] = {}
    priority: List[str] = []
    for source, parsed in files:
        for entry in parsed.overrides:
            overrides.pop(entry.pattern, None)
            overrides[entry.pattern] = OverrideRule(
                pattern=entry.pattern,
                file=entry.file,
                line=entry.line or 1,
                owner_type=entry.owner_type,
                module=entry.module,
                source=source,
            )
        for entry in parsed.critical_mappings:
            critical[entry.pattern] = CriticalMapping(
                pattern=entry.pattern, min_confidence=entry.min_confidence
            )
        if parsed.module_priority is not None:
            priority = list(parsed.module_priority)
    return MappingConfig(
        overrides=overrides,
        module_priority=priority,
        critical_mappings=critical,
        sources=[source for source, _ in files],
    )


def load_mapping_config(settings: Settings) -> MappingConfig:
    """Read and merge every mapping config file that exists."""
    loaded: List[tuple[str, _ConfigFile]] = []
    for path in settings.config_sources():
        if not path.exists():
            continue
        loaded.append((str(path), _read_config_file(path)))
        logger.debug("Loaded mapping config %s", path)
    config = merge_config_files(loaded)
    for rule in config.override_rules():
        if not is_within_root(settings.project_root, rule.file):
            raise ConfigError(
                f"Override file {rule.file!r} is outside the project root",
                path=Path(rule.source) if rule.source else None,
                key=f"overrides.{rule.pattern}.file",
            )
    if config.overrides:
        logger.info(
            "Loaded %d manual overrides from %d source(s)",
            len(config.overrides),
            len(config.sources),
        )
    return config
