"""Configuration management for plancheck."""

from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional
import yaml
from pathlib import Path

from ..evaluator.corpus import ComparisonCase, PlanSource


class ConfigError(ValueError):
    """Raised when a configuration or manifest file has an invalid structure."""


BASE_PLANNER_SETTINGS: Dict[str, str] = {
    "jit": "off",
    "geqo": "off",
    "join_collapse_limit": "20",
    "from_collapse_limit": "20",
}


def _default_modes() -> Dict[str, Dict[str, str]]:
    off = dict(BASE_PLANNER_SETTINGS)
    off["enable_left_deep_join"] = "off"
    on = dict(BASE_PLANNER_SETTINGS)
    on["enable_left_deep_join"] = "on"
    return {"off": off, "on": on}


@dataclass
class DatabaseConfig:
    """Connection settings for the server that produces plans."""

    host: str = "localhost"
    port: int = 5432
    database: str = "postgres"
    user: Optional[str] = None
    password: Optional[str] = None
    connect_timeout: int = 10


@dataclass
class EvaluationConfig:
    """Defaults for scan and compare runs."""

    predicate: str = "leftdeep-shape"
    before_mode: str = "off"
    after_mode: str = "on"
    expect_before_at_least: int = 0
    workers: int = 1


@dataclass
class LoggingConfig:
    """Logging settings."""

    level: str = "INFO"
    structured: bool = False
    log_file: Optional[str] = None


@dataclass
class Config:
    """Main configuration class."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    modes: Dict[str, Dict[str, str]] = field(default_factory=_default_modes)
    evaluation: EvaluationConfig = field(default_factory=EvaluationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


@dataclass
class Manifest:
    """A list of before/after plan pairs to compare."""

    predicate: Optional[str]
    cases: List[ComparisonCase]


def load_config(config_path: str) -> Config:
    """Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Parsed configuration

    Example YAML format:
        database:
          host: localhost
          port: 55432
          database: postgres

        modes:
          off:
            enable_left_deep_join: "off"
            enable_left_deep_join_on_missing_stats: "off"
          on:
            enable_left_deep_join: "off"
            enable_left_deep_join_on_missing_stats: "on"

        evaluation:
          predicate: target-bushy
          before_mode: off
          after_mode: on
          expect_before_at_least: 1
          workers: 4

        logging:
          level: DEBUG
          structured: false
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    data = _read_yaml(path)

    database = _build(DatabaseConfig, _section(data, "database", path), "database", path)

    evaluation_data = _section(data, "evaluation", path)
    for key in ("before_mode", "after_mode"):
        if key in evaluation_data:
            evaluation_data[key] = _setting_value(evaluation_data[key])
    evaluation = _build(EvaluationConfig, evaluation_data, "evaluation", path)

    logging_config = _build(LoggingConfig, _section(data, "logging", path), "logging", path)

    modes = _default_modes()
    for name, settings in _section(data, "modes", path).items():
        mode_name = _setting_value(name)
        modes[mode_name] = _parse_mode(mode_name, settings, path)

    return Config(
        database=database,
        modes=modes,
        evaluation=evaluation,
        logging=logging_config,
    )


def load_manifest(manifest_path: str) -> Manifest:
    """Load a case manifest from YAML.

    Plan paths are resolved against the manifest's directory.

    Example YAML format:
        predicate: target-bushy
        cases:
          - query: query_1
            target: t2
            before: plans/t2_query_1.off.json
            after: plans/t2_query_1.on.json
    """
    path = Path(manifest_path)
    if not path.exists():
        raise FileNotFoundError(f"Manifest file not found: {manifest_path}")

    data = _read_yaml(path)
    raw_cases = data.get("cases")
    if not isinstance(raw_cases, list):
        raise ConfigError(f"{path}: 'cases' must be a list")

    base_dir = path.parent
    cases: List[ComparisonCase] = []
    for index, entry in enumerate(raw_cases):
        cases.append(_parse_case(entry, index, base_dir, path))

    predicate = data.get("predicate")
    if predicate is not None:
        predicate = str(predicate)
    return Manifest(predicate=predicate, cases=cases)


def _read_yaml(path: Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigError(f"{path}: invalid YAML: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    return data


def _section(data: Dict[str, Any], name: str, path: Path) -> Dict[str, Any]:
    value = data.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{path}: '{name}' must be a mapping")
    return value


def _build(cls, values: Dict[str, Any], name: str, path: Path):
    try:
        return cls(**values)
    except TypeError as exc:
        raise ConfigError(f"{path}: invalid '{name}' section: {exc}") from exc


def _parse_mode(name: str, settings: Any, path: Path) -> Dict[str, str]:
    if not isinstance(settings, dict):
        raise ConfigError(f"{path}: mode '{name}' must map settings to values")
    parsed = dict(BASE_PLANNER_SETTINGS)
    for key, value in settings.items():
        parsed[str(key)] = _setting_value(value)
    return parsed


def _setting_value(value: Any) -> str:
    # YAML reads bare on/off as booleans, for keys as well as values
    if value is True:
        return "on"
    if value is False:
        return "off"
    return str(value)


def _parse_case(entry: Any, index: int, base_dir: Path, path: Path) -> ComparisonCase:
    if not isinstance(entry, dict):
        raise ConfigError(f"{path}: case {index} must be a mapping")
    for key in ("query", "before", "after"):
        if key not in entry:
            raise ConfigError(f"{path}: case {index} is missing '{key}'")

    query_id = str(entry["query"])
    target = entry.get("target")
    if target is not None:
        target = str(target)

    before_path = base_dir / str(entry["before"])
    after_path = base_dir / str(entry["after"])
    before = PlanSource(path=before_path, query_id=query_id, mode="before", target=target)
    after = PlanSource(path=after_path, query_id=query_id, mode="after", target=target)
    return ComparisonCase(query_id=query_id, before=before, after=after, target=target)
