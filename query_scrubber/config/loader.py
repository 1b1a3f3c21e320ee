"""
Configuration management and loading.

Handles job settings from YAML and environment variables.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from query_scrubber.core.model_selector import DEFAULT_MODEL, ModelSelector
from query_scrubber.storage.db import DEFAULT_DB_PATH

CONFIG_PATH_ENV = "QUERY_SCRUBBER_CONFIG"
DB_PATH_ENV = "QUERY_SCRUBBER_DB"
OPENAI_API_KEY_ENV = "OPENAI_API_KEY"


@dataclass(frozen=True)
class BatchingConfig:
    """Limits on how much work a single invocation does."""
    page_size: int = 10
    max_projects: int = 20
    budget_ratio: float = 0.5

    def __post_init__(self):
        """Validate batching limits."""
        if self.page_size <= 0:
            raise ValueError("page_size must be > 0")
        if self.max_projects <= 0:
            raise ValueError("max_projects must be > 0")
        if not 0 < self.budget_ratio <= 1:
            raise ValueError("budget_ratio must be in (0, 1]")


@dataclass(frozen=True)
class CompletionConfig:
    """Chat-completion request settings."""
    model: str = DEFAULT_MODEL
    temperature: float = 0.1
    max_tokens: int = 2048
    base_url: Optional[str] = None

    def __post_init__(self):
        """Validate sampling settings and the model id."""
        ModelSelector(self.model)
        if not 0 <= self.temperature <= 2:
            raise ValueError("temperature must be between 0 and 2")
        if self.max_tokens <= 0:
            raise ValueError("max_tokens must be > 0")

    @property
    def selector(self) -> ModelSelector:
        return ModelSelector(self.model)


@dataclass(frozen=True)
class JobConfig:
    """Complete job configuration."""
    db_path: str = DEFAULT_DB_PATH
    batching: BatchingConfig = field(default_factory=BatchingConfig)
    completion: CompletionConfig = field(default_factory=CompletionConfig)
    source: str = "query-stats"
    openai_api_key: Optional[str] = field(default=None, repr=False)


_SECTION_KEYS = {
    'storage': {'db_path'},
    'batching': {'page_size', 'max_projects', 'budget_ratio'},
    'completion': {'model', 'temperature', 'max_tokens', 'base_url'},
    'metering': {'source'},
}


def load_job_config(path: Optional[str] = None) -> JobConfig:
    """Load and validate job configuration from an optional YAML file.

    Every section is optional; missing values take their defaults. Secrets
    are never read from the file.

    Args:
        path: Path to YAML configuration file, or None for defaults only

    Returns:
        Validated JobConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    if path is None:
        return JobConfig()

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Job config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        return JobConfig()
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    unknown_keys = set(raw_config.keys()) - set(_SECTION_KEYS)
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    sections = {name: _parse_section(raw_config, name) for name in _SECTION_KEYS}

    storage = sections['storage']
    db_path = storage.get('db_path', DEFAULT_DB_PATH)
    if not isinstance(db_path, str) or not db_path.strip():
        raise ValueError("'storage.db_path' must be a non-empty string")

    batching = sections['batching']
    _require_types(batching, 'batching', {
        'page_size': (int,), 'max_projects': (int,), 'budget_ratio': (int, float)
    })

    completion = sections['completion']
    _require_types(completion, 'completion', {
        'model': (str,), 'temperature': (int, float), 'max_tokens': (int,), 'base_url': (str, type(None))
    })

    source = sections['metering'].get('source', "query-stats")
    if not isinstance(source, str) or not source.strip():
        raise ValueError("'metering.source' must be a non-empty string")

    return JobConfig(
        db_path=db_path,
        batching=BatchingConfig(**batching),
        completion=CompletionConfig(**completion),
        source=source
    )


def load_job_config_from_env(path: Optional[str] = None) -> JobConfig:
    """Load configuration and apply environment overrides.

    The YAML path defaults to ``$QUERY_SCRUBBER_CONFIG``. ``$QUERY_SCRUBBER_DB``
    overrides the database path and ``$OPENAI_API_KEY`` provides the
    process-wide completion credential.
    """
    config = load_job_config(path or os.environ.get(CONFIG_PATH_ENV) or None)

    overrides: Dict[str, Any] = {}
    db_path = os.environ.get(DB_PATH_ENV)
    if db_path:
        overrides['db_path'] = db_path
    api_key = os.environ.get(OPENAI_API_KEY_ENV)
    if api_key:
        overrides['openai_api_key'] = api_key

    return replace(config, **overrides) if overrides else config


def _parse_section(raw_config: Dict, name: str) -> Dict[str, Any]:
    """Return a validated copy of one top-level section."""
    data = raw_config.get(name) or {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")

    unknown_keys = set(data.keys()) - _SECTION_KEYS[name]
    if unknown_keys:
        raise ValueError(f"Unknown keys in {name}: {unknown_keys}")
    return dict(data)


def _require_types(data: Dict[str, Any], section: str, types: Dict[str, tuple]) -> None:
    for key, value in data.items():
        # bool is an int subclass; never a valid number here
        if isinstance(value, bool) or not isinstance(value, types[key]):
            raise ValueError(f"'{section}.{key}' has invalid type {type(value).__name__}")
