"""Configuration loading and management."""

import json
import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from codeauditor.constants import (
    CONFIG_FILENAME,
    DEFAULT_EXTENSIONS,
    DEFAULT_MAX_FILE_SIZE_KB,
    DEFAULT_MAX_FILES,
    DEFAULT_MAX_OUTPUT_TOKENS,
    DEFAULT_MAX_READ_BYTES,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_ROUNDS,
    DEFAULT_MAX_SEARCH_RESULTS,
    DEFAULT_MAX_TOOL_CALLS,
    DEFAULT_MODEL,
    DEFAULT_OUTPUT_FORMAT,
    DEFAULT_OUTPUT_PATH,
    DEFAULT_RETRY_DELAY,
    DEFAULT_TEMPERATURE,
    DEFAULT_TIMEOUT,
    OUTPUT_FORMATS,
)
from codeauditor.errors import ConfigError

logger = logging.getLogger(__name__)

# Environment variable -> config field
ENV_VARS = {
    "ANTHROPIC_API_KEY": "api_key",
    "CODE_AUDITOR_MODEL": "model_name",
    "CODE_AUDITOR_BACKEND_URL": "backend_url",
    "CODE_AUDITOR_TIMEOUT": "timeout",
    "CODE_AUDITOR_MAX_ROUNDS": "max_rounds",
    "CODE_AUDITOR_MAX_TOOL_CALLS": "max_tool_calls",
}

# Keys an analyzed repository may set for itself. Backend, credentials and
# output locations always come from the user.
REPO_CONFIG_KEYS = frozenset({
    "extensions_allowlist",
    "path_excludes",
    "max_files",
    "max_file_size_kb",
    "max_rounds",
    "max_tool_calls",
    "max_search_results",
})


@dataclass(frozen=True)
class RunConfig:
    """Code Auditor run configuration.

    Immutable once built; every analysis run receives its own instance so
    independent runs never share mutable settings.
    """

    # Output settings
    output_path: Path = Path(DEFAULT_OUTPUT_PATH)
    output_format: str = DEFAULT_OUTPUT_FORMAT

    # Model settings
    model_name: str = DEFAULT_MODEL
    backend_url: Optional[str] = None
    api_key: Optional[str] = None
    temperature: float = DEFAULT_TEMPERATURE
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS

    # Backend request settings
    timeout: float = DEFAULT_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay: float = DEFAULT_RETRY_DELAY

    # Loop budgets
    max_rounds: int = DEFAULT_MAX_ROUNDS
    max_tool_calls: int = DEFAULT_MAX_TOOL_CALLS

    # Working tree selection and tool limits
    max_files: int = DEFAULT_MAX_FILES
    max_file_size_kb: int = DEFAULT_MAX_FILE_SIZE_KB
    max_read_bytes: int = DEFAULT_MAX_READ_BYTES
    max_search_results: int = DEFAULT_MAX_SEARCH_RESULTS
    extensions_allowlist: tuple[str, ...] = DEFAULT_EXTENSIONS
    path_excludes: tuple[str, ...] = ()

    # Optional NDJSON transcript directory
    transcript_dir: Optional[Path] = None

    @classmethod
    def load(
        cls,
        config_path: Optional[Path] = None,
        overrides: Optional[dict[str, Any]] = None,
    ) -> "RunConfig":
        """Load configuration from file, environment and explicit overrides.

        Args:
            config_path: Explicit JSON config file. When omitted, a
                .code-auditor.json in the current directory is used if present.
            overrides: Values from the command line (None values are skipped)

        Returns:
            RunConfig instance

        Raises:
            ConfigError: If the explicit config file is missing or invalid
        """
        # Load .env file
        load_dotenv()

        values: dict[str, Any] = {}

        if config_path is not None:
            logger.info("Loading config from: %s", config_path)
            values.update(read_config_file(config_path))
        else:
            default_path = Path.cwd() / CONFIG_FILENAME
            if default_path.exists():
                try:
                    values.update(read_config_file(default_path))
                    logger.info("Loaded default config from %s", CONFIG_FILENAME)
                except ConfigError as e:
                    logger.warning("Failed to load config: %s", e)
            else:
                logger.debug("No config file found, using defaults")

        for env_name, field_name in ENV_VARS.items():
            value = os.getenv(env_name)
            if value:
                values[field_name] = value

        values.update({k: v for k, v in (overrides or {}).items() if v is not None})

        return cls.from_dict(values)

    @classmethod
    def from_dict(cls, values: dict[str, Any]) -> "RunConfig":
        """Build a config from loosely typed values (JSON, env, CLI).

        Raises:
            ConfigError: If a value cannot be converted to the field type
        """
        return cls().merge(values)

    def merge(self, values: dict[str, Any]) -> "RunConfig":
        """Return a copy with the given values applied on top of this config."""
        known = {f.name for f in fields(self)}
        changes: dict[str, Any] = {}
        for key, value in values.items():
            if key not in known:
                logger.warning("Ignoring unknown config key: %s", key)
                continue
            changes[key] = _coerce(key, value)
        return replace(self, **changes)

    def with_repo_config(self, repo_root: Path, overrides: Optional[dict[str, Any]] = None) -> "RunConfig":
        """Apply a .code-auditor.json found in the analyzed repository.

        Only analysis-scope keys (REPO_CONFIG_KEYS) are honored; anything else
        is ignored with a warning. Repository settings sit below command-line
        overrides, so the overrides are re-applied afterwards.
        """
        repo_config = repo_root / CONFIG_FILENAME
        if not repo_config.exists():
            return self

        logger.info("Found %s in repository", CONFIG_FILENAME)
        try:
            values = read_config_file(repo_config)
            rejected = sorted(k for k in values if k not in REPO_CONFIG_KEYS)
            if rejected:
                logger.warning("Ignoring repository config keys: %s", ", ".join(rejected))
            merged = self.merge({k: v for k, v in values.items() if k in REPO_CONFIG_KEYS})
        except ConfigError as e:
            logger.warning("Ignoring repository config: %s", e)
            return self
        return merged.merge({k: v for k, v in (overrides or {}).items() if v is not None})

    def validate(self) -> list[str]:
        """Validate configuration and return list of errors.

        Returns:
            List of error messages (empty if valid)
        """
        errors = []

        if not self.api_key and not self.backend_url:
            errors.append("No API key found. Set ANTHROPIC_API_KEY or configure a backend_url")

        if self.backend_url and not self.backend_url.startswith(("http://", "https://")):
            errors.append("backend_url must start with 'http://' or 'https://'")

        if not 0.0 <= self.temperature <= 1.0:
            errors.append("temperature must be between 0.0 and 1.0")

        if self.timeout <= 0:
            errors.append("timeout must be positive")

        if self.max_retries < 0:
            errors.append("max_retries must not be negative")

        if self.retry_delay < 0:
            errors.append("retry_delay must not be negative")

        for name in ("max_rounds", "max_tool_calls", "max_files", "max_read_bytes",
                     "max_search_results", "max_file_size_kb", "max_output_tokens"):
            if getattr(self, name) <= 0:
                errors.append(f"{name} must be at least 1")

        if self.output_format not in OUTPUT_FORMATS:
            errors.append(f"output_format must be one of: {', '.join(OUTPUT_FORMATS)}")

        return errors

    def to_dict(self) -> dict:
        """Convert config to dictionary (for logging/display)."""
        return {
            "output_path": str(self.output_path),
            "output_format": self.output_format,
            "model_name": self.model_name,
            "backend_url": self.backend_url,
            "temperature": self.temperature,
            "timeout": self.timeout,
            "max_retries": self.max_retries,
            "max_rounds": self.max_rounds,
            "max_tool_calls": self.max_tool_calls,
            "max_files": self.max_files,
            "max_read_bytes": self.max_read_bytes,
            "extensions_allowlist": list(self.extensions_allowlist),
            "path_excludes": list(self.path_excludes),
            "has_api_key": bool(self.api_key),
        }


def read_config_file(path: Path) -> dict[str, Any]:
    """Read a JSON config file into a flat dict of field values.

    Raises:
        ConfigError: If the file is missing, unreadable or not a JSON object
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}", str(e)) from e
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}", str(e)) from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")

    return data


def _coerce(name: str, value: Any) -> Any:
    """Convert a raw config value to the type of the named field."""
    try:
        if name in ("output_path", "transcript_dir"):
            return Path(value) if value else None
        if name in ("extensions_allowlist", "path_excludes"):
            return _as_tuple(value, strip_dots=name == "extensions_allowlist")
        if name in ("temperature", "timeout", "retry_delay"):
            return float(value)
        if name.startswith("max_"):
            return int(value)
        if name == "output_format":
            return str(value).lower()
        return str(value) if value is not None else None
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for {name}", repr(value)) from e


def _as_tuple(value: Any, strip_dots: bool = False) -> tuple[str, ...]:
    """Accept a comma-separated string or a list of strings."""
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = [str(item) for item in value]
    else:
        raise TypeError(f"expected list or string, got {type(value).__name__}")

    cleaned = []
    for item in items:
        item = item.strip()
        if strip_dots:
            item = item.lstrip(".").lower()
        if item:
            cleaned.append(item)
    return tuple(cleaned)
