"""Configuration loading helpers for feedmailer."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

import yaml
from pydantic import ValidationError

from ..errors import ConfigError
from .models import AppConfig

CONFIG_EXTENSIONS = (".yaml", ".yml", ".json")
DEFAULT_CONFIG_FILENAME = "feeds.yaml"
DEFAULT_STATE_FILENAME = "feed_datas.json"


def _read_file(path: Path) -> dict:
    text = path.read_text(encoding="utf-8")
    if path.suffix == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file must contain a mapping: {path}")
    return data


def _format_validation_error(exc: ValidationError) -> str:
    lines = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "<root>"
        lines.append(f"{location}: {error['msg']}")
    return "\n  ".join(lines)


@dataclass(slots=True)
class ConfigLocator:
    """Resolve default config, state and log paths."""

    project_root: Path | None = None
    logs_dir: Path | None = None

    def __post_init__(self) -> None:
        env_root = os.environ.get("FEEDMAILER_HOME")
        if env_root:
            root = Path(env_root).expanduser().resolve()
        else:
            root = (self.project_root or Path.cwd()).resolve()
        self.project_root = root
        self.logs_dir = (root / "logs").resolve()

    def ensure_directories(self) -> None:
        self.logs_dir.mkdir(parents=True, exist_ok=True)

    def config_path(self) -> Path:
        return self.project_root / DEFAULT_CONFIG_FILENAME

    def state_path(self) -> Path:
        return self.project_root / DEFAULT_STATE_FILENAME


class ConfigRepository:
    """Read and validate the feeds configuration file."""

    def __init__(self, locator: ConfigLocator | None = None) -> None:
        self.locator = locator or ConfigLocator()

    def resolve(self, path: str | Path | None) -> Path:
        if path is None:
            return self.locator.config_path()
        candidate = Path(path).expanduser()
        if not candidate.is_absolute():
            candidate = self.locator.project_root / candidate
        return candidate

    def load(self, path: str | Path | None = None) -> AppConfig:
        """Load ``path``; every problem surfaces as a :class:`ConfigError`."""

        config_path = self.resolve(path)
        if config_path.suffix not in CONFIG_EXTENSIONS:
            raise ConfigError(f"{config_path}: unsupported configuration format")
        try:
            payload = _read_file(config_path)
        except FileNotFoundError as exc:
            raise ConfigError(f"{config_path}: file not found") from exc
        except (OSError, ValueError, yaml.YAMLError) as exc:
            raise ConfigError(f"{config_path}: {exc}") from exc
        try:
            return AppConfig.model_validate(payload)
        except ValidationError as exc:
            raise ConfigError(f"{config_path}:\n  {_format_validation_error(exc)}") from exc


__all__ = [
    "CONFIG_EXTENSIONS",
    "ConfigLocator",
    "ConfigRepository",
    "DEFAULT_CONFIG_FILENAME",
    "DEFAULT_STATE_FILENAME",
]
