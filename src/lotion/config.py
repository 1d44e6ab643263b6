"""Configuration management for lotion."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from lotion.errors import ConfigError
from lotion.models import TargetType

DEFAULT_CONFIG_PATH = Path.home() / ".lotion.yaml"
STATE_FILENAME = ".sync-state.json"


class SyncTarget(BaseModel):
    """A Notion database or single page mirrored into its own directory."""

    type: TargetType
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)


class Config(BaseModel):
    """Application configuration."""

    notion_api_key: str = Field(min_length=1)
    output_dir: Path
    sync_interval: int = Field(default=60, gt=0)
    targets: list[SyncTarget] = Field(default_factory=list)
    concurrency: int = Field(default=5, gt=0)
    max_retries: int = Field(default=3, ge=0)
    backoff_base_seconds: float = Field(default=1.0, ge=0)

    @property
    def state_path(self) -> Path:
        return self.output_dir / STATE_FILENAME

    def target_dir(self, target: SyncTarget) -> Path:
        return self.output_dir / target.name


def get_config_path() -> Path:
    env_path = os.getenv("LOTION_CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_PATH


def _read_config_file(config_path: Path) -> dict[str, object]:
    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Failed to parse config file: {config_path}") from exc
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file must contain a mapping: {config_path}")
    return raw


def _format_issues(exc: ValidationError) -> str:
    lines = []
    for issue in exc.errors():
        location = ".".join(str(part) for part in issue["loc"])
        lines.append(f"  {location}: {issue['msg']}")
    return "\n".join(lines)


def load_config(config_path: Path | None = None, **overrides: object) -> Config:
    """Load config from the YAML file, environment variables, .env and overrides.

    Resolution order (highest priority first):
    1. Explicit overrides (CLI flags)
    2. Environment variables
    3. .env file
    4. The YAML config file
    5. Defaults
    """
    load_dotenv()
    load_dotenv(Path.home() / ".lotion" / ".env")

    path = config_path or get_config_path()
    kwargs: dict[str, object] = {}
    if path.exists():
        kwargs.update(_read_config_file(path))
    elif not os.getenv("NOTION_API_KEY"):
        raise ConfigError(
            f"Config file not found at {path}. Run 'lotion init' to set up."
        )

    api_key = os.getenv("NOTION_API_KEY")
    if api_key:
        kwargs["notion_api_key"] = api_key

    output_dir = os.getenv("LOTION_OUTPUT_DIR")
    if output_dir:
        kwargs["output_dir"] = output_dir

    sync_interval = os.getenv("LOTION_SYNC_INTERVAL")
    if sync_interval is not None:
        kwargs["sync_interval"] = sync_interval

    for key, value in overrides.items():
        if value is not None:
            kwargs[key] = value

    try:
        config = Config(**kwargs)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config:\n{_format_issues(exc)}") from exc

    config.output_dir = config.output_dir.expanduser().resolve()
    return config


def save_config(config: Config, config_path: Path | None = None) -> Path:
    """Write the config as YAML, readable only by the current user."""
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(mode="json")
    path.write_text(
        yaml.safe_dump(data, sort_keys=False, allow_unicode=True),
        encoding="utf-8",
    )
    path.chmod(0o600)
    return path
