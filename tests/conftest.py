"""Shared test configuration."""

import pytest

LOTION_ENV_VARS = ("NOTION_API_KEY", "LOTION_OUTPUT_DIR", "LOTION_SYNC_INTERVAL", "LOTION_CONFIG")


@pytest.fixture
def clean_env(monkeypatch):
    """Isolate config loading from the developer's environment and .env files."""
    for name in LOTION_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("lotion.config.load_dotenv", lambda *args, **kwargs: False)
    return monkeypatch


@pytest.fixture
def config_file(tmp_path):
    """Write a minimal valid config file and return its path."""
    path = tmp_path / "lotion.yaml"
    path.write_text(
        "notion_api_key: secret_file\n"
        f"output_dir: {tmp_path / 'notes'}\n"
        "sync_interval: 120\n"
        "targets:\n"
        "  - type: database\n"
        "    id: db-tasks\n"
        "    name: Tasks\n",
        encoding="utf-8",
    )
    return path
