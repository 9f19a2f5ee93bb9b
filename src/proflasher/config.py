"""Configuration management for proflasher."""

import json
import os
import shutil
from dataclasses import dataclass, asdict
from pathlib import Path

from .paths import DATA_DIR, CONFIG_FILE, TEMPLATES_DIR, atomic_json_write

# Available Claude models with their specifications
CLAUDE_MODELS: dict[str, dict] = {
    "claude-opus-4-6": {
        "name": "Claude Opus 4.6",
        "context_window": 200_000,
        "max_output_tokens": 32_000,
    },
    "claude-sonnet-4-5-20250929": {
        "name": "Claude Sonnet 4.5",
        "context_window": 200_000,
        "max_output_tokens": 16_384,
    },
    "claude-haiku-4-5-20251001": {
        "name": "Claude Haiku 4.5",
        "context_window": 200_000,
        "max_output_tokens": 8_192,
    },
    "claude-sonnet-4-20250514": {
        "name": "Claude Sonnet 4",
        "context_window": 200_000,
        "max_output_tokens": 16_384,
    },
}

DEFAULT_ANKI_CONNECT_URL = "http://localhost:8765"

# Environment overrides (take precedence over the config file)
ENV_TEMPLATES_DIR = "PROFLASHER_TEMPLATES_DIR"
ENV_ANKI_URL = "PROFLASHER_ANKI_URL"


def get_model_specs(model_id: str) -> dict:
    """Get specs for a model, with fallback defaults."""
    return CLAUDE_MODELS.get(model_id, {
        "name": model_id,
        "context_window": 200_000,
        "max_output_tokens": 8_192,
    })


@dataclass
class Config:
    """Application configuration."""

    main_model: str = "claude-opus-4-6"
    templates_dir: str = ""
    anki_connect_url: str = DEFAULT_ANKI_CONNECT_URL
    max_retries: int = 3
    search_limit: int = 50
    log_level: str = "WARNING"
    # Templates are user-editable while the app runs, so reload by default
    cache_templates: bool = False

    @property
    def templates_path(self) -> Path:
        """Directory holding the per-language templates."""
        return Path(self.templates_dir) if self.templates_dir else TEMPLATES_DIR


def _apply_env_overrides(config: Config) -> Config:
    templates_dir = os.environ.get(ENV_TEMPLATES_DIR)
    if templates_dir:
        config.templates_dir = templates_dir
    anki_url = os.environ.get(ENV_ANKI_URL)
    if anki_url:
        config.anki_connect_url = anki_url
    return config


def load_config() -> Config:
    """Load config from disk, creating defaults if needed."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)

    if CONFIG_FILE.exists():
        try:
            with open(CONFIG_FILE) as f:
                data = json.load(f)
            config = Config(
                **{k: v for k, v in data.items() if k in Config.__dataclass_fields__}
            )
            return _apply_env_overrides(config)
        except (json.JSONDecodeError, TypeError):
            # Back up corrupted config before overwriting with defaults
            backup_path = CONFIG_FILE.with_suffix(".json.bak")
            try:
                shutil.copy2(CONFIG_FILE, backup_path)
            except OSError:
                pass

    # Return defaults and save them
    config = Config()
    save_config(config)
    return _apply_env_overrides(config)


def save_config(config: Config) -> None:
    """Save config to disk."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    atomic_json_write(CONFIG_FILE, asdict(config))
