"""devflow configuration management."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class Config:
    """devflow configuration."""

    projects_dir: Path = field(default_factory=lambda: Path.home() / ".devflow")
    log_level: str = "INFO"
    auto_backup: bool = True
    backup_retention: int = 10
    max_name_length: int = 100

    @classmethod
    def load(cls, projects_dir: Path | None = None) -> Config:
        """Load config from defaults, env vars, then the YAML file."""
        config = cls()

        # Override from env; an explicit directory wins
        env_dir = os.environ.get("DEVFLOW_PROJECTS_DIR")
        if projects_dir:
            config.projects_dir = Path(projects_dir)
        elif env_dir:
            config.projects_dir = Path(env_dir).expanduser()

        env_log = os.environ.get("DEVFLOW_LOG_LEVEL")
        if env_log:
            config.log_level = env_log

        env_backup = os.environ.get("DEVFLOW_AUTO_BACKUP")
        if env_backup:
            config.auto_backup = env_backup.strip().lower() in _TRUE_VALUES

        # Load YAML config if exists
        config_file = config.projects_dir / "config.yaml"
        if config_file.exists():
            with open(config_file) as f:
                data = yaml.safe_load(f) or {}
            for key, value in data.items():
                if key == "projects_dir" or not hasattr(config, key):
                    continue
                expected_type = type(getattr(config, key))
                if expected_type is bool and isinstance(value, str):
                    setattr(config, key, value.strip().lower() in _TRUE_VALUES)
                else:
                    setattr(config, key, expected_type(value))

        return config

    @property
    def state_dir(self) -> Path:
        return self.projects_dir / "states"

    @property
    def index_path(self) -> Path:
        return self.state_dir / "projects.json"

    @property
    def backups_dir(self) -> Path:
        return self.state_dir / "backups"

    @property
    def docs_dir(self) -> Path:
        return self.projects_dir / "docs"

    @property
    def config_file(self) -> Path:
        return self.projects_dir / "config.yaml"

    def save(self) -> None:
        """Save current config to YAML."""
        self.projects_dir.mkdir(parents=True, exist_ok=True)
        data = {
            "log_level": self.log_level,
            "auto_backup": self.auto_backup,
            "backup_retention": self.backup_retention,
            "max_name_length": self.max_name_length,
        }
        with open(self.config_file, "w") as f:
            yaml.dump(data, f, default_flow_style=False)
