"""Configuration loader for wsprep."""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from wsprep.errors import ConfigError

DEFAULT_CONFIG_NAME = ".wsprep.yml"


class ConfigLoader:
    """Loads YAML configuration files for CLI defaults."""

    SUPPORTED_KEYS = {
        "hostname",
        "base_only",
        "verbose",
        "log_file",
        "data_path",
        "dotfile_repos",
        "keepalive_interval",
    }

    def default_path(self, home: Path) -> Optional[str]:
        candidate = home / DEFAULT_CONFIG_NAME
        if candidate.exists():
            return str(candidate)
        return None

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise ConfigError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise ConfigError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise ConfigError(f"Unknown configuration keys: {unknown_list}")

        repos = parsed.get("dotfile_repos")
        if repos is not None and (
            not isinstance(repos, list) or not all(isinstance(repo, str) for repo in repos)
        ):
            raise ConfigError("`dotfile_repos` must be a list of `<owner>/<repo>` strings.")

        interval = parsed.get("keepalive_interval")
        if interval is not None and (
            isinstance(interval, bool) or not isinstance(interval, (int, float)) or interval <= 0
        ):
            raise ConfigError("`keepalive_interval` must be a positive number of seconds.")

        return parsed
