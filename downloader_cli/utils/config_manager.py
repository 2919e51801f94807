"""CLI settings stored as YAML under ~/.downloader"""

import copy
import os
from pathlib import Path
from typing import Any

import yaml
from rich.console import Console

console = Console()

DEFAULT_API_URL = "http://localhost:8000"

DEFAULTS: dict[str, Any] = {
    "api": {
        "base_url": DEFAULT_API_URL,
        "timeout": 30,
    },
    "polling": {
        "interval": 2.0,
        "timeout": 600,
    },
}


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return ``base`` with ``override`` applied section by section."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigManager:
    """Read and write dotted configuration keys (``api.base_url``)"""

    def __init__(self, config_dir: Path | None = None):
        self.config_dir = config_dir or Path.home() / ".downloader"
        self.config_file = self.config_dir / "config.yaml"

    def get_default_config(self) -> dict[str, Any]:
        defaults = copy.deepcopy(DEFAULTS)
        env_url = os.getenv("DOWNLOADER_API_URL")
        if env_url:
            defaults["api"]["base_url"] = env_url
        return defaults

    def load_config(self) -> dict[str, Any]:
        """Defaults overlaid with whatever the YAML file sets"""
        defaults = self.get_default_config()
        if not self.config_file.exists():
            return defaults

        try:
            stored = yaml.safe_load(self.config_file.read_text()) or {}
        except (OSError, yaml.YAMLError) as e:
            console.print(f"[red]Error loading config: {e}[/red]")
            return defaults

        if not isinstance(stored, dict):
            console.print(f"[red]Ignoring malformed config file {self.config_file}[/red]")
            return defaults
        return _deep_merge(defaults, stored)

    def save_config(self, data: dict[str, Any]) -> None:
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.config_file.write_text(yaml.safe_dump(data, default_flow_style=False))

    def get(self, key: str, default: Any = None) -> Any:
        node: Any = self.load_config()
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def set(self, key: str, value: Any) -> None:
        data = self.load_config()
        *parents, leaf = key.split(".")

        node = data
        for part in parents:
            if not isinstance(node.get(part), dict):
                node[part] = {}
            node = node[part]
        node[leaf] = value

        self.save_config(data)

    def reset(self) -> None:
        self.save_config(self.get_default_config())


# Global config manager instance
config = ConfigManager()
