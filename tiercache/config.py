"""
Config system - Layered cache configuration.

Sources are merged with precedence (later wins):
defaults < config file (JSON/YAML) < .env file < environment < overrides
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from .cache.core import CacheConfig
from .cache.factory import build_cache_config
from .cache.faults import CacheConfigFault

logger = logging.getLogger("tiercache.config")


class ConfigLoader:
    """
    Loads and merges cache configuration from multiple sources.

    Environment keys drop the prefix, are lower-cased, and use a double
    underscore for nesting: ``TIERCACHE_NAMESPACE_TTLS__GEOLOCATION=60``
    sets ``namespace_ttls["geolocation"]``.
    """

    def __init__(self, env_prefix: str = "TIERCACHE_"):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}

    @classmethod
    def load(
        cls,
        path: Optional[str] = None,
        env_file: Optional[str] = None,
        env_prefix: str = "TIERCACHE_",
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "ConfigLoader":
        """
        Load configuration from every source.

        Args:
            path: JSON or YAML config file
            env_file: Path to .env file
            env_prefix: Prefix for environment variables
            overrides: Manual overrides (highest precedence)

        Returns:
            Configured ConfigLoader instance
        """
        loader = cls(env_prefix=env_prefix)

        if path:
            loader._load_file(Path(path))

        if env_file:
            loader._load_env_file(env_file)

        loader._load_from_env()

        if overrides:
            loader._merge_dict(loader.config_data, overrides)

        return loader

    def _load_file(self, path: Path):
        if not path.exists():
            raise CacheConfigFault(f"config file not found: {path}")

        if path.suffix == ".json":
            self._load_json_file(path)
        elif path.suffix in (".yaml", ".yml"):
            self._load_yaml_file(path)
        else:
            raise CacheConfigFault(f"unsupported config file type: {path.suffix}")
        logger.debug(f"Loaded cache config from {path}")

    def _load_json_file(self, path: Path):
        """Load config from JSON file."""
        with open(path) as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise CacheConfigFault(f"invalid JSON in {path}: {e}") from e
        self._merge_section(data)

    def _load_yaml_file(self, path: Path):
        """Load config from YAML file."""
        import yaml

        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise CacheConfigFault(f"invalid YAML in {path}: {e}") from e
        if data:
            self._merge_section(data)

    def _merge_section(self, data: Any):
        if not isinstance(data, dict):
            raise CacheConfigFault("config file must contain a mapping")
        # Files may wrap settings in a top-level "cache" section
        section = data.get("cache", data)
        self._merge_dict(self.config_data, section)

    def _load_env_file(self, path: str):
        """Load config from .env file."""
        from dotenv import dotenv_values

        env_path = Path(path)
        if not env_path.exists():
            return

        for key, value in dotenv_values(env_path).items():
            if value is not None and key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _load_from_env(self):
        """Load config from environment variables."""
        for key, value in os.environ.items():
            if key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _set_nested(self, key: str, value: str):
        """Convert TIERCACHE_NAMESPACE_TTLS__GEOLOCATION to nested dict."""
        key = key[len(self.env_prefix):]
        parts = key.lower().split("__")

        current = self.config_data
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        current[parts[-1]] = self._parse_value(value)

    def _parse_value(self, value: str) -> Any:
        """Parse string value to appropriate type."""
        lowered = value.lower()
        if lowered in ("true", "yes", "on"):
            return True
        if lowered in ("false", "no", "off"):
            return False

        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        if value.startswith(("{", "[")):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        return value

    def _merge_dict(self, target: dict, source: dict):
        """Deep merge source into target."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._merge_dict(target[key], value)
            else:
                target[key] = value

    def get(self, path: str, default: Any = None) -> Any:
        """Get config value by dot-separated path."""
        current = self.config_data
        for part in path.split("."):
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default
        return current

    def get_cache_config(self) -> CacheConfig:
        return build_cache_config(self.config_data)

    def to_dict(self) -> dict:
        """Export all config as dictionary."""
        return self.config_data.copy()


__all__ = ["ConfigLoader", "CacheConfig", "build_cache_config"]
