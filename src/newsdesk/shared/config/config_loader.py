#!/usr/bin/env python3
"""Configuration Loader - cached access to the YAML settings shipped with newsdesk."""

import logging
import os
from pathlib import Path
from typing import Dict, Any
from dotenv import load_dotenv
import yaml

logger = logging.getLogger(__name__)
load_dotenv('.env.local')
load_dotenv()


class ConfigLoader:
    """Loader for YAML configuration files with per-name caching."""

    _config_cache: Dict[str, Dict[str, Any]] = {}

    @staticmethod
    def _get_config_dir() -> Path:
        """Configuration directory: CONFIG_DIR if set, else this package directory."""
        config_dir_str = os.getenv('CONFIG_DIR')
        config_dir = Path(config_dir_str) if config_dir_str else Path(__file__).parent

        if not config_dir.exists():
            raise FileNotFoundError(f"Configuration directory not found: {config_dir}")
        return config_dir

    @classmethod
    def _load_file(cls, file_path: Path) -> Dict[str, Any]:
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                return yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load configuration file {file_path}: {e}")
            raise RuntimeError(f"Could not load configuration from {file_path}: {e}") from e

    @classmethod
    def load_config(cls, config_name: str = "app") -> Dict[str, Any]:
        """Load configuration by name (e.g. ``app``)."""
        if config_name in cls._config_cache:
            return cls._config_cache[config_name]

        config_dir = cls._get_config_dir()

        for ext in ['.yaml', '.yml']:
            config_path = config_dir / f"{config_name}{ext}"
            if config_path.exists():
                config = cls._load_file(config_path)
                cls._config_cache[config_name] = config
                logger.debug(f"Loaded {config_name} configuration from {config_path}")
                return config

        raise FileNotFoundError(f"No YAML configuration file found for '{config_name}' in {config_dir}")

    @classmethod
    def get(cls, key: str, default: Any = None, config_name: str = "app") -> Any:
        """Get a setting using dot notation (e.g., 'dedup.recency_days')."""
        config = cls.load_config(config_name)
        value = config
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    @classmethod
    def clear_cache(cls) -> None:
        """Clear the configuration cache."""
        cls._config_cache.clear()


def get_section(section: str) -> Dict[str, Any]:
    """Load one top-level section of app.yaml, or {} when unavailable."""
    try:
        value = ConfigLoader.get(section, {}, "app")
    except (FileNotFoundError, RuntimeError) as e:
        logger.warning(f"Config section '{section}' unavailable, using defaults: {e}")
        return {}
    return value if isinstance(value, dict) else {}


def get_pipeline_config() -> Dict[str, Any]:
    """All pipeline settings keyed by section, each falling back to {}."""
    return {
        name: get_section(name)
        for name in ('pipeline', 'collection', 'dedup', 'layer2', 'enrichment', 'generation')
    }
