#!/usr/bin/env python3
"""
Curated Feed Loader for YAML source definitions.

Each file under ``sources/`` holds a ``sources`` mapping of feed id to
``{name, url, enabled, maxArticles}``. Disabled feeds are dropped at load.
"""

import logging
from typing import Dict, List, Any, Optional
from pathlib import Path
import yaml

logger = logging.getLogger(__name__)


class SourcesLoader:
    """Loads curated feed definitions with per-file caching."""

    def __init__(self, sources_dir: Optional[str] = None):
        if sources_dir is None:
            sources_dir = str(Path(__file__).parent / "sources")

        self.sources_dir = Path(sources_dir)
        self._cache: Dict[str, Dict[str, Dict[str, Any]]] = {}

        if not self.sources_dir.exists():
            logger.warning(f"Sources directory not found: {self.sources_dir}")

    def _discover_groups(self) -> List[str]:
        if not self.sources_dir.exists():
            return []
        return sorted(path.stem for path in self.sources_dir.glob("*.yaml"))

    def load_group(self, group: str) -> Dict[str, Dict[str, Any]]:
        """Load enabled feeds from one YAML file."""
        if group in self._cache:
            return self._cache[group]

        sources_file = self.sources_dir / f"{group.lower().replace(' ', '_')}.yaml"
        try:
            with open(sources_file, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load sources from {sources_file}: {e}")
            self._cache[group] = {}
            return {}

        sources = data.get("sources") or {}
        enabled = {
            source_id: config for source_id, config in sources.items()
            if isinstance(config, dict) and config.get("enabled", True) and config.get("url")
        }
        self._cache[group] = enabled
        logger.debug(f"Loaded {len(enabled)} enabled feeds from {sources_file.name}")
        return enabled

    def get_sources(self, group: Optional[str] = None) -> Dict[str, Dict[str, Any]]:
        """All enabled feeds, or those of a single group."""
        if group:
            return self.load_group(group)
        sources: Dict[str, Dict[str, Any]] = {}
        for name in self._discover_groups():
            sources.update(self.load_group(name))
        return sources

    def reload_cache(self) -> None:
        self._cache.clear()


_sources_loader: Optional[SourcesLoader] = None


def get_sources_loader() -> SourcesLoader:
    """Get the shared sources loader instance."""
    global _sources_loader
    if _sources_loader is None:
        _sources_loader = SourcesLoader()
    return _sources_loader


def load_curated_feeds() -> Dict[str, Dict[str, Any]]:
    """Enabled curated domain feeds."""
    return get_sources_loader().get_sources("curated")
