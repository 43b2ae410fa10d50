"""
ConfigManager: YAML-backed tunable configuration for Questline.

Purpose
-------
- Provide hierarchical, dot-notation access to gameplay tunables
  (reward XP, quest content, lock timeouts, retry budgets).
- Load defaults from every YAML file under the configured `config/`
  directory and deep-merge them into one tree.
- Allow in-process overrides for hot balance changes and tests.

Key Design Decisions
--------------------
- YAML is the single source for defaults; overrides live in memory only.
- Reads never raise: a missing key returns the caller's default.
- Overrides are layered on top of YAML and survive `reload()`.
"""

from __future__ import annotations

import copy
import threading
from pathlib import Path
from typing import Any, Dict, MutableMapping, Optional

import yaml

from questline.core.config.config import Config
from questline.core.logging.logger import get_logger

logger = get_logger(__name__)


class ConfigManager:
    """
    Tunable configuration with YAML defaults and in-memory overrides.

    Features
    --------
    - Hierarchical access with dot notation (e.g. `"weekly_quest.reward.base_xp"`).
    - Lazy load on first read.
    - `set_override()` / `clear_overrides()` for live changes.
    """

    _defaults: Dict[str, Any] = {}
    _overrides: Dict[str, Any] = {}
    _cache: Dict[str, Any] = {}
    _loaded: bool = False
    _config_dir: Optional[Path] = None
    _lock = threading.RLock()

    # =========================================================================
    # YAML LOADING
    # =========================================================================

    @staticmethod
    def _deep_merge_dict(
        target: MutableMapping[str, Any],
        source: MutableMapping[str, Any],
    ) -> None:
        """Recursively merge `source` into `target` (in-place)."""
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                ConfigManager._deep_merge_dict(target[key], value)
            else:
                target[key] = copy.deepcopy(value)

    @classmethod
    def _load_yaml_configs(cls, config_dir: Path) -> Dict[str, Any]:
        merged: Dict[str, Any] = {}

        if not config_dir.exists():
            logger.warning(
                "Config directory not found; using built-in defaults only",
                extra={"config_dir": str(config_dir)},
            )
            return merged

        yaml_files = sorted(config_dir.rglob("*.yaml")) + sorted(config_dir.rglob("*.yml"))
        loaded_count = 0

        for yaml_file in yaml_files:
            try:
                with yaml_file.open("r", encoding="utf-8") as handle:
                    data = yaml.safe_load(handle)
            except (OSError, yaml.YAMLError) as exc:
                logger.warning(
                    "Failed to load YAML config",
                    extra={
                        "file": str(yaml_file),
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                )
                continue

            if isinstance(data, dict):
                cls._deep_merge_dict(merged, data)
                loaded_count += 1
                logger.debug(
                    "Loaded YAML config",
                    extra={"file": str(yaml_file.relative_to(config_dir))},
                )
            elif data is not None:
                logger.warning(
                    "Ignoring non-dict YAML root object",
                    extra={
                        "file": str(yaml_file.relative_to(config_dir)),
                        "root_type": type(data).__name__,
                    },
                )

        logger.info(
            "YAML configs loaded",
            extra={"yaml_file_count": loaded_count, "top_level_keys": sorted(merged)},
        )
        return merged

    @classmethod
    def _rebuild_cache(cls) -> None:
        cache = copy.deepcopy(cls._defaults)
        for key, value in cls._overrides.items():
            cls._assign(cache, key, value)
        cls._cache = cache

    @staticmethod
    def _assign(tree: Dict[str, Any], key: str, value: Any) -> None:
        parts = key.split(".")
        node = tree
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = copy.deepcopy(value)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @classmethod
    def load(cls, config_dir: Optional[Path] = None) -> None:
        """
        Load YAML defaults (idempotent unless a different directory is given).

        Args:
            config_dir: Directory to scan; defaults to `Config.CONFIG_DIR`.
        """
        with cls._lock:
            target = Path(config_dir) if config_dir is not None else Path(Config.CONFIG_DIR)
            if cls._loaded and cls._config_dir == target:
                return
            cls._config_dir = target
            cls._defaults = cls._load_yaml_configs(target)
            cls._rebuild_cache()
            cls._loaded = True

    @classmethod
    def reload(cls) -> None:
        """Re-read YAML files from the current directory, keeping overrides."""
        with cls._lock:
            target = cls._config_dir or Path(Config.CONFIG_DIR)
            cls._loaded = False
            cls._config_dir = None
        cls.load(target)

    @classmethod
    def reset(cls) -> None:
        """Drop all state. Intended for tests."""
        with cls._lock:
            cls._defaults = {}
            cls._overrides = {}
            cls._cache = {}
            cls._loaded = False
            cls._config_dir = None

    # =========================================================================
    # READS
    # =========================================================================

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """
        Retrieve a configuration value by dot-notation path.

        Examples
        --------
        >>> ConfigManager.get("weekly_quest.reward.base_xp", 250)
        250
        """
        if not cls._loaded:
            cls.load()

        value: Any = cls._cache
        for part in key.split("."):
            if not isinstance(value, dict):
                return default
            value = value.get(part)
            if value is None:
                return default
        return copy.deepcopy(value)

    @classmethod
    def get_all_keys(cls) -> list[str]:
        if not cls._loaded:
            cls.load()
        return sorted(cls._cache)

    # =========================================================================
    # WRITES
    # =========================================================================

    @classmethod
    def set_override(cls, key: str, value: Any) -> None:
        """
        Override a value in memory (hot balance change).

        Overrides win over YAML defaults and survive `reload()`.
        """
        if not cls._loaded:
            cls.load()
        with cls._lock:
            cls._overrides[key] = copy.deepcopy(value)
            cls._rebuild_cache()
        logger.info("Configuration override applied", extra={"config_key": key})

    @classmethod
    def clear_overrides(cls) -> None:
        with cls._lock:
            cls._overrides = {}
            cls._rebuild_cache()
