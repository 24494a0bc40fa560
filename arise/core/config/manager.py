"""
ConfigManager: progression balance knobs.

Lookup order for `get("progression.debuff.penalty_percent")`:

1. runtime override from `set()` (memory only, gone after `reset()`)
2. YAML under `config/` (every *.yaml / *.yml, deep-merged in name order)
3. built-in defaults, identical to `config/progression.yaml`, so an
   installed package works without the repository checkout

Reads never raise; an unknown key returns the caller's default. Writes run
the key's validator first. The balance keys ship with validators that
reject values the progression rules cannot work with (a negative debuff
duration, a penalty above 100%).
"""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, MutableMapping, Optional

import yaml

from arise.core.config.config import Config

# stdlib getLogger: arise.core.logging imports this package while loading
logger = logging.getLogger(__name__)

Validator = Callable[[Any], Any]


class ConfigWriteError(Exception):
    """A runtime override was rejected by its validator."""


_BUILTIN_DEFAULTS: Dict[str, Any] = {
    "core": {
        "event": {
            "listener_timeout": {"critical_seconds": 5.0, "high_seconds": 5.0},
        },
    },
    "progression": {
        "level_curve": {"base_xp": 100, "exponent": 1.5, "thresholds_table_levels": 20},
        "weekend_bonus": {"enabled": True, "percent": 10},
        "debuff": {"penalty_percent": 10, "duration_hours": 24, "min_missed_core_quests": 2},
        "quests": {"default_min_partial_percent": 50},
        "streak": {"lookback_days": 365},
        "timeline": {"default_limit": 50, "max_limit": 200},
    },
}


def _int_between(low: int, high: Optional[int] = None) -> Validator:
    def check(value: Any) -> int:
        if isinstance(value, bool):
            raise TypeError("expected an integer, got a boolean")
        number = int(value)
        if number < low or (high is not None and number > high):
            bound = f"[{low}, {high}]" if high is not None else f">= {low}"
            raise ValueError(f"{number} is outside {bound}")
        return number

    return check


def _positive_number(value: Any) -> float:
    number = float(value)
    if number <= 0:
        raise ValueError(f"{number} must be positive")
    return number


def _strict_bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise TypeError(f"expected a boolean, got {type(value).__name__}")
    return value


_BALANCE_VALIDATORS: Dict[str, Validator] = {
    "progression.level_curve.base_xp": _int_between(1),
    "progression.level_curve.exponent": _positive_number,
    "progression.weekend_bonus.enabled": _strict_bool,
    "progression.weekend_bonus.percent": _int_between(0, 100),
    "progression.debuff.penalty_percent": _int_between(0, 100),
    "progression.debuff.duration_hours": _int_between(1),
    "progression.debuff.min_missed_core_quests": _int_between(1),
    "progression.quests.default_min_partial_percent": _int_between(1, 100),
    "progression.streak.lookback_days": _int_between(1),
    "progression.timeline.default_limit": _int_between(1),
    "progression.timeline.max_limit": _int_between(1),
}


def _deep_merge(target: MutableMapping[str, Any], source: MutableMapping[str, Any]) -> None:
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _deep_merge(target[key], value)
        else:
            target[key] = value


class ConfigManager:
    """
    Class-level registry; there is one balance configuration per process.

    >>> ConfigManager.get("progression.level_curve.base_xp")
    100
    """

    _defaults: Dict[str, Any] = {}
    _overrides: Dict[str, Any] = {}
    _validators: Dict[str, Validator] = {}
    _initialized: bool = False
    _config_dir: Optional[Path] = None

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def _merge_yaml_dir(cls, config_dir: Path) -> int:
        if not config_dir.is_dir():
            logger.warning(
                "Config directory missing; built-in balance defaults only",
                extra={"config_dir": str(config_dir)},
            )
            return 0

        merged = 0
        for path in sorted([*config_dir.rglob("*.yaml"), *config_dir.rglob("*.yml")]):
            try:
                data = yaml.safe_load(path.read_text(encoding="utf-8"))
            except (OSError, yaml.YAMLError) as exc:
                logger.warning(
                    "Skipping unreadable config file",
                    extra={"file": str(path), "error_type": type(exc).__name__},
                )
                continue
            if data is None:
                continue
            if not isinstance(data, dict):
                logger.warning(
                    "Skipping config file without a mapping at the root",
                    extra={"file": str(path), "root_type": type(data).__name__},
                )
                continue
            _deep_merge(cls._defaults, data)
            merged += 1
        return merged

    @classmethod
    def load(cls, config_dir: Optional[Path] = None) -> None:
        """Rebuild defaults from built-ins plus YAML. Overrides are kept."""
        cls._config_dir = Path(config_dir) if config_dir else Config.CONFIG_DIR
        cls._defaults = copy.deepcopy(_BUILTIN_DEFAULTS)
        merged = cls._merge_yaml_dir(cls._config_dir)
        for key, validator in _BALANCE_VALIDATORS.items():
            cls._validators.setdefault(key, validator)
        cls._initialized = True
        logger.info(
            "Balance configuration loaded",
            extra={"config_dir": str(cls._config_dir), "yaml_files": merged},
        )

    @classmethod
    def reset(cls) -> None:
        """Forget overrides, validators and loaded YAML; next access reloads."""
        cls._defaults = {}
        cls._overrides = {}
        cls._validators = {}
        cls._initialized = False

    @classmethod
    def _ensure_loaded(cls) -> None:
        if not cls._initialized:
            cls.load()

    # ------------------------------------------------------------------
    # Read / write
    # ------------------------------------------------------------------

    @classmethod
    def register_validator(cls, key: str, validator: Validator) -> None:
        """`validator(value)` returns the value to store or raises."""
        cls._validators[key] = validator

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        cls._ensure_loaded()
        if key in cls._overrides:
            return cls._overrides[key]

        node: Any = cls._defaults
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return default if node is None else node

    @classmethod
    def set(cls, key: str, value: Any) -> None:
        """
        Raises:
            ConfigWriteError: the key's validator rejected `value`
        """
        cls._ensure_loaded()
        validator = cls._validators.get(key)
        if validator is not None:
            try:
                value = validator(value)
            except (TypeError, ValueError) as exc:
                logger.warning(
                    "Config override rejected",
                    extra={"config_key": key, "error": str(exc)},
                )
                raise ConfigWriteError(f"Invalid value for '{key}': {exc}") from exc

        cls._overrides[key] = value
        logger.info("Config override applied", extra={"config_key": key, "config_value": value})

    @classmethod
    def get_all_keys(cls) -> List[str]:
        """Top-level sections."""
        cls._ensure_loaded()
        return sorted(cls._defaults)
