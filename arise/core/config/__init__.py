"""
Configuration subsystem.

- **config.py**: static settings from environment variables (.env support)
- **manager.py**: progression tunables from YAML with runtime overrides
"""

from arise.core.config.config import Config, Environment
from arise.core.config.manager import ConfigManager, ConfigWriteError

__all__ = ["Config", "ConfigManager", "ConfigWriteError", "Environment"]
