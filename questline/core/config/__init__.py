"""
Configuration subsystem for Questline.

- **config.py**: static settings from environment variables (.env support)
- **manager.py**: YAML tunables with dot-notation access and overrides

Usage
-----
```python
from questline.core.config import Config, ConfigManager

db_url = Config.DATABASE_URL
base_xp = ConfigManager.get("weekly_quest.reward.base_xp", 250)
```
"""

from questline.core.config.config import Config, Environment, LockBackend
from questline.core.config.manager import ConfigManager

__all__ = [
    "Config",
    "ConfigManager",
    "Environment",
    "LockBackend",
]
