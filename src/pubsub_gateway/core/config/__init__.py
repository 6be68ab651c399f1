"""
Configuration Module

Components:
-----------
- **settings.py**: Pydantic-based configuration with environment variable loading
- **constants.py**: Enums, message property names and HTTP headers
- **transport.py**: Frozen broker connection parameters built from settings

Usage:
------
```python
from pubsub_gateway.core.config import get_settings
from pubsub_gateway.core.config.constants import DestinationKind
```
"""

from pubsub_gateway.core.config.settings import Settings, get_settings, reload_settings

__all__ = ["Settings", "get_settings", "reload_settings"]
