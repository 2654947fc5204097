"""
Core Components

Shared infrastructure for the video job services:
- Environment-driven configuration
- PostgreSQL connection pool
"""

from .config import Config, get_config, reload_config

__all__ = ["Config", "get_config", "reload_config"]
