"""
idprov configuration.

- Pydantic-based settings (environment variables, .env files)
- Typed keystone node attributes loaded from YAML
"""

from idprov.config.attributes import SQL_ENGINES, KeystoneAttributes
from idprov.config.loader import load_attributes, save_attributes
from idprov.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
    "KeystoneAttributes",
    "SQL_ENGINES",
    "load_attributes",
    "save_attributes",
]
