"""Persistence layer: tables, engine and the resolver store boundary."""

from tzurot_cache.persistence.store import (
    ConfigStore,
    LlmConfigRow,
    LlmConfigStore,
    SqlConfigStore,
    UserConfigRows,
    UserLlmConfigRows,
)
from tzurot_cache.persistence.tables import ADMIN_SETTINGS_SINGLETON_ID

__all__ = [
    "ADMIN_SETTINGS_SINGLETON_ID",
    "ConfigStore",
    "LlmConfigRow",
    "LlmConfigStore",
    "SqlConfigStore",
    "UserConfigRows",
    "UserLlmConfigRows",
]
