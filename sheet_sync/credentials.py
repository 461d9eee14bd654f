from __future__ import annotations

import logging
import os
from typing import Protocol

from .config import RemoteConfig
from .store import PropertyStore

LOGGER = logging.getLogger(__name__)

API_KEY_PROPERTY = "SUPABASE_API_KEY"


class ConfigurationError(RuntimeError):
    """Raised when a required setting such as the API key is missing."""


class KeyProvider(Protocol):
    def get_api_key(self) -> str:
        ...


def is_valid_api_key(api_key: str | None, prefix: str) -> bool:
    return bool(api_key) and api_key.startswith(prefix)


class StoredKeyProvider:
    """Read the API key from the property store, optionally overridden by env."""

    def __init__(self, store: PropertyStore, conf: RemoteConfig) -> None:
        self._store = store
        self._conf = conf

    def get_api_key(self) -> str:
        if self._conf.api_key_env:
            env_value = os.environ.get(self._conf.api_key_env)
            if env_value:
                return env_value.strip()

        api_key = self._store.get(API_KEY_PROPERTY)
        if not api_key:
            msg = "API key not found. Run 'sheet-sync setup-key' first."
            raise ConfigurationError(msg)
        return api_key


def store_api_key(store: PropertyStore, api_key: str | None, prefix: str) -> bool:
    """Validate and persist the API key; return ``False`` on a malformed key."""

    api_key = (api_key or "").strip()
    if not is_valid_api_key(api_key, prefix):
        LOGGER.warning("Rejected API key: it must start with '%s'", prefix)
        return False
    store.set(API_KEY_PROPERTY, api_key)
    LOGGER.info("API key stored in %s", store.path)
    return True
