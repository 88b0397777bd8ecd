"""Factory helpers for constructing the data store from configuration."""
from __future__ import annotations

import importlib
import logging
from typing import Any, Dict, Mapping

from .config import expand_options
from .errors import ConfigurationError
from .rate_limit import DelayPolicy, RateLimiter
from .store import InMemoryStore
from .store.base import DataStore

LOGGER = logging.getLogger(__name__)

STORE_ALIASES = {
    "memory": "lqs_pipeline.store.InMemoryStore",
    "rest": "lqs_pipeline.store.RestStore",
    "function": "lqs_pipeline.store.FunctionStore",
}


def _load_class(path: str):
    module_name, _, attr = path.rpartition(".")
    if not module_name:
        raise ConfigurationError(f"Invalid store class path '{path}'")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigurationError(f"Cannot import store module '{module_name}': {exc}") from exc
    try:
        return getattr(module, attr)
    except AttributeError as exc:
        raise ConfigurationError(f"Module '{module_name}' does not define '{attr}'") from exc


def build_store(config: Mapping[str, Any]) -> DataStore:
    """Instantiate the store named by ``store.class``; defaults to an empty in-memory store."""

    store_cfg = config.get("store") or {}
    class_path = store_cfg.get("class", "memory")
    class_path = STORE_ALIASES.get(class_path, class_path)
    options: Dict[str, Any] = expand_options(store_cfg.get("options") or {})

    store_cls = _load_class(class_path)
    if isinstance(store_cls, type) and issubclass(store_cls, InMemoryStore) and "snapshot" in options:
        LOGGER.info("Loading in-memory store snapshot from %s", options["snapshot"])
        return store_cls.load(options["snapshot"])
    try:
        return store_cls(**options)
    except TypeError as exc:
        raise ConfigurationError(f"Invalid options for store '{class_path}': {exc}") from exc


def build_pacing(settings) -> tuple[DelayPolicy, RateLimiter]:
    """Delay policy and write limiter for an :class:`~lqs_pipeline.config.UploadSettings`."""

    return DelayPolicy(delay_seconds=settings.inter_batch_delay_seconds), RateLimiter(settings.writes_per_minute)


__all__ = ["STORE_ALIASES", "build_pacing", "build_store"]
