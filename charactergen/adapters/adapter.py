# charactergen/adapters/adapter.py

"""
Provider factory: maps provider names to adapter implementations.

The registry maps a lower-case provider name to either
- a module path exposing `get_adapter(config, **options)`, imported lazily
  with `importlib` so unused adapters are never loaded, or
- any callable with the same signature.

New providers are added with `register_provider()`; nothing here needs to
change.

🧠 The factory only receives explicit `ProviderConfig` objects. Reading the
process settings is `charactergen.route_logic`'s job.
"""

import importlib
import logging
from typing import Callable, Dict, List, Optional, Union

from charactergen.adapters.base import ProviderClient
from charactergen.config import ProviderConfig
from charactergen.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ProviderFactory = Callable[..., ProviderClient]

PROVIDERS: Dict[str, Union[str, ProviderFactory]] = {
    "anthropic": "charactergen.adapters.anthropic_adapter",
    "openai": "charactergen.adapters.openai_adapter",
    "mock": "charactergen.adapters.mock_adapter",
}


def register_provider(name: str, factory: Union[str, ProviderFactory]) -> None:
    """
    Add or replace a provider.

    Args:
        name (str): Provider name, matched case-insensitively.
        factory (str | Callable): Module path with `get_adapter`, or a callable
            taking `(config, **options)`.
    """
    PROVIDERS[name.strip().lower()] = factory


def available_providers() -> List[str]:
    return sorted(PROVIDERS)


def _resolve(entry: Union[str, ProviderFactory]) -> ProviderFactory:
    if isinstance(entry, str):
        module = importlib.import_module(entry)
        return module.get_adapter
    return entry


def create_provider(name: str, config: Optional[ProviderConfig] = None, **client_options) -> ProviderClient:
    """
    Build a provider client by name.

    Args:
        name (str): Registered provider name, e.g. "anthropic".
        config (ProviderConfig): Connection parameters for the client.
        **client_options: Passed through to the adapter (http_client, sleep, rate_limiter).

    Returns:
        ProviderClient: A ready-to-use client.

    Raises:
        ConfigurationError: Unknown name, or the adapter rejected its config.
    """
    key = (name or "").strip().lower()
    entry = PROVIDERS.get(key)
    if entry is None:
        raise ConfigurationError(f"unknown provider: {name}")

    factory = _resolve(entry)
    try:
        client = factory(config or ProviderConfig(), **client_options)
    except ConfigurationError as e:
        logger.error(f"[ProviderFactory] {key} rejected its configuration: {e.detail}")
        raise ConfigurationError(f"failed to initialize provider: {e.detail}") from e

    logger.info(f"[ProviderFactory] created {key} provider (model={client.config.model or '-'})")
    return client
