# charactergen/imaging/adapter.py

"""
Image provider factory.
"""

import logging
from typing import Callable, Dict

from charactergen.config import ImageProviderConfig
from charactergen.exceptions import ConfigurationError
from charactergen.imaging.base import ImageProvider
from charactergen.imaging.dalle_adapter import DallEProvider
from charactergen.imaging.fal_adapter import FalProvider

logger = logging.getLogger(__name__)

IMAGE_PROVIDERS: Dict[str, Callable[..., ImageProvider]] = {
    "dalle": DallEProvider,
    "fal": FalProvider,
}


def create_image_provider(name: str, config: ImageProviderConfig, **options) -> ImageProvider:
    """
    Build an image provider by name ("dalle" or "fal").

    Raises:
        ConfigurationError: Unknown name or invalid configuration.
    """
    key = (name or "").strip().lower()
    factory = IMAGE_PROVIDERS.get(key)
    if factory is None:
        raise ConfigurationError(f"unknown image provider: {name}")

    provider = factory(config, **options)
    logger.info(f"[ImageProviderFactory] created {key} image provider")
    return provider
