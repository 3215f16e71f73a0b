# charactergen/imaging/dalle_adapter.py

"""
DALL-E adapter: OpenAI's image generation endpoint.

Size, quality and style are checked against the values the API accepts
when the provider is built, so a bad setting fails at startup rather than
on the first portrait.
"""

import logging

from charactergen.config import DALLE_API_URL
from charactergen.exceptions import ConfigurationError, ImageGenerationError
from charactergen.imaging.base import ImageProvider, ImageResult

logger = logging.getLogger(__name__)

VALID_SIZES = ("1024x1024", "1024x1792", "1792x1024")
VALID_QUALITIES = ("standard", "hd")
VALID_STYLES = ("vivid", "natural")


class DallEProvider(ImageProvider):
    name = "dall-e"

    def __init__(self, config, **options):
        super().__init__(config, **options)
        self._check_options()
        self.endpoint_url = config.endpoint_url or DALLE_API_URL
        self.model = config.model or "dall-e-3"

    def _check_options(self) -> None:
        for label, value, allowed in (
            ("size", self.config.size, VALID_SIZES),
            ("quality", self.config.quality, VALID_QUALITIES),
            ("style", self.config.style, VALID_STYLES),
        ):
            if value not in allowed:
                message = f"Invalid {label}. Must be one of: {', '.join(allowed)}"
                logger.error(f"[DallEProvider] {message}")
                raise ConfigurationError(message)

    def _generate(self, prompt: str) -> ImageResult:
        body = {
            "model": self.model,
            "prompt": prompt,
            "n": 1,
            "size": self.config.size,
            "quality": self.config.quality,
            "style": self.config.style,
            "response_format": "url",
        }
        headers = {"Authorization": f"Bearer {self.config.api_key}"}
        data = self._post(self.endpoint_url, headers, body)

        try:
            image = data["data"][0]
            url = image["url"]
        except (KeyError, IndexError, TypeError) as e:
            raise ImageGenerationError("image response did not include a url") from e

        return ImageResult(
            url=url,
            model=self.model,
            provider=self.name,
            prompt=prompt,
            revised_prompt=image.get("revised_prompt"),
            size=self.config.size,
            quality=self.config.quality,
            style=self.config.style,
        )
